"""
Structured extraction of actionable items from a transcript.

The model answers through exactly one tool, ``output-extracted-items``. Its
reply is parsed through a fixed decision table:

    1. a call named output-extracted-items  → its arguments
    2. otherwise the first tool call        → its arguments
    3. no call, undecodable or invalid args → empty bundle, summary from
       the caller's summary, else the model's free text, else a fixed phrase

A non-blank caller summary always replaces the model's summary, verbatim.

Each step returns either a value or a ParseIssue, so the fallback is a plain
branch rather than a cascade of try/except. Extraction never raises.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import ValidationError

from .ai import AgentResponse, GeminiClient, ToolCall
from .models import ExtractedItems, UserContext
from .prompts import build_agent_instructions, build_extraction_prompt
from .temporal import TemporalContext

logger = logging.getLogger(__name__)

OUTPUT_TOOL_NAME = "output-extracted-items"
NO_ITEMS_SUMMARY = "Unable to extract items"

_TAGS = {"type": "array", "items": {"type": "string"}}
_PRIORITY = {"type": "string", "enum": ["urgent", "high", "medium", "low"]}

EXTRACTION_TOOL_SCHEMA = {
    "type": "object",
    "properties": {
        "tasks": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "priority": _PRIORITY,
                    "dueDate": {"type": "string", "description": "YYYY-MM-DD"},
                    "dueTime": {"type": "string", "description": "HH:MM, 24-hour. Omit when no time was said."},
                    "category": {"type": "string"},
                    "tags": _TAGS,
                },
                "required": ["title"],
            },
        },
        "reminders": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "reminderTime": {"type": "string", "description": "ISO datetime"},
                    "isRecurring": {"type": "boolean"},
                    "recurrencePattern": {"type": "string"},
                    "priority": _PRIORITY,
                    "type": {"type": "string", "enum": ["task", "todo", "reminder"]},
                    "tags": _TAGS,
                },
                "required": ["title"],
            },
        },
        "healthNotes": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "content": {"type": "string"},
                    "category": {
                        "type": "string",
                        "enum": ["symptom", "medication", "mood", "exercise", "diet", "sleep", "other"],
                    },
                    "tags": _TAGS,
                },
                "required": ["content"],
            },
        },
        "generalNotes": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"content": {"type": "string"}, "tags": _TAGS},
                "required": ["content"],
            },
        },
        "contentPredictions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "contentType": {"type": "string"},
                    "description": {"type": "string"},
                    "targetPlatform": {"type": "string"},
                    "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                    "suggestedTitle": {"type": "string"},
                },
                "required": ["contentType", "description", "confidence"],
            },
        },
        "summary": {"type": "string", "description": "Markdown summary of the voice note"},
    },
    "required": ["tasks", "reminders", "healthNotes", "generalNotes", "summary"],
}


@dataclass
class ParseIssue:
    """Why a step of the decision table produced no value."""
    reason: str


def select_tool_call(calls: list[ToolCall]) -> Union[ToolCall, ParseIssue]:
    for call in calls:
        if call.name == OUTPUT_TOOL_NAME:
            return call
    if calls:
        logger.info(f"No {OUTPUT_TOOL_NAME} call, using first tool call '{calls[0].name}'")
        return calls[0]
    return ParseIssue("no tool call in response")


def decode_arguments(call: ToolCall) -> Union[dict, ParseIssue]:
    args: Any = call.args
    if isinstance(args, str):
        try:
            args = json.loads(args)
        except json.JSONDecodeError as e:
            return ParseIssue(f"tool arguments are not valid JSON: {e}")
    if isinstance(args, dict):
        return args
    try:
        return dict(args)
    except (TypeError, ValueError):
        return ParseIssue(f"tool arguments are not an object: {type(args).__name__}")


def validate_items(args: dict) -> Union[ExtractedItems, ParseIssue]:
    try:
        return ExtractedItems.model_validate(args)
    except ValidationError as e:
        return ParseIssue(f"tool arguments failed validation: {e.error_count()} error(s)")


def parse_agent_response(
    response: Optional[AgentResponse],
    ai_summary: Optional[str] = None,
) -> ExtractedItems:
    """Apply the decision table to a model reply (None when the call failed)."""
    ai_summary = ai_summary if ai_summary and ai_summary.strip() else None
    free_text = ((response.text if response else "") or "").strip()

    step: Any = select_tool_call(response.tool_calls) if response else ParseIssue("agent call failed")
    if not isinstance(step, ParseIssue):
        step = decode_arguments(step)
    if not isinstance(step, ParseIssue):
        step = validate_items(step)

    if isinstance(step, ParseIssue):
        logger.warning(f"Extraction fell back to empty bundle: {step.reason}")
        return ExtractedItems.empty(ai_summary or free_text or NO_ITEMS_SUMMARY)

    items: ExtractedItems = step
    if ai_summary:
        items.summary = ai_summary
    elif not items.summary.strip():
        items.summary = free_text or NO_ITEMS_SUMMARY
    return items


class Extractor:
    def __init__(self, client: GeminiClient):
        self._client = client

    @property
    def model_name(self) -> str:
        return self._client.model_name

    def extract(
        self,
        transcript: str,
        temporal: TemporalContext,
        user_context: UserContext,
        ai_summary: Optional[str] = None,
    ) -> ExtractedItems:
        prompt = build_extraction_prompt(transcript, temporal, user_context)
        try:
            response = self._client.call_tool(
                prompt,
                tool_name=OUTPUT_TOOL_NAME,
                tool_description="Output the structured items extracted from the voice transcription",
                parameters_schema=EXTRACTION_TOOL_SCHEMA,
                system_instruction=build_agent_instructions(temporal, user_context),
            )
        except Exception as e:
            logger.error(f"Extraction agent call failed: {e}", exc_info=True)
            response = None

        items = parse_agent_response(response, ai_summary)
        logger.info(
            f"Extracted {len(items.tasks)} task(s), {len(items.reminders)} reminder(s), "
            f"{len(items.health_notes)} health note(s), {len(items.general_notes)} general note(s), "
            f"{len(items.content_predictions)} content prediction(s)"
        )
        return items
