"""
Preview generation: a cleaned transcript and a summary for user review.

Runs before the user confirms anything, so it never extracts or saves items.
Whatever the model does, a usable PreviewResult comes back.
"""

import json
import logging
from typing import Optional

from .ai import AgentResponse, GeminiClient
from .models import PreviewResult, UserContext
from .prompts import build_preview_instructions, build_preview_prompt

logger = logging.getLogger(__name__)

PREVIEW_TOOL_NAME = "output-preview"
FALLBACK_SUMMARY = "Summary unavailable"

PREVIEW_TOOL_SCHEMA = {
    "type": "object",
    "properties": {
        "cleanedTranscription": {
            "type": "string",
            "description": "The cleaned transcription with grammar, spelling and repetitions fixed",
        },
        "aiSummary": {
            "type": "string",
            "description": "Markdown summary of what the user said",
        },
    },
    "required": ["cleanedTranscription", "aiSummary"],
}


def _preview_args(response: AgentResponse) -> Optional[dict]:
    call = next((c for c in response.tool_calls if c.name == PREVIEW_TOOL_NAME), None)
    if call is None and response.tool_calls:
        call = response.tool_calls[0]
    if call is None:
        return None

    args = call.args
    if isinstance(args, str):
        try:
            args = json.loads(args)
        except json.JSONDecodeError:
            logger.warning("Preview tool arguments are not valid JSON")
            return None
    return dict(args) if isinstance(args, dict) else None


def build_preview(transcript: str, response: Optional[AgentResponse]) -> PreviewResult:
    """Turn whatever the model returned into a complete PreviewResult."""
    args = _preview_args(response) if response is not None else None
    free_text = (response.text if response is not None else "") or ""

    if args is None:
        cleaned, summary = transcript, free_text
    else:
        cleaned = args.get("cleanedTranscription") or args.get("cleaned_transcription") or ""
        summary = args.get("aiSummary") or args.get("ai_summary") or free_text

    cleaned = cleaned.strip() if isinstance(cleaned, str) else ""
    summary = summary.strip() if isinstance(summary, str) else ""

    return PreviewResult(
        cleaned_transcription=cleaned or transcript,
        ai_summary=summary or FALLBACK_SUMMARY,
    )


class PreviewGenerator:
    def __init__(self, client: GeminiClient):
        self._client = client

    def generate(self, transcript: str, user_context: UserContext) -> PreviewResult:
        try:
            response = self._client.call_tool(
                build_preview_prompt(transcript, user_context),
                tool_name=PREVIEW_TOOL_NAME,
                tool_description="Output the cleaned transcription and the AI summary",
                parameters_schema=PREVIEW_TOOL_SCHEMA,
                system_instruction=build_preview_instructions(user_context),
            )
        except Exception as e:
            logger.warning(f"Preview generation failed, using raw transcript: {e}")
            response = None

        result = build_preview(transcript, response)
        logger.info(
            f"Preview ready | transcript {len(result.cleaned_transcription)} chars "
            f"| summary {len(result.ai_summary)} chars"
        )
        return result
