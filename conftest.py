"""
Shared fakes and fixtures.

Every collaborator the engine talks to has an in-memory stand-in here, so the
pipeline can be driven end to end without network or database access.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import pytest

from voice_engine.ai import AgentResponse, ToolCall
from voice_engine.content import ContentGate
from voice_engine.core import VoicePipeline
from voice_engine.dispatch import RetryPolicy
from voice_engine.errors import TranscriptionFailure
from voice_engine.extractor import Extractor, OUTPUT_TOOL_NAME
from voice_engine.models import (
    GeneratedContent,
    RecordingStatus,
    SaveResult,
    TranscriptionResult,
    UserContext,
    VoiceContext,
    VoiceRecording,
)
from voice_engine.persister import ItemPersister
from voice_engine.preview import PreviewGenerator

FIXED_NOW = datetime(2024, 1, 10, 12, 0)   # naive: read in the user's timezone
USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def extraction_response(text: str = "", **args) -> AgentResponse:
    """A model reply that calls output-extracted-items with ``args``."""
    payload = {"tasks": [], "reminders": [], "healthNotes": [], "generalNotes": [], "summary": "Summary"}
    payload.update(args)
    return AgentResponse(text=text, tool_calls=[ToolCall(name=OUTPUT_TOOL_NAME, args=payload)])


class FakeGemini:
    """Replays queued tool-call responses; an Exception in the queue is raised."""

    def __init__(self, responses=None, text: str = "TITLE: Draft\n\nDrafted body", model_name: str = "fake-model"):
        self.responses = list(responses or [])
        self.text = text
        self.model_name = model_name
        self.prompts: list[str] = []
        self.instructions: list[Optional[str]] = []

    def call_tool(self, prompt, tool_name, tool_description, parameters_schema, system_instruction=None, max_retries=3):
        self.prompts.append(prompt)
        self.instructions.append(system_instruction)
        if not self.responses:
            return AgentResponse()
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def generate_text(self, prompt, system_instruction=None, max_retries=3):
        self.prompts.append(prompt)
        return self.text


class FakeTranscriber:
    def __init__(self, text: str = "Buy milk tomorrow", language: str = "en", duration: float = 4.2, error=None):
        self.result = TranscriptionResult(text=text, language=language, duration_seconds=duration)
        self.error = error
        self.calls = []

    def transcribe(self, audio, mime_type):
        self.calls.append((audio, mime_type))
        if self.error is not None:
            raise self.error
        return self.result


class FakeContentGenerator:
    model_name = "fake-content-model"

    def __init__(self, fail_types=()):
        self.fail_types = set(fail_types)
        self.calls = []

    def generate(self, user_context, source_text, prediction):
        self.calls.append(prediction)
        if prediction.content_type in self.fail_types:
            raise RuntimeError(f"generator exploded on {prediction.content_type}")
        return GeneratedContent(
            title=f"{prediction.content_type} draft",
            content=f"Body for {prediction.description}",
            preview_text=f"Preview for {prediction.description}",
        )


class InMemoryStore:
    """Implements every collaborator protocol in memory."""

    def __init__(self):
        self.recordings: dict[str, VoiceRecording] = {}
        self.users: dict[str, UserContext] = {}
        self.tasks: list[dict] = []
        self.reminders: list[dict] = []
        self.health_notes: list[dict] = []
        self.documents: list[dict] = []
        self.notifications: list[dict] = []
        self.fail_titles: set[str] = set()    # returns SaveResult(success=False)
        self.raise_titles: set[str] = set()   # raises
        self.notify_failures = 0
        self.context_calls: list[str] = []

    def add_recording(self, recording_id: str, user_id: str = USER_ID, status=RecordingStatus.PENDING, audio_url=None, transcription=None):
        self.recordings[recording_id] = VoiceRecording(
            id=recording_id, user_id=user_id, status=status, audio_url=audio_url, transcription=transcription,
        )
        return self.recordings[recording_id]

    # RecordingStore
    def get_recording(self, recording_id, user_id):
        recording = self.recordings.get(recording_id)
        if recording is None or recording.user_id != user_id:
            return None
        return recording

    def update_recording(self, recording_id, user_id, *, status=None, transcription=None, ai_summary=None, expected_statuses=None):
        recording = self.get_recording(recording_id, user_id)
        if recording is None:
            return False
        if expected_statuses is not None and recording.status not in set(expected_statuses):
            return False
        if status is not None:
            recording.status = status
        if transcription is not None:
            recording.transcription = transcription
        if ai_summary is not None:
            recording.ai_summary = ai_summary
        return True

    def list_transcribed_recordings(self, user_id, recording_id=None, limit=5):
        owned = [r for r in self.recordings.values() if r.user_id == user_id and r.transcription]
        if recording_id:
            return [r for r in owned if r.id == recording_id]
        return list(reversed(owned))[:limit]

    # ItemStore
    def _save(self, bucket: list, prefix: str, title: str, record: dict) -> SaveResult:
        if title in self.raise_titles:
            raise RuntimeError(f"database is down for {title}")
        if title in self.fail_titles:
            return SaveResult(success=False, error="constraint violation")
        item_id = f"{prefix}-{len(bucket) + 1}"
        bucket.append({"id": item_id, **record})
        return SaveResult(success=True, id=item_id)

    def create_task(self, user_id, task, recording_id):
        return self._save(self.tasks, "task", task.title, {
            "user_id": user_id, "title": task.title, "priority": task.priority.value,
            "due_date": task.due_date, "due_time": task.due_time, "source_recording_id": recording_id,
        })

    def create_reminder(self, user_id, reminder, reminder_time, recording_id):
        return self._save(self.reminders, "reminder", reminder.title, {
            "user_id": user_id, "title": reminder.title, "reminder_time": reminder_time,
            "type": reminder.type.value, "source_recording_id": recording_id,
        })

    def create_health_note(self, user_id, note, recording_id):
        return self._save(self.health_notes, "health", note.content, {
            "user_id": user_id, "content": note.content, "category": note.category.value,
            "source": "voice", "source_recording_id": recording_id,
        })

    # UserContextProvider
    def get_user_context(self, user_id):
        self.context_calls.append("user")
        return self.users.get(user_id, UserContext(user_id=user_id))

    def get_voice_context(self, user_id):
        self.context_calls.append("voice")
        return VoiceContext([r.transcription for r in self.recordings.values() if r.user_id == user_id and r.transcription])

    # ContentStore
    def save_generated_content(self, user_id, *, title, content, prediction, source_voice_note_ids, generation_type, model_used):
        doc_id = f"doc-{len(self.documents) + 1}"
        self.documents.append({
            "id": doc_id, "user_id": user_id, "title": title, "content_type": prediction.content_type,
            "source_voice_note_ids": source_voice_note_ids, "generation_type": generation_type,
            "confidence_score": prediction.confidence, "model_used": model_used,
        })
        return SaveResult(success=True, id=doc_id)

    # Notifier
    def notify_content_ready(self, user_id, document_id, title, content_type):
        if self.notify_failures > 0:
            self.notify_failures -= 1
            raise RuntimeError("notification service unavailable")
        self.notifications.append({"user_id": user_id, "document_id": document_id, "title": title})


@dataclass
class Harness:
    pipeline: VoicePipeline
    agent: FakeGemini
    preview_agent: FakeGemini
    transcriber: FakeTranscriber
    generator: FakeContentGenerator
    store: InMemoryStore = field(repr=False, default=None)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def make_harness(store):
    def _make(
        agent_responses=(),
        preview_responses=(),
        transcriber: Optional[FakeTranscriber] = None,
        generator: Optional[FakeContentGenerator] = None,
        background_content: bool = False,
    ) -> Harness:
        agent = FakeGemini(agent_responses)
        preview_agent = FakeGemini(preview_responses)
        transcriber = transcriber or FakeTranscriber()
        generator = generator or FakeContentGenerator()
        gate = ContentGate(
            generator,
            contexts=store,
            store=store,
            notifier=store,
            notify_policy=RetryPolicy(max_attempts=3, backoff_seconds=0),
        )
        pipeline = VoicePipeline(
            recordings=store,
            contexts=store,
            transcriber=transcriber,
            previewer=PreviewGenerator(preview_agent),
            extractor=Extractor(agent),
            persister=ItemPersister(store),
            gate=gate,
            background_content=background_content,
            clock=lambda: FIXED_NOW,
        )
        return Harness(pipeline, agent, preview_agent, transcriber, generator, store)

    return _make


@pytest.fixture
def failing_transcriber():
    return FakeTranscriber(error=TranscriptionFailure("Transcription failed", "upstream 503"))
