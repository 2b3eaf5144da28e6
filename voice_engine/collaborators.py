"""
Collaborator contracts for the pipeline.

The engine never touches a database or a notification service directly; it
talks to these protocols. ``voice_app.store.SqlVoiceStore`` implements all of
them against SQLAlchemy, tests implement them in memory.
"""

from typing import Iterable, Optional, Protocol

from .models import (
    ContentPrediction,
    ExtractedHealthNote,
    ExtractedReminder,
    ExtractedTask,
    GeneratedContent,
    RecordingStatus,
    SaveResult,
    UserContext,
    VoiceContext,
    VoiceRecording,
)


class RecordingStore(Protocol):
    def get_recording(self, recording_id: str, user_id: str) -> Optional[VoiceRecording]:
        """Return the recording only if it exists and is owned by ``user_id``."""
        ...

    def update_recording(
        self,
        recording_id: str,
        user_id: str,
        *,
        status: Optional[RecordingStatus] = None,
        transcription: Optional[str] = None,
        ai_summary: Optional[str] = None,
        expected_statuses: Optional[Iterable[RecordingStatus]] = None,
    ) -> bool:
        """Apply the given fields. Returns False when no row matched
        (not owned, or status not in ``expected_statuses``)."""
        ...

    def list_transcribed_recordings(
        self,
        user_id: str,
        recording_id: Optional[str] = None,
        limit: int = 5,
    ) -> list[VoiceRecording]:
        """Owned recordings with a non-empty transcription, newest first.
        With ``recording_id`` only that recording is considered."""
        ...


class ItemStore(Protocol):
    def create_task(self, user_id: str, task: ExtractedTask, recording_id: Optional[str]) -> SaveResult: ...

    def create_reminder(
        self,
        user_id: str,
        reminder: ExtractedReminder,
        reminder_time: str,
        recording_id: Optional[str],
    ) -> SaveResult: ...

    def create_health_note(
        self,
        user_id: str,
        note: ExtractedHealthNote,
        recording_id: Optional[str],
    ) -> SaveResult: ...


class UserContextProvider(Protocol):
    def get_user_context(self, user_id: str) -> UserContext: ...

    def get_voice_context(self, user_id: str) -> VoiceContext: ...


class ContentStore(Protocol):
    def save_generated_content(
        self,
        user_id: str,
        *,
        title: str,
        content: GeneratedContent,
        prediction: ContentPrediction,
        source_voice_note_ids: list[str],
        generation_type: str,
        model_used: str,
    ) -> SaveResult: ...


class Notifier(Protocol):
    def notify_content_ready(
        self,
        user_id: str,
        document_id: str,
        title: str,
        content_type: str,
    ) -> None:
        """Raise on failure; the dispatcher owns retries."""
        ...


class ContentGenerator(Protocol):
    model_name: str

    def generate(
        self,
        user_context: UserContext,
        source_text: str,
        prediction: ContentPrediction,
    ) -> GeneratedContent: ...
