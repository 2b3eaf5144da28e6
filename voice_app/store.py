"""
SQLAlchemy implementation of the engine's collaborator protocols.

Every operation opens its own short-lived session so the store can be used
from the request threadpool and from background jobs alike.
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from voice_engine.content import content_ready_notification
from voice_engine.models import (
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

from .database import (
    AIDocument, HealthNote, Notification, Reminder, SessionLocal, Task, User, VoiceRecordingRow, utcnow,
)

logger = logging.getLogger(__name__)

VOICE_CONTEXT_LIMIT = 10


def _to_recording(row: VoiceRecordingRow) -> VoiceRecording:
    try:
        status = RecordingStatus(row.status)
    except ValueError:
        status = RecordingStatus.PENDING
    return VoiceRecording(
        id=row.id,
        user_id=row.user_id,
        audio_url=row.audio_url,
        transcription=row.transcription,
        ai_summary=row.ai_summary,
        status=status,
        duration_seconds=row.duration_seconds or 0.0,
        created_at=row.created_at,
    )


class SqlVoiceStore:
    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _insert(self, kind: str, row) -> SaveResult:
        try:
            with self._session() as db:
                db.add(row)
                db.flush()
                return SaveResult(success=True, id=row.id)
        except SQLAlchemyError as e:
            logger.error(f"Database error creating {kind}: {e}")
            return SaveResult(success=False, error=str(e))

    # ── RecordingStore ──────────────────────────────────────────────────

    def get_recording(self, recording_id: str, user_id: str) -> Optional[VoiceRecording]:
        with self._session() as db:
            row = db.execute(
                select(VoiceRecordingRow).where(
                    VoiceRecordingRow.id == recording_id,
                    VoiceRecordingRow.user_id == user_id,
                )
            ).scalar_one_or_none()
            return _to_recording(row) if row else None

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
        values = {"updated_at": utcnow()}
        if status is not None:
            values["status"] = status.value
        if transcription is not None:
            values["transcription"] = transcription
        if ai_summary is not None:
            values["ai_summary"] = ai_summary

        stmt = update(VoiceRecordingRow).where(
            VoiceRecordingRow.id == recording_id,
            VoiceRecordingRow.user_id == user_id,
        )
        if expected_statuses is not None:
            stmt = stmt.where(VoiceRecordingRow.status.in_([s.value for s in expected_statuses]))

        with self._session() as db:
            result = db.execute(stmt.values(**values).execution_options(synchronize_session=False))
            return result.rowcount > 0

    def list_transcribed_recordings(
        self,
        user_id: str,
        recording_id: Optional[str] = None,
        limit: int = 5,
    ) -> list[VoiceRecording]:
        stmt = select(VoiceRecordingRow).where(
            VoiceRecordingRow.user_id == user_id,
            VoiceRecordingRow.transcription.is_not(None),
            VoiceRecordingRow.transcription != "",
        )
        if recording_id:
            stmt = stmt.where(VoiceRecordingRow.id == recording_id)
        else:
            stmt = stmt.order_by(VoiceRecordingRow.created_at.desc()).limit(limit)
        with self._session() as db:
            return [_to_recording(row) for row in db.execute(stmt).scalars()]

    # ── ItemStore ───────────────────────────────────────────────────────

    def create_task(self, user_id: str, task: ExtractedTask, recording_id: Optional[str]) -> SaveResult:
        return self._insert("task", Task(
            user_id=user_id,
            title=task.title,
            description=task.description,
            priority=task.priority.value,
            due_date=task.due_date,
            due_time=task.due_time,
            category=task.category,
            tags=list(task.tags),
            source_recording_id=recording_id,
        ))

    def create_reminder(
        self,
        user_id: str,
        reminder: ExtractedReminder,
        reminder_time: str,
        recording_id: Optional[str],
    ) -> SaveResult:
        return self._insert("reminder", Reminder(
            user_id=user_id,
            title=reminder.title,
            description=reminder.description,
            reminder_time=reminder_time,
            is_recurring=reminder.is_recurring,
            recurrence_pattern=reminder.recurrence_pattern,
            priority=reminder.priority.value,
            type=reminder.type.value,
            tags=list(reminder.tags),
            source_recording_id=recording_id,
        ))

    def create_health_note(
        self,
        user_id: str,
        note: ExtractedHealthNote,
        recording_id: Optional[str],
    ) -> SaveResult:
        return self._insert("health note", HealthNote(
            user_id=user_id,
            content=note.content,
            category=note.category.value,
            tags=list(note.tags),
            source="voice",
            source_recording_id=recording_id,
        ))

    # ── UserContextProvider ─────────────────────────────────────────────

    def get_user_context(self, user_id: str) -> UserContext:
        with self._session() as db:
            user = db.get(User, user_id)
            if user is None:
                return UserContext(user_id=user_id)
            return UserContext(
                user_id=user.id,
                name=user.name or "",
                preferred_name=user.preferred_name or (user.name or "there").split(" ")[0],
                language=user.language or "en",
                timezone=user.timezone,
                profession=user.profession,
                critical_artifacts=list(user.critical_artifacts or []),
                health_interests=list(user.health_interests or []),
            )

    def get_voice_context(self, user_id: str) -> VoiceContext:
        with self._session() as db:
            rows = db.execute(
                select(VoiceRecordingRow.transcription)
                .where(
                    VoiceRecordingRow.user_id == user_id,
                    VoiceRecordingRow.transcription.is_not(None),
                )
                .order_by(VoiceRecordingRow.created_at.desc())
                .limit(VOICE_CONTEXT_LIMIT)
            ).scalars().all()
            return VoiceContext(recent_transcriptions=list(rows))

    # ── ContentStore ────────────────────────────────────────────────────

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
    ) -> SaveResult:
        with self._session() as db:
            user = db.get(User, user_id)
            profession = user.profession if user else None

        return self._insert("generated content", AIDocument(
            user_id=user_id,
            title=title,
            content_type=prediction.content_type,
            content=content.content,
            preview_text=content.preview_text,
            tags=list(content.tags),
            language=content.language,
            status="ready",
            source_voice_note_ids=list(source_voice_note_ids),
            profession_context=profession,
            confidence_score=prediction.confidence,
            generation_type=generation_type,
            model_used=model_used,
        ))

    # ── Notifier ────────────────────────────────────────────────────────

    def notify_content_ready(self, user_id: str, document_id: str, title: str, content_type: str) -> None:
        payload = content_ready_notification(document_id, title, content_type)
        with self._session() as db:
            db.add(Notification(
                user_id=user_id,
                title=payload["title"],
                message=payload["message"],
                type=payload["type"],
                related_document_id=document_id,
                deep_link=payload["deep_link"],
            ))
        logger.info(f"🔔 Notified user {user_id}: {payload['message']}")
