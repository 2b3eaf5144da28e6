"""
Core pipeline orchestrator.

No FastAPI, no ORM. The three stages a voice note goes through:

    preview   audio → transcript → cleaned transcript + summary → status processing
    process   audio or edited transcript → items → saved → status completed
              (+ content generation in transcription mode)
    execute   confirmed transcript → items → saved → status completed → content
    reprocess stored transcripts → items → saved, one recording at a time

Usage:
    pipeline = VoicePipeline.from_config(config, store)
    outcome = pipeline.execute(normalized_input, user_id)
    print(outcome.to_response())
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from .ai import GeminiClient
from .collaborators import RecordingStore, UserContextProvider
from .config import EngineConfig
from .content import ContentGate, GeminiContentGenerator
from .dispatch import BackgroundJob, RetryPolicy, run_all
from .errors import TranscriptionFailure
from .extractor import Extractor
from .models import (
    ExtractedItems,
    GeneratedContentDocument,
    PersistedItems,
    RecordingStatus,
    UserContext,
)
from .normalizer import NormalizedInput
from .persister import ItemPersister
from .preview import PreviewGenerator
from .state import RecordingStateUpdater
from .temporal import build_temporal_context
from .transcription import OpenAITranscriber

logger = logging.getLogger(__name__)


@dataclass
class PreviewOutcome:
    transcription: str
    ai_summary: str
    language: Optional[str] = None
    duration: Optional[float] = None

    def to_response(self) -> dict:
        return {
            "success": True,
            "transcription": self.transcription,
            "aiSummary": self.ai_summary,
            "language": self.language,
            "duration": self.duration,
        }


@dataclass
class ProcessOutcome:
    transcription: str
    items: ExtractedItems
    saved: PersistedItems
    language: Optional[str] = None
    generated: list[GeneratedContentDocument] = field(default_factory=list)
    jobs: list[BackgroundJob] = field(default_factory=list)

    def to_response(self) -> dict:
        return {
            "success": True,
            "transcription": self.transcription,
            "language": self.language,
            "extractedItems": self.items.to_wire(),
            "saved": self.saved.counts,
            "items": {
                "tasks": [t.to_dict() for t in self.saved.tasks],
                "reminders": [r.to_dict() for r in self.saved.reminders],
                "healthNotes": [n.to_dict() for n in self.saved.health_notes],
            },
            "generatedContent": [d.model_dump(by_alias=True) for d in self.generated],
            "contentPredictions": len(self.items.content_predictions),
        }


@dataclass
class ReprocessResult:
    recording_id: str
    outcome: Optional[ProcessOutcome] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is not None

    def to_dict(self) -> dict:
        if self.outcome is None:
            return {"recordingId": self.recording_id, "success": False, "error": self.error}
        saved = self.outcome.saved
        return {
            "recordingId": self.recording_id,
            "success": True,
            "summary": self.outcome.items.summary,
            "saved": saved.counts,
            "items": {
                "tasks": [t.to_dict() for t in saved.tasks],
                "reminders": [r.to_dict() for r in saved.reminders],
                "healthNotes": [n.to_dict() for n in saved.health_notes],
            },
        }


@dataclass
class ReprocessOutcome:
    results: list[ReprocessResult] = field(default_factory=list)

    def _total(self, kind: str) -> int:
        return sum(r.outcome.saved.counts[kind] for r in self.results if r.success)

    def to_response(self) -> dict:
        if not self.results:
            return {
                "success": True,
                "message": "No recordings found with transcriptions",
                "processed": 0,
                "results": [],
            }
        return {
            "success": True,
            "processed": len(self.results),
            "successful": sum(1 for r in self.results if r.success),
            "totalTasksSaved": self._total("tasks"),
            "totalRemindersSaved": self._total("reminders"),
            "results": [r.to_dict() for r in self.results],
        }


class VoicePipeline:
    def __init__(
        self,
        *,
        recordings: RecordingStore,
        contexts: UserContextProvider,
        transcriber,
        previewer: PreviewGenerator,
        extractor: Extractor,
        persister: ItemPersister,
        gate: ContentGate,
        background_content: bool = False,
        default_timezone: str = "UTC",
        clock: Callable[[], datetime] = None,
    ):
        self._recordings = recordings
        self._contexts = contexts
        self._transcriber = transcriber
        self._previewer = previewer
        self._extractor = extractor
        self._persister = persister
        self._gate = gate
        self._state = RecordingStateUpdater(recordings)
        self._background_content = background_content
        self._default_timezone = default_timezone
        self._clock = clock

    @classmethod
    def from_config(cls, config: EngineConfig, store) -> "VoicePipeline":
        """Build the production pipeline.

        ``store`` must implement every collaborator protocol
        (RecordingStore, ItemStore, UserContextProvider, ContentStore, Notifier).
        """
        config.validate()
        gemini = GeminiClient(config.gemini_api_keys, config.gemini_model)
        transcriber = OpenAITranscriber(
            config.openai_api_key,
            model=config.transcription_model,
            timeout=config.openai_timeout_seconds,
            max_retries=config.openai_max_retries,
        )
        gate = ContentGate(
            GeminiContentGenerator(gemini.with_model(config.content_model)),
            contexts=store,
            store=store,
            notifier=store,
            threshold=config.content_confidence_threshold,
            limit=config.content_max_predictions,
            explicit_confidence=config.content_explicit_confidence,
            notify_policy=RetryPolicy(config.notify_max_attempts, config.notify_backoff_seconds),
        )
        return cls(
            recordings=store,
            contexts=store,
            transcriber=transcriber,
            previewer=PreviewGenerator(gemini.with_model(config.preview_model)),
            extractor=Extractor(gemini),
            persister=ItemPersister(store),
            gate=gate,
            background_content=config.background_content,
            default_timezone=config.default_timezone,
        )

    # ── helpers ─────────────────────────────────────────────────────────

    def _user_context(self, user_id: str) -> UserContext:
        try:
            return self._contexts.get_user_context(user_id)
        except Exception as e:
            logger.warning(f"Could not load user context for {user_id}, using defaults: {e}")
            return UserContext(user_id=user_id)

    def _transcribe(self, normalized: NormalizedInput, user_id: str):
        try:
            return self._transcriber.transcribe(normalized.audio, normalized.mime_type)
        except TranscriptionFailure:
            logger.error(f"Transcription failed | user={user_id} recording={normalized.recording_id}")
            self._state.finalize(normalized.recording_id, user_id, RecordingStatus.FAILED)
            raise

    def _content_job(self, items: ExtractedItems, user_id: str, recording_id: Optional[str]) -> BackgroundJob:
        def _generate():
            result = self._gate.run(items.content_predictions, user_id, recording_id)
            run_all(result.jobs)

        return BackgroundJob(
            name=f"generate-content:{recording_id or user_id}",
            action=_generate,
            policy=RetryPolicy(max_attempts=1),
            context={"user_id": user_id, "recording_id": recording_id},
        )

    def _extract_and_save(
        self,
        transcript: str,
        user_id: str,
        recording_id: Optional[str],
        ai_summary: Optional[str],
        language: Optional[str],
        generate_content: bool,
        first_step: int,
        total_steps: int,
    ) -> ProcessOutcome:
        step = first_step

        logger.info(f"Step {step}/{total_steps} — Extracting items")
        user = self._user_context(user_id)
        now = self._clock() if self._clock else None
        temporal = build_temporal_context(user.timezone, user.language, now=now, default_timezone=self._default_timezone)
        logger.info(f"  Today: {temporal.current_datetime} | Language: {temporal.language_name}")
        items = self._extractor.extract(transcript, temporal, user, ai_summary=ai_summary)

        step += 1
        logger.info(f"Step {step}/{total_steps} — Saving items")
        saved = self._persister.persist(items, user_id, recording_id, now=temporal.now)

        step += 1
        logger.info(f"Step {step}/{total_steps} — Finalizing recording")
        self._state.finalize(
            recording_id, user_id, RecordingStatus.COMPLETED,
            transcription=transcript, ai_summary=items.summary,
        )

        outcome = ProcessOutcome(
            transcription=transcript,
            items=items,
            saved=saved,
            language=language or temporal.language_code,
        )

        if generate_content and items.content_predictions:
            step += 1
            if self._background_content:
                logger.info(f"Step {step}/{total_steps} — Queueing content generation")
                outcome.jobs.append(self._content_job(items, user_id, recording_id))
            else:
                logger.info(f"Step {step}/{total_steps} — Generating content")
                gate_result = self._gate.run(items.content_predictions, user_id, recording_id)
                outcome.generated = gate_result.documents
                outcome.jobs.extend(gate_result.jobs)

        return outcome

    # ── stages ──────────────────────────────────────────────────────────

    def preview(self, normalized: NormalizedInput, user_id: str) -> PreviewOutcome:
        logger.info(f"{'=' * 60}")
        logger.info(f"Preview | user={user_id} recording={normalized.recording_id}")
        logger.info(f"{'=' * 60}")

        logger.info("Step 1/3 — Transcribing audio")
        transcription = self._transcribe(normalized, user_id)

        logger.info("Step 2/3 — Generating preview")
        preview = self._previewer.generate(transcription.text, self._user_context(user_id))

        logger.info("Step 3/3 — Storing preview")
        self._state.mark_processing(
            normalized.recording_id, user_id, preview.cleaned_transcription, preview.ai_summary
        )

        logger.info(f"✅ Preview done | recording={normalized.recording_id}")
        return PreviewOutcome(
            transcription=preview.cleaned_transcription,
            ai_summary=preview.ai_summary,
            language=transcription.language,
            duration=transcription.duration_seconds,
        )

    def process(self, normalized: NormalizedInput, user_id: str) -> ProcessOutcome:
        logger.info(f"{'=' * 60}")
        mode = "transcription" if normalized.is_transcription_mode else "audio"
        logger.info(f"Process ({mode} mode) | user={user_id} recording={normalized.recording_id}")
        logger.info(f"{'=' * 60}")

        if normalized.is_transcription_mode:
            outcome = self._extract_and_save(
                normalized.transcript_text, user_id, normalized.recording_id,
                ai_summary=normalized.ai_summary, language=None,
                generate_content=True, first_step=1, total_steps=4,
            )
        else:
            logger.info("Step 1/4 — Transcribing audio")
            transcription = self._transcribe(normalized, user_id)
            outcome = self._extract_and_save(
                transcription.text, user_id, normalized.recording_id,
                ai_summary=None, language=transcription.language,
                generate_content=False, first_step=2, total_steps=4,
            )

        self._log_done(outcome, normalized.recording_id)
        return outcome

    def execute(self, normalized: NormalizedInput, user_id: str) -> ProcessOutcome:
        logger.info(f"{'=' * 60}")
        logger.info(f"Execute | user={user_id} recording={normalized.recording_id}")
        logger.info(f"{'=' * 60}")

        outcome = self._extract_and_save(
            normalized.transcript_text, user_id, normalized.recording_id,
            ai_summary=normalized.ai_summary, language=None,
            generate_content=True, first_step=1, total_steps=4,
        )
        self._log_done(outcome, normalized.recording_id)
        return outcome

    def reprocess(self, user_id: str, recording_id: Optional[str] = None, limit: int = 5) -> ReprocessOutcome:
        """Re-run extraction over stored transcripts.

        Each recording is handled on its own; one failure is recorded in its
        result and the rest still run. No content is generated.
        """
        logger.info(f"{'=' * 60}")
        logger.info(f"Reprocess | user={user_id} recording={recording_id or '*'} limit={limit}")
        logger.info(f"{'=' * 60}")

        recordings = self._recordings.list_transcribed_recordings(user_id, recording_id=recording_id, limit=limit)
        logger.info(f"Found {len(recordings)} recording(s) with transcriptions")

        outcome = ReprocessOutcome()
        for recording in recordings:
            logger.info(f"Reprocessing recording={recording.id}")
            try:
                result = self._extract_and_save(
                    recording.transcription, user_id, recording.id,
                    ai_summary=None, language=None,
                    generate_content=False, first_step=1, total_steps=3,
                )
            except Exception as e:
                logger.error(f"Reprocess failed | recording={recording.id}: {e}")
                outcome.results.append(ReprocessResult(recording.id, error=str(e)))
                continue
            self._log_done(result, recording.id)
            outcome.results.append(ReprocessResult(recording.id, outcome=result))

        logger.info(
            f"Reprocess done | {sum(1 for r in outcome.results if r.success)}/{len(outcome.results)} succeeded"
        )
        return outcome

    @staticmethod
    def _log_done(outcome: ProcessOutcome, recording_id: Optional[str]):
        counts = outcome.saved.counts
        logger.info(f"{'=' * 60}")
        logger.info(f"✅ Done | recording={recording_id}")
        logger.info(
            f"   Saved: {counts['tasks']} task(s), {counts['reminders']} reminder(s), "
            f"{counts['healthNotes']} health note(s)"
        )
        if outcome.generated:
            logger.info(f"   Content: {len(outcome.generated)} document(s)")
        if outcome.jobs:
            logger.info(f"   Background jobs: {len(outcome.jobs)}")
        logger.info(f"{'=' * 60}")
