"""
Recording status state machine.

This is the only place that writes ``voice_recordings.status``. Every write
is conditional on the prior status, so two overlapping runs on the same
recording cannot move it backwards:

    mark_processing        pending | processing | failed             → processing
    finalize(COMPLETED)    pending | processing | completed | failed → completed
    finalize(FAILED)       pending | processing                      → failed

A write that matches no row is a stale transition: it is logged and ignored.
Status writes never change the outcome returned to the caller.
"""

import logging
from typing import Optional

from .collaborators import RecordingStore
from .models import RecordingStatus

logger = logging.getLogger(__name__)

PROCESSING_FROM = (RecordingStatus.PENDING, RecordingStatus.PROCESSING, RecordingStatus.FAILED)
COMPLETED_FROM = (
    RecordingStatus.PENDING, RecordingStatus.PROCESSING, RecordingStatus.COMPLETED, RecordingStatus.FAILED,
)
FAILED_FROM = (RecordingStatus.PENDING, RecordingStatus.PROCESSING)


class RecordingStateUpdater:
    def __init__(self, store: RecordingStore):
        self._store = store

    def _write(self, recording_id: str, user_id: str, target: RecordingStatus, expected, **fields) -> bool:
        try:
            updated = self._store.update_recording(
                recording_id,
                user_id,
                status=target,
                expected_statuses=expected,
                **fields,
            )
        except Exception as e:
            logger.error(
                f"Failed to set recording {recording_id} to {target.value}: {e}", exc_info=True
            )
            return False

        if not updated:
            logger.warning(
                f"Stale transition ignored: recording {recording_id} not in "
                f"{[s.value for s in expected]} (target {target.value})"
            )
        else:
            logger.info(f"Recording {recording_id} → {target.value}")
        return bool(updated)

    def mark_processing(self, recording_id: Optional[str], user_id: str, transcription: str, ai_summary: str) -> bool:
        """Store the preview and hold the recording for user confirmation."""
        if not recording_id:
            return False
        return self._write(
            recording_id, user_id, RecordingStatus.PROCESSING, PROCESSING_FROM,
            transcription=transcription, ai_summary=ai_summary,
        )

    def finalize(
        self,
        recording_id: Optional[str],
        user_id: str,
        status: RecordingStatus,
        transcription: Optional[str] = None,
        ai_summary: Optional[str] = None,
    ) -> bool:
        if not recording_id:
            return False
        if status == RecordingStatus.COMPLETED:
            return self._write(
                recording_id, user_id, RecordingStatus.COMPLETED, COMPLETED_FROM,
                transcription=transcription, ai_summary=ai_summary,
            )
        if status == RecordingStatus.FAILED:
            return self._write(recording_id, user_id, RecordingStatus.FAILED, FAILED_FROM)
        raise ValueError(f"finalize() only accepts completed or failed, got {status.value}")
