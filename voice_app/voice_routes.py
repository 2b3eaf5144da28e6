"""
Voice API routes: preview, process, execute, update, reprocess, and recording status.

Routes decode the transport (multipart or JSON) into a RawVoiceRequest and
hand everything else to the engine. The pipeline is blocking, so it runs in
Starlette's threadpool; background jobs run after the response is sent.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from voice_engine.core import ProcessOutcome, VoicePipeline
from voice_engine.errors import InputValidationError, MissingInput, RecordingNotFound, VoicePipelineError
from voice_engine.normalizer import ContentKind, RawVoiceRequest, Stage, normalize

from .auth import get_current_user_id
from .dependencies import get_pipeline, get_store
from .store import SqlVoiceStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/voice", tags=["voice"])

INTERNAL_ERROR = {"error": "Internal server error"}
DEFAULT_REPROCESS_LIMIT = 5


def _str_or_none(value) -> Optional[str]:
    if value is None or isinstance(value, UploadFile):
        return None
    return str(value)


async def _read_json(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InputValidationError("Invalid request body")
    if not isinstance(body, dict):
        raise InputValidationError("Invalid request body")
    return body


async def read_voice_request(request: Request) -> RawVoiceRequest:
    """Decode multipart or JSON bodies; anything else is left to the normalizer to reject."""
    kind = ContentKind.from_header(request.headers.get("content-type"))

    if kind == ContentKind.MULTIPART:
        form = await request.form()
        audio = form.get("audio")
        has_file = isinstance(audio, UploadFile)
        return RawVoiceRequest(
            content_kind=kind,
            has_audio_file=has_file,
            audio_bytes=await audio.read() if has_file else None,
            audio_content_type=audio.content_type if has_file else None,
            source_recording_id=_str_or_none(form.get("sourceRecordingId")),
            recording_id=_str_or_none(form.get("recordingId")),
        )

    if kind == ContentKind.JSON:
        body = await _read_json(request)
        return RawVoiceRequest(
            content_kind=kind,
            audio_url=_str_or_none(body.get("audioUrl")),
            audio_base64=_str_or_none(body.get("audioBase64")),
            mime_type=_str_or_none(body.get("mimeType")),
            source_recording_id=_str_or_none(body.get("sourceRecordingId")),
            recording_id=_str_or_none(body.get("recordingId")),
            transcription=_str_or_none(body.get("transcription")),
            ai_summary=_str_or_none(body.get("aiSummary")),
        )

    return RawVoiceRequest(content_kind=kind)


def _schedule(outcome: ProcessOutcome, background_tasks: BackgroundTasks):
    for job in outcome.jobs:
        background_tasks.add_task(job.run)


async def _run_stage(
    stage: Stage,
    request: Request,
    user_id: str,
    pipeline: VoicePipeline,
    store: SqlVoiceStore,
    background_tasks: Optional[BackgroundTasks] = None,
):
    raw = await read_voice_request(request)
    recording_id = raw.any_recording_id
    try:
        normalized = await run_in_threadpool(normalize, raw, user_id, stage, store.get_recording)
        run = getattr(pipeline, stage.value)
        outcome = await run_in_threadpool(run, normalized, user_id)
    except VoicePipelineError:
        raise
    except Exception:
        logger.error(
            f"Unexpected error in {stage.value} | user={user_id} recording={recording_id}",
            exc_info=True,
        )
        return JSONResponse(status_code=500, content=INTERNAL_ERROR)

    if background_tasks is not None and isinstance(outcome, ProcessOutcome):
        _schedule(outcome, background_tasks)
    return outcome.to_response()


@router.post("/preview")
async def preview_voice(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    pipeline: VoicePipeline = Depends(get_pipeline),
    store: SqlVoiceStore = Depends(get_store),
):
    """Transcribe, clean and summarize audio for review. Saves no items."""
    return await _run_stage(Stage.PREVIEW, request, user_id, pipeline, store)


@router.post("/process")
async def process_voice(
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    pipeline: VoicePipeline = Depends(get_pipeline),
    store: SqlVoiceStore = Depends(get_store),
):
    """Audio mode (transcribe + extract) or transcription mode (extract from edited text)."""
    return await _run_stage(Stage.PROCESS, request, user_id, pipeline, store, background_tasks)


@router.post("/execute")
async def execute_voice(
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    pipeline: VoicePipeline = Depends(get_pipeline),
    store: SqlVoiceStore = Depends(get_store),
):
    """Extract and save items from a confirmed transcript, then draft content."""
    return await _run_stage(Stage.EXECUTE, request, user_id, pipeline, store, background_tasks)


@router.post("/update")
async def update_voice(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    store: SqlVoiceStore = Depends(get_store),
):
    """Edit the transcription and/or summary of an owned recording. Status is untouched."""
    body = await _read_json(request)
    recording_id = _str_or_none(body.get("recordingId"))
    transcription = _str_or_none(body.get("transcription"))
    ai_summary = _str_or_none(body.get("aiSummary"))

    if not recording_id:
        raise MissingInput("recordingId is required")
    if transcription is None and ai_summary is None:
        raise MissingInput("Either transcription or aiSummary must be provided")

    updated = await run_in_threadpool(
        store.update_recording,
        recording_id,
        user_id,
        transcription=transcription,
        ai_summary=ai_summary,
    )
    if not updated:
        raise RecordingNotFound()

    logger.info(f"Recording {recording_id} edited by user {user_id}")
    return {"success": True, "message": "Recording updated successfully"}


@router.post("/reprocess")
async def reprocess_voice(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    pipeline: VoicePipeline = Depends(get_pipeline),
):
    """Re-run extraction over stored transcripts (one recording, or the latest ``limit``)."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = {}
    if not isinstance(body, dict):
        body = {}

    recording_id = _str_or_none(body.get("recordingId"))
    limit = body.get("limit", DEFAULT_REPROCESS_LIMIT)
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise InputValidationError("limit must be a positive integer")

    try:
        outcome = await run_in_threadpool(pipeline.reprocess, user_id, recording_id, limit)
    except Exception:
        logger.error(f"Unexpected error in reprocess | user={user_id} recording={recording_id}", exc_info=True)
        return JSONResponse(status_code=500, content=INTERNAL_ERROR)
    return outcome.to_response()


@router.get("/recordings/{recording_id}")
async def get_voice_recording(
    recording_id: str,
    user_id: str = Depends(get_current_user_id),
    store: SqlVoiceStore = Depends(get_store),
):
    recording = await run_in_threadpool(store.get_recording, recording_id, user_id)
    if recording is None:
        raise RecordingNotFound()
    return {
        "id": recording.id,
        "status": recording.status.value,
        "audioUrl": recording.audio_url,
        "transcription": recording.transcription,
        "aiSummary": recording.ai_summary,
        "durationSeconds": recording.duration_seconds,
        "createdAt": recording.created_at.isoformat() if recording.created_at else None,
    }
