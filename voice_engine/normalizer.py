"""
Input normalization for the three pipeline stages.

Turns an already-decoded HTTP request (multipart upload or JSON body) into
exactly one of: an audio reference, or transcript text. The only side effect
is the recording lookup used to resolve a stored audio URL or to check
ownership.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .errors import AudioNotReady, MissingInput, RecordingNotFound, UnsupportedContentType
from .models import VoiceRecording

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "audio/webm"

# (substring in declared type, canonical mime type); first match wins
_MIME_RULES = [
    ("webm", "audio/webm"),
    ("mpeg", "audio/mpeg"),
    ("mp3", "audio/mpeg"),
    ("mp4", "audio/mp4"),
    ("m4a", "audio/mp4"),
    ("wav", "audio/wav"),
    ("ogg", "audio/ogg"),
    ("flac", "audio/flac"),
]

RecordingLookup = Callable[[str, str], Optional[VoiceRecording]]


class Stage(str, Enum):
    PREVIEW = "preview"
    PROCESS = "process"
    EXECUTE = "execute"


class ContentKind(str, Enum):
    MULTIPART = "multipart"
    JSON = "json"
    OTHER = "other"

    @classmethod
    def from_header(cls, content_type: Optional[str]) -> "ContentKind":
        value = (content_type or "").lower()
        if "multipart/form-data" in value:
            return cls.MULTIPART
        if "application/json" in value:
            return cls.JSON
        return cls.OTHER


_MISSING_MESSAGES = {
    Stage.PREVIEW: "Either audioUrl, audioBase64, or sourceRecordingId is required",
    Stage.PROCESS: (
        "Either transcription (for transcription mode) or audioUrl/audioBase64 "
        "(for audio mode) is required"
    ),
    Stage.EXECUTE: "recordingId and transcription are required",
}


@dataclass
class RawVoiceRequest:
    """A request body after transport decoding, before any validation."""
    content_kind: ContentKind
    audio_bytes: Optional[bytes] = None
    audio_content_type: Optional[str] = None
    has_audio_file: bool = False
    audio_url: Optional[str] = None
    audio_base64: Optional[str] = None
    mime_type: Optional[str] = None
    source_recording_id: Optional[str] = None
    recording_id: Optional[str] = None
    transcription: Optional[str] = None
    ai_summary: Optional[str] = None

    @property
    def any_recording_id(self) -> Optional[str]:
        return _clean(self.recording_id) or _clean(self.source_recording_id)


@dataclass
class AudioRef:
    """Where the audio lives. Exactly one field is set."""
    url: Optional[str] = None
    base64: Optional[str] = None
    data: Optional[bytes] = None

    @property
    def kind(self) -> str:
        if self.data is not None:
            return "upload"
        return "url" if self.url else "base64"


@dataclass
class NormalizedInput:
    audio: Optional[AudioRef] = None
    mime_type: str = DEFAULT_MIME_TYPE
    transcript_text: Optional[str] = None
    recording_id: Optional[str] = None
    ai_summary: Optional[str] = None

    @property
    def is_transcription_mode(self) -> bool:
        return self.transcript_text is not None


def infer_mime_type(declared: Optional[str]) -> str:
    """Map a declared content type onto one of the supported audio types."""
    value = (declared or "").lower()
    for marker, mime in _MIME_RULES:
        if marker in value:
            return mime
    return DEFAULT_MIME_TYPE


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _require_owned(lookup: RecordingLookup, recording_id: str, user_id: str, message: str) -> VoiceRecording:
    recording = lookup(recording_id, user_id)
    if recording is None:
        logger.warning(f"Recording not found | recording={recording_id} user={user_id}")
        raise RecordingNotFound(message)
    return recording


def normalize(
    request: RawVoiceRequest,
    user_id: str,
    stage: Stage | str,
    lookup: RecordingLookup,
) -> NormalizedInput:
    """Resolve a request into audio or transcript input for ``stage``.

    Raises:
        UnsupportedContentType: body is neither multipart nor JSON.
        MissingInput: nothing usable was supplied (stage-specific message).
        RecordingNotFound: a referenced recording is missing or not owned.
        AudioNotReady: the referenced recording has no audio URL yet.
    """
    stage = Stage(stage)

    if request.content_kind == ContentKind.OTHER:
        raise UnsupportedContentType()

    recording_id = request.any_recording_id
    ai_summary = request.ai_summary if _clean(request.ai_summary) else None
    transcript = request.transcription if _clean(request.transcription) else None

    if stage == Stage.EXECUTE:
        if not recording_id or transcript is None:
            raise MissingInput(_MISSING_MESSAGES[Stage.EXECUTE])
        _require_owned(lookup, recording_id, user_id, "Recording not found or access denied")
        return NormalizedInput(transcript_text=transcript, recording_id=recording_id, ai_summary=ai_summary)

    if request.content_kind == ContentKind.MULTIPART:
        if not request.has_audio_file or request.audio_bytes is None:
            raise MissingInput("Audio file is required")
        return NormalizedInput(
            audio=AudioRef(data=request.audio_bytes),
            mime_type=infer_mime_type(request.audio_content_type),
            recording_id=recording_id,
        )

    # JSON body
    if stage == Stage.PROCESS and transcript is not None:
        if recording_id:
            _require_owned(lookup, recording_id, user_id, "Recording not found or access denied")
        return NormalizedInput(transcript_text=transcript, recording_id=recording_id, ai_summary=ai_summary)

    mime_type = infer_mime_type(request.mime_type)
    audio_url = _clean(request.audio_url)
    audio_base64 = _clean(request.audio_base64)

    if audio_url:
        return NormalizedInput(audio=AudioRef(url=audio_url), mime_type=mime_type, recording_id=recording_id)
    if audio_base64:
        return NormalizedInput(audio=AudioRef(base64=audio_base64), mime_type=mime_type, recording_id=recording_id)

    if recording_id:
        recording = _require_owned(lookup, recording_id, user_id, "Recording not found or access denied")
        if not recording.has_audio:
            status = recording.status.value if recording.status else None
            logger.info(f"Audio not yet uploaded | recording={recording_id} status={status}")
            raise AudioNotReady(status)
        return NormalizedInput(
            audio=AudioRef(url=recording.audio_url.strip()),
            mime_type=mime_type,
            recording_id=recording_id,
        )

    raise MissingInput(_MISSING_MESSAGES[stage])
