"""
OpenAI transcription adapter (whisper-1 by default).

Audio arrives as an upload, a base64 string or a URL; URLs are fetched with
httpx. Retries and timeouts are configured on the OpenAI client itself, so
this layer makes exactly one transcription request per call.
"""

import base64
import binascii
import logging
from typing import Optional

import httpx
from openai import OpenAI, APIError, APIConnectionError, RateLimitError

from .errors import TranscriptionFailure
from .models import TranscriptionResult
from .normalizer import AudioRef

logger = logging.getLogger(__name__)

# OpenAI audio API has a 25MB file size limit
MAX_FILE_SIZE_MB = 25
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024

_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/wav": "wav",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
}


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type, "webm")


class OpenAITranscriber:
    """Whisper transcription client.

    Args:
        api_key: OpenAI API key.
        model: Transcription model ("whisper-1" or "gpt-4o-transcribe").
        timeout: Request timeout in seconds, also used for audio downloads.
        max_retries: Transport-level retries performed by the OpenAI SDK.
        client: Pre-built OpenAI client (tests).
        http_client: Pre-built httpx client for audio downloads (tests).
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "whisper-1",
        timeout: float = 120.0,
        max_retries: int = 2,
        client: Optional[OpenAI] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        if client is None and not api_key:
            raise ValueError("OpenAI API key is required")
        self._client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
        self._http = http_client
        self._timeout = timeout
        self.model = model
        logger.info(f"OpenAI transcriber initialized | model={model}")

    def _load_audio(self, audio: AudioRef) -> bytes:
        if audio.data is not None:
            return audio.data

        if audio.base64:
            payload = audio.base64
            if payload.startswith("data:") and "," in payload:
                payload = payload.split(",", 1)[1]
            try:
                return base64.b64decode(payload, validate=True)
            except (binascii.Error, ValueError) as e:
                raise TranscriptionFailure("Transcription failed", f"Invalid base64 audio: {e}") from e

        try:
            if self._http is not None:
                response = self._http.get(audio.url, follow_redirects=True)
            else:
                with httpx.Client(timeout=self._timeout) as http:
                    response = http.get(audio.url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Audio download failed: {audio.url} — {e}")
            raise TranscriptionFailure("Transcription failed", f"Could not fetch audio: {e}") from e
        return response.content

    def transcribe(self, audio: AudioRef, mime_type: str) -> TranscriptionResult:
        """Transcribe audio and return text, detected language and duration.

        Raises:
            TranscriptionFailure: fetch/decode failure, upstream error, or empty text.
        """
        data = self._load_audio(audio)
        if not data:
            raise TranscriptionFailure("Transcription failed", "Audio is empty")
        if len(data) > MAX_FILE_SIZE_BYTES:
            size_mb = len(data) / (1024 * 1024)
            raise TranscriptionFailure(
                "Transcription failed",
                f"Audio is {size_mb:.1f}MB — exceeds the {MAX_FILE_SIZE_MB}MB limit",
            )

        filename = f"recording.{extension_for(mime_type)}"
        logger.info(
            f"Transcribing with OpenAI {self.model}: {filename} "
            f"({len(data) / (1024 * 1024):.2f}MB, source={audio.kind})"
        )

        try:
            response = self._client.audio.transcriptions.create(
                file=(filename, data, mime_type),
                model=self.model,
                response_format="verbose_json",
            )
        except RateLimitError as e:
            logger.error(f"OpenAI rate limit exhausted: {e}")
            raise TranscriptionFailure("Transcription failed", str(e)) from e
        except APIConnectionError as e:
            logger.error(f"OpenAI connection error: {e}")
            raise TranscriptionFailure("Transcription failed", str(e)) from e
        except APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise TranscriptionFailure("Transcription failed", str(e)) from e

        text = (getattr(response, "text", None) or "").strip()
        if not text:
            raise TranscriptionFailure("Transcription failed", "OpenAI returned an empty transcript")

        duration = getattr(response, "duration", None)
        result = TranscriptionResult(
            text=text,
            language=getattr(response, "language", None),
            duration_seconds=float(duration) if duration is not None else None,
        )
        logger.info(
            f"Transcription complete | {len(text)} chars | language={result.language} "
            f"| duration={result.duration_seconds}"
        )
        return result
