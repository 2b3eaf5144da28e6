"""
Error taxonomy for the voice pipeline.

Every error that can short-circuit a pipeline run carries the HTTP status
the service layer answers with. Partial persistence and content generation
failures are never raised; they only show up in logs and in lower counts.
"""


class VoicePipelineError(Exception):
    """Base class for errors surfaced to the caller."""

    status_code = 500

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class AuthError(VoicePipelineError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


# ============================================================================
# 400: caller must resend with corrected input
# ============================================================================

class InputValidationError(VoicePipelineError):
    status_code = 400


class MissingInput(InputValidationError):
    pass


class UnsupportedContentType(InputValidationError):
    def __init__(self, message: str = "Unsupported content type"):
        super().__init__(message)


# ============================================================================
# 404: recording missing, not owned, or audio not uploaded yet
# ============================================================================

class NotFoundError(VoicePipelineError):
    status_code = 404


class RecordingNotFound(NotFoundError):
    def __init__(self, message: str = "Recording not found or access denied", details: str | None = None):
        super().__init__(message, details)


class AudioNotReady(NotFoundError):
    def __init__(self, status: str | None = None):
        super().__init__(
            "Audio not yet uploaded",
            f"Recording status: {status or 'unknown'}. Audio URL is not available yet. "
            "Please wait a moment and try again.",
        )


# ============================================================================
# 500: upstream service failures, fatal to the run
# ============================================================================

class UpstreamFailure(VoicePipelineError):
    status_code = 500


class TranscriptionFailure(UpstreamFailure):
    def __init__(self, message: str = "Transcription failed", details: str | None = None):
        super().__init__(message, details)
