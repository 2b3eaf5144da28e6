"""
Voice Actions Engine

Voice note → transcript → tasks, reminders, health notes and drafted content.

No FastAPI or database dependency. Storage, user profiles and notifications
are reached through the protocols in ``voice_engine.collaborators``.
"""

__version__ = "1.0.0"

from .core import VoicePipeline, PreviewOutcome, ProcessOutcome
from .config import EngineConfig, load_config
from .errors import (
    VoicePipelineError,
    AuthError,
    InputValidationError,
    MissingInput,
    UnsupportedContentType,
    NotFoundError,
    RecordingNotFound,
    AudioNotReady,
    UpstreamFailure,
    TranscriptionFailure,
)
from .models import (
    RecordingStatus,
    Priority,
    ReminderType,
    HealthCategory,
    ExtractedTask,
    ExtractedReminder,
    ExtractedHealthNote,
    GeneralNote,
    ContentPrediction,
    ExtractedItems,
    UserContext,
    VoiceRecording,
)
from .normalizer import RawVoiceRequest, NormalizedInput, ContentKind, Stage, normalize
from .temporal import TemporalContext, build_temporal_context
