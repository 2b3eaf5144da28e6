"""
Data models for the voice-capture-to-action pipeline.

Wire-facing shapes (the extraction tool contract, generated documents) are
pydantic models with camelCase aliases; everything else is a plain dataclass.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from .temporal import normalize_clock_time

logger = logging.getLogger(__name__)


class RecordingStatus(str, Enum):
    """Lifecycle status of a voice recording."""
    PENDING = "pending"         # Row created, audio may still be uploading
    PROCESSING = "processing"   # Preview written, waiting for user confirmation
    COMPLETED = "completed"     # Items extracted and saved
    FAILED = "failed"           # Transcription or input failure


class Priority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReminderType(str, Enum):
    TASK = "task"         # Has a future due date
    TODO = "todo"         # General actionable item
    REMINDER = "reminder" # Time-sensitive


class HealthCategory(str, Enum):
    SYMPTOM = "symptom"
    MEDICATION = "medication"
    MOOD = "mood"
    EXERCISE = "exercise"
    DIET = "diet"
    SLEEP = "sleep"
    OTHER = "other"


def _coerce_enum(enum_cls, value, default):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    return default


def _coerce_tags(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [str(tag) for tag in value if tag is not None and str(tag).strip()]


# =============================================================================
# EXTRACTION CONTRACT (arguments of the output-extracted-items tool)
# =============================================================================

class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ExtractedTask(_WireModel):
    """A task extracted from a voice note."""
    id: Optional[str] = None
    title: str
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    due_date: Optional[str] = None
    due_time: Optional[str] = None   # HH:MM, 24h; unset when no clock time was said
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        return _coerce_enum(Priority, v, Priority.MEDIUM)

    @field_validator("due_time", mode="before")
    @classmethod
    def _due_time(cls, v):
        return normalize_clock_time(v) if v else None

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return _coerce_tags(v)


class ExtractedReminder(_WireModel):
    id: Optional[str] = None
    title: str
    description: Optional[str] = None
    reminder_time: Optional[str] = None
    is_recurring: bool = False
    recurrence_pattern: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    type: ReminderType = ReminderType.REMINDER
    tags: list[str] = Field(default_factory=list)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        return _coerce_enum(Priority, v, Priority.MEDIUM)

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v):
        return _coerce_enum(ReminderType, v, ReminderType.REMINDER)

    @field_validator("is_recurring", mode="before")
    @classmethod
    def _recurring(cls, v):
        return bool(v) if v is not None else False

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return _coerce_tags(v)


class ExtractedHealthNote(_WireModel):
    id: Optional[str] = None
    content: str
    category: HealthCategory = HealthCategory.OTHER
    tags: list[str] = Field(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v):
        return _coerce_enum(HealthCategory, v, HealthCategory.OTHER)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return _coerce_tags(v)


class GeneralNote(_WireModel):
    content: str
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return _coerce_tags(v)


class ContentPrediction(_WireModel):
    """A detected opportunity to generate long-form content."""
    content_type: str
    description: str
    target_platform: Optional[str] = None
    confidence: float = 0.0
    suggested_title: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        return min(max(value, 0.0), 1.0)


_ITEM_MODELS = {
    "tasks": ExtractedTask,
    "reminders": ExtractedReminder,
    "health_notes": ExtractedHealthNote,
    "general_notes": GeneralNote,
    "content_predictions": ContentPrediction,
}



class ExtractedItems(_WireModel):
    """Everything the extractor pulled out of one transcript."""
    tasks: list[ExtractedTask] = Field(default_factory=list)
    reminders: list[ExtractedReminder] = Field(default_factory=list)
    health_notes: list[ExtractedHealthNote] = Field(default_factory=list)
    general_notes: list[GeneralNote] = Field(default_factory=list)
    content_predictions: list[ContentPrediction] = Field(default_factory=list)
    summary: str = ""

    @field_validator(
        "tasks", "reminders", "health_notes", "general_notes", "content_predictions",
        mode="before",
    )
    @classmethod
    def _lists(cls, v, info: ValidationInfo):
        if v is None:
            return []
        if not isinstance(v, list):
            logger.warning(f"Dropping {info.field_name}: expected a list, got {type(v).__name__}")
            return []
        item_cls = _ITEM_MODELS[info.field_name]
        kept = []
        for index, entry in enumerate(v):
            if isinstance(entry, item_cls):
                kept.append(entry)
                continue
            try:
                kept.append(item_cls.model_validate(entry))
            except ValidationError as e:
                logger.warning(
                    f"Dropping invalid {info.field_name}[{index}]: {e.error_count()} error(s) "
                    f"({e.errors()[0]['msg']})"
                )
        return kept

    @field_validator("summary", mode="before")
    @classmethod
    def _summary(cls, v):
        return "" if v is None else str(v)

    @classmethod
    def empty(cls, summary: str) -> "ExtractedItems":
        return cls(summary=summary)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class GeneratedContentDocument(_WireModel):
    document_id: str
    title: str
    content_type: str
    preview_text: str
    status: str = "ready"


# =============================================================================
# PIPELINE VALUES
# =============================================================================

@dataclass
class UserContext:
    """Profile facts used to personalize prompts."""
    user_id: str
    name: str = ""
    preferred_name: str = "there"
    language: str = "en"
    timezone: Optional[str] = None
    profession: Optional[str] = None
    critical_artifacts: list[str] = field(default_factory=list)
    health_interests: list[str] = field(default_factory=list)


@dataclass
class VoiceContext:
    """Recent voice notes, combined into a single source text."""
    recent_transcriptions: list[str] = field(default_factory=list)

    @property
    def combined_context(self) -> str:
        return "\n\n---\n\n".join(t for t in self.recent_transcriptions if t)


@dataclass
class VoiceRecording:
    """Snapshot of a voice_recordings row."""
    id: str
    user_id: str
    audio_url: Optional[str] = None
    transcription: Optional[str] = None
    ai_summary: Optional[str] = None
    status: RecordingStatus = RecordingStatus.PENDING
    duration_seconds: float = 0.0
    created_at: Optional[datetime] = None

    @property
    def has_audio(self) -> bool:
        return isinstance(self.audio_url, str) and bool(self.audio_url.strip())


@dataclass
class TranscriptionResult:
    text: str
    language: Optional[str] = None
    duration_seconds: Optional[float] = None


@dataclass
class PreviewResult:
    cleaned_transcription: str
    ai_summary: str


@dataclass
class SaveResult:
    """Outcome of a single create operation against storage."""
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class GeneratedContent:
    """Output of the long-form content generator."""
    title: str
    content: str
    preview_text: str = ""
    tags: list[str] = field(default_factory=list)
    language: Optional[str] = None


@dataclass
class SavedItem:
    """Minimal record of something that was persisted."""
    id: Optional[str]
    title: Optional[str] = None
    content: Optional[str] = None
    priority: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"id": self.id}
        for key in ("title", "content", "priority", "type", "category"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class PersistedItems:
    tasks: list[SavedItem] = field(default_factory=list)
    reminders: list[SavedItem] = field(default_factory=list)
    health_notes: list[SavedItem] = field(default_factory=list)
    failures: int = 0

    @property
    def counts(self) -> dict[str, int]:
        return {
            "tasks": len(self.tasks),
            "reminders": len(self.reminders),
            "healthNotes": len(self.health_notes),
        }
