"""
Temporal and language context for a single pipeline run.

The extractor never lets the model compute relative dates on its own:
"today", "tomorrow" and "next week" are resolved here, once, in the user's
timezone, and handed to the prompt builder as literals.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ar": "Arabic",
    "zh": "Chinese",
    "ja": "Japanese",
    "pt": "Portuguese",
    "it": "Italian",
    "ru": "Russian",
    "ko": "Korean",
    "hi": "Hindi",
    "tr": "Turkish",
    "nl": "Dutch",
    "pl": "Polish",
    "sv": "Swedish",
}

DEFAULT_LANGUAGE = "en"
DEFAULT_TIMEZONE = "UTC"


def resolve_language(code: Optional[str]) -> tuple[str, str]:
    """Return (language_code, language_name), falling back to English."""
    normalized = (code or "").strip().lower().split("-")[0]
    if normalized in LANGUAGE_NAMES:
        return normalized, LANGUAGE_NAMES[normalized]
    return DEFAULT_LANGUAGE, LANGUAGE_NAMES[DEFAULT_LANGUAGE]


def resolve_timezone(name: Optional[str], fallback: str = DEFAULT_TIMEZONE) -> ZoneInfo:
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone '{name}', falling back to {fallback}")
    return ZoneInfo(fallback)


@dataclass(frozen=True)
class TemporalContext:
    """Current date/time facts in the user's timezone, built once per run."""
    timezone: str
    now: datetime
    current_date: str       # YYYY-MM-DD
    current_time: str       # HH:MM (24h)
    tomorrow_date: str
    next_week_date: str
    language_code: str
    language_name: str

    @property
    def current_datetime(self) -> str:
        return f"{self.current_date} {self.current_time} ({self.timezone})"


def build_temporal_context(
    timezone: Optional[str],
    language: Optional[str],
    now: Optional[datetime] = None,
    default_timezone: str = DEFAULT_TIMEZONE,
) -> TemporalContext:
    """Compute "now", "tomorrow" and "next week" in the user's timezone.

    Args:
        timezone: IANA timezone name from the user profile (may be empty).
        language: ISO 639-1 display language code from the user profile.
        now: Reference instant; defaults to the current time. Naive values
             are taken to be in the user's timezone.
        default_timezone: Used when the profile timezone is missing or invalid.
    """
    tz = resolve_timezone(timezone, default_timezone)
    if now is None:
        local_now = datetime.now(tz)
    elif now.tzinfo is None:
        local_now = now.replace(tzinfo=tz)
    else:
        local_now = now.astimezone(tz)

    language_code, language_name = resolve_language(language)

    return TemporalContext(
        timezone=tz.key,
        now=local_now,
        current_date=local_now.strftime("%Y-%m-%d"),
        current_time=local_now.strftime("%H:%M"),
        tomorrow_date=(local_now + timedelta(days=1)).strftime("%Y-%m-%d"),
        next_week_date=(local_now + timedelta(days=7)).strftime("%Y-%m-%d"),
        language_code=language_code,
        language_name=language_name,
    )


# =============================================================================
# CLOCK TIME / SMART TIME PARSING
# =============================================================================

_CLOCK_PATTERN = re.compile(
    r"^\s*(\d{1,2})(?:\s*[:h.]\s*(\d{2}))?(?::\d{2})?\s*([ap])?\.?\s*(?:m\.?)?\s*$",
    re.IGNORECASE,
)
_IN_MINUTES = re.compile(r"in\s+(\d+)\s*min(?:ute)?s?", re.IGNORECASE)
_IN_HOURS = re.compile(r"in\s+(\d+)\s*(?:h|hrs?|hours?)\b", re.IGNORECASE)
_TIME_OF_DAY = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)?", re.IGNORECASE)


def normalize_clock_time(value: Optional[str]) -> Optional[str]:
    """Normalize a clock time to 24-hour HH:MM.

    Accepts "15:00", "15:00:00", "3pm", "3:30 PM", "9h30". A bare number
    without minutes or an am/pm marker is ambiguous and returns None.
    """
    if value is None:
        return None
    match = _CLOCK_PATTERN.match(str(value))
    if not match:
        return None

    hours = int(match.group(1))
    minutes = int(match.group(2)) if match.group(2) else 0
    meridiem = (match.group(3) or "").lower()

    if not match.group(2) and not meridiem:
        return None
    if meridiem:
        if not 1 <= hours <= 12:
            return None
        if meridiem == "p" and hours != 12:
            hours += 12
        elif meridiem == "a" and hours == 12:
            hours = 0
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def parse_smart_time(value: Optional[str], now: datetime) -> Optional[datetime]:
    """Resolve a reminder time expression against ``now``.

    Handles ISO datetimes, "in 30 min", "in 2 hours" and "tomorrow [at 2pm]"
    (09:00 when no time is given). Returns None when nothing matches.
    """
    if not value:
        return None
    text = value.strip().lower()

    match = _IN_MINUTES.search(text)
    if match:
        return now + timedelta(minutes=int(match.group(1)))

    match = _IN_HOURS.search(text)
    if match:
        return now + timedelta(hours=int(match.group(1)))

    if "tomorrow" in text:
        tomorrow = now + timedelta(days=1)
        match = _TIME_OF_DAY.search(text)
        if match:
            clock = normalize_clock_time(match.group(0)) or f"{int(match.group(1)):02d}:00"
            hours, minutes = (int(part) for part in clock.split(":"))
            if hours > 23:
                hours, minutes = 9, 0
        else:
            hours, minutes = 9, 0
        return tomorrow.replace(hour=hours, minute=minutes, second=0, microsecond=0)

    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None and now.tzinfo is not None:
        parsed = parsed.replace(tzinfo=now.tzinfo)
    return parsed
