"""
Prompt builders for the three Gemini calls in the pipeline.

    preview    : clean the raw transcript, write a summary (output-preview tool)
    extraction : pull tasks/reminders/notes/content predictions (output-extracted-items tool)
    content    : draft long-form content for a detected prediction

Every builder is a pure function of its inputs: the temporal context is
resolved before the prompt is built, so the same inputs always give the same
text.
"""

from .models import ContentPrediction, UserContext
from .temporal import TemporalContext, resolve_language


def _profession(user: UserContext, default: str) -> str:
    return user.profession or default


def _joined(values: list[str], default: str) -> str:
    return ", ".join(v for v in values if v) or default


# =============================================================================
# PREVIEW
# =============================================================================

def build_preview_instructions(user: UserContext) -> str:
    _, language_name = resolve_language(user.language)
    user_name = user.name or "the user"

    return f"""You are a transcription preview specialist for a personal voice assistant.

## YOUR TASK
You have TWO responsibilities:
1. Clean and correct the raw voice transcription
2. Write a concise summary of what the user said

## USER CONTEXT
- Name: {user_name}
- Profession: {_profession(user, "Not specified")}
- Language: {language_name}

## LANGUAGE REQUIREMENT - CRITICAL
**ALL OUTPUT MUST BE IN {language_name.upper()}**
- The cleaned transcription and the summary MUST be in {language_name}
- Do NOT translate to English or any other language

## TRANSCRIPTION CLEANING RULES
- Correct spelling errors, typos and grammar
- Add punctuation and sentence breaks where missing
- Remove word and phrase repetitions ("I need to, I need to" → "I need to")
- Remove filler words only when they add no meaning
- Preserve the original meaning, tone and language. Never add information.

## SUMMARY RULES
Cover the main intents (tasks, reminders, requests), content requests
(tweet, email, report, post), events with dates/times, people mentioned,
and the general context.
- Markdown: start with a "### Summary" header (or its equivalent in {language_name})
- Bullet points, organized by category
- No boilerplate openers or closing statements

Use the output-preview tool to return both fields."""


def build_preview_prompt(transcript: str, user: UserContext) -> str:
    _, language_name = resolve_language(user.language)
    return f"""Clean this voice transcription and summarize it.

Transcription:
"{transcript}"

Return the result with the output-preview tool. Everything must be in {language_name}."""


# =============================================================================
# EXTRACTION
# =============================================================================

def build_agent_instructions(temporal: TemporalContext, user: UserContext) -> str:
    """System instructions for the extraction agent."""
    language_name = temporal.language_name
    profession = _profession(user, "professional")

    return f"""You are a specialized voice transcription analyzer for a personal AI assistant.

## YOUR TASK
Analyze voice transcriptions and extract actionable items in a structured format.
The user speaks in {language_name} and their transcription will be in that language.

## CURRENT DATE AND TIME
**TODAY'S DATE: {temporal.current_date}**
**CURRENT TIME: {temporal.current_time} ({temporal.timezone})**
**FULL DATETIME: {temporal.current_datetime}**

## LANGUAGE REQUIREMENT - CRITICAL
**YOU MUST RESPOND ENTIRELY IN {language_name.upper()}**
- Task titles, reminders, health notes, general notes, tags and the summary MUST be in {language_name}
- Do NOT translate to English or any other language
- Priority and type values are standardized English enums; everything else is {language_name}

## USER CONTEXT
- **Name**: {user.preferred_name or "there"}
- **Language**: {language_name} ({temporal.language_code})
- **Profession**: {_profession(user, "Not specified")}
- **Work Focus Areas**: {_joined(user.critical_artifacts, "General")}
- **Health Interests**: {_joined(user.health_interests, "General wellness")}

## EXTRACTION RULES

### Tasks
- "I need to...", "I should...", "Don't forget to..." → task
- Work items for a {profession} → category "work" plus work tags
- When in doubt, classify as a task rather than ignoring it

### Priority Detection
- Urgent: "urgent", "ASAP", "immediately", "right now", "emergency", missed medication → urgent
- High: "important", "critical", "must", "deadline", time-sensitive reminders → high
- Low: "whenever", "no rush", "eventually", "if possible" → low
- Otherwise: medium

### Type Classification
- **task**: has a future due date ("tomorrow I need to...")
- **todo**: general actionable item without a specific time
- **reminder**: time-sensitive ("remind me in 10 min")

### Reminders
- "remind me in X min" → reminderTime = current time + X minutes (ISO datetime)
- "remind me tomorrow" → tomorrow ({temporal.tomorrow_date}) at 09:00 unless a time is given
- Recurring patterns → isRecurring true plus recurrencePattern

### Health Notes
Symptoms, medication, mood/energy, exercise, diet, sleep.
Category is one of: symptom, medication, mood, exercise, diet, sleep, other.

### General Notes
Anything worth recording that is not a task, reminder or health note.

### Content Predictions
When the user asks for (or clearly implies) a piece of writing (a post,
email, report, memo, summary), add a content prediction with contentType,
description, optional targetPlatform and suggestedTitle, and a confidence
between 0 and 1 (explicit requests ≥ 0.8, implied opportunities lower).

## OUTPUT FORMAT
Use the output-extracted-items tool to return structured data.
Always include a summary of the transcription."""


def build_extraction_prompt(transcript: str, temporal: TemporalContext, user: UserContext) -> str:
    """User prompt for the extraction call.

    Dates are literals computed in the user's timezone; the model is never
    asked to work out "today" on its own.
    """
    language_name = temporal.language_name
    language_code = temporal.language_code
    today = temporal.current_date
    tomorrow = temporal.tomorrow_date

    return f"""Please analyze this voice transcription and extract all actionable items.

## CURRENT DATE AND TIME - CRITICAL FOR DATE PARSING
**TODAY'S DATE: {today}**
**CURRENT TIME: {temporal.current_time} ({temporal.timezone})**

When parsing relative dates and times, you MUST calculate from the current date/time above:
- "today" or "tonight" → {today}
- "tomorrow" → {tomorrow}
- "next week" → {temporal.next_week_date}
- "in 3 days" → 3 days after {today}
- "Monday" → the next Monday after {today}
- Always use ISO format (YYYY-MM-DD) for dates and ISO datetime for reminder times
- NEVER use dates in the past - always calculate from {today}

## TIME EXTRACTION - CRITICAL
Extract every specific clock time mentioned into dueTime, in 24-hour HH:MM format:
- "match at 3pm" → dueDate {today}, dueTime "15:00"
- "appointment tomorrow at 2:30 PM" → dueDate {tomorrow}, dueTime "14:30"
- "meeting at 14:00" → dueTime "14:00"
- "at 9:30 AM" → dueTime "09:30"
- "meeting in 2 hours" → current time + 2 hours, as HH:MM
- Leave dueTime empty when no time is mentioned. Never guess one.

## LANGUAGE
All extracted items (task titles, reminders, notes, tags, and especially the summary)
MUST be in {language_name} ({language_code}). Do NOT translate to English.
Tags use natural {language_name} words, not English ones.

## SUMMARY FORMAT
The summary must be clean, structured markdown:
- Start directly with content - no boilerplate openers such as "Here is the summary"
- Use ### headers for sections (summary, tasks, reminders) written in {language_name}
- Numbered lists for tasks and reminders
- No closing statements like "Let me know if you need anything else"
- Concise: essential information only

Transcription:
"{transcript}"

YOU MUST use the output-extracted-items tool to return the structured extraction.
Do NOT just respond with text. Everything, including tags, must be in {language_name},
and all dates must be calculated from {today}."""


# =============================================================================
# CONTENT GENERATION
# =============================================================================

_FORMAT_GUIDELINES = {
    "social_post": """- Concise (under 280 chars for X, longer for LinkedIn)
- Engaging hook, relevant hashtags
- End with a call-to-action or a question""",
    "email": """- Suggested subject line on the first line
- Greeting, concise body with a clear purpose, professional closing
- Bullet points for key items""",
    "report": """- Clear title and date
- Executive summary first
- Structured sections with headers
- Findings, then conclusions/recommendations""",
    "summary": """- Brief overview first
- Key points as bullets
- Action items if any""",
    "memo": """- To/From/Subject header
- Purpose in the first sentence
- Short, scannable paragraphs""",
    "default": """- Structure appropriate to the content type
- Clear headers where useful
- Professional, readable formatting""",
}


def get_format_guidelines(content_type: str) -> str:
    return _FORMAT_GUIDELINES.get((content_type or "").lower(), _FORMAT_GUIDELINES["default"])


def build_content_prompt(user: UserContext, source_text: str, prediction: ContentPrediction) -> str:
    _, language_name = resolve_language(user.language)
    platform = f"\n- Target Platform: {prediction.target_platform}" if prediction.target_platform else ""
    title = f"\n- Suggested Title: {prediction.suggested_title}" if prediction.suggested_title else ""

    return f"""Generate {prediction.content_type} content based on the voice context below.

## REQUEST
- Content Type: {prediction.content_type}
- Description: {prediction.description}{platform}{title}

## AUTHOR
- Name: {user.preferred_name or user.name or "the user"}
- Profession: {_profession(user, "Not specified")}
- Focus Areas: {_joined(user.critical_artifacts, "General")}

## FORMAT GUIDELINES FOR {prediction.content_type.upper()}
{get_format_guidelines(prediction.content_type)}

## LANGUAGE
Write entirely in {language_name}.

## OUTPUT
First line: TITLE: <a concise title, under 80 characters>
Then a blank line, then the content itself. No preamble or commentary.

## VOICE CONTEXT
{source_text or "(no additional voice context)"}"""
