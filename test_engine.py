"""Unit tests for the engine building blocks."""

from datetime import datetime, timezone

import pytest

from conftest import FIXED_NOW, InMemoryStore, OTHER_USER_ID, USER_ID, extraction_response
from voice_engine.ai import AgentResponse, ToolCall
from voice_engine.content import parse_title_and_content, select_predictions, type_label
from voice_engine.dispatch import BackgroundJob, RetryPolicy
from voice_engine.errors import AudioNotReady, MissingInput, RecordingNotFound, UnsupportedContentType
from voice_engine.extractor import NO_ITEMS_SUMMARY, parse_agent_response
from voice_engine.models import ContentPrediction, ExtractedTask, RecordingStatus, SaveResult, UserContext
from voice_engine.normalizer import ContentKind, RawVoiceRequest, Stage, infer_mime_type, normalize
from voice_engine.persister import apply_each
from voice_engine.preview import FALLBACK_SUMMARY, build_preview
from voice_engine.prompts import build_extraction_prompt
from voice_engine.state import RecordingStateUpdater
from voice_engine.temporal import build_temporal_context, normalize_clock_time, parse_smart_time


# ── temporal ────────────────────────────────────────────────────────────

def test_temporal_context_resolves_relative_dates():
    ctx = build_temporal_context("UTC", "fr", now=FIXED_NOW)
    assert ctx.current_date == "2024-01-10"
    assert ctx.current_time == "12:00"
    assert ctx.tomorrow_date == "2024-01-11"
    assert ctx.next_week_date == "2024-01-17"
    assert ctx.language_name == "French"


def test_temporal_context_uses_user_timezone():
    # 23:30 UTC is already the next day in Tokyo
    now = datetime(2024, 1, 10, 23, 30, tzinfo=timezone.utc)
    ctx = build_temporal_context("Asia/Tokyo", "ja", now=now)
    assert ctx.current_date == "2024-01-11"
    assert ctx.timezone == "Asia/Tokyo"


def test_temporal_context_falls_back_on_bad_timezone_and_language():
    ctx = build_temporal_context("Mars/Olympus", "xx", now=FIXED_NOW, default_timezone="UTC")
    assert ctx.timezone == "UTC"
    assert ctx.language_code == "en"
    assert ctx.language_name == "English"


@pytest.mark.parametrize("raw, expected", [
    ("15:00", "15:00"),
    ("3pm", "15:00"),
    ("3:30 PM", "15:30"),
    ("9h30", "09:30"),
    ("12am", "00:00"),
    ("15", None),
    ("25:00", None),
    ("soon", None),
])
def test_normalize_clock_time(raw, expected):
    assert normalize_clock_time(raw) == expected


def test_parse_smart_time():
    now = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
    assert parse_smart_time("in 30 min", now) == datetime(2024, 1, 10, 12, 30, tzinfo=timezone.utc)
    assert parse_smart_time("in 2 hours", now) == datetime(2024, 1, 10, 14, 0, tzinfo=timezone.utc)
    assert parse_smart_time("tomorrow", now) == datetime(2024, 1, 11, 9, 0, tzinfo=timezone.utc)
    assert parse_smart_time("tomorrow at 2pm", now) == datetime(2024, 1, 11, 14, 0, tzinfo=timezone.utc)
    assert parse_smart_time("2024-01-11T15:00:00", now) == datetime(2024, 1, 11, 15, 0, tzinfo=timezone.utc)
    assert parse_smart_time("whenever", now) is None


def test_extraction_prompt_embeds_literal_dates():
    ctx = build_temporal_context("UTC", "es", now=FIXED_NOW)
    prompt = build_extraction_prompt("Llamar a mamá mañana", ctx, UserContext(user_id=USER_ID, language="es"))
    assert "2024-01-10" in prompt
    assert "2024-01-11" in prompt
    assert "Spanish" in prompt
    assert "Do NOT translate" in prompt
    assert "HH:MM" in prompt
    assert prompt == build_extraction_prompt("Llamar a mamá mañana", ctx, UserContext(user_id=USER_ID, language="es"))


# ── normalizer ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("declared, expected", [
    ("audio/webm;codecs=opus", "audio/webm"),
    ("audio/mp3", "audio/mpeg"),
    ("audio/x-m4a", "audio/mp4"),
    ("audio/wav", "audio/wav"),
    ("audio/flac", "audio/flac"),
    (None, "audio/webm"),
])
def test_infer_mime_type(declared, expected):
    assert infer_mime_type(declared) == expected


def _lookup(store):
    return store.get_recording


def test_normalize_rejects_unknown_content_type():
    with pytest.raises(UnsupportedContentType):
        normalize(RawVoiceRequest(content_kind=ContentKind.OTHER), USER_ID, Stage.PREVIEW, _lookup(InMemoryStore()))


def test_normalize_multipart_requires_audio_file():
    with pytest.raises(MissingInput, match="Audio file is required"):
        normalize(RawVoiceRequest(content_kind=ContentKind.MULTIPART), USER_ID, Stage.PREVIEW, _lookup(InMemoryStore()))


def test_normalize_multipart_upload():
    request = RawVoiceRequest(
        content_kind=ContentKind.MULTIPART, has_audio_file=True,
        audio_bytes=b"RIFF", audio_content_type="audio/wav",
    )
    result = normalize(request, USER_ID, Stage.PROCESS, _lookup(InMemoryStore()))
    assert result.audio.data == b"RIFF"
    assert result.mime_type == "audio/wav"


@pytest.mark.parametrize("stage, message", [
    (Stage.PREVIEW, "Either audioUrl, audioBase64, or sourceRecordingId is required"),
    (Stage.PROCESS, "Either transcription (for transcription mode) or audioUrl/audioBase64 (for audio mode) is required"),
    (Stage.EXECUTE, "recordingId and transcription are required"),
])
def test_normalize_missing_input_messages(stage, message):
    with pytest.raises(MissingInput) as exc:
        normalize(RawVoiceRequest(content_kind=ContentKind.JSON), USER_ID, stage, _lookup(InMemoryStore()))
    assert exc.value.message == message
    assert exc.value.status_code == 400


def test_normalize_execute_requires_owned_recording():
    store = InMemoryStore()
    store.add_recording("rec-1", user_id=OTHER_USER_ID)
    request = RawVoiceRequest(content_kind=ContentKind.JSON, recording_id="rec-1", transcription="hello")
    with pytest.raises(RecordingNotFound) as exc:
        normalize(request, USER_ID, Stage.EXECUTE, store.get_recording)
    assert exc.value.message == "Recording not found or access denied"
    assert exc.value.status_code == 404


def test_normalize_transcription_mode_keeps_text_verbatim():
    store = InMemoryStore()
    store.add_recording("rec-1")
    request = RawVoiceRequest(
        content_kind=ContentKind.JSON, source_recording_id="rec-1",
        transcription="  Buy milk  ", ai_summary="Edited",
    )
    result = normalize(request, USER_ID, Stage.PROCESS, store.get_recording)
    assert result.transcript_text == "  Buy milk  "
    assert result.audio is None
    assert result.ai_summary == "Edited"


def test_normalize_resolves_stored_audio_url():
    store = InMemoryStore()
    store.add_recording("rec-1", audio_url="https://cdn.example/rec-1.webm")
    request = RawVoiceRequest(content_kind=ContentKind.JSON, source_recording_id="rec-1")
    result = normalize(request, USER_ID, Stage.PREVIEW, store.get_recording)
    assert result.audio.url == "https://cdn.example/rec-1.webm"
    assert result.recording_id == "rec-1"


def test_normalize_audio_not_uploaded_yet():
    store = InMemoryStore()
    store.add_recording("rec-1", audio_url=None, status=RecordingStatus.PENDING)
    request = RawVoiceRequest(content_kind=ContentKind.JSON, source_recording_id="rec-1")
    with pytest.raises(AudioNotReady) as exc:
        normalize(request, USER_ID, Stage.PREVIEW, store.get_recording)
    assert exc.value.message == "Audio not yet uploaded"
    assert "pending" in exc.value.details


def test_normalize_unknown_recording_for_preview():
    request = RawVoiceRequest(content_kind=ContentKind.JSON, source_recording_id="nope")
    with pytest.raises(RecordingNotFound) as exc:
        normalize(request, USER_ID, Stage.PREVIEW, InMemoryStore().get_recording)
    assert exc.value.message == "Recording not found or access denied"


def test_normalize_someone_elses_recording_for_preview():
    store = InMemoryStore()
    store.add_recording("rec-bob", user_id=OTHER_USER_ID, audio_url="https://cdn.example/bob.webm")
    request = RawVoiceRequest(content_kind=ContentKind.JSON, source_recording_id="rec-bob")
    with pytest.raises(RecordingNotFound) as exc:
        normalize(request, USER_ID, Stage.PREVIEW, store.get_recording)
    assert exc.value.message == "Recording not found or access denied"
    assert exc.value.status_code == 404


def test_normalize_keeps_summary_verbatim():
    store = InMemoryStore()
    store.add_recording("rec-1")
    request = RawVoiceRequest(
        content_kind=ContentKind.JSON, recording_id="rec-1",
        transcription="Buy milk", ai_summary="  ### Summary\n- milk\n",
    )
    result = normalize(request, USER_ID, Stage.EXECUTE, store.get_recording)
    assert result.ai_summary == "  ### Summary\n- milk\n"

    blank = RawVoiceRequest(content_kind=ContentKind.JSON, recording_id="rec-1", transcription="x", ai_summary="   ")
    assert normalize(blank, USER_ID, Stage.EXECUTE, store.get_recording).ai_summary is None


# ── extractor decision table ────────────────────────────────────────────

def test_parse_prefers_named_tool_call():
    response = AgentResponse(tool_calls=[
        ToolCall(name="something-else", args={"tasks": [{"title": "Wrong"}], "summary": "x"}),
        ToolCall(name="output-extracted-items", args={"tasks": [{"title": "Right"}], "summary": "y"}),
    ])
    items = parse_agent_response(response)
    assert [t.title for t in items.tasks] == ["Right"]


def test_parse_uses_first_call_when_name_differs():
    response = AgentResponse(tool_calls=[ToolCall(name="outputExtractedItems", args={"tasks": [{"title": "A"}]})])
    items = parse_agent_response(response)
    assert [t.title for t in items.tasks] == ["A"]


def test_parse_decodes_json_string_arguments():
    response = AgentResponse(tool_calls=[
        ToolCall(name="output-extracted-items", args='{"reminders": [{"title": "Call mom"}], "summary": "s"}'),
    ])
    items = parse_agent_response(response)
    assert items.reminders[0].title == "Call mom"


@pytest.mark.parametrize("response, ai_summary, expected", [
    (AgentResponse(text="Nothing actionable here."), None, "Nothing actionable here."),
    (AgentResponse(), "User edited summary", "User edited summary"),
    (AgentResponse(), None, NO_ITEMS_SUMMARY),
    (None, None, NO_ITEMS_SUMMARY),
    (AgentResponse(tool_calls=[ToolCall(name="output-extracted-items", args="{not json")]), None, NO_ITEMS_SUMMARY),
    (AgentResponse(tool_calls=[ToolCall(name="output-extracted-items", args=["not", "an", "object"])]), None, NO_ITEMS_SUMMARY),
    (AgentResponse(text="I could not find anything."), "My edited summary", "My edited summary"),
])
def test_parse_falls_back_to_empty_bundle(response, ai_summary, expected):
    items = parse_agent_response(response, ai_summary)
    assert items.tasks == [] and items.reminders == [] and items.health_notes == []
    assert items.summary == expected


def test_caller_summary_overrides_extracted_summary():
    items = parse_agent_response(extraction_response(summary="Model summary"), ai_summary="Edited summary")
    assert items.summary == "Edited summary"


def test_blank_extracted_summary_is_replaced():
    items = parse_agent_response(extraction_response(text="free text", summary=""))
    assert items.summary == "free text"


def test_caller_summary_is_not_stripped():
    items = parse_agent_response(extraction_response(summary="Model"), ai_summary="  Edited\n")
    assert items.summary == "  Edited\n"

    blank = parse_agent_response(extraction_response(summary="Model"), ai_summary="   ")
    assert blank.summary == "Model"


def test_invalid_entries_are_dropped_individually():
    response = extraction_response(
        tasks=[{"title": "Buy milk"}, {"priority": "high"}, {"title": None}, "not an object"],
        reminders=[{"title": "Call mom"}, {"description": "no title"}],
        healthNotes=[{"category": "sleep"}],
        summary="Groceries and a call",
    )
    items = parse_agent_response(response)
    assert [t.title for t in items.tasks] == ["Buy milk"]
    assert [r.title for r in items.reminders] == ["Call mom"]
    assert items.health_notes == []
    assert items.summary == "Groceries and a call"


# ── preview ─────────────────────────────────────────────────────────────

def test_preview_uses_tool_arguments():
    response = AgentResponse(tool_calls=[ToolCall(
        name="output-preview", args={"cleanedTranscription": "Buy milk.", "aiSummary": "### Summary"},
    )])
    result = build_preview("buy buy milk", response)
    assert result.cleaned_transcription == "Buy milk."
    assert result.ai_summary == "### Summary"


def test_preview_fallbacks():
    no_call = build_preview("raw text", AgentResponse(text="Free summary"))
    assert no_call.cleaned_transcription == "raw text"
    assert no_call.ai_summary == "Free summary"

    failed = build_preview("raw text", None)
    assert failed.cleaned_transcription == "raw text"
    assert failed.ai_summary == FALLBACK_SUMMARY

    empty_fields = build_preview("raw text", AgentResponse(tool_calls=[
        ToolCall(name="output-preview", args={"cleanedTranscription": "", "aiSummary": ""}),
    ]))
    assert empty_fields.cleaned_transcription == "raw text"
    assert empty_fields.ai_summary == FALLBACK_SUMMARY


# ── persistence ─────────────────────────────────────────────────────────

def test_apply_each_isolates_failures():
    def save(task):
        if task.title == "boom":
            raise RuntimeError("db down")
        if task.title == "rejected":
            return SaveResult(success=False, error="constraint")
        return SaveResult(success=True, id=f"id-{task.title}")

    tasks = [ExtractedTask(title=t) for t in ("a", "boom", "rejected", "b")]
    outcomes = apply_each(tasks, save, lambda t: t.title, "task")

    assert [o.ok for o in outcomes] == [True, False, False, True]
    assert outcomes[1].error == "db down"
    assert outcomes[2].error == "constraint"
    assert outcomes[3].value.id == "id-b"


# ── state machine ───────────────────────────────────────────────────────

@pytest.mark.parametrize("prior, target, allowed", [
    (RecordingStatus.PENDING, RecordingStatus.COMPLETED, True),
    (RecordingStatus.PROCESSING, RecordingStatus.COMPLETED, True),
    (RecordingStatus.COMPLETED, RecordingStatus.COMPLETED, True),
    (RecordingStatus.FAILED, RecordingStatus.COMPLETED, True),
    (RecordingStatus.FAILED, RecordingStatus.FAILED, False),
    (RecordingStatus.PENDING, RecordingStatus.FAILED, True),
    (RecordingStatus.COMPLETED, RecordingStatus.FAILED, False),
])
def test_finalize_transitions(prior, target, allowed):
    store = InMemoryStore()
    store.add_recording("rec-1", status=prior)
    updated = RecordingStateUpdater(store).finalize("rec-1", USER_ID, target, transcription="t", ai_summary="s")
    assert updated is allowed
    assert store.recordings["rec-1"].status == (target if allowed else prior)


def test_preview_cannot_regress_completed_recording():
    store = InMemoryStore()
    store.add_recording("rec-1", status=RecordingStatus.COMPLETED)
    assert not RecordingStateUpdater(store).mark_processing("rec-1", USER_ID, "t", "s")
    assert store.recordings["rec-1"].status == RecordingStatus.COMPLETED


def test_failed_finalize_writes_status_only():
    store = InMemoryStore()
    store.add_recording("rec-1", transcription="kept")
    RecordingStateUpdater(store).finalize("rec-1", USER_ID, RecordingStatus.FAILED, transcription="new")
    assert store.recordings["rec-1"].status == RecordingStatus.FAILED
    assert store.recordings["rec-1"].transcription == "kept"


def test_state_write_errors_are_swallowed():
    class BrokenStore(InMemoryStore):
        def update_recording(self, *args, **kwargs):
            raise RuntimeError("connection lost")

    assert not RecordingStateUpdater(BrokenStore()).finalize("rec-1", USER_ID, RecordingStatus.COMPLETED)


# ── content gate helpers ────────────────────────────────────────────────

def _prediction(confidence, content_type="post"):
    return ContentPrediction(content_type=content_type, description=f"p{confidence}", confidence=confidence)


def test_select_predictions_filters_sorts_and_caps():
    predictions = [_prediction(c) for c in (0.55, 0.3, 0.92, 0.5, 0.71)]
    selected = select_predictions(predictions, threshold=0.5, limit=3)
    assert [p.confidence for p in selected] == [0.92, 0.71, 0.55]


def test_select_predictions_ties_keep_order():
    predictions = [_prediction(0.8, "email"), _prediction(0.8, "memo"), _prediction(0.8, "report")]
    selected = select_predictions(predictions, limit=2)
    assert [p.content_type for p in selected] == ["email", "memo"]


def test_type_label_and_title_parsing():
    assert type_label("social_post") == "Social Post"
    assert parse_title_and_content("TITLE: **Hello**\n\nBody") == ("Hello", "Body")
    assert parse_title_and_content("Just a body") == ("", "Just a body")


# ── background jobs ─────────────────────────────────────────────────────

def test_background_job_retries_then_succeeds():
    attempts = []
    sleeps = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise RuntimeError("try again")

    job = BackgroundJob("flaky", flaky, RetryPolicy(max_attempts=3, backoff_seconds=2), sleep=sleeps.append)
    assert job.run()
    assert len(attempts) == 3
    assert sleeps == [2, 4]


def test_background_job_dead_letters(caplog):
    def always_fails():
        raise RuntimeError("nope")

    job = BackgroundJob("doomed", always_fails, RetryPolicy(max_attempts=2, backoff_seconds=0),
                        context={"document_id": "doc-1"}, sleep=lambda _: None)
    with caplog.at_level("ERROR"):
        assert not job.run()
    assert "Dead letter" in caplog.text
    assert "doc-1" in caplog.text
