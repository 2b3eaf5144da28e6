"""
Confidence-gated long-form content generation.

After items are saved, content predictions at or above the confidence
threshold (highest first, at most ``limit``) are turned into drafted
documents. Each prediction is independent: any failure is logged and the
prediction skipped. A notification job is queued for every saved document.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from .ai import GeminiClient
from .collaborators import ContentStore, Notifier, UserContextProvider
from .dispatch import BackgroundJob, RetryPolicy
from .models import ContentPrediction, GeneratedContent, GeneratedContentDocument, UserContext
from .prompts import build_content_prompt

logger = logging.getLogger(__name__)

PREVIEW_TEXT_LENGTH = 200


def select_predictions(
    predictions: list[ContentPrediction],
    threshold: float = 0.5,
    limit: int = 3,
) -> list[ContentPrediction]:
    """Eligible predictions, highest confidence first; ties keep their order."""
    eligible = [p for p in predictions if p.confidence >= threshold]
    return sorted(eligible, key=lambda p: p.confidence, reverse=True)[:limit]


def type_label(content_type: str) -> str:
    """"social_post" → "Social Post"."""
    return " ".join(word.capitalize() for word in content_type.replace("_", " ").split())


def content_ready_notification(document_id: str, title: str, content_type: str) -> dict:
    return {
        "title": "New Content Ready",
        "message": f'I drafted a {type_label(content_type)}: "{title}"',
        "type": "ai_generated",
        "deep_link": f"/dashboard/pro?doc={document_id}",
    }


def parse_title_and_content(ai_output: str) -> tuple[str, str]:
    """Split a leading ``TITLE: ...`` line from the generated body.

    Returns ("", full_output) when there is no TITLE line.
    """
    lines = ai_output.strip().split("\n")

    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.upper().startswith("TITLE:"):
            title = stripped[6:].strip().strip('"').strip("'").strip("*")
            remaining = lines[i + 1:]
            while remaining and not remaining[0].strip():
                remaining = remaining[1:]
            return title, "\n".join(remaining).strip()
        if stripped:
            break

    return "", ai_output.strip()


class GeminiContentGenerator:
    """Drafts a document for one prediction with a plain Gemini text call."""

    def __init__(self, client: GeminiClient):
        self._client = client

    @property
    def model_name(self) -> str:
        return self._client.model_name

    def generate(
        self,
        user_context: UserContext,
        source_text: str,
        prediction: ContentPrediction,
    ) -> GeneratedContent:
        output = self._client.generate_text(build_content_prompt(user_context, source_text, prediction))
        title, body = parse_title_and_content(output)
        if not body:
            raise ValueError("Content generator returned an empty body")
        return GeneratedContent(
            title=title or prediction.suggested_title or type_label(prediction.content_type),
            content=body,
            preview_text=body[:PREVIEW_TEXT_LENGTH],
            language=user_context.language,
        )


@dataclass
class ContentGateResult:
    documents: list[GeneratedContentDocument] = field(default_factory=list)
    jobs: list[BackgroundJob] = field(default_factory=list)
    attempted: int = 0


class ContentGate:
    def __init__(
        self,
        generator,
        contexts: UserContextProvider,
        store: ContentStore,
        notifier: Notifier,
        threshold: float = 0.5,
        limit: int = 3,
        explicit_confidence: float = 0.8,
        notify_policy: Optional[RetryPolicy] = None,
    ):
        self._generator = generator
        self._contexts = contexts
        self._store = store
        self._notifier = notifier
        self.threshold = threshold
        self.limit = limit
        self.explicit_confidence = explicit_confidence
        self._notify_policy = notify_policy or RetryPolicy()

    def _fetch_contexts(self, user_id: str):
        with ThreadPoolExecutor(max_workers=2) as pool:
            user_future = pool.submit(self._contexts.get_user_context, user_id)
            voice_future = pool.submit(self._contexts.get_voice_context, user_id)
            return user_future.result(), voice_future.result()

    def _notification_job(self, user_id: str, document: GeneratedContentDocument) -> BackgroundJob:
        return BackgroundJob(
            name=f"notify-content-ready:{document.document_id}",
            action=lambda: self._notifier.notify_content_ready(
                user_id, document.document_id, document.title, document.content_type
            ),
            policy=self._notify_policy,
            context={"user_id": user_id, "document_id": document.document_id},
        )

    def _generate_one(
        self,
        prediction: ContentPrediction,
        user_id: str,
        recording_id: Optional[str],
    ) -> Optional[GeneratedContentDocument]:
        user_context, voice_context = self._fetch_contexts(user_id)
        content = self._generator.generate(user_context, voice_context.combined_context, prediction)

        title = prediction.suggested_title or content.title
        generation_type = "explicit" if prediction.confidence >= self.explicit_confidence else "proactive"
        saved = self._store.save_generated_content(
            user_id,
            title=title,
            content=content,
            prediction=prediction,
            source_voice_note_ids=[recording_id] if recording_id else [],
            generation_type=generation_type,
            model_used=getattr(self._generator, "model_name", "unknown"),
        )
        if not saved.success or not saved.id:
            logger.error(f"Failed to save generated {prediction.content_type} '{title}': {saved.error}")
            return None

        return GeneratedContentDocument(
            document_id=saved.id,
            title=title,
            content_type=prediction.content_type,
            preview_text=content.preview_text or content.content[:PREVIEW_TEXT_LENGTH],
        )

    def run(
        self,
        predictions: list[ContentPrediction],
        user_id: str,
        recording_id: Optional[str],
    ) -> ContentGateResult:
        selected = select_predictions(predictions, self.threshold, self.limit)
        result = ContentGateResult(attempted=len(selected))
        if not selected:
            return result

        logger.info(
            f"Generating content for {len(selected)}/{len(predictions)} prediction(s) "
            f"(threshold {self.threshold})"
        )
        for prediction in selected:
            try:
                document = self._generate_one(prediction, user_id, recording_id)
            except Exception as e:
                logger.error(
                    f"Content generation failed for {prediction.content_type} "
                    f"(confidence {prediction.confidence:.2f}): {e}",
                    exc_info=True,
                )
                continue
            if document is None:
                continue
            result.documents.append(document)
            result.jobs.append(self._notification_job(user_id, document))
            logger.info(f"  Drafted {prediction.content_type}: {document.title} ({document.document_id})")

        return result
