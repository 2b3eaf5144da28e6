"""
Per-item persistence with failure isolation.

Each item is saved on its own; a failed save is logged with the item's title
and the loop moves on. Nothing is rolled back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Generic, Iterable, Optional, TypeVar

from .collaborators import ItemStore
from .models import (
    ExtractedHealthNote,
    ExtractedItems,
    ExtractedReminder,
    ExtractedTask,
    PersistedItems,
    SavedItem,
    SaveResult,
)
from .temporal import parse_smart_time

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ItemOutcome(Generic[T]):
    item: T
    ok: bool
    value: Optional[SaveResult] = None
    error: Optional[str] = None


def apply_each(
    items: Iterable[T],
    operation: Callable[[T], SaveResult],
    label: Callable[[T], str],
    kind: str = "item",
) -> list[ItemOutcome[T]]:
    """Run ``operation`` on every item, collecting a per-item outcome.

    A raised exception and a ``SaveResult(success=False)`` are both failures.
    """
    outcomes: list[ItemOutcome[T]] = []
    for item in items:
        try:
            result = operation(item)
        except Exception as e:
            logger.error(f"Failed to save {kind} '{label(item)}': {e}", exc_info=True)
            outcomes.append(ItemOutcome(item=item, ok=False, error=str(e)))
            continue

        if result is None or not result.success:
            error = (result.error if result else None) or "unknown error"
            logger.error(f"Failed to save {kind} '{label(item)}': {error}")
            outcomes.append(ItemOutcome(item=item, ok=False, value=result, error=error))
        else:
            outcomes.append(ItemOutcome(item=item, ok=True, value=result))
    return outcomes


def resolve_reminder_time(reminder: ExtractedReminder, now: datetime) -> str:
    """ISO reminder time; the current time when none was extracted."""
    parsed = parse_smart_time(reminder.reminder_time, now) if reminder.reminder_time else None
    if parsed is None:
        if reminder.reminder_time:
            logger.warning(f"Unreadable reminder time '{reminder.reminder_time}' for '{reminder.title}', using now")
        parsed = now
    return parsed.isoformat()


class ItemPersister:
    def __init__(self, store: ItemStore, clock: Callable[[], datetime] = None):
        self._store = store
        self._clock = clock or (lambda: datetime.now().astimezone())

    def persist(
        self,
        items: ExtractedItems,
        user_id: str,
        recording_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> PersistedItems:
        now = now or self._clock()
        saved = PersistedItems()

        def _save_task(task: ExtractedTask) -> SaveResult:
            return self._store.create_task(user_id, task, recording_id)

        def _save_reminder(reminder: ExtractedReminder) -> SaveResult:
            return self._store.create_reminder(
                user_id, reminder, resolve_reminder_time(reminder, now), recording_id
            )

        def _save_health_note(note: ExtractedHealthNote) -> SaveResult:
            return self._store.create_health_note(user_id, note, recording_id)

        for outcome in apply_each(items.tasks, _save_task, lambda t: t.title, "task"):
            if outcome.ok:
                saved.tasks.append(SavedItem(
                    id=outcome.value.id, title=outcome.item.title, priority=outcome.item.priority.value,
                ))
            else:
                saved.failures += 1

        for outcome in apply_each(items.reminders, _save_reminder, lambda r: r.title, "reminder"):
            if outcome.ok:
                saved.reminders.append(SavedItem(
                    id=outcome.value.id,
                    title=outcome.item.title,
                    priority=outcome.item.priority.value,
                    type=outcome.item.type.value,
                ))
            else:
                saved.failures += 1

        for outcome in apply_each(items.health_notes, _save_health_note, lambda n: n.content[:60], "health note"):
            if outcome.ok:
                saved.health_notes.append(SavedItem(
                    id=outcome.value.id, content=outcome.item.content, category=outcome.item.category.value,
                ))
            else:
                saved.failures += 1

        logger.info(
            f"Saved {len(saved.tasks)}/{len(items.tasks)} task(s), "
            f"{len(saved.reminders)}/{len(items.reminders)} reminder(s), "
            f"{len(saved.health_notes)}/{len(items.health_notes)} health note(s)"
            + (f" | {saved.failures} failure(s)" if saved.failures else "")
        )
        return saved
