"""
Background jobs with an explicit retry policy.

Work that must not hold up the HTTP response (notifications, and optionally
the whole content generation stage) is wrapped in a BackgroundJob. The
service layer hands ``job.run`` to FastAPI's BackgroundTasks; the CLI and
tests call it directly. A job that fails every attempt is dead-lettered: it
is logged at ERROR level with its context and dropped.
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 2.0

    def delay(self, attempt: int) -> float:
        """Exponential backoff after the given (1-based) failed attempt."""
        return self.backoff_seconds * (2 ** (attempt - 1))


@dataclass
class BackgroundJob:
    name: str
    action: Callable[[], Any]
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    context: dict = field(default_factory=dict)
    sleep: Callable[[float], None] = time.sleep

    def run(self) -> bool:
        """Run with retries. Returns True on success, False once dead-lettered."""
        last_error = None
        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                self.action()
                if attempt > 1:
                    logger.info(f"Job {self.name} succeeded on attempt {attempt}")
                return True
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Job {self.name} failed (attempt {attempt}/{self.policy.max_attempts}): {e}"
                )
                if attempt < self.policy.max_attempts:
                    self.sleep(self.policy.delay(attempt))

        logger.error(
            f"☠️ Dead letter: job {self.name} gave up after {self.policy.max_attempts} attempt(s) "
            f"| context={self.context} | last error: {last_error}"
        )
        return False


def run_all(jobs: list[BackgroundJob]) -> int:
    """Run jobs in order; returns how many succeeded."""
    return sum(1 for job in jobs if job.run())
