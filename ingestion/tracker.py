"""
Per-resource outcome counters rolled into the owning sync run.
"""

import time
from typing import Any, Callable, Dict, List, Optional
import logging

from models.sync_run import SyncRun

logger = logging.getLogger(__name__)

# Errors shown in a run's error summary before the remainder is collapsed
ERROR_SUMMARY_HEAD = 10


def summarize_errors(messages: List[str], head: int = ERROR_SUMMARY_HEAD) -> str:
    """First ``head`` messages, one per line, plus a count of the rest."""
    lines = list(messages[:head])
    remainder = len(messages) - head
    if remainder > 0:
        lines.append(f"... and {remainder} more errors")
    return "\n".join(lines)


class ResourceSyncTracker:
    """
    Counts created / updated / skipped / errored records for one resource
    type and times the pass from construction to ``finish()``.
    """

    def __init__(
        self,
        sync_run: SyncRun,
        resource_type: str,
        clock: Callable[[], float] = time.monotonic
    ):
        self.sync_run = sync_run
        self.resource_type = resource_type
        self._clock = clock
        self._started = clock()
        self._finished: Optional[float] = None

        self.created = 0
        self.updated = 0
        self.skipped = 0
        self.errors = 0
        self.skip_reasons: List[str] = []
        self.error_messages: List[str] = []

    def record_created(self) -> None:
        self.created += 1

    def record_updated(self) -> None:
        self.updated += 1

    def record_skipped(self, reason: Optional[str] = None) -> None:
        self.skipped += 1
        if reason:
            self.skip_reasons.append(reason)
            logger.debug(f"Skipped {self.resource_type} record: {reason}")

    def record_error(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.errors += 1
        self.error_messages.append(message)
        self.sync_run.add_resource_error(self.resource_type, message)
        logger.error(
            f"{self.resource_type} record failed: {message}",
            extra={"error_context": {"resource_type": self.resource_type, **(context or {})}}
        )

    @property
    def processed_count(self) -> int:
        return self.created + self.updated + self.skipped + self.errors

    @property
    def has_errors(self) -> bool:
        return self.errors > 0

    @property
    def duration_ms(self) -> int:
        end = self._finished if self._finished is not None else self._clock()
        return int((end - self._started) * 1000)

    def get_metrics(self) -> Dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "duration_ms": self.duration_ms,
        }

    def finish(self) -> Dict[str, int]:
        """Stop the clock, persist metrics onto the sync run and return them.

        Safe to call again after more records were tracked; the stored
        metrics are replaced with the running totals.
        """
        self._finished = self._clock()

        metrics = self.get_metrics()
        self.sync_run.update_resource_metrics(self.resource_type, metrics)

        logger.info(
            f"{self.resource_type}: {metrics['created']} created, {metrics['updated']} updated, "
            f"{metrics['skipped']} skipped, {metrics['errors']} errors in {metrics['duration_ms']}ms"
        )
        return metrics
