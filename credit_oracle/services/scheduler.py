"""Periodic refresh of scores whose next_update_due has passed."""
import logging
import threading
from typing import Optional

from credit_oracle.core.context import RequestContext
from credit_oracle.schemas.schemas import BatchUpdateSummary

logger = logging.getLogger(__name__)


class ScoreUpdateScheduler:
    """
    Drives OracleService.process_scheduled_updates over bounded batches.

    Sweeps never overlap: a sweep requested while another is still running
    is skipped rather than queued, so an address cannot be scored twice for
    the same due window.
    """

    def __init__(self, service, batch_size: int = 50, interval_seconds: float = 3600):
        self.service = service
        self.batch_size = batch_size
        self.interval_seconds = interval_seconds
        self._sweep_lock = threading.Lock()
        self.last_summary: Optional[BatchUpdateSummary] = None

    @property
    def is_running(self) -> bool:
        return self._sweep_lock.locked()

    def run_once(self, ctx: Optional[RequestContext] = None) -> Optional[BatchUpdateSummary]:
        """Run one sweep; returns None if a previous sweep is still in flight."""
        if not self._sweep_lock.acquire(blocking=False):
            logger.info("Previous score sweep still running; skipping this cycle")
            return None
        try:
            summary = self.service.process_scheduled_updates(self.batch_size, ctx)
            self.last_summary = summary
            return summary
        finally:
            self._sweep_lock.release()

    def run_forever(self, stop_event: threading.Event) -> None:
        """Sweep every `interval_seconds` until `stop_event` is set."""
        logger.info(
            f"Score scheduler started (batch={self.batch_size}, interval={self.interval_seconds}s)"
        )
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                # A failed sweep must not kill the loop; the next cycle retries
                logger.exception("Scheduled score sweep failed")
            stop_event.wait(self.interval_seconds)
        logger.info("Score scheduler stopped")
