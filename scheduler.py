import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from config import get_settings
from schemas import LineItem


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, timezone: Optional[str] = None) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=timezone or settings.timezone)

    def debounce(
        self, job_id: str, func: Callable, delay_secs: float, args: list
    ) -> None:
        """Run ``func`` once, ``delay_secs`` after the most recent call."""
        run_at = datetime.now(self.scheduler.timezone) + timedelta(seconds=delay_secs)
        self.cancel(job_id)
        self.scheduler.add_job(
            func,
            DateTrigger(run_date=run_at),
            args=args,
            id=job_id,
            misfire_grace_time=60,
        )

    def cancel(self, job_id: str) -> bool:
        if self.scheduler.get_job(job_id) is None:
            return False
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            # Fired between the lookup and the removal.
            return False
        return True

    def pending_job_ids(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.scheduler.start()
        logger.info("Scheduler started")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


class DebouncedSaver:
    """Collapses bursts of grid edits into one save per budget year.

    Each edit replaces the pending snapshot and restarts the quiet period;
    a save that has already been dispatched is not cancelled.
    """

    def __init__(
        self,
        manager: SchedulerManager,
        save: Callable[[str, list[LineItem]], None],
        delay_secs: Optional[float] = None,
    ) -> None:
        self.manager = manager
        self.save = save
        if delay_secs is None:
            delay_secs = get_settings().save_debounce_secs
        self.delay_secs = delay_secs
        self._pending: dict[str, list[LineItem]] = {}
        self._lock = threading.Lock()

    def _job_id(self, year: str) -> str:
        return f"save_budget:{id(self)}:{year}"

    def schedule(self, year: str, items: list[LineItem]) -> None:
        with self._lock:
            self._pending[year] = items
        self.manager.debounce(self._job_id(year), self._run, self.delay_secs, [year])

    def pending_years(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    def _run(self, year: str) -> None:
        with self._lock:
            items = self._pending.pop(year, None)
        if items is None:
            return
        logger.info(f"debounced_save: year={year} items={len(items)}")
        self.save(year, items)

    def flush(self, year: Optional[str] = None) -> None:
        years = [year] if year is not None else self.pending_years()
        for pending_year in years:
            self.manager.cancel(self._job_id(pending_year))
            self._run(pending_year)

    def cancel_all(self) -> None:
        for pending_year in self.pending_years():
            self.manager.cancel(self._job_id(pending_year))
        with self._lock:
            self._pending.clear()
