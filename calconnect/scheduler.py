from __future__ import annotations
import logging
import threading
from datetime import timedelta
from typing import TYPE_CHECKING, Optional

import pytz
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from calconnect.config import DEFAULT_REFRESH_INTERVAL
from calconnect.errors import InvalidIntervalError
from calconnect.utils import convert_to_ms

if TYPE_CHECKING:
    from calconnect.services.base import CalendarAdapter

log = logging.getLogger("calconnect.scheduler")

# also the refresh buffer, so it must stay far inside datetime range
MAX_INTERVAL = timedelta(days=365)


class TokenRefreshJob:
    """Periodically refreshes every stored token of one adapter's provider.

    Stopped -> Running on ``start()``, Running -> Stopped on ``stop()``; both are
    no-ops when already in the target state. Users are refreshed one after the
    other and a failure for one user is logged and skipped. A firing that is
    still running when the next one is due causes the next one to be skipped
    (``max_instances=1``).
    """

    def __init__(self, adapter: "CalendarAdapter", interval: str = DEFAULT_REFRESH_INTERVAL,
                 scheduler: Optional[BaseScheduler] = None):
        self.adapter = adapter
        self.interval = interval
        self.interval_ms = convert_to_ms(interval)
        if not 0 < self.interval_ms <= MAX_INTERVAL / timedelta(milliseconds=1):
            raise InvalidIntervalError(interval, "must be more than zero and at most 365 days")
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._job = None
        self._cancel: Optional[threading.Event] = None
        self._lock = threading.Lock()

    @property
    def job_id(self) -> str:
        return f"refresh-access-tokens-{self.adapter.provider}-{id(self):x}"

    @property
    def running(self) -> bool:
        return self._job is not None

    def start(self) -> None:
        with self._lock:
            if self._job is not None:
                log.info("Token refresh job for %s already running", self.adapter.provider)
                return
            # fresh flag per run so a cycle left over from a previous run stays cancelled
            self._cancel = threading.Event()
            if self._scheduler is None:
                self._scheduler = BackgroundScheduler(timezone=pytz.utc)
            if not self._scheduler.running:
                self._scheduler.start()
            self._job = self._scheduler.add_job(
                self._cycle, "interval", args=[self._cancel],
                seconds=self.interval_ms / 1000,
                id=self.job_id, max_instances=1, coalesce=True,
            )
            log.info("Token refresh job for %s scheduled every %s", self.adapter.provider, self.interval)

    def stop(self) -> None:
        with self._lock:
            if self._job is None:
                return
            # a cycle in progress checks this between users
            self._cancel.set()
            try:
                self._job.remove()
            except JobLookupError:
                log.debug("Job %s was already removed from the scheduler", self.job_id)
            self._job = None
            if self._owns_scheduler and self._scheduler is not None:
                if self._scheduler.running:
                    self._scheduler.shutdown(wait=False)
                self._scheduler = None
            log.info("Token refresh job for %s stopped", self.adapter.provider)

    def run_once(self) -> dict:
        """One refresh cycle over every stored record, outside the schedule. Returns a summary."""
        return self._cycle(None)

    def _cycle(self, cancel: Optional[threading.Event]) -> dict:
        provider = self.adapter.provider
        log.info("Starting scheduled token refresh for %s", provider)
        refreshed, failed = [], []
        records = self.adapter.store.all()
        for record in records:
            if cancel is not None and cancel.is_set():
                log.info("Token refresh for %s interrupted by stop", provider)
                break
            if record.token_for(provider) is None:
                continue
            try:
                self.adapter.refresh_access_token(record.user_id)
                refreshed.append(record.user_id)
            except Exception as e:
                log.warning("Token refresh failed; will retry next cycle. provider=%s user=%s err=%s",
                            provider, record.user_id, e)
                failed.append(record.user_id)
        return {"provider": provider, "users": len(records), "refreshed": refreshed, "failed": failed}
