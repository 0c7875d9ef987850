"""
Recurring job registry.

``Scheduler`` is the seam the synchronization code talks to. ``CronScheduler``
is the in-process implementation: one daemon loop thread wakes at the next
due time, hands due jobs to a thread pool and re-arms them from their cron
expression. Cancelling drops the registry entry; its stale heap entry is
skipped when it surfaces.
"""

from __future__ import annotations

import heapq
import itertools
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import pytz
from croniter import croniter

from verification_service.config import settings
from verification_service.utils.logging import get_logger

logger = get_logger(__name__)

JobFn = Callable[[], None]

# Upper bound on a single sleep so clock adjustments are picked up.
_MAX_IDLE_SECONDS = 60.0


class Scheduler(ABC):
    """Registry of keyed recurring jobs."""

    @abstractmethod
    def register_recurring(self, key: str, cron: str, fn: JobFn) -> None:
        """Register ``fn`` under ``key``, replacing any job already there."""

    @abstractmethod
    def cancel(self, key: str) -> bool:
        """Remove the job under ``key``; True if one was registered."""

    @abstractmethod
    def is_registered(self, key: str) -> bool:
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        ...

    def start(self) -> None:
        """Begin firing jobs. No-op for schedulers driven externally."""

    def shutdown(self, wait: bool = False) -> None:
        """Stop firing jobs."""


def next_fire_time(cron: str, after: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """Next time strictly after ``after`` matching ``cron`` in ``tz``."""
    base = after.astimezone(tz) if after.tzinfo else tz.localize(after)
    return croniter(cron, base).get_next(datetime)


@dataclass
class _Job:
    key: str
    cron: str
    fn: JobFn
    next_run: datetime
    token: int


class CronScheduler(Scheduler):
    """Thread-backed cron scheduler."""

    def __init__(
        self,
        timezone: Optional[str] = None,
        max_workers: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self._tz = pytz.timezone(timezone or settings.sync_timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers or settings.scheduler_max_workers,
            thread_name_prefix="scheduled-job",
        )
        self._jobs: Dict[str, _Job] = {}
        self._heap: List[Tuple[datetime, int, str]] = []
        self._tokens = itertools.count()
        self._condition = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def register_recurring(self, key: str, cron: str, fn: JobFn) -> None:
        if not croniter.is_valid(cron):
            raise ValueError(f"Invalid cron expression {cron!r} for job {key}")
        with self._condition:
            token = next(self._tokens)
            job = _Job(key=key, cron=cron, fn=fn, next_run=next_fire_time(cron, self._clock(), self._tz), token=token)
            self._jobs[key] = job
            heapq.heappush(self._heap, (job.next_run, token, key))
            self._condition.notify()
        logger.info("Registered job %s (%s), next run %s", key, cron, job.next_run.isoformat())

    def cancel(self, key: str) -> bool:
        with self._condition:
            removed = self._jobs.pop(key, None) is not None
        if removed:
            logger.info("Cancelled job %s", key)
        return removed

    def is_registered(self, key: str) -> bool:
        with self._condition:
            return key in self._jobs

    def keys(self) -> List[str]:
        with self._condition:
            return sorted(self._jobs)

    def next_run(self, key: str) -> Optional[datetime]:
        with self._condition:
            job = self._jobs.get(key)
            return job.next_run if job else None

    def run_pending(self, now: Optional[datetime] = None) -> List[str]:
        """Dispatch every job due at ``now`` and re-arm it. Returns the keys dispatched."""
        now = now or self._clock()
        due: List[_Job] = []
        with self._condition:
            while self._heap and self._heap[0][0] <= now:
                _, token, key = heapq.heappop(self._heap)
                job = self._jobs.get(key)
                if job is None or job.token != token:
                    continue
                due.append(job)
                job.token = next(self._tokens)
                job.next_run = next_fire_time(job.cron, now, self._tz)
                heapq.heappush(self._heap, (job.next_run, job.token, key))

        for job in due:
            self._executor.submit(self._run_job, job.key, job.fn)
        return [job.key for job in due]

    def start(self) -> None:
        with self._condition:
            if self._running:
                return
            self._running = True
        self._thread = threading.Thread(target=self._loop, name="cron-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler started with %s job(s)", len(self._jobs))

    def shutdown(self, wait: bool = False) -> None:
        with self._condition:
            self._running = False
            self._jobs.clear()
            self._heap.clear()
            self._condition.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        self._executor.shutdown(wait=wait)
        logger.info("Scheduler stopped")

    def _loop(self) -> None:
        while True:
            with self._condition:
                if not self._running:
                    return
            self.run_pending()
            with self._condition:
                if not self._running:
                    return
                timeout = _MAX_IDLE_SECONDS
                if self._heap:
                    timeout = min(timeout, max((self._heap[0][0] - self._clock()).total_seconds(), 0.0))
                self._condition.wait(timeout=timeout)

    @staticmethod
    def _run_job(key: str, fn: JobFn) -> None:
        try:
            fn()
        except Exception:  # noqa: BLE001
            logger.exception("Scheduled job %s failed", key)
