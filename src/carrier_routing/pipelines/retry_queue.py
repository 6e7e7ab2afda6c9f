# src/carrier_routing/pipelines/retry_queue.py
from __future__ import annotations

import datetime as dt
import logging
import random
import threading
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from carrier_routing.utils.clock import Clock, SystemClock

log = logging.getLogger("carrier_routing.pipelines.retry_queue")

BACKOFF_BASE_SECONDS = 1.0
BACKOFF_CAP_SECONDS = 60.0
BACKOFF_JITTER = 0.10
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BATCH = 10
DEFAULT_INTERVAL_SECONDS = 5.0
# a worker that holds a job longer than this is presumed dead
STALE_PROCESSING_SECONDS = 600.0

Handler = Callable[[Dict[str, Any]], Union[bool, None]]


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def backoff_delay(
    attempt: int,
    *,
    base: float = BACKOFF_BASE_SECONDS,
    cap: float = BACKOFF_CAP_SECONDS,
    jitter: float = BACKOFF_JITTER,
    rng: Optional[random.Random] = None,
) -> float:
    """Seconds to wait before run number `attempt` (1-based): base*2^(attempt-1) plus up to `jitter`, capped."""
    n = max(1, int(attempt))
    delay = min(base * (2 ** (n - 1)), cap)
    r = (rng or random).random()
    return min(delay + delay * jitter * r, cap)


@dataclass
class RetryJob:
    job_type: str
    payload: Dict[str, Any]
    next_attempt: dt.datetime
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    last_error: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    organization_id: Optional[int] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


# --- Stores ----------------------------------------------------------------------

class RetryStore(Protocol):
    def add(self, job: RetryJob) -> None: ...
    def get(self, job_id: str) -> Optional[RetryJob]: ...
    def update(self, job: RetryJob) -> None: ...
    def claim(self, job_id: str, now: dt.datetime) -> Optional[RetryJob]: ...
    def due_ids(self, now: dt.datetime, limit: int) -> List[str]: ...
    def reset_stale(self, now: dt.datetime, older_than: dt.timedelta) -> int: ...
    def all(self) -> List[RetryJob]: ...


class InMemoryRetryStore:
    """Lock-guarded dict of jobs for a single process. Claims flip pending -> processing atomically."""

    def __init__(self) -> None:
        self._jobs: Dict[str, RetryJob] = {}
        self._lock = threading.Lock()

    def add(self, job: RetryJob) -> None:
        with self._lock:
            self._jobs[job.id] = replace(job)

    def get(self, job_id: str) -> Optional[RetryJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    def update(self, job: RetryJob) -> None:
        with self._lock:
            if job.id not in self._jobs:
                raise KeyError(job.id)
            self._jobs[job.id] = replace(job)

    def claim(self, job_id: str, now: dt.datetime) -> Optional[RetryJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status is not JobStatus.PENDING or job.next_attempt > now:
                return None
            job.status = JobStatus.PROCESSING
            job.updated_at = now
            return replace(job)

    def due_ids(self, now: dt.datetime, limit: int) -> List[str]:
        with self._lock:
            due = [j for j in self._jobs.values() if j.status is JobStatus.PENDING and j.next_attempt <= now]
            due.sort(key=lambda j: (j.next_attempt, j.created_at or j.next_attempt))
            return [j.id for j in due[:limit]]

    def reset_stale(self, now: dt.datetime, older_than: dt.timedelta) -> int:
        cutoff = now - older_than
        count = 0
        with self._lock:
            for job in self._jobs.values():
                if job.status is JobStatus.PROCESSING and (job.updated_at is None or job.updated_at < cutoff):
                    job.status = JobStatus.PENDING
                    job.updated_at = now
                    count += 1
        return count

    def all(self) -> List[RetryJob]:
        with self._lock:
            return [replace(j) for j in self._jobs.values()]


# --- Queue -----------------------------------------------------------------------

class RetryQueue:
    """Durable retry jobs dispatched by job_type to registered handlers."""

    def __init__(
        self,
        store: Optional[RetryStore] = None,
        *,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store if store is not None else InMemoryRetryStore()
        self.clock = clock or SystemClock()
        self.rng = rng or random.Random()
        self._handlers: Dict[str, Handler] = {}

    def register(self, job_type: str, handler: Handler) -> None:
        self._handlers[job_type] = handler

    def handles(self, job_type: str) -> bool:
        return job_type in self._handlers

    def delay_for(self, attempt: int) -> float:
        return backoff_delay(attempt, rng=self.rng)

    def enqueue(
        self,
        job_type: str,
        payload: Dict[str, Any],
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        organization_id: Optional[int] = None,
        last_error: Optional[str] = None,
    ) -> RetryJob:
        now = self.clock.now()
        job = RetryJob(
            job_type=job_type,
            payload=payload,
            next_attempt=now + dt.timedelta(seconds=self.delay_for(1)),
            max_attempts=max(1, int(max_attempts)),
            last_error=last_error,
            organization_id=organization_id,
            created_at=now,
            updated_at=now,
        )
        self.store.add(job)
        log.info("Enqueued retry job %s type=%s next_attempt=%s", job.id, job_type, job.next_attempt.isoformat())
        return job

    def process_job(self, job_id: str) -> Optional[RetryJob]:
        """Run one due job. Returns the updated job, or None if it was not claimable."""
        job = self.store.claim(job_id, self.clock.now())
        if job is None:
            return None

        handler = self._handlers.get(job.job_type)
        error: Optional[str] = None
        ok = False
        if handler is None:
            error = f"No handler registered for job type {job.job_type}"
        else:
            try:
                ok = handler(job.payload) is not False
                if not ok:
                    error = "Handler reported failure"
            except Exception as ex:  # handler failures count as attempts
                error = f"{type(ex).__name__}: {ex}"
                log.warning("Retry job %s (%s) raised: %s", job.id, job.job_type, error)

        now = self.clock.now()
        job.updated_at = now
        if ok:
            job.status = JobStatus.COMPLETED
            job.last_error = None
            log.info("Retry job %s (%s) completed", job.id, job.job_type)
        else:
            job.attempts += 1
            job.last_error = error
            if job.attempts >= job.max_attempts:
                job.status = JobStatus.FAILED
                log.warning("Retry job %s (%s) failed permanently after %d attempt(s): %s",
                            job.id, job.job_type, job.attempts, error)
            else:
                job.status = JobStatus.PENDING
                job.next_attempt = now + dt.timedelta(seconds=self.delay_for(job.attempts + 1))
                log.info("Retry job %s (%s) attempt %d failed; next at %s",
                         job.id, job.job_type, job.attempts, job.next_attempt.isoformat())
        self.store.update(job)
        return job

    def process_due(self, limit: int = DEFAULT_BATCH) -> List[RetryJob]:
        processed: List[RetryJob] = []
        for job_id in self.store.due_ids(self.clock.now(), limit):
            job = self.process_job(job_id)
            if job is not None:
                processed.append(job)
        return processed

    def recover_stale(self, older_than: float = STALE_PROCESSING_SECONDS) -> int:
        """Return jobs abandoned in `processing` by a dead worker to the pending pool."""
        count = self.store.reset_stale(self.clock.now(), dt.timedelta(seconds=older_than))
        if count:
            log.warning("Recovered %d stale retry job(s)", count)
        return count

    def stats(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in JobStatus}
        for job in self.store.all():
            counts[job.status.value] += 1
        return counts


class RetryScheduler:
    """Polls RetryQueue.process_due every `interval` seconds on a daemon thread."""

    def __init__(self, queue: RetryQueue, *, interval: float = DEFAULT_INTERVAL_SECONDS,
                 batch_size: int = DEFAULT_BATCH) -> None:
        self.queue = queue
        self.interval = interval
        self.batch_size = batch_size
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> List[RetryJob]:
        self.queue.recover_stale()
        return self.queue.process_due(self.batch_size)

    def _loop(self) -> None:
        log.info("Retry scheduler started (interval=%ss)", self.interval)
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                log.exception("Retry scheduler pass failed")
            self._stop.wait(self.interval)
        log.info("Retry scheduler stopped")

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="retry-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
