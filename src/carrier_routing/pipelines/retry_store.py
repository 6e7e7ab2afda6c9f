# src/carrier_routing/pipelines/retry_store.py
"""SQLAlchemy persistence for retry jobs.

One row per job. Several processes may share a store (the router enqueues,
a retry worker dequeues): every change is a row-level statement and a claim
is a single conditional UPDATE, so no process ever rewrites another's jobs.
"""
from __future__ import annotations

import datetime as dt
import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Union

from sqlalchemy import JSON, BigInteger, Integer, String, Text, create_engine, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from carrier_routing.pipelines.retry_queue import JobStatus, RetryJob

log = logging.getLogger("carrier_routing.pipelines.retry_store")

_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)
_MICROSECOND = dt.timedelta(microseconds=1)


class Base(DeclarativeBase):
    """Declarative base for the retry tables."""


class RetryJobModel(Base):
    """Persisted RetryJob. Timestamps are UTC microseconds since the epoch."""

    __tablename__ = "retry_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    job_type: Mapped[str] = mapped_column(String(128), index=True)
    payload: Mapped[dict] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(16), index=True, default=JobStatus.PENDING.value)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer)
    next_attempt_us: Mapped[int] = mapped_column(BigInteger, index=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    organization_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at_us: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    updated_at_us: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)


def to_us(value: Optional[dt.datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return (value - _EPOCH) // _MICROSECOND


def from_us(value: Optional[int]) -> Optional[dt.datetime]:
    return None if value is None else _EPOCH + dt.timedelta(microseconds=int(value))


def _to_job(row: RetryJobModel) -> RetryJob:
    return RetryJob(
        id=row.id,
        job_type=row.job_type,
        payload=dict(row.payload or {}),
        next_attempt=from_us(row.next_attempt_us),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        last_error=row.last_error,
        status=JobStatus(row.status),
        organization_id=row.organization_id,
        created_at=from_us(row.created_at_us),
        updated_at=from_us(row.updated_at_us),
    )


def _fill(row: RetryJobModel, job: RetryJob) -> RetryJobModel:
    row.job_type = job.job_type
    row.payload = job.payload
    row.status = job.status.value
    row.attempts = job.attempts
    row.max_attempts = job.max_attempts
    row.next_attempt_us = to_us(job.next_attempt)
    row.last_error = job.last_error
    row.organization_id = job.organization_id
    row.created_at_us = to_us(job.created_at)
    row.updated_at_us = to_us(job.updated_at)
    return row


def store_url(target: Union[str, Path]) -> str:
    """A database URL as-is; a filesystem path becomes a SQLite URL."""
    text = str(target)
    if "://" in text:
        return text
    return f"sqlite:///{Path(text).expanduser().resolve()}"


def _json_dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


class SqlRetryStore:
    """RetryStore over any SQLAlchemy database (SQLite file by default)."""

    def __init__(self, target: Union[str, Path, Engine]) -> None:
        if isinstance(target, Engine):
            self.engine = target
        else:
            if "://" not in str(target):
                Path(target).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
            url = store_url(target)
            connect_args = {"timeout": 30, "check_same_thread": False} if url.startswith("sqlite") else {}
            self.engine = create_engine(url, connect_args=connect_args, json_serializer=_json_dumps)
        Base.metadata.create_all(self.engine)
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)
        log.debug("Retry store ready: %s", self.engine.url.render_as_string(hide_password=True))

    def _session(self) -> Session:
        return self._sessions()

    def add(self, job: RetryJob) -> None:
        with self._session() as s, s.begin():
            s.add(_fill(RetryJobModel(id=job.id), job))

    def get(self, job_id: str) -> Optional[RetryJob]:
        with self._session() as s:
            row = s.get(RetryJobModel, job_id)
            return _to_job(row) if row is not None else None

    def update(self, job: RetryJob) -> None:
        with self._session() as s, s.begin():
            row = s.get(RetryJobModel, job.id)
            if row is None:
                raise KeyError(job.id)
            _fill(row, job)

    def claim(self, job_id: str, now: dt.datetime) -> Optional[RetryJob]:
        now_us = to_us(now)
        with self._session() as s, s.begin():
            result = s.execute(
                update(RetryJobModel)
                .where(
                    RetryJobModel.id == job_id,
                    RetryJobModel.status == JobStatus.PENDING.value,
                    RetryJobModel.next_attempt_us <= now_us,
                )
                .values(status=JobStatus.PROCESSING.value, updated_at_us=now_us)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            row = s.get(RetryJobModel, job_id)
            return _to_job(row)

    def due_ids(self, now: dt.datetime, limit: int) -> List[str]:
        stmt = (
            select(RetryJobModel.id)
            .where(RetryJobModel.status == JobStatus.PENDING.value,
                   RetryJobModel.next_attempt_us <= to_us(now))
            .order_by(RetryJobModel.next_attempt_us, RetryJobModel.created_at_us)
            .limit(limit)
        )
        with self._session() as s:
            return list(s.scalars(stmt))

    def reset_stale(self, now: dt.datetime, older_than: dt.timedelta) -> int:
        """Jobs stuck in `processing` since before `now - older_than` go back to pending."""
        cutoff = to_us(now - older_than)
        with self._session() as s, s.begin():
            result = s.execute(
                update(RetryJobModel)
                .where(RetryJobModel.status == JobStatus.PROCESSING.value,
                       func.coalesce(RetryJobModel.updated_at_us, 0) < cutoff)
                .values(status=JobStatus.PENDING.value, updated_at_us=to_us(now))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    def all(self) -> List[RetryJob]:
        with self._session() as s:
            return [_to_job(r) for r in s.scalars(select(RetryJobModel).order_by(RetryJobModel.created_at_us))]

    def close(self) -> None:
        self.engine.dispose()
