"""Append-only analytics sink and the audit trail that writes to it."""
from __future__ import annotations

import abc
import asyncio
import json
import threading
from dataclasses import asdict, replace
from datetime import datetime
from pathlib import Path
from typing import Any

from ..core.errors import AnalyticsWriteError
from ..core.models import AnalyticsRecord, EmergencyLog, new_record_id
from ..core.logging_utils import log_event


class BaseAnalyticsSink(abc.ABC):
    """Concurrent-writer-safe, append-only record sink."""

    @abc.abstractmethod
    def append(self, record: AnalyticsRecord) -> None:
        """Persist one record. Raise on failure so the caller can retry."""


class InMemoryAnalyticsSink(BaseAnalyticsSink):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[AnalyticsRecord] = []

    def append(self, record: AnalyticsRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self, record_type: type | None = None) -> list[AnalyticsRecord]:
        with self._lock:
            snapshot = list(self._records)
        if record_type is None:
            return snapshot
        return [record for record in snapshot if isinstance(record, record_type)]


class JsonlAnalyticsSink(BaseAnalyticsSink):
    """Appends one JSON object per record to a local file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, record: AnalyticsRecord) -> None:
        line = json.dumps(
            {"record_type": type(record).__name__, **asdict(record)},
            ensure_ascii=True,
            separators=(",", ":"),
            default=str,
        )
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        except OSError as err:
            raise AnalyticsWriteError(f"could not append to {self.path}: {err}") from err


def _record_summary(record: AnalyticsRecord) -> dict[str, Any]:
    return {"record_type": type(record).__name__, "record_id": record.record_id}


class AuditTrail:
    """
    Writes audit records to the analytics sink.

    Emergency logs are written inline with bounded retries and must land
    before the emergency response is returned. Everything else goes through a
    background queue and is best-effort relative to response delivery.
    """

    def __init__(
        self,
        sink: BaseAnalyticsSink,
        *,
        emergency_retries: int = 3,
        retry_backoff_s: float = 0.05,
        max_requeues: int = 3,
    ) -> None:
        if emergency_retries < 1:
            raise ValueError("emergency_retries must be at least 1")
        self.sink = sink
        self.emergency_retries = emergency_retries
        self.retry_backoff_s = retry_backoff_s
        self.max_requeues = max_requeues
        self._queue: asyncio.Queue[tuple[AnalyticsRecord, int]] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    async def write_emergency_log(self, record: EmergencyLog) -> bool:
        for attempt in range(1, self.emergency_retries + 1):
            try:
                # Awaited, so the write still lands before the response; the sink may block on I/O.
                await asyncio.to_thread(self.sink.append, record)
            except Exception as err:
                log_event(
                    component="audit_trail",
                    event="emergency_log_write_failed",
                    level="WARNING",
                    session_id=record.session_id,
                    details={"attempt": attempt, "error": str(err), **_record_summary(record)},
                )
                if attempt < self.emergency_retries:
                    await asyncio.sleep(self.retry_backoff_s * 2 ** (attempt - 1))
                continue
            log_event(
                component="audit_trail",
                event="emergency_log_written",
                session_id=record.session_id,
                details={"attempt": attempt, **_record_summary(record)},
            )
            return True

        log_event(
            component="audit_trail",
            event="emergency_log_lost",
            level="ERROR",
            session_id=record.session_id,
            details={"attempts": self.emergency_retries, "record": asdict(record)},
        )
        return False

    async def resolve_emergency(self, original: EmergencyLog, *, timestamp: datetime) -> EmergencyLog:
        """Append a resolution record that references ``original``; the original is never edited."""
        resolution = replace(
            original,
            timestamp=timestamp,
            status="resolved",
            resolves_record_id=original.record_id,
            record_id=new_record_id(),
        )
        await self.write_emergency_log(resolution)
        return resolution

    def _ensure_worker(self) -> asyncio.Queue[tuple[AnalyticsRecord, int]]:
        loop = asyncio.get_running_loop()
        # Queue and worker belong to one event loop; rebuild them if the loop changed.
        if self._queue is None or self._loop is not loop:
            self._queue = asyncio.Queue()
            self._worker = None
            self._loop = loop
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        return self._queue

    def submit(self, record: AnalyticsRecord) -> None:
        """Queue a record for background delivery. Must be called inside a running loop."""
        self._ensure_worker().put_nowait((record, 0))

    async def _deliver(self, record: AnalyticsRecord, requeues: int) -> None:
        try:
            await asyncio.to_thread(self.sink.append, record)
        except Exception as err:
            if requeues < self.max_requeues and self._queue is not None:
                log_event(
                    component="audit_trail",
                    event="analytics_write_requeued",
                    level="WARNING",
                    details={"requeues": requeues + 1, "error": str(err), **_record_summary(record)},
                )
                await asyncio.sleep(self.retry_backoff_s * 2 ** requeues)
                self._queue.put_nowait((record, requeues + 1))
                return
            log_event(
                component="audit_trail",
                event="analytics_write_dropped",
                level="ERROR",
                details={"error": str(err), **_record_summary(record)},
            )

    async def _drain(self) -> None:
        queue = self._queue
        assert queue is not None
        while True:
            record, requeues = await queue.get()
            try:
                await self._deliver(record, requeues)
            finally:
                queue.task_done()

    async def flush(self) -> None:
        """Wait until every queued record has been delivered or dropped."""
        if self._queue is None:
            return
        await self._queue.join()

    async def close(self) -> None:
        await self.flush()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        self._queue = None
        self._loop = None
