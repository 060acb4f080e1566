"""
Usage Recorder
==============

Writes one usage record per metered request outcome, off the request path.

Records go into a bounded queue consumed by a fixed pool of writer tasks.
Submitting never waits; when the queue is full the record is dropped and
logged. On shutdown ``drain()`` gives queued writes a bounded window to
finish before the workers are cancelled.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import structlog

from docgate.config import Settings
from docgate.models.db_models import UsageRecord, utcnow
from docgate.repositories import UsageStore


@dataclass(frozen=True)
class UsageEntry:
    """Immutable description of one request outcome."""
    user_id: str
    email: str
    operation_name: str
    endpoint: str
    auth_method: str
    success: bool
    credits_charged: int = 0
    error_message: Optional[str] = None
    processing_time_ms: int = 0
    method: str = "POST"
    request_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_model(self) -> UsageRecord:
        return UsageRecord(
            user_id=self.user_id,
            email=self.email,
            operation_name=self.operation_name,
            endpoint=self.endpoint,
            method=self.method,
            request_id=self.request_id,
            ip_address=self.ip_address,
            user_agent=(self.user_agent or "")[:500] or None,
            auth_method=self.auth_method,
            success=self.success,
            error_message=self.error_message,
            credits_charged=self.credits_charged,
            processing_time_ms=self.processing_time_ms,
            created_at=self.created_at,
        )


class UsageRecorder:
    """Bounded queue + worker pool in front of UsageStore.append."""

    def __init__(
        self,
        store: UsageStore,
        queue_size: int = 1000,
        workers: int = 2,
        write_timeout: float = 5.0,
        drain_timeout: float = 10.0,
        logger=None,
    ):
        self.store = store
        self.workers = max(1, workers)
        self.write_timeout = write_timeout
        self.drain_timeout = drain_timeout
        self.logger = logger or structlog.get_logger(__name__)
        self._queue: "asyncio.Queue[UsageEntry]" = asyncio.Queue(maxsize=queue_size)
        self._tasks: List[asyncio.Task] = []
        self.written = 0
        self.failed = 0
        self.dropped = 0

    @classmethod
    def from_settings(cls, store: UsageStore, settings: Settings, logger=None) -> "UsageRecorder":
        return cls(
            store,
            queue_size=settings.usage_queue_size,
            workers=settings.usage_workers,
            write_timeout=settings.usage_write_timeout,
            drain_timeout=settings.usage_drain_timeout,
            logger=logger,
        )

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"usage-writer-{i}")
            for i in range(self.workers)
        ]
        self.logger.info("Usage recorder started", workers=self.workers)

    def submit(self, entry: UsageEntry) -> bool:
        """Queue a record. Returns False if it had to be dropped."""
        try:
            self._queue.put_nowait(entry)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            self.logger.warning(
                "Usage queue full, dropping record",
                operation=entry.operation_name,
                user_id=entry.user_id,
                dropped=self.dropped,
            )
            return False

    async def flush(self) -> None:
        """Wait until every queued record has been written (or given up on)."""
        if not self.running:
            self.start()
        await self._queue.join()

    async def drain(self) -> None:
        """Flush within ``drain_timeout``, then stop the workers."""
        if self.running:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=self.drain_timeout)
            except asyncio.TimeoutError:
                self.logger.error("Usage drain timed out, records lost", pending=self.pending)

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self.logger.info("Usage recorder stopped", written=self.written, failed=self.failed, dropped=self.dropped)

    async def _worker(self, index: int) -> None:
        while True:
            entry = await self._queue.get()
            try:
                await asyncio.wait_for(self.store.append(entry.to_model()), timeout=self.write_timeout)
                self.written += 1
            except asyncio.TimeoutError:
                self.failed += 1
                self.logger.error("Usage write timed out", worker=index, operation=entry.operation_name)
            except Exception as e:
                self.failed += 1
                self.logger.error(
                    "Usage write failed",
                    worker=index,
                    operation=entry.operation_name,
                    error=str(e),
                )
            finally:
                self._queue.task_done()
