# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Bounded per-server time-series store.

Producers call :meth:`MetricStore.ingest`, which never blocks: a sample is
either queued or rejected with :class:`BufferFullError`.  A single drain
task appends queued batches to the per-server series, and an eviction
task drops samples that fall out of the retention window.  Reads and
writes of the series map are serialised through one lock.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from platypus.config import CollectorConfig
from platypus.data.models import Sample, utcnow
from platypus.errors import BufferFullError, NotFoundError
from platypus.metrics.exporter import MetricGauges

logger = logging.getLogger(__name__)

DEFAULT_REGION = "default"


@dataclass
class ServerSeries:
    """Retained samples of one server in arrival order."""

    samples: list[Sample] = field(default_factory=list)
    last_update: Optional[datetime] = None


@dataclass(frozen=True)
class MetricBatch:
    """Unit of work passed through the ingestion buffer."""

    server_id: str
    samples: tuple[Sample, ...]
    received_at: datetime
    region: str = DEFAULT_REGION


class MetricStore:
    """Time-window store of :class:`Sample` records keyed by server id.

    Usage::

        store = MetricStore(CollectorConfig())
        store.ingest("srv-1", sample)      # non-blocking, may raise BufferFullError
        await store.flush()                # or let the drain task do it
        samples = await store.query("srv-1")
    """

    def __init__(self, config: CollectorConfig | None = None, clock=utcnow) -> None:
        self.config = config or CollectorConfig()
        self._clock = clock
        self._series: dict[str, ServerSeries] = {}
        self._buffer: asyncio.Queue[MetricBatch] = asyncio.Queue(maxsize=self.config.buffer_size)
        self._lock = asyncio.Lock()
        self.gauges = MetricGauges()
        self.rejected: int = 0

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def ingest(self, server_id: str, sample: Sample, region: str = DEFAULT_REGION) -> None:
        """Queue one sample for incorporation without blocking.

        Raises:
            ValueError: *sample* belongs to a different server.
            BufferFullError: the buffer holds ``buffer_size`` batches already.
        """
        if sample.server_id != server_id:
            raise ValueError(
                f"sample for {sample.server_id!r} cannot be filed under {server_id!r}"
            )
        batch = MetricBatch(
            server_id=server_id,
            samples=(sample,),
            received_at=self._clock(),
            region=region,
        )
        try:
            self._buffer.put_nowait(batch)
        except asyncio.QueueFull:
            self.rejected += 1
            logger.warning(
                "Metric buffer full (%d batches); rejected sample for %s",
                self.config.buffer_size, server_id,
            )
            raise BufferFullError(
                f"metric buffer is full ({self.config.buffer_size} batches)"
            ) from None

    def pending(self) -> int:
        """Number of batches waiting in the ingestion buffer."""
        return self._buffer.qsize()

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    async def query(self, server_id: str) -> list[Sample]:
        """Return a copy of the retained samples for *server_id*.

        Raises:
            NotFoundError: no sample has ever been incorporated for the server.
        """
        async with self._lock:
            series = self._series.get(server_id)
            if series is None:
                raise NotFoundError(f"no metrics found for server: {server_id}")
            return list(series.samples)

    async def server_ids(self) -> list[str]:
        """Identifiers of every server with an incorporated sample."""
        async with self._lock:
            return list(self._series)

    async def last_update(self, server_id: str) -> datetime:
        """Time the server's series last received a batch."""
        async with self._lock:
            series = self._series.get(server_id)
            if series is None or series.last_update is None:
                raise NotFoundError(f"no metrics found for server: {server_id}")
            return series.last_update

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    async def _incorporate(self, batches: list[MetricBatch]) -> None:
        async with self._lock:
            for batch in batches:
                series = self._series.setdefault(batch.server_id, ServerSeries())
                series.samples.extend(batch.samples)
                series.last_update = batch.received_at
        for batch in batches:
            for sample in batch.samples:
                self.gauges.observe(batch.server_id, batch.region, sample)
        logger.debug("Incorporated %d metric batches", len(batches))

    def _take_batch(self, first: MetricBatch | None = None) -> list[MetricBatch]:
        batches = [first] if first is not None else []
        while len(batches) < self.config.batch_size:
            try:
                batches.append(self._buffer.get_nowait())
            except asyncio.QueueEmpty:
                break
        return batches

    async def flush(self) -> int:
        """Incorporate everything currently queued; returns the batch count."""
        total = 0
        while True:
            batches = self._take_batch()
            if not batches:
                return total
            await self._incorporate(batches)
            total += len(batches)

    async def evict(self, now: datetime | None = None) -> int:
        """Drop samples older than ``now - retention_period``.

        Returns:
            The number of samples removed across all servers.
        """
        cutoff = (now or self._clock()) - self.config.retention_period
        dropped = 0
        async with self._lock:
            for series in self._series.values():
                kept = [s for s in series.samples if s.timestamp >= cutoff]
                dropped += len(series.samples) - len(kept)
                series.samples = kept
        if dropped:
            logger.info("Evicted %d samples older than %s", dropped, cutoff.isoformat())
        return dropped

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def run_drain(self, stop: asyncio.Event) -> None:
        """Drain the ingestion buffer until *stop* is set."""
        logger.info("Metric drain task started")
        while not stop.is_set():
            try:
                first = await asyncio.wait_for(self._buffer.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            await self._incorporate(self._take_batch(first))
        logger.info("Metric drain task stopped")

    def export_prometheus(self) -> bytes:
        """Text exposition of the per-server gauges."""
        return self.gauges.export()

    @property
    def retention_period(self) -> timedelta:
        return self.config.retention_period

    def __repr__(self) -> str:
        return (
            f"MetricStore(servers={len(self._series)}, pending={self.pending()}, "
            f"retention={self.config.retention_period})"
        )
