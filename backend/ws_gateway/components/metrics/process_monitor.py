"""
Process Monitor.

Samples the server process on a fixed interval: resident memory, CPU usage,
system load and event loop responsiveness. Samples are kept in a bounded
history for the /api/health/metrics endpoint, and any sample over a
configured threshold is logged as a warning.

Event loop lag is how late the sampler woke up compared to its scheduled
interval; latency is the round trip of a bare ``asyncio.sleep(0)``.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import psutil

from shared.config.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProcessSample:
    """One point of process metrics."""

    timestamp: datetime
    rss_bytes: int
    vms_bytes: int
    memory_percent: float
    cpu_percent: float
    load_average: tuple[float, float, float]
    loop_latency_ms: float
    loop_lag_ms: float
    uptime: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "memory": {
                "rss": self.rss_bytes,
                "vms": self.vms_bytes,
                "percent": round(self.memory_percent, 2),
            },
            "cpu": {
                "usage": round(self.cpu_percent, 2),
                "loadAvg": list(self.load_average),
            },
            "eventLoop": {
                "latency": round(self.loop_latency_ms, 3),
                "lag": round(self.loop_lag_ms, 3),
            },
            "uptime": round(self.uptime, 1),
        }


class ProcessMonitor:
    """
    Periodic sampler of process health.

    Usage:
        monitor = ProcessMonitor(interval=5.0)
        monitor.start()
        ...
        recent = monitor.samples(minutes=5)
        await monitor.stop()
    """

    def __init__(
        self,
        interval: float = 5.0,
        history_size: int = 1000,
        memory_threshold_percent: float = 85.0,
        cpu_threshold_percent: float = 80.0,
        lag_threshold_ms: float = 100.0,
    ):
        """
        Args:
            interval: Seconds between samples.
            history_size: Samples kept; the oldest are dropped first.
            memory_threshold_percent: Warn when RSS exceeds this share of system memory.
            cpu_threshold_percent: Warn when process CPU usage exceeds this.
            lag_threshold_ms: Warn when the sampler wakes up this much late.
        """
        self._interval = interval
        self._memory_threshold = memory_threshold_percent
        self._cpu_threshold = cpu_threshold_percent
        self._lag_threshold = lag_threshold_ms

        self._process = psutil.Process()
        # First cpu_percent call only primes the counters and returns 0.0
        self._process.cpu_percent(interval=None)
        self._started = time.monotonic()

        self._samples: deque[ProcessSample] = deque(maxlen=history_size)
        self._task: asyncio.Task | None = None

        # Metrics
        self._threshold_warnings = 0
        self._failed_samples = 0

    @property
    def interval(self) -> float:
        return self._interval

    # =========================================================================
    # Sampling
    # =========================================================================

    async def collect(self, lag_ms: float = 0.0) -> ProcessSample | None:
        """
        Take one sample, append it to the history and check thresholds.

        Returns:
            The sample, or None when the process could not be read.
        """
        started = time.perf_counter()
        await asyncio.sleep(0)
        latency_ms = (time.perf_counter() - started) * 1000

        try:
            with self._process.oneshot():
                memory = self._process.memory_info()
                memory_percent = self._process.memory_percent()
                cpu_percent = self._process.cpu_percent(interval=None)
            load_average = psutil.getloadavg()
        except (psutil.Error, OSError) as e:
            self._failed_samples += 1
            logger.warning("Failed to read process metrics", error=str(e))
            return None

        sample = ProcessSample(
            timestamp=datetime.now(timezone.utc),
            rss_bytes=memory.rss,
            vms_bytes=memory.vms,
            memory_percent=memory_percent,
            cpu_percent=cpu_percent,
            load_average=tuple(round(v, 2) for v in load_average),
            loop_latency_ms=latency_ms,
            loop_lag_ms=lag_ms,
            uptime=time.monotonic() - self._started,
        )
        self._samples.append(sample)
        self._check_thresholds(sample)
        return sample

    def _check_thresholds(self, sample: ProcessSample) -> None:
        if sample.memory_percent > self._memory_threshold:
            self._threshold_warnings += 1
            logger.warning(
                "High memory usage detected",
                memory_percent=round(sample.memory_percent, 2),
                threshold=self._memory_threshold,
                rss_bytes=sample.rss_bytes,
            )
        if sample.cpu_percent > self._cpu_threshold:
            self._threshold_warnings += 1
            logger.warning(
                "High CPU usage detected",
                cpu_percent=round(sample.cpu_percent, 2),
                threshold=self._cpu_threshold,
            )
        if sample.loop_lag_ms > self._lag_threshold:
            self._threshold_warnings += 1
            logger.warning(
                "High event loop lag detected",
                lag_ms=round(sample.loop_lag_ms, 1),
                threshold=self._lag_threshold,
            )

    # =========================================================================
    # Queries
    # =========================================================================

    def latest(self) -> ProcessSample | None:
        return self._samples[-1] if self._samples else None

    def samples(self, minutes: float = 5) -> list[ProcessSample]:
        """Samples taken within the last ``minutes``, oldest first."""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes)
        return [s for s in self._samples if s.timestamp > cutoff]

    def health_status(self) -> dict[str, Any]:
        """Latest sample summary; status is "unknown" until the first sample."""
        sample = self.latest()
        if sample is None:
            return {"status": "unknown", "timestamp": datetime.now(timezone.utc).isoformat()}

        over = (
            sample.memory_percent > self._memory_threshold
            or sample.cpu_percent > self._cpu_threshold
            or sample.loop_lag_ms > self._lag_threshold
        )
        return {
            "status": "degraded" if over else "healthy",
            "timestamp": sample.timestamp.isoformat(),
            "metrics": sample.to_dict(),
        }

    def get_stats(self) -> dict[str, Any]:
        return {
            "samples": len(self._samples),
            "interval_seconds": self._interval,
            "threshold_warnings": self._threshold_warnings,
            "failed_samples": self._failed_samples,
            "running": self._task is not None and not self._task.done(),
        }

    # =========================================================================
    # Background sampling
    # =========================================================================

    def start(self) -> None:
        """Start the periodic sampling task."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._sample_loop(), name="process_monitor")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _sample_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                scheduled = loop.time() + self._interval
                await asyncio.sleep(self._interval)
                lag_ms = max(0.0, (loop.time() - scheduled) * 1000)
                await self.collect(lag_ms)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error collecting process metrics", error=str(e), exc_info=True)
