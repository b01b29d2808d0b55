"""Fixed-window per-client admission control."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from .config import QuotaDecision

logger = logging.getLogger(__name__)

# Bucket shared by every request whose client address could not be determined
UNKNOWN_CLIENT = "unknown"


@dataclass
class ClientQuotaRecord:
    """Request count for one client in its current window."""

    window_start: float
    count: int = 0


class FixedWindowRateLimiter:
    """Counts requests per client key in fixed windows.

    A record is created on a client's first request and reset once its
    window has elapsed. Expired records are swept opportunistically, at
    most once per ``cleanup_interval_seconds``, so memory stays bounded
    without a background task.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900.0,
        cleanup_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._clock = clock

        self._records: dict[str, ClientQuotaRecord] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()
        self.rejected_total = 0

    def admit(self, client_key: str | None, now: float | None = None) -> QuotaDecision:
        """Count one request for ``client_key`` and decide whether it may proceed."""
        key = client_key or UNKNOWN_CLIENT
        if now is None:
            now = self._clock()

        with self._lock:
            self._maybe_sweep(now)

            record = self._records.get(key)
            if record is None or now - record.window_start > self.window_seconds:
                record = ClientQuotaRecord(window_start=now)
                self._records[key] = record

            record.count += 1
            count = record.count
            reset_at = record.window_start + self.window_seconds
            allowed = count <= self.max_requests
            if not allowed:
                self.rejected_total += 1

        if not allowed:
            logger.warning(f"Rate limit exceeded for {key} ({count}/{self.max_requests})")

        return QuotaDecision(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_at=reset_at,
            retry_after=max(0, math.ceil(reset_at - now)),
        )

    def sweep(self, now: float | None = None) -> int:
        """Remove records whose window has expired. Returns how many were removed."""
        if now is None:
            now = self._clock()
        with self._lock:
            return self._sweep(now)

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self.cleanup_interval_seconds:
            self._sweep(now)

    def _sweep(self, now: float) -> int:
        expired = [
            key
            for key, record in self._records.items()
            if now - record.window_start > self.window_seconds
        ]
        for key in expired:
            del self._records[key]
        self._last_sweep = now
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit records")
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)

    def stats(self) -> dict:
        """Get rate limiter statistics."""
        return {
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "active_keys": len(self._records),
            "rejected_total": self.rejected_total,
        }
