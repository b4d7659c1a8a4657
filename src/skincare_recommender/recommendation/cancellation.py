"""
cancellation.py

Request-scoped cancellation / deadline token.

One token is created per recommendation request and handed to every
component that talks to the knowledge graph or the catalog.

  cancel()            terminal; the next check raises RequestCancelled
  deadline expiry     graph calls raise DeadlineExceeded (a transient
                      failure), so the chain degrades to the catalog tiers
                      instead of aborting

Catalog queries only honour cancel(); once the deadline has passed they are
bounded by the client-wide PostgREST timeout.
"""
from __future__ import annotations

import threading
import time
from typing import Optional

from src.skincare_recommender.recommendation.errors import DeadlineExceeded, RequestCancelled


class CancellationToken:
    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline: Optional[float] = None
        if timeout is not None:
            self._deadline = time.monotonic() + float(timeout)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self, default: float) -> float:
        """Seconds an external call may take: min(default, time left)."""
        if self._deadline is None:
            return default
        return max(0.0, min(default, self._deadline - time.monotonic()))

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelled("Recommendation request was cancelled")

    def raise_if_expired(self) -> None:
        """Cancellation first, then the deadline."""
        self.raise_if_cancelled()
        if self.expired:
            raise DeadlineExceeded("Recommendation request deadline exceeded")
