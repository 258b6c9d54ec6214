"""
Health counters for one session: errors, acks, pending edit bookkeeping.
"""

import threading
import time
from collections import Counter
from typing import Optional


class HealthMetrics:
    """Thread-safe counter bag shared by the classifier, tracker and channel."""

    def __init__(self):
        self._lock = threading.Lock()
        self.started_at = time.time()
        self.errors: Counter = Counter()
        self.last_error_type: Optional[str] = None
        self.last_error_at: Optional[float] = None
        self.acks_received = 0
        self.pending_edits = 0
        self.pending_edits_dropped = 0
        self.pending_edits_expired = 0
        self.edit_resends = 0
        self.edit_failed = 0
        self.delivery_attempts = 0
        self.delivery_success = 0

    def on_error(self, kind: str) -> None:
        with self._lock:
            self.errors[kind] += 1
            self.last_error_type = kind
            self.last_error_at = time.time()

    def on_ack(self) -> None:
        with self._lock:
            self.acks_received += 1

    def on_delivery(self, success: bool) -> None:
        with self._lock:
            self.delivery_attempts += 1
            if success:
                self.delivery_success += 1

    def track_pending(self, size: int) -> None:
        with self._lock:
            self.pending_edits = size

    def inc_edit_resent(self) -> None:
        with self._lock:
            self.edit_resends += 1

    def inc_edit_failed(self) -> None:
        with self._lock:
            self.edit_failed += 1

    def inc_edit_expired(self) -> None:
        with self._lock:
            self.pending_edits_expired += 1

    def inc_edit_dropped(self) -> None:
        with self._lock:
            self.pending_edits_dropped += 1

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "uptime_sec": round(time.time() - self.started_at, 3),
                "errors": dict(self.errors),
                "last_error_type": self.last_error_type,
                "acks_received": self.acks_received,
                "pending_edits": self.pending_edits,
                "pending_edits_dropped": self.pending_edits_dropped,
                "pending_edits_expired": self.pending_edits_expired,
                "edit_resends": self.edit_resends,
                "edit_failed": self.edit_failed,
                "delivery_attempts": self.delivery_attempts,
                "delivery_success": self.delivery_success,
            }
