"""
Pending edit tracker.

Edits go out over a fire-and-forget publish channel, so each one is kept in
a bounded, insertion-ordered map until its acknowledgment arrives. A
watchdog re-publishes unacknowledged edits until they are acked, expire, or
run out of attempts. A missing record means the edit was acknowledged (or
dropped); there is no explicit acked state.
"""

import enum
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .health import HealthMetrics
from .types import EditSettings

logger = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], None]], Any]


class EditState(enum.Enum):
    QUEUED = "queued"
    EXPIRED = "expired"
    FAILED = "failed"
    EVICTED = "evicted"


@dataclass
class PendingEdit:
    message_id: str
    text: str
    created_ms: float
    attempts: int = 0


def monotonic_ms() -> float:
    return time.monotonic() * 1000


def timer_scheduler(delay_sec: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay_sec, callback)
    timer.daemon = True
    timer.start()
    return timer


class PendingEdits:
    def __init__(
        self,
        settings: Optional[EditSettings] = None,
        clock: Callable[[], float] = monotonic_ms,
        scheduler: Scheduler = timer_scheduler,
        health: Optional[HealthMetrics] = None,
        on_drop: Optional[Callable[[PendingEdit, EditState], None]] = None,
    ):
        self.settings = settings or EditSettings()
        self._clock = clock
        self._scheduler = scheduler
        self._health = health
        self._on_drop = on_drop
        self._records: "OrderedDict[str, PendingEdit]" = OrderedDict()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._records

    @property
    def size(self) -> int:
        return len(self._records)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def get(self, message_id: str) -> Optional[PendingEdit]:
        return self._records.get(message_id)

    def insert(self, message_id: str, text: str) -> PendingEdit:
        """Store a new edit with zero attempts, evicting the oldest when full."""
        evicted = None
        with self._lock:
            if message_id not in self._records and len(self._records) >= self.settings.max_pending_edits:
                _, evicted = self._records.popitem(last=False)
            self._records.pop(message_id, None)
            record = PendingEdit(message_id=message_id, text=text, created_ms=self._clock())
            self._records[message_id] = record
            size = len(self._records)

        if evicted is not None:
            logger.warning("Pending edit buffer full, dropped %s", evicted.message_id)
            self._dropped(evicted, EditState.EVICTED)
        self._track(size)
        return record

    def remove(self, message_id: str) -> Optional[PendingEdit]:
        with self._lock:
            record = self._records.pop(message_id, None)
            size = len(self._records)
        if record is not None:
            self._track(size)
        return record

    # ── Watchdog ──────────────────────────────────────────

    def watch(self, message_id: str, resend: Callable[[PendingEdit], None]) -> None:
        """Arm the acknowledgment watchdog for the current record of one edit.

        The watchdog follows that record only. Re-inserting the key replaces
        the record, and the old chain stops on its next pass.
        """
        record = self.get(message_id)
        if record is None:
            return
        delay = self.settings.ack_timeout_ms / 1000

        def fire() -> None:
            if self.check(message_id, resend, record) is EditState.QUEUED:
                self._scheduler(delay, fire)

        self._scheduler(delay, fire)

    def check(
        self,
        message_id: str,
        resend: Callable[[PendingEdit], None],
        expected: Optional[PendingEdit] = None,
    ) -> Optional[EditState]:
        """Run one watchdog pass. Returns None when the record is gone or replaced."""
        with self._lock:
            record = self._records.get(message_id)
            if record is None or (expected is not None and record is not expected):
                return None

            age = self._clock() - record.created_ms
            if age > self.settings.edit_ttl_ms:
                del self._records[message_id]
                state = EditState.EXPIRED
            elif record.attempts >= self.settings.max_resend_attempts:
                del self._records[message_id]
                state = EditState.FAILED
            else:
                record.attempts += 1
                state = EditState.QUEUED
            size = len(self._records)

        if state is not EditState.QUEUED:
            logger.warning(
                "Edit %s %s after %s attempts", message_id, state.value, record.attempts
            )
            self._dropped(record, state)
            self._track(size)
            return state

        if self._health:
            self._health.inc_edit_resent()
        try:
            resend(record)
        except Exception as exc:
            logger.error("Resend of edit %s failed: %s", message_id, exc)
            if self._health:
                self._health.on_error("edit_resend_exception")
        return state

    # ── Bookkeeping ───────────────────────────────────────

    def _dropped(self, record: PendingEdit, state: EditState) -> None:
        if self._health:
            if state is EditState.EXPIRED:
                self._health.inc_edit_expired()
            elif state is EditState.FAILED:
                self._health.inc_edit_failed()
            else:
                self._health.inc_edit_dropped()
        if self._on_drop:
            self._on_drop(record, state)

    def _track(self, size: int) -> None:
        if self._health:
            self._health.track_pending(size)
