"""
Safety advisor: per-identity risk tiers and human-like delay suggestions.

Advisory only. Nothing here blocks or cancels a request; callers decide
whether to wait.
"""

import enum
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

HALVE_AFTER_REQUESTS = 100
MIN_DELAY_MS = 200

# (min_ms, max_ms) per action class
HUMAN_DELAYS = {
    "typing": (800, 2000),
    "reading": (1000, 3000),
    "thinking": (2000, 5000),
    "browsing": (500, 1500),
}


class RiskTier(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


RISK_MULTIPLIERS = {RiskTier.LOW: 1.0, RiskTier.MEDIUM: 1.5, RiskTier.HIGH: 2.5}
# Minimum idle time before a non-low tier may act again
IDLE_REQUIRED_MS = {RiskTier.LOW: 0, RiskTier.MEDIUM: 3000, RiskTier.HIGH: 10000}


@dataclass
class RiskSession:
    request_count: int = 0
    error_count: int = 0
    last_activity_ms: Optional[float] = None
    tier: RiskTier = RiskTier.LOW

    @property
    def error_rate(self) -> float:
        return self.error_count / max(1, self.request_count)


class RiskStore:
    """Identity -> RiskSession, created lazily."""

    def __init__(self):
        self._sessions: dict[str, RiskSession] = {}
        self._lock = threading.Lock()

    def get(self, identity: str) -> RiskSession:
        with self._lock:
            session = self._sessions.get(identity)
            if session is None:
                session = self._sessions[identity] = RiskSession()
            return session

    def __contains__(self, identity: object) -> bool:
        return identity in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def _wall_ms() -> float:
    return time.time() * 1000


class SafetyAdvisor:
    def __init__(
        self,
        store: RiskStore,
        clock: Callable[[], float] = _wall_ms,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self._clock = clock
        self._rng = rng or random.Random()

    def _idle_ms(self, session: RiskSession) -> Optional[float]:
        if session.last_activity_ms is None:
            return None
        return self._clock() - session.last_activity_ms

    def assess_risk(self, identity: str) -> RiskTier:
        session = self.store.get(identity)
        idle = self._idle_ms(session)
        rate = session.error_rate

        if rate > 0.3 or (idle is not None and idle < 1000):
            session.tier = RiskTier.HIGH
        elif rate > 0.1 or (idle is not None and idle < 3000):
            session.tier = RiskTier.MEDIUM
        else:
            session.tier = RiskTier.LOW
        return session.tier

    def is_safe_to_execute(self, identity: str, action: str = "browsing") -> bool:
        tier = self.assess_risk(identity)
        if tier is RiskTier.LOW:
            return True
        idle = self._idle_ms(self.store.get(identity))
        return idle is None or idle >= IDLE_REQUIRED_MS[tier]

    def get_safe_delay(self, identity: str, action: str = "browsing") -> int:
        """Suggested wait in milliseconds before the next action of this class."""
        tier = self.assess_risk(identity)
        low, high = HUMAN_DELAYS.get(action, HUMAN_DELAYS["browsing"])
        multiplier = RISK_MULTIPLIERS[tier]

        base = self._rng.uniform(low * multiplier, high * multiplier)
        jitter = base * 0.1 * (self._rng.random() - 0.5)
        return max(MIN_DELAY_MS, int(base + jitter))

    def record_activity(self, identity: str, error: bool = False) -> RiskSession:
        session = self.store.get(identity)
        session.request_count += 1
        session.last_activity_ms = self._clock()
        if error:
            session.error_count += 1

        if session.request_count > HALVE_AFTER_REQUESTS:
            session.request_count //= 2
            session.error_count //= 2
        return session


class AccessPolicy:
    """Allow/block lists of identities the client may act on."""

    def __init__(
        self,
        allow: Optional[Iterable[str]] = None,
        block: Optional[Iterable[str]] = None,
    ):
        self.allow = frozenset(allow) if allow is not None else None
        self.block = frozenset(block or ())

    def is_allowed(self, identity: str) -> bool:
        if identity in self.block:
            return False
        if self.allow is not None and identity not in self.allow:
            return False
        return True
