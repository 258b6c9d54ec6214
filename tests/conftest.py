"""
Shared fixtures for the fca test suite.
"""

import random
from unittest.mock import MagicMock

import pytest

from fca.session import Session
from fca.types import SigningTokens


USER_ID = "100001234567890"


# ── Session fixtures ─────────────────────────────────────────

@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def tokens():
    return SigningTokens.from_dtsg("AQHabc:123")


@pytest.fixture
def session(tokens):
    s = Session(USER_ID, tokens=tokens, revision="1012345678")
    s.jar.set("c_user", USER_ID, domain=".facebook.com", path="/")
    s.jar.set("xs", "secret-xs", domain=".facebook.com", path="/")
    return s


@pytest.fixture
def anonymous_session():
    return Session("")


@pytest.fixture
def app_state():
    return [
        {"key": "c_user", "value": USER_ID, "domain": "facebook.com", "path": "/"},
        {"key": "xs", "value": "secret-xs", "domain": ".facebook.com", "path": "/"},
        {"name": "datr", "value": "datr-value", "domain": ".facebook.com"},
    ]


# ── Mock response factory ────────────────────────────────────

def _make_response(
    status=200,
    text="",
    headers=None,
    method="GET",
    url="https://www.facebook.com/ajax/test.php",
    content_type="application/x-www-form-urlencoded",
    body="a=1",
):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.headers = headers or {}
    resp.cookies = []
    resp.url = url
    resp.request.method = method
    resp.request.url = url
    resp.request.headers = {"Content-Type": content_type} if content_type else {}
    resp.request.body = body
    return resp


@pytest.fixture
def make_response():
    return _make_response


@pytest.fixture
def rng():
    return random.Random(1234)


# ── Deterministic time ───────────────────────────────────────

class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeScheduler:
    """Collects timers and fires them in due order when time is advanced."""

    def __init__(self, clock):
        self.clock = clock
        self.timers = []

    def __call__(self, delay_sec, callback):
        self.timers.append((self.clock.now + round(delay_sec * 1000, 6), callback))

    def advance_to(self, t_ms):
        while True:
            due = sorted((t for t in self.timers if t[0] <= t_ms), key=lambda t: t[0])
            if not due:
                break
            timer = due[0]
            self.timers.remove(timer)
            self.clock.now = timer[0]
            timer[1]()
        self.clock.now = t_ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)
