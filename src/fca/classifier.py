"""
Response classifier.

Turns one HTTP response into exactly one classified outcome, applying the
cookie and token refresh side effects that successful bodies carry.
``resolve`` drives the outcomes in a bounded loop: it sleeps and replays on
server errors, follows redirects, and raises typed failures for everything
the caller has to handle.
"""

import json
import logging
import random
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union
from urllib.parse import urljoin

import requests

from .errors import (
    AUTH_FAILURES,
    FcaError,
    HttpError,
    JsonParseError,
    MalformedRedirect,
    RedirectLoop,
    RetryExhausted,
    excerpt,
)
from .session import Session
from .transport import Transport
from .utils import make_parsable

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
MAX_REDIRECTS = 10
RETRY_DELAY_MAX_MS = 5000

NOT_LOGGED_IN_CODES = frozenset({1357001, 1357004})

_LOGIN_LOCATION = re.compile(r"checkpoint|login|recover", re.I)
_JSON_LOGIN_REDIRECT = re.compile(r"checkpoint|login", re.I)
_HTML_DOCUMENT = re.compile(r"<html[\s\S]*</html>", re.I)
_HTML_LOGIN_MARKERS = re.compile(
    r"login|checkpoint|password|m_faceweb|m\.facebook\.com/login", re.I
)
_LOGIN_FORM_MARKERS = re.compile(r"login_form|checkpointSubmitButton|memorialized", re.I)


# ── Outcomes ─────────────────────────────────────────────────


@dataclass(frozen=True)
class Success:
    body: Any


@dataclass(frozen=True)
class Retry:
    delay_ms: int


@dataclass(frozen=True)
class Redirect:
    location: str
    reset_retries: bool = False


@dataclass(frozen=True)
class AuthOutcome:
    kind: str
    message: str
    status_code: Optional[int] = None
    body: Any = None
    location: Optional[str] = None


@dataclass(frozen=True)
class MalformedBody:
    snippet: str
    detail: str
    status_code: Optional[int] = None


Outcome = Union[Success, Retry, Redirect, AuthOutcome, MalformedBody]


def _start_daemon(target: Callable[[], None]) -> None:
    threading.Thread(target=target, name="fca-reauth", daemon=True).start()


def _location(response: requests.Response) -> Optional[str]:
    headers = response.headers or {}
    return headers.get("location") or headers.get("Location")


def _absolute(response: requests.Response, location: str) -> str:
    """Resolve a possibly relative redirect target against the request URL."""
    for base in (response.url, getattr(response.request, "url", None)):
        if isinstance(base, str) and base:
            return urljoin(base, location)
    return location


def _objects(body: Any) -> list:
    if isinstance(body, dict):
        return [body]
    if isinstance(body, list):
        return [item for item in body if isinstance(item, dict)]
    return []


class ResponseClassifier:
    def __init__(
        self,
        session: Session,
        transport: Transport,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        spawn: Callable[[Callable[[], None]], None] = _start_daemon,
        max_retries: int = MAX_RETRIES,
        max_redirects: int = MAX_REDIRECTS,
    ):
        self._session = session
        self._transport = transport
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._spawn = spawn
        self._max_retries = max_retries
        self._max_redirects = max_redirects

    # ── Single step ───────────────────────────────────────

    def classify(self, response: requests.Response, retry_count: int = 0) -> Outcome:
        """Classify one response.

        Raises RetryExhausted, MalformedRedirect or HttpError for fatal
        statuses; every other condition is returned as an outcome.
        """
        status = response.status_code
        text = response.text or ""
        logger.debug("classify status=%s body=%.500s", status, text)

        if 500 <= status < 600:
            if retry_count >= self._max_retries:
                raise RetryExhausted(
                    "Request retry failed. Check status_code and body.",
                    status_code=status,
                    body=text,
                )
            return Retry(delay_ms=int(self._rng.uniform(0, RETRY_DELAY_MAX_MS)))

        if 300 <= status < 400:
            location = _location(response)
            if not location:
                raise MalformedRedirect(
                    f"Redirect ({status}) without location header.",
                    status_code=status,
                    body=text,
                )
            if _LOGIN_LOCATION.search(location):
                return AuthOutcome(
                    "login_redirect",
                    f"Redirected to login/checkpoint: {location}",
                    status_code=status,
                    body=text,
                    location=location,
                )
            return Redirect(_absolute(response, location))

        if status != 200:
            raise HttpError(f"Got status code: {status}.", status_code=status, body=text)

        if _HTML_DOCUMENT.search(text) and _HTML_LOGIN_MARKERS.search(text):
            return AuthOutcome(
                "html_login_page",
                "Received HTML login/checkpoint page instead of JSON (session likely invalid).",
                status_code=status,
                body=excerpt(text),
            )

        try:
            body = json.loads(make_parsable(text))
        except ValueError as exc:
            if _LOGIN_FORM_MARKERS.search(text):
                return AuthOutcome(
                    "html_login_page_parse_fail",
                    "Login/checkpoint HTML returned instead of JSON.",
                    status_code=status,
                    body=excerpt(text),
                )
            logger.error("JSON parsing failed: %.500s", text)
            return MalformedBody(snippet=excerpt(text), detail=str(exc), status_code=status)

        method = getattr(response.request, "method", None)
        if isinstance(body, dict) and body.get("redirect") and method == "GET":
            target = body["redirect"]
            if _JSON_LOGIN_REDIRECT.search(target):
                return AuthOutcome(
                    "login_redirect",
                    f"Redirected to login/checkpoint (JSON redirect): {target}",
                    status_code=status,
                    body=body,
                    location=target,
                )
            return Redirect(_absolute(response, target), reset_retries=True)

        for obj in _objects(body):
            self._apply_side_effects(obj)

        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(body, dict) and (
            (isinstance(error, int) and error in NOT_LOGGED_IN_CODES)
            or body.get("errorSummary") == "login required"
        ):
            self._trigger_reauth()
            return AuthOutcome(
                "not_logged_in", "Not logged in.", status_code=status, body=body
            )

        return Success(body)

    # ── Driver ────────────────────────────────────────────

    def resolve(self, response: requests.Response) -> Any:
        """Classify until a terminal outcome; return the parsed body or raise."""
        retries = 0
        redirects = 0
        while True:
            try:
                outcome = self.classify(response, retries)
            except FcaError as exc:
                self._session.health.on_error(exc.kind)
                raise

            if isinstance(outcome, Success):
                return outcome.body

            if isinstance(outcome, Retry):
                retries += 1
                logger.warning(
                    "Got status code %s - retrying in %sms (attempt %s/%s)",
                    response.status_code,
                    outcome.delay_ms,
                    retries,
                    self._max_retries,
                )
                if response.request is None:
                    raise FcaError("Invalid request object", status_code=response.status_code)
                self._sleep(outcome.delay_ms / 1000)
                response = self._transport.replay(response.request)
                continue

            if isinstance(outcome, Redirect):
                redirects += 1
                if redirects > self._max_redirects:
                    exc = RedirectLoop(
                        f"More than {self._max_redirects} redirects.",
                        status_code=response.status_code,
                        location=outcome.location,
                    )
                    self._session.health.on_error(exc.kind)
                    raise exc
                if outcome.reset_retries:
                    retries = 0
                logger.warning("Following redirect -> %s", outcome.location)
                response = self._transport.get(outcome.location)
                continue

            exc = self.to_error(outcome)
            self._session.health.on_error(exc.kind)
            raise exc

    @staticmethod
    def to_error(outcome: Union[AuthOutcome, MalformedBody]) -> FcaError:
        if isinstance(outcome, MalformedBody):
            return JsonParseError(
                "Failed to parse JSON response.",
                status_code=outcome.status_code,
                body=outcome.snippet,
                detail=outcome.detail,
            )
        cls = AUTH_FAILURES[outcome.kind]
        return cls(
            outcome.message,
            status_code=outcome.status_code,
            body=outcome.body,
            location=outcome.location,
        )

    # ── Side effects ──────────────────────────────────────

    def _apply_side_effects(self, body: dict) -> None:
        jsmods = body.get("jsmods")
        require = jsmods.get("require") if isinstance(jsmods, dict) else None
        if not isinstance(require, list) or not require:
            return

        first = require[0]
        args = first[3] if isinstance(first, list) and len(first) > 3 else None
        if isinstance(args, list) and len(args) >= 2 and first[0] == "Cookie":
            name = str(args[0]).replace("_js_", "", 1)
            path = args[3] if len(args) > 3 and args[3] else "/"
            self._session.install_cookie(name, str(args[1]), path)
            logger.debug("Installed cookie %s from response", name)

        for entry in require:
            if (
                isinstance(entry, list)
                and len(entry) > 3
                and entry[0] == "DTSG"
                and entry[1] == "setToken"
                and isinstance(entry[3], list)
                and entry[3]
                and isinstance(entry[3][0], str)
            ):
                self._session.refresh_tokens(entry[3][0])
                logger.debug("Signing token refreshed from response")

    def _trigger_reauth(self) -> None:
        hook = self._session.reauth_hook
        if hook is None:
            return
        if not self._session.begin_reauth():
            logger.debug("Re-authentication already in flight")
            return

        session = self._session

        def run() -> None:
            try:
                if hook(session):
                    logger.info("Re-authentication succeeded")
                else:
                    logger.error("Re-authentication failed; check the account")
                    session.health.on_error("reauth_failed")
            except Exception:
                logger.exception("Re-authentication hook raised")
                session.health.on_error("reauth_failed")
            finally:
                session.end_reauth()

        self._spawn(run)
