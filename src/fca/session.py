"""
Session context: cookies, signing tokens and sequence counters for one
authenticated connection.
"""

import threading
from typing import Callable, Iterable, Optional

from requests.cookies import RequestsCookieJar

from .health import HealthMetrics
from .types import IDENTITY_COOKIE, MESSENGER_DOMAIN, PRIMARY_DOMAIN, SigningTokens
from .utils import base36, get_from

ReauthHook = Callable[["Session"], bool]


class Session:
    """Mutable per-connection state shared by every call on that connection.

    Counters are allocated under a lock before any network I/O, so two
    concurrent calls never observe the same request or task number.
    """

    def __init__(
        self,
        user_id: str,
        jar: Optional[RequestsCookieJar] = None,
        tokens: Optional[SigningTokens] = None,
        revision: str = "",
        region: Optional[str] = None,
        reauth_hook: Optional[ReauthHook] = None,
    ):
        self.user_id = str(user_id)
        self.jar = jar if jar is not None else RequestsCookieJar()
        self.tokens = tokens
        self.revision = revision
        self.region = region
        self.reauth_hook = reauth_hook
        self.health = HealthMetrics()
        self._lock = threading.Lock()
        self._req_counter = 0
        self._ws_req_number = 0
        self._ws_task_number = 0
        self._reauth_in_flight = False

    @classmethod
    def from_html(
        cls, html: str, user_id: str, jar: Optional[RequestsCookieJar] = None, **kwargs
    ) -> "Session":
        """Build a session from a logged-in home page."""
        fb_dtsg = get_from(html, '"DTSGInitData",[],{"token":"', '",')
        revision = get_from(html, 'revision":', ",")
        tokens = SigningTokens.from_dtsg(fb_dtsg) if fb_dtsg else None
        return cls(user_id, jar=jar, tokens=tokens, revision=revision, **kwargs)

    @classmethod
    def from_app_state(cls, cookies: Iterable[dict], **kwargs) -> "Session":
        """Build a session from an exported cookie list.

        Each entry needs ``key`` (or ``name``) and ``value``; ``domain`` and
        ``path`` default to the primary domain and ``/``.
        """
        jar = RequestsCookieJar()
        user_id = kwargs.pop("user_id", None)
        for cookie in cookies:
            name = cookie.get("key") or cookie.get("name")
            if not name:
                continue
            domain = cookie.get("domain") or PRIMARY_DOMAIN
            if not domain.startswith("."):
                domain = "." + domain
            jar.set(name, cookie.get("value", ""), domain=domain, path=cookie.get("path", "/"))
            if name == IDENTITY_COOKIE and user_id is None:
                user_id = cookie.get("value")
        return cls(user_id or "", jar=jar, **kwargs)

    def app_state(self) -> list[dict[str, str]]:
        return [
            {"key": c.name, "value": c.value or "", "domain": c.domain, "path": c.path}
            for c in self.jar
        ]

    # ── Cookies ───────────────────────────────────────────

    def has_identity_cookie(self) -> bool:
        return any(
            c.name == IDENTITY_COOKIE and c.domain.endswith("facebook.com")
            for c in self.jar
        )

    def install_cookie(self, name: str, value: str, path: str = "/") -> None:
        """Set a cookie on both the primary and the messenger domain."""
        for domain in (PRIMARY_DOMAIN, MESSENGER_DOMAIN):
            self.jar.set(name, value, domain=domain, path=path or "/")

    # ── Tokens ────────────────────────────────────────────

    def refresh_tokens(self, fb_dtsg: str, jazoest: Optional[str] = None) -> SigningTokens:
        tokens = SigningTokens.from_dtsg(fb_dtsg)
        if jazoest:
            tokens = SigningTokens(fb_dtsg=fb_dtsg, jazoest=jazoest)
        self.tokens = tokens
        return tokens

    # ── Sequence counters ─────────────────────────────────

    def next_form_request(self) -> str:
        with self._lock:
            self._req_counter += 1
            return base36(self._req_counter)

    def next_realtime_ids(self) -> tuple[int, int]:
        """Allocate a (request_id, task_id) pair for one publish."""
        with self._lock:
            self._ws_req_number += 1
            self._ws_task_number += 1
            return self._ws_req_number, self._ws_task_number

    @property
    def request_number(self) -> int:
        return self._ws_req_number

    @property
    def task_number(self) -> int:
        return self._ws_task_number

    def with_defaults(self, form: Optional[dict] = None) -> dict:
        """Merge the signed form fields; caller values only fill empty defaults."""
        merged: dict[str, object] = {
            "__user": self.user_id,
            "__req": self.next_form_request(),
            "__rev": self.revision,
            "__a": 1,
            "fb_dtsg": self.tokens.fb_dtsg if self.tokens else "",
            "jazoest": self.tokens.jazoest if self.tokens else "",
        }
        for key, value in (form or {}).items():
            if not merged.get(key):
                merged[key] = value
        return merged

    # ── Re-authentication guard ───────────────────────────

    def begin_reauth(self) -> bool:
        """Claim the re-authentication slot. False if one is already running."""
        with self._lock:
            if self._reauth_in_flight:
                return False
            self._reauth_in_flight = True
            return True

    def end_reauth(self) -> None:
        with self._lock:
            self._reauth_in_flight = False

    @property
    def reauth_in_flight(self) -> bool:
        return self._reauth_in_flight
