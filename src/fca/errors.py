"""
Typed failures raised by the fca client.

Every failure carries a ``kind`` tag, the HTTP status code when one was
received, and a body excerpt for diagnostics.
"""

from typing import Any, Optional

BODY_EXCERPT_LIMIT = 5000


def excerpt(body: Any) -> Any:
    """Truncate string bodies to the diagnostic limit; leave parsed bodies alone."""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        return body[:BODY_EXCERPT_LIMIT]
    return body


class FcaError(Exception):
    kind = "error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
        location: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = excerpt(body)
        self.location = location
        self.detail = detail

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"error": self.message, "kind": self.kind}
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.location:
            data["location"] = self.location
        return data


# ── Transient ────────────────────────────────────────────────


class RetryExhausted(FcaError):
    kind = "retry_exhausted"


class NetworkError(FcaError):
    kind = "network_error"


# ── Malformed responses ──────────────────────────────────────


class MalformedRedirect(FcaError):
    kind = "malformed_redirect"


class RedirectLoop(MalformedRedirect):
    kind = "redirect_loop"


class JsonParseError(FcaError):
    kind = "json_parse_error"


class HttpError(FcaError):
    kind = "http_error"


# ── Authentication ───────────────────────────────────────────


class AuthFailure(FcaError):
    """Session is no longer usable; an outer layer should re-authenticate."""

    kind = "auth_failure"


class LoginRedirect(AuthFailure):
    kind = "login_redirect"


class HtmlLoginPage(AuthFailure):
    kind = "html_login_page"


class HtmlLoginPageParseFail(AuthFailure):
    kind = "html_login_page_parse_fail"


class Checkpoint(AuthFailure):
    kind = "checkpoint"


class NotLoggedIn(AuthFailure):
    kind = "not_logged_in"


AUTH_FAILURES = {
    cls.kind: cls
    for cls in (LoginRedirect, HtmlLoginPage, HtmlLoginPageParseFail, Checkpoint, NotLoggedIn)
}


# ── Realtime channel ─────────────────────────────────────────


class NotConnected(FcaError):
    kind = "not_connected"


class PublishError(FcaError):
    kind = "publish_error"
