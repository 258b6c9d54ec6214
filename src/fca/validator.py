"""
Session validation: confirm a session is still authenticated before
long-lived work resumes on it.
"""

import logging
import re
import time
from typing import Callable, Optional

from .errors import (
    Checkpoint,
    FcaError,
    HtmlLoginPage,
    LoginRedirect,
    NetworkError,
    NotLoggedIn,
)
from .session import Session
from .transport import Transport
from .types import FACEBOOK_URL, MOBILE_URL

logger = logging.getLogger(__name__)

PROBE_ENDPOINTS = (
    f"{FACEBOOK_URL}/ajax/mercury/threadlist_info.php?client=mercury",
    f"{MOBILE_URL}/me",
)

_CHECKPOINT = re.compile(r"checkpoint|review recent login", re.I)


def is_html_login_page(body: Optional[str]) -> bool:
    if not body or not isinstance(body, str) or len(body) < 40:
        return False
    lowered = body.lower()
    return (
        ("login" in lowered and "password" in lowered)
        or "m_login_email" in lowered
        or "/login/device-based" in lowered
    )


def probe(transport: Transport, url: str) -> None:
    """Run one probe; raise the classified failure if it does not pass."""
    response = transport.get(url)
    status = response.status_code
    body = response.text or ""

    if not status:
        raise NetworkError("No status code (network?)")
    if 300 <= status < 400:
        raise LoginRedirect("Login redirect detected", status_code=status, body=body)
    if status in (401, 403):
        raise NotLoggedIn("Unauthorized / forbidden", status_code=status, body=body)
    if is_html_login_page(body):
        raise HtmlLoginPage("HTML login page served", status_code=status, body=body)
    if _CHECKPOINT.search(body):
        raise Checkpoint("Checkpoint required", status_code=status, body=body)


def validate_session(
    session: Session,
    transport: Transport,
    retries: int = 0,
    delay_ms: int = 750,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Probe authenticated endpoints, retrying the whole set up to ``retries`` times."""
    if session is None or session.jar is None:
        raise NotLoggedIn("No session/cookie jar provided")
    if not session.has_identity_cookie():
        raise NotLoggedIn("Not logged in (missing c_user cookie)")

    for attempt in range(retries + 1):
        try:
            for url in PROBE_ENDPOINTS:
                probe(transport, url)
            return True
        except FcaError as exc:
            if attempt >= retries:
                session.health.on_error(exc.kind)
                raise
            logger.warning(
                "Session probe failed (%s), retrying in %sms (%s/%s)",
                exc.kind,
                delay_ms,
                attempt + 1,
                retries,
            )
            sleep(delay_ms / 1000)

    raise NotLoggedIn("Unknown session validation failure")


def check_live_cookie(session: Session, transport: Transport) -> bool:
    """The mobile profile page only mentions our user id while logged in."""
    response = transport.get(f"{MOBILE_URL}/me")
    if not session.user_id or session.user_id not in (response.text or ""):
        raise NotLoggedIn("Not logged in.", status_code=response.status_code)
    return True
