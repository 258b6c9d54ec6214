"""
Shared types and constants for the fca client.
"""

from dataclasses import dataclass

FACEBOOK_URL = "https://www.facebook.com"
MESSENGER_URL = "https://www.messenger.com"
MOBILE_URL = "https://m.facebook.com"
REALTIME_HOST = "edge-chat.facebook.com"

PRIMARY_DOMAIN = ".facebook.com"
MESSENGER_DOMAIN = ".messenger.com"
IDENTITY_COOKIE = "c_user"

LS_REQ_TOPIC = "/ls_req"
REALTIME_APP_ID = "2220391788200892"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/134.0.0.0 Safari/537.36"
)

DEFAULT_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Referer": f"{FACEBOOK_URL}/",
    "Origin": FACEBOOK_URL,
    "Connection": "keep-alive",
    "sec-fetch-site": "same-origin",
    "sec-fetch-mode": "cors",
}

REQUEST_TIMEOUT_SEC = 60


@dataclass(frozen=True)
class SigningTokens:
    """The two rotating tokens that sign every form submission."""

    fb_dtsg: str
    jazoest: str

    @classmethod
    def from_dtsg(cls, fb_dtsg: str) -> "SigningTokens":
        return cls(
            fb_dtsg=fb_dtsg,
            jazoest="2" + "".join(str(ord(ch)) for ch in fb_dtsg),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "fb_dtsg": self.fb_dtsg,
            "jazoest": self.jazoest,
        }


@dataclass(frozen=True)
class EditSettings:
    max_pending_edits: int = 200
    edit_ttl_ms: int = 5 * 60 * 1000
    ack_timeout_ms: int = 12000
    max_resend_attempts: int = 2
