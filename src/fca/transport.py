"""
Transport primitives: GET, form POST and multipart POST with browser
headers, shared cookie jar and proxy support.

Redirects are never followed here; the classifier decides what a 3xx means.
"""

import json
import logging
from typing import Any, Optional
from urllib.parse import urlparse

import requests

from .config import Options
from .errors import NetworkError
from .session import Session
from .types import DEFAULT_HEADERS, MESSENGER_DOMAIN, REQUEST_TIMEOUT_SEC

logger = logging.getLogger(__name__)


def is_readable_stream(obj: Any) -> bool:
    """True for open file-like objects that can be streamed as upload bodies."""
    read = getattr(obj, "read", None)
    if not callable(read):
        return False
    return not getattr(obj, "closed", False)


def save_cookies(session: Session, response: requests.Response) -> None:
    """Mirror primary-domain cookies set by a response onto the messenger domain."""
    for cookie in response.cookies:
        if cookie.domain and cookie.domain.endswith("facebook.com"):
            session.jar.set(
                cookie.name, cookie.value, domain=MESSENGER_DOMAIN, path=cookie.path or "/"
            )


def _encode_params(params: Optional[dict]) -> Optional[dict]:
    if not params:
        return params
    return {
        key: json.dumps(value) if isinstance(value, (dict, list)) else value
        for key, value in params.items()
    }


class Transport:
    """Executes requests for one session."""

    def __init__(
        self,
        session: Session,
        options: Optional[Options] = None,
        http: Optional[requests.Session] = None,
    ):
        self._session = session
        self._options = options or Options()
        self._http = http if http is not None else requests.Session()
        self._http.cookies = session.jar
        if self._options.proxies:
            self._http.proxies.update(self._options.proxies)

    @property
    def session(self) -> Session:
        return self._session

    def headers(self, url: str, extra: Optional[dict] = None) -> dict:
        merged = {
            **DEFAULT_HEADERS,
            "Host": urlparse(url).netloc,
            "User-Agent": self._options.user_agent,
            "Accept-Language": self._options.accept_language,
        }
        region = self._session.region or self._options.region
        if region:
            merged["X-MSGR-Region"] = region
        if extra:
            merged.update(extra)
        return merged

    def _send(self, method: str, url: str, headers: dict, **kwargs) -> requests.Response:
        try:
            response = self._http.request(
                method,
                url,
                headers=headers,
                timeout=REQUEST_TIMEOUT_SEC,
                allow_redirects=False,
                **kwargs,
            )
        except requests.RequestException as exc:
            self._session.health.on_error(NetworkError.kind)
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

        logger.debug("%s %s -> %s", method, url, response.status_code)
        save_cookies(self._session, response)
        return response

    # ── Plain requests ────────────────────────────────────

    def get(
        self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None
    ) -> requests.Response:
        return self._send("GET", url, self.headers(url, headers), params=_encode_params(params))

    def post(self, url: str, form: Optional[dict] = None) -> requests.Response:
        return self._send("POST", url, self.headers(url), data=form or {})

    def post_form_data(
        self, url: str, form: dict, params: Optional[dict] = None
    ) -> requests.Response:
        """Multipart POST; stream values and (name, stream, type) tuples become files."""
        files = {}
        data = {}
        for key, value in form.items():
            if is_readable_stream(value) or isinstance(value, tuple):
                files[key] = value
            else:
                data[key] = value
        headers = self.headers(url)
        # requests sets multipart content type with its boundary
        headers.pop("Content-Type", None)
        return self._send(
            "POST", url, headers, data=data, files=files or None, params=_encode_params(params)
        )

    # ── Signed requests ───────────────────────────────────

    def get_signed(self, url: str, params: Optional[dict] = None) -> requests.Response:
        return self.get(url, self._session.with_defaults(params))

    def post_signed(self, url: str, form: Optional[dict] = None) -> requests.Response:
        return self.post(url, self._session.with_defaults(form))

    def post_form_data_signed(
        self, url: str, form: dict, params: Optional[dict] = None
    ) -> requests.Response:
        return self.post_form_data(
            url, self._session.with_defaults(form), self._session.with_defaults(params)
        )

    # ── Replay ────────────────────────────────────────────

    def replay(self, request: requests.PreparedRequest) -> requests.Response:
        """Re-issue a recorded request with its method, URL, body and content type."""
        method = (request.method or "GET").upper()
        url = request.url or ""
        if method == "GET":
            return self._send("GET", url, self.headers(url))

        content_type = request.headers.get("Content-Type", "")
        extra = {"Content-Type": content_type} if content_type else None
        return self._send(method, url, self.headers(url, extra), data=request.body)
