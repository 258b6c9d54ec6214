"""
Tests for fca.transport module.

Covers:
- header building (Host, region, user agent)
- GET/POST/multipart argument shaping
- signed variants
- replay of recorded requests
- network error wrapping
- cookie mirroring and stream detection
"""

import io
from unittest.mock import MagicMock

import pytest
import requests
from requests.cookies import create_cookie

from fca.config import Options
from fca.errors import NetworkError
from fca.transport import Transport, is_readable_stream, save_cookies


@pytest.fixture
def http(make_response):
    http = MagicMock()
    http.request.return_value = make_response(text="{}")
    return http


@pytest.fixture
def transport(session, http):
    return Transport(session, Options(user_agent="test-agent"), http=http)


def sent(http):
    args, kwargs = http.request.call_args
    return args[0], args[1], kwargs


class TestHeaders:

    def test_host_from_url(self, transport):
        headers = transport.headers("https://m.facebook.com/me")
        assert headers["Host"] == "m.facebook.com"
        assert headers["User-Agent"] == "test-agent"

    def test_region_header(self, transport, session):
        session.region = "ATN"
        assert transport.headers("https://www.facebook.com/")["X-MSGR-Region"] == "ATN"

    def test_no_region_header_by_default(self, transport):
        assert "X-MSGR-Region" not in transport.headers("https://www.facebook.com/")

    def test_extra_headers_override(self, transport):
        headers = transport.headers("https://www.facebook.com/", {"Referer": "x"})
        assert headers["Referer"] == "x"


class TestRequests:

    def test_get_never_follows_redirects(self, transport, http):
        transport.get("https://www.facebook.com/", params={"q": {"a": 1}})
        method, url, kwargs = sent(http)
        assert method == "GET"
        assert kwargs["allow_redirects"] is False
        assert kwargs["timeout"] == 60
        assert kwargs["params"] == {"q": '{"a": 1}'}

    def test_post_form(self, transport, http):
        transport.post("https://www.facebook.com/ajax/x.php", {"a": "1"})
        method, _, kwargs = sent(http)
        assert method == "POST"
        assert kwargs["data"] == {"a": "1"}

    def test_post_signed_merges_defaults(self, transport, http, tokens):
        transport.post_signed("https://www.facebook.com/ajax/x.php", {"a": "1"})
        _, _, kwargs = sent(http)
        assert kwargs["data"]["fb_dtsg"] == tokens.fb_dtsg
        assert kwargs["data"]["a"] == "1"

    def test_multipart_splits_files(self, transport, http):
        upload = io.BytesIO(b"bytes")
        transport.post_form_data("https://upload.facebook.com/x", {"upload": upload, "voice": "0"})
        _, _, kwargs = sent(http)
        assert kwargs["files"] == {"upload": upload}
        assert kwargs["data"] == {"voice": "0"}
        assert "Content-Type" not in kwargs["headers"]

    def test_network_error_wrapped(self, transport, http, session):
        http.request.side_effect = requests.ConnectionError("reset")
        with pytest.raises(NetworkError) as exc_info:
            transport.get("https://www.facebook.com/")
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)
        assert session.health.errors["network_error"] == 1

    def test_proxy_configured(self, session, http):
        Transport(session, Options(proxy="http://proxy:3128"), http=http)
        http.proxies.update.assert_called_once_with(
            {"http": "http://proxy:3128", "https": "http://proxy:3128"}
        )

    def test_shares_session_jar(self, transport, http, session):
        assert http.cookies is session.jar


class TestReplay:

    def test_replay_get(self, transport, http, make_response):
        recorded = make_response(method="GET", url="https://www.facebook.com/a?b=1").request
        transport.replay(recorded)
        method, url, _ = sent(http)
        assert (method, url) == ("GET", "https://www.facebook.com/a?b=1")

    def test_replay_post_keeps_body_and_content_type(self, transport, http, make_response):
        recorded = make_response(
            method="POST",
            url="https://upload.facebook.com/x",
            content_type="multipart/form-data; boundary=abc",
            body=b"--abc--",
        ).request
        transport.replay(recorded)
        method, _, kwargs = sent(http)
        assert method == "POST"
        assert kwargs["data"] == b"--abc--"
        assert kwargs["headers"]["Content-Type"] == "multipart/form-data; boundary=abc"


class TestHelpers:

    def test_readable_stream(self):
        assert is_readable_stream(io.BytesIO(b""))
        assert not is_readable_stream("text")

    def test_closed_stream(self):
        stream = io.BytesIO(b"")
        stream.close()
        assert not is_readable_stream(stream)

    def test_save_cookies_mirrors_to_messenger(self, session):
        response = MagicMock()
        response.cookies = [create_cookie("sb", "v1", domain=".facebook.com", path="/")]
        save_cookies(session, response)
        assert session.jar.get("sb", domain=".messenger.com") == "v1"

    def test_save_cookies_ignores_other_domains(self, session):
        response = MagicMock()
        response.cookies = [create_cookie("x", "v1", domain=".example.com")]
        save_cookies(session, response)
        assert session.jar.get("x") is None
