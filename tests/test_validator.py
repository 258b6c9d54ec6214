"""
Tests for fca.validator module.

Covers:
- fail-fast on missing identity cookie
- per-probe failure classification
- whole-set retry with delay
- check_live_cookie
"""

from unittest.mock import MagicMock

import pytest

from fca.errors import Checkpoint, HtmlLoginPage, LoginRedirect, NetworkError, NotLoggedIn
from fca.validator import PROBE_ENDPOINTS, check_live_cookie, is_html_login_page, validate_session

OK_BODY = 'for (;;);{"payload": {"threads": []}}'


@pytest.fixture
def transport():
    return MagicMock()


@pytest.fixture
def sleep():
    return MagicMock()


class TestFailFast:

    def test_missing_identity_cookie(self, anonymous_session, transport):
        with pytest.raises(NotLoggedIn):
            validate_session(anonymous_session, transport)
        transport.get.assert_not_called()


class TestProbes:

    def test_all_probes_pass(self, session, transport, make_response):
        transport.get.return_value = make_response(text=OK_BODY)

        assert validate_session(session, transport) is True
        assert [c[0][0] for c in transport.get.call_args_list] == list(PROBE_ENDPOINTS)

    @pytest.mark.parametrize(
        "status, text, error",
        [
            (302, "", LoginRedirect),
            (401, "", NotLoggedIn),
            (403, "", NotLoggedIn),
            (0, "", NetworkError),
            (
                200,
                "<html>Please login: enter your email and password to continue</html>",
                HtmlLoginPage,
            ),
            (200, '{"redirect": "/checkpoint/"}', Checkpoint),
            (200, "Review recent login attempts", Checkpoint),
        ],
    )
    def test_probe_failures(self, session, transport, make_response, status, text, error):
        transport.get.return_value = make_response(status=status, text=text)
        with pytest.raises(error):
            validate_session(session, transport)

    def test_failure_counted(self, session, transport, make_response):
        transport.get.return_value = make_response(status=403)
        with pytest.raises(NotLoggedIn):
            validate_session(session, transport)
        assert session.health.errors["not_logged_in"] == 1


class TestRetries:

    def test_retry_restarts_probe_set(self, session, transport, sleep, make_response):
        ok = make_response(text=OK_BODY)
        transport.get.side_effect = [ok, make_response(status=302), ok, ok]

        assert validate_session(session, transport, retries=1, delay_ms=1000, sleep=sleep)
        assert transport.get.call_count == 4
        sleep.assert_called_once_with(1.0)

    def test_final_failure_surfaces(self, session, transport, sleep, make_response):
        transport.get.return_value = make_response(status=401)

        with pytest.raises(NotLoggedIn):
            validate_session(session, transport, retries=2, delay_ms=10, sleep=sleep)
        assert transport.get.call_count == 3
        assert sleep.call_count == 2


class TestLoginHeuristic:

    def test_short_bodies_ignored(self):
        assert not is_html_login_page("login password")

    def test_device_based_login(self):
        assert is_html_login_page('<a href="/login/device-based/regular/">continue here</a>')

    def test_none(self):
        assert not is_html_login_page(None)


class TestCheckLiveCookie:

    def test_user_id_in_body(self, session, transport, make_response, user_id):
        transport.get.return_value = make_response(text=f'<a href="/profile.php?id={user_id}">')
        assert check_live_cookie(session, transport)

    def test_user_id_missing(self, session, transport, make_response):
        transport.get.return_value = make_response(text="<html>welcome guest</html>")
        with pytest.raises(NotLoggedIn):
            check_live_cookie(session, transport)
