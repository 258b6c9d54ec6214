"""
Tests for fca.session, fca.utils and fca.config modules.

Covers:
- app state import/export and identity cookie detection
- form defaults and request counter
- realtime sequence allocation across threads
- from_html token extraction
- re-authentication guard
- string helpers
- Options.from_env
"""

import threading

import pytest

from fca.config import Options
from fca.session import Session
from fca.utils import base36, generate_offline_threading_id, get_from, make_parsable


class TestAppState:

    def test_loads_cookies_and_user_id(self, app_state, user_id):
        session = Session.from_app_state(app_state)
        assert session.user_id == user_id
        assert session.has_identity_cookie()
        assert session.jar.get("xs", domain=".facebook.com") == "secret-xs"

    def test_domains_normalized_with_leading_dot(self, app_state):
        session = Session.from_app_state(app_state)
        assert {c.domain for c in session.jar} == {".facebook.com"}

    def test_export_round_trips_names(self, app_state):
        exported = Session.from_app_state(app_state).app_state()
        assert {c["key"] for c in exported} == {"c_user", "xs", "datr"}

    def test_entries_without_name_skipped(self):
        session = Session.from_app_state([{"value": "x"}])
        assert len(session.jar) == 0
        assert not session.has_identity_cookie()


class TestCookies:

    def test_install_cookie_on_both_domains(self, session):
        session.install_cookie("presence", "p1")
        assert session.jar.get("presence", domain=".facebook.com") == "p1"
        assert session.jar.get("presence", domain=".messenger.com") == "p1"


class TestDefaults:

    def test_signed_fields(self, session, tokens, user_id):
        form = session.with_defaults({"thread_id": "42"})
        assert form["__user"] == user_id
        assert form["fb_dtsg"] == tokens.fb_dtsg
        assert form["jazoest"] == tokens.jazoest
        assert form["__rev"] == "1012345678"
        assert form["__a"] == 1
        assert form["thread_id"] == "42"

    def test_request_counter_base36(self, session):
        values = [session.with_defaults()["__req"] for _ in range(11)]
        assert values[0] == "1"
        assert values[9] == "a"
        assert values[10] == "b"

    def test_caller_cannot_override_set_defaults(self, session, tokens):
        form = session.with_defaults({"fb_dtsg": "forged"})
        assert form["fb_dtsg"] == tokens.fb_dtsg

    def test_caller_fills_empty_defaults(self):
        form = Session("1").with_defaults({"fb_dtsg": "given"})
        assert form["fb_dtsg"] == "given"


class TestSequences:

    def test_pairs_increment_together(self, session):
        assert session.next_realtime_ids() == (1, 1)
        assert session.next_realtime_ids() == (2, 2)

    def test_no_duplicates_across_threads(self, session):
        seen = []
        lock = threading.Lock()

        def worker():
            for _ in range(200):
                pair = session.next_realtime_ids()
                with lock:
                    seen.append(pair[0])

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(seen) == len(set(seen)) == 800


class TestFromHtml:

    def test_extracts_token_and_revision(self):
        html = '..."DTSGInitData",[],{"token":"AQHtok","async_get_token":"x"},..."revision":1009,...'
        session = Session.from_html(html, "5")
        assert session.tokens.fb_dtsg == "AQHtok"
        assert session.revision == "1009"

    def test_missing_token(self):
        assert Session.from_html("<html></html>", "5").tokens is None


class TestReauthGuard:

    def test_single_claim(self, session):
        assert session.begin_reauth()
        assert not session.begin_reauth()
        session.end_reauth()
        assert session.begin_reauth()


class TestUtils:

    def test_get_from(self):
        assert get_from("a[start]value[end]b", "[start]", "[end]") == "value"

    def test_get_from_missing_start(self):
        assert get_from("abc", "[x]", "]") == ""

    def test_get_from_missing_end_raises(self):
        with pytest.raises(ValueError):
            get_from("a[start]value", "[start]", "[end]")

    def test_make_parsable_single(self):
        assert make_parsable('for(;;);{"a":1}') == '{"a":1}'

    def test_make_parsable_multiple(self):
        assert make_parsable('{"a":1}\n{"b":2}') == '[{"a":1},{"b":2}]'

    def test_base36(self):
        assert base36(0) == "0"
        assert base36(35) == "z"
        assert base36(36) == "10"

    def test_offline_threading_id_embeds_timestamp(self):
        assert generate_offline_threading_id(1000) >> 22 == 1000


class TestOptions:

    def test_defaults_from_empty_env(self):
        options = Options.from_env({})
        assert not options.safe_mode
        assert options.proxies is None
        assert options.allow_list is None

    def test_ultra_safe_implies_safe(self):
        options = Options.from_env({"FCA_ULTRA_SAFE_MODE": "1"})
        assert options.safe_mode and options.ultra_safe_mode

    def test_lists_and_proxy(self):
        options = Options.from_env(
            {"FCA_ALLOW_LIST": "1, 2,", "FCA_BLOCK_LIST": "3", "HTTPS_PROXY": "http://p:8080"}
        )
        assert options.allow_list == frozenset({"1", "2"})
        assert options.block_list == frozenset({"3"})
        assert options.proxies == {"http": "http://p:8080", "https": "http://p:8080"}

    def test_fca_proxy_wins(self):
        options = Options.from_env({"FCA_PROXY": "http://a", "HTTP_PROXY": "http://b"})
        assert options.proxy == "http://a"
