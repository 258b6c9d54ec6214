"""
fca HTTP client
Session checks, token refresh, user info and delivery receipts on top of
the response classifier, plus the command line front end.
"""

import argparse
import json
import logging
import sys
import time
from typing import Any, Callable, Iterable, Optional, Union

from .classifier import ResponseClassifier
from .config import Options
from .errors import FcaError
from .safety import AccessPolicy, RiskStore, SafetyAdvisor
from .session import Session
from .transport import Transport
from .types import FACEBOOK_URL, SigningTokens
from .utils import get_from
from .validator import check_live_cookie, validate_session

logger = logging.getLogger(__name__)

GRAPHQL_BATCH_URL = f"{FACEBOOK_URL}/api/graphqlbatch/"
DELIVERY_RECEIPTS_URL = f"{FACEBOOK_URL}/ajax/mercury/delivery_receipts.php"
USER_INFO_DOC_ID = "5009315269112105"


def _format_actor(actor: dict) -> dict:
    return {
        "name": actor.get("name"),
        "first_name": actor.get("short_name"),
        "vanity": actor.get("username"),
        "thumb_src": (actor.get("big_image_src") or {}).get("uri"),
        "profile_url": actor.get("url"),
        "gender": actor.get("gender"),
        "type": actor.get("__typename"),
        "is_friend": bool(actor.get("is_viewer_friend")),
        "is_messenger_user": bool(actor.get("is_messenger_user")),
    }


class FcaClient:
    """Messenger client whose every response goes through the classifier."""

    def __init__(
        self,
        session: Session,
        options: Optional[Options] = None,
        advisor: Optional[SafetyAdvisor] = None,
        transport: Optional[Transport] = None,
        classifier: Optional[ResponseClassifier] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session = session
        self._options = options or Options()
        self._transport = transport or Transport(session, self._options)
        self._classifier = classifier or ResponseClassifier(session, self._transport)
        self._advisor = advisor or SafetyAdvisor(RiskStore())
        self._policy = AccessPolicy(self._options.allow_list, self._options.block_list)
        self._sleep = sleep

    @property
    def session(self) -> Session:
        return self._session

    @property
    def advisor(self) -> SafetyAdvisor:
        return self._advisor

    def _pace(self, action: str) -> None:
        """In safe mode, wait out the advisor's suggested delay when it says so."""
        if not self._options.safe_mode:
            return
        identity = self._session.user_id
        if not self._advisor.is_safe_to_execute(identity, action):
            delay_ms = self._advisor.get_safe_delay(identity, action)
            logger.info("Safe mode: waiting %sms before %s", delay_ms, action)
            self._sleep(delay_ms / 1000)

    def _request(
        self, method: str, url: str, form: Optional[dict] = None, action: str = "browsing"
    ) -> Any:
        self._pace(action)
        identity = self._session.user_id
        try:
            if method == "GET":
                response = self._transport.get_signed(url, form)
            else:
                response = self._transport.post_signed(url, form)
            body = self._classifier.resolve(response)
        except FcaError:
            self._advisor.record_activity(identity, error=True)
            raise
        self._advisor.record_activity(identity)
        return body

    # ── Session ───────────────────────────────────────────

    def validate_session(self, retries: int = 0, delay_ms: int = 750) -> bool:
        return validate_session(self._session, self._transport, retries, delay_ms, self._sleep)

    def check_live_cookie(self) -> bool:
        return check_live_cookie(self._session, self._transport)

    def refresh_dtsg(
        self, fb_dtsg: Optional[str] = None, jazoest: Optional[str] = None
    ) -> SigningTokens:
        """Install the given tokens, or scrape fresh ones from the home page."""
        if fb_dtsg:
            return self._session.refresh_tokens(fb_dtsg, jazoest)

        html = self._transport.get(f"{FACEBOOK_URL}/").text or ""
        try:
            token = get_from(html, '["DTSGInitData",[],{"token":"', '","')
            scraped_jazoest = get_from(html, "jazoest=", '",')
        except ValueError as exc:
            raise FcaError(
                "Could not parse signing tokens from Facebook HTML.", detail=str(exc)
            ) from exc
        if not token:
            raise FcaError("Could not find fb_dtsg in HTML after requesting Facebook.")
        tokens = self._session.refresh_tokens(token, scraped_jazoest or None)
        logger.info("Refreshed fb_dtsg and jazoest")
        return tokens

    # ── Queries ───────────────────────────────────────────

    def graphql_batch(self, queries: dict, batch_name: str) -> list:
        """POST a batched query; the response is one JSON object per line."""
        body = self._request(
            "POST",
            GRAPHQL_BATCH_URL,
            {"queries": json.dumps(queries), "batch_name": batch_name},
            action="reading",
        )
        results = body if isinstance(body, list) else [body]
        if not results:
            raise FcaError("Empty response from server")
        return results

    def get_user_info(self, ids: Union[str, Iterable[str]]) -> dict:
        ids = [ids] if isinstance(ids, str) else [str(i) for i in ids]
        results = self.graphql_batch(
            {"o0": {"doc_id": USER_INFO_DOC_ID, "query_params": {"ids": ids}}},
            "MessengerParticipantsFetcher",
        )
        first = results[0]
        if not isinstance(first, dict):
            raise FcaError("Invalid response format", body=results)
        if first.get("error"):
            raise FcaError(f"User info request failed: {first['error']}", body=first)
        query = first.get("o0")
        if not isinstance(query, dict):
            raise FcaError("Invalid response format", body=first)
        if query.get("errors"):
            raise FcaError(query["errors"][0].get("message") or "GraphQL error", body=first)

        actors = (query.get("data") or {}).get("messaging_actors") or []
        if not actors:
            logger.warning("No user data found for %s", ids)
        return {actor["id"]: _format_actor(actor) for actor in actors if "id" in actor}

    # ── Receipts ──────────────────────────────────────────

    def mark_as_delivered(self, thread_id: str, message_id: str) -> bool:
        if not thread_id or not message_id:
            raise ValueError("thread_id and message_id are required")
        if not self._policy.is_allowed(str(thread_id)):
            logger.info("Skipping delivery receipt for blocked thread %s", thread_id)
            return False
        form = {
            "message_ids[0]": message_id,
            f"thread_ids[{thread_id}][0]": message_id,
        }
        try:
            body = self._request("POST", DELIVERY_RECEIPTS_URL, form)
        except FcaError:
            self._session.health.on_delivery(False)
            raise
        if isinstance(body, dict) and body.get("error"):
            self._session.health.on_delivery(False)
            raise FcaError(f"Delivery receipt rejected: {body['error']}", body=body)
        self._session.health.on_delivery(True)
        return True

    # ── Advice ────────────────────────────────────────────

    def is_safe(self, action: str = "browsing") -> bool:
        return self._advisor.is_safe_to_execute(self._session.user_id, action)

    def safe_delay(self, action: str = "browsing") -> int:
        return self._advisor.get_safe_delay(self._session.user_id, action)


# ── CLI ───────────────────────────────────────────────────


def load_app_state(path: str) -> Session:
    with open(path, encoding="utf-8") as fh:
        return Session.from_app_state(json.load(fh))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="fca Messenger client")
    parser.add_argument("--app-state", required=True, help="JSON cookie list")
    parser.add_argument("--verbose", action="store_true")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("validate")
    p.add_argument("--retries", type=int, default=0)
    p.add_argument("--delay-ms", type=int, default=750)

    sub.add_parser("check-cookie")
    sub.add_parser("refresh-dtsg")

    p = sub.add_parser("user-info")
    p.add_argument("--ids", nargs="+", required=True)

    p = sub.add_parser("mark-delivered")
    p.add_argument("--thread-id", required=True)
    p.add_argument("--message-id", required=True)

    sub.add_parser("health")

    return parser


_DISPATCH = {
    "validate": lambda c, a: {"valid": c.validate_session(a.retries, a.delay_ms)},
    "check-cookie": lambda c, _: {"live": c.check_live_cookie()},
    "refresh-dtsg": lambda c, _: c.refresh_dtsg().to_dict(),
    "user-info": lambda c, a: c.get_user_info(a.ids),
    "mark-delivered": lambda c, a: {
        "delivered": c.mark_as_delivered(a.thread_id, a.message_id)
    },
    "health": lambda c, _: c.session.health.snapshot(),
}

# Commands whose forms must carry signing tokens
_SIGNED = {"user-info", "mark-delivered"}


def main() -> None:
    """CLI entry point for API operations."""
    args = _build_parser().parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)

    client = FcaClient(load_app_state(args.app_state), Options.from_env())

    handler = _DISPATCH.get(args.command)
    if not handler:
        print("Unknown command", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command in _SIGNED and client.session.tokens is None:
            client.refresh_dtsg()
        result = handler(client, args)
        json.dump(result, sys.stdout, ensure_ascii=False, indent=2)
        print()
    except FcaError as exc:
        print(json.dumps(exc.to_dict()), file=sys.stderr)
        sys.exit(1)
