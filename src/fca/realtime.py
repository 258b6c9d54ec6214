"""
Realtime channel: task submission over MQTT (edit, pin, react, block) and
acknowledgment routing back into the pending edit tracker.
"""

import json
import logging
import random
import time
from typing import Any, Optional, Union
from urllib.parse import urlencode

import paho.mqtt.client as mqtt

from .config import Options
from .errors import NotConnected, PublishError
from .pending import PendingEdit, PendingEdits
from .session import Session
from .types import FACEBOOK_URL, LS_REQ_TOPIC, REALTIME_APP_ID, REALTIME_HOST
from .utils import generate_offline_threading_id, get_guid

logger = logging.getLogger(__name__)

REALTIME_PORT = 443
KEEPALIVE_SEC = 30

EDIT_VERSION_ID = "6903494529735864"
PIN_VERSION_ID = "25095469420099952"
REACTION_VERSION_ID = "7158486590867448"
BLOCK_VERSION_ID = "25393437286970779"

BLOCK_ACTIONS = {
    "messenger": (0, 1),
    "facebook": (2, 3),
}


def _now_ms() -> int:
    return int(time.time() * 1000)


class RealtimeChannel:
    """Publishes tasks for one session over a connected paho client."""

    def __init__(
        self,
        session: Session,
        mqtt_client: Optional[mqtt.Client] = None,
        tracker: Optional[PendingEdits] = None,
        options: Optional[Options] = None,
    ):
        self.session = session
        self.mqtt_client = mqtt_client
        options = options or Options()
        self.tracker = (
            tracker
            if tracker is not None
            else PendingEdits(options.edit_settings, health=session.health)
        )

    def attach(self) -> None:
        """Route inbound messages of the underlying client into this channel."""
        self._require_client().on_message = self._on_message

    def _require_client(self) -> mqtt.Client:
        if self.mqtt_client is None:
            raise NotConnected("Not connected to MQTT")
        return self.mqtt_client

    # ── Publishing ────────────────────────────────────────

    def publish_task(
        self, label: str, payload: dict, queue_name: str, version_id: str
    ) -> int:
        """Publish one task; returns the request id it was sent under."""
        client = self._require_client()
        request_id, task_id = self.session.next_realtime_ids()
        task = {
            "failure_count": None,
            "label": label,
            "payload": json.dumps(payload),
            "queue_name": queue_name,
            "task_id": task_id,
        }
        content = {
            "app_id": REALTIME_APP_ID,
            "payload": json.dumps(
                {
                    "data_trace_id": None,
                    "epoch_id": generate_offline_threading_id(),
                    "tasks": [task],
                    "version_id": version_id,
                }
            ),
            "request_id": request_id,
            "type": 3,
        }

        info = client.publish(LS_REQ_TOPIC, json.dumps(content), qos=1, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.session.health.on_error(PublishError.kind)
            raise PublishError(
                f"Publish of task {label} failed: {mqtt.error_string(info.rc)}"
            )
        return request_id

    # ── Edits ─────────────────────────────────────────────

    def edit_message(self, text: str, message_id: str) -> dict:
        """Queue an edit and publish it; the watchdog resends until acked.

        A failed first publish raises, but the record stays queued and the
        watchdog still retries it.
        """
        if not message_id or not isinstance(text, str):
            raise ValueError("Invalid arguments for edit_message")
        self._require_client()

        self.tracker.insert(message_id, text)
        try:
            self._publish_edit(message_id, text)
        finally:
            self.tracker.watch(message_id, self._resend_edit)
        return {"queued": True, "message_id": message_id}

    def _publish_edit(self, message_id: str, text: str) -> int:
        return self.publish_task(
            "742",
            {"message_id": message_id, "text": text},
            "edit_message",
            EDIT_VERSION_ID,
        )

    def _resend_edit(self, record: PendingEdit) -> None:
        logger.info("Resending edit %s (attempt %s)", record.message_id, record.attempts)
        self._publish_edit(record.message_id, record.text)

    # ── Other tasks ───────────────────────────────────────

    def pin_message(self, pin: bool, message_id: str, thread_id: str) -> int:
        return self.publish_task(
            "430" if pin else "431",
            {"thread_key": thread_id, "message_id": message_id, "timestamp_ms": _now_ms()},
            f"{'pin' if pin else 'unpin'}_msg_v2_{thread_id}",
            PIN_VERSION_ID,
        )

    def set_reaction(self, reaction: str, message_id: str, thread_id: str) -> int:
        return self.publish_task(
            "29",
            {
                "thread_key": thread_id,
                "timestamp_ms": _now_ms(),
                "message_id": message_id,
                "reaction": reaction,
                "actor_id": self.session.user_id,
                "reaction_style": None,
                "sync_group": 1,
                "send_attribution": random.choice((65537, 524289)),
            },
            json.dumps(["reaction", message_id]),
            REACTION_VERSION_ID,
        )

    def change_blocked_status(self, user_id: str, block: bool, kind: str = "messenger") -> int:
        if kind not in BLOCK_ACTIONS:
            raise ValueError(f"Invalid block type: {kind!r}")
        unblock_action, block_action = BLOCK_ACTIONS[kind]
        return self.publish_task(
            "334",
            {
                "blockee_id": user_id,
                "request_id": get_guid(),
                "user_block_action": block_action if block else unblock_action,
            },
            "native_sync_block",
            BLOCK_VERSION_ID,
        )

    # ── Inbound ───────────────────────────────────────────

    def _on_message(self, client: Any, userdata: Any, message: Any) -> None:
        self.handle_message(message.topic, message.payload)

    def handle_message(self, topic: str, payload: Union[bytes, str]) -> dict:
        """Parse an inbound message; acknowledgments clear their pending edit."""
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        try:
            data = json.loads(payload)
        except ValueError:
            self.session.health.on_error("message_parse")
            logger.debug("Unparsable message on %s: %.200s", topic, payload)
            return {}
        if not isinstance(data, dict):
            return {}

        ack = data.get("message_ack")
        if isinstance(ack, dict) or data.get("type") == "ack":
            self.session.health.on_ack()
        if isinstance(ack, dict):
            mid = ack.get("message_id") or ack.get("mid")
            if mid and self.tracker.remove(mid) is not None:
                logger.debug("Edit %s acknowledged", mid)
        return data


# ── Client construction ──────────────────────────────────────


def realtime_path(session: Session, session_id: int, guid: str) -> str:
    query = {"sid": session_id, "cid": guid}
    if session.region:
        query = {"region": session.region.lower(), **query}
    return "/chat?" + urlencode(query)


def create_mqtt_client(session: Session, options: Optional[Options] = None) -> mqtt.Client:
    """Build a websocket paho client for the realtime endpoint.

    The caller connects it with ``client.connect(REALTIME_HOST, REALTIME_PORT,
    KEEPALIVE_SEC)`` and runs its network loop.
    """
    options = options or Options()
    session_id = random.randint(1, 2**53 - 1)
    guid = get_guid()
    username = {
        "u": session.user_id,
        "s": session_id,
        "chat_on": options.online,
        "fg": False,
        "d": guid,
        "ct": "websocket",
        "aid": 219994525426954,
        "aids": None,
        "mqtt_sid": "",
        "cp": 3,
        "ecp": 10,
        "st": [],
        "pm": [],
        "dc": "",
        "no_auto_fg": True,
        "gas": None,
        "pack": [],
        "p": None,
        "php_override": "",
    }
    cookies = "; ".join(
        f"{c.name}={c.value}" for c in session.jar if c.domain.endswith("facebook.com")
    )

    client = mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id="mqttwsclient",
        clean_session=True,
        protocol=mqtt.MQTTv31,
        transport="websockets",
    )
    client.username_pw_set(json.dumps(username, separators=(",", ":")))
    client.ws_set_options(
        path=realtime_path(session, session_id, guid),
        headers={
            "Cookie": cookies,
            "Origin": FACEBOOK_URL,
            "User-Agent": options.user_agent,
            "Referer": f"{FACEBOOK_URL}/",
            "Host": REALTIME_HOST,
            "Accept-Language": options.accept_language,
        },
    )
    client.tls_set()
    return client
