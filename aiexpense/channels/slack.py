# -*- coding: utf-8 -*-
"""
Slack Events API channel.

Requests are signed with the app's signing secret:
    X-Slack-Signature = "v0=" + hex(HMAC-SHA256(secret, "v0:<timestamp>:<body>"))
and rejected when the timestamp is more than five minutes old.
"""

import logging
import re
import time
from typing import Callable, Mapping

from aiexpense.channels.base import ChannelAdapter, DeliveryMode, Inbound, hmac_sha256_hex, signatures_match
from aiexpense.errors import DeliveryError, InvalidSignatureError
from aiexpense.types import MessageResponse, Source

logger = logging.getLogger(__name__)

POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"
REPLAY_WINDOW_SECONDS = 300
_MENTION_PATTERN = re.compile(r"<@[A-Z0-9]+>")


class SlackAdapter(ChannelAdapter):
    source = Source.SLACK
    delivery = DeliveryMode.ASYNC

    def __init__(self, settings, clock: Callable[[], float] = time.time):
        super().__init__(settings)
        self._clock = clock

    def verify(self, body: bytes, headers: Mapping[str, str]) -> None:
        timestamp = headers.get("X-Slack-Request-Timestamp", "")
        try:
            sent_at = int(timestamp)
        except ValueError:
            raise InvalidSignatureError("missing or invalid Slack timestamp")
        if abs(self._clock() - sent_at) > REPLAY_WINDOW_SECONDS:
            raise InvalidSignatureError("Slack request timestamp outside the replay window")

        basestring = f"v0:{timestamp}:".encode("utf-8") + body
        expected = "v0=" + hmac_sha256_hex(self.settings.credential("SLACK_SIGNING_SECRET"), basestring)
        if not signatures_match(expected, headers.get("X-Slack-Signature")):
            raise InvalidSignatureError("invalid Slack signature")

    def receive(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> Inbound:
        self.verify(body, headers)
        payload = self.decode_json(body)

        if payload.get("type") == "url_verification":
            return Inbound(handshake={"challenge": payload.get("challenge", "")})

        # Retries of an event already being processed
        if headers.get("X-Slack-Retry-Num"):
            logger.info(f"Ignoring Slack retry #{headers.get('X-Slack-Retry-Num')}")
            return Inbound()

        event = payload.get("event") or {}
        if payload.get("type") != "event_callback" or event.get("type") not in ("message", "app_mention"):
            return Inbound()
        if event.get("bot_id") or event.get("subtype") or not event.get("user"):
            return Inbound()

        return Inbound(messages=[self.new_message(
            event["user"],
            _MENTION_PATTERN.sub("", event.get("text", "")).strip(),
            {"channel": event.get("channel"), "thread_ts": event.get("thread_ts")},
        )])

    def deliver(self, response: MessageResponse, metadata: dict) -> None:
        channel = metadata.get("channel")
        if not channel:
            raise DeliveryError(self.name, "missing channel")

        payload = {"channel": channel, "text": response.text}
        if metadata.get("thread_ts"):
            payload["thread_ts"] = metadata["thread_ts"]

        resp = self.post_json(
            POST_MESSAGE_URL,
            payload,
            headers={"Authorization": f"Bearer {self.settings.credential('SLACK_BOT_TOKEN')}"},
        )
        result = resp.json()
        if not result.get("ok", False):
            raise DeliveryError(self.name, result.get("error", "chat.postMessage failed"))
