# -*- coding: utf-8 -*-
"""
Discord interactions endpoint.

Discord expects the reply in the HTTP response (type 4,
CHANNEL_MESSAGE_WITH_SOURCE) and validates the endpoint with a PING that
must be answered with PONG.

Requests are signed with the application's Ed25519 key:
    X-Signature-Ed25519 = hex(sign(timestamp + body))
and verified against DISCORD_PUBLIC_KEY.
"""

import logging
from typing import Mapping, Optional

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from aiexpense.channels.base import ChannelAdapter, DeliveryMode, Inbound
from aiexpense.errors import InvalidSignatureError, MalformedPayloadError
from aiexpense.types import MessageResponse, Source

logger = logging.getLogger(__name__)

INTERACTION_PING = 1
INTERACTION_APPLICATION_COMMAND = 2
RESPONSE_PONG = 1
RESPONSE_CHANNEL_MESSAGE = 4
MAX_TEXT_LENGTH = 2000


def _interaction_text(interaction: dict) -> str:
    data = interaction.get("data") or {}
    if data.get("content"):
        return str(data["content"])
    for option in data.get("options") or []:
        if isinstance(option, dict) and isinstance(option.get("value"), str):
            return option["value"]
    message = interaction.get("message") or {}
    return str(message.get("content") or "")


class DiscordAdapter(ChannelAdapter):
    source = Source.DISCORD
    delivery = DeliveryMode.SYNC

    def verify(self, body: bytes, headers: Mapping[str, str]) -> None:
        signature = headers.get("X-Signature-Ed25519")
        timestamp = headers.get("X-Signature-Timestamp")
        if not signature or not timestamp:
            raise InvalidSignatureError("missing Discord signature headers")

        try:
            verify_key = VerifyKey(bytes.fromhex(self.settings.credential("DISCORD_PUBLIC_KEY")))
            verify_key.verify(timestamp.encode("utf-8") + body, bytes.fromhex(signature))
        except (BadSignatureError, ValueError, TypeError) as e:
            raise InvalidSignatureError(f"invalid Discord signature: {e}")

    def receive(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> Inbound:
        self.verify(body, headers)

        interaction = self.decode_json(body)
        interaction_type = interaction.get("type")
        if not isinstance(interaction_type, int):
            raise MalformedPayloadError("interaction has no type")

        if interaction_type == INTERACTION_PING:
            return Inbound(handshake={"type": RESPONSE_PONG})

        user = interaction.get("user") or (interaction.get("member") or {}).get("user") or {}
        if not user.get("id") or not interaction.get("id"):
            raise MalformedPayloadError("interaction has no user or id")

        return Inbound(messages=[self.new_message(
            user["id"],
            _interaction_text(interaction),
            {"interaction_id": interaction["id"], "channel_id": interaction.get("channel_id")},
        )])

    def deliver(self, response: MessageResponse, metadata: dict) -> Optional[dict]:
        return {
            "type": RESPONSE_CHANNEL_MESSAGE,
            "data": {"content": response.text[:MAX_TEXT_LENGTH]},
        }
