# -*- coding: utf-8 -*-
"""
WhatsApp Cloud API channel.

- GET verification: hub.mode=subscribe and hub.verify_token must match
  WHATSAPP_VERIFY_TOKEN; the hub.challenge is echoed back.
- POST notifications: X-Hub-Signature-256 = "sha256=" + hex(HMAC-SHA256(app secret, body)).
"""

import logging
from typing import Mapping

from aiexpense.channels.base import ChannelAdapter, DeliveryMode, Inbound, hmac_sha256_hex, signatures_match
from aiexpense.errors import DeliveryError, InvalidSignatureError
from aiexpense.types import MessageResponse, Source

logger = logging.getLogger(__name__)

GRAPH_API_URL = "https://graph.facebook.com/v18.0"
MAX_TEXT_LENGTH = 4096


class WhatsAppAdapter(ChannelAdapter):
    source = Source.WHATSAPP
    delivery = DeliveryMode.ASYNC
    methods = ("GET", "POST")

    def receive(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> Inbound:
        if query.get("hub.mode"):
            return self._verify_subscription(query)

        expected = "sha256=" + hmac_sha256_hex(self.settings.credential("WHATSAPP_APP_SECRET"), body)
        if not signatures_match(expected, headers.get("X-Hub-Signature-256")):
            raise InvalidSignatureError("invalid WhatsApp signature")

        payload = self.decode_json(body)
        messages = []
        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                value = change.get("value") or {}
                for message in value.get("messages") or []:
                    if message.get("type") != "text" or not message.get("from"):
                        continue
                    messages.append(self.new_message(
                        message["from"],
                        (message.get("text") or {}).get("body", ""),
                        {"to": message["from"], "message_id": message.get("id")},
                    ))
        return Inbound(messages=messages)

    def _verify_subscription(self, query: Mapping[str, str]) -> Inbound:
        verify_token = self.settings.credential("WHATSAPP_VERIFY_TOKEN")
        if query.get("hub.mode") != "subscribe" or not verify_token:
            raise InvalidSignatureError("unexpected WhatsApp verification request")
        if not signatures_match(verify_token, query.get("hub.verify_token")):
            raise InvalidSignatureError("WhatsApp verify token mismatch")
        logger.info("WhatsApp webhook verified")
        return Inbound(handshake=query.get("hub.challenge", ""))

    def deliver(self, response: MessageResponse, metadata: dict) -> None:
        to = metadata.get("to")
        if not to:
            raise DeliveryError(self.name, "missing recipient")

        phone_number_id = self.settings.credential("WHATSAPP_PHONE_NUMBER_ID")
        self.post_json(
            f"{GRAPH_API_URL}/{phone_number_id}/messages",
            {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "text",
                "text": {"body": response.text[:MAX_TEXT_LENGTH]},
            },
            headers={"Authorization": f"Bearer {self.settings.credential('WHATSAPP_ACCESS_TOKEN')}"},
        )
