# -*- coding: utf-8 -*-
"""
Terminal channel for local testing.

POST /webhook/terminal with {"user_id": "...", "message": "..."}; the reply
comes back in the response body as {"status", "message", "data"}.
"""

from typing import Mapping, Optional

from aiexpense.channels.base import ChannelAdapter, DeliveryMode, Inbound
from aiexpense.errors import MalformedPayloadError
from aiexpense.types import MessageResponse, Source

DEFAULT_USER_ID = "terminal_user"


class TerminalAdapter(ChannelAdapter):
    source = Source.TERMINAL
    delivery = DeliveryMode.SYNC

    def receive(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> Inbound:
        payload = self.decode_json(body)
        text = payload.get("message")
        if not isinstance(text, str):
            raise MalformedPayloadError("'message' must be a string")
        user_id = str(payload.get("user_id") or DEFAULT_USER_ID)
        return Inbound(messages=[self.new_message(user_id, text)])

    def deliver(self, response: MessageResponse, metadata: dict) -> Optional[dict]:
        return {
            "status": "error" if metadata.get("failed") else "success",
            "message": response.text,
            "data": response.structured_data,
        }
