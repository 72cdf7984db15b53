# -*- coding: utf-8 -*-
"""
Telegram Bot API channel.

When TELEGRAM_SECRET_TOKEN is configured, the webhook must carry it in the
X-Telegram-Bot-Api-Secret-Token header (set via setWebhook's secret_token).
"""

import logging
from typing import Mapping

from aiexpense.channels.base import ChannelAdapter, DeliveryMode, Inbound, signatures_match
from aiexpense.errors import DeliveryError, InvalidSignatureError
from aiexpense.types import MessageResponse, Source

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.telegram.org"
MAX_TEXT_LENGTH = 4096


class TelegramAdapter(ChannelAdapter):
    source = Source.TELEGRAM
    delivery = DeliveryMode.ASYNC

    def receive(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> Inbound:
        secret = self.settings.credential("TELEGRAM_SECRET_TOKEN")
        if secret and not signatures_match(secret, headers.get("X-Telegram-Bot-Api-Secret-Token")):
            raise InvalidSignatureError("invalid Telegram secret token")

        update = self.decode_json(body)
        message = update.get("message") or update.get("edited_message")
        if not isinstance(message, dict) or not isinstance(message.get("text"), str):
            logger.info(f"Ignoring Telegram update {update.get('update_id')} without text")
            return Inbound()

        sender = message.get("from") or {}
        chat = message.get("chat") or {}
        if sender.get("is_bot") or "id" not in sender or "id" not in chat:
            return Inbound()

        return Inbound(messages=[self.new_message(
            f"telegram_{sender['id']}",
            message["text"],
            {"chat_id": chat["id"], "message_id": message.get("message_id")},
        )])

    def deliver(self, response: MessageResponse, metadata: dict) -> None:
        chat_id = metadata.get("chat_id")
        if chat_id is None:
            raise DeliveryError(self.name, "missing chat_id")

        token = self.settings.credential("TELEGRAM_BOT_TOKEN")
        resp = self.post_json(
            f"{API_BASE_URL}/bot{token}/sendMessage",
            {"chat_id": chat_id, "text": response.text[:MAX_TEXT_LENGTH]},
        )
        if not resp.json().get("ok", False):
            raise DeliveryError(self.name, resp.json().get("description", "sendMessage failed"))
