# -*- coding: utf-8 -*-
"""
LINE Messaging API channel.

Signature check and event parsing go through line-bot-sdk's WebhookParser;
replies use the event's reply token.
"""

import logging
from typing import Mapping, Optional

from linebot.v3 import WebhookParser
from linebot.v3.exceptions import InvalidSignatureError as LineInvalidSignatureError
from linebot.v3.messaging import (
    ApiClient,
    ApiException,
    Configuration,
    MessagingApi,
    ReplyMessageRequest,
    TextMessage,
)
from linebot.v3.webhooks import MessageEvent, TextMessageContent

from aiexpense.channels.base import ChannelAdapter, DeliveryMode, Inbound
from aiexpense.errors import DeliveryError, InvalidSignatureError, MalformedPayloadError
from aiexpense.types import MessageResponse, Source

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 5000


class LineAdapter(ChannelAdapter):
    source = Source.LINE
    delivery = DeliveryMode.ASYNC

    def __init__(self, settings, messaging_api: Optional[MessagingApi] = None):
        super().__init__(settings)
        self.parser = WebhookParser(settings.credential("LINE_CHANNEL_SECRET"))
        self._messaging_api = messaging_api

    def get_messaging_api(self) -> MessagingApi:
        """LINE Messaging API client (lazy initialization)"""
        if self._messaging_api is None:
            logger.info("Initializing MessagingApi")
            configuration = Configuration(access_token=self.settings.credential("LINE_CHANNEL_ACCESS_TOKEN"))
            self._messaging_api = MessagingApi(ApiClient(configuration))
        return self._messaging_api

    def receive(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> Inbound:
        signature = headers.get("X-Line-Signature")
        if not signature:
            raise InvalidSignatureError("missing X-Line-Signature header")

        try:
            events = self.parser.parse(body.decode("utf-8"), signature)
        except LineInvalidSignatureError as e:
            raise InvalidSignatureError("invalid LINE signature") from e
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedPayloadError(f"invalid LINE payload: {e}") from e

        messages = []
        for event in events:
            if not isinstance(event, MessageEvent) or not isinstance(event.message, TextMessageContent):
                logger.info(f"Ignoring LINE event of type {getattr(event, 'type', type(event).__name__)}")
                continue
            user_id = getattr(event.source, "user_id", None)
            if not user_id:
                continue
            messages.append(self.new_message(user_id, event.message.text, {"reply_token": event.reply_token}))
        return Inbound(messages=messages)

    def deliver(self, response: MessageResponse, metadata: dict) -> None:
        reply_token = metadata.get("reply_token")
        if not reply_token:
            raise DeliveryError(self.name, "missing reply token")

        request = ReplyMessageRequest(
            reply_token=reply_token,
            messages=[TextMessage(text=response.text[:MAX_TEXT_LENGTH])],
        )
        try:
            self.get_messaging_api().reply_message(request)
        except ApiException as e:
            raise DeliveryError(self.name, str(e), getattr(e, "status", None)) from e
