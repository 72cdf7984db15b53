# -*- coding: utf-8 -*-
"""
Microsoft Teams (Bot Framework) channel.

Incoming activities carry "Authorization: HMAC <base64>", the HMAC-SHA256
of the body keyed with the app password (outgoing-webhook style). Replies
are posted to the activity's serviceUrl with a Bot Framework access token.
"""

import logging
import threading
import time
from typing import Mapping, Optional

import requests

from aiexpense.channels.base import (
    OUTBOUND_TIMEOUT_SECONDS,
    ChannelAdapter,
    DeliveryMode,
    Inbound,
    hmac_sha256_base64,
    signatures_match,
)
from aiexpense.errors import DeliveryError, InvalidSignatureError
from aiexpense.types import MessageResponse, Source

logger = logging.getLogger(__name__)

TOKEN_URL = "https://login.microsoftonline.com/botframework.com/oauth2/v2.0/token"
TOKEN_SCOPE = "https://api.botframework.com/.default"
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class TeamsAdapter(ChannelAdapter):
    source = Source.TEAMS
    delivery = DeliveryMode.ASYNC

    def __init__(self, settings):
        super().__init__(settings)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def receive(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> Inbound:
        authorization = headers.get("Authorization", "")
        if not authorization.startswith("HMAC "):
            raise InvalidSignatureError("missing Teams HMAC authorization")
        expected = hmac_sha256_base64(self.settings.credential("TEAMS_APP_PASSWORD"), body)
        if not signatures_match(expected, authorization[len("HMAC "):]):
            raise InvalidSignatureError("invalid Teams signature")

        activity = self.decode_json(body)
        if activity.get("type") != "message" or not isinstance(activity.get("text"), str):
            return Inbound()

        sender = activity.get("from") or {}
        conversation = activity.get("conversation") or {}
        if not sender.get("id") or not conversation.get("id"):
            return Inbound()

        return Inbound(messages=[self.new_message(
            sender["id"],
            activity["text"],
            {
                "service_url": activity.get("serviceUrl", ""),
                "conversation_id": conversation["id"],
                "activity_id": activity.get("id"),
            },
        )])

    def get_access_token(self) -> str:
        """Client-credentials token for the Bot Connector API, cached until shortly before expiry."""
        with self._token_lock:
            if self._token and time.time() < self._token_expires_at:
                return self._token
            try:
                resp = requests.post(
                    TOKEN_URL,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self.settings.credential("TEAMS_APP_ID"),
                        "client_secret": self.settings.credential("TEAMS_APP_PASSWORD"),
                        "scope": TOKEN_SCOPE,
                    },
                    timeout=OUTBOUND_TIMEOUT_SECONDS,
                )
            except requests.RequestException as e:
                raise DeliveryError(self.name, f"token request failed: {e}") from e
            if resp.status_code >= 400:
                raise DeliveryError(self.name, f"token request returned HTTP {resp.status_code}", resp.status_code)

            payload = resp.json()
            self._token = payload["access_token"]
            self._token_expires_at = time.time() + int(payload.get("expires_in", 3600)) - TOKEN_EXPIRY_MARGIN_SECONDS
            return self._token

    def deliver(self, response: MessageResponse, metadata: dict) -> None:
        service_url = (metadata.get("service_url") or "").rstrip("/")
        conversation_id = metadata.get("conversation_id")
        if not service_url or not conversation_id:
            raise DeliveryError(self.name, "missing service_url or conversation_id")

        activity = {"type": "message", "text": response.text}
        if metadata.get("activity_id"):
            activity["replyToId"] = metadata["activity_id"]

        self.post_json(
            f"{service_url}/v3/conversations/{conversation_id}/activities",
            activity,
            headers={"Authorization": f"Bearer {self.get_access_token()}"},
        )
