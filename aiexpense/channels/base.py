# -*- coding: utf-8 -*-
"""
Channel adapter interface.

An adapter owns everything platform-specific: authenticity checks, payload
mapping into UserMessage, handshakes, and delivery of the reply. The
gateway only ever sees UserMessage and MessageResponse.

Delivery modes:
- SYNC: the reply is the body of the webhook's HTTP response
- ASYNC: the webhook is acknowledged at once; the reply is pushed later
  through the platform's outbound API
"""

import base64
import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Mapping, Optional

import requests

from aiexpense.config import Settings
from aiexpense.errors import DeliveryError, MalformedPayloadError
from aiexpense.types import MessageResponse, Source, UserMessage

logger = logging.getLogger(__name__)

OUTBOUND_TIMEOUT_SECONDS = 10
GENERIC_FAILURE_TEXT = "Sorry, something went wrong while recording your expenses. Please try again later."


class DeliveryMode(Enum):
    SYNC = "sync"
    ASYNC = "async"


@dataclass
class Inbound:
    """
    Result of receiving one webhook.

    ``handshake`` is a platform verification reply (Slack challenge,
    Discord PONG, WhatsApp hub.challenge); when set, ``messages`` is empty
    and the handshake is returned as-is.
    """

    messages: List[UserMessage] = field(default_factory=list)
    handshake: Optional[Any] = None


class ChannelAdapter(ABC):
    source: Source
    delivery: DeliveryMode = DeliveryMode.ASYNC
    methods = ("POST",)
    generic_failure_text = GENERIC_FAILURE_TEXT

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def name(self) -> str:
        return self.source.value

    @property
    def route(self) -> str:
        return f"/webhook/{self.name}"

    @abstractmethod
    def receive(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> Inbound:
        """
        Authenticate and map one webhook request.

        Raises:
            InvalidSignatureError: authenticity check failed
            MalformedPayloadError: body could not be decoded
        """

    @abstractmethod
    def deliver(self, response: MessageResponse, metadata: dict) -> Optional[dict]:
        """
        Hand the reply to the platform.

        SYNC adapters return the HTTP response body; ASYNC adapters push the
        reply and return None.

        Raises:
            DeliveryError: the platform rejected the outbound call
        """

    def acknowledge(self) -> Any:
        """Immediate HTTP body for ASYNC webhooks."""
        return "OK"

    def failure_response(self) -> MessageResponse:
        return MessageResponse(text=self.generic_failure_text)

    def new_message(self, user_id: str, text: str, metadata: Optional[dict] = None) -> UserMessage:
        return UserMessage(
            user_id=user_id,
            source=self.source,
            text=text or "",
            received_at=datetime.now(timezone.utc),
            metadata=metadata or {},
        )

    # helpers shared by the HTTP-based adapters

    @staticmethod
    def decode_json(body: bytes) -> dict:
        try:
            payload = json.loads(body or b"")
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedPayloadError(f"invalid JSON body: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedPayloadError("JSON body must be an object")
        return payload

    def post_json(self, url: str, payload: dict, headers: Optional[dict] = None) -> requests.Response:
        try:
            resp = requests.post(url, json=payload, headers=headers or {}, timeout=OUTBOUND_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            raise DeliveryError(self.name, str(e)) from e
        if resp.status_code >= 400:
            raise DeliveryError(self.name, f"HTTP {resp.status_code}: {resp.text[:200]}", resp.status_code)
        return resp


def hmac_sha256(secret: str, body: bytes) -> bytes:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()


def hmac_sha256_hex(secret: str, body: bytes) -> str:
    return hmac_sha256(secret, body).hex()


def hmac_sha256_base64(secret: str, body: bytes) -> str:
    return base64.b64encode(hmac_sha256(secret, body)).decode("utf-8")


def signatures_match(expected: str, received: Optional[str]) -> bool:
    if not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.strip().encode("utf-8"))
