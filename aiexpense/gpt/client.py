# -*- coding: utf-8 -*-
"""
AI Backend

Wraps the chat-completion call that turns a message into raw expense items.
The call is bounded by a timeout and never retried; every failure mode is
raised as an AIBackendError subclass so the parsing engine can fall back.

Gemini is reached through its OpenAI-compatible endpoint, so one client
class serves both providers.
"""

import json
import logging
from datetime import date
from typing import Optional, Protocol

import openai
from openai import OpenAI

from aiexpense.errors import (
    AIBackendError,
    AIEmptyOutputError,
    AIMalformedOutputError,
    AIRateLimitError,
    AITimeoutError,
)
from aiexpense.gpt.prompts import EXPENSE_EXTRACTION_PROMPT, SYSTEM_PROMPT
from aiexpense.types import DEFAULT_CATEGORIES, TokenMetadata

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class AIBackend(Protocol):
    provider: str
    model: str

    def generate_parse(self, text: str, today: date) -> tuple[list[dict], TokenMetadata]:
        ...


class OpenAICompatibleBackend:
    """
    Expense extraction over an OpenAI-compatible chat completion API.

    Args:
        api_key: provider API key
        provider: "gemini" or "openai" (used for base URL and cost lookup)
        model: model name
        timeout: seconds before the call is abandoned
        client: pre-built OpenAI client (tests)
    """

    def __init__(
        self,
        api_key: str,
        provider: str = "gemini",
        model: str = "gemini-2.5-flash-lite",
        timeout: float = 5.0,
        client: Optional[OpenAI] = None,
    ):
        self.provider = provider
        self.model = model
        self.timeout = timeout
        if client is None:
            base_url = GEMINI_BASE_URL if provider == "gemini" else None
            client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self.client = client

    def generate_parse(self, text: str, today: date) -> tuple[list[dict], TokenMetadata]:
        """
        Ask the model for the expenses in ``text``.

        Returns:
            (items, usage): raw expense dicts in message order, and token usage

        Raises:
            AITimeoutError, AIRateLimitError, AIEmptyOutputError,
            AIMalformedOutputError, AIBackendError
        """
        prompt = EXPENSE_EXTRACTION_PROMPT.format(
            today=today.isoformat(),
            categories=", ".join(DEFAULT_CATEGORIES),
            text=text,
        )

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                timeout=self.timeout,
            )
        except openai.APITimeoutError as e:
            raise AITimeoutError(f"{self.provider} timed out after {self.timeout}s") from e
        except openai.RateLimitError as e:
            raise AIRateLimitError(f"{self.provider} rate limited") from e
        except openai.OpenAIError as e:
            raise AIBackendError(f"{self.provider} call failed: {e}") from e

        usage = TokenMetadata(provider=self.provider, model=self.model)
        if completion.usage is not None:
            usage = TokenMetadata(
                provider=self.provider,
                model=self.model,
                input_tokens=completion.usage.prompt_tokens or 0,
                output_tokens=completion.usage.completion_tokens or 0,
            )

        if not completion.choices or not completion.choices[0].message.content:
            raise AIEmptyOutputError(f"{self.provider} returned no content")

        response_text = completion.choices[0].message.content
        try:
            payload = json.loads(response_text)
        except json.JSONDecodeError as e:
            raise AIMalformedOutputError(f"{self.provider} returned invalid JSON") from e

        items = payload.get("expenses") if isinstance(payload, dict) else payload
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise AIMalformedOutputError(f"{self.provider} returned an unexpected shape")
        if not items:
            raise AIEmptyOutputError(f"{self.provider} found no expenses")

        logger.debug(f"AI response: {items}")
        return items, usage


def build_backend(provider: str, model: str, api_key: str, timeout: float = 5.0) -> Optional[OpenAICompatibleBackend]:
    """Backend for the configured provider, or None when no API key is set."""
    if not api_key:
        logger.warning(f"No API key configured for {provider}; using the regex parser only")
        return None
    return OpenAICompatibleBackend(api_key=api_key, provider=provider, model=model, timeout=timeout)
