# -*- coding: utf-8 -*-
"""
Parsing Engine

Turns message text into expense candidates:

1. cache lookup by exact text (hit: zero tokens, no AI call, relative dates
   re-resolved against the new message)
2. AI backend with a bounded timeout
3. regex fallback on any AI failure

Only successful AI parses are cached.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from aiexpense.errors import AIBackendError
from aiexpense.gpt.client import AIBackend
from aiexpense.parser.cache import CachedParse, InMemoryParseCache, ParseCache
from aiexpense.parser.fallback import detect_payment_method, extract_expenses, suggest_category
from aiexpense.types import (
    DEFAULT_CATEGORIES,
    DEFAULT_PAYMENT_METHOD,
    IncompleteCandidate,
    ParsedExpenseCandidate,
    ParseResult,
    TokenMetadata,
)

logger = logging.getLogger(__name__)


def _to_amount(value) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _to_date(value, received_at: datetime) -> date:
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    return received_at.date()


def _to_category(value, description: str) -> str:
    if isinstance(value, str):
        for name in DEFAULT_CATEGORIES:
            if name.lower() == value.strip().lower():
                return name
    return suggest_category(description)


def _to_currency(value) -> Optional[str]:
    if isinstance(value, str) and len(value.strip()) == 3 and value.strip().isalpha():
        return value.strip().upper()
    return None


def candidates_from_ai(
    items: List[dict], received_at: datetime
) -> Tuple[List[ParsedExpenseCandidate], List[IncompleteCandidate]]:
    """
    Validate raw AI items.

    Items missing both description and amount are dropped; items missing
    one of them become IncompleteCandidate.
    """
    candidates = []
    incomplete = []
    for item in items:
        description = str(item.get("description") or "").strip()
        amount = _to_amount(item.get("amount"))
        currency = _to_currency(item.get("currency"))

        if not description and amount is None:
            continue
        if not description or amount is None:
            incomplete.append(IncompleteCandidate(
                description=description or None,
                amount=amount,
                currency=currency,
            ))
            continue

        payment_method = item.get("payment_method")
        if not isinstance(payment_method, str) or not payment_method.strip():
            payment_method = detect_payment_method(description) or DEFAULT_PAYMENT_METHOD

        candidates.append(ParsedExpenseCandidate(
            description=description,
            amount=amount,
            date=_to_date(item.get("date"), received_at),
            suggested_category=_to_category(item.get("suggested_category"), description),
            payment_method=payment_method.strip(),
            currency=currency,
        ))
    return candidates, incomplete


class ParsingEngine:
    """
    Args:
        backend: AI backend, or None to always use the regex fallback
        cache: parse cache (in-process by default)
    """

    def __init__(self, backend: Optional[AIBackend] = None, cache: Optional[ParseCache] = None):
        self.backend = backend
        self.cache = cache if cache is not None else InMemoryParseCache()

    @property
    def provider(self) -> str:
        return self.backend.provider if self.backend else ""

    @property
    def model(self) -> str:
        return self.backend.model if self.backend else ""

    def _zero_tokens(self) -> TokenMetadata:
        return TokenMetadata.zero(self.provider, self.model)

    def parse(self, text: str, user_id: str, received_at: datetime) -> ParseResult:
        """
        Parse ``text`` into zero or more candidates.

        Never raises for AI failures; those fall through to the regex parser.
        """
        if not text or not text.strip():
            return ParseResult(tokens=self._zero_tokens(), origin="fallback")

        cached = self.cache.get(text)
        if cached is not None:
            logger.info(f"Parse cache hit for user {user_id}")
            return ParseResult(
                candidates=cached.resolve(received_at.date()),
                tokens=self._zero_tokens(),
                incomplete=list(cached.incomplete),
                origin="cache",
            )

        if self.backend is not None:
            try:
                items, usage = self.backend.generate_parse(text, received_at.date())
                candidates, incomplete = candidates_from_ai(items, received_at)
                if candidates or incomplete:
                    self.cache.set(text, CachedParse.from_parse(text, received_at.date(), candidates, incomplete))
                    logger.info(
                        f"AI parsed {len(candidates)} candidates for user {user_id} "
                        f"({usage.input_tokens}+{usage.output_tokens} tokens)"
                    )
                    return ParseResult(candidates, usage, incomplete, origin="ai")
                logger.warning(f"AI returned no usable items for user {user_id}, using regex fallback")
            except AIBackendError as e:
                logger.warning(f"AI parse failed ({e.reason}) for user {user_id}: {e}; using regex fallback")

        candidates, incomplete = extract_expenses(text, received_at)
        return ParseResult(candidates, self._zero_tokens(), incomplete, origin="fallback")
