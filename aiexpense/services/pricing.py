# -*- coding: utf-8 -*-
"""
AI cost accounting.

PricingResolver turns token counts into a cost using the active pricing row
for (provider, model). CostLedger appends one AICostLog per AI invocation.

Prices are USD per one million tokens:
    cost = (input_tokens * input_price + output_tokens * output_price) / 1,000,000
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Tuple

from aiexpense.errors import PersistenceError, StoreUnavailableError
from aiexpense.storage.repositories import AICostRepository, PricingRepository
from aiexpense.types import AICostLog, TokenMetadata

logger = logging.getLogger(__name__)

PRICING_NOT_CONFIGURED = "pricing_not_configured"
FALLBACK_PARSER = "fallback_parser"
DEFAULT_COST_CURRENCY = "USD"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PricingResolver:
    def __init__(self, repository: PricingRepository, clock: Callable[[], datetime] = _utcnow):
        self.repository = repository
        self._clock = clock

    def cost(
        self, provider: str, model: str, input_tokens: int, output_tokens: int
    ) -> Tuple[Decimal, Optional[str]]:
        """
        Returns:
            (cost, cost_note). Missing or inactive pricing gives
            (0, "pricing_not_configured") and a warning.
        """
        pricing = self.repository.get_active(provider, model, self._clock().date())
        if pricing is None:
            logger.warning(f"No active pricing for {provider}/{model}; recording zero cost")
            return Decimal("0"), PRICING_NOT_CONFIGURED
        return pricing.cost(input_tokens, output_tokens), None


class CostLedger:
    """Append-only record of AI spend. Write failures never reach the caller."""

    def __init__(self, repository: AICostRepository, resolver: PricingResolver):
        self.repository = repository
        self.resolver = resolver

    def record(
        self, user_id: str, operation: str, tokens: TokenMetadata, fallback: bool = False
    ) -> Optional[AICostLog]:
        """
        Write exactly one AICostLog for an AI invocation.

        Args:
            user_id: user the call was made for
            operation: e.g. "parse_expense"
            tokens: usage reported by the provider (zero for fallback)
            fallback: the AI call failed and the regex parser answered

        Returns:
            The written log, or None if the write failed
        """
        try:
            if fallback:
                cost, note = Decimal("0"), FALLBACK_PARSER
            else:
                cost, note = self.resolver.cost(
                    tokens.provider, tokens.model, tokens.input_tokens, tokens.output_tokens
                )

            log = AICostLog(
                id=f"log_{uuid.uuid4().hex}",
                user_id=user_id,
                operation=operation,
                provider=tokens.provider,
                model=tokens.model,
                input_tokens=tokens.input_tokens,
                output_tokens=tokens.output_tokens,
                cost=cost,
                currency=DEFAULT_COST_CURRENCY,
                cost_note=note,
                created_at=_utcnow(),
            )
            self.repository.create(log)
        except (PersistenceError, StoreUnavailableError) as e:
            logger.error(f"Failed to record AI cost for user {user_id}: {e}")
            return None

        logger.info(f"AI cost for user {user_id}: {cost} {DEFAULT_COST_CURRENCY} ({operation}, {tokens.model or 'n/a'})")
        return log
