# -*- coding: utf-8 -*-
"""
Message Gateway

Channel-agnostic processing of one normalized message:

1. ensure the user exists (failures are logged, processing continues)
2. parse the text (AI, cache or regex fallback) and record the AI cost
3. ask for clarification when nothing could be parsed
4. persist each candidate independently
5. build one reply line per candidate, in message order

Only StoreUnavailableError escapes ``process``; adapters turn it into
their generic failure reply.
"""

import logging
from decimal import Decimal
from typing import Optional

from aiexpense.config import Settings
from aiexpense.errors import SignupError, StoreUnavailableError
from aiexpense.formatters import (
    format_clarification,
    format_failed_line,
    format_incomplete,
    format_saved_line,
)
from aiexpense.gpt.client import build_backend
from aiexpense.parser.cache import build_parse_cache
from aiexpense.parser.engine import ParsingEngine
from aiexpense.parser.errors import ClarificationCode, clarification_message
from aiexpense.parser.extract_amount import format_amount
from aiexpense.services.exchange_rate import ExchangeRateService
from aiexpense.services.expense_store import ExpenseStore
from aiexpense.services.pricing import CostLedger, PricingResolver
from aiexpense.services.signup import SignupCoordinator
from aiexpense.storage.db import initialize_schema
from aiexpense.storage.repositories import (
    AICostRepository,
    CategoryRepository,
    ExpenseRepository,
    PricingRepository,
    UserRepository,
)
from aiexpense.types import MessageResponse, UserMessage

logger = logging.getLogger(__name__)

PARSE_OPERATION = "parse_expense"


class MessageGateway:
    def __init__(
        self,
        signup: SignupCoordinator,
        parser: ParsingEngine,
        store: ExpenseStore,
        ledger: CostLedger,
    ):
        self.signup = signup
        self.parser = parser
        self.store = store
        self.ledger = ledger

    @property
    def home_currency(self) -> str:
        return self.store.home_currency

    def process(self, message: UserMessage) -> MessageResponse:
        """
        Process one message and build the reply.

        Raises:
            StoreUnavailableError: the database cannot be reached
        """
        logger.info(f"Processing message from {message.source.value}/{message.user_id}")

        try:
            self.signup.ensure_user(message.user_id, message.source)
        except SignupError as e:
            logger.error(f"Signup failed for {message.source.value}/{message.user_id}: {e}")

        text = (message.text or "").strip()
        if not text:
            return MessageResponse(text=clarification_message(ClarificationCode.UNPARSEABLE))

        try:
            result = self.parser.parse(text, message.user_id, message.received_at)
        except Exception as e:
            logger.error(f"Parsing failed for user {message.user_id}: {e}", exc_info=True)
            return MessageResponse(text=clarification_message(ClarificationCode.PARSE_FAILED))

        # Cache hits and backend-less parsing involve no AI invocation
        if not result.from_cache and self.parser.backend is not None:
            self.ledger.record(message.user_id, PARSE_OPERATION, result.tokens, fallback=result.used_fallback)

        if not result.candidates:
            return MessageResponse(text=format_clarification(result.incomplete))

        lines = []
        saved = []
        failed = []
        for candidate in result.candidates:
            try:
                item = self.store.save(message.user_id, message.source.value, candidate)
            except StoreUnavailableError:
                raise
            except Exception as e:
                logger.error(f"Failed to save '{candidate.description}' for user {message.user_id}: {e}")
                failed.append(candidate)
                lines.append(format_failed_line(candidate.description))
                continue
            saved.append(item)
            lines.append(format_saved_line(item))

        lines.extend(format_incomplete(item) for item in result.incomplete)

        total = sum(
            (item.expense.home_amount for item in saved if item.expense.home_amount is not None),
            Decimal("0"),
        )
        logger.info(f"Saved {len(saved)}/{len(result.candidates)} expenses for user {message.user_id}")

        return MessageResponse(
            text="\n".join(lines),
            structured_data={
                "expenses": [item.expense.to_dict() for item in saved],
                "failed": [candidate.to_dict() for candidate in failed],
                "total": format_amount(total),
                "home_currency": self.home_currency,
            },
        )


def build_gateway(settings: Settings, parser: Optional[ParsingEngine] = None) -> MessageGateway:
    """Wire a gateway from settings: schema, repositories, parser, services."""
    db_path = settings.database_path
    initialize_schema(db_path)
    PricingRepository(db_path).seed_defaults()

    if parser is None:
        backend = build_backend(settings.ai_provider, settings.ai_model, settings.ai_api_key, settings.ai_timeout)
        parser = ParsingEngine(backend, build_parse_cache(settings.redis_url, settings.parse_cache_ttl))

    return MessageGateway(
        signup=SignupCoordinator(UserRepository(db_path), CategoryRepository(db_path)),
        parser=parser,
        store=ExpenseStore(
            ExpenseRepository(db_path),
            CategoryRepository(db_path),
            settings.home_currency,
            ExchangeRateService(live=settings.exchange_rate_live),
        ),
        ledger=CostLedger(AICostRepository(db_path), PricingResolver(PricingRepository(db_path))),
    )
