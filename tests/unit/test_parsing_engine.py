# -*- coding: utf-8 -*-
"""
Parsing engine tests

- AI success: candidates and provider token usage, result cached
- AI failure of any kind: regex fallback with zero tokens, nothing cached
- cache hit: no AI call, zero tokens
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from aiexpense.errors import (
    AIBackendError,
    AIEmptyOutputError,
    AIMalformedOutputError,
    AIRateLimitError,
    AITimeoutError,
)
from aiexpense.parser.cache import InMemoryParseCache
from aiexpense.parser.engine import ParsingEngine, candidates_from_ai
from tests.test_utils import FakeBackend

LUNCH_ITEMS = [
    {"description": "lunch", "amount": 120, "suggested_category": "Food", "date": "2025-01-15"},
    {"description": "taxi", "amount": "250", "suggested_category": "transport", "date": "2025-01-14"},
]


class TestAISuccess:

    def test_returns_candidates_and_usage(self, received_at):
        backend = FakeBackend(items=LUNCH_ITEMS, input_tokens=150, output_tokens=60)
        engine = ParsingEngine(backend, InMemoryParseCache())

        result = engine.parse("lunch 120 and taxi 250 yesterday", "u1", received_at)

        assert result.origin == "ai"
        assert [(c.description, c.amount) for c in result.candidates] == [
            ("lunch", Decimal("120")),
            ("taxi", Decimal("250")),
        ]
        assert result.candidates[1].date == date(2025, 1, 14)
        assert result.candidates[1].suggested_category == "Transport"
        assert result.tokens.input_tokens == 150
        assert result.tokens.output_tokens == 60
        assert result.tokens.total_tokens == 210

    def test_cache_hit_skips_ai_call(self, received_at):
        backend = FakeBackend(items=LUNCH_ITEMS)
        engine = ParsingEngine(backend, InMemoryParseCache())

        first = engine.parse("lunch 120 and taxi 250", "u1", received_at)
        second = engine.parse("lunch 120 and taxi 250", "u2", received_at)

        assert len(backend.calls) == 1
        assert second.origin == "cache"
        assert second.candidates == first.candidates
        assert second.tokens.total_tokens == 0

    def test_fresh_call_after_expiry(self, received_at):
        now = [0.0]
        backend = FakeBackend(items=LUNCH_ITEMS)
        engine = ParsingEngine(backend, InMemoryParseCache(ttl_seconds=86400, clock=lambda: now[0]))

        engine.parse("lunch 120", "u1", received_at)
        now[0] = 86400.0
        result = engine.parse("lunch 120", "u1", received_at)

        assert len(backend.calls) == 2
        assert result.origin == "ai"


class TestCachedDates:

    DAY1 = datetime(2025, 1, 15, 23, 0, tzinfo=timezone.utc)
    DAY2 = datetime(2025, 1, 16, 8, 0, tzinfo=timezone.utc)

    def test_undated_message_takes_the_new_received_date(self):
        backend = FakeBackend(items=[{"description": "lunch", "amount": 120, "date": "2025-01-15"}])
        engine = ParsingEngine(backend, InMemoryParseCache())

        engine.parse("lunch $120", "u1", self.DAY1)
        result = engine.parse("lunch $120", "u1", self.DAY2)

        assert result.origin == "cache"
        assert result.candidates[0].date == date(2025, 1, 16)

    def test_relative_date_is_re_resolved(self):
        backend = FakeBackend(items=[{"description": "taxi", "amount": 250, "date": "2025-01-14"}])
        engine = ParsingEngine(backend, InMemoryParseCache())

        engine.parse("taxi 250 yesterday", "u1", self.DAY1)
        result = engine.parse("taxi 250 yesterday", "u1", self.DAY2)

        assert result.candidates[0].date == date(2025, 1, 15)

    def test_written_out_date_is_kept(self):
        backend = FakeBackend(items=[{"description": "gift", "amount": 800, "date": "2024-12-25"}])
        engine = ParsingEngine(backend, InMemoryParseCache())

        engine.parse("2024-12-25 gift 800", "u1", self.DAY1)
        result = engine.parse("2024-12-25 gift 800", "u1", self.DAY2)

        assert result.candidates[0].date == date(2024, 12, 25)


class TestFallback:

    @pytest.mark.parametrize("error", [
        AITimeoutError("timed out"),
        AIRateLimitError("429"),
        AIEmptyOutputError("empty"),
        AIMalformedOutputError("not json"),
        AIBackendError("500"),
    ])
    def test_ai_failure_uses_regex_with_zero_tokens(self, error, received_at):
        backend = FakeBackend(error=error)
        cache = InMemoryParseCache()
        engine = ParsingEngine(backend, cache)

        result = engine.parse("breakfast $20 lunch $30 gas $200", "u1", received_at)

        assert result.origin == "fallback"
        assert [c.description for c in result.candidates] == ["breakfast", "lunch", "gas"]
        assert result.tokens.total_tokens == 0
        assert result.tokens.provider == "gemini"
        assert len(cache) == 0

    def test_without_backend(self, received_at):
        engine = ParsingEngine(backend=None)

        result = engine.parse("coffee $5", "u1", received_at)

        assert result.origin == "fallback"
        assert result.candidates[0].amount == Decimal("5")

    def test_ai_items_without_description_or_amount_fall_back(self, received_at):
        backend = FakeBackend(items=[{"description": "", "amount": None}])
        engine = ParsingEngine(backend, InMemoryParseCache())

        result = engine.parse("coffee $5", "u1", received_at)

        assert result.origin == "fallback"
        assert result.candidates[0].description == "coffee"

    def test_blank_text_does_not_call_ai(self, received_at):
        backend = FakeBackend(items=LUNCH_ITEMS)
        engine = ParsingEngine(backend)

        result = engine.parse("   ", "u1", received_at)

        assert result.candidates == []
        assert backend.calls == []


class TestCandidatesFromAI:

    def test_partial_items_become_incomplete(self, received_at):
        candidates, incomplete = candidates_from_ai(
            [
                {"description": "lunch", "amount": 120},
                {"description": "", "amount": 100},
                {"description": "dinner", "amount": None},
                {"description": None, "amount": None},
            ],
            received_at,
        )

        assert [c.description for c in candidates] == ["lunch"]
        assert len(incomplete) == 2
        assert incomplete[0].missing_description and incomplete[0].amount == Decimal("100")
        assert incomplete[1].missing_amount and incomplete[1].description == "dinner"

    def test_defaults_for_missing_fields(self, received_at):
        candidates, _ = candidates_from_ai([{"description": "coffee", "amount": 4.5, "date": "soon"}], received_at)

        assert candidates[0].date == received_at.date()
        assert candidates[0].payment_method == "Cash"
        assert candidates[0].suggested_category == "Food"
        assert candidates[0].amount == Decimal("4.5")
        assert candidates[0].currency is None
