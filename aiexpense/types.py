# -*- coding: utf-8 -*-
"""
Domain types shared by the gateway, parser, stores and channel adapters.

Amounts and prices are Decimal, calendar dates are ``date``, instants are
timezone-aware ``datetime``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class Source(Enum):
    """Messaging channel a message came from."""

    TERMINAL = "terminal"
    LINE = "line"
    TELEGRAM = "telegram"
    DISCORD = "discord"
    SLACK = "slack"
    TEAMS = "teams"
    WHATSAPP = "whatsapp"

    @classmethod
    def from_string(cls, value: str) -> "Source":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown source: {value}")


DEFAULT_PAYMENT_METHOD = "Cash"
DEFAULT_CATEGORIES = ("Food", "Transport", "Shopping", "Entertainment", "Other")


@dataclass
class UserMessage:
    """Normalized inbound message. ``metadata`` is only read by the adapter."""

    user_id: str
    source: Source
    text: str
    received_at: datetime
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class MessageResponse:
    """Normalized outbound reply."""

    text: str
    structured_data: Optional[dict] = None


@dataclass(frozen=True)
class ParsedExpenseCandidate:
    description: str
    amount: Decimal
    date: date
    suggested_category: Optional[str] = None
    payment_method: str = DEFAULT_PAYMENT_METHOD
    currency: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "amount": str(self.amount),
            "date": self.date.isoformat(),
            "suggested_category": self.suggested_category,
            "payment_method": self.payment_method,
            "currency": self.currency,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ParsedExpenseCandidate":
        return cls(
            description=data["description"],
            amount=Decimal(data["amount"]),
            date=date.fromisoformat(data["date"]),
            suggested_category=data.get("suggested_category"),
            payment_method=data.get("payment_method") or DEFAULT_PAYMENT_METHOD,
            currency=data.get("currency"),
        )


@dataclass(frozen=True)
class IncompleteCandidate:
    """A segment with a description but no amount, or an amount but no description."""

    description: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None

    @property
    def missing_amount(self) -> bool:
        return self.amount is None

    @property
    def missing_description(self) -> bool:
        return not self.description


@dataclass(frozen=True)
class TokenMetadata:
    """Token usage reported by the AI provider for one call."""

    provider: str = ""
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @classmethod
    def zero(cls, provider: str = "", model: str = "") -> "TokenMetadata":
        return cls(provider=provider, model=model)


@dataclass
class ParseResult:
    candidates: list[ParsedExpenseCandidate] = field(default_factory=list)
    tokens: TokenMetadata = field(default_factory=TokenMetadata)
    incomplete: list[IncompleteCandidate] = field(default_factory=list)
    origin: str = "fallback"  # "ai" | "fallback" | "cache"

    @property
    def from_cache(self) -> bool:
        return self.origin == "cache"

    @property
    def used_fallback(self) -> bool:
        return self.origin == "fallback"


@dataclass
class User:
    user_id: str
    messenger_type: str
    created_at: datetime


@dataclass
class Category:
    id: str
    user_id: str
    messenger_type: str
    name: str
    is_default: bool
    created_at: datetime


@dataclass
class Expense:
    """
    A stored expense, owned by (messenger_type, user_id).

    ``home_amount`` and ``exchange_rate`` are None when no rate was available
    for a foreign currency.
    """

    id: str
    user_id: str
    messenger_type: str
    description: str
    original_amount: Decimal
    currency: str
    home_amount: Optional[Decimal]
    home_currency: str
    exchange_rate: Optional[Decimal]
    category_id: Optional[str]
    payment_method: str
    expense_date: date
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "messenger_type": self.messenger_type,
            "description": self.description,
            "original_amount": str(self.original_amount),
            "currency": self.currency,
            "home_amount": str(self.home_amount) if self.home_amount is not None else None,
            "home_currency": self.home_currency,
            "exchange_rate": str(self.exchange_rate) if self.exchange_rate is not None else None,
            "category_id": self.category_id,
            "payment_method": self.payment_method,
            "expense_date": self.expense_date.isoformat(),
        }


@dataclass
class PricingConfig:
    provider: str
    model: str
    input_token_price: Decimal   # per one million tokens
    output_token_price: Decimal  # per one million tokens
    currency: str
    effective_date: date
    is_active: bool = True
    id: Optional[str] = None

    def cost(self, input_tokens: int, output_tokens: int) -> Decimal:
        return (
            Decimal(input_tokens) * self.input_token_price
            + Decimal(output_tokens) * self.output_token_price
        ) / Decimal(1_000_000)


@dataclass(frozen=True)
class AICostLog:
    """Append-only audit row, one per AI invocation."""

    id: str
    user_id: str
    operation: str
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    cost: Decimal
    currency: str
    cost_note: Optional[str]
    created_at: datetime
