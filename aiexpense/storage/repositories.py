# -*- coding: utf-8 -*-
"""
Repository pattern for data access.

Each repository opens its own connection per call. sqlite3 errors are
mapped onto the application's persistence errors:

- UNIQUE violations -> DuplicateKeyError
- anything else     -> PersistenceError
- unreachable file  -> StoreUnavailableError (raised by get_connection)
"""

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterator, List, Optional

from aiexpense.errors import DuplicateKeyError, PersistenceError
from aiexpense.storage.db import get_connection
from aiexpense.types import AICostLog, Category, Expense, PricingConfig, User

logger = logging.getLogger(__name__)

# USD per one million tokens
DEFAULT_PRICING = [
    ("gemini", "gemini-2.5-flash-lite", Decimal("0.10"), Decimal("0.40")),
    ("gemini", "gemini-2.0-flash", Decimal("0.10"), Decimal("0.40")),
    ("openai", "gpt-4o-mini", Decimal("0.15"), Decimal("0.60")),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


class _Repository:
    def __init__(self, db_path: str):
        self.db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = get_connection(self.db_path)
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            if "UNIQUE" in str(e) or "PRIMARY KEY" in str(e):
                raise DuplicateKeyError(str(e)) from e
            raise PersistenceError(str(e)) from e
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()


class UserRepository(_Repository):

    def create(self, user: User) -> None:
        """Insert a user. Raises DuplicateKeyError if (messenger_type, user_id) exists."""
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO users (user_id, messenger_type, created_at) VALUES (?, ?, ?)",
                (user.user_id, user.messenger_type, user.created_at.isoformat()),
            )

    def get(self, user_id: str, messenger_type: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT user_id, messenger_type, created_at FROM users "
                "WHERE user_id = ? AND messenger_type = ?",
                (user_id, messenger_type),
            ).fetchone()
        if row is None:
            return None
        return User(
            user_id=row["user_id"],
            messenger_type=row["messenger_type"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class CategoryRepository(_Repository):

    def create(self, user_id: str, messenger_type: str, name: str, is_default: bool = False) -> Category:
        category = Category(
            id=_new_id("cat"),
            user_id=user_id,
            messenger_type=messenger_type,
            name=name,
            is_default=is_default,
            created_at=_utcnow(),
        )
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO categories (id, user_id, messenger_type, name, is_default, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (category.id, user_id, messenger_type, name, int(is_default), category.created_at.isoformat()),
            )
        return category

    def list_by_user(self, user_id: str, messenger_type: str) -> List[Category]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, user_id, messenger_type, name, is_default, created_at FROM categories "
                "WHERE user_id = ? AND messenger_type = ? ORDER BY created_at, name",
                (user_id, messenger_type),
            ).fetchall()
        return [
            Category(
                id=row["id"],
                user_id=row["user_id"],
                messenger_type=row["messenger_type"],
                name=row["name"],
                is_default=bool(row["is_default"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def find_by_name(self, user_id: str, messenger_type: str, name: str) -> Optional[Category]:
        """Case-insensitive lookup of a user's category."""
        wanted = name.strip().lower()
        for category in self.list_by_user(user_id, messenger_type):
            if category.name.lower() == wanted:
                return category
        return None


def _decimal_or_none(value: Optional[str]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


def _row_to_expense(row: sqlite3.Row) -> Expense:
    return Expense(
        id=row["id"],
        user_id=row["user_id"],
        messenger_type=row["messenger_type"],
        description=row["description"],
        original_amount=Decimal(row["original_amount"]),
        currency=row["currency"],
        home_amount=_decimal_or_none(row["home_amount"]),
        home_currency=row["home_currency"],
        exchange_rate=_decimal_or_none(row["exchange_rate"]),
        category_id=row["category_id"],
        payment_method=row["payment_method"],
        expense_date=date.fromisoformat(row["expense_date"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


_EXPENSE_COLUMNS = (
    "id, user_id, messenger_type, description, original_amount, currency, home_amount, home_currency, "
    "exchange_rate, category_id, payment_method, expense_date, created_at, updated_at"
)

_UPDATABLE_EXPENSE_FIELDS = {
    "description": str,
    "category_id": lambda v: v,
    "payment_method": str,
    "expense_date": lambda v: v.isoformat(),
}


class ExpenseRepository(_Repository):
    """Expenses are always scoped by (user_id, messenger_type)."""

    def create(self, expense: Expense) -> Expense:
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO expenses ({_EXPENSE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    expense.id,
                    expense.user_id,
                    expense.messenger_type,
                    expense.description,
                    str(expense.original_amount),
                    expense.currency,
                    str(expense.home_amount) if expense.home_amount is not None else None,
                    expense.home_currency,
                    str(expense.exchange_rate) if expense.exchange_rate is not None else None,
                    expense.category_id,
                    expense.payment_method,
                    expense.expense_date.isoformat(),
                    expense.created_at.isoformat(),
                    expense.updated_at.isoformat(),
                ),
            )
        return expense

    def get(self, user_id: str, messenger_type: str, expense_id: str) -> Optional[Expense]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_EXPENSE_COLUMNS} FROM expenses "
                "WHERE id = ? AND user_id = ? AND messenger_type = ?",
                (expense_id, user_id, messenger_type),
            ).fetchone()
        return _row_to_expense(row) if row else None

    def list_by_user(self, user_id: str, messenger_type: str) -> List[Expense]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_EXPENSE_COLUMNS} FROM expenses WHERE user_id = ? AND messenger_type = ? "
                "ORDER BY expense_date, created_at",
                (user_id, messenger_type),
            ).fetchall()
        return [_row_to_expense(row) for row in rows]

    def update(self, user_id: str, messenger_type: str, expense_id: str, **fields) -> Optional[Expense]:
        """Explicit edit of an expense owned by the user. Amount fields are not editable."""
        unknown = set(fields) - set(_UPDATABLE_EXPENSE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not updatable: {', '.join(sorted(unknown))}")
        if not fields:
            return self.get(user_id, messenger_type, expense_id)

        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [_UPDATABLE_EXPENSE_FIELDS[name](value) for name, value in fields.items()]
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE expenses SET {assignments}, updated_at = ? "
                "WHERE id = ? AND user_id = ? AND messenger_type = ?",
                (*values, _utcnow().isoformat(), expense_id, user_id, messenger_type),
            )
        if cursor.rowcount == 0:
            return None
        return self.get(user_id, messenger_type, expense_id)

    def delete(self, user_id: str, messenger_type: str, expense_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM expenses WHERE id = ? AND user_id = ? AND messenger_type = ?",
                (expense_id, user_id, messenger_type),
            )
        return cursor.rowcount > 0


class PricingRepository(_Repository):

    def get_active(self, provider: str, model: str, on: Optional[date] = None) -> Optional[PricingConfig]:
        """Latest active row with effective_date <= ``on`` (default today)."""
        on = on or _utcnow().date()
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, provider, model, input_token_price, output_token_price, currency, "
                "effective_date, is_active FROM ai_pricing_config "
                "WHERE provider = ? AND model = ? AND is_active = 1 AND effective_date <= ? "
                "ORDER BY effective_date DESC LIMIT 1",
                (provider, model, on.isoformat()),
            ).fetchone()
        if row is None:
            return None
        return PricingConfig(
            id=row["id"],
            provider=row["provider"],
            model=row["model"],
            input_token_price=Decimal(row["input_token_price"]),
            output_token_price=Decimal(row["output_token_price"]),
            currency=row["currency"],
            effective_date=date.fromisoformat(row["effective_date"]),
            is_active=bool(row["is_active"]),
        )

    def create(self, config: PricingConfig) -> PricingConfig:
        config.id = config.id or _new_id("pricing")
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO ai_pricing_config (id, provider, model, input_token_price, "
                "output_token_price, currency, effective_date, is_active) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    config.id,
                    config.provider,
                    config.model,
                    str(config.input_token_price),
                    str(config.output_token_price),
                    config.currency,
                    config.effective_date.isoformat(),
                    int(config.is_active),
                ),
            )
        return config

    def seed_defaults(self, effective_date: Optional[date] = None) -> int:
        """Insert default pricing for models that have no row yet. Returns rows added."""
        effective_date = effective_date or date(2025, 1, 1)
        added = 0
        for provider, model, input_price, output_price in DEFAULT_PRICING:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT 1 FROM ai_pricing_config WHERE provider = ? AND model = ? LIMIT 1",
                    (provider, model),
                ).fetchone()
            if row:
                continue
            self.create(PricingConfig(
                provider=provider,
                model=model,
                input_token_price=input_price,
                output_token_price=output_price,
                currency="USD",
                effective_date=effective_date,
            ))
            added += 1
        if added:
            logger.info(f"Seeded {added} default pricing rows")
        return added


class AICostRepository(_Repository):
    """Append-only: rows are never updated or deleted."""

    def create(self, log: AICostLog) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO ai_cost_logs (id, user_id, operation, provider, model, input_tokens, "
                "output_tokens, cost, currency, cost_note, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    log.id,
                    log.user_id,
                    log.operation,
                    log.provider,
                    log.model,
                    log.input_tokens,
                    log.output_tokens,
                    str(log.cost),
                    log.currency,
                    log.cost_note,
                    log.created_at.isoformat(),
                ),
            )

    def list_by_user(self, user_id: str) -> List[AICostLog]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, user_id, operation, provider, model, input_tokens, output_tokens, cost, "
                "currency, cost_note, created_at FROM ai_cost_logs WHERE user_id = ? ORDER BY created_at",
                (user_id,),
            ).fetchall()
        return [
            AICostLog(
                id=row["id"],
                user_id=row["user_id"],
                operation=row["operation"],
                provider=row["provider"],
                model=row["model"],
                input_tokens=row["input_tokens"],
                output_tokens=row["output_tokens"],
                cost=Decimal(row["cost"]),
                currency=row["currency"],
                cost_note=row["cost_note"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def total_cost(self, user_id: str) -> Decimal:
        return sum((log.cost for log in self.list_by_user(user_id)), Decimal("0"))
