# -*- coding: utf-8 -*-
"""
Expense persistence for parsed candidates.

Resolves the suggested category against the user's own categories and
fills in home-currency fields. When no rate is known for a foreign
currency, home_amount and exchange_rate are left empty.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from aiexpense.services.exchange_rate import ExchangeRateService
from aiexpense.storage.repositories import CategoryRepository, ExpenseRepository
from aiexpense.types import Expense, ParsedExpenseCandidate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class SavedExpense:
    expense: Expense
    category_name: Optional[str]


class ExpenseStore:
    """
    Args:
        expenses: expense repository
        categories: category repository
        home_currency: currency amounts without a marker are in
        rates: exchange rate lookups for foreign currencies
    """

    def __init__(
        self,
        expenses: ExpenseRepository,
        categories: CategoryRepository,
        home_currency: str = "TWD",
        rates: Optional[ExchangeRateService] = None,
    ):
        self.expenses = expenses
        self.categories = categories
        self.home_currency = home_currency
        self.rates = rates

    def _rate(self, currency: str) -> Optional[Decimal]:
        if currency == self.home_currency:
            return Decimal("1")
        rate = self.rates.get_rate(currency, self.home_currency) if self.rates else None
        if rate is None:
            logger.warning(f"No exchange rate for {currency}->{self.home_currency}; home amount left empty")
        return rate

    def save(self, user_id: str, messenger_type: str, candidate: ParsedExpenseCandidate) -> SavedExpense:
        """
        Persist one candidate for the (messenger_type, user_id) user.

        Raises:
            PersistenceError: the insert failed
            StoreUnavailableError: the database cannot be reached
        """
        category = None
        if candidate.suggested_category:
            category = self.categories.find_by_name(user_id, messenger_type, candidate.suggested_category)

        currency = (candidate.currency or self.home_currency).upper()
        rate = self._rate(currency)
        home_amount = None
        if rate is not None:
            home_amount = (candidate.amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)
        now = datetime.now(timezone.utc)

        expense = Expense(
            id=f"exp_{uuid.uuid4().hex}",
            user_id=user_id,
            messenger_type=messenger_type,
            description=candidate.description,
            original_amount=candidate.amount,
            currency=currency,
            home_amount=home_amount,
            home_currency=self.home_currency,
            exchange_rate=rate,
            category_id=category.id if category else None,
            payment_method=candidate.payment_method,
            expense_date=candidate.date,
            created_at=now,
            updated_at=now,
        )
        self.expenses.create(expense)
        logger.info(
            f"Saved expense {expense.id} for user {messenger_type}/{user_id}: "
            f"{expense.description} {expense.original_amount} {currency}"
        )
        return SavedExpense(expense=expense, category_name=category.name if category else None)
