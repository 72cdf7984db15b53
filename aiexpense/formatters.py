# -*- coding: utf-8 -*-
"""
Reply text formatters.

One line per expense, in the order the expenses appeared in the message:

    ✓ lunch 120 TWD (Food, 2025-01-15)
    taxi failed to save
"""

from typing import List

from aiexpense.parser.errors import ClarificationCode, clarification_message
from aiexpense.parser.extract_amount import format_amount
from aiexpense.services.expense_store import SavedExpense
from aiexpense.types import IncompleteCandidate

UNCATEGORIZED = "Uncategorized"


def format_saved_line(saved: SavedExpense) -> str:
    expense = saved.expense
    category = saved.category_name or UNCATEGORIZED
    return (
        f"✓ {expense.description} {format_amount(expense.original_amount)} {expense.currency} "
        f"({category}, {expense.expense_date.isoformat()})"
    )


def format_failed_line(description: str) -> str:
    return f"{description} failed to save"


def format_incomplete(item: IncompleteCandidate) -> str:
    """Clarification question for a segment missing its amount or description."""
    if item.missing_description and item.amount is not None:
        if item.currency:
            amount = f"{format_amount(item.amount)} {item.currency}"
        else:
            amount = f"${format_amount(item.amount)}"
        return clarification_message(ClarificationCode.MISSING_DESCRIPTION, amount=amount)
    if item.missing_amount and item.description:
        return clarification_message(ClarificationCode.MISSING_AMOUNT, description=item.description)
    return clarification_message(ClarificationCode.UNPARSEABLE)


def format_clarification(incomplete: List[IncompleteCandidate]) -> str:
    """Reply for a message that produced no expenses."""
    if not incomplete:
        return clarification_message(ClarificationCode.UNPARSEABLE)
    return "\n".join(format_incomplete(item) for item in incomplete)
