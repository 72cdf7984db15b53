# -*- coding: utf-8 -*-
"""
Clarification Codes

Canned prompts sent back when a message cannot be turned into expenses.
"""

from enum import Enum


class ClarificationCode(Enum):
    """Why a message (or a segment of it) needs clarification"""

    MISSING_AMOUNT = "missing_amount"            # description without an amount
    MISSING_DESCRIPTION = "missing_description"  # amount without a description
    UNPARSEABLE = "unparseable"                  # no expense found at all
    PARSE_FAILED = "parse_failed"                # unexpected parser failure


CLARIFICATION_MESSAGES = {
    ClarificationCode.MISSING_AMOUNT: 'How much was "{description}"? For example: "{description} $120"',
    ClarificationCode.MISSING_DESCRIPTION: "What was the {amount} for?",
    ClarificationCode.UNPARSEABLE: (
        "I couldn't find an expense in that message. "
        'Try something like "lunch $120" or "taxi $250 yesterday".'
    ),
    ClarificationCode.PARSE_FAILED: "Sorry, I couldn't read that message right now. Please try again.",
}


def clarification_message(code: ClarificationCode, **kwargs) -> str:
    template = CLARIFICATION_MESSAGES[code]
    return template.format(**kwargs) if kwargs else template
