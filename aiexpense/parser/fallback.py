# -*- coding: utf-8 -*-
"""
Regex Fallback Extractor

Deterministic parser used whenever the AI backend is unavailable or returns
unusable output. Works segment by segment: every amount closes a segment,
and the text since the previous amount is its description.

    "breakfast $20 lunch $30 gas $200"
        -> (breakfast, 20), (lunch, 30), (gas, 200)

Currency-marked amounts win; bare numbers are only used when the message
has no marked amount at all.
"""

import logging
import re
from dataclasses import replace
from datetime import datetime
from typing import List, Optional, Tuple

from aiexpense.parser.extract_amount import AmountMatch, find_loose_amounts, find_marked_amounts
from aiexpense.parser.extract_date import extract_date, strip_dates
from aiexpense.types import DEFAULT_PAYMENT_METHOD, IncompleteCandidate, ParsedExpenseCandidate

logger = logging.getLogger(__name__)

FALLBACK_CATEGORY = "Other"

CATEGORY_KEYWORDS = {
    "Food": (
        "breakfast", "brunch", "lunch", "dinner", "supper", "snack", "coffee", "tea", "meal",
        "restaurant", "food", "pizza", "burger", "sushi", "ramen", "groceries", "grocery",
        "早餐", "午餐", "晚餐", "宵夜", "咖啡", "飲料", "吃", "食物", "餐", "飯", "菜", "麵", "便當",
    ),
    "Transport": (
        "gas", "fuel", "petrol", "taxi", "uber", "lyft", "bus", "train", "metro", "subway",
        "mrt", "parking", "flight", "toll",
        "加油", "公車", "公交", "計程車", "捷運", "高鐵", "火車", "飛機", "停車", "油",
    ),
    "Shopping": (
        "clothes", "shirt", "shoes", "bag", "shopping", "store", "supermarket", "amazon",
        "買", "衣服", "鞋", "包", "購物", "店", "超市",
    ),
    "Entertainment": (
        "movie", "cinema", "game", "concert", "ticket", "netflix", "spotify", "karaoke",
        "電影", "遊戲", "演唱會", "娛樂", "門票", "樂園", "唱歌",
    ),
}

PAYMENT_KEYWORDS = (
    ("credit card", "Credit Card"),
    ("debit card", "Debit Card"),
    ("line pay", "Line Pay"),
    ("linepay", "Line Pay"),
    ("apple pay", "Apple Pay"),
    ("google pay", "Google Pay"),
    ("信用卡", "Credit Card"),
    ("現金", "Cash"),
    ("debit", "Debit Card"),
    ("card", "Credit Card"),
    ("cash", "Cash"),
)

_PAYMENT_PATTERN = re.compile(
    r"(?:\b(?:by|with|paid\s+by|paid\s+with|using)\s+)?(?:"
    + "|".join(
        re.escape(keyword) if not keyword.isascii() else rf"\b{re.escape(keyword)}\b"
        for keyword, _ in PAYMENT_KEYWORDS
    )
    + ")",
    re.IGNORECASE,
)

_SEPARATORS = " \t\r\n,，;；、.。:：&+/-|"
_LEADING_FILLER = re.compile(
    r"^(?:(?:and|also|then|plus|i|spent|paid|bought|got|for|on|還有|和|跟|然後|另外|花了)\b\s*)+",
    re.IGNORECASE,
)
_TRAILING_FILLER = re.compile(r"(?:\s*\b(?:and|for|on|at|was|is|花了|共|總共))+$", re.IGNORECASE)


def suggest_category(description: str) -> str:
    """Keyword category suggestion; "Other" when nothing matches."""
    lowered = description.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        for keyword in keywords:
            if keyword.isascii():
                if re.search(rf"\b{re.escape(keyword)}s?\b", lowered):
                    return category
            elif keyword in lowered:
                return category
    return FALLBACK_CATEGORY


def detect_payment_method(text: str) -> Optional[str]:
    lowered = text.lower()
    for keyword, method in PAYMENT_KEYWORDS:
        if keyword.isascii():
            if re.search(rf"\b{re.escape(keyword)}\b", lowered):
                return method
        elif keyword in lowered:
            return method
    return None


def _leading_payment(segment: str) -> Tuple[Optional[str], str]:
    """Split a payment word off the start of a segment ("card, taxi" -> Credit Card, "taxi")."""
    stripped = segment.lstrip(_SEPARATORS)
    m = _PAYMENT_PATTERN.match(stripped)
    if not m:
        return None, segment
    return detect_payment_method(m.group(0)), stripped[m.end():]


def clean_description(segment: str) -> str:
    text = strip_dates(segment)
    text = _PAYMENT_PATTERN.sub(" ", text)
    text = re.sub(r"\s+", " ", text).strip(_SEPARATORS)
    text = _LEADING_FILLER.sub("", text)
    text = _TRAILING_FILLER.sub("", text)
    return text.strip(_SEPARATORS)


def _amounts(text: str) -> List[AmountMatch]:
    marked = find_marked_amounts(text)
    if marked:
        return marked
    return find_loose_amounts(text)


def extract_expenses(
    text: str, received_at: datetime
) -> Tuple[List[ParsedExpenseCandidate], List[IncompleteCandidate]]:
    """
    Split ``text`` into expense candidates.

    Returns:
        (candidates, incomplete): candidates in message order, plus segments
        missing their amount or their description
    """
    candidates: List[ParsedExpenseCandidate] = []
    incomplete: List[IncompleteCandidate] = []
    if not text or not text.strip():
        return candidates, incomplete

    message_date = extract_date(text, received_at) or received_at.date()
    cursor = 0
    previous_was_candidate = False

    for match in _amounts(text):
        segment = text[cursor:match.start]
        cursor = match.end

        # "lunch $120 card, taxi $200": payment words trailing an amount belong to it
        if previous_was_candidate:
            payment, segment = _leading_payment(segment)
            if payment:
                candidates[-1] = replace(candidates[-1], payment_method=payment)

        description = clean_description(segment)
        if not description:
            incomplete.append(IncompleteCandidate(amount=match.amount, currency=match.currency))
            previous_was_candidate = False
            continue

        candidates.append(ParsedExpenseCandidate(
            description=description,
            amount=match.amount,
            date=extract_date(segment, received_at) or message_date,
            suggested_category=suggest_category(description),
            payment_method=detect_payment_method(segment) or DEFAULT_PAYMENT_METHOD,
            currency=match.currency,
        ))
        previous_was_candidate = True

    trailing = text[cursor:]
    if previous_was_candidate:
        payment, trailing = _leading_payment(trailing)
        if payment:
            candidates[-1] = replace(candidates[-1], payment_method=payment)

    description = clean_description(trailing)
    # Amount-free text only counts as an expense when it names one
    if description and (cursor > 0 or suggest_category(description) != FALLBACK_CATEGORY):
        incomplete.append(IncompleteCandidate(description=description))

    logger.debug(f"Fallback extracted {len(candidates)} candidates, {len(incomplete)} incomplete")
    return candidates, incomplete
