# -*- coding: utf-8 -*-
"""
Amount and Currency Extraction

Finds monetary amounts in free text.

Marked amounts carry a currency marker:
- prefix symbols/codes: $20, NT$150, US$5, €3, £4, ¥500, USD 12
- suffix words/codes:   50元, 30塊, 20 dollars, 100 USD, 1500日幣
- signs:                -$50, $-50
- thousands separators: $1,200.50

Loose amounts are bare numbers ("lunch 80"). Numbers that are part of a
date or a time never count as amounts.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

_NUMBER = r"\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?"
_ISO_CODES = r"(?<![A-Za-z])(?:USD|TWD|NTD|EUR|JPY|GBP|CNY|HKD)(?![A-Za-z])"

_PREFIXES = rf"NT\$|US\$|HK\$|\$|€|£|¥|{_ISO_CODES}"
_SUFFIXES = (
    rf"元|塊|块|美金|美元|日幣|日圓|日元|円|歐元|人民幣|台幣|"
    rf"(?<![A-Za-z])(?:dollars?|bucks)(?![A-Za-z])|{_ISO_CODES}"
)

_MARKED_AMOUNT = re.compile(
    rf"(?P<sign>-)?"
    rf"(?:(?P<prefix>{_PREFIXES})\s*(?P<inner_sign>-)?\s*(?P<prefixed>{_NUMBER})(?:\s*(?P<trailing>{_ISO_CODES}))?"
    rf"|(?P<suffixed>{_NUMBER})\s*(?P<suffix>{_SUFFIXES}))",
    re.IGNORECASE,
)

_LOOSE_AMOUNT = re.compile(
    rf"(?<![\d.,/:A-Za-z$])(?P<sign>-)?(?P<number>{_NUMBER})(?![\d/:A-Za-z%])"
)

# Dates and times must not be read as amounts
_DATE_PATTERN = re.compile(
    r"(20\d{2}[/-]\d{1,2}[/-]\d{1,2}|"  # YYYY/MM/DD or YYYY-MM-DD
    r"\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?)"  # MM/DD, DD/MM, MM/DD/YY
)
_TIME_PATTERN = re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?\b")

# None means the user's home currency
_CURRENCY_MAP = {
    "$": None,
    "元": None,
    "塊": None,
    "块": None,
    "DOLLAR": None,
    "DOLLARS": None,
    "BUCKS": None,
    "NT$": "TWD",
    "NTD": "TWD",
    "TWD": "TWD",
    "台幣": "TWD",
    "US$": "USD",
    "USD": "USD",
    "美金": "USD",
    "美元": "USD",
    "HK$": "HKD",
    "HKD": "HKD",
    "€": "EUR",
    "EUR": "EUR",
    "歐元": "EUR",
    "£": "GBP",
    "GBP": "GBP",
    "¥": "JPY",
    "円": "JPY",
    "JPY": "JPY",
    "日幣": "JPY",
    "日圓": "JPY",
    "日元": "JPY",
    "CNY": "CNY",
    "人民幣": "CNY",
}


@dataclass(frozen=True)
class AmountMatch:
    amount: Decimal
    currency: Optional[str]
    start: int
    end: int
    raw: str


def _to_decimal(number: str, negative: bool) -> Optional[Decimal]:
    try:
        value = Decimal(number.replace(",", ""))
    except InvalidOperation:
        return None
    return -value if negative else value


def _currency_for(marker: Optional[str]) -> Optional[str]:
    if not marker:
        return None
    return _CURRENCY_MAP.get(marker.upper(), _CURRENCY_MAP.get(marker))


def excluded_spans(text: str) -> List[Tuple[int, int]]:
    """Spans of dates and times in ``text``."""
    spans = [m.span() for m in _DATE_PATTERN.finditer(text)]
    spans.extend(m.span() for m in _TIME_PATTERN.finditer(text))
    return spans


def _overlaps(span: Tuple[int, int], spans: List[Tuple[int, int]]) -> bool:
    start, end = span
    return any(start < e and end > s for s, e in spans)


def find_marked_amounts(text: str) -> List[AmountMatch]:
    """All currency-marked amounts in order of appearance."""
    if not text:
        return []

    matches = []
    for m in _MARKED_AMOUNT.finditer(text):
        negative = bool(m.group("sign") or m.group("inner_sign"))
        if m.group("prefixed"):
            number = m.group("prefixed")
            currency = _currency_for(m.group("trailing")) or _currency_for(m.group("prefix"))
        else:
            number = m.group("suffixed")
            currency = _currency_for(m.group("suffix"))
            # "2024-01-05元" style collisions
            if _overlaps(m.span("suffixed"), excluded_spans(text)):
                continue

        amount = _to_decimal(number, negative)
        if amount is None:
            continue
        matches.append(AmountMatch(amount, currency, m.start(), m.end(), m.group(0)))
    return matches


def find_loose_amounts(text: str) -> List[AmountMatch]:
    """Bare numbers that are not part of a date or a time."""
    if not text:
        return []

    exclude = excluded_spans(text)
    matches = []
    for m in _LOOSE_AMOUNT.finditer(text):
        if _overlaps(m.span(), exclude):
            continue
        amount = _to_decimal(m.group("number"), bool(m.group("sign")))
        if amount is None:
            continue
        matches.append(AmountMatch(amount, None, m.start(), m.end(), m.group(0)))
    return matches


def format_amount(amount: Decimal) -> str:
    """Render an amount without exponent noise: 20 -> "20", 12.50 -> "12.50"."""
    if amount == amount.to_integral_value():
        return str(int(amount))
    return format(amount, "f")
