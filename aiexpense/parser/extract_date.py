# -*- coding: utf-8 -*-
"""
Date Extraction

Resolves the date an expense happened on.
Supported forms:
- full dates: YYYY-MM-DD, YYYY/MM/DD (passed through)
- relative terms: today, yesterday, day before yesterday, tomorrow,
  last week, last month
- Chinese relative terms: 今天、昨天、前天、明天、後天、上週、上個月
- ambiguous numeric dates (03/04): resolved to the received date
"""

import calendar
import re
from datetime import date, datetime, timedelta
from typing import List, Optional, Set, Tuple

_FULL_DATE_PATTERN = re.compile(r"(?<!\d)(\d{4})[/-](\d{1,2})[/-](\d{1,2})(?!\d)")
_SHORT_DATE_PATTERN = re.compile(r"(?<![\d/-])(\d{1,2})/(\d{1,2})(?![\d/])")
_RELATIVE_EN_PATTERN = re.compile(
    r"\b(day\s+before\s+yesterday|yesterday|today|tonight|tomorrow|last\s+week|last\s+month)\b",
    re.IGNORECASE,
)
_RELATIVE_ZH_PATTERN = re.compile(r"(前天|前日|昨天|昨日|今天|明天|明日|後天|后天|上週|上周|上星期|上個月|上个月|上月)")
_TIME_PATTERN = re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?\b(?:\s*(?:am|pm)\b)?", re.IGNORECASE)

_DAY_OFFSETS = {
    "day before yesterday": -2,
    "yesterday": -1,
    "today": 0,
    "tonight": 0,
    "tomorrow": 1,
    "last week": -7,
    "前天": -2,
    "前日": -2,
    "昨天": -1,
    "昨日": -1,
    "今天": 0,
    "明天": 1,
    "明日": 1,
    "後天": 2,
    "后天": 2,
    "上週": -7,
    "上周": -7,
    "上星期": -7,
}
_LAST_MONTH = {"last month", "上個月", "上个月", "上月"}


def _previous_month(day: date) -> date:
    year, month = (day.year - 1, 12) if day.month == 1 else (day.year, day.month - 1)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _resolve_relative(term: str, today: date) -> date:
    key = re.sub(r"\s+", " ", term.lower())
    if key in _LAST_MONTH:
        return _previous_month(today)
    return today + timedelta(days=_DAY_OFFSETS[key])


def _candidates(text: str, today: date) -> List[Tuple[int, int, date]]:
    found = []
    for m in _FULL_DATE_PATTERN.finditer(text):
        try:
            resolved = date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            continue
        found.append((m.start(), m.end(), resolved))

    for pattern in (_RELATIVE_EN_PATTERN, _RELATIVE_ZH_PATTERN):
        for m in pattern.finditer(text):
            found.append((m.start(), m.end(), _resolve_relative(m.group(1), today)))

    # 03/04 could be March 4th or April 3rd
    for m in _SHORT_DATE_PATTERN.finditer(text):
        if any(s <= m.start() < e for s, e, _ in found):
            continue
        found.append((m.start(), m.end(), today))

    found.sort(key=lambda item: item[0])
    return found


def extract_date(text: str, received_at: datetime) -> Optional[date]:
    """
    Return the first date mentioned in ``text``, or None if there is none.

    Args:
        text: message or segment text
        received_at: when the message arrived; relative terms resolve against it
    """
    if not text:
        return None
    found = _candidates(text, received_at.date())
    return found[0][2] if found else None


def strip_dates(text: str) -> str:
    """Remove every date and time-of-day mention from ``text``."""
    if not text:
        return ""
    spans = [(s, e) for s, e, _ in _candidates(text, date.today())]
    spans.extend(m.span() for m in _TIME_PATTERN.finditer(text))
    for start, end in sorted(spans, reverse=True):
        text = text[:start] + " " + text[end:]
    return re.sub(r"\s+", " ", text).strip()


def absolute_dates(text: str) -> Set[date]:
    """Full dates (YYYY-MM-DD, YYYY/MM/DD) written out in ``text``."""
    found = set()
    for m in _FULL_DATE_PATTERN.finditer(text or ""):
        try:
            found.add(date(int(m.group(1)), int(m.group(2)), int(m.group(3))))
        except ValueError:
            continue
    return found
