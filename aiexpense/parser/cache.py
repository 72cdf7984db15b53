# -*- coding: utf-8 -*-
"""
Parse Cache

Maps the exact message text to previously parsed results so a repeated
message does not cost a second AI call. Entries expire after a TTL
(24 hours by default) and are never evicted otherwise.

Two implementations:
- InMemoryParseCache: process-wide dict guarded by a lock
- RedisParseCache: shared across processes, expiry handled by SETEX
"""

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from redis import Redis, RedisError

from aiexpense.parser.extract_date import absolute_dates
from aiexpense.types import IncompleteCandidate, ParsedExpenseCandidate

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class CachedParse:
    """
    One cached parse.

    ``date_offsets`` runs parallel to ``candidates``: the candidate date as a
    day offset from the day the message was received, or None for a date
    written out in full. A repeat of the same text on another day resolves
    the offsets against its own received date.
    """

    candidates: Tuple[ParsedExpenseCandidate, ...]
    incomplete: Tuple[IncompleteCandidate, ...] = ()
    date_offsets: Tuple[Optional[int], ...] = ()

    @classmethod
    def from_parse(
        cls,
        text: str,
        received: date,
        candidates: Iterable[ParsedExpenseCandidate],
        incomplete: Iterable[IncompleteCandidate] = (),
    ) -> "CachedParse":
        candidates = tuple(candidates)
        written = absolute_dates(text)
        offsets = tuple(None if c.date in written else (c.date - received).days for c in candidates)
        return cls(candidates, tuple(incomplete), offsets)

    def resolve(self, received: date) -> List[ParsedExpenseCandidate]:
        """Candidates with relative dates re-anchored on ``received``."""
        if len(self.date_offsets) != len(self.candidates):
            return list(self.candidates)
        return [
            c if offset is None else replace(c, date=received + timedelta(days=offset))
            for c, offset in zip(self.candidates, self.date_offsets)
        ]

    def to_dict(self) -> dict:
        return {
            "candidates": [c.to_dict() for c in self.candidates],
            "date_offsets": list(self.date_offsets),
            "incomplete": [
                {
                    "description": i.description,
                    "amount": str(i.amount) if i.amount is not None else None,
                    "currency": i.currency,
                }
                for i in self.incomplete
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CachedParse":
        return cls(
            candidates=tuple(ParsedExpenseCandidate.from_dict(c) for c in data.get("candidates", [])),
            incomplete=tuple(
                IncompleteCandidate(
                    description=i.get("description"),
                    amount=Decimal(i["amount"]) if i.get("amount") is not None else None,
                    currency=i.get("currency"),
                )
                for i in data.get("incomplete", [])
            ),
            date_offsets=tuple(data.get("date_offsets") or ()),
        )


class ParseCache(Protocol):
    def get(self, text: str) -> Optional[CachedParse]:
        ...

    def set(self, text: str, entry: CachedParse) -> None:
        ...


class InMemoryParseCache:
    """Thread-safe in-process cache with an injectable clock."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, CachedParse]] = {}

    def get(self, text: str) -> Optional[CachedParse]:
        with self._lock:
            item = self._entries.get(text)
            if item is None:
                return None
            stored_at, entry = item
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[text]
                return None
            return entry

    def set(self, text: str, entry: CachedParse) -> None:
        with self._lock:
            self._entries[text] = (self._clock(), entry)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisParseCache:
    """
    Redis-backed cache

    Keys are ``parse_cache:<sha256 of text>``; values are JSON. Redis errors
    are logged and treated as a miss.
    """

    key_prefix = "parse_cache:"

    def __init__(self, client: Redis, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.client = client
        self.ttl_seconds = ttl_seconds

    def _key(self, text: str) -> str:
        return self.key_prefix + hashlib.sha256(text.encode("utf-8")).hexdigest()

    def get(self, text: str) -> Optional[CachedParse]:
        key = self._key(text)
        try:
            value = self.client.get(key)
            if not value:
                return None
            return CachedParse.from_dict(json.loads(value))
        except (RedisError, ValueError, KeyError, InvalidOperation) as e:
            logger.error(f"Failed to get key {key}: {e}")
            return None

    def set(self, text: str, entry: CachedParse) -> None:
        key = self._key(text)
        try:
            self.client.setex(key, self.ttl_seconds, json.dumps(entry.to_dict(), ensure_ascii=False))
        except RedisError as e:
            logger.error(f"Failed to set key {key}: {e}")


def build_parse_cache(redis_url: str = "", ttl_seconds: int = DEFAULT_TTL_SECONDS) -> ParseCache:
    """Redis cache when a URL is configured, in-process cache otherwise."""
    if redis_url:
        logger.info("Using Redis parse cache")
        return RedisParseCache(Redis.from_url(redis_url, decode_responses=True), ttl_seconds)
    return InMemoryParseCache(ttl_seconds)
