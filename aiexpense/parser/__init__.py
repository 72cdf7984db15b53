# -*- coding: utf-8 -*-
"""
Expense parsing: AI backend first, regex fallback, exact-text cache.

Usage:
    from aiexpense.parser import ParsingEngine
    result = ParsingEngine().parse("lunch $120", "u1", received_at)
"""

from aiexpense.parser.cache import CachedParse, InMemoryParseCache, RedisParseCache, build_parse_cache
from aiexpense.parser.engine import ParsingEngine
from aiexpense.parser.errors import ClarificationCode, clarification_message
from aiexpense.parser.fallback import extract_expenses

__all__ = [
    "CachedParse",
    "InMemoryParseCache",
    "RedisParseCache",
    "build_parse_cache",
    "ParsingEngine",
    "ClarificationCode",
    "clarification_message",
    "extract_expenses",
]
