# -*- coding: utf-8 -*-
"""
SQLite persistence: schema bootstrap and repositories.
"""

from aiexpense.storage.db import get_connection, initialize_schema
from aiexpense.storage.repositories import (
    AICostRepository,
    CategoryRepository,
    ExpenseRepository,
    PricingRepository,
    UserRepository,
)

__all__ = [
    "get_connection",
    "initialize_schema",
    "UserRepository",
    "CategoryRepository",
    "ExpenseRepository",
    "PricingRepository",
    "AICostRepository",
]
