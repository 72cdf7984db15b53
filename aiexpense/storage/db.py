# -*- coding: utf-8 -*-
"""
Database connection management.

One SQLite connection per operation; connections are never shared between
threads.
"""

import logging
import sqlite3
from pathlib import Path

from aiexpense.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 5.0

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT NOT NULL,
    messenger_type TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (messenger_type, user_id)
);

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    messenger_type TEXT NOT NULL,
    name TEXT NOT NULL,
    is_default INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    UNIQUE (messenger_type, user_id, name)
);

CREATE TABLE IF NOT EXISTS expenses (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    messenger_type TEXT NOT NULL,
    description TEXT NOT NULL,
    original_amount TEXT NOT NULL,
    currency TEXT NOT NULL,
    home_amount TEXT,
    home_currency TEXT NOT NULL,
    exchange_rate TEXT,
    category_id TEXT REFERENCES categories(id) ON DELETE SET NULL,
    payment_method TEXT NOT NULL DEFAULT 'Cash',
    expense_date TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ai_pricing_config (
    id TEXT PRIMARY KEY,
    provider TEXT NOT NULL,
    model TEXT NOT NULL,
    input_token_price TEXT NOT NULL,
    output_token_price TEXT NOT NULL,
    currency TEXT NOT NULL DEFAULT 'USD',
    effective_date TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    UNIQUE (provider, model, effective_date)
);

CREATE TABLE IF NOT EXISTS ai_cost_logs (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    operation TEXT NOT NULL,
    provider TEXT NOT NULL,
    model TEXT NOT NULL,
    input_tokens INTEGER NOT NULL DEFAULT 0,
    output_tokens INTEGER NOT NULL DEFAULT 0,
    cost TEXT NOT NULL,
    currency TEXT NOT NULL,
    cost_note TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_expenses_user_date ON expenses(messenger_type, user_id, expense_date);
CREATE INDEX IF NOT EXISTS idx_categories_user ON categories(messenger_type, user_id);
CREATE INDEX IF NOT EXISTS idx_ai_cost_logs_user ON ai_cost_logs(user_id);
CREATE INDEX IF NOT EXISTS idx_pricing_lookup ON ai_pricing_config(provider, model, is_active);
"""


def get_connection(db_path: str) -> sqlite3.Connection:
    """Open a SQLite connection with foreign keys enabled.

    Raises:
        StoreUnavailableError: the database file cannot be opened
    """
    try:
        conn = sqlite3.connect(str(Path(db_path)), timeout=BUSY_TIMEOUT_SECONDS)
        conn.execute("PRAGMA foreign_keys = ON")
    except sqlite3.OperationalError as e:
        logger.error(f"Cannot open database {db_path}: {e}")
        raise StoreUnavailableError(f"database unavailable: {db_path}") from e
    conn.row_factory = sqlite3.Row
    return conn


def initialize_schema(db_path: str) -> None:
    """Create all tables if they don't exist."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
    logger.info(f"Database schema ready at {db_path}")
