from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from aiexpense.config import Settings
from aiexpense.storage.db import initialize_schema


def _top_level_tests_group(path: Path) -> str | None:
    parts = path.parts
    try:
        tests_index = parts.index("tests")
    except ValueError:
        return None
    if tests_index + 1 >= len(parts):
        return None
    return parts[tests_index + 1]


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    for item in items:
        group = _top_level_tests_group(Path(str(item.fspath)))
        if group == "unit":
            item.add_marker(pytest.mark.unit)
        elif group == "integration":
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    path = str(tmp_path / "aiexpense.db")
    initialize_schema(path)
    return path


@pytest.fixture
def received_at() -> datetime:
    return datetime(2025, 1, 15, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def settings(db_path: str) -> Settings:
    return Settings(
        enabled_messengers=["terminal"],
        database_path=db_path,
        ai_api_key="",
        home_currency="TWD",
        exchange_rate_live=False,
    )
