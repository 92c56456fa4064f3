from __future__ import annotations

from datetime import datetime, timezone

import pytest

from palchat.chat.dates import DateFormatter


NOW = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def formatter() -> DateFormatter:
    """A UTC formatter whose "today" is pinned to 2025-01-10."""

    return DateFormatter("en", "UTC", clock=lambda: NOW)
