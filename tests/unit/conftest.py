"""Mark everything collected under tests/unit with ``pytest.mark.unit``."""

from pathlib import Path

import pytest


_UNIT_ROOT = Path(__file__).parent


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    for item in items:
        if _UNIT_ROOT in Path(item.path).parents:
            item.add_marker(pytest.mark.unit)
