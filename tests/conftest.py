"""Shared pytest hooks for the hostguard test suite."""

from __future__ import annotations

import os

import pytest

MUTATION_ENV = "MUTANT_UNDER_TEST"


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip tests that spawn stub binaries while a mutation run is active."""
    if MUTATION_ENV not in os.environ:
        return
    for item in items:
        if item.get_closest_marker("mutation_timeout") is not None:
            item.add_marker(
                pytest.mark.skip(reason="Spawns stub processes; too slow under mutation.")
            )
