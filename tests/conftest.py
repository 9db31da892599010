"""Shared test fixtures for the Gatekeeper test suite."""

from typing import Any, Dict, List, Tuple

import pytest

from gatekeeper.hooks.application.hook_pipeline import HookPipeline
from gatekeeper.rules.defaults.catalog import build_default_catalog
from gatekeeper.validation.application.pattern_validator import PatternValidator

# Budget large enough that timing never decides an outcome in tests
GENEROUS_BUDGET_MS = 10_000.0


@pytest.fixture
def catalog():
    """The shared default rule catalog."""
    return build_default_catalog()


@pytest.fixture
def validator():
    """Non-strict validator whose latency budget is always met."""
    return PatternValidator(latency_budget_ms=GENEROUS_BUDGET_MS)


@pytest.fixture
def strict_validator():
    """Strict validator: any violation fails."""
    return PatternValidator(strict_mode=True, latency_budget_ms=GENEROUS_BUDGET_MS)


@pytest.fixture
def clean_code():
    """Code that matches no rule and raises no quality issue."""
    return '''
def add(a, b):
    """Add two numbers."""
    return a + b


class Counter:
    def __init__(self):
        self.value = 0

    def increment(self):
        self.value += 1
        return self.value
'''


@pytest.fixture
def secret_code():
    """Code with a hardcoded password."""
    return 'password = "super_secret_123"'


@pytest.fixture
def event_log():
    """Recording observer: (events, callback)."""
    events: List[Tuple[str, Dict[str, Any]]] = []

    def _callback(event: str, payload: Dict[str, Any]) -> None:
        events.append((event, payload))

    return events, _callback


@pytest.fixture
def empty_pipeline(validator, event_log):
    """Hook pipeline without default hooks and with generous budgets."""
    _, callback = event_log
    return HookPipeline(
        validator,
        enabled_hooks=(),
        pre_budget_ms=GENEROUS_BUDGET_MS,
        post_budget_ms=GENEROUS_BUDGET_MS,
        event_callback=callback,
    )
