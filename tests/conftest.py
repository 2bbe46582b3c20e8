"""Pytest configuration and shared fixtures."""
import asyncio
import functools
from typing import Any, Callable, Dict, List, Optional

import pytest

import formstate.config as config_module
from formstate import FormConfig, FormCoordinator, OutcomeStatus, ValidationOutcome


class GatedValidator:
    """Async validator whose calls block until their value is released.

    Lets a test decide the order in which concurrent validations complete.
    """

    def __init__(self, result_fn: Callable[[Any], Any]):
        self.result_fn = result_fn
        self.calls: List[Any] = []
        self._gates: Dict[Any, asyncio.Event] = {}

    def gate(self, value: Any) -> asyncio.Event:
        return self._gates.setdefault(value, asyncio.Event())

    def release(self, value: Any) -> None:
        self.gate(value).set()

    async def __call__(self, value: Any) -> Any:
        self.calls.append(value)
        await self.gate(value).wait()
        return self.result_fn(value)


class OutcomeRecorder:
    """Collects ValidationOutcomes reported by a coordinator."""

    def __init__(self):
        self.outcomes: List[ValidationOutcome] = []

    def __call__(self, outcome: ValidationOutcome) -> None:
        self.outcomes.append(outcome)

    def with_status(self, status: OutcomeStatus, path: Optional[str] = None) -> List[ValidationOutcome]:
        return [
            o for o in self.outcomes
            if o.status is status and (path is None or o.path == path)
        ]


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture(autouse=True)
def reset_default_config():
    """Restore the process-wide default config after each test."""
    original = config_module._default_config
    yield
    config_module._default_config = original


@pytest.fixture
def fast_config():
    """Short debounce so tests don't sit through the 300ms default."""
    return FormConfig(debounce_ms=20)


@pytest.fixture
def make_form(fast_config):
    """Factory for (unstarted) coordinators using the fast config."""
    return functools.partial(FormCoordinator, config=fast_config)


@pytest.fixture
def recorder():
    return OutcomeRecorder()


@pytest.fixture
def gated():
    """Factory for GatedValidator instances."""
    return GatedValidator


@pytest.fixture
def wait_until():
    return _wait_until
