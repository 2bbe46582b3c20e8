"""
Shared machinery for the validation pipelines.

- invoke(): call a sync-or-async validator and await its result
- SupersedeTracker: per-key generation counters for latest-wins
- ValidationRunner: runs validators, owns the in-flight task set, records
  faults and reports every outcome (committed / discarded / faulted)

Cancellation is result-discarding: a superseded validator call keeps running
to completion, and the pipeline drops its result on arrival after checking
the generation token it captured at dispatch time.
"""
import asyncio
from dataclasses import dataclass
from enum import Enum
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Mapping, Optional, Set, Tuple

from formstate.config import FormConfig
from formstate.errors import FormStateError, InvalidPathError, ValidatorFault
from formstate.paths import expand_paths, normalize_result
from formstate.registry import ValidatorEntry, ValidatorRegistry
from formstate.state import FormState

logger = logging.getLogger(__name__)

FormValidator = Callable[[Mapping[str, Any]], Any]


class Trigger(str, Enum):
    CHANGE = 'change'
    BLUR = 'blur'
    SUBMIT = 'submit'
    MANUAL = 'manual'


class OutcomeStatus(str, Enum):
    COMMITTED = 'committed'
    DISCARDED = 'discarded'  # superseded or otherwise stale, silently dropped
    FAULTED = 'faulted'      # validator raised, recorded as a form-level error


@dataclass(frozen=True)
class ValidationOutcome:
    """What happened to one validator invocation (or one combined commit).

    path is None for form-level work.
    """
    trigger: Trigger
    path: Optional[str]
    status: OutcomeStatus
    detail: Any = None


async def invoke(func: Callable[..., Any], *args: Any) -> Any:
    """Call func and await the result if it is awaitable."""
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class SupersedeTracker:
    """Generation counters for latest-wins bookkeeping.

    Each advance(key) returns a new token for key; a token is current until
    the next advance(key) or advance_all(). Tokens are (epoch, generation)
    pairs so advance_all() can retire every key at once.
    """

    def __init__(self):
        self._epoch = 0
        self._generations: Dict[Hashable, int] = {}

    def advance(self, key: Hashable) -> Tuple[int, int]:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        return self._epoch, generation

    def advance_all(self) -> None:
        self._epoch += 1

    def current(self, key: Hashable) -> Tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    def is_current(self, key: Hashable, token: Tuple[int, int]) -> bool:
        return self.current(key) == token


class ValidationRunner:
    """Runs validators on behalf of the pipelines and tracks their tasks.

    One runner per coordinator. Pipelines spawn their work through spawn()
    so stop() can cancel it and wait_idle() can await it.
    """

    def __init__(
        self,
        state: FormState,
        registry: ValidatorRegistry,
        config: FormConfig,
        form_validator: Optional[FormValidator] = None,
    ):
        self.state = state
        self.registry = registry
        self.config = config
        self.form_validator = form_validator
        self.running = False
        self._tasks: Set[asyncio.Task] = set()
        self._outcome_callbacks: List[Callable[[ValidationOutcome], None]] = []

    # === Task management ===

    def spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        """Schedule coro on the running loop and track it."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        logger.debug(f"Spawned {name} ({len(self._tasks)} in flight)")
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Validation task failed unexpectedly: {exc!r}", exc_info=exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    async def wait_idle(self) -> None:
        """Wait until no task is in flight, including tasks spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # === Outcome reporting ===

    def add_outcome_callback(self, callback: Callable[[ValidationOutcome], None]) -> None:
        if callback not in self._outcome_callbacks:
            self._outcome_callbacks.append(callback)

    def remove_outcome_callback(self, callback: Callable[[ValidationOutcome], None]) -> None:
        if callback in self._outcome_callbacks:
            self._outcome_callbacks.remove(callback)

    def _report(self, outcome: ValidationOutcome) -> None:
        for callback in list(self._outcome_callbacks):
            try:
                callback(outcome)
            except Exception as e:
                logger.warning(f"Error in outcome callback: {e}")

    def committed(self, trigger: Trigger, path: Optional[str], detail: Any = None) -> None:
        self._report(ValidationOutcome(trigger, path, OutcomeStatus.COMMITTED, detail))

    def discarded(self, trigger: Trigger, path: Optional[str], reason: str) -> None:
        logger.debug(f"Discarded stale {trigger.value} result: path={path} ({reason})")
        self._report(ValidationOutcome(trigger, path, OutcomeStatus.DISCARDED, reason))

    def record_fault(self, fault: FormStateError) -> None:
        """Log a fault and append it to the form-level errors."""
        logger.warning(f"{fault}")
        self.state.add_form_error(self.config.format_fault(fault))
        trigger = Trigger(getattr(fault, 'trigger', Trigger.MANUAL))
        self._report(ValidationOutcome(trigger, getattr(fault, 'path', None), OutcomeStatus.FAULTED, fault))

    # === Validator invocation ===

    async def run_field(self, path: str, entry: ValidatorEntry, value: Any, trigger: Trigger) -> Any:
        """Run one field validator.

        Returns:
            The normalized result (None when valid).

        Raises:
            ValidatorFault: If the validator raised.
        """
        entry.begin()
        try:
            result = await invoke(entry.validator, value)
        except Exception as e:
            raise ValidatorFault(path, trigger.value, e) from e
        finally:
            entry.end()
        return normalize_result(result)

    async def run_form(self, values: Mapping[str, Any], trigger: Trigger) -> Dict[str, Any]:
        """Run the form validator (if any) against the full value tree.

        Returns:
            Nested error tree (dotted keys expanded), empty when valid or no
            validator is set.

        Raises:
            ValidatorFault: If the validator raised, returned a non-mapping,
                or used a key that is not a field path.
        """
        if self.form_validator is None:
            return {}
        try:
            result = await invoke(self.form_validator, values)
        except Exception as e:
            raise ValidatorFault(None, trigger.value, e) from e
        result = normalize_result(result)
        if result is None:
            return {}
        if not isinstance(result, Mapping):
            raise ValidatorFault(
                None, trigger.value,
                TypeError(f"form validator must return a mapping, got {type(result).__name__}"),
            )
        try:
            return expand_paths(result)
        except InvalidPathError as e:
            raise ValidatorFault(None, trigger.value, e) from e
