"""
Headless validation coordinator for nested form state.

This package decouples three trigger events (field change, field blur, form
submit) from two kinds of caller-supplied validators (per-field and
whole-form), and keeps the resulting error tree consistent with the most
recent relevant input while validators run concurrently.

Quick Start:
    >>> import asyncio
    >>> from formstate import FormCoordinator
    >>>
    >>> async def main():
    ...     async with FormCoordinator({'profile': {'age': 5}}) as form:
    ...         form.register_field('profile.age', lambda age: 'too young' if age < 18 else None)
    ...         form.on_field_change('profile.age', 10)
    ...         form.on_field_change('profile.age', 25)
    ...         await form.wait_idle()
    ...         return form.errors
    >>>
    >>> asyncio.run(main())
    {'profile': {'age': None}}

Architecture:
    UI events -> trigger streams -> {change, blur, submit} pipelines -> FormState

    Change:  same field as last event -> debounce, latest wins
             different field          -> validate immediately, concurrently
    Blur:    field + form validator together; supersedes change on that field
    Submit:  every field + form validator as one barrier batch; supersedes blur

    Validators may be sync or async. Superseded results are discarded on
    arrival; validator exceptions become form-level errors.

Modules:
    - coordinator: FormCoordinator (lifecycle and UI entry points)
    - pipelines: change/blur/submit pipelines
    - runner: validator invocation, supersede tracking, outcomes
    - state: FormState, the single writer of form state
    - streams: trigger streams and events
    - registry: field validator registry
    - paths: nested path get/set/merge helpers
    - config: FormConfig and the process-wide default
"""

from formstate.config import (
    FormConfig,
    set_default_config,
    get_default_config,
    reset_default_config,
)

from formstate.errors import (
    FormStateError,
    InvalidPathError,
    ValidatorFault,
    SubmitHandlerFault,
    FormLifecycleError,
)

from formstate.paths import (
    parse_path,
    format_path,
    get_in,
    set_in,
    delete_in,
    deep_merge,
    expand_paths,
    normalize_result,
    is_empty_result,
    has_errors,
)

from formstate.registry import ValidatorEntry, ValidatorRegistry

from formstate.streams import (
    ChangeEvent,
    BlurEvent,
    SubmitEvent,
    TriggerStream,
    TriggerStreams,
    Subscription,
)

from formstate.snapshot_model import FormSnapshot
from formstate.state import FormState

from formstate.runner import (
    Trigger,
    OutcomeStatus,
    ValidationOutcome,
    SupersedeTracker,
)

from formstate.pipelines import ChangePipeline, BlurPipeline, SubmitPipeline

from formstate.coordinator import FormCoordinator, FormHelpers

__all__ = [
    # Config
    'FormConfig',
    'set_default_config',
    'get_default_config',
    'reset_default_config',
    # Errors
    'FormStateError',
    'InvalidPathError',
    'ValidatorFault',
    'SubmitHandlerFault',
    'FormLifecycleError',
    # Paths
    'parse_path',
    'format_path',
    'get_in',
    'set_in',
    'delete_in',
    'deep_merge',
    'expand_paths',
    'normalize_result',
    'is_empty_result',
    'has_errors',
    # Registry
    'ValidatorEntry',
    'ValidatorRegistry',
    # Streams
    'ChangeEvent',
    'BlurEvent',
    'SubmitEvent',
    'TriggerStream',
    'TriggerStreams',
    'Subscription',
    # State
    'FormSnapshot',
    'FormState',
    # Runner
    'Trigger',
    'OutcomeStatus',
    'ValidationOutcome',
    'SupersedeTracker',
    # Pipelines
    'ChangePipeline',
    'BlurPipeline',
    'SubmitPipeline',
    # Coordinator
    'FormCoordinator',
    'FormHelpers',
]

__version__ = '1.0.0'
__description__ = 'Headless validation coordinator for nested form state'
