"""
Exception types raised or recorded by the validation coordinator.

Validation outcomes (a field validator returning "too short", a form validator
returning {"password": "mismatch"}) are DATA and never appear here. These
exceptions cover the unexpected cases only:

- ValidatorFault: a validator itself blew up while executing
- SubmitHandlerFault: the caller's submit handler blew up
- InvalidPathError: a path string could not be parsed
- FormLifecycleError: an operation needed a running coordinator
"""
from typing import Any, Optional


class FormStateError(Exception):
    """Base class for all formstate errors."""


class InvalidPathError(FormStateError, ValueError):
    """Raised when a field path cannot be parsed."""

    def __init__(self, path: Any, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid path {path!r}: {reason}")


class ValidatorFault(FormStateError):
    """A field or form validator raised instead of returning a result.

    Caught by the pipeline that invoked the validator and recorded as a
    form-level error. Never propagated out of a pipeline.

    Attributes:
        path: Field path of the validator, or None for the form validator
        trigger: Name of the trigger that invoked it ('change', 'blur', 'submit', 'manual')
        cause: The original exception
    """

    def __init__(self, path: Optional[str], trigger: str, cause: BaseException):
        self.path = path
        self.trigger = trigger
        self.cause = cause
        super().__init__(str(cause))

    @property
    def is_form_level(self) -> bool:
        return self.path is None

    def __str__(self) -> str:
        target = "form validator" if self.path is None else f"validator for {self.path!r}"
        return f"{target} failed during {self.trigger}: {self.cause}"


class SubmitHandlerFault(FormStateError):
    """The submit handler raised after a clean validation batch."""

    def __init__(self, cause: BaseException):
        self.path = None
        self.trigger = "submit"
        self.cause = cause
        super().__init__(str(cause))

    def __str__(self) -> str:
        return f"submit handler failed: {self.cause}"


class FormLifecycleError(FormStateError):
    """Operation requires a started (and not yet stopped) coordinator."""
