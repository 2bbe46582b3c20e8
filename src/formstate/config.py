"""
Coordinator configuration.

A FormConfig can be passed to each FormCoordinator explicitly. Coordinators
built without one pick up the process-wide default, which applications set
once at startup:

    >>> from formstate import FormConfig, set_default_config
    >>> set_default_config(FormConfig(debounce_ms=150))
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class FormConfig:
    """Tunables for the validation pipelines.

    Attributes:
        debounce_ms: Quiet time after the last same-field change event before
                     its validator runs
        validate_on_change: Raise change triggers for registered fields
        validate_on_blur: Raise blur triggers (touched is recorded either way)
        fault_message: Template for the form-level entry recorded when a
                       validator raises. Receives fault, path and cause.
    """
    debounce_ms: int = 300
    validate_on_change: bool = True
    validate_on_blur: bool = True
    fault_message: str = "{fault}"

    def __post_init__(self):
        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0, got {self.debounce_ms}")

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

    def format_fault(self, fault) -> str:
        """Render the form-level message for a ValidatorFault or SubmitHandlerFault."""
        return self.fault_message.format(
            fault=fault,
            path=getattr(fault, 'path', None),
            cause=fault.cause,
        )


_default_config: Optional[FormConfig] = None


def set_default_config(config: FormConfig) -> None:
    """Set the config used by coordinators constructed without one."""
    global _default_config
    _default_config = config


def get_default_config() -> FormConfig:
    """Get the process-wide default config (built lazily on first use)."""
    global _default_config
    if _default_config is None:
        _default_config = FormConfig()
    return _default_config


def reset_default_config() -> None:
    """Drop any configured default. For testing."""
    global _default_config
    _default_config = None
