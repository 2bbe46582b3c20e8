"""
Immutable read view of a FormState.

Consumers (renderers, tests, the helper bundle) read FormSnapshot instead of
the live holder so that a value captured before an await cannot change
underneath them.
"""
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from formstate.paths import has_errors


@dataclass(frozen=True)
class FormSnapshot:
    """State of one form at a commit boundary.

    Trees are shared with the holder, not copied: the holder never mutates a
    tree in place, it replaces it, so sharing is safe as long as consumers
    treat them as read-only.
    """
    values: Dict[str, Any]
    errors: Dict[str, Any]
    touched: Dict[str, bool]
    form_errors: Tuple[Any, ...]
    is_validating: bool
    is_submitting: bool

    @property
    def is_valid(self) -> bool:
        """No field error leaves and no form-level errors.

        Stricter than FormCoordinator.submit(), which ignores form-level errors
        recorded before its own batch. form_errors is append-only, so after a
        fault this stays False until reset().
        """
        return not has_errors(self.errors) and not self.form_errors

    def to_dict(self) -> Dict[str, Any]:
        """Export to a plain dict (JSON-serializable if the trees are)."""
        return {
            'values': self.values,
            'errors': self.errors,
            'touched': dict(self.touched),
            'form_errors': list(self.form_errors),
            'is_validating': self.is_validating,
            'is_submitting': self.is_submitting,
        }
