"""
ValidatorRegistry: field path -> validator function.

Fields register their validator when they mount and unregister when they
unmount, so the key set changes while validations are in flight. Entries are
never mutated in place by register(): a re-registration creates a new
ValidatorEntry, and pipelines compare entry identity to decide whether a
late result still belongs to the field that is registered now.
"""
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Dict, List, Optional

from formstate.paths import parse_path

logger = logging.getLogger(__name__)

FieldValidator = Callable[[Any], Any]


@dataclass(eq=False)
class ValidatorEntry:
    """A registered field validator.

    active is True while at least one invocation of this entry is in flight.
    Compared by identity: two entries wrapping the same function are still
    different registrations.
    """
    validator: FieldValidator
    active: bool = False
    _in_flight: int = field(default=0, repr=False)

    def begin(self) -> None:
        self._in_flight += 1
        self.active = True

    def end(self) -> None:
        self._in_flight = max(0, self._in_flight - 1)
        self.active = self._in_flight > 0


class ValidatorRegistry:
    """Per-form registry of field validators.

    Lifecycle ownership:
    - UI layer: register() on field mount, unregister() on field unmount
    - Pipelines: read via get() / snapshot(), never mutate

    Thread safety: Not thread-safe (all operations expected on the event loop thread).
    """

    def __init__(self):
        self._entries: Dict[str, ValidatorEntry] = {}
        # Callbacks receive (path, entry)
        self._on_register_callbacks: List[Callable[[str, ValidatorEntry], None]] = []
        self._on_unregister_callbacks: List[Callable[[str, ValidatorEntry], None]] = []

    def add_register_callback(self, callback: Callable[[str, ValidatorEntry], None]) -> None:
        """Subscribe to registration events."""
        if callback not in self._on_register_callbacks:
            self._on_register_callbacks.append(callback)

    def remove_register_callback(self, callback: Callable[[str, ValidatorEntry], None]) -> None:
        """Unsubscribe from registration events."""
        if callback in self._on_register_callbacks:
            self._on_register_callbacks.remove(callback)

    def add_unregister_callback(self, callback: Callable[[str, ValidatorEntry], None]) -> None:
        """Subscribe to unregistration events."""
        if callback not in self._on_unregister_callbacks:
            self._on_unregister_callbacks.append(callback)

    def remove_unregister_callback(self, callback: Callable[[str, ValidatorEntry], None]) -> None:
        """Unsubscribe from unregistration events."""
        if callback in self._on_unregister_callbacks:
            self._on_unregister_callbacks.remove(callback)

    def _fire(self, callbacks: List[Callable[[str, ValidatorEntry], None]], kind: str,
              path: str, entry: ValidatorEntry) -> None:
        for callback in list(callbacks):
            try:
                callback(path, entry)
            except Exception as e:
                logger.warning(f"Error in {kind} callback for {path!r}: {e}")

    def register(self, path: str, validator: FieldValidator) -> ValidatorEntry:
        """Register (or replace) the validator for a field.

        Args:
            path: Field path, e.g. 'address.city'
            validator: Callable taking the field value; may return an awaitable

        Returns:
            The new entry. Any previous entry for path is superseded.
        """
        if not callable(validator):
            raise TypeError(f"validator for {path!r} must be callable, got {type(validator).__name__}")
        parse_path(path)

        if path in self._entries:
            logger.warning(f"Overwriting existing validator for field: {path}")

        entry = ValidatorEntry(validator=validator)
        self._entries[path] = entry
        logger.debug(f"Registered validator: path={path}")
        self._fire(self._on_register_callbacks, "register", path, entry)
        return entry

    def unregister(self, path: str) -> bool:
        """Remove the validator for a field.

        Returns:
            True if an entry was removed, False if path was not registered.
        """
        entry = self._entries.pop(path, None)
        if entry is None:
            return False
        logger.debug(f"Unregistered validator: path={path} (in flight: {entry.active})")
        self._fire(self._on_unregister_callbacks, "unregister", path, entry)
        return True

    def is_registered(self, path: str) -> bool:
        return path in self._entries

    def get(self, path: str) -> Optional[ValidatorEntry]:
        return self._entries.get(path)

    def is_current(self, path: str, entry: ValidatorEntry) -> bool:
        """True if entry is still THE registered entry for path."""
        return self._entries.get(path) is entry

    def paths(self) -> List[str]:
        return list(self._entries.keys())

    def snapshot(self) -> Dict[str, ValidatorEntry]:
        """Shallow copy of the entries, safe to iterate across awaits."""
        return dict(self._entries)

    def clear(self) -> None:
        """Remove every entry (unregister callbacks fire for each)."""
        for path in list(self._entries.keys()):
            self.unregister(path)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)
