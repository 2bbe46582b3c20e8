"""
FormState: the single writer of form values, errors and busy flags.

Pipelines compute concurrently but commit through the methods below. Each
commit method is synchronous and replaces whole trees (see paths.set_in),
so on an event loop two commits can never interleave and a reader never
observes half an update.
"""
from contextlib import contextmanager
import copy
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, Generator, Iterable, List, Mapping, Optional

from formstate.paths import deep_merge, delete_in, expand_paths, get_in, set_in
from formstate.snapshot_model import FormSnapshot

logger = logging.getLogger(__name__)


class FormState:
    """
    Authoritative state of one form.

    Core Attributes:
    - values: FormValues tree
    - errors: ErrorTree (same shape as values, None leaf = no error)
    - touched: flat path -> bool map
    - form_errors: append-only list of form-level messages
    - is_validating / is_submitting: busy flags

    Thread safety: Not thread-safe (all commits expected on the event loop thread).
    """

    def __init__(self, initial_values: Optional[Mapping[str, Any]] = None):
        self._initial_values: Dict[str, Any] = copy.deepcopy(dict(initial_values or {}))
        self._values: Dict[str, Any] = copy.deepcopy(self._initial_values)
        self._errors: Dict[str, Any] = {}
        self._touched: Dict[str, bool] = {}
        self._form_errors: List[Any] = []
        self._is_validating = False
        self._is_submitting = False

        self._on_state_changed_callbacks: List[Callable[[FormSnapshot], None]] = []
        self._batch_depth = 0
        self._pending_notify = False
        self._frozen = False

    # === Read surface ===

    # values and errors are read-only views. Nested containers are shared with
    # the holder; write through set_value / the commit methods only.

    @property
    def values(self) -> Mapping[str, Any]:
        return MappingProxyType(self._values)

    @property
    def errors(self) -> Mapping[str, Any]:
        return MappingProxyType(self._errors)

    @property
    def touched(self) -> Dict[str, bool]:
        return dict(self._touched)

    @property
    def form_errors(self) -> List[Any]:
        return list(self._form_errors)

    @property
    def is_validating(self) -> bool:
        return self._is_validating

    @property
    def is_submitting(self) -> bool:
        return self._is_submitting

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get_value(self, path: str, default: Any = None) -> Any:
        return get_in(self._values, path, default)

    def get_error(self, path: str) -> Any:
        return get_in(self._errors, path)

    def snapshot(self) -> FormSnapshot:
        return FormSnapshot(
            values=self._values,
            errors=self._errors,
            touched=dict(self._touched),
            form_errors=tuple(self._form_errors),
            is_validating=self._is_validating,
            is_submitting=self._is_submitting,
        )

    # === Change subscription ===

    def on_state_changed(self, callback: Callable[[FormSnapshot], None]) -> None:
        """Subscribe to commits. Callback receives the post-commit snapshot."""
        if callback not in self._on_state_changed_callbacks:
            self._on_state_changed_callbacks.append(callback)

    def off_state_changed(self, callback: Callable[[FormSnapshot], None]) -> None:
        """Unsubscribe from commits."""
        if callback in self._on_state_changed_callbacks:
            self._on_state_changed_callbacks.remove(callback)

    def _notify_state_changed(self) -> None:
        if self._batch_depth > 0:
            self._pending_notify = True
            return
        self._pending_notify = False
        snapshot = self.snapshot()
        for callback in list(self._on_state_changed_callbacks):
            try:
                callback(snapshot)
            except Exception as e:
                logger.warning(f"Error in state_changed callback: {e}")

    @contextmanager
    def batch(self) -> Generator[None, None, None]:
        """Coalesce the commits inside the block into one notification.

        Nested batches are supported; only the outermost one notifies.

        Example:
            with state.batch():
                state.replace_errors(tree)
                state.set_validating(False)
            # listeners see both changes in a single snapshot
        """
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending_notify:
                self._notify_state_changed()

    def _can_commit(self, what: str) -> bool:
        if self._frozen:
            logger.debug(f"Ignored {what}: state is frozen")
            return False
        return True

    # === Commit entry points ===

    def set_value(self, path: str, value: Any) -> None:
        if not self._can_commit(f"set_value({path!r})"):
            return
        self._values = set_in(self._values, path, value)
        self._notify_state_changed()

    def set_field_error(self, path: str, error: Any) -> None:
        """Replace the error at a single path (None clears it)."""
        if not self._can_commit(f"set_field_error({path!r})"):
            return
        self._errors = set_in(self._errors, path, error)
        logger.debug(f"Committed field error: path={path} error={error!r}")
        self._notify_state_changed()

    def merge_errors(self, path: Optional[str], field_error: Any,
                     form_level: Optional[Mapping[str, Any]]) -> None:
        """Commit a field result and a form-level result together.

        The field result is written at path first, then form-level errors are
        deep-merged on top, so form-level keys win where both address the
        same leaf. path=None skips the field part.
        """
        if not self._can_commit(f"merge_errors({path!r})"):
            return
        errors = self._errors
        if path is not None:
            errors = set_in(errors, path, field_error)
        if form_level:
            errors = deep_merge(errors, expand_paths(form_level))
        self._errors = errors
        logger.debug(f"Merged errors: path={path} form_keys={list(form_level or {})}")
        self._notify_state_changed()

    def replace_errors(self, errors: Mapping[str, Any]) -> None:
        if not self._can_commit("replace_errors"):
            return
        self._errors = dict(errors)
        self._notify_state_changed()

    def clear_field(self, path: str) -> None:
        """Drop the error and touched flag of a field that went away."""
        if not self._can_commit(f"clear_field({path!r})"):
            return
        self._errors = delete_in(self._errors, path)
        self._touched.pop(path, None)
        self._notify_state_changed()

    def set_touched(self, path: str, touched: bool = True) -> None:
        if not self._can_commit(f"set_touched({path!r})"):
            return
        if self._touched.get(path) == touched:
            return
        self._touched[path] = touched
        self._notify_state_changed()

    def set_all_touched(self, paths: Iterable[str]) -> None:
        if not self._can_commit("set_all_touched"):
            return
        for path in paths:
            self._touched[path] = True
        self._notify_state_changed()

    def add_form_error(self, message: Any) -> None:
        if not self._can_commit("add_form_error"):
            return
        self._form_errors.append(message)
        self._notify_state_changed()

    def set_validating(self, flag: bool) -> None:
        if not self._can_commit(f"set_validating({flag})"):
            return
        if self._is_validating == flag:
            return
        self._is_validating = flag
        self._notify_state_changed()

    def set_submitting(self, flag: bool) -> None:
        if not self._can_commit(f"set_submitting({flag})"):
            return
        if self._is_submitting == flag:
            return
        self._is_submitting = flag
        self._notify_state_changed()

    def reset(self, values: Optional[Mapping[str, Any]] = None) -> None:
        """Back to initial (or the given) values with no errors, touches or flags.

        Passing values makes them the new initial values.
        """
        if not self._can_commit("reset"):
            return
        if values is not None:
            self._initial_values = copy.deepcopy(dict(values))
        self._values = copy.deepcopy(self._initial_values)
        self._errors = {}
        self._touched = {}
        self._form_errors = []
        self._is_validating = False
        self._is_submitting = False
        logger.debug("Reset form state")
        self._notify_state_changed()

    def freeze(self) -> None:
        """Reject all further commits (used at teardown)."""
        self._frozen = True
