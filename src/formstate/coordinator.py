"""
FormCoordinator: the headless form the UI layer talks to.

Owns one FormState, one ValidatorRegistry, the three trigger streams and the
three pipelines. The UI layer calls the on_* entry points and register_field /
unregister_field; it reads state through the properties, snapshot(), or a
state-changed listener.

Example:
    >>> async def main():
    ...     async with FormCoordinator({'profile': {'age': 5}}) as form:
    ...         form.register_field('profile.age', lambda v: 'too young' if v < 18 else None)
    ...         form.on_field_change('profile.age', 10)
    ...         await form.wait_idle()
    ...         return form.errors
"""
from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from formstate.config import FormConfig, get_default_config
from formstate.errors import FormLifecycleError, SubmitHandlerFault, ValidatorFault
from formstate.paths import get_in, has_errors
from formstate.pipelines import BlurPipeline, ChangePipeline, SubmitPipeline
from formstate.registry import FieldValidator, ValidatorRegistry
from formstate.runner import FormValidator, Trigger, ValidationOutcome, ValidationRunner, invoke
from formstate.snapshot_model import FormSnapshot
from formstate.state import FormState
from formstate.streams import BlurEvent, ChangeEvent, SubmitEvent, TriggerStreams

logger = logging.getLogger(__name__)

SubmitHandler = Callable[[Mapping[str, Any]], Any]

_UNSET = object()


@dataclass(frozen=True)
class FormHelpers:
    """State plus bound handlers, handed to a rendering layer in one piece."""
    state: FormSnapshot
    handle_change: Callable[[str, Any], None]
    handle_blur: Callable[..., None]
    handle_submit: Callable[[], None]
    register_field: Callable[[str, FieldValidator], Any]
    unregister_field: Callable[[str], bool]
    set_field_value: Callable[..., None]
    set_touched: Callable[..., None]


class FormCoordinator:
    """
    Validation coordinator for one form.

    Lifecycle:
    - Constructed with initial values, an optional form validator and submit handler
    - start() subscribes the pipelines (or use `async with`)
    - stop() unsubscribes them, cancels pending work and freezes the state

    Args:
        initial_values: Seed for the value tree
        validate: Form validator, (values) -> mapping of path -> error (sync or async)
        on_submit: Handler run with the values after a submit finds no errors
        config: Pipeline tunables; defaults to get_default_config()
    """

    def __init__(
        self,
        initial_values: Optional[Mapping[str, Any]] = None,
        validate: Optional[FormValidator] = None,
        on_submit: Optional[SubmitHandler] = None,
        config: Optional[FormConfig] = None,
    ):
        self.config = config if config is not None else get_default_config()
        self.state = FormState(initial_values)
        self.registry = ValidatorRegistry()
        self.on_submit_handler = on_submit

        self._runner = ValidationRunner(self.state, self.registry, self.config, validate)
        self._streams: Optional[TriggerStreams] = None
        self._change_pipeline = ChangePipeline(self._runner)
        self._blur_pipeline = BlurPipeline(self._runner)
        self._submit_pipeline = SubmitPipeline(self._runner)
        self._started = False

    # === Lifecycle ===

    @property
    def running(self) -> bool:
        return self._runner.running

    @property
    def streams(self) -> TriggerStreams:
        """The trigger streams (extra subscribers may listen alongside the pipelines)."""
        if self._streams is None:
            raise FormLifecycleError("coordinator has not been started")
        return self._streams

    def start(self) -> None:
        """Create the trigger streams and subscribe the pipelines."""
        if self._started:
            raise FormLifecycleError("coordinator can only be started once")
        self._started = True
        streams = TriggerStreams()
        self._change_pipeline.attach(streams.change, streams.blur)
        self._blur_pipeline.attach(streams.blur, streams.submit)
        self._submit_pipeline.attach(streams.submit)
        self._streams = streams
        self._runner.running = True
        logger.info(f"Started form coordinator ({len(self.registry)} fields registered)")

    def stop(self) -> None:
        """Tear down: no pending validation may touch state afterwards."""
        if not self._runner.running:
            return
        self._runner.running = False
        for pipeline in (self._change_pipeline, self._blur_pipeline, self._submit_pipeline):
            pipeline.detach()
        if self._streams is not None:
            self._streams.close()
        self._runner.cancel_all()
        self.state.set_validating(False)
        self.state.freeze()
        logger.info("Stopped form coordinator")

    async def __aenter__(self) -> 'FormCoordinator':
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()
        await self._runner.wait_idle()

    async def wait_idle(self) -> None:
        """Wait for every pending debounce timer and in-flight validation."""
        await self._runner.wait_idle()

    def _require_running(self, what: str) -> None:
        if not self._runner.running:
            raise FormLifecycleError(f"{what} needs a running coordinator")

    # === Read surface ===

    @property
    def values(self) -> Mapping[str, Any]:
        return self.state.values

    @property
    def errors(self) -> Mapping[str, Any]:
        return self.state.errors

    @property
    def touched(self) -> Dict[str, bool]:
        return self.state.touched

    @property
    def form_errors(self) -> List[Any]:
        return self.state.form_errors

    @property
    def is_validating(self) -> bool:
        return self.state.is_validating

    @property
    def is_submitting(self) -> bool:
        return self.state.is_submitting

    @property
    def is_valid(self) -> bool:
        return self.state.snapshot().is_valid

    def snapshot(self) -> FormSnapshot:
        return self.state.snapshot()

    def add_state_listener(self, callback: Callable[[FormSnapshot], None]) -> None:
        self.state.on_state_changed(callback)

    def remove_state_listener(self, callback: Callable[[FormSnapshot], None]) -> None:
        self.state.off_state_changed(callback)

    def add_outcome_listener(self, callback: Callable[[ValidationOutcome], None]) -> None:
        self._runner.add_outcome_callback(callback)

    def remove_outcome_listener(self, callback: Callable[[ValidationOutcome], None]) -> None:
        self._runner.remove_outcome_callback(callback)

    # === Field registration ===

    def register_field(self, path: str, validator: FieldValidator):
        """Attach a validator when a field mounts."""
        return self.registry.register(path, validator)

    def unregister_field(self, path: str) -> bool:
        """Detach a field's validator and clear its error and touched flag.

        In-flight results for the field are dropped on arrival.
        """
        removed = self.registry.unregister(path)
        if removed:
            self.state.clear_field(path)
        return removed

    # === UI entry points ===

    def on_field_change(self, path: str, value: Any) -> None:
        """Commit a new value and, for registered fields, raise a change trigger."""
        self.state.set_value(path, value)
        if self._streams is None or not self.config.validate_on_change:
            return
        if self.registry.is_registered(path):
            self._streams.change.emit(ChangeEvent(path, value))

    def on_field_blur(self, path: str, value: Any = _UNSET) -> None:
        """Raise a blur trigger (value defaults to the field's current value)."""
        if value is _UNSET:
            value = self.state.get_value(path)
        if self._streams is None or not self.config.validate_on_blur:
            self.state.set_touched(path, True)
            return
        self._streams.blur.emit(BlurEvent(path, value))

    def on_submit(self) -> None:
        """Raise a submit trigger."""
        if self._streams is None:
            logger.debug("Dropped submit: coordinator not started")
            return
        self._streams.submit.emit(SubmitEvent())

    # === Programmatic helpers ===

    def set_field_value(self, path: str, value: Any, validate: bool = False) -> None:
        """Set a value from code; validate=True routes it through the change pipeline."""
        if validate:
            self.on_field_change(path, value)
        else:
            self.state.set_value(path, value)

    def set_touched(self, path: str, touched: bool = True) -> None:
        self.state.set_touched(path, touched)

    def set_all_touched(self) -> None:
        """Mark every registered field as touched."""
        self.state.set_all_touched(self.registry.paths())

    def set_form_level_error(self, message: Any) -> None:
        self.state.add_form_error(message)

    def reset(self, values: Optional[Mapping[str, Any]] = None) -> None:
        """Clear errors, touches and flags; restore initial (or new) values.

        Pending debounce timers are cancelled and every in-flight change,
        blur or submit validation is retired, so nothing computed from the
        old values can land in the reset state.
        """
        self._change_pipeline.retire_all()
        self._blur_pipeline.retire_all()
        self._submit_pipeline.retire_all()
        self.state.reset(values)

    async def submit(self) -> bool:
        """Validate everything, then run the submit handler if nothing failed.

        The handler is blocked by field errors and by validator faults raised
        during this submit's batch. Form-level errors recorded earlier (old
        faults, set_form_level_error) do not block it, although they keep
        is_valid False until reset().

        Returns:
            True if the submit handler ran (or there is none and the batch
            found no errors).
        """
        self._require_running("submit()")
        self.on_submit()
        committed = await self._submit_pipeline.settled()
        if not committed or not self._runner.running:
            logger.debug("Submit batch did not commit (superseded, reset or stopped)")
            return False

        snapshot = self.state.snapshot()
        if has_errors(snapshot.errors):
            logger.debug("Submit blocked by field errors")
            return False
        if self._submit_pipeline.last_faults:
            logger.debug(f"Submit blocked by {len(self._submit_pipeline.last_faults)} validator fault(s)")
            return False
        if self.on_submit_handler is None:
            return True

        self.state.set_submitting(True)
        try:
            await invoke(self.on_submit_handler, snapshot.values)
        except Exception as e:
            self._runner.record_fault(SubmitHandlerFault(e))
            return False
        finally:
            self.state.set_submitting(False)
        return True

    async def validate_form(self) -> Mapping[str, Any]:
        """Run the submit batch without submitting; returns the new error tree."""
        self._require_running("validate_form()")
        self.on_submit()
        await self._submit_pipeline.settled()
        return self.state.errors

    async def validate_field(self, path: str) -> Any:
        """Validate one registered field now and commit its result.

        Supersedes any pending change validation for the field.
        """
        self._require_running("validate_field()")
        entry = self.registry.get(path)
        if entry is None:
            raise KeyError(f"no validator registered for {path!r}")
        token = self._change_pipeline.supersede(path)
        try:
            error = await self._runner.run_field(path, entry, get_in(self.state.values, path), Trigger.MANUAL)
        except ValidatorFault as fault:
            if self._is_manual_live(path, token, entry):
                self._runner.record_fault(fault)
            else:
                self._runner.discarded(Trigger.MANUAL, path, f"stale fault: {fault.cause!r}")
            return None
        if self._is_manual_live(path, token, entry):
            self.state.set_field_error(path, error)
            self._runner.committed(Trigger.MANUAL, path, error)
        else:
            self._runner.discarded(Trigger.MANUAL, path, "superseded, unregistered or coordinator stopped")
        return error

    def _is_manual_live(self, path: str, token, entry) -> bool:
        return (self._runner.running
                and self._change_pipeline.is_current(path, token)
                and self.registry.is_current(path, entry))

    def get_state_and_helpers(self) -> FormHelpers:
        """Snapshot plus bound handlers for a rendering layer."""
        return FormHelpers(
            state=self.state.snapshot(),
            handle_change=self.on_field_change,
            handle_blur=self.on_field_blur,
            handle_submit=self.on_submit,
            register_field=self.register_field,
            unregister_field=self.unregister_field,
            set_field_value=self.set_field_value,
            set_touched=self.set_touched,
        )
