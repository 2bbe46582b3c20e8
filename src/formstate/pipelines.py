"""
The three validation pipelines.

ChangePipeline
    Pairs each change event with its predecessor. Same field as last time:
    debounce, then validate the latest value (latest-wins). Different field:
    validate immediately, concurrently with everything else. A blur on the
    same field supersedes both.

BlurPipeline
    Marks the field touched, runs the field validator and the form validator
    together, and commits both results in one step. A submit supersedes
    every in-flight blur.

SubmitPipeline
    Runs every registered field validator plus the form validator as one
    barrier batch with is_validating raised around it, then replaces the
    whole error tree. A newer submit supersedes an older one.

Precedence, strongest first: submit > blur > change.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from formstate.errors import ValidatorFault
from formstate.paths import deep_merge, get_in, set_in
from formstate.registry import ValidatorEntry
from formstate.runner import SupersedeTracker, Trigger, ValidationRunner
from formstate.streams import BlurEvent, ChangeEvent, SubmitEvent, Subscription, TriggerStream

logger = logging.getLogger(__name__)


class _NoPreviousEvent:
    """Sentinel seeding the pairwise fold so the first event has a predecessor."""

    path = None

    def __repr__(self):
        return "NO_PREVIOUS_EVENT"


NO_PREVIOUS_EVENT = _NoPreviousEvent()


class _Pipeline:
    """Subscription bookkeeping shared by the pipelines."""

    name = "pipeline"

    def __init__(self, runner: ValidationRunner):
        self.runner = runner
        self._subscriptions: List[Subscription] = []

    @property
    def attached(self) -> bool:
        return bool(self._subscriptions)

    def _subscribe(self, stream: TriggerStream, callback) -> None:
        self._subscriptions.append(stream.subscribe(callback))

    def detach(self) -> None:
        """Unsubscribe from every stream."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        logger.debug(f"Detached {self.name} pipeline")


class ChangePipeline(_Pipeline):
    """Field-change validation with debounce-and-supersede per field."""

    name = "change"

    def __init__(self, runner: ValidationRunner):
        super().__init__(runner)
        self._previous: Any = NO_PREVIOUS_EVENT
        self._tracker = SupersedeTracker()
        self._timers: Dict[str, asyncio.Task] = {}

    def attach(self, change_stream: TriggerStream, blur_stream: TriggerStream) -> None:
        self._subscribe(change_stream, self.handle_change)
        self._subscribe(blur_stream, self.handle_blur)

    def detach(self) -> None:
        super().detach()
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._previous = NO_PREVIOUS_EVENT

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def handle_change(self, event: ChangeEvent) -> None:
        previous, self._previous = self._previous, event
        token = self._tracker.advance(event.path)

        if previous.path == event.path:
            self._debounce(event, token)
        else:
            self._cancel_timer(event.path)
            logger.debug(f"Change on new field {event.path!r}: validating immediately")
            self.runner.spawn(self._validate(event, token), f"change:{event.path}")

    def handle_blur(self, event: BlurEvent) -> None:
        """A blur takes over validation of its field."""
        self.supersede(event.path)

    def supersede(self, path: str) -> Tuple[int, int]:
        """Retire every pending or in-flight change validation for path.

        Returns:
            A token the caller can check with is_current() before committing
            its own result for path.
        """
        self._cancel_timer(path)
        return self._tracker.advance(path)

    def is_current(self, path: str, token: Tuple[int, int]) -> bool:
        return self._tracker.is_current(path, token)

    def retire_all(self) -> None:
        """Cancel every debounce timer and retire all in-flight change work."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._tracker.advance_all()
        self._previous = NO_PREVIOUS_EVENT

    def _cancel_timer(self, path: str) -> None:
        timer = self._timers.pop(path, None)
        if timer is not None:
            timer.cancel()

    def _debounce(self, event: ChangeEvent, token: Tuple[int, int]) -> None:
        self._cancel_timer(event.path)
        self._timers[event.path] = self.runner.spawn(
            self._validate_after_quiet(event, token), f"debounce:{event.path}"
        )

    async def _validate_after_quiet(self, event: ChangeEvent, token: Tuple[int, int]) -> None:
        await asyncio.sleep(self.runner.config.debounce_seconds)
        # Past this point the timer is no longer cancellable; staleness is
        # handled by the token check.
        if self._timers.get(event.path) is asyncio.current_task():
            del self._timers[event.path]
        await self._validate(event, token)

    async def _validate(self, event: ChangeEvent, token: Tuple[int, int]) -> None:
        runner = self.runner
        path = event.path
        if not self._tracker.is_current(path, token):
            runner.discarded(Trigger.CHANGE, path, "superseded before dispatch")
            return
        entry = runner.registry.get(path)
        if entry is None:
            runner.discarded(Trigger.CHANGE, path, "field not registered")
            return

        try:
            error = await runner.run_field(path, entry, event.value, Trigger.CHANGE)
        except ValidatorFault as fault:
            if self._is_live(path, token, entry):
                runner.record_fault(fault)
            else:
                runner.discarded(Trigger.CHANGE, path, f"stale fault: {fault.cause!r}")
            return

        if not runner.running:
            runner.discarded(Trigger.CHANGE, path, "coordinator stopped")
        elif not self._tracker.is_current(path, token):
            runner.discarded(Trigger.CHANGE, path, "superseded by a newer event")
        elif not runner.registry.is_current(path, entry):
            runner.discarded(Trigger.CHANGE, path, "field unregistered")
        else:
            runner.state.set_field_error(path, error)
            runner.committed(Trigger.CHANGE, path, error)

    def _is_live(self, path: str, token: Tuple[int, int], entry: ValidatorEntry) -> bool:
        return (self.runner.running
                and self._tracker.is_current(path, token)
                and self.runner.registry.is_current(path, entry))


class BlurPipeline(_Pipeline):
    """Blur validation: field + form validators, committed together."""

    name = "blur"

    def __init__(self, runner: ValidationRunner):
        super().__init__(runner)
        self._tracker = SupersedeTracker()

    def attach(self, blur_stream: TriggerStream, submit_stream: TriggerStream) -> None:
        self._subscribe(blur_stream, self.handle_blur)
        self._subscribe(submit_stream, self.handle_submit)

    def handle_blur(self, event: BlurEvent) -> None:
        self.runner.state.set_touched(event.path, True)
        token = self._tracker.advance(event.path)
        self.runner.spawn(self._validate(event, token), f"blur:{event.path}")

    def handle_submit(self, event: SubmitEvent) -> None:
        """A submit retires every in-flight blur."""
        self.retire_all()

    def retire_all(self) -> None:
        self._tracker.advance_all()

    async def _validate(self, event: BlurEvent, token: Tuple[int, int]) -> None:
        runner = self.runner
        path = event.path
        entry = runner.registry.get(path)

        if entry is not None:
            field_result, form_result = await asyncio.gather(
                runner.run_field(path, entry, event.value, Trigger.BLUR),
                runner.run_form(runner.state.values, Trigger.BLUR),
                return_exceptions=True,
            )
        else:
            field_result = None
            form_result, = await asyncio.gather(
                runner.run_form(runner.state.values, Trigger.BLUR),
                return_exceptions=True,
            )

        if not runner.running:
            runner.discarded(Trigger.BLUR, path, "coordinator stopped")
            return
        if not self._tracker.is_current(path, token):
            runner.discarded(Trigger.BLUR, path, "superseded by submit or a newer blur")
            return

        for result in (field_result, form_result):
            if isinstance(result, BaseException) and not isinstance(result, ValidatorFault):
                raise result

        commit_field = entry is not None and runner.registry.is_current(path, entry)
        if entry is not None and not commit_field:
            runner.discarded(Trigger.BLUR, path, "field unregistered")

        with runner.state.batch():
            if isinstance(field_result, ValidatorFault):
                runner.record_fault(field_result)
                commit_field = False
            if isinstance(form_result, ValidatorFault):
                runner.record_fault(form_result)
                form_result = {}
            runner.state.merge_errors(path if commit_field else None, field_result, form_result)

        runner.committed(Trigger.BLUR, path, {'field': field_result if commit_field else None,
                                              'form': form_result})


class SubmitPipeline(_Pipeline):
    """Barrier validation of every registered field plus the form."""

    name = "submit"

    def __init__(self, runner: ValidationRunner):
        super().__init__(runner)
        self._generation = 0
        self._latest: Optional[asyncio.Task] = None
        # Faults recorded by the newest committed batch
        self.last_faults: List[ValidatorFault] = []

    def attach(self, submit_stream: TriggerStream) -> None:
        self._subscribe(submit_stream, self.handle_submit)

    def handle_submit(self, event: SubmitEvent) -> None:
        self._generation += 1
        self.runner.state.set_validating(True)
        self._latest = self.runner.spawn(self._validate(self._generation), f"submit#{self._generation}")

    def retire_all(self) -> None:
        """Retire every in-flight batch; none of them may commit."""
        self._generation += 1

    async def settled(self) -> bool:
        """Wait for the newest submit batch, following any batch that supersedes it.

        Returns:
            True if that batch committed its results.
        """
        while self._latest is not None:
            task = self._latest
            try:
                committed = await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
                committed = False
            if task is self._latest:
                return committed
        return False

    async def run_batch(self, trigger: Trigger = Trigger.SUBMIT) -> Tuple[Dict[str, Any], List[ValidatorFault]]:
        """Validate every registered field and the form as one batch.

        Returns:
            (error_tree, faults). Results of fields unregistered while the
            batch was running are left out of the tree.
        """
        runner = self.runner
        entries = runner.registry.snapshot()
        values = runner.state.values
        paths = list(entries.keys())

        results = await asyncio.gather(
            *(runner.run_field(path, entries[path], get_in(values, path), trigger) for path in paths),
            runner.run_form(values, trigger),
            return_exceptions=True,
        )
        field_results, form_result = results[:-1], results[-1]

        tree: Dict[str, Any] = {}
        faults: List[ValidatorFault] = []
        for path, result in zip(paths, field_results):
            if not runner.registry.is_current(path, entries[path]):
                runner.discarded(trigger, path, "field unregistered during batch")
                continue
            if isinstance(result, ValidatorFault):
                faults.append(result)
                result = None
            elif isinstance(result, BaseException):
                raise result
            tree = set_in(tree, path, result)

        if isinstance(form_result, ValidatorFault):
            faults.append(form_result)
        elif isinstance(form_result, BaseException):
            raise form_result
        elif form_result:
            tree = deep_merge(tree, form_result)

        return tree, faults

    async def _validate(self, generation: int) -> bool:
        runner = self.runner
        try:
            tree, faults = await self.run_batch(Trigger.SUBMIT)
        except Exception:
            if runner.running and generation == self._generation:
                runner.state.set_validating(False)
            raise

        if not runner.running:
            runner.discarded(Trigger.SUBMIT, None, "coordinator stopped")
            return False
        if generation != self._generation:
            runner.discarded(Trigger.SUBMIT, None, f"submit #{generation} superseded by #{self._generation}")
            return False

        self.last_faults = faults
        with runner.state.batch():
            try:
                for fault in faults:
                    runner.record_fault(fault)
                runner.state.replace_errors(tree)
            finally:
                runner.state.set_validating(False)
        logger.debug(f"Submit #{generation} committed {len(tree)} top-level error keys")
        runner.committed(Trigger.SUBMIT, None, tree)
        return True
