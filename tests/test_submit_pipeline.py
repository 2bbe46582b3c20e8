"""Tests for submit-triggered barrier validation and submission."""
import asyncio

import pytest

from formstate import FormCoordinator, FormLifecycleError, OutcomeStatus


class TestSubmitBatch:
    """Submit validates every registered field plus the form."""

    @pytest.mark.asyncio
    async def test_empty_form_submit(self, make_form):
        """Example: no fields and a form validator returning {}."""
        async with make_form(validate=lambda values: {}) as form:
            flags = []
            form.add_state_listener(lambda snapshot: flags.append(snapshot.is_validating))

            assert form.is_validating is False
            assert await form.submit() is True

            assert form.errors == {}
            assert form.is_validating is False
            assert flags == [True, False]

    @pytest.mark.asyncio
    async def test_full_error_tree(self, make_form):
        values = {"a": "", "b": {"c": "ok"}, "items": ["x"]}

        async with make_form(values, validate=lambda v: {"b": {"d": "form says no"}}) as form:
            form.register_field("a", lambda v: "required" if not v else None)
            form.register_field("b.c", lambda v: None)
            form.register_field("items[0]", lambda v: ["too short"] if len(v) < 2 else [])

            await form.validate_form()

            assert form.errors == {
                "a": "required",
                "b": {"c": None, "d": "form says no"},
                "items": [["too short"]],
            }

    @pytest.mark.asyncio
    async def test_submit_replaces_stale_errors(self, make_form):
        async with make_form({"a": "filled"}) as form:
            form.register_field("a", lambda v: None)
            form.state.set_field_error("gone", "left over")

            await form.validate_form()

            assert form.errors == {"a": None}

    @pytest.mark.asyncio
    async def test_validating_flag_spans_the_batch(self, make_form, gated, wait_until):
        validator = gated(lambda v: None)

        async with make_form({"a": 1}) as form:
            form.register_field("a", validator)
            form.on_submit()
            assert form.is_validating is True

            await wait_until(lambda: validator.calls == [1])
            assert form.is_validating is True

            validator.release(1)
            await form.wait_idle()
            assert form.is_validating is False
            assert form.errors == {"a": None}

    @pytest.mark.asyncio
    async def test_field_unregistered_mid_batch(self, make_form, gated, wait_until, recorder):
        slow = gated(lambda v: "slow bad")

        async with make_form({"a": 1, "b": 2}) as form:
            form.add_outcome_listener(recorder)
            form.register_field("a", slow)
            form.register_field("b", lambda v: "b bad")
            form.on_submit()
            await wait_until(lambda: slow.calls == [1])

            form.unregister_field("a")
            slow.release(1)
            await form.wait_idle()

            assert form.errors == {"b": "b bad"}
            assert recorder.with_status(OutcomeStatus.DISCARDED, "a")

    @pytest.mark.asyncio
    async def test_newer_submit_supersedes_older(self, make_form, wait_until):
        first_gate = asyncio.Event()
        calls = []

        async def validator(value):
            calls.append(value)
            if len(calls) == 1:
                await first_gate.wait()
                return "first"
            return "second"

        async with make_form({"f": 0}) as form:
            form.register_field("f", validator)
            form.on_submit()
            await wait_until(lambda: len(calls) == 1)

            form.on_submit()
            await wait_until(lambda: form.errors == {"f": "second"})

            first_gate.set()
            await form.wait_idle()

            assert form.errors == {"f": "second"}
            assert form.is_validating is False

    @pytest.mark.asyncio
    async def test_field_fault_recorded(self, make_form):
        def broken(value):
            raise RuntimeError("kaput")

        async with make_form({"a": 1, "b": 2}) as form:
            form.register_field("a", broken)
            form.register_field("b", lambda v: "b bad")

            await form.validate_form()

            assert form.errors == {"a": None, "b": "b bad"}
            assert len(form.form_errors) == 1
            assert "kaput" in form.form_errors[0]


class TestSubmission:
    """submit() runs the handler only after a clean batch."""

    @pytest.mark.asyncio
    async def test_handler_runs_with_values(self, make_form):
        received = []

        async def handler(values):
            received.append((values, form.is_submitting))

        async with make_form({"name": "ada"}, on_submit=handler) as form:
            form.register_field("name", lambda v: None)
            assert await form.submit() is True

            assert received == [({"name": "ada"}, True)]
            assert form.is_submitting is False

    @pytest.mark.asyncio
    async def test_errors_block_handler(self, make_form):
        received = []

        async with make_form({"name": ""}, on_submit=received.append) as form:
            form.register_field("name", lambda v: "required" if not v else None)
            assert await form.submit() is False

            assert received == []
            assert form.errors == {"name": "required"}

    @pytest.mark.asyncio
    async def test_handler_fault_recorded(self, make_form, recorder):
        def handler(values):
            raise ConnectionError("server unreachable")

        async with make_form(on_submit=handler) as form:
            form.add_outcome_listener(recorder)
            assert await form.submit() is False

            assert form.is_submitting is False
            assert form.form_errors == ["submit handler failed: server unreachable"]
            assert len(recorder.with_status(OutcomeStatus.FAULTED)) == 1

    @pytest.mark.asyncio
    async def test_submit_requires_running_coordinator(self):
        form = FormCoordinator()
        with pytest.raises(FormLifecycleError):
            await form.submit()


class TestMalformedFormResult:
    """A form validator answering with non-path keys faults like any other."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("result", [{"a..b": "x"}, {"": "oops"}, {"x[y]": "z"}])
    async def test_submit_records_fault_and_clears_flag(self, make_form, recorder, result):
        received = []

        async with make_form({"a": 1}, validate=lambda values: result, on_submit=received.append) as form:
            form.add_outcome_listener(recorder)
            form.register_field("a", lambda v: None)

            assert await form.submit() is False

            assert form.is_validating is False
            assert form.errors == {"a": None}
            assert len(form.form_errors) == 1
            assert "form validator failed during submit" in form.form_errors[0]
            assert len(recorder.with_status(OutcomeStatus.FAULTED)) == 1
            assert received == []

    @pytest.mark.asyncio
    async def test_validate_form_does_not_raise(self, make_form):
        async with make_form(validate=lambda values: {"a..b": "x"}) as form:
            assert await form.validate_form() == {}
            assert form.is_validating is False


class TestSubmitFaults:
    """Faults inside the submit batch block the handler."""

    @pytest.mark.asyncio
    async def test_field_fault_blocks_handler(self, make_form):
        received = []

        def broken(value):
            raise RuntimeError("lookup failed")

        async with make_form({"a": 1}, on_submit=received.append) as form:
            form.register_field("a", broken)

            assert await form.submit() is False
            assert received == []
            assert form.errors == {"a": None}

    @pytest.mark.asyncio
    async def test_earlier_form_errors_do_not_block_handler(self, make_form):
        received = []

        async with make_form({"a": 1}, on_submit=received.append) as form:
            form.register_field("a", lambda v: None)
            form.set_form_level_error("server said no last time")

            assert await form.submit() is True
            assert received == [{"a": 1}]
            # is_valid still counts the earlier form-level error
            assert not form.is_valid
