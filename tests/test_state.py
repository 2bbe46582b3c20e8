"""Tests for the FormState holder."""
import pytest

from formstate import FormState


class TestCommits:
    """Test commit entry points."""

    def test_initial_values_are_copied(self):
        initial = {"profile": {"age": 5}}
        state = FormState(initial)
        state.set_value("profile.age", 10)

        assert initial == {"profile": {"age": 5}}
        assert state.values == {"profile": {"age": 10}}

    def test_set_value_replaces_tree(self):
        state = FormState({"a": {"b": 1}})
        before = state.values
        state.set_value("a.b", 2)

        assert before == {"a": {"b": 1}}
        assert state.get_value("a.b") == 2

    def test_set_field_error_touches_single_path(self):
        state = FormState()
        state.set_field_error("address.city", "required")
        state.set_field_error("address.zip", None)

        assert state.errors == {"address": {"city": "required", "zip": None}}

    def test_merge_errors_form_level_overlays_field(self):
        state = FormState()
        state.set_field_error("name", "too short")
        state.merge_errors("email", "field says no", {"email": "form says no", "password.confirm": "mismatch"})

        assert state.errors == {
            "name": "too short",
            "email": "form says no",
            "password": {"confirm": "mismatch"},
        }

    def test_merge_errors_without_field(self):
        state = FormState()
        state.merge_errors(None, "ignored", {"a": "x"})
        assert state.errors == {"a": "x"}

    def test_replace_errors(self):
        state = FormState()
        state.set_field_error("old", "stale")
        state.replace_errors({"new": None})
        assert state.errors == {"new": None}

    def test_clear_field_drops_error_and_touched(self):
        state = FormState()
        state.set_field_error("items[0].name", "required")
        state.set_touched("items[0].name")

        state.clear_field("items[0].name")

        assert state.get_error("items[0].name") is None
        assert state.touched == {}

    def test_form_errors_append_only(self):
        state = FormState()
        state.add_form_error("one")
        state.add_form_error("two")
        assert state.form_errors == ["one", "two"]

    def test_reset(self):
        state = FormState({"a": 1})
        state.set_value("a", 2)
        state.set_field_error("a", "bad")
        state.set_touched("a")
        state.add_form_error("oops")
        state.set_validating(True)

        state.reset()

        snapshot = state.snapshot()
        assert snapshot.values == {"a": 1}
        assert snapshot.errors == {}
        assert snapshot.touched == {}
        assert snapshot.form_errors == ()
        assert snapshot.is_validating is False

    def test_reset_with_new_initial_values(self):
        state = FormState({"a": 1})
        state.reset({"a": 7})
        state.set_value("a", 8)
        state.reset()
        assert state.values == {"a": 7}


class TestNotifications:
    """Test state change callbacks."""

    def test_each_commit_notifies(self):
        state = FormState()
        seen = []
        state.on_state_changed(seen.append)

        state.set_value("a", 1)
        state.set_field_error("a", "bad")

        assert len(seen) == 2
        assert seen[-1].errors == {"a": "bad"}

    def test_batch_coalesces(self):
        state = FormState()
        seen = []
        state.on_state_changed(seen.append)

        with state.batch():
            state.set_validating(True)
            with state.batch():
                state.replace_errors({"a": "x"})
            state.set_validating(False)

        assert len(seen) == 1
        assert seen[0].errors == {"a": "x"}
        assert seen[0].is_validating is False

    def test_unchanged_flag_does_not_notify(self):
        state = FormState()
        seen = []
        state.on_state_changed(seen.append)
        state.set_submitting(False)
        state.set_touched("a", True)
        state.set_touched("a", True)
        assert len(seen) == 1

    def test_failing_listener_is_isolated(self):
        state = FormState()
        seen = []

        def broken(snapshot):
            raise RuntimeError("boom")

        state.on_state_changed(broken)
        state.on_state_changed(seen.append)
        state.set_value("a", 1)

        assert len(seen) == 1

    def test_off_state_changed(self):
        state = FormState()
        seen = []
        state.on_state_changed(seen.append)
        state.off_state_changed(seen.append)
        state.set_value("a", 1)
        assert seen == []


class TestReadOnlyViews:
    """values and errors cannot be written around the commit methods."""

    def test_values_view_rejects_writes(self):
        state = FormState({"a": 1})
        with pytest.raises(TypeError):
            state.values["a"] = 2
        assert state.get_value("a") == 1

    def test_errors_view_rejects_writes(self):
        state = FormState()
        state.set_field_error("a", "bad")
        with pytest.raises(TypeError):
            state.errors["a"] = None
        with pytest.raises(TypeError):
            del state.errors["a"]
        assert state.get_error("a") == "bad"

    def test_view_still_compares_as_mapping(self):
        state = FormState({"a": {"b": 1}})
        assert state.values == {"a": {"b": 1}}
        assert dict(state.values) == {"a": {"b": 1}}


class TestFreeze:
    """Test teardown freezing."""

    def test_frozen_state_ignores_commits(self):
        state = FormState({"a": 1})
        state.freeze()

        state.set_value("a", 2)
        state.set_field_error("a", "bad")
        state.add_form_error("oops")
        state.set_validating(True)

        assert state.frozen
        assert state.values == {"a": 1}
        assert state.errors == {}
        assert state.form_errors == []
        assert state.is_validating is False


class TestSnapshot:
    """Test FormSnapshot."""

    def test_is_valid(self):
        state = FormState()
        state.set_field_error("a", None)
        assert state.snapshot().is_valid

        state.set_field_error("b", "bad")
        assert not state.snapshot().is_valid

    def test_form_errors_make_invalid(self):
        state = FormState()
        state.add_form_error("server down")
        assert not state.snapshot().is_valid

    def test_to_dict(self):
        state = FormState({"a": 1})
        state.set_touched("a")
        assert state.snapshot().to_dict() == {
            "values": {"a": 1},
            "errors": {},
            "touched": {"a": True},
            "form_errors": [],
            "is_validating": False,
            "is_submitting": False,
        }
