"""Tests for FormConfig and the process-wide default."""
import pytest

from formstate import (
    FormConfig,
    SubmitHandlerFault,
    ValidatorFault,
    get_default_config,
    reset_default_config,
    set_default_config,
)


class TestFormConfig:
    """Test FormConfig values."""

    def test_defaults(self):
        config = FormConfig()
        assert config.debounce_ms == 300
        assert config.debounce_seconds == 0.3
        assert config.validate_on_change
        assert config.validate_on_blur

    def test_negative_debounce_rejected(self):
        with pytest.raises(ValueError):
            FormConfig(debounce_ms=-1)

    def test_zero_debounce_allowed(self):
        assert FormConfig(debounce_ms=0).debounce_seconds == 0

    def test_frozen(self):
        config = FormConfig()
        with pytest.raises(AttributeError):
            config.debounce_ms = 10


class TestFaultMessages:
    """Test the fault_message template."""

    def test_default_message_is_fault_text(self):
        fault = ValidatorFault("email", "change", RuntimeError("boom"))
        assert FormConfig().format_fault(fault) == "validator for 'email' failed during change: boom"

    def test_form_validator_message(self):
        fault = ValidatorFault(None, "submit", RuntimeError("boom"))
        assert FormConfig().format_fault(fault) == "form validator failed during submit: boom"

    def test_custom_template(self):
        config = FormConfig(fault_message="Could not check {path}: {cause}")
        fault = ValidatorFault("email", "blur", LookupError("dns"))
        assert config.format_fault(fault) == "Could not check email: dns"

    def test_submit_handler_fault(self):
        config = FormConfig(fault_message="[{path}] {fault}")
        fault = SubmitHandlerFault(OSError("offline"))
        assert config.format_fault(fault) == "[None] submit handler failed: offline"


class TestDefaultConfig:
    """Test set/get/reset of the default config."""

    def test_lazy_default(self):
        reset_default_config()
        config = get_default_config()
        assert config == FormConfig()
        assert get_default_config() is config

    def test_set_and_reset(self):
        custom = FormConfig(debounce_ms=50)
        set_default_config(custom)
        assert get_default_config() is custom

        reset_default_config()
        assert get_default_config() is not custom
        assert get_default_config().debounce_ms == 300
