import pytest

from halgen.core.exceptions import ConfigurationError, HalGenError, ModelError, PlanError


class TestHalGenError:
    """Test HalGenError base exception class."""

    def test_halgen_error_creation_basic(self):
        """Test creating a HalGenError with just a message."""
        exc = HalGenError("Test error message")

        assert str(exc) == "Test error message"
        assert exc.details == {}

    def test_halgen_error_with_details(self):
        details = {"key1": "value1", "key2": 42}
        exc = HalGenError("Test error message", details=details)

        assert exc.details == details

    def test_halgen_error_none_details_defaults_to_empty(self):
        exc = HalGenError("message", details=None)

        assert exc.details == {}

    def test_halgen_error_inheritance(self):
        assert isinstance(HalGenError("test"), Exception)


class TestConfigurationError:
    """Test ConfigurationError exception class."""

    def test_configuration_error_with_message_only(self):
        """A lone argument is treated as the message."""
        exc = ConfigurationError(config_key="Missing config key")

        assert "configuration" in str(exc).lower()
        assert "Missing config key" in str(exc)
        assert exc.config_key == "configuration"

    def test_configuration_error_with_key_and_message(self):
        exc = ConfigurationError(config_key="word_size", message="must be one of 8, 16, 32, 64")

        assert "word_size" in str(exc)
        assert "must be one of" in str(exc)
        assert exc.config_key == "word_size"

    def test_configuration_error_no_args(self):
        exc = ConfigurationError()

        assert "Invalid configuration" in str(exc)
        assert exc.details == {}

    def test_configuration_error_inheritance(self):
        assert isinstance(ConfigurationError("test"), HalGenError)


class TestModelError:
    """Test ModelError exception class."""

    def test_model_error_carries_registers(self):
        exc = ModelError("overlap", peripheral="GPIOA", registers=("DATA", "STATUS"))

        assert exc.registers == ("DATA", "STATUS")
        assert exc.details["registers"] == ["DATA", "STATUS"]
        assert exc.details["peripheral"] == "GPIOA"
        assert str(exc) == "overlap"

    def test_model_error_carries_fields(self):
        exc = ModelError("bad field", registers=("CR",), fields=("EN",))

        assert exc.fields == ("EN",)
        assert exc.details["fields"] == ["EN"]
        assert "peripheral" not in exc.details

    def test_model_error_merges_details(self):
        exc = ModelError("x", registers=("A",), details={"hint": "check offsets"})

        assert exc.details == {"hint": "check offsets", "registers": ["A"]}

    def test_model_error_is_halgen_error(self):
        with pytest.raises(HalGenError):
            raise ModelError("fatal")


class TestPlanError:
    """Test PlanError exception class."""

    def test_plan_error_register_only(self):
        exc = PlanError("CR", "not aligned")

        assert str(exc) == "Cannot plan access to CR: not aligned"
        assert exc.register == "CR"
        assert exc.field is None
        assert exc.reason == "not aligned"
        assert exc.details == {"register": "CR"}

    def test_plan_error_with_field(self):
        exc = PlanError("CR", "unknown reset values", field="EN")

        assert str(exc) == "Cannot plan access to CR.EN: unknown reset values"
        assert exc.details == {"register": "CR", "field": "EN"}

    def test_plan_error_is_halgen_error(self):
        assert isinstance(PlanError("CR", "x"), HalGenError)


class TestExceptionBehavior:
    """Test exception behavior and raise/catch patterns."""

    def test_raise_and_catch_with_context(self):
        try:
            try:
                raise ValueError("Original error")
            except ValueError as e:
                raise HalGenError("Wrapped error") from e
        except HalGenError as e:
            assert str(e) == "Wrapped error"
            assert isinstance(e.__cause__, ValueError)

    def test_catch_configuration_error_does_not_catch_base(self):
        with pytest.raises(HalGenError):
            with pytest.raises(ConfigurationError):
                raise HalGenError("test")
