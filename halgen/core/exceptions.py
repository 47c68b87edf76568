"""Custom exceptions used throughout the halgen package."""

from typing import Any, Optional


class HalGenError(Exception):
    """Base exception for all generator errors.

    All halgen-specific exceptions inherit from this class, so callers can
    catch every generator failure with a single except clause.
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Additional context about the error
        """

        super().__init__(message)
        self.details = details or {}


class ConfigurationError(HalGenError):
    """Raised when generator configuration or contract data is invalid.

    This includes:
    - Unparseable YAML
    - Missing required keys
    - Values of the wrong type or out of range
    """

    def __init__(
        self,
        config_key: Optional[str] = None,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        """Initialize configuration error.

        Args:
            config_key: The configuration key that caused the error
            message: Description of what's wrong. If omitted, config_key is
                treated as the message and the key defaults to "configuration".
            details: Additional context
        """
        if message is None:
            message = config_key or "Invalid configuration"
            config_key = "configuration"
        if config_key is None:
            config_key = "configuration"

        full_message = f"Configuration error for '{config_key}': {message}"
        super().__init__(message=full_message, details=details)
        self.config_key = config_key


class ModelError(HalGenError):
    """Raised when a peripheral description is internally inconsistent.

    Fatal for the peripheral being generated. The offending register and
    field names are available as attributes and in ``details``.

    Examples:
    - Two registers overlapping in address range
    - Bit-fields overlapping inside one register
    - A bit-field extending past its register's width
    """

    def __init__(
        self,
        message: str,
        peripheral: Optional[str] = None,
        registers: tuple[str, ...] = (),
        fields: tuple[str, ...] = (),
        details: Optional[dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if peripheral is not None:
            details["peripheral"] = peripheral
        if registers:
            details["registers"] = list(registers)
        if fields:
            details["fields"] = list(fields)

        super().__init__(message=message, details=details)
        self.peripheral = peripheral
        self.registers = registers
        self.fields = fields


class PlanError(HalGenError):
    """Raised when a register's access needs cannot be satisfied safely.

    Not fatal: the planner records the error, demotes the register to raw
    fallback access and generation continues.
    """

    def __init__(
        self,
        register: str,
        reason: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        details = dict(details or {})
        details["register"] = register
        if field is not None:
            details["field"] = field
            message = f"Cannot plan access to {register}.{field}: {reason}"
        else:
            message = f"Cannot plan access to {register}: {reason}"

        super().__init__(message=message, details=details)
        self.register = register
        self.field = field
        self.reason = reason
