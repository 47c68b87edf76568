"""
Pytest configuration and shared fixtures for the halgen test suite.
"""

import sys
import tempfile
from pathlib import Path

import pytest
import yaml

# Ensure project root is on PYTHONPATH so 'halgen' can be imported
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from halgen.contracts import default_registry  # noqa: E402
from halgen.utils.config_loader import GeneratorConfig, clear_config_cache  # noqa: E402


@pytest.fixture
def temp_yaml_file():
    """
    Fixture that provides a temporary YAML file.

    Yields:
        Path: Path to the temporary YAML file
    """
    with tempfile.NamedTemporaryFile(
        mode="w",
        suffix=".yaml",
        delete=False,
    ) as f:
        temp_path = Path(f.name)

    yield temp_path

    # Cleanup
    if temp_path.exists():
        temp_path.unlink()


@pytest.fixture
def write_yaml(temp_yaml_file):
    """
    Fixture returning a helper that dumps a dict into the temporary YAML file.
    """

    def _write(data):
        with open(temp_yaml_file, "w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return temp_yaml_file

    return _write


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def registry():
    """The bundled embedded-hal contract registry."""
    return default_registry()


@pytest.fixture
def generator_config():
    return GeneratorConfig()


@pytest.fixture
def enable_bit_description():
    """
    One 8-bit register at offset 0 with a single read-write "enable" bit.
    """
    return {
        "name": "LED",
        "base_address": 0x4000_0000,
        "version": "1.2.0",
        "registers": [
            {
                "name": "CTRL",
                "offset": 0,
                "width": 8,
                "access": "read-write",
                "fields": [
                    {"name": "enable", "bit_offset": 0, "bit_width": 1, "role": "enable"},
                ],
            }
        ],
        "capabilities": ["digital-output"],
    }


@pytest.fixture
def set_clear_description():
    """
    Separate write-only set and clear registers driving one "enable" signal.
    """
    return {
        "name": "PIN",
        "base_address": 0x4002_0000,
        "version": "1.0",
        "registers": [
            {
                "name": "SET",
                "offset": 0x0,
                "access": "write-only",
                "fields": [
                    {
                        "name": "enable_set",
                        "bit_offset": 0,
                        "role": "set",
                        "write_action": "set",
                        "signal": "enable",
                    }
                ],
            },
            {
                "name": "CLEAR",
                "offset": 0x4,
                "access": "write-only",
                "fields": [
                    {
                        "name": "enable_clear",
                        "bit_offset": 0,
                        "role": "clear",
                        "write_action": "clear",
                        "signal": "enable",
                    }
                ],
            },
        ],
        "capabilities": ["digital-output"],
    }


@pytest.fixture
def read_only_set_description():
    """
    A field whose role names "set" but which is read-only.
    """
    return {
        "name": "STAT",
        "base_address": 0x4003_0000,
        "version": "1.0",
        "registers": [
            {
                "name": "STATUS",
                "offset": 0x0,
                "access": "read-only",
                "fields": [{"name": "latched", "bit_offset": 0, "role": "set"}],
            }
        ],
        "capabilities": ["digital-output"],
    }


@pytest.fixture
def overlapping_description():
    """
    Two registers both claiming offset 4.
    """
    return {
        "name": "BAD",
        "base_address": 0x4000_0000,
        "registers": [
            {"name": "CTRL", "offset": 0x0},
            {"name": "DATA", "offset": 0x4},
            {"name": "STATUS", "offset": 0x4},
        ],
    }


@pytest.fixture
def uart_description():
    """
    A UART with data, a status register of flags and a mixed control register.
    """
    return {
        "name": "UART0",
        "base_address": 0x4000_C000,
        "version": "2.1",
        "description": "Universal asynchronous receiver/transmitter.",
        "registers": [
            {
                "name": "DR",
                "offset": 0x0,
                "width": 32,
                "access": "read-write",
                "volatile": True,
                "read_side_effects": True,
                "fields": [{"name": "DATA", "bit_offset": 0, "bit_width": 8, "role": "data"}],
            },
            {
                "name": "SR",
                "offset": 0x4,
                "access": "read-write",
                "volatile": True,
                "fields": [
                    {"name": "TXE", "bit_offset": 0, "role": "tx-empty", "access": "read-only"},
                    {
                        "name": "RXNE",
                        "bit_offset": 1,
                        "role": "rx-not-empty",
                        "access": "read-only",
                    },
                    {"name": "TC", "bit_offset": 2, "role": "tx-complete", "access": "read-only"},
                    {"name": "ORE", "bit_offset": 3, "access": "write-1-to-clear"},
                ],
            },
            {
                "name": "CR",
                "offset": 0x8,
                "access": "read-write",
                "reset_value": 0,
                "fields": [
                    {"name": "UE", "bit_offset": 0, "description": "UART enable"},
                    {"name": "BAUD", "bit_offset": 4, "bit_width": 12},
                ],
            },
        ],
        "capabilities": ["serial-write", "serial-read"],
    }


@pytest.fixture
def pwm_description():
    return {
        "name": "PWM1",
        "base_address": 0x4001_0000,
        "version": "1.0",
        "registers": [
            {
                "name": "CCR",
                "offset": 0x34,
                "width": 16,
                "fields": [{"name": "CCR", "bit_offset": 0, "bit_width": 16, "role": "duty"}],
            },
        ],
        "capabilities": ["pwm-duty"],
    }


@pytest.fixture
def spi_description():
    return {
        "name": "SPI1",
        "base_address": 0x4001_3000,
        "version": "1.0",
        "registers": [
            {
                "name": "SR",
                "offset": 0x8,
                "access": "read-only",
                "volatile": True,
                "fields": [
                    {"name": "RXNE", "bit_offset": 0, "role": "rx-not-empty"},
                    {"name": "TXE", "bit_offset": 1, "role": "tx-empty"},
                    {"name": "BSY", "bit_offset": 7, "role": "busy"},
                ],
            },
            {
                "name": "DR",
                "offset": 0xC,
                "width": 16,
                "volatile": True,
                "fields": [{"name": "DR", "bit_offset": 0, "bit_width": 16, "role": "data"}],
            },
        ],
        "capabilities": ["spi-bus"],
    }


def pytest_configure(config):
    """
    Hook for initial pytest configuration.

    Used to add custom markers and configuration.
    """
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests",
    )
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
