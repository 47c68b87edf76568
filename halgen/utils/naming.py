"""Identifier and documentation text helpers.

Description names come from hardware documentation and are rarely valid
identifiers ("CR-1", "3V3_EN", "type"). These helpers normalise them
without knowing anything about the target language; keyword escaping is
left to the backend.
"""

from __future__ import annotations

import re

_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_IDENT = re.compile(r"[^0-9A-Za-z]+")
_CONTROL = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def _words(name: str) -> list[str]:
    spaced = _WORD_BOUNDARY.sub(r"\1 \2", name)
    return [w for w in _NON_IDENT.split(spaced) if w]


def to_snake_case(name: str) -> str:
    """Convert a hardware name to snake_case ("GPIO_ODR" -> "gpio_odr")."""
    words = _words(name)
    ident = "_".join(w.lower() for w in words) or "_"
    if ident[0].isdigit():
        ident = "_" + ident
    return ident


def to_camel_case(name: str) -> str:
    """Convert a hardware name to CamelCase ("gpio_a" -> "GpioA")."""
    words = _words(name)
    ident = "".join(w[:1].upper() + w[1:].lower() for w in words) or "_"
    if ident[0].isdigit():
        ident = "_" + ident
    return ident


def doc_lines(text: str) -> list[str]:
    """Split description text into lines safe for line comments.

    Control characters are dropped and trailing whitespace stripped; empty
    input yields no lines.
    """
    if not text:
        return []
    lines = [_CONTROL.sub("", line).rstrip() for line in text.strip().splitlines()]
    return lines
