"""Rust embedded-hal backend.

Renders emission units as ``no_std`` Rust for embedded-hal 1.0 and
embedded-io 0.6.
"""

from halgen.rust.backend import RustBackend

__all__ = ["RustBackend"]
