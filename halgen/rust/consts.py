"""Rust language constants and identifier helpers."""

from __future__ import annotations

from halgen.utils.naming import doc_lines, to_camel_case, to_snake_case

# Strict and reserved keywords (Rust 2021)
RUST_KEYWORDS = frozenset(
    {
        "as", "async", "await", "break", "const", "continue", "crate", "dyn", "else",
        "enum", "extern", "false", "fn", "for", "if", "impl", "in", "let", "loop",
        "match", "mod", "move", "mut", "pub", "ref", "return", "self", "Self",
        "static", "struct", "super", "trait", "true", "type", "unsafe", "use",
        "where", "while", "abstract", "become", "box", "do", "final", "macro",
        "override", "priv", "try", "typeof", "unsized", "virtual", "yield",
    }
)  # fmt: skip

UINT_TYPES = {8: "u8", 16: "u16", 32: "u32", 64: "u64"}
"""Unsigned integer type per register width."""

CORE_PTR = "core::ptr"
CORE_FENCE = "core::sync::atomic::compiler_fence"
SEQ_CST = "core::sync::atomic::Ordering::SeqCst"
INFALLIBLE = "core::convert::Infallible"

EMBEDDED_HAL_VERSION = "1.0"
EMBEDDED_IO_VERSION = "0.6"


def uint_for_width(bits: int) -> str:
    """Smallest unsigned Rust integer type holding ``bits`` bits."""
    for width, name in UINT_TYPES.items():
        if bits <= width:
            return name
    raise ValueError(f"No Rust integer type holds {bits} bits")


def escape_keyword(ident: str) -> str:
    if ident in RUST_KEYWORDS:
        return ident + "_"
    return ident


def fn_name(*parts: str) -> str:
    """Join name parts into a snake_case Rust function name."""
    return escape_keyword("_".join(to_snake_case(p) for p in parts if p))


def type_name(name: str) -> str:
    return escape_keyword(to_camel_case(name))


def hex_literal(value: int, bits: int = 32) -> str:
    """Format an integer as a Rust hex literal grouped by 16 bits."""
    digits = max(1, (bits + 3) // 4)
    raw = f"{value:0{digits}X}"
    groups = []
    while raw:
        groups.insert(0, raw[-4:])
        raw = raw[:-4]
    return "0x" + "_".join(groups)


def doc_comment(text: str, indent: str = "") -> list[str]:
    """Render description text as ``///`` doc comment lines."""
    return [f"{indent}///{' ' + line if line else ''}" for line in doc_lines(text)]
