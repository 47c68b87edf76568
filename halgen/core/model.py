"""Hardware model (IR) for a single peripheral.

Registers and bit-fields are the fundamental unit of the model. Everything
here is immutable: a PeripheralModel is built once by the IR builder and
then only read by the matcher, the planner and the emitter, so one model
can be shared freely between threads.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

VALID_REGISTER_WIDTHS = (8, 16, 32, 64)


class AccessMode(str, Enum):
    """Access mode of a register or bit-field."""

    READ_ONLY = "read-only"
    WRITE_ONLY = "write-only"
    READ_WRITE = "read-write"
    WRITE_ONCE = "write-once"
    READ_WRITE_ONCE = "read-write-once"
    READ_TO_CLEAR = "read-to-clear"
    WRITE_ONE_TO_CLEAR = "write-1-to-clear"
    WRITE_ONE_TO_SET = "write-1-to-set"

    @property
    def readable(self) -> bool:
        return self not in (
            AccessMode.WRITE_ONLY,
            AccessMode.WRITE_ONCE,
        )

    @property
    def writable(self) -> bool:
        return self not in (AccessMode.READ_ONLY, AccessMode.READ_TO_CLEAR)

    @property
    def write_once(self) -> bool:
        return self in (AccessMode.WRITE_ONCE, AccessMode.READ_WRITE_ONCE)

    @property
    def read_side_effects(self) -> bool:
        """True when reading alters hardware state."""
        return self is AccessMode.READ_TO_CLEAR

    @property
    def implied_write_action(self) -> Optional[WriteAction]:
        if self is AccessMode.WRITE_ONE_TO_CLEAR:
            return WriteAction.CLEAR
        if self is AccessMode.WRITE_ONE_TO_SET:
            return WriteAction.SET
        return None


class WriteAction(str, Enum):
    """Effect of writing 1 to a bit whose 0-writes are ignored."""

    SET = "set"
    CLEAR = "clear"
    TOGGLE = "toggle"


class Endianness(str, Enum):
    LITTLE = "little"
    BIG = "big"


@dataclass(frozen=True)
class BitField:
    """A named sub-range of bits within a register.

    ``access`` is None when the field inherits the register's access mode;
    use Register.field_access() to resolve it.
    """

    name: str
    bit_offset: int
    bit_width: int
    role: Optional[str] = None
    reset_value: Optional[int] = None
    access: Optional[AccessMode] = None
    write_action: Optional[WriteAction] = None
    signal: Optional[str] = None
    description: str = ""

    @property
    def mask(self) -> int:
        """Mask of the field's bits, in register position."""
        return ((1 << self.bit_width) - 1) << self.bit_offset

    @property
    def max_value(self) -> int:
        return (1 << self.bit_width) - 1

    @property
    def msb(self) -> int:
        return self.bit_offset + self.bit_width - 1

    @property
    def signal_name(self) -> str:
        """Logical signal driven by this field; defaults to the field name."""
        return self.signal or self.name


@dataclass(frozen=True)
class Register:
    """A single register of a peripheral."""

    name: str
    offset: int
    width: int
    access: AccessMode
    fields: tuple[BitField, ...] = ()
    volatile: bool = False
    reset_value: Optional[int] = None
    read_side_effects: bool = False
    description: str = ""

    @property
    def size(self) -> int:
        """Width in bytes."""
        return self.width // 8

    @property
    def end(self) -> int:
        """First offset past this register."""
        return self.offset + self.size

    @property
    def full_mask(self) -> int:
        return (1 << self.width) - 1

    @property
    def readable(self) -> bool:
        return self.access.readable

    @property
    def writable(self) -> bool:
        return self.access.writable

    @property
    def destructive_reads(self) -> bool:
        """True when a read of this register can alter hardware state."""
        if self.read_side_effects or self.access.read_side_effects:
            return True
        return any(self.field_access(f).read_side_effects for f in self.fields)

    def field_access(self, field: BitField) -> AccessMode:
        """Resolve a field's effective access mode."""
        return field.access if field.access is not None else self.access

    def field_write_action(self, field: BitField) -> Optional[WriteAction]:
        """Resolve a field's effective write action."""
        if field.write_action is not None:
            return field.write_action
        return self.field_access(field).implied_write_action

    def spans_register(self, field: BitField) -> bool:
        return field.bit_offset == 0 and field.bit_width == self.width

    def get_field(self, name: str) -> Optional[BitField]:
        for field in self.fields:
            if field.name == name:
                return field
        return None

    def action_mask(self) -> int:
        """Bits where writing 1 triggers an action (set/clear/toggle)."""
        mask = 0
        for field in self.fields:
            if self.field_write_action(field) is not None:
                mask |= field.mask
        return mask

    def known_reset_value(self, exclude: Optional[BitField] = None) -> Optional[int]:
        """Reset value of every bit outside ``exclude``, if fully known.

        Bits not covered by any field are reserved and taken from the
        register reset value, or 0 when the register declares none. A field
        without a reset value makes the result unknown unless the register
        reset value covers it.
        """
        value = 0
        for field in self.fields:
            if field is exclude:
                continue
            if field.reset_value is not None:
                value |= (field.reset_value << field.bit_offset) & field.mask
            elif self.reset_value is not None:
                value |= self.reset_value & field.mask
            else:
                return None

        covered = 0
        for field in self.fields:
            covered |= field.mask
        reserved = self.full_mask & ~covered
        if self.reset_value is not None:
            value |= self.reset_value & reserved
        return value


@dataclass(frozen=True)
class PeripheralModel:
    """Root IR node: one peripheral and its registers."""

    name: str
    base_address: int
    registers: tuple[Register, ...]
    capability_hints: tuple[str, ...] = ()
    word_size: int = 32
    endianness: Endianness = Endianness.LITTLE
    version: Optional[str] = None
    description: str = ""

    def get_register(self, name: str) -> Optional[Register]:
        """Return the register called name, or None."""
        for reg in self.registers:
            if reg.name == name:
                return reg
        return None

    def iter_fields(self):
        """Yield (register, field) pairs in declaration order."""
        for reg in self.registers:
            for field in reg.fields:
                yield reg, field

    def is_aligned(self, reg: Register) -> bool:
        """True when the register's absolute address is aligned to its width."""
        return (self.base_address + reg.offset) % reg.size == 0
