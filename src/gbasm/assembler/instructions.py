"""
Instruction Records
===================

The encoder turns each instruction line into one of five record types:

- NoArg(opcode): no operand bytes (``nop``, ``ld a, b``, ``bit 3, a``)
- Arg8(opcode, operand): one operand byte (``ld a, 42``, ``ldh [$80], a``)
- Arg16(opcode, operand): two operand bytes, little-endian (``jp Label``)
- Jr(opcode, target): relative jump; the offset is computed once the
  instruction's own address is known
- Rst(target): restart; the opcode depends on the target vector

Opcodes above $FF are two opcode bytes in big-endian order ($CB-prefixed
instructions and ``stop``, $1000).

Records are resolved when every operand is a Literal, and pending
otherwise. The checks that cannot run before addresses are known live here
too, as plain functions for the resolution pass.
"""

from dataclasses import dataclass
from typing import Optional, Union

from gbasm.errors import AddressOutOfRangeError
from gbasm.assembler.expressions import Expression, Literal
from gbasm.assembler.opcodes import RST_VECTORS, opcode_size


def encode_opcode(opcode: int) -> bytes:
    """Opcode bytes, most significant first."""
    return opcode.to_bytes(opcode_size(opcode), "big")


# =============================================================================
# Deferred Range Checks
# =============================================================================

@dataclass(frozen=True)
class RangeConstraint:
    """
    A check on an operand's final value that could not run at parse time.

    Example: ``ldh a, [Label]`` with Label not yet defined must still end up
    in high RAM once Label is known.
    """
    low: int
    high: int
    description: str

    def check(self, value: int) -> int:
        """
        Raises:
            AddressOutOfRangeError: If value is outside [low, high]
        """
        if not self.low <= value <= self.high:
            raise AddressOutOfRangeError(
                f"{self.description}: ${value & 0xFFFFFFFF:X} is outside "
                f"${self.low:04X}-${self.high:04X}",
                value=value,
            )
        return value


def resolve_jr_offset(target: int, address: int) -> int:
    """
    Compute the signed displacement of a jr at `address` jumping to `target`.

    The displacement is relative to the end of the two-byte instruction.

    Raises:
        AddressOutOfRangeError: If the target is further than -128..+127
    """
    offset = target - (address + 2)
    if not -128 <= offset <= 127:
        raise AddressOutOfRangeError(
            f"jr target out of range (offset {offset})",
            value=offset,
            hint="jr reaches -128..+127 bytes; use jp for longer jumps",
        )
    return offset


def check_rst_target(value: int) -> int:
    """
    Validate an rst vector and return the rst opcode for it.

    Raises:
        AddressOutOfRangeError: If value is not a multiple of 8 in $00-$38
    """
    if value not in RST_VECTORS:
        raise AddressOutOfRangeError(
            f"invalid rst vector ${value & 0xFFFFFFFF:X}",
            value=value,
            hint="rst accepts $00, $08, $10, $18, $20, $28, $30 and $38",
        )
    return 0xC7 | value


# =============================================================================
# Record Types
# =============================================================================

@dataclass(frozen=True)
class NoArg:
    opcode: int

    @property
    def size(self) -> int:
        return opcode_size(self.opcode)

    @property
    def opcode_bytes(self) -> bytes:
        return encode_opcode(self.opcode)

    @property
    def resolved(self) -> bool:
        return True

    def __str__(self) -> str:
        return self.opcode_bytes.hex(" ").upper()


@dataclass(frozen=True)
class Arg8:
    """
    Opcode followed by one operand byte.

    Attributes:
        opcode: Opcode value
        operand: Literal once known, otherwise the deferred expression
        constraint: Range check still owed by the resolution pass
    """
    opcode: int
    operand: Expression
    constraint: Optional[RangeConstraint] = None

    @property
    def size(self) -> int:
        return opcode_size(self.opcode) + 1

    @property
    def opcode_bytes(self) -> bytes:
        return encode_opcode(self.opcode)

    @property
    def resolved(self) -> bool:
        return isinstance(self.operand, Literal)

    def __str__(self) -> str:
        if self.resolved:
            return f"{self.opcode_bytes.hex(' ').upper()} {self.operand.value & 0xFF:02X}"
        return f"{self.opcode_bytes.hex(' ').upper()} ?? ; {self.operand}"


@dataclass(frozen=True)
class Arg16:
    opcode: int
    operand: Expression

    @property
    def size(self) -> int:
        return opcode_size(self.opcode) + 2

    @property
    def opcode_bytes(self) -> bytes:
        return encode_opcode(self.opcode)

    @property
    def resolved(self) -> bool:
        return isinstance(self.operand, Literal)

    def __str__(self) -> str:
        if self.resolved:
            value = self.operand.value & 0xFFFF
            return f"{self.opcode_bytes.hex(' ').upper()} {value & 0xFF:02X} {value >> 8:02X}"
        return f"{self.opcode_bytes.hex(' ').upper()} ?? ?? ; {self.operand}"


@dataclass(frozen=True)
class Jr:
    """Relative jump; the displacement byte is computed by resolve_jr_offset."""
    opcode: int
    target: Expression

    @property
    def size(self) -> int:
        return 2

    @property
    def opcode_bytes(self) -> bytes:
        return encode_opcode(self.opcode)

    @property
    def resolved(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.opcode:02X} ?? ; {self.target}"


@dataclass(frozen=True)
class Rst:
    target: Expression

    @property
    def size(self) -> int:
        return 1

    @property
    def opcode_bytes(self) -> bytes:
        if isinstance(self.target, Literal):
            return bytes([check_rst_target(self.target.value)])
        return b""

    @property
    def resolved(self) -> bool:
        return isinstance(self.target, Literal)

    def __str__(self) -> str:
        if self.resolved and self.target.value in RST_VECTORS:
            return f"{check_rst_target(self.target.value):02X}"
        return f"?? ; rst {self.target}"


InstructionRecord = Union[NoArg, Arg8, Arg16, Jr, Rst]
