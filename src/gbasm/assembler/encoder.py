"""
SM83 Instruction Encoder
========================

Maps a mnemonic and its parsed operands onto an instruction record with the
packed opcode. Each addressing-mode family has its own function; all of them
are pure: they read the symbol resolver but never change assembler state,
and they raise errors without a source location (the parser adds it).

Encoding summary
----------------

| Family              | Encoding                                |
|---------------------|-----------------------------------------|
| alu a, r8           | $80 \\| op<<3 \\| r8                     |
| alu a, n8           | $C6 \\| op<<3, n8                        |
| add hl, r16         | $09 \\| r16<<4                           |
| add sp, e8          | $E8, e8                                 |
| inc/dec r8          | $04 \\| r8<<3 \\| dir                     |
| inc/dec r16         | $03 \\| r16<<4 \\| dir<<3                 |
| bit/res/set b, r8   | $CB, base \\| b<<3 \\| r8                 |
| rlc ... srl r8      | $CB, base \\| r8                         |
| ret/jp/call cc      | $C0/$C2/$C4 \\| cc<<3                    |
| jr cc, e8           | $20 \\| cc<<3                            |
| push/pop r16stk     | $C5/$C1 \\| r<<4                         |
| ld r8, r8           | $40 \\| dst<<3 \\| src                    |
| ld r8, n8           | $06 \\| r8<<3, n8                        |
| ld r16, n16         | $01 \\| r16<<4, n16                      |

Example
-------
>>> from gbasm.assembler.encoder import encode
>>> from gbasm.assembler.opcodes import register
>>> encode("ld", [register("a"), register("b")])
NoArg(opcode=120)
"""

from typing import Callable, Optional, Sequence
import logging

from gbasm.errors import (
    AddressOutOfRangeError,
    AssemblySyntaxError,
    ExpressionError,
    IllegalEncodingError,
    InvalidOperandsError,
    NumericConversionError,
)
from gbasm.assembler.expressions import (
    Deferred,
    Expression,
    FunctionCall,
    Invalid,
    Literal,
    SymbolResolver,
    evaluate,
    require_constant,
    to_operand,
)
from gbasm.assembler.instructions import (
    Arg8,
    Arg16,
    InstructionRecord,
    Jr,
    NoArg,
    RangeConstraint,
    Rst,
)
from gbasm.assembler.opcodes import (
    ALU_OPERATIONS,
    AUTO_INDEX_LOADS,
    CB_BIT_OPERATIONS,
    CB_PREFIX,
    CB_ROTATIONS,
    FIXED_OPCODES,
    HRAM_END,
    HRAM_START,
    INDIRECT_REG16,
    Operand,
    OperandKind,
    condition_code,
    get_valid_forms,
    reg8_code,
    reg16_code,
    stack_reg16_code,
)

logger = logging.getLogger(__name__)

Operands = Sequence[Operand]
Resolver = Optional[SymbolResolver]


# =============================================================================
# Entry Point
# =============================================================================

def encode(
    mnemonic: str,
    operands: Operands,
    resolver: Resolver = None,
) -> InstructionRecord:
    """
    Encode one instruction.

    Args:
        mnemonic: Instruction mnemonic (any case)
        operands: Parsed operands, in source order
        resolver: Symbol lookup for operand values known at parse time

    Returns:
        The instruction record

    Raises:
        InvalidOperandsError: If no encoding accepts the operands
        IllegalEncodingError: For ld [hl], [hl]
        AddressOutOfRangeError: For ldh with a constant address outside high RAM
        NumericConversionError: If a known operand does not fit its width
    """
    mnemonic = mnemonic.lower()
    family = _FAMILIES.get(mnemonic)
    if family is None:
        raise AssemblySyntaxError(f"unknown instruction '{mnemonic}'")

    record = family(mnemonic, operands, resolver)
    if record is None:
        raise InvalidOperandsError(
            mnemonic,
            ", ".join(str(operand) for operand in operands) or "none",
            valid_forms=get_valid_forms(mnemonic),
        )

    logger.debug(f"Encoded {mnemonic} {', '.join(str(o) for o in operands)} -> {record}")
    return record


def _fold(expr: Expression, resolver: Resolver) -> Expression:
    """Replace an expression by its value when it is already known."""
    result = evaluate(expr, resolver)
    if isinstance(result, Invalid):
        raise ExpressionError(result.reason)
    if isinstance(result, Deferred):
        return expr
    return Literal(result.value)


def _is_immediate(operand: Operand) -> bool:
    return operand.kind == OperandKind.IMMEDIATE


# =============================================================================
# Fixed Opcodes
# =============================================================================

def _encode_fixed(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    if operands:
        return None
    return NoArg(FIXED_OPCODES[mnemonic])


# =============================================================================
# Arithmetic and Logic
# =============================================================================

def _encode_alu(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    """
    add/adc/sub/sbc/and/xor/or/cp against a register or an immediate.

    Both ``op r`` and ``op a, r`` are accepted. ``add`` also has the 16-bit
    forms ``add hl, r16`` and ``add sp, e8``.
    """
    if mnemonic == "add" and len(operands) == 2:
        target, source = operands
        if target.is_register("hl"):
            code = reg16_code(source)
            return NoArg(0x09 | code << 4) if code is not None else None
        if target.is_register("sp"):
            if _is_immediate(source):
                return Arg8(0xE8, to_operand(source.expr, 8, resolver, signed=True))
            return None

    if len(operands) == 2 and operands[0].is_register("a"):
        operands = operands[1:]
    if len(operands) != 1:
        return None

    op = ALU_OPERATIONS[mnemonic]
    source = operands[0]
    code = reg8_code(source)
    if code is not None:
        return NoArg(0x80 | op << 3 | code)
    if _is_immediate(source):
        return Arg8(0xC6 | op << 3, to_operand(source.expr, 8, resolver))
    return None


def _encode_inc_dec(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    if len(operands) != 1:
        return None

    direction = 0 if mnemonic == "inc" else 1
    code = reg8_code(operands[0])
    if code is not None:
        return NoArg(0x04 | code << 3 | direction)
    code = reg16_code(operands[0])
    if code is not None:
        return NoArg(0x03 | code << 4 | direction << 3)
    return None


# =============================================================================
# CB-Prefixed Operations
# =============================================================================

def _encode_rotation(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    if len(operands) != 1:
        return None
    code = reg8_code(operands[0])
    if code is None:
        return None
    return NoArg(CB_PREFIX | CB_ROTATIONS[mnemonic] | code)


def _encode_bit_operation(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    """
    bit/res/set b, r8. The bit index must be a constant 0-7.
    """
    if len(operands) != 2 or not _is_immediate(operands[0]):
        return None
    code = reg8_code(operands[1])
    if code is None:
        return None

    bit = require_constant(operands[0].expr, resolver)
    if not 0 <= bit <= 7:
        raise NumericConversionError(bit, 3)
    return NoArg(CB_PREFIX | CB_BIT_OPERATIONS[mnemonic] | bit << 3 | code)


# =============================================================================
# Control Flow
# =============================================================================

def _encode_jp(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    if len(operands) == 1:
        target = operands[0]
        if target.is_register("hl") or target.is_indirect_register("hl"):
            return NoArg(0xE9)
        if _is_immediate(target):
            return Arg16(0xC3, to_operand(target.expr, 16, resolver))
        return None

    if len(operands) == 2:
        cc = condition_code(operands[0])
        if cc is not None and _is_immediate(operands[1]):
            return Arg16(0xC2 | cc << 3, to_operand(operands[1].expr, 16, resolver))
    return None


def _encode_call(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    if len(operands) == 1 and _is_immediate(operands[0]):
        return Arg16(0xCD, to_operand(operands[0].expr, 16, resolver))

    if len(operands) == 2:
        cc = condition_code(operands[0])
        if cc is not None and _is_immediate(operands[1]):
            return Arg16(0xC4 | cc << 3, to_operand(operands[1].expr, 16, resolver))
    return None


def _encode_ret(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    if not operands:
        return NoArg(0xC9)
    if len(operands) == 1:
        cc = condition_code(operands[0])
        if cc is not None:
            return NoArg(0xC0 | cc << 3)
    return None


def _encode_jr(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    """
    jr e8 / jr cc, e8. The displacement depends on this instruction's final
    address, so the target is kept as an expression for resolve_jr_offset.
    """
    if len(operands) == 1 and _is_immediate(operands[0]):
        return Jr(0x18, _fold(operands[0].expr, resolver))

    if len(operands) == 2:
        cc = condition_code(operands[0])
        if cc is not None and _is_immediate(operands[1]):
            return Jr(0x20 | cc << 3, _fold(operands[1].expr, resolver))
    return None


def _encode_rst(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    # The vector is validated by check_rst_target during resolution
    if len(operands) == 1 and _is_immediate(operands[0]):
        return Rst(_fold(operands[0].expr, resolver))
    return None


def _encode_stack(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    if len(operands) != 1:
        return None
    code = stack_reg16_code(operands[0])
    if code is None:
        return None
    base = 0xC5 if mnemonic == "push" else 0xC1
    return NoArg(base | code << 4)


# =============================================================================
# Loads
# =============================================================================

def _encode_ld(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    if len(operands) != 2:
        return None
    target, source = operands

    # ld r8, r8 (either side may be [hl])
    target_r8 = reg8_code(target)
    source_r8 = reg8_code(source)
    if target_r8 is not None and source_r8 is not None:
        if target_r8 == 6 and source_r8 == 6:
            raise IllegalEncodingError(
                "ld [hl], [hl] is not a valid instruction",
                hint="its bit pattern ($76) is the halt instruction",
            )
        return NoArg(0x40 | target_r8 << 3 | source_r8)

    if target_r8 is not None and _is_immediate(source):
        return Arg8(0x06 | target_r8 << 3, to_operand(source.expr, 8, resolver))

    target_r16 = reg16_code(target)
    if target_r16 is not None and _is_immediate(source):
        return Arg16(0x01 | target_r16 << 4, to_operand(source.expr, 16, resolver))

    # Stack pointer transfers
    if target.is_register("hl"):
        if source.kind == OperandKind.SP_OFFSET:
            return Arg8(0xF8, to_operand(source.expr, 8, resolver, signed=True))
        if source.is_register("sp"):
            return Arg8(0xF8, Literal(0))
    if target.is_register("sp") and source.is_register("hl"):
        return NoArg(0xF9)

    # Absolute memory
    if target.kind == OperandKind.INDIRECT:
        if source.is_register("sp"):
            return Arg16(0x08, to_operand(target.expr, 16, resolver))
        if source.is_register("a"):
            return Arg16(0xEA, to_operand(target.expr, 16, resolver))
    if target.is_register("a") and source.kind == OperandKind.INDIRECT:
        return Arg16(0xFA, to_operand(source.expr, 16, resolver))

    # $FF00+c
    if target.is_register("a") and source.is_indirect_register("c"):
        return NoArg(0xF2)
    if target.is_indirect_register("c") and source.is_register("a"):
        return NoArg(0xE2)

    # [bc], [de], [hli], [hld]
    if target.is_indirect_register(*INDIRECT_REG16) and source.is_register("a"):
        return NoArg(0x02 | INDIRECT_REG16[target.register] << 4)
    if target.is_register("a") and source.is_indirect_register(*INDIRECT_REG16):
        return NoArg(0x0A | INDIRECT_REG16[source.register] << 4)

    return None


def _encode_auto_index(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    """ldi/ldd: [hl], a uses the base opcode; a, [hl] sets bit 3."""
    if len(operands) != 2:
        return None
    target, source = operands
    base = AUTO_INDEX_LOADS[mnemonic]
    if target.is_indirect_register("hl") and source.is_register("a"):
        return NoArg(base)
    if target.is_register("a") and source.is_indirect_register("hl"):
        return NoArg(base | 8)
    return None


def _encode_ldh(mnemonic: str, operands: Operands, resolver: Resolver) -> Optional[InstructionRecord]:
    if len(operands) != 2:
        return None
    target, source = operands

    if target.is_register("a") and source.is_indirect_register("c"):
        return NoArg(0xF2)
    if target.is_indirect_register("c") and source.is_register("a"):
        return NoArg(0xE2)
    if target.is_register("a") and source.kind == OperandKind.INDIRECT:
        return _encode_high_ram_access(0xF0, source.expr, resolver)
    if target.kind == OperandKind.INDIRECT and source.is_register("a"):
        return _encode_high_ram_access(0xE0, target.expr, resolver)
    return None


def _encode_high_ram_access(opcode: int, address: Expression, resolver: Resolver) -> Arg8:
    """
    Encode ldh [n] with the low byte of the address as operand.

    A known address must lie in $FF00-$FFFF. An address that is not known
    yet carries a RangeConstraint instead.
    """
    result = evaluate(address, resolver)
    if isinstance(result, Invalid):
        raise ExpressionError(result.reason)

    if isinstance(result, Deferred):
        logger.debug(f"Deferring high RAM check on {address}")
        constraint = RangeConstraint(HRAM_START, HRAM_END, "ldh address")
        return Arg8(opcode, FunctionCall("low", (address,)), constraint)

    if not HRAM_START <= result.value <= HRAM_END:
        raise AddressOutOfRangeError(
            f"ldh address ${result.value & 0xFFFFFFFF:X} is not in high RAM",
            value=result.value,
            hint="ldh accesses $FF00-$FFFF; use ld for other addresses",
        )
    return Arg8(opcode, Literal(result.value & 0xFF))


# =============================================================================
# Dispatch Table
# =============================================================================

Family = Callable[[str, Operands, Resolver], Optional[InstructionRecord]]

_FAMILIES: dict[str, Family] = {
    "ld": _encode_ld,
    "ldh": _encode_ldh,
    "jp": _encode_jp,
    "jr": _encode_jr,
    "call": _encode_call,
    "ret": _encode_ret,
    "rst": _encode_rst,
    "push": _encode_stack,
    "pop": _encode_stack,
    "inc": _encode_inc_dec,
    "dec": _encode_inc_dec,
}
_FAMILIES.update({mnemonic: _encode_fixed for mnemonic in FIXED_OPCODES})
_FAMILIES.update({mnemonic: _encode_alu for mnemonic in ALU_OPERATIONS})
_FAMILIES.update({mnemonic: _encode_rotation for mnemonic in CB_ROTATIONS})
_FAMILIES.update({mnemonic: _encode_bit_operation for mnemonic in CB_BIT_OPERATIONS})
_FAMILIES.update({mnemonic: _encode_auto_index for mnemonic in AUTO_INDEX_LOADS})
