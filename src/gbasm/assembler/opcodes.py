"""
SM83 Instruction Set Definition
===============================

This module defines the operand shapes the parser produces and the tables
the encoder packs into opcodes. The SM83 is the Game Boy's CPU: a Z80/8080
cousin with its own opcode map, no IX/IY, and a high-RAM page at $FF00.

Opcodes are built from a base value OR-ed with shifted register, condition
or operation fields, so most of the instruction set fits in a handful of
small tables.

Operand Shapes
--------------

| Kind              | Example              |
|-------------------|----------------------|
| REGISTER          | a, hl, sp            |
| CONDITION         | nz, z, nc            |
| INDIRECT_REGISTER | [hl], [bc], [hl+], [c] |
| INDIRECT          | [$C000], [Label]     |
| IMMEDIATE         | 42, Label + 1        |
| SP_OFFSET         | sp + 4, sp - 2       |

The carry condition ``c`` is spelled like register ``c``; the parser always
produces REGISTER c and the encoder reads it as a condition where one is
expected.

Register Field Codes
--------------------
- r8:   b=0 c=1 d=2 e=3 h=4 l=5 [hl]=6 a=7
- r16:  bc=0 de=1 hl=2 sp=3
- stk:  bc=0 de=1 hl=2 af=3 (push/pop)
- cc:   nz=0 z=1 nc=2 c=3

Reference
---------
- Pan Docs, CPU Instruction Set: https://gbdev.io/pandocs/CPU_Instruction_Set.html
- RGBDS gbz80(7): https://rgbds.gbdev.io/docs/gbz80.7
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from gbasm.assembler.expressions import Expression


# =============================================================================
# Operand Shapes
# =============================================================================

class OperandKind(Enum):
    """
    Syntactic operand classes produced by the parser.
    """
    REGISTER = auto()           # a, b, ..., af, bc, de, hl, sp
    CONDITION = auto()          # nz, z, nc (c is a REGISTER)
    INDIRECT_REGISTER = auto()  # [hl], [bc], [de], [hli], [hld], [c]
    INDIRECT = auto()           # [expr]
    IMMEDIATE = auto()          # expr
    SP_OFFSET = auto()          # sp + expr, sp - expr

    def __str__(self) -> str:
        return {
            OperandKind.REGISTER: "register",
            OperandKind.CONDITION: "condition",
            OperandKind.INDIRECT_REGISTER: "indirect register",
            OperandKind.INDIRECT: "memory address",
            OperandKind.IMMEDIATE: "immediate",
            OperandKind.SP_OFFSET: "sp offset",
        }[self]


@dataclass(frozen=True)
class Operand:
    """
    One parsed operand.

    Attributes:
        kind: The operand shape
        register: Register or condition name (lowercase) for REGISTER,
                  CONDITION and INDIRECT_REGISTER; "hli"/"hld" for [hl+]/[hl-]
        expr: Value for INDIRECT, IMMEDIATE and SP_OFFSET. For ``sp - e``
              it is already negated
    """
    kind: OperandKind
    register: Optional[str] = None
    expr: Optional[Expression] = None

    def __str__(self) -> str:
        if self.kind in (OperandKind.REGISTER, OperandKind.CONDITION):
            return self.register
        if self.kind == OperandKind.INDIRECT_REGISTER:
            return f"[{self.register}]"
        if self.kind == OperandKind.INDIRECT:
            return f"[{self.expr}]"
        if self.kind == OperandKind.SP_OFFSET:
            return f"sp + {self.expr}"
        return str(self.expr)

    def is_register(self, *names: str) -> bool:
        if self.kind != OperandKind.REGISTER:
            return False
        return not names or self.register in names

    def is_indirect_register(self, *names: str) -> bool:
        if self.kind != OperandKind.INDIRECT_REGISTER:
            return False
        return not names or self.register in names


def register(name: str) -> Operand:
    return Operand(OperandKind.REGISTER, register=name)


def condition(name: str) -> Operand:
    return Operand(OperandKind.CONDITION, register=name)


def indirect_register(name: str) -> Operand:
    return Operand(OperandKind.INDIRECT_REGISTER, register=name)


def indirect(expr: Expression) -> Operand:
    return Operand(OperandKind.INDIRECT, expr=expr)


def immediate(expr: Expression) -> Operand:
    return Operand(OperandKind.IMMEDIATE, expr=expr)


def sp_offset(expr: Expression) -> Operand:
    return Operand(OperandKind.SP_OFFSET, expr=expr)


# =============================================================================
# Register and Condition Tables
# =============================================================================

REG8 = {"b": 0, "c": 1, "d": 2, "e": 3, "h": 4, "l": 5, "[hl]": 6, "a": 7}

REG16 = {"bc": 0, "de": 1, "hl": 2, "sp": 3}

STACK_REG16 = {"bc": 0, "de": 1, "hl": 2, "af": 3}

CONDITIONS = {"nz": 0, "z": 1, "nc": 2, "c": 3}

# [r] for ld a,[r] / ld [r],a; hli and hld share the hl slot of r16
INDIRECT_REG16 = {"bc": 0, "de": 1, "hli": 2, "hld": 3}

# Alternative spellings normalised by the parser
INDIRECT_ALIASES = {"hl+": "hli", "hl-": "hld"}


def reg8_code(operand: Operand) -> Optional[int]:
    """
    Field code of an 8-bit register operand, including [hl] (6).

    Returns:
        The code, or None if the operand is not an r8
    """
    if operand.kind == OperandKind.REGISTER:
        return REG8.get(operand.register)
    if operand.is_indirect_register("hl"):
        return REG8["[hl]"]
    return None


def reg16_code(operand: Operand) -> Optional[int]:
    if operand.kind == OperandKind.REGISTER:
        return REG16.get(operand.register)
    return None


def stack_reg16_code(operand: Operand) -> Optional[int]:
    if operand.kind == OperandKind.REGISTER:
        return STACK_REG16.get(operand.register)
    return None


def condition_code(operand: Operand) -> Optional[int]:
    """Field code of a condition; register c counts as the carry condition."""
    if operand.kind == OperandKind.CONDITION:
        return CONDITIONS.get(operand.register)
    if operand.is_register("c"):
        return CONDITIONS["c"]
    return None


# =============================================================================
# Opcode Tables
# =============================================================================

# ALU operations, in opcode field order: 0x80|op<<3|r, 0xC6|op<<3
ALU_OPERATIONS = {
    "add": 0, "adc": 1, "sub": 2, "sbc": 3,
    "and": 4, "xor": 5, "or": 6, "cp": 7,
}

# CB-prefixed rotate/shift group: 0xCB, base|r
CB_ROTATIONS = {
    "rlc": 0x00, "rrc": 0x08, "rl": 0x10, "rr": 0x18,
    "sla": 0x20, "sra": 0x28, "swap": 0x30, "srl": 0x38,
}

# CB-prefixed bit group: 0xCB, base|b<<3|r
CB_BIT_OPERATIONS = {"bit": 0x40, "res": 0x80, "set": 0xC0}

CB_PREFIX = 0xCB00

# Instructions with no operand
FIXED_OPCODES = {
    "nop": 0x00,
    "halt": 0x76,
    "ccf": 0x3F,
    "cpl": 0x2F,
    "daa": 0x27,
    "di": 0xF3,
    "ei": 0xFB,
    "reti": 0xD9,
    "rla": 0x17,
    "rlca": 0x07,
    "rra": 0x1F,
    "rrca": 0x0F,
    "scf": 0x37,
    "stop": 0x1000,  # stop is followed by a padding byte
}

# Load bases for ldi / ldd ([hl],a uses base; a,[hl] uses base|8)
AUTO_INDEX_LOADS = {"ldi": 0x22, "ldd": 0x32}

# rst targets must be one of these
RST_VECTORS = frozenset(range(0x00, 0x40, 0x08))

HRAM_START = 0xFF00
HRAM_END = 0xFFFF


# =============================================================================
# Accepted Forms (for error hints)
# =============================================================================

VALID_FORMS = {
    "add": ["add a, r8", "add a, n8", "add hl, r16", "add sp, e8"],
    "adc": ["adc a, r8", "adc a, n8"],
    "sub": ["sub a, r8", "sub a, n8"],
    "sbc": ["sbc a, r8", "sbc a, n8"],
    "and": ["and a, r8", "and a, n8"],
    "xor": ["xor a, r8", "xor a, n8"],
    "or": ["or a, r8", "or a, n8"],
    "cp": ["cp a, r8", "cp a, n8"],
    "inc": ["inc r8", "inc r16"],
    "dec": ["dec r8", "dec r16"],
    "bit": ["bit u3, r8"],
    "res": ["res u3, r8"],
    "set": ["set u3, r8"],
    "jp": ["jp n16", "jp cc, n16", "jp hl"],
    "jr": ["jr e8", "jr cc, e8"],
    "call": ["call n16", "call cc, n16"],
    "ret": ["ret", "ret cc"],
    "rst": ["rst vec"],
    "push": ["push r16stk"],
    "pop": ["pop r16stk"],
    "ld": [
        "ld r8, r8", "ld r8, n8", "ld r16, n16",
        "ld [r16], a", "ld a, [r16]", "ld [n16], a", "ld a, [n16]",
        "ld [c], a", "ld a, [c]", "ld [n16], sp", "ld hl, sp + e8", "ld sp, hl",
    ],
    "ldi": ["ldi [hl], a", "ldi a, [hl]"],
    "ldd": ["ldd [hl], a", "ldd a, [hl]"],
    "ldh": ["ldh [n16], a", "ldh a, [n16]", "ldh [c], a", "ldh a, [c]"],
}

for _mnemonic in CB_ROTATIONS:
    VALID_FORMS[_mnemonic] = [f"{_mnemonic} r8"]
for _mnemonic in FIXED_OPCODES:
    VALID_FORMS[_mnemonic] = [_mnemonic]


# =============================================================================
# Lookup Functions
# =============================================================================

def get_valid_forms(mnemonic: str) -> list[str]:
    """
    Get the accepted operand forms of a mnemonic, for error hints.

    Args:
        mnemonic: The instruction mnemonic

    Returns:
        List of forms such as "ld r8, n8"; empty for unknown mnemonics
    """
    return VALID_FORMS.get(mnemonic.lower(), [])


def opcode_size(opcode: int) -> int:
    """Number of opcode bytes: two for CB-prefixed opcodes and stop."""
    return 2 if opcode > 0xFF else 1
