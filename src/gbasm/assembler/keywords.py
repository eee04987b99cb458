"""
Reserved Spellings
==================

Every word the lexer turns into a KEYWORD token instead of an identifier.
Keywords are matched case-insensitively; the token value is always the
lowercase spelling. Identifiers that are not in this table stay
case-sensitive.

The words are grouped by role so that the parser and encoder can ask
"is this a mnemonic?" or "is this a function name?" without repeating
the lists.
"""

# =============================================================================
# Instruction Mnemonics
# =============================================================================

MNEMONICS = frozenset({
    "adc", "add", "and", "bit", "call", "ccf", "cp", "cpl", "daa", "dec",
    "di", "ei", "halt", "inc", "jp", "jr", "ld", "ldi", "ldd", "ldh",
    "nop", "or", "pop", "push", "res", "ret", "reti", "rst",
    "rl", "rla", "rlc", "rlca", "rr", "rra", "rrc", "rrca",
    "sbc", "scf", "set", "sla", "sra", "srl", "stop", "sub", "swap", "xor",
})

# =============================================================================
# Registers and Conditions
# =============================================================================

REGISTERS_8 = frozenset({"a", "b", "c", "d", "e", "h", "l"})

REGISTERS_16 = frozenset({"af", "bc", "de", "hl", "sp"})

# hl with post-increment / post-decrement, only valid inside brackets
REGISTERS_HL_AUTO = frozenset({"hli", "hld"})

# "c" is both a register and the carry condition; it lives in REGISTERS_8
CONDITIONS = frozenset({"nz", "z", "nc"})

REGISTERS = REGISTERS_8 | REGISTERS_16 | REGISTERS_HL_AUTO

# =============================================================================
# Directives
# =============================================================================

# Directives that may only follow a label on the same line
LABEL_DIRECTIVES = frozenset({
    "equ", "set", "equs", "rb", "rw", "rl", "macro",
})

DIRECTIVES = frozenset({
    # Sections
    "section", "load", "endl", "pushs", "pops",
    # Option and charmap stacks
    "pushc", "popc", "pusho", "popo", "opt",
    "charmap", "newcharmap", "setcharmap",
    # Assertions
    "assert", "static_assert",
    # Files
    "include", "incbin",
    # Output
    "print", "println", "printt", "printv", "printi", "printf",
    "warn", "fail", "fatal",
    # Symbols
    "export", "global", "purge",
    "equ", "equs", "rb", "rw", "rl",
    "rsreset", "rsset",
    # Macros and repetition
    "macro", "endm", "shift", "rept", "endr",
    # Conditional assembly
    "if", "elif", "else", "endc",
    # Data
    "db", "dw", "dl", "ds",
})

CONDITIONAL_DIRECTIVES = frozenset({"if", "elif", "else", "endc"})

DATA_DIRECTIVES = frozenset({"db", "dw", "dl", "ds"})

# Assert severities; "warn", "fail" and "fatal" double as directives
ASSERT_SEVERITIES = frozenset({"warn", "fail", "fatal"})

# =============================================================================
# Section Types and Attributes
# =============================================================================

SECTION_TYPES = frozenset({
    "rom0", "romx", "vram", "sram", "wram0", "wramx", "oam", "hram",
})

SECTION_ATTRIBUTES = frozenset({"bank", "align"})

# =============================================================================
# Built-in Functions
# =============================================================================

FUNCTIONS = frozenset({
    # Byte selection and linker queries
    "high", "low", "bank", "isconst", "def",
    # 16.16 fixed point
    "round", "ceil", "floor", "div", "mul",
    "sin", "cos", "tan", "asin", "acos", "atan", "atan2",
    # Strings
    "strcmp", "strin", "strsub", "strlen", "strcat", "strupr", "strlwr",
})

# Arity of each function as (minimum, maximum)
FUNCTION_ARITY = {
    "high": (1, 1),
    "low": (1, 1),
    "bank": (1, 1),
    "isconst": (1, 1),
    "def": (1, 1),
    "round": (1, 1),
    "ceil": (1, 1),
    "floor": (1, 1),
    "div": (2, 2),
    "mul": (2, 2),
    "sin": (1, 1),
    "cos": (1, 1),
    "tan": (1, 1),
    "asin": (1, 1),
    "acos": (1, 1),
    "atan": (1, 1),
    "atan2": (2, 2),
    "strcmp": (2, 2),
    "strin": (2, 2),
    "strsub": (3, 3),
    "strlen": (1, 1),
    "strcat": (1, 255),
    "strupr": (1, 1),
    "strlwr": (1, 1),
}

# =============================================================================
# Full Keyword Set
# =============================================================================

KEYWORDS = (
    MNEMONICS
    | REGISTERS
    | CONDITIONS
    | DIRECTIVES
    | ASSERT_SEVERITIES
    | SECTION_TYPES
    | SECTION_ATTRIBUTES
    | FUNCTIONS
)


def is_keyword(word: str) -> bool:
    """Check whether a word is reserved (case-insensitive)."""
    return word.lower() in KEYWORDS

