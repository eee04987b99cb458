"""
gbasm - Assembler Front End for the Game Boy (SM83)
===================================================

This package provides the front end of an assembler for the Sharp SM83 CPU
used in the Nintendo Game Boy: tokenizing, parsing, instruction encoding,
symbol and section tracking.

Main Components
---------------
- **assembler**: Lexer, parser, encoder and assembler state
- **cli**: The ``gbasm`` command-line driver
- **config**: AssemblerConfig (options and environment variables)
- **errors**: Exception hierarchy and diagnostics collector

Quick Start
-----------
    >>> from gbasm import Assembler
    >>> asm = Assembler()
    >>> statements = asm.assemble_file("game.asm")
    >>> asm.write_symbols("game.sym")

Or use the command-line tool:
    $ gbasm game.asm -s game.sym -l game.lst
"""

__version__ = "0.1.0"

# =============================================================================
# Public API Exports
# =============================================================================

from gbasm.assembler import Assembler
from gbasm.config import AssemblerConfig
from gbasm.errors import (
    GbasmError,
    SourceLocation,
    AssemblerError,
    LexicalError,
    AssemblySyntaxError,
    InvalidOperandsError,
    IllegalEncodingError,
    AddressOutOfRangeError,
    RedefinitionError,
    UndefinedScopeError,
    SectionError,
    ExpressionError,
    NumericConversionError,
    ExpressionNotConstantError,
    AssertionFailure,
    DiagnosticCollector,
    TooManyErrors,
)

__all__ = [
    "__version__",
    "Assembler",
    "AssemblerConfig",
    "GbasmError",
    "SourceLocation",
    "AssemblerError",
    "LexicalError",
    "AssemblySyntaxError",
    "InvalidOperandsError",
    "IllegalEncodingError",
    "AddressOutOfRangeError",
    "RedefinitionError",
    "UndefinedScopeError",
    "SectionError",
    "ExpressionError",
    "NumericConversionError",
    "ExpressionNotConstantError",
    "AssertionFailure",
    "DiagnosticCollector",
    "TooManyErrors",
]
