"""
SM83 Assembler Front End for the Game Boy
=========================================

This package turns Game Boy assembly source into a list of encoded
statements and a symbol table, ready for macro expansion, conditional
assembly and linking by later stages.

Main Components
---------------
- **Assembler**: Facade that runs one unit and evaluates assertions
- **Lexer**: Mode-switching tokenizer (normal tokens and raw text)
- **Parser**: Line grammar; runs each line against the AssemblerState
- **encode**: Pure instruction encoder, one function per addressing family
- **AssemblerState**: Symbols, scope, storage cursor and sections

Assembly Process
----------------
1. **Parsing (Lexer + Parser)**:
   - Tokenize one line at a time, switching to raw mode for macro
     arguments and macro/rept bodies
   - Define labels and constants, track the program counter per section
   - Encode every instruction as soon as its operands are parsed

2. **Resolution (Assembler)**:
   - Re-check assertions that referenced symbols defined later
   - Validate jr displacements, rst vectors and ldh addresses once the
     values are known

Example Usage
-------------
>>> from gbasm.assembler import Assembler
>>> asm = Assembler()
>>> statements = asm.assemble('''
... section "Main", rom0
... Start:
...     ld a, [hl+]
...     jr Start
... ''')
>>> print(asm.get_listing())
"""

from gbasm.assembler.assembler import Assembler, assemble, assemble_file
from gbasm.assembler.lexer import Lexer, LexerMode, LexerModeController, Token, TokenStream, TokenType
from gbasm.assembler.parser import (
    Parser,
    Statement,
    LabelDef,
    InstructionStatement,
    SymbolDef,
    SectionDef,
    DataStatement,
    AssertStatement,
    MacroDefinition,
    MacroInvocation,
    RepeatBlock,
    ConditionalMarker,
    Directive,
    parse_source,
)
from gbasm.assembler.encoder import encode
from gbasm.assembler.expressions import (
    Deferred,
    ExpressionParser,
    Invalid,
    Known,
    evaluate,
    parse_expression,
)
from gbasm.assembler.sections import SectionDescriptor, SectionType, make_section
from gbasm.assembler.symbols import AssemblerState, Symbol, SymbolKind

__all__ = [
    # Main class and functions
    "Assembler",
    "assemble",
    "assemble_file",
    # Lexer
    "Lexer",
    "LexerMode",
    "LexerModeController",
    "Token",
    "TokenStream",
    "TokenType",
    # Parser
    "Parser",
    "Statement",
    "LabelDef",
    "InstructionStatement",
    "SymbolDef",
    "SectionDef",
    "DataStatement",
    "AssertStatement",
    "MacroDefinition",
    "MacroInvocation",
    "RepeatBlock",
    "ConditionalMarker",
    "Directive",
    "parse_source",
    # Encoder
    "encode",
    # Expressions
    "ExpressionParser",
    "parse_expression",
    "evaluate",
    "Known",
    "Deferred",
    "Invalid",
    # Sections and symbols
    "SectionDescriptor",
    "SectionType",
    "make_section",
    "AssemblerState",
    "Symbol",
    "SymbolKind",
]
