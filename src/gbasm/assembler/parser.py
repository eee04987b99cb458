"""
SM83 Assembly Language Parser
=============================

This module implements the parser for Game Boy assembly language. It pulls
tokens from a mode-switching lexer one line at a time, runs the semantic
action of each line against the AssemblerState (defining symbols, moving
the program counter, switching sections) and produces a list of statements.

Statement Types
---------------

1. **LabelDef**: Label definition
   ```asm
   Main:           ; Global label
   Entry::         ; Exported global label
   .loop:          ; Local label (Main.loop)
   ```

2. **InstructionStatement**: Machine instruction, already encoded
   ```asm
   ld a, [hl+]
   jr nz, .loop
   ```

3. **SymbolDef**: Constant and storage definitions
   ```asm
   SIZE  equ 16
   count set count + 1
   name  equs "Game"
   wX    rb 1
   ```

4. **SectionDef**: ``section`` and ``load`` blocks

5. **DataStatement**: ``db``, ``dw``, ``dl``, ``ds``

6. **AssertStatement**: ``assert`` and ``static_assert``

7. **MacroDefinition**, **MacroInvocation**, **RepeatBlock**,
   **ConditionalMarker**: handed to the macro, repeat and conditional
   collaborators unexpanded

8. **Directive**: everything else (print, include, opt, charmap, ...)

Lexer Mode Handshake
--------------------
Macro arguments, ``opt`` arguments and macro/rept bodies are raw text. The
parser consumes the directive or macro name, then asks the lexer for RAW
mode; it never looks past that name first, so no token after it has been
lexed in the wrong mode. When the raw part ends, it asks for NORMAL mode
again.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Union
import logging

from gbasm.errors import AssemblerError, AssemblySyntaxError, ExpressionError, SourceLocation
from gbasm.assembler.encoder import encode
from gbasm.assembler.expressions import (
    Deferred,
    Expression,
    ExpressionParser,
    Invalid,
    Literal,
    StringLiteral,
    UnaryOp,
    evaluate,
    evaluate_string,
    require_constant,
    to_operand,
)
from gbasm.assembler.instructions import InstructionRecord
from gbasm.assembler.keywords import (
    ASSERT_SEVERITIES,
    CONDITIONAL_DIRECTIVES,
    CONDITIONS,
    DATA_DIRECTIVES,
    DIRECTIVES,
    LABEL_DIRECTIVES,
    MNEMONICS,
    REGISTERS_8,
    REGISTERS_16,
    SECTION_ATTRIBUTES,
    SECTION_TYPES,
)
from gbasm.assembler.lexer import (
    Lexer,
    LexerMode,
    LexerModeController,
    Token,
    TokenStream,
    TokenType,
)
from gbasm.assembler.opcodes import (
    INDIRECT_ALIASES,
    Operand,
    condition,
    immediate,
    indirect,
    indirect_register,
    register,
    sp_offset,
)
from gbasm.assembler.sections import SectionDescriptor, SectionType, make_section
from gbasm.assembler.symbols import AssemblerState, SymbolKind

logger = logging.getLogger(__name__)


# =============================================================================
# Statement Data Classes
# =============================================================================

@dataclass
class Statement:
    """
    Base class for all parsed statements.

    Every statement has a source location for error reporting.
    """
    location: SourceLocation


@dataclass
class LabelDef(Statement):
    """
    Label definition statement.

    Attributes:
        name: Qualified label name (``Main.loop`` for ``.loop``)
        exported: True for ``Name::``
        value: Section offset the label was bound to
        section: Name of the section the label belongs to
    """
    name: str
    exported: bool = False
    value: int = 0
    section: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return "." in self.name


@dataclass
class InstructionStatement(Statement):
    """
    Machine instruction statement.

    Attributes:
        mnemonic: The instruction mnemonic (lowercase)
        operands: Parsed operands in source order
        record: The encoded instruction
        offset: Offset of the first opcode byte in the section it runs from
        section: Name of that section (the load section inside a load block)
    """
    mnemonic: str
    operands: list[Operand]
    record: InstructionRecord
    offset: int = 0
    section: Optional[str] = None


@dataclass
class SymbolDef(Statement):
    """
    EQU / SET / EQUS / RB / RW / RL definition.

    Attributes:
        name: Qualified symbol name
        kind: EQU, SET or EQUS
        value: int, or str for EQUS
        directive: Spelling used (``equ``, ``set``, ``=``, ``rb``...)
    """
    name: str
    kind: SymbolKind
    value: int | str
    directive: str


@dataclass
class SectionDef(Statement):
    descriptor: SectionDescriptor

    @property
    def load(self) -> bool:
        return self.descriptor.load


@dataclass
class DataStatement(Statement):
    """
    Data definition or reservation.

    Attributes:
        directive: db, dw, dl or ds
        values: Values to emit (folded to Literal when known); for ds, the
                fill values
        size: Number of bytes the statement occupies
    """
    directive: str
    values: list[Expression] = field(default_factory=list)
    size: int = 0


@dataclass
class AssertStatement(Statement):
    """
    Assertion checked now if possible, otherwise by a later pass.

    Attributes:
        severity: "warn", "fail" (default) or "fatal"
        expression: The condition
        message: Optional message shown on failure
        static: True for static_assert, which must be decidable now
    """
    severity: str
    expression: Expression
    message: Optional[str] = None
    static: bool = False


@dataclass
class MacroDefinition(Statement):
    name: str
    body: str


@dataclass
class MacroInvocation(Statement):
    """
    Macro call with its raw, unexpanded arguments.

    Attributes:
        name: Macro name (case-sensitive)
        args: Argument texts, trimmed but otherwise verbatim
    """
    name: str
    args: list[str] = field(default_factory=list)


@dataclass
class RepeatBlock(Statement):
    count: Expression
    body: str


@dataclass
class ConditionalMarker(Statement):
    """
    Conditional assembly marker (if, elif, else, endc).

    Attributes:
        kind: The directive
        condition: Condition expression for if and elif
    """
    kind: str
    condition: Optional[Expression] = None


@dataclass
class Directive(Statement):
    """
    Any other directive, forwarded as-is.

    Attributes:
        name: Directive name (lowercase)
        arguments: Expressions, qualified names or raw strings (opt)
    """
    name: str
    arguments: list[Union[Expression, str]] = field(default_factory=list)


StatementCallback = Callable[[Statement], None]


# =============================================================================
# Directive Groups
# =============================================================================

PRINT_DIRECTIVES = frozenset({"print", "println", "printt", "printv", "printi", "printf"})

STACK_DIRECTIVES = frozenset({"pushc", "popc", "pusho", "popo"})

SYMBOL_LIST_DIRECTIVES = frozenset({"export", "global", "purge"})

FORWARDED_DIRECTIVES = frozenset({"shift", "charmap", "newcharmap", "setcharmap", "include", "incbin"})

DATA_WIDTHS = {"db": 1, "dw": 2, "dl": 4}

STORAGE_WIDTHS = {"rb": 1, "rw": 2, "rl": 4}


# =============================================================================
# Parser Implementation
# =============================================================================

class Parser:
    """
    Parses SM83 assembly source into statements.

    The parser owns the lexer mode controller and the token stream; it is
    the only component that requests mode switches.

    Usage:
        parser = Parser(source, "game.asm")
        statements = parser.parse()
        symbols = parser.state.symbols

    Args:
        source: Assembly source text
        filename: Source filename for error reporting
        state: Assembler state to define symbols in (a fresh one by default)
        on_statement: Called with each statement as soon as it is parsed,
                      while the state still reflects that point of the source
    """

    def __init__(
        self,
        source: str,
        filename: str = "<input>",
        state: Optional[AssemblerState] = None,
        on_statement: Optional[StatementCallback] = None,
    ):
        self.filename = filename
        self.state = state if state is not None else AssemblerState()
        self.on_statement = on_statement

        self.controller = LexerModeController()
        self.lexer = Lexer(source, filename, self.controller)
        self.tokens = TokenStream(self.lexer)
        self._expressions = ExpressionParser(self.tokens, qualify=self.state.qualify)

    def parse(self) -> list[Statement]:
        """
        Parse the whole source.

        Returns:
            Statements in source order

        Raises:
            AssemblerError: At the first error; there is no recovery
        """
        statements: list[Statement] = []

        while not self._check(TokenType.EOF):
            line_token = self._peek()
            try:
                line_statements = self._parse_line()
            except AssemblerError as err:
                raise err.at(line_token.location, self._source_line(line_token)) from None

            for statement in line_statements:
                statements.append(statement)
                if self.on_statement is not None:
                    self.on_statement(statement)

        logger.debug(f"Parsed {len(statements)} statements from {self.filename}")
        return statements

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _peek(self, offset: int = 0) -> Token:
        return self.tokens.peek(offset)

    def _advance(self) -> Token:
        return self.tokens.advance()

    def _check(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _match(self, *types: TokenType) -> Optional[Token]:
        if self._check(*types):
            return self._advance()
        return None

    def _expect(self, token_type: TokenType, message: str) -> Token:
        if not self._check(token_type):
            raise self._error(message)
        return self._advance()

    def _at_line_end(self) -> bool:
        return self._check(TokenType.NEWLINE, TokenType.EOF)

    def _end_of_line(self) -> None:
        """Consume the line terminator, or fail on leftover tokens."""
        if self._match(TokenType.NEWLINE) or self._check(TokenType.EOF):
            return
        raise self._error("expected end of line")

    def _error(self, message: str, token: Optional[Token] = None) -> AssemblySyntaxError:
        token = token or self._peek()
        if token.type == TokenType.KEYWORD:
            found = f"'{token.value}'"
        elif token.value is not None:
            found = repr(token.value)
        else:
            found = token.type.name
        return AssemblySyntaxError(f"{message}, got {found}", token.location,
                                   source_line=self._source_line(token))

    def _source_line(self, token: Token) -> Optional[str]:
        return self.lexer.source_line(token.line)

    def _expression(self) -> Expression:
        return self._expressions.parse()

    def _constant(self) -> int:
        """Parse an expression that must be known now."""
        token = self._peek()
        expr = self._expression()
        try:
            return require_constant(expr, self.state)
        except AssemblerError as err:
            raise err.at(token.location, self._source_line(token)) from None

    def _string(self) -> str:
        token = self._peek()
        expr = self._expression()
        try:
            return evaluate_string(expr, self.state)
        except AssemblerError as err:
            raise err.at(token.location, self._source_line(token)) from None

    # =========================================================================
    # Line Parsing
    # =========================================================================

    def _parse_line(self) -> list[Statement]:
        """
        Parse one logical line.

        Returns zero or more statements (a label and what follows it).
        """
        token = self._peek()

        if self._match(TokenType.NEWLINE):
            return []

        if token.is_keyword(*CONDITIONAL_DIRECTIVES):
            return [self._parse_conditional()]

        statements: list[Statement] = []

        if token.type in (TokenType.LABEL, TokenType.LOCAL_LABEL):
            name_token = self._advance()
            colon = self._match(TokenType.COLON, TokenType.DOUBLE_COLON)
            if colon is None or self._peek().is_keyword("macro"):
                return [self._parse_label_directive(name_token)]
            statements.append(self._define_label(name_token, colon.type == TokenType.DOUBLE_COLON))

        token = self._peek()
        if self._at_line_end():
            self._end_of_line()
            return statements

        if token.type == TokenType.IDENTIFIER:
            # Consumes its own line terminator in raw mode
            statements.append(self._parse_macro_invocation())
            return statements

        if token.type == TokenType.KEYWORD and token.value in MNEMONICS:
            statements.append(self._parse_instruction())
        elif token.type == TokenType.KEYWORD and token.value in DIRECTIVES:
            statement = self._parse_directive()
            statements.append(statement)
            if isinstance(statement, Directive) and statement.name == "opt":
                return statements
        else:
            raise self._error("expected instruction, directive or macro")

        self._end_of_line()
        return statements

    # =========================================================================
    # Labels and Symbol Definitions
    # =========================================================================

    def _define_label(self, name_token: Token, exported: bool) -> LabelDef:
        try:
            symbol = self.state.define_label(name_token.value, exported, name_token.location)
        except AssemblerError as err:
            raise err.at(name_token.location, self._source_line(name_token)) from None
        return LabelDef(
            location=name_token.location,
            name=symbol.name,
            exported=symbol.exported,
            value=symbol.value,
            section=symbol.section,
        )

    def _parse_label_directive(self, name_token: Token) -> Statement:
        """
        Parse ``NAME equ/set/=/equs/rb/rw/rl ...`` and ``NAME[:] macro``.
        """
        directive_token = self._peek()
        location = name_token.location

        if directive_token.is_keyword("macro"):
            return self._parse_macro_definition(name_token)

        if directive_token.type == TokenType.EQUALS:
            directive = "="
        elif directive_token.type == TokenType.KEYWORD and directive_token.value in LABEL_DIRECTIVES:
            directive = directive_token.value
        else:
            raise self._error(f"expected ':' or a definition after '{name_token.value}'")
        self._advance()

        try:
            if directive in ("equ", "set", "="):
                value = self._constant()
                if directive == "equ":
                    symbol = self.state.define_constant(name_token.value, value, location=location)
                else:
                    symbol = self.state.define_mutable(name_token.value, value, location=location)
            elif directive == "equs":
                symbol = self.state.define_string_constant(name_token.value, self._string(),
                                                           location=location)
            else:
                count = 1 if self._at_line_end() else self._constant()
                offset = self.state.advance_storage(count * STORAGE_WIDTHS[directive])
                symbol = self.state.define_constant(name_token.value, offset, location=location)
        except AssemblerError as err:
            raise err.at(location, self._source_line(name_token)) from None

        self._end_of_line()
        return SymbolDef(location, symbol.name, symbol.kind, symbol.value, directive)

    # =========================================================================
    # Raw Text: Macros, Repetition, Options
    # =========================================================================

    def _parse_macro_definition(self, name_token: Token) -> MacroDefinition:
        """Parse ``NAME: macro`` followed by a raw body up to ``endm``."""
        self._advance()  # consume 'macro'
        self.controller.request_mode_switch(LexerMode.RAW, closing="endm", opening="macro")
        body = self._advance()
        self.controller.request_mode_switch(LexerMode.NORMAL)
        self._end_of_line()

        logger.debug(f"Macro {name_token.value} defined ({body.value.count(chr(10))} lines)")
        return MacroDefinition(name_token.location, name_token.value, body.value)

    def _parse_macro_invocation(self) -> MacroInvocation:
        """
        Parse a macro call: the name, then comma-separated raw arguments.
        """
        name_token = self._advance()
        args = self._parse_raw_arguments()
        return MacroInvocation(name_token.location, name_token.value, args)

    def _parse_raw_arguments(self) -> list[str]:
        """
        Switch to RAW mode right after the consumed name and read arguments
        up to and including the line terminator, then switch back.
        """
        self.controller.request_mode_switch(LexerMode.RAW)

        args: list[str] = []
        expecting_argument = True
        while True:
            token = self._peek()
            if token.type == TokenType.RAW_STRING:
                self._advance()
                args.append(token.value)
                expecting_argument = False
            elif token.type == TokenType.COMMA:
                self._advance()
                if expecting_argument:
                    args.append("")
                expecting_argument = True
            elif token.type in (TokenType.NEWLINE, TokenType.EOF):
                if expecting_argument and args:
                    args.append("")
                self._advance()
                self.controller.request_mode_switch(LexerMode.NORMAL)
                return args
            else:
                raise self._error("unexpected token in raw arguments")

    def _parse_repeat(self) -> RepeatBlock:
        rept_token = self._advance()
        count = self._expression()
        if not self._match(TokenType.NEWLINE):
            if self._check(TokenType.EOF):
                raise AssemblySyntaxError("unterminated rept block, expected 'endr'",
                                          rept_token.location)
            raise self._error("expected end of line after rept count")

        self.controller.request_mode_switch(LexerMode.RAW, closing="endr", opening="rept")
        body = self._advance()
        self.controller.request_mode_switch(LexerMode.NORMAL)
        return RepeatBlock(rept_token.location, count, body.value)

    # =========================================================================
    # Conditionals
    # =========================================================================

    def _parse_conditional(self) -> ConditionalMarker:
        token = self._advance()
        condition_expr = None
        if token.value in ("if", "elif"):
            condition_expr = self._expression()
        self._end_of_line()
        return ConditionalMarker(token.location, token.value, condition_expr)

    # =========================================================================
    # Instructions
    # =========================================================================

    def _parse_instruction(self) -> InstructionStatement:
        mnemonic_token = self._advance()
        mnemonic = mnemonic_token.value

        operands: list[Operand] = []
        if not self._at_line_end():
            operands.append(self._parse_operand())
            while self._match(TokenType.COMMA):
                operands.append(self._parse_operand())

        try:
            record = encode(mnemonic, operands, self.state)
        except AssemblerError as err:
            raise err.at(mnemonic_token.location, self._source_line(mnemonic_token)) from None

        if self.state.load is not None:
            offset, section = self.state.load_pc, self.state.load.name
        else:
            offset = self.state.pc
            section = self.state.section.name if self.state.section else None
        self.state.advance_pc(record.size)
        return InstructionStatement(mnemonic_token.location, mnemonic, operands, record,
                                    offset, section)

    def _parse_operand(self) -> Operand:
        """
        Parse one operand: register, condition, [indirect] or expression.
        """
        token = self._peek()

        if token.type == TokenType.KEYWORD:
            if token.value in REGISTERS_8 or token.value in REGISTERS_16:
                self._advance()
                if token.value == "sp" and self._check(TokenType.PLUS, TokenType.MINUS):
                    sign = self._advance()
                    offset = self._expression()
                    if sign.type == TokenType.MINUS:
                        offset = UnaryOp("-", offset)
                    return sp_offset(offset)
                return register(token.value)
            if token.value in CONDITIONS:
                self._advance()
                return condition(token.value)

        if token.type == TokenType.LBRACKET:
            return self._parse_indirect()

        return immediate(self._expression())

    def _parse_indirect(self) -> Operand:
        self._advance()  # consume [
        token = self._peek()

        if token.type == TokenType.KEYWORD and token.value in ("hl", "bc", "de", "hli", "hld", "c"):
            self._advance()
            name = token.value
            if name == "hl" and self._check(TokenType.PLUS, TokenType.MINUS):
                name = INDIRECT_ALIASES["hl+" if self._advance().type == TokenType.PLUS else "hl-"]
            self._expect(TokenType.RBRACKET, "expected ']'")
            return indirect_register(name)

        # [$ff00 + c]
        if (token.type == TokenType.NUMBER and token.value == 0xFF00
                and self._peek(1).type == TokenType.PLUS
                and self._peek(2).is_keyword("c")
                and self._peek(3).type == TokenType.RBRACKET):
            for _ in range(4):
                self._advance()
            return indirect_register("c")

        address = self._expression()
        self._expect(TokenType.RBRACKET, "expected ']'")
        return indirect(address)

    # =========================================================================
    # Directives
    # =========================================================================

    def _parse_directive(self) -> Statement:
        token = self._peek()
        name = token.value

        if name in ("section", "load"):
            return self._parse_section(load=(name == "load"))
        if name in DATA_DIRECTIVES:
            return self._parse_data()
        if name in ("assert", "static_assert"):
            return self._parse_assert()
        if name == "rept":
            return self._parse_repeat()
        if name == "opt":
            self._advance()
            return Directive(token.location, name, self._parse_raw_arguments())

        if name in LABEL_DIRECTIVES:
            raise self._error(f"'{name}' must follow a symbol name")
        if name in CONDITIONAL_DIRECTIVES:
            raise self._error(f"'{name}' must start a line")
        if name in ("endm", "endr", "fatal"):
            raise self._error("unexpected directive")

        self._advance()
        location = token.location

        if name in ("endl", "pushs", "pops"):
            {
                "endl": self.state.end_load,
                "pushs": self.state.push_section,
                "pops": self.state.pop_section,
            }[name]()
            return Directive(location, name)

        if name in STACK_DIRECTIVES:
            return Directive(location, name)

        if name == "rsreset":
            self.state.reset_storage(0)
            return Directive(location, name)
        if name == "rsset":
            value = self._constant()
            self.state.reset_storage(value)
            return Directive(location, name, [Literal(value)])

        if name in SYMBOL_LIST_DIRECTIVES:
            return self._parse_symbol_list(token)

        if name in PRINT_DIRECTIVES or name in FORWARDED_DIRECTIVES or name in ("warn", "fail"):
            return Directive(location, name, self._parse_argument_list())

        raise self._error("unsupported directive", token)

    def _parse_argument_list(self) -> list[Expression]:
        args: list[Expression] = []
        if self._at_line_end():
            return args
        args.append(self._expression())
        while self._match(TokenType.COMMA):
            args.append(self._expression())
        return args

    def _parse_symbol_list(self, directive_token: Token) -> Directive:
        """export/global/purge Name, .local, ..."""
        names: list[str] = []
        while True:
            token = self._peek()
            if token.type not in (TokenType.IDENTIFIER, TokenType.LOCAL_IDENTIFIER):
                raise self._error("expected symbol name")
            self._advance()
            try:
                name = self.state.qualify(token.value)
                if directive_token.value == "purge":
                    self.state.purge(name)
                else:
                    self.state.export(name, token.location)
            except AssemblerError as err:
                raise err.at(token.location, self._source_line(token)) from None
            names.append(name)
            if not self._match(TokenType.COMMA):
                break
        return Directive(directive_token.location, directive_token.value, names)

    def _parse_section(self, load: bool) -> SectionDef:
        """
        section "name", type[addr], bank[n], align[n]
        """
        keyword = self._advance()
        name = self._string()
        self._expect(TokenType.COMMA, "expected ',' after section name")

        type_token = self._peek()
        if type_token.type != TokenType.KEYWORD or type_token.value not in SECTION_TYPES:
            raise self._error("expected section type (rom0, romx, vram, sram, wram0, wramx, oam, hram)")
        self._advance()
        section_type = SectionType(type_token.value)

        address = None
        if self._match(TokenType.LBRACKET):
            address = self._constant()
            self._expect(TokenType.RBRACKET, "expected ']' after section address")

        attributes: dict[str, int] = {}
        while self._match(TokenType.COMMA):
            attribute = self._peek()
            if attribute.type != TokenType.KEYWORD or attribute.value not in SECTION_ATTRIBUTES:
                raise self._error("expected 'bank' or 'align'")
            self._advance()
            if attribute.value in attributes:
                raise self._error(f"duplicate '{attribute.value}' attribute", attribute)
            self._expect(TokenType.LBRACKET, f"expected '[' after {attribute.value}")
            attributes[attribute.value] = self._constant()
            self._expect(TokenType.RBRACKET, f"expected ']' after {attribute.value}")

        try:
            descriptor = make_section(name, section_type, address,
                                      attributes.get("bank"), attributes.get("align"), load)
            if load:
                self.state.enter_load(descriptor)
            else:
                self.state.enter_section(descriptor)
        except AssemblerError as err:
            raise err.at(keyword.location, self._source_line(keyword)) from None

        return SectionDef(keyword.location, descriptor)

    def _parse_data(self) -> DataStatement:
        """
        db/dw/dl values, or ds count[, fill...]. Advances the program counter.
        """
        keyword = self._advance()
        directive = keyword.value

        try:
            if directive == "ds":
                count = self._constant()
                if count < 0:
                    raise AssemblySyntaxError(f"ds count must not be negative, got {count}")
                fills = []
                while self._match(TokenType.COMMA):
                    fills.append(to_operand(self._expression(), 8, self.state))
                statement = DataStatement(keyword.location, directive, fills, count)
            else:
                width = DATA_WIDTHS[directive]
                values = []
                size = 0
                for expr in self._parse_argument_list():
                    if isinstance(expr, StringLiteral):
                        values.append(expr)
                        size += len(expr.text) * width
                        continue
                    values.append(self._fold_data(expr, width))
                    size += width
                # A bare db/dw/dl reserves one unit
                statement = DataStatement(keyword.location, directive, values, size or width)
        except AssemblerError as err:
            raise err.at(keyword.location, self._source_line(keyword)) from None

        self.state.advance_pc(statement.size)
        return statement

    def _fold_data(self, expr: Expression, width: int) -> Expression:
        if width in (1, 2):
            return to_operand(expr, width * 8, self.state)
        result = evaluate(expr, self.state)
        if isinstance(result, Invalid):
            raise ExpressionError(result.reason)
        return expr if isinstance(result, Deferred) else Literal(result.value)

    def _parse_assert(self) -> AssertStatement:
        """
        assert [warn|fail|fatal,] condition[, "message"]
        """
        keyword = self._advance()
        severity = "fail"
        token = self._peek()
        if token.type == TokenType.KEYWORD and token.value in ASSERT_SEVERITIES:
            self._advance()
            severity = token.value
            self._expect(TokenType.COMMA, "expected ',' after assert severity")

        expression = self._expression()
        message = None
        if self._match(TokenType.COMMA):
            message = self._string()

        return AssertStatement(keyword.location, severity, expression, message,
                               static=(keyword.value == "static_assert"))


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_source(
    source: str,
    filename: str = "<input>",
    state: Optional[AssemblerState] = None,
) -> list[Statement]:
    """
    Convenience function to parse source code.

    Args:
        source: Assembly source code
        filename: Source filename

    Returns:
        List of parsed statements
    """
    return Parser(source, filename, state).parse()
