"""
SM83 Assembler - Main Interface
===============================

This module provides the Assembler class, the primary interface for running
the front end over one unit of Game Boy assembly. It coordinates the parser
and the assembler state, evaluates assertions, collects diagnostics and
produces the symbol dump and instruction listing.

Example Usage
-------------
>>> from gbasm.assembler import Assembler
>>>
>>> asm = Assembler()
>>> statements = asm.assemble('''
... section "Main", rom0[$150]
... Start:
...     ld a, $41
...     jr Start
... ''')
>>> asm.get_symbols()["Start"]
336

Command-Line Usage
------------------
    $ gbasm game.asm -s game.sym -l game.lst

Assertion Handling
------------------
``assert`` and ``static_assert`` are evaluated as soon as they are parsed,
against the state at that point of the source. A false assertion is:

- ``warn``: a warning in the diagnostics collector
- ``fail``: an error in the diagnostics collector; assembly continues
- ``fatal``: an AssertionFailure, which stops assembly

Assertions that depend on symbols that are not known yet are kept in
``pending_assertions`` and checked again once the whole unit is parsed.
Those still unknown after that are left for the linker.
"""

from pathlib import Path
from typing import Optional
import logging

from gbasm.config import AssemblerConfig
from gbasm.errors import (
    AssemblerError,
    AssertionFailure,
    DiagnosticCollector,
    ExpressionError,
    ExpressionNotConstantError,
)
from gbasm.assembler.expressions import (
    FIXED_ONE,
    Deferred,
    Expression,
    FunctionCall,
    Invalid,
    Known,
    StringLiteral,
    SymbolRef,
    evaluate,
    evaluate_string,
    require_constant,
)
from gbasm.assembler.instructions import (
    Arg8,
    Jr,
    Rst,
    check_rst_target,
    resolve_jr_offset,
)
from gbasm.assembler.parser import (
    PRINT_DIRECTIVES,
    AssertStatement,
    Directive,
    InstructionStatement,
    Parser,
    Statement,
)
from gbasm.assembler.symbols import AssemblerState, SymbolKind

logger = logging.getLogger(__name__)

STRING_FUNCTIONS = frozenset({"strsub", "strcat", "strupr", "strlwr"})


class Assembler:
    """
    Main SM83 assembler front end class.

    One Assembler runs one unit at a time; assemble() starts from a fresh
    state each call, with the configured predefined symbols.

    Attributes:
        config: The AssemblerConfig in effect
        diagnostics: Warnings and non-fatal errors of the last run
        state: AssemblerState of the last run (symbols, sections)
        statements: Statements of the last run
        pending_assertions: Assertions left for the linker
        output: Text produced by print directives, in order
    """

    def __init__(self, config: Optional[AssemblerConfig] = None):
        """
        Initialize the assembler.

        Args:
            config: Assembly options (defaults to AssemblerConfig())
        """
        self.config = config or AssemblerConfig()
        self._reset()

    def _reset(self) -> None:
        self.diagnostics = DiagnosticCollector(
            max_errors=self.config.max_errors,
            warnings_as_errors=self.config.warnings_as_errors,
        )
        self.state = AssemblerState(export_all=self.config.export_all)
        self.statements: list[Statement] = []
        self.pending_assertions: list[AssertStatement] = []
        self.output: list[str] = []
        self._parser: Optional[Parser] = None

    def define_symbol(self, name: str, value: int) -> None:
        """
        Pre-define an EQU symbol for subsequent runs.

        Args:
            name: Symbol name
            value: Symbol value
        """
        self.config.define(name, value)

    # =========================================================================
    # Assembly Methods
    # =========================================================================

    def assemble(self, source: str, filename: str = "<input>") -> list[Statement]:
        """
        Run the front end over a unit of source code.

        The pipeline is:
        1. Define the configured symbols
        2. Parse, handling asserts and diagnostics directives as they appear
        3. Resolve what could not be decided during the parse

        Args:
            source: Assembly source code
            filename: Virtual filename for error messages

        Returns:
            Statements in source order

        Raises:
            AssemblerError: At the first fatal error
        """
        self._reset()

        for name, value in self.config.defines.items():
            self.state.define_constant(name, value)

        self._parser = Parser(source, filename, self.state, on_statement=self._handle_statement)
        self.statements = self._parser.parse()
        self._resolve()

        logger.info(f"Assembled {filename}: {len(self.statements)} statements, "
                    f"{len(self.state.symbols)} symbols, "
                    f"{self.diagnostics.error_count()} errors, "
                    f"{self.diagnostics.warning_count()} warnings")
        return self.statements

    def assemble_file(self, filepath: str | Path) -> list[Statement]:
        """
        Run the front end over a source file.

        Raises:
            AssemblerError: At the first fatal error
            FileNotFoundError: If the source file does not exist
        """
        filepath = Path(filepath)
        logger.debug(f"Assembling {filepath}")
        return self.assemble(filepath.read_text(), str(filepath))

    # =========================================================================
    # Statement Handlers
    # =========================================================================

    def _handle_statement(self, statement: Statement) -> None:
        try:
            if isinstance(statement, AssertStatement):
                self._check_assert(statement, final=False)
            elif isinstance(statement, Directive):
                if statement.name in PRINT_DIRECTIVES:
                    self._print(statement)
                elif statement.name in ("warn", "fail"):
                    self._report(statement)
        except AssemblerError as err:
            raise err.at(statement.location, self._source_line(statement)) from None

    def _check_assert(self, statement: AssertStatement, final: bool) -> bool:
        """
        Evaluate an assertion and act on a false result.

        Args:
            statement: The assertion
            final: True when the whole unit has been parsed

        Returns:
            False if the assertion still depends on unknown symbols
        """
        result = evaluate(statement.expression, self.state)

        if isinstance(result, Invalid):
            raise ExpressionError(result.reason)

        if isinstance(result, Deferred):
            if statement.static:
                raise ExpressionNotConstantError(list(result.missing))
            if not final:
                logger.debug(f"Assertion at {statement.location} deferred on "
                             f"{', '.join(result.missing)}")
                self.pending_assertions.append(statement)
            return False

        if result.value != 0:
            return True

        message = statement.message or f"assertion failed: {statement.expression}"
        if statement.severity == "warn":
            logger.warning(f"{statement.location}: {message}")
            self.diagnostics.add_warning(message, statement.location)
        elif statement.severity == "fail":
            self.diagnostics.add_error(message, statement.location)
        else:
            raise AssertionFailure(statement.message, statement.location,
                                   self._source_line(statement))
        return True

    def _report(self, directive: Directive) -> None:
        """warn "msg" adds a warning, fail "msg" an error."""
        message = "".join(evaluate_string(arg, self.state) for arg in directive.arguments)
        if directive.name == "warn":
            logger.warning(f"{directive.location}: {message}")
            self.diagnostics.add_warning(message, directive.location)
        else:
            self.diagnostics.add_error(message, directive.location)

    def _print(self, directive: Directive) -> None:
        text = "".join(self._format(arg, directive.name) for arg in directive.arguments)
        if directive.name == "println":
            text += "\n"
        self.output.append(text)

    def _format(self, arg: Expression, directive: str) -> str:
        if directive == "printt" or self._is_string(arg):
            return evaluate_string(arg, self.state)

        value = require_constant(arg, self.state)
        if directive == "printi":
            return str(value)
        if directive == "printf":
            return f"{value / FIXED_ONE:.5f}"
        return f"${value & 0xFFFFFFFF:X}"

    def _is_string(self, expr: Expression) -> bool:
        if isinstance(expr, StringLiteral):
            return True
        if isinstance(expr, FunctionCall):
            return expr.name in STRING_FUNCTIONS
        if isinstance(expr, SymbolRef):
            symbol = self.state.lookup(expr.name)
            return symbol is not None and symbol.kind == SymbolKind.EQUS
        return False

    # =========================================================================
    # Resolution
    # =========================================================================

    def _resolve(self) -> None:
        """
        Run the checks that needed the whole unit: deferred assertions,
        jr displacements, rst vectors and ldh address ranges.
        """
        undecided = []
        for statement in self.pending_assertions:
            try:
                if not self._check_assert(statement, final=True):
                    undecided.append(statement)
            except AssemblerError as err:
                raise err.at(statement.location, self._source_line(statement)) from None
        self.pending_assertions = undecided

        for statement in self.statements:
            if isinstance(statement, InstructionStatement):
                try:
                    self._resolve_instruction(statement)
                except AssemblerError as err:
                    raise err.at(statement.location, self._source_line(statement)) from None

    def _resolve_instruction(self, statement: InstructionStatement) -> None:
        record = statement.record

        if isinstance(record, Rst):
            result = evaluate(record.target, self.state)
            if isinstance(result, Known):
                check_rst_target(result.value)

        elif isinstance(record, Jr):
            address = self._address_of(statement)
            result = evaluate(record.target, self.state)
            if address is not None and isinstance(result, Known):
                resolve_jr_offset(result.value, address)

        elif isinstance(record, Arg8) and record.constraint is not None:
            operand = record.operand
            if isinstance(operand, FunctionCall) and operand.name == "low":
                operand = operand.args[0]
            result = evaluate(operand, self.state)
            if isinstance(result, Known):
                record.constraint.check(result.value)

    def _address_of(self, statement: InstructionStatement) -> Optional[int]:
        """Absolute address of an instruction, when its section is fixed."""
        if statement.section is None:
            return statement.offset
        descriptor = self.state.sections.get(statement.section)
        if descriptor is None or descriptor.address is None:
            return None
        return descriptor.address + statement.offset

    def _source_line(self, statement: Statement) -> Optional[str]:
        if self._parser is None:
            return None
        return self._parser.lexer.source_line(statement.location.line)

    # =========================================================================
    # Output Methods
    # =========================================================================

    def get_symbols(self) -> dict[str, int | str]:
        """
        Get the symbols of the last run with their values.

        Labels in sections without a fixed address are reported by their
        section offset.

        Returns:
            Dictionary mapping symbol names to values
        """
        symbols: dict[str, int | str] = {}
        for symbol in self.state:
            value = self.state.lookup_value(symbol.name)
            symbols[symbol.name] = symbol.value if value is None else value
        return symbols

    def get_symbol_dump(self) -> str:
        """
        Format the symbol table, one symbol per line.

        Format: name kind value [section] [exported]
        """
        lines = ["; Symbol table", "; Generated by gbasm"]
        for symbol in sorted(self.state, key=lambda s: s.name):
            value = self.state.lookup_value(symbol.name)
            if symbol.kind == SymbolKind.EQUS:
                text = f'"{symbol.value}"'
            elif value is None:
                text = f"+${symbol.value:04X}"
            else:
                text = f"${value & 0xFFFFFFFF:04X}"
            line = f"{symbol.name:24s} {symbol.kind.name:5s} {text}"
            if symbol.section:
                line += f' "{symbol.section}"'
            if symbol.exported:
                line += " exported"
            lines.append(line)
        return "\n".join(lines) + "\n"

    def get_listing(self) -> str:
        """
        Get the instruction listing of the last run.

        Each line shows the section, offset, encoded bytes and source form.
        Operands that are not known yet print as ``??``.
        """
        lines = [
            "gbasm Listing",
            "=" * 72,
            "",
            f"{'Section':16s} {'Offset':6s}  {'Code':24s} Source",
            "-" * 72,
        ]
        for statement in self.statements:
            if not isinstance(statement, InstructionStatement):
                continue
            source = statement.mnemonic
            if statement.operands:
                source += " " + ", ".join(str(op) for op in statement.operands)
            section = statement.section or "-"
            code = str(statement.record).split(" ; ")[0]
            lines.append(f"{section[:16]:16s} {statement.offset:04X}    {code:24s} {source}")
        return "\n".join(lines) + "\n"

    def write_symbols(self, filepath: str | Path) -> None:
        Path(filepath).write_text(self.get_symbol_dump())
        logger.info(f"Wrote symbols to {filepath}")

    def write_listing(self, filepath: str | Path) -> None:
        Path(filepath).write_text(self.get_listing())
        logger.info(f"Wrote listing to {filepath}")

    # =========================================================================
    # Error Handling
    # =========================================================================

    def has_errors(self) -> bool:
        """True if the last run collected errors (including failed asserts)."""
        return self.diagnostics.has_errors()

    def get_error_report(self) -> str:
        return self.diagnostics.report()


# =============================================================================
# Convenience Functions
# =============================================================================

def assemble(source: str, filename: str = "<input>") -> list[Statement]:
    """
    Convenience function to assemble source code with default options.

    Raises:
        AssemblerError: If assembly fails
    """
    return Assembler().assemble(source, filename)


def assemble_file(filepath: str | Path) -> list[Statement]:
    """
    Convenience function to assemble a file with default options.

    Raises:
        AssemblerError: If assembly fails
    """
    return Assembler().assemble_file(filepath)
