"""
gbasm Error Hierarchy
=====================

This module defines the exception hierarchy for the whole assembler front
end. All exceptions inherit from GbasmError, allowing callers to catch every
assembler-related error with a single except clause if desired.

Exception Hierarchy
-------------------
GbasmError (base)
└── AssemblerError (carries source location)
    ├── LexicalError - unrecognized character or malformed literal
    ├── AssemblySyntaxError - grammar mismatch
    │   └── InvalidOperandsError - operands that no encoding accepts
    ├── IllegalEncodingError - parses, but must not be encoded (ld [hl],[hl])
    ├── AddressOutOfRangeError - address outside the window it must lie in
    ├── RedefinitionError - non-mutable symbol defined twice
    ├── UndefinedScopeError - local label with no enclosing global label
    ├── SectionError - malformed section descriptor
    ├── ExpressionError - expression cannot be evaluated
    │   ├── NumericConversionError - value does not fit the operand width
    │   └── ExpressionNotConstantError - value needed now, but not known
    ├── AssertionFailure - fatal assert evaluated to false
    └── TooManyErrors - diagnostic collector limit reached

Every error aborts the parse at its first occurrence; there is no
resynchronisation. Warnings and non-fatal assert failures go through the
DiagnosticCollector instead.

Error messages follow this format:
    filename:line:column: error: description
        source_line_text
        ^
    hint: suggestion for fixing (when available)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class GbasmError(Exception):
    """
    Base exception for all gbasm errors.

        try:
            assembler.assemble_file("game.asm")
        except GbasmError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    A location in source code for error reporting.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.column}"


# =============================================================================
# Assembler Exceptions
# =============================================================================

class AssemblerError(GbasmError):
    """
    Base exception for errors raised while assembling a unit.

    Components that have no notion of source position (the instruction
    encoder, the expression evaluator) raise these without a location; the
    parser attaches one with at() before letting the error propagate.

    Attributes:
        message: The error description
        location: Where in the source the error occurred (optional)
        hint: A suggestion for fixing the error (optional)
        source_line: The source text at the error location (optional)
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def at(
        self,
        location: Optional[SourceLocation],
        source_line: Optional[str] = None,
    ) -> "AssemblerError":
        """
        Attach a location to an error raised without one.

        Errors that already know where they happened keep their location.
        Returns self so callers can write ``raise err.at(loc) from None``.
        """
        if self.location is None and location is not None:
            self.location = location
            if self.source_line is None:
                self.source_line = source_line
            self.args = (self._format_message(),)
        return self

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

        Example output:
            game.asm:15:5: error: ld [hl], [hl] is not a valid instruction
                ld [hl], [hl]
                ^
            hint: this encoding is the 'halt' opcode
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


class LexicalError(AssemblerError):
    """
    Source text that cannot be tokenized.

    Examples:
        - Garbage character ('?' outside a string)
        - Unterminated string literal
        - '$' with no hexadecimal digits after it
        - Line continuation at end of input
        - Macro body without a closing ENDM
    """
    pass


class AssemblySyntaxError(AssemblerError):
    """
    Token sequence that does not match the grammar.

    Examples:
        - Missing comma between operands
        - Directive used where a label is required (``rb 4`` with no name)
        - Unexpected token at end of line
    """
    pass


class InvalidOperandsError(AssemblySyntaxError):
    """
    Instruction whose operand shape no encoding accepts.

    Example:
        ld a, sp    ; Error: 'ld' does not accept (register a, register sp)
    """

    def __init__(
        self,
        mnemonic: str,
        operands: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        valid_forms: Optional[list[str]] = None,
    ):
        self.mnemonic = mnemonic
        self.operands = operands
        self.valid_forms = valid_forms or []

        hint = None
        if self.valid_forms:
            hint = f"{mnemonic} accepts: " + "; ".join(self.valid_forms)

        super().__init__(
            f"'{mnemonic}' does not accept operands ({operands})",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class IllegalEncodingError(AssemblerError):
    """
    Instruction that parses but has no legal encoding.

    The only case on the SM83 is ``ld [hl], [hl]``: its bit pattern is the
    ``halt`` opcode, so it must be rejected instead of silently producing $76.
    """
    pass


class AddressOutOfRangeError(AssemblerError):
    """
    Address (or jump offset) outside the window it must lie in.

    Raised for:
        - ldh with a constant address outside $FF00-$FFFF
        - section addresses outside the section type's memory window
        - rst targets that are not a multiple of 8 in $00-$38
        - jr targets further than -128..+127 bytes away
    """

    def __init__(
        self,
        message: str,
        value: Optional[int] = None,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.value = value
        super().__init__(message, location=location, hint=hint, source_line=source_line)


class RedefinitionError(AssemblerError):
    """
    Non-mutable symbol defined more than once.

    EQU, EQUS and label symbols can be defined once per assembly unit.
    SET symbols may be redefined, but only by another SET.
    """

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.symbol = symbol
        self.original_location = original_location

        hint = None
        if original_location:
            hint = f"'{symbol}' was first defined at {original_location}"

        super().__init__(
            f"redefined symbol '{symbol}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class UndefinedScopeError(AssemblerError):
    """
    Local label used while no global label is open.

    A local label's identity is the enclosing global label followed by its
    own spelling, so ``.loop`` before any ``Global:`` has nothing to attach to.
    """

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.symbol = symbol
        super().__init__(
            f"local symbol '{symbol}' in main scope",
            location=location,
            hint="declare a global label before using local labels",
            source_line=source_line,
        )


class SectionError(AssemblerError):
    """
    Malformed section or load block.

    Examples:
        - bank[] on a section type that is not banked
        - endl without a matching load
        - pops with an empty section stack
    """
    pass


class ExpressionError(AssemblerError):
    """
    Expression that cannot be evaluated.

    Typically division by zero, or a string used where a number is needed.
    """
    pass


class NumericConversionError(ExpressionError):
    """
    Value that does not fit the integer width an operand needs.

    Example:
        ld a, $1234   ; Error: $1234 does not fit in 8 bits
    """

    def __init__(
        self,
        value: int,
        bits: int,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.value = value
        self.bits = bits
        super().__init__(
            f"value {value} (${value & 0xFFFFFFFF:X}) does not fit in {bits} bits",
            location=location,
            source_line=source_line,
        )


class ExpressionNotConstantError(ExpressionError):
    """
    Expression whose value is needed at parse time but is not yet known.

    Used by EQU, RB/RW/RL counts, BIT indices and section addresses, which
    cannot be deferred to a later pass.
    """

    def __init__(
        self,
        missing: Optional[list[str]] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.missing = missing or []
        hint = None
        if self.missing:
            names = ", ".join(f"'{name}'" for name in self.missing[:3])
            hint = f"not yet defined: {names}"
        super().__init__(
            "expression is not constant",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class AssertionFailure(AssemblerError):
    """Fatal assert whose expression evaluated to false."""

    def __init__(
        self,
        message: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.assert_message = message
        text = f"assertion failure: {message}" if message else "assertion failure"
        super().__init__(text, location=location, source_line=source_line)


# =============================================================================
# Diagnostics Sink
# =============================================================================

class Severity(Enum):
    """Severity of a collected diagnostic."""
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Diagnostic:
    """A single message collected by DiagnosticCollector."""
    severity: Severity
    message: str
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        if self.location:
            return f"{self.location}: {self.severity.value}: {self.message}"
        return f"{self.severity.value}: {self.message}"


class DiagnosticCollector:
    """
    Collects non-fatal diagnostics for batch reporting.

    Fatal errors propagate as exceptions. Warnings from ``warn`` directives
    and failed ``assert warn``/``assert fail`` checks are recorded here so
    the caller can decide what to do with them once the unit is parsed.

    Example:
        sink = DiagnosticCollector(max_errors=100)
        sink.add_warning("deprecated syntax", location)
        if sink.has_errors():
            print(sink.report())
    """

    def __init__(self, max_errors: int = 100, warnings_as_errors: bool = False):
        """
        Args:
            max_errors: Maximum errors to collect before raising TooManyErrors
            warnings_as_errors: Record warnings as errors
        """
        self.diagnostics: list[Diagnostic] = []
        self.max_errors = max_errors
        self.warnings_as_errors = warnings_as_errors

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]

    def add_error(self, message: str, location: Optional[SourceLocation] = None) -> None:
        """
        Record an error.

        Raises:
            TooManyErrors: If max_errors has been reached
        """
        self.diagnostics.append(Diagnostic(Severity.ERROR, message, location))
        if self.error_count() >= self.max_errors:
            raise TooManyErrors(f"too many errors ({self.max_errors}), stopping")

    def add_warning(self, message: str, location: Optional[SourceLocation] = None) -> None:
        """Record a warning (or an error, with warnings_as_errors)."""
        if self.warnings_as_errors:
            self.add_error(message, location)
            return
        self.diagnostics.append(Diagnostic(Severity.WARNING, message, location))

    def has_errors(self) -> bool:
        return self.error_count() > 0

    def error_count(self) -> int:
        return len(self.errors)

    def warning_count(self) -> int:
        return len(self.warnings)

    def report(self) -> str:
        """
        Format all diagnostics for display, followed by a summary line.
        """
        lines = [str(d) for d in self.diagnostics]

        errors = self.error_count()
        warnings = self.warning_count()
        error_word = "error" if errors == 1 else "errors"
        warning_word = "warning" if warnings == 1 else "warnings"
        lines.append(f"{errors} {error_word}, {warnings} {warning_word}")

        return "\n".join(lines)

    def clear(self) -> None:
        self.diagnostics.clear()


class TooManyErrors(AssemblerError):
    """Raised when the diagnostic collector's error limit is reached."""

    def __init__(self, message: str = "too many errors"):
        super().__init__(message)
