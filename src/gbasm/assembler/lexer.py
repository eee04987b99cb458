"""
SM83 Assembly Language Lexer
============================

This module implements a mode-aware lexer (tokenizer) for Game Boy assembly
language. It converts source text into a lazy stream of tokens that the
parser pulls one at a time.

Lexer Modes
-----------
Most of a source file is lexed in NORMAL mode. A few constructs carry text
that must not be tokenized by the normal rules:

- Macro invocation arguments and ``opt`` option lists are RAW text, split
  on top-level commas: ``MyMacro "a", (1, 2)`` gives two arguments.
- Macro bodies and ``rept`` bodies are RAW blocks, captured verbatim up to
  the line whose first word is ``endm`` / ``endr``.

The parser decides when to switch. It owns a LexerModeController and asks
for a switch right after consuming the directive or macro name; the lexer
applies the switch the next time it has to produce a fresh token. Tokens
the parser already looked at keep the mode they were lexed in.

Token Types
-----------
- KEYWORD: Reserved spelling (mnemonic, register, directive...), lowercased
- IDENTIFIER / LOCAL_IDENTIFIER: Symbol names (``Foo``, ``.loop``)
- LABEL / LOCAL_LABEL: A name being declared (``Foo:``, ``Foo equ``)
- NUMBER: Decimal, $hex, %binary, &octal, 16.16 fixed point, `gfx
- STRING: Double-quoted string ("hello")
- RAW_STRING / RAW_BLOCK: Raw-mode text
- Operators and punctuation
- NEWLINE / EOF

Number Formats
--------------

| Format        | Prefix | Example   | Value      |
|---------------|--------|-----------|------------|
| Decimal       | (none) | 123       | 123        |
| Hexadecimal   | $      | $7F       | 127        |
| Binary        | %      | %1010     | 10         |
| Octal         | &      | &177      | 127        |
| Fixed point   | (none) | 1.5       | $00018000  |
| Gfx (2bpp)    | `      | `0123     | $0305      |

Values are 32-bit and wrap to the signed range; literals that do not fit in
32 bits are a lexical error.

Example
-------
>>> from gbasm.assembler.lexer import Lexer
>>> for token in Lexer("Start: ld a, $41", "example.asm").tokenize():
...     print(token)
Token(LABEL, 'Start', 1:1)
Token(COLON, 1:6)
Token(KEYWORD, 'ld', 1:8)
Token(KEYWORD, 'a', 1:11)
Token(COMMA, 1:12)
Token(NUMBER, $41, 1:14)
Token(EOF, 1:17)
"""

from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import logging
import string

from gbasm.errors import LexicalError, SourceLocation
from gbasm.assembler.keywords import KEYWORDS, LABEL_DIRECTIVES

logger = logging.getLogger(__name__)


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """
    Token types for SM83 assembly language.
    """

    # Structural tokens
    NEWLINE = auto()          # End of line (statement boundary)
    EOF = auto()              # End of input

    # Values
    NUMBER = auto()           # Numeric literal (all formats)
    STRING = auto()           # "..."
    IDENTIFIER = auto()       # Global symbol name or macro name
    LOCAL_IDENTIFIER = auto() # .name
    LABEL = auto()            # Name being declared
    LOCAL_LABEL = auto()      # .name being declared
    KEYWORD = auto()          # Reserved spelling, value is lowercase

    # Raw mode
    RAW_STRING = auto()       # One comma-separated raw argument
    RAW_BLOCK = auto()        # Verbatim body up to a closing keyword

    # Delimiters
    LPAREN = auto()           # (
    RPAREN = auto()           # )
    LBRACKET = auto()         # [
    RBRACKET = auto()         # ]
    COMMA = auto()            # ,
    COLON = auto()            # :
    DOUBLE_COLON = auto()     # ::

    # Logical operators
    BANG = auto()             # !
    AND_AND = auto()          # &&
    OR_OR = auto()            # ||

    # Bitwise operators
    TILDE = auto()            # ~
    AMPERSAND = auto()        # &
    PIPE = auto()             # |
    CARET = auto()            # ^
    LSHIFT = auto()           # <<
    RSHIFT = auto()           # >>

    # Arithmetic operators
    PLUS = auto()             # +
    MINUS = auto()            # -
    STAR = auto()             # *
    SLASH = auto()            # /
    PERCENT = auto()          # %

    # Comparison operators
    EQ = auto()               # ==
    NE = auto()               # !=
    LT = auto()               # <
    LE = auto()               # <=
    GT = auto()               # >
    GE = auto()               # >=

    EQUALS = auto()           # = (SET shorthand)


class LexerMode(Enum):
    """Lexing rule set in force for the next fresh token."""
    NORMAL = auto()
    RAW = auto()


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    Represents a single token from the source code.

    Attributes:
        type: The TokenType classification
        value: int for NUMBER, str for names and text, lowercase spelling
               for KEYWORD, None for punctuation and structural tokens
        line: Line number in source (1-indexed)
        column: Column number in source (1-indexed)
        filename: Name of the source file
        mode: The lexer mode the token was produced under
    """
    type: TokenType
    value: str | int | None
    line: int
    column: int
    filename: str
    mode: LexerMode = LexerMode.NORMAL

    def __repr__(self) -> str:
        if self.value is not None:
            if isinstance(self.value, int):
                return f"Token({self.type.name}, ${self.value & 0xFFFFFFFF:X}, {self.line}:{self.column})"
            return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.line}:{self.column})"

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column)

    def is_keyword(self, *words: str) -> bool:
        """Check for a KEYWORD token, optionally with one of the given spellings."""
        if self.type != TokenType.KEYWORD:
            return False
        return not words or self.value in words


# =============================================================================
# Mode Controller
# =============================================================================

class LexerModeController:
    """
    Two-slot mode register shared by the parser and the lexer.

    The parser writes the pending slot with request_mode_switch(); the lexer
    calls commit() right before it lexes a fresh token. A request therefore
    never affects tokens already sitting in the parser's lookahead buffer.

    Attributes:
        current: Mode the next fresh token is lexed in
        closing: Closing keyword of a raw block (None for raw arguments)
        opening: Keyword that nests inside the raw block (e.g. "rept")
    """

    def __init__(self):
        self.current = LexerMode.NORMAL
        self.closing: Optional[str] = None
        self.opening: Optional[str] = None
        self._pending: Optional[tuple[LexerMode, Optional[str], Optional[str]]] = None

    @property
    def pending(self) -> Optional[LexerMode]:
        return self._pending[0] if self._pending else None

    def request_mode_switch(
        self,
        mode: LexerMode,
        closing: Optional[str] = None,
        opening: Optional[str] = None,
    ) -> None:
        """
        Ask for a mode switch before the next fresh token.

        Args:
            mode: The mode to switch to
            closing: For raw blocks, the keyword that ends the block
            opening: For raw blocks, the keyword that opens a nested block
        """
        self._pending = (mode, closing, opening)

    def commit(self) -> bool:
        """
        Apply the pending request, if any.

        Returns:
            True if the mode registers changed
        """
        if self._pending is None:
            return False
        mode, closing, opening = self._pending
        self._pending = None
        if mode != LexerMode.RAW:
            closing = opening = None
        changed = (mode, closing, opening) != (self.current, self.closing, self.opening)
        if changed:
            logger.debug(f"Lexer mode {self.current.name} -> {mode.name}"
                         + (f" (until {closing})" if closing else ""))
        self.current, self.closing, self.opening = mode, closing, opening
        return changed


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Tokenizes SM83 assembly source code, one token per next_token() call.

    Usage:
        lexer = Lexer(source_text, filename)
        tokens = list(lexer.tokenize())

    For mode-switched lexing, hand the lexer a controller and pull tokens
    through a TokenStream:
        controller = LexerModeController()
        stream = TokenStream(Lexer(source_text, filename, controller))

    Attributes:
        source: The source code being tokenized (line endings normalized)
        filename: Name of the source file (for error reporting)
        controller: The mode register consulted before each fresh token
    """

    # Characters that can start an identifier
    IDENT_START = string.ascii_letters + "_"

    # Characters that can continue an identifier
    IDENT_CHARS = string.ascii_letters + string.digits + "_.#@"

    # Single-character tokens that never start a longer one
    SINGLE_CHAR_TOKENS = {
        "(": TokenType.LPAREN,
        ")": TokenType.RPAREN,
        "[": TokenType.LBRACKET,
        "]": TokenType.RBRACKET,
        ",": TokenType.COMMA,
        "~": TokenType.TILDE,
        "^": TokenType.CARET,
        "+": TokenType.PLUS,
        "-": TokenType.MINUS,
        "*": TokenType.STAR,
        "/": TokenType.SLASH,
    }

    # Escape sequences in strings
    ESCAPE_SEQUENCES = {
        "n": "\n",
        "r": "\r",
        "t": "\t",
        "\\": "\\",
        '"': '"',
        ",": ",",
        "{": "{",
        "}": "}",
    }

    def __init__(
        self,
        source: str,
        filename: str = "<input>",
        controller: Optional[LexerModeController] = None,
    ):
        """
        Initialize the lexer with source code.

        Args:
            source: The assembly source code to tokenize
            filename: Name of the source file (for error messages)
            controller: Mode register; a private NORMAL-only one by default
        """
        self.source = source.replace("\r\n", "\n").replace("\r", "\n")
        self.filename = filename
        self.controller = controller or LexerModeController()

        # Current position in source
        self._pos = 0
        self._line = 1
        self._column = 1

        # Track if we're at the start of a line (for * comments)
        self._at_line_start = True
        self._line_start_pos = 0

        self._lines = self.source.split("\n")
        self._done = False

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens until EOF (inclusive).

        Yields:
            Token objects representing each lexical element

        Raises:
            LexicalError: If invalid source text is encountered
        """
        while True:
            token = self.next_token()
            yield token
            if token.type == TokenType.EOF:
                return

    def next_token(self) -> Token:
        """
        Produce the next token under the committed mode.

        Raises:
            LexicalError: If invalid source text is encountered
        """
        self.controller.commit()
        if self.controller.current == LexerMode.RAW:
            if self.controller.closing:
                return self._scan_raw_block()
            return self._scan_raw_token()
        return self._scan_normal_token()

    def source_line(self, line: int) -> Optional[str]:
        """Return the text of a 1-indexed source line, for error context."""
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return None

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """
        Look at character at current position + offset without advancing.

        Returns empty string if past end of source.
        """
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """
        Consume and return the current character, advancing position.

        Updates line and column tracking.
        """
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
            self._at_line_start = True
            self._line_start_pos = self._pos
        else:
            self._column += 1
            if char not in " \t":
                self._at_line_start = False

        return char

    def _match(self, expected: str) -> bool:
        if self._peek() == expected:
            self._advance()
            return True
        return False

    # =========================================================================
    # Token Creation
    # =========================================================================

    def _make_token(
        self,
        token_type: TokenType,
        value: str | int | None,
        start_line: Optional[int] = None,
        start_column: Optional[int] = None,
    ) -> Token:
        return Token(
            type=token_type,
            value=value,
            line=start_line or self._line,
            column=start_column or self._column,
            filename=self.filename,
            mode=self.controller.current,
        )

    def _error(self, message: str, hint: Optional[str] = None) -> LexicalError:
        """
        Create a lexical error with current location.

        Args:
            message: Error description
            hint: Optional suggestion for fixing it
        """
        location = SourceLocation(self.filename, self._line, self._column)
        return LexicalError(message, location, hint=hint,
                            source_line=self.source_line(self._line))

    # =========================================================================
    # Whitespace, Comments and Continuations
    # =========================================================================

    def _skip_whitespace(self) -> bool:
        skipped = False
        # '' in ' \t' is True, so check for end of input first
        while self._peek() and self._peek() in " \t":
            self._advance()
            skipped = True
        return skipped

    def _skip_comment(self) -> bool:
        """
        Skip comment to end of line.

        Handles two comment styles:
        - Semicolon (;) anywhere on line
        - Asterisk (*) only at start of line
        """
        char = self._peek()
        if char == ";" or (char == "*" and self._at_line_start):
            while not self._at_end() and self._peek() != "\n":
                self._advance()
            return True
        return False

    def _skip_continuation(self) -> bool:
        """
        Skip a line continuation: backslash, optional blanks or comment, newline.

        Returns:
            True if a continuation was consumed
        """
        if self._peek() != "\\":
            return False

        offset = 1
        while self._peek(offset) in (" ", "\t"):
            offset += 1
        if self._peek(offset) == ";":
            while self._peek(offset) not in ("", "\n"):
                offset += 1
        if self._peek(offset) != "\n":
            return False

        for _ in range(offset + 1):
            self._advance()
        # A continued line is still the same logical line
        self._at_line_start = False
        return True

    # =========================================================================
    # Normal Mode
    # =========================================================================

    def _scan_normal_token(self) -> Token:
        while True:
            if self._skip_whitespace():
                continue
            if self._skip_comment():
                continue
            if self._peek() == "\\":
                if self._skip_continuation():
                    continue
                self._advance()
                raise self._error("unexpected '\\' outside a string",
                                  hint="a line continuation must be the last thing on its line")
            break

        start_line = self._line
        start_column = self._column

        if self._at_end():
            return self._make_token(TokenType.EOF, None, start_line, start_column)

        char = self._peek()

        # Newline - significant for statement boundaries
        if char == "\n":
            self._advance()
            return self._make_token(TokenType.NEWLINE, None, start_line, start_column)

        # Identifiers, keywords and labels
        if char in self.IDENT_START:
            return self._scan_identifier(start_line, start_column)

        if char == ".":
            if self._peek(1) and self._peek(1) in self.IDENT_CHARS and not self._peek(1).isdigit():
                return self._scan_identifier(start_line, start_column)
            self._advance()
            raise self._error("expected identifier after '.'")

        # Numbers
        if char.isdigit():
            return self._scan_decimal_number(start_line, start_column)

        if char == "$":
            self._advance()
            return self._scan_radix_digits(string.hexdigits, 16, "hexadecimal",
                                           start_line, start_column)

        # '' in "01" is True, so _peek(1) must be non-empty
        next_char = self._peek(1)
        if char == "%" and next_char and next_char in "01":
            self._advance()
            return self._scan_radix_digits("01", 2, "binary", start_line, start_column)

        if char == "&" and next_char and next_char in "01234567":
            self._advance()
            return self._scan_radix_digits("01234567", 8, "octal", start_line, start_column)

        if char == "`":
            return self._scan_gfx(start_line, start_column)

        if char == '"':
            return self._scan_string(start_line, start_column)

        return self._scan_operator(start_line, start_column)

    def _scan_operator(self, start_line: int, start_column: int) -> Token:
        """Scan punctuation and operators, longest match first."""
        char = self._advance()

        def token(token_type: TokenType) -> Token:
            return self._make_token(token_type, None, start_line, start_column)

        if char == ":":
            return token(TokenType.DOUBLE_COLON if self._match(":") else TokenType.COLON)
        if char == "&":
            return token(TokenType.AND_AND if self._match("&") else TokenType.AMPERSAND)
        if char == "|":
            return token(TokenType.OR_OR if self._match("|") else TokenType.PIPE)
        if char == "!":
            return token(TokenType.NE if self._match("=") else TokenType.BANG)
        if char == "=":
            return token(TokenType.EQ if self._match("=") else TokenType.EQUALS)
        if char == "<":
            if self._match("<"):
                return token(TokenType.LSHIFT)
            return token(TokenType.LE if self._match("=") else TokenType.LT)
        if char == ">":
            if self._match(">"):
                return token(TokenType.RSHIFT)
            return token(TokenType.GE if self._match("=") else TokenType.GT)
        if char == "%":
            return token(TokenType.PERCENT)
        if char in self.SINGLE_CHAR_TOKENS:
            return token(self.SINGLE_CHAR_TOKENS[char])

        raise self._error(f"unexpected character '{char}'")

    def _scan_identifier(self, start_line: int, start_column: int) -> Token:
        """
        Scan a name and classify it as keyword, identifier or label.

        A name is a label when it is immediately followed by ':' or when the
        next word on the line is a directive that only follows a label
        (equ, set, equs, rb, rw, rl, macro, or '=').
        """
        chars = []
        # '' in IDENT_CHARS is True, so check for end of input first
        while self._peek() and self._peek() in self.IDENT_CHARS:
            chars.append(self._advance())
        name = "".join(chars)

        local = name.startswith(".")
        if not local and name.lower() in KEYWORDS:
            return self._make_token(TokenType.KEYWORD, name.lower(), start_line, start_column)

        if self._declares_label():
            token_type = TokenType.LOCAL_LABEL if local else TokenType.LABEL
        else:
            token_type = TokenType.LOCAL_IDENTIFIER if local else TokenType.IDENTIFIER
        return self._make_token(token_type, name, start_line, start_column)

    def _declares_label(self) -> bool:
        """Look ahead (characters only) for what follows a name."""
        if self._peek() == ":":
            return True

        offset = 0
        while self._peek(offset) in (" ", "\t"):
            offset += 1
        if offset == 0:
            return False

        if self._peek(offset) == "=":
            return self._peek(offset + 1) != "="

        word = []
        while self._peek(offset) and self._peek(offset) in self.IDENT_CHARS:
            word.append(self._peek(offset))
            offset += 1
        return "".join(word).lower() in LABEL_DIRECTIVES

    def _scan_decimal_number(self, start_line: int, start_column: int) -> Token:
        """
        Scan a decimal integer or a 16.16 fixed-point literal.
        """
        chars = []
        while self._peek().isdigit():
            chars.append(self._advance())

        if self._peek() == "." and self._peek(1).isdigit():
            self._advance()  # consume .
            fraction = []
            while self._peek().isdigit():
                fraction.append(self._advance())
            value = round(float("".join(chars) + "." + "".join(fraction)) * 65536)
            return self._number(value, start_line, start_column)

        return self._number(int("".join(chars)), start_line, start_column)

    def _scan_radix_digits(
        self,
        digits: str,
        base: int,
        description: str,
        start_line: int,
        start_column: int,
    ) -> Token:
        """Scan digits of the given base after a prefix character."""
        chars = []
        while self._peek() and self._peek() in digits:
            chars.append(self._advance())

        if not chars:
            raise self._error(f"expected {description} digits")

        return self._number(int("".join(chars), base), start_line, start_column)

    def _scan_gfx(self, start_line: int, start_column: int) -> Token:
        """
        Scan a 2bpp graphics literal: up to eight pixels, each 0-3.

        Low bits of each pixel go to the low byte, high bits to the high
        byte, leftmost pixel in bit 7.
        """
        self._advance()  # consume `
        pixels = []
        while self._peek() and self._peek() in "0123":
            pixels.append(int(self._advance()))

        if not pixels:
            raise self._error("expected pixel digits (0-3) after '`'")
        if len(pixels) > 8:
            raise self._error("graphics literal is too long", hint="use at most 8 pixels")

        low = high = 0
        for pixel in pixels:
            low = (low << 1) | (pixel & 1)
            high = (high << 1) | (pixel >> 1)
        return self._number((high << 8) | low, start_line, start_column)

    def _number(self, value: int, start_line: int, start_column: int) -> Token:
        """Check that a literal fits in 32 bits and wrap it to signed."""
        if value > 0xFFFFFFFF:
            raise LexicalError(
                "integer constant is too large",
                SourceLocation(self.filename, start_line, start_column),
                source_line=self.source_line(start_line),
            )
        if value & 0x80000000:
            value -= 0x100000000
        return self._make_token(TokenType.NUMBER, value, start_line, start_column)

    def _scan_string(self, start_line: int, start_column: int) -> Token:
        """
        Scan a double-quoted string literal.

        Supports escape sequences: \\n \\r \\t \\\\ \\" \\, \\{ \\}
        """
        self._advance()  # consume opening "

        chars = []
        while not self._at_end():
            char = self._peek()

            if char == '"':
                self._advance()
                return self._make_token(TokenType.STRING, "".join(chars),
                                        start_line, start_column)

            if char == "\n":
                break

            if char == "\\":
                self._advance()
                escaped = self._advance()
                if escaped not in self.ESCAPE_SEQUENCES:
                    raise self._error(f"illegal character escape '\\{escaped}'")
                chars.append(self.ESCAPE_SEQUENCES[escaped])
            else:
                chars.append(self._advance())

        raise self._error("unterminated string literal")

    # =========================================================================
    # Raw Mode
    # =========================================================================

    def _scan_raw_token(self) -> Token:
        """
        Scan one raw argument, a comma, or the line terminator.

        Arguments are split on commas that are outside quotes and
        parentheses, and trimmed; the text is otherwise kept verbatim.
        """
        while True:
            self._skip_whitespace()
            if self._peek() == ";":
                self._skip_comment()
                continue
            if self._skip_continuation():
                continue
            break

        start_line = self._line
        start_column = self._column

        if self._at_end():
            return self._make_token(TokenType.EOF, None, start_line, start_column)

        char = self._peek()
        if char == "\n":
            self._advance()
            return self._make_token(TokenType.NEWLINE, None, start_line, start_column)

        if char == ",":
            self._advance()
            return self._make_token(TokenType.COMMA, None, start_line, start_column)

        chars = []
        depth = 0
        in_string = False
        while not self._at_end():
            char = self._peek()

            if in_string:
                if char == "\n":
                    raise self._error("unterminated string literal")
                chars.append(self._advance())
                if char == "\\" and self._peek() and self._peek() != "\n":
                    chars.append(self._advance())
                elif char == '"':
                    in_string = False
                continue

            if char == "\n" or char == ";":
                break
            if char == "," and depth == 0:
                break
            if char == "\\":
                if self._skip_continuation():
                    chars.append(" ")
                    continue
                # Escaped character (\, \" ...) stays verbatim and never splits
                chars.append(self._advance())
                if self._peek() and self._peek() != "\n":
                    chars.append(self._advance())
                continue

            if char == '"':
                in_string = True
            elif char == "(":
                depth += 1
            elif char == ")" and depth > 0:
                depth -= 1

            chars.append(self._advance())

        if in_string:
            raise self._error("unterminated string literal")

        return self._make_token(TokenType.RAW_STRING, "".join(chars).strip(),
                                start_line, start_column)

    def _scan_raw_block(self) -> Token:
        """
        Capture lines verbatim until the line starting with the closing keyword.

        Nested opening/closing pairs are counted, so a ``rept`` inside a
        ``rept`` body does not end the outer body at its own ``endr``. The
        lexer stops right after the closing keyword; the rest of that line
        is lexed normally.

        Raises:
            LexicalError: If the input ends before the closing keyword
        """
        closing = self.controller.closing
        opening = self.controller.opening
        open_line = self._line

        # Remainder of the opening line must be empty
        if self._pos != self._line_start_pos:
            self._skip_whitespace()
            self._skip_comment()
            if not self._at_end() and self._peek() != "\n":
                raise self._error("unexpected text before the body, expected end of line")
            self._advance()

        start_line = self._line
        start_column = 1
        body_start = self._pos
        depth = 0

        while not self._at_end():
            line_end = self.source.find("\n", self._pos)
            if line_end == -1:
                line_end = len(self.source)
            text = self.source[self._pos:line_end]
            first = text.split(";", 1)[0].split()[:1]
            words = self._leading_words(text)

            if first and first[0].lower() == closing:
                if depth == 0:
                    body = self.source[body_start:self._pos]
                    token = self._make_token(TokenType.RAW_BLOCK, body, start_line, start_column)
                    # Leave the lexer just after the closing keyword
                    indent = len(text) - len(text.lstrip(" \t"))
                    for _ in range(indent + len(closing)):
                        self._advance()
                    return token
                depth -= 1
            elif opening and opening in words[:2]:
                depth += 1

            for _ in range(line_end - self._pos + 1):
                self._advance()

        raise LexicalError(
            f"unterminated block, expected '{closing}'",
            SourceLocation(self.filename, open_line, 1),
            source_line=self.source_line(open_line),
        )

    def _leading_words(self, text: str) -> list[str]:
        """First two words of a line, lowercased, ignoring a 'label:' prefix."""
        code = text.split(";", 1)[0]
        words = code.replace(":", ": ").split()
        if words and words[0].endswith(":"):
            words = words[1:]
            while words and words[0] == ":":
                words = words[1:]
        return [word.lower() for word in words[:2]]


# =============================================================================
# Lookahead Buffer
# =============================================================================

class TokenStream:
    """
    Lazy lookahead buffer over a Lexer.

    peek() lexes only as far as asked, so the parser controls exactly how
    many tokens are lexed under the current mode before it requests a
    switch. Tokens already in the buffer are never re-lexed.
    """

    def __init__(self, lexer: Lexer):
        self.lexer = lexer
        self._buffer: deque[Token] = deque()
        self.previous: Optional[Token] = None

    @property
    def controller(self) -> LexerModeController:
        return self.lexer.controller

    def peek(self, offset: int = 0) -> Token:
        """Return the token `offset` positions ahead without consuming it."""
        while len(self._buffer) <= offset:
            if self._buffer and self._buffer[-1].type == TokenType.EOF:
                return self._buffer[-1]
            self._buffer.append(self.lexer.next_token())
        return self._buffer[offset]

    def advance(self) -> Token:
        """Consume and return the current token."""
        token = self.peek()
        if token.type != TokenType.EOF:
            self._buffer.popleft()
        self.previous = token
        return token

    def buffered(self) -> int:
        """Number of tokens lexed but not yet consumed."""
        return len(self._buffer)
