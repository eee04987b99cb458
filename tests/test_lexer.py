# =============================================================================
# test_lexer.py - Lexer Unit Tests
# =============================================================================
# Tests for the SM83 assembler lexer and its mode controller.
#
# Test coverage includes:
#   - Number formats: decimal, $hex, %binary, &octal, fixed point, `gfx
#   - String literals with escape sequences
#   - Keywords, identifiers, local names and label classification
#   - Comments, line continuations and line endings
#   - Raw argument mode and raw block mode
#   - The parser/lexer mode-switch handshake through TokenStream
#   - Error conditions
# =============================================================================

import pytest
from gbasm.assembler.lexer import (
    Lexer,
    LexerMode,
    LexerModeController,
    TokenStream,
    TokenType,
)
from gbasm.errors import LexicalError


# =============================================================================
# Helper Functions
# =============================================================================

def tokenize(source: str) -> list:
    """Tokenize in normal mode, dropping the trailing EOF."""
    tokens = list(Lexer(source, "<test>").tokenize())
    return [t for t in tokens if t.type != TokenType.EOF]


def types(source: str) -> list:
    return [t.type for t in tokenize(source)]


# =============================================================================
# Basic Token Recognition Tests
# =============================================================================

class TestBasicTokens:
    """Test basic token recognition for simple inputs."""

    def test_empty_source(self):
        assert tokenize("") == []

    def test_whitespace_only(self):
        assert tokenize("   \t   ") == []

    def test_identifier(self):
        tokens = tokenize("Buffer")
        assert tokens[0].type == TokenType.IDENTIFIER
        assert tokens[0].value == "Buffer"

    def test_identifier_special_characters(self):
        """Identifiers may continue with digits, '_', '.', '#' and '@'."""
        tokens = tokenize("wData_1.x#@")
        assert len(tokens) == 1
        assert tokens[0].value == "wData_1.x#@"

    def test_local_identifier(self):
        tokens = tokenize("jr .loop")
        assert tokens[1].type == TokenType.LOCAL_IDENTIFIER
        assert tokens[1].value == ".loop"

    def test_keyword_is_lowercased(self):
        """Keywords are case-insensitive; the value is the lowercase spelling."""
        tokens = tokenize("LD A, B")
        assert [t.type for t in tokens] == [
            TokenType.KEYWORD, TokenType.KEYWORD, TokenType.COMMA, TokenType.KEYWORD,
        ]
        assert [t.value for t in tokens if t.type == TokenType.KEYWORD] == ["ld", "a", "b"]

    def test_identifiers_are_case_sensitive(self):
        assert tokenize("MyLabel")[0].value == "MyLabel"

    def test_token_positions(self):
        tokens = tokenize("Start: ld a, $41")
        assert (tokens[0].line, tokens[0].column) == (1, 1)
        assert (tokens[2].line, tokens[2].column) == (1, 8)
        assert tokens[-1].column == 14

    def test_location_property(self):
        token = tokenize("\n  nop")[1]
        assert str(token.location) == "<test>:2:3"

    def test_is_keyword(self):
        token = tokenize("nop")[0]
        assert token.is_keyword()
        assert token.is_keyword("nop", "halt")
        assert not token.is_keyword("halt")


# =============================================================================
# Label Classification Tests
# =============================================================================

class TestLabelClassification:
    """Names being declared are LABEL tokens, references are IDENTIFIER."""

    def test_label_with_colon(self):
        assert types("Main:") == [TokenType.LABEL, TokenType.COLON]

    def test_exported_label(self):
        assert types("Main::") == [TokenType.LABEL, TokenType.DOUBLE_COLON]

    def test_local_label(self):
        assert types(".loop:") == [TokenType.LOCAL_LABEL, TokenType.COLON]

    @pytest.mark.parametrize("directive", ["equ", "set", "equs", "rb", "rw", "rl", "macro", "EQU"])
    def test_label_before_definition_directive(self, directive):
        tokens = tokenize(f"NAME {directive} 1")
        assert tokens[0].type == TokenType.LABEL

    def test_label_before_equals(self):
        assert tokenize("count = 3")[0].type == TokenType.LABEL

    def test_comparison_is_not_assignment(self):
        """'x == 3' compares, so x stays an identifier."""
        assert tokenize("x == 3")[0].type == TokenType.IDENTIFIER

    def test_macro_call_is_identifier(self):
        assert tokenize('MyMacro "a"')[0].type == TokenType.IDENTIFIER


# =============================================================================
# Number Format Tests
# =============================================================================

class TestNumberFormats:
    """Test the numeric literal forms."""

    def test_decimal(self):
        assert tokenize("123")[0].value == 123

    def test_hex(self):
        assert tokenize("$FF")[0].value == 0xFF
        assert tokenize("$beef")[0].value == 0xBEEF

    def test_binary(self):
        assert tokenize("%1010")[0].value == 10

    def test_octal(self):
        assert tokenize("&177")[0].value == 127

    def test_percent_operator(self):
        """'%' not followed by a binary digit is the modulo operator."""
        assert types("x % y") == [TokenType.IDENTIFIER, TokenType.PERCENT, TokenType.IDENTIFIER]

    def test_ampersand_operator(self):
        assert types("x & y") == [TokenType.IDENTIFIER, TokenType.AMPERSAND, TokenType.IDENTIFIER]

    def test_fixed_point(self):
        assert tokenize("1.5")[0].value == 0x18000
        assert tokenize("0.25")[0].value == 0x4000

    def test_gfx_literal(self):
        """Low pixel bits form the low byte, high bits the high byte."""
        assert tokenize("`0123")[0].value == 0x0305
        assert tokenize("`33333333")[0].value == 0xFFFF

    def test_gfx_too_long(self):
        with pytest.raises(LexicalError):
            tokenize("`000000000")

    def test_wraps_to_signed_32_bit(self):
        assert tokenize("$FFFFFFFF")[0].value == -1
        assert tokenize("$80000000")[0].value == -0x80000000

    def test_too_large(self):
        with pytest.raises(LexicalError, match="too large"):
            tokenize("$100000000")

    def test_missing_hex_digits(self):
        with pytest.raises(LexicalError):
            tokenize("$")


# =============================================================================
# String Literal Tests
# =============================================================================

class TestStrings:
    """Test string literal scanning."""

    def test_simple_string(self):
        token = tokenize('"Hello"')[0]
        assert token.type == TokenType.STRING
        assert token.value == "Hello"

    @pytest.mark.parametrize("escape,expected", [
        (r"\n", "\n"), (r"\t", "\t"), (r"\\", "\\"), (r"\"", '"'),
        (r"\,", ","), (r"\{", "{"), (r"\}", "}"),
    ])
    def test_escapes(self, escape, expected):
        assert tokenize(f'"{escape}"')[0].value == expected

    def test_unknown_escape(self):
        with pytest.raises(LexicalError, match="illegal character escape"):
            tokenize(r'"\q"')

    def test_unterminated(self):
        with pytest.raises(LexicalError, match="unterminated"):
            tokenize('"abc\n"')


# =============================================================================
# Operator and Punctuation Tests
# =============================================================================

class TestOperators:
    """Longest-match operator scanning."""

    @pytest.mark.parametrize("text,token_type", [
        ("&&", TokenType.AND_AND), ("||", TokenType.OR_OR), ("<<", TokenType.LSHIFT),
        (">>", TokenType.RSHIFT), ("==", TokenType.EQ), ("!=", TokenType.NE),
        ("<=", TokenType.LE), (">=", TokenType.GE), ("<", TokenType.LT),
        (">", TokenType.GT), ("!", TokenType.BANG), ("~", TokenType.TILDE),
        ("^", TokenType.CARET), ("|", TokenType.PIPE), ("[", TokenType.LBRACKET),
        ("]", TokenType.RBRACKET), ("(", TokenType.LPAREN), (")", TokenType.RPAREN),
    ])
    def test_operator(self, text, token_type):
        assert types(f"1 {text} 2")[1] == token_type

    def test_unexpected_character(self):
        with pytest.raises(LexicalError, match="unexpected character"):
            tokenize("ld a, ?")


# =============================================================================
# Comments, Continuations and Line Endings
# =============================================================================

class TestLineStructure:
    """Comments, continuations and newline handling."""

    def test_semicolon_comment(self):
        assert types("nop ; comment") == [TokenType.KEYWORD]

    def test_star_comment_at_line_start(self):
        assert types("* full line comment\nnop") == [TokenType.NEWLINE, TokenType.KEYWORD]

    def test_star_is_multiply_elsewhere(self):
        assert types("2 * 3")[1] == TokenType.STAR

    def test_continuation(self):
        tokens = tokenize("db 1, \\\n   2")
        assert [t.type for t in tokens] == [
            TokenType.KEYWORD, TokenType.NUMBER, TokenType.COMMA, TokenType.NUMBER,
        ]
        assert tokens[-1].line == 2

    def test_continuation_with_comment(self):
        assert TokenType.NEWLINE not in types("db 1, \\ ; more\n 2")

    def test_stray_backslash(self):
        with pytest.raises(LexicalError, match="outside a string"):
            tokenize("ld a, \\ b")

    @pytest.mark.parametrize("ending", ["\n", "\r\n", "\r"])
    def test_line_endings(self, ending):
        tokens = tokenize(f"nop{ending}halt")
        assert [t.type for t in tokens] == [TokenType.KEYWORD, TokenType.NEWLINE, TokenType.KEYWORD]
        assert tokens[2].line == 2

    def test_source_line(self):
        lexer = Lexer("nop\n  halt\n", "<test>")
        assert lexer.source_line(2) == "  halt"
        assert lexer.source_line(9) is None


# =============================================================================
# Mode Controller Tests
# =============================================================================

class TestModeController:
    """Two-slot controller: requests apply on the next commit."""

    def test_starts_normal(self):
        controller = LexerModeController()
        assert controller.current == LexerMode.NORMAL
        assert controller.pending is None

    def test_request_is_pending_until_commit(self):
        controller = LexerModeController()
        controller.request_mode_switch(LexerMode.RAW)
        assert controller.current == LexerMode.NORMAL
        assert controller.pending == LexerMode.RAW
        assert controller.commit() is True
        assert controller.current == LexerMode.RAW
        assert controller.pending is None

    def test_commit_without_request(self):
        assert LexerModeController().commit() is False

    def test_normal_clears_block_keywords(self):
        controller = LexerModeController()
        controller.request_mode_switch(LexerMode.RAW, closing="endm", opening="macro")
        controller.commit()
        assert controller.closing == "endm"
        controller.request_mode_switch(LexerMode.NORMAL, closing="endm")
        controller.commit()
        assert controller.closing is None
        assert controller.opening is None


# =============================================================================
# Raw Argument Mode Tests
# =============================================================================

def raw_arguments(text: str) -> list:
    """Lex `text` entirely in raw argument mode."""
    controller = LexerModeController()
    controller.request_mode_switch(LexerMode.RAW)
    return [t for t in Lexer(text, "<test>", controller).tokenize()]


class TestRawArguments:
    """Raw mode splits on top-level commas and keeps text verbatim."""

    def test_split_and_trim(self):
        tokens = raw_arguments('  "a" ,  b + 1  \n')
        assert [t.type for t in tokens] == [
            TokenType.RAW_STRING, TokenType.COMMA, TokenType.RAW_STRING,
            TokenType.NEWLINE, TokenType.EOF,
        ]
        assert tokens[0].value == '"a"'
        assert tokens[2].value == "b + 1"
        assert all(t.mode == LexerMode.RAW for t in tokens)

    def test_comma_inside_parentheses(self):
        tokens = raw_arguments("(1, 2), 3")
        assert tokens[0].value == "(1, 2)"
        assert tokens[2].value == "3"

    def test_comma_inside_string(self):
        assert raw_arguments('"x, y"')[0].value == '"x, y"'

    def test_escaped_comma_kept_verbatim(self):
        assert raw_arguments(r"a\, b")[0].value == r"a\, b"

    def test_comment_ends_arguments(self):
        tokens = raw_arguments("a ; b, c\n")
        assert [t.type for t in tokens] == [TokenType.RAW_STRING, TokenType.NEWLINE, TokenType.EOF]

    def test_continuation(self):
        tokens = raw_arguments("a, \\\n b\n")
        assert [t.value for t in tokens if t.type == TokenType.RAW_STRING] == ["a", "b"]

    def test_unterminated_string(self):
        with pytest.raises(LexicalError):
            raw_arguments('"abc\n')


# =============================================================================
# Raw Block Mode Tests
# =============================================================================

def raw_block(text: str, closing: str, opening: str) -> list:
    controller = LexerModeController()
    controller.request_mode_switch(LexerMode.RAW, closing=closing, opening=opening)
    lexer = Lexer(text, "<test>", controller)
    block = lexer.next_token()
    controller.request_mode_switch(LexerMode.NORMAL)
    return [block] + list(lexer.tokenize())


class TestRawBlocks:
    """Block capture up to the closing keyword, with nesting."""

    def test_body_is_verbatim(self):
        tokens = raw_block("  ld a, \\1\n  ret\nendm\n", "endm", "macro")
        assert tokens[0].type == TokenType.RAW_BLOCK
        assert tokens[0].value == "  ld a, \\1\n  ret\n"
        assert tokens[1].type == TokenType.NEWLINE

    def test_nested_blocks(self):
        source = "rept 2\n nop\nendr\nendr\nhalt"
        tokens = raw_block(source, "endr", "rept")
        assert tokens[0].value == "rept 2\n nop\nendr\n"
        assert tokens[2].value == "halt"

    def test_nested_labelled_macro(self):
        source = "Inner: macro\nendm\nendm\n"
        assert raw_block(source, "endm", "macro")[0].value == "Inner: macro\nendm\n"

    def test_closing_keyword_case_insensitive(self):
        assert raw_block("nop\n  ENDR\n", "endr", "rept")[0].value == "nop\n"

    def test_unterminated_block(self):
        with pytest.raises(LexicalError, match="expected 'endm'"):
            raw_block("nop\nret\n", "endm", "macro")


# =============================================================================
# Token Stream / Handshake Tests
# =============================================================================

class TestModeHandshake:
    """The parser switches modes after consuming the name, never before."""

    def test_macro_invocation_tags_and_modes(self):
        controller = LexerModeController()
        stream = TokenStream(Lexer('MyMacro "a", "b"\n', "<test>", controller))

        seen = [stream.advance()]
        controller.request_mode_switch(LexerMode.RAW)
        while stream.peek().type not in (TokenType.NEWLINE, TokenType.EOF):
            seen.append(stream.advance())
        seen.append(stream.advance())
        controller.request_mode_switch(LexerMode.NORMAL)
        seen.append(stream.advance())

        assert [t.type for t in seen] == [
            TokenType.IDENTIFIER, TokenType.RAW_STRING, TokenType.COMMA,
            TokenType.RAW_STRING, TokenType.NEWLINE, TokenType.EOF,
        ]
        assert [t.mode for t in seen] == [
            LexerMode.NORMAL, LexerMode.RAW, LexerMode.RAW,
            LexerMode.RAW, LexerMode.RAW, LexerMode.NORMAL,
        ]

    def test_buffered_tokens_keep_their_mode(self):
        controller = LexerModeController()
        stream = TokenStream(Lexer("a b c", "<test>", controller))
        stream.peek(1)
        controller.request_mode_switch(LexerMode.RAW)
        assert stream.advance().mode == LexerMode.NORMAL
        assert stream.advance().mode == LexerMode.NORMAL
        assert stream.advance().mode == LexerMode.RAW

    def test_peek_is_lazy(self):
        stream = TokenStream(Lexer("a b c", "<test>"))
        stream.peek()
        assert stream.buffered() == 1

    def test_eof_is_sticky(self):
        stream = TokenStream(Lexer("", "<test>"))
        assert stream.advance().type == TokenType.EOF
        assert stream.advance().type == TokenType.EOF
        assert stream.peek(3).type == TokenType.EOF
