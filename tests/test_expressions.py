# =============================================================================
# test_expressions.py - Expression Parser and Evaluator Tests
# =============================================================================
# Tests for expression trees, their parser and the tri-state evaluator.
#
# Test coverage includes:
#   - Operator precedence and associativity
#   - Wrapping 32-bit arithmetic, truncating division, shifts
#   - Known / Deferred / Invalid results
#   - Built-in functions (byte selection, fixed point, strings)
#   - Operand conversion and constant requirements
# =============================================================================

import pytest
from gbasm.assembler.expressions import (
    FIXED_ONE,
    BinaryOp,
    Deferred,
    ExpressionParser,
    FunctionCall,
    Invalid,
    Known,
    Literal,
    MappingResolver,
    StringLiteral,
    SymbolRef,
    UnaryOp,
    evaluate,
    evaluate_string,
    require_constant,
    symbols_in,
    to_operand,
    wrap_i32,
)
from gbasm.assembler.lexer import Lexer, TokenStream, TokenType
from gbasm.errors import (
    AssemblySyntaxError,
    ExpressionError,
    ExpressionNotConstantError,
    NumericConversionError,
)


# =============================================================================
# Helper Functions
# =============================================================================

def parse(text: str, qualify=None):
    stream = TokenStream(Lexer(text, "<test>"))
    return ExpressionParser(stream, qualify).parse()


def value_of(text: str, **symbols) -> int:
    result = evaluate(parse(text), MappingResolver(symbols))
    assert isinstance(result, Known), result
    return result.value


# =============================================================================
# Parser Tests
# =============================================================================

class TestExpressionParser:
    """Tree shapes produced by the recursive-descent parser."""

    def test_literal(self):
        assert parse("42") == Literal(42)

    def test_symbol(self):
        assert parse("Buffer") == SymbolRef("Buffer")

    def test_local_symbol_is_qualified(self):
        assert parse(".loop", qualify=lambda name: "Main" + name) == SymbolRef("Main.loop")

    def test_multiplication_binds_tighter(self):
        assert parse("1 + 2 * 3") == BinaryOp("+", Literal(1), BinaryOp("*", Literal(2), Literal(3)))

    def test_left_associative(self):
        assert parse("8 - 4 - 2") == BinaryOp("-", BinaryOp("-", Literal(8), Literal(4)), Literal(2))

    def test_parentheses(self):
        assert parse("(1 + 2) * 3") == BinaryOp("*", BinaryOp("+", Literal(1), Literal(2)), Literal(3))

    def test_unary_plus_is_dropped(self):
        assert parse("+5") == Literal(5)

    def test_unary_minus(self):
        assert parse("-x") == UnaryOp("-", SymbolRef("x"))

    def test_function_call(self):
        assert parse("high(Label)") == FunctionCall("high", (SymbolRef("Label"),))

    def test_stops_at_unusable_token(self):
        stream = TokenStream(Lexer("1 + 2, 3", "<test>"))
        ExpressionParser(stream).parse()
        assert stream.peek().type == TokenType.COMMA

    def test_missing_operand(self):
        with pytest.raises(AssemblySyntaxError, match="expected expression"):
            parse("1 +")

    def test_unclosed_parenthesis(self):
        with pytest.raises(AssemblySyntaxError, match="expected '\\)'"):
            parse("(1 + 2")

    def test_wrong_arity(self):
        with pytest.raises(AssemblySyntaxError, match="takes 1 argument"):
            parse("high(1, 2)")

    def test_starts_expression(self):
        stream = TokenStream(Lexer("( ] ld", "<test>"))
        parser = ExpressionParser(stream)
        assert parser.starts_expression()
        assert not parser.starts_expression(stream.peek(1))
        assert not parser.starts_expression(stream.peek(2))

    def test_str_round_trips_operators(self):
        assert str(parse("(x + 1) * 2")) == "(x + 1) * 2"


# =============================================================================
# Arithmetic Tests
# =============================================================================

class TestArithmetic:
    """Signed 32-bit arithmetic."""

    @pytest.mark.parametrize("text,expected", [
        ("1 + 2 * 3", 7),
        ("10 / 3", 3),
        ("-7 / 2", -3),
        ("-7 % 2", -1),
        ("7 % -2", 1),
        ("$F0 | $0F", 0xFF),
        ("$FF & $0F", 0x0F),
        ("$FF ^ $0F", 0xF0),
        ("~0", -1),
        ("!0", 1),
        ("!5", 0),
        ("1 << 4", 16),
        ("-16 >> 2", -4),
        ("3 == 3", 1),
        ("3 != 3", 0),
        ("2 < 3", 1),
        ("3 <= 2", 0),
        ("1 && 0", 0),
        ("1 || 0", 1),
        ("1 + 2 == 3 && 4 > 3", 1),
    ])
    def test_value(self, text, expected):
        assert value_of(text) == expected

    def test_overflow_wraps(self):
        assert value_of("$7FFFFFFF + 1") == -0x80000000

    def test_large_shift(self):
        assert value_of("1 << 32") == 0
        assert value_of("-1 >> 40") == -1
        assert value_of("5 >> 40") == 0

    def test_negative_shift_is_invalid(self):
        assert isinstance(evaluate(parse("1 << -1")), Invalid)

    def test_division_by_zero(self):
        assert evaluate(parse("1 / 0")) == Invalid("division by zero")
        assert evaluate(parse("1 % 0")) == Invalid("modulo by zero")

    def test_wrap_i32(self):
        assert wrap_i32(0xFFFFFFFF) == -1
        assert wrap_i32(0x1_0000_0005) == 5


# =============================================================================
# Deferred Evaluation Tests
# =============================================================================

class TestDeferred:
    """Undefined symbols defer; invalid beats deferred."""

    def test_symbol_lookup(self):
        assert value_of("Base + 2", Base=0xC000) == 0xC002

    def test_undefined_symbol_defers(self):
        assert evaluate(parse("Later + Other")) == Deferred(("Later", "Other"))

    def test_invalid_wins_over_deferred(self):
        assert isinstance(evaluate(parse("Later + 1 / 0")), Invalid)

    def test_short_circuit_and(self):
        assert evaluate(parse("0 && Later")) == Known(0)

    def test_short_circuit_or(self):
        assert evaluate(parse("1 || Later")) == Known(1)

    def test_no_short_circuit_on_deferred_left(self):
        assert isinstance(evaluate(parse("Later && 0")), Deferred)

    def test_string_symbol_as_number(self):
        result = evaluate(parse("Name"), MappingResolver({"Name": "Tetris"}))
        assert isinstance(result, Invalid)

    def test_symbols_in(self):
        assert symbols_in(parse("Foo + Bar * Foo - high(Baz)")) == ["Foo", "Bar", "Baz"]


# =============================================================================
# Function Tests
# =============================================================================

class TestFunctions:
    """Built-in functions."""

    def test_high_low(self):
        assert value_of("high($1234)") == 0x12
        assert value_of("low($1234)") == 0x34

    def test_bank_is_always_deferred(self):
        assert isinstance(evaluate(parse("bank(Main)"), MappingResolver({"Main": 0})), Deferred)

    def test_isconst(self):
        assert value_of("isconst(3)") == 1
        assert value_of("isconst(Later)") == 0

    def test_def(self):
        assert value_of("def(X)", X=1) == 1
        assert value_of("def(Y)", X=1) == 0

    def test_fixed_point_mul_div(self):
        assert value_of("mul(2.0, 1.5)") == 3 * FIXED_ONE
        assert value_of("div(3.0, 2.0)") == FIXED_ONE + FIXED_ONE // 2

    def test_rounding(self):
        assert value_of("floor(1.75)") == FIXED_ONE
        assert value_of("ceil(1.25)") == 2 * FIXED_ONE
        assert value_of("round(1.5)") == 2 * FIXED_ONE

    def test_trigonometry_uses_turns(self):
        assert value_of("sin(0.25)") == FIXED_ONE
        assert value_of("cos(0.5)") == -FIXED_ONE

    def test_asin_out_of_domain(self):
        assert isinstance(evaluate(parse("asin(2.0)")), Invalid)

    def test_string_functions(self):
        assert value_of('strlen("hello")') == 5
        assert value_of('strcmp("a", "b")') == -1
        assert value_of('strin("hello", "ll")') == 3
        assert value_of('strin("hello", "z")') == 0

    def test_string_result_in_numeric_context(self):
        assert isinstance(evaluate(parse('strcat("a", "b")')), Invalid)

    def test_evaluate_string(self):
        assert evaluate_string(parse('strupr(strcat("ab", "c"))')) == "ABC"
        assert evaluate_string(parse('strsub("hello", 2, 3)')) == "ell"
        assert evaluate_string(parse("Title"), MappingResolver({"Title": "Game"})) == "Game"

    def test_evaluate_string_undefined(self):
        with pytest.raises(ExpressionNotConstantError):
            evaluate_string(parse("Title"))

    def test_evaluate_string_not_a_string(self):
        with pytest.raises(ExpressionError):
            evaluate_string(parse("1 + 2"))

    def test_string_literal_str(self):
        assert str(StringLiteral('say "hi"')) == '"say \\"hi\\""'


# =============================================================================
# Conversion Tests
# =============================================================================

class TestConversions:
    """Operand conversion and constant requirements."""

    def test_to_operand_masks(self):
        assert to_operand(Literal(-1), 8) == Literal(0xFF)
        assert to_operand(Literal(-2), 16) == Literal(0xFFFE)

    @pytest.mark.parametrize("width,value", [(8, 256), (8, -129), (16, 0x10000), (16, -32769)])
    def test_to_operand_out_of_range(self, width, value):
        with pytest.raises(NumericConversionError):
            to_operand(Literal(value), width)

    def test_to_operand_keeps_deferred(self):
        expr = SymbolRef("Later")
        assert to_operand(expr, 16) is expr

    def test_to_operand_invalid(self):
        with pytest.raises(ExpressionError):
            to_operand(StringLiteral("x"), 8)

    def test_require_constant(self):
        assert require_constant(parse("2 + 2")) == 4

    def test_require_constant_deferred(self):
        with pytest.raises(ExpressionNotConstantError) as info:
            require_constant(parse("Later"))
        assert "Later" in str(info.value)
