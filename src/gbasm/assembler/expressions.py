"""
Assembly Expression Model
=========================

This module implements the expression trees that appear in instruction
operands and directive arguments, their parser, and their evaluator.

Unlike a one-pass assembler, this front end cannot always compute a value
when it reads it: labels may be defined further down the file, and section
addresses are only fixed by the linker. Expressions are therefore parsed
into a tree, and evaluation returns one of three outcomes:

- Known(value): the value is a signed 32-bit integer
- Deferred(missing): some symbols are not defined yet; try again later
- Invalid(reason): the expression can never be evaluated (division by zero,
  a string used as a number)

Supported Operations
--------------------
**Logical:** ``!``, ``&&``, ``||`` (results are 0 or 1)

**Comparison:** ``==``, ``!=``, ``<``, ``<=``, ``>``, ``>=``

**Arithmetic:** ``+``, ``-``, ``*``, ``/``, ``%`` (wrapping 32-bit)

**Bitwise:** ``&``, ``|``, ``^``, ``~``, ``<<``, ``>>``

**Functions:**
- high(x), low(x): byte selection
- bank(x): always deferred, the linker assigns banks
- isconst(x): 1 if x is known now, 0 otherwise
- def(name): 1 if the symbol is defined
- mul, div, round, ceil, floor: 16.16 fixed point
- sin, cos, tan, asin, acos, atan, atan2: 16.16 fixed point, where a full
  turn is 1.0
- strlen, strcmp, strin, strsub, strcat, strupr, strlwr: on string literals

Expression Grammar
------------------
Precedence from lowest to highest:

1. Logical OR: ||
2. Logical AND: &&
3. Comparison: == != < <= > >=
4. Additive: + -
5. Bitwise: | ^ &
6. Shift: << >>
7. Multiplicative: * / %
8. Unary: ! ~ + -
9. Primary: number, string, symbol, function call, (grouped expression)

Example
-------
>>> from gbasm.assembler.expressions import (
...     BinaryOp, Literal, MappingResolver, SymbolRef, evaluate)
>>> expr = BinaryOp("+", SymbolRef("Buffer"), Literal(10))
>>> evaluate(expr, MappingResolver({"Buffer": 0xC000}))
Known(value=49162)
>>> evaluate(expr, MappingResolver({}))
Deferred(missing=('Buffer',))
"""

from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Protocol, Union
import math

from gbasm.errors import (
    AssemblySyntaxError,
    ExpressionError,
    ExpressionNotConstantError,
    NumericConversionError,
)
from gbasm.assembler.keywords import FUNCTION_ARITY, FUNCTIONS
from gbasm.assembler.lexer import Token, TokenType


# =============================================================================
# Expression Tree Nodes
# =============================================================================

@dataclass(frozen=True)
class Literal:
    """Integer literal (signed 32-bit)."""
    value: int

    def __str__(self) -> str:
        if 0 <= self.value <= 9:
            return str(self.value)
        return f"${self.value & 0xFFFFFFFF:X}" if self.value >= 0 else str(self.value)


@dataclass(frozen=True)
class StringLiteral:
    text: str

    def __str__(self) -> str:
        escaped = self.text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'


@dataclass(frozen=True)
class SymbolRef:
    """Reference to a symbol by its qualified name (``Global.local``)."""
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Expression"

    def __str__(self) -> str:
        return f"{self.op}{_wrap(self.operand)}"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Expression"
    right: "Expression"

    def __str__(self) -> str:
        return f"{_wrap(self.left)} {self.op} {_wrap(self.right)}"


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: tuple["Expression", ...]

    def __str__(self) -> str:
        return f"{self.name}({', '.join(str(arg) for arg in self.args)})"


Expression = Union[Literal, StringLiteral, SymbolRef, UnaryOp, BinaryOp, FunctionCall]


def _wrap(expr: Expression) -> str:
    if isinstance(expr, (UnaryOp, BinaryOp)):
        return f"({expr})"
    return str(expr)


# =============================================================================
# Evaluation Results
# =============================================================================

@dataclass(frozen=True)
class Known:
    value: int


@dataclass(frozen=True)
class Deferred:
    """Evaluation is waiting on symbols that are not defined yet."""
    missing: tuple[str, ...] = ()


@dataclass(frozen=True)
class Invalid:
    reason: str


Resolution = Union[Known, Deferred, Invalid]


class SymbolResolver(Protocol):
    """Anything that can look up a symbol's current value."""

    def lookup_value(self, name: str) -> Optional[int | str]:
        ...


class MappingResolver:
    """Resolver over a plain dictionary, for predefined values and tests."""

    def __init__(self, values: Mapping[str, int | str]):
        self.values = values

    def lookup_value(self, name: str) -> Optional[int | str]:
        return self.values.get(name)


# =============================================================================
# Integer Helpers
# =============================================================================

FIXED_ONE = 1 << 16


def wrap_i32(value: int) -> int:
    """Wrap an arbitrary integer to the signed 32-bit range."""
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _divide(left: int, right: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(left) // abs(right)
    return quotient if (left < 0) == (right < 0) else -quotient


def _shift_left(value: int, count: int) -> int:
    return 0 if count >= 32 else value << count


def _shift_right(value: int, count: int) -> int:
    # Arithmetic shift; Python's >> on negative ints already sign-fills
    return value >> min(count, 31)


_BINARY_OPERATORS: dict[str, Callable[[int, int], int]] = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "&": lambda a, b: a & b,
    "|": lambda a, b: a | b,
    "^": lambda a, b: a ^ b,
    "<<": _shift_left,
    ">>": _shift_right,
    "==": lambda a, b: int(a == b),
    "!=": lambda a, b: int(a != b),
    "<": lambda a, b: int(a < b),
    "<=": lambda a, b: int(a <= b),
    ">": lambda a, b: int(a > b),
    ">=": lambda a, b: int(a >= b),
}


# =============================================================================
# Evaluator
# =============================================================================

def evaluate(expr: Expression, resolver: Optional[SymbolResolver] = None) -> Resolution:
    """
    Evaluate an expression to a signed 32-bit integer.

    Args:
        expr: The expression tree
        resolver: Symbol lookup; with None, every symbol is undefined

    Returns:
        Known, Deferred or Invalid
    """
    if isinstance(expr, Literal):
        return Known(wrap_i32(expr.value))

    if isinstance(expr, StringLiteral):
        return Invalid(f"string {expr} used as a number")

    if isinstance(expr, SymbolRef):
        value = resolver.lookup_value(expr.name) if resolver else None
        if value is None:
            return Deferred((expr.name,))
        if isinstance(value, str):
            return Invalid(f"string symbol '{expr.name}' used as a number")
        return Known(wrap_i32(value))

    if isinstance(expr, UnaryOp):
        operand = evaluate(expr.operand, resolver)
        if not isinstance(operand, Known):
            return operand
        if expr.op == "-":
            return Known(wrap_i32(-operand.value))
        if expr.op == "~":
            return Known(wrap_i32(~operand.value))
        if expr.op == "!":
            return Known(int(operand.value == 0))
        return operand

    if isinstance(expr, BinaryOp):
        return _evaluate_binary(expr, resolver)

    if isinstance(expr, FunctionCall):
        return _evaluate_function(expr, resolver)

    return Invalid(f"cannot evaluate {expr!r}")


def _combine(*results: Resolution) -> Optional[Resolution]:
    """Merge non-Known results; Invalid wins over Deferred."""
    missing: list[str] = []
    for result in results:
        if isinstance(result, Invalid):
            return result
        if isinstance(result, Deferred):
            missing.extend(name for name in result.missing if name not in missing)
    if missing or any(isinstance(result, Deferred) for result in results):
        return Deferred(tuple(missing))
    return None


def _evaluate_binary(expr: BinaryOp, resolver: Optional[SymbolResolver]) -> Resolution:
    left = evaluate(expr.left, resolver)
    right = evaluate(expr.right, resolver)

    # A known left side can settle a logical operator on its own
    if expr.op in ("&&", "||") and isinstance(left, Known):
        if expr.op == "&&" and left.value == 0:
            return Known(0)
        if expr.op == "||" and left.value != 0:
            return Known(1)

    pending = _combine(left, right)
    if pending is not None:
        return pending
    a, b = left.value, right.value

    if expr.op == "&&":
        return Known(int(a != 0 and b != 0))
    if expr.op == "||":
        return Known(int(a != 0 or b != 0))
    if expr.op in ("/", "%"):
        if b == 0:
            return Invalid("division by zero" if expr.op == "/" else "modulo by zero")
        quotient = _divide(a, b)
        return Known(wrap_i32(quotient if expr.op == "/" else a - quotient * b))
    if expr.op in ("<<", ">>") and b < 0:
        return Invalid(f"shift by negative amount {b}")

    operator = _BINARY_OPERATORS.get(expr.op)
    if operator is None:
        return Invalid(f"unknown operator '{expr.op}'")
    return Known(wrap_i32(operator(a, b)))


def _evaluate_function(call: FunctionCall, resolver: Optional[SymbolResolver]) -> Resolution:
    name = call.name

    if name == "bank":
        # Banks are assigned at link time
        return Deferred(tuple(symbols_in(call)) or ("bank",))

    if name == "def":
        arg = call.args[0]
        if not isinstance(arg, SymbolRef):
            return Invalid("def() expects a symbol name")
        if resolver is None:
            return Known(0)
        # Labels in floating sections are defined but have no value yet
        is_defined = getattr(resolver, "is_defined", None)
        if is_defined is not None:
            return Known(int(is_defined(arg.name)))
        return Known(int(resolver.lookup_value(arg.name) is not None))

    if name in ("strlen", "strcmp", "strin"):
        texts = []
        for arg in call.args:
            text = _string_value(arg, resolver)
            if not isinstance(text, str):
                return text
            texts.append(text)
        if name == "strlen":
            return Known(len(texts[0]))
        if name == "strcmp":
            return Known((texts[0] > texts[1]) - (texts[0] < texts[1]))
        return Known(texts[0].find(texts[1]) + 1)

    if name in ("strsub", "strcat", "strupr", "strlwr"):
        return Invalid(f"{name}() returns a string, not a number")

    args = [evaluate(arg, resolver) for arg in call.args]

    if name == "isconst":
        if isinstance(args[0], Invalid):
            return args[0]
        return Known(int(isinstance(args[0], Known)))

    pending = _combine(*args)
    if pending is not None:
        return pending
    values = [arg.value for arg in args]

    if name == "high":
        return Known((values[0] >> 8) & 0xFF)
    if name == "low":
        return Known(values[0] & 0xFF)
    return _evaluate_fixed_point(name, values)


def _evaluate_fixed_point(name: str, values: list[int]) -> Resolution:
    """16.16 fixed-point functions. Angles are in turns (1.0 = 360 degrees)."""
    x = values[0]

    if name == "mul":
        return Known(wrap_i32((x * values[1]) >> 16))
    if name == "div":
        if values[1] == 0:
            return Invalid("division by zero")
        return Known(wrap_i32(_divide(x << 16, values[1])))
    if name == "floor":
        return Known(wrap_i32(x & ~0xFFFF))
    if name == "ceil":
        return Known(wrap_i32((x + 0xFFFF) & ~0xFFFF))
    if name == "round":
        return Known(wrap_i32((x + 0x8000) & ~0xFFFF))

    turns = x / FIXED_ONE
    try:
        if name == "sin":
            result = math.sin(turns * 2 * math.pi)
        elif name == "cos":
            result = math.cos(turns * 2 * math.pi)
        elif name == "tan":
            result = math.tan(turns * 2 * math.pi)
        elif name == "asin":
            result = math.asin(turns) / (2 * math.pi)
        elif name == "acos":
            result = math.acos(turns) / (2 * math.pi)
        elif name == "atan":
            result = math.atan(turns) / (2 * math.pi)
        elif name == "atan2":
            result = math.atan2(turns, values[1] / FIXED_ONE) / (2 * math.pi)
        else:
            return Invalid(f"unknown function '{name}'")
    except ValueError:
        return Invalid(f"{name}() argument out of domain")

    return Known(wrap_i32(round(result * FIXED_ONE)))


def _string_value(expr: Expression, resolver: Optional[SymbolResolver]) -> str | Resolution:
    """Evaluate a string-valued expression, or return why it is not one."""
    if isinstance(expr, StringLiteral):
        return expr.text

    if isinstance(expr, SymbolRef):
        value = resolver.lookup_value(expr.name) if resolver else None
        if isinstance(value, str):
            return value
        if value is None:
            return Deferred((expr.name,))
        return Invalid(f"'{expr.name}' is not a string")

    if isinstance(expr, FunctionCall):
        if expr.name in ("strupr", "strlwr"):
            text = _string_value(expr.args[0], resolver)
            if not isinstance(text, str):
                return text
            return text.upper() if expr.name == "strupr" else text.lower()

        if expr.name == "strcat":
            parts = []
            for arg in expr.args:
                text = _string_value(arg, resolver)
                if not isinstance(text, str):
                    return text
                parts.append(text)
            return "".join(parts)

        if expr.name == "strsub":
            text = _string_value(expr.args[0], resolver)
            if not isinstance(text, str):
                return text
            bounds = [evaluate(arg, resolver) for arg in expr.args[1:]]
            pending = _combine(*bounds)
            if pending is not None:
                return pending
            start, length = bounds[0].value, bounds[1].value
            if start < 1 or length < 0:
                return Invalid(f"strsub() position {start} or length {length} out of range")
            return text[start - 1:start - 1 + length]

    return Invalid(f"{expr} is not a string")


def evaluate_string(expr: Expression, resolver: Optional[SymbolResolver] = None) -> str:
    """
    Evaluate a string-valued expression (literal, EQUS symbol or string function).

    Raises:
        ExpressionNotConstantError: If a symbol is not defined yet
        ExpressionError: If the expression is not a string
    """
    result = _string_value(expr, resolver)
    if isinstance(result, str):
        return result
    if isinstance(result, Deferred):
        raise ExpressionNotConstantError(list(result.missing))
    raise ExpressionError(result.reason)


def symbols_in(expr: Expression) -> list[str]:
    """List the symbol names an expression refers to, in order of appearance."""
    if isinstance(expr, SymbolRef):
        return [expr.name]
    if isinstance(expr, UnaryOp):
        return symbols_in(expr.operand)
    if isinstance(expr, BinaryOp):
        names = symbols_in(expr.left)
        return names + [name for name in symbols_in(expr.right) if name not in names]
    if isinstance(expr, FunctionCall):
        names: list[str] = []
        for arg in expr.args:
            names.extend(name for name in symbols_in(arg) if name not in names)
        return names
    return []


# =============================================================================
# Conversions
# =============================================================================

OPERAND_RANGES = {
    8: (-128, 255),
    16: (-32768, 65535),
}

SIGNED_RANGES = {
    8: (-128, 127),
}


def to_operand(
    expr: Expression,
    width: int,
    resolver: Optional[SymbolResolver] = None,
    signed: bool = False,
) -> Expression:
    """
    Turn an expression into an instruction operand of the given width.

    A known value must fit in the width, signed or unsigned; it is returned
    as a Literal holding the masked value. An expression that is not yet
    known is returned unchanged for a later pass.

    Args:
        expr: The operand expression
        width: 8 or 16 bits
        resolver: Symbol lookup
        signed: Accept only the two's complement range (e8 offsets)

    Raises:
        NumericConversionError: If a known value does not fit
        ExpressionError: If the expression is invalid
    """
    result = evaluate(expr, resolver)
    if isinstance(result, Invalid):
        raise ExpressionError(result.reason)
    if isinstance(result, Deferred):
        return expr

    low, high = SIGNED_RANGES[width] if signed else OPERAND_RANGES[width]
    if not low <= result.value <= high:
        raise NumericConversionError(result.value, width)
    return Literal(result.value & ((1 << width) - 1))


def require_constant(expr: Expression, resolver: Optional[SymbolResolver] = None) -> int:
    """
    Evaluate an expression whose value is needed right now.

    Raises:
        ExpressionNotConstantError: If the value depends on undefined symbols
        ExpressionError: If the expression is invalid
    """
    result = evaluate(expr, resolver)
    if isinstance(result, Known):
        return result.value
    if isinstance(result, Deferred):
        raise ExpressionNotConstantError(list(result.missing))
    raise ExpressionError(result.reason)


# =============================================================================
# Expression Parser
# =============================================================================

class TokenSource(Protocol):
    def peek(self, offset: int = 0) -> Token:
        ...

    def advance(self) -> Token:
        ...


class ExpressionParser:
    """
    Recursive descent parser producing Expression trees.

    The parser reads from the same token stream as the statement parser and
    stops at the first token that cannot continue the expression, leaving
    it unconsumed.

    Local identifiers (``.loop``) are passed through the `qualify` callback
    so the tree always holds fully qualified names.
    """

    # Binary precedence levels, lowest first
    LEVELS: list[dict[TokenType, str]] = [
        {TokenType.OR_OR: "||"},
        {TokenType.AND_AND: "&&"},
        {
            TokenType.EQ: "==", TokenType.NE: "!=",
            TokenType.LT: "<", TokenType.LE: "<=",
            TokenType.GT: ">", TokenType.GE: ">=",
        },
        {TokenType.PLUS: "+", TokenType.MINUS: "-"},
        {TokenType.PIPE: "|", TokenType.CARET: "^", TokenType.AMPERSAND: "&"},
        {TokenType.LSHIFT: "<<", TokenType.RSHIFT: ">>"},
        {TokenType.STAR: "*", TokenType.SLASH: "/", TokenType.PERCENT: "%"},
    ]

    UNARY = {
        TokenType.BANG: "!",
        TokenType.TILDE: "~",
        TokenType.PLUS: "+",
        TokenType.MINUS: "-",
    }

    def __init__(
        self,
        tokens: TokenSource,
        qualify: Optional[Callable[[str], str]] = None,
    ):
        self.tokens = tokens
        self.qualify = qualify or (lambda name: name)

    def parse(self) -> Expression:
        return self._parse_level(0)

    def starts_expression(self, token: Optional[Token] = None) -> bool:
        """Check whether a token can begin an expression."""
        token = token or self.tokens.peek()
        if token.type in (TokenType.NUMBER, TokenType.STRING, TokenType.IDENTIFIER,
                          TokenType.LOCAL_IDENTIFIER, TokenType.LPAREN):
            return True
        if token.type in self.UNARY:
            return True
        return token.type == TokenType.KEYWORD and token.value in FUNCTIONS

    # =========================================================================
    # Recursive Descent
    # =========================================================================

    def _parse_level(self, level: int) -> Expression:
        if level == len(self.LEVELS):
            return self._parse_unary()

        operators = self.LEVELS[level]
        left = self._parse_level(level + 1)
        while self.tokens.peek().type in operators:
            op = operators[self.tokens.advance().type]
            right = self._parse_level(level + 1)
            left = BinaryOp(op, left, right)
        return left

    def _parse_unary(self) -> Expression:
        token = self.tokens.peek()
        if token.type in self.UNARY:
            self.tokens.advance()
            operand = self._parse_unary()
            if token.type == TokenType.PLUS:
                return operand
            return UnaryOp(self.UNARY[token.type], operand)
        return self._parse_primary()

    def _parse_primary(self) -> Expression:
        token = self.tokens.peek()

        if token.type == TokenType.NUMBER:
            self.tokens.advance()
            return Literal(token.value)

        if token.type == TokenType.STRING:
            self.tokens.advance()
            return StringLiteral(token.value)

        if token.type == TokenType.IDENTIFIER:
            self.tokens.advance()
            return SymbolRef(token.value)

        if token.type == TokenType.LOCAL_IDENTIFIER:
            self.tokens.advance()
            return SymbolRef(self.qualify(token.value))

        if token.type == TokenType.LPAREN:
            self.tokens.advance()
            expr = self.parse()
            self._expect(TokenType.RPAREN, "expected ')' to close expression")
            return expr

        if token.type == TokenType.KEYWORD and token.value in FUNCTIONS:
            return self._parse_function_call()

        raise self._error(token, "expected expression")

    def _parse_function_call(self) -> FunctionCall:
        name_token = self.tokens.advance()
        name = name_token.value
        self._expect(TokenType.LPAREN, f"expected '(' after {name}")

        args: list[Expression] = []
        if self.tokens.peek().type != TokenType.RPAREN:
            args.append(self.parse())
            while self.tokens.peek().type == TokenType.COMMA:
                self.tokens.advance()
                args.append(self.parse())
        self._expect(TokenType.RPAREN, f"expected ')' after {name} arguments")

        minimum, maximum = FUNCTION_ARITY[name]
        if not minimum <= len(args) <= maximum:
            expected = str(minimum) if minimum == maximum else f"{minimum} or more"
            raise AssemblySyntaxError(
                f"{name}() takes {expected} argument{'s' if maximum > 1 else ''}, "
                f"got {len(args)}",
                name_token.location,
            )
        return FunctionCall(name, tuple(args))

    def _expect(self, token_type: TokenType, message: str) -> Token:
        token = self.tokens.peek()
        if token.type != token_type:
            raise self._error(token, message)
        return self.tokens.advance()

    def _error(self, token: Token, message: str) -> AssemblySyntaxError:
        found = token.type.name if token.value is None else repr(token.value)
        return AssemblySyntaxError(f"{message}, got {found}", token.location)


def parse_expression(
    tokens: TokenSource,
    qualify: Optional[Callable[[str], str]] = None,
) -> Expression:
    """Convenience function: parse one expression from a token source."""
    return ExpressionParser(tokens, qualify).parse()
