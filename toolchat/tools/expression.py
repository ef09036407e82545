"""Arithmetic expression evaluator used by the calculator tool.

Expressions are tokenized, parsed by a small recursive-descent parser into a tree
and evaluated by walking that tree. The grammar is closed:

    expression := term (("+" | "-") term)*
    term       := unary (("*" | "/" | "%") unary)*
    unary      := ("+" | "-") unary | power
    power      := primary ("**" unary)?
    primary    := NUMBER | CONSTANT | FUNCTION "(" arguments ")" | "(" expression ")"

Only the functions in ``FUNCTIONS`` and the constants in ``CONSTANTS`` are
reachable; any other identifier is rejected.
"""

import math
import re
from collections.abc import Callable
from dataclasses import dataclass

from toolchat.errors import (
    InvalidExpressionError,
    InvalidResultError,
    UnmatchedParenthesisError,
    UnsafeInputError,
)

DENYLIST = (
    "eval",
    "exec",
    "function",
    "constructor",
    "import",
    "require",
    "process",
    "global",
    "window",
    "document",
    "lambda",
    "compile",
    "open",
    "getattr",
    "subprocess",
    "builtins",
    "__",
)


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


FUNCTIONS: dict[str, tuple[Callable[..., float], int]] = {
    "sqrt": (math.sqrt, 1),
    "abs": (math.fabs, 1),
    "round": (_round_half_up, 1),
    "floor": (lambda x: float(math.floor(x)), 1),
    "ceil": (lambda x: float(math.ceil(x)), 1),
    "sin": (math.sin, 1),
    "cos": (math.cos, 1),
    "tan": (math.tan, 1),
    "log": (math.log, 1),
    "exp": (math.exp, 1),
    "pow": (math.pow, 2),
}

CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "e": math.e,
}

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
      | (?P<op>\*\*|[-+*/%(),])
    )
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Token:
    kind: str  # number, name, op, end
    value: str
    position: int


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple["Node", ...]


Node = Number | UnaryOp | BinaryOp | Call


def check_denylist(expression: str) -> None:
    """Reject expressions containing identifiers associated with code execution."""
    lowered = expression.lower()
    for token in DENYLIST:
        if token in lowered:
            raise UnsafeInputError(f"Expression contains disallowed token '{token}'")


def check_parentheses(expression: str) -> None:
    """Ensure every opening parenthesis has a matching close, in order."""
    depth = 0
    for char in expression:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise UnmatchedParenthesisError("Unmatched closing parenthesis")
    if depth != 0:
        raise UnmatchedParenthesisError("Unmatched opening parenthesis")


def tokenize(expression: str) -> list[Token]:
    tokens: list[Token] = []
    position = 0
    length = len(expression)

    while position < length:
        if expression[position:].strip() == "":
            break
        match = _TOKEN_RE.match(expression, position)
        if not match:
            offset = position + len(expression[position:]) - len(expression[position:].lstrip())
            raise InvalidExpressionError(f"Unexpected character '{expression[offset]}' at position {offset}")

        kind = match.lastgroup
        tokens.append(Token(kind=kind, value=match.group(kind), position=match.start(kind)))
        position = match.end()

    tokens.append(Token(kind="end", value="", position=length))
    return tokens


class Parser:
    """Recursive-descent parser producing an expression tree."""

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _accept(self, *ops: str) -> Token | None:
        if self.current.kind == "op" and self.current.value in ops:
            return self._advance()
        return None

    def _expect(self, op: str) -> None:
        if not self._accept(op):
            raise InvalidExpressionError(f"Expected '{op}' at position {self.current.position}")

    def parse(self) -> Node:
        if self.current.kind == "end":
            raise InvalidExpressionError("Expression is empty")

        node = self._expression()
        if self.current.kind != "end":
            raise InvalidExpressionError(
                f"Unexpected token '{self.current.value}' at position {self.current.position}"
            )
        return node

    def _expression(self) -> Node:
        node = self._term()
        while token := self._accept("+", "-"):
            node = BinaryOp(token.value, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while token := self._accept("*", "/", "%"):
            node = BinaryOp(token.value, node, self._unary())
        return node

    def _unary(self) -> Node:
        if token := self._accept("+", "-"):
            return UnaryOp(token.value, self._unary())
        return self._power()

    def _power(self) -> Node:
        node = self._primary()
        if self._accept("**"):
            # Right-associative: 2 ** 3 ** 2 == 2 ** 9
            node = BinaryOp("**", node, self._unary())
        return node

    def _primary(self) -> Node:
        token = self.current

        if token.kind == "number":
            self._advance()
            return Number(float(token.value))

        if token.kind == "name":
            self._advance()
            name = token.value.lower()
            if name in FUNCTIONS:
                return self._call(name)
            if name in CONSTANTS:
                return Number(CONSTANTS[name])
            raise InvalidExpressionError(f"Unknown identifier '{token.value}'")

        if self._accept("("):
            node = self._expression()
            self._expect(")")
            return node

        if token.kind == "end":
            raise InvalidExpressionError("Unexpected end of expression")
        raise InvalidExpressionError(f"Unexpected token '{token.value}' at position {token.position}")

    def _call(self, name: str) -> Node:
        self._expect("(")
        args: list[Node] = []
        if not self._accept(")"):
            args.append(self._expression())
            while self._accept(","):
                args.append(self._expression())
            self._expect(")")

        _, arity = FUNCTIONS[name]
        if len(args) != arity:
            raise InvalidExpressionError(f"{name}() takes {arity} argument(s), got {len(args)}")
        return Call(name, tuple(args))


def evaluate_tree(node: Node) -> float:
    """Evaluate a parsed expression tree."""
    if isinstance(node, Number):
        return node.value

    if isinstance(node, UnaryOp):
        operand = evaluate_tree(node.operand)
        return -operand if node.op == "-" else operand

    if isinstance(node, BinaryOp):
        left = evaluate_tree(node.left)
        right = evaluate_tree(node.right)
        match node.op:
            case "+":
                return left + right
            case "-":
                return left - right
            case "*":
                return left * right
            case "/":
                if right == 0:
                    raise InvalidResultError("Division by zero")
                return left / right
            case "%":
                if right == 0:
                    raise InvalidResultError("Modulo by zero")
                return math.fmod(left, right)
            case "**":
                return math.pow(left, right)
        raise InvalidExpressionError(f"Unsupported operator '{node.op}'")

    func, _ = FUNCTIONS[node.name]
    return func(*(evaluate_tree(arg) for arg in node.args))


def format_number(value: float) -> str:
    """Render integers without a decimal point, others with up to 10 decimals."""
    if value.is_integer():
        return str(int(value))
    return f"{value:.10f}".rstrip("0").rstrip(".")


def evaluate(expression: str) -> str:
    """Evaluate an arithmetic expression and return the formatted result.

    Raises:
        UnsafeInputError: the expression contains a denylisted token
        UnmatchedParenthesisError: parentheses are not balanced
        InvalidExpressionError: the expression does not parse
        InvalidResultError: the result is not a finite real number
    """
    check_denylist(expression)
    check_parentheses(expression)

    try:
        tree = Parser(tokenize(expression)).parse()
        value = evaluate_tree(tree)
    except RecursionError as e:
        raise InvalidExpressionError("Expression is nested too deeply") from e
    except (ValueError, OverflowError) as e:
        raise InvalidResultError(f"Calculation error: {e}") from e

    if not isinstance(value, float) or not math.isfinite(value):
        raise InvalidResultError("Result is not a finite number")

    return format_number(value)
