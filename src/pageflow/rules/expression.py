"""
Restricted boolean expression language.

Tokenizer and recursive-descent parser for condition expressions such as

    count > 3 && status == 'ready'
    !(user.role in ['admin', 'owner']) || items.length == 0

Expressions are parsed into an immutable tree and evaluated against a plain
mapping of names. There is no function call syntax and no access to Python
attributes, so an expression can only read the values it is given.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional, Union

from ..core.errors import ExpressionError


KEYWORDS = {"true", "false", "null", "undefined", "and", "or", "not", "in"}

# Longest operators first so "===" wins over "==" and "=".
OPERATORS = (
    "===", "!==", "==", "!=", "<=", ">=", "&&", "||",
    "<", ">", "!", "(", ")", "[", "]", ".", ",", "-",
)

COMPARISON_OPS = {"==", "===", "!=", "!==", "<", "<=", ">", ">="}


@dataclass(frozen=True)
class Token:
    type: str  # NUMBER, STRING, NAME, KEYWORD, OP, EOF
    value: Any
    position: int


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    i = 0
    length = len(source)

    while i < length:
        ch = source[i]

        if ch.isspace():
            i += 1
            continue

        if ch.isdigit() or (ch == "." and i + 1 < length and source[i + 1].isdigit()):
            start = i
            while i < length and (source[i].isdigit() or source[i] == "."):
                i += 1
            text = source[start:i]
            try:
                value: Union[int, float] = float(text) if "." in text else int(text)
            except ValueError:
                raise ExpressionError(f"Invalid number: {text}", expression=source, position=start)
            tokens.append(Token("NUMBER", value, start))
            continue

        if ch in ("'", '"'):
            start = i
            quote = ch
            i += 1
            chars = []
            while i < length and source[i] != quote:
                if source[i] == "\\" and i + 1 < length:
                    i += 1
                    chars.append({"n": "\n", "t": "\t"}.get(source[i], source[i]))
                else:
                    chars.append(source[i])
                i += 1
            if i >= length:
                raise ExpressionError("Unterminated string", expression=source, position=start)
            i += 1
            tokens.append(Token("STRING", "".join(chars), start))
            continue

        if ch.isalpha() or ch in "_$":
            start = i
            while i < length and (source[i].isalnum() or source[i] in "_$"):
                i += 1
            word = source[start:i]
            tokens.append(Token("KEYWORD" if word in KEYWORDS else "NAME", word, start))
            continue

        for op in OPERATORS:
            if source.startswith(op, i):
                tokens.append(Token("OP", op, i))
                i += len(op)
                break
        else:
            raise ExpressionError(f"Unexpected character {ch!r}", expression=source, position=i)

    tokens.append(Token("EOF", None, length))
    return tokens


# ==================== Syntax tree ====================

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Name:
    name: str


@dataclass(frozen=True)
class Attribute:
    target: "Node"
    name: str


@dataclass(frozen=True)
class Index:
    target: "Node"
    index: "Node"


@dataclass(frozen=True)
class ListLiteral:
    items: tuple


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Literal, Name, Attribute, Index, ListLiteral, UnaryOp, BinaryOp]


class _Parser:
    """Recursive-descent parser, one method per precedence level."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0

    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def match(self, type_: str, value: Optional[str] = None) -> bool:
        token = self.peek()
        if token.type == type_ and (value is None or token.value == value):
            self.pos += 1
            return True
        return False

    def expect(self, type_: str, value: Optional[str] = None) -> Token:
        token = self.peek()
        if token.type != type_ or (value is not None and token.value != value):
            raise self.error(f"Expected {value or type_}", token)
        return self.advance()

    def error(self, message: str, token: Token) -> ExpressionError:
        found = "end of expression" if token.type == "EOF" else repr(token.value)
        return ExpressionError(
            f"{message}, found {found}",
            expression=self.source,
            position=token.position,
        )

    def parse(self) -> Node:
        node = self.parse_or()
        self.expect("EOF")
        return node

    def parse_or(self) -> Node:
        node = self.parse_and()
        while self.match("OP", "||") or self.match("KEYWORD", "or"):
            node = BinaryOp("or", node, self.parse_and())
        return node

    def parse_and(self) -> Node:
        node = self.parse_not()
        while self.match("OP", "&&") or self.match("KEYWORD", "and"):
            node = BinaryOp("and", node, self.parse_not())
        return node

    def parse_not(self) -> Node:
        if self.match("OP", "!") or self.match("KEYWORD", "not"):
            return UnaryOp("not", self.parse_not())
        return self.parse_comparison()

    def parse_comparison(self) -> Node:
        node = self.parse_unary()
        while True:
            token = self.peek()
            if token.type == "OP" and token.value in COMPARISON_OPS:
                self.advance()
                node = BinaryOp(token.value, node, self.parse_unary())
                continue
            if token.type == "KEYWORD" and token.value == "in":
                self.advance()
                node = BinaryOp("in", node, self.parse_unary())
                continue
            if (
                token.type == "KEYWORD" and token.value == "not"
                and self.peek(1).type == "KEYWORD" and self.peek(1).value == "in"
            ):
                self.pos += 2
                node = BinaryOp("not in", node, self.parse_unary())
                continue
            return node

    def parse_unary(self) -> Node:
        if self.match("OP", "-"):
            return UnaryOp("-", self.parse_unary())
        return self.parse_postfix()

    def parse_postfix(self) -> Node:
        node = self.parse_primary()
        while True:
            if self.match("OP", "."):
                token = self.peek()
                if token.type not in ("NAME", "KEYWORD"):
                    raise self.error("Expected property name", token)
                self.advance()
                node = Attribute(node, token.value)
            elif self.match("OP", "["):
                index = self.parse_or()
                self.expect("OP", "]")
                node = Index(node, index)
            else:
                return node

    def parse_primary(self) -> Node:
        token = self.peek()

        if token.type in ("NUMBER", "STRING"):
            self.advance()
            return Literal(token.value)

        if token.type == "KEYWORD":
            constants = {"true": True, "false": False, "null": None, "undefined": None}
            if token.value in constants:
                self.advance()
                return Literal(constants[token.value])
            raise self.error("Unexpected keyword", token)

        if token.type == "NAME":
            self.advance()
            return Name(token.value)

        if self.match("OP", "("):
            node = self.parse_or()
            self.expect("OP", ")")
            return node

        if self.match("OP", "["):
            items = []
            if not self.match("OP", "]"):
                items.append(self.parse_or())
                while self.match("OP", ","):
                    items.append(self.parse_or())
                self.expect("OP", "]")
            return ListLiteral(tuple(items))

        raise self.error("Unexpected token", token)


@lru_cache(maxsize=256)
def parse_expression(source: str) -> Node:
    """Parse an expression string into a syntax tree (cached)."""
    if not source or not source.strip():
        raise ExpressionError("Empty expression", expression=source)
    try:
        return _Parser(source).parse()
    except RecursionError:
        raise ExpressionError("Expression nested too deeply", expression=source)


# ==================== Value semantics ====================

def to_number(value: Any) -> float:
    """Number coercion; anything non-numeric becomes NaN."""
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion (True is not 1)."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    return left == right


def is_truthy(value: Any) -> bool:
    """Falsy: None, False, 0, NaN and the empty string. Containers are truthy."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def _compare(op: str, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        a, b = left, right
    else:
        a, b = to_number(left), to_number(right)
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


def _contains(container: Any, item: Any, source: str) -> bool:
    if isinstance(container, Mapping):
        return item in container
    if isinstance(container, (list, tuple)):
        return any(strict_equals(item, candidate) for candidate in container)
    if isinstance(container, str):
        return isinstance(item, str) and item in container
    raise ExpressionError(
        f"Right side of 'in' is not a collection: {type(container).__name__}",
        expression=source,
    )


class _Evaluator:

    def __init__(self, source: str, scope: Mapping[str, Any]):
        self.source = source
        self.scope = scope

    def eval(self, node: Node) -> Any:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, Name):
            if node.name not in self.scope:
                raise ExpressionError(f"{node.name} is not defined", expression=self.source)
            return self.scope[node.name]

        if isinstance(node, Attribute):
            return self._member(self.eval(node.target), node.name)

        if isinstance(node, Index):
            return self._member(self.eval(node.target), self.eval(node.index))

        if isinstance(node, ListLiteral):
            return [self.eval(item) for item in node.items]

        if isinstance(node, UnaryOp):
            operand = self.eval(node.operand)
            if node.op == "not":
                return not is_truthy(operand)
            return -to_number(operand)

        if isinstance(node, BinaryOp):
            return self._binary(node)

        raise ExpressionError(f"Unsupported node: {node!r}", expression=self.source)

    def _binary(self, node: BinaryOp) -> Any:
        # Logical operators short-circuit and yield an operand, not a bool.
        if node.op == "and":
            left = self.eval(node.left)
            return self.eval(node.right) if is_truthy(left) else left
        if node.op == "or":
            left = self.eval(node.left)
            return left if is_truthy(left) else self.eval(node.right)

        left = self.eval(node.left)
        right = self.eval(node.right)

        if node.op in ("==", "==="):
            return strict_equals(left, right)
        if node.op in ("!=", "!=="):
            return not strict_equals(left, right)
        if node.op == "in":
            return _contains(right, left, self.source)
        if node.op == "not in":
            return not _contains(right, left, self.source)
        return _compare(node.op, left, right)

    def _member(self, target: Any, key: Any) -> Any:
        if target is None:
            raise ExpressionError(
                f"Cannot read property {key!r} of null",
                expression=self.source,
            )

        if key == "length" and isinstance(target, (str, list, tuple, Mapping)):
            if not (isinstance(target, Mapping) and "length" in target):
                return len(target)

        if isinstance(target, Mapping):
            return target.get(key if isinstance(key, str) else str(key))

        if isinstance(target, (list, tuple, str)):
            index = to_number(key)
            if math.isnan(index) or not index.is_integer():
                return None
            index = int(index)
            return target[index] if 0 <= index < len(target) else None

        return None


def evaluate_expression(source: str, scope: Mapping[str, Any]) -> Any:
    """Evaluate an expression against a name scope; raises ExpressionError."""
    tree = parse_expression(source)
    try:
        return _Evaluator(source, scope).eval(tree)
    except ExpressionError:
        raise
    except (TypeError, ValueError, RecursionError) as e:
        raise ExpressionError(f"Evaluation failed: {e}", expression=source)
