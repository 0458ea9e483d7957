"""
Restricted predicate language for condition nodes.

Conditions are small boolean expressions over the node's input payload::

    data.score >= 0.5 && data.status == 'ok'
    !(user.active) || count > 3

Supported: dot paths (optionally rooted at ``data``), number / string /
``true`` / ``false`` / ``null`` literals, the comparisons
``== != === !== < <= > >=``, ``&&``, ``||``, ``!`` and parentheses.
Precedence, tightest first: ``!``, comparisons, ``&&``, ``||``; so
``!a == b`` reads as ``(!a) == b``.
Expressions are parsed into a small AST and interpreted; nothing from the
workflow is ever executed as Python.
"""

from typing import Any, List, Tuple, Union
from dataclasses import dataclass
import functools
import re

from agentflow.engine.errors import ConditionError
from agentflow.engine.template import MISSING, get_nested_value


TOKEN_SPEC = [
    ("WS", r"\s+"),
    ("NUMBER", r"-?\d+(?:\.\d+)?"),
    ("STRING", r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\""),
    ("OP", r"===|!==|==|!=|<=|>=|<|>|&&|\|\||!|\(|\)"),
    ("PATH", r"[A-Za-z_$][\w$]*(?:\.[\w$]+)*"),
]
TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in TOKEN_SPEC))

COMPARISONS = {"==", "!=", "===", "!==", "<", "<=", ">", ">="}
KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None}


# ============================================================
# AST
# ============================================================

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Path:
    parts: Tuple[str, ...]


@dataclass(frozen=True)
class Not:
    operand: "Expression"


@dataclass(frozen=True)
class Compare:
    op: str
    left: "Expression"
    right: "Expression"


@dataclass(frozen=True)
class BoolOp:
    op: str  # "&&" or "||"
    operands: Tuple["Expression", ...]


Expression = Union[Literal, Path, Not, Compare, BoolOp]


# ============================================================
# Parser
# ============================================================

def tokenize(text: str) -> List[Tuple[str, str]]:
    """Split a condition into (kind, text) tokens."""
    tokens = []
    pos = 0
    while pos < len(text):
        match = TOKEN_RE.match(text, pos)
        if not match:
            raise ConditionError(f"Unexpected character {text[pos]!r} at position {pos}")
        kind = match.lastgroup
        if kind != "WS":
            tokens.append((kind, match.group()))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive-descent parser, lowest precedence first: || && comparison ! operand."""

    def __init__(self, tokens: List[Tuple[str, str]]):
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Tuple[str, str]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return ("EOF", "")

    def take(self) -> Tuple[str, str]:
        token = self.peek()
        self.pos += 1
        return token

    def expect(self, text: str) -> None:
        kind, value = self.take()
        if value != text:
            raise ConditionError(f"Expected '{text}', got '{value or 'end of input'}'")

    def parse(self) -> Expression:
        expr = self.parse_or()
        kind, value = self.peek()
        if kind != "EOF":
            raise ConditionError(f"Unexpected token '{value}'")
        return expr

    def parse_or(self) -> Expression:
        operands = [self.parse_and()]
        while self.peek()[1] == "||":
            self.take()
            operands.append(self.parse_and())
        return operands[0] if len(operands) == 1 else BoolOp("||", tuple(operands))

    def parse_and(self) -> Expression:
        operands = [self.parse_comparison()]
        while self.peek()[1] == "&&":
            self.take()
            operands.append(self.parse_comparison())
        return operands[0] if len(operands) == 1 else BoolOp("&&", tuple(operands))

    def parse_comparison(self) -> Expression:
        left = self.parse_unary()
        kind, value = self.peek()
        if kind == "OP" and value in COMPARISONS:
            self.take()
            return Compare(value, left, self.parse_unary())
        return left

    def parse_unary(self) -> Expression:
        if self.peek()[1] == "!":
            self.take()
            return Not(self.parse_unary())
        return self.parse_operand()

    def parse_operand(self) -> Expression:
        kind, value = self.take()
        if value == "(":
            expr = self.parse_or()
            self.expect(")")
            return expr
        if kind == "NUMBER":
            return Literal(float(value) if "." in value else int(value))
        if kind == "STRING":
            body = value[1:-1]
            return Literal(re.sub(r"\\(.)", r"\1", body))
        if kind == "PATH":
            if value in KEYWORDS:
                return Literal(KEYWORDS[value])
            return Path(tuple(value.split(".")))
        raise ConditionError(f"Unexpected token '{value or 'end of input'}'")


@functools.lru_cache(maxsize=256)
def parse_condition(text: str) -> Expression:
    """
    Parse a condition string into an expression tree.

    Raises:
        ConditionError: If the text is empty or not valid syntax
    """
    if not isinstance(text, str) or not text.strip():
        raise ConditionError("Condition is empty")
    return _Parser(tokenize(text)).parse()


# ============================================================
# Evaluator
# ============================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _resolve(parts: Tuple[str, ...], context: Any) -> Any:
    if parts[0] == "data":
        parts = parts[1:]
    if not parts:
        return context
    value = get_nested_value(context, ".".join(parts))
    return None if value is MISSING else value


def _compare(op: str, left: Any, right: Any) -> bool:
    if op in ("==", "==="):
        return left == right
    if op in ("!=", "!=="):
        return left != right
    if not ((_is_number(left) and _is_number(right))
            or (isinstance(left, str) and isinstance(right, str))):
        raise ConditionError(
            f"Cannot compare {type(left).__name__} and {type(right).__name__} with '{op}'"
        )
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _value(expr: Expression, context: Any) -> Any:
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, Path):
        return _resolve(expr.parts, context)
    if isinstance(expr, Not):
        return not _value(expr.operand, context)
    if isinstance(expr, Compare):
        return _compare(expr.op, _value(expr.left, context), _value(expr.right, context))
    if expr.op == "&&":
        return all(_value(operand, context) for operand in expr.operands)
    return any(_value(operand, context) for operand in expr.operands)


def evaluate(expr: Expression, context: Any) -> bool:
    """Evaluate a parsed condition against a payload."""
    return bool(_value(expr, context))


def evaluate_condition(text: str, context: Any) -> bool:
    """Parse and evaluate a condition string."""
    return evaluate(parse_condition(text), context)
