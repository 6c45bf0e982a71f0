"""tradesim.strategy.expression

The condition language used by strategy signals.

Conditions are parsed once, at strategy load time, into a small AST:

    sma_fast > sma_slow AND sma_fast[1] <= sma_slow[1]
    rsi < 30 OR (close > ema * 1.02 AND NOT volume < volume_avg)

Identifiers are indicator names or bar fields (open/high/low/close/volume).
`x[n]` is the value n bars ago; `x[-n]` means the same thing.

Evaluation is three-valued. An undefined operand (indicator not ready, not
enough history, division by zero) makes arithmetic and comparisons undefined.
AND is false if any operand is false, OR is true if any operand is true,
NOT of undefined stays undefined. A condition fires only on a definite True.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Protocol

BAR_FIELDS = frozenset({"open", "high", "low", "close", "volume"})
KEYWORDS = frozenset({"AND", "OR", "NOT"})

Value = float | bool | None


class ExpressionError(ValueError):
    def __init__(self, message: str, *, text: str, position: int) -> None:
        self.text = text
        self.position = position
        super().__init__(f"{message} at position {position} in {text!r}")


class LookupContext(Protocol):
    def lookup(self, name: str, lag: int) -> float | None: ...


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op><=|>=|==|!=|<|>|\+|-|\*|/|\(|\)|\[|\])
    """,
    re.VERBOSE,
)


@dataclass(frozen=True, slots=True)
class Token:
    kind: str  # number | ident | keyword | op | end
    text: str
    pos: int


def tokenize(text: str) -> list[Token]:
    out: list[Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise ExpressionError(f"Unexpected character {text[pos]!r}", text=text, position=pos)
        kind = m.lastgroup or ""
        tok = m.group()
        if kind == "ident" and tok.upper() in KEYWORDS:
            out.append(Token("keyword", tok.upper(), pos))
        elif kind != "ws":
            out.append(Token(kind, tok, pos))
        pos = m.end()
    out.append(Token("end", "", len(text)))
    return out


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


def _num(v: Value) -> float | None:
    if v is None:
        return None
    f = float(v)
    return f if math.isfinite(f) else None


def _truth(v: Value) -> bool | None:
    if v is None:
        return None
    if isinstance(v, bool):
        return v
    return v != 0.0


@dataclass(frozen=True, slots=True)
class Number:
    value: float

    def evaluate(self, ctx: LookupContext) -> Value:
        return self.value

    def refs(self) -> set[str]:
        return set()

    def max_lag(self) -> int:
        return 0


@dataclass(frozen=True, slots=True)
class Ref:
    name: str
    lag: int = 0

    def evaluate(self, ctx: LookupContext) -> Value:
        return _num(ctx.lookup(self.name, self.lag))

    def refs(self) -> set[str]:
        return {self.name}

    def max_lag(self) -> int:
        return self.lag


@dataclass(frozen=True, slots=True)
class Negate:
    operand: Node

    def evaluate(self, ctx: LookupContext) -> Value:
        v = _num(self.operand.evaluate(ctx))
        return None if v is None else -v

    def refs(self) -> set[str]:
        return self.operand.refs()

    def max_lag(self) -> int:
        return self.operand.max_lag()


@dataclass(frozen=True, slots=True)
class Arithmetic:
    op: str
    left: Node
    right: Node

    def evaluate(self, ctx: LookupContext) -> Value:
        a = _num(self.left.evaluate(ctx))
        b = _num(self.right.evaluate(ctx))
        if a is None or b is None:
            return None
        if self.op == "+":
            return a + b
        if self.op == "-":
            return a - b
        if self.op == "*":
            return a * b
        if b == 0.0:
            return None
        return a / b

    def refs(self) -> set[str]:
        return self.left.refs() | self.right.refs()

    def max_lag(self) -> int:
        return max(self.left.max_lag(), self.right.max_lag())


@dataclass(frozen=True, slots=True)
class Compare:
    op: str
    left: Node
    right: Node

    def evaluate(self, ctx: LookupContext) -> Value:
        a = _num(self.left.evaluate(ctx))
        b = _num(self.right.evaluate(ctx))
        if a is None or b is None:
            return None
        if self.op == "<":
            return a < b
        if self.op == "<=":
            return a <= b
        if self.op == ">":
            return a > b
        if self.op == ">=":
            return a >= b
        if self.op == "==":
            return a == b
        return a != b

    def refs(self) -> set[str]:
        return self.left.refs() | self.right.refs()

    def max_lag(self) -> int:
        return max(self.left.max_lag(), self.right.max_lag())


@dataclass(frozen=True, slots=True)
class Not:
    operand: Node

    def evaluate(self, ctx: LookupContext) -> Value:
        t = _truth(self.operand.evaluate(ctx))
        return None if t is None else not t

    def refs(self) -> set[str]:
        return self.operand.refs()

    def max_lag(self) -> int:
        return self.operand.max_lag()


@dataclass(frozen=True, slots=True)
class Logical:
    op: str  # AND | OR
    operands: tuple[Node, ...]

    def evaluate(self, ctx: LookupContext) -> Value:
        # No short-circuit on undefined: a later definite operand can still decide.
        unknown = False
        decisive = self.op == "OR"
        for node in self.operands:
            t = _truth(node.evaluate(ctx))
            if t is None:
                unknown = True
            elif t is decisive:
                return decisive
        return None if unknown else not decisive

    def refs(self) -> set[str]:
        out: set[str] = set()
        for n in self.operands:
            out |= n.refs()
        return out

    def max_lag(self) -> int:
        return max(n.max_lag() for n in self.operands)


Node = Number | Ref | Negate | Arithmetic | Compare | Not | Logical


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = tokenize(text)
        self.i = 0

    def peek(self) -> Token:
        return self.tokens[self.i]

    def advance(self) -> Token:
        tok = self.tokens[self.i]
        self.i += 1
        return tok

    def accept(self, kind: str, *texts: str) -> Token | None:
        tok = self.peek()
        if tok.kind == kind and (not texts or tok.text in texts):
            return self.advance()
        return None

    def expect(self, kind: str, text: str) -> Token:
        tok = self.accept(kind, text)
        if tok is None:
            got = self.peek()
            raise ExpressionError(f"Expected {text!r}, got {got.text or 'end of input'!r}", text=self.text, position=got.pos)
        return tok

    def parse(self) -> Node:
        if self.peek().kind == "end":
            raise ExpressionError("Empty condition", text=self.text, position=0)
        node = self.parse_or()
        tail = self.peek()
        if tail.kind != "end":
            raise ExpressionError(f"Unexpected token {tail.text!r}", text=self.text, position=tail.pos)
        return node

    def parse_or(self) -> Node:
        items = [self.parse_and()]
        while self.accept("keyword", "OR"):
            items.append(self.parse_and())
        return items[0] if len(items) == 1 else Logical("OR", tuple(items))

    def parse_and(self) -> Node:
        items = [self.parse_not()]
        while self.accept("keyword", "AND"):
            items.append(self.parse_not())
        return items[0] if len(items) == 1 else Logical("AND", tuple(items))

    def parse_not(self) -> Node:
        if self.accept("keyword", "NOT"):
            return Not(self.parse_not())
        return self.parse_comparison()

    def parse_comparison(self) -> Node:
        left = self.parse_additive()
        tok = self.accept("op", "<", "<=", ">", ">=", "==", "!=")
        if tok is None:
            return left
        return Compare(tok.text, left, self.parse_additive())

    def parse_additive(self) -> Node:
        node = self.parse_term()
        while (tok := self.accept("op", "+", "-")) is not None:
            node = Arithmetic(tok.text, node, self.parse_term())
        return node

    def parse_term(self) -> Node:
        node = self.parse_unary()
        while (tok := self.accept("op", "*", "/")) is not None:
            node = Arithmetic(tok.text, node, self.parse_unary())
        return node

    def parse_unary(self) -> Node:
        if self.accept("op", "-"):
            return Negate(self.parse_unary())
        return self.parse_primary()

    def parse_primary(self) -> Node:
        tok = self.peek()
        if tok.kind == "number":
            self.advance()
            return Number(float(tok.text))
        if tok.kind == "ident":
            self.advance()
            return Ref(tok.text, self.parse_lag())
        if self.accept("op", "("):
            node = self.parse_or()
            self.expect("op", ")")
            return node
        raise ExpressionError(f"Unexpected token {tok.text or 'end of input'!r}", text=self.text, position=tok.pos)

    def parse_lag(self) -> int:
        if not self.accept("op", "["):
            return 0
        self.accept("op", "-")
        tok = self.peek()
        if tok.kind != "number" or not tok.text.isdigit():
            raise ExpressionError("Lag must be a non-negative integer", text=self.text, position=tok.pos)
        self.advance()
        self.expect("op", "]")
        return int(tok.text)


@dataclass(frozen=True, slots=True)
class Expression:
    text: str
    root: Node

    def evaluate(self, ctx: LookupContext) -> Value:
        return self.root.evaluate(ctx)

    def is_true(self, ctx: LookupContext) -> bool:
        return _truth(self.evaluate(ctx)) is True

    def references(self) -> set[str]:
        return self.root.refs()

    def indicator_references(self) -> set[str]:
        return {r for r in self.references() if r not in BAR_FIELDS}

    def max_lag(self) -> int:
        return self.root.max_lag()


def parse(text: str) -> Expression:
    """Parse a condition string.

    Raises:
        ExpressionError: on any syntax error.
    """

    return Expression(text=text, root=_Parser(text).parse())
