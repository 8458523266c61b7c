"""
OData Module - $filter Parser
===============================
Tokenizer + recursive-descent parser that turns a $filter expression
into a SQLAlchemy boolean clause over one model.

Precedence (lowest first): or, and, not, comparison, primary.

    Price gt 100 and contains(Name, 'Pro')
    not (City eq 'Seattle') or year(OrderDate) eq 2024
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional, Type

from sqlalchemy import DateTime, Numeric, and_, extract, func, literal, not_, or_
from sqlalchemy.orm import Session

from common.exceptions import InvalidArgument, QueryOptionError
from common.helpers import as_utc
from modules.repository.query import contains_text, resolve_column

COMPARISONS = {
    "eq": lambda a, b: a == b,
    "ne": lambda a, b: a != b,
    "gt": lambda a, b: a > b,
    "ge": lambda a, b: a >= b,
    "lt": lambda a, b: a < b,
    "le": lambda a, b: a <= b,
}

_TOKEN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>'(?:[^']|'')*')
  | (?P<datetime>\d{4}-\d{2}-\d{2}(?:T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:\d{2})?)?)
  | (?P<number>-?\d+(?:\.\d+)?)
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<comma>,)
    """,
    re.VERBOSE,
)


@dataclass
class Token:
    kind: str
    text: str
    pos: int


def tokenize(text: str) -> List[Token]:
    tokens = []
    pos = 0
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None:
            raise QueryOptionError(f"Unexpected character '{text[pos]}' at position {pos} in $filter")
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    return tokens


# ==========================================
# Operands
# ==========================================

@dataclass
class Operand:
    """A parsed sub-expression. kind is 'bool', 'value' (column/function) or 'literal'."""
    kind: str
    expr: Any
    column: Any = None


def _parse_datetime(text: str):
    if "T" not in text:
        return date.fromisoformat(text)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def _coerce(value, column):
    """Fit a literal to the type of the column it is compared with."""
    if column is None or value is None:
        return value
    col_type = getattr(column, "type", None)
    if isinstance(col_type, DateTime) and isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(col_type, Numeric) and isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    return value


# ==========================================
# Parser
# ==========================================

class FilterParser:

    def __init__(self, model: Type, text: str, session: Optional[Session] = None):
        self.model = model
        self.text = text
        self.session = session
        self.tokens = tokenize(text)
        self.index = 0

    # ------------------------------------------
    # Token stream
    # ------------------------------------------

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise QueryOptionError("Unexpected end of $filter expression")
        self.index += 1
        return token

    def _expect(self, kind: str) -> Token:
        token = self._next()
        if token.kind != kind:
            raise QueryOptionError(f"Expected {kind} at position {token.pos}, found '{token.text}'")
        return token

    def _at_keyword(self, *words: str) -> bool:
        token = self._peek()
        return token is not None and token.kind == "name" and token.text.lower() in words

    # ------------------------------------------
    # Grammar
    # ------------------------------------------

    def parse(self):
        if not self.tokens:
            raise QueryOptionError("$filter must not be empty")
        result = self._or()
        if self._peek() is not None:
            token = self._peek()
            raise QueryOptionError(f"Unexpected '{token.text}' at position {token.pos} in $filter")
        return self._as_bool(result)

    def _or(self) -> Operand:
        left = self._and()
        while self._at_keyword("or"):
            self._next()
            right = self._and()
            left = Operand("bool", or_(self._as_bool(left), self._as_bool(right)))
        return left

    def _and(self) -> Operand:
        left = self._not()
        while self._at_keyword("and"):
            self._next()
            right = self._not()
            left = Operand("bool", and_(self._as_bool(left), self._as_bool(right)))
        return left

    def _not(self) -> Operand:
        if self._at_keyword("not"):
            self._next()
            return Operand("bool", not_(self._as_bool(self._not())))
        return self._comparison()

    def _comparison(self) -> Operand:
        left = self._primary()
        if not self._at_keyword(*COMPARISONS):
            return left
        op = self._next().text.lower()
        right = self._primary()
        return Operand("bool", self._compare(op, left, right))

    def _compare(self, op: str, left: Operand, right: Operand):
        if left.kind == "bool" or right.kind == "bool":
            raise QueryOptionError(f"'{op}' cannot compare boolean expressions")
        if right.kind == "literal" and right.expr is None:
            return self._null_check(op, self._value_arg(left))
        if left.kind == "literal" and left.expr is None:
            return self._null_check(op, self._value_arg(right))

        lhs = left.expr
        rhs = right.expr
        if left.kind == "literal":
            lhs = literal(_coerce(lhs, right.column)) if right.kind == "literal" else _coerce(lhs, right.column)
        if right.kind == "literal":
            rhs = _coerce(rhs, left.column)
        if left.kind == "literal" and right.kind != "literal":
            # Keep the column on the left so SQLAlchemy types the bound value
            return COMPARISONS[_MIRROR[op]](right.expr, lhs)
        return COMPARISONS[op](lhs, rhs)

    @staticmethod
    def _null_check(op: str, expr):
        if op == "eq":
            return expr.is_(None)
        if op == "ne":
            return expr.is_not(None)
        raise QueryOptionError(f"'{op}' cannot be used with null")

    def _primary(self) -> Operand:
        token = self._next()

        if token.kind == "lparen":
            inner = self._or()
            self._expect("rparen")
            return inner
        if token.kind == "string":
            return Operand("literal", token.text[1:-1].replace("''", "'"))
        if token.kind == "number":
            return Operand("literal", Decimal(token.text) if "." in token.text else int(token.text))
        if token.kind == "datetime":
            try:
                return Operand("literal", _parse_datetime(token.text))
            except ValueError:
                raise QueryOptionError(f"Invalid date literal '{token.text}'")
        if token.kind == "name":
            word = token.text.lower()
            if word in ("true", "false"):
                return Operand("literal", word == "true")
            if word == "null":
                return Operand("literal", None)
            nxt = self._peek()
            if nxt is not None and nxt.kind == "lparen":
                return self._function(token)
            return self._property(token)

        raise QueryOptionError(f"Unexpected '{token.text}' at position {token.pos} in $filter")

    def _property(self, token: Token) -> Operand:
        try:
            column = resolve_column(self.model, token.text)
        except InvalidArgument:
            raise QueryOptionError(f"Unknown property '{token.text}' on {self.model.__name__}")
        return Operand("value", column, column)

    def _function(self, token: Token) -> Operand:
        name = token.text.lower()
        entry = FUNCTIONS.get(name)
        if entry is None:
            raise QueryOptionError(f"Unknown function '{token.text}'")
        arity, build = entry

        self._expect("lparen")
        args = []
        if self._peek() is not None and self._peek().kind != "rparen":
            args.append(self._or())
            while self._peek() is not None and self._peek().kind == "comma":
                self._next()
                args.append(self._or())
        self._expect("rparen")

        if len(args) != arity:
            raise QueryOptionError(f"{name}() takes {arity} argument(s), got {len(args)}")
        if any(a.kind == "bool" for a in args):
            raise QueryOptionError(f"{name}() does not accept boolean arguments")
        return build(self, *args)

    # ------------------------------------------
    # Helpers
    # ------------------------------------------

    @staticmethod
    def _as_bool(operand: Operand):
        if operand.kind == "bool":
            return operand.expr
        if operand.kind == "literal" and isinstance(operand.expr, bool):
            return literal(operand.expr)
        raise QueryOptionError("$filter must be a boolean expression")

    def _text_arg(self, operand: Operand, fn: str) -> str:
        if operand.kind != "literal" or not isinstance(operand.expr, str):
            raise QueryOptionError(f"{fn}() expects a string literal as its second argument")
        return operand.expr

    def _value_arg(self, operand: Operand):
        return operand.expr if operand.kind != "literal" else literal(operand.expr)


_MIRROR = {"eq": "eq", "ne": "ne", "gt": "lt", "ge": "le", "lt": "gt", "le": "ge"}


def _contains(p: FilterParser, haystack: Operand, needle: Operand) -> Operand:
    text = p._text_arg(needle, "contains")
    column = p._value_arg(haystack)
    if p.session is not None:
        return Operand("bool", contains_text(p.session, column, text))
    return Operand("bool", column.contains(text, autoescape=True))


def _startswith(p: FilterParser, haystack: Operand, needle: Operand) -> Operand:
    text = p._text_arg(needle, "startswith")
    column = p._value_arg(haystack)
    return Operand("bool", func.substr(column, 1, len(text)) == text)


def _endswith(p: FilterParser, haystack: Operand, needle: Operand) -> Operand:
    text = p._text_arg(needle, "endswith")
    column = p._value_arg(haystack)
    if not text:
        return Operand("bool", literal(True))
    start = func.length(column) - len(text) + 1
    return Operand("bool", and_(func.length(column) >= len(text), func.substr(column, start) == text))


def _unary(build):
    def apply(p: FilterParser, arg: Operand) -> Operand:
        return Operand("value", build(p._value_arg(arg)), None)
    return apply


def _date_part(part: str):
    return _unary(lambda column: extract(part, column))


FUNCTIONS = {
    "contains": (2, _contains),
    "startswith": (2, _startswith),
    "endswith": (2, _endswith),
    "tolower": (1, _unary(func.lower)),
    "toupper": (1, _unary(func.upper)),
    "length": (1, _unary(func.length)),
    "year": (1, _date_part("year")),
    "month": (1, _date_part("month")),
    "day": (1, _date_part("day")),
}


def parse_filter(model: Type, text: str, session: Optional[Session] = None):
    """Parse a $filter string into a SQLAlchemy clause for model."""
    if text is None or not text.strip():
        raise QueryOptionError("$filter must not be empty")
    return FilterParser(model, text, session).parse()
