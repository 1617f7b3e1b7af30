"""Filter expressions shared by the visibility policy and the document store.

A filter is a small predicate tree that can be evaluated against a record in
memory (``matches``), rendered to the store's filter syntax (``to_query``) and
compiled to a SQL WHERE clause over JSON documents (``compile_sql``). The three
must agree, so listings and single-record checks see the same rows.

Filter syntax (PocketBase flavoured):
    status = "todo" && (assignee_id = "42" || created_by_id = "42")
    completed_at = null
    tags ?= "backend"            # array contains
    title ~ "bug"                # case-insensitive contains
"""

import json
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


FilterValue = str | int | float | bool | None

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Op(StrEnum):
    """Comparison operators."""

    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    LIKE = "~"
    ANY = "?="


@dataclass(frozen=True)
class Condition:
    """A single ``field op value`` comparison."""

    field: str
    op: Op
    value: FilterValue

    def __post_init__(self) -> None:
        if not _FIELD_RE.match(self.field):
            raise ValueError(f"Invalid filter field: {self.field}")

    def matches(self, record: Mapping[str, Any]) -> bool:
        actual = record.get(self.field)
        if self.op == Op.EQ:
            return _same(actual, self.value)
        if self.op == Op.NE:
            return not _same(actual, self.value)
        if self.op == Op.LIKE:
            if not isinstance(actual, str) or self.value is None:
                return False
            return str(self.value).lower() in actual.lower()
        if self.op == Op.ANY:
            if isinstance(actual, list):
                return any(_same(item, self.value) for item in actual)
            return actual is not None and _same(actual, self.value)
        if actual is None or self.value is None:
            return False
        try:
            if self.op == Op.GT:
                return actual > self.value
            if self.op == Op.LT:
                return actual < self.value
            if self.op == Op.GTE:
                return actual >= self.value
            return actual <= self.value
        except TypeError:
            return False

    def to_query(self) -> str:
        return f"{self.field} {self.op.value} {render_value(self.value)}"


@dataclass(frozen=True)
class AllOf:
    """Conjunction; an empty conjunction matches every record."""

    clauses: tuple["Predicate", ...] = ()

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(clause.matches(record) for clause in self.clauses)

    def to_query(self) -> str:
        return " && ".join(_render_nested(clause) for clause in self.clauses)


@dataclass(frozen=True)
class AnyOf:
    """Disjunction; must hold at least one clause."""

    clauses: tuple["Predicate", ...]

    def __post_init__(self) -> None:
        if not self.clauses:
            raise ValueError("AnyOf requires at least one clause")

    def matches(self, record: Mapping[str, Any]) -> bool:
        return any(clause.matches(record) for clause in self.clauses)

    def to_query(self) -> str:
        return "(" + " || ".join(_render_nested(clause) for clause in self.clauses) + ")"


Predicate = Condition | AllOf | AnyOf

MATCH_ALL = AllOf()


def _same(actual: Any, expected: FilterValue) -> bool:  # noqa: ANN401
    # bool is an int subclass; keep True distinct from 1 like the JSON store does for strings
    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual is expected
    return actual == expected


def _render_nested(predicate: Predicate) -> str:
    if isinstance(predicate, AllOf) and len(predicate.clauses) > 1:
        return f"({predicate.to_query()})"
    return predicate.to_query()


def render_value(value: FilterValue) -> str:
    """Render a literal in filter syntax."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return repr(value)
    return json.dumps(value)


def eq(field: str, value: FilterValue) -> Condition:
    return Condition(field, Op.EQ, value)


def ne(field: str, value: FilterValue) -> Condition:
    return Condition(field, Op.NE, value)


def lt(field: str, value: FilterValue) -> Condition:
    return Condition(field, Op.LT, value)


def contains(field: str, value: str) -> Condition:
    return Condition(field, Op.LIKE, value)


def has_any(field: str, value: FilterValue) -> Condition:
    return Condition(field, Op.ANY, value)


def all_of(*predicates: Predicate) -> Predicate:
    """Combine predicates with AND, flattening nested conjunctions."""
    clauses: list[Predicate] = []
    for predicate in predicates:
        if isinstance(predicate, AllOf):
            clauses.extend(predicate.clauses)
        else:
            clauses.append(predicate)
    if len(clauses) == 1:
        return clauses[0]
    return AllOf(tuple(clauses))


def any_of(*predicates: Predicate) -> Predicate:
    """Combine predicates with OR. A single predicate is returned unchanged."""
    if len(predicates) == 1:
        return predicates[0]
    return AnyOf(tuple(predicates))


def one_of(field: str, values: list[str]) -> Predicate:
    """Match records whose field equals any of the given values."""
    return any_of(*(eq(field, value) for value in values))


_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<lparen>\()
      | (?P<rparen>\))
      | (?P<and>&&)
      | (?P<or>\|\|)
      | (?P<op>\?=|!=|>=|<=|=|>|<|~)
      | (?P<string>"(?:[^"\\]|\\.)*")
      | (?P<number>-?\d+(?:\.\d+)?)
      | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    )""",
    re.VERBOSE,
)


def _tokenize(query: str) -> list[tuple[str, str]]:
    tokens = []
    position = 0
    stripped = query.rstrip()
    while position < len(stripped):
        match = _TOKEN_RE.match(stripped, position)
        if not match or match.end() == position:
            raise ValueError(f"Invalid filter syntax near: {stripped[position:]!r}")
        kind = match.lastgroup or ""
        tokens.append((kind, match.group(kind)))
        position = match.end()
    return tokens


class _Parser:
    """Recursive descent parser; ``&&`` binds tighter than ``||``."""

    def __init__(self, query: str) -> None:
        self._query = query
        self._tokens = _tokenize(query)
        self._pos = 0

    def parse(self) -> Predicate:
        if not self._tokens:
            return MATCH_ALL
        predicate = self._parse_or()
        if self._pos != len(self._tokens):
            raise ValueError(f"Invalid filter syntax: {self._query}")
        return predicate

    def _peek(self) -> str | None:
        return self._tokens[self._pos][0] if self._pos < len(self._tokens) else None

    def _take(self, kind: str) -> str:
        if self._peek() != kind:
            raise ValueError(f"Invalid filter syntax: {self._query}")
        value = self._tokens[self._pos][1]
        self._pos += 1
        return value

    def _parse_or(self) -> Predicate:
        clauses = [self._parse_and()]
        while self._peek() == "or":
            self._take("or")
            clauses.append(self._parse_and())
        return any_of(*clauses)

    def _parse_and(self) -> Predicate:
        clauses = [self._parse_term()]
        while self._peek() == "and":
            self._take("and")
            clauses.append(self._parse_term())
        return all_of(*clauses)

    def _parse_term(self) -> Predicate:
        if self._peek() == "lparen":
            self._take("lparen")
            predicate = self._parse_or()
            self._take("rparen")
            return predicate
        field = self._take("word")
        op = Op(self._take("op"))
        return Condition(field, op, self._parse_value())

    def _parse_value(self) -> FilterValue:
        kind = self._peek()
        if kind == "string":
            return json.loads(self._take("string"))
        if kind == "number":
            raw = self._take("number")
            return float(raw) if "." in raw else int(raw)
        word = self._take("word")
        literals: dict[str, FilterValue] = {"true": True, "false": False, "null": None}
        if word not in literals:
            raise ValueError(f"Invalid filter value: {word}")
        return literals[word]


def parse_filter(query: str | Predicate) -> Predicate:
    """Parse filter syntax into a predicate. Predicates pass through unchanged."""
    if isinstance(query, Condition | AllOf | AnyOf):
        return query
    return _Parser(query).parse()


def _sql_value(value: FilterValue) -> FilterValue:
    if isinstance(value, bool):
        return int(value)
    return value


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_sql(predicate: Predicate, *, column: Callable[[str], str]) -> tuple[str, list[FilterValue]]:
    """Compile a predicate into a SQL condition and its parameters.

    Args:
        predicate: Predicate to compile
        column: Maps a field name to the SQL expression that reads it

    Returns:
        Tuple of (where clause without the WHERE keyword, parameters); the clause
        is empty when the predicate matches everything
    """
    if isinstance(predicate, AllOf):
        parts = [compile_sql(clause, column=column) for clause in predicate.clauses]
        if not parts:
            return "", []
        return "(" + " AND ".join(sql for sql, _ in parts) + ")", [p for _, params in parts for p in params]
    if isinstance(predicate, AnyOf):
        parts = [compile_sql(clause, column=column) for clause in predicate.clauses]
        return "(" + " OR ".join(sql for sql, _ in parts) + ")", [p for _, params in parts for p in params]

    expr = column(predicate.field)
    value = _sql_value(predicate.value)
    if predicate.op == Op.EQ:
        return f"{expr} IS ?", [value]
    if predicate.op == Op.NE:
        return f"{expr} IS NOT ?", [value]
    if predicate.op == Op.LIKE:
        return f"{expr} LIKE ? ESCAPE '\\'", [f"%{_escape_like(str(predicate.value))}%"]
    if predicate.op == Op.ANY:
        return f"EXISTS (SELECT 1 FROM json_each({expr}) WHERE json_each.value IS ?)", [value]
    return f"{expr} {predicate.op.value} ?", [value]
