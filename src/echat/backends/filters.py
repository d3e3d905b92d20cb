"""
Store-neutral query filters.

A filter is a mapping of field name to either a plain value (equality) or a
``Cond`` built with the helpers below. ``any_of`` combines whole mappings with OR.
Both drivers translate the same structure: the row store compiles it to SQL,
the document store evaluates it in process with ``matches``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

OPERATORS = ("eq", "ne", "gt", "gte", "lt", "lte", "in")


@dataclass(frozen=True)
class Cond:
    """A single comparison against a field."""

    op: str
    value: Any


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of conjunctive clauses."""

    clauses: tuple[Mapping[str, Any], ...]


@dataclass(frozen=True)
class Order:
    """Sort on one field."""

    field: str
    descending: bool = False


Filter = Mapping[str, Any] | AnyOf | None


def eq(value: Any) -> Cond:  # noqa: ANN401
    return Cond("eq", value)


def ne(value: Any) -> Cond:  # noqa: ANN401
    return Cond("ne", value)


def gt(value: Any) -> Cond:  # noqa: ANN401
    return Cond("gt", value)


def gte(value: Any) -> Cond:  # noqa: ANN401
    return Cond("gte", value)


def lt(value: Any) -> Cond:  # noqa: ANN401
    return Cond("lt", value)


def lte(value: Any) -> Cond:  # noqa: ANN401
    return Cond("lte", value)


def in_(values: Any) -> Cond:  # noqa: ANN401
    return Cond("in", tuple(values))


def any_of(*clauses: Mapping[str, Any]) -> AnyOf:
    return AnyOf(tuple(clauses))


def asc(field: str) -> Order:
    return Order(field)


def desc(field: str) -> Order:
    return Order(field, descending=True)


def conditions(clause: Mapping[str, Any]) -> Iterator[tuple[str, Cond]]:
    """Yield ``(field, Cond)`` pairs, wrapping bare values as equality."""
    for field, value in clause.items():
        yield field, value if isinstance(value, Cond) else Cond("eq", value)


def _compare(actual: Any, cond: Cond, expected: Any) -> bool:  # noqa: ANN401, PLR0911
    if cond.op == "eq":
        return actual == expected
    if cond.op == "ne":
        return actual != expected
    if cond.op == "in":
        return actual in expected
    if actual is None or expected is None:
        return False
    if cond.op == "gt":
        return actual > expected
    if cond.op == "gte":
        return actual >= expected
    if cond.op == "lt":
        return actual < expected
    if cond.op == "lte":
        return actual <= expected
    msg = f"Unsupported filter operator: {cond.op}"
    raise ValueError(msg)


def matches(
    doc: Mapping[str, Any],
    filter_: Filter,
    encode: Callable[[Any], Any] = lambda v: v,
) -> bool:
    """Evaluate a filter against a decoded document.

    ``encode`` converts filter operands into the document's stored representation
    (for example datetimes into ISO strings) before comparing.
    """
    if filter_ is None:
        return True
    if isinstance(filter_, AnyOf):
        return any(matches(doc, clause, encode) for clause in filter_.clauses)
    for field, cond in conditions(filter_):
        if cond.op == "in":
            expected: Any = tuple(encode(v) for v in cond.value)
        else:
            expected = encode(cond.value)
        if not _compare(doc.get(field), cond, expected):
            return False
    return True
