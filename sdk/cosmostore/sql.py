"""
SQL helpers for cosmostore queries.

Shared collections hold documents of several entity types, so every query a
shared-collection store issues must also filter on the entity name field.

Invariants:
    - Queries for dedicated collections are never modified
    - An existing WHERE predicate is kept intact inside parentheses
    - The keyword "as" is never accepted as a collection name or alias
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Mapping
from typing import Any

from .errors import InvalidSqlQueryError
from .schema import ENTITY_NAME_FIELD

_FROM_RE = re.compile(r"\bfrom\b", re.IGNORECASE)
_WHERE_RE = re.compile(r"\bwhere\b", re.IGNORECASE)
_TAIL_RE = re.compile(r"\b(?:order\s+by|group\s+by|offset)\b", re.IGNORECASE)


def _alias(sql: str, from_clause: str) -> str:
    """Resolve the alias used for the queried collection."""
    tokens = from_clause.split()
    if any(token.lower() == "as" for token in tokens[:1] + tokens[-1:]):
        raise InvalidSqlQueryError("'as' cannot be used as a collection name or alias", sql)

    if len(tokens) == 1:
        return tokens[0]
    if len(tokens) == 2:
        return tokens[1]
    if len(tokens) == 3 and tokens[1].lower() == "as":
        return tokens[2]
    raise InvalidSqlQueryError(f"Unsupported FROM clause '{from_clause.strip()}'", sql)


def ensure_shared_collection_filter(
    sql: str, entity_name: str, field: str = ENTITY_NAME_FIELD
) -> str:
    """Add the entity name filter to a query against a shared collection.

    Args:
        sql: Query text, e.g. "select * from c where c.id = '1'"
        entity_name: Discriminator value of the queried entity type
        field: Document property holding the discriminator

    Returns:
        The rewritten query

    Raises:
        InvalidSqlQueryError: If the FROM clause cannot be understood

    Example:
        >>> ensure_shared_collection_filter("select * from c", "book")
        "select * from c where c.cosmosEntityName = 'book'"
    """
    from_match = _FROM_RE.search(sql)
    if from_match is None:
        raise InvalidSqlQueryError("Query has no FROM clause", sql)

    where_match = _WHERE_RE.search(sql, from_match.end())
    tail_match = _TAIL_RE.search(sql, where_match.end() if where_match else from_match.end())
    tail_start = tail_match.start() if tail_match else len(sql)
    tail = f" {sql[tail_start:].strip()}" if tail_match else ""

    from_end = where_match.start() if where_match else tail_start
    alias = _alias(sql, sql[from_match.end():from_end])
    value = entity_name.replace("'", "\\'")
    condition = f"{alias}.{field} = '{value}'"

    if where_match is None:
        head = sql[:tail_start].rstrip()
        return f"{head} where {condition}{tail}"

    predicate = sql[where_match.end():tail_start].strip()
    if not predicate:
        raise InvalidSqlQueryError("WHERE clause is empty", sql)
    head = sql[:where_match.start()].rstrip()
    return f"{head} where {condition} and ({predicate}){tail}"


def to_sql_parameters(obj: Any) -> list[dict[str, Any]]:
    """Turn a mapping, dataclass or plain object into SQL query parameters.

    Example:
        >>> to_sql_parameters({"name": "Dune", "year": 1965})
        [{'name': '@name', 'value': 'Dune'}, {'name': '@year', 'value': 1965}]
    """
    if obj is None:
        return []
    if isinstance(obj, Mapping):
        items = list(obj.items())
    elif dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        items = [(f.name, getattr(obj, f.name)) for f in dataclasses.fields(obj)]
    elif hasattr(obj, "__dict__"):
        items = list(vars(obj).items())
    else:
        raise TypeError(f"Cannot build SQL parameters from {type(obj).__name__}")

    return [
        {"name": name if name.startswith("@") else f"@{name}", "value": value}
        for name, value in items
    ]
