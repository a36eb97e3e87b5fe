"""Result shapes shared by the adapters.

A driver hands back either a tabular cursor or nothing row-shaped at all
(DDL/DML, or a driver that omits column metadata). That distinction is
resolved once, by ``describe_cursor``, into a ``Tabular`` or ``NonTabular``
value; ``materialize`` then bounds the rows into a ``QueryResult``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union


@dataclass(frozen=True)
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    incomplete: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"rows": list(self.rows), "incomplete": self.incomplete}


@dataclass(frozen=True)
class Tabular:
    columns: Tuple[str, ...]
    rows: Iterable[Any]


@dataclass(frozen=True)
class NonTabular:
    pass


DriverResult = Union[Tabular, NonTabular]


def describe_cursor(cursor: Any) -> DriverResult:
    description = getattr(cursor, "description", None)
    if not description:
        return NonTabular()
    columns = tuple(str(desc[0]) for desc in description)
    return Tabular(columns=columns, rows=cursor)


def _as_record(columns: Tuple[str, ...], row: Any) -> Dict[str, Any]:
    if isinstance(row, dict):
        return dict(row)
    return {columns[i]: row[i] for i in range(len(columns))}


def materialize(result: DriverResult, max_rows: Optional[int]) -> QueryResult:
    """Copy rows out of ``result`` keeping at most ``max_rows`` of them.

    ``incomplete`` is set as soon as one row beyond the cap is seen; the
    remaining rows are not read. A missing or non-positive cap keeps every row.
    """
    if isinstance(result, NonTabular) or not result.columns:
        return QueryResult(rows=[], incomplete=False)

    bounded = max_rows is not None and max_rows > 0
    rows: List[Dict[str, Any]] = []
    incomplete = False
    for row in result.rows:
        if bounded and len(rows) >= max_rows:
            incomplete = True
            break
        rows.append(_as_record(result.columns, row))
    return QueryResult(rows=rows, incomplete=incomplete)
