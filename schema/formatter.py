from __future__ import annotations

from typing import Any, Dict, List, Mapping

from adapters.results import QueryResult


def _get(row: Mapping[str, Any], key: str) -> Any:
    if key in row:
        return row[key]
    # Some ODBC drivers upper-case column labels.
    lowered = {str(k).lower(): v for k, v in row.items()}
    return lowered.get(key)


def format_schema_query_results(result: QueryResult) -> Dict[str, Any]:
    """Group ``table_schema/table_name/column_name/data_type`` rows into a tree.

    Schemas, tables and columns keep the order the catalog query returned them in.
    """
    schemas: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
    for row in result.rows:
        schema_name = _get(row, "table_schema")
        table_name = _get(row, "table_name")
        schema_key = "" if schema_name is None else str(schema_name)
        tables = schemas.setdefault(schema_key, {})
        tables.setdefault(str(table_name), []).append(
            {
                "name": _get(row, "column_name"),
                "data_type": _get(row, "data_type"),
            }
        )

    return {
        "schemas": [
            {
                "name": schema_name,
                "tables": [{"name": table_name, "columns": columns} for table_name, columns in tables.items()],
            }
            for schema_name, tables in schemas.items()
        ]
    }
