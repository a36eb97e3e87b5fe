from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, fields as dataclass_fields
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

from adapters.base import AdapterError, DatabaseAdapter, UsageError
from adapters.odbc_driver import TDVConfig, default_config
from adapters.odbc_errors import connect_error, query_error
from adapters.results import QueryResult, describe_cursor, materialize
from adapters.sql_limiter import bound_query, validate_strategies
from schema.formatter import format_schema_query_results
from utils.resolve_number import resolve_positive_number

logger = logging.getLogger(__name__)

ID = "tdv"
NAME = "TIBCO Data Virtualization"
TEST_QUERY = "SELECT 'success' AS TestQuery FROM /services/databases/system/dual"

FIELDS: List[Dict[str, Any]] = [
    {"key": "host", "formType": "TEXT", "label": "Host/Server/IP Address"},
    {"key": "port", "formType": "TEXT", "label": "Port (optional)"},
    {"key": "domain", "formType": "TEXT", "label": "Domain"},
    {"key": "database", "formType": "TEXT", "label": "Database"},
    {"key": "username", "formType": "TEXT", "label": "Database Username"},
    {"key": "password", "formType": "PASSWORD", "label": "Database Password"},
    {
        "key": "maxrows_override",
        "formType": "TEXT",
        "label": "Maximum rows to return",
        "description": "Optional",
    },
]

Connector = Callable[[str], Any]


@dataclass(frozen=True)
class ConnectionDescriptor:
    database: Optional[str] = None
    host: Optional[str] = None
    port: Optional[Union[int, str]] = None
    domain: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    maxrows_override: Optional[Any] = None
    max_rows: Optional[int] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ConnectionDescriptor":
        known = {f.name for f in dataclass_fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "max_rows" not in values and "maxRows" in data:
            values["max_rows"] = data["maxRows"]
        return cls(**values)


DescriptorLike = Union[ConnectionDescriptor, Mapping[str, Any]]


def as_descriptor(value: DescriptorLike) -> ConnectionDescriptor:
    if isinstance(value, ConnectionDescriptor):
        return value
    return ConnectionDescriptor.from_mapping(value)


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


def schema_sql(database: Optional[str]) -> str:
    datasource = (database or "").replace("'", "''")
    return f"""
    SELECT
       schema_name AS table_schema,
       table_name AS table_name,
       column_name AS column_name,
       data_type AS data_type
    FROM /services/databases/system/ALL_COLUMNS
    WHERE
       DATASOURCE_NAME = '{datasource}'
    ORDER BY
      table_schema,
      table_name,
      ordinal_position
    """


def _odbc_value(value: Any) -> str:
    text = str(value)
    if any(ch in text for ch in ";{}") or text != text.strip():
        return "{" + text.replace("}", "}}") + "}"
    return text


def build_connection_string(descriptor: ConnectionDescriptor, config: TDVConfig) -> str:
    defaults = config.defaults
    parts = [
        f"Driver={_odbc_value(config.driver_path)}",
        f"host={_odbc_value(descriptor.host or defaults.host)}",
        f"port={_odbc_value(descriptor.port or defaults.port)}",
        f"datasource={_odbc_value(descriptor.database or '')}",
        f"domain={_odbc_value(descriptor.domain or defaults.domain)}",
    ]
    # Some deployments run without authentication.
    if descriptor.username:
        parts.append(f"Uid={_odbc_value(descriptor.username)}")
    if descriptor.password:
        parts.append(f"Pwd={_odbc_value(descriptor.password)}")
    return ";".join(parts)


_PWD_RE = re.compile(r"(Pwd=)(\{(?:[^}]|\}\})*\}|[^;]*)", re.IGNORECASE)


def redact_connection_string(connection_string: str) -> str:
    return _PWD_RE.sub(r"\1***", connection_string)


def _pyodbc_connect(connection_string: str) -> Any:
    try:
        import pyodbc  # type: ignore
    except ImportError as exc:
        raise ImportError(
            "pyodbc is required for the TDV adapter. Install it with `python -m pip install pyodbc` "
            "and make sure an ODBC driver manager (unixODBC on Linux) is available."
        ) from exc
    return pyodbc.connect(connection_string, autocommit=True)


class TDVClient:
    """One logical session against a TDV server.

    A client connects at most once. ``disconnect`` is safe to call in any state
    and never raises, so it can run after a failure without hiding it.
    """

    def __init__(
        self,
        descriptor: DescriptorLike,
        config: Optional[TDVConfig] = None,
        connector: Optional[Connector] = None,
    ):
        self.descriptor = as_descriptor(descriptor)
        self.config = config or default_config()
        self.strategies = validate_strategies(",".join(self.config.limit_strategies))
        self._connector = connector or _pyodbc_connect
        self._handle: Any = None
        self._state = ConnectionState.IDLE

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def max_rows(self) -> Optional[int]:
        return resolve_positive_number(
            self.descriptor.maxrows_override,
            self.descriptor.max_rows,
            self.config.default_max_rows,
        )

    def connect(self) -> None:
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            raise UsageError("Client already connected")
        if self._state is ConnectionState.CLOSED:
            raise UsageError("Client already closed; create a new client to reconnect")

        self._state = ConnectionState.CONNECTING
        connection_string = build_connection_string(self.descriptor, self.config)
        logger.info("Connecting to TDV: %s", redact_connection_string(connection_string))
        try:
            self._handle = self._connector(connection_string)
        except Exception as exc:
            self._handle = None
            self._state = ConnectionState.CLOSED
            logger.error("TDV connection failed: %s", exc)
            raise connect_error(exc) from exc
        self._state = ConnectionState.CONNECTED

    def disconnect(self) -> None:
        handle, self._handle = self._handle, None
        self._state = ConnectionState.CLOSED
        if handle is None or not hasattr(handle, "close"):
            return
        try:
            handle.close()
        except Exception:
            logger.exception("Error closing TDV connection")

    def run_query(self, query: str, capped: bool = True) -> QueryResult:
        """Run ``query`` and read at most ``max_rows`` rows.

        ``capped=False`` is reserved for internal catalog reads such as
        :func:`get_schema`; caller SQL is always capped.
        """
        if self._state is not ConnectionState.CONNECTED:
            raise UsageError(f"Client is not connected (state: {self._state.value})")

        max_rows = self.max_rows if capped else None
        sql = bound_query(query, self.strategies, max_rows)
        logger.info("Running TDV query (max_rows=%s)", max_rows)
        logger.debug("Bounded SQL: %s", sql)

        cursor = None
        try:
            cursor = self._handle.cursor()
            cursor.execute(sql)
            return materialize(describe_cursor(cursor), max_rows)
        except AdapterError:
            raise
        except Exception as exc:
            logger.error("TDV query failed: %s", exc)
            normalized = query_error(exc)
            if normalized is exc:
                raise
            raise normalized from exc
        finally:
            if cursor is not None:
                self._close_cursor(cursor)

    def _close_cursor(self, cursor: Any) -> None:
        try:
            cursor.close()
        except Exception:
            logger.warning("Error closing TDV cursor", exc_info=True)


@contextmanager
def client_session(
    descriptor: DescriptorLike,
    config: Optional[TDVConfig] = None,
    connector: Optional[Connector] = None,
) -> Iterator[TDVClient]:
    client = TDVClient(descriptor, config=config, connector=connector)
    client.connect()
    try:
        yield client
    finally:
        client.disconnect()


def run_query(
    query: str,
    descriptor: DescriptorLike,
    config: Optional[TDVConfig] = None,
    connector: Optional[Connector] = None,
) -> QueryResult:
    with client_session(descriptor, config=config, connector=connector) as client:
        return client.run_query(query)


def test_connection(
    descriptor: DescriptorLike,
    config: Optional[TDVConfig] = None,
    connector: Optional[Connector] = None,
) -> QueryResult:
    return run_query(TEST_QUERY, descriptor, config=config, connector=connector)


def get_schema(
    descriptor: DescriptorLike,
    config: Optional[TDVConfig] = None,
    connector: Optional[Connector] = None,
) -> Dict[str, Any]:
    descriptor = as_descriptor(descriptor)
    with client_session(descriptor, config=config, connector=connector) as client:
        result = client.run_query(schema_sql(descriptor.database), capped=False)
    return format_schema_query_results(result)


class TDVAdapter(DatabaseAdapter):
    id = ID
    name = NAME
    fields = FIELDS

    def __init__(
        self,
        descriptor: DescriptorLike,
        config: Optional[TDVConfig] = None,
        connector: Optional[Connector] = None,
    ):
        self.descriptor = as_descriptor(descriptor)
        self.config = config or default_config()
        self.connector = connector

    def run_query(self, query: str) -> QueryResult:
        return run_query(query, self.descriptor, config=self.config, connector=self.connector)

    def test_connection(self) -> QueryResult:
        return test_connection(self.descriptor, config=self.config, connector=self.connector)

    def get_schema(self) -> Dict[str, Any]:
        return get_schema(self.descriptor, config=self.config, connector=self.connector)
