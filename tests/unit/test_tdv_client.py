import logging

import pytest

from adapters import tdv
from adapters.base import ConfigurationError, DatabaseAdapter, DatasourceConnectionError, DriverError, UsageError
from adapters.odbc_driver import ConnectionDefaults, TDVConfig
from adapters.tdv import (
    ConnectionDescriptor,
    ConnectionState,
    TDVAdapter,
    TDVClient,
    build_connection_string,
    redact_connection_string,
)

CONFIG = TDVConfig(driver_path="/opt/tdv/linux/libcomposite86_x64.so")
ROWS = [(i, f"r{i}") for i in range(1, 6)]
PAYLOAD = [{"message": "auth failed"}, {"message": "retry later"}]


class FakeOdbcError(Exception):
    def __init__(self, message, odbc_errors):
        super().__init__(message)
        self.odbc_errors = odbc_errors


class FakeCursor:
    def __init__(self, columns=("id", "name"), rows=ROWS, error=None):
        self.description = None if columns is None else [(name, None) for name in columns]
        self.rows = rows
        self.error = error
        self.executed = []
        self.closed = False

    def execute(self, sql):
        self.executed.append(sql)
        if self.error:
            raise self.error
        return self

    def __iter__(self):
        return iter(self.rows)

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, cursor=None, close_error=None):
        self.cursor_obj = cursor or FakeCursor()
        self.close_error = close_error
        self.closed = False

    def cursor(self):
        return self.cursor_obj

    def close(self):
        self.closed = True
        if self.close_error:
            raise self.close_error


class FakeConnector:
    def __init__(self, connection=None, error=None):
        self.connection = connection or FakeConnection()
        self.error = error
        self.calls = []

    def __call__(self, connection_string):
        self.calls.append(connection_string)
        if self.error:
            raise self.error
        return self.connection


def test_run_query_truncates_and_flags_incomplete():
    connector = FakeConnector()
    result = tdv.run_query("SELECT * FROM T", {"database": "db1", "maxRows": 2}, config=CONFIG, connector=connector)

    assert result.rows == [{"id": 1, "name": "r1"}, {"id": 2, "name": "r2"}]
    assert result.incomplete is True
    assert connector.connection.cursor_obj.executed == ["SELECT * FROM T FETCH FIRST 3 ROWS ONLY"]
    assert connector.connection.cursor_obj.closed is True
    assert connector.connection.closed is True


def test_run_query_returns_all_rows_under_cap():
    connector = FakeConnector()
    result = tdv.run_query("SELECT * FROM T", {"database": "db1", "maxRows": 10}, config=CONFIG, connector=connector)

    assert [row["name"] for row in result.rows] == ["r1", "r2", "r3", "r4", "r5"]
    assert result.incomplete is False
    assert connector.connection.cursor_obj.executed == ["SELECT * FROM T FETCH FIRST 11 ROWS ONLY"]


def test_override_takes_priority_over_default_cap():
    descriptor = ConnectionDescriptor(database="db1", maxrows_override="3", max_rows=10)
    result = tdv.run_query("SELECT * FROM T", descriptor, config=CONFIG, connector=FakeConnector())
    assert len(result.rows) == 3
    assert result.incomplete is True


def test_config_default_cap_applies_when_request_has_none():
    config = TDVConfig(driver_path=CONFIG.driver_path, default_max_rows=4)
    result = tdv.run_query("SELECT * FROM T", {"database": "db1"}, config=config, connector=FakeConnector())
    assert len(result.rows) == 4
    assert result.incomplete is True


def test_no_cap_leaves_query_and_rows_unbounded():
    connector = FakeConnector()
    result = tdv.run_query("SELECT * FROM T", {"database": "db1"}, config=CONFIG, connector=connector)
    assert len(result.rows) == 5
    assert result.incomplete is False
    assert connector.connection.cursor_obj.executed == ["SELECT * FROM T"]


def test_non_tabular_result_is_empty():
    connector = FakeConnector(FakeConnection(FakeCursor(columns=None, rows=[])))
    result = tdv.run_query("CREATE TABLE x (a INTEGER)", {"maxRows": 5}, config=CONFIG, connector=connector)
    assert result.rows == []
    assert result.incomplete is False
    assert connector.connection.cursor_obj.executed == ["CREATE TABLE x (a INTEGER)"]


def test_connect_failure_surfaces_first_driver_message():
    connector = FakeConnector(error=FakeOdbcError("[odbc] connection failed", PAYLOAD))
    with pytest.raises(DatasourceConnectionError) as excinfo:
        tdv.run_query("SELECT 1", {"database": "db1"}, config=CONFIG, connector=connector)
    assert str(excinfo.value) == "auth failed"
    assert len(connector.calls) == 1


def test_query_failure_joins_driver_messages_and_closes_connection():
    cursor = FakeCursor(error=FakeOdbcError("[odbc] query failed", PAYLOAD))
    connector = FakeConnector(FakeConnection(cursor))
    with pytest.raises(DriverError) as excinfo:
        tdv.run_query("SELECT * FROM T", {"database": "db1"}, config=CONFIG, connector=connector)
    assert str(excinfo.value) == "auth failed; retry later"
    assert cursor.closed is True
    assert connector.connection.closed is True


def test_non_driver_query_failure_is_reraised_unchanged():
    error = KeyError("unexpected")
    connector = FakeConnector(FakeConnection(FakeCursor(error=error)))
    with pytest.raises(KeyError) as excinfo:
        tdv.run_query("SELECT * FROM T", {"database": "db1"}, config=CONFIG, connector=connector)
    assert excinfo.value is error
    assert connector.connection.closed is True


def test_close_failure_is_logged_not_raised(caplog):
    connector = FakeConnector(FakeConnection(close_error=RuntimeError("socket gone")))
    with caplog.at_level(logging.ERROR, logger="adapters.tdv"):
        result = tdv.run_query("SELECT * FROM T", {"maxRows": 10}, config=CONFIG, connector=connector)
    assert len(result.rows) == 5
    assert "Error closing TDV connection" in caplog.text


def test_close_failure_does_not_mask_query_error():
    connection = FakeConnection(
        FakeCursor(error=FakeOdbcError("failed", [{"message": "syntax error"}])),
        close_error=RuntimeError("socket gone"),
    )
    with pytest.raises(DriverError, match="syntax error"):
        tdv.run_query("SELECT * FROM T", {}, config=CONFIG, connector=FakeConnector(connection))


def test_connecting_twice_is_a_usage_error():
    client = TDVClient({"database": "db1"}, config=CONFIG, connector=FakeConnector())
    client.connect()
    assert client.state is ConnectionState.CONNECTED
    with pytest.raises(UsageError, match="already connected"):
        client.connect()

    client.disconnect()
    with pytest.raises(UsageError):
        client.connect()


def test_failed_connect_cannot_be_retried_on_same_client():
    client = TDVClient({}, config=CONFIG, connector=FakeConnector(error=OSError("refused")))
    with pytest.raises(DatasourceConnectionError, match="refused"):
        client.connect()
    assert client.state is ConnectionState.CLOSED
    with pytest.raises(UsageError):
        client.connect()


def test_disconnect_is_idempotent():
    client = TDVClient({}, config=CONFIG, connector=FakeConnector())
    client.disconnect()
    client.disconnect()
    assert client.state is ConnectionState.CLOSED


def test_run_query_requires_connected_client():
    client = TDVClient({}, config=CONFIG, connector=FakeConnector())
    with pytest.raises(UsageError, match="not connected"):
        client.run_query("SELECT 1")


def test_unknown_strategy_fails_before_connecting():
    connector = FakeConnector()
    config = TDVConfig(driver_path=CONFIG.driver_path, limit_strategies=("limit",))
    with pytest.raises(ConfigurationError):
        tdv.run_query("SELECT 1", {}, config=config, connector=connector)
    assert connector.calls == []


def test_connection_string_applies_defaults_without_credentials():
    cs = build_connection_string(ConnectionDescriptor(database="db1"), CONFIG)
    assert cs == (
        "Driver=/opt/tdv/linux/libcomposite86_x64.so;host=localhost;port=9401;datasource=db1;domain=composite"
    )


def test_connection_string_uses_descriptor_values_and_credentials():
    descriptor = ConnectionDescriptor(
        host="tdv.internal", port=9411, domain="corp", database="sales", username="alice", password="a;b"
    )
    cs = build_connection_string(descriptor, CONFIG)
    assert ";host=tdv.internal;port=9411;datasource=sales;domain=corp;Uid=alice;Pwd={a;b}" in cs
    assert redact_connection_string(cs).endswith("Uid=alice;Pwd=***")


def test_connection_defaults_are_configurable():
    config = TDVConfig(driver_path="drv", defaults=ConnectionDefaults(host="tdv", port=1234, domain="dom"))
    assert build_connection_string(ConnectionDescriptor(), config) == (
        "Driver=drv;host=tdv;port=1234;datasource=;domain=dom"
    )


def test_test_connection_runs_probe_query():
    connector = FakeConnector(FakeConnection(FakeCursor(columns=("TestQuery",), rows=[("success",)])))
    result = tdv.test_connection({"database": "db1", "maxRows": 100}, config=CONFIG, connector=connector)
    assert result.rows == [{"TestQuery": "success"}]
    assert connector.connection.cursor_obj.executed[0].startswith(tdv.TEST_QUERY)


def test_get_schema_is_not_capped_or_rewritten():
    rows = [
        ("s1", "orders", "id", "INTEGER"),
        ("s1", "orders", "total", "DECIMAL"),
        ("s1", "customers", "name", "VARCHAR"),
    ]
    cursor = FakeCursor(columns=("table_schema", "table_name", "column_name", "data_type"), rows=rows)
    connector = FakeConnector(FakeConnection(cursor))

    schema = tdv.get_schema({"database": "o'brien", "maxRows": 1}, config=CONFIG, connector=connector)

    assert "FETCH FIRST" not in cursor.executed[0]
    assert "DATASOURCE_NAME = 'o''brien'" in cursor.executed[0]
    tables = schema["schemas"][0]["tables"]
    assert [t["name"] for t in tables] == ["orders", "customers"]
    assert tables[0]["columns"] == [
        {"name": "id", "data_type": "INTEGER"},
        {"name": "total", "data_type": "DECIMAL"},
    ]


def test_catalog_path_in_caller_query_is_still_capped():
    connector = FakeConnector()
    sql = "SELECT * FROM T -- /services/databases/system/ALL_COLUMNS"

    result = tdv.run_query(sql, {"database": "db1", "maxRows": 2}, config=CONFIG, connector=connector)

    assert len(result.rows) == 2
    assert result.incomplete is True
    assert connector.connection.cursor_obj.executed == [sql]


def test_client_reads_uncapped_only_when_asked():
    client = TDVClient({"database": "db1", "maxRows": 2}, config=CONFIG, connector=FakeConnector())
    client.connect()
    try:
        result = client.run_query("SELECT * FROM T", capped=False)
    finally:
        client.disconnect()

    assert len(result.rows) == 5
    assert result.incomplete is False


def test_adapter_delegates_to_pipeline():
    adapter = TDVAdapter({"database": "db1", "maxRows": 2}, config=CONFIG, connector=FakeConnector())
    assert adapter.id == "tdv"
    assert [field["key"] for field in adapter.fields] == [
        "host", "port", "domain", "database", "username", "password", "maxrows_override",
    ]
    assert adapter.run_query("SELECT * FROM T").incomplete is True
    assert not hasattr(DatabaseAdapter, "fields")


def test_descriptor_from_mapping_ignores_unknown_keys():
    descriptor = ConnectionDescriptor.from_mapping({"database": "db1", "maxRows": 7, "driver": "tdv"})
    assert descriptor == ConnectionDescriptor(database="db1", max_rows=7)
