import logging
import time

from fastapi import APIRouter, HTTPException

from adapters.base import (
    AdapterError,
    ConfigurationError,
    DatasourceConnectionError,
    DriverError,
    UsageError,
)
from adapters.factory import describe_driver, get_adapter, get_adapter_class
from adapters.odbc_driver import TDVConfig, default_config
from adapters.tdv import ConnectionDescriptor
from api.schemas import ConnectionRequest, DriverResponse, QueryRequest, QueryResponse, SchemaResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _descriptor(connection: ConnectionRequest, config: TDVConfig) -> ConnectionDescriptor:
    values = connection.model_dump(exclude_none=True)
    if "max_rows" not in values:
        values["max_rows"] = config.default_max_rows
    return ConnectionDescriptor.from_mapping(values)


def _build_adapter(driver_id: str, connection: ConnectionRequest):
    try:
        get_adapter_class(driver_id)
    except AdapterError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        config = default_config()
        return get_adapter(driver_id, _descriptor(connection, config), config=config)
    except AdapterError as exc:
        raise _to_http_error(exc) from exc


def _to_http_error(exc: AdapterError) -> HTTPException:
    if isinstance(exc, (ConfigurationError, UsageError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (DatasourceConnectionError, DriverError)):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/drivers/{driver_id}", response_model=DriverResponse)
def driver_info(driver_id: str) -> DriverResponse:
    try:
        return DriverResponse(**describe_driver(driver_id))
    except AdapterError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/drivers/{driver_id}/test", response_model=QueryResponse)
def test_driver_connection(driver_id: str, connection: ConnectionRequest) -> QueryResponse:
    adapter = _build_adapter(driver_id, connection)
    try:
        result = adapter.test_connection()
    except AdapterError as exc:
        raise _to_http_error(exc) from exc
    return QueryResponse(**result.to_dict())


@router.post("/drivers/{driver_id}/schema", response_model=SchemaResponse)
def driver_schema(driver_id: str, connection: ConnectionRequest) -> SchemaResponse:
    adapter = _build_adapter(driver_id, connection)
    try:
        schema = adapter.get_schema()
    except AdapterError as exc:
        raise _to_http_error(exc) from exc
    return SchemaResponse(**schema)


@router.post("/drivers/{driver_id}/query", response_model=QueryResponse)
def run_driver_query(driver_id: str, request: QueryRequest) -> QueryResponse:
    adapter = _build_adapter(driver_id, request.connection)
    started_at = time.perf_counter()
    try:
        result = adapter.run_query(request.query)
    except AdapterError as exc:
        raise _to_http_error(exc) from exc
    logger.info(
        "Query on %s returned %d rows (incomplete=%s) in %.1f ms",
        driver_id,
        len(result.rows),
        result.incomplete,
        (time.perf_counter() - started_at) * 1000.0,
    )
    return QueryResponse(**result.to_dict())
