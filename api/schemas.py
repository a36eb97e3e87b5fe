from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ConnectionRequest(BaseModel):
    host: Optional[str] = Field(default=None, max_length=255)
    port: Optional[Union[int, str]] = Field(default=None, description="Defaults to 9401")
    domain: Optional[str] = Field(default=None, max_length=255, description="Defaults to composite")
    database: Optional[str] = Field(default=None, max_length=255, description="TDV datasource name")
    username: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=1024)
    maxrows_override: Optional[Union[int, str]] = Field(default=None, description="Per-connection row cap")
    max_rows: Optional[int] = Field(default=None, alias="maxRows", description="Application default row cap")

    model_config = {"populate_by_name": True}


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=100_000)
    connection: ConnectionRequest


class QueryResponse(BaseModel):
    rows: List[Dict[str, Any]]
    incomplete: bool


class SchemaResponse(BaseModel):
    schemas: List[Dict[str, Any]]


class DriverResponse(BaseModel):
    id: str
    name: str
    fields: List[Dict[str, Any]]
