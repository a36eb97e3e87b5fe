from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from adapters.results import QueryResult


class AdapterError(RuntimeError):
    pass


class UsageError(AdapterError):
    """Adapter API called out of order, e.g. connecting a client twice."""


class ConfigurationError(AdapterError):
    """Invalid adapter configuration, e.g. an unknown limit strategy."""


class DatasourceConnectionError(AdapterError):
    """The driver could not establish a session with the server."""


class DriverError(AdapterError):
    """Query execution failed inside the driver or the engine."""


class DatabaseAdapter(ABC):
    id: str = "unknown"
    name: str = "unknown"
    fields: List[Dict[str, Any]]

    @abstractmethod
    def run_query(self, query: str) -> QueryResult:
        raise NotImplementedError

    @abstractmethod
    def test_connection(self) -> QueryResult:
        raise NotImplementedError

    @abstractmethod
    def get_schema(self) -> Dict[str, Any]:
        raise NotImplementedError
