from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from adapters.base import DatasourceConnectionError, DriverError


@dataclass(frozen=True)
class SingleError:
    message: str


@dataclass(frozen=True)
class MultiError:
    messages: Tuple[str, ...]


Diagnostic = Union[SingleError, MultiError]


def _item_message(item: Any) -> str:
    if isinstance(item, dict):
        return str(item.get("message", ""))
    return str(getattr(item, "message", item))


def _is_sqlstate(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 5 and value.isalnum()


def read_diagnostic(exc: BaseException) -> Optional[Diagnostic]:
    """Classify a raised error by the driver diagnostics it carries.

    Returns ``MultiError`` when the error has an ``odbc_errors`` payload,
    ``SingleError`` for a DB-API error shaped like pyodbc's
    ``(sqlstate, message)`` args, and ``None`` for anything else.
    """
    payload = getattr(exc, "odbc_errors", None)
    if isinstance(payload, (list, tuple)) and payload:
        return MultiError(messages=tuple(_item_message(item) for item in payload))

    args = getattr(exc, "args", ())
    if len(args) == 2 and _is_sqlstate(args[0]) and isinstance(args[1], str):
        return SingleError(message=args[1])
    return None


def connect_error(exc: BaseException) -> DatasourceConnectionError:
    # A failed connect usually has one root cause: keep the first message only.
    diagnostic = read_diagnostic(exc)
    if isinstance(diagnostic, MultiError):
        return DatasourceConnectionError(diagnostic.messages[0])
    if isinstance(diagnostic, SingleError):
        return DatasourceConnectionError(diagnostic.message)
    return DatasourceConnectionError(str(exc))


def query_error(exc: BaseException) -> BaseException:
    """Map a query-time failure to the error the caller should see.

    Driver diagnostics become a single ``DriverError``; any other exception is
    handed back unchanged.
    """
    diagnostic = read_diagnostic(exc)
    if isinstance(diagnostic, MultiError):
        return DriverError("; ".join(diagnostic.messages))
    if isinstance(diagnostic, SingleError):
        return DriverError(diagnostic.message)
    return exc
