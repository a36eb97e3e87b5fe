from __future__ import annotations

from typing import Any, Dict, Optional, Type

from adapters.base import AdapterError, DatabaseAdapter
from adapters.odbc_driver import TDVConfig
from adapters.tdv import DescriptorLike, TDVAdapter

ADAPTERS: Dict[str, Type[DatabaseAdapter]] = {
    TDVAdapter.id: TDVAdapter,
}


def get_adapter_class(driver_id: str) -> Type[DatabaseAdapter]:
    key = (driver_id or "").strip().lower()
    adapter_cls = ADAPTERS.get(key)
    if adapter_cls is None:
        raise AdapterError(f"Unsupported driver: {driver_id}")
    return adapter_cls


def get_adapter(
    driver_id: str,
    descriptor: DescriptorLike,
    config: Optional[TDVConfig] = None,
    **kwargs: Any,
) -> DatabaseAdapter:
    adapter_cls = get_adapter_class(driver_id)
    return adapter_cls(descriptor, config=config, **kwargs)


def describe_driver(driver_id: str) -> Dict[str, Any]:
    adapter_cls = get_adapter_class(driver_id)
    return {"id": adapter_cls.id, "name": adapter_cls.name, "fields": adapter_cls.fields}
