"""Query adapter layer for TIBCO Data Virtualization over ODBC."""

from adapters.factory import describe_driver, get_adapter

__all__ = ["describe_driver", "get_adapter"]
