"""Locating the TDV ODBC driver library and the process-wide driver config."""

from __future__ import annotations

import platform
import sys
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from adapters.base import ConfigurationError
from adapters.sql_limiter import validate_strategies
from utils.env_loader import env_int, env_str, load_environments

DEFAULT_DRIVER_BASE_DIR = Path(__file__).resolve().parent / "drivers"
WINDOWS_DRIVER_FILENAME = "composite86{arch}.dll"
UNIX_DRIVER_FILENAME = "libcomposite86{arch}.so"
_X64_MACHINES = {"x86_64", "amd64", "x64"}


def resolve_driver_path(
    platform_name: Optional[str] = None,
    machine: Optional[str] = None,
    base_dir: Optional[Path] = None,
) -> str:
    platform_name = (platform_name or sys.platform).lower()
    machine = (machine or platform.machine()).lower()
    base = Path(base_dir) if base_dir else DEFAULT_DRIVER_BASE_DIR
    arch = "_x64" if machine in _X64_MACHINES else ""

    if platform_name.startswith("win"):
        return str(base / "win" / WINDOWS_DRIVER_FILENAME.format(arch=arch))

    # Unknown platforms get the linux build.
    folder = "aix" if platform_name.startswith("aix") else "linux"
    return str(base / folder / UNIX_DRIVER_FILENAME.format(arch=arch))


@dataclass(frozen=True)
class ConnectionDefaults:
    host: str = "localhost"
    port: int = 9401
    domain: str = "composite"


@dataclass(frozen=True)
class TDVConfig:
    driver_path: str
    limit_strategies: Tuple[str, ...] = ("fetch",)
    defaults: ConnectionDefaults = field(default_factory=ConnectionDefaults)
    default_max_rows: Optional[int] = None


def load_tdv_config() -> TDVConfig:
    load_environments()
    driver_path = env_str("TDV_ODBC_DRIVER_PATH")
    if not driver_path:
        base_dir = env_str("TDV_DRIVER_BASE_DIR")
        driver_path = resolve_driver_path(base_dir=Path(base_dir) if base_dir else None)
    strategies = validate_strategies(env_str("TDV_LIMIT_STRATEGIES", "fetch"))
    try:
        port = env_int("TDV_DEFAULT_PORT", 9401)
        default_max_rows = env_int("TDV_DEFAULT_MAX_ROWS")
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    return TDVConfig(
        driver_path=driver_path,
        limit_strategies=tuple(strategies),
        defaults=ConnectionDefaults(
            host=env_str("TDV_DEFAULT_HOST", "localhost"),
            port=port,
            domain=env_str("TDV_DEFAULT_DOMAIN", "composite"),
        ),
        default_max_rows=default_max_rows,
    )


@lru_cache(maxsize=1)
def default_config() -> TDVConfig:
    return load_tdv_config()
