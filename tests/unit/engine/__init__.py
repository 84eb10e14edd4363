"""Shared schemas and helpers for stratconf unit tests.

Schemas live at module level so ``typing.get_type_hints`` can resolve their
postponed annotations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from ipaddress import IPv4Address
from pathlib import Path

from stratconf import ConfigFile, ConfigRegistry, Options, TypeRegistry, group, setting


class Color(Enum):
    RED = 1
    GREEN = 2
    BLUE = 3


TYPES = TypeRegistry()
TYPES.register_enum(Color)


@dataclass
class IPC:
    """Inter-process communication."""

    socket_file: str = setting("/var/run/app.sock", help="unix socket path")


@dataclass
class Server:
    """HTTP server settings."""

    listen_ip: IPv4Address = setting("127.0.0.1", help="address to bind")
    port: int = setting(8080, short="p", help="port to listen on", validate="gte=1,lte=65535")
    ipc: IPC = group()


@dataclass
class AppConfig:
    """Demo application."""

    config: ConfigFile = setting("", short="c", help="config file")
    debug: bool = setting(False, short="d", help="verbose mode")
    name: str = setting("demo", validate="required,max=16")
    tags: list[str] = setting(help="comma separated tags")
    labels: dict[str, str] = setting(help="key=value labels")
    timeout: timedelta = setting("30s", help="request timeout")
    retries: int | None = setting(help="optional retry budget")
    api_token: str = setting("", secret=True, help="API token")
    level: str = setting("info", enum=("debug", "info", "warn"), help="log level")
    server: Server = group()


@dataclass
class Database:
    """Database connection."""

    host: str = setting("localhost")
    port: int = setting(5432)


@dataclass
class Naming:
    primary: Database = group()
    replica: Database = group(name="ro")
    shared: Database = group(name="")
    merged: IPC = group(flatten=True)
    cache_dir: Path = setting(".cache")
    color: Color = setting("red")
    internal: list[str] = field(default_factory=list, metadata={})
    skipped: int = setting(7, ignore=True)


@dataclass
class Portless:
    """Schema without a config file switch."""

    host: str = setting("localhost", short="H")
    ratio: float = setting(0.5)


def isolated(**overrides: object) -> Options:
    """Options that never touch ``sys.argv``, ``os.environ`` or the global registry."""

    values: dict[str, object] = {
        "args": [],
        "environ": {},
        "registry": ConfigRegistry(),
        "no_recover": True,
    }
    values.update(overrides)
    return Options(**values)  # type: ignore[arg-type]
