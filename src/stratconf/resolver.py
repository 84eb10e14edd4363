"""
stratconf — value resolver (merge engine).

File: src/stratconf/resolver.py

Purpose
- Decide, per field descriptor, which source supplies its raw value.

What should be included in this file
- Precedence logic: CLI > env > file > default > absent.
- Presence-based probing: a source that reports presence wins even when its
  value is an empty string; lower sources are not consulted.

Functional requirements
- The config-file switch field never reads from the config file.
- YAML/JSON ``null`` counts as absent.
- Absent nullable fields are left ``None`` when ``nil_ptrs`` is set.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from stratconf.schema import FieldDescriptor
from stratconf.sources import CommandLine, EnvironmentSource, lookup_file_value


class Source(Enum):
    """Where a field's raw value came from, highest precedence first."""

    CLI = "cli"
    ENV = "env"
    FILE = "file"
    DEFAULT = "default"
    ABSENT = "absent"


@dataclass(frozen=True, slots=True)
class RawValue:
    """Winning raw value of one field."""

    source: Source
    value: object = None
    origin: str = ""
    leave_nil: bool = False

    @property
    def present(self) -> bool:
        return self.source is not Source.ABSENT


def resolve(
    descriptors: Sequence[FieldDescriptor],
    cli: CommandLine,
    env: EnvironmentSource,
    file_tree: Mapping[str, object] | None,
    *,
    nil_ptrs: bool = False,
    logger: Any | None = None,
) -> dict[FieldDescriptor, RawValue]:
    """Resolve every descriptor to its winning raw value."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    resolved: dict[FieldDescriptor, RawValue] = {}
    for descriptor in descriptors:
        raw = resolve_one(descriptor, cli, env, file_tree, nil_ptrs=nil_ptrs)
        resolved[descriptor] = raw
        log.debug(
            "config.field_resolved",
            field=descriptor.resolved_name,
            source=raw.source.value,
            origin=raw.origin,
        )
    return resolved


def resolve_one(
    descriptor: FieldDescriptor,
    cli: CommandLine,
    env: EnvironmentSource,
    file_tree: Mapping[str, object] | None,
    *,
    nil_ptrs: bool = False,
) -> RawValue:
    cli_value = cli.lookup(descriptor)
    if cli_value is not None:
        return RawValue(Source.CLI, cli_value, f"--{descriptor.resolved_name}")

    env_value = env.lookup(descriptor)
    if env_value is not None:
        return RawValue(Source.ENV, env_value, descriptor.env_name(env.prefix or ""))

    if file_tree is not None and not descriptor.config_file:
        file_value = lookup_file_value(file_tree, descriptor)
        if file_value is not None:
            return RawValue(Source.FILE, file_value, descriptor.file_key)

    if descriptor.default_raw is not None:
        return RawValue(Source.DEFAULT, descriptor.default_raw, "default")

    return RawValue(Source.ABSENT, leave_nil=descriptor.nullable and nil_ptrs)


__all__ = ["RawValue", "Source", "resolve", "resolve_one"]
