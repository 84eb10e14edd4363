"""
stratconf — templates and effective-config dumps.

File: src/stratconf/templates.py

Purpose
- Render resolved configuration back into the shapes users author it in:
  an environment-variable template, a commented YAML document following the
  named-group file structure, and a redacted, deterministic effective dump.

Functional requirements
- Secret fields are always redacted in rendered output.
- The config-file switch is omitted from file-shaped output.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import yaml

from stratconf.codecs import Codec, MappingCodec, SequenceCodec
from stratconf.constants import REDACTED_VALUE
from stratconf.schema import FieldDescriptor, SchemaLayout
from stratconf.sources import permitted_values

_FILE_NATIVE_SCALARS = (str, int, float, bool)


def field_value(instance: Any, descriptor: FieldDescriptor) -> Any:
    cursor = instance
    for attribute in descriptor.path:
        cursor = getattr(cursor, attribute)
    return cursor


def to_native(codec: Codec, value: Any) -> Any:
    """Convert a typed value to a YAML/JSON-native value."""

    if value is None:
        return None
    if isinstance(codec, SequenceCodec):
        items = [to_native(codec.element, item) for item in value]
        if isinstance(value, (set, frozenset)):
            items.sort(key=lambda item: json.dumps(item, sort_keys=True, default=str))
        return items
    if isinstance(codec, MappingCodec):
        return {codec.key.render(key): to_native(codec.value, item) for key, item in value.items()}
    if type(value) in _FILE_NATIVE_SCALARS:
        return value
    return codec.render(value)


def dump_config(layout: SchemaLayout, instance: Any, *, redact: bool = True) -> dict[str, Any]:
    """Return ``instance`` as a nested mapping shaped like the config file."""

    payload: dict[str, Any] = {}
    for descriptor in layout.fields:
        if descriptor.config_file:
            continue
        value = _native_value(descriptor, instance, redact=redact)
        _set_nested(payload, descriptor.file_path, value)
    return payload


def dump_effective_config(layout: SchemaLayout, instance: Any) -> str:
    """Return a deterministic JSON dump of the redacted effective config."""

    return json.dumps(
        dump_config(layout, instance), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def render_env_template(layout: SchemaLayout, instance: Any, *, prefix: str | None) -> str:
    """Render ``NAME="value"`` lines with description comments, one per field."""

    lines: list[str] = []
    for descriptor in layout.fields:
        if descriptor.description:
            lines.append(f"# {descriptor.description}")
        allowed = permitted_values(descriptor)
        if allowed:
            lines.append(f"# one of: {', '.join(allowed)}")
        value = field_value(instance, descriptor)
        if descriptor.secret:
            text = REDACTED_VALUE
        elif value is None:
            text = ""
        else:
            text = descriptor.codec.render(value)
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        lines.append(f'{descriptor.env_name(prefix or "")}="{escaped}"')
    return "\n".join(lines) + "\n"


@dataclass(slots=True)
class _Branch:
    description: str = ""
    entries: dict[str, _Branch | FieldDescriptor] = field(default_factory=dict)


def render_yaml_template(layout: SchemaLayout, instance: Any) -> str:
    """Render a commented YAML document mirroring the named-group file structure."""

    descriptions: dict[tuple[str, ...], str] = {}
    for node in layout.groups:
        if node.path and node.description:
            descriptions.setdefault(node.file_path, node.description)

    root = _Branch()
    for descriptor in layout.fields:
        if descriptor.config_file:
            continue
        branch = root
        for depth, part in enumerate(descriptor.file_path[:-1], start=1):
            child = branch.entries.get(part)
            if not isinstance(child, _Branch):
                child = _Branch(description=descriptions.get(descriptor.file_path[:depth], ""))
                branch.entries[part] = child
            branch = child
        branch.entries[descriptor.file_path[-1]] = descriptor

    lines: list[str] = []
    _emit(root, instance, indent=0, lines=lines)
    return "\n".join(lines) + "\n"


def _emit(branch: _Branch, instance: Any, *, indent: int, lines: list[str]) -> None:
    pad = "  " * indent
    for key, entry in branch.entries.items():
        if isinstance(entry, _Branch):
            if entry.description:
                lines.append(f"{pad}# {entry.description}")
            lines.append(f"{pad}{key}:")
            _emit(entry, instance, indent=indent + 1, lines=lines)
            continue
        if entry.description:
            lines.append(f"{pad}# {entry.description}")
        allowed = permitted_values(entry)
        if allowed:
            lines.append(f"{pad}# one of: {', '.join(allowed)}")
        value = _native_value(entry, instance, redact=True)
        rendered = yaml.safe_dump(
            {key: value},
            default_flow_style=None,
            sort_keys=False,
            allow_unicode=True,
            width=1 << 16,
        )
        for line in rendered.rstrip("\n").splitlines():
            lines.append(f"{pad}{line}")


def _native_value(descriptor: FieldDescriptor, instance: Any, *, redact: bool) -> Any:
    if redact and descriptor.secret:
        return REDACTED_VALUE
    return to_native(descriptor.codec, field_value(instance, descriptor))


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


__all__ = [
    "dump_config",
    "dump_effective_config",
    "field_value",
    "render_env_template",
    "render_yaml_template",
    "to_native",
]
