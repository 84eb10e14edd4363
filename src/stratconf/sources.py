"""
stratconf — raw value sources.

File: src/stratconf/sources.py

Purpose
- Adapt the command line, the environment and the config file into lookups
  keyed by field descriptor. Each lookup reports presence separately from the
  value so an empty string is never mistaken for absence.

What should be included in this file
- argparse-backed tokenizer building one option per field (``--name``,
  ``-s``), bare-presence booleans, help and hidden template flags.
- Environment lookup ``{prefix}{RESOLVED_NAME}``, disabled without a prefix.
- YAML/JSON config-file loading selected by extension, and nested lookups
  along a field's named-group path.

Functional requirements
- Tokenizer failures surface as ``CommandLineError``, file failures as
  ``ConfigLoadError``; neither exits the process.
"""

from __future__ import annotations

import argparse
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import yaml

from stratconf.codecs import MapValueCodec
from stratconf.constants import (
    HELP_FLAG,
    HELP_SHORT_FLAG,
    JSON_SUFFIXES,
    PRINT_ENV_TEMPLATE_FLAG,
    PRINT_YAML_TEMPLATE_FLAG,
    REDACTED_VALUE,
    YAML_SUFFIXES,
)
from stratconf.errors import CommandLineError, ConfigLoadError, DuplicateShortFlagError
from stratconf.schema import FieldDescriptor, GroupNode, SchemaLayout

_ABSENT: Final[object] = object()
_KEPT_YAML_TAGS: Final[frozenset[str]] = frozenset(
    {"tag:yaml.org,2002:null", "tag:yaml.org,2002:merge"}
)


class _SourceTextLoader(yaml.SafeLoader):
    """Safe loader that keeps plain scalars as their source text; only ``null`` resolves."""


_SourceTextLoader.yaml_implicit_resolvers = {
    first: [(tag, pattern) for tag, pattern in resolvers if tag in _KEPT_YAML_TAGS]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


@dataclass(frozen=True, slots=True)
class CommandLine:
    """Tokenized command line: raw values keyed by resolved name."""

    values: Mapping[str, str]
    help_requested: bool = False
    print_env_template: bool = False
    print_yaml_template: bool = False

    def lookup(self, descriptor: FieldDescriptor) -> str | None:
        return self.values.get(descriptor.resolved_name)


@dataclass(frozen=True, slots=True)
class EnvironmentSource:
    """Environment lookup; ``prefix=None`` disables the source entirely."""

    prefix: str | None
    environ: Mapping[str, str]

    def lookup(self, descriptor: FieldDescriptor) -> str | None:
        if self.prefix is None:
            return None
        return self.environ.get(descriptor.env_name(self.prefix))


class _ArgumentParser(argparse.ArgumentParser):
    """Parser that raises instead of printing and exiting."""

    def error(self, message: str) -> Any:
        raise CommandLineError(message)


def build_parser(
    layout: SchemaLayout,
    *,
    prog: str | None = None,
    show_internal_flags: bool = False,
    no_short_help: bool = False,
) -> argparse.ArgumentParser:
    """Build an argparse parser with one option per field descriptor."""

    parser = _ArgumentParser(
        prog=prog,
        description=layout.root.description or None,
        add_help=False,
        allow_abbrev=False,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    help_flags = [HELP_FLAG] if no_short_help else [HELP_SHORT_FLAG, HELP_FLAG]
    if not no_short_help:
        for descriptor in layout.fields:
            if descriptor.short_flag == HELP_SHORT_FLAG[1:]:
                raise DuplicateShortFlagError(
                    descriptor.short_flag, (descriptor.attribute_path, "<help>")
                )
    parser.add_argument(
        *help_flags,
        dest="help",
        action="store_true",
        default=False,
        help="show this help message and exit",
    )
    for flag, text in (
        (PRINT_ENV_TEMPLATE_FLAG, "print an environment-variable template and exit"),
        (PRINT_YAML_TEMPLATE_FLAG, "print a YAML config template and exit"),
    ):
        parser.add_argument(
            f"--{flag}",
            dest=flag,
            action="store_true",
            default=False,
            help=text if show_internal_flags else argparse.SUPPRESS,
        )

    for node in layout.root.iter_groups():
        if not node.fields:
            continue
        container: argparse._ActionsContainer = parser
        if node.path:
            container = parser.add_argument_group(_group_title(node))
        for descriptor in node.fields:
            _add_field_argument(container, descriptor)
    return parser


def parse_command_line(parser: argparse.ArgumentParser, args: Sequence[str]) -> CommandLine:
    namespace = parser.parse_args(list(args))
    parsed = vars(namespace)
    return CommandLine(
        values={
            key: value
            for key, value in parsed.items()
            if key not in {"help", PRINT_ENV_TEMPLATE_FLAG, PRINT_YAML_TEMPLATE_FLAG}
        },
        help_requested=bool(parsed.get("help")),
        print_env_template=bool(parsed.get(PRINT_ENV_TEMPLATE_FLAG)),
        print_yaml_template=bool(parsed.get(PRINT_YAML_TEMPLATE_FLAG)),
    )


def _add_field_argument(
    container: argparse._ActionsContainer, descriptor: FieldDescriptor
) -> None:
    flags = [f"--{descriptor.resolved_name}"]
    if descriptor.short_flag is not None:
        flags.append(f"-{descriptor.short_flag}")
    kwargs: dict[str, Any] = {
        "dest": descriptor.resolved_name,
        "default": argparse.SUPPRESS,
        "metavar": _metavar(descriptor),
        "help": argparse.SUPPRESS if descriptor.hidden else _help_text(descriptor),
    }
    if descriptor.type_id is bool:
        kwargs["nargs"] = "?"
        kwargs["const"] = "true"
    container.add_argument(*flags, **kwargs)


def _group_title(node: GroupNode) -> str:
    label = ".".join(node.path)
    return f"{label}: {node.description}" if node.description else label


def _metavar(descriptor: FieldDescriptor) -> str:
    if descriptor.type_id is bool:
        return "BOOL"
    return descriptor.path[-1].upper()


def _help_text(descriptor: FieldDescriptor) -> str:
    parts: list[str] = []
    if descriptor.description:
        parts.append(descriptor.description)
    if descriptor.default_raw is not None and descriptor.default_raw != "":
        shown = REDACTED_VALUE if descriptor.secret else descriptor.default_raw
        parts.append(f"(default: {shown})")
    allowed = permitted_values(descriptor)
    if allowed:
        parts.append(f"[one of: {', '.join(allowed)}]")
    return " ".join(parts).replace("%", "%%")


def permitted_values(descriptor: FieldDescriptor) -> tuple[str, ...]:
    if descriptor.enum_values is not None:
        return descriptor.enum_values
    if isinstance(descriptor.codec, MapValueCodec):
        return descriptor.codec.keys
    return ()


# ---------------------------------------------------------------------------
# Config file
# ---------------------------------------------------------------------------


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML or JSON config file into a generic nested mapping."""

    resolved = Path(path).expanduser()
    suffix = resolved.suffix.lower()
    if suffix not in YAML_SUFFIXES and suffix not in JSON_SUFFIXES:
        raise ConfigLoadError(
            f"unsupported config file extension {resolved.suffix!r} "
            "(expected .yaml, .yml or .json)",
            path=str(resolved),
        )
    if not resolved.exists():
        raise ConfigLoadError(f"config file not found: {resolved}", path=str(resolved))

    try:
        text = resolved.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file: {exc}", path=str(resolved)) from exc

    try:
        if suffix in JSON_SUFFIXES:
            parsed = (
                json.loads(text, parse_float=str, parse_int=str, parse_constant=str)
                if text.strip()
                else None
            )
        else:
            parsed = yaml.load(text, Loader=_SourceTextLoader)  # noqa: S506 - SafeLoader subclass
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigLoadError(f"invalid config file syntax: {exc}", path=str(resolved)) from exc

    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ConfigLoadError("config root must be a mapping", path=str(resolved))
    return parsed


def lookup_file_value(tree: Mapping[str, object], descriptor: FieldDescriptor) -> object:
    """Return the value at the descriptor's named path, or ``None`` when absent."""

    cursor: object = tree
    for part in descriptor.file_path:
        if not isinstance(cursor, Mapping):
            return None
        cursor = cursor.get(part, _ABSENT)
        if cursor is _ABSENT:
            return None
    return cursor


__all__ = [
    "CommandLine",
    "EnvironmentSource",
    "build_parser",
    "load_config_file",
    "lookup_file_value",
    "parse_command_line",
    "permitted_values",
]
