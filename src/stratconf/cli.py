"""Command-line interface router for stratconf."""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Final

import structlog
import yaml

from stratconf.configure import Options, resolve_config
from stratconf.constants import REDACTED_VALUE
from stratconf.registry import ConfigRegistry
from stratconf.schema import FieldDescriptor, walk
from stratconf.templates import dump_config

TARGET_SEPARATOR: Final[str] = ":"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="stratconf",
        description=(
            "stratconf — inspect declarative configuration schemas.\n\n"
            "Common workflows:\n"
            "  stratconf fields app.config:AppConfig          List resolved field names\n"
            "  stratconf check app.config:AppConfig -- --port 80\n"
            "                                                 Resolve and print the config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "target",
        help="Schema to load, as 'package.module:ClassName'.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Emit resolution decision logs on stderr.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # check ---------------------------------------------------------------
    check_parser = subparsers.add_parser(
        "check",
        parents=[common],
        help="Resolve a schema and print the effective configuration",
        description=(
            "Resolve a schema from arguments, environment, config file and defaults,\n"
            "then print the redacted effective configuration.\n\n"
            "Examples:\n"
            "  stratconf check app.config:AppConfig\n"
            "  stratconf check app.config:AppConfig --env-prefix APP_ -- --port 80\n"
            "  stratconf check app.config:AppConfig --format json -- --config app.yaml\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    check_parser.add_argument(
        "--env-prefix",
        default=None,
        help="Enable environment lookup with this prefix (default: disabled).",
    )
    check_parser.add_argument(
        "--nil-ptrs",
        action="store_true",
        default=False,
        help="Leave absent optional fields unset instead of zero-valued.",
    )
    check_parser.add_argument(
        "--resolve-paths",
        action="store_true",
        default=False,
        help="Resolve relative paths from the config file against its directory.",
    )
    check_parser.add_argument(
        "--format",
        choices=("yaml", "json"),
        default="yaml",
        help="Output format (default: yaml).",
    )
    check_parser.set_defaults(handler=_cmd_check)

    # fields --------------------------------------------------------------
    fields_parser = subparsers.add_parser(
        "fields",
        parents=[common],
        help="List the flattened field descriptors of a schema",
        description=(
            "Walk a schema and list each field's resolved name, short flag,\n"
            "environment variable, config-file key, type and default.\n\n"
            "Examples:\n"
            "  stratconf fields app.config:AppConfig\n"
            "  stratconf fields app.config:AppConfig --env-prefix APP_ --format json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    fields_parser.add_argument(
        "--env-prefix",
        default="",
        help="Prefix used when showing environment variable names.",
    )
    fields_parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Output format (default: text).",
    )
    fields_parser.set_defaults(handler=_cmd_fields)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    own_args, schema_args = split_schema_args(sys.argv[1:] if argv is None else argv)
    namespace = parser.parse_args(own_args)
    namespace.schema_args = schema_args
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    _configure_logging(verbose=bool(getattr(namespace, "verbose", False)))
    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_check(args: argparse.Namespace) -> int:
    schema = load_schema(args.target)
    resolution = resolve_config(
        schema,
        Options(
            env_prefix=args.env_prefix,
            args=args.schema_args,
            nil_ptrs=args.nil_ptrs,
            resolve_paths=args.resolve_paths,
            registry=ConfigRegistry(),
            prog=f"stratconf check {args.target} --",
        ),
    )
    payload = dump_config(resolution.layout, resolution.config)
    if args.format == "json":
        print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))
    else:
        sys.stdout.write(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True))
    return 0


def _cmd_fields(args: argparse.Namespace) -> int:
    layout = walk(load_schema(args.target))
    rows = [_field_row(descriptor, args.env_prefix) for descriptor in layout.fields]
    if args.format == "json":
        print(json.dumps(rows, indent=2, sort_keys=True, ensure_ascii=False))
        return 0

    headers = ("name", "short", "env", "file", "type", "default")
    table = [headers] + [
        tuple("" if row[key] is None else str(row[key]) for key in headers) for row in rows
    ]
    widths = [max(len(line[index]) for line in table) for index in range(len(headers))]
    for line in table:
        print("  ".join(cell.ljust(width) for cell, width in zip(line, widths)).rstrip())
    return 0


def split_schema_args(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split at the first ``--``: router arguments before, schema arguments after."""

    items = list(argv)
    if "--" not in items:
        return items, []
    index = items.index("--")
    return items[:index], items[index + 1 :]


def load_schema(target: str) -> type[Any]:
    """Import ``package.module:ClassName`` (dotted attribute paths allowed)."""

    module_name, separator, attribute = target.partition(TARGET_SEPARATOR)
    if not separator or not module_name or not attribute:
        raise CLIError(f"schema target must look like 'module:ClassName', got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise CLIError(f"cannot import module {module_name!r}: {exc}") from exc

    resolved: Any = module
    for part in attribute.split("."):
        try:
            resolved = getattr(resolved, part)
        except AttributeError as exc:
            raise CLIError(f"{module_name!r} has no attribute {attribute!r}") from exc
    if not isinstance(resolved, type):
        raise CLIError(f"{target!r} is not a class")
    return resolved


def _field_row(descriptor: FieldDescriptor, env_prefix: str) -> dict[str, object]:
    type_id = descriptor.type_id
    type_name = type_id.__name__ if isinstance(type_id, type) else str(type_id)
    return {
        "name": descriptor.resolved_name,
        "short": f"-{descriptor.short_flag}" if descriptor.short_flag else None,
        "env": descriptor.env_name(env_prefix),
        "file": None if descriptor.config_file else descriptor.file_key,
        "type": type_name,
        "default": (
            REDACTED_VALUE
            if descriptor.secret and descriptor.default_raw is not None
            else descriptor.default_raw
        ),
    }


def _configure_logging(*, verbose: bool) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


__all__ = ["CLIError", "build_parser", "load_schema", "run_cli", "split_schema_args"]
