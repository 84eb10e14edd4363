"""
stratconf — top-level configuration entry point.

File: src/stratconf/configure.py

Purpose
- Run one resolution call end to end: walk the schema, load sources, merge,
  decode, validate, build the typed instance and publish it.

What should be included in this file
- ``Options`` mirroring the programmatic configuration knobs.
- The staged pipeline (``Stage``) with no partial publish on failure.
- Help and template flag handling.
- The "recover and print" wrapper converting errors into usage text plus a
  non-zero exit, bypassed by ``no_recover``.

Functional requirements
- Precedence: CLI > env > file > default > zero value.
- Definition errors surface before any source is consulted.

Non-functional requirements
- Each call's descriptors and values are local to that call.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

import structlog

from stratconf.codecs import TypeRegistry
from stratconf.constants import PRINT_ENV_TEMPLATE_FLAG, ExitCode
from stratconf.decoder import decode, decode_all
from stratconf.errors import (
    ConfigIssue,
    DecodeError,
    DefinitionError,
    ResolutionError,
    Stage,
)
from stratconf.registry import ConfigRegistry, default_registry
from stratconf.resolver import RawValue, Source, resolve, resolve_one
from stratconf.schema import FieldDescriptor, SchemaLayout, walk
from stratconf.sources import (
    CommandLine,
    EnvironmentSource,
    build_parser,
    load_config_file,
    parse_command_line,
)
from stratconf.templates import render_env_template, render_yaml_template
from stratconf.validation import validate_all

T = TypeVar("T")

UsageFn = Callable[[SchemaLayout, str], str]
"""Receives the walked layout and the default help text; returns the text to print."""


@dataclass(frozen=True, slots=True)
class Options:
    """Knobs recognized by ``configure``."""

    env_prefix: str | None = None
    args: Sequence[str] | None = None
    nil_ptrs: bool = False
    usage: UsageFn | None = None
    no_recover: bool = False
    show_internal_flags: bool = False
    no_short_help: bool = False
    environ: Mapping[str, str] | None = None
    types: TypeRegistry | None = None
    registry: ConfigRegistry | None = None
    logger: Any | None = None
    resolve_paths: bool = False
    prog: str | None = None


@dataclass(frozen=True, slots=True)
class Resolution:
    """Everything one successful resolution call produced."""

    layout: SchemaLayout
    config: Any
    raw_values: Mapping[FieldDescriptor, RawValue] = field(repr=False)
    values: Mapping[FieldDescriptor, Any] = field(repr=False)
    command_line: CommandLine = field(repr=False)
    config_path: Path | None = None

    def source_of(self, resolved_name: str) -> Source:
        return self.raw_values[self.layout.field(resolved_name)].source


def configure(schema: type[T], **options: Any) -> T:
    """Resolve ``schema`` from CLI, environment, config file and defaults.

    Keyword arguments are ``Options`` fields. Unless ``no_recover=True``,
    failures print a diagnostic and raise ``SystemExit`` with a non-zero code.
    """

    return configure_with(schema, Options(**options))


def configure_with(schema: type[T], options: Options) -> T:
    pipeline = _Pipeline(schema, options)
    if options.no_recover:
        return pipeline.run().config

    try:
        return pipeline.run().config
    except ResolutionError as exc:
        if pipeline.parser is not None:
            _write(sys.stderr, pipeline.usage_text())
        primary = exc.primary
        _write(sys.stderr, f"error: {primary.path}: {primary.message}")
        if len(exc.issues) > 1:
            _write(sys.stderr, f"({len(exc.issues) - 1} more issue(s) not shown)")
        raise SystemExit(int(ExitCode.CONFIG_ERROR)) from exc
    except DefinitionError as exc:
        _write(sys.stderr, f"configuration definition error: {exc}")
        raise SystemExit(int(ExitCode.DEFINITION_ERROR)) from exc


def resolve_config(schema: type[Any], options: Options | None = None) -> Resolution:
    """Run the full pipeline and return the ``Resolution``; errors always propagate."""

    return _Pipeline(schema, options or Options()).run()


class _Pipeline:
    __slots__ = ("schema", "options", "stage", "layout", "parser", "_log")

    def __init__(self, schema: type[Any], options: Options) -> None:
        self.schema = schema
        self.options = options
        self.stage = Stage.DEFINED
        self.layout: SchemaLayout | None = None
        self.parser: Any = None
        self._log = options.logger if options.logger is not None else structlog.get_logger(__name__)

    def run(self) -> Resolution:
        options = self.options
        layout = walk(self.schema, types=options.types)
        self.layout = layout
        self.parser = build_parser(
            layout,
            prog=options.prog,
            show_internal_flags=options.show_internal_flags,
            no_short_help=options.no_short_help,
        )
        self.stage = Stage.WALKED
        self._log.debug("config.walked", schema=self.schema.__qualname__, fields=len(layout.fields))

        args = list(sys.argv[1:] if options.args is None else options.args)
        command_line = parse_command_line(self.parser, args)
        if command_line.help_requested:
            _write(sys.stdout, self.usage_text())
            raise SystemExit(int(ExitCode.SUCCESS))

        environ = os.environ if options.environ is None else options.environ
        env = EnvironmentSource(prefix=options.env_prefix, environ=dict(environ))
        config_path = self._config_path(layout, command_line, env)
        file_tree: dict[str, Any] | None = None
        if config_path is not None:
            file_tree = load_config_file(config_path)
            self._log.info("config.file_loaded", path=str(config_path))
        self.stage = Stage.SOURCES_LOADED

        raw_values = resolve(
            layout.fields,
            command_line,
            env,
            file_tree,
            nil_ptrs=options.nil_ptrs,
            logger=self._log,
        )
        self.stage = Stage.MERGED

        values = decode_all(raw_values)
        if options.resolve_paths and config_path is not None:
            _resolve_file_paths(values, raw_values, base_dir=config_path.parent)
        self.stage = Stage.DECODED

        if command_line.print_env_template or command_line.print_yaml_template:
            instance = self._build(layout, values)
            if command_line.print_env_template:
                try:
                    text = render_env_template(layout, instance, prefix=options.env_prefix)
                except ValueError as exc:
                    raise ResolutionError(
                        Stage.DECODED, (ConfigIssue(PRINT_ENV_TEMPLATE_FLAG, str(exc)),)
                    ) from exc
                _write(sys.stdout, text)
            if command_line.print_yaml_template:
                _write(sys.stdout, render_yaml_template(layout, instance))
            raise SystemExit(int(ExitCode.SUCCESS))

        errors = validate_all(values)
        if errors:
            raise ResolutionError.from_errors(Stage.VALIDATED, errors)
        instance = self._build(layout, values)
        self.stage = Stage.VALIDATED

        registry = options.registry if options.registry is not None else default_registry()
        registry.publish(layout.type_index(), instance)
        self.stage = Stage.PUBLISHED
        self._log.info("config.published", schema=self.schema.__qualname__)

        return Resolution(
            layout=layout,
            config=instance,
            raw_values=raw_values,
            values=values,
            command_line=command_line,
            config_path=config_path,
        )

    def usage_text(self) -> str:
        if self.parser is None or self.layout is None:
            return ""
        text = self.parser.format_help()
        if self.options.usage is not None:
            return self.options.usage(self.layout, text)
        return text

    def _config_path(
        self, layout: SchemaLayout, command_line: CommandLine, env: EnvironmentSource
    ) -> Path | None:
        descriptor = layout.config_file
        if descriptor is None:
            return None
        raw = resolve_one(descriptor, command_line, env, None)
        try:
            value = decode(descriptor, raw)
        except DecodeError as exc:
            raise ResolutionError.from_errors(Stage.SOURCES_LOADED, [exc]) from exc
        if not value:
            return None
        return Path(os.path.expanduser(str(value)))

    def _build(self, layout: SchemaLayout, values: Mapping[FieldDescriptor, Any]) -> Any:
        try:
            return layout.build(values)
        except ValueError as exc:
            raise ResolutionError(
                Stage.VALIDATED,
                (ConfigIssue(self.schema.__qualname__, str(exc)),),
            ) from exc


def _resolve_file_paths(
    values: dict[FieldDescriptor, Any],
    raw_values: Mapping[FieldDescriptor, RawValue],
    *,
    base_dir: Path,
) -> None:
    for descriptor, raw in raw_values.items():
        value = values[descriptor]
        if raw.source is not Source.FILE or not isinstance(value, Path):
            continue
        expanded = Path(os.path.expandvars(str(value))).expanduser()
        if not expanded.is_absolute():
            expanded = base_dir / expanded
        values[descriptor] = Path(os.path.normpath(str(expanded)))


def _write(stream: Any, message: str) -> None:
    stream.write(message.rstrip("\n") + "\n")


__all__ = ["Options", "Resolution", "UsageFn", "configure", "configure_with", "resolve_config"]
