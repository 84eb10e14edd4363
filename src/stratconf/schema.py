"""
stratconf — schema definition and walker.

File: src/stratconf/schema.py

Purpose
- Let applications declare configuration as plain dataclasses and flatten
  them into uniquely named field descriptors.

What should be included in this file
- ``setting()`` and ``group()`` field helpers carrying declarative metadata.
- ``walk()``: declaration-order recursion producing ``FieldDescriptor`` and
  ``GroupNode`` records, cached per schema class and type registry.
- Naming rule: snake_case path segments joined by ``_`` for CLI/env names,
  named-group segments for config-file nesting.
- Global uniqueness checks for resolved names and short flags.

Functional requirements
- Schema mistakes fail at walk time, before any source is consulted.
- Flattened and named inclusions that collide are duplicate-name errors.

Non-functional requirements
- Deterministic output order (help text, templates and diagnostics rely on it).
"""

from __future__ import annotations

import dataclasses
import functools
import re
import typing
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from types import UnionType
from typing import Any, Final

from stratconf.codecs import Codec, ConfigFile, TypeRegistry, default_types
from stratconf.constants import FILE_PATH_SEPARATOR, INTERNAL_FLAG_NAMES, NAME_SEPARATOR
from stratconf.errors import (
    DuplicateNameError,
    DuplicateShortFlagError,
    SchemaError,
    UnknownTypeError,
)
from stratconf.validation import Rule, check_rule_targets, parse_rules

METADATA_KEY: Final[str] = "stratconf"

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SHORT_FLAG_PATTERN = re.compile(r"^[A-Za-z]$")


@dataclass(frozen=True, slots=True)
class SettingSpec:
    """Declarative metadata attached to a leaf field."""

    default: Any = dataclasses.MISSING
    default_factory: Any = dataclasses.MISSING
    short: str | None = None
    help: str = ""
    validate: str | Sequence[Rule] | None = None
    enum: Sequence[str] | None = None
    hidden: bool = False
    ignore: bool = False
    name: str | None = None
    secret: bool = False


@dataclass(frozen=True, slots=True)
class GroupSpec:
    """Declarative metadata attached to a nested schema field."""

    name: str | None = None
    flatten: bool = False
    help: str = ""


def setting(
    default: Any = dataclasses.MISSING,
    *,
    short: str | None = None,
    help: str = "",
    validate: str | Sequence[Rule] | None = None,
    enum: Sequence[str] | None = None,
    hidden: bool = False,
    ignore: bool = False,
    name: str | None = None,
    secret: bool = False,
    default_factory: Callable[[], Any] | Any = dataclasses.MISSING,
) -> Any:
    """Declare a leaf field.

    ``default`` may be a raw string (parsed like any other source) or a typed
    value (rendered through the field's codec). Fields are keyword-only so
    they can follow plain defaulted fields.
    """

    spec = SettingSpec(
        default=default,
        default_factory=default_factory,
        short=short,
        help=help,
        validate=validate,
        enum=tuple(enum) if enum is not None else None,
        hidden=hidden,
        ignore=ignore,
        name=name,
        secret=secret,
    )
    kwargs: dict[str, Any] = {"kw_only": True, "metadata": {METADATA_KEY: spec}}
    if ignore:
        if default is not dataclasses.MISSING:
            kwargs["default"] = default
        elif default_factory is not dataclasses.MISSING:
            kwargs["default_factory"] = default_factory
    return dataclasses.field(**kwargs)


def group(name: str | None = None, *, flatten: bool = False, help: str = "") -> Any:
    """Declare a nested schema field.

    ``name=None`` prefixes children with the field's own name, ``name="x"``
    with ``x``, ``name=""`` adds no CLI/env prefix but keeps file nesting, and
    ``flatten=True`` adds neither.
    """

    spec = GroupSpec(name=name, flatten=flatten, help=help)
    return dataclasses.field(kw_only=True, metadata={METADATA_KEY: spec})


@dataclass(frozen=True, slots=True, eq=False)
class FieldDescriptor:
    """Flattened representation of one configuration leaf."""

    path: tuple[str, ...]
    resolved_name: str
    file_path: tuple[str, ...]
    short_flag: str | None
    type_id: object
    codec: Codec
    description: str
    default_raw: str | None
    rules: tuple[Rule, ...]
    hidden: bool
    secret: bool
    nullable: bool
    enum_values: tuple[str, ...] | None
    config_file: bool = False

    @property
    def attribute_path(self) -> str:
        return ".".join(self.path)

    @property
    def file_key(self) -> str:
        return FILE_PATH_SEPARATOR.join(self.file_path)

    def env_name(self, prefix: str) -> str:
        return f"{prefix}{self.resolved_name.upper()}"

    def __repr__(self) -> str:
        return f"FieldDescriptor({self.resolved_name!r})"


@dataclass(frozen=True, slots=True)
class GroupNode:
    """One schema (root or nested group) and its direct members."""

    schema_type: type
    path: tuple[str, ...]
    file_path: tuple[str, ...]
    description: str
    fields: tuple[FieldDescriptor, ...]
    children: tuple[GroupNode, ...]

    def iter_groups(self) -> Iterator[GroupNode]:
        yield self
        for child in self.children:
            yield from child.iter_groups()


@dataclass(frozen=True, slots=True)
class SchemaLayout:
    """Result of walking one schema class."""

    schema_type: type
    root: GroupNode
    fields: tuple[FieldDescriptor, ...]
    config_file: FieldDescriptor | None

    @property
    def groups(self) -> tuple[GroupNode, ...]:
        return tuple(self.root.iter_groups())

    def type_index(self) -> dict[type, tuple[str, ...]]:
        """Map each schema type to the attribute path of its first occurrence."""

        index: dict[type, tuple[str, ...]] = {}
        for node in self.root.iter_groups():
            index.setdefault(node.schema_type, node.path)
        return index

    def field(self, resolved_name: str) -> FieldDescriptor:
        for descriptor in self.fields:
            if descriptor.resolved_name == resolved_name:
                return descriptor
        raise KeyError(resolved_name)

    def build(self, values: Mapping[FieldDescriptor, Any]) -> Any:
        """Instantiate the schema tree from per-field values."""

        return _instantiate(self.root, values)


def snake_case(name: str) -> str:
    """Convert ``ListenIP``/``socketFile``/``socket-file`` to ``listen_ip``/``socket_file``."""

    converted = _ACRONYM_BOUNDARY.sub(r"\1_\2", name)
    converted = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", converted)
    return converted.replace("-", "_").lower()


def walk(schema: type, *, types: TypeRegistry | None = None) -> SchemaLayout:
    """Flatten ``schema`` into field descriptors; results are cached."""

    registry = types if types is not None else default_types()
    if not (isinstance(schema, type) and dataclasses.is_dataclass(schema)):
        raise SchemaError(f"schema must be a dataclass type, got {schema!r}")
    return _walk_cached(schema, registry)


@functools.lru_cache(maxsize=None)
def _walk_cached(schema: type, registry: TypeRegistry) -> SchemaLayout:
    walker = _Walker(registry)
    root = walker.walk_group(
        schema,
        path=(),
        name_prefix=(),
        file_prefix=(),
        description=_first_doc_line(schema),
        stack=(),
    )
    fields = tuple(walker.fields)
    _check_unique(fields)
    return SchemaLayout(
        schema_type=schema,
        root=root,
        fields=fields,
        config_file=walker.config_file,
    )


class _Walker:
    __slots__ = ("_registry", "fields", "config_file")

    def __init__(self, registry: TypeRegistry) -> None:
        self._registry = registry
        self.fields: list[FieldDescriptor] = []
        self.config_file: FieldDescriptor | None = None

    def walk_group(
        self,
        schema: type,
        *,
        path: tuple[str, ...],
        name_prefix: tuple[str, ...],
        file_prefix: tuple[str, ...],
        description: str,
        stack: tuple[type, ...],
    ) -> GroupNode:
        if schema in stack:
            chain = " -> ".join(item.__qualname__ for item in (*stack, schema))
            raise SchemaError(f"schema cycle detected: {chain}")
        hints = _type_hints(schema)

        leaves: list[FieldDescriptor] = []
        children: list[GroupNode] = []
        for item in dataclasses.fields(schema):
            if not item.init:
                continue
            field_path = (*path, item.name)
            label = ".".join((schema.__qualname__, *field_path[len(path) :]))
            meta = item.metadata.get(METADATA_KEY)
            annotation = hints[item.name]
            inner, nullable = _unwrap_optional(annotation)

            if isinstance(meta, SettingSpec) and meta.ignore:
                if item.default is dataclasses.MISSING and (
                    item.default_factory is dataclasses.MISSING
                ):
                    raise SchemaError(f"ignored field {label} must declare a default")
                continue

            if isinstance(inner, type) and dataclasses.is_dataclass(inner):
                if isinstance(meta, SettingSpec):
                    raise SchemaError(f"nested schema {label} must use group(), not setting()")
                if nullable:
                    raise SchemaError(f"nested schema {label} cannot be optional")
                spec = meta if isinstance(meta, GroupSpec) else GroupSpec()
                own = snake_case(item.name)
                if spec.flatten:
                    name_segment: tuple[str, ...] = ()
                    file_segment: tuple[str, ...] = ()
                elif spec.name is None:
                    name_segment = file_segment = (own,)
                elif spec.name == "":
                    name_segment, file_segment = (), (own,)
                else:
                    name_segment = file_segment = (spec.name,)
                children.append(
                    self.walk_group(
                        inner,
                        path=field_path,
                        name_prefix=(*name_prefix, *name_segment),
                        file_prefix=(*file_prefix, *file_segment),
                        description=spec.help or _first_doc_line(inner),
                        stack=(*stack, schema),
                    )
                )
                continue

            if isinstance(meta, GroupSpec):
                raise SchemaError(f"field {label} uses group() but is not a dataclass")
            spec_leaf = meta if isinstance(meta, SettingSpec) else SettingSpec()
            descriptor = self._leaf(
                item,
                spec_leaf,
                inner,
                nullable,
                label=label,
                path=field_path,
                name_prefix=name_prefix,
                file_prefix=file_prefix,
            )
            if descriptor.config_file:
                if self.config_file is not None:
                    raise SchemaError(
                        "only one ConfigFile field is allowed: "
                        f"{self.config_file.attribute_path}, {descriptor.attribute_path}"
                    )
                self.config_file = descriptor
            leaves.append(descriptor)
            self.fields.append(descriptor)

        return GroupNode(
            schema_type=schema,
            path=path,
            file_path=file_prefix,
            description=description,
            fields=tuple(leaves),
            children=tuple(children),
        )

    def _leaf(
        self,
        item: dataclasses.Field[Any],
        spec: SettingSpec,
        type_id: object,
        nullable: bool,
        *,
        label: str,
        path: tuple[str, ...],
        name_prefix: tuple[str, ...],
        file_prefix: tuple[str, ...],
    ) -> FieldDescriptor:
        own = spec.name if spec.name is not None else snake_case(item.name)
        if not own:
            raise SchemaError(f"field {label} resolves to an empty name")
        resolved_name = NAME_SEPARATOR.join((*name_prefix, own))

        if spec.short is not None and not _SHORT_FLAG_PATTERN.fullmatch(spec.short):
            raise SchemaError(f"field {label}: short flag must be a single letter")

        try:
            codec = self._registry.lookup(type_id)
        except UnknownTypeError as exc:
            raise SchemaError(f"field {label}: {exc}") from exc

        default_raw = _default_raw(item, spec, codec, label)
        if default_raw is not None:
            try:
                codec.parse(default_raw)
            except (ValueError, TypeError, ArithmeticError) as exc:
                raise SchemaError(
                    f"field {label}: invalid default {default_raw!r}: {exc}"
                ) from exc

        rules = parse_rules(spec.validate, field=resolved_name)
        check_rule_targets(rules, codec, field=resolved_name)

        return FieldDescriptor(
            path=path,
            resolved_name=resolved_name,
            file_path=(*file_prefix, own),
            short_flag=spec.short,
            type_id=type_id,
            codec=codec,
            description=spec.help,
            default_raw=default_raw,
            rules=rules,
            hidden=spec.hidden,
            secret=spec.secret,
            nullable=nullable,
            enum_values=tuple(spec.enum) if spec.enum is not None else None,
            config_file=type_id is ConfigFile,
        )


def _default_raw(
    item: dataclasses.Field[Any], spec: SettingSpec, codec: Codec, label: str
) -> str | None:
    if spec.default is not dataclasses.MISSING:
        value = spec.default
    elif spec.default_factory is not dataclasses.MISSING:
        value = spec.default_factory()
    elif item.default is not dataclasses.MISSING:
        value = item.default
    elif item.default_factory is not dataclasses.MISSING:
        value = item.default_factory()
    else:
        return None
    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        return codec.render(value)
    except (ValueError, TypeError, AttributeError) as exc:
        raise SchemaError(f"field {label}: cannot render default {value!r}: {exc}") from exc


def _check_unique(fields: Sequence[FieldDescriptor]) -> None:
    names: dict[str, FieldDescriptor] = {}
    shorts: dict[str, FieldDescriptor] = {}
    for descriptor in fields:
        if descriptor.resolved_name in INTERNAL_FLAG_NAMES:
            raise DuplicateNameError(
                descriptor.resolved_name, (descriptor.attribute_path, "<internal flag>")
            )
        first = names.setdefault(descriptor.resolved_name, descriptor)
        if first is not descriptor:
            raise DuplicateNameError(
                descriptor.resolved_name, (first.attribute_path, descriptor.attribute_path)
            )
        if descriptor.short_flag is None:
            continue
        first = shorts.setdefault(descriptor.short_flag, descriptor)
        if first is not descriptor:
            raise DuplicateShortFlagError(
                descriptor.short_flag, (first.attribute_path, descriptor.attribute_path)
            )
    _check_file_paths(fields)


def _check_file_paths(fields: Sequence[FieldDescriptor]) -> None:
    # A file key may not be both a value and a nested mapping.
    leaves: dict[tuple[str, ...], FieldDescriptor] = {}
    branches: dict[tuple[str, ...], FieldDescriptor] = {}
    for descriptor in fields:
        if descriptor.config_file:
            continue
        key = descriptor.file_path
        other = leaves.get(key) or branches.get(key)
        for depth in range(1, len(key)):
            other = other or leaves.get(key[:depth])
            branches.setdefault(key[:depth], descriptor)
        if other is not None:
            raise DuplicateNameError(
                descriptor.file_key, (other.attribute_path, descriptor.attribute_path)
            )
        leaves[key] = descriptor


def _type_hints(schema: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(schema)
    except (NameError, TypeError) as exc:
        raise SchemaError(f"cannot resolve annotations of {schema.__qualname__}: {exc}") from exc


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is UnionType:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1 and len(args) != len(typing.get_args(annotation)):
            return args[0], True
        raise SchemaError(f"union types other than Optional are not supported: {annotation!r}")
    return annotation, False


def _first_doc_line(schema: type) -> str:
    doc = schema.__doc__ or ""
    # dataclass() synthesizes "Name(field: type, ...)" when no docstring exists.
    if doc.startswith(f"{schema.__name__}("):
        return ""
    for line in doc.strip().splitlines():
        if line.strip():
            return line.strip()
    return ""


def _instantiate(node: GroupNode, values: Mapping[FieldDescriptor, Any]) -> Any:
    kwargs: dict[str, Any] = {}
    for descriptor in node.fields:
        kwargs[descriptor.path[-1]] = values[descriptor]
    for child in node.children:
        kwargs[child.path[-1]] = _instantiate(child, values)
    return node.schema_type(**kwargs)


__all__ = [
    "FieldDescriptor",
    "GroupNode",
    "GroupSpec",
    "METADATA_KEY",
    "SchemaLayout",
    "SettingSpec",
    "group",
    "setting",
    "snake_case",
    "walk",
]
