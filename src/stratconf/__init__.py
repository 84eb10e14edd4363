"""
stratconf public API.

File: src/stratconf/__init__.py

Purpose
- Export the schema helpers, the ``configure`` entry point, the type and rule
  registries, the published-config registry and the public error types.

What should be included in this file
- Re-exports only; no configuration is resolved at import time.

Functional requirements
- ``configure(Schema, ...)`` resolves CLI > env > file > default > zero value.
- ``get(Schema)`` returns the published instance of any schema in the tree.
"""

from stratconf.codecs import (
    Codec,
    ConfigFile,
    MappingCodec,
    MapValueCodec,
    SequenceCodec,
    TypeRegistry,
    default_types,
    register,
    register_enum,
    register_map_value,
)
from stratconf.configure import Options, Resolution, configure, configure_with, resolve_config
from stratconf.constants import ExitCode
from stratconf.errors import (
    CommandLineError,
    ConfigIssue,
    ConfigLoadError,
    DecodeError,
    DefinitionError,
    DuplicateNameError,
    DuplicateShortFlagError,
    NotFoundError,
    ResolutionError,
    SchemaError,
    Stage,
    StratconfError,
    TypeRegistrationError,
    UnknownTypeError,
    ValidationError,
)
from stratconf.registry import ConfigRegistry, default_registry, get, publish
from stratconf.resolver import Source
from stratconf.schema import FieldDescriptor, SchemaLayout, group, setting, walk
from stratconf.templates import (
    dump_config,
    dump_effective_config,
    render_env_template,
    render_yaml_template,
)
from stratconf.validation import register_rule

__version__ = "0.1.0"

__all__ = [
    "Codec",
    "CommandLineError",
    "ConfigFile",
    "ConfigIssue",
    "ConfigLoadError",
    "ConfigRegistry",
    "DecodeError",
    "DefinitionError",
    "DuplicateNameError",
    "DuplicateShortFlagError",
    "ExitCode",
    "FieldDescriptor",
    "MapValueCodec",
    "MappingCodec",
    "NotFoundError",
    "Options",
    "Resolution",
    "ResolutionError",
    "SchemaError",
    "SchemaLayout",
    "SequenceCodec",
    "Source",
    "Stage",
    "StratconfError",
    "TypeRegistrationError",
    "TypeRegistry",
    "UnknownTypeError",
    "ValidationError",
    "__version__",
    "configure",
    "configure_with",
    "default_registry",
    "default_types",
    "dump_config",
    "dump_effective_config",
    "get",
    "group",
    "publish",
    "register",
    "register_enum",
    "register_map_value",
    "register_rule",
    "render_env_template",
    "render_yaml_template",
    "resolve_config",
    "setting",
    "walk",
]
