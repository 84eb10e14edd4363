"""Stable constants shared across stratconf modules."""

from __future__ import annotations

from enum import IntEnum
from typing import Final

# Internal CLI flags.
HELP_FLAG: Final[str] = "--help"
HELP_SHORT_FLAG: Final[str] = "-h"
PRINT_ENV_TEMPLATE_FLAG: Final[str] = "print_env_template"
PRINT_YAML_TEMPLATE_FLAG: Final[str] = "print_yaml_template"
INTERNAL_FLAG_NAMES: Final[frozenset[str]] = frozenset(
    {"help", PRINT_ENV_TEMPLATE_FLAG, PRINT_YAML_TEMPLATE_FLAG}
)

# Naming.
NAME_SEPARATOR: Final[str] = "_"
FILE_PATH_SEPARATOR: Final[str] = "."

# Composite codec syntax.
MAPPING_ASSIGNMENT: Final[str] = "="

# Rule-chain syntax.
RULE_SEPARATOR: Final[str] = ","
RULE_OPTION_SEPARATOR: Final[str] = "="
DIVE_RULE: Final[str] = "dive"
KEYS_RULE: Final[str] = "keys"
END_KEYS_RULE: Final[str] = "endkeys"
OMIT_EMPTY_RULE: Final[str] = "omitempty"

# Config-file formats keyed by lower-cased suffix.
YAML_SUFFIXES: Final[frozenset[str]] = frozenset({".yaml", ".yml"})
JSON_SUFFIXES: Final[frozenset[str]] = frozenset({".json"})

REDACTED_VALUE: Final[str] = "***REDACTED***"


class ExitCode(IntEnum):
    """Deterministic process exit-code contract."""

    SUCCESS = 0
    CONFIG_ERROR = 2
    DEFINITION_ERROR = 3
    INTERNAL_ERROR = 4


__all__ = [
    "DIVE_RULE",
    "END_KEYS_RULE",
    "ExitCode",
    "FILE_PATH_SEPARATOR",
    "HELP_FLAG",
    "HELP_SHORT_FLAG",
    "INTERNAL_FLAG_NAMES",
    "JSON_SUFFIXES",
    "KEYS_RULE",
    "MAPPING_ASSIGNMENT",
    "NAME_SEPARATOR",
    "OMIT_EMPTY_RULE",
    "PRINT_ENV_TEMPLATE_FLAG",
    "PRINT_YAML_TEMPLATE_FLAG",
    "REDACTED_VALUE",
    "RULE_OPTION_SEPARATOR",
    "RULE_SEPARATOR",
    "YAML_SUFFIXES",
]
