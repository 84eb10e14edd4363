"""Exception hierarchy for stratconf.

Three tiers of failure are distinguished so callers can react to each one
differently:

- ``DefinitionError``: the schema author made a mistake (duplicate resolved
  name or short flag, unknown field type, duplicate type registration). No
  input can fix these; they abort startup.
- ``ResolutionError``: a source supplied bad input (unparsable value, rule
  violation, unreadable config file, unknown command-line argument). They
  carry the pipeline ``Stage`` that failed and every collected issue.
- ``NotFoundError``: a registry lookup for a schema type that was never
  published. This is an expected runtime condition, not a fatal one.

All exceptions inherit from ``StratconfError``.

Example:
    Separating definition and input failures:
        ```python
        from stratconf import configure
        from stratconf.errors import DefinitionError, ResolutionError

        try:
            cfg = configure(AppConfig, no_recover=True)
        except ResolutionError as exc:
            print(exc.primary.message)
        except DefinitionError as exc:
            raise SystemExit(f"schema bug: {exc}")
        ```
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

__all__ = [
    "CommandLineError",
    "ConfigIssue",
    "ConfigLoadError",
    "DecodeError",
    "DefinitionError",
    "DuplicateNameError",
    "DuplicateShortFlagError",
    "FieldError",
    "NotFoundError",
    "ResolutionError",
    "SchemaError",
    "Stage",
    "StratconfError",
    "TypeRegistrationError",
    "UnknownTypeError",
    "ValidationError",
]


class Stage(Enum):
    """Pipeline stages of a single resolution call, in execution order."""

    DEFINED = "defined"
    WALKED = "walked"
    SOURCES_LOADED = "sources_loaded"
    MERGED = "merged"
    DECODED = "decoded"
    VALIDATED = "validated"
    PUBLISHED = "published"


@dataclass(frozen=True, slots=True)
class ConfigIssue:
    """Single structured failure: resolved field name (or source) + message."""

    path: str
    message: str


class StratconfError(Exception):
    """Base exception for all stratconf errors."""


# ---------------------------------------------------------------------------
# Definition errors
# ---------------------------------------------------------------------------


class DefinitionError(StratconfError):
    """Raised for mistakes in a schema definition or type registration."""


class SchemaError(DefinitionError):
    """Raised when a schema cannot be walked into field descriptors."""


class DuplicateNameError(SchemaError):
    """Raised when two fields resolve to the same name."""

    def __init__(self, name: str, paths: Sequence[str]) -> None:
        self.name = name
        self.paths = tuple(paths)
        super().__init__(
            f"duplicate resolved name {name!r} for fields: {', '.join(self.paths)}"
        )


class DuplicateShortFlagError(SchemaError):
    """Raised when two fields declare the same short flag."""

    def __init__(self, flag: str, paths: Sequence[str]) -> None:
        self.flag = flag
        self.paths = tuple(paths)
        super().__init__(f"duplicate short flag -{flag} for fields: {', '.join(self.paths)}")


class TypeRegistrationError(DefinitionError):
    """Raised when a codec or rule registration is rejected."""


class UnknownTypeError(DefinitionError):
    """Raised when no codec is registered for a type."""

    def __init__(self, type_id: object) -> None:
        self.type_id = type_id
        super().__init__(f"no codec registered for type {_type_label(type_id)}")


# ---------------------------------------------------------------------------
# Per-field errors
# ---------------------------------------------------------------------------


class FieldError(StratconfError):
    """Failure attached to one resolved field."""

    field: str

    @property
    def issue(self) -> ConfigIssue:
        return ConfigIssue(path=self.field, message=self.describe())

    def describe(self) -> str:
        return str(self)


class DecodeError(FieldError, ValueError):
    """Raised when a raw value cannot be converted to the field's type."""

    def __init__(self, field: str, raw: object, cause: BaseException | str) -> None:
        self.field = field
        self.raw = raw
        self.cause = cause
        super().__init__(f"{field}: {self.describe()}")

    def describe(self) -> str:
        return f"invalid value {self.raw!r}: {self.cause}"


class ValidationError(FieldError, ValueError):
    """Raised when a decoded value violates a rule."""

    def __init__(self, field: str, rule: str, cause: str) -> None:
        self.field = field
        self.rule = rule
        self.cause = cause
        super().__init__(f"{field}: {self.describe()}")

    def describe(self) -> str:
        return f"failed {self.rule!r} rule: {self.cause}"


# ---------------------------------------------------------------------------
# Resolution errors
# ---------------------------------------------------------------------------


class ResolutionError(StratconfError):
    """Raised when sources supply input that cannot be resolved."""

    def __init__(
        self,
        stage: Stage,
        issues: Sequence[ConfigIssue],
        *,
        errors: Sequence[FieldError] = (),
    ) -> None:
        self.stage = stage
        self.issues = tuple(issues)
        self.errors = tuple(errors)
        if not self.issues:
            rendered = "unknown resolution failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config ({stage.value}):\n{rendered}")

    @classmethod
    def from_errors(cls, stage: Stage, errors: Sequence[FieldError]) -> ResolutionError:
        return cls(stage, [error.issue for error in errors], errors=errors)

    @property
    def primary(self) -> ConfigIssue:
        if self.issues:
            return self.issues[0]
        return ConfigIssue(path="<config>", message="unknown resolution failure")


class ConfigLoadError(ResolutionError):
    """Raised when the config file cannot be read or parsed."""

    def __init__(self, message: str, *, path: str = "<config file>") -> None:
        super().__init__(Stage.SOURCES_LOADED, (ConfigIssue(path=path, message=message),))


class CommandLineError(ResolutionError):
    """Raised when command-line arguments cannot be tokenized."""

    def __init__(self, message: str) -> None:
        super().__init__(Stage.SOURCES_LOADED, (ConfigIssue(path="<args>", message=message),))


# ---------------------------------------------------------------------------
# Lookup errors
# ---------------------------------------------------------------------------


class NotFoundError(StratconfError, LookupError):
    """Raised when a schema type has no published configuration instance."""

    def __init__(self, schema_type: object) -> None:
        self.schema_type = schema_type
        super().__init__(f"no published configuration for {_type_label(schema_type)}")


def _type_label(type_id: object) -> str:
    qualname = getattr(type_id, "__qualname__", None)
    if isinstance(type_id, type) and qualname:
        return f"{type_id.__module__}.{qualname}"
    return repr(type_id)
