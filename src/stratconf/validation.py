"""
stratconf — validation rule chains.

File: src/stratconf/validation.py

Purpose
- Parse per-field rule chains (``"required,gte=1,lte=65535"``) and apply them
  to decoded values.

What should be included in this file
- Rule-chain parsing and structural checks (``keys`` must be closed by
  ``endkeys`` and follow ``dive``).
- Built-in rules and a duplicate-checked registry for custom rules.
- ``dive`` scoping into sequence elements and map entries, with
  ``keys``/``endkeys`` partitioning a map chain into key and value rules.

Functional requirements
- Comparison rules are polymorphic: numbers compare by value, strings by
  length, collections by size, durations and dates by value.
- Every failure is collected; one call reports every violated rule.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence, Sized
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from ipaddress import ip_address, ip_network
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final
from urllib.parse import urlsplit

from stratconf.codecs import Codec, MappingCodec, SequenceCodec, native_text, parse_duration
from stratconf.constants import (
    DIVE_RULE,
    END_KEYS_RULE,
    KEYS_RULE,
    OMIT_EMPTY_RULE,
    RULE_OPTION_SEPARATOR,
    RULE_SEPARATOR,
)
from stratconf.errors import SchemaError, TypeRegistrationError, ValidationError

if TYPE_CHECKING:
    from stratconf.schema import FieldDescriptor

Rule = tuple[str, str | None]
RuleFn = Callable[[Any, str | None], str | None]
"""A rule returns ``None`` when the value passes, else a failure message."""

_HOSTNAME_LABEL: Final[re.Pattern[str]] = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
_STRUCTURAL_RULES: Final[frozenset[str]] = frozenset(
    {DIVE_RULE, KEYS_RULE, END_KEYS_RULE, OMIT_EMPTY_RULE}
)
_OPERATOR_TEXT: Final[dict[str, str]] = {
    "eq": "==",
    "ne": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "len": "==",
    "min": ">=",
    "max": "<=",
}

_RULES_LOCK = threading.Lock()
_RULES: dict[str, RuleFn] = {}


def register_rule(name: str, func: RuleFn) -> None:
    """Register a custom rule; names are process-wide and cannot be replaced."""

    if not name or RULE_SEPARATOR in name or RULE_OPTION_SEPARATOR in name:
        raise TypeRegistrationError(f"invalid rule name {name!r}")
    with _RULES_LOCK:
        if name in _RULES or name in _STRUCTURAL_RULES:
            raise TypeRegistrationError(f"rule {name!r} is already registered")
        _RULES[name] = func


def is_known_rule(name: str) -> bool:
    return name in _RULES or name in _STRUCTURAL_RULES


def parse_rules(spec: str | Sequence[Rule] | None, *, field: str = "<field>") -> tuple[Rule, ...]:
    """Normalize a rule chain and reject structurally invalid chains."""

    if spec is None:
        return ()
    rules: list[Rule] = []
    if isinstance(spec, str):
        for token in spec.split(RULE_SEPARATOR):
            token = token.strip()
            if not token:
                continue
            name, sep, option = token.partition(RULE_OPTION_SEPARATOR)
            rules.append((name.strip(), option.strip() if sep else None))
    else:
        for item in spec:
            name, option = item
            rules.append((name, None if option is None else str(option)))

    seen_dive = False
    open_keys = False
    for name, _option in rules:
        if not is_known_rule(name):
            raise SchemaError(f"field {field}: unknown validation rule {name!r}")
        if name == DIVE_RULE:
            seen_dive = True
        elif name == KEYS_RULE:
            if not seen_dive or open_keys:
                raise SchemaError(f"field {field}: 'keys' must directly follow 'dive'")
            open_keys = True
        elif name == END_KEYS_RULE:
            if not open_keys:
                raise SchemaError(f"field {field}: 'endkeys' without matching 'keys'")
            open_keys = False
    if open_keys:
        raise SchemaError(f"field {field}: 'keys' without matching 'endkeys'")
    for index, (name, _option) in enumerate(rules):
        if name == KEYS_RULE and rules[index - 1][0] != DIVE_RULE:
            raise SchemaError(f"field {field}: 'keys' must directly follow 'dive'")
    return tuple(rules)


def check_rule_targets(rules: Sequence[Rule], codec: Codec, *, field: str = "<field>") -> None:
    """Reject ``keys`` sections that dive into a level which is not a map."""

    level: Codec | None = codec
    index = 0
    while index < len(rules) and level is not None:
        if rules[index][0] != DIVE_RULE:
            index += 1
            continue
        opens_keys = index + 1 < len(rules) and rules[index + 1][0] == KEYS_RULE
        if opens_keys and not _is_map_level(level):
            raise SchemaError(
                f"field {field}: 'keys' requires a map, but dive reaches {_level_label(level)}"
            )
        if isinstance(level, MappingCodec):
            if opens_keys:
                index = next(
                    i for i in range(index, len(rules)) if rules[i][0] == END_KEYS_RULE
                )
            level = level.value
        elif isinstance(level, SequenceCodec):
            level = level.element
        else:
            # custom codec; its shape is only known at validation time
            level = None
        index += 1


def _is_map_level(level: Codec) -> bool:
    if isinstance(level, MappingCodec):
        return True
    if isinstance(level, SequenceCodec):
        return False
    type_id = level.type_id
    return not isinstance(type_id, type) or issubclass(type_id, Mapping)


def _level_label(level: Codec) -> str:
    type_id = level.type_id
    return type_id.__name__ if isinstance(type_id, type) else str(type_id)


def validate(descriptor: FieldDescriptor, value: Any) -> list[ValidationError]:
    """Apply the descriptor's rule chain and return every failure."""

    errors: list[ValidationError] = []
    _apply(descriptor.resolved_name, descriptor.rules, value, errors)
    return errors


def validate_all(values: Mapping[FieldDescriptor, Any]) -> list[ValidationError]:
    errors: list[ValidationError] = []
    for descriptor, value in values.items():
        errors.extend(validate(descriptor, value))
    return errors


def _apply(field: str, rules: Sequence[Rule], value: Any, errors: list[ValidationError]) -> None:
    for index, (name, option) in enumerate(rules):
        if name == OMIT_EMPTY_RULE:
            if is_empty(value):
                return
            continue
        if name == DIVE_RULE:
            _dive(field, rules[index + 1 :], value, errors)
            return
        if value is None and name != "required":
            continue
        message = _RULES[name](value, option)
        if message is not None:
            errors.append(ValidationError(field, _rule_label(name, option), message))


def _dive(field: str, rules: Sequence[Rule], value: Any, errors: list[ValidationError]) -> None:
    if value is None:
        return
    if isinstance(value, Mapping):
        key_rules: Sequence[Rule] = ()
        value_rules: Sequence[Rule] = rules
        if rules and rules[0][0] == KEYS_RULE:
            end = next(i for i, (name, _) in enumerate(rules) if name == END_KEYS_RULE)
            key_rules = rules[1:end]
            value_rules = rules[end + 1 :]
        for key, item in value.items():
            entry = f"{field}[{native_text(key)}]"
            _apply(entry, key_rules, key, errors)
            _apply(entry, value_rules, item, errors)
        return
    if rules and rules[0][0] == KEYS_RULE:
        raise SchemaError(f"field {field}: 'keys' requires a map, got {type(value).__name__}")
    if isinstance(value, (list, tuple, set, frozenset)):
        items: Iterable[Any] = value
        if isinstance(value, (set, frozenset)):
            items = sorted(value, key=native_text)
        for index, item in enumerate(items):
            _apply(f"{field}[{index}]", rules, item, errors)
        return
    errors.append(ValidationError(field, DIVE_RULE, f"cannot dive into {type(value).__name__}"))


def _rule_label(name: str, option: str | None) -> str:
    return name if option is None else f"{name}{RULE_OPTION_SEPARATOR}{option}"


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float, Decimal)):
        return value == 0
    if isinstance(value, timedelta):
        return not value
    if isinstance(value, (str, bytes, Sized)):
        return len(value) == 0
    return False


# ---------------------------------------------------------------------------
# Polymorphic comparison
# ---------------------------------------------------------------------------


def _measure(value: Any, option: str | None, rule: str) -> tuple[Any, Any, str]:
    """Return ``(left, right, subject)`` for comparing ``value`` against ``option``."""

    if option is None:
        raise SchemaError(f"rule {rule!r} requires an option")
    try:
        if isinstance(value, bool):
            return int(value), int(option), "value"
        if isinstance(value, int):
            return value, _number(option), "value"
        if isinstance(value, float):
            return value, float(option), "value"
        if isinstance(value, Decimal):
            return value, Decimal(option), "value"
        if isinstance(value, timedelta):
            return value, parse_duration(option), "duration"
        if isinstance(value, datetime):
            return value, datetime.fromisoformat(option), "value"
        if isinstance(value, date):
            return value, date.fromisoformat(option), "value"
        if isinstance(value, str):
            return len(value), int(option), "length"
        if isinstance(value, Sized):
            return len(value), int(option), "size"
    except (ValueError, InvalidOperation) as exc:
        raise SchemaError(
            f"rule {rule}={option} has an option incompatible with {type(value).__name__}"
        ) from exc
    raise SchemaError(f"rule {rule!r} cannot compare {type(value).__name__} values")


def _number(option: str) -> int | float:
    try:
        return int(option)
    except ValueError:
        return float(option)


def _comparison(rule: str, check: Callable[[Any, Any], bool]) -> RuleFn:
    def apply(value: Any, option: str | None) -> str | None:
        left, right, subject = _measure(value, option, rule)
        if check(left, right):
            return None
        return f"{subject} must be {_OPERATOR_TEXT[rule]} {option}"

    return apply


# ---------------------------------------------------------------------------
# Built-in rules
# ---------------------------------------------------------------------------


def _required(value: Any, _option: str | None) -> str | None:
    return "is required" if is_empty(value) else None


def _oneof(value: Any, option: str | None) -> str | None:
    allowed = (option or "").split()
    if native_text(value) in allowed:
        return None
    return f"must be one of: {', '.join(allowed)}"


def _startswith(value: Any, option: str | None) -> str | None:
    return None if str(value).startswith(option or "") else f"must start with {option!r}"


def _endswith(value: Any, option: str | None) -> str | None:
    return None if str(value).endswith(option or "") else f"must end with {option!r}"


def _contains(value: Any, option: str | None) -> str | None:
    return None if (option or "") in str(value) else f"must contain {option!r}"


def _alphanum(value: Any, _option: str | None) -> str | None:
    text = str(value)
    if text.isascii() and text.isalnum():
        return None
    return "must contain only ASCII letters and digits"


def _is_hostname(text: str) -> bool:
    candidate = text[:-1] if text.endswith(".") else text
    if not candidate or len(candidate) > 253:
        return False
    return all(_HOSTNAME_LABEL.match(label) for label in candidate.split("."))


def _hostname(value: Any, _option: str | None) -> str | None:
    return None if _is_hostname(str(value)) else "must be a valid hostname"


def _url(value: Any, _option: str | None) -> str | None:
    parts = urlsplit(str(value))
    if parts.scheme and parts.netloc:
        return None
    return "must be an absolute URL"


def _ip(version: int | None) -> RuleFn:
    label = "an IP address" if version is None else f"an IPv{version} address"

    def apply(value: Any, _option: str | None) -> str | None:
        try:
            parsed = ip_address(str(value))
        except ValueError:
            return f"must be {label}"
        if version is not None and parsed.version != version:
            return f"must be {label}"
        return None

    return apply


def _cidr(value: Any, _option: str | None) -> str | None:
    try:
        ip_network(str(value), strict=False)
    except ValueError:
        return "must be a CIDR network"
    return None


def _hostname_port(value: Any, _option: str | None) -> str | None:
    host, sep, port = str(value).rpartition(":")
    if not sep or not port.isdigit() or not 0 < int(port) < 65536:
        return "must be host:port with a port in 1-65535"
    host = host.strip("[]")
    if host and not _is_hostname(host):
        try:
            ip_address(host)
        except ValueError:
            return "must be host:port with a valid host"
    return None


def _file(value: Any, _option: str | None) -> str | None:
    return None if Path(str(value)).is_file() else "must be an existing file"


def _dir(value: Any, _option: str | None) -> str | None:
    return None if Path(str(value)).is_dir() else "must be an existing directory"


_BUILTIN_RULES: Final[dict[str, RuleFn]] = {
    "required": _required,
    "eq": _comparison("eq", lambda left, right: left == right),
    "ne": _comparison("ne", lambda left, right: left != right),
    "gt": _comparison("gt", lambda left, right: left > right),
    "gte": _comparison("gte", lambda left, right: left >= right),
    "lt": _comparison("lt", lambda left, right: left < right),
    "lte": _comparison("lte", lambda left, right: left <= right),
    "len": _comparison("len", lambda left, right: left == right),
    "min": _comparison("min", lambda left, right: left >= right),
    "max": _comparison("max", lambda left, right: left <= right),
    "oneof": _oneof,
    "startswith": _startswith,
    "endswith": _endswith,
    "contains": _contains,
    "alphanum": _alphanum,
    "hostname": _hostname,
    "url": _url,
    "ip": _ip(None),
    "ipv4": _ip(4),
    "ipv6": _ip(6),
    "cidr": _cidr,
    "hostname_port": _hostname_port,
    "file": _file,
    "dir": _dir,
}
_RULES.update(_BUILTIN_RULES)


__all__ = [
    "Rule",
    "RuleFn",
    "is_empty",
    "is_known_rule",
    "parse_rules",
    "register_rule",
    "validate",
    "validate_all",
]
