"""
stratconf — type registry and codecs.

File: src/stratconf/codecs.py

Purpose
- Map a field's declared type to a codec that parses raw strings (as supplied
  by the command line, environment and config file) into typed values and
  renders them back.

What should be included in this file
- Built-in scalar codecs (str, int, float, bool, Decimal, Path, durations,
  ISO dates, IP addresses and networks, ConfigFile).
- Composite codecs derived on lookup: sequences split as CSV, mappings as
  ``k=v,k=v``.
- Map-value codecs: enum-like lookup tables from fixed keys to values.
- ``TypeRegistry`` with duplicate-checked registration.

Functional requirements
- ``render`` is a pure function of the value and ``parse(render(v)) == v``.
- A sequence type may only be registered once its element type has a codec.

Non-functional requirements
- Registration is process-wide and cumulative for the default registry;
  independent registries can be built for isolation.
"""

from __future__ import annotations

import csv
import io
import re
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from enum import Enum
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network
from pathlib import Path
from typing import Any, Final, get_args, get_origin

from stratconf.constants import MAPPING_ASSIGNMENT
from stratconf.errors import TypeRegistrationError, UnknownTypeError

ParseFn = Callable[[str], Any]
RenderFn = Callable[[Any], str]
ZeroFn = Callable[[], Any]

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

_SEQUENCE_ORIGINS: Final[tuple[type, ...]] = (list, tuple, set, frozenset)
_CSV_ROW_END: Final[str] = "\r\n"

_DURATION_PART: Final[re.Pattern[str]] = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS_US: Final[dict[str, Decimal]] = {
    "ns": Decimal("0.001"),
    "us": Decimal(1),
    "µs": Decimal(1),
    "μs": Decimal(1),
    "ms": Decimal(1_000),
    "s": Decimal(1_000_000),
    "m": Decimal(60_000_000),
    "h": Decimal(3_600_000_000),
}
_US_PER_SECOND: Final[int] = 1_000_000
_US_PER_MINUTE: Final[int] = 60 * _US_PER_SECOND
_US_PER_HOUR: Final[int] = 60 * _US_PER_MINUTE


class ConfigFile(str):
    """Marker type for the field that names the configuration file."""

    __slots__ = ()


class Codec:
    """Parse/render pair bound to one type identity."""

    __slots__ = ("type_id", "_parse", "_render", "_zero")

    def __init__(
        self,
        type_id: object,
        parse: ParseFn,
        render: RenderFn = str,
        *,
        zero: ZeroFn | None = None,
    ) -> None:
        self.type_id = type_id
        self._parse = parse
        self._render = render
        self._zero = zero

    def parse(self, raw: str) -> Any:
        return self._parse(raw)

    def render(self, value: Any) -> str:
        return self._render(value)

    def zero_value(self) -> Any:
        """Return the value an absent, non-nullable field takes (``None`` if no zero exists)."""

        return None if self._zero is None else self._zero()

    def from_native(self, value: object) -> Any:
        """Decode a value already parsed by a YAML/JSON reader."""

        if isinstance(value, str):
            return self.parse(value)
        if isinstance(self.type_id, type) and type(value) is self.type_id:
            return value
        if isinstance(value, (list, tuple, set, frozenset, Mapping)):
            raise ValueError(f"expected a scalar value, got {type(value).__name__}")
        return self.parse(native_text(value))

    def scalars(self, value: Any) -> Iterator[str]:
        """Yield the rendered scalar(s) of ``value`` for membership checks."""

        yield self.render(value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.type_id!r})"


class SequenceCodec(Codec):
    """Codec for ``list[T]``-like types, rendered as a CSV line."""

    __slots__ = ("element", "container")

    def __init__(self, type_id: object, element: Codec, container: type = list) -> None:
        self.element = element
        self.container = container
        super().__init__(type_id, self._parse_items, self._render_items, zero=container)

    def _parse_items(self, raw: str) -> Any:
        return self.container(self.element.parse(item) for item in split_csv(raw))

    def _render_items(self, value: Iterable[Any]) -> str:
        rendered = [self.element.render(item) for item in value]
        if isinstance(value, (set, frozenset)):
            rendered.sort()
        return join_csv(rendered)

    def from_native(self, value: object) -> Any:
        if isinstance(value, str):
            return self.parse(value)
        if isinstance(value, Mapping):
            raise ValueError("expected a list, got a mapping")
        if isinstance(value, (list, tuple, set, frozenset)):
            return self.container(self.element.from_native(item) for item in value)
        return self.container([self.element.from_native(value)])

    def scalars(self, value: Any) -> Iterator[str]:
        for item in value:
            yield from self.element.scalars(item)


class MappingCodec(Codec):
    """Codec for ``dict[K, V]`` types, rendered as ``k=v,k=v``."""

    __slots__ = ("key", "value")

    def __init__(self, type_id: object, key: Codec, value: Codec) -> None:
        self.key = key
        self.value = value
        super().__init__(type_id, self._parse_pairs, self._render_pairs, zero=dict)

    def _parse_pairs(self, raw: str) -> dict[Any, Any]:
        parsed: dict[Any, Any] = {}
        for item in split_csv(raw):
            name, sep, text = item.partition(MAPPING_ASSIGNMENT)
            if not sep:
                raise ValueError(f"expected key{MAPPING_ASSIGNMENT}value, got {item!r}")
            parsed[self.key.parse(name)] = self.value.parse(text)
        return parsed

    def _render_pairs(self, value: Mapping[Any, Any]) -> str:
        pairs: list[str] = []
        for name, item in value.items():
            key = self.key.render(name)
            # parsing splits each pair at its first assignment sign
            if MAPPING_ASSIGNMENT in key:
                raise ValueError(f"map key {key!r} must not contain {MAPPING_ASSIGNMENT!r}")
            pairs.append(f"{key}{MAPPING_ASSIGNMENT}{self.value.render(item)}")
        return join_csv(pairs)

    def from_native(self, value: object) -> Any:
        if isinstance(value, str):
            return self.parse(value)
        if not isinstance(value, Mapping):
            raise ValueError(f"expected a mapping, got {type(value).__name__}")
        return {
            self.key.from_native(name): self.value.from_native(item)
            for name, item in value.items()
        }

    def scalars(self, value: Any) -> Iterator[str]:
        for item in value.values():
            yield from self.value.scalars(item)


class MapValueCodec(Codec):
    """Enum-like codec: raw input must be one of ``keys``; decodes to the paired value."""

    __slots__ = ("keys", "values")

    def __init__(self, type_id: object, keys: Sequence[str], values: Sequence[Any]) -> None:
        self.keys = tuple(keys)
        self.values = tuple(values)
        super().__init__(type_id, self._lookup_key, self._lookup_value)

    def _lookup_key(self, raw: str) -> Any:
        try:
            index = self.keys.index(raw)
        except ValueError:
            raise ValueError(f"must be one of: {', '.join(self.keys)}") from None
        return self.values[index]

    def _lookup_value(self, value: Any) -> str:
        for key, candidate in zip(self.keys, self.values, strict=True):
            if candidate is value or candidate == value:
                return key
        raise ValueError(f"{value!r} is not a registered value of {self.type_id!r}")

    def from_native(self, value: object) -> Any:
        if isinstance(value, str):
            return self.parse(value)
        if any(candidate is value for candidate in self.values):
            return value
        return self.parse(native_text(value))


class TypeRegistry:
    """Registry from type identity to codec."""

    def __init__(self, *, builtins: bool = True) -> None:
        self._lock = threading.Lock()
        self._codecs: dict[object, Codec] = {}
        if builtins:
            for codec in _builtin_codecs():
                self._codecs[codec.type_id] = codec

    def register(self, type_id: object, codec: Codec) -> Codec:
        """Register ``codec`` for ``type_id``; re-registration is rejected."""

        key = normalize_type(type_id)
        if normalize_type(codec.type_id) != key:
            raise TypeRegistrationError(
                f"codec for {codec.type_id!r} cannot be registered as {type_id!r}"
            )
        origin = get_origin(key)
        if origin in _SEQUENCE_ORIGINS or origin is dict:
            for arg in get_args(key):
                if arg is Ellipsis:
                    continue
                try:
                    self.lookup(arg)
                except UnknownTypeError as exc:
                    raise TypeRegistrationError(
                        f"cannot register {type_id!r} before its element type {arg!r}"
                    ) from exc
        with self._lock:
            if key in self._codecs:
                raise TypeRegistrationError(f"type {type_id!r} is already registered")
            self._codecs[key] = codec
        return codec

    def register_scalar(
        self,
        type_id: object,
        parse: ParseFn,
        render: RenderFn = str,
        *,
        zero: ZeroFn | None = None,
    ) -> Codec:
        return self.register(type_id, Codec(type_id, parse, render, zero=zero))

    def register_map_value(
        self,
        value_type: object,
        keys: Sequence[str],
        values: Sequence[Any],
    ) -> MapValueCodec:
        """Register an enum-like codec whose raw keys decode to ``values``."""

        if len(keys) != len(values):
            raise TypeRegistrationError(
                f"map value {value_type!r} has {len(keys)} keys but {len(values)} values"
            )
        if not keys:
            raise TypeRegistrationError(f"map value {value_type!r} requires at least one key")
        if len(set(keys)) != len(keys):
            raise TypeRegistrationError(f"map value {value_type!r} has duplicate keys")
        codec = MapValueCodec(value_type, keys, values)
        self.register(value_type, codec)
        return codec

    def register_enum(
        self,
        enum_type: type[Enum],
        *,
        keys: Sequence[str] | None = None,
    ) -> MapValueCodec:
        """Register an ``Enum`` subclass keyed by lower-cased member names."""

        members = list(enum_type)
        names = list(keys) if keys is not None else [member.name.lower() for member in members]
        return self.register_map_value(enum_type, names, members)

    def lookup(self, type_id: object) -> Codec:
        """Return the codec for ``type_id``, deriving composite codecs on demand."""

        key = normalize_type(type_id)
        codec = self._codecs.get(key)
        if codec is not None:
            return codec

        origin = get_origin(key)
        args = get_args(key)
        if origin in (list, set, frozenset) and len(args) == 1:
            return SequenceCodec(key, self.lookup(args[0]), origin)
        if origin is tuple and len(args) == 2 and args[1] is Ellipsis:
            return SequenceCodec(key, self.lookup(args[0]), tuple)
        if origin is dict and len(args) == 2:
            return MappingCodec(key, self.lookup(args[0]), self.lookup(args[1]))
        raise UnknownTypeError(type_id)

    def is_registered(self, type_id: object) -> bool:
        try:
            self.lookup(type_id)
        except UnknownTypeError:
            return False
        return True


_DEFAULT_TYPES: TypeRegistry | None = None
_DEFAULT_TYPES_LOCK = threading.Lock()


def default_types() -> TypeRegistry:
    """Return the process-wide type registry, creating it on first use."""

    global _DEFAULT_TYPES
    with _DEFAULT_TYPES_LOCK:
        if _DEFAULT_TYPES is None:
            _DEFAULT_TYPES = TypeRegistry()
        return _DEFAULT_TYPES


def register(type_id: object, codec: Codec) -> Codec:
    return default_types().register(type_id, codec)


def register_map_value(
    value_type: object, keys: Sequence[str], values: Sequence[Any]
) -> MapValueCodec:
    return default_types().register_map_value(value_type, keys, values)


def register_enum(enum_type: type[Enum], *, keys: Sequence[str] | None = None) -> MapValueCodec:
    return default_types().register_enum(enum_type, keys=keys)


def lookup(type_id: object) -> Codec:
    return default_types().lookup(type_id)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_type(type_id: object) -> object:
    """Map ``typing.List[int]`` and friends onto builtin generic aliases."""

    origin = get_origin(type_id)
    if origin in _SEQUENCE_ORIGINS or origin is dict:
        args = tuple(arg if arg is Ellipsis else normalize_type(arg) for arg in get_args(type_id))
        if args:
            return origin[args]
    return type_id


def split_csv(raw: str) -> list[str]:
    if raw == "":
        return []
    try:
        rows = list(csv.reader(io.StringIO(raw, newline="")))
    except csv.Error as exc:
        raise ValueError(f"malformed list: {exc}") from None
    if len(rows) != 1:
        raise ValueError("malformed list: line breaks must be inside double quotes")
    return rows[0]


def join_csv(items: Iterable[str]) -> str:
    buffer = io.StringIO()
    # line break characters in a terminator force quoting of embedded newlines
    csv.writer(buffer, lineterminator=_CSV_ROW_END).writerow(list(items))
    return buffer.getvalue().removesuffix(_CSV_ROW_END)


def native_text(value: object) -> str:
    """Render a YAML/JSON scalar the way a user would have typed it."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if value is None:
        return ""
    return str(value)


def parse_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


def render_bool(value: bool) -> str:
    return "true" if value else "false"


def parse_int(raw: str) -> int:
    text = raw.strip()
    try:
        return int(text, 10)
    except ValueError:
        pass
    try:
        return int(text, 0)
    except ValueError:
        raise ValueError("must be an integer") from None


def parse_float(raw: str) -> float:
    try:
        return float(raw.strip())
    except ValueError:
        raise ValueError("must be a number") from None


def parse_decimal(raw: str) -> Decimal:
    try:
        return Decimal(raw.strip())
    except InvalidOperation:
        raise ValueError("must be a decimal number") from None


def parse_duration(raw: str) -> timedelta:
    """Parse durations such as ``1h30m``, ``250ms`` or ``-1.5s``."""

    text = raw.strip()
    sign = 1
    if text[:1] in {"+", "-"}:
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)

    total = Decimal(0)
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += Decimal(match.group(1)) * _DURATION_UNITS_US[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise ValueError("must be a duration (examples: 30s, 1h15m, 250ms)")
    micros = int(total.to_integral_value(rounding=ROUND_HALF_EVEN))
    return timedelta(microseconds=sign * micros)


def render_duration(value: timedelta) -> str:
    micros = value // timedelta(microseconds=1)
    sign = "-" if micros < 0 else ""
    micros = abs(micros)
    hours, micros = divmod(micros, _US_PER_HOUR)
    minutes, micros = divmod(micros, _US_PER_MINUTE)
    seconds, fraction = divmod(micros, _US_PER_SECOND)

    parts: list[str] = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds or fraction:
        text = str(seconds)
        if fraction:
            text += f".{fraction:06d}".rstrip("0")
        parts.append(f"{text}s")
    if not parts:
        return "0s"
    return sign + "".join(parts)


def _ip_parser(kind: type) -> ParseFn:
    label = {
        IPv4Address: "an IPv4 address",
        IPv6Address: "an IPv6 address",
        IPv4Network: "an IPv4 network",
        IPv6Network: "an IPv6 network",
    }[kind]

    def parse(raw: str) -> Any:
        try:
            return kind(raw.strip())
        except ValueError:
            raise ValueError(f"must be {label}") from None

    return parse


def _builtin_codecs() -> tuple[Codec, ...]:
    return (
        Codec(str, str, str, zero=str),
        Codec(int, parse_int, str, zero=int),
        Codec(float, parse_float, repr, zero=float),
        Codec(bool, parse_bool, render_bool, zero=bool),
        Codec(Decimal, parse_decimal, str, zero=Decimal),
        Codec(Path, Path, str),
        Codec(timedelta, parse_duration, render_duration, zero=timedelta),
        Codec(datetime, datetime.fromisoformat, datetime.isoformat),
        Codec(date, date.fromisoformat, date.isoformat),
        Codec(IPv4Address, _ip_parser(IPv4Address), str),
        Codec(IPv6Address, _ip_parser(IPv6Address), str),
        Codec(IPv4Network, _ip_parser(IPv4Network), str),
        Codec(IPv6Network, _ip_parser(IPv6Network), str),
        Codec(ConfigFile, ConfigFile, str, zero=ConfigFile),
    )


__all__ = [
    "Codec",
    "ConfigFile",
    "MapValueCodec",
    "MappingCodec",
    "SequenceCodec",
    "TypeRegistry",
    "default_types",
    "join_csv",
    "lookup",
    "native_text",
    "normalize_type",
    "parse_duration",
    "register",
    "register_enum",
    "register_map_value",
    "render_duration",
    "split_csv",
]
