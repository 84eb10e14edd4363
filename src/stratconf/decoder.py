"""Convert winning raw values into typed field values."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from stratconf.errors import DecodeError, ResolutionError, Stage
from stratconf.resolver import RawValue, Source
from stratconf.schema import FieldDescriptor


def decode(descriptor: FieldDescriptor, raw: RawValue) -> Any:
    """Decode ``raw`` through the descriptor's codec, enforcing ``enum`` membership."""

    if raw.source is Source.ABSENT:
        return None if raw.leave_nil else descriptor.codec.zero_value()

    codec = descriptor.codec
    try:
        if isinstance(raw.value, str):
            value = codec.parse(raw.value)
        else:
            value = codec.from_native(raw.value)
    except (ValueError, TypeError, ArithmeticError) as exc:
        raise DecodeError(descriptor.resolved_name, raw.value, exc) from exc

    allowed = descriptor.enum_values
    if allowed is not None and value is not None:
        for item in codec.scalars(value):
            if item not in allowed:
                raise DecodeError(
                    descriptor.resolved_name,
                    raw.value,
                    f"must be one of: {', '.join(allowed)}",
                )
    return value


def decode_all(raw_values: Mapping[FieldDescriptor, RawValue]) -> dict[FieldDescriptor, Any]:
    """Decode every field; all failures are reported together."""

    decoded: dict[FieldDescriptor, Any] = {}
    errors: list[DecodeError] = []
    for descriptor, raw in raw_values.items():
        try:
            decoded[descriptor] = decode(descriptor, raw)
        except DecodeError as exc:
            errors.append(exc)
    if errors:
        raise ResolutionError.from_errors(Stage.DECODED, errors)
    return decoded


__all__ = ["decode", "decode_all"]
