from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeAlias

from streaks.engine.errors import MetadataDecodeError

METADATA_TYPE_STRING = "string"
METADATA_TYPE_BOOL = "bool"
METADATA_TYPE_INT = "int"
METADATA_TYPE_DOUBLE = "double"


@dataclass(frozen=True, slots=True)
class MetadataString:
    value: str


@dataclass(frozen=True, slots=True)
class MetadataBool:
    value: bool


@dataclass(frozen=True, slots=True)
class MetadataInt:
    value: int


@dataclass(frozen=True, slots=True)
class MetadataDouble:
    value: float


MetadataValue: TypeAlias = MetadataString | MetadataBool | MetadataInt | MetadataDouble


def metadata_value_from_python(raw: object) -> MetadataValue:
    # bool is a subclass of int, so it has to be matched first.
    if isinstance(raw, bool):
        return MetadataBool(raw)
    if isinstance(raw, int):
        return MetadataInt(raw)
    if isinstance(raw, float):
        return MetadataDouble(raw)
    if isinstance(raw, str):
        return MetadataString(raw)
    if isinstance(raw, (MetadataString, MetadataBool, MetadataInt, MetadataDouble)):
        return raw
    raise MetadataDecodeError(f"unsupported metadata value type: {type(raw).__name__}")


def coerce_metadata(raw: Mapping[str, object] | None) -> dict[str, MetadataValue]:
    if not raw:
        return {}
    return {key: metadata_value_from_python(value) for key, value in raw.items()}


def metadata_python_value(value: MetadataValue) -> str | bool | int | float:
    return value.value


def encode_metadata_value(value: MetadataValue) -> dict[str, Any]:
    if isinstance(value, MetadataString):
        return {"type": METADATA_TYPE_STRING, "value": value.value}
    if isinstance(value, MetadataBool):
        return {"type": METADATA_TYPE_BOOL, "value": value.value}
    if isinstance(value, MetadataInt):
        return {"type": METADATA_TYPE_INT, "value": value.value}
    if isinstance(value, MetadataDouble):
        return {"type": METADATA_TYPE_DOUBLE, "value": value.value}
    raise MetadataDecodeError(f"unsupported metadata value: {value!r}")


def decode_metadata_value(payload: Mapping[str, Any]) -> MetadataValue:
    try:
        value_type = payload["type"]
        raw = payload["value"]
    except (KeyError, TypeError) as exc:
        raise MetadataDecodeError(f"malformed metadata payload: {payload!r}") from exc

    if value_type == METADATA_TYPE_STRING and isinstance(raw, str):
        return MetadataString(raw)
    if value_type == METADATA_TYPE_BOOL and isinstance(raw, bool):
        return MetadataBool(raw)
    if value_type == METADATA_TYPE_INT and isinstance(raw, int) and not isinstance(raw, bool):
        return MetadataInt(raw)
    if value_type == METADATA_TYPE_DOUBLE and isinstance(raw, (int, float)) and not isinstance(raw, bool):
        if not math.isfinite(float(raw)):
            raise MetadataDecodeError("double metadata value must be finite")
        return MetadataDouble(float(raw))

    raise MetadataDecodeError(f"metadata value does not match its type tag: {payload!r}")


def encode_metadata(metadata: Mapping[str, MetadataValue]) -> dict[str, dict[str, Any]]:
    return {key: encode_metadata_value(value) for key, value in sorted(metadata.items())}


def decode_metadata(payload: Mapping[str, Any] | None) -> dict[str, MetadataValue]:
    if not payload:
        return {}
    return {key: decode_metadata_value(value) for key, value in payload.items()}
