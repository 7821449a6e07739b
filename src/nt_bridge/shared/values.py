"""Telemetry value model.

``TelemetryValue`` is a closed tagged union over every kind a NetworkTables
topic can carry.  Payloads are normalised on construction: scalars become the
matching Python scalar, arrays become tuples, binary payloads become
``bytes``.  ``FLOAT`` payloads are narrowed to float32 precision up front so a
value survives the trip through the wire representation unchanged.

The generic wire form (``WireValue``) mirrors a MessagePack dynamic value.
Two ambiguities are inherent to it and are kept as documented behaviour:

* an empty wire array carries no element kind and decodes as an empty
  ``FLOAT_ARRAY``;
* ``PROTOBUF`` payloads travel as plain binary and decode as ``BYTE_ARRAY``.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import numpy as np

from nt_bridge.errors import InvalidValueError, UnsupportedConversion

I64_MIN = -(2**63)
I64_MAX = 2**63 - 1


class ValueKind(Enum):
    BOOLEAN = "Boolean"
    INT = "Int"
    FLOAT = "Float"
    DOUBLE = "Double"
    STRING = "String"
    BYTE_ARRAY = "ByteArray"
    PROTOBUF = "Protobuf"
    BOOLEAN_ARRAY = "BooleanArray"
    INT_ARRAY = "IntArray"
    FLOAT_ARRAY = "FloatArray"
    DOUBLE_ARRAY = "DoubleArray"
    STRING_ARRAY = "StringArray"

    @property
    def is_array(self) -> bool:
        return self in _ELEMENT_KINDS

    @property
    def is_binary(self) -> bool:
        return self in (ValueKind.BYTE_ARRAY, ValueKind.PROTOBUF)

    @property
    def element_kind(self) -> Optional["ValueKind"]:
        """Kind of a single element, ``None`` for scalar kinds."""
        return _ELEMENT_KINDS.get(self)

    @property
    def nt_type(self) -> str:
        """NT4 topic type string used when announcing a topic."""
        return _NT_TYPES[self]


_ELEMENT_KINDS: dict[ValueKind, ValueKind] = {
    ValueKind.BYTE_ARRAY: ValueKind.INT,
    ValueKind.PROTOBUF: ValueKind.INT,
    ValueKind.BOOLEAN_ARRAY: ValueKind.BOOLEAN,
    ValueKind.INT_ARRAY: ValueKind.INT,
    ValueKind.FLOAT_ARRAY: ValueKind.FLOAT,
    ValueKind.DOUBLE_ARRAY: ValueKind.DOUBLE,
    ValueKind.STRING_ARRAY: ValueKind.STRING,
}

_NT_TYPES: dict[ValueKind, str] = {
    ValueKind.BOOLEAN: "boolean",
    ValueKind.INT: "int",
    ValueKind.FLOAT: "float",
    ValueKind.DOUBLE: "double",
    ValueKind.STRING: "string",
    ValueKind.BYTE_ARRAY: "raw",
    ValueKind.PROTOBUF: "protobuf",
    ValueKind.BOOLEAN_ARRAY: "boolean[]",
    ValueKind.INT_ARRAY: "int[]",
    ValueKind.FLOAT_ARRAY: "float[]",
    ValueKind.DOUBLE_ARRAY: "double[]",
    ValueKind.STRING_ARRAY: "string[]",
}

_NUMERIC = (ValueKind.INT, ValueKind.FLOAT, ValueKind.DOUBLE)
_NUMERIC_ARRAYS = (ValueKind.INT_ARRAY, ValueKind.FLOAT_ARRAY, ValueKind.DOUBLE_ARRAY)


# ---- payload normalisation ---------------------------------------------------


def _norm_bool(raw: Any) -> bool:
    if isinstance(raw, (bool, np.bool_)):
        return bool(raw)
    raise InvalidValueError(f"expected bool, got {type(raw).__name__}")


def _norm_int(raw: Any) -> int:
    if isinstance(raw, (bool, np.bool_)) or not isinstance(raw, (int, np.integer)):
        raise InvalidValueError(f"expected int, got {type(raw).__name__}")
    value = int(raw)
    if not I64_MIN <= value <= I64_MAX:
        raise InvalidValueError(f"integer {value} does not fit in 64 bits")
    return value


def _norm_number(raw: Any) -> float:
    if isinstance(raw, (bool, np.bool_)) or not isinstance(raw, (int, float, np.integer, np.floating)):
        raise InvalidValueError(f"expected number, got {type(raw).__name__}")
    return float(raw)


def _norm_float32(raw: Any) -> float:
    return float(np.float32(_norm_number(raw)))


def _norm_str(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    raise InvalidValueError(f"expected str, got {type(raw).__name__}")


def _norm_bytes(raw: Any) -> bytes:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw)
    if isinstance(raw, Iterable) and not isinstance(raw, str):
        try:
            return bytes(raw)
        except (TypeError, ValueError) as exc:
            raise InvalidValueError(f"invalid byte payload: {exc}") from exc
    raise InvalidValueError(f"expected bytes, got {type(raw).__name__}")


_SCALAR_NORMALIZERS: dict[ValueKind, Callable[[Any], Any]] = {
    ValueKind.BOOLEAN: _norm_bool,
    ValueKind.INT: _norm_int,
    ValueKind.FLOAT: _norm_float32,
    ValueKind.DOUBLE: _norm_number,
    ValueKind.STRING: _norm_str,
}


def _normalize(kind: ValueKind, raw: Any) -> Any:
    if kind.is_binary:
        return _norm_bytes(raw)
    element = kind.element_kind
    if element is None:
        return _SCALAR_NORMALIZERS[kind](raw)
    if isinstance(raw, (str, bytes, bytearray)) or not isinstance(raw, Iterable):
        raise InvalidValueError(f"{kind.value} expects a sequence, got {type(raw).__name__}")
    norm = _SCALAR_NORMALIZERS[element]
    return tuple(norm(item) for item in raw)


# ---- narrowing helpers -------------------------------------------------------


def _truncate(value: float) -> int:
    """Float to int64 the way a saturating cast does it."""
    if math.isnan(value):
        return 0
    if value >= 2.0**63:
        return I64_MAX
    if value < -(2.0**63):
        return I64_MIN
    return int(value)


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value.is_integer():
        return str(int(value))
    return repr(value)


# ---- wire form ---------------------------------------------------------------


class WireKind(Enum):
    NIL = "nil"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    F32 = "f32"
    F64 = "f64"
    STRING = "string"
    BINARY = "binary"
    ARRAY = "array"
    MAP = "map"


@dataclass(frozen=True)
class WireValue:
    """Provider-agnostic dynamic value as carried by the protocol library.

    ``ARRAY`` payloads are tuples of ``WireValue``; ``MAP`` payloads are tuples
    of ``(key, value)`` pairs.
    """

    kind: WireKind
    data: Any = None

    def as_f64(self) -> Optional[float]:
        if self.kind in (WireKind.F32, WireKind.F64, WireKind.INTEGER):
            return float(self.data)
        return None

    def as_i64(self) -> Optional[int]:
        if self.kind is WireKind.INTEGER and I64_MIN <= int(self.data) <= I64_MAX:
            return int(self.data)
        return None

    def as_str(self) -> Optional[str]:
        return self.data if self.kind is WireKind.STRING else None

    def as_bool(self) -> Optional[bool]:
        return bool(self.data) if self.kind is WireKind.BOOLEAN else None


_SCALAR_TO_WIRE: dict[ValueKind, WireKind] = {
    ValueKind.BOOLEAN: WireKind.BOOLEAN,
    ValueKind.INT: WireKind.INTEGER,
    ValueKind.FLOAT: WireKind.F32,
    ValueKind.DOUBLE: WireKind.F64,
    ValueKind.STRING: WireKind.STRING,
}

# element wire kind -> (array kind, element reader, zero value)
_WIRE_ARRAY_KINDS: dict[WireKind, tuple[ValueKind, Callable[[WireValue], Any], Any]] = {
    WireKind.F32: (ValueKind.FLOAT_ARRAY, WireValue.as_f64, 0.0),
    WireKind.F64: (ValueKind.DOUBLE_ARRAY, WireValue.as_f64, 0.0),
    WireKind.INTEGER: (ValueKind.INT_ARRAY, WireValue.as_i64, 0),
    WireKind.STRING: (ValueKind.STRING_ARRAY, WireValue.as_str, ""),
    WireKind.BOOLEAN: (ValueKind.BOOLEAN_ARRAY, WireValue.as_bool, False),
}


# ---- the value type ----------------------------------------------------------


@dataclass(frozen=True)
class TelemetryValue:
    """One transmissible telemetry value."""

    kind: ValueKind
    data: Any

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ValueKind):
            raise InvalidValueError(f"unknown value kind {self.kind!r}")
        object.__setattr__(self, "data", _normalize(self.kind, self.data))

    # constructors
    @classmethod
    def boolean(cls, value: bool) -> TelemetryValue:
        return cls(ValueKind.BOOLEAN, value)

    @classmethod
    def integer(cls, value: int) -> TelemetryValue:
        return cls(ValueKind.INT, value)

    @classmethod
    def float32(cls, value: float) -> TelemetryValue:
        return cls(ValueKind.FLOAT, value)

    @classmethod
    def float64(cls, value: float) -> TelemetryValue:
        return cls(ValueKind.DOUBLE, value)

    @classmethod
    def string(cls, value: str) -> TelemetryValue:
        return cls(ValueKind.STRING, value)

    @classmethod
    def raw(cls, value: bytes) -> TelemetryValue:
        return cls(ValueKind.BYTE_ARRAY, value)

    @classmethod
    def protobuf(cls, value: bytes) -> TelemetryValue:
        return cls(ValueKind.PROTOBUF, value)

    @classmethod
    def boolean_array(cls, values: Iterable[bool]) -> TelemetryValue:
        return cls(ValueKind.BOOLEAN_ARRAY, values)

    @classmethod
    def integer_array(cls, values: Iterable[int]) -> TelemetryValue:
        return cls(ValueKind.INT_ARRAY, values)

    @classmethod
    def float32_array(cls, values: Iterable[float]) -> TelemetryValue:
        return cls(ValueKind.FLOAT_ARRAY, values)

    @classmethod
    def float64_array(cls, values: Iterable[float]) -> TelemetryValue:
        return cls(ValueKind.DOUBLE_ARRAY, values)

    @classmethod
    def string_array(cls, values: Iterable[str]) -> TelemetryValue:
        return cls(ValueKind.STRING_ARRAY, values)

    def __str__(self) -> str:
        return f"{self.kind.value}({self.data!r})"

    # kind predicates
    def is_binary(self) -> bool:
        return self.kind.is_binary

    def is_numeric(self) -> bool:
        return self.kind in _NUMERIC or self.kind in _NUMERIC_ARRAYS

    def is_string(self) -> bool:
        return self.kind in (ValueKind.STRING, ValueKind.STRING_ARRAY)

    def is_boolean(self) -> bool:
        return self.kind in (ValueKind.BOOLEAN, ValueKind.BOOLEAN_ARRAY)

    def is_array(self) -> bool:
        return self.kind.is_array

    def is_single(self) -> bool:
        return not self.kind.is_array

    def element_count(self) -> Optional[int]:
        if not self.kind.is_array:
            return None
        return len(self.data)

    def element(self, index: int) -> Optional[TelemetryValue]:
        """Element ``index`` as a scalar value; ``None`` when out of range or scalar."""
        element_kind = self.kind.element_kind
        if element_kind is None or not 0 <= index < len(self.data):
            return None
        return TelemetryValue(element_kind, self.data[index])

    # host conversions
    def _reject(self, target: str) -> UnsupportedConversion:
        return UnsupportedConversion(self.kind.value, target)

    def as_float32(self) -> float:
        if self.kind in _NUMERIC:
            return float(np.float32(self.data))
        raise self._reject("float32")

    def as_float64(self) -> float:
        if self.kind in _NUMERIC:
            return float(self.data)
        raise self._reject("float64")

    def as_int64(self) -> int:
        if self.kind is ValueKind.INT:
            return self.data
        if self.kind in (ValueKind.FLOAT, ValueKind.DOUBLE):
            return _truncate(self.data)
        raise self._reject("int64")

    def as_str(self) -> str:
        if self.kind is ValueKind.STRING:
            return self.data
        if self.kind is ValueKind.BOOLEAN:
            return "true" if self.data else "false"
        if self.kind is ValueKind.INT:
            return str(self.data)
        if self.kind in (ValueKind.FLOAT, ValueKind.DOUBLE):
            return _format_float(self.data)
        raise self._reject("str")

    def as_bool(self) -> bool:
        if self.kind is ValueKind.BOOLEAN:
            return self.data
        raise self._reject("bool")

    def as_bytes(self) -> bytes:
        if self.kind.is_binary:
            return self.data
        raise self._reject("bytes")

    def as_float32_list(self) -> list[float]:
        if self.kind in _NUMERIC_ARRAYS:
            return [float(v) for v in np.asarray(self.data, dtype=np.float32)]
        raise self._reject("float32[]")

    def as_float64_list(self) -> list[float]:
        if self.kind in _NUMERIC_ARRAYS:
            return [float(v) for v in self.data]
        raise self._reject("float64[]")

    def as_int64_list(self) -> list[int]:
        if self.kind is ValueKind.INT_ARRAY:
            return list(self.data)
        if self.kind in (ValueKind.FLOAT_ARRAY, ValueKind.DOUBLE_ARRAY):
            return [_truncate(v) for v in self.data]
        raise self._reject("int64[]")

    def as_str_list(self) -> list[str]:
        if self.kind is ValueKind.STRING_ARRAY:
            return list(self.data)
        raise self._reject("str[]")

    def as_bool_list(self) -> list[bool]:
        if self.kind is ValueKind.BOOLEAN_ARRAY:
            return list(self.data)
        raise self._reject("bool[]")

    def convert(self, target: str) -> Any:
        """Generic accessor: ``target`` names one of the host conversions."""
        try:
            method = _CONVERSIONS[target]
        except KeyError:
            raise UnsupportedConversion(self.kind.value, target) from None
        return method(self)

    # wire form
    def to_wire(self) -> WireValue:
        if self.kind.is_binary:
            return WireValue(WireKind.BINARY, self.data)
        element = self.kind.element_kind
        if element is None:
            return WireValue(_SCALAR_TO_WIRE[self.kind], self.data)
        wire_kind = _SCALAR_TO_WIRE[element]
        return WireValue(WireKind.ARRAY, tuple(WireValue(wire_kind, item) for item in self.data))

    @classmethod
    def from_wire(cls, wire: WireValue) -> TelemetryValue:
        kind = wire.kind
        if kind is WireKind.F32:
            return cls(ValueKind.FLOAT, wire.data)
        if kind is WireKind.F64:
            return cls(ValueKind.DOUBLE, wire.data)
        if kind is WireKind.INTEGER:
            as_int = wire.as_i64()
            return cls(ValueKind.INT, as_int if as_int is not None else 0)
        if kind is WireKind.STRING:
            return cls(ValueKind.STRING, wire.data)
        if kind is WireKind.BOOLEAN:
            return cls(ValueKind.BOOLEAN, wire.data)
        if kind is WireKind.BINARY:
            return cls(ValueKind.BYTE_ARRAY, wire.data)
        if kind is WireKind.ARRAY:
            items = tuple(wire.data or ())
            if not items:
                return cls(ValueKind.FLOAT_ARRAY, ())
            try:
                array_kind, read, zero = _WIRE_ARRAY_KINDS[items[0].kind]
            except KeyError:
                raise UnsupportedConversion(f"wire array of {items[0].kind.value}", "TelemetryValue") from None
            decoded = []
            for item in items:
                value = read(item)
                decoded.append(zero if value is None else value)
            return cls(array_kind, decoded)
        raise UnsupportedConversion(f"wire {kind.value}", "TelemetryValue")

    # mapping form
    def to_mapping(self) -> dict[str, Any]:
        if self.kind.is_binary:
            payload: Any = list(self.data)
        elif self.kind.is_array:
            payload = list(self.data)
        else:
            payload = self.data
        return {"type": self.kind.value, "value": payload}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> TelemetryValue:
        try:
            kind = ValueKind(mapping["type"])
        except (KeyError, ValueError) as exc:
            raise InvalidValueError(f"invalid value mapping: {mapping!r}") from exc
        return cls(kind, mapping.get("value"))


_CONVERSIONS: dict[str, Callable[[TelemetryValue], Any]] = {
    "float32": TelemetryValue.as_float32,
    "float64": TelemetryValue.as_float64,
    "int64": TelemetryValue.as_int64,
    "str": TelemetryValue.as_str,
    "bool": TelemetryValue.as_bool,
    "bytes": TelemetryValue.as_bytes,
    "float32[]": TelemetryValue.as_float32_list,
    "float64[]": TelemetryValue.as_float64_list,
    "int64[]": TelemetryValue.as_int64_list,
    "str[]": TelemetryValue.as_str_list,
    "bool[]": TelemetryValue.as_bool_list,
}


__all__ = [
    "TelemetryValue",
    "ValueKind",
    "WireKind",
    "WireValue",
]
