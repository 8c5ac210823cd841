"""Binary argument codec for canister call payloads.

Values are described by type objects (``Nat``, ``Text``, ``Record(...)``,
``Variant(...)`` ...) and encoded as a self-describing message: the ``DIDL``
magic, a type table, the argument types, then the argument values.

Python representation of decoded values:

- ``nat``/``int`` and the fixed-width integers: ``int``
- ``text``: ``str``; ``bool``: ``bool``; ``null`` and ``reserved``: ``None``
- ``principal``: :class:`~pic_sdk.principal.Principal`
- ``blob`` (``vec nat8``): ``bytes``; other vectors: ``list``
- ``opt T``: ``[]`` or ``[value]``
- ``record``: ``dict`` keyed by field name
- ``variant``: single-entry ``dict`` ``{tag: value}``

Decoding reads the sender's type table and maps it onto the expected types,
so record fields may arrive in any order, unknown record fields are skipped
and absent optional fields decode as ``[]``. Recursive types are declared
with :class:`Rec`. Decoding rejects values nested deeper than
``MAX_DECODE_DEPTH`` and vectors of zero-sized elements longer than
``MAX_ZERO_SIZED_VEC_LENGTH``.
"""

from __future__ import annotations

import struct
from collections.abc import Mapping, Sequence
from typing import Any

from .errors import DecodeError, EncodeError
from .principal import Principal

MAGIC = b"DIDL"

# Nesting limit for decoded values; each opt, vec, record or variant level counts once.
MAX_DECODE_DEPTH = 256
# Elements of a vector whose element type occupies no bytes on the wire.
MAX_ZERO_SIZED_VEC_LENGTH = 100_000

_NULL = -1
_BOOL = -2
_NAT = -3
_INT = -4
_NAT8 = -5
_NAT16 = -6
_NAT32 = -7
_NAT64 = -8
_INT8 = -9
_INT16 = -10
_INT32 = -11
_INT64 = -12
_FLOAT32 = -13
_FLOAT64 = -14
_TEXT = -15
_RESERVED = -16
_EMPTY = -17
_OPT = -18
_VEC = -19
_RECORD = -20
_VARIANT = -21
_FUNC = -22
_SERVICE = -23
_PRINCIPAL = -24

_PRIMITIVE_NAMES = {
    _NULL: "null",
    _BOOL: "bool",
    _NAT: "nat",
    _INT: "int",
    _NAT8: "nat8",
    _NAT16: "nat16",
    _NAT32: "nat32",
    _NAT64: "nat64",
    _INT8: "int8",
    _INT16: "int16",
    _INT32: "int32",
    _INT64: "int64",
    _FLOAT32: "float32",
    _FLOAT64: "float64",
    _TEXT: "text",
    _RESERVED: "reserved",
    _EMPTY: "empty",
    _PRINCIPAL: "principal",
}

_FIXED = {
    _NAT8: "<B",
    _NAT16: "<H",
    _NAT32: "<I",
    _NAT64: "<Q",
    _INT8: "<b",
    _INT16: "<h",
    _INT32: "<i",
    _INT64: "<q",
}


def idl_hash(label: str | int) -> int:
    """Return the 32-bit field id of a record or variant label."""
    if isinstance(label, int):
        return label
    value = 0
    for byte in label.encode("utf-8"):
        value = (value * 223 + byte) % (1 << 32)
    return value


# -----------------------------------------------------------------------------
# LEB128
# -----------------------------------------------------------------------------


def encode_uleb128(value: int) -> bytes:
    if value < 0:
        raise EncodeError(f"Cannot encode negative value {value} as nat")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_sleb128(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        done = (value == 0 and not byte & 0x40) or (value == -1 and byte & 0x40)
        if done:
            out.append(byte)
            return bytes(out)
        out.append(byte | 0x80)


class _Reader:
    """Cursor over an encoded message."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def read(self, size: int) -> bytes:
        if size > self.remaining:
            raise DecodeError("Unexpected end of candid message")
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def read_byte(self) -> int:
        return self.read(1)[0]

    def read_uleb(self) -> int:
        result = 0
        shift = 0
        while True:
            byte = self.read_byte()
            result |= (byte & 0x7F) << shift
            shift += 7
            if not byte & 0x80:
                return result

    def read_sleb(self) -> int:
        result = 0
        shift = 0
        while True:
            byte = self.read_byte()
            result |= (byte & 0x7F) << shift
            shift += 7
            if not byte & 0x80:
                if byte & 0x40:
                    result -= 1 << shift
                return result


# -----------------------------------------------------------------------------
# Type table
# -----------------------------------------------------------------------------


class _TypeTable:
    """Builds the type table section while encoding."""

    def __init__(self) -> None:
        self.entries: list[bytes] = []
        self._indices: dict[int, int] = {}

    def register(self, candid_type: CandidType) -> int:
        candid_type = _unwrap(candid_type)
        if candid_type.opcode in _PRIMITIVE_NAMES:
            return candid_type.opcode
        key = id(candid_type)
        if key in self._indices:
            return self._indices[key]
        index = len(self.entries)
        self._indices[key] = index
        self.entries.append(b"")
        self.entries[index] = candid_type._encode_type(self)
        return index

    def to_bytes(self) -> bytes:
        return encode_uleb128(len(self.entries)) + b"".join(self.entries)


# Wire table entries as read from a message:
#   ("opt", ref) | ("vec", ref) | ("record", [(id, ref), ...])
#   | ("variant", [(id, ref), ...]) | ("func",) | ("service",)
_WireEntry = tuple[Any, ...]


def _read_type_table(reader: _Reader) -> list[_WireEntry]:
    table: list[_WireEntry] = []
    for _ in range(reader.read_uleb()):
        opcode = reader.read_sleb()
        if opcode == _OPT:
            table.append(("opt", reader.read_sleb()))
        elif opcode == _VEC:
            table.append(("vec", reader.read_sleb()))
        elif opcode in (_RECORD, _VARIANT):
            fields = []
            previous = -1
            for _ in range(reader.read_uleb()):
                field_id = reader.read_uleb()
                if field_id <= previous:
                    raise DecodeError("Field ids in type table are not sorted")
                previous = field_id
                fields.append((field_id, reader.read_sleb()))
            table.append(("record" if opcode == _RECORD else "variant", fields))
        elif opcode == _FUNC:
            for _ in range(reader.read_uleb()):
                reader.read_sleb()
            for _ in range(reader.read_uleb()):
                reader.read_sleb()
            for _ in range(reader.read_uleb()):
                reader.read_byte()
            table.append(("func",))
        elif opcode == _SERVICE:
            for _ in range(reader.read_uleb()):
                reader.read(reader.read_uleb())
                reader.read_sleb()
            table.append(("service",))
        else:
            raise DecodeError(f"Unknown type table opcode {opcode}")
    return table


def _check_ref(ref: int, table: Sequence[_WireEntry]) -> None:
    if ref >= 0:
        if ref >= len(table):
            raise DecodeError(f"Type reference {ref} out of range")
    elif ref not in _PRIMITIVE_NAMES:
        raise DecodeError(f"Unknown primitive type {ref}")


def _resolve(ref: int, table: Sequence[_WireEntry]) -> int | _WireEntry:
    _check_ref(ref, table)
    return table[ref] if ref >= 0 else ref


def _describe(wire: int | _WireEntry) -> str:
    if isinstance(wire, int):
        return _PRIMITIVE_NAMES[wire]
    return wire[0]


# -----------------------------------------------------------------------------
# Generic value reader (driven by the sender's types)
# -----------------------------------------------------------------------------


def _is_zero_sized(
    ref: int, table: Sequence[_WireEntry], seen: frozenset[int] = frozenset()
) -> bool:
    """True when values of wire type ``ref`` occupy no bytes."""
    if ref < 0:
        return ref in (_NULL, _RESERVED)
    if ref in seen:
        return True
    if len(seen) >= MAX_DECODE_DEPTH:
        return False
    wire = table[ref]
    if wire[0] != "record":
        return False
    return all(_is_zero_sized(field_ref, table, seen | {ref}) for _, field_ref in wire[1])


def _read_value(
    reader: _Reader, ref: int, table: Sequence[_WireEntry], depth: int = 0
) -> Any:
    wire = _resolve(ref, table)
    if isinstance(wire, int):
        return _read_primitive(reader, wire)

    if depth >= MAX_DECODE_DEPTH:
        raise DecodeError(f"Candid value nested deeper than {MAX_DECODE_DEPTH} levels")
    depth += 1

    kind = wire[0]
    if kind == "opt":
        flag = reader.read_byte()
        if flag == 0:
            return []
        if flag == 1:
            return [_read_value(reader, wire[1], table, depth)]
        raise DecodeError(f"Invalid opt flag {flag}")
    if kind == "vec":
        length = reader.read_uleb()
        if _resolve(wire[1], table) == _NAT8:
            return reader.read(length)
        if _is_zero_sized(wire[1], table):
            if length > MAX_ZERO_SIZED_VEC_LENGTH:
                raise DecodeError(
                    f"Vector of {length} zero-sized elements exceeds "
                    f"{MAX_ZERO_SIZED_VEC_LENGTH}"
                )
        elif length > reader.remaining:
            raise DecodeError(
                f"Vector length {length} exceeds the {reader.remaining} remaining bytes"
            )
        return [_read_value(reader, wire[1], table, depth) for _ in range(length)]
    if kind == "record":
        return {
            field_id: _read_value(reader, field_ref, table, depth)
            for field_id, field_ref in wire[1]
        }
    if kind == "variant":
        index = reader.read_uleb()
        if index >= len(wire[1]):
            raise DecodeError(f"Variant index {index} out of range")
        field_id, field_ref = wire[1][index]
        return (field_id, _read_value(reader, field_ref, table, depth))
    raise DecodeError(f"Cannot decode values of type {kind}")


def _read_primitive(reader: _Reader, opcode: int) -> Any:
    if opcode in (_NULL, _RESERVED):
        return None
    if opcode == _BOOL:
        flag = reader.read_byte()
        if flag not in (0, 1):
            raise DecodeError(f"Invalid bool value {flag}")
        return flag == 1
    if opcode == _NAT:
        return reader.read_uleb()
    if opcode == _INT:
        return reader.read_sleb()
    if opcode in _FIXED:
        fmt = _FIXED[opcode]
        return struct.unpack(fmt, reader.read(struct.calcsize(fmt)))[0]
    if opcode == _FLOAT32:
        return struct.unpack("<f", reader.read(4))[0]
    if opcode == _FLOAT64:
        return struct.unpack("<d", reader.read(8))[0]
    if opcode == _TEXT:
        raw = reader.read(reader.read_uleb())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecodeError("Invalid utf-8 in text value") from err
    if opcode == _PRINCIPAL:
        if reader.read_byte() != 1:
            raise DecodeError("Opaque principal references are not supported")
        return Principal(reader.read(reader.read_uleb()))
    raise DecodeError(f"Cannot decode values of type {_PRIMITIVE_NAMES[opcode]}")


# -----------------------------------------------------------------------------
# Types
# -----------------------------------------------------------------------------


class CandidType:
    """Base class of all type descriptions."""

    opcode: int
    name: str

    def _encode_type(self, table: _TypeTable) -> bytes:
        raise NotImplementedError

    def encode_value(self, value: Any) -> bytes:
        raise NotImplementedError

    def coerce(self, value: Any, ref: int, table: Sequence[_WireEntry]) -> Any:
        """Map a value read with wire type ``ref`` onto this type."""
        wire = _resolve(ref, table)
        if wire != self.opcode:
            raise DecodeError(
                f"Type mismatch: expected {self.name}, received {_describe(wire)}"
            )
        return value

    def __repr__(self) -> str:
        return self.name


class _PrimitiveType(CandidType):
    def __init__(self, opcode: int) -> None:
        self.opcode = opcode
        self.name = _PRIMITIVE_NAMES[opcode]


class _NullType(_PrimitiveType):
    def __init__(self) -> None:
        super().__init__(_NULL)

    def encode_value(self, value: Any) -> bytes:
        if value is not None:
            raise EncodeError(f"Expected None for null, got {value!r}")
        return b""


class _ReservedType(_PrimitiveType):
    def __init__(self) -> None:
        super().__init__(_RESERVED)

    def encode_value(self, value: Any) -> bytes:
        return b""

    def coerce(self, value: Any, ref: int, table: Sequence[_WireEntry]) -> Any:
        return None


class _EmptyType(_PrimitiveType):
    def __init__(self) -> None:
        super().__init__(_EMPTY)

    def encode_value(self, value: Any) -> bytes:
        raise EncodeError("Values of type empty cannot be encoded")


class _BoolType(_PrimitiveType):
    def __init__(self) -> None:
        super().__init__(_BOOL)

    def encode_value(self, value: Any) -> bytes:
        if not isinstance(value, bool):
            raise EncodeError(f"Expected bool, got {value!r}")
        return b"\x01" if value else b"\x00"


def _require_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodeError(f"Expected integer for {name}, got {value!r}")
    return value


class _NatType(_PrimitiveType):
    def __init__(self) -> None:
        super().__init__(_NAT)

    def encode_value(self, value: Any) -> bytes:
        return encode_uleb128(_require_int(value, self.name))


class _IntType(_PrimitiveType):
    def __init__(self) -> None:
        super().__init__(_INT)

    def encode_value(self, value: Any) -> bytes:
        return encode_sleb128(_require_int(value, self.name))

    def coerce(self, value: Any, ref: int, table: Sequence[_WireEntry]) -> Any:
        # nat is a subtype of int
        if _resolve(ref, table) == _NAT:
            return value
        return super().coerce(value, ref, table)


class _FixedIntType(_PrimitiveType):
    def encode_value(self, value: Any) -> bytes:
        fmt = _FIXED[self.opcode]
        try:
            return struct.pack(fmt, _require_int(value, self.name))
        except struct.error as err:
            raise EncodeError(f"{value} out of range for {self.name}") from err


class _FloatType(_PrimitiveType):
    def encode_value(self, value: Any) -> bytes:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EncodeError(f"Expected number for {self.name}, got {value!r}")
        fmt = "<f" if self.opcode == _FLOAT32 else "<d"
        return struct.pack(fmt, value)


class _TextType(_PrimitiveType):
    def __init__(self) -> None:
        super().__init__(_TEXT)

    def encode_value(self, value: Any) -> bytes:
        if not isinstance(value, str):
            raise EncodeError(f"Expected str for text, got {value!r}")
        raw = value.encode("utf-8")
        return encode_uleb128(len(raw)) + raw


class _PrincipalType(_PrimitiveType):
    def __init__(self) -> None:
        super().__init__(_PRINCIPAL)

    def encode_value(self, value: Any) -> bytes:
        if isinstance(value, str):
            value = Principal.from_text(value)
        if not isinstance(value, Principal):
            raise EncodeError(f"Expected Principal, got {value!r}")
        return b"\x01" + encode_uleb128(len(value.raw)) + value.raw


class Opt(CandidType):
    """Optional value, represented as ``[]`` or ``[value]``."""

    opcode = _OPT

    def __init__(self, inner: CandidType) -> None:
        self.inner = inner
        self.name = f"opt {inner.name}"

    def _encode_type(self, table: _TypeTable) -> bytes:
        return encode_sleb128(_OPT) + encode_sleb128(table.register(self.inner))

    def encode_value(self, value: Any) -> bytes:
        if not isinstance(value, (list, tuple)) or len(value) > 1:
            raise EncodeError(
                f"Optional values must be a sequence of zero or one element, got {value!r}"
            )
        if not value:
            return b"\x00"
        return b"\x01" + self.inner.encode_value(value[0])

    def coerce(self, value: Any, ref: int, table: Sequence[_WireEntry]) -> Any:
        wire = _resolve(ref, table)
        if wire in (_NULL, _RESERVED):
            return []
        if isinstance(wire, tuple) and wire[0] == "opt":
            if not value:
                return []
            try:
                return [self.inner.coerce(value[0], wire[1], table)]
            except DecodeError:
                return []
        try:
            return [self.inner.coerce(value, ref, table)]
        except DecodeError:
            return []


class Vec(CandidType):
    """Sequence of values; ``Vec(Nat8)`` maps to ``bytes``."""

    opcode = _VEC

    def __init__(self, inner: CandidType) -> None:
        self.inner = inner
        self.name = f"vec {inner.name}"

    @property
    def is_blob(self) -> bool:
        return self.inner.opcode == _NAT8

    def _encode_type(self, table: _TypeTable) -> bytes:
        return encode_sleb128(_VEC) + encode_sleb128(table.register(self.inner))

    def encode_value(self, value: Any) -> bytes:
        if self.is_blob and isinstance(value, (bytes, bytearray, memoryview)):
            raw = bytes(value)
            return encode_uleb128(len(raw)) + raw
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
            raise EncodeError(f"Expected a sequence for {self.name}, got {value!r}")
        return encode_uleb128(len(value)) + b"".join(
            self.inner.encode_value(item) for item in value
        )

    def coerce(self, value: Any, ref: int, table: Sequence[_WireEntry]) -> Any:
        wire = _resolve(ref, table)
        if not isinstance(wire, tuple) or wire[0] != "vec":
            raise DecodeError(
                f"Type mismatch: expected {self.name}, received {_describe(wire)}"
            )
        if isinstance(value, bytes):
            if self.is_blob:
                return value
            return [self.inner.coerce(item, wire[1], table) for item in value]
        items = [self.inner.coerce(item, wire[1], table) for item in value]
        return bytes(items) if self.is_blob else items


class Record(CandidType):
    """Record with named (or numbered) fields, represented as a ``dict``."""

    opcode = _RECORD

    def __init__(self, fields: Mapping[str | int, CandidType]) -> None:
        self.fields = dict(fields)
        self._ordered = sorted(
            ((idl_hash(label), label, field_type) for label, field_type in self.fields.items()),
            key=lambda item: item[0],
        )
        ids = [field_id for field_id, _, _ in self._ordered]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Record field labels collide: {list(self.fields)}")
        inner = "; ".join(f"{label}: {t.name}" for label, t in self.fields.items())
        self.name = f"record {{{inner}}}"

    def _encode_type(self, table: _TypeTable) -> bytes:
        out = encode_sleb128(_RECORD) + encode_uleb128(len(self._ordered))
        for field_id, _, field_type in self._ordered:
            out += encode_uleb128(field_id) + encode_sleb128(table.register(field_type))
        return out

    def encode_value(self, value: Any) -> bytes:
        if not isinstance(value, Mapping):
            raise EncodeError(f"Expected a mapping for {self.name}, got {value!r}")
        out = b""
        for _, label, field_type in self._ordered:
            if label in value:
                out += field_type.encode_value(value[label])
            elif isinstance(_unwrap(field_type), Opt):
                out += b"\x00"
            else:
                raise EncodeError(f"Record field {label!r} is missing")
        return out

    def coerce(self, value: Any, ref: int, table: Sequence[_WireEntry]) -> Any:
        wire = _resolve(ref, table)
        if not isinstance(wire, tuple) or wire[0] != "record":
            raise DecodeError(
                f"Type mismatch: expected record, received {_describe(wire)}"
            )
        wire_refs = dict(wire[1])
        result: dict[str | int, Any] = {}
        for field_id, label, field_type in self._ordered:
            if field_id in wire_refs:
                result[label] = field_type.coerce(value[field_id], wire_refs[field_id], table)
            elif isinstance(_unwrap(field_type), Opt):
                result[label] = []
            elif isinstance(_unwrap(field_type), (_NullType, _ReservedType)):
                result[label] = None
            else:
                raise DecodeError(f"Record field {label!r} is missing")
        return result


class Variant(CandidType):
    """Tagged union, represented as a single-entry ``dict``."""

    opcode = _VARIANT

    def __init__(self, fields: Mapping[str | int, CandidType]) -> None:
        self.fields = dict(fields)
        self._ordered = sorted(
            ((idl_hash(label), label, field_type) for label, field_type in self.fields.items()),
            key=lambda item: item[0],
        )
        self._by_id = {field_id: (label, t) for field_id, label, t in self._ordered}
        inner = "; ".join(f"{label}: {t.name}" for label, t in self.fields.items())
        self.name = f"variant {{{inner}}}"

    def _encode_type(self, table: _TypeTable) -> bytes:
        out = encode_sleb128(_VARIANT) + encode_uleb128(len(self._ordered))
        for field_id, _, field_type in self._ordered:
            out += encode_uleb128(field_id) + encode_sleb128(table.register(field_type))
        return out

    def encode_value(self, value: Any) -> bytes:
        if not isinstance(value, Mapping) or len(value) != 1:
            raise EncodeError(f"Variant value must have exactly one tag, got {value!r}")
        label, inner = next(iter(value.items()))
        for index, (_, known, field_type) in enumerate(self._ordered):
            if known == label:
                return encode_uleb128(index) + field_type.encode_value(inner)
        raise EncodeError(f"Unknown variant tag {label!r} for {self.name}")

    def coerce(self, value: Any, ref: int, table: Sequence[_WireEntry]) -> Any:
        wire = _resolve(ref, table)
        if not isinstance(wire, tuple) or wire[0] != "variant":
            raise DecodeError(
                f"Type mismatch: expected variant, received {_describe(wire)}"
            )
        field_id, inner = value
        if field_id not in self._by_id:
            raise DecodeError(f"Unknown variant tag id {field_id} for {self.name}")
        label, field_type = self._by_id[field_id]
        return {label: field_type.coerce(inner, dict(wire[1])[field_id], table)}


class Rec(CandidType):
    """Forward declaration for recursive types.

    Declare the placeholder first, use it inside its own definition, then
    ``fill`` it:

        tree = Rec()
        node = Record({"left": tree, "right": tree})
        tree.fill(Variant({"leaf": Nat, "node": node}))
    """

    def __init__(self) -> None:
        self._inner: CandidType | None = None

    def fill(self, inner: CandidType) -> None:
        if self._inner is not None:
            raise ValueError("Recursive type is already defined")
        if isinstance(inner, Rec):
            raise ValueError("A recursive type must be filled with a constructed type")
        self._inner = inner

    @property
    def inner(self) -> CandidType:
        if self._inner is None:
            raise ValueError("Recursive type used before fill()")
        return self._inner

    @property
    def opcode(self) -> int:  # type: ignore[override]
        return self.inner.opcode

    @property
    def name(self) -> str:  # type: ignore[override]
        # Before fill() only the placeholder name exists; containers built
        # around it keep that name.
        return "rec" if self._inner is None else self._inner.name

    def _encode_type(self, table: _TypeTable) -> bytes:
        return self.inner._encode_type(table)

    def encode_value(self, value: Any) -> bytes:
        return self.inner.encode_value(value)

    def coerce(self, value: Any, ref: int, table: Sequence[_WireEntry]) -> Any:
        return self.inner.coerce(value, ref, table)


def _unwrap(candid_type: CandidType) -> CandidType:
    return candid_type.inner if isinstance(candid_type, Rec) else candid_type


Null = _NullType()
Reserved = _ReservedType()
Empty = _EmptyType()
Bool = _BoolType()
Nat = _NatType()
Int = _IntType()
Nat8 = _FixedIntType(_NAT8)
Nat16 = _FixedIntType(_NAT16)
Nat32 = _FixedIntType(_NAT32)
Nat64 = _FixedIntType(_NAT64)
Int8 = _FixedIntType(_INT8)
Int16 = _FixedIntType(_INT16)
Int32 = _FixedIntType(_INT32)
Int64 = _FixedIntType(_INT64)
Float32 = _FloatType(_FLOAT32)
Float64 = _FloatType(_FLOAT64)
Text = _TextType()
PrincipalId = _PrincipalType()
Blob = Vec(Nat8)


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------


def encode(types: Sequence[CandidType], values: Sequence[Any]) -> bytes:
    """Encode argument ``values`` described by ``types``.

    Raises:
        EncodeError: If a value does not fit its type.
    """
    if len(types) != len(values):
        raise EncodeError(f"Expected {len(types)} arguments, got {len(values)}")

    table = _TypeTable()
    refs = [table.register(candid_type) for candid_type in types]
    body = b"".join(t.encode_value(v) for t, v in zip(types, values, strict=True))
    return (
        MAGIC
        + table.to_bytes()
        + encode_uleb128(len(refs))
        + b"".join(encode_sleb128(ref) for ref in refs)
        + body
    )


def decode(types: Sequence[CandidType], data: bytes) -> list[Any]:
    """Decode a message into values of the expected ``types``.

    Extra trailing arguments are ignored; missing optional arguments decode as
    ``[]``.

    Raises:
        DecodeError: If the message is malformed or does not match ``types``.
    """
    if not data.startswith(MAGIC):
        raise DecodeError("Candid message does not start with DIDL")

    reader = _Reader(data[len(MAGIC) :])
    table = _read_type_table(reader)
    for entry in table:
        for ref in _entry_refs(entry):
            _check_ref(ref, table)

    arg_refs = [reader.read_sleb() for _ in range(reader.read_uleb())]
    raw_values = [_read_value(reader, ref, table) for ref in arg_refs]
    if reader.remaining:
        raise DecodeError(f"{reader.remaining} trailing bytes after candid message")

    result = []
    for index, candid_type in enumerate(types):
        if index < len(arg_refs):
            result.append(candid_type.coerce(raw_values[index], arg_refs[index], table))
        elif isinstance(_unwrap(candid_type), Opt):
            result.append([])
        else:
            raise DecodeError(f"Missing argument {index} of type {candid_type.name}")
    return result


def _entry_refs(entry: _WireEntry) -> list[int]:
    if entry[0] in ("opt", "vec"):
        return [entry[1]]
    if entry[0] in ("record", "variant"):
        return [ref for _, ref in entry[1]]
    return []
