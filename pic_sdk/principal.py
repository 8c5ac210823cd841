"""Principal identifiers for canisters, subnets and callers."""

from __future__ import annotations

import base64
import zlib
from dataclasses import dataclass
from functools import total_ordering

from .errors import PrincipalError

MAX_PRINCIPAL_LENGTH = 29

_ANONYMOUS_SUFFIX = 0x04
_CHECKSUM_LENGTH = 4


@total_ordering
@dataclass(frozen=True, slots=True)
class Principal:
    """Opaque binary identifier with a canonical, checksummed text form.

    Attributes:
        raw: Identifier bytes (at most 29).
    """

    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, bytes):
            object.__setattr__(self, "raw", bytes(self.raw))
        if len(self.raw) > MAX_PRINCIPAL_LENGTH:
            raise PrincipalError(
                f"Principal is {len(self.raw)} bytes, at most {MAX_PRINCIPAL_LENGTH} allowed"
            )

    @classmethod
    def anonymous(cls) -> Principal:
        """Return the anonymous caller identity."""
        return cls(bytes([_ANONYMOUS_SUFFIX]))

    @classmethod
    def management_canister(cls) -> Principal:
        """Return the management canister id (``aaaaa-aa``)."""
        return cls(b"")

    @classmethod
    def from_text(cls, text: str) -> Principal:
        """Parse the canonical text form, verifying its checksum.

        Raises:
            PrincipalError: If the text is not a well-formed principal.
        """
        compact = text.replace("-", "").lower()
        padding = "=" * (-len(compact) % 8)
        try:
            decoded = base64.b32decode(compact.upper() + padding)
        except ValueError as err:
            raise PrincipalError(f"Invalid principal text: {text!r}") from err

        if len(decoded) < _CHECKSUM_LENGTH:
            raise PrincipalError(f"Invalid principal text: {text!r}")

        principal = cls(decoded[_CHECKSUM_LENGTH:])
        if principal.to_text() != text:
            raise PrincipalError(f"Principal checksum mismatch: {text!r}")
        return principal

    @classmethod
    def from_hex(cls, value: str) -> Principal:
        """Build a principal from a hex string."""
        try:
            return cls(bytes.fromhex(value))
        except ValueError as err:
            raise PrincipalError(f"Invalid principal hex: {value!r}") from err

    def to_text(self) -> str:
        """Return the canonical text form."""
        checksum = zlib.crc32(self.raw).to_bytes(_CHECKSUM_LENGTH, "big")
        encoded = base64.b32encode(checksum + self.raw).decode("ascii")
        encoded = encoded.rstrip("=").lower()
        return "-".join(encoded[i : i + 5] for i in range(0, len(encoded), 5))

    def to_hex(self) -> str:
        return self.raw.hex().upper()

    def is_anonymous(self) -> bool:
        return self.raw == bytes([_ANONYMOUS_SUFFIX])

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Principal):
            return NotImplemented
        return self.raw < other.raw

    def __str__(self) -> str:
        return self.to_text()

    def __repr__(self) -> str:
        return f"Principal({self.to_text()!r})"
