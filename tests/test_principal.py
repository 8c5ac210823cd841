"""Tests for principal identifiers."""

from __future__ import annotations

import pytest

from pic_sdk import Principal, PrincipalError

FIRST_CANISTER = bytes.fromhex("00000000000000010101")


class TestPrincipalText:
    """Canonical text form."""

    def test_anonymous(self) -> None:
        """The anonymous principal has a fixed text form."""
        assert Principal.anonymous().to_text() == "2vxsx-fae"
        assert Principal.anonymous().is_anonymous()

    def test_management_canister(self) -> None:
        """The management canister id is the empty principal."""
        assert Principal.management_canister().to_text() == "aaaaa-aa"
        assert Principal.from_text("aaaaa-aa").raw == b""

    def test_canister_id(self) -> None:
        """A canister id renders in dash-separated groups of five."""
        principal = Principal(FIRST_CANISTER)
        assert principal.to_text() == "rrkah-fqaaa-aaaaa-aaaaq-cai"
        assert Principal.from_text("rrkah-fqaaa-aaaaa-aaaaq-cai") == principal

    def test_text_round_trip(self) -> None:
        """Parsing the text form yields the same bytes."""
        for raw in (b"", b"\x04", b"\xff" * 29, bytes(range(10))):
            assert Principal.from_text(Principal(raw).to_text()).raw == raw

    def test_bad_checksum(self) -> None:
        """A text form with a wrong checksum is rejected."""
        with pytest.raises(PrincipalError, match="checksum"):
            Principal.from_text("rrkah-fqaaa-aaaaa-aaaab-cai")

    def test_not_base32(self) -> None:
        """Characters outside the alphabet are rejected."""
        with pytest.raises(PrincipalError):
            Principal.from_text("not a principal!")

    def test_too_long(self) -> None:
        """Identifiers longer than 29 bytes are rejected, not truncated."""
        with pytest.raises(PrincipalError):
            Principal(b"\x00" * 30)

    def test_error_is_value_error(self) -> None:
        """Parse failures can be handled as ValueError."""
        with pytest.raises(ValueError):
            Principal.from_text("x")


class TestPrincipalValue:
    """Equality, ordering and hex form."""

    def test_hex(self) -> None:
        principal = Principal.from_hex("00000000000000010101")
        assert principal.raw == FIRST_CANISTER
        assert principal.to_hex() == "00000000000000010101"

    def test_invalid_hex(self) -> None:
        with pytest.raises(PrincipalError):
            Principal.from_hex("zz")

    def test_ordering(self) -> None:
        """Principals order by their raw bytes."""
        low = Principal(b"\x00\x01")
        high = Principal(b"\x00\x02")
        assert low < high
        assert high >= low
        assert sorted([high, low]) == [low, high]

    def test_hashable(self) -> None:
        assert {Principal(b"\x01"), Principal(b"\x01")} == {Principal(b"\x01")}

    def test_str(self) -> None:
        assert str(Principal.anonymous()) == "2vxsx-fae"
