from __future__ import annotations

import io
import struct
from datetime import datetime, timedelta, timezone

import pytest

from zipkit.constants import COMP_AES, COMP_DEFLATE
from zipkit.errors import StructuralCorruption, UnsupportedMethod
from zipkit.structures import (
    build_aes_extra_field,
    build_zip64_extra_field,
    iter_extra_fields,
    parse_aes_extra_field,
    parse_eocd,
    parse_zip64_extra_field,
)
from zipkit.utils import (
    dos_datetime_to_timestamp,
    normalize_name,
    read_exact,
    timestamp_to_dos_datetime,
)


def _dos_round_trip(dt: datetime) -> datetime:
    return dos_datetime_to_timestamp(*timestamp_to_dos_datetime(dt))


def test_dos_datetime_truncates_to_two_seconds() -> None:
    assert _dos_round_trip(datetime(2020, 6, 1, 12, 30, 59)) == datetime(2020, 6, 1, 12, 30, 58)


def test_dos_datetime_clamps_range() -> None:
    assert _dos_round_trip(datetime(1970, 1, 1)) == datetime(1980, 1, 1)
    assert _dos_round_trip(datetime(2200, 1, 1)) == datetime(2107, 12, 31, 23, 59, 58)


def test_dos_datetime_aware_values_use_local_time() -> None:
    aware = datetime(2021, 3, 4, 5, 6, 8, tzinfo=timezone(timedelta(hours=2)))
    local = aware.astimezone().replace(tzinfo=None)
    assert timestamp_to_dos_datetime(aware) == timestamp_to_dos_datetime(local)


def test_invalid_dos_fields_fall_back_to_epoch() -> None:
    assert dos_datetime_to_timestamp(0, 0) == datetime(1980, 1, 1)


def test_normalize_name() -> None:
    assert normalize_name("dir\\sub\\file.txt") == "dir/sub/file.txt"
    assert normalize_name("plain.txt") == "plain.txt"


def test_read_past_end() -> None:
    with pytest.raises(StructuralCorruption, match="Unexpected end of data"):
        read_exact(io.BytesIO(b"\x01\x02"), 4)


def test_iter_extra_fields_ignores_truncated_tail() -> None:
    extra = struct.pack("<HH", 0x1234, 2) + b"ab" + struct.pack("<HH", 0x5678, 10) + b"abc"
    assert list(iter_extra_fields(extra)) == [(0x1234, b"ab")]


def test_zip64_extra_only_fills_saturated_fields() -> None:
    extra = build_zip64_extra_field(5_000_000_000, 6_000_000_000)

    parsed = parse_zip64_extra_field(extra, 0xFFFFFFFF, 0xFFFFFFFF, 100)
    assert parsed.original_size == 5_000_000_000
    assert parsed.compressed_size == 6_000_000_000
    assert parsed.local_header_offset is None

    assert parse_zip64_extra_field(b"", 1, 1) is None


def test_aes_extra_field() -> None:
    extra = build_aes_extra_field(2, 3, COMP_DEFLATE)
    assert extra[:4] == struct.pack("<HH", 0x9901, 7)

    parsed = parse_aes_extra_field(extra, COMP_AES)
    assert (parsed.version, parsed.vendor, parsed.strength, parsed.compression_method) == (2, b"AE", 3, COMP_DEFLATE)


def test_aes_extra_field_requires_method_99() -> None:
    with pytest.raises(StructuralCorruption):
        parse_aes_extra_field(build_aes_extra_field(2, 3, COMP_DEFLATE), COMP_DEFLATE)


def test_aes_extra_field_unknown_strength() -> None:
    with pytest.raises(UnsupportedMethod):
        parse_aes_extra_field(build_aes_extra_field(2, 4, COMP_DEFLATE), COMP_AES)


def test_parse_eocd() -> None:
    record = struct.pack("<IHHHHIIH", 0x06054B50, 0, 0, 3, 3, 150, 1000, 2) + b"hi"
    eocd = parse_eocd(io.BytesIO(record))
    assert (eocd.cd_records_total, eocd.cd_size, eocd.cd_offset, eocd.comment) == (3, 150, 1000, b"hi")

    with pytest.raises(StructuralCorruption, match="Invalid EOCD signature"):
        parse_eocd(io.BytesIO(b"\x00" * 22))
