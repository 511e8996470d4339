from __future__ import annotations

import io
import struct
import zipfile
from datetime import datetime

import pytest

from zipkit import (
    ArchiveConfiguration,
    ChecksumMismatch,
    CompressionMethod,
    ContentItem,
    EncodingFailure,
    InvalidConfiguration,
    InvalidPassword,
    PasswordRequired,
    StructuralCorruption,
    UnsupportedMethod,
    ZipReader,
    read_entries,
    read_metadata,
    write_archive,
)


def _expected(items: list[ContentItem]) -> list[tuple[str, bytes]]:
    out = []
    for item in items:
        content = item.content
        out.append((item.name, content.encode("utf-8") if isinstance(content, str) else bytes(content)))
    return out


@pytest.mark.parametrize("level", range(10))
def test_round_trip_every_level(sample_items, level) -> None:
    buf = write_archive(sample_items, ArchiveConfiguration(level=level))
    assert read_entries(buf) == _expected(sample_items)


@pytest.mark.parametrize("strength", [1, 2, 3])
def test_round_trip_aes(sample_items, strength) -> None:
    config = ArchiveConfiguration(password="s3cret", encryption_strength=strength)
    buf = write_archive(sample_items, config)

    assert read_entries(buf, password="s3cret") == _expected(sample_items)

    meta = read_metadata(buf)
    assert all(entry.encrypted for entry in meta.entries)
    assert {entry.encryption_strength for entry in meta.entries} == {strength}


def test_round_trip_zip_crypto(sample_items) -> None:
    buf = write_archive(sample_items, ArchiveConfiguration(password="pw", zip_crypto=True))
    assert read_entries(buf, password="pw") == _expected(sample_items)

    meta = read_metadata(buf)
    assert all(entry.encrypted for entry in meta.entries)
    assert all(entry.encryption_strength is None for entry in meta.entries)


def test_unicode_password_round_trip() -> None:
    buf = write_archive([("a.txt", "x")], ArchiveConfiguration(password="pässwörd✓"))
    assert read_entries(buf, password="pässwörd✓") == [("a.txt", b"x")]


@pytest.mark.parametrize("zip_crypto", [False, True])
def test_password_gating(zip_crypto) -> None:
    items = [("secret.txt", "top secret " * 10)]
    buf = write_archive(items, ArchiveConfiguration(password="right", zip_crypto=zip_crypto))

    with pytest.raises(PasswordRequired) as excinfo:
        read_entries(buf)
    assert excinfo.value.entry_name == "secret.txt"

    with pytest.raises(InvalidPassword):
        read_entries(buf, password="wrong")

    assert read_entries(buf, password="right") == [("secret.txt", b"top secret " * 10)]


def test_empty_password_means_no_encryption() -> None:
    buf = write_archive([("a.txt", "plain")], ArchiveConfiguration(password=""))
    assert read_entries(buf) == [("a.txt", b"plain")]
    assert not read_metadata(buf).entries[0].encrypted


def test_empty_password_is_treated_as_missing_on_read() -> None:
    buf = write_archive([("a.txt", "plain")], ArchiveConfiguration(password="pw"))
    with pytest.raises(PasswordRequired):
        read_entries(buf, password="")


def test_higher_level_is_not_larger(redundant_content) -> None:
    stored = read_metadata(write_archive([("r.txt", redundant_content)], ArchiveConfiguration(level=0)))
    best = read_metadata(write_archive([("r.txt", redundant_content)], ArchiveConfiguration(level=9)))

    assert best.total_compressed_size <= stored.total_compressed_size
    assert stored.entries[0].compression_method is CompressionMethod.STORE
    assert best.entries[0].compression_method is CompressionMethod.DEFLATE


def test_metadata_totals_match_extracted_sizes(sample_items) -> None:
    buf = write_archive(sample_items)
    meta = read_metadata(buf)
    assert meta.total_uncompressed_size == sum(len(data) for _, data in read_entries(buf))


def test_empty_archive() -> None:
    buf = write_archive([])
    assert len(buf) == 22
    assert read_entries(buf) == []

    meta = read_metadata(buf)
    assert meta.entries == ()
    assert meta.total_uncompressed_size == 0
    assert meta.total_compressed_size == 0
    assert meta.compression_ratio == 0.0


def test_directories_listed_but_not_extracted() -> None:
    items = [
        ContentItem(name="docs", is_directory=True),
        ContentItem(name="docs/a.txt", content="alpha"),
        {"name": "assets/", "isDirectory": True},
    ]
    buf = write_archive(items)

    assert read_entries(buf) == [("docs/a.txt", b"alpha")]

    meta = read_metadata(buf)
    assert [entry.name for entry in meta.entries] == ["docs/", "docs/a.txt", "assets/"]
    assert [entry.is_directory for entry in meta.entries] == [True, False, True]
    assert meta.total_uncompressed_size == 5


def test_directories_are_never_encrypted() -> None:
    items = [ContentItem(name="d/", is_directory=True), ContentItem(name="d/f", content="x")]
    meta = read_metadata(write_archive(items, ArchiveConfiguration(password="pw")))
    assert [entry.encrypted for entry in meta.entries] == [False, True]


def test_single_content_gets_default_name() -> None:
    assert read_entries(write_archive("hello")) == [("file", b"hello")]
    assert read_entries(write_archive(b"\x00\x01")) == [("file", b"\x00\x01")]
    assert read_entries(write_archive(io.BytesIO(b"streamed"))) == [("file", b"streamed")]


def test_accepts_tuples_mappings_and_streams() -> None:
    items = [
        ("a.txt", "text"),
        {"name": "b.bin", "data": bytearray(b"\x01\x02")},
        ContentItem(name="c.txt", content=io.BytesIO(b"from a stream")),
    ]
    assert read_entries(write_archive(items)) == [
        ("a.txt", b"text"),
        ("b.bin", b"\x01\x02"),
        ("c.txt", b"from a stream"),
    ]


def test_duplicate_names_last_wins() -> None:
    buf = write_archive([("a.txt", "first"), ("b.txt", "middle"), ("a.txt", "second")])

    assert read_entries(buf) == [("b.txt", b"middle"), ("a.txt", b"second")]

    meta = read_metadata(buf)
    assert [entry.name for entry in meta.entries] == ["b.txt", "a.txt"]
    assert meta.total_uncompressed_size == len(b"middle") + len(b"second")


def test_truncated_archive_is_rejected(sample_items) -> None:
    buf = write_archive(sample_items, ArchiveConfiguration(level=0))

    with pytest.raises(StructuralCorruption):
        read_entries(buf[:-1])
    with pytest.raises(StructuralCorruption):
        read_metadata(buf[: len(buf) // 2])
    with pytest.raises(StructuralCorruption):
        read_entries(b"")


def test_truncated_comment_is_rejected() -> None:
    buf = write_archive([("a.txt", "x")], ArchiveConfiguration(comment="a comment"))
    with pytest.raises(StructuralCorruption):
        read_entries(buf[:-3])


def test_corrupted_payload_fails_checksum() -> None:
    buf = bytearray(write_archive([("a.txt", "hello world")], ArchiveConfiguration(level=0)))
    data_offset = 30 + len("a.txt")
    buf[data_offset] ^= 0xFF

    with pytest.raises(ChecksumMismatch) as excinfo:
        read_entries(bytes(buf))
    assert excinfo.value.entry_name == "a.txt"


def test_comments_round_trip() -> None:
    items = [ContentItem(name="a.txt", content="x", comment="entry note")]
    meta = read_metadata(write_archive(items, ArchiveConfiguration(comment="archive note ✓")))

    assert meta.comment == "archive note ✓"
    assert meta.entries[0].comment == "entry note"


def test_last_modified_has_two_second_resolution() -> None:
    stamp = datetime(2024, 5, 17, 13, 45, 31)
    items = [ContentItem(name="a.txt", content="x", last_modified=stamp)]
    entry = read_metadata(write_archive(items)).entries[0]
    assert entry.last_modified == datetime(2024, 5, 17, 13, 45, 30)


def test_parallel_compression_matches_sequential(sample_items) -> None:
    stamp = datetime(2023, 1, 2, 3, 4, 6)
    for item in sample_items:
        item.last_modified = stamp

    sequential = write_archive(sample_items, ArchiveConfiguration(level=9))
    parallel = write_archive(sample_items, ArchiveConfiguration(level=9, max_workers=4))
    assert parallel == sequential


@pytest.mark.parametrize(
    "config",
    [
        ArchiveConfiguration(level=10),
        ArchiveConfiguration(level=-1),
        ArchiveConfiguration(level=True),
        ArchiveConfiguration(password="pw", encryption_strength=4),
        ArchiveConfiguration(comment="x" * 70000),
        ArchiveConfiguration(max_workers=0),
    ],
)
def test_invalid_configuration(config) -> None:
    with pytest.raises(InvalidConfiguration):
        write_archive([("a.txt", "x")], config)


def test_strength_ignored_without_password() -> None:
    buf = write_archive([("a.txt", "x")], ArchiveConfiguration(encryption_strength=7))
    assert read_entries(buf) == [("a.txt", b"x")]


def test_encoding_failure_names_entry() -> None:
    with pytest.raises(EncodingFailure) as excinfo:
        write_archive([("good.txt", "x"), ("bad.bin", 12345)])
    assert excinfo.value.entry_name == "bad.bin"
    assert excinfo.value.to_dict() == {
        "kind": "EncodingFailure",
        "message": "Unsupported content type: int",
        "entryName": "bad.bin",
    }


def test_invalid_password_to_dict() -> None:
    buf = write_archive([("a.txt", "x")], ArchiveConfiguration(password="pw"))
    with pytest.raises(InvalidPassword) as excinfo:
        read_entries(buf, password="nope")

    payload = excinfo.value.to_dict()
    assert payload["kind"] == "InvalidPassword"
    assert payload["entryName"] == "a.txt"


def test_eocd_signature_inside_comment_is_skipped() -> None:
    comment = "PK\x05\x06" + "a" * 40
    buf = write_archive([("a.txt", "x")], ArchiveConfiguration(comment=comment))

    assert read_entries(buf) == [("a.txt", b"x")]
    assert read_metadata(buf).comment == comment


def _patch_entry_counts(buf: bytes, on_disk: int, total: int) -> bytes:
    patched = bytearray(buf)
    struct.pack_into("<HH", patched, len(patched) - 22 + 8, on_disk, total)
    return bytes(patched)


def test_entry_count_below_directory_records_is_rejected() -> None:
    buf = _patch_entry_counts(write_archive([("a.txt", "a"), ("b.txt", "b")]), 1, 1)

    with pytest.raises(StructuralCorruption, match="size mismatch"):
        read_metadata(buf)
    with pytest.raises(StructuralCorruption):
        read_entries(buf)


def test_entry_count_above_directory_records_is_rejected() -> None:
    buf = _patch_entry_counts(write_archive([("a.txt", "a"), ("b.txt", "b")]), 3, 3)
    with pytest.raises(StructuralCorruption):
        read_metadata(buf)


def test_disk_and_total_counts_must_agree() -> None:
    buf = _patch_entry_counts(write_archive([("a.txt", "a"), ("b.txt", "b")]), 1, 2)
    with pytest.raises(StructuralCorruption, match="Entry count mismatch"):
        read_metadata(buf)


def _bzip2_archive() -> bytes:
    out = io.BytesIO()
    with zipfile.ZipFile(out, "w", compression=zipfile.ZIP_BZIP2) as zf:
        zf.writestr("a.txt", b"bzip2 content " * 20)
    return out.getvalue()


def test_unsupported_method_fails_extraction() -> None:
    with pytest.raises(UnsupportedMethod) as excinfo:
        read_entries(_bzip2_archive())
    assert excinfo.value.entry_name == "a.txt"


def test_unsupported_method_fails_metadata_but_not_listing() -> None:
    buf = _bzip2_archive()

    with pytest.raises(UnsupportedMethod) as excinfo:
        read_metadata(buf)
    assert excinfo.value.entry_name == "a.txt"

    with ZipReader(buf) as reader:
        assert reader.list() == ["a.txt"]


def test_directory_detected_from_unix_file_type_only() -> None:
    out = io.BytesIO()
    with zipfile.ZipFile(out, "w") as zf:
        directory = zipfile.ZipInfo("plain-dir", date_time=(2020, 1, 1, 0, 0, 0))
        directory.external_attr = 0o040755 << 16
        zf.writestr(directory, b"")
        socket = zipfile.ZipInfo("a.sock", date_time=(2020, 1, 1, 0, 0, 0))
        socket.external_attr = 0o140755 << 16
        zf.writestr(socket, b"")

    meta = read_metadata(out.getvalue())
    assert [(entry.name, entry.is_directory) for entry in meta.entries] == [
        ("plain-dir", True),
        ("a.sock", False),
    ]
    assert read_entries(out.getvalue()) == [("a.sock", b"")]
