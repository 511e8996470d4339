from __future__ import annotations

import json

import pytest

from zipkit import read_entries, read_metadata
from zipkit.__main__ import main


@pytest.fixture
def source_tree(tmp_path):
    src = tmp_path / "project"
    (src / "sub").mkdir(parents=True)
    (src / "a.txt").write_text("alpha\n")
    (src / "sub" / "b.txt").write_text("beta\n")
    single = tmp_path / "notes.md"
    single.write_text("# notes\n")
    return src, single


def test_compress_and_decompress(tmp_path, source_tree, capsys) -> None:
    src, single = source_tree
    archive = tmp_path / "out" / "archive.zip"

    main(["compress", str(src), str(single), "-o", str(archive), "--level", "9"])
    assert "3 file(s)" in capsys.readouterr().out

    names = [name for name, _ in read_entries(archive.read_bytes())]
    assert names == ["project/a.txt", "project/sub/b.txt", "notes.md"]

    dest = tmp_path / "extracted"
    main(["decompress", str(archive), "-d", str(dest)])
    assert (dest / "project" / "sub" / "b.txt").read_text() == "beta\n"
    assert (dest / "notes.md").read_text() == "# notes\n"


def test_compress_refuses_existing_output(tmp_path, source_tree, capsys) -> None:
    src, _ = source_tree
    archive = tmp_path / "archive.zip"
    archive.write_bytes(b"existing")

    with pytest.raises(SystemExit) as excinfo:
        main(["compress", str(src), "-o", str(archive)])
    assert excinfo.value.code == 1
    assert "already exists" in capsys.readouterr().err

    main(["compress", str(src), "-o", str(archive), "--overwrite"])
    assert read_entries(archive.read_bytes())


def test_encrypted_round_trip(tmp_path, source_tree, capsys) -> None:
    _, single = source_tree
    archive = tmp_path / "secret.zip"
    main(["compress", str(single), "-o", str(archive), "--password", "pw", "--strength", "1"])

    meta = read_metadata(archive.read_bytes())
    assert meta.entries[0].encrypted
    assert meta.entries[0].encryption_strength == 1

    dest = tmp_path / "out"
    with pytest.raises(SystemExit) as excinfo:
        main(["decompress", str(archive), "-d", str(dest)])
    assert excinfo.value.code == 1
    assert capsys.readouterr().err.startswith("zipkit: Entry is encrypted")

    main(["decompress", str(archive), "-d", str(dest), "--password", "pw"])
    assert (dest / "notes.md").read_text() == "# notes\n"


def test_decompress_skips_existing_files(tmp_path, source_tree, capsys) -> None:
    _, single = source_tree
    archive = tmp_path / "a.zip"
    main(["compress", str(single), "-o", str(archive)])

    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "notes.md").write_text("keep me")

    main(["decompress", str(archive), "-d", str(dest)])
    assert (dest / "notes.md").read_text() == "keep me"
    assert "skipping existing file" in capsys.readouterr().err

    main(["decompress", str(archive), "-d", str(dest), "--overwrite"])
    assert (dest / "notes.md").read_text() == "# notes\n"


def test_decompress_without_creating_directories(tmp_path, source_tree) -> None:
    _, single = source_tree
    archive = tmp_path / "a.zip"
    main(["compress", str(single), "-o", str(archive)])

    with pytest.raises(SystemExit):
        main(["decompress", str(archive), "-d", str(tmp_path / "missing"), "--no-create-directories"])
    assert not (tmp_path / "missing").exists()


def test_decompress_rejects_traversal(tmp_path, capsys) -> None:
    from zipkit import write_archive

    archive = tmp_path / "evil.zip"
    archive.write_bytes(write_archive([("../escaped.txt", "gotcha")]))

    with pytest.raises(SystemExit) as excinfo:
        main(["decompress", str(archive), "-d", str(tmp_path / "dest")])
    assert excinfo.value.code == 1
    assert "escapes the output directory" in capsys.readouterr().err
    assert not (tmp_path / "escaped.txt").exists()


def test_info_json(tmp_path, source_tree, capsys) -> None:
    src, _ = source_tree
    archive = tmp_path / "a.zip"
    main(["compress", str(src), "-o", str(archive), "--comment", "hello"])
    capsys.readouterr()

    main(["info", str(archive), "--json"])
    info = json.loads(capsys.readouterr().out)

    assert [entry["name"] for entry in info["entries"]] == ["project/a.txt", "project/sub/b.txt"]
    assert info["totalSize"] == len("alpha\n") + len("beta\n")
    assert info["comment"] == "hello"
    assert info["entries"][0]["compressionMethod"] == "deflate"


def test_info_table_list_test_and_dump(tmp_path, source_tree, capsys) -> None:
    src, _ = source_tree
    archive = tmp_path / "a.zip"
    main(["compress", str(src), "-o", str(archive)])
    capsys.readouterr()

    main(["info", str(archive)])
    out = capsys.readouterr().out
    assert "project/a.txt" in out
    assert "saved, 2 entries" in out

    main(["list", str(archive)])
    assert capsys.readouterr().out.splitlines() == ["project/a.txt", "project/sub/b.txt"]

    main(["test", str(archive)])
    assert capsys.readouterr().out.strip().endswith(": OK")

    main(["dump", str(archive)])
    assert "Local File Headers: 2" in capsys.readouterr().out


def test_test_command_reports_failures(tmp_path, source_tree, capsys) -> None:
    _, single = source_tree
    archive = tmp_path / "a.zip"
    main(["compress", str(single), "-o", str(archive), "--password", "pw", "--zip-crypto"])
    capsys.readouterr()

    with pytest.raises(SystemExit) as excinfo:
        main(["test", str(archive)])
    assert excinfo.value.code == 1
    assert "FAIL" in capsys.readouterr().out


def test_invalid_level_is_reported(tmp_path, source_tree, capsys) -> None:
    _, single = source_tree
    with pytest.raises(SystemExit) as excinfo:
        main(["compress", str(single), "-o", str(tmp_path / "a.zip"), "--level", "12"])
    assert excinfo.value.code == 1
    assert "Invalid compression level" in capsys.readouterr().err


def test_missing_archive(tmp_path, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["list", str(tmp_path / "nope.zip")])
    assert excinfo.value.code == 1
    assert "Archive not found" in capsys.readouterr().err


def test_usage_error_exit_code() -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["compress"])
    assert excinfo.value.code == 2
