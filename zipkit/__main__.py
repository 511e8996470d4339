"""
Copyright 2025 DNAi inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

from __future__ import annotations

"""
Command-line interface for zipkit (``zipkit``).

Supported commands (via ``python -m zipkit``):

- ``compress``   : Build an archive from files and directories
- ``decompress`` : Extract every file of an archive into a directory
- ``info``       : Show entries, totals and compression ratio
- ``list``       : List entry names
- ``test``       : Check that every entry extracts cleanly
- ``dump``       : Show the record layout of an archive

Example usages:

    # Create archive.zip from ./data, encrypted with AES-256
    python -m zipkit compress data -o archive.zip --password secret

    # Extract everything into ./output
    python -m zipkit decompress archive.zip -d output --password secret

    # Show metadata as JSON
    python -m zipkit info archive.zip --json

Extraction rejects entry names that would escape the output directory.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from . import __version__
from .archive import read_entries, read_metadata, write_archive
from .debug import dump_structure, verify_archive
from .errors import ZipError
from .models import ArchiveConfiguration, ArchiveMetadata, ContentItem
from .reader import ZipReader

logger = logging.getLogger("zipkit.cli")


def _print_error(message: str, exit_code: int = 1) -> None:
    """Print an error message to stderr and exit with the given code."""
    sys.stderr.write(f"zipkit: {message}\n")
    sys.exit(exit_code)


def _read_archive_file(archive: Path) -> bytes:
    try:
        return archive.read_bytes()
    except FileNotFoundError:
        _print_error(f"Archive not found: {archive}")
    except OSError as e:
        _print_error(f"Cannot read {archive}: {e}")


def _iter_files_for_compress(sources: Iterable[Path]) -> List[tuple[str, Path]]:
    """
    Return (name_in_zip, source_path) pairs for all files under *sources*.

    - A file is stored under its base name.
    - A directory is walked recursively and its files are stored under
      ``<directory base name>/<relative path>``.
    """
    results: List[tuple[str, Path]] = []

    for src in sources:
        if not src.exists():
            _print_error(f"Input path not found: {src}")
        if src.is_dir():
            base = src.resolve()
            for root, dirs, files in os.walk(base):
                dirs.sort()
                root_path = Path(root)
                for filename in sorted(files):
                    file_path = root_path / filename
                    rel = Path(base.name) / file_path.relative_to(base)
                    results.append((rel.as_posix(), file_path))
        else:
            results.append((src.name, src))

    return results


def _safe_extract_path(output_dir: Path, name: str) -> Path:
    """Resolve *name* under *output_dir*, refusing absolute and escaping paths."""
    if name.startswith("/") or "\\" in name or (len(name) > 1 and name[1] == ":"):
        raise ValueError(f"Unsafe entry name: {name}")

    root = output_dir.resolve()
    target = (root / name).resolve()
    if target != root and root not in target.parents:
        raise ValueError(f"Entry escapes the output directory: {name}")
    return target


def _cmd_compress(
    inputs: List[Path],
    output: Path,
    config: ArchiveConfiguration,
    overwrite: bool = False,
) -> None:
    """Compress files and directories into *output*."""
    if output.exists() and not overwrite:
        _print_error(f"Output file {output} already exists; use --overwrite to replace it")

    files = _iter_files_for_compress(inputs)
    items = [ContentItem(name=name, content=path.read_bytes()) for name, path in files]
    logger.debug("collected %d input file(s)", len(items))

    data = write_archive(items, config)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    print(f"Created {output} with {len(items)} file(s), {len(data)} bytes")


def _cmd_decompress(
    archive: Path,
    output_dir: Path,
    password: Optional[str] = None,
    overwrite: bool = False,
    create_directories: bool = True,
) -> None:
    """Extract every file entry of *archive* into *output_dir*."""
    if output_dir.exists():
        if not output_dir.is_dir():
            _print_error(f"Output path is not a directory: {output_dir}")
    elif create_directories:
        output_dir.mkdir(parents=True)
    else:
        _print_error(f"Output directory does not exist: {output_dir}")

    entries = read_entries(_read_archive_file(archive), password=password)

    extracted = 0
    for name, data in entries:
        try:
            target = _safe_extract_path(output_dir, name)
        except ValueError as e:
            _print_error(str(e))

        if target.exists() and not overwrite:
            sys.stderr.write(f"zipkit: skipping existing file {target}\n")
            continue

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        extracted += 1

    print(f"Extracted {extracted} file(s) to {output_dir}")


def _metadata_to_dict(metadata: ArchiveMetadata) -> dict:
    return {
        "entries": [
            {
                "name": entry.name,
                "size": entry.uncompressed_size,
                "compressedSize": entry.compressed_size,
                "lastModified": entry.last_modified.isoformat(),
                "isDirectory": entry.is_directory,
                "encrypted": entry.encrypted,
                "encryptionStrength": entry.encryption_strength,
                "compressionMethod": entry.compression_method.name.lower(),
                "crc32": f"{entry.crc32:08x}",
                "comment": entry.comment,
            }
            for entry in metadata.entries
        ],
        "totalSize": metadata.total_uncompressed_size,
        "totalCompressedSize": metadata.total_compressed_size,
        "compressionRatio": round(metadata.compression_ratio, 4),
        "comment": metadata.comment,
    }


def _cmd_info(archive: Path, password: Optional[str] = None, as_json: bool = False) -> None:
    """Print a table with metadata for each entry."""
    metadata = read_metadata(_read_archive_file(archive), password=password)

    if as_json:
        print(json.dumps(_metadata_to_dict(metadata), indent=2))
        return

    print(f"Archive: {archive}")
    if metadata.comment:
        print(f"Comment: {metadata.comment}")
    print(f"{'Size':>12}  {'Compressed':>12}  {'Method':<8}  {'Modified':<19}  Name")
    print("-" * 80)
    for entry in metadata.entries:
        method = entry.compression_method.name.lower()
        if entry.encrypted:
            method += "*"
        modified = entry.last_modified.strftime("%Y-%m-%d %H:%M:%S")
        name = entry.name + ("/" if entry.is_directory and not entry.name.endswith("/") else "")
        print(
            f"{entry.uncompressed_size:>12}  {entry.compressed_size:>12}  "
            f"{method:<8}  {modified:<19}  {name}"
        )
    print("-" * 80)
    print(
        f"{metadata.total_uncompressed_size:>12}  {metadata.total_compressed_size:>12}  "
        f"{metadata.compression_ratio:.1%} saved, {len(metadata.entries)} entries"
    )


def _cmd_list(archive: Path) -> None:
    """List all entries in an archive, one per line."""
    with ZipReader(_read_archive_file(archive)) as z:
        for name in z.list():
            print(name)


def _cmd_test(archive: Path, password: Optional[str] = None) -> int:
    """Test archive integrity without extracting.

    Returns:
        Exit code: 0 if every entry extracts, 1 otherwise.
    """
    ok, errors = verify_archive(_read_archive_file(archive), password=password)
    if ok:
        print(f"{archive}: OK")
        return 0

    for error in errors:
        print(f"  FAIL: {error}")
    print(f"{archive}: {len(errors)} error(s)")
    return 1


def _cmd_dump(archive: Path) -> None:
    print(dump_structure(_read_archive_file(archive), label=str(archive)))


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the top-level argument parser."""
    parser = argparse.ArgumentParser(
        prog="zipkit",
        description="zipkit - in-memory ZIP engine with deflate and password encryption.",
    )
    parser.add_argument("--version", action="version", version=f"zipkit {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # compress
    p_compress = subparsers.add_parser("compress", help="Create an archive from files and directories")
    p_compress.add_argument("inputs", type=Path, nargs="+", help="Files or directories to add")
    p_compress.add_argument("-o", "--output", type=Path, required=True, help="Archive to create")
    p_compress.add_argument(
        "--level",
        type=int,
        default=ArchiveConfiguration.level,
        help="Compression level, 0 (store) to 9 (best). Default: %(default)s",
    )
    p_compress.add_argument("--password", default=None, help="Encrypt entries with this password")
    p_compress.add_argument(
        "--strength",
        type=int,
        choices=[1, 2, 3],
        default=ArchiveConfiguration.encryption_strength,
        help="AES strength: 1=AES-128, 2=AES-192, 3=AES-256. Default: %(default)s",
    )
    p_compress.add_argument(
        "--zip-crypto",
        action="store_true",
        help="Use traditional PKWARE encryption instead of AES",
    )
    p_compress.add_argument("--comment", default=None, help="Archive comment")
    p_compress.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of threads compressing entries. Default: %(default)s",
    )
    p_compress.add_argument("--overwrite", action="store_true", help="Replace an existing output file")

    # decompress
    p_decompress = subparsers.add_parser("decompress", help="Extract an archive into a directory")
    p_decompress.add_argument("archive", type=Path, help="Path to the archive")
    p_decompress.add_argument("-d", "--directory", type=Path, default=Path("."), help="Output directory")
    p_decompress.add_argument("--password", default=None, help="Password for encrypted entries")
    p_decompress.add_argument("--overwrite", action="store_true", help="Replace existing files")
    p_decompress.add_argument(
        "--no-create-directories",
        dest="create_directories",
        action="store_false",
        help="Fail if the output directory does not exist",
    )

    # info
    p_info = subparsers.add_parser("info", help="Show archive entries and totals")
    p_info.add_argument("archive", type=Path, help="Path to the archive")
    p_info.add_argument("--password", default=None, help="Password for encrypted entries")
    p_info.add_argument("--json", dest="as_json", action="store_true", help="Print metadata as JSON")

    # list
    p_list = subparsers.add_parser("list", help="List entries in an archive")
    p_list.add_argument("archive", type=Path, help="Path to the archive")

    # test
    p_test = subparsers.add_parser("test", help="Test archive integrity without extracting")
    p_test.add_argument("archive", type=Path, help="Path to the archive")
    p_test.add_argument("--password", default=None, help="Password for encrypted entries")

    # dump
    p_dump = subparsers.add_parser("dump", help="Show the record layout of an archive")
    p_dump.add_argument("archive", type=Path, help="Path to the archive")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the zipkit CLI.

    This function is invoked when running:

        python -m zipkit ...

    or, via the console script:

        zipkit ...
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    exit_code = 0
    try:
        if args.command == "compress":
            config = ArchiveConfiguration(
                level=args.level,
                password=args.password,
                encryption_strength=args.strength,
                comment=args.comment,
                zip_crypto=args.zip_crypto,
                max_workers=args.workers,
            )
            _cmd_compress(args.inputs, args.output, config, overwrite=args.overwrite)
        elif args.command == "decompress":
            _cmd_decompress(
                args.archive,
                args.directory,
                password=args.password,
                overwrite=args.overwrite,
                create_directories=args.create_directories,
            )
        elif args.command == "info":
            _cmd_info(args.archive, password=args.password, as_json=args.as_json)
        elif args.command == "list":
            _cmd_list(args.archive)
        elif args.command == "test":
            exit_code = _cmd_test(args.archive, password=args.password)
        elif args.command == "dump":
            _cmd_dump(args.archive)
    except ZipError as e:
        _print_error(str(e), exit_code=1)
    except PermissionError as e:
        _print_error(f"Permission denied: {e.filename}", exit_code=1)
    except OSError as e:
        _print_error(str(e), exit_code=1)
    except KeyboardInterrupt:
        _print_error("Interrupted by user", exit_code=130)

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
