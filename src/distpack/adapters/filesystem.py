"""File system helpers shared by the stage adapters."""

from __future__ import annotations

import gzip
import json
import shutil
import tarfile
from io import BytesIO
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

log = getLogger(__name__)

TARBALL_ROOT = "package"


def copy_files(src_dir: Path, patterns: Iterable[str], dest_dir: Path) -> list[Path]:
    """Copy files below ``src_dir`` matching any glob in ``patterns``.

    Relative layout is preserved. Returns the written destination paths, sorted.
    """

    if not src_dir.is_dir():
        return []
    matches: set[Path] = set()
    for pattern in patterns:
        matches.update(path for path in src_dir.glob(pattern) if path.is_file())

    written: list[Path] = []
    for source in sorted(matches):
        target = dest_dir / source.relative_to(src_dir)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        written.append(target)
    log.debug("Copied %s file(s) from %s to %s", len(written), src_dir, dest_dir)
    return written


def remove_tree(path: Path, keep: Iterable[Path] = ()) -> None:
    """Delete ``path`` except for the trees and files listed in ``keep``."""

    kept = [other for other in keep if other != path and other.is_relative_to(path)]
    if not path.is_dir():
        if path.exists():
            path.unlink()
        return
    if not kept:
        shutil.rmtree(path)
        return
    for child in sorted(path.iterdir()):
        if child in kept:
            continue
        remove_tree(child, kept)
    if not any(path.iterdir()):
        path.rmdir()


def prune_empty_dirs(start: Path, stop: Path) -> None:
    """Remove ``start`` and its parents while they are empty, never going above ``stop``."""

    current = start
    while current.is_relative_to(stop) and current.is_dir() and not any(current.iterdir()):
        current.rmdir()
        if current == stop:
            break
        current = current.parent


def write_json(path: Path, payload: Mapping[str, Any]) -> Path:
    """Write ``payload`` with two space indentation and a trailing newline."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return path


def read_json(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data  # pyright: ignore[reportUnknownVariableType]


def _tar_info(name: str, *, is_dir: bool, size: int = 0) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    if is_dir:
        info.type = tarfile.DIRTYPE
        info.mode = 0o755
    else:
        info.size = size
        info.mode = 0o644
    return info


def _is_excluded(path: Path, excluded: tuple[Path, ...]) -> bool:
    return any(path == other or path.is_relative_to(other) for other in excluded)


def pack_tarball(source_dir: Path, target: Path, *, exclude: Iterable[Path] = ()) -> Path:
    """Pack the files below ``source_dir`` into a gzipped tarball with reproducible bytes.

    Members are sorted and carry no timestamps or ownership, so packing the same
    files twice yields identical archives. Existing tarballs and the trees and
    files in ``exclude`` are left out. Only directories leading to a packed file
    get an entry.
    """

    excluded = tuple(exclude)
    files = [
        path
        for path in source_dir.rglob("*")
        if path.is_file()
        and path != target
        and path.suffix != ".tgz"
        and not _is_excluded(path, excluded)
    ]
    directories = {
        source_dir / parent
        for path in files
        for parent in path.relative_to(source_dir).parents
        if parent.parts
    }
    entries = sorted([*directories, *files])
    buffer = BytesIO()
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.GNU_FORMAT) as archive:
        archive.addfile(_tar_info(TARBALL_ROOT, is_dir=True))
        for path in entries:
            name = f"{TARBALL_ROOT}/{path.relative_to(source_dir).as_posix()}"
            if path.is_dir():
                archive.addfile(_tar_info(name, is_dir=True))
                continue
            data = path.read_bytes()
            archive.addfile(_tar_info(name, is_dir=False, size=len(data)), BytesIO(data))

    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("wb") as raw, gzip.GzipFile(
        filename="", mode="wb", fileobj=raw, mtime=0
    ) as compressed:
        compressed.write(buffer.getvalue())
    log.debug("Packed %s into %s", source_dir, target)
    return target
