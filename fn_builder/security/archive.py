"""Path and archive guards (source side).

Guards against the usual tree-writing attacks when materializing manifests or
reading zip sources:
- ``..`` traversal and absolute paths
- destinations that resolve outside the target directory (symlinked parents)
- oversized zip members (basic cap)
"""

from __future__ import annotations

import stat
import zipfile
from pathlib import Path, PurePosixPath

from fn_builder.errors import SourceError
from fn_builder.types import FileBlob

MAX_MEMBER_BYTES = 256 * 1024 * 1024  # 256 MiB per member


def is_within(base: Path, target: Path) -> bool:
    try:
        target.relative_to(base)
        return True
    except ValueError:
        return False


def safe_relpath(name: str) -> PurePosixPath:
    """Return *name* as a normalized relative POSIX path or raise SourceError."""
    if not name or "\x00" in name:
        raise SourceError(f"Invalid manifest path: {name!r}")
    p = PurePosixPath(name.replace("\\", "/"))
    if p.is_absolute() or ".." in p.parts:
        raise SourceError(f"Unsafe manifest path: {name}")
    parts = [part for part in p.parts if part not in {"", "."}]
    if not parts:
        raise SourceError(f"Invalid manifest path: {name!r}")
    return PurePosixPath(*parts)


def safe_join(dest: Path, name: str) -> Path:
    """Join *name* under *dest*, refusing anything that would escape it."""
    rel = safe_relpath(name)
    base = dest.resolve()
    target = base.joinpath(*rel.parts)
    if not is_within(base, target.parent.resolve()):
        raise SourceError(f"Path escapes destination: {name}")
    return target


def read_zip_manifest(zip_path: Path) -> dict[str, FileBlob]:
    """Read a zip archive into inline file references, keeping modes and symlinks."""
    files: dict[str, FileBlob] = {}
    try:
        with zipfile.ZipFile(zip_path) as z:
            for m in z.infolist():
                if m.is_dir():
                    continue
                rel = safe_relpath(m.filename)
                if m.file_size > MAX_MEMBER_BYTES:
                    raise SourceError(f"Member too large: {m.filename} ({m.file_size} bytes)")
                mode = m.external_attr >> 16
                if not stat.S_IFMT(mode):
                    mode = 0o100644
                # strip setuid/setgid
                mode &= ~(stat.S_ISUID | stat.S_ISGID)
                files[rel.as_posix()] = FileBlob(data=z.read(m), mode=mode)
    except (OSError, zipfile.BadZipFile) as e:
        raise SourceError(f"Cannot read zip source {zip_path}: {e}") from e
    return files
