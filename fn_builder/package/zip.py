"""Zip packaging: the archive writer behind every function bundle.

Creates a normalized zip archive from a path -> file reference map and writes
a sibling ``.sha256`` file with the archive's SHA-256 hex digest.

Design goals:
- Byte-identical output for identical inputs: entries sorted, fixed
  timestamps, fixed compression.
- Unix modes kept in ``external_attr`` (executable bits, symlinks stored as
  link entries whose data is the target).
- Only relative arcnames.
"""

from __future__ import annotations

import hashlib
import re
import stat
import zipfile
from collections.abc import Mapping
from pathlib import Path

from fn_builder.errors import PackagingError
from fn_builder.types import FileRef, FunctionBundle

ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_UNITS = {"": 1, "b": 1, "kb": 1024, "mb": 1024**2, "gb": 1024**3}
_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmg]?b?)\s*$", re.IGNORECASE)


def parse_size(value: str | int) -> int:
    """``"50mb"`` -> bytes."""
    if isinstance(value, int):
        return value
    m = _SIZE_RE.match(value)
    if not m:
        raise ValueError(f"Invalid size: {value!r}")
    unit = m.group(2).lower()
    if unit and not unit.endswith("b"):
        unit += "b"
    return int(float(m.group(1)) * _UNITS[unit])


def _zipinfo(name: str, mode: int) -> zipfile.ZipInfo:
    if name.startswith("/") or ".." in name.split("/"):
        raise PackagingError(f"Refusing unsafe archive path: {name}")
    info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
    info.create_system = 3  # unix, so external_attr carries st_mode
    info.external_attr = (mode & 0xFFFF) << 16
    info.compress_type = zipfile.ZIP_STORED if stat.S_ISLNK(mode) else zipfile.ZIP_DEFLATED
    return info


def write_zip(files: Mapping[str, FileRef], zip_path: Path) -> Path:
    """Write *files* into *zip_path* in sorted order."""
    zip_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(zip_path, "w") as z:
        for name in sorted(files):
            ref = files[name]
            z.writestr(_zipinfo(name, ref.mode), ref.read(), compresslevel=6)
    return zip_path


def sha256(path: Path) -> str:
    """Return the hex SHA-256 of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_sha256(path: Path, expected: str) -> None:
    """Raise ValueError if *path*'s digest differs from *expected* (hex or ``sha256:<hex>``)."""
    exp = expected.strip()
    if exp.startswith("sha256:"):
        exp = exp.split(":", 1)[1]
    got = sha256(path)
    if got != exp.lower():
        raise ValueError(f"SHA-256 mismatch: got {got}, expected {exp.lower()}")


def write_bundle_zip(bundle: FunctionBundle, outdir: Path) -> Path:
    """Write ``<outdir>/<bundle.name>.zip`` plus its ``.sha256`` sidecar.

    A bundle larger than its ``max_size`` is a PackagingError.
    """
    zip_path = write_zip(bundle.files, outdir / f"{bundle.name}.zip")
    size = zip_path.stat().st_size
    if bundle.max_size is not None and size > bundle.max_size:
        raise PackagingError(
            f"Bundle {bundle.name} is {size} bytes, over the {bundle.max_size} byte limit"
        )
    zip_path.with_suffix(".zip.sha256").write_text(sha256(zip_path), encoding="utf-8")
    return zip_path
