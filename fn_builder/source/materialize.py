"""Source materialization: write a FileManifest into a real directory tree."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from collections.abc import Mapping
from pathlib import Path

import httpx

from fn_builder.errors import SourceError
from fn_builder.security.archive import safe_join, safe_relpath
from fn_builder.types import FileFsRef, FileRef

logger = logging.getLogger(__name__)


def _write_one(ref: FileRef, target: Path) -> None:
    if ref.is_symlink:
        os.symlink(ref.read().decode("utf-8"), target)
        return
    if isinstance(ref, FileFsRef):
        shutil.copyfile(ref.fs_path, target)
    else:
        target.write_bytes(ref.read())
    os.chmod(target, stat.S_IMODE(ref.mode))


def materialize(manifest: Mapping[str, FileRef], dest: Path) -> dict[str, FileFsRef]:
    """Write every manifest entry under *dest* and return refs to the written files.

    Paths are normalized; anything absolute, containing ``..`` or resolving
    outside *dest* is rejected. A failed write leaves a partial tree behind,
    which the caller discards with the work directory.
    """
    dest.mkdir(parents=True, exist_ok=True)
    written: dict[str, FileFsRef] = {}
    for name in sorted(manifest):
        rel = safe_relpath(name).as_posix()
        if rel in written:
            raise SourceError(f"Duplicate manifest path after normalization: {name}")
        target = safe_join(dest, rel)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            _write_one(manifest[name], target)
        except (OSError, httpx.HTTPError, ValueError) as e:
            raise SourceError(f"Cannot write {name}: {e}") from e
        written[rel] = FileFsRef.from_path(target)
    logger.info("materialized %d files into %s", len(written), dest)
    return written
