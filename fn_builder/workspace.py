"""Workspace provisioning: one fresh, exclusively owned work tree per build.

Directories come from ``tempfile.mkdtemp`` so concurrent builds never share a
path; the package cache is the only location shared across builds and is
never removed here.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from fn_builder.config import Settings
from fn_builder.errors import SourceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkPaths:
    """Directories allocated for a single build invocation."""

    root: Path
    source: Path
    output: Path
    cache: Path

    def owned(self) -> tuple[Path, ...]:
        """Paths removed at the end of the build (``cache`` is shared)."""
        return (self.root,)


def allocate(settings: Settings) -> WorkPaths:
    parent = settings.tmp_dir
    try:
        if parent is not None:
            parent.mkdir(parents=True, exist_ok=True)
        root = Path(tempfile.mkdtemp(prefix="fnb-work-", dir=parent)).resolve()
        source = root / "src"
        output = root / "out"
        source.mkdir()
        output.mkdir()
    except OSError as e:
        raise SourceError(f"Cannot allocate work directory: {e}") from e
    logger.debug("allocated work directory %s", root)
    return WorkPaths(root=root, source=source, output=output, cache=settings.cache_dir)


def release(paths: WorkPaths) -> None:
    for p in paths.owned():
        shutil.rmtree(p, ignore_errors=True)
    logger.debug("removed work directory %s", paths.root)


@contextmanager
def workspace(settings: Settings) -> Iterator[WorkPaths]:
    """Allocate a work tree and remove it on every exit path."""
    paths = allocate(settings)
    try:
        yield paths
    finally:
        if settings.keep_workdir:
            logger.info("keeping work directory %s", paths.root)
        else:
            release(paths)
