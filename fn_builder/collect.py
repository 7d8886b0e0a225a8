"""Artifact collection: enumerate output trees and re-root them under prefixes.

Collection never transforms content. Each matched file becomes a
:class:`FileFsRef` carrying its ``lstat`` mode, so executable bits and
symbolic links survive unchanged into the bundle archive.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
from collections.abc import Iterable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from fn_builder.errors import PackagingError
from fn_builder.types import ArtifactMap, FileFsRef

logger = logging.getLogger(__name__)


@lru_cache(maxsize=128)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a glob (``**``, ``*``, ``?``, ``[...]``) into a regex over POSIX paths."""
    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    i += 1
                    out.append("(?:.*/)?")
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = pattern.find("]", i + 1)
            if j == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : j].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = j + 1
                continue
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("(?s:" + "".join(out) + r")\Z")


def iter_files(root: Path, ignore: Iterable[str] = ()) -> Iterator[tuple[str, Path]]:
    """Yield ``(relative posix path, path)`` for every non-directory under *root*.

    Symlinks (to files or directories) are yielded as entries and never followed.
    An *ignore* entry matches a name at any depth or a root-relative path; a
    matching directory is skipped with everything below it.
    """
    skip = {p.strip("/") for p in ignore}
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        base = Path(dirpath)
        rel_base = base.relative_to(root).as_posix()

        def rel(name: str) -> str:
            return name if rel_base == "." else f"{rel_base}/{name}"

        entries = [f for f in filenames if f not in skip and rel(f) not in skip]
        for d in list(dirnames):
            if d in skip or rel(d) in skip:
                dirnames.remove(d)
            elif (base / d).is_symlink():
                dirnames.remove(d)
                entries.append(d)
        dirnames.sort()
        for name in sorted(entries):
            yield rel(name), base / name


def glob(pattern: str, root: Path, ignore: Iterable[str] = ()) -> ArtifactMap:
    """Map each file under *root* matching *pattern* to a reference (keys relative)."""
    if not root.is_dir():
        return {}
    rx = _compile_glob(pattern)
    return {rel: FileFsRef.from_path(p) for rel, p in iter_files(root, ignore) if rx.match(rel)}


def glob_and_prefix(pattern: str, root: Path, prefix: str) -> ArtifactMap:
    """Like :func:`glob`, with every key re-rooted under *prefix*."""
    prefix = prefix.strip("/")
    if prefix in {"", "."}:
        return glob(pattern, root)
    return {posixpath.join(prefix, rel): ref for rel, ref in glob(pattern, root).items()}


def merge_artifacts(*maps: Mapping[str, object]) -> dict:
    """Merge disjoint maps; any shared key is a PackagingError."""
    merged: dict = {}
    for m in maps:
        clash = merged.keys() & m.keys()
        if clash:
            raise PackagingError(f"Artifact path collision: {sorted(clash)[:5]}")
        merged.update(m)
    return merged


@dataclass(frozen=True)
class CollectSpec:
    """One logical source area (static, client, server, dependencies)."""

    area: str
    root: Path
    prefix: str = ""
    pattern: str = "**"


def collect_areas(specs: Iterable[CollectSpec], max_workers: int = 4) -> dict[str, ArtifactMap]:
    """Collect independent areas concurrently and check they are disjoint."""
    specs = list(specs)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        results = list(pool.map(lambda s: glob_and_prefix(s.pattern, s.root, s.prefix), specs))
    areas = {s.area: r for s, r in zip(specs, results)}
    merge_artifacts(*areas.values())
    for area, files in areas.items():
        logger.info("collected %d files for %s", len(files), area)
    return areas
