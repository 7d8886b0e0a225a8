"""Source surfaces: turn a CLI source spec into a FileManifest.

Supported kinds:
- dir: a local source tree (``.git`` and installed ``node_modules`` skipped)
- zip: a local archive or an ``http(s)`` URL to one
- manifest: a JSON file mapping paths to ``{"data"|"base64"|"fsPath"|"url", "mode"}``
"""

from __future__ import annotations

import base64
import json
import tempfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx

from fn_builder.collect import iter_files
from fn_builder.errors import SourceError
from fn_builder.security.archive import read_zip_manifest
from fn_builder.types import DEFAULT_FILE_MODE, FileBlob, FileFsRef, FileManifest, FileRemote

DIR_IGNORE = (".git", "node_modules", ".now_cache")


@dataclass(frozen=True)
class Surface:
    kind: str  # "dir" | "zip" | "manifest"
    spec: dict


def _looks_like_url(s: str) -> bool:
    u = urlparse(s)
    return u.scheme in {"http", "https"} and bool(u.netloc)


def resolve_surface(source: str) -> Surface:
    if _looks_like_url(source):
        if source.lower().endswith(".zip"):
            return Surface("zip", {"url": source})
        raise SourceError(f"Unsupported remote source: {source}")

    p = Path(source)
    if p.is_dir():
        return Surface("dir", {"path": str(p.resolve())})
    if p.is_file() and p.suffix.lower() == ".zip":
        return Surface("zip", {"path": str(p.resolve())})
    if p.is_file() and p.suffix.lower() == ".json":
        return Surface("manifest", {"path": str(p.resolve())})
    raise SourceError(f"Source not found or unsupported: {source}")


def manifest_from_dir(root: Path) -> FileManifest:
    return {rel: FileFsRef.from_path(p) for rel, p in iter_files(root, ignore=DIR_IGNORE)}


def _download(url: str, timeout: float = 60.0) -> Path:
    fd, name = tempfile.mkstemp(prefix="fnb-download-", suffix=".zip")
    tmpf = Path(name)
    try:
        with httpx.stream("GET", url, timeout=timeout, follow_redirects=True) as r:
            r.raise_for_status()
            with open(fd, "wb") as out:
                for chunk in r.iter_bytes():
                    out.write(chunk)
    except httpx.HTTPError as e:
        tmpf.unlink(missing_ok=True)
        raise SourceError(f"Cannot download {url}: {e}") from e
    return tmpf


def _entry_from_json(name: str, entry: dict, base: Path) -> FileBlob | FileFsRef | FileRemote:
    mode = int(entry.get("mode", DEFAULT_FILE_MODE))
    if "data" in entry:
        return FileBlob(data=str(entry["data"]).encode("utf-8"), mode=mode)
    if "base64" in entry:
        return FileBlob(data=base64.b64decode(entry["base64"]), mode=mode)
    if "fsPath" in entry:
        return FileFsRef(fs_path=str((base / entry["fsPath"]).resolve()), mode=mode)
    if "url" in entry:
        return FileRemote(url=entry["url"], digest=entry.get("digest"), mode=mode)
    raise SourceError(f"Manifest entry {name} has no content reference")


def manifest_from_json(path: Path) -> FileManifest:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise SourceError(f"Cannot read manifest {path}: {e}") from e
    if not isinstance(raw, dict):
        raise SourceError(f"Manifest {path} must be a JSON object")
    files: FileManifest = {}
    for name, entry in raw.items():
        if isinstance(entry, str):
            entry = {"data": entry}
        files[name] = _entry_from_json(name, entry, path.parent)
    return files


def load_manifest(source: str) -> FileManifest:
    surf = resolve_surface(source)
    if surf.kind == "dir":
        return manifest_from_dir(Path(surf.spec["path"]))
    if surf.kind == "manifest":
        return manifest_from_json(Path(surf.spec["path"]))
    if "path" in surf.spec:
        return read_zip_manifest(Path(surf.spec["path"]))
    zip_path = _download(surf.spec["url"])
    try:
        return read_zip_manifest(zip_path)
    finally:
        zip_path.unlink(missing_ok=True)
