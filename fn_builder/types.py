"""Shared Pydantic models: file references, bundles, routes and build I/O."""

from __future__ import annotations

import hashlib
import os
import stat
from pathlib import Path
from typing import Annotated, Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_FILE_MODE = 0o100644


class _FileRefBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: int = DEFAULT_FILE_MODE

    @property
    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.mode)

    @property
    def is_executable(self) -> bool:
        return bool(self.mode & 0o111)

    def read(self) -> bytes:  # pragma: no cover - overridden
        raise NotImplementedError


class FileBlob(_FileRefBase):
    """Inline content. For a symlink (``S_IFLNK`` mode) *data* is the link target."""

    kind: Literal["blob"] = "blob"
    data: bytes

    def read(self) -> bytes:
        return self.data


class FileFsRef(_FileRefBase):
    """A file that already exists on disk."""

    kind: Literal["fs"] = "fs"
    fs_path: str

    @classmethod
    def from_path(cls, path: Path) -> FileFsRef:
        """Reference *path* with its own ``lstat`` mode (symlinks are not followed)."""
        return cls(fs_path=str(path), mode=os.lstat(path).st_mode)

    def read(self) -> bytes:
        if self.is_symlink:
            return os.readlink(self.fs_path).encode("utf-8")
        return Path(self.fs_path).read_bytes()


class FileRemote(_FileRefBase):
    """Content fetched over HTTP when the source is materialized."""

    kind: Literal["remote"] = "remote"
    url: str
    digest: str | None = None

    def read(self, timeout: float = 60.0) -> bytes:
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            resp = client.get(self.url)
            resp.raise_for_status()
            data = resp.content
        if self.digest:
            expected = self.digest.split(":", 1)[-1].lower()
            got = hashlib.sha256(data).hexdigest()
            if got != expected:
                raise ValueError(f"SHA-256 mismatch for {self.url}: got {got}, expected {expected}")
        return data


FileRef = Annotated[FileBlob | FileFsRef | FileRemote, Field(discriminator="kind")]

# path -> content reference; keys are relative POSIX paths
FileManifest = dict[str, FileRef]
ArtifactMap = dict[str, FileRef]


class BuildConfig(BaseModel):
    """The handful of framework configuration fields the pipeline reads."""

    model_config = ConfigDict(extra="ignore")

    config_file: str
    static_dir: str = "static"
    public_path: str = "_nuxt/"
    build_dir: str = ".nuxt"
    entry_names: list[str] = Field(default_factory=lambda: ["index"])

    @field_validator("public_path")
    @classmethod
    def _normalize_public_path(cls, v: str) -> str:
        v = v.strip().lstrip("/")
        if v and not v.endswith("/"):
            v += "/"
        return v

    @field_validator("static_dir", "build_dir")
    @classmethod
    def _strip_dir(cls, v: str) -> str:
        return v.strip().strip("/") or "."


class FunctionBundle(BaseModel):
    """One deployable function: handler/runtime metadata plus its closed file set."""

    kind: Literal["bundle"] = "bundle"
    name: str
    handler: str
    runtime: str
    environment: dict[str, str] = Field(default_factory=dict)
    files: dict[str, FileRef] = Field(default_factory=dict)
    max_size: int | None = None

    def metadata(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "handler": self.handler,
            "runtime": self.runtime,
            "environment": dict(self.environment),
            "fileCount": len(self.files),
        }


class Route(BaseModel):
    src: str
    dest: str | None = None
    headers: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


# Ordered; the first matching rule wins.
RoutingManifest = list[Route]

OutputItem = Annotated[
    FunctionBundle | FileBlob | FileFsRef | FileRemote, Field(discriminator="kind")
]


def _inline(ref: FileRef) -> FileRef:
    if isinstance(ref, FileFsRef):
        return FileBlob(data=ref.read(), mode=ref.mode)
    return ref


class BuildOutput(BaseModel):
    output: dict[str, OutputItem] = Field(default_factory=dict)
    routes: list[Route] = Field(default_factory=list)
    watch: list[str] = Field(default_factory=list)

    def bundles(self) -> dict[str, FunctionBundle]:
        return {k: v for k, v in self.output.items() if isinstance(v, FunctionBundle)}

    def static_files(self) -> dict[str, FileBlob | FileFsRef | FileRemote]:
        return {k: v for k, v in self.output.items() if not isinstance(v, FunctionBundle)}

    def detached(self) -> BuildOutput:
        """Copy with every on-disk file read into memory.

        Collected files are referenced in place; use this before the
        directory they live in is removed.
        """
        output: dict[str, Any] = {}
        for key, item in self.output.items():
            if isinstance(item, FunctionBundle):
                files = {path: _inline(ref) for path, ref in item.files.items()}
                output[key] = item.model_copy(update={"files": files})
            else:
                output[key] = _inline(item)
        return self.model_copy(update={"output": output})


class BuildRequest(BaseModel):
    """Pipeline input: the source manifest plus builder options."""

    files: dict[str, FileRef]
    entrypoint: str
    config: dict[str, Any] = Field(default_factory=dict)
    meta: dict[str, Any] = Field(default_factory=dict)
