"""Buildpack contract: the phase shape every variant implements.

The pipeline (``fn_builder.core``) calls the phases strictly in order; each
phase may rely on the state the previous ones left on the instance.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from fn_builder.config import Settings
from fn_builder.errors import PackagingError
from fn_builder.source.materialize import materialize
from fn_builder.types import BuildOutput, BuildRequest, FileFsRef
from fn_builder.workspace import WorkPaths

T = TypeVar("T")


@dataclass
class BuildContext:
    request: BuildRequest
    settings: Settings
    paths: WorkPaths
    files: dict[str, FileFsRef] = field(default_factory=dict)


class Buildpack(ABC):
    name: str = "base"

    def __init__(self, ctx: BuildContext) -> None:
        self.ctx = ctx
        self.root: Path | None = None

    def materialize_source(self) -> dict[str, FileFsRef]:
        self.ctx.files = materialize(self.ctx.request.files, self.ctx.paths.source)
        return self.ctx.files

    def require(self, value: T | None, what: str) -> T:
        """Return state set by an earlier phase, failing if that phase never ran."""
        if value is None:
            raise PackagingError(f"{self.name} buildpack has no {what} yet; phases ran out of order")
        return value

    @property
    def builder_config(self) -> dict:
        return self.ctx.request.config

    @property
    def is_dev(self) -> bool:
        return bool(self.ctx.request.meta.get("isDev"))

    @abstractmethod
    def materialize(self) -> None:
        """Write the source tree and read the project description."""

    @abstractmethod
    def resolve_dev(self) -> None: ...

    @abstractmethod
    def build(self) -> None: ...

    @abstractmethod
    def resolve_prod(self) -> None: ...

    @abstractmethod
    def collect(self) -> None: ...

    @abstractmethod
    def assemble(self) -> None: ...

    @abstractmethod
    def emit(self) -> BuildOutput: ...

    def cleanup(self) -> None:
        """Undo project-level side effects; runs after success or failure."""
