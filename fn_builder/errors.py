"""Error taxonomy for the build-to-package pipeline.

Every phase raises one of these; the pipeline wraps whatever escapes a phase
into a single :class:`PipelineError` carrying the phase name and the cause.
"""

from __future__ import annotations


class BuilderError(Exception):
    """Base class for all fn-builder errors."""

    code = "builder_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class SourceError(BuilderError):
    """Materializing the source tree or reading the project failed."""

    code = "source_error"


class DependencyError(BuilderError):
    """Installing or resolving dependencies failed."""

    code = "dependency_error"


class BuildToolError(BuilderError):
    """An external build command exited non-zero (or could not start)."""

    code = "build_tool_error"

    def __init__(self, tool: str, exit_code: int | None, output: str = "") -> None:
        super().__init__(f"{tool} exited with code {exit_code}")
        self.tool = tool
        self.exit_code = exit_code
        self.output = output


class PackagingError(BuilderError):
    """Artifact collision or missing expected output; always a bug upstream."""

    code = "packaging_error"


class VersionError(BuilderError):
    """Resolved framework or runtime version is outside the supported range."""

    code = "version_error"


class RemoteError(BuilderError):
    """The remote deployment reported failure or never finished."""

    code = "remote_error"


class PipelineError(BuilderError):
    """A pipeline phase failed; ``cause`` is the underlying exception."""

    code = "pipeline_error"

    def __init__(self, phase: str, cause: BaseException) -> None:
        super().__init__(f"{phase} failed: {cause}")
        self.phase = phase
        self.cause = cause


__all__ = [
    "BuildToolError",
    "BuilderError",
    "DependencyError",
    "PackagingError",
    "PipelineError",
    "RemoteError",
    "SourceError",
    "VersionError",
]
