"""Build orchestration: workspace → buildpack phases → output (state machine).

``run_pipeline`` drives one buildpack through

    Provisioned → Materialized → DevResolved → Built → ProdResolved
    → Collected → Assembled → Emitted

Each phase runs only after the previous one succeeded. Whatever escapes a
phase moves the run to ``Failed`` and is re-raised as ``PipelineError`` with
the phase name. The work directory is released on every exit path,
cancellation included.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath

from fn_builder.buildpacks.base import Buildpack, BuildContext
from fn_builder.buildpacks.dotnet import DotnetBuildpack
from fn_builder.buildpacks.nuxt import NuxtBuildpack
from fn_builder.config import Settings, get_settings
from fn_builder.detect.dotnet import TOOL_DEFAULTS
from fn_builder.errors import PackagingError, PipelineError, SourceError
from fn_builder.logging import step
from fn_builder.planner import write_output
from fn_builder.types import BuildOutput, BuildRequest
from fn_builder.workspace import workspace

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    PROVISIONED = "Provisioned"
    MATERIALIZED = "Materialized"
    DEV_RESOLVED = "DevResolved"
    BUILT = "Built"
    PROD_RESOLVED = "ProdResolved"
    COLLECTED = "Collected"
    ASSEMBLED = "Assembled"
    EMITTED = "Emitted"
    FAILED = "Failed"


# (phase method, state reached when it returns)
PHASES: list[tuple[str, PipelineState]] = [
    ("materialize", PipelineState.MATERIALIZED),
    ("resolve_dev", PipelineState.DEV_RESOLVED),
    ("build", PipelineState.BUILT),
    ("resolve_prod", PipelineState.PROD_RESOLVED),
    ("collect", PipelineState.COLLECTED),
    ("assemble", PipelineState.ASSEMBLED),
    ("emit", PipelineState.EMITTED),
]

BUILDPACKS: dict[str, type[Buildpack]] = {
    NuxtBuildpack.name: NuxtBuildpack,
    DotnetBuildpack.name: DotnetBuildpack,
}


@dataclass
class PipelineRun:
    """Observable progress of one pipeline invocation."""

    builder: str
    history: list[PipelineState] = field(default_factory=list)
    failed_phase: str | None = None
    workdir: Path | None = None

    @property
    def state(self) -> PipelineState | None:
        return self.history[-1] if self.history else None

    def advance(self, state: PipelineState) -> None:
        self.history.append(state)
        logger.debug("pipeline state: %s", state.value)

    def fail(self, phase: str) -> None:
        self.failed_phase = phase
        self.history.append(PipelineState.FAILED)


@dataclass
class PipelineResult:
    output: BuildOutput
    run: PipelineRun
    outdir: Path | None = None


def select_builder(request: BuildRequest) -> str:
    """Pick a buildpack from the entrypoint when none was requested."""
    entry = PurePosixPath(request.entrypoint)
    if entry.suffix == ".csproj" or entry.name == TOOL_DEFAULTS:
        return DotnetBuildpack.name
    return NuxtBuildpack.name


def _run_phase(run: PipelineRun, phase: str, fn):
    with step(phase):
        try:
            return fn()
        except Exception as e:
            run.fail(phase)
            raise PipelineError(phase, e) from e


def _emit(pack: Buildpack) -> BuildOutput:
    output = pack.emit()
    if not isinstance(output, BuildOutput):
        raise PackagingError(f"{pack.name} buildpack emitted {type(output).__name__}")
    return output


def _drive(pack: Buildpack, run: PipelineRun, outdir: Path | None, detach: bool) -> BuildOutput:
    try:
        *steps, (last, emitted) = PHASES
        for phase, reached in steps:
            _run_phase(run, phase, getattr(pack, phase))
            run.advance(reached)
        output = _run_phase(run, last, lambda: _emit(pack))
        run.advance(emitted)
        if outdir is not None:
            _run_phase(run, "write", lambda: write_output(output, outdir, builder=run.builder))
        elif detach:
            output = _run_phase(run, "detach", output.detached)
    finally:
        pack.cleanup()
    return output


def run_pipeline(
    request: BuildRequest,
    builder: str = "auto",
    settings: Settings | None = None,
    outdir: Path | None = None,
    run: PipelineRun | None = None,
) -> PipelineResult:
    """Build *request* and return its output.

    With *outdir* the output is written to disk before the work directory is
    released. Without it, collected files are read into memory first unless
    ``settings.keep_workdir`` keeps them in place.
    """
    settings = settings or get_settings()
    name = select_builder(request) if builder == "auto" else builder
    try:
        pack_cls = BUILDPACKS[name]
    except KeyError:
        raise ValueError(f"Unknown builder {name!r}; choose from {sorted(BUILDPACKS)}") from None
    run = run or PipelineRun(builder=name)

    try:
        with workspace(settings) as paths:
            run.workdir = paths.root
            run.advance(PipelineState.PROVISIONED)
            pack = pack_cls(BuildContext(request=request, settings=settings, paths=paths))
            output = _drive(pack, run, outdir, detach=not settings.keep_workdir)
    except SourceError as e:
        # phases raise PipelineError; a bare SourceError can only come from allocation
        run.fail("provision")
        raise PipelineError("provision", e) from e

    logger.info("build finished: %d outputs, %d routes", len(output.output), len(output.routes))
    return PipelineResult(output=output, run=run, outdir=outdir)


__all__ = [
    "BUILDPACKS",
    "PHASES",
    "PipelineResult",
    "PipelineRun",
    "PipelineState",
    "run_pipeline",
    "select_builder",
]
