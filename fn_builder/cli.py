"""fn-builder CLI: detect, build, routes, verify, deploy.

- build accepts a directory, a zip (path or URL) or a JSON file manifest
- --builder [auto|nuxt|dotnet] (auto picks from the entrypoint)
- --include GLOB (repeatable) adds files to every function bundle
- --dev builds for a local dev runtime
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from jsonschema import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from fn_builder.config import get_settings
from fn_builder.core import BUILDPACKS, run_pipeline
from fn_builder.deploy.client import DeploymentClient
from fn_builder.detect.base import detect_project
from fn_builder.errors import BuilderError, PipelineError
from fn_builder.logging import get_logger
from fn_builder.package.zip import verify_sha256
from fn_builder.planner import read_output
from fn_builder.routes import emit
from fn_builder.source.surfaces import load_manifest
from fn_builder.types import BuildRequest

app = typer.Typer(add_completion=False, help="Build framework projects into deployable functions")
console = Console()


@app.callback()
def main(
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
) -> None:
    get_logger(level=(log_level or get_settings().log_level).upper())


@app.command()
def detect(path: str = typer.Argument(".", help="Path to a source directory")) -> None:
    report = detect_project(Path(path))
    rprint(report.model_dump_json(indent=2))


@app.command()
def build(
    source: str = typer.Argument(".", help="Source directory, zip (path/URL) or JSON manifest"),
    entrypoint: str = typer.Option("package.json", "--entrypoint", "-e", help="Entrypoint path"),
    out: str = typer.Option("./dist", "--out", help="Output directory"),
    builder: str = typer.Option("auto", "--builder", help=f"auto | {' | '.join(sorted(BUILDPACKS))}"),
    include: list[str] | None = typer.Option(
        None, "--include", help="Extra glob for every bundle", show_default=False
    ),
    max_size: str | None = typer.Option(None, "--max-size", help="Bundle size limit, e.g. 50mb"),
    dev: bool = typer.Option(False, "--dev", help="Build for a local dev runtime"),
    keep_workdir: bool = typer.Option(False, "--keep-workdir", help="Keep the work directory"),
) -> None:
    settings = get_settings(keep_workdir=True) if keep_workdir else get_settings()
    config: dict = {}
    if include:
        config["includeFiles"] = include
    if max_size:
        config["maxLambdaSize"] = max_size

    try:
        files = load_manifest(source)
        request = BuildRequest(
            files=files, entrypoint=entrypoint, config=config, meta={"isDev": dev}
        )
        result = run_pipeline(request, builder=builder, settings=settings, outdir=Path(out))
    except PipelineError as e:
        rprint(f"[red]Build failed in {e.phase}:[/red] {e.cause}")
        raise typer.Exit(code=1) from None
    except (BuilderError, ValueError) as e:
        rprint(f"[red]Build failed:[/red] {e}")
        raise typer.Exit(code=1) from None

    table = Table(title=f"Build Summary ({result.run.builder})")
    table.add_column("Output", style="cyan")
    table.add_column("Kind")
    table.add_column("Detail")
    for name, bundle in sorted(result.output.bundles().items()):
        table.add_row(name, "function", f"{bundle.runtime}, {len(bundle.files)} files")
    table.add_row(f"{len(result.output.static_files())} files", "static", "")
    for route in result.output.routes:
        table.add_row(route.src, "route", route.dest or json.dumps(route.headers))
    console.print(table)
    rprint(f"[green]Output written:[/green] {out}")


@app.command()
def routes(
    prefix: str = typer.Option("/_nuxt/", "--prefix", help="Public asset prefix ('' for none)"),
    entry: str = typer.Option("index", "--entry", help="Function the catch-all dispatches to"),
) -> None:
    manifest = emit(prefix or None, entry=entry)
    print(json.dumps([r.to_dict() for r in manifest], indent=2))


@app.command()
def verify(
    bundle: str = typer.Argument(..., help="Path to zip bundle"),
    sha256: str = typer.Argument(..., help="Expected digest (hex or sha256:<hex>)"),
) -> None:
    try:
        verify_sha256(Path(bundle), expected=sha256)
    except ValueError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    rprint("[green]SHA-256 verified.[/green]")


@app.command()
def deploy(
    directory: str = typer.Argument("./dist", help="Output directory to deploy"),
    name: str | None = typer.Option(None, "--name", help="Deployment name"),
    token: str | None = typer.Option(None, "--token", help="Bearer token (overrides NOW_TOKEN)"),
) -> None:
    outdir = Path(directory)
    try:
        index = read_output(outdir)
    except (OSError, ValueError, ValidationError) as e:
        rprint(f"[red]Not a build output directory:[/red] {outdir} ({e})")
        raise typer.Exit(code=1) from None

    settings = get_settings(token=token) if token else get_settings()
    try:
        with DeploymentClient(settings) as client:
            result = client.deploy_directory(outdir, name=name)
    except BuilderError as e:
        rprint(f"[red]Deployment failed:[/red] {e}")
        raise typer.Exit(code=1) from None
    rprint(
        f"[green]Deployed:[/green] id={result.id} url={result.url} "
        f"({len(index['functions'])} functions, {len(index['static'])} static files)"
    )


if __name__ == "__main__":
    app()
