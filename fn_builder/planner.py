"""Output directory writer.

Lays a ``BuildOutput`` out on disk as a deployable directory::

    <outdir>/output.json                     index (validated)
    <outdir>/static/<path>                   static and client files
    <outdir>/functions/<name>.zip            one archive per bundle
    <outdir>/functions/<name>.zip.sha256     digest sidecar
    <outdir>/functions/<name>.function.json  handler/runtime metadata
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path

from fn_builder.errors import PackagingError
from fn_builder.package.zip import write_bundle_zip
from fn_builder.source.materialize import materialize
from fn_builder.types import BuildOutput
from fn_builder.validator import validate_function, validate_output

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
OUTPUT_INDEX = "output.json"
STATIC_DIR = "static"
FUNCTIONS_DIR = "functions"


def write_output(output: BuildOutput, outdir: Path, builder: str = "unknown") -> dict:
    """Write *output* under *outdir* and return the ``output.json`` payload."""
    outdir.mkdir(parents=True, exist_ok=True)
    for sub in (STATIC_DIR, FUNCTIONS_DIR):
        shutil.rmtree(outdir / sub, ignore_errors=True)

    static = output.static_files()
    materialize(static, outdir / STATIC_DIR)

    functions: dict[str, dict] = {}
    fn_dir = outdir / FUNCTIONS_DIR
    for name, bundle in sorted(output.bundles().items()):
        if not bundle.files:
            raise PackagingError(f"Bundle {name} has no files")
        zip_path = write_bundle_zip(bundle, fn_dir)
        digest = zip_path.with_suffix(".zip.sha256").read_text(encoding="utf-8").strip()
        meta = {
            **bundle.metadata(),
            "bundle": f"{FUNCTIONS_DIR}/{zip_path.name}",
            "digest": f"sha256:{digest}",
        }
        validate_function(meta)
        (fn_dir / f"{bundle.name}.function.json").write_text(
            json.dumps(meta, indent=2), encoding="utf-8"
        )
        functions[name] = meta
        logger.info("wrote %s (%d files)", zip_path.name, len(bundle.files))

    index = {
        "schemaVersion": SCHEMA_VERSION,
        "builder": builder,
        "functions": functions,
        "static": sorted(static),
        "routes": [r.to_dict() for r in output.routes],
        "watch": list(output.watch),
    }
    validate_output(index)
    (outdir / OUTPUT_INDEX).write_text(json.dumps(index, indent=2), encoding="utf-8")
    logger.info("output written to %s", outdir)
    return index


def read_output(outdir: Path) -> dict:
    """Load and validate a previously written ``output.json``."""
    index = json.loads((outdir / OUTPUT_INDEX).read_text(encoding="utf-8"))
    validate_output(index)
    return index
