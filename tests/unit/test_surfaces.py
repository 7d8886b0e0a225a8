from __future__ import annotations

import base64
import json
import zipfile
from pathlib import Path

import pytest

from fn_builder.errors import SourceError
from fn_builder.source.surfaces import load_manifest, resolve_surface
from fn_builder.types import FileBlob, FileFsRef


def test_dir_surface_skips_installed_dependencies(tmp_path: Path) -> None:
    (tmp_path / "node_modules" / "x").mkdir(parents=True)
    (tmp_path / "node_modules" / "x" / "i.js").write_text("", encoding="utf-8")
    (tmp_path / "package.json").write_text("{}", encoding="utf-8")
    manifest = load_manifest(str(tmp_path))
    assert set(manifest) == {"package.json"}
    assert isinstance(manifest["package.json"], FileFsRef)


def test_zip_surface(tmp_path: Path) -> None:
    zpath = tmp_path / "src.zip"
    with zipfile.ZipFile(zpath, "w") as z:
        z.writestr("package.json", "{}")
        z.writestr("pages/index.vue", "<template/>")
    manifest = load_manifest(str(zpath))
    assert set(manifest) == {"package.json", "pages/index.vue"}
    assert manifest["package.json"].read() == b"{}"


def test_json_manifest_surface(tmp_path: Path) -> None:
    (tmp_path / "local.txt").write_text("on disk", encoding="utf-8")
    spec = {
        "package.json": "{}",
        "bin/run.sh": {"data": "#!/bin/sh\n", "mode": 0o100755},
        "img.bin": {"base64": base64.b64encode(b"\x00\x01").decode()},
        "local.txt": {"fsPath": "local.txt"},
    }
    mpath = tmp_path / "files.json"
    mpath.write_text(json.dumps(spec), encoding="utf-8")

    manifest = load_manifest(str(mpath))
    assert manifest["package.json"] == FileBlob(data=b"{}")
    assert manifest["bin/run.sh"].is_executable
    assert manifest["img.bin"].read() == b"\x00\x01"
    assert manifest["local.txt"].read() == b"on disk"


def test_unknown_surface(tmp_path: Path) -> None:
    assert resolve_surface("https://example.com/src.zip").kind == "zip"
    with pytest.raises(SourceError):
        resolve_surface(str(tmp_path / "nope.tar"))
