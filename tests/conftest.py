from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from fn_builder.config import Settings, get_settings
from fn_builder.types import BuildRequest, FileBlob

FAKE_YARN = """#!/bin/sh
echo "yarn $*" >> "${FAKE_LOG:-/dev/null}"
case "$*" in
  *--cache-folder=*)
    [ -n "$FAKE_YARN_CACHE_FAIL" ] && { echo "yarn: integrity check failed" >&2; exit 1; }
    ;;
esac
case "$*" in
  *--production=true*)
    mkdir -p node_modules/@nuxt/core node_modules/vue
    echo "{\\"name\\": \\"@nuxt/core\\", \\"version\\": \\"${FAKE_CORE_VERSION:-2.10.0}\\"}" > node_modules/@nuxt/core/package.json
    echo "module.exports = {}" > node_modules/vue/index.js
    ;;
  *)
    [ -n "$FAKE_YARN_FAIL" ] && { echo "yarn: network error" >&2; exit 2; }
    mkdir -p node_modules/nuxt node_modules/vue
    echo '{"name": "nuxt", "version": "2.10.0"}' > node_modules/nuxt/package.json
    echo "module.exports = {}" > node_modules/vue/index.js
    ;;
esac
"""

FAKE_NUXT = """#!/bin/sh
echo "nuxt $*" >> "${FAKE_LOG:-/dev/null}"
if [ -n "$FAKE_NUXT_FAIL" ]; then
  echo "nuxt: build failed" >&2
  exit 1
fi
mkdir -p .nuxt/dist/server .nuxt/dist/client
echo "module.exports = {}" > .nuxt/dist/server/server.js
echo "{}" > .nuxt/dist/server/client.manifest.json
echo "console.log(1)" > .nuxt/dist/client/app.js
"""

FAKE_DOTNET = """#!/bin/sh
echo "dotnet $*" >> "${FAKE_LOG:-/dev/null}"
case "$1" in
  restore)
    exit 0
    ;;
  publish)
    out=""
    while [ $# -gt 0 ]; do
      if [ "$1" = "-o" ]; then out="$2"; fi
      shift
    done
    mkdir -p "$out"
    echo "dll" > "$out/HelloWorld.dll"
    echo "{}" > "$out/HelloWorld.deps.json"
    ;;
esac
"""


def write_script(path: Path, body: str) -> Path:
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_tools(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Put fake yarn/nuxt/dotnet on PATH; every call is appended to the returned log."""
    bin_dir = tmp_path / "fake-bin"
    bin_dir.mkdir()
    write_script(bin_dir / "yarn", FAKE_YARN)
    write_script(bin_dir / "nuxt", FAKE_NUXT)
    write_script(bin_dir / "dotnet", FAKE_DOTNET)
    log = tmp_path / "calls.log"
    log.touch()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.setenv("FAKE_LOG", str(log))
    return log


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return get_settings(
        tmp_dir=tmp_path / "work",
        cache_dir=tmp_path / "cache",
        node_bin_template=str(tmp_path / "no-node{major}"),
        token=None,
        token_url=None,
        auth_file=tmp_path / "auth.json",
    )


def blob(text: str | dict) -> FileBlob:
    if isinstance(text, dict):
        text = json.dumps(text)
    return FileBlob(data=text.encode("utf-8"))


def nuxt_files(config: str = "export default { dir: { static: 'pub' } }\n") -> dict:
    files = {
        "package.json": blob({"name": "app", "dependencies": {"nuxt": "^2.10.0"}}),
        "pages/index.vue": blob("<template><div>hi</div></template>\n"),
        "pub/a.txt": blob("static a\n"),
    }
    if config is not None:
        files["nuxt.config.js"] = blob(config)
    return files


@pytest.fixture
def nuxt_request() -> BuildRequest:
    return BuildRequest(files=nuxt_files(), entrypoint="package.json")
