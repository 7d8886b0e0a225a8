from __future__ import annotations

import pytest

from fn_builder.detect.js_config import parse_config_source
from fn_builder.errors import SourceError


def test_reads_literal_fields_from_export_default() -> None:
    src = """
    // nuxt config
    import path from 'path'

    export default {
      mode: 'universal',
      dir: { static: "public" },
      buildDir: '.build',
      build: {
        publicPath: '/assets/',
        extend(config, ctx) { config.devtool = 'eval' },
      },
      head: { title: `My app`, meta: [{ charset: 'utf-8' }] },
      srcDir: path.resolve(__dirname, 'src'),
      loading: false,
      port: 3000,
    }
    """
    result = parse_config_source(src)
    assert result.data["mode"] == "universal"
    assert result.data["dir"] == {"static": "public"}
    assert result.data["buildDir"] == ".build"
    assert result.data["build"] == {"publicPath": "/assets/"}
    assert result.data["head"] == {"title": "My app", "meta": [{"charset": "utf-8"}]}
    assert result.data["loading"] is False
    assert result.data["port"] == 3000
    assert "srcDir" not in result.data
    assert "srcDir" in result.skipped
    assert "build.extend" in result.skipped


def test_module_exports_and_wrapper_call() -> None:
    assert parse_config_source("module.exports = { lambdaName: 'app' }").data == {
        "lambdaName": "app"
    }
    wrapped = "export default defineNuxtConfig({ build: { publicPath: '/_nuxt/' } })"
    assert parse_config_source(wrapped).data == {"build": {"publicPath": "/_nuxt/"}}


def test_export_of_a_declared_binding() -> None:
    src = "const config = { dir: { static: 'pub' } }\nexport default config\n"
    assert parse_config_source(src).data == {"dir": {"static": "pub"}}

    cjs = "let settings = defineNuxtConfig({ buildDir: 'out' });\nmodule.exports = settings;"
    assert parse_config_source(cjs).data == {"buildDir": "out"}


def test_opaque_members_are_skipped_not_evaluated() -> None:
    src = """
    const base = { a: 1 }
    export default {
      ...base,
      [computed]: 1,
      shorthand,
      get accessor() { return 1 },
      tpl: `x-${process.env.X}`,
      list: ['a', someVar, 'b'],
      neg: -1.5,
      hex: 0x10,
    }
    """
    result = parse_config_source(src)
    assert result.data == {"list": ["a", "b"], "neg": -1.5, "hex": 16}
    assert "tpl" in result.skipped
    assert "shorthand" in result.skipped
    assert "list[1]" in result.skipped


def test_missing_export_is_a_source_error() -> None:
    with pytest.raises(SourceError):
        parse_config_source("const config = { a: 1 }")
    with pytest.raises(SourceError):
        parse_config_source("export default createConfig")
