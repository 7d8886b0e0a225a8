from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from fn_builder.config import Settings, get_settings
from fn_builder.errors import BuildToolError, PipelineError, SourceError
from fn_builder.logging import JsonFormatter, step
from fn_builder.workspace import allocate, workspace


def test_workspace_is_fresh_and_removed(settings: Settings) -> None:
    with workspace(settings) as one, workspace(settings) as two:
        assert one.root != two.root
        assert one.source.is_dir() and one.output.is_dir()
        assert one.cache == settings.cache_dir
        root = one.root
    assert not root.exists()
    assert settings.tmp_dir is not None and list(settings.tmp_dir.iterdir()) == []


def test_workspace_removed_on_error_unless_kept(settings: Settings) -> None:
    with pytest.raises(RuntimeError):
        with workspace(settings) as paths:
            raise RuntimeError("boom")
    assert not paths.root.exists()

    kept = settings.model_copy(update={"keep_workdir": True})
    with workspace(kept) as paths:
        pass
    assert paths.root.exists()


def test_allocate_failure_is_a_source_error(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")
    with pytest.raises(SourceError):
        allocate(get_settings(tmp_dir=blocker / "sub"))


def test_settings_honour_platform_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NOW_TOKEN", "env-token")
    monkeypatch.setenv("API_HOST", "api.example.test")
    monkeypatch.setenv("FN_BUILDER_TOKEN_MAX_USES", "5")
    s = get_settings()
    assert s.token == "env-token"
    assert s.api_host == "api.example.test"
    assert s.token_max_uses == 5
    assert get_settings(token="flag").token == "flag"


def test_json_formatter_and_step(caplog: pytest.LogCaptureFixture) -> None:
    record = logging.LogRecord("fn_builder.x", logging.INFO, __file__, 1, "hi %s", ("there",), None)
    record.phase = "build"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["msg"] == "hi there"
    assert payload["phase"] == "build"
    assert payload["level"] == "INFO"

    with caplog.at_level(logging.INFO, logger="fn_builder"):
        with step("collect"):
            pass
    phases = [getattr(r, "phase", None) for r in caplog.records]
    assert phases == ["collect", "collect"]


def test_pipeline_error_keeps_phase_and_cause() -> None:
    cause = BuildToolError("nuxt", 1, "tail")
    err = PipelineError("build", cause)
    assert err.phase == "build" and err.cause is cause
    assert "nuxt exited with code 1" in str(err)
    assert cause.code == "build_tool_error"
