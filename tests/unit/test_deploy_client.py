"""Tests for the deployment client.

HTTP is mocked with respx; sleeps are recorded instead of taken.
"""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
import respx

from fn_builder.config import Settings, get_settings
from fn_builder.deploy.client import (
    DEPLOYMENTS_PATH,
    FILES_PATH,
    DeploymentClient,
    TokenProvider,
)
from fn_builder.errors import RemoteError

API = "https://api.test.local"
TOKEN_URL = "https://tokens.test.local/token"


@pytest.fixture
def deploy_settings(tmp_path: Path) -> Settings:
    return get_settings(
        api_host="api.test.local",
        token=None,
        token_url=None,
        auth_file=tmp_path / "auth.json",
        token_fetch_delay=0.5,
        deploy_poll_interval=0.0,
    )


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    d = tmp_path / "dist"
    (d / "functions").mkdir(parents=True)
    (d / "output.json").write_text("{}", encoding="utf-8")
    (d / "functions" / "index.zip").write_bytes(b"PK\x05\x06" + b"\x00" * 18)
    return d


class TestTokenProvider:
    def test_explicit_token_is_reacquired_every_max_uses(self, deploy_settings: Settings) -> None:
        settings = deploy_settings.model_copy(update={"token": "tok", "token_max_uses": 3})
        tp = TokenProvider(settings, httpx.Client())
        acquired: list[str] = []
        original = tp._acquire

        def counting() -> str:
            acquired.append("x")
            return original()

        tp._acquire = counting  # type: ignore[method-assign]
        tokens = [tp.get_token() for _ in range(7)]
        assert tokens == ["tok"] * 7
        # first call, then every third call
        assert len(acquired) == 3

    @respx.mock
    def test_token_fetch_retries_with_fixed_delay(self, deploy_settings: Settings) -> None:
        route = respx.get(TOKEN_URL).mock(
            side_effect=[httpx.Response(500), httpx.ConnectError("down"), httpx.Response(200, json={"token": "fetched"})]
        )
        sleeps: list[float] = []
        settings = deploy_settings.model_copy(update={"token_url": TOKEN_URL})
        tp = TokenProvider(settings, httpx.Client(), sleep=sleeps.append)
        assert tp.get_token() == "fetched"
        assert route.call_count == 3
        assert sleeps == [0.5, 0.5]

    @respx.mock
    def test_token_fetch_gives_up_after_retries(self, deploy_settings: Settings) -> None:
        route = respx.get(TOKEN_URL).mock(return_value=httpx.Response(503))
        settings = deploy_settings.model_copy(update={"token_url": TOKEN_URL})
        tp = TokenProvider(settings, httpx.Client(), sleep=lambda _: None)
        with pytest.raises(RemoteError):
            tp.get_token()
        assert route.call_count == settings.token_fetch_retries + 1

    def test_auth_file_fallback(self, deploy_settings: Settings) -> None:
        tp = TokenProvider(deploy_settings, httpx.Client())
        with pytest.raises(RemoteError, match="does not exist"):
            tp.get_token()
        deploy_settings.auth_file.write_text(json.dumps({"token": "from-file"}), encoding="utf-8")
        tp.invalidate()
        assert tp.get_token() == "from-file"


class TestDeploymentClient:
    def _client(self, settings: Settings) -> DeploymentClient:
        settings = settings.model_copy(update={"token": "tok"})
        return DeploymentClient(settings, client=httpx.Client(), sleep=lambda _: None)

    @respx.mock
    def test_fetch_api_sets_platform_headers(self, deploy_settings: Settings) -> None:
        route = respx.get(f"{API}/v2/user").mock(return_value=httpx.Response(200, json={}))
        client = self._client(deploy_settings)
        client.fetch_with_auth("/v2/user")
        headers = route.calls.last.request.headers
        assert headers["Accept"] == "application/json"
        assert headers["x-now-trace-priority"] == "1"
        assert headers["Authorization"] == "Bearer tok"

    @respx.mock
    def test_deploy_directory_until_ready(self, deploy_settings: Settings, out_dir: Path) -> None:
        files = respx.post(f"{API}{FILES_PATH}").mock(return_value=httpx.Response(200, json={}))
        create = respx.post(f"{API}{DEPLOYMENTS_PATH}").mock(
            return_value=httpx.Response(200, json={"id": "dpl_1", "url": "app-1.example.sh"})
        )
        respx.get(f"{API}{DEPLOYMENTS_PATH}/dpl_1").mock(
            side_effect=[
                httpx.Response(200, json={"id": "dpl_1", "readyState": "BUILDING"}),
                httpx.Response(200, json={"id": "dpl_1", "readyState": "READY", "url": "app-1.example.sh"}),
            ]
        )
        client = self._client(deploy_settings)
        events = [e.type for e in client.create_deployment(out_dir)]
        assert events == ["created", "building", "ready"]
        assert files.call_count == 2
        digests = {c.request.headers["x-now-digest"] for c in files.calls}
        assert all(len(d) == 40 for d in digests)
        body = json.loads(create.calls.last.request.content)
        assert sorted(f["file"] for f in body["files"]) == ["functions/index.zip", "output.json"]

    @respx.mock
    def test_deploy_directory_returns_id_and_url(self, deploy_settings: Settings, out_dir: Path) -> None:
        respx.post(f"{API}{FILES_PATH}").mock(return_value=httpx.Response(200, json={}))
        respx.post(f"{API}{DEPLOYMENTS_PATH}").mock(return_value=httpx.Response(200, json={"id": "dpl_2"}))
        respx.get(f"{API}{DEPLOYMENTS_PATH}/dpl_2").mock(
            return_value=httpx.Response(200, json={"id": "dpl_2", "readyState": "READY", "url": "u.sh"})
        )
        result = self._client(deploy_settings).deploy_directory(out_dir)
        assert (result.id, result.url) == ("dpl_2", "u.sh")

    @respx.mock
    def test_error_event_is_a_remote_error(self, deploy_settings: Settings, out_dir: Path) -> None:
        respx.post(f"{API}{FILES_PATH}").mock(return_value=httpx.Response(200, json={}))
        respx.post(f"{API}{DEPLOYMENTS_PATH}").mock(return_value=httpx.Response(200, json={"id": "dpl_3"}))
        respx.get(f"{API}{DEPLOYMENTS_PATH}/dpl_3").mock(
            return_value=httpx.Response(
                200, json={"id": "dpl_3", "readyState": "ERROR", "errorMessage": "build crashed"}
            )
        )
        with pytest.raises(RemoteError, match="build crashed"):
            self._client(deploy_settings).deploy_directory(out_dir)

    @respx.mock
    def test_stream_end_without_ready_is_unexpected_termination(
        self, deploy_settings: Settings, out_dir: Path
    ) -> None:
        respx.post(f"{API}{FILES_PATH}").mock(return_value=httpx.Response(200, json={}))
        respx.post(f"{API}{DEPLOYMENTS_PATH}").mock(return_value=httpx.Response(200, json={}))
        with pytest.raises(RemoteError, match="unexpected termination"):
            self._client(deploy_settings).deploy_directory(out_dir)

    @respx.mock
    def test_http_failure_is_a_remote_error(self, deploy_settings: Settings, out_dir: Path) -> None:
        respx.post(f"{API}{FILES_PATH}").mock(return_value=httpx.Response(403, json={"error": "forbidden"}))
        with pytest.raises(RemoteError, match="403"):
            self._client(deploy_settings).deploy_directory(out_dir)

    @respx.mock
    def test_deploy_files_writes_bodies_first(self, deploy_settings: Settings) -> None:
        uploads = respx.post(f"{API}{FILES_PATH}").mock(return_value=httpx.Response(200, json={}))
        respx.post(f"{API}{DEPLOYMENTS_PATH}").mock(return_value=httpx.Response(200, json={"id": "d"}))
        respx.get(f"{API}{DEPLOYMENTS_PATH}/d").mock(
            return_value=httpx.Response(200, json={"id": "d", "readyState": "READY", "url": "d.sh"})
        )
        result = self._client(deploy_settings).deploy_files({"index.html": b"<h1>hi</h1>", "now.json": b"{}"})
        assert result.url == "d.sh"
        assert uploads.call_count == 2
