"""Remote deployment client.

Uploads a built output directory to the hosting platform's HTTP API and
follows the deployment until it is ready:

- ``TokenProvider`` hands out a bearer token and re-acquires it every
  ``token_max_uses`` calls (explicit token, then token endpoint with retries,
  then the local credential file)
- ``DeploymentClient.create_deployment`` yields ``created``, ``building``,
  ``ready`` or ``error`` events
- ``DeploymentClient.deploy_directory`` consumes events until ``ready``
"""

from __future__ import annotations

import hashlib
import json
import logging
import tempfile
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from fn_builder.collect import iter_files
from fn_builder.config import Settings, get_settings
from fn_builder.errors import RemoteError
from fn_builder.security.archive import safe_join
from fn_builder.types import FileFsRef

logger = logging.getLogger(__name__)

FILES_PATH = "/v2/now/files"
DEPLOYMENTS_PATH = "/v9/now/deployments"

READY = "ready"
ERROR = "error"
CREATED = "created"
BUILDING = "building"

_READY_STATES = {"READY"}
_ERROR_STATES = {"ERROR", "CANCELED"}


@dataclass
class DeploymentEvent:
    type: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class DeploymentResult:
    id: str
    url: str


class TokenProvider:
    """Bearer token cache with count-based invalidation."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.client = client
        self._sleep = sleep
        self._token: str | None = None
        self._count = 0

    def get_token(self) -> str:
        self._count += 1
        if self._token is None or self._count >= self.settings.token_max_uses:
            self._count = 0
            self._token = self._acquire()
        return self._token

    def invalidate(self) -> None:
        self._token = None
        self._count = 0

    def _acquire(self) -> str:
        if self.settings.token:
            return self.settings.token
        if self.settings.token_url:
            return self._fetch_with_retry(self.settings.token_url)
        return self._read_auth_file(self.settings.auth_file)

    def _fetch_with_retry(self, url: str) -> str:
        retries = self.settings.token_fetch_retries
        for attempt in range(retries + 1):
            try:
                resp = self.client.get(url)
                resp.raise_for_status()
                token = resp.json()["token"]
                if not isinstance(token, str) or not token:
                    raise ValueError("empty token")
                return token
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                remaining = retries - attempt
                logger.warning("failed to fetch token (%s); retries remaining: %d", e, remaining)
                if remaining == 0:
                    raise RemoteError(f"Cannot fetch token from {url}: {e}") from e
                self._sleep(self.settings.token_fetch_delay)
        raise AssertionError("unreachable")

    @staticmethod
    def _read_auth_file(path: Path) -> str:
        try:
            token = json.loads(path.read_text(encoding="utf-8"))["token"]
        except FileNotFoundError:
            raise RemoteError(f"No token configured and {path} does not exist") from None
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise RemoteError(f"Cannot read token from {path}: {e}") from e
        if not token:
            raise RemoteError(f"{path} holds an empty token")
        return token


class DeploymentClient:
    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.Client | None = None,
        tokens: TokenProvider | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=self.settings.deploy_timeout)
        self.tokens = tokens or TokenProvider(self.settings, self.client, sleep=sleep)
        self._sleep = sleep

    def __enter__(self) -> DeploymentClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    @property
    def base_url(self) -> str:
        return f"https://{self.settings.api_host}"

    # --- HTTP ---------------------------------------------------------------

    def fetch_api(
        self, path: str, method: str = "GET", headers: Mapping[str, str] | None = None, **kwargs: Any
    ) -> httpx.Response:
        hdrs = dict(headers or {})
        hdrs.setdefault("Accept", "application/json")
        hdrs["x-now-trace-priority"] = "1"
        logger.debug("fetch %s %s", method, path)
        return self.client.request(method, self.base_url + path, headers=hdrs, **kwargs)

    def fetch_with_auth(
        self, path: str, method: str = "GET", headers: Mapping[str, str] | None = None, **kwargs: Any
    ) -> httpx.Response:
        hdrs = dict(headers or {})
        if "Authorization" not in hdrs:
            hdrs["Authorization"] = f"Bearer {self.tokens.get_token()}"
        return self.fetch_api(path, method=method, headers=hdrs, **kwargs)

    @staticmethod
    def _json(resp: httpx.Response, what: str) -> dict[str, Any]:
        if resp.is_error:
            raise RemoteError(f"{what} failed: HTTP {resp.status_code} {resp.text[:200]}")
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteError(f"{what} returned invalid JSON") from e

    # --- Deployment ---------------------------------------------------------

    def upload_files(self, directory: Path) -> list[dict[str, Any]]:
        """Upload every file under *directory*; return the deployment file list."""
        files: list[dict[str, Any]] = []
        for rel, path in iter_files(directory):
            ref = FileFsRef.from_path(path)
            data = ref.read()
            digest = hashlib.sha1(data).hexdigest()
            resp = self.fetch_with_auth(
                FILES_PATH,
                method="POST",
                headers={
                    "Content-Type": "application/octet-stream",
                    "x-now-digest": digest,
                },
                content=data,
            )
            if resp.is_error:
                raise RemoteError(f"upload of {rel} failed: HTTP {resp.status_code}")
            files.append({"file": rel, "sha": digest, "size": len(data), "mode": ref.mode})
        logger.info("uploaded %d files from %s", len(files), directory)
        return files

    def create_deployment(
        self, directory: Path, name: str | None = None, max_polls: int | None = None
    ) -> Iterator[DeploymentEvent]:
        files = self.upload_files(directory)
        body = self._json(
            self.fetch_with_auth(
                DEPLOYMENTS_PATH,
                method="POST",
                json={"name": name or directory.name, "files": files},
            ),
            "create deployment",
        )
        yield DeploymentEvent(CREATED, body)
        dep_id = body.get("id")
        if not dep_id:
            return

        polls = 0
        while max_polls is None or polls < max_polls:
            polls += 1
            body = self._json(
                self.fetch_with_auth(f"{DEPLOYMENTS_PATH}/{dep_id}"), "deployment status"
            )
            state = str(body.get("readyState") or body.get("state") or "").upper()
            if state in _READY_STATES:
                yield DeploymentEvent(READY, body)
                return
            if state in _ERROR_STATES:
                yield DeploymentEvent(ERROR, body)
                return
            if not state:
                logger.warning("deployment %s reported no state", dep_id)
                return
            yield DeploymentEvent(BUILDING, body)
            self._sleep(self.settings.deploy_poll_interval)

    def deploy_directory(self, directory: Path, name: str | None = None) -> DeploymentResult:
        for event in self.create_deployment(directory, name=name):
            logger.info("deployment event: %s", event.type)
            if event.type == READY:
                return DeploymentResult(
                    id=str(event.payload.get("id", "")), url=str(event.payload.get("url", ""))
                )
            if event.type == ERROR:
                msg = event.payload.get("errorMessage") or event.payload.get("readyState")
                raise RemoteError(f"Deployment {event.payload.get('id')} failed: {msg}")
        raise RemoteError("Deployment stream ended without ready or error (unexpected termination)")

    def deploy_files(self, bodies: Mapping[str, bytes], name: str | None = None) -> DeploymentResult:
        """Write in-memory files to a temporary directory and deploy it."""
        with tempfile.TemporaryDirectory(prefix="fnb-deploy-") as tmp:
            root = Path(tmp)
            for rel, data in bodies.items():
                target = safe_join(root, rel)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
            return self.deploy_directory(root, name=name)


__all__ = [
    "DeploymentClient",
    "DeploymentEvent",
    "DeploymentResult",
    "RemoteError",
    "TokenProvider",
]
