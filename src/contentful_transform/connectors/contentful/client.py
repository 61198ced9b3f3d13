from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from contentful_transform.connectors.contentful.auth import build_auth_headers, is_management_token
from contentful_transform.connectors.contentful.types import (
    ApiResponse,
    ClientSettings,
    HttpMethod,
    SpaceConnection,
)
from contentful_transform.core.contracts import DEFAULT_ENVIRONMENT, Credential, RequestStats
from contentful_transform.core.exceptions import CredentialError, RateLimitedError, TransportError
from contentful_transform.core.logger import get_logger

TEMPORARY_KEY_NAME = "contentful-transform temporary CDN key"

_RATE_LIMIT_HEADERS = ("x-contentful-ratelimit-reset", "retry-after")

log = get_logger(__name__)


def _parse_retry_after(headers: Mapping[str, str]) -> Optional[float]:
    for name in _RATE_LIMIT_HEADERS:
        value = headers.get(name)
        if value is None:
            continue
        try:
            return float(value)
        except ValueError:
            continue
    return None


class ContentfulClient:
    """Rate-limited, retrying HTTP client bound to one space/environment.

    Reads go to the client's read host: the delivery (CDN) host for delivery
    tokens, the management host for personal access tokens. Writes always go
    to the management host. Non-2xx responses are returned, not raised; only
    network failures raise TransportError.

    The client owns its request stats and the delivery keys it creates. Call
    `cleanup()` exactly once at the end of a run, then `aclose()`.
    """

    def __init__(
        self,
        connection: SpaceConnection,
        settings: Optional[ClientSettings] = None,
        *,
        host: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.connection = connection
        self.settings = settings or ClientSettings()
        if host is None:
            host = (
                self.settings.management_host
                if is_management_token(connection.access_token)
                else self.settings.delivery_host
            )
        self.host = host.rstrip("/")

        self._http = http or httpx.AsyncClient(timeout=self.settings.timeout_seconds)
        self._owns_http = http is None

        reads = self.settings.max_concurrent_reads
        self._read_slots = asyncio.Semaphore(reads) if reads else None
        self._write_slots = asyncio.Semaphore(self.settings.max_concurrent_writes)

        self._stats = RequestStats()
        self._pending = 0
        self._credentials: List[Credential] = []

    def __repr__(self) -> str:
        return f"ContentfulClient(space={self.connection.key!r}, host={self.host!r})"

    # --- Introspection ---
    @property
    def access_token(self) -> str:
        return self.connection.access_token

    @property
    def stats(self) -> RequestStats:
        return RequestStats(**self._stats.to_dict())

    @property
    def credentials(self) -> Tuple[Credential, ...]:
        return tuple(self._credentials)

    # --- Paths ---
    def space_path(self, path: str = "") -> str:
        return f"/spaces/{self.connection.space_id}{path}"

    def environment_path(self, path: str = "") -> str:
        env = self.connection.environment_id
        if env and env != DEFAULT_ENVIRONMENT:
            return self.space_path(f"/environments/{env}{path}")
        return self.space_path(path)

    # --- Requests ---
    async def request(
        self,
        method: HttpMethod,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        scoped: bool = True,
    ) -> ApiResponse:
        """Issue a request; `path` is relative to the environment unless `scoped=False`."""
        if method == "GET":
            host, slots = self.host, self._read_slots
        else:
            host, slots = self.settings.management_host.rstrip("/"), self._write_slots

        url = host + (self.environment_path(path) if scoped else path)
        request_headers = build_auth_headers(
            self.access_token,
            management=host == self.settings.management_host.rstrip("/"),
        )
        if headers:
            request_headers.update(headers)

        self._pending += 1
        self._stats.max_queue_size = max(self._stats.max_queue_size, self._pending)
        try:
            async with slots if slots is not None else contextlib.nullcontext():
                return await self._send_with_retry(method, url, params=params, json=json, headers=request_headers)
        finally:
            self._pending -= 1

    async def get(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("DELETE", path, **kwargs)

    async def _send_with_retry(self, method: str, url: str, **kwargs: Any) -> ApiResponse:
        attempt = 0
        while True:
            try:
                return await self._send_once(method, url, **kwargs)
            except RateLimitedError as exc:
                self._stats.rate_limits += 1
                if attempt >= self.settings.max_retries:
                    log.warning(f"{method} {url} still rate limited after {attempt} retries")
                    return exc.response
                attempt += 1
                delay = self._retry_delay(exc.retry_after)
                log.info(
                    f"{method} {url} rate limited, retrying in {delay:.2f}s "
                    f"(attempt {attempt}/{self.settings.max_retries})"
                )
                await asyncio.sleep(delay)

    async def _send_once(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]],
        json: Any,
        headers: Dict[str, str],
    ) -> ApiResponse:
        self._stats.requests += 1
        try:
            resp = await self._http.request(method, url, params=params, json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        result = ApiResponse(
            status_code=resp.status_code,
            headers={k.lower(): v for k, v in resp.headers.items()},
            body=resp.text,
        )
        log.debug(f"{method} {url} -> {resp.status_code}")
        if resp.status_code == 429:
            raise RateLimitedError(_parse_retry_after(result.headers), response=result)
        return result

    def _retry_delay(self, hint: Optional[float]) -> float:
        if hint is None:
            return self.settings.rate_limit_delay
        return min(max(hint, 0.0), self.settings.max_retry_delay)

    # --- Credentials ---
    async def derive_read_only_client(self) -> "ContentfulClient":
        """Return a client that reads through the delivery API.

        A client already holding a delivery token is returned as-is. With a
        personal access token, a temporary delivery key is created for the
        current environment, recorded for cleanup, and polled until the CDN
        accepts it.
        """
        if not is_management_token(self.access_token):
            return self

        space = self.connection.space_id
        environment = self.connection.environment
        resp = await self.post(
            self.space_path("/api_keys"),
            scoped=False,
            json={
                "name": TEMPORARY_KEY_NAME,
                "environments": [
                    {"sys": {"type": "Link", "linkType": "Environment", "id": environment}}
                ],
            },
        )
        if not resp.ok:
            raise CredentialError(f"{resp.status_code} creating delivery API key for space {space}:\n  {resp.body}")

        try:
            data = resp.json()
            credential = Credential(
                id=data["sys"]["id"],
                access_token=data["accessToken"],
                environment_id=environment,
            )
        except (TransportError, KeyError, TypeError) as exc:
            raise CredentialError(f"Unexpected response creating delivery API key: {resp.body[:500]}") from exc

        # Cleanup deletes it even if activation fails
        self._credentials.append(credential)
        log.info(f"Created temporary delivery key {credential.id} for space {space}")

        child = ContentfulClient(
            SpaceConnection(
                space_id=space,
                access_token=credential.access_token,
                environment_id=self.connection.environment_id,
            ),
            self.settings,
            host=self.settings.delivery_host,
            http=self._http,
        )
        await child._wait_until_active()
        return child

    async def _wait_until_active(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.key_wait_budget
        while True:
            resp = await self.get("/content_types", params={"limit": 1})
            if resp.ok:
                return
            if resp.status_code != 401:
                raise CredentialError(f"{resp.status_code} checking delivery API key:\n  {resp.body}")
            if loop.time() + self.settings.key_poll_interval > deadline:
                raise CredentialError(
                    f"Delivery API key not active after {self.settings.key_wait_budget}s "
                    f"for space {self.connection.space_id}"
                )
            await asyncio.sleep(self.settings.key_poll_interval)

    async def cleanup(self) -> None:
        """Delete every delivery key this client created. Deletions are independent."""
        credentials, self._credentials = self._credentials, []
        if not credentials:
            return

        results = await asyncio.gather(
            *(self._delete_credential(c) for c in credentials),
            return_exceptions=True,
        )
        for credential, result in zip(credentials, results):
            if isinstance(result, BaseException):
                log.error(f"Failed to delete temporary delivery key {credential.id}: {result}")

    async def _delete_credential(self, credential: Credential) -> None:
        resp = await self.delete(self.space_path(f"/api_keys/{credential.id}"), scoped=False)
        if not resp.ok:
            raise TransportError(
                f"{resp.status_code} deleting api key {credential.id}",
                status_code=resp.status_code,
                body=resp.body,
            )
        log.info(f"Deleted temporary delivery key {credential.id}")

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
