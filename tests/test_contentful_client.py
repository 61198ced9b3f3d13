import asyncio
import json

import httpx
import pytest

from contentful_transform.connectors.contentful.client import TEMPORARY_KEY_NAME, ContentfulClient
from contentful_transform.connectors.contentful.types import (
    DELIVERY_HOST,
    MANAGEMENT_HOST,
    ClientSettings,
    SpaceConnection,
)
from contentful_transform.core.exceptions import CredentialError, TransportError

FAST = ClientSettings(rate_limit_delay=0.0, key_poll_interval=0.01, key_wait_budget=0.2)


def make_client(handler, *, token="CFPAT-secret", environment_id=None, settings=FAST):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ContentfulClient(SpaceConnection("space1", token, environment_id), settings, http=http)


def key_created(key_id="key1", token="cdn-token"):
    return httpx.Response(201, json={"sys": {"id": key_id}, "accessToken": token})


@pytest.mark.asyncio
async def test_read_host_follows_token_kind():
    management = make_client(lambda r: httpx.Response(200))
    delivery = make_client(lambda r: httpx.Response(200), token="delivery-token")

    assert management.host == MANAGEMENT_HOST
    assert delivery.host == DELIVERY_HOST


@pytest.mark.asyncio
async def test_requests_are_scoped_to_environment():
    seen = []

    def handler(request):
        seen.append((request.url.host, request.url.path))
        return httpx.Response(200, json={})

    staging = make_client(handler, token="delivery-token", environment_id="staging")
    master = make_client(handler, token="delivery-token", environment_id="master")
    await staging.get("/entries")
    await master.get("/entries")

    assert seen == [
        ("cdn.contentful.com", "/spaces/space1/environments/staging/entries"),
        ("cdn.contentful.com", "/spaces/space1/entries"),
    ]


@pytest.mark.asyncio
async def test_writes_always_go_to_management_host():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.host, request.headers["content-type"]))
        return httpx.Response(200, json={})

    client = make_client(handler, token="delivery-token")
    await client.put("/entries/e1", json={"fields": {}})

    assert seen == [("PUT", "api.contentful.com", "application/vnd.contentful.management.v1+json")]


@pytest.mark.asyncio
async def test_derive_read_only_client_is_identity_for_delivery_tokens():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200)

    client = make_client(handler, token="delivery-token")
    derived = await client.derive_read_only_client()

    assert derived is client
    assert calls == []
    assert client.credentials == ()


@pytest.mark.asyncio
async def test_derive_read_only_client_creates_and_waits_for_delivery_key():
    requests = []
    polls = {"count": 0}

    def handler(request):
        requests.append(request)
        if request.method == "POST":
            return key_created()
        polls["count"] += 1
        # first poll: key not propagated yet
        if polls["count"] == 1:
            return httpx.Response(401, json={"message": "invalid token"})
        return httpx.Response(200, json={"items": []})

    client = make_client(handler)
    derived = await client.derive_read_only_client()

    create = requests[0]
    assert create.url.host == "api.contentful.com"
    assert create.url.path == "/spaces/space1/api_keys"
    assert create.headers["authorization"] == "Bearer CFPAT-secret"
    body = json.loads(create.content)
    assert body["name"] == TEMPORARY_KEY_NAME
    assert body["environments"] == [{"sys": {"type": "Link", "linkType": "Environment", "id": "master"}}]

    polls_seen = requests[1:]
    assert len(polls_seen) == 2
    assert all(r.url.host == "cdn.contentful.com" for r in polls_seen)
    assert polls_seen[-1].url.path == "/spaces/space1/content_types"
    assert polls_seen[-1].url.params["limit"] == "1"
    assert polls_seen[-1].headers["authorization"] == "Bearer cdn-token"

    assert derived is not client
    assert derived.access_token == "cdn-token"
    assert derived.host == DELIVERY_HOST
    assert [c.id for c in client.credentials] == ["key1"]


@pytest.mark.asyncio
async def test_derive_read_only_client_uses_environment_link():
    bodies = []

    def handler(request):
        if request.method == "POST":
            bodies.append(json.loads(request.content))
            return key_created()
        return httpx.Response(200, json={"items": []})

    client = make_client(handler, environment_id="staging")
    derived = await client.derive_read_only_client()

    assert bodies[0]["environments"][0]["sys"]["id"] == "staging"
    assert derived.environment_path("/entries") == "/spaces/space1/environments/staging/entries"


@pytest.mark.asyncio
async def test_derive_fails_when_key_never_activates_but_key_is_still_cleaned_up():
    deleted = []

    def handler(request):
        if request.method == "POST":
            return key_created()
        if request.method == "DELETE":
            deleted.append(request.url.path)
            return httpx.Response(204)
        return httpx.Response(401)

    client = make_client(handler)
    with pytest.raises(CredentialError, match="not active"):
        await client.derive_read_only_client()

    assert [c.id for c in client.credentials] == ["key1"]
    await client.cleanup()
    assert deleted == ["/spaces/space1/api_keys/key1"]


@pytest.mark.asyncio
async def test_derive_fails_when_key_creation_is_rejected():
    client = make_client(lambda r: httpx.Response(403, json={"message": "forbidden"}))

    with pytest.raises(CredentialError, match="403"):
        await client.derive_read_only_client()
    assert client.credentials == ()


@pytest.mark.asyncio
async def test_cleanup_without_credentials_sends_nothing():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(204)

    client = make_client(handler)
    await client.cleanup()

    assert calls == []


@pytest.mark.asyncio
async def test_cleanup_deletes_each_key_once():
    deletes = []

    def handler(request):
        if request.method == "POST":
            return key_created()
        if request.method == "DELETE":
            deletes.append((request.url.host, request.url.path, request.headers["authorization"]))
            return httpx.Response(204)
        return httpx.Response(200, json={"items": []})

    client = make_client(handler)
    await client.derive_read_only_client()
    await client.cleanup()
    await client.cleanup()

    assert deletes == [("api.contentful.com", "/spaces/space1/api_keys/key1", "Bearer CFPAT-secret")]
    assert client.credentials == ()


@pytest.mark.asyncio
async def test_cleanup_attempts_every_delete_even_when_one_fails():
    created = iter(["key1", "key2"])
    deletes = []

    def handler(request):
        if request.method == "POST":
            return key_created(next(created))
        if request.method == "DELETE":
            deletes.append(request.url.path)
            if request.url.path.endswith("key1"):
                return httpx.Response(500)
            return httpx.Response(204)
        return httpx.Response(200, json={"items": []})

    client = make_client(handler)
    await client.derive_read_only_client()
    await client.derive_read_only_client()
    await client.cleanup()

    assert sorted(deletes) == ["/spaces/space1/api_keys/key1", "/spaces/space1/api_keys/key2"]


@pytest.mark.asyncio
async def test_rate_limited_requests_are_retried_and_counted():
    responses = iter(
        [
            httpx.Response(429, headers={"X-Contentful-RateLimit-Reset": "0"}),
            httpx.Response(429),
            httpx.Response(200, json={"ok": True}),
        ]
    )
    client = make_client(lambda r: next(responses), token="delivery-token")

    resp = await client.get("/entries")

    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert client.stats.requests == 3
    assert client.stats.rate_limits == 2


@pytest.mark.asyncio
async def test_rate_limit_gives_up_after_max_retries():
    settings = ClientSettings(rate_limit_delay=0.0, max_retries=2)
    client = make_client(lambda r: httpx.Response(429), token="delivery-token", settings=settings)

    resp = await client.get("/entries")

    assert resp.status_code == 429
    assert client.stats.requests == 3


def test_retry_delay_caps_server_hint():
    client = ContentfulClient(
        SpaceConnection("space1", "delivery-token"),
        ClientSettings(rate_limit_delay=1.5, max_retry_delay=10.0),
        http=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
    )

    assert client._retry_delay(None) == 1.5
    assert client._retry_delay(3.0) == 3.0
    assert client._retry_delay(120.0) == 10.0


@pytest.mark.asyncio
async def test_network_failure_raises_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler, token="delivery-token")

    with pytest.raises(TransportError, match="connection refused"):
        await client.get("/entries")


@pytest.mark.asyncio
async def test_max_queue_size_tracks_waiting_requests():
    async def handler(request):
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={})

    settings = ClientSettings(max_concurrent_reads=1)
    client = make_client(handler, token="delivery-token", settings=settings)

    await asyncio.gather(*(client.get("/entries") for _ in range(3)))

    assert client.stats.max_queue_size == 3
    assert client.stats.requests == 3
