import httpx
import pytest

from contentful_transform.connectors.contentful.types import ClientSettings, SpaceConnection
from contentful_transform.core.exceptions import ConfigurationError
from contentful_transform.wiring.space_wiring import ClientPool


def make_pool():
    return ClientPool(http=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))))


def test_pool_shares_one_client_per_space_and_environment():
    pool = make_pool()

    source = pool.get(SpaceConnection("s1", "token"), ClientSettings())
    sink = pool.get(SpaceConnection("s1", "token"), ClientSettings())
    staging = pool.get(SpaceConnection("s1", "token", "staging"), ClientSettings())

    assert source is sink
    assert staging is not source
    assert [key for key, _ in pool] == ["s1", "s1/staging"]


def test_pool_rejects_a_second_token_for_the_same_space():
    pool = make_pool()
    pool.get(SpaceConnection("s1", "source-token"), ClientSettings())

    with pytest.raises(ConfigurationError, match="two different access tokens"):
        pool.get(SpaceConnection("s1", "sink-token"), ClientSettings())


def test_pool_rejects_different_transport_settings_for_the_same_space():
    pool = make_pool()
    pool.get(SpaceConnection("s1", "token"), ClientSettings())

    with pytest.raises(ConfigurationError, match="two different transport settings"):
        pool.get(SpaceConnection("s1", "token"), ClientSettings(max_concurrent_writes=8))
