import pytest

from timesync.connectors.clockify_connector import ClockifyConnector
from timesync.connectors.factory import ConnectorCache, RemoteCredentials, build_connector, credential_identity

from fakes import FakeConnector


def credentials(api_key="remote-key"):
    return RemoteCredentials(api_key=api_key, workspace_id="ws-1", external_user_id="remote-user-1")


def test_identity_is_a_digest_of_the_key():
    identity = credentials().identity
    assert identity == credential_identity("remote-key")
    assert "remote-key" not in identity
    assert len(identity) == 64


@pytest.mark.asyncio
async def test_build_connector_uses_the_api_key():
    connector = build_connector(credentials())
    try:
        assert isinstance(connector, ClockifyConnector)
        assert connector.headers["X-Api-Key"] == "remote-key"
    finally:
        await connector.close()


@pytest.mark.asyncio
async def test_cache_reuses_connector_per_credential():
    built = []

    def builder(creds):
        connector = FakeConnector()
        built.append(connector)
        return connector

    cache = ConnectorCache(builder=builder)
    first = cache.get(credentials())
    assert cache.get(credentials()) is first
    other = cache.get(credentials("another-key"))
    assert other is not first
    assert len(cache) == 2
    assert len(built) == 2


@pytest.mark.asyncio
async def test_evict_closes_the_connector():
    cache = ConnectorCache(builder=lambda creds: FakeConnector())
    connector = cache.get(credentials())
    await cache.evict("remote-key")
    assert connector.closed is True
    assert len(cache) == 0
    # Unknown keys are ignored
    await cache.evict("never-seen")
    assert cache.get(credentials()) is not connector


@pytest.mark.asyncio
async def test_close_all():
    cache = ConnectorCache(builder=lambda creds: FakeConnector())
    connectors = [cache.get(credentials(key)) for key in ("a", "b")]
    await cache.close_all()
    assert all(c.closed for c in connectors)
    assert len(cache) == 0
