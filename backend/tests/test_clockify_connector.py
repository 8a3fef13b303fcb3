import json
from datetime import date

import httpx
import pytest

from timesync.connectors.base import EntryFields, SyncWindow
from timesync.connectors.clockify_connector import ClockifyConnector
from timesync.connectors.errors import (
    AuthError,
    NotFoundError,
    RateLimitedError,
    RemoteProtocolError,
    TransientError,
)
from timesync.connectors.rate_limiter import RateLimiter
from timesync.utils.timeutils import parse_timestamp

ENTRY = {
    "id": "ext-1",
    "description": "Design review",
    "userId": "remote-user-1",
    "workspaceId": "ws-1",
    "projectId": "p1",
    "billable": True,
    "timeInterval": {"start": "2024-03-04T09:00:00Z", "end": "2024-03-04T10:00:00Z"},
}


class Recorder:
    """Records backoff sleeps without waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_connector(handler, sleep=None, **kwargs):
    recorder = sleep or Recorder()
    limiter = RateLimiter(50, clock=lambda: 0.0, sleep=recorder)
    connector = ClockifyConnector(
        "remote-key",
        base_url="https://clockify.test/api/v1",
        rate_limiter=limiter,
        max_attempts=3,
        backoff_base=1.0,
        transport=httpx.MockTransport(handler),
        sleep=recorder,
        **kwargs,
    )
    return connector, recorder


def window():
    return SyncWindow(user_id=1, start_date=date(2024, 3, 4), end_date=date(2024, 3, 10))


@pytest.mark.asyncio
async def test_list_entries_sends_key_and_window_params():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[ENTRY])

    connector, _ = make_connector(handler, page_size=50)
    listing = await connector.list_entries("ws-1", "remote-user-1", window(), page=2)
    await connector.close()

    request = seen[0]
    assert request.headers["X-Api-Key"] == "remote-key"
    assert request.url.path == "/api/v1/workspaces/ws-1/user/remote-user-1/time-entries"
    assert request.url.params["start"] == "2024-03-04T00:00:00Z"
    assert request.url.params["end"] == "2024-03-10T23:59:59Z"
    assert request.url.params["page"] == "2"
    assert request.url.params["page-size"] == "50"

    assert listing.size == 1
    entry = listing.entries[0]
    assert entry.id == "ext-1"
    assert entry.project_id == "p1"
    assert entry.billable is True
    assert entry.start == parse_timestamp("2024-03-04T09:00:00Z")


@pytest.mark.asyncio
async def test_transient_failures_are_retried_with_backoff():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    connector, recorder = make_connector(handler)
    with pytest.raises(TransientError):
        await connector.list_entries("ws-1", "remote-user-1", window(), page=1)

    assert len(calls) == 3
    assert recorder.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_transient_failure_then_success():
    responses = [httpx.Response(502), httpx.Response(200, json=[ENTRY])]

    def handler(request):
        return responses.pop(0)

    connector, recorder = make_connector(handler)
    listing = await connector.list_entries("ws-1", "remote-user-1", window(), page=1)
    assert [e.id for e in listing.entries] == ["ext-1"]
    assert recorder.delays == [1.0]


@pytest.mark.asyncio
async def test_network_errors_are_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    connector, recorder = make_connector(handler)
    with pytest.raises(TransientError):
        await connector.authenticate()
    assert recorder.delays == [1.0, 2.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_auth_failures_are_not_retried(status):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status, json={"message": "Unauthorized"})

    connector, recorder = make_connector(handler)
    with pytest.raises(AuthError) as exc_info:
        await connector.authenticate()
    assert len(calls) == 1
    assert recorder.delays == []
    assert exc_info.value.systemic is True
    assert exc_info.value.status_code == status


@pytest.mark.asyncio
async def test_missing_entry_raises_not_found():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404)

    connector, _ = make_connector(handler)
    fields = EntryFields(description="x", start=parse_timestamp("2024-03-04T09:00:00Z"))
    with pytest.raises(NotFoundError):
        await connector.update_entry("ws-1", "gone", fields)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_rejected_request_is_a_protocol_error():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"message": "Invalid start"})

    connector, _ = make_connector(handler)
    fields = EntryFields(start=parse_timestamp("2024-03-04T09:00:00Z"))
    with pytest.raises(RemoteProtocolError):
        await connector.create_entry("ws-1", fields)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_malformed_body_is_retried_once():
    responses = [httpx.Response(200, content=b"{not json"), httpx.Response(200, json={"id": "u1"})]

    def handler(request):
        return responses.pop(0)

    connector, recorder = make_connector(handler)
    user = await connector.authenticate()
    assert user.id == "u1"
    assert recorder.delays == [1.0]


@pytest.mark.asyncio
async def test_malformed_body_twice_is_a_protocol_error():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, content=b"<html>oops</html>")

    connector, _ = make_connector(handler)
    with pytest.raises(RemoteProtocolError):
        await connector.authenticate()
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_unexpected_shape_is_a_protocol_error():
    def handler(request):
        return httpx.Response(200, json={"entries": []})

    connector, _ = make_connector(handler)
    with pytest.raises(RemoteProtocolError):
        await connector.list_entries("ws-1", "remote-user-1", window(), page=1)


@pytest.mark.asyncio
async def test_unreadable_items_do_not_fail_the_page():
    broken = {k: v for k, v in ENTRY.items() if k != "timeInterval"}
    broken["id"] = "ext-broken"

    def handler(request):
        return httpx.Response(200, json=[ENTRY, broken, "garbage", {**ENTRY, "id": "ext-2"}])

    connector, _ = make_connector(handler)
    listing = await connector.list_entries("ws-1", "remote-user-1", window(), page=1)

    assert [e.id for e in listing.entries] == ["ext-1", "ext-2"]
    assert [r.external_id for r in listing.rejected] == ["ext-broken", None]
    assert "start" in listing.rejected[0].reason
    assert listing.size == 4


@pytest.mark.asyncio
async def test_malformed_body_on_last_attempt_is_a_protocol_error():
    calls = []
    responses = [httpx.Response(503), httpx.Response(503), httpx.Response(200, content=b"{not json")]

    def handler(request):
        calls.append(request)
        return responses.pop(0)

    connector, recorder = make_connector(handler)
    with pytest.raises(RemoteProtocolError) as exc_info:
        await connector.authenticate()

    assert len(calls) == 3
    assert recorder.delays == [1.0, 2.0]
    assert not exc_info.value.retryable


@pytest.mark.asyncio
@pytest.mark.parametrize("retry_after,expected", [("0.5", 1.0), ("3", 3.0)])
async def test_remote_429_waits_at_least_one_window(retry_after, expected):
    responses = [
        httpx.Response(429, headers={"Retry-After": retry_after}),
        httpx.Response(200, json={"id": "u1"}),
    ]

    def handler(request):
        return responses.pop(0)

    connector, recorder = make_connector(handler)
    await connector.authenticate()
    assert recorder.delays == [expected]


@pytest.mark.asyncio
async def test_persistent_429_surfaces_rate_limited():
    def handler(request):
        return httpx.Response(429)

    connector, _ = make_connector(handler)
    with pytest.raises(RateLimitedError):
        await connector.authenticate()


@pytest.mark.asyncio
async def test_create_entry_posts_canonical_body():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={**ENTRY, "id": "new-1"})

    connector, _ = make_connector(handler)
    fields = EntryFields(
        description=None,
        start=parse_timestamp("2024-03-04T09:00:00+01:00"),
        end=parse_timestamp("2024-03-04T10:00:00+01:00"),
        project_id="p1",
        billable=True,
    )
    created = await connector.create_entry("ws-1", fields)

    assert created.id == "new-1"
    assert bodies == [{
        "description": "",
        "start": "2024-03-04T08:00:00Z",
        "end": "2024-03-04T09:00:00Z",
        "projectId": "p1",
        "billable": True,
    }]


@pytest.mark.asyncio
async def test_delete_accepts_empty_response():
    def handler(request):
        assert request.method == "DELETE"
        return httpx.Response(204)

    connector, _ = make_connector(handler)
    assert await connector.delete_entry("ws-1", "ext-1") is None


@pytest.mark.asyncio
async def test_get_projects_parses_client_name():
    def handler(request):
        assert request.url.params["archived"] == "false"
        return httpx.Response(200, json=[{"id": "p1", "name": "Website", "clientName": "ACME"}])

    connector, _ = make_connector(handler)
    projects = await connector.get_projects("ws-1")
    assert projects[0].name == "Website"
    assert projects[0].client_name == "ACME"


def test_api_key_is_required():
    with pytest.raises(ValueError):
        ClockifyConnector("")


@pytest.mark.asyncio
async def test_get_running_entry_asks_for_in_progress_timer():
    running = {**ENTRY, "timeInterval": {"start": "2024-03-04T09:00:00Z", "end": None}}

    def handler(request):
        assert request.url.params["in-progress"] == "true"
        return httpx.Response(200, json=[running])

    connector, _ = make_connector(handler)
    entry = await connector.get_running_entry("ws-1", "remote-user-1")
    assert entry.id == "ext-1"
    assert entry.end is None


@pytest.mark.asyncio
async def test_get_running_entry_without_timer():
    def handler(request):
        return httpx.Response(200, json=[])

    connector, _ = make_connector(handler)
    assert await connector.get_running_entry("ws-1", "remote-user-1") is None


@pytest.mark.asyncio
async def test_get_entry_by_id():
    def handler(request):
        assert request.url.path == "/api/v1/workspaces/ws-1/time-entries/ext-1"
        return httpx.Response(200, json=ENTRY)

    connector, _ = make_connector(handler)
    entry = await connector.get_entry("ws-1", "ext-1")
    assert entry.description == "Design review"
