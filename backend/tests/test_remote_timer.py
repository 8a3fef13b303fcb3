from datetime import datetime, timedelta, timezone

import pytest

from timesync.connectors.errors import NotFoundError
from timesync.connectors.factory import RemoteCredentials
from timesync.services.errors import Conflict, GoalNotFound, TimerNotRunning
from timesync.services.mapping_resolver import MappingResolver
from timesync.services.remote_timer import RemoteTimer

from fakes import FakeConnector, remote_entry

NINE = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

CREDENTIALS = RemoteCredentials(api_key="remote-key", workspace_id="ws-1", external_user_id="remote-user-1")


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def make_timer(db, connector, clock=None):
    return RemoteTimer(db, connector, CREDENTIALS, now=clock or Clock(NINE))


@pytest.mark.asyncio
async def test_start_uses_the_mapped_project(db, user, goal):
    MappingResolver(db).create_mapping(user.id, "p1", goal.id)
    connector = FakeConnector()
    timer = make_timer(db, connector)

    entry = await timer.start(user.id, "Writing", goal_id=goal.id)

    (_, fields), = connector.calls_of("create")
    assert fields.project_id == "p1"
    assert fields.start == NINE
    assert fields.end is None
    assert entry.end is None
    assert timer.goal_of(user.id, entry) == goal.id


@pytest.mark.asyncio
async def test_start_without_mapping_has_no_project(db, user, goal):
    connector = FakeConnector()
    await make_timer(db, connector).start(user.id, "Writing", goal_id=goal.id)
    (_, fields), = connector.calls_of("create")
    assert fields.project_id is None


@pytest.mark.asyncio
async def test_start_with_foreign_goal_is_rejected(db, other_user, goal):
    connector = FakeConnector()
    with pytest.raises(GoalNotFound):
        await make_timer(db, connector).start(other_user.id, "Writing", goal_id=goal.id)
    assert connector.calls_of("create") == []


@pytest.mark.asyncio
async def test_only_one_timer_runs(db, user):
    connector = FakeConnector([remote_entry("ext-1", "Running", NINE, None)])
    with pytest.raises(Conflict):
        await make_timer(db, connector).start(user.id, "Second")
    assert connector.calls_of("create") == []


@pytest.mark.asyncio
async def test_stop_closes_the_running_timer(db, user):
    connector = FakeConnector([remote_entry("ext-1", "Running", NINE, None, project_id="p1", billable=True)])
    clock = Clock(NINE + timedelta(minutes=45))
    timer = make_timer(db, connector, clock)

    assert timer.elapsed_seconds(await timer.current()) == 2700
    stopped = await timer.stop(user.id)

    (_, remote_id, fields), = connector.calls_of("update")
    assert remote_id == "ext-1"
    assert fields.start == NINE
    assert fields.end == clock.now
    assert (fields.description, fields.project_id, fields.billable) == ("Running", "p1", True)
    assert stopped.end == clock.now
    assert await timer.current() is None


@pytest.mark.asyncio
async def test_stop_by_id_and_nothing_running(db, user):
    connector = FakeConnector([remote_entry("ext-1", "Done", NINE, NINE + timedelta(hours=1))])
    timer = make_timer(db, connector)

    with pytest.raises(TimerNotRunning):
        await timer.stop(user.id)
    with pytest.raises(TimerNotRunning):
        await timer.stop(user.id, entry_id="ext-1")
    assert connector.calls_of("get") == [("get", "ext-1")]
    assert connector.calls_of("update") == []


@pytest.mark.asyncio
async def test_discard_deletes_remotely(db, user):
    connector = FakeConnector([remote_entry("ext-1", "Running", NINE, None)])
    timer = make_timer(db, connector)

    await timer.discard(user.id, "ext-1")

    assert "ext-1" not in connector.remote
    with pytest.raises(NotFoundError):
        await timer.discard(user.id, "ext-1")
