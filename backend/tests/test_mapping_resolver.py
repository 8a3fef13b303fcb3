from datetime import datetime, timezone

import pytest

from timesync.models import Goal
from timesync.services.errors import Conflict, GoalNotFound, MappingNotFound
from timesync.services.mapping_resolver import MappingResolver
from timesync.services.time_entries import create_manual_entry


def test_resolve_returns_mapped_goal(db, user, goal):
    resolver = MappingResolver(db)
    resolver.create_mapping(user.id, "p1", goal.id)

    assert resolver.resolve(user.id, "p1") == goal.id
    assert resolver.resolve(user.id, "p2") is None
    assert resolver.resolve(user.id, None) is None


def test_mappings_are_isolated_between_users(db, user, other_user, goal):
    resolver = MappingResolver(db)
    resolver.create_mapping(user.id, "p1", goal.id)

    assert resolver.resolve(other_user.id, "p1") is None
    assert resolver.list_mappings(other_user.id) == []


def test_inactive_or_manual_mappings_do_not_categorise(db, user, goal):
    resolver = MappingResolver(db)
    mapping = resolver.create_mapping(user.id, "p1", goal.id, auto_categorize=False)
    assert resolver.resolve(user.id, "p1") is None

    resolver.update_mapping(user.id, mapping.id, auto_categorize=True, is_active=False)
    assert resolver.resolve(user.id, "p1") is None


def test_duplicate_active_mapping_is_rejected(db, user, goal):
    resolver = MappingResolver(db)
    resolver.create_mapping(user.id, "p1", goal.id)
    with pytest.raises(Conflict):
        resolver.create_mapping(user.id, "p1", goal.id)


def test_inactive_duplicate_is_allowed_but_cannot_be_reactivated(db, user, goal):
    resolver = MappingResolver(db)
    first = resolver.create_mapping(user.id, "p1", goal.id)
    resolver.update_mapping(user.id, first.id, is_active=False)
    second = resolver.create_mapping(user.id, "p1", goal.id)

    with pytest.raises(Conflict):
        resolver.update_mapping(user.id, first.id, is_active=True)

    active = resolver.list_mappings(user.id, include_inactive=False)
    assert [m.id for m in active] == [second.id]
    assert len(resolver.list_mappings(user.id)) == 2


def test_racing_duplicate_is_a_conflict(db, user, goal, monkeypatch):
    resolver = MappingResolver(db)
    first = resolver.create_mapping(user.id, "p1", goal.id)
    resolver.update_mapping(user.id, first.id, is_active=False)
    second = resolver.create_mapping(user.id, "p1", goal.id)

    # Both requests passed the check before either wrote
    monkeypatch.setattr(resolver, "_active_mapping", lambda user_id, project_id: None)
    with pytest.raises(Conflict):
        resolver.create_mapping(user.id, "p1", goal.id)
    with pytest.raises(Conflict):
        resolver.update_mapping(user.id, first.id, is_active=True)

    db.expire_all()
    active = resolver.list_mappings(user.id, include_inactive=False)
    assert [m.id for m in active] == [second.id]


def test_goal_must_belong_to_the_user(db, user, other_user):
    foreign_goal = Goal(user_id=other_user.id, name="Not yours")
    db.add(foreign_goal)
    db.commit()

    resolver = MappingResolver(db)
    with pytest.raises(GoalNotFound):
        resolver.create_mapping(user.id, "p1", foreign_goal.id)


def test_update_mapping_retargets_goal(db, user, goal):
    resolver = MappingResolver(db)
    mapping = resolver.create_mapping(user.id, "p1", goal.id)
    other_goal = Goal(user_id=user.id, name="Other")
    db.add(other_goal)
    db.commit()

    resolver.update_mapping(user.id, mapping.id, goal_id=other_goal.id)
    assert resolver.resolve(user.id, "p1") == other_goal.id


def test_foreign_mapping_is_not_found(db, user, other_user, goal):
    resolver = MappingResolver(db)
    mapping = resolver.create_mapping(user.id, "p1", goal.id)
    with pytest.raises(MappingNotFound):
        resolver.get_mapping(other_user.id, mapping.id)
    with pytest.raises(MappingNotFound):
        resolver.delete_mapping(other_user.id, mapping.id)


def test_deleting_mapping_keeps_existing_categorisation(db, user, goal):
    resolver = MappingResolver(db)
    mapping = resolver.create_mapping(user.id, "p1", goal.id)
    entry = create_manual_entry(
        db,
        user.id,
        start_time=datetime(2024, 3, 4, 9, tzinfo=timezone.utc),
        end_time=datetime(2024, 3, 4, 10, tzinfo=timezone.utc),
        goal_id=goal.id,
        external_project_id="p1",
    )

    resolver.delete_mapping(user.id, mapping.id)

    db.refresh(entry)
    assert entry.goal_id == goal.id
    assert resolver.resolve(user.id, "p1") is None
