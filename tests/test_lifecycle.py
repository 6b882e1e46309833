"""Tests for session_tracker.lifecycle: start/stop rules and activity changes."""

from datetime import datetime

import pytest

from conftest import NOW
from session_tracker.errors import ConflictError, InvalidStateError, ValidationError


def test_start_session_snapshots_activity_and_goals(manager, reading):
    session = manager.start_session(reading, ["Chapter 1", "  Chapter 2 "])

    assert session.start_time == NOW
    assert session.is_running
    assert session.saved_activity_name == "Reading"
    assert session.saved_activity_color == "#FF9500"
    assert [goal.text for goal in session.goals] == ["Chapter 1", "Chapter 2"]
    assert not any(goal.is_completed for goal in session.goals)

    stored = manager.get_session(session.id)
    assert stored.activity.id == reading.id
    assert [goal.text for goal in stored.goals] == ["Chapter 1", "Chapter 2"]
    assert [goal.position for goal in stored.goals] == [0, 1]


def test_start_session_while_running_conflicts(manager, reading, coding):
    manager.start_session(reading)
    with pytest.raises(ConflictError, match="stop the current session first"):
        manager.start_session(coding, ["Refactor"])
    assert len(manager.list_sessions()) == 1


def test_never_two_running_sessions(manager, clock, reading, coding):
    activities = [reading, coding]
    for step in range(6):
        activity = activities[step % 2]
        session = manager.start_session(activity)
        with pytest.raises(ConflictError):
            manager.start_session(activities[(step + 1) % 2])
        assert sum(s.is_running for s in manager.list_sessions()) == 1
        clock.advance(minutes=25)
        manager.end_session(session)
        assert sum(s.is_running for s in manager.list_sessions()) == 0
        clock.advance(minutes=5)
    assert len(manager.list_sessions()) == 6


def test_blank_goal_rejects_whole_start(manager, reading):
    with pytest.raises(ValidationError):
        manager.start_session(reading, ["Chapter 1", "   "])
    assert manager.list_sessions() == []


def test_start_session_for_deleted_activity(manager, reading):
    manager.delete_activity(reading)
    with pytest.raises(InvalidStateError):
        manager.start_session(reading)


def test_end_session_sets_end_time(manager, clock, reading):
    session = manager.start_session(reading)
    clock.advance(minutes=40)
    manager.end_session(session)
    assert session.end_time == datetime(2026, 2, 18, 16, 10)
    assert manager.get_session(session.id).end_time == datetime(2026, 2, 18, 16, 10)
    assert manager.active_session() is None


def test_end_session_twice_fails_and_keeps_end_time(manager, clock, reading):
    session = manager.start_session(reading)
    clock.advance(minutes=10)
    manager.end_session(session)
    first_end = session.end_time

    clock.advance(minutes=10)
    with pytest.raises(InvalidStateError, match="already ended"):
        manager.end_session(session)
    assert session.end_time == first_end
    assert manager.get_session(session.id).end_time == first_end


def test_end_session_with_stale_copy_still_fails(manager, clock, reading):
    session = manager.start_session(reading)
    stale = manager.get_session(session.id)
    clock.advance(minutes=10)
    manager.end_session(session)
    with pytest.raises(InvalidStateError):
        manager.end_session(stale)


def test_end_deleted_session(manager, reading):
    session = manager.start_session(reading)
    manager.delete_session(session)
    with pytest.raises(InvalidStateError, match="deleted"):
        manager.end_session(session)


def test_add_accomplishment_on_running_and_closed(manager, clock, reading):
    session = manager.start_session(reading, ["Chapter 1"])
    during = manager.add_accomplishment(session, "Skimmed chapter 2")
    clock.advance(minutes=30)
    manager.end_session(session)
    after = manager.add_accomplishment(session, " Took notes ")

    assert during.is_completed and after.is_completed
    assert after.text == "Took notes"
    stored = manager.get_session(session.id)
    assert [goal.text for goal in stored.goals] == ["Chapter 1", "Skimmed chapter 2", "Took notes"]
    assert stored.goal_progress == (2, 3)


def test_finish_session_records_everything(manager, clock, reading):
    session = manager.start_session(reading, ["Chapter 1"])
    clock.advance(minutes=50)
    manager.finish_session(
        session, ["Took notes"], productivity_rating=9, notes="Start at ch. 2"
    )

    assert session.end_time == datetime(2026, 2, 18, 16, 20)
    stored = manager.get_session(session.id)
    assert stored.end_time == session.end_time
    assert [goal.text for goal in stored.goals] == ["Chapter 1", "Took notes"]
    assert stored.goal_progress == (1, 2)
    assert (stored.productivity_rating, stored.distraction_rating) == (9, 5)
    assert stored.notes == "Start at ch. 2"


def test_finish_ended_session_writes_nothing(manager, clock, reading):
    session = manager.start_session(reading)
    stale = manager.get_session(session.id)
    clock.advance(minutes=10)
    manager.end_session(session)

    with pytest.raises(InvalidStateError, match="already ended"):
        manager.finish_session(stale, ["Took notes"], distraction_rating=3, notes="x")
    stored = manager.get_session(session.id)
    assert stored.goals == []
    assert stored.distraction_rating == 5
    assert stored.notes == ""
    assert stale.goals == []


def test_finish_session_rejects_bad_input_before_closing(manager, reading):
    session = manager.start_session(reading)
    with pytest.raises(ValidationError):
        manager.finish_session(session, ["  "])
    with pytest.raises(ValidationError):
        manager.finish_session(session, productivity_rating=11)
    assert manager.get_session(session.id).is_running


def test_start_session_refreshes_stale_activity(manager, reading):
    stale = manager.get_activity(reading.id)
    manager.rename_activity(reading, "Novels", "#AF52DE")

    session = manager.start_session(stale)
    assert session.activity is stale
    assert (stale.name, stale.color) == ("Novels", "#AF52DE")
    assert session.display_title == session.saved_activity_name == "Novels"
    assert session.display_color == session.saved_activity_color == "#AF52DE"


def test_add_blank_accomplishment(manager, reading):
    session = manager.start_session(reading)
    with pytest.raises(ValidationError):
        manager.add_accomplishment(session, "  ")
    assert manager.get_session(session.id).goals == []


def test_toggle_goal(manager, reading):
    session = manager.start_session(reading, ["Chapter 1"])
    goal = session.goals[0]
    manager.toggle_goal(goal)
    assert manager.get_goal(goal.id).is_completed
    manager.toggle_goal(goal)
    assert not manager.get_goal(goal.id).is_completed


def test_update_review(manager, reading):
    session = manager.start_session(reading)
    manager.update_review(session, productivity_rating=8, distraction_rating=2, notes="Start at ch. 3")
    stored = manager.get_session(session.id)
    assert (stored.productivity_rating, stored.distraction_rating) == (8, 2)
    assert stored.notes == "Start at ch. 3"


@pytest.mark.parametrize("rating", [0, 11, -3])
def test_update_review_rejects_out_of_range(manager, reading, rating):
    session = manager.start_session(reading)
    with pytest.raises(ValidationError):
        manager.update_review(session, productivity_rating=rating, notes="ignored")
    stored = manager.get_session(session.id)
    assert stored.productivity_rating == 5
    assert stored.notes == ""


def test_create_activity_validation(manager):
    with pytest.raises(ValidationError):
        manager.create_activity("   ")
    with pytest.raises(ValidationError):
        manager.create_activity("Reading", "not-a-color")
    assert manager.list_activities() == []


def test_duplicate_activity_names_are_allowed(manager):
    manager.create_activity("Reading")
    manager.create_activity("Reading")
    assert [a.name for a in manager.list_activities()] == ["Reading", "Reading"]


def test_rename_syncs_only_linked_sessions(manager, clock, reading, coding):
    first = manager.start_session(reading)
    clock.advance(minutes=30)
    manager.end_session(first)
    other = manager.start_session(coding)
    clock.advance(minutes=30)
    manager.end_session(other)

    manager.rename_activity(reading, "Deep reading", "#5856D6")

    assert reading.name == "Deep reading"
    by_id = {s.id: s for s in manager.list_sessions()}
    assert by_id[first.id].saved_activity_name == "Deep reading"
    assert by_id[first.id].saved_activity_color == "#5856D6"
    assert by_id[other.id].saved_activity_name == "Coding"
    assert by_id[other.id].saved_activity_color == "#34C759"


def test_rename_leaves_detached_sessions_frozen(manager, clock):
    old = manager.create_activity("Reading", "#FF9500")
    orphan = manager.start_session(old)
    clock.advance(minutes=30)
    manager.end_session(orphan)
    manager.delete_activity(old)

    replacement = manager.create_activity("Reading", "#FF9500")
    linked = manager.start_session(replacement)
    manager.rename_activity(replacement, "Novels", "#AF52DE")

    by_id = {s.id: s for s in manager.list_sessions()}
    assert by_id[orphan.id].saved_activity_name == "Reading"
    assert by_id[orphan.id].saved_activity_color == "#FF9500"
    assert by_id[linked.id].saved_activity_name == "Novels"


def test_rename_validation_applies_nothing(manager, reading):
    with pytest.raises(ValidationError):
        manager.rename_activity(reading, " ", "#000000")
    assert manager.get_activity(reading.id).name == "Reading"
    assert reading.color == "#FF9500"


def test_delete_activity_keeps_sessions(manager, clock, reading):
    session = manager.start_session(reading, ["Chapter 1"])
    clock.advance(minutes=30)
    manager.end_session(session)
    before = manager.get_session(session.id).display_title

    detached = manager.delete_activity(reading)

    assert detached == 1
    stored = manager.get_session(session.id)
    assert stored.activity is None
    assert stored.display_title == before == stored.saved_activity_name
    assert [goal.text for goal in stored.goals] == ["Chapter 1"]
    assert manager.list_activities() == []
    with pytest.raises(InvalidStateError):
        manager.delete_activity(reading)


def test_delete_session_history(manager, clock, reading, coding):
    for activity in (reading, reading, coding):
        session = manager.start_session(activity, ["Goal"])
        clock.advance(minutes=20)
        manager.end_session(session)

    assert manager.delete_session_history(reading) == 2

    remaining = manager.list_sessions()
    assert [s.display_title for s in remaining] == ["Coding"]
    assert manager.get_activity(reading.id).name == "Reading"
    goal_rows = manager._conn.execute("SELECT session_id FROM session_goals").fetchall()
    assert [row["session_id"] for row in goal_rows] == [remaining[0].id]


def test_delete_session_history_can_remove_running_session(manager, reading, coding):
    manager.start_session(reading)
    manager.delete_session_history(reading)
    assert manager.active_session() is None
    assert manager.start_session(coding).is_running


def test_list_activities_sorted_by_name(manager):
    for name in ("writing", "Coding", "reading"):
        manager.create_activity(name)
    assert [a.name for a in manager.list_activities()] == ["Coding", "reading", "writing"]
