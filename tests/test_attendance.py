from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from teamroster.core.errors import NotFoundError
from teamroster.db.models import AttendanceRecord, Event
from teamroster.schemas.player import AttendanceItem
from teamroster.services import assignments, attendance

from conftest import ACTOR, player_in


@pytest.fixture
def event_setup(db, make_team):
    team_id = make_team()
    member_id = assignments.add_player(db, team_id, player_in(1, ["GK"]), actor_id=ACTOR).unwrap()
    event = Event(team_id=team_id, title="Practice", start_datetime=datetime.now(timezone.utc) - timedelta(days=1))
    db.add(event)
    db.commit()
    return team_id, member_id, event.id


def test_second_record_overwrites_the_first(db, event_setup):
    team_id, member_id, event_id = event_setup

    first = attendance.record_attendance(
        db, event_id, [AttendanceItem(team_member_id=member_id, status="present")], actor_id=ACTOR,
    )
    assert first == {"event_id": event_id, "recorded": 1, "failed": []}

    attendance.record_attendance(
        db, event_id, [AttendanceItem(team_member_id=member_id, status="late", notes="traffic")], actor_id=ACTOR,
    )
    rows = db.query(AttendanceRecord).filter_by(event_id=event_id).all()
    assert len(rows) == 1
    assert rows[0].status == "late"
    assert rows[0].notes == "traffic"


def test_bad_items_are_reported_without_blocking_others(db, make_team, event_setup):
    team_id, member_id, event_id = event_setup
    other_team = make_team(name="Elsewhere")
    stranger = assignments.add_player(db, other_team, player_in(2, ["GK"]), actor_id=ACTOR).unwrap()

    out = attendance.record_attendance(db, event_id, [
        AttendanceItem(team_member_id=stranger, status="present"),
        AttendanceItem(team_member_id=member_id, status="asleep"),
        AttendanceItem(team_member_id=member_id, status="excused"),
    ], actor_id=ACTOR)

    assert out["recorded"] == 1
    assert [f["team_member_id"] for f in out["failed"]] == [stranger, member_id]
    assert db.query(AttendanceRecord).one().status == "excused"


def test_record_attendance_for_missing_event(db):
    with pytest.raises(NotFoundError):
        attendance.record_attendance(db, 12345, [], actor_id=ACTOR)


def test_attendance_summary_and_detail(db, event_setup):
    team_id, member_id, event_id = event_setup
    attendance.record_attendance(
        db, event_id, [AttendanceItem(team_member_id=member_id, status="present")], actor_id=ACTOR,
    )

    summary = attendance.get_attendance(db, team_id)
    assert len(summary) == 1
    assert summary[0]["id"] == event_id
    assert (summary[0]["present_count"], summary[0]["absent_count"], summary[0]["late_count"]) == (1, 0, 0)

    detail = attendance.get_attendance(db, team_id, event_id)
    assert detail == [{
        "event_id": event_id,
        "team_member_id": member_id,
        "user_id": 1,
        "status": "present",
        "notes": None,
        "recorded_by": ACTOR,
    }]
