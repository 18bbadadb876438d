from __future__ import annotations

from datetime import date, timedelta

from teamroster.core.errors import ConflictError, NotFoundError, TransactionFailure, ValidationError
from teamroster.db.models import GuestPlayerGame, PlayerPositionAssignment, RosterChangeLog, TeamMember
from teamroster.schemas.player import GuestPlayerIn, PositionAssignment, PositionUpdateIn
from teamroster.services import assignments
from teamroster.services import roster_store as store
from teamroster.services import teams as team_service

from conftest import ACTOR, player_in


def _open_rows(db, team_id, user_id) -> int:
    return (
        db.query(TeamMember)
        .filter(TeamMember.team_id == team_id, TeamMember.user_id == user_id, TeamMember.leave_date.is_(None))
        .count()
    )


def test_add_player_then_duplicate_is_conflict(db, make_team):
    team_id = make_team()
    first = assignments.add_player(db, team_id, player_in(7, ["GK"], jersey=1), actor_id=ACTOR)
    assert first.ok
    assert _open_rows(db, team_id, 7) == 1

    second = assignments.add_player(db, team_id, player_in(7, ["DEF"], jersey=4), actor_id=ACTOR)
    assert not second.ok
    assert isinstance(second.error, ConflictError)
    assert db.query(TeamMember).filter(TeamMember.team_id == team_id).count() == 1


def test_add_player_derives_one_assignment_per_position(db, make_team):
    team_id = make_team()
    member_id = assignments.add_player(
        db, team_id, player_in(7, ["GK", "DEF", "GK"], primary="GK", jersey=1), actor_id=ACTOR,
    ).unwrap()

    rows = db.query(PlayerPositionAssignment).filter_by(team_member_id=member_id).all()
    assert sorted(r.position for r in rows) == ["DEF", "GK"]
    assert {r.jersey_number for r in rows} == {1}
    assert store.decode_positions(db.get(TeamMember, member_id).positions) == ["GK", "DEF"]


def test_add_player_uses_explicit_overrides(db, make_team):
    team_id = make_team()
    data = player_in(
        8, ["MID", "FWD"], primary="MID", jersey=10,
        position_assignments=[PositionAssignment(position="FWD", jersey_number=9)],
    )
    member_id = assignments.add_player(db, team_id, data, actor_id=ACTOR).unwrap()
    rows = db.query(PlayerPositionAssignment).filter_by(team_member_id=member_id).all()
    assert [(r.position, r.jersey_number) for r in rows] == [("FWD", 9)]


def test_add_player_validation_reports_every_field(db, make_team):
    team_id = make_team()
    bad = player_in(9, ["GK"], primary="FWD", jersey=150, team_priority="reserve")
    result = assignments.add_player(db, team_id, bad, actor_id=ACTOR)
    assert isinstance(result.error, ValidationError)
    assert set(result.error.errors) == {"team_priority", "primary_position", "jersey_number"}
    assert db.query(TeamMember).count() == 0


def test_add_player_to_unknown_team(db):
    result = assignments.add_player(db, 999, player_in(1, ["GK"]), actor_id=ACTOR)
    assert isinstance(result.error, NotFoundError)


def test_add_player_rolls_back_when_assignment_insert_fails(db, make_team, monkeypatch):
    team_id = make_team()

    def boom(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(store, "insert_assignment", boom)
    result = assignments.add_player(db, team_id, player_in(7, ["GK"], jersey=1), actor_id=ACTOR)

    assert isinstance(result.error, TransactionFailure)
    assert "disk full" not in result.error.message
    assert db.query(TeamMember).count() == 0


def test_roster_limit_ignores_guests(db, make_team):
    team_id = make_team(max_players=1)
    assert assignments.add_player(db, team_id, player_in(1, ["GK"]), actor_id=ACTOR).ok

    full = assignments.add_player(db, team_id, player_in(2, ["DEF"]), actor_id=ACTOR)
    assert isinstance(full.error, ConflictError)

    guest = GuestPlayerIn(user_id=3, positions=["DEF"], primary_position="DEF")
    assert assignments.add_guest_player(db, team_id, guest, actor_id=ACTOR).ok


def test_update_positions_replaces_active_assignments_and_keeps_history(db, make_team):
    team_id = make_team()
    member_id = assignments.add_player(
        db, team_id, player_in(7, ["GK", "DEF"], primary="GK", jersey=1), actor_id=ACTOR,
    ).unwrap()
    assert store.count_assignments(db, member_id) == 2

    update = PositionUpdateIn(
        positions=["DEF", "MID", "FWD"],
        primary_position="MID",
        jersey_number=6,
        old_positions=["GK", "DEF"],
    )
    result = assignments.update_player_positions(db, team_id, 7, update, actor_id=ACTOR)
    assert result.ok
    assert result.value == 3

    assert store.count_assignments(db, member_id, active_only=True) == 3
    assert store.count_assignments(db, member_id) == 5

    member = db.get(TeamMember, member_id)
    assert member.primary_position == "MID"
    assert member.jersey_number == 6

    log = db.query(RosterChangeLog).filter_by(team_member_id=member_id).one()
    assert log.field_name == "positions"
    assert log.old_value == '["GK", "DEF"]'
    assert log.new_value == '["DEF", "MID", "FWD"]'
    assert log.changed_by == ACTOR


def test_update_positions_with_override_list_counts_overrides(db, make_team):
    team_id = make_team()
    member_id = assignments.add_player(db, team_id, player_in(7, ["GK"], jersey=1), actor_id=ACTOR).unwrap()
    update = PositionUpdateIn(
        positions=["GK", "DEF"],
        primary_position="GK",
        jersey_number=1,
        position_assignments=[PositionAssignment(position="DEF", jersey_number=21)],
    )
    assert assignments.update_player_positions(db, team_id, 7, update, actor_id=ACTOR).unwrap() == 1
    assert store.count_assignments(db, member_id, active_only=True) == 1


def test_update_positions_is_atomic(db, make_team, monkeypatch):
    team_id = make_team()
    member_id = assignments.add_player(
        db, team_id, player_in(7, ["GK", "DEF"], primary="GK", jersey=1), actor_id=ACTOR,
    ).unwrap()

    def boom(*args, **kwargs):
        raise RuntimeError("lost connection")

    monkeypatch.setattr(store, "insert_assignment", boom)
    update = PositionUpdateIn(positions=["MID"], primary_position="MID", jersey_number=8)
    result = assignments.update_player_positions(db, team_id, 7, update, actor_id=ACTOR)

    assert isinstance(result.error, TransactionFailure)
    # old assignments still active, membership row untouched, nothing logged
    assert store.count_assignments(db, member_id, active_only=True) == 2
    member = db.get(TeamMember, member_id)
    assert member.primary_position == "GK"
    assert db.query(RosterChangeLog).count() == 0


def test_update_positions_for_non_member(db, make_team):
    team_id = make_team()
    update = PositionUpdateIn(positions=["GK"], primary_position="GK")
    result = assignments.update_player_positions(db, team_id, 5, update, actor_id=ACTOR)
    assert isinstance(result.error, NotFoundError)


def test_jersey_conflicts_follow_active_assignments(db, make_team):
    team_id = make_team()
    keeper_id = assignments.add_player(db, team_id, player_in(1, ["GK"], jersey=1), actor_id=ACTOR).unwrap()
    assignments.add_player(db, team_id, player_in(2, ["GK"], jersey=1), actor_id=ACTOR).unwrap()

    conflicts = assignments.check_jersey_conflicts(db, team_id, [("GK", 1)])
    assert conflicts == ["Jersey #1 is already in use for position GK"]

    move = PositionUpdateIn(positions=["DEF"], primary_position="DEF", jersey_number=1)
    assignments.update_player_positions(db, team_id, 2, move, actor_id=ACTOR).unwrap()
    # player 1 still holds GK #1
    assert assignments.check_jersey_conflicts(db, team_id, [("GK", 1)]) != []
    assert assignments.check_jersey_conflicts(db, team_id, [("GK", 1)], exclude_member_id=keeper_id) == []

    assignments.remove_player(db, team_id, 1, reason="moved", actor_id=ACTOR).unwrap()
    assert assignments.check_jersey_conflicts(db, team_id, [("GK", 1)]) == []


def test_jersey_check_skips_unnumbered_pairs(db, make_team):
    team_id = make_team()
    assignments.add_player(db, team_id, player_in(1, ["GK"]), actor_id=ACTOR).unwrap()
    assert assignments.check_jersey_conflicts(db, team_id, [("GK", None)]) == []


def test_reject_jersey_conflicts_blocks_the_write(db, make_team):
    team_id = make_team()
    assignments.add_player(db, team_id, player_in(1, ["GK"], jersey=1), actor_id=ACTOR).unwrap()

    result = assignments.add_player(
        db, team_id, player_in(2, ["GK"], jersey=1), actor_id=ACTOR, reject_jersey_conflicts=True,
    )
    assert isinstance(result.error, ConflictError)
    assert result.error.messages == ["Jersey #1 is already in use for position GK"]
    assert _open_rows(db, team_id, 2) == 0


def test_remove_player_is_soft_and_idempotent(db, make_team):
    team_id = make_team()
    member_id = assignments.add_player(db, team_id, player_in(7, ["GK"]), actor_id=ACTOR).unwrap()

    first = assignments.remove_player(db, team_id, 7, reason="moved away", actor_id=ACTOR)
    assert first.unwrap() == 1
    member = db.get(TeamMember, member_id)
    assert member.leave_date == date.today()
    assert member.leave_reason == "moved away"
    assert member.removed_by == ACTOR

    assert assignments.remove_player(db, team_id, 7, reason="again", actor_id=ACTOR).unwrap() == 0
    assert db.get(TeamMember, member_id).leave_reason == "moved away"


def test_rejoin_creates_a_new_membership(db, make_team):
    team_id = make_team()
    old_id = assignments.add_player(db, team_id, player_in(7, ["GK"]), actor_id=ACTOR).unwrap()
    assignments.remove_player(db, team_id, 7, reason=None, actor_id=ACTOR).unwrap()

    new_id = assignments.add_player(db, team_id, player_in(7, ["DEF"]), actor_id=ACTOR).unwrap()
    assert new_id != old_id
    assert db.get(TeamMember, old_id).leave_date is not None
    assert _open_rows(db, team_id, 7) == 1


def test_guest_player_scoped_to_games(db, make_team):
    team_id = make_team()
    until = date.today() + timedelta(days=30)
    guest = GuestPlayerIn(
        user_id=11,
        positions=["FWD"],
        primary_position="FWD",
        jersey_number=99,
        team_priority="primary",  # forced to guest
        valid_until=until,
        specific_games=[501, 502, 501],
    )
    member_id = assignments.add_guest_player(db, team_id, guest, actor_id=ACTOR).unwrap()

    member = db.get(TeamMember, member_id)
    assert member.team_priority == "guest"
    assert member.leave_date == until
    assert store.guest_game_ids(db, member_id) == [501, 502]
    # still on the roster until valid_until
    assert store.find_current_membership(db, team_id, 11, date.today()) is not None


def test_guest_player_needs_future_valid_until(db, make_team):
    team_id = make_team()
    guest = GuestPlayerIn(user_id=11, positions=["FWD"], primary_position="FWD", valid_until=date.today())
    result = assignments.add_guest_player(db, team_id, guest, actor_id=ACTOR)
    assert isinstance(result.error, ValidationError)
    assert db.query(GuestPlayerGame).count() == 0


def test_concurrent_duplicate_add_surfaces_as_conflict(db, make_team, monkeypatch):
    team_id = make_team()
    assignments.add_player(db, team_id, player_in(7, ["GK"]), actor_id=ACTOR).unwrap()

    # a concurrent add that passed the duplicate check before this row was visible
    monkeypatch.setattr(store, "find_current_membership", lambda *args, **kwargs: None)
    result = assignments.add_player(db, team_id, player_in(7, ["DEF"]), actor_id=ACTOR)

    assert isinstance(result.error, ConflictError)
    assert result.error.messages == ["Player 7 is already on this team"]
    assert _open_rows(db, team_id, 7) == 1


def test_remove_player_leaves_assistant_coaches_alone(db, make_team):
    team_id = make_team()
    team_service.assign_coach(db, team_id, 8, "assistant", actor_id=ACTOR).unwrap()

    assert assignments.remove_player(db, team_id, 8, reason=None, actor_id=ACTOR).unwrap() == 0
    assert team_service.is_coach_for_team(db, 8, team_id)
    assert db.query(RosterChangeLog).count() == 0
