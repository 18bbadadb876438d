# teamroster/services/assignments.py
"""
Assignment engine: roster membership, position/jersey assignments, guests.

Every mutating call takes the acting user's id explicitly and returns an
OpResult; nothing here raises past its own transaction boundary.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamroster.core.config import settings
from teamroster.core.errors import ConflictError, NotFoundError, OpResult, ValidationError
from teamroster.db.models import TeamMember
from teamroster.db.session import transactional
from teamroster.schemas.player import GuestPlayerIn, PlayerIn, PositionUpdateIn
from teamroster.services import roster_store as store
from teamroster.services.change_log import log_roster_change

logger = logging.getLogger(__name__)

PRIORITY_TIERS = ("primary", "secondary", "guest")

JerseyPair = Tuple[str, Optional[int]]


# ---------- validation ----------

def _validate_positions(data, errors: dict) -> None:
    if not data.positions:
        errors["positions"] = "At least one position is required"
    if not data.primary_position:
        errors["primary_position"] = "Primary position is required"
    elif data.positions and data.primary_position not in data.positions:
        errors["primary_position"] = "Primary position must be one of the listed positions"

    allowed = settings.jersey_range
    for field in ("jersey_number", "jersey_number_alt"):
        n = getattr(data, field)
        if n is not None and n not in allowed:
            errors[field] = f"Jersey number must be between {allowed.start} and {allowed.stop - 1}"

    for pa in data.position_assignments or []:
        if pa.position not in (data.positions or []):
            errors["position_assignments"] = f"Position {pa.position} is not one of the listed positions"
        elif pa.jersey_number is not None and pa.jersey_number not in allowed:
            errors["position_assignments"] = f"Jersey number {pa.jersey_number} is out of range"


def validate_player(data: PlayerIn) -> None:
    errors: dict = {}
    if data.team_priority not in PRIORITY_TIERS:
        errors["team_priority"] = "Team priority must be one of: " + ", ".join(PRIORITY_TIERS)
    _validate_positions(data, errors)
    if errors:
        raise ValidationError(errors)


def assignment_pairs(data) -> List[JerseyPair]:
    """Explicit overrides if given, otherwise one row per listed position at the primary number."""
    if data.position_assignments is not None:
        return [(pa.position, pa.jersey_number) for pa in data.position_assignments]
    return [(p, data.jersey_number) for p in dict.fromkeys(data.positions)]


# ---------- conflicts ----------

def check_jersey_conflicts(
    db: Session,
    team_id: int,
    positions: Iterable[JerseyPair],
    *,
    exclude_member_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[str]:
    """
    Advisory check: one message per (position, jersey) pair already held by an
    active assignment of a current member of the team. Does not write.
    """
    today = today or date.today()
    conflicts: List[str] = []
    for position, jersey in positions:
        if jersey is None:
            continue
        held = store.count_jersey_holders(
            db, team_id, position, jersey, today, exclude_member_id=exclude_member_id,
        )
        if held > 0:
            conflicts.append(f"Jersey #{jersey} is already in use for position {position}")
    return conflicts


def _roster_is_full(db: Session, team, today: date) -> bool:
    counted = [
        m for m in store.list_current_members(db, team.id, today, role=store.ROLE_PLAYER)
        if m.team_priority != "guest"
    ]
    return len(counted) >= team.max_players


# ---------- add ----------

def _insert_player(
    db: Session,
    team_id: int,
    data: PlayerIn,
    *,
    today: date,
    leave_date: Optional[date] = None,
    reject_jersey_conflicts: bool = False,
) -> TeamMember:
    team = store.get_team(db, team_id)
    if team is None:
        raise NotFoundError(f"Team {team_id} not found")

    validate_player(data)

    if store.find_current_membership(db, team_id, data.user_id, today) is not None:
        raise ConflictError([f"Player {data.user_id} is already on this team"])

    if data.team_priority != "guest" and _roster_is_full(db, team, today):
        raise ConflictError([f"Team roster is full ({team.max_players} players)"])

    pairs = assignment_pairs(data)
    if reject_jersey_conflicts:
        conflicts = check_jersey_conflicts(db, team_id, pairs, today=today)
        if conflicts:
            raise ConflictError(conflicts)

    try:
        member = store.insert_membership(
            db,
            team_id=team_id,
            user_id=data.user_id,
            role=store.ROLE_PLAYER,
            jersey_number=data.jersey_number,
            jersey_number_alt=data.jersey_number_alt,
            positions=store.encode_positions(data.positions),
            primary_position=data.primary_position,
            team_priority=data.team_priority,
            status=data.status or "active",
            join_date=today,
            leave_date=leave_date,
            guest_player_agreement_id=data.guest_player_agreement_id,
        )
    except IntegrityError:
        # lost a race with a concurrent add; the open-membership index caught it
        raise ConflictError([f"Player {data.user_id} is already on this team"])
    for position, jersey in pairs:
        store.insert_assignment(db, member.id, position, jersey, today)
    return member


def add_player(
    db: Session,
    team_id: int,
    data: PlayerIn,
    *,
    actor_id: int,
    reject_jersey_conflicts: bool = False,
    today: Optional[date] = None,
) -> OpResult[int]:
    """Adds a player membership plus its position assignments. Value: new membership id."""
    today = today or date.today()

    def work() -> int:
        member = _insert_player(db, team_id, data, today=today, reject_jersey_conflicts=reject_jersey_conflicts)
        logger.info("actor=%s added user=%s to team=%s as member=%s", actor_id, data.user_id, team_id, member.id)
        return member.id

    return transactional(db, work, failure_message="Failed to add player to team")


def add_guest_player(
    db: Session,
    team_id: int,
    data: GuestPlayerIn,
    *,
    actor_id: int,
    reject_jersey_conflicts: bool = False,
    today: Optional[date] = None,
) -> OpResult[int]:
    """Guest membership, optionally time-boxed by valid_until and scoped to specific games."""
    today = today or date.today()

    def work() -> int:
        if data.valid_until is not None and data.valid_until <= today:
            raise ValidationError({"valid_until": "Guest eligibility must end after today"})
        guest = data.model_copy(update={"team_priority": "guest"})
        member = _insert_player(
            db, team_id, guest,
            today=today,
            leave_date=data.valid_until,
            reject_jersey_conflicts=reject_jersey_conflicts,
        )
        for game_id in dict.fromkeys(data.specific_games):
            store.insert_guest_game(db, member.id, game_id)
        logger.info("actor=%s added guest user=%s to team=%s games=%s", actor_id, data.user_id, team_id, data.specific_games)
        return member.id

    return transactional(db, work, failure_message="Failed to add guest player")


# ---------- update positions ----------

def update_player_positions(
    db: Session,
    team_id: int,
    user_id: int,
    data: PositionUpdateIn,
    *,
    actor_id: int,
    reject_jersey_conflicts: bool = False,
    today: Optional[date] = None,
) -> OpResult[int]:
    """
    Replaces a member's position set in one transaction:
    update the membership row, re-resolve its id, deactivate every active
    assignment, insert the new ones and log the positions diff.
    Value: number of active assignments after the call.
    """
    today = today or date.today()

    def work() -> int:
        errors: dict = {}
        _validate_positions(data, errors)
        if errors:
            raise ValidationError(errors)

        before = store.find_current_membership(db, team_id, user_id, today, role=store.ROLE_PLAYER)
        if before is None:
            raise NotFoundError(f"Player {user_id} is not on team {team_id}")
        old_positions = data.old_positions if data.old_positions is not None else store.decode_positions(before.positions)

        updated = store.update_current_membership(db, team_id, user_id, today, {
            "positions": store.encode_positions(data.positions),
            "primary_position": data.primary_position,
            "jersey_number": data.jersey_number,
            "jersey_number_alt": data.jersey_number_alt,
        })
        if not updated:
            raise NotFoundError(f"Player {user_id} is not on team {team_id}")

        # re-read inside this transaction before touching child rows
        member = store.find_current_membership(db, team_id, user_id, today, role=store.ROLE_PLAYER)
        if member is None:
            raise NotFoundError(f"Player {user_id} is not on team {team_id}")

        pairs = assignment_pairs(data)
        if reject_jersey_conflicts:
            conflicts = check_jersey_conflicts(db, team_id, pairs, exclude_member_id=member.id, today=today)
            if conflicts:
                raise ConflictError(conflicts)

        store.deactivate_assignments(db, member.id)
        for position, jersey in pairs:
            store.insert_assignment(db, member.id, position, jersey, today)

        log_roster_change(db, member.id, "positions", old_positions, list(data.positions), actor_id=actor_id)
        return len(pairs)

    return transactional(db, work, failure_message="Failed to update player positions")


# ---------- remove ----------

def remove_player(
    db: Session,
    team_id: int,
    user_id: int,
    *,
    reason: Optional[str],
    actor_id: int,
    today: Optional[date] = None,
) -> OpResult[int]:
    """Soft-removes the current membership. Value: rows ended (0 means it was already gone)."""
    today = today or date.today()

    def work() -> int:
        current = store.find_current_membership(db, team_id, user_id, today, role=store.ROLE_PLAYER)
        if current is None:
            return 0
        ended = store.end_current_memberships(
            db, team_id, user_id, today, reason=reason, removed_by=actor_id, role=store.ROLE_PLAYER,
        )
        log_roster_change(db, current.id, "leave_date", current.leave_date, today.isoformat(), actor_id=actor_id)
        return ended

    return transactional(db, work, failure_message="Failed to remove player from team")
