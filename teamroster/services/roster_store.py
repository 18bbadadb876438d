# teamroster/services/roster_store.py
"""
Persistence primitives for teams, memberships and position assignments.

Nothing in here commits or enforces roster rules; callers own the
transaction and decide what a result means.
"""
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from teamroster.db.models import (
    Event, GuestPlayerGame, PlayerPositionAssignment, Team, TeamMember,
)

ROLE_PLAYER = "player"
ROLE_ASSISTANT_COACH = "assistant_coach"


# ---------- position list codec ----------

def encode_positions(positions: Iterable[str]) -> str:
    # ordered, de-duplicated
    seen: List[str] = []
    for p in positions or []:
        if p not in seen:
            seen.append(p)
    return json.dumps(seen)

def decode_positions(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        return []
    return [str(p) for p in parsed] if isinstance(parsed, list) else []


# ---------- membership filters ----------

def current_clause(today: date):
    """A membership is current while it has no leave date or one still ahead."""
    return or_(TeamMember.leave_date.is_(None), TeamMember.leave_date > today)


# ---------- teams ----------

def get_team(db: Session, team_id: int, *, include_archived: bool = False) -> Optional[Team]:
    q = db.query(Team).filter(Team.id == team_id)
    if not include_archived:
        q = q.filter(Team.deleted_at.is_(None))
    return q.one_or_none()

def get_teams(db: Session, team_ids: Sequence[int], *, include_archived: bool = False) -> List[Team]:
    if not team_ids:
        return []
    q = db.query(Team).filter(Team.id.in_(list(team_ids)))
    if not include_archived:
        q = q.filter(Team.deleted_at.is_(None))
    return q.order_by(Team.id).all()

def insert_team(db: Session, **fields: Any) -> Team:
    team = Team(**fields)
    db.add(team)
    db.flush()
    return team

def count_teams_named(db: Session, name: str, season_id: int, exclude_id: Optional[int] = None) -> int:
    q = db.query(Team).filter(
        Team.name == name,
        Team.season_id == season_id,
        Team.deleted_at.is_(None),
    )
    if exclude_id is not None:
        q = q.filter(Team.id != exclude_id)
    return q.count()

def other_primary_teams_in_season(db: Session, coach_id: int, season_id: int, exclude_team_id: Optional[int]) -> List[Team]:
    q = db.query(Team).filter(
        Team.primary_coach_id == coach_id,
        Team.season_id == season_id,
        Team.deleted_at.is_(None),
    )
    if exclude_team_id is not None:
        q = q.filter(Team.id != exclude_team_id)
    return q.all()

def count_future_events(db: Session, team_id: int, now: datetime) -> int:
    return (
        db.query(Event)
        .filter(Event.team_id == team_id, Event.start_datetime > now, Event.cancelled.is_(False))
        .count()
    )


# ---------- memberships ----------

def find_current_membership(
    db: Session, team_id: int, user_id: int, today: date, *, role: Optional[str] = None,
) -> Optional[TeamMember]:
    q = db.query(TeamMember).filter(
        TeamMember.team_id == team_id,
        TeamMember.user_id == user_id,
        current_clause(today),
    )
    if role is not None:
        q = q.filter(TeamMember.role == role)
    return q.order_by(TeamMember.id.desc()).first()

def get_membership(db: Session, member_id: int) -> Optional[TeamMember]:
    return db.get(TeamMember, member_id)

def insert_membership(db: Session, **fields: Any) -> TeamMember:
    member = TeamMember(**fields)
    db.add(member)
    db.flush()
    return member

def update_current_membership(db: Session, team_id: int, user_id: int, today: date, values: dict) -> int:
    return (
        db.query(TeamMember)
        .filter(
            TeamMember.team_id == team_id,
            TeamMember.user_id == user_id,
            current_clause(today),
        )
        .update(values, synchronize_session="fetch")
    )

def end_current_memberships(
    db: Session,
    team_id: int,
    user_id: int,
    today: date,
    *,
    reason: Optional[str],
    removed_by: int,
    role: Optional[str] = None,
) -> int:
    q = db.query(TeamMember).filter(
        TeamMember.team_id == team_id,
        TeamMember.user_id == user_id,
        current_clause(today),
    )
    if role is not None:
        q = q.filter(TeamMember.role == role)
    return q.update(
        {"leave_date": today, "leave_reason": reason, "removed_by": removed_by},
        synchronize_session="fetch",
    )

def list_current_members(db: Session, team_id: int, today: date, *, role: Optional[str] = None) -> List[TeamMember]:
    q = db.query(TeamMember).filter(TeamMember.team_id == team_id, current_clause(today))
    if role is not None:
        q = q.filter(TeamMember.role == role)
    return q.order_by(TeamMember.role, TeamMember.jersey_number, TeamMember.id).all()

def count_current_members(db: Session, team_id: int, today: date) -> int:
    return db.query(TeamMember).filter(TeamMember.team_id == team_id, current_clause(today)).count()

def current_player_counts(db: Session, team_ids: Sequence[int], today: date) -> dict[int, int]:
    if not team_ids:
        return {}
    rows = (
        db.query(TeamMember.team_id, func.count(TeamMember.id))
        .filter(
            TeamMember.team_id.in_(list(team_ids)),
            TeamMember.role == ROLE_PLAYER,
            current_clause(today),
        )
        .group_by(TeamMember.team_id)
        .all()
    )
    return {team_id: n for team_id, n in rows}

def list_memberships_for_user(db: Session, user_id: int, today: date) -> List[Tuple[TeamMember, Team]]:
    return (
        db.query(TeamMember, Team)
        .join(Team, Team.id == TeamMember.team_id)
        .filter(TeamMember.user_id == user_id, current_clause(today), Team.deleted_at.is_(None))
        .order_by(TeamMember.team_priority, Team.name)
        .all()
    )


# ---------- position assignments ----------

def insert_assignment(db: Session, member_id: int, position: str, jersey_number: Optional[int], today: date) -> PlayerPositionAssignment:
    row = PlayerPositionAssignment(
        team_member_id=member_id,
        position=position,
        jersey_number=jersey_number,
        is_active=True,
        assigned_date=today,
    )
    db.add(row)
    db.flush()
    return row

def deactivate_assignments(db: Session, member_id: int) -> int:
    return (
        db.query(PlayerPositionAssignment)
        .filter(
            PlayerPositionAssignment.team_member_id == member_id,
            PlayerPositionAssignment.is_active.is_(True),
        )
        .update({"is_active": False}, synchronize_session="fetch")
    )

def count_assignments(db: Session, member_id: int, *, active_only: bool = False) -> int:
    q = db.query(PlayerPositionAssignment).filter(PlayerPositionAssignment.team_member_id == member_id)
    if active_only:
        q = q.filter(PlayerPositionAssignment.is_active.is_(True))
    return q.count()

def count_jersey_holders(
    db: Session,
    team_id: int,
    position: str,
    jersey_number: int,
    today: date,
    *,
    exclude_member_id: Optional[int] = None,
) -> int:
    q = (
        db.query(PlayerPositionAssignment)
        .join(TeamMember, TeamMember.id == PlayerPositionAssignment.team_member_id)
        .filter(
            TeamMember.team_id == team_id,
            PlayerPositionAssignment.position == position,
            PlayerPositionAssignment.jersey_number == jersey_number,
            PlayerPositionAssignment.is_active.is_(True),
            current_clause(today),
        )
    )
    if exclude_member_id is not None:
        q = q.filter(TeamMember.id != exclude_member_id)
    return q.count()

def list_active_assignments(db: Session, team_id: int, today: date) -> List[Tuple[PlayerPositionAssignment, TeamMember]]:
    return (
        db.query(PlayerPositionAssignment, TeamMember)
        .join(TeamMember, TeamMember.id == PlayerPositionAssignment.team_member_id)
        .filter(
            TeamMember.team_id == team_id,
            PlayerPositionAssignment.is_active.is_(True),
            current_clause(today),
        )
        .order_by(PlayerPositionAssignment.jersey_number, PlayerPositionAssignment.position)
        .all()
    )

def active_assignments_for(db: Session, member_ids: Sequence[int]) -> dict[int, List[PlayerPositionAssignment]]:
    out: dict[int, List[PlayerPositionAssignment]] = {mid: [] for mid in member_ids}
    if not member_ids:
        return out
    rows = (
        db.query(PlayerPositionAssignment)
        .filter(
            PlayerPositionAssignment.team_member_id.in_(list(member_ids)),
            PlayerPositionAssignment.is_active.is_(True),
        )
        .order_by(PlayerPositionAssignment.position)
        .all()
    )
    for r in rows:
        out.setdefault(r.team_member_id, []).append(r)
    return out


# ---------- guests ----------

def insert_guest_game(db: Session, member_id: int, game_id: int) -> GuestPlayerGame:
    row = GuestPlayerGame(team_member_id=member_id, game_id=game_id)
    db.add(row)
    db.flush()
    return row

def guest_game_ids(db: Session, member_id: int) -> List[int]:
    rows = (
        db.query(GuestPlayerGame.game_id)
        .filter(GuestPlayerGame.team_member_id == member_id)
        .order_by(GuestPlayerGame.id)
        .all()
    )
    return [r[0] for r in rows]
