# teamroster/api/routes_roster.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from teamroster.core.errors import RosterError
from teamroster.db.session import get_db
from teamroster.deps import get_actor_id, http_error, unwrap_or_raise
from teamroster.schemas.player import (
    AttendanceIn, GuestPlayerIn, JerseyCheckIn, JerseyCheckOut, PlayerIn, PositionUpdateIn, RemovePlayerIn,
)
from teamroster.schemas.team import AuditEntry
from teamroster.services import assignments, attendance, reports, roster_store
from teamroster.services.change_log import get_roster_change_log

router = APIRouter(prefix="/teams/{team_id}", tags=["roster"])
players_router = APIRouter(prefix="/players", tags=["players"])
events_router = APIRouter(prefix="/events", tags=["attendance"])


# ---------------- PLAYERS ----------------
@router.post("/players", status_code=201)
def add_player(
    team_id: int,
    payload: PlayerIn,
    reject_conflicts: bool = Query(default=False, description="Fail with 409 on jersey/position collisions"),
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    member_id = unwrap_or_raise(
        assignments.add_player(db, team_id, payload, actor_id=actor_id, reject_jersey_conflicts=reject_conflicts)
    )
    return {"id": member_id, "message": "Player added to team successfully"}


@router.post("/guests", status_code=201)
def add_guest_player(
    team_id: int,
    payload: GuestPlayerIn,
    reject_conflicts: bool = Query(default=False),
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    member_id = unwrap_or_raise(
        assignments.add_guest_player(db, team_id, payload, actor_id=actor_id, reject_jersey_conflicts=reject_conflicts)
    )
    return {"id": member_id, "message": "Guest player added successfully"}


@router.put("/players/{user_id}/positions")
def update_positions(
    team_id: int,
    user_id: int,
    payload: PositionUpdateIn,
    reject_conflicts: bool = Query(default=False),
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    active = unwrap_or_raise(
        assignments.update_player_positions(
            db, team_id, user_id, payload, actor_id=actor_id, reject_jersey_conflicts=reject_conflicts,
        )
    )
    return {"message": "Positions updated successfully", "active_assignments": active}


@router.delete("/players/{user_id}")
def remove_player(
    team_id: int,
    user_id: int,
    payload: Optional[RemovePlayerIn] = None,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    reason = payload.reason if payload else None
    ended = unwrap_or_raise(assignments.remove_player(db, team_id, user_id, reason=reason, actor_id=actor_id))
    if not ended:
        return {"message": "Player was not on this team", "removed": 0}
    return {"message": "Player removed from team successfully", "removed": ended}


@router.post("/jersey-conflicts", response_model=JerseyCheckOut)
def jersey_conflicts(team_id: int, payload: JerseyCheckIn, db: Session = Depends(get_db)):
    """
    Advisory: which (position, jersey) pairs are already taken. Writes nothing.
    """
    pairs = [(p.position, p.jersey_number) for p in payload.positions]
    return {
        "conflicts": assignments.check_jersey_conflicts(
            db, team_id, pairs, exclude_member_id=payload.exclude_member_id,
        )
    }


# ---------------- REPORTS (never cached) ----------------
@router.get("/reports/positions")
def position_report(team_id: int, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        return reports.position_coverage_report(db, team_id)
    except RosterError as err:
        raise http_error(err)


@router.get("/reports/jerseys")
def jersey_report(team_id: int, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        return reports.jersey_report(db, team_id)
    except RosterError as err:
        raise http_error(err)


@router.get("/attendance")
def team_attendance(
    team_id: int,
    event_id: Optional[int] = Query(default=None, description="Omit for the last 10 events summary"),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    return attendance.get_attendance(db, team_id, event_id)


@router.get("/members/{member_id}/changes", response_model=List[AuditEntry])
def member_changes(team_id: int, member_id: int, db: Session = Depends(get_db)):
    member = roster_store.get_membership(db, member_id)
    if member is None or member.team_id != team_id:
        raise HTTPException(status_code=404, detail="Member not found on this team")
    return get_roster_change_log(db, member_id)


@players_router.get("/{user_id}/teams")
def player_teams(user_id: int, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    return reports.player_team_comparison(db, user_id)


# ---------------- ATTENDANCE ----------------
@events_router.post("/{event_id}/attendance")
def record_attendance(
    event_id: int,
    payload: AttendanceIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    try:
        return attendance.record_attendance(db, event_id, payload.attendance, actor_id=actor_id)
    except RosterError as err:
        raise http_error(err)
