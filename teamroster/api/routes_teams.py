# teamroster/api/routes_teams.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from teamroster.core.errors import RosterError
from teamroster.db.session import get_db
from teamroster.deps import get_actor_id, http_error, unwrap_or_raise
from teamroster.schemas.player import MembershipOut
from teamroster.schemas.team import (
    ArchiveIn, AuditEntry, BulkActionIn, CoachAssignIn, TeamIn, TeamList, TeamOut, VolunteerIn,
)
from teamroster.services import teams as team_service
from teamroster.services.change_log import get_team_audit_log

router = APIRouter(prefix="/teams", tags=["teams"])
coaches_router = APIRouter(prefix="/coaches", tags=["coaches"])


# ---------------- TEAMS ----------------
@router.get("", response_model=TeamList)
def list_teams(
    search: Optional[str] = Query(default=None, description="name contains"),
    season_id: Optional[int] = Query(default=None),
    age_group: Optional[str] = Query(default=None, description="U6..U18, Adult"),
    division: Optional[str] = Query(default=None, description="Recreational | Competitive | Elite"),
    sort_by: str = Query(default="name"),
    sort_order: str = Query(default="asc", description="asc | desc"),
    page: int = Query(default=1, ge=1),
    db: Session = Depends(get_db),
):
    """
    Active (non-archived) teams, 20 per page.
    """
    return team_service.list_teams(
        db,
        search=search, season_id=season_id, age_group=age_group, division=division,
        sort_by=sort_by, sort_order=sort_order, page=page,
    )


@router.post("", status_code=201)
def create_team(
    payload: TeamIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    team_id = unwrap_or_raise(team_service.create_team(db, payload, actor_id=actor_id))
    return {"id": team_id, "message": "Team created successfully"}


@router.post("/bulk")
def bulk_action(
    payload: BulkActionIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    """
    One of clone_to_season {new_season_id}, bulk_assign_coach {coach_id},
    archive {reason?}, update_division {division}. All-or-nothing.
    """
    out = unwrap_or_raise(
        team_service.bulk_action(db, payload.team_ids, payload.action, payload.params, actor_id=actor_id)
    )
    return {**out, "message": f"{len(out['team_ids'])} teams updated successfully"}


@router.get("/{team_id}", response_model=TeamOut)
def get_team(team_id: int, db: Session = Depends(get_db)):
    try:
        return team_service.get_team(db, team_id)
    except RosterError as err:
        raise http_error(err)


@router.put("/{team_id}")
def update_team(
    team_id: int,
    payload: TeamIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    changed = unwrap_or_raise(team_service.update_team(db, team_id, payload, actor_id=actor_id))
    return {"message": "Team updated successfully", "changed": changed}


@router.get("/{team_id}/can-archive")
def can_archive(team_id: int, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        checks = team_service.can_archive_team(db, team_id)
    except RosterError as err:
        raise http_error(err)
    return {**checks, "can_archive": not any(checks.values())}


@router.delete("/{team_id}")
def archive_team(
    team_id: int,
    payload: Optional[ArchiveIn] = None,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    reason = payload.reason if payload else None
    unwrap_or_raise(team_service.archive_team(db, team_id, reason=reason, actor_id=actor_id))
    return {"message": "Team archived successfully"}


@router.get("/{team_id}/roster", response_model=List[MembershipOut])
def team_roster(team_id: int, db: Session = Depends(get_db)):
    try:
        return team_service.get_team_roster(db, team_id)
    except RosterError as err:
        raise http_error(err)


@router.get("/{team_id}/audit-log", response_model=List[AuditEntry])
def team_audit_log(team_id: int, db: Session = Depends(get_db)):
    return get_team_audit_log(db, team_id)


# ---------------- COACHES ----------------
@router.get("/{team_id}/coach-availability")
def coach_availability(
    team_id: int,
    coach_id: int = Query(..., description="candidate primary coach"),
    db: Session = Depends(get_db),
):
    try:
        available = team_service.check_coach_availability(db, coach_id, team_id)
    except RosterError as err:
        raise http_error(err)
    return {"team_id": team_id, "coach_id": coach_id, "available": available}


@router.post("/{team_id}/coaches")
def assign_coach(
    team_id: int,
    payload: CoachAssignIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    out = unwrap_or_raise(
        team_service.assign_coach(db, team_id, payload.coach_id, payload.role, actor_id=actor_id)
    )
    return {**out, "message": "Coach assigned successfully"}


@router.delete("/{team_id}/coaches/{user_id}")
def remove_coach(
    team_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    removed = unwrap_or_raise(team_service.remove_coach(db, team_id, user_id, actor_id=actor_id))
    if not removed:
        raise HTTPException(status_code=404, detail="No active assistant coach with that id on this team")
    return {"message": "Coach removed successfully"}


@router.post("/{team_id}/volunteers", status_code=201)
def assign_volunteer(
    team_id: int,
    payload: VolunteerIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    vid = unwrap_or_raise(team_service.assign_volunteer(db, team_id, payload, actor_id=actor_id))
    return {"id": vid, "message": "Volunteer assigned successfully"}


@coaches_router.get("/{coach_id}/teams")
def coach_teams(coach_id: int, db: Session = Depends(get_db)):
    return team_service.get_coach_teams(db, coach_id)
