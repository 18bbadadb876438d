# teamroster/services/teams.py
"""
Team lifecycle: create/update/archive, coach exclusivity, bulk actions.
"""
from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from teamroster.core.config import settings
from teamroster.core.errors import (
    ConflictError, GuardViolation, NotFoundError, OpResult, ValidationError,
)
from teamroster.db.models import Team, TeamMember, TeamVolunteer
from teamroster.db.session import transactional
from teamroster.schemas.team import TeamIn, VolunteerIn
from teamroster.services import roster_store as store
from teamroster.services.change_log import AUDITED_TEAM_FIELDS, log_team_change, log_team_diff
from teamroster.services.notifications import notify_coach_assigned

logger = logging.getLogger(__name__)

AGE_GROUPS = ("U6", "U8", "U10", "U12", "U14", "U16", "U18", "Adult")
DIVISIONS = ("Recreational", "Competitive", "Elite")
BULK_ACTIONS = ("clone_to_season", "bulk_assign_coach", "archive", "update_division")
ASSISTANT_ROLES = ("assistant", "assistant_coach", "secondary")
SORTABLE_FIELDS = ("name", "age_group", "division", "season_id", "created_at")
PER_PAGE = 20


def _now() -> datetime:
    return datetime.now(timezone.utc)


def team_to_dict(team: Team, player_count: int = 0) -> Dict[str, Any]:
    return {
        "id": team.id,
        "name": team.name,
        "logo_url": team.logo_url,
        "age_group": team.age_group,
        "division": team.division,
        "season_id": team.season_id,
        "primary_coach_id": team.primary_coach_id,
        "home_field_id": team.home_field_id,
        "max_players": team.max_players,
        "player_count": player_count,
        "deleted_at": team.deleted_at,
        "last_modified_at": team.last_modified_at,
    }


# ---------- validation ----------

def validate_team_data(db: Session, data: TeamIn, team_id: Optional[int] = None) -> Dict[str, str]:
    """Collects every problem with a team payload; empty dict means valid."""
    errors: Dict[str, str] = {}
    name = (data.name or "").strip()

    if not name or len(name) > settings.TEAM_NAME_MAX_LENGTH:
        errors["name"] = f"Team name is required and must be less than {settings.TEAM_NAME_MAX_LENGTH} characters"

    if data.season_id is None:
        errors["season_id"] = "Season is required"
    elif name and store.count_teams_named(db, name, data.season_id, exclude_id=team_id) > 0:
        errors["name"] = "Team name already exists in this season"

    if data.age_group not in AGE_GROUPS:
        errors["age_group"] = "Invalid age group"

    if data.division not in DIVISIONS:
        errors["division"] = "Invalid division"

    if data.max_players is not None and data.max_players < 1:
        errors["max_players"] = "Max players must be at least 1"

    if data.primary_coach_id is not None and data.season_id is not None:
        if store.other_primary_teams_in_season(db, data.primary_coach_id, data.season_id, team_id):
            errors["primary_coach_id"] = "Coach already assigned to another team this season"

    return errors


def _team_values(data: TeamIn) -> Dict[str, Any]:
    return {
        "name": data.name.strip(),
        "logo_url": data.logo_url,
        "age_group": data.age_group,
        "division": data.division,
        "season_id": data.season_id,
        "primary_coach_id": data.primary_coach_id,
        "home_field_id": data.home_field_id,
        "max_players": data.max_players or settings.DEFAULT_MAX_PLAYERS,
    }


# ---------- reads ----------

def get_team(db: Session, team_id: int) -> Dict[str, Any]:
    team = store.get_team(db, team_id)
    if team is None:
        raise NotFoundError(f"Team {team_id} not found")
    counts = store.current_player_counts(db, [team.id], date.today())
    return team_to_dict(team, counts.get(team.id, 0))


def list_teams(
    db: Session,
    *,
    search: Optional[str] = None,
    season_id: Optional[int] = None,
    age_group: Optional[str] = None,
    division: Optional[str] = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    page: int = 1,
) -> Dict[str, Any]:
    """Non-archived teams, filtered and paginated."""
    q = db.query(Team).filter(Team.deleted_at.is_(None))
    if search:
        q = q.filter(Team.name.ilike(f"%{search}%"))
    if season_id is not None:
        q = q.filter(Team.season_id == season_id)
    if age_group:
        q = q.filter(Team.age_group == age_group)
    if division:
        q = q.filter(Team.division == division)

    # whitelisted; never interpolate caller input into ORDER BY
    column = getattr(Team, sort_by if sort_by in SORTABLE_FIELDS else "name")
    q = q.order_by(column.desc() if str(sort_order).lower() == "desc" else column.asc(), Team.id)

    total = q.count()
    page = max(1, int(page or 1))
    teams = q.offset((page - 1) * PER_PAGE).limit(PER_PAGE).all()
    counts = store.current_player_counts(db, [t.id for t in teams], date.today())

    return {
        "teams": [team_to_dict(t, counts.get(t.id, 0)) for t in teams],
        "pagination": {
            "total": total,
            "per_page": PER_PAGE,
            "current_page": page,
            "total_pages": math.ceil(total / PER_PAGE),
        },
    }


def get_team_roster(db: Session, team_id: int, *, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Current roster entries of every role, with their active (position, jersey) pairs."""
    if store.get_team(db, team_id) is None:
        raise NotFoundError(f"Team {team_id} not found")
    today = today or date.today()
    members = store.list_current_members(db, team_id, today)
    assignments = store.active_assignments_for(db, [m.id for m in members])
    return [
        {
            "id": m.id,
            "team_id": m.team_id,
            "user_id": m.user_id,
            "role": m.role,
            "team_priority": m.team_priority,
            "jersey_number": m.jersey_number,
            "jersey_number_alt": m.jersey_number_alt,
            "positions": store.decode_positions(m.positions),
            "primary_position": m.primary_position,
            "status": m.status,
            "join_date": m.join_date,
            "leave_date": m.leave_date,
            "position_jerseys": [
                {"position": a.position, "jersey_number": a.jersey_number} for a in assignments.get(m.id, [])
            ],
        }
        for m in members
    ]


# ---------- create / update ----------

def create_team(db: Session, data: TeamIn, *, actor_id: int) -> OpResult[int]:
    def work() -> int:
        errors = validate_team_data(db, data)
        if errors:
            raise ValidationError(errors)
        team = store.insert_team(db, **_team_values(data), updated_by=actor_id)
        logger.info("actor=%s created team=%s (%s) season=%s", actor_id, team.id, team.name, team.season_id)
        return team.id

    result = transactional(db, work, failure_message="Failed to create team")
    if result.ok and data.primary_coach_id is not None:
        notify_coach_assigned(data.primary_coach_id, result.value)
    return result


def update_team(db: Session, team_id: int, data: TeamIn, *, actor_id: int) -> OpResult[Dict[str, Any]]:
    """Full-row update; one team_audit_log row per changed field. Value: {field: [old, new]}."""
    def work() -> Dict[str, Any]:
        team = store.get_team(db, team_id)
        if team is None:
            raise NotFoundError(f"Team {team_id} not found")
        errors = validate_team_data(db, data, team_id=team_id)
        if errors:
            raise ValidationError(errors)

        old = {f: getattr(team, f) for f in AUDITED_TEAM_FIELDS}
        new = _team_values(data)
        for field, value in new.items():
            setattr(team, field, value)
        team.updated_by = actor_id
        team.last_modified_at = _now()
        db.flush()

        log_team_diff(db, team_id, old, new, actor_id=actor_id)
        return {f: [old[f], new[f]] for f in new if old[f] != new[f]}

    result = transactional(db, work, failure_message="Failed to update team")
    if result.ok and "primary_coach_id" in result.value and data.primary_coach_id is not None:
        notify_coach_assigned(data.primary_coach_id, team_id)
    return result


# ---------- archive ----------

def can_archive_team(
    db: Session, team_id: int, *, now: Optional[datetime] = None, today: Optional[date] = None,
) -> Dict[str, int]:
    if store.get_team(db, team_id) is None:
        raise NotFoundError(f"Team {team_id} not found")
    now = now or _now()
    return {
        "active_members": store.count_current_members(db, team_id, today or date.today()),
        "future_events": store.count_future_events(db, team_id, now),
    }


def _guard_archive(db: Session, team_id: int, now: datetime) -> None:
    checks = can_archive_team(db, team_id, now=now)
    blocking = {k: v for k, v in checks.items() if v > 0}
    if not blocking:
        return
    messages = []
    if "active_members" in blocking:
        messages.append("Cannot archive team with active players")
    if "future_events" in blocking:
        messages.append("Cannot archive team with scheduled future games")
    raise GuardViolation(f"Team {team_id}: " + "; ".join(messages), blocking)


def archive_team(
    db: Session,
    team_id: int,
    *,
    reason: Optional[str] = None,
    actor_id: int,
    now: Optional[datetime] = None,
) -> OpResult[int]:
    """Soft-delete. Blocked while the team has current members or future non-cancelled events."""
    now = now or _now()

    def work() -> int:
        team = store.get_team(db, team_id)
        if team is None:
            raise NotFoundError(f"Team {team_id} not found")
        _guard_archive(db, team_id, now)
        team.deleted_at = now
        team.deletion_reason = reason or "Manual deletion"
        team.deleted_by = actor_id
        db.flush()
        log_team_change(db, team_id, "deleted_at", None, now.isoformat(), actor_id=actor_id)
        return team_id

    return transactional(db, work, failure_message="Failed to archive team")


# ---------- coaches ----------

def check_coach_availability(db: Session, coach_id: int, team_id: int) -> bool:
    """True when the coach is not primary coach of another active team in the target team's season."""
    team = store.get_team(db, team_id)
    if team is None:
        raise NotFoundError(f"Team {team_id} not found")
    return not store.other_primary_teams_in_season(db, coach_id, team.season_id, team.id)


def assign_coach(
    db: Session,
    team_id: int,
    coach_id: int,
    role: str = "primary",
    *,
    actor_id: int,
    today: Optional[date] = None,
) -> OpResult[Dict[str, Any]]:
    today = today or date.today()

    def work() -> Dict[str, Any]:
        if role != "primary" and role not in ASSISTANT_ROLES:
            raise ValidationError({"role": "Role must be primary or assistant"})
        team = store.get_team(db, team_id)
        if team is None:
            raise NotFoundError(f"Team {team_id} not found")

        if role == "primary":
            if store.other_primary_teams_in_season(db, coach_id, team.season_id, team.id):
                raise ConflictError(["Coach already assigned to another team this season"])
            previous = team.primary_coach_id
            if previous != coach_id:
                team.primary_coach_id = coach_id
                team.updated_by = actor_id
                team.last_modified_at = _now()
                db.flush()
                log_team_change(db, team_id, "primary_coach_id", previous, coach_id, actor_id=actor_id)
            return {"team_id": team_id, "coach_id": coach_id, "role": "primary"}

        if store.find_current_membership(db, team_id, coach_id, today) is not None:
            raise ConflictError([f"User {coach_id} is already on this team"])
        member = store.insert_membership(
            db,
            team_id=team_id,
            user_id=coach_id,
            role=store.ROLE_ASSISTANT_COACH,
            team_priority="primary",
            status="active",
            join_date=today,
        )
        return {"team_id": team_id, "coach_id": coach_id, "role": store.ROLE_ASSISTANT_COACH, "member_id": member.id}

    result = transactional(db, work, failure_message="Failed to assign coach")
    if result.ok:
        notify_coach_assigned(coach_id, team_id, result.value["role"])
    return result


def remove_coach(
    db: Session,
    team_id: int,
    user_id: int,
    *,
    actor_id: int,
    reason: Optional[str] = None,
    today: Optional[date] = None,
) -> OpResult[int]:
    """Ends assistant-coach memberships only; primary coaches change via assign_coach."""
    today = today or date.today()

    def work() -> int:
        return store.end_current_memberships(
            db, team_id, user_id, today,
            reason=reason or "Coach removed",
            removed_by=actor_id,
            role=store.ROLE_ASSISTANT_COACH,
        )

    return transactional(db, work, failure_message="Failed to remove coach")


def get_coach_teams(db: Session, coach_id: int, *, today: Optional[date] = None) -> List[Dict[str, Any]]:
    today = today or date.today()
    assisted = (
        select(TeamMember.team_id)
        .where(
            TeamMember.user_id == coach_id,
            TeamMember.role == store.ROLE_ASSISTANT_COACH,
            store.current_clause(today),
        )
    )
    teams = (
        db.query(Team)
        .filter(
            Team.deleted_at.is_(None),
            or_(Team.primary_coach_id == coach_id, Team.id.in_(assisted)),
        )
        .order_by(Team.season_id.desc(), Team.name)
        .all()
    )
    out = []
    for t in teams:
        players = store.list_current_members(db, t.id, today, role=store.ROLE_PLAYER)
        out.append({
            **team_to_dict(t, sum(1 for m in players if m.team_priority != "guest")),
            "guest_count": sum(1 for m in players if m.team_priority == "guest"),
            "coach_role": "Head Coach" if t.primary_coach_id == coach_id else "Assistant Coach",
        })
    return out


def is_coach_for_team(db: Session, coach_id: int, team_id: int, *, today: Optional[date] = None) -> bool:
    team = store.get_team(db, team_id)
    if team is None:
        return False
    if team.primary_coach_id == coach_id:
        return True
    return store.find_current_membership(
        db, team_id, coach_id, today or date.today(), role=store.ROLE_ASSISTANT_COACH,
    ) is not None


# ---------- volunteers ----------

def assign_volunteer(db: Session, team_id: int, data: VolunteerIn, *, actor_id: int) -> OpResult[int]:
    def work() -> int:
        if store.get_team(db, team_id) is None:
            raise NotFoundError(f"Team {team_id} not found")
        if data.end_date is not None and data.end_date < data.start_date:
            raise ValidationError({"end_date": "End date must not be before start date"})
        row = TeamVolunteer(
            team_id=team_id,
            user_id=data.user_id,
            volunteer_role=data.volunteer_role,
            start_date=data.start_date,
            end_date=data.end_date,
            background_check_status=data.background_check_status or "pending",
            notes=data.notes,
            assigned_by=actor_id,
        )
        db.add(row)
        db.flush()
        return row.id

    return transactional(db, work, failure_message="Failed to assign volunteer")


# ---------- bulk ----------

def _require_param(params: Dict[str, Any], key: str, kind=int) -> Any:
    value = params.get(key)
    if value is None or value == "":
        raise ValidationError({f"params.{key}": f"{key} is required"})
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValidationError({f"params.{key}": f"{key} is invalid"})


def _bulk_clone(db: Session, teams: List[Team], params: Dict[str, Any], actor_id: int) -> Dict[str, Any]:
    season_id = _require_param(params, "new_season_id")
    conflicts: List[str] = []
    names_taken = set()
    created: List[int] = []
    for t in teams:
        if t.name in names_taken or store.count_teams_named(db, t.name, season_id) > 0:
            conflicts.append(f"Team name {t.name!r} already exists in season {season_id}")
            continue
        names_taken.add(t.name)
        coach_id = t.primary_coach_id
        # a coach heads one team per season; later clones go without
        if coach_id is not None and store.other_primary_teams_in_season(db, coach_id, season_id, None):
            coach_id = None
        # identity and soft-delete markers are not copied
        clone = store.insert_team(
            db,
            **{f: getattr(t, f) for f in AUDITED_TEAM_FIELDS if f not in ("season_id", "primary_coach_id")},
            season_id=season_id,
            primary_coach_id=coach_id,
            updated_by=actor_id,
        )
        log_team_change(db, clone.id, "cloned_from", None, t.id, actor_id=actor_id)
        created.append(clone.id)
    if conflicts:
        raise ConflictError(conflicts)
    return {"created_team_ids": created}


def _bulk_assign_coach(db: Session, teams: List[Team], params: Dict[str, Any], actor_id: int) -> Dict[str, Any]:
    coach_id = _require_param(params, "coach_id")
    target_ids = {t.id for t in teams}
    conflicts: List[str] = []
    seen_seasons = set()
    for t in teams:
        if t.season_id in seen_seasons:
            conflicts.append(f"Coach {coach_id} cannot head two teams in season {t.season_id}")
        seen_seasons.add(t.season_id)
        others = [o for o in store.other_primary_teams_in_season(db, coach_id, t.season_id, t.id) if o.id not in target_ids]
        if others:
            conflicts.append(f"Coach {coach_id} already heads team {others[0].id} in season {t.season_id}")
    if conflicts:
        raise ConflictError(conflicts)

    previous = {t.id: t.primary_coach_id for t in teams}
    updated = _bulk_update(db, list(target_ids), {"primary_coach_id": coach_id, "updated_by": actor_id, "last_modified_at": _now()})
    for tid, before in previous.items():
        if before != coach_id:
            log_team_change(db, tid, "primary_coach_id", before, coach_id, actor_id=actor_id)
    return {"updated": updated}


def _bulk_archive(db: Session, teams: List[Team], params: Dict[str, Any], actor_id: int) -> Dict[str, Any]:
    now = _now()
    blocked: List[str] = []
    totals: Dict[str, int] = {}
    for t in teams:
        for k, v in can_archive_team(db, t.id, now=now).items():
            if v > 0:
                totals[k] = totals.get(k, 0) + v
                blocked.append(f"team {t.id}: {k}={v}")
    if blocked:
        raise GuardViolation("Cannot archive: " + "; ".join(blocked), totals)

    updated = _bulk_update(db, [t.id for t in teams], {
        "deleted_at": now,
        "deletion_reason": params.get("reason") or "Bulk archive",
        "deleted_by": actor_id,
    })
    for t in teams:
        log_team_change(db, t.id, "deleted_at", None, now.isoformat(), actor_id=actor_id)
    return {"updated": updated}


def _bulk_update_division(db: Session, teams: List[Team], params: Dict[str, Any], actor_id: int) -> Dict[str, Any]:
    division = params.get("division")
    if division not in DIVISIONS:
        raise ValidationError({"params.division": "Invalid division"})
    previous = {t.id: t.division for t in teams}
    updated = _bulk_update(db, list(previous), {"division": division, "updated_by": actor_id, "last_modified_at": _now()})
    for tid, before in previous.items():
        if before != division:
            log_team_change(db, tid, "division", before, division, actor_id=actor_id)
    return {"updated": updated}


def _bulk_update(db: Session, team_ids: Sequence[int], values: Dict[str, Any]) -> int:
    # expanding bind parameter for the id list
    return (
        db.query(Team)
        .filter(Team.id.in_(list(team_ids)), Team.deleted_at.is_(None))
        .update(values, synchronize_session="fetch")
    )


_BULK_HANDLERS = {
    "clone_to_season": _bulk_clone,
    "bulk_assign_coach": _bulk_assign_coach,
    "archive": _bulk_archive,
    "update_division": _bulk_update_division,
}


def bulk_action(
    db: Session,
    team_ids: Sequence[int],
    action: str,
    params: Optional[Dict[str, Any]] = None,
    *,
    actor_id: int,
) -> OpResult[Dict[str, Any]]:
    """Applies one action to every listed team in a single transaction; any failure undoes all of it."""
    params = params or {}
    ids = list(dict.fromkeys(int(i) for i in team_ids or []))

    def work() -> Dict[str, Any]:
        handler = _BULK_HANDLERS.get(action)
        if handler is None:
            raise ValidationError({"action": "Action must be one of: " + ", ".join(BULK_ACTIONS)})
        if not ids:
            raise ValidationError({"team_ids": "At least one team id is required"})
        teams = store.get_teams(db, ids)
        missing = sorted(set(ids) - {t.id for t in teams})
        if missing:
            raise NotFoundError(f"Teams not found or archived: {missing}")
        out = handler(db, teams, params, actor_id)
        logger.info("actor=%s bulk %s on teams=%s", actor_id, action, ids)
        return {"action": action, "team_ids": ids, **out}

    result = transactional(db, work, failure_message="Bulk operation failed")
    if result.ok and action == "bulk_assign_coach":
        for tid in ids:
            notify_coach_assigned(int(params["coach_id"]), tid)
    return result
