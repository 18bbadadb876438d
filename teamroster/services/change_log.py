# teamroster/services/change_log.py
from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from teamroster.db.models import RosterChangeLog, TeamAuditLog

# team fields that are tracked in team_audit_log
AUDITED_TEAM_FIELDS = (
    "name", "logo_url", "age_group", "division", "season_id",
    "primary_coach_id", "home_field_id", "max_players",
)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def log_roster_change(db: Session, member_id: int, field_name: str, old_value: Any, new_value: Any, *, actor_id: int) -> RosterChangeLog:
    row = RosterChangeLog(
        team_member_id=member_id,
        changed_by=actor_id,
        field_name=field_name,
        old_value=_as_text(old_value),
        new_value=_as_text(new_value),
    )
    db.add(row)
    db.flush()
    return row


def log_team_change(db: Session, team_id: int, field_name: str, old_value: Any, new_value: Any, *, actor_id: int) -> TeamAuditLog:
    row = TeamAuditLog(
        team_id=team_id,
        changed_by=actor_id,
        field_name=field_name,
        old_value=_as_text(old_value),
        new_value=_as_text(new_value),
    )
    db.add(row)
    db.flush()
    return row


def diff_fields(old: Mapping[str, Any], new: Mapping[str, Any], fields=AUDITED_TEAM_FIELDS) -> Dict[str, tuple]:
    """{field: (old, new)} for every tracked field whose value changed."""
    changed: Dict[str, tuple] = {}
    for f in fields:
        if f not in new:
            continue
        if old.get(f) != new[f]:
            changed[f] = (old.get(f), new[f])
    return changed


def log_team_diff(db: Session, team_id: int, old: Mapping[str, Any], new: Mapping[str, Any], *, actor_id: int) -> int:
    changed = diff_fields(old, new)
    for field_name, (before, after) in changed.items():
        log_team_change(db, team_id, field_name, before, after, actor_id=actor_id)
    return len(changed)


def _row(r) -> dict:
    return {
        "id": r.id,
        "changed_by": r.changed_by,
        "field_name": r.field_name,
        "old_value": r.old_value,
        "new_value": r.new_value,
        "changed_at": r.changed_at,
    }


def get_team_audit_log(db: Session, team_id: int) -> List[dict]:
    rows = (
        db.query(TeamAuditLog)
        .filter(TeamAuditLog.team_id == team_id)
        .order_by(TeamAuditLog.changed_at.desc(), TeamAuditLog.id.desc())
        .all()
    )
    return [{**_row(r), "team_id": r.team_id} for r in rows]


def get_roster_change_log(db: Session, member_id: int) -> List[dict]:
    rows = (
        db.query(RosterChangeLog)
        .filter(RosterChangeLog.team_member_id == member_id)
        .order_by(RosterChangeLog.changed_at.desc(), RosterChangeLog.id.desc())
        .all()
    )
    return [{**_row(r), "team_member_id": r.team_member_id} for r in rows]
