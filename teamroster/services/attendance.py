# teamroster/services/attendance.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teamroster.core.errors import NotFoundError
from teamroster.db.models import AttendanceRecord, Event, TeamMember
from teamroster.schemas.player import AttendanceItem

logger = logging.getLogger(__name__)

ATTENDANCE_STATUSES = ("present", "absent", "late", "excused")


def _upsert(db: Session, event: Event, item: AttendanceItem, actor_id: int) -> str:
    member = db.get(TeamMember, item.team_member_id)
    if member is None or member.team_id != event.team_id:
        return "member is not on this event's team"
    if item.status not in ATTENDANCE_STATUSES:
        return "status must be one of: " + ", ".join(ATTENDANCE_STATUSES)

    existing = (
        db.query(AttendanceRecord)
        .filter(AttendanceRecord.event_id == event.id, AttendanceRecord.team_member_id == item.team_member_id)
        .one_or_none()
    )
    if existing is None:
        db.add(AttendanceRecord(
            event_id=event.id,
            team_member_id=item.team_member_id,
            status=item.status,
            notes=item.notes,
            recorded_by=actor_id,
        ))
    else:
        existing.status = item.status
        existing.notes = item.notes
    return ""


def record_attendance(db: Session, event_id: int, items: List[AttendanceItem], *, actor_id: int) -> Dict[str, Any]:
    """
    Upsert one attendance row per (event, membership). Each item commits on its
    own; a bad item is reported back and does not undo the others.
    """
    event = db.get(Event, event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")

    recorded = 0
    failed: List[Dict[str, Any]] = []
    for item in items:
        try:
            problem = _upsert(db, event, item, actor_id)
            if problem:
                failed.append({"team_member_id": item.team_member_id, "error": problem})
                continue
            db.commit()
            recorded += 1
        except SQLAlchemyError:
            db.rollback()
            logger.exception("attendance upsert failed event=%s member=%s", event_id, item.team_member_id)
            failed.append({"team_member_id": item.team_member_id, "error": "Failed to record attendance"})
    return {"event_id": event_id, "recorded": recorded, "failed": failed}


def get_attendance(db: Session, team_id: int, event_id: Optional[int] = None) -> List[Dict[str, Any]]:
    if event_id is not None:
        rows = (
            db.query(AttendanceRecord, TeamMember)
            .join(TeamMember, TeamMember.id == AttendanceRecord.team_member_id)
            .filter(AttendanceRecord.event_id == event_id, TeamMember.team_id == team_id)
            .order_by(TeamMember.user_id)
            .all()
        )
        return [
            {
                "event_id": ar.event_id,
                "team_member_id": ar.team_member_id,
                "user_id": tm.user_id,
                "status": ar.status,
                "notes": ar.notes,
                "recorded_by": ar.recorded_by,
            }
            for ar, tm in rows
        ]

    # last 10 events with per-status counts
    def _count(status: str):
        return func.count(case((AttendanceRecord.status == status, 1)))

    rows = (
        db.query(
            Event.id, Event.title, Event.start_datetime,
            _count("present"), _count("absent"), _count("late"),
        )
        .outerjoin(AttendanceRecord, AttendanceRecord.event_id == Event.id)
        .filter(Event.team_id == team_id)
        .group_by(Event.id, Event.title, Event.start_datetime)
        .order_by(Event.start_datetime.desc())
        .limit(10)
        .all()
    )
    return [
        {
            "id": eid,
            "title": title,
            "start_datetime": start,
            "present_count": present,
            "absent_count": absent,
            "late_count": late,
        }
        for eid, title, start, present, absent, late in rows
    ]
