# teamroster/services/reports.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from teamroster.core.config import settings
from teamroster.core.errors import NotFoundError
from teamroster.services import roster_store as store


def _require_team(db: Session, team_id: int) -> None:
    if store.get_team(db, team_id) is None:
        raise NotFoundError(f"Team {team_id} not found")


def position_coverage_report(
    db: Session,
    team_id: int,
    *,
    minimum: Optional[int] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Buckets every current player under each of their positions:
      - guest tier            -> guest_players
      - position == primary   -> primary_players
      - otherwise             -> secondary_players
    A position needs coverage when primary + secondary < minimum.
    """
    _require_team(db, team_id)
    today = today or date.today()
    minimum = settings.POSITION_MIN_COVERAGE if minimum is None else minimum

    position_map: Dict[str, Dict[str, Any]] = {}
    for m in store.list_current_members(db, team_id, today, role=store.ROLE_PLAYER):
        for position in store.decode_positions(m.positions):
            bucket = position_map.setdefault(position, {
                "position": position,
                "primary_players": [],
                "secondary_players": [],
                "guest_players": [],
            })
            info = {
                "id": m.user_id,
                "member_id": m.id,
                "is_primary": m.primary_position == position,
                "status": m.status,
                "jersey_number": m.jersey_number,
            }
            if m.team_priority == "guest":
                bucket["guest_players"].append(info)
            elif m.primary_position == position:
                bucket["primary_players"].append(info)
            else:
                bucket["secondary_players"].append(info)

    needing: List[Dict[str, Any]] = []
    for position, data in position_map.items():
        total = len(data["primary_players"]) + len(data["secondary_players"])
        if total < minimum:
            needing.append({"position": position, "current": total, "needed": minimum - total})

    return {
        "team_id": team_id,
        "minimum_per_position": minimum,
        "position_map": position_map,
        "positions_needing_coverage": needing,
    }


def jersey_report(db: Session, team_id: int, *, today: Optional[date] = None) -> Dict[str, Any]:
    """Active assignments grouped by number then position; >1 player in a group is a conflict."""
    _require_team(db, team_id)
    today = today or date.today()

    jersey_map: Dict[int, List[Dict[str, Any]]] = {}
    unnumbered: List[Dict[str, Any]] = []
    for assignment, member in store.list_active_assignments(db, team_id, today):
        entry = {
            "user_id": member.user_id,
            "member_id": member.id,
            "position": assignment.position,
            "priority": member.team_priority,
        }
        if assignment.jersey_number is None:
            unnumbered.append(entry)
        else:
            jersey_map.setdefault(assignment.jersey_number, []).append(entry)

    conflicts: List[Dict[str, Any]] = []
    for number, players in jersey_map.items():
        by_position: Dict[str, List[Dict[str, Any]]] = {}
        for p in players:
            by_position.setdefault(p["position"], []).append(p)
        for position, group in by_position.items():
            if len(group) > 1:
                conflicts.append({"number": number, "position": position, "players": group})

    return {
        "team_id": team_id,
        "jersey_map": jersey_map,
        "available_numbers": [n for n in settings.jersey_range if n not in jersey_map],
        "conflicts": conflicts,
        "unnumbered": unnumbered,
    }


def player_team_comparison(db: Session, user_id: int, *, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """One row per current membership of a person across all active teams."""
    today = today or date.today()
    out: List[Dict[str, Any]] = []
    for m, team in store.list_memberships_for_user(db, user_id, today):
        out.append({
            "team": team.name,
            "team_id": team.id,
            "division": team.division,
            "age_group": team.age_group,
            "role": m.role,
            "priority": m.team_priority,
            "positions": store.decode_positions(m.positions),
            "primary_position": m.primary_position,
            "jersey_numbers": {"primary": m.jersey_number, "alternate": m.jersey_number_alt},
            "coach_id": team.primary_coach_id,
            "status": m.status,
        })
    return out
