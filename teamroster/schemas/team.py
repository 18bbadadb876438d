from __future__ import annotations
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel

class TeamIn(BaseModel):
    # enum/uniqueness checks run in the service so every problem is reported together
    name: str = ""
    logo_url: Optional[str] = None
    age_group: str = ""
    division: str = ""
    season_id: Optional[int] = None
    primary_coach_id: Optional[int] = None
    home_field_id: Optional[int] = None
    max_players: Optional[int] = None

class TeamOut(BaseModel):
    id: int
    name: str
    logo_url: Optional[str] = None
    age_group: str
    division: str
    season_id: int
    primary_coach_id: Optional[int] = None
    home_field_id: Optional[int] = None
    max_players: int
    player_count: int = 0
    deleted_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None

class Pagination(BaseModel):
    total: int
    per_page: int
    current_page: int
    total_pages: int

class TeamList(BaseModel):
    teams: List[TeamOut]
    pagination: Pagination

class ArchiveIn(BaseModel):
    reason: Optional[str] = None

class CoachAssignIn(BaseModel):
    coach_id: int
    role: str = "primary"  # primary | assistant

class VolunteerIn(BaseModel):
    user_id: int
    volunteer_role: str
    start_date: date
    end_date: Optional[date] = None
    background_check_status: str = "pending"
    notes: Optional[str] = None

class BulkActionIn(BaseModel):
    team_ids: List[int]
    action: str  # clone_to_season | bulk_assign_coach | archive | update_division
    params: Dict[str, Any] = {}

class AuditEntry(BaseModel):
    id: int
    changed_by: int
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_at: datetime
