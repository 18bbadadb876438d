from __future__ import annotations
from datetime import date
from typing import List, Optional
from pydantic import BaseModel

class PositionAssignment(BaseModel):
    position: str
    jersey_number: Optional[int] = None

class PlayerIn(BaseModel):
    user_id: int
    jersey_number: Optional[int] = None
    jersey_number_alt: Optional[int] = None
    positions: List[str] = []
    primary_position: Optional[str] = None
    team_priority: str = "primary"   # primary | secondary | guest
    status: str = "active"
    position_assignments: Optional[List[PositionAssignment]] = None  # None = one per listed position
    guest_player_agreement_id: Optional[int] = None

class GuestPlayerIn(PlayerIn):
    team_priority: str = "guest"
    valid_until: Optional[date] = None
    specific_games: List[int] = []

class PositionUpdateIn(BaseModel):
    jersey_number: Optional[int] = None
    jersey_number_alt: Optional[int] = None
    positions: List[str] = []
    primary_position: Optional[str] = None
    position_assignments: Optional[List[PositionAssignment]] = None
    old_positions: Optional[List[str]] = None  # snapshot for the change log; defaults to stored list

class RemovePlayerIn(BaseModel):
    reason: Optional[str] = None

class JerseyCheckIn(BaseModel):
    positions: List[PositionAssignment]
    exclude_member_id: Optional[int] = None

class JerseyCheckOut(BaseModel):
    conflicts: List[str]

class AttendanceItem(BaseModel):
    team_member_id: int
    status: str   # present | absent | late | excused
    notes: Optional[str] = None

class AttendanceIn(BaseModel):
    attendance: List[AttendanceItem]

class MembershipOut(BaseModel):
    id: int
    team_id: int
    user_id: int
    role: str
    team_priority: str
    jersey_number: Optional[int] = None
    jersey_number_alt: Optional[int] = None
    positions: List[str] = []
    primary_position: Optional[str] = None
    status: str
    join_date: date
    leave_date: Optional[date] = None
    position_jerseys: List[PositionAssignment] = []
