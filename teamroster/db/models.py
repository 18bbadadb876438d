from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func, text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Team(Base):
    __tablename__ = "teams"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    logo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    age_group: Mapped[str] = mapped_column(String(16))
    division: Mapped[str] = mapped_column(String(32))
    # seasons / users / fields live outside this service; plain ids
    season_id: Mapped[int] = mapped_column(Integer, index=True)
    primary_coach_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    home_field_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_players: Mapped[int] = mapped_column(Integer, default=20)

    # soft delete: timestamp + reason + actor
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deletion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    deleted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_modified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    members: Mapped[List["TeamMember"]] = relationship(back_populates="team")


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (
        # one open-ended membership per (team, person)
        Index(
            "uq_team_members_open",
            "team_id", "user_id",
            unique=True,
            postgresql_where=text("leave_date IS NULL"),
            sqlite_where=text("leave_date IS NULL"),
        ),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), index=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    role: Mapped[str] = mapped_column(String(32), default="player")  # player | assistant_coach
    team_priority: Mapped[str] = mapped_column(String(16), default="primary")  # primary | secondary | guest

    jersey_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    jersey_number_alt: Mapped[int | None] = mapped_column(Integer, nullable=True)
    positions: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON list as str
    primary_position: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="active")

    join_date: Mapped[date] = mapped_column(Date, default=date.today)
    leave_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    leave_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    removed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    guest_player_agreement_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    team: Mapped[Team] = relationship(back_populates="members")
    assignments: Mapped[List["PlayerPositionAssignment"]] = relationship(back_populates="member")


class PlayerPositionAssignment(Base):
    __tablename__ = "player_position_assignments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    team_member_id: Mapped[int] = mapped_column(ForeignKey("team_members.id"), index=True)
    position: Mapped[str] = mapped_column(String(32))
    jersey_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    assigned_date: Mapped[date] = mapped_column(Date, default=date.today)

    member: Mapped[TeamMember] = relationship(back_populates="assignments")


class GuestPlayerGame(Base):
    __tablename__ = "guest_player_games"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    team_member_id: Mapped[int] = mapped_column(ForeignKey("team_members.id"), index=True)
    game_id: Mapped[int] = mapped_column(Integer)


class RosterChangeLog(Base):
    __tablename__ = "roster_change_log"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    team_member_id: Mapped[int] = mapped_column(ForeignKey("team_members.id"), index=True)
    changed_by: Mapped[int] = mapped_column(Integer)
    field_name: Mapped[str] = mapped_column(String(64))
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class TeamAuditLog(Base):
    __tablename__ = "team_audit_log"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), index=True)
    changed_by: Mapped[int] = mapped_column(Integer)
    field_name: Mapped[str] = mapped_column(String(64))
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Event(Base):
    __tablename__ = "events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_datetime: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    cancelled: Mapped[bool] = mapped_column(Boolean, default=False)


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (UniqueConstraint("event_id", "team_member_id", name="uq_attendance_event_member"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id"), index=True)
    team_member_id: Mapped[int] = mapped_column(ForeignKey("team_members.id"), index=True)
    status: Mapped[str] = mapped_column(String(16))  # present | absent | late | excused
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by: Mapped[int] = mapped_column(Integer)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class TeamVolunteer(Base):
    __tablename__ = "team_volunteers"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), index=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    volunteer_role: Mapped[str] = mapped_column(String(64))
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    background_check_status: Mapped[str] = mapped_column(String(32), default="pending")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_by: Mapped[int] = mapped_column(Integer)
