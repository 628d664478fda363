from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SqlEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from pfms.extensions import db, bcrypt

JSONType = JSON().with_variant(JSONB, 'postgresql')

ALIVE = text("deleted_at IS NULL")


def _enum_column(enum_cls, name: str):
    return SqlEnum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda x: [e.value for e in x],
    )


class TimestampedBase(db.Model):
    """Abstract base providing id/created/updated columns."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class SoftDeleteMixin:
    """Rows are never removed; ``deleted_at`` marks them dead."""

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def is_alive(self) -> bool:
        return self.deleted_at is None

    def soft_delete(self, when: datetime | None = None) -> None:
        self.deleted_at = when or datetime.now(timezone.utc)


class UserRole(Enum):
    ADMIN = "admin"
    TEAM = "team"


class Gender(Enum):
    M = "M"
    F = "F"


class TournamentDivision(Enum):
    JUNIORS = "juniors"
    OPEN = "open"
    MASTERS = "masters"


class AthleteDivision(Enum):
    SUBJUNIOR = "subjunior"
    JUNIOR = "junior"
    OPEN = "open"
    MASTER_1 = "master_1"
    MASTER_2 = "master_2"
    MASTER_3 = "master_3"
    MASTER_4 = "master_4"


class WeightClass(Enum):
    F_CAT43 = "F_CAT43"
    F_CAT47 = "F_CAT47"
    F_CAT52 = "F_CAT52"
    F_CAT57 = "F_CAT57"
    F_CAT63 = "F_CAT63"
    F_CAT69 = "F_CAT69"
    F_CAT76 = "F_CAT76"
    F_CAT84 = "F_CAT84"
    F_CATHW = "F_CATHW"

    M_CAT53 = "M_CAT53"
    M_CAT59 = "M_CAT59"
    M_CAT66 = "M_CAT66"
    M_CAT74 = "M_CAT74"
    M_CAT83 = "M_CAT83"
    M_CAT93 = "M_CAT93"
    M_CAT105 = "M_CAT105"
    M_CAT120 = "M_CAT120"
    M_CATHW = "M_CATHW"

    @property
    def gender(self) -> Gender:
        return Gender(self.value.split("_", 1)[0])

    @property
    def limit_kg(self) -> float:
        """Upper body-weight bound; heavyweight is unbounded."""
        suffix = self.value.split("_CAT", 1)[1]
        if suffix == "HW":
            return float("inf")
        return float(suffix)


class Modality(Enum):
    FULL = "full"
    BENCH = "bench"


class Equipment(Enum):
    CLASSIC = "classic"
    EQUIPPED = "equipped"


class TournamentStatus(Enum):
    DRAFT = "draft"
    PRELIMINARY_OPEN = "preliminary_open"
    PRELIMINARY_CLOSED = "preliminary_closed"
    FINISHED = "finished"


class RegistrationStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RefereeCategory(Enum):
    INT_CAT_1 = "int_cat_1"
    INT_CAT_2 = "int_cat_2"
    NATIONAL = "national"


class CoachRole(Enum):
    HEAD_COACH = "head_coach"
    ASSISTANT_COACH = "assistant_coach"


class User(TimestampedBase):
    __tablename__ = "user"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole, "user_role"),
        nullable=False,
        default=UserRole.TEAM,
    )
    active: Mapped[bool] = mapped_column('is_active', Boolean, nullable=False, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    team: Mapped["Team | None"] = relationship(back_populates="user", uselist=False)
    audit_logs: Mapped[list["AuditLog"]] = relationship(back_populates="user")

    def set_password(self, password: str) -> None:
        self.password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode('utf-8'), self.password_hash.encode('utf-8'))
        except ValueError:
            return False

    def has_role(self, *roles: UserRole | str) -> bool:
        role_value = self.role.value if isinstance(self.role, UserRole) else str(self.role)
        allowed = {r.value if isinstance(r, UserRole) else str(r) for r in roles}
        return role_value in allowed

    @property
    def is_admin(self) -> bool:
        return self.has_role(UserRole.ADMIN)

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_active(self) -> bool:  # Flask-Login compatibility
        return bool(self.active)

    @property
    def is_anonymous(self) -> bool:
        return False

    def get_id(self) -> str:
        return self.id


class Team(SoftDeleteMixin, TimestampedBase):
    __tablename__ = "team"

    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    user: Mapped[User] = relationship(back_populates="team")
    athletes: Mapped[list["Athlete"]] = relationship(back_populates="team")
    coaches: Mapped[list["Coach"]] = relationship(back_populates="team")

    @property
    def display_name(self) -> str:
        return self.user.name if self.user else self.slug


class Athlete(SoftDeleteMixin, TimestampedBase):
    __tablename__ = "athlete"
    __table_args__ = (
        Index("ix_athlete_team", "team_id"),
        Index(
            "uq_athlete_team_dni_alive",
            "team_id",
            "dni",
            unique=True,
            sqlite_where=ALIVE,
            postgresql_where=ALIVE,
        ),
    )

    team_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("team.id", ondelete="CASCADE"),
        nullable=False,
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dni: Mapped[str] = mapped_column(String(32), nullable=False)
    birth_year: Mapped[int] = mapped_column(Integer, nullable=False)
    gender: Mapped[Gender] = mapped_column(_enum_column(Gender, "gender"), nullable=False)
    goodlift_ref: Mapped[str | None] = mapped_column(String(255))
    squat_best_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    bench_best_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    deadlift_best_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    team: Mapped[Team] = relationship(back_populates="athletes")
    registrations: Mapped[list["Registration"]] = relationship(back_populates="athlete")

    @property
    def estimated_total_kg(self) -> float:
        return (self.squat_best_kg or 0) + (self.bench_best_kg or 0) + (self.deadlift_best_kg or 0)


class Coach(SoftDeleteMixin, TimestampedBase):
    """Team coach; may be nominated to events."""
    __tablename__ = "coach"
    __table_args__ = (
        Index("ix_coach_team", "team_id"),
        Index(
            "uq_coach_team_dni_alive",
            "team_id",
            "dni",
            unique=True,
            sqlite_where=ALIVE,
            postgresql_where=ALIVE,
        ),
    )

    team_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("team.id", ondelete="CASCADE"),
        nullable=False,
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dni: Mapped[str] = mapped_column(String(32), nullable=False)

    team: Mapped[Team] = relationship(back_populates="coaches")
    event_assignments: Mapped[list["EventCoach"]] = relationship(back_populates="coach")


class Referee(SoftDeleteMixin, TimestampedBase):
    """Federation referee (not owned by any team)."""
    __tablename__ = "referee"
    __table_args__ = (
        Index(
            "uq_referee_dni_alive",
            "dni",
            unique=True,
            sqlite_where=ALIVE,
            postgresql_where=ALIVE,
        ),
    )

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dni: Mapped[str] = mapped_column(String(32), nullable=False)
    category: Mapped[RefereeCategory] = mapped_column(
        _enum_column(RefereeCategory, "referee_category"),
        nullable=False,
        default=RefereeCategory.NATIONAL,
    )

    event_assignments: Mapped[list["EventReferee"]] = relationship(back_populates="referee")


class Event(SoftDeleteMixin, TimestampedBase):
    __tablename__ = "event"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    venue: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    tournaments: Mapped[list["Tournament"]] = relationship(back_populates="event")


class Tournament(SoftDeleteMixin, TimestampedBase):
    __tablename__ = "tournament"
    __table_args__ = (
        Index("ix_tournament_event", "event_id"),
    )

    event_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("event.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    division: Mapped[TournamentDivision] = mapped_column(
        _enum_column(TournamentDivision, "tournament_division"),
        nullable=False,
        default=TournamentDivision.OPEN,
    )
    modality: Mapped[Modality] = mapped_column(
        _enum_column(Modality, "modality"),
        nullable=False,
        default=Modality.FULL,
    )
    equipment: Mapped[Equipment] = mapped_column(
        _enum_column(Equipment, "equipment"),
        nullable=False,
        default=Equipment.CLASSIC,
    )
    status: Mapped[TournamentStatus] = mapped_column(
        _enum_column(TournamentStatus, "tournament_status"),
        nullable=False,
        default=TournamentStatus.DRAFT,
    )
    max_athletes: Mapped[int | None] = mapped_column(Integer)

    event: Mapped[Event] = relationship(back_populates="tournaments")
    registrations: Mapped[list["Registration"]] = relationship(back_populates="tournament")

    @property
    def accepts_nominations(self) -> bool:
        return self.status == TournamentStatus.PRELIMINARY_OPEN


class Registration(SoftDeleteMixin, TimestampedBase):
    __tablename__ = "registration"
    __table_args__ = (
        Index("ix_registration_status", "status"),
        Index("ix_registration_tournament", "tournament_id"),
        Index(
            "uq_registration_athlete_tournament_alive",
            "tournament_id",
            "athlete_id",
            unique=True,
            sqlite_where=ALIVE,
            postgresql_where=ALIVE,
        ),
    )

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournament.id", ondelete="CASCADE"),
        nullable=False,
    )
    team_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("team.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    athlete_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("athlete.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reviewed_by_user_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="SET NULL"),
    )

    weight_class: Mapped[WeightClass] = mapped_column(
        _enum_column(WeightClass, "weight_class"),
        nullable=False,
    )
    squat_opener_kg: Mapped[float | None] = mapped_column(Float)
    bench_opener_kg: Mapped[float | None] = mapped_column(Float)
    deadlift_opener_kg: Mapped[float | None] = mapped_column(Float)

    status: Mapped[RegistrationStatus] = mapped_column(
        _enum_column(RegistrationStatus, "registration_status"),
        nullable=False,
        default=RegistrationStatus.PENDING,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    tournament: Mapped[Tournament] = relationship(back_populates="registrations")
    team: Mapped[Team] = relationship()
    athlete: Mapped[Athlete] = relationship(back_populates="registrations")
    reviewed_by: Mapped["User | None"] = relationship(foreign_keys=[reviewed_by_user_id])


class EventReferee(SoftDeleteMixin, TimestampedBase):
    """Link table for referee-event assignments."""
    __tablename__ = "event_referee"
    __table_args__ = (
        Index("ix_event_referee_event", "event_id"),
        Index(
            "uq_event_referee_alive",
            "event_id",
            "referee_id",
            unique=True,
            sqlite_where=ALIVE,
            postgresql_where=ALIVE,
        ),
    )

    event_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("event.id", ondelete="CASCADE"),
        nullable=False,
    )
    referee_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("referee.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    referee: Mapped[Referee] = relationship(back_populates="event_assignments")
    event: Mapped[Event] = relationship()


class EventCoach(SoftDeleteMixin, TimestampedBase):
    """Link table for coach-event registrations."""
    __tablename__ = "event_coach"
    __table_args__ = (
        Index("ix_event_coach_event", "event_id"),
        Index(
            "uq_event_coach_alive",
            "event_id",
            "coach_id",
            unique=True,
            sqlite_where=ALIVE,
            postgresql_where=ALIVE,
        ),
    )

    event_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("event.id", ondelete="CASCADE"),
        nullable=False,
    )
    coach_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("coach.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[CoachRole] = mapped_column(
        _enum_column(CoachRole, "coach_role"),
        nullable=False,
        default=CoachRole.HEAD_COACH,
    )

    coach: Mapped[Coach] = relationship(back_populates="event_assignments")
    event: Mapped[Event] = relationship()


class AuditLog(TimestampedBase):
    __tablename__ = "audit_log"

    user_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="SET NULL"),
        index=True,
    )
    action: Mapped[str] = mapped_column(String(128), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(128), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(36))
    meta: Mapped[dict | None] = mapped_column(JSONType, default=dict)

    user: Mapped[User | None] = relationship(back_populates="audit_logs")
