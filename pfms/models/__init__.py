from .models import (
    AthleteDivision,
    Athlete,
    AuditLog,
    Coach,
    CoachRole,
    Equipment,
    Event,
    EventCoach,
    EventReferee,
    Gender,
    Modality,
    Referee,
    RefereeCategory,
    Registration,
    RegistrationStatus,
    Team,
    Tournament,
    TournamentDivision,
    TournamentStatus,
    User,
    UserRole,
    WeightClass,
)

__all__ = [
    "AthleteDivision",
    "Athlete",
    "AuditLog",
    "Coach",
    "CoachRole",
    "Equipment",
    "Event",
    "EventCoach",
    "EventReferee",
    "Gender",
    "Modality",
    "Referee",
    "RefereeCategory",
    "Registration",
    "RegistrationStatus",
    "Team",
    "Tournament",
    "TournamentDivision",
    "TournamentStatus",
    "User",
    "UserRole",
    "WeightClass",
]
