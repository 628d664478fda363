"""
Athlete eligibility rules for federation tournaments.

Everything here is a pure function of its arguments. The year used to derive
an athlete's age is always passed in explicitly; request handlers obtain it
from :func:`reference_year`, which honours ``ELIGIBILITY_REFERENCE_YEAR``.

Ages are computed by calendar-year subtraction only (no birth month/day is
stored), and every age boundary in the tables below is inclusive.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Sequence

from flask import current_app, has_app_context

from pfms.errors import ValidationError
from pfms.models.models import (
    AthleteDivision,
    Equipment,
    Gender,
    Modality,
    TournamentDivision,
    WeightClass,
)

MIN_BIRTH_YEAR = 1900
MIN_COMPETITION_AGE = 14

# Inclusive (min_age, max_age) window per tournament division; None = unbounded.
DIVISION_AGE_LIMITS: dict[TournamentDivision, tuple[int, int | None]] = {
    TournamentDivision.JUNIORS: (MIN_COMPETITION_AGE, 23),
    TournamentDivision.OPEN: (20, None),
    TournamentDivision.MASTERS: (40, None),
}

# Athlete division bands used inside juniors and masters tournaments,
# as (max_age, division) checked in order.
JUNIORS_BANDS: list[tuple[int | None, AthleteDivision]] = [
    (18, AthleteDivision.SUBJUNIOR),
    (None, AthleteDivision.JUNIOR),
]
MASTERS_BANDS: list[tuple[int | None, AthleteDivision]] = [
    (49, AthleteDivision.MASTER_1),
    (59, AthleteDivision.MASTER_2),
    (69, AthleteDivision.MASTER_3),
    (None, AthleteDivision.MASTER_4),
]

# Auto-categorisation by age alone, as (min_age, max_age, division).
AGE_CATEGORY_TABLE: list[tuple[int, int | None, AthleteDivision]] = [
    (14, 18, AthleteDivision.SUBJUNIOR),
    (19, 23, AthleteDivision.JUNIOR),
    (40, 49, AthleteDivision.MASTER_1),
    (50, 59, AthleteDivision.MASTER_2),
    (60, 69, AthleteDivision.MASTER_3),
    (70, None, AthleteDivision.MASTER_4),
]

WEIGHT_CLASSES_BY_GENDER: dict[Gender, list[WeightClass]] = {
    Gender.F: [
        WeightClass.F_CAT43, WeightClass.F_CAT47, WeightClass.F_CAT52,
        WeightClass.F_CAT57, WeightClass.F_CAT63, WeightClass.F_CAT69,
        WeightClass.F_CAT76, WeightClass.F_CAT84, WeightClass.F_CATHW,
    ],
    Gender.M: [
        WeightClass.M_CAT53, WeightClass.M_CAT59, WeightClass.M_CAT66,
        WeightClass.M_CAT74, WeightClass.M_CAT83, WeightClass.M_CAT93,
        WeightClass.M_CAT105, WeightClass.M_CAT120, WeightClass.M_CATHW,
    ],
}

# Lightest classes are reserved for sub-juniors and juniors.
YOUTH_ONLY_CLASSES = {WeightClass.F_CAT43, WeightClass.M_CAT53}
YOUTH_MAX_AGE = 23

LABELS: dict[Any, str] = {
    Gender.M: "Masculino",
    Gender.F: "Femenino",
    TournamentDivision.JUNIORS: "Juniors",
    TournamentDivision.OPEN: "Open",
    TournamentDivision.MASTERS: "Masters",
    AthleteDivision.SUBJUNIOR: "Sub-Junior",
    AthleteDivision.JUNIOR: "Junior",
    AthleteDivision.OPEN: "Open",
    AthleteDivision.MASTER_1: "Master 1",
    AthleteDivision.MASTER_2: "Master 2",
    AthleteDivision.MASTER_3: "Master 3",
    AthleteDivision.MASTER_4: "Master 4",
    Modality.FULL: "Powerlifting",
    Modality.BENCH: "Press de Banca",
    Equipment.CLASSIC: "Clásico",
    Equipment.EQUIPPED: "Equipado",
}


@dataclass(frozen=True)
class AthleteProfile:
    gender: Gender
    birth_year: int


@dataclass(frozen=True)
class TournamentProfile:
    id: str
    division: TournamentDivision
    modality: Modality
    equipment: Equipment


@dataclass(frozen=True)
class Eligibility:
    athlete_division: AthleteDivision
    eligible_weight_classes: list[WeightClass]
    is_age_eligible: bool

    def to_dict(self) -> dict:
        return {
            'athlete_division': self.athlete_division.value,
            'athlete_division_label': label_for(self.athlete_division),
            'eligible_weight_classes': [w.value for w in self.eligible_weight_classes],
            'is_age_eligible': self.is_age_eligible,
        }


def reference_year(today: date | None = None) -> int:
    """Year used for age calculations in the current request."""
    if has_app_context():
        pinned = current_app.config.get('ELIGIBILITY_REFERENCE_YEAR')
        if pinned:
            return int(pinned)
    return (today or date.today()).year


def label_for(value: Any) -> str:
    """Human readable label for an enum member (falls back to its value)."""
    if value in LABELS:
        return LABELS[value]
    if isinstance(value, WeightClass):
        limit = value.limit_kg
        return "+" + _previous_limit(value) + " kg" if limit == float("inf") else f"-{int(limit)} kg"
    return getattr(value, 'value', str(value))


def _previous_limit(weight_class: WeightClass) -> str:
    classes = WEIGHT_CLASSES_BY_GENDER[weight_class.gender]
    idx = classes.index(weight_class)
    return str(int(classes[idx - 1].limit_kg))


# ----------------------------------------------------------------------------
# Boundary coercion
# ----------------------------------------------------------------------------

def _parse_enum(enum_cls, raw: Any, what: str):
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {what} '{raw}'. Expected one of: {allowed}") from None


def parse_gender(raw: Any) -> Gender:
    if isinstance(raw, str):
        raw = raw.strip().upper()
    return _parse_enum(Gender, raw, "gender")


def parse_division(raw: Any) -> TournamentDivision:
    if isinstance(raw, str):
        raw = raw.strip().lower()
    return _parse_enum(TournamentDivision, raw, "division")


def parse_weight_class(raw: Any) -> WeightClass:
    if isinstance(raw, str):
        raw = raw.strip().upper()
    return _parse_enum(WeightClass, raw, "weight class")


def check_birth_year(birth_year: Any, year: int) -> int:
    """Validate that ``birth_year`` is a plausible calendar year."""
    if isinstance(birth_year, bool):
        raise ValidationError("Birth year must be an integer")
    try:
        value = int(birth_year)
    except (TypeError, ValueError):
        raise ValidationError("Birth year must be an integer") from None
    if value != birth_year and not isinstance(birth_year, str):
        raise ValidationError("Birth year must be an integer")
    if value < MIN_BIRTH_YEAR or value > year:
        raise ValidationError(f"Birth year must be between {MIN_BIRTH_YEAR} and {year}")
    return value


def age_in(birth_year: int, year: int) -> int:
    return year - birth_year


# ----------------------------------------------------------------------------
# Core rules
# ----------------------------------------------------------------------------

def _band(bands: Sequence[tuple[int | None, AthleteDivision]], age: int) -> AthleteDivision:
    for max_age, division in bands:
        if max_age is None or age <= max_age:
            return division
    raise AssertionError("band table must end with an unbounded entry")


def resolve_athlete_division(
    tournament_division: TournamentDivision | str,
    birth_year: int,
    year: int,
) -> AthleteDivision:
    """
    Map a tournament division plus the athlete's age to the athlete division
    they compete in.

    Args:
        tournament_division: Division the tournament is run under
        birth_year: Athlete's year of birth
        year: Reference year for the age calculation

    Returns:
        AthleteDivision (total over all valid inputs)
    """
    division = parse_division(tournament_division)
    birth_year = check_birth_year(birth_year, year)
    age = age_in(birth_year, year)

    if division == TournamentDivision.JUNIORS:
        return _band(JUNIORS_BANDS, age)
    if division == TournamentDivision.MASTERS:
        return _band(MASTERS_BANDS, age)
    return AthleteDivision.OPEN


def athlete_division_for_age(birth_year: int, year: int) -> AthleteDivision:
    """Auto-categorise an athlete by age alone (open when no band applies)."""
    age = age_in(check_birth_year(birth_year, year), year)
    for min_age, max_age, division in AGE_CATEGORY_TABLE:
        if age >= min_age and (max_age is None or age <= max_age):
            return division
    return AthleteDivision.OPEN


def is_age_eligible(
    tournament_division: TournamentDivision | str,
    birth_year: int,
    year: int,
) -> bool:
    """Whether an athlete of this age may compete in the division at all."""
    division = parse_division(tournament_division)
    age = age_in(check_birth_year(birth_year, year), year)
    if age < MIN_COMPETITION_AGE:
        return False
    min_age, max_age = DIVISION_AGE_LIMITS[division]
    return age >= min_age and (max_age is None or age <= max_age)


def eligible_weight_classes(
    gender: Gender | str,
    birth_year: int,
    tournament_division: TournamentDivision | str,
    year: int,
) -> list[WeightClass]:
    """
    Weight classes an athlete may register under, lightest first.

    A fresh list is built on every call.
    """
    gender = parse_gender(gender)
    parse_division(tournament_division)
    age = age_in(check_birth_year(birth_year, year), year)

    classes = WEIGHT_CLASSES_BY_GENDER[gender]
    if age > YOUTH_MAX_AGE:
        return [w for w in classes if w not in YOUTH_ONLY_CLASSES]
    return list(classes)


def resolve_eligibility(
    athlete: AthleteProfile | Any,
    tournament_division: TournamentDivision | str,
    year: int,
) -> Eligibility:
    """Combined view used by registration endpoints and listings."""
    return Eligibility(
        athlete_division=resolve_athlete_division(tournament_division, athlete.birth_year, year),
        eligible_weight_classes=eligible_weight_classes(
            athlete.gender, athlete.birth_year, tournament_division, year
        ),
        is_age_eligible=is_age_eligible(tournament_division, athlete.birth_year, year),
    )


def validate_weight_class(
    athlete: AthleteProfile | Any,
    tournament_division: TournamentDivision | str,
    weight_class: WeightClass | str,
    year: int,
) -> WeightClass:
    """Raise ValidationError unless ``weight_class`` is legal for the athlete."""
    weight_class = parse_weight_class(weight_class)
    division = parse_division(tournament_division)
    if not is_age_eligible(division, athlete.birth_year, year):
        raise ValidationError(
            f"Athlete born in {athlete.birth_year} is not age-eligible for the "
            f"{label_for(division)} division"
        )
    allowed = eligible_weight_classes(athlete.gender, athlete.birth_year, division, year)
    if weight_class not in allowed:
        raise ValidationError(
            f"Weight class {weight_class.value} is not available for this athlete. "
            f"Allowed: {', '.join(w.value for w in allowed)}"
        )
    return weight_class


# ----------------------------------------------------------------------------
# Tournament matching within an event
# ----------------------------------------------------------------------------

def can_enter_open(athlete: AthleteProfile | Any, year: int) -> bool:
    return is_age_eligible(TournamentDivision.OPEN, athlete.birth_year, year)


def eligible_tournaments(
    athlete: AthleteProfile | Any,
    tournaments: Iterable[TournamentProfile | Any],
    year: int,
) -> list:
    """Tournaments of an event the athlete's age allows them to enter."""
    return [
        t for t in tournaments
        if is_age_eligible(t.division, athlete.birth_year, year)
    ]


def preferred_division(athlete: AthleteProfile | Any, year: int) -> TournamentDivision:
    age = age_in(athlete.birth_year, year)
    if age <= DIVISION_AGE_LIMITS[TournamentDivision.JUNIORS][1]:
        return TournamentDivision.JUNIORS
    if age >= DIVISION_AGE_LIMITS[TournamentDivision.MASTERS][0]:
        return TournamentDivision.MASTERS
    return TournamentDivision.OPEN


def match_tournament(
    athlete: AthleteProfile | Any,
    modality: Modality | str,
    equipment: Equipment | str,
    tournaments: Sequence[TournamentProfile | Any],
    year: int,
):
    """
    Pick the tournament an athlete should be nominated into for a given
    modality/equipment: the one for their age division, or the open one when
    that division is not run and they are old enough for open.
    """
    modality = _parse_enum(Modality, modality, "modality")
    equipment = _parse_enum(Equipment, equipment, "equipment")
    target = preferred_division(athlete, year)

    def _find(division: TournamentDivision):
        for t in tournaments:
            if t.modality == modality and t.equipment == equipment and t.division == division:
                return t
        return None

    match = _find(target)
    if match is None and target != TournamentDivision.OPEN and can_enter_open(athlete, year):
        match = _find(TournamentDivision.OPEN)
    return match


def open_counterpart(tournament: TournamentProfile | Any, tournaments: Iterable[TournamentProfile | Any]):
    """Open tournament with the same modality and equipment, if any."""
    if tournament.division == TournamentDivision.OPEN:
        return None
    for t in tournaments:
        if (
            t.division == TournamentDivision.OPEN
            and t.modality == tournament.modality
            and t.equipment == tournament.equipment
            and t.id != tournament.id
        ):
            return t
    return None


__all__ = [
    'AthleteProfile',
    'TournamentProfile',
    'Eligibility',
    'reference_year',
    'label_for',
    'parse_gender',
    'parse_division',
    'parse_weight_class',
    'check_birth_year',
    'resolve_athlete_division',
    'athlete_division_for_age',
    'is_age_eligible',
    'eligible_weight_classes',
    'resolve_eligibility',
    'validate_weight_class',
    'can_enter_open',
    'eligible_tournaments',
    'preferred_division',
    'match_tournament',
    'open_counterpart',
]
