"""JSON serializers shared by the public, team and admin APIs."""

from __future__ import annotations

from datetime import date, datetime

from pfms.models import (
    Athlete,
    Coach,
    Event,
    EventCoach,
    Referee,
    Registration,
    Tournament,
)
from pfms.services.eligibility import label_for


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_event(event: Event, tournaments: list[Tournament] | None = None) -> dict:
    data = {
        'id': event.id,
        'name': event.name,
        'slug': event.slug,
        'venue': event.venue,
        'location': event.location,
        'start_date': _iso(event.start_date),
        'end_date': _iso(event.end_date),
        'description': event.description,
    }
    if tournaments is not None:
        data['tournaments'] = [serialize_tournament(t) for t in tournaments]
    return data


def serialize_tournament(tournament: Tournament) -> dict:
    return {
        'id': tournament.id,
        'event_id': tournament.event_id,
        'name': tournament.name,
        'division': tournament.division.value,
        'modality': tournament.modality.value,
        'equipment': tournament.equipment.value,
        'status': tournament.status.value,
        'max_athletes': tournament.max_athletes,
        'accepts_nominations': tournament.accepts_nominations,
    }


def serialize_athlete(athlete: Athlete) -> dict:
    return {
        'id': athlete.id,
        'team_id': athlete.team_id,
        'full_name': athlete.full_name,
        'dni': athlete.dni,
        'birth_year': athlete.birth_year,
        'gender': athlete.gender.value,
        'goodlift_ref': athlete.goodlift_ref,
        'squat_best_kg': athlete.squat_best_kg,
        'bench_best_kg': athlete.bench_best_kg,
        'deadlift_best_kg': athlete.deadlift_best_kg,
        'estimated_total_kg': athlete.estimated_total_kg,
    }


def serialize_coach(coach: Coach) -> dict:
    return {
        'id': coach.id,
        'team_id': coach.team_id,
        'full_name': coach.full_name,
        'dni': coach.dni,
    }


def serialize_referee(referee: Referee, include_dni: bool = True) -> dict:
    data = {
        'id': referee.id,
        'full_name': referee.full_name,
        'category': referee.category.value,
    }
    if include_dni:
        data['dni'] = referee.dni
    return data


def serialize_event_coach(assignment: EventCoach, include_dni: bool = True) -> dict:
    coach = assignment.coach
    data = {
        'id': assignment.id,
        'event_id': assignment.event_id,
        'coach_id': assignment.coach_id,
        'role': assignment.role.value,
        'full_name': coach.full_name,
        'team': coach.team.display_name if coach.team else None,
    }
    if include_dni:
        data['dni'] = coach.dni
    return data


def serialize_registration(registration: Registration) -> dict:
    athlete = registration.athlete
    return {
        'id': registration.id,
        'tournament_id': registration.tournament_id,
        'team_id': registration.team_id,
        'athlete_id': registration.athlete_id,
        'athlete_name': athlete.full_name if athlete else None,
        'weight_class': registration.weight_class.value,
        'weight_class_label': label_for(registration.weight_class),
        'squat_opener_kg': registration.squat_opener_kg,
        'bench_opener_kg': registration.bench_opener_kg,
        'deadlift_opener_kg': registration.deadlift_opener_kg,
        'status': registration.status.value,
        'rejection_reason': registration.rejection_reason,
        'reviewed_at': _iso(registration.reviewed_at),
        'created_at': _iso(registration.created_at),
    }


__all__ = [
    'serialize_event',
    'serialize_tournament',
    'serialize_athlete',
    'serialize_coach',
    'serialize_referee',
    'serialize_event_coach',
    'serialize_registration',
]
