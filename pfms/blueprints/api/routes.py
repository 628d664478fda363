"""Public and team-scoped JSON API blueprint."""

from __future__ import annotations

import io

from flask import Blueprint, jsonify, request, send_file
from flask_login import current_user

from pfms.auth import team_required
from pfms.blueprints.common.scoping import alive_query, current_team, get_alive_or_404, get_owned_or_404
from pfms.blueprints.common.serializers import (
    serialize_athlete,
    serialize_coach,
    serialize_event,
    serialize_event_coach,
    serialize_referee,
    serialize_registration,
    serialize_tournament,
)
from pfms.errors import ValidationError
from pfms.extensions import ELIGIBILITY_LIMIT, IMPORT_LIMIT, limiter
from pfms.forms import AthleteForm, CoachForm, RegistrationForm
from pfms.models import Athlete, Coach, Equipment, Event, Gender, Modality, Tournament
from pfms.services import assignments, registrations
from pfms.services.crud import AthleteService, CoachService
from pfms.services.eligibility import (
    AthleteProfile,
    check_birth_year,
    eligible_tournaments,
    match_tournament,
    open_counterpart,
    parse_division,
    parse_gender,
    reference_year,
    resolve_eligibility,
)
from pfms.services.export_import import XLSX_MIMETYPE, athlete_template_xlsx, import_athletes

api_bp = Blueprint('api', __name__)


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


# ============================================================================
# PUBLIC: EVENTS AND ROSTERS
# ============================================================================

@api_bp.route('/events', methods=['GET'])
def list_events():
    events = alive_query(Event).order_by(Event.start_date.asc()).all()
    return jsonify({'items': [serialize_event(e) for e in events]})


@api_bp.route('/events/<event_id>', methods=['GET'])
def event_detail(event_id):
    event = get_alive_or_404(Event, event_id)
    tournaments = alive_query(Tournament).filter_by(event_id=event.id).order_by(Tournament.name).all()
    return jsonify({'event': serialize_event(event, tournaments)})


@api_bp.route('/events/<event_id>/referees', methods=['GET'])
def event_referee_list(event_id):
    referees = assignments.event_referees(event_id)
    return jsonify({'items': [serialize_referee(r, include_dni=False) for r in referees]})


@api_bp.route('/events/<event_id>/coaches', methods=['GET'])
def event_coach_list(event_id):
    coaches = assignments.event_coaches(event_id)
    return jsonify({'items': [serialize_event_coach(c, include_dni=False) for c in coaches]})


@api_bp.route('/eligibility', methods=['POST'])
@limiter.limit(ELIGIBILITY_LIMIT)
def eligibility():
    """Eligibility preview for a prospective registration."""
    payload = _json_body()
    year = reference_year()
    profile = AthleteProfile(
        gender=parse_gender(payload.get('gender')),
        birth_year=check_birth_year(payload.get('birth_year'), year),
    )
    division = parse_division(payload.get('division'))
    return jsonify(resolve_eligibility(profile, division, year).to_dict())


# ============================================================================
# TEAM: ATHLETES
# ============================================================================

def _athlete_data(form: AthleteForm) -> dict:
    return {
        'full_name': form.full_name.data,
        'dni': form.dni.data,
        'birth_year': check_birth_year(form.birth_year.data, reference_year()),
        'gender': Gender(form.gender.data),
        'goodlift_ref': form.goodlift_ref.data or None,
        'squat_best_kg': form.squat_best_kg.data or 0,
        'bench_best_kg': form.bench_best_kg.data or 0,
        'deadlift_best_kg': form.deadlift_best_kg.data or 0,
    }


@api_bp.route('/athletes', methods=['GET'])
@team_required
def list_athletes():
    athletes = AthleteService(current_team()).list_all(order_by=Athlete.full_name)
    return jsonify({'items': [serialize_athlete(a) for a in athletes]})


@api_bp.route('/athletes', methods=['POST'])
@team_required
def create_athlete():
    form = AthleteForm.from_json(_json_body()).validate_or_raise()
    athlete = AthleteService(current_team()).create(_athlete_data(form), current_user)
    return jsonify({'athlete': serialize_athlete(athlete)}), 201


@api_bp.route('/athletes/<athlete_id>', methods=['GET'])
@team_required
def get_athlete(athlete_id):
    athlete = AthleteService(current_team()).get_by_id(athlete_id)
    return jsonify({'athlete': serialize_athlete(athlete)})


@api_bp.route('/athletes/<athlete_id>', methods=['PUT'])
@team_required
def update_athlete(athlete_id):
    form = AthleteForm.from_json(_json_body()).validate_or_raise()
    athlete = AthleteService(current_team()).update(athlete_id, _athlete_data(form), current_user)
    return jsonify({'athlete': serialize_athlete(athlete)})


@api_bp.route('/athletes/<athlete_id>', methods=['DELETE'])
@team_required
def delete_athlete(athlete_id):
    AthleteService(current_team()).delete(athlete_id, current_user)
    return jsonify({'message': 'Athlete deleted'})


@api_bp.route('/athletes/<athlete_id>/tournaments', methods=['GET'])
@team_required
def athlete_tournaments(athlete_id):
    """Tournaments of an event the athlete may enter, with the suggested one per format."""
    athlete = get_owned_or_404(Athlete, athlete_id)
    event_id = request.args.get('event_id')
    if not event_id:
        raise ValidationError("event_id is required")
    event = get_alive_or_404(Event, event_id)
    tournaments = alive_query(Tournament).filter_by(event_id=event.id).all()
    year = reference_year()

    items = []
    for tournament in eligible_tournaments(athlete, tournaments, year):
        counterpart = open_counterpart(tournament, tournaments)
        items.append({
            'tournament': serialize_tournament(tournament),
            'eligibility': resolve_eligibility(athlete, tournament.division, year).to_dict(),
            'open_counterpart_id': counterpart.id if counterpart else None,
        })

    suggested = {}
    for modality in Modality:
        for equipment in Equipment:
            match = match_tournament(athlete, modality, equipment, tournaments, year)
            if match is not None:
                suggested[f"{modality.value}:{equipment.value}"] = match.id

    return jsonify({'items': items, 'suggested': suggested})


@api_bp.route('/athletes/import', methods=['POST'])
@team_required
@limiter.limit(IMPORT_LIMIT)
def import_athletes_upload():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        raise ValidationError("No file provided")
    summary = import_athletes(current_team(), io.BytesIO(upload.read()), reference_year(), current_user)
    return jsonify(summary), 201 if summary['inserted'] else 200


@api_bp.route('/athletes/template', methods=['GET'])
def athlete_template():
    return send_file(
        io.BytesIO(athlete_template_xlsx()),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name='plantilla_atletas.xlsx',
    )


# ============================================================================
# TEAM: COACHES
# ============================================================================

@api_bp.route('/coaches', methods=['GET'])
@team_required
def list_coaches():
    coaches = CoachService(current_team()).list_all(order_by=Coach.full_name)
    return jsonify({'items': [serialize_coach(c) for c in coaches]})


@api_bp.route('/coaches', methods=['POST'])
@team_required
def create_coach():
    form = CoachForm.from_json(_json_body()).validate_or_raise()
    coach = CoachService(current_team()).create(
        {'full_name': form.full_name.data, 'dni': form.dni.data},
        current_user,
    )
    return jsonify({'coach': serialize_coach(coach)}), 201


@api_bp.route('/coaches/<coach_id>', methods=['GET'])
@team_required
def get_coach(coach_id):
    coach = CoachService(current_team()).get_by_id(coach_id)
    return jsonify({'coach': serialize_coach(coach)})


@api_bp.route('/coaches/<coach_id>', methods=['PUT'])
@team_required
def update_coach(coach_id):
    form = CoachForm.from_json(_json_body()).validate_or_raise()
    coach = CoachService(current_team()).update(
        coach_id,
        {'full_name': form.full_name.data, 'dni': form.dni.data},
        current_user,
    )
    return jsonify({'coach': serialize_coach(coach)})


@api_bp.route('/coaches/<coach_id>', methods=['DELETE'])
@team_required
def delete_coach(coach_id):
    CoachService(current_team()).delete(coach_id, current_user)
    return jsonify({'message': 'Coach deleted'})


@api_bp.route('/events/<event_id>/coaches', methods=['PUT'])
@team_required
def sync_event_coaches(event_id):
    """Replace the acting team's coaches on an event."""
    payload = _json_body()
    entries = assignments.parse_coach_entries(payload.get('coaches'))
    result = assignments.sync_event_coaches(current_team(), event_id, entries, current_user)
    return jsonify(result.to_dict())


@api_bp.route('/events/<event_id>/coaches/mine', methods=['GET'])
@team_required
def my_event_coaches(event_id):
    coaches = assignments.event_coaches(event_id, team=current_team())
    return jsonify({'items': [serialize_event_coach(c) for c in coaches]})


# ============================================================================
# TEAM: REGISTRATIONS
# ============================================================================

@api_bp.route('/registrations', methods=['GET'])
@team_required
def list_my_registrations():
    items = registrations.list_team_registrations(current_team(), request.args.get('tournament_id'))
    return jsonify({'items': [serialize_registration(r) for r in items]})


@api_bp.route('/registrations', methods=['POST'])
@team_required
def create_registration():
    form = RegistrationForm.from_json(_json_body()).validate_or_raise()
    registration = registrations.create_registration(
        current_team(),
        {
            'tournament_id': form.tournament_id.data,
            'athlete_id': form.athlete_id.data,
            'weight_class': form.weight_class.data,
            'squat_opener_kg': form.squat_opener_kg.data,
            'bench_opener_kg': form.bench_opener_kg.data,
            'deadlift_opener_kg': form.deadlift_opener_kg.data,
        },
        reference_year(),
        current_user,
    )
    return jsonify({'registration': serialize_registration(registration)}), 201


@api_bp.route('/tournaments/<tournament_id>/registrations', methods=['PUT'])
@team_required
def sync_tournament_registrations(tournament_id):
    """Replace the acting team's nominations for a tournament."""
    payload = _json_body()
    nominations = registrations.parse_nominations(payload.get('nominations'))
    result, ignored = registrations.sync_tournament_registrations(
        current_team(),
        tournament_id,
        nominations,
        reference_year(),
        current_user,
    )
    return jsonify({**result.to_dict(), 'ignored': ignored})


__all__ = ['api_bp']
