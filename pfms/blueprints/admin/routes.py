"""Federation admin JSON API: referees, events, tournaments and registration review."""

from __future__ import annotations

import io

from flask import Blueprint, jsonify, request, send_file
from flask_login import current_user

from pfms.auth import admin_required
from pfms.blueprints.common.scoping import alive_query
from pfms.blueprints.common.serializers import (
    serialize_event,
    serialize_event_coach,
    serialize_referee,
    serialize_registration,
    serialize_tournament,
)
from pfms.errors import ValidationError
from pfms.forms import EventForm, RefereeForm, TournamentForm
from pfms.models import (
    Equipment,
    Event,
    Modality,
    Referee,
    RefereeCategory,
    RegistrationStatus,
    Tournament,
    TournamentDivision,
)
from pfms.services import assignments, registrations
from pfms.services.crud import EventService, RefereeService, TournamentService
from pfms.services.eligibility import reference_year
from pfms.services.export_import import XLSX_MIMETYPE, export_registrations_xlsx

admin_bp = Blueprint('admin', __name__)


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


# ============================================================================
# REFEREES
# ============================================================================

def _referee_data(form: RefereeForm) -> dict:
    return {
        'full_name': form.full_name.data,
        'dni': form.dni.data,
        'category': RefereeCategory(form.category.data),
    }


@admin_bp.route('/referees', methods=['GET'])
@admin_required
def list_referees():
    referees = RefereeService().list_all(order_by=Referee.full_name)
    return jsonify({'items': [serialize_referee(r) for r in referees]})


@admin_bp.route('/referees', methods=['POST'])
@admin_required
def create_referee():
    form = RefereeForm.from_json(_json_body()).validate_or_raise()
    referee = RefereeService().create(_referee_data(form), current_user)
    return jsonify({'referee': serialize_referee(referee)}), 201


@admin_bp.route('/referees/<referee_id>', methods=['GET'])
@admin_required
def get_referee(referee_id):
    return jsonify({'referee': serialize_referee(RefereeService().get_by_id(referee_id))})


@admin_bp.route('/referees/<referee_id>', methods=['PUT'])
@admin_required
def update_referee(referee_id):
    form = RefereeForm.from_json(_json_body()).validate_or_raise()
    referee = RefereeService().update(referee_id, _referee_data(form), current_user)
    return jsonify({'referee': serialize_referee(referee)})


@admin_bp.route('/referees/<referee_id>', methods=['DELETE'])
@admin_required
def delete_referee(referee_id):
    RefereeService().delete(referee_id, current_user)
    return jsonify({'message': 'Referee deleted'})


@admin_bp.route('/events/<event_id>/referees', methods=['PUT'])
@admin_required
def sync_event_referees(event_id):
    """Replace an event's referee roster."""
    payload = _json_body()
    result = assignments.sync_event_referees(event_id, payload.get('referee_ids'), current_user)
    return jsonify(result.to_dict())


# ============================================================================
# EVENTS AND TOURNAMENTS
# ============================================================================

def _event_data(form: EventForm) -> dict:
    return {
        'name': form.name.data,
        'slug': form.slug.data,
        'venue': form.venue.data,
        'location': form.location.data,
        'start_date': form.start_date.data,
        'end_date': form.end_date.data,
        'description': form.description.data or None,
    }


def _tournament_data(form: TournamentForm) -> dict:
    return {
        'name': form.name.data,
        'division': TournamentDivision(form.division.data),
        'modality': Modality(form.modality.data),
        'equipment': Equipment(form.equipment.data),
        'max_athletes': form.max_athletes.data,
    }


@admin_bp.route('/events', methods=['GET'])
@admin_required
def list_events():
    events = EventService().list_all(order_by=Event.start_date.desc())
    return jsonify({'items': [serialize_event(e) for e in events]})


@admin_bp.route('/events', methods=['POST'])
@admin_required
def create_event():
    form = EventForm.from_json(_json_body()).validate_or_raise()
    event = EventService().create(_event_data(form), current_user)
    return jsonify({'event': serialize_event(event, [])}), 201


@admin_bp.route('/events/<event_id>', methods=['PUT'])
@admin_required
def update_event(event_id):
    form = EventForm.from_json(_json_body()).validate_or_raise()
    event = EventService().update(event_id, _event_data(form), current_user)
    tournaments = alive_query(Tournament).filter_by(event_id=event.id).all()
    return jsonify({'event': serialize_event(event, tournaments)})


@admin_bp.route('/events/<event_id>', methods=['DELETE'])
@admin_required
def delete_event(event_id):
    EventService().delete(event_id, current_user)
    return jsonify({'message': 'Event deleted'})


@admin_bp.route('/events/<event_id>/tournaments', methods=['POST'])
@admin_required
def create_tournament(event_id):
    form = TournamentForm.from_json(_json_body()).validate_or_raise()
    tournament = TournamentService().create({**_tournament_data(form), 'event_id': event_id}, current_user)
    return jsonify({'tournament': serialize_tournament(tournament)}), 201


@admin_bp.route('/tournaments/<tournament_id>', methods=['PUT'])
@admin_required
def update_tournament(tournament_id):
    form = TournamentForm.from_json(_json_body()).validate_or_raise()
    tournament = TournamentService().update(tournament_id, _tournament_data(form), current_user)
    return jsonify({'tournament': serialize_tournament(tournament)})


@admin_bp.route('/tournaments/<tournament_id>', methods=['DELETE'])
@admin_required
def delete_tournament(tournament_id):
    TournamentService().delete(tournament_id, current_user)
    return jsonify({'message': 'Tournament deleted'})


@admin_bp.route('/tournaments/<tournament_id>/status', methods=['POST'])
@admin_required
def tournament_status(tournament_id):
    payload = _json_body()
    if not payload.get('status'):
        raise ValidationError("status is required")
    tournament = registrations.set_tournament_status(tournament_id, payload['status'], current_user)
    return jsonify({'tournament': serialize_tournament(tournament)})


# ============================================================================
# REGISTRATIONS
# ============================================================================

@admin_bp.route('/registrations', methods=['GET'])
@admin_required
def list_registrations():
    status = request.args.get('status')
    if status:
        try:
            status = RegistrationStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown registration status '{status}'") from None
    items = registrations.list_registrations(
        event_id=request.args.get('event_id'),
        tournament_id=request.args.get('tournament_id'),
        status=status or None,
        team_id=request.args.get('team_id'),
    )
    return jsonify({'items': [serialize_registration(r) for r in items]})


@admin_bp.route('/registrations/<registration_id>/approve', methods=['POST'])
@admin_required
def approve_registration(registration_id):
    registration = registrations.approve_registration(registration_id, current_user)
    return jsonify({'registration': serialize_registration(registration)})


@admin_bp.route('/registrations/<registration_id>/reject', methods=['POST'])
@admin_required
def reject_registration(registration_id):
    payload = request.get_json(silent=True) or {}
    registration = registrations.reject_registration(registration_id, current_user, payload.get('reason'))
    return jsonify({'registration': serialize_registration(registration)})


@admin_bp.route('/registrations/bulk-status', methods=['POST'])
@admin_required
def bulk_registration_status():
    payload = _json_body()
    ids = payload.get('registration_ids')
    if not isinstance(ids, list) or not ids:
        raise ValidationError("registration_ids must be a non-empty list")
    if not payload.get('status'):
        raise ValidationError("status is required")

    updated, missing = registrations.bulk_update_status(
        [str(i) for i in ids],
        payload['status'],
        current_user,
        payload.get('reason'),
    )
    # 207 Multi-Status for partial success
    status_code = 200 if not missing else 207
    return jsonify({'updated': updated, 'missing': missing}), status_code


@admin_bp.route('/events/<event_id>/registrations.xlsx', methods=['GET'])
@admin_required
def export_event_registrations(event_id):
    content, filename = export_registrations_xlsx(event_id, reference_year())
    return send_file(
        io.BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=filename,
    )


# ============================================================================
# EVENT COACHES
# ============================================================================

@admin_bp.route('/events/<event_id>/coaches', methods=['GET'])
@admin_required
def event_coaches(event_id):
    items = assignments.event_coaches(event_id)
    return jsonify({'items': [serialize_event_coach(c) for c in items]})


@admin_bp.route('/event-coaches/<assignment_id>', methods=['DELETE'])
@admin_required
def remove_event_coach(assignment_id):
    assignments.remove_event_coach(assignment_id, current_user)
    return jsonify({'message': 'Coach assignment removed'})


__all__ = ['admin_bp']
