"""Athlete registrations: single nominations, team sync and admin review."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pfms.blueprints.common.scoping import alive_query, get_alive_or_404
from pfms.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from pfms.extensions import db
from pfms.models import (
    Athlete,
    Registration,
    RegistrationStatus,
    Team,
    Tournament,
    TournamentStatus,
    User,
)
from pfms.services.audit import log_admin_action
from pfms.services.eligibility import parse_weight_class, validate_weight_class
from pfms.services.roster import DesiredMember, RosterReconciler, SqlAssociationStore, SyncPlan, SyncResult

OPENER_FIELDS = ('squat_opener_kg', 'bench_opener_kg', 'deadlift_opener_kg')
NOMINATION_ATTRIBUTES = ('weight_class', *OPENER_FIELDS)

# Allowed admin transitions between tournament statuses.
STATUS_TRANSITIONS: dict[TournamentStatus, set[TournamentStatus]] = {
    TournamentStatus.DRAFT: {TournamentStatus.PRELIMINARY_OPEN},
    TournamentStatus.PRELIMINARY_OPEN: {TournamentStatus.PRELIMINARY_CLOSED, TournamentStatus.DRAFT},
    TournamentStatus.PRELIMINARY_CLOSED: {TournamentStatus.PRELIMINARY_OPEN, TournamentStatus.FINISHED},
    TournamentStatus.FINISHED: set(),
}


class RegistrationStore(SqlAssociationStore):
    """Tournament roster store for one team's nominations.

    Editing a rejected nomination resubmits it for review.
    """

    def __init__(self, team: Team):
        super().__init__(
            Registration,
            parent_key='tournament_id',
            child_key='athlete_id',
            attribute_keys=NOMINATION_ATTRIBUTES,
            defaults={'team_id': team.id, 'status': RegistrationStatus.PENDING},
        )
        self.team = team

    def update_attrs(self, row: Registration, attrs: dict[str, Any]) -> None:
        if row.status == RegistrationStatus.REJECTED:
            _reset_review(row)
        super().update_attrs(row, attrs)


def _reset_review(registration: Registration) -> None:
    registration.status = RegistrationStatus.PENDING
    registration.reviewed_at = None
    registration.reviewed_by_user_id = None
    registration.rejection_reason = None


def _opener(value: Any, name: str) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number") from None
    if number < 0:
        raise ValidationError(f"{name} must not be negative")
    return number


def _team_athletes(team: Team, athlete_ids: Iterable[str]) -> dict[str, Athlete]:
    ids = list(athlete_ids)
    if not ids:
        return {}
    rows = alive_query(Athlete).filter(Athlete.team_id == team.id, Athlete.id.in_(ids)).all()
    return {a.id: a for a in rows}


def _open_tournament(tournament_id: str) -> Tournament:
    tournament = get_alive_or_404(Tournament, tournament_id)
    if not tournament.accepts_nominations:
        raise ConflictError(f"Tournament '{tournament.name}' is not accepting nominations")
    return tournament


def _check_capacity(tournament: Tournament, team: Team, team_total: int) -> None:
    if not tournament.max_athletes:
        return
    others = alive_query(Registration).filter(
        Registration.tournament_id == tournament.id,
        Registration.team_id != team.id,
        Registration.status != RegistrationStatus.REJECTED,
    ).count()
    if others + team_total > tournament.max_athletes:
        raise ConflictError(
            f"Tournament '{tournament.name}' is limited to {tournament.max_athletes} athletes"
        )


def _counted_after_sync(tournament: Tournament, team: Team, desired: list[DesiredMember], plan: SyncPlan) -> int:
    """Team rows that will hold a capacity slot once ``plan`` is applied.

    Rejected rows kept as they are stay rejected; edited ones return to pending.
    """
    rejected = {
        row.athlete_id
        for row in alive_query(Registration).filter(
            Registration.tournament_id == tournament.id,
            Registration.team_id == team.id,
            Registration.status == RegistrationStatus.REJECTED,
        )
    }
    edited = {row.athlete_id for row, _ in plan.to_update}
    return sum(1 for m in desired if m.child_id not in rejected or m.child_id in edited)


# ============================================================================
# TEAM NOMINATIONS
# ============================================================================

def create_registration(team: Team, data: dict[str, Any], year: int, user: User | None = None) -> Registration:
    """
    Nominate one of the team's athletes into a tournament.

    Args:
        team: Acting team
        data: tournament_id, athlete_id, weight_class and optional openers
        year: Reference year for eligibility
        user: Acting user (for the audit log)

    Returns:
        The pending Registration
    """
    tournament = _open_tournament(data['tournament_id'])

    athlete = _team_athletes(team, [data['athlete_id']]).get(data['athlete_id'])
    if athlete is None:
        raise NotFoundError("Athlete not found for this team")

    weight_class = validate_weight_class(athlete, tournament.division, data['weight_class'], year)

    existing = alive_query(Registration).filter_by(
        tournament_id=tournament.id, athlete_id=athlete.id
    ).first()
    if existing is not None:
        raise ConflictError(f"{athlete.full_name} is already registered in '{tournament.name}'")

    team_total = alive_query(Registration).filter(
        Registration.tournament_id == tournament.id,
        Registration.team_id == team.id,
        Registration.status != RegistrationStatus.REJECTED,
    ).count()
    _check_capacity(tournament, team, team_total + 1)

    registration = Registration(
        tournament_id=tournament.id,
        team_id=team.id,
        athlete_id=athlete.id,
        weight_class=weight_class,
        status=RegistrationStatus.PENDING,
        **{f: _opener(data.get(f), f) for f in OPENER_FIELDS},
    )
    try:
        db.session.add(registration)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError(f"{athlete.full_name} is already registered in '{tournament.name}'") from e
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Failed to create registration") from e

    log_admin_action(
        user,
        "registration_created",
        "registration",
        registration.id,
        metadata={'tournament_id': tournament.id, 'athlete_id': athlete.id, 'weight_class': weight_class.value},
    )
    return registration


def parse_nominations(payload: Any) -> list[dict[str, Any]]:
    """Validate the shape of a nomination sync body."""
    if not isinstance(payload, list):
        raise ValidationError("'nominations' must be a list")
    entries = []
    for idx, item in enumerate(payload, start=1):
        if not isinstance(item, dict) or not item.get('athlete_id'):
            raise ValidationError(f"Nomination {idx}: athlete_id is required")
        if not item.get('weight_class'):
            raise ValidationError(f"Nomination {idx}: weight_class is required")
        entry = {
            'athlete_id': str(item['athlete_id']),
            'weight_class': parse_weight_class(item['weight_class']),
        }
        for field in OPENER_FIELDS:
            entry[field] = _opener(item.get(field), field)
        entries.append(entry)
    return entries


def sync_tournament_registrations(
    team: Team,
    tournament_id: str,
    nominations: list[dict[str, Any]],
    year: int,
    user: User | None = None,
) -> tuple[SyncResult, list[str]]:
    """
    Replace the team's nominations for one tournament with ``nominations``.

    Athlete ids not belonging to the team's alive roster are ignored and
    returned alongside the sync result. Other teams' registrations are never
    touched. Approved nominations cannot be dropped or edited.

    Returns:
        (SyncResult, ignored_athlete_ids)
    """
    tournament = _open_tournament(tournament_id)

    athletes = _team_athletes(team, [n['athlete_id'] for n in nominations])
    ignored = [n['athlete_id'] for n in nominations if n['athlete_id'] not in athletes]
    if ignored:
        current_app.logger.warning(
            f"Team {team.id} nomination sync for tournament {tournament.id} ignored athletes: {ignored}"
        )

    desired = []
    for entry in nominations:
        athlete = athletes.get(entry['athlete_id'])
        if athlete is None:
            continue
        validate_weight_class(athlete, tournament.division, entry['weight_class'], year)
        desired.append(DesiredMember(
            athlete.id,
            {key: entry.get(key) for key in NOMINATION_ATTRIBUTES},
        ))

    reconciler = RosterReconciler(RegistrationStore(team), label="tournament registrations")
    plan = reconciler.plan(
        tournament.id,
        desired,
        scope=lambda q: q.filter(Registration.team_id == team.id),
    )

    locked = [row for row in plan.to_remove if row.status == RegistrationStatus.APPROVED]
    locked += [row for row, _ in plan.to_update if row.status == RegistrationStatus.APPROVED]
    if locked:
        names = ", ".join(sorted(row.athlete.full_name for row in locked))
        raise ConflictError(f"Approved registrations cannot be changed by the team: {names}")

    _check_capacity(tournament, team, _counted_after_sync(tournament, team, desired, plan))

    result = reconciler.apply(plan)
    if result.changed:
        log_admin_action(
            user,
            "tournament_registrations_synced",
            "tournament",
            tournament.id,
            metadata={'team_id': team.id, **result.to_dict()},
        )
    return result, ignored


def list_team_registrations(team: Team, tournament_id: str | None = None) -> list[Registration]:
    query = alive_query(Registration).filter_by(team_id=team.id)
    if tournament_id:
        query = query.filter_by(tournament_id=tournament_id)
    return query.order_by(Registration.created_at.desc()).all()


# ============================================================================
# ADMIN REVIEW
# ============================================================================

def list_registrations(
    event_id: str | None = None,
    tournament_id: str | None = None,
    status: RegistrationStatus | None = None,
    team_id: str | None = None,
) -> list[Registration]:
    query = alive_query(Registration).join(Tournament, Tournament.id == Registration.tournament_id)
    query = query.filter(Tournament.deleted_at.is_(None))
    if event_id:
        query = query.filter(Tournament.event_id == event_id)
    if tournament_id:
        query = query.filter(Registration.tournament_id == tournament_id)
    if status is not None:
        query = query.filter(Registration.status == status)
    if team_id:
        query = query.filter(Registration.team_id == team_id)
    return query.order_by(Registration.created_at.asc()).all()


def _apply_status(
    registration: Registration,
    status: RegistrationStatus,
    admin: User,
    reason: str | None,
    now: datetime,
) -> None:
    if status == RegistrationStatus.PENDING:
        _reset_review(registration)
        return
    registration.status = status
    registration.reviewed_at = now
    registration.reviewed_by_user_id = admin.id
    registration.rejection_reason = reason if status == RegistrationStatus.REJECTED else None


def _parse_status(status: RegistrationStatus | str) -> RegistrationStatus:
    try:
        return RegistrationStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown registration status '{status}'") from None


def _clean_reason(status: RegistrationStatus, reason: str | None) -> str | None:
    reason = (reason or "").strip() or None
    if status == RegistrationStatus.REJECTED and not reason:
        raise ValidationError("A rejection reason is required")
    return reason


def update_registration_status(
    registration_id: str,
    status: RegistrationStatus | str,
    admin: User,
    reason: str | None = None,
) -> Registration:
    """Approve, reject or reopen a single registration."""
    status = _parse_status(status)
    reason = _clean_reason(status, reason)
    registration = get_alive_or_404(Registration, registration_id)

    try:
        _apply_status(registration, status, admin, reason, datetime.now(timezone.utc))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Failed to update registration status") from e

    log_admin_action(
        admin,
        f"registration_{status.value}",
        "registration",
        registration.id,
        metadata={'reason': reason} if reason else None,
    )
    return registration


def approve_registration(registration_id: str, admin: User) -> Registration:
    return update_registration_status(registration_id, RegistrationStatus.APPROVED, admin)


def reject_registration(registration_id: str, admin: User, reason: str | None) -> Registration:
    return update_registration_status(registration_id, RegistrationStatus.REJECTED, admin, reason)


def bulk_update_status(
    registration_ids: list[str],
    status: RegistrationStatus | str,
    admin: User,
    reason: str | None = None,
) -> tuple[int, list[str]]:
    """
    Set the same status on many registrations in one transaction.

    Returns:
        (updated_count, missing_ids)
    """
    status = _parse_status(status)
    reason = _clean_reason(status, reason)
    unique_ids = list(dict.fromkeys(registration_ids))

    rows = alive_query(Registration).filter(Registration.id.in_(unique_ids)).all() if unique_ids else []
    found = {r.id for r in rows}
    missing = [rid for rid in unique_ids if rid not in found]

    now = datetime.now(timezone.utc)
    try:
        for registration in rows:
            _apply_status(registration, status, admin, reason, now)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Failed to update registration statuses") from e

    if rows:
        log_admin_action(
            admin,
            "registration_bulk_status",
            "registration",
            metadata={'status': status.value, 'count': len(rows), 'missing': len(missing)},
        )
    return len(rows), missing


def set_tournament_status(tournament_id: str, status: TournamentStatus | str, admin: User) -> Tournament:
    """Move a tournament through draft → preliminary_open → preliminary_closed → finished."""
    try:
        status = TournamentStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown tournament status '{status}'") from None

    tournament = get_alive_or_404(Tournament, tournament_id)
    previous = tournament.status
    if status == previous:
        return tournament
    if status not in STATUS_TRANSITIONS[previous]:
        raise ConflictError(f"Cannot move tournament from {previous.value} to {status.value}")

    try:
        tournament.status = status
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Failed to update tournament status") from e

    log_admin_action(
        admin,
        "tournament_status_changed",
        "tournament",
        tournament.id,
        metadata={'from': previous.value, 'to': status.value},
    )
    return tournament


__all__ = [
    'RegistrationStore',
    'create_registration',
    'parse_nominations',
    'sync_tournament_registrations',
    'list_team_registrations',
    'list_registrations',
    'update_registration_status',
    'approve_registration',
    'reject_registration',
    'bulk_update_status',
    'set_tournament_status',
]
