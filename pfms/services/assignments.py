"""Event staff rosters: referee assignments and team coach nominations."""

from __future__ import annotations

from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from pfms.blueprints.common.scoping import alive_query, get_alive_or_404
from pfms.errors import PersistenceError, ValidationError
from pfms.extensions import db
from pfms.models import (
    Coach,
    CoachRole,
    Event,
    EventCoach,
    EventReferee,
    Referee,
    RefereeCategory,
    Team,
    User,
)
from pfms.services.audit import log_admin_action
from pfms.services.roster import DesiredMember, RosterReconciler, SqlAssociationStore, SyncResult

# Display order of referees on an event roster.
CATEGORY_ORDER = {
    RefereeCategory.INT_CAT_1: 0,
    RefereeCategory.INT_CAT_2: 1,
    RefereeCategory.NATIONAL: 2,
}


def _id_list(payload: Any, key: str) -> list[str]:
    if not isinstance(payload, list) or not all(isinstance(i, (str, int)) for i in payload):
        raise ValidationError(f"'{key}' must be a list of ids")
    return [str(i) for i in payload]


# ============================================================================
# REFEREES (admin)
# ============================================================================

def sync_event_referees(event_id: str, referee_ids: Any, admin: User | None = None) -> SyncResult:
    """Replace the event's referee roster; unknown or deleted referees are skipped."""
    event = get_alive_or_404(Event, event_id)
    ids = _id_list(referee_ids, 'referee_ids')
    if len(set(ids)) != len(ids):
        raise ValidationError("Duplicate ids in referee_ids")

    known = {
        r.id for r in alive_query(Referee).filter(Referee.id.in_(ids)).all()
    } if ids else set()
    desired = [rid for rid in ids if rid in known]

    store = SqlAssociationStore(EventReferee, 'event_id', 'referee_id')
    result = RosterReconciler(store, label="event referees").sync(event.id, desired)
    if result.changed:
        log_admin_action(admin, "event_referees_synced", "event", event.id, metadata=result.to_dict())
    return result


def event_referees(event_id: str) -> list[Referee]:
    """Alive referees assigned to an event, international categories first."""
    event = get_alive_or_404(Event, event_id)
    referees = (
        alive_query(Referee)
        .join(EventReferee, EventReferee.referee_id == Referee.id)
        .filter(EventReferee.event_id == event.id, EventReferee.deleted_at.is_(None))
        .all()
    )
    return sorted(referees, key=lambda r: (CATEGORY_ORDER[r.category], r.full_name.lower()))


# ============================================================================
# COACHES (team)
# ============================================================================

def parse_coach_entries(payload: Any) -> list[DesiredMember]:
    if not isinstance(payload, list):
        raise ValidationError("'coaches' must be a list")
    entries = []
    for idx, item in enumerate(payload, start=1):
        if isinstance(item, (str, int)):
            item = {'coach_id': item}
        if not isinstance(item, dict) or not item.get('coach_id'):
            raise ValidationError(f"Coach {idx}: coach_id is required")
        raw_role = item.get('role') or CoachRole.HEAD_COACH.value
        try:
            role = CoachRole(raw_role)
        except ValueError:
            raise ValidationError(f"Coach {idx}: unknown role '{raw_role}'") from None
        entries.append(DesiredMember(str(item['coach_id']), {'role': role}))
    return entries


def sync_event_coaches(team: Team, event_id: str, entries: list[DesiredMember], user: User | None = None) -> SyncResult:
    """
    Replace the team's coaches on an event.

    Only the team's alive coaches are considered, both in the desired set and
    in the stored roster, so other teams' assignments are left alone.
    """
    event = get_alive_or_404(Event, event_id)
    ids = [e.child_id for e in entries]
    if len(set(ids)) != len(ids):
        raise ValidationError("Duplicate ids in coaches")

    own = {
        c.id for c in alive_query(Coach).filter(Coach.team_id == team.id, Coach.id.in_(ids)).all()
    } if ids else set()
    desired = [e for e in entries if e.child_id in own]

    store = SqlAssociationStore(EventCoach, 'event_id', 'coach_id', attribute_keys=('role',))
    result = RosterReconciler(store, label="event coaches").sync(
        event.id,
        desired,
        scope=lambda q: q.join(Coach, Coach.id == EventCoach.coach_id).filter(Coach.team_id == team.id),
    )
    if result.changed:
        log_admin_action(
            user,
            "event_coaches_synced",
            "event",
            event.id,
            metadata={'team_id': team.id, **result.to_dict()},
        )
    return result


def event_coaches(event_id: str, team: Team | None = None) -> list[EventCoach]:
    """Alive coach assignments of an event, optionally for one team."""
    event = get_alive_or_404(Event, event_id)
    query = (
        alive_query(EventCoach)
        .join(Coach, Coach.id == EventCoach.coach_id)
        .filter(EventCoach.event_id == event.id, Coach.deleted_at.is_(None))
    )
    if team is not None:
        query = query.filter(Coach.team_id == team.id)
    return query.order_by(EventCoach.created_at.asc()).all()


def remove_event_coach(assignment_id: str, admin: User | None = None) -> EventCoach:
    """Admin removal of a single coach assignment."""
    assignment = get_alive_or_404(EventCoach, assignment_id)
    try:
        assignment.soft_delete()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Failed to remove coach assignment") from e

    log_admin_action(
        admin,
        "event_coach_removed",
        "event_coach",
        assignment.id,
        metadata={'event_id': assignment.event_id, 'coach_id': assignment.coach_id},
    )
    return assignment


__all__ = [
    'sync_event_referees',
    'event_referees',
    'parse_coach_entries',
    'sync_event_coaches',
    'event_coaches',
    'remove_event_coach',
]
