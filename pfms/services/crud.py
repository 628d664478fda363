"""Soft-delete aware CRUD services with natural-key checks and audit logging."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Type, TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query

from pfms.blueprints.common.scoping import alive_query
from pfms.errors import ConflictError, NotFoundError, PersistenceError, PFMSError
from pfms.extensions import db
from pfms.models import (
    Athlete,
    Coach,
    Event,
    EventCoach,
    EventReferee,
    Referee,
    Registration,
    Team,
    Tournament,
)
from pfms.services.audit import log_admin_action

Model = TypeVar("Model", bound=db.Model)

PROTECTED_FIELDS = ('id', 'created_at', 'updated_at', 'deleted_at', 'team_id')


def _loggable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class CRUDService:
    """Base CRUD service over alive rows, optionally owned by one team."""

    def __init__(self, model: Type[Model], team: Team | None = None):
        """
        Initialize CRUD service.

        Args:
            model: SQLAlchemy model class (soft-deletable)
            team: Owning team for team-scoped models; None for federation records
        """
        self.model = model
        self.model_name = model.__tablename__
        self.team = team

    def query(self) -> Query:
        query = alive_query(self.model)
        if self.team is not None:
            query = query.filter_by(team_id=self.team.id)
        return query

    def create(self, data: dict[str, Any], user: Any = None, skip_log: bool = False) -> Model:
        """
        Create a new record.

        Args:
            data: Dictionary of field values
            user: User performing the action (for logging)
            skip_log: Skip activity logging

        Returns:
            The created instance

        Raises:
            ConflictError: natural key already used by an alive row
            PersistenceError: storage failure
        """
        if self.team is not None:
            data = {**data, 'team_id': self.team.id}
        self._validate_create(data)

        instance = self.model(**data)
        try:
            db.session.add(instance)
            db.session.flush()
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise ConflictError(self._handle_integrity_error(e)) from e
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to create {self.model_name}") from e

        if not skip_log:
            log_admin_action(
                user,
                f"{self.model_name}_created",
                self.model_name,
                instance.id,
                metadata={'data': self._sanitize_log_data(data)}
            )
        return instance

    def get_by_id(self, object_id: str) -> Model:
        instance = self.query().filter_by(id=object_id).first()
        if instance is None:
            raise NotFoundError(f"{self.model_name.capitalize()} not found")
        return instance

    def list_all(self, filters: dict[str, Any] | None = None, order_by: Any = None) -> list[Model]:
        query = self.query()

        if filters:
            query = query.filter_by(**filters)

        if order_by is not None:
            query = query.order_by(order_by)

        return query.all()

    def update(self, object_id: str, data: dict[str, Any], user: Any = None, skip_log: bool = False) -> Model:
        """
        Update a record in place.

        Args:
            object_id: ID of object to update
            data: Dictionary of fields to update
            user: User performing the action (for logging)
            skip_log: Skip activity logging

        Returns:
            The updated instance
        """
        instance = self.get_by_id(object_id)
        self._validate_update(instance, data)

        try:
            for key, value in data.items():
                if hasattr(instance, key) and key not in PROTECTED_FIELDS:
                    setattr(instance, key, value)
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise ConflictError(self._handle_integrity_error(e)) from e
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to update {self.model_name}") from e

        if not skip_log:
            log_admin_action(
                user,
                f"{self.model_name}_updated",
                self.model_name,
                object_id,
                metadata={'data': self._sanitize_log_data(data)}
            )
        return instance

    def delete(self, object_id: str, user: Any = None, skip_log: bool = False) -> Model:
        """Soft-delete a record together with its dependent alive rows."""
        instance = self.get_by_id(object_id)

        try:
            instance.soft_delete()
            for dependent in self._dependents(instance):
                dependent.soft_delete(instance.deleted_at)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to delete {self.model_name}") from e

        if not skip_log:
            log_admin_action(user, f"{self.model_name}_deleted", self.model_name, object_id)
        return instance

    def bulk_create(self, items: list[dict[str, Any]], user: Any = None) -> tuple[list[Model], list[str]]:
        """
        Bulk create multiple records; failures are reported per item.

        Returns:
            (created_objects, errors)
        """
        created = []
        errors = []

        for idx, data in enumerate(items):
            try:
                created.append(self.create(data, user, skip_log=True))
            except PFMSError as e:
                errors.append(f"Item {idx + 1}: {e.message}")

        if created:
            log_admin_action(
                user,
                f"{self.model_name}_bulk_created",
                self.model_name,
                metadata={'count': len(created), 'errors': len(errors)}
            )

        return created, errors

    def _dependents(self, instance: Model) -> list[Any]:
        """Alive rows that must die with ``instance``. Override in subclasses."""
        return []

    def _validate_create(self, data: dict[str, Any]) -> None:
        """Raise a PFMSError when ``data`` cannot be created. Override in subclasses."""

    def _validate_update(self, instance: Model, data: dict[str, Any]) -> None:
        """Raise a PFMSError when ``data`` cannot be applied. Override in subclasses."""

    def _handle_integrity_error(self, error: IntegrityError) -> str:
        """Convert database integrity errors to user-friendly messages."""
        current_app.logger.warning(f"Integrity error on {self.model_name}: {error.orig}")
        error_msg = str(error)
        if 'unique' in error_msg.lower():
            return "A record with these values already exists"
        if 'foreign' in error_msg.lower():
            return "Referenced record does not exist"
        return "Database constraint violation"

    def _sanitize_log_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Remove sensitive fields and make values JSON friendly."""
        sensitive_fields = {'password', 'password_hash', 'secret', 'token', 'api_key'}
        return {k: _loggable(v) for k, v in data.items() if k not in sensitive_fields}


class DniUniqueService(CRUDService):
    """CRUD for people identified by DNI within their scope (team or federation)."""

    label = "record"

    def _dni_taken(self, dni: str, exclude_id: str | None = None) -> bool:
        query = self.query().filter_by(dni=dni)
        if exclude_id:
            query = query.filter(self.model.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    def _validate_create(self, data: dict[str, Any]) -> None:
        if self._dni_taken(data['dni']):
            raise ConflictError(f"{self.label.capitalize()} with DNI {data['dni']} already exists")

    def _validate_update(self, instance: Model, data: dict[str, Any]) -> None:
        dni = data.get('dni')
        if dni and dni != instance.dni and self._dni_taken(dni, exclude_id=instance.id):
            raise ConflictError(f"{self.label.capitalize()} with DNI {dni} already exists")


class AthleteService(DniUniqueService):
    label = "athlete"

    def __init__(self, team: Team):
        super().__init__(Athlete, team)

    def _dependents(self, instance: Athlete) -> list[Any]:
        return alive_query(Registration).filter_by(athlete_id=instance.id).all()


class CoachService(DniUniqueService):
    label = "coach"

    def __init__(self, team: Team):
        super().__init__(Coach, team)

    def _dependents(self, instance: Coach) -> list[Any]:
        return alive_query(EventCoach).filter_by(coach_id=instance.id).all()


class RefereeService(DniUniqueService):
    label = "referee"

    def __init__(self):
        super().__init__(Referee)

    def _dependents(self, instance: Referee) -> list[Any]:
        return alive_query(EventReferee).filter_by(referee_id=instance.id).all()


class EventService(CRUDService):
    def __init__(self):
        super().__init__(Event)

    def _slug_taken(self, slug: str, exclude_id: str | None = None) -> bool:
        # slug is unique across all rows, dead ones included
        query = Event.query.filter_by(slug=slug)
        if exclude_id:
            query = query.filter(Event.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    def _validate_create(self, data: dict[str, Any]) -> None:
        if self._slug_taken(data['slug']):
            raise ConflictError(f"An event with slug '{data['slug']}' already exists")

    def _validate_update(self, instance: Event, data: dict[str, Any]) -> None:
        slug = data.get('slug')
        if slug and slug != instance.slug and self._slug_taken(slug, exclude_id=instance.id):
            raise ConflictError(f"An event with slug '{slug}' already exists")

    def _dependents(self, instance: Event) -> list[Any]:
        tournaments = alive_query(Tournament).filter_by(event_id=instance.id).all()
        tournament_ids = [t.id for t in tournaments]
        registrations = (
            alive_query(Registration).filter(Registration.tournament_id.in_(tournament_ids)).all()
            if tournament_ids else []
        )
        return [
            *tournaments,
            *registrations,
            *alive_query(EventReferee).filter_by(event_id=instance.id).all(),
            *alive_query(EventCoach).filter_by(event_id=instance.id).all(),
        ]


class TournamentService(CRUDService):
    def __init__(self):
        super().__init__(Tournament)

    def _validate_create(self, data: dict[str, Any]) -> None:
        if alive_query(Event).filter_by(id=data.get('event_id')).first() is None:
            raise NotFoundError("Event not found")

    def _dependents(self, instance: Tournament) -> list[Any]:
        return alive_query(Registration).filter_by(tournament_id=instance.id).all()


__all__ = [
    'CRUDService',
    'DniUniqueService',
    'AthleteService',
    'CoachService',
    'RefereeService',
    'EventService',
    'TournamentService',
]
