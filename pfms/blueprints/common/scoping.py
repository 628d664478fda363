"""Soft-delete and team-ownership query helpers."""

from __future__ import annotations

from typing import Type, TypeVar

from flask_login import current_user
from sqlalchemy.orm import Query

from pfms.errors import AuthorizationError, NotFoundError
from pfms.extensions import db
from pfms.models import Team

Model = TypeVar("Model", bound=db.Model)


def alive_query(model: Type[Model]) -> Query:
    """Return a query over the model's rows that are not soft-deleted."""

    return model.query.filter(model.deleted_at.is_(None))


def get_alive_or_404(model: Type[Model], object_id: str) -> Model:
    """Fetch an alive object or raise NotFoundError."""

    instance = alive_query(model).filter_by(id=object_id).first()
    if instance is None:
        raise NotFoundError(f"{model.__name__} {object_id} not found")
    return instance


def current_team() -> Team:
    """The alive team owned by the logged-in user."""

    team = alive_query(Team).filter_by(user_id=current_user.id).first()
    if team is None:
        raise AuthorizationError("No team is linked to this account")
    return team


def team_query(model: Type[Model], team: Team | None = None) -> Query:
    """Alive rows of ``model`` owned by the acting team."""

    team = team or current_team()
    return alive_query(model).filter_by(team_id=team.id)


def get_owned_or_404(model: Type[Model], object_id: str, team: Team | None = None) -> Model:
    """Fetch an alive object belonging to the acting team.

    Objects owned by another team are reported as missing so that ids of
    other teams' rows are not disclosed.
    """

    instance = team_query(model, team).filter_by(id=object_id).first()
    if instance is None:
        raise NotFoundError(f"{model.__name__} {object_id} not found")
    return instance


__all__ = [
    "alive_query",
    "get_alive_or_404",
    "current_team",
    "team_query",
    "get_owned_or_404",
]
