"""Authentication helpers shared across blueprints."""

from __future__ import annotations

from functools import wraps
from typing import Callable, TypeVar, cast

from flask import jsonify
from flask_login import current_user

from pfms.models import UserRole

F = TypeVar('F', bound=Callable[..., object])


def _unauthenticated():
    return jsonify({'error': 'Unauthorized', 'message': 'Authentication required'}), 401


def _forbidden(message: str):
    return jsonify({'error': 'AuthorizationError', 'message': message}), 403


def login_required_json(func: F) -> F:
    """Decorator requiring an authenticated, active user."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return _unauthenticated()
        if not current_user.is_active:
            return _forbidden('Your account is inactive. Please contact the federation.')
        return func(*args, **kwargs)
    return cast(F, wrapper)


def role_required(*required_roles: UserRole | str):
    """Decorator factory to require specific roles."""
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                return _unauthenticated()

            if not current_user.is_active:
                return _forbidden('Your account is inactive. Please contact the federation.')

            if not current_user.has_role(*required_roles):
                return _forbidden('You do not have permission to access this resource')

            return func(*args, **kwargs)
        return cast(F, wrapper)
    return decorator


admin_required = role_required(UserRole.ADMIN)
team_required = role_required(UserRole.TEAM)


__all__ = [
    'login_required_json',
    'role_required',
    'admin_required',
    'team_required',
]
