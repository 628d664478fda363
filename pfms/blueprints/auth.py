"""Session login/logout for federation admins and team accounts."""

from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_user, logout_user

from pfms.errors import AuthorizationError
from pfms.extensions import LOGIN_LIMIT, db, limiter
from pfms.forms import LoginForm
from pfms.models import User
from pfms.services.audit import log_login_attempt


auth_bp = Blueprint("auth", __name__)


def serialize_session_user(user: User) -> dict:
    data = {
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'role': user.role.value,
    }
    if user.team is not None and user.team.is_alive:
        data['team_id'] = user.team.id
    return data


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(LOGIN_LIMIT)
def login():
    form = LoginForm.from_json(request.get_json(silent=True) or {})
    form.validate_or_raise()

    email = form.email.data
    user = User.query.filter(User.email.ilike(email)).first()

    if user is None or not user.check_password(form.password.data):
        log_login_attempt(user, False, email)
        return jsonify({'error': 'Unauthorized', 'message': 'Invalid email or password'}), 401

    if not user.is_active:
        log_login_attempt(user, False, email)
        raise AuthorizationError("Account is inactive. Contact the federation.")

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()

    login_user(user)
    log_login_attempt(user, True, email)
    return jsonify({'user': serialize_session_user(user)})


@auth_bp.route("/logout", methods=["POST"])
def logout():
    if current_user.is_authenticated:
        logout_user()
    return jsonify({'message': 'Logged out'})


@auth_bp.route("/me", methods=["GET"])
def me():
    if not current_user.is_authenticated:
        return jsonify({'error': 'Unauthorized', 'message': 'Authentication required'}), 401
    return jsonify({'user': serialize_session_user(current_user)})


__all__ = ["auth_bp"]
