"""Audit logging service for administrative and team actions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flask import current_app, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from pfms.extensions import db
from pfms.models import AuditLog

if TYPE_CHECKING:
    from pfms.models import User


def log_admin_action(
    user: User | None,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None
) -> None:
    """
    Record a mutation in the audit log.

    Commits its own row, so call it after the audited change was committed.

    Args:
        user: User who performed the action (None for CLI/system actions)
        action: Action performed (e.g., "referee_created", "event_referees_synced")
        entity_type: Type of entity affected
        entity_id: ID of entity affected
        metadata: Additional metadata
    """
    try:
        meta = dict(metadata or {})
        if has_request_context():
            meta['ip_address'] = request.remote_addr

        audit_entry = AuditLog(
            user_id=user.id if user is not None else None,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            meta=meta
        )

        db.session.add(audit_entry)
        db.session.commit()

    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to log admin action: {e}")


def log_login_attempt(user: User | None, success: bool, email: str) -> None:
    """Log a login attempt; unknown emails are recorded without a user."""
    action = "login_success" if success else "login_failed"
    log_admin_action(
        user,
        action,
        'user',
        user.id if user is not None else None,
        metadata={'email': email},
    )


__all__ = ["log_admin_action", "log_login_attempt"]
