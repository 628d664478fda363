"""
Roster reconciliation for event-scoped associations.

A roster is the set of alive association rows hanging off one parent
(an event's referees, an event's coaches, a tournament's nominated athletes).
Callers send the full desired set; the reconciler computes the difference
against what is stored and applies soft-deletes, inserts and in-place
attribute updates inside a single transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol, Sequence, Type

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query

from pfms.errors import ConflictError, PersistenceError, ValidationError
from pfms.extensions import db

Scope = Callable[[Query], Query]


@dataclass(frozen=True)
class DesiredMember:
    child_id: str
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class SyncResult:
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.updated)

    def to_dict(self) -> dict[str, list[str]]:
        return {'added': self.added, 'removed': self.removed, 'updated': self.updated}


@dataclass
class SyncPlan:
    """Computed difference between the stored roster and the desired one."""

    parent_id: str
    to_add: list[DesiredMember] = field(default_factory=list)
    to_remove: list[Any] = field(default_factory=list)
    to_update: list[tuple[Any, dict[str, Any]]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_add or self.to_remove or self.to_update)


class AssociationStore(Protocol):
    def find_active(self, parent_id: str, scope: Scope | None = None) -> list[Any]: ...

    def child_id(self, row: Any) -> str: ...

    def attributes(self, row: Any) -> dict[str, Any]: ...

    def insert(self, parent_id: str, child_id: str, attrs: dict[str, Any]) -> Any: ...

    def soft_delete(self, row: Any) -> None: ...

    def update_attrs(self, row: Any, attrs: dict[str, Any]) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class SqlAssociationStore:
    """Association store backed by a soft-deletable SQLAlchemy model."""

    def __init__(
        self,
        model: Type[db.Model],
        parent_key: str,
        child_key: str,
        attribute_keys: Sequence[str] = (),
        defaults: dict[str, Any] | None = None,
    ):
        """
        Args:
            model: Association model (must carry ``deleted_at``)
            parent_key: Column naming the roster owner, e.g. ``event_id``
            child_key: Column naming the member, e.g. ``referee_id``
            attribute_keys: Columns reconciled in place (e.g. ``role``)
            defaults: Extra column values set on every inserted row
        """
        self.model = model
        self.parent_key = parent_key
        self.child_key = child_key
        self.attribute_keys = tuple(attribute_keys)
        self.defaults = dict(defaults or {})

    def find_active(self, parent_id: str, scope: Scope | None = None) -> list[Any]:
        query = self.model.query.filter(
            getattr(self.model, self.parent_key) == parent_id,
            self.model.deleted_at.is_(None),
        )
        if scope is not None:
            query = scope(query)
        return query.order_by(self.model.created_at.asc()).all()

    def child_id(self, row: Any) -> str:
        return getattr(row, self.child_key)

    def attributes(self, row: Any) -> dict[str, Any]:
        return {key: getattr(row, key) for key in self.attribute_keys}

    def insert(self, parent_id: str, child_id: str, attrs: dict[str, Any]) -> Any:
        values = {**self.defaults, **self._known(attrs)}
        values[self.parent_key] = parent_id
        values[self.child_key] = child_id
        row = self.model(**values)
        db.session.add(row)
        db.session.flush()
        return row

    def soft_delete(self, row: Any) -> None:
        row.soft_delete()
        db.session.flush()

    def update_attrs(self, row: Any, attrs: dict[str, Any]) -> None:
        for key, value in self._known(attrs).items():
            setattr(row, key, value)
        db.session.flush()

    def commit(self) -> None:
        db.session.commit()

    def rollback(self) -> None:
        db.session.rollback()

    def _known(self, attrs: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in attrs.items() if k in self.attribute_keys}


def as_desired(items: Iterable[DesiredMember | str]) -> list[DesiredMember]:
    """Accept plain child ids alongside DesiredMember entries."""
    return [item if isinstance(item, DesiredMember) else DesiredMember(str(item)) for item in items]


class RosterReconciler:
    """Reconcile one parent's roster against a desired set of members."""

    def __init__(self, store: AssociationStore, label: str = "roster"):
        self.store = store
        self.label = label

    def plan(
        self,
        parent_id: str,
        desired: Iterable[DesiredMember | str],
        scope: Scope | None = None,
    ) -> SyncPlan:
        members = as_desired(desired)

        seen: set[str] = set()
        duplicates: list[str] = []
        for member in members:
            if member.child_id in seen:
                duplicates.append(member.child_id)
            seen.add(member.child_id)
        if duplicates:
            raise ValidationError(f"Duplicate ids in {self.label} sync: {', '.join(sorted(set(duplicates)))}")

        active = {self.store.child_id(row): row for row in self.store.find_active(parent_id, scope)}
        wanted = {m.child_id: m for m in members}

        plan = SyncPlan(parent_id=parent_id)
        plan.to_remove = [row for child_id, row in active.items() if child_id not in wanted]
        for member in members:
            row = active.get(member.child_id)
            if row is None:
                plan.to_add.append(member)
                continue
            current = self.store.attributes(row)
            changes = {
                key: value for key, value in member.attributes.items()
                if key in current and current[key] != value
            }
            if changes:
                plan.to_update.append((row, changes))
        return plan

    def apply(self, plan: SyncPlan) -> SyncResult:
        """Write a plan in one transaction; an empty plan performs no writes."""
        result = SyncResult()
        if plan.is_empty:
            return result

        try:
            for row in plan.to_remove:
                self.store.soft_delete(row)
                result.removed.append(self.store.child_id(row))
            for member in plan.to_add:
                self.store.insert(plan.parent_id, member.child_id, member.attributes)
                result.added.append(member.child_id)
            for row, changes in plan.to_update:
                self.store.update_attrs(row, changes)
                result.updated.append(self.store.child_id(row))
            self.store.commit()
        except IntegrityError as exc:
            self.store.rollback()
            raise ConflictError(f"Concurrent change to {self.label} {plan.parent_id}; retry the sync") from exc
        except SQLAlchemyError as exc:
            self.store.rollback()
            raise PersistenceError(f"Failed to sync {self.label} {plan.parent_id}") from exc

        current_app.logger.info(
            f"Synced {self.label} {plan.parent_id}: "
            f"{len(result.added)} added, {len(result.removed)} removed, {len(result.updated)} updated"
        )
        return result

    def sync(
        self,
        parent_id: str,
        desired: Iterable[DesiredMember | str],
        scope: Scope | None = None,
    ) -> SyncResult:
        return self.apply(self.plan(parent_id, desired, scope))


__all__ = [
    'DesiredMember',
    'SyncResult',
    'SyncPlan',
    'AssociationStore',
    'SqlAssociationStore',
    'RosterReconciler',
    'as_desired',
]
