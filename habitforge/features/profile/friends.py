"""
Friend directory: read access to relationships owned by the friends service.

The engine never changes relationships; ``add_relationship`` exists for
seeding and tests.
"""
from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Protocol

from sqlalchemy import and_, insert, or_, select
from sqlalchemy.exc import IntegrityError

from habitforge.core.database import make_session_scope, user_relationships
from habitforge.core.errors import ConflictError
from habitforge.models.profile import Relationship, RelationshipStatus


class FriendDirectory(Protocol):
    def add_relationship(self, relationship: Relationship) -> Relationship: ...
    def friends(self, user_id: str) -> List[Relationship]: ...
    def pending_requests(self, user_id: str) -> List[Relationship]: ...
    def sent_requests(self, user_id: str) -> List[Relationship]: ...


class InMemoryFriendDirectory:
    def __init__(self):
        self._lock = threading.Lock()
        self._relationships: Dict[str, Relationship] = {}

    def add_relationship(self, relationship: Relationship) -> Relationship:
        with self._lock:
            for existing in self._relationships.values():
                if (existing.user_id, existing.target_user_id) == (relationship.user_id, relationship.target_user_id):
                    raise ConflictError("Relationship already exists")
            self._relationships[relationship.id] = relationship
            return relationship

    def friends(self, user_id: str) -> List[Relationship]:
        return [
            r
            for r in self._relationships.values()
            if r.status == RelationshipStatus.ACCEPTED and user_id in (r.user_id, r.target_user_id)
        ]

    def pending_requests(self, user_id: str) -> List[Relationship]:
        return [
            r
            for r in self._relationships.values()
            if r.status == RelationshipStatus.PENDING and r.target_user_id == user_id
        ]

    def sent_requests(self, user_id: str) -> List[Relationship]:
        return [
            r
            for r in self._relationships.values()
            if r.status == RelationshipStatus.PENDING and r.user_id == user_id
        ]


def _relationship_from_row(row) -> Relationship:
    created_at = row.created_at
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return Relationship(
        id=row.id,
        user_id=row.user_id,
        target_user_id=row.target_user_id,
        status=RelationshipStatus(row.status),
        created_at=created_at,
    )


class SqlFriendDirectory:
    def __init__(self, session_factory):
        self._scope = make_session_scope(session_factory)

    def add_relationship(self, relationship: Relationship) -> Relationship:
        created_at = relationship.created_at or datetime.now(timezone.utc)
        try:
            with self._scope() as session:
                session.execute(
                    insert(user_relationships).values(
                        id=relationship.id,
                        user_id=relationship.user_id,
                        target_user_id=relationship.target_user_id,
                        status=relationship.status.value,
                        created_at=created_at,
                    )
                )
        except IntegrityError as exc:
            raise ConflictError("Relationship already exists") from exc
        return relationship.model_copy(update={"created_at": created_at})

    def _query(self, condition) -> List[Relationship]:
        with self._scope() as session:
            rows = session.execute(
                select(user_relationships).where(condition).order_by(user_relationships.c.created_at)
            ).all()
        return [_relationship_from_row(row) for row in rows]

    def friends(self, user_id: str) -> List[Relationship]:
        ur = user_relationships
        return self._query(
            and_(
                ur.c.status == RelationshipStatus.ACCEPTED.value,
                or_(ur.c.user_id == user_id, ur.c.target_user_id == user_id),
            )
        )

    def pending_requests(self, user_id: str) -> List[Relationship]:
        ur = user_relationships
        return self._query(and_(ur.c.status == RelationshipStatus.PENDING.value, ur.c.target_user_id == user_id))

    def sent_requests(self, user_id: str) -> List[Relationship]:
        ur = user_relationships
        return self._query(and_(ur.c.status == RelationshipStatus.PENDING.value, ur.c.user_id == user_id))
