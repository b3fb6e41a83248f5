"""
PropMan — Property Project Management
Directory models — read-mostly reference data consumed by the workflow core.

Models:
    - User: person who creates projects, approves them and marks payments
    - Property: real-estate asset that owns projects and tasks
    - ApprovalGroup: named, leveled cohort of users for group approval

User/property administration screens are out of scope; these tables exist so
the approval policy can resolve approval levels and group membership.
"""

import uuid
from datetime import datetime, timezone

from propman.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


USER_ROLES = frozenset({"admin", "manager", "user"})
APPROVAL_LEVELS = (1, 2, 3)


class User(db.Model):
    """
    Platform user.

    Business rules:
    - approval_level is an ordinal 1–3; higher subsumes lower for
      single-approver gating.
    - Users are archived, never hard-deleted, because approval history keeps
      pointing at them. An archived user cannot become a new approver or a
      new approval-group member.
    """

    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    approval_level = db.Column(db.Integer, nullable=False, default=1, comment="1 | 2 | 3")
    role = db.Column(db.String(20), nullable=False, default="user", comment="admin | manager | user")
    permissions = db.Column(db.JSON, nullable=False, default=list)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "approval_level": self.approval_level,
            "role": self.role,
            "permissions": list(self.permissions or []),
            "is_archived": self.is_archived,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<User {self.id} {self.name!r} L{self.approval_level}>"


class Property(db.Model):
    """Real-estate property; projects and tasks hang off it."""

    __tablename__ = "properties"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    address = db.Column(db.String(500), default="")
    description = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "description": self.description,
        }

    def __repr__(self):
        return f"<Property {self.id} {self.name!r}>"


class ApprovalGroup(db.Model):
    """
    Named cohort of users who may approve projects routed to the group.

    ``level`` is unique across groups; the directory service enforces it at
    create/edit time (there is deliberately no DB constraint, matching the
    hosted schema). ``user_ids`` is a JSON array of weak references — the
    group does not own its members.
    """

    __tablename__ = "approval_groups"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    level = db.Column(db.Integer, nullable=False, index=True)
    user_ids = db.Column(db.JSON, nullable=False, default=list)
    description = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def has_member(self, user_id) -> bool:
        return user_id in (self.user_ids or [])

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "level": self.level,
            "user_ids": list(self.user_ids or []),
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ApprovalGroup {self.id} {self.name!r} L{self.level}>"
