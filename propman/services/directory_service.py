"""
Directory Service — users, properties and approval groups as lookups.

The workflow engine only reads from here (get_user, get_property,
get_approval_group).  Group administration enforces the two rules that feed
approval routing: group levels are unique, and only active (non-archived)
users can be added as members.

Usage:
    from propman.services.directory_service import get_user, create_approval_group

    approver = get_user(user_id)          # None if unknown
    group = create_approval_group({"name": "Level 2 Approvers", "level": 2, "user_ids": [...]})
"""

import logging

from sqlalchemy import select

from propman.core.exceptions import NotFoundError, ValidationError
from propman.models import db
from propman.models.directory import ApprovalGroup, Property, User
from propman.services.persistence import gateway

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_GROUPS = (
    {"name": "Level 1 Approvers", "level": 1, "description": "Basic level approval group"},
    {"name": "Level 2 Approvers", "level": 2, "description": "Management level approval group"},
    {"name": "Level 3 Approvers", "level": 3, "description": "Executive level approval group"},
)


# ── Lookups ────────────────────────────────────────────────────────────────────


def get_user(user_id):
    if not user_id:
        return None
    return db.session.get(User, user_id)


def get_property(property_id):
    if not property_id:
        return None
    return db.session.get(Property, property_id)


def get_approval_group(group_id):
    if not group_id:
        return None
    return db.session.get(ApprovalGroup, group_id)


def list_active_users():
    """Users that may be assigned as approvers or group members, by name."""
    stmt = select(User).where(User.is_archived.is_(False)).order_by(User.name)
    return db.session.execute(stmt).scalars().all()


def list_approval_groups():
    return db.session.execute(select(ApprovalGroup).order_by(ApprovalGroup.level)).scalars().all()


# ── Approval group administration ─────────────────────────────────────────────


def _validate_group_payload(data: dict, group_id=None, current_members=()) -> tuple[str, int, list]:
    errors = {}

    name = (data.get("name") or "").strip()
    if not name:
        errors["name"] = "Group name is required"

    level = data.get("level")
    try:
        level = int(level)
    except (TypeError, ValueError):
        level = None
    if level is None or level < 1:
        errors["level"] = "Level must be a positive number"
    else:
        clash = db.session.execute(
            select(ApprovalGroup.id).where(ApprovalGroup.level == level)
        ).scalars().all()
        if any(gid != group_id for gid in clash):
            errors["level"] = "This level already exists"

    user_ids = list(dict.fromkeys(data.get("user_ids") or []))
    if not user_ids:
        errors["users"] = "At least one user must be selected"
    else:
        for uid in user_ids:
            user = get_user(uid)
            if user is None:
                errors["users"] = f"Unknown user: {uid}"
                break
            if user.is_archived and uid not in current_members:
                errors["users"] = f"Archived user cannot be added to a group: {uid}"
                break

    if errors:
        raise ValidationError("Invalid approval group", details=errors)
    return name, level, user_ids


def create_approval_group(data: dict) -> ApprovalGroup:
    """Create a group after checking name, unique level and active members."""
    name, level, user_ids = _validate_group_payload(data)
    group = ApprovalGroup(
        name=name,
        level=level,
        user_ids=user_ids,
        description=(data.get("description") or "").strip(),
    )
    gateway.save(group)
    gateway.commit()
    logger.info("Approval group created", extra={"group_id": group.id, "level": level})
    return group


def update_approval_group(group_id, data: dict) -> ApprovalGroup:
    group = get_approval_group(group_id)
    if group is None:
        raise NotFoundError(resource="ApprovalGroup", resource_id=group_id)

    merged = {
        "name": data.get("name", group.name),
        "level": data.get("level", group.level),
        "user_ids": data.get("user_ids", group.user_ids),
    }
    name, level, user_ids = _validate_group_payload(
        merged, group_id=group.id, current_members=tuple(group.user_ids or ()),
    )

    group.name = name
    group.level = level
    # JSON columns only track reassignment, never in-place mutation
    group.user_ids = user_ids
    if "description" in data:
        group.description = (data.get("description") or "").strip()
    gateway.update(group)
    gateway.commit()
    logger.info("Approval group updated", extra={"group_id": group.id, "level": level})
    return group


def archive_user(user_id) -> User:
    """Soft-delete a user; history and existing assignments keep pointing at them."""
    user = get_user(user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    if not user.is_archived:
        user.is_archived = True
        gateway.update(user)
        gateway.commit()
        logger.info("User archived", extra={"user_id": user.id})
    return user


def seed_default_approval_groups() -> int:
    """Create the Level 1–3 approver groups that do not exist yet.

    Seeded groups start empty; members are added through update_approval_group.

    Returns:
        Number of groups created.
    """
    existing = set(db.session.execute(select(ApprovalGroup.level)).scalars().all())
    created = 0
    for defaults in DEFAULT_APPROVAL_GROUPS:
        if defaults["level"] in existing:
            continue
        gateway.save(ApprovalGroup(user_ids=[], **defaults))
        created += 1
    if created:
        gateway.commit()
    return created
