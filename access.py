"""
Who may see or change a capsule.

Reads follow two axes: the emergency flag opens a capsule (and its files) to
anonymous callers; otherwise the caller must be the owner or hold any
collaborator row for the capsule. Writes additionally look at the collaborator
permission level.
"""
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from errors import ApiError
from models import Capsule, CapsuleCollaborator, User

WRITE_PERMISSIONS = ("edit", "admin")
MANAGE_PERMISSIONS = ("admin",)


def find_collaborator(db: Session, capsule_id: str, user_id: str) -> Optional[CapsuleCollaborator]:
    return (
        db.query(CapsuleCollaborator)
        .filter(CapsuleCollaborator.capsule_id == capsule_id, CapsuleCollaborator.user_id == user_id)
        .first()
    )


def is_owner(capsule: Capsule, user: Optional[User]) -> bool:
    return user is not None and capsule.user_id == user.id


def can_read(db: Session, capsule: Capsule, user: Optional[User]) -> bool:
    if capsule.is_emergency_accessible or is_owner(capsule, user):
        return True
    if user is None:
        return False
    # Any permission level grants read access
    return find_collaborator(db, capsule.id, user.id) is not None


def _has_permission(db: Session, capsule: Capsule, user: User, permissions) -> bool:
    if is_owner(capsule, user):
        return True
    collaborator = find_collaborator(db, capsule.id, user.id)
    return collaborator is not None and collaborator.permission in permissions


def can_write(db: Session, capsule: Capsule, user: User) -> bool:
    return _has_permission(db, capsule, user, WRITE_PERMISSIONS)


def can_manage(db: Session, capsule: Capsule, user: User) -> bool:
    return _has_permission(db, capsule, user, MANAGE_PERMISSIONS)


def authorize_read(db: Session, capsule: Capsule, user: Optional[User], denied_code: str = "FORBIDDEN"):
    if capsule.is_emergency_accessible:
        return
    if user is None:
        raise ApiError(401, "Authentication required", "UNAUTHORIZED")
    if not can_read(db, capsule, user):
        raise ApiError(403, "Access forbidden", denied_code)


def authorize_write(db: Session, capsule: Capsule, user: User, denied_code: str = "FORBIDDEN"):
    if not can_write(db, capsule, user):
        raise ApiError(403, "You do not have permission to modify this capsule", denied_code)


def authorize_manage(db: Session, capsule: Capsule, user: User):
    if not can_manage(db, capsule, user):
        raise ApiError(403, "Only the owner or an admin collaborator can manage collaborators", "FORBIDDEN")


def visible_capsule_ids(user: User):
    """Select of the ids of every capsule the user owns or collaborates on."""
    collaborating = select(CapsuleCollaborator.capsule_id).where(CapsuleCollaborator.user_id == user.id)
    return select(Capsule.id).where(or_(Capsule.user_id == user.id, Capsule.id.in_(collaborating)))
