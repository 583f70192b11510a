from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from database import Base
from utils import new_id, utcnow

USER_ROLES = ("user", "family", "doctor", "admin")
CAPSULE_STATUSES = ("draft", "sealed", "unlocked")
PERMISSIONS = ("view", "edit", "admin")
ACTIVITY_TYPES = ("created", "updated", "file_added", "file_removed", "sealed", "unlocked", "shared")
NOTIFICATION_TYPES = ("unlock_reminder", "capsule_unlocked", "collaborator_added", "emergency_access")


# ---------------------------
# User
# ---------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="user")  # informational only
    avatar_url = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    hashed_password = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    capsules_owned = relationship("Capsule", back_populates="owner", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")


# ---------------------------
# Capsule
# ---------------------------
class Capsule(Base):
    __tablename__ = "capsules"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    unlock_date = Column(DateTime, nullable=False)
    is_locked = Column(Boolean, nullable=False, default=True)
    is_emergency_accessible = Column(Boolean, nullable=False, default=False)
    emergency_qr_code = Column(String, nullable=True)
    theme = Column(String, nullable=False, default="default")
    status = Column(String, nullable=False, default="draft")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="capsules_owned")
    files = relationship("CapsuleFile", back_populates="capsule", cascade="all, delete-orphan")
    collaborators = relationship("CapsuleCollaborator", back_populates="capsule", cascade="all, delete-orphan")
    activities = relationship("CapsuleActivity", back_populates="capsule", cascade="all, delete-orphan")

    @property
    def is_unlocked(self) -> bool:
        # Derived from the date alone; is_locked and status are not consulted
        return self.unlock_date <= utcnow()


# ---------------------------
# Capsule file
# ---------------------------
class CapsuleFile(Base):
    __tablename__ = "capsule_files"

    id = Column(String(36), primary_key=True, default=new_id)
    capsule_id = Column(String(36), ForeignKey("capsules.id"), nullable=False, index=True)
    file_name = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    file_url = Column(String, nullable=False)
    thumbnail_url = Column(String, nullable=True)
    uploaded_by = Column(String(64), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    capsule = relationship("Capsule", back_populates="files")


# ---------------------------
# Collaborator
# ---------------------------
class CapsuleCollaborator(Base):
    __tablename__ = "capsule_collaborators"

    id = Column(String(36), primary_key=True, default=new_id)
    capsule_id = Column(String(36), ForeignKey("capsules.id"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    permission = Column(String, nullable=False, default="view")
    invited_by = Column(String(64), ForeignKey("users.id"), nullable=False)
    accepted_at = Column(DateTime, nullable=True)  # None while the invite is pending
    created_at = Column(DateTime, nullable=False, default=utcnow)

    capsule = relationship("Capsule", back_populates="collaborators")


# ---------------------------
# Activity (append-only)
# ---------------------------
class CapsuleActivity(Base):
    __tablename__ = "capsule_activities"

    id = Column(String(36), primary_key=True, default=new_id)
    capsule_id = Column(String(36), ForeignKey("capsules.id"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    activity_type = Column(String, nullable=False)
    description = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    capsule = relationship("Capsule", back_populates="activities")


# ---------------------------
# Notification
# ---------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    capsule_id = Column(String(36), ForeignKey("capsules.id"), nullable=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    scheduled_for = Column(DateTime, nullable=True)  # stored, never evaluated
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="notifications")
