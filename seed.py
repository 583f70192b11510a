"""
Demo data: three users with capsules, files, collaborators, activities and
notifications. Run ``python seed.py`` against the configured DATABASE_URL.
Seeding is skipped when the demo users already exist.
"""
import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from auth import hash_password
from config import configure_logging
from database import Base, SessionLocal, engine
from models import User, Capsule, CapsuleFile, CapsuleCollaborator, CapsuleActivity, Notification
from utils import utcnow

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "timecapsule"
STORAGE_URL = "https://storage.example.com/capsules"


def _ago(now, days):
    return now - timedelta(days=days)


def seed(db: Session) -> bool:
    """Insert the demo data set. Returns False when it is already there."""
    if db.query(User).filter(User.email == "john.doe@example.com").first():
        logger.info("Demo data already present, skipping")
        return False

    now = utcnow()
    password = hash_password(DEMO_PASSWORD)

    # ---------------------------
    # Users
    # ---------------------------
    john = User(email="john.doe@example.com", full_name="John Doe", role="user",
                avatar_url="https://api.dicebear.com/7.x/avataaars/svg?seed=john",
                hashed_password=password, created_at=_ago(now, 180), updated_at=_ago(now, 180))
    sarah = User(email="sarah.smith@family.com", full_name="Sarah Smith", role="family",
                 avatar_url="https://api.dicebear.com/7.x/avataaars/svg?seed=sarah",
                 hashed_password=password, created_at=_ago(now, 120), updated_at=_ago(now, 120))
    michael = User(email="dr.michael.johnson@hospital.com", full_name="Dr. Michael Johnson", role="doctor",
                   avatar_url="https://api.dicebear.com/7.x/avataaars/svg?seed=michael",
                   hashed_password=password, created_at=_ago(now, 90), updated_at=_ago(now, 90))
    db.add_all([john, sarah, michael])
    db.flush()

    # ---------------------------
    # Capsules
    # ---------------------------
    def capsule(owner, title, description, unlock_in_days, theme, status, created_days_ago, emergency=False):
        created = _ago(now, created_days_ago)
        return Capsule(
            user_id=owner.id, title=title, description=description,
            unlock_date=now + timedelta(days=unlock_in_days), is_locked=True,
            is_emergency_accessible=emergency, theme=theme, status=status,
            created_at=created, updated_at=created,
        )

    wedding = capsule(john, "Our Wedding Day - 2024",
                      "Beautiful memories from our special day. Photos, videos, and heartfelt messages from family and friends.",
                      365, "wedding", "sealed", 150)
    birthday = capsule(john, "Emma's 1st Birthday",
                       "First year memories of our baby girl. Messages for her to read when she turns 18.",
                       17 * 365, "birthday", "sealed", 90)
    health = capsule(sarah, "Family Medical History",
                     "Important health documents and medical records for family reference.",
                     180, "health", "sealed", 60, emergency=True)
    vacation = capsule(sarah, "Summer Vacation 2024",
                       "Photos and videos from our amazing trip to Hawaii. Memories to cherish forever!",
                       2 * 365, "travel", "sealed", 30)
    future_self = capsule(michael, "Letter to My Future Self",
                          "My goals, dreams, and aspirations. To be opened on my 50th birthday.",
                          10 * 365, "personal", "draft", 14)
    db.add_all([wedding, birthday, health, vacation, future_self])
    db.flush()

    # ---------------------------
    # Files
    # ---------------------------
    files = [
        (wedding, john, "ceremony_entrance.mp4", "video/mp4", 45678900, "wedding", True, 150),
        (wedding, john, "bride_and_groom_portrait.jpg", "image/jpeg", 3456780, "wedding", True, 150),
        (birthday, john, "emma_first_steps.mov", "video/quicktime", 23456700, "birthday", True, 90),
        (birthday, john, "birthday_cake_smash.jpg", "image/jpeg", 2345670, "birthday", True, 90),
        (health, sarah, "medical_history_2024.pdf", "application/pdf", 1234560, "health", False, 60),
        (health, sarah, "vaccination_records.pdf", "application/pdf", 876540, "health", False, 60),
        (vacation, sarah, "hawaii_beach_sunset.jpg", "image/jpeg", 4567890, "travel", True, 30),
    ]
    for target, uploader, name, file_type, size, folder, thumb, days_ago in files:
        stem = name.rsplit(".", 1)[0]
        db.add(CapsuleFile(
            capsule_id=target.id, file_name=name, file_type=file_type, file_size=size,
            file_url=f"{STORAGE_URL}/{folder}/{name}",
            thumbnail_url=f"{STORAGE_URL}/{folder}/thumbs/{stem}.jpg" if thumb else None,
            uploaded_by=uploader.id, created_at=_ago(now, days_ago),
        ))
        db.add(CapsuleActivity(
            capsule_id=target.id, user_id=uploader.id, activity_type="file_added",
            description=f"Added file \"{name}\"", created_at=_ago(now, days_ago),
        ))

    # ---------------------------
    # Collaborators
    # ---------------------------
    collaborators = [
        (wedding, sarah, "edit", john, 140, 139),
        (vacation, john, "view", sarah, 25, None),
        (health, michael, "admin", sarah, 55, 54),
        (birthday, sarah, "view", john, 80, 78),
    ]
    for target, invitee, permission, inviter, invited_days_ago, accepted_days_ago in collaborators:
        db.add(CapsuleCollaborator(
            capsule_id=target.id, user_id=invitee.id, permission=permission, invited_by=inviter.id,
            accepted_at=_ago(now, accepted_days_ago) if accepted_days_ago is not None else None,
            created_at=_ago(now, invited_days_ago),
        ))
        db.add(CapsuleActivity(
            capsule_id=target.id, user_id=inviter.id, activity_type="shared",
            description=f"Shared with {invitee.full_name} ({permission})", created_at=_ago(now, invited_days_ago),
        ))
        db.add(Notification(
            user_id=invitee.id, capsule_id=target.id, type="collaborator_added",
            title="New capsule invitation",
            message=f"{inviter.full_name} invited you to collaborate on \"{target.title}\" ({permission} access).",
            is_read=accepted_days_ago is not None, created_at=_ago(now, invited_days_ago),
        ))

    # ---------------------------
    # Activities / notifications
    # ---------------------------
    for target in (wedding, birthday, health, vacation, future_self):
        db.add(CapsuleActivity(
            capsule_id=target.id, user_id=target.user_id, activity_type="created",
            description=f"Created capsule \"{target.title}\"", created_at=target.created_at,
        ))
    for target in (wedding, birthday, health, vacation):
        db.add(CapsuleActivity(
            capsule_id=target.id, user_id=target.user_id, activity_type="sealed",
            description="Capsule sealed", created_at=target.created_at + timedelta(days=1),
        ))

    db.add_all([
        Notification(user_id=john.id, type="unlock_reminder", title="Welcome to Time Capsule!",
                     message="Create your first capsule and pick the day it opens.", is_read=True,
                     created_at=_ago(now, 90)),
        Notification(user_id=john.id, capsule_id=wedding.id, type="unlock_reminder",
                     title="Wedding capsule opens in a year",
                     message="\"Our Wedding Day - 2024\" will unlock on its anniversary.",
                     scheduled_for=wedding.unlock_date - timedelta(days=7), created_at=_ago(now, 3)),
        Notification(user_id=sarah.id, capsule_id=health.id, type="emergency_access",
                     title="Emergency access enabled",
                     message="\"Family Medical History\" can now be opened from its emergency QR code.",
                     created_at=_ago(now, 59)),
        Notification(user_id=michael.id, capsule_id=future_self.id, type="unlock_reminder",
                     title="Finish your letter",
                     message="\"Letter to My Future Self\" is still a draft. Seal it when you are ready.",
                     created_at=_ago(now, 1)),
    ])

    db.commit()
    logger.info("Seeded demo data for %s, %s and %s", john.email, sarah.email, michael.email)
    return True


if __name__ == "__main__":
    configure_logging()
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        seed(session)
    finally:
        session.close()
