import logging
from typing import Optional
from datetime import datetime

from sqlalchemy.orm import Session
from twilio.rest import Client

from config import DEV_MODE, TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER
from models import Capsule, Notification, User

logger = logging.getLogger(__name__)

_client = None


def sms_enabled() -> bool:
    return not DEV_MODE and bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_FROM_NUMBER)


def get_client() -> Client:
    global _client
    if _client is None:
        _client = Client(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN)
    return _client


def send_sms(recipient_phone: str, message: str):
    if not sms_enabled():
        logger.info("[DEV] SMS to %s: %s", recipient_phone, message)
        return
    get_client().api.account.messages.create(
        to=recipient_phone,
        from_=TWILIO_FROM_NUMBER,
        body=message)
    logger.info("SMS sent to %s", recipient_phone)


def create_notification(
    db: Session,
    user_id: str,
    type: str,
    title: str,
    message: str,
    capsule_id: Optional[str] = None,
    scheduled_for: Optional[datetime] = None,
) -> Notification:
    """Insert an in-app notification row. Caller commits."""
    notification = Notification(
        user_id=user_id,
        capsule_id=capsule_id,
        type=type,
        title=title,
        message=message,
        is_read=False,
        scheduled_for=scheduled_for,
    )
    db.add(notification)
    return notification


def notify_collaborator_added(db: Session, capsule: Capsule, invitee: User, inviter: User, permission: str) -> Notification:
    message = f"{inviter.full_name} invited you to collaborate on \"{capsule.title}\" ({permission} access)."
    return create_notification(
        db,
        user_id=invitee.id,
        type="collaborator_added",
        title="New capsule invitation",
        message=message,
        capsule_id=capsule.id,
    )
