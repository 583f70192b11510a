import logging
from typing import List, Literal, Optional
from urllib.parse import quote

from fastapi import FastAPI, Depends, Form, Query, Body, BackgroundTasks
from sqlalchemy import or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import configure_logging, PUBLIC_BASE_URL, PLACEHOLDER_FILE_URL, DEFAULT_PAGE_SIZE
from database import Base, engine, get_db
from errors import ApiError, register_error_handlers
from models import (
    User, Capsule, CapsuleFile, CapsuleCollaborator, CapsuleActivity, Notification, USER_ROLES,
)
from schemas import (
    UserCreate, UserUpdate, UserOut, UserDeleted, Token,
    CapsuleCreate, CapsuleUpdate, CapsuleOut, CapsuleDeleted, UnlockStatusOut, EmergencyQrOut, CapsuleStatus,
    CapsuleFileCreate, CapsuleFileUpdate, CapsuleFileOut, CapsuleFileDeleted,
    CollaboratorCreate, CollaboratorUpdate, CollaboratorOut, CollaboratorDeleted, Permission,
    ActivityCreate, ActivityOut, ActivityDeleted, ActivityType,
    NotificationCreate, NotificationUpdate, NotificationOut, NotificationDeleted, NotificationType,
    ReadAllOut, UnreadCountOut, ChatIn, ChatOut,
)
from auth import hash_password, create_access_token, get_current_user, get_optional_user, authenticate
from access import authorize_read, authorize_write, authorize_manage, visible_capsule_ids, is_owner, find_collaborator
from notification import create_notification, notify_collaborator_added, send_sms
from unlock import unlock_status
from chat import reply_to
from utils import new_id, utcnow, clamp_limit, is_valid_uuid, is_valid_user_id, make_qr_data_url, like_pattern, LIKE_ESCAPE

# ---------------------------
# Config
# ---------------------------
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Time Capsule API")
register_error_handlers(app)
Base.metadata.create_all(bind=engine)


# ---------------------------
# Helpers
# ---------------------------
def require_uuid(value: Optional[str], label: str = "id", missing_code: str = "MISSING_ID") -> str:
    if not value:
        raise ApiError(400, f"{label} is required", missing_code)
    if not is_valid_uuid(value):
        raise ApiError(400, f"Invalid UUID format for {label}", "INVALID_UUID")
    return value


def require_user_id(value: Optional[str], missing_code: str = "MISSING_USER_ID") -> str:
    if not value:
        raise ApiError(400, "User ID is required", missing_code)
    if not is_valid_user_id(value):
        raise ApiError(400, "Invalid UUID format", "INVALID_UUID")
    return value


def load_capsule(db: Session, capsule_id: Optional[str], not_found_status: int = 404, not_found_code: str = "NOT_FOUND") -> Capsule:
    require_uuid(capsule_id, "capsule id")
    capsule = db.get(Capsule, capsule_id)
    if not capsule:
        raise ApiError(not_found_status, "Capsule not found", not_found_code)
    return capsule


def record_activity(db: Session, capsule_id: str, user_id: str, activity_type: str, description: str):
    db.add(CapsuleActivity(
        capsule_id=capsule_id,
        user_id=user_id,
        activity_type=activity_type,
        description=description,
    ))


def delete_capsule_tree(db: Session, capsule: Capsule):
    """Remove a capsule with its files, collaborators and activities. Caller commits."""
    # Notifications outlive the capsule they point at
    db.query(Notification).filter(Notification.capsule_id == capsule.id).update({Notification.capsule_id: None})
    db.delete(capsule)


def paginate(query, limit: int, offset: int):
    return query.limit(clamp_limit(limit)).offset(offset).all()


@app.get("/")
def root():
    return {"ok": True, "service": "time-capsule"}


# ---------------------------
# Auth
# ---------------------------
@app.post("/api/auth/login", response_model=Token)
def login(email: str = Form(...), password: str = Form(...), db: Session = Depends(get_db)):
    user = authenticate(db, email, password)
    if not user:
        raise ApiError(401, "Invalid email or password", "INVALID_CREDENTIALS")
    token = create_access_token({"sub": user.id})
    logger.info("User %s logged in", user.id)
    return {"access_token": token, "token_type": "bearer"}

@app.get("/api/auth/me", response_model=UserOut)
def read_current_user(current_user: User = Depends(get_current_user)):
    return current_user


# ---------------------------
# Capsules
# ---------------------------
@app.get("/api/capsules")
def list_capsules(
    capsule_id: Optional[str] = Query(None, alias="id"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    search: Optional[str] = None,
    status: Optional[CapsuleStatus] = None,
    theme: Optional[str] = None,
    sort: Literal["createdAt", "unlockDate"] = "createdAt",
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user)
):
    if capsule_id is not None:
        capsule = load_capsule(db, capsule_id)
        authorize_read(db, capsule, user)
        return CapsuleOut.model_validate(capsule)

    if user is None:
        raise ApiError(401, "Authentication required", "UNAUTHORIZED")

    query = db.query(Capsule).filter(Capsule.user_id == user.id)
    if search:
        pattern = like_pattern(search)
        query = query.filter(or_(
            Capsule.title.ilike(pattern, escape=LIKE_ESCAPE),
            Capsule.description.ilike(pattern, escape=LIKE_ESCAPE),
        ))
    if status:
        query = query.filter(Capsule.status == status)
    if theme:
        query = query.filter(Capsule.theme == theme)
    if sort == "unlockDate":
        query = query.order_by(Capsule.unlock_date.asc())
    else:
        query = query.order_by(Capsule.created_at.desc())
    return [CapsuleOut.model_validate(c) for c in paginate(query, limit, offset)]

@app.post("/api/capsules", response_model=CapsuleOut, status_code=201)
def create_capsule(
    capsule: CapsuleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    now = utcnow()
    db_capsule = Capsule(
        id=new_id(),
        user_id=current_user.id,
        title=capsule.title,
        description=capsule.description,
        unlock_date=capsule.unlock_date,
        is_locked=True,
        is_emergency_accessible=capsule.is_emergency_accessible,
        emergency_qr_code=capsule.emergency_qr_code,
        theme=capsule.theme or "default",
        status="draft",
        created_at=now,
        updated_at=now,
    )
    db.add(db_capsule)
    record_activity(db, db_capsule.id, current_user.id, "created", f"Created capsule \"{db_capsule.title}\"")
    db.commit()
    db.refresh(db_capsule)
    logger.info("Capsule %s created by %s", db_capsule.id, current_user.id)
    return db_capsule

@app.put("/api/capsules", response_model=CapsuleOut)
def update_capsule(
    capsule_data: CapsuleUpdate,
    capsule_id: Optional[str] = Query(None, alias="id"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    capsule = load_capsule(db, capsule_id)
    authorize_write(db, capsule, current_user)

    changes = capsule_data.model_dump(exclude_unset=True)
    previous_status = capsule.status
    for field, value in changes.items():
        if field == "theme":
            value = value or "default"
        setattr(capsule, field, value)
    capsule.updated_at = utcnow()

    if "status" in changes and changes["status"] != previous_status and changes["status"] in ("sealed", "unlocked"):
        record_activity(db, capsule.id, current_user.id, changes["status"], f"Capsule {changes['status']}")
    elif changes:
        record_activity(db, capsule.id, current_user.id, "updated", "Updated " + ", ".join(sorted(changes)))

    db.commit()
    db.refresh(capsule)
    return capsule

@app.get("/api/capsules/{capsule_id}", response_model=CapsuleOut)
def get_capsule(
    capsule_id: str,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user)
):
    capsule = load_capsule(db, capsule_id)
    authorize_read(db, capsule, user)
    return capsule

@app.delete("/api/capsules/{capsule_id}", response_model=CapsuleDeleted)
def delete_capsule(capsule_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    capsule = load_capsule(db, capsule_id)
    if not is_owner(capsule, current_user):
        raise ApiError(403, "Only the owner can delete this capsule", "FORBIDDEN")

    snapshot = CapsuleOut.model_validate(capsule)
    delete_capsule_tree(db, capsule)
    db.commit()
    logger.info("Capsule %s deleted by %s", capsule_id, current_user.id)
    return {"message": "Capsule deleted successfully", "capsule": snapshot}

@app.get("/api/capsules/{capsule_id}/unlock-status", response_model=UnlockStatusOut)
def get_unlock_status(
    capsule_id: str,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user)
):
    capsule = load_capsule(db, capsule_id)
    authorize_read(db, capsule, user)
    return unlock_status(capsule)

@app.get("/api/capsules/{capsule_id}/emergency-qr", response_model=EmergencyQrOut)
def get_emergency_qr(capsule_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    capsule = load_capsule(db, capsule_id)
    authorize_write(db, capsule, current_user)
    if not capsule.is_emergency_accessible:
        raise ApiError(400, "Emergency access is not enabled for this capsule", "EMERGENCY_ACCESS_DISABLED")

    link = f"{PUBLIC_BASE_URL}/emergency/{capsule.id}"
    if not capsule.emergency_qr_code:
        capsule.emergency_qr_code = link
        db.commit()
    return {"capsule_id": capsule.id, "link": link, "qr_image": make_qr_data_url(link)}


# ---------------------------
# Capsule files
# ---------------------------
@app.get("/api/capsule-files")
def list_capsule_files(
    file_id: Optional[str] = Query(None, alias="id"),
    capsule_id: Optional[str] = Query(None, alias="capsuleId"),
    uploaded_by: Optional[str] = Query(None, alias="uploadedBy"),
    search: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user)
):
    if file_id is not None:
        require_uuid(file_id)
        file = db.get(CapsuleFile, file_id)
        if not file:
            raise ApiError(404, "File not found", "FILE_NOT_FOUND")
        capsule = db.get(Capsule, file.capsule_id)
        if not capsule:
            raise ApiError(404, "Capsule not found", "CAPSULE_NOT_FOUND")
        authorize_read(db, capsule, user, "ACCESS_DENIED")
        return CapsuleFileOut.model_validate(file)

    query = db.query(CapsuleFile)
    if capsule_id is not None:
        capsule = load_capsule(db, capsule_id, not_found_code="CAPSULE_NOT_FOUND")
        authorize_read(db, capsule, user, "ACCESS_DENIED")
        query = query.filter(CapsuleFile.capsule_id == capsule.id)
    else:
        if user is None:
            raise ApiError(401, "Authentication required", "UNAUTHORIZED")
        query = query.filter(CapsuleFile.capsule_id.in_(visible_capsule_ids(user)))

    if uploaded_by:
        query = query.filter(CapsuleFile.uploaded_by == uploaded_by)
    if search:
        query = query.filter(CapsuleFile.file_name.ilike(like_pattern(search), escape=LIKE_ESCAPE))
    query = query.order_by(CapsuleFile.created_at.desc())
    return [CapsuleFileOut.model_validate(f) for f in paginate(query, limit, offset)]

@app.post("/api/capsule-files", response_model=CapsuleFileOut, status_code=201)
def create_capsule_file(
    file: CapsuleFileCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    capsule = db.get(Capsule, file.capsule_id)
    if not capsule:
        raise ApiError(400, "Capsule not found", "CAPSULE_NOT_FOUND")

    uploader = db.get(User, file.uploaded_by or current_user.id)
    if not uploader:
        raise ApiError(400, "User not found", "USER_NOT_FOUND")
    if uploader.id != current_user.id:
        raise ApiError(403, "Files can only be registered on your own behalf", "FORBIDDEN")
    authorize_write(db, capsule, current_user, "ACCESS_DENIED")

    # No storage backend: a placeholder URL stands in when none is supplied
    file_id = new_id()
    db_file = CapsuleFile(
        id=file_id,
        capsule_id=capsule.id,
        file_name=file.file_name,
        file_type=file.file_type,
        file_size=file.file_size,
        file_url=file.file_url or f"{PLACEHOLDER_FILE_URL}/{file_id}/{quote(file.file_name)}",
        thumbnail_url=file.thumbnail_url,
        uploaded_by=uploader.id,
    )
    db.add(db_file)
    record_activity(db, capsule.id, current_user.id, "file_added", f"Added file \"{db_file.file_name}\"")
    db.commit()
    db.refresh(db_file)
    return db_file

def load_file_for_write(db: Session, file_id: Optional[str], user: User) -> CapsuleFile:
    require_uuid(file_id)
    db_file = db.get(CapsuleFile, file_id)
    if not db_file:
        raise ApiError(404, "File not found", "FILE_NOT_FOUND")
    authorize_write(db, db_file.capsule, user, "ACCESS_DENIED")
    return db_file

@app.put("/api/capsule-files", response_model=CapsuleFileOut)
def update_capsule_file(
    file_data: CapsuleFileUpdate,
    file_id: Optional[str] = Query(None, alias="id"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    db_file = load_file_for_write(db, file_id, current_user)
    for field, value in file_data.model_dump(exclude_unset=True).items():
        setattr(db_file, field, value)
    db.commit()
    db.refresh(db_file)
    return db_file

@app.delete("/api/capsule-files", response_model=CapsuleFileDeleted)
def delete_capsule_file(
    file_id: Optional[str] = Query(None, alias="id"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    db_file = load_file_for_write(db, file_id, current_user)
    snapshot = CapsuleFileOut.model_validate(db_file)
    record_activity(db, db_file.capsule_id, current_user.id, "file_removed", f"Removed file \"{db_file.file_name}\"")
    db.delete(db_file)
    db.commit()
    return {"message": "File deleted successfully", "file": snapshot}


# ---------------------------
# Collaborators
# ---------------------------
@app.get("/api/capsule-collaborators")
def list_collaborators(
    collaborator_id: Optional[str] = Query(None, alias="id"),
    capsule_id: Optional[str] = Query(None, alias="capsuleId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    permission: Optional[Permission] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if collaborator_id is not None:
        require_uuid(collaborator_id)
        collaborator = db.get(CapsuleCollaborator, collaborator_id)
        if not collaborator:
            raise ApiError(404, "Collaborator not found", "NOT_FOUND")
        authorize_read(db, collaborator.capsule, current_user)
        return CollaboratorOut.model_validate(collaborator)

    query = db.query(CapsuleCollaborator)
    if capsule_id is not None:
        capsule = load_capsule(db, capsule_id, not_found_code="CAPSULE_NOT_FOUND")
        authorize_read(db, capsule, current_user)
        query = query.filter(CapsuleCollaborator.capsule_id == capsule.id)
    else:
        query = query.filter(CapsuleCollaborator.capsule_id.in_(visible_capsule_ids(current_user)))
    if user_id is not None:
        query = query.filter(CapsuleCollaborator.user_id == require_user_id(user_id))
    if permission:
        query = query.filter(CapsuleCollaborator.permission == permission)
    query = query.order_by(CapsuleCollaborator.created_at.asc())
    return [CollaboratorOut.model_validate(c) for c in paginate(query, limit, offset)]

@app.post("/api/capsule-collaborators", response_model=CollaboratorOut, status_code=201)
def add_collaborator(
    collaborator: CollaboratorCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    capsule = db.get(Capsule, collaborator.capsule_id)
    if not capsule:
        raise ApiError(400, "Capsule not found", "CAPSULE_NOT_FOUND")
    invitee = db.get(User, collaborator.user_id)
    if not invitee:
        raise ApiError(400, "User not found", "USER_NOT_FOUND")
    inviter = db.get(User, collaborator.invited_by or current_user.id)
    if not inviter:
        raise ApiError(400, "Inviter not found", "INVITER_NOT_FOUND")
    if inviter.id != current_user.id:
        raise ApiError(403, "Invitations can only be sent on your own behalf", "FORBIDDEN")
    authorize_manage(db, capsule, current_user)

    if invitee.id == capsule.user_id:
        raise ApiError(400, "The capsule owner cannot be added as a collaborator", "OWNER_NOT_ALLOWED")
    if find_collaborator(db, capsule.id, invitee.id):
        raise ApiError(400, "User is already a collaborator on this capsule", "ALREADY_COLLABORATOR")

    db_collaborator = CapsuleCollaborator(
        capsule_id=capsule.id,
        user_id=invitee.id,
        permission=collaborator.permission,
        invited_by=inviter.id,
        accepted_at=None,
    )
    db.add(db_collaborator)
    record_activity(db, capsule.id, current_user.id, "shared", f"Shared with {invitee.full_name} ({collaborator.permission})")
    notification = notify_collaborator_added(db, capsule, invitee, inviter, collaborator.permission)
    db.commit()
    db.refresh(db_collaborator)

    if invitee.phone:
        background_tasks.add_task(send_sms, invitee.phone, notification.message)
    return db_collaborator

@app.put("/api/capsule-collaborators", response_model=CollaboratorOut)
def update_collaborator(
    collaborator_data: CollaboratorUpdate,
    collaborator_id: Optional[str] = Query(None, alias="id"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    require_uuid(collaborator_id)
    collaborator = db.get(CapsuleCollaborator, collaborator_id)
    if not collaborator:
        raise ApiError(404, "Collaborator not found", "NOT_FOUND")

    changes = collaborator_data.model_dump(exclude_unset=True)
    if not changes:
        return collaborator
    # The invitee may accept or decline; anything else needs a manager
    if "permission" in changes or current_user.id != collaborator.user_id:
        authorize_manage(db, collaborator.capsule, current_user)

    for field, value in changes.items():
        setattr(collaborator, field, value)
    db.commit()
    db.refresh(collaborator)
    return collaborator

@app.delete("/api/capsule-collaborators", response_model=CollaboratorDeleted)
def remove_collaborator(
    collaborator_id: Optional[str] = Query(None, alias="id"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    require_uuid(collaborator_id)
    collaborator = db.get(CapsuleCollaborator, collaborator_id)
    if not collaborator:
        raise ApiError(404, "Collaborator not found", "NOT_FOUND")
    if current_user.id != collaborator.user_id:
        authorize_manage(db, collaborator.capsule, current_user)

    snapshot = CollaboratorOut.model_validate(collaborator)
    db.delete(collaborator)
    db.commit()
    return {"message": "Collaborator deleted successfully", "collaborator": snapshot}


# ---------------------------
# Activities
# ---------------------------
@app.get("/api/capsule-activities")
def list_activities(
    activity_id: Optional[str] = Query(None, alias="id"),
    capsule_id: Optional[str] = Query(None, alias="capsuleId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    activity_type: Optional[ActivityType] = Query(None, alias="activityType"),
    order: Literal["asc", "desc"] = "desc",
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if activity_id is not None:
        require_uuid(activity_id)
        activity = db.get(CapsuleActivity, activity_id)
        if not activity:
            raise ApiError(404, "Activity not found", "NOT_FOUND")
        authorize_read(db, activity.capsule, current_user)
        return ActivityOut.model_validate(activity)

    query = db.query(CapsuleActivity)
    if capsule_id is not None:
        capsule = load_capsule(db, capsule_id, not_found_code="CAPSULE_NOT_FOUND")
        authorize_read(db, capsule, current_user)
        query = query.filter(CapsuleActivity.capsule_id == capsule.id)
    else:
        query = query.filter(CapsuleActivity.capsule_id.in_(visible_capsule_ids(current_user)))
    if user_id is not None:
        query = query.filter(CapsuleActivity.user_id == require_user_id(user_id))
    if activity_type:
        query = query.filter(CapsuleActivity.activity_type == activity_type)

    ordering = CapsuleActivity.created_at.asc() if order == "asc" else CapsuleActivity.created_at.desc()
    query = query.order_by(ordering)
    return [ActivityOut.model_validate(a) for a in paginate(query, limit, offset)]

@app.post("/api/capsule-activities", response_model=ActivityOut, status_code=201)
def create_activity(
    activity: ActivityCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    capsule = db.get(Capsule, activity.capsule_id)
    if not capsule:
        raise ApiError(400, "Capsule not found", "CAPSULE_NOT_FOUND")
    actor = db.get(User, activity.user_id or current_user.id)
    if not actor:
        raise ApiError(400, "User not found", "USER_NOT_FOUND")
    if actor.id != current_user.id:
        raise ApiError(403, "Activities can only be recorded on your own behalf", "FORBIDDEN")
    authorize_write(db, capsule, current_user)

    db_activity = CapsuleActivity(
        capsule_id=capsule.id,
        user_id=actor.id,
        activity_type=activity.activity_type,
        description=activity.description,
    )
    db.add(db_activity)
    db.commit()
    db.refresh(db_activity)
    return db_activity

@app.delete("/api/capsule-activities", response_model=ActivityDeleted)
def delete_activity(
    activity_id: Optional[str] = Query(None, alias="id"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    require_uuid(activity_id)
    activity = db.get(CapsuleActivity, activity_id)
    if not activity:
        raise ApiError(404, "Activity not found", "NOT_FOUND")
    if not is_owner(activity.capsule, current_user):
        raise ApiError(403, "Only the capsule owner can delete activities", "FORBIDDEN")

    snapshot = ActivityOut.model_validate(activity)
    db.delete(activity)
    db.commit()
    return {"message": "Activity deleted successfully", "activity": snapshot}


# ---------------------------
# Notifications
# ---------------------------
MAX_INTEGER_ID = 2 ** 63 - 1

def check_own_user_id(user_id: Optional[str], current_user: User) -> str:
    if user_id is None:
        return current_user.id
    if user_id != current_user.id:
        raise ApiError(403, "Cannot access notifications for other users", "FORBIDDEN")
    return user_id

@app.get("/api/notifications", response_model=List[NotificationOut])
def list_notifications(
    user_id: Optional[str] = Query(None, alias="userId"),
    is_read: Optional[bool] = Query(None, alias="isRead"),
    type: Optional[NotificationType] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user_id = check_own_user_id(user_id, current_user)
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if is_read is not None:
        query = query.filter(Notification.is_read == is_read)
    if type:
        query = query.filter(Notification.type == type)
    # scheduled_for is deliberately not consulted
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
    return paginate(query, limit, offset)

@app.post("/api/notifications", response_model=NotificationOut, status_code=201)
def create_notification_route(
    notification: NotificationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if "id" in notification.model_fields_set:
        raise ApiError(400, "ID cannot be provided in request body", "ID_NOT_ALLOWED")
    if not db.get(User, notification.user_id):
        raise ApiError(404, "User not found", "USER_NOT_FOUND")
    if notification.capsule_id and not db.get(Capsule, notification.capsule_id):
        raise ApiError(404, "Capsule not found", "CAPSULE_NOT_FOUND")

    db_notification = create_notification(
        db,
        user_id=notification.user_id,
        type=notification.type,
        title=notification.title,
        message=notification.message,
        capsule_id=notification.capsule_id,
        scheduled_for=notification.scheduled_for,
    )
    db.commit()
    db.refresh(db_notification)
    return db_notification

@app.patch("/api/notifications/read-all", response_model=ReadAllOut)
def mark_all_read(
    payload: Optional[NotificationUpdate] = Body(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if payload is not None and "user_id" in payload.model_fields_set:
        raise ApiError(400, "User ID cannot be provided in request body", "USER_ID_NOT_ALLOWED")
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id)
        .update({Notification.is_read: True})
    )
    db.commit()
    return {"message": "All notifications marked as read", "updated_count": updated}

@app.get("/api/notifications/unread-count", response_model=UnreadCountOut)
def unread_count(
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if user_id is not None:
        require_user_id(user_id)
    user_id = check_own_user_id(user_id, current_user)
    count = (
        db.query(func.count(Notification.id))
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .scalar()
    )
    return {"user_id": user_id, "unread_count": count or 0}

def load_own_notification(db: Session, notification_id: str, user: User) -> Notification:
    if not (notification_id.isascii() and notification_id.isdigit()):
        raise ApiError(400, "Valid integer is required for notification ID", "INVALID_ID")
    pk = int(notification_id)
    # SQLite INTEGER is signed 64-bit
    if pk > MAX_INTEGER_ID:
        raise ApiError(404, "Notification not found", "NOT_FOUND")
    notification = (
        db.query(Notification)
        .filter(Notification.id == pk, Notification.user_id == user.id)
        .first()
    )
    if not notification:
        raise ApiError(404, "Notification not found", "NOT_FOUND")
    return notification

@app.patch("/api/notifications/{notification_id}", response_model=NotificationOut)
def update_notification(
    notification_id: str,
    payload: NotificationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if "user_id" in payload.model_fields_set:
        raise ApiError(400, "User ID cannot be provided in request body", "USER_ID_NOT_ALLOWED")
    notification = load_own_notification(db, notification_id, current_user)
    if payload.is_read is not None:
        notification.is_read = payload.is_read
    db.commit()
    db.refresh(notification)
    return notification

@app.delete("/api/notifications/{notification_id}", response_model=NotificationDeleted)
def delete_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    notification = load_own_notification(db, notification_id, current_user)
    snapshot = NotificationOut.model_validate(notification)
    db.delete(notification)
    db.commit()
    return {"message": "Notification deleted successfully", "notification": snapshot}


# ---------------------------
# Users
# ---------------------------
@app.get("/api/users")
def list_users(
    user_id: Optional[str] = Query(None, alias="id"),
    search: Optional[str] = None,
    role: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if user_id is not None:
        require_user_id(user_id)
        user = db.get(User, user_id)
        if not user:
            raise ApiError(404, "User not found", "USER_NOT_FOUND")
        return UserOut.model_validate(user)

    query = db.query(User)
    if search:
        pattern = like_pattern(search)
        query = query.filter(or_(
            User.email.ilike(pattern, escape=LIKE_ESCAPE),
            User.full_name.ilike(pattern, escape=LIKE_ESCAPE),
        ))
    if role:
        if role not in USER_ROLES:
            raise ApiError(400, "Invalid role filter. Must be one of: " + ", ".join(USER_ROLES), "INVALID_ROLE_FILTER")
        query = query.filter(User.role == role)
    query = query.order_by(User.created_at.asc())
    return [UserOut.model_validate(u) for u in paginate(query, limit, offset)]

@app.post("/api/users", response_model=UserOut, status_code=201)
def create_user(user: UserCreate, db: Session = Depends(get_db)):
    if db.query(User).filter(User.email == user.email).first():
        raise ApiError(400, "Email already exists", "EMAIL_EXISTS")

    now = utcnow()
    db_user = User(
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        avatar_url=user.avatar_url,
        phone=user.phone,
        hashed_password=hash_password(user.password) if user.password else None,
        created_at=now,
        updated_at=now,
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ApiError(400, "Email already exists", "EMAIL_EXISTS")
    db.refresh(db_user)
    logger.info("User %s registered", db_user.id)
    return db_user

@app.put("/api/users", response_model=UserOut)
def update_user(
    user_data: UserUpdate,
    user_id: Optional[str] = Query(None, alias="id"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    require_user_id(user_id)
    user = db.get(User, user_id)
    if not user:
        raise ApiError(404, "User not found", "USER_NOT_FOUND")
    if user.id != current_user.id:
        raise ApiError(403, "You can only update your own account", "FORBIDDEN")

    changes = user_data.model_dump(exclude_unset=True)
    if "email" in changes and changes["email"] != user.email:
        if db.query(User).filter(User.email == changes["email"], User.id != user.id).first():
            raise ApiError(400, "Email already exists", "EMAIL_EXISTS")
    password = changes.pop("password", None)
    if password:
        user.hashed_password = hash_password(password)
    for field, value in changes.items():
        setattr(user, field, value)
    user.updated_at = utcnow()
    db.commit()
    db.refresh(user)
    return user

@app.delete("/api/users", response_model=UserDeleted)
def delete_user(
    user_id: Optional[str] = Query(None, alias="id"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if not user_id:
        raise ApiError(400, "User ID is required", "MISSING_USER_ID")
    if not is_valid_user_id(user_id):
        raise ApiError(400, "Invalid ID format", "INVALID_ID")
    if current_user.id != user_id:
        raise ApiError(403, "You can only delete your own account", "FORBIDDEN")

    snapshot = UserOut.model_validate(current_user)
    owned_ids = [capsule.id for capsule in current_user.capsules_owned]
    if owned_ids:
        db.query(Notification).filter(Notification.capsule_id.in_(owned_ids)).update({Notification.capsule_id: None})

    # Traces left on other people's capsules
    db.query(CapsuleCollaborator).filter(
        or_(CapsuleCollaborator.user_id == user_id, CapsuleCollaborator.invited_by == user_id)
    ).delete()
    db.query(CapsuleActivity).filter(CapsuleActivity.user_id == user_id).delete()
    db.query(CapsuleFile).filter(CapsuleFile.uploaded_by == user_id).delete()

    # Owned capsules (with their files, collaborators, activities) and own notifications cascade
    db.delete(current_user)
    db.commit()
    logger.info("User %s deleted their account", user_id)
    return {"message": "Account deleted successfully", "user": snapshot}


# ---------------------------
# Help chat
# ---------------------------
@app.post("/api/chat", response_model=ChatOut)
def chat(payload: ChatIn):
    topic, reply = reply_to(payload.message)
    return {"reply": reply, "topic": topic}
