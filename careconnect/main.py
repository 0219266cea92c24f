import logging
import os
from datetime import date as Date
from typing import Literal, Optional

import pandas as pd
from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, or_, select
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import create_access_token, get_current_user, hash_password, require_role, verify_password
from .config import settings
from .database import get_session, init_db
from .models import (
    ROLES,
    CaregiverLink,
    DailySummary,
    HealthCheckin,
    Medication,
    MedicationLog,
    StockAlert,
    User,
    VoiceMessage,
    utcnow,
)
from .reports import PERIODS, aggregate_alerts, build_adherence_report
from .services import (
    has_link,
    linked_user_ids,
    record_checkin,
    record_medication_log,
    resolve_target_user,
    upsert_daily_summary,
)
from .storage import blob_store

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="CareConnect API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(settings.media_dir, exist_ok=True)
app.mount(settings.media_url, StaticFiles(directory=settings.media_dir), name="media")

api = APIRouter(prefix="/api")


@app.on_event("startup")
def on_startup():
    init_db()


# --- Error shape: every failure is {"error": "..."} ---
@app.exception_handler(StarletteHTTPException)
async def http_error(request, exc: StarletteHTTPException):
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request, exc: RequestValidationError):
    err = exc.errors()[0]
    field = err["loc"][-1] if err.get("loc") else "body"
    if not isinstance(field, str):
        message = "Invalid request body"
    elif err.get("type") == "missing":
        message = f"{field} is required"
    else:
        message = f"Invalid {field}"
    return JSONResponse({"error": message}, status_code=status.HTTP_400_BAD_REQUEST)


@app.exception_handler(IntegrityError)
async def integrity_error(request, exc: IntegrityError):
    return JSONResponse({"error": str(exc.orig)}, status_code=status.HTTP_400_BAD_REQUEST)


@app.exception_handler(Exception)
async def unexpected_error(request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": str(exc)}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


@app.get("/health")
def health_check():
    return {"status": "healthy"}


# --- Auth ---
class SignupRequest(BaseModel):
    email: str
    password: str
    role: str
    full_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


@api.post("/auth/signup")
def signup(body: SignupRequest, s: Session = Depends(get_session)):
    if body.role not in ROLES:
        raise HTTPException(400, "Invalid role")
    if s.exec(select(User).where(User.email == body.email)).first():
        raise HTTPException(400, "Email already registered")
    user = User(
        email=body.email,
        full_name=body.full_name,
        role=body.role,
        hashed_password=hash_password(body.password),
    )
    s.add(user)
    s.commit()
    s.refresh(user)
    logger.info("signed up user %s as %s", user.id, user.role)
    return {"message": "User created successfully", "user": user.public()}


@api.post("/auth/login")
def login(body: LoginRequest, s: Session = Depends(get_session)):
    user = s.exec(select(User).where(User.email == body.email)).first()
    if not user or not verify_password(body.password, user.hashed_password):
        logger.warning("failed login for %s", body.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_access_token(str(user.id))
    return {"access_token": token, "token_type": "bearer", "role": user.role, "user_id": user.id}


@api.get("/auth/me")
def me(user: User = Depends(get_current_user)):
    return {"user": user.public()}


# --- Check-ins ---
class CheckinRequest(BaseModel):
    transcript: Optional[str] = None


@api.post("/checkin")
def create_checkin(body: CheckinRequest, user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    if not body.transcript or not body.transcript.strip():
        raise HTTPException(400, "transcript is required")
    checkin = record_checkin(s, user.id, body.transcript)
    return {"message": "Check-in saved successfully", "checkin": checkin}


@api.get("/checkin")
def list_checkins(
    user_id: Optional[int] = None,
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    s: Session = Depends(get_session),
):
    target = resolve_target_user(s, user, user_id, "check-ins")
    checkins = s.exec(
        select(HealthCheckin)
        .where(HealthCheckin.user_id == target)
        .order_by(HealthCheckin.created_at.desc())
        .limit(limit)
    ).all()
    return {"checkins": checkins}


# --- Daily summaries ---
class SummaryRequest(BaseModel):
    date: Optional[Date] = None
    user_id: Optional[int] = None


@api.post("/summary")
def generate_summary(body: SummaryRequest, user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    target = resolve_target_user(s, user, body.user_id)
    day = body.date or utcnow().date()
    summary = upsert_daily_summary(s, target, day)
    return {"message": "Summary generated successfully", "summary": summary}


@api.get("/summary")
def list_summaries(
    user_id: Optional[int] = None,
    limit: int = Query(7, ge=1, le=365),
    user: User = Depends(get_current_user),
    s: Session = Depends(get_session),
):
    target = resolve_target_user(s, user, user_id)
    summaries = s.exec(
        select(DailySummary)
        .where(DailySummary.user_id == target)
        .order_by(DailySummary.date.desc())
        .limit(limit)
    ).all()
    return {"summaries": summaries}


# --- Medications ---
class MedicationCreate(BaseModel):
    name: str
    dosage: str
    time: str = Field(pattern=r"^\d{2}:\d{2}$")
    total_stock: int = Field(ge=0)
    low_stock_threshold: int = Field(default=5, ge=0)


class MedicationUpdate(BaseModel):
    id: int
    name: Optional[str] = None
    dosage: Optional[str] = None
    time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    total_stock: Optional[int] = Field(default=None, ge=0)
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class MedicationLogRequest(BaseModel):
    medication_id: int
    status: Literal["taken", "later", "skipped"]
    scheduled_time: str


def _active_medications(s: Session, user_id: int):
    return s.exec(
        select(Medication)
        .where(Medication.user_id == user_id)
        .where(Medication.is_active == True)  # noqa: E712
        .order_by(Medication.time)
    ).all()


@api.post("/medications")
def create_medication(body: MedicationCreate, user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    medication = Medication(user_id=user.id, **body.model_dump())
    s.add(medication)
    s.commit()
    s.refresh(medication)
    logger.info("medication %s added for user %s", medication.id, user.id)
    return {"message": "Medication added successfully", "medication": medication}


@api.get("/medications")
def list_medications(
    user_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    s: Session = Depends(get_session),
):
    target = resolve_target_user(s, user, user_id, "medications")
    return {"medications": _active_medications(s, target)}


@api.patch("/medications")
def update_medication(body: MedicationUpdate, user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    medication = s.get(Medication, body.id)
    if not medication or medication.user_id != user.id:
        raise HTTPException(404, "Medication not found")
    for key, value in body.model_dump(exclude={"id"}, exclude_unset=True).items():
        setattr(medication, key, value)
    medication.updated_at = utcnow()
    s.add(medication)
    s.commit()
    s.refresh(medication)
    return {"message": "Medication updated successfully", "medication": medication}


@api.delete("/medications")
def delete_medication(id: int, user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    medication = s.get(Medication, id)
    if not medication or medication.user_id != user.id:
        raise HTTPException(404, "Medication not found")
    # soft delete: history and logs stay readable
    medication.is_active = False
    medication.updated_at = utcnow()
    s.add(medication)
    s.commit()
    return {"message": "Medication deleted successfully"}


@api.post("/medications/log")
def log_medication(body: MedicationLogRequest, user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    if not body.scheduled_time.strip():
        raise HTTPException(400, "scheduled_time is required")
    log = record_medication_log(s, user, body.medication_id, body.status, body.scheduled_time)
    return {"message": "Medication logged successfully", "log": log}


@api.get("/medications/log")
def list_medication_logs(
    user_id: Optional[int] = None,
    medication_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    s: Session = Depends(get_session),
):
    target = resolve_target_user(s, user, user_id, "medication logs")
    query = select(MedicationLog).where(MedicationLog.user_id == target)
    if medication_id is not None:
        query = query.where(MedicationLog.medication_id == medication_id)
    logs = s.exec(query.order_by(MedicationLog.logged_at.desc())).all()
    return {"logs": logs}


@api.get("/medications/adherence")
def medication_adherence(
    user_id: Optional[int] = None,
    period: str = "week",
    user: User = Depends(get_current_user),
    s: Session = Depends(get_session),
):
    target = resolve_target_user(s, user, user_id)
    if period not in PERIODS:
        raise HTTPException(400, "Invalid period")
    return build_adherence_report(s, target, period, utcnow())


# --- Alerts ---
class ResolveAlertRequest(BaseModel):
    alert_id: int


@api.get("/alerts")
def list_alerts(user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    alerts = aggregate_alerts(s, linked_user_ids(s, user.id), utcnow())
    return {"alerts": alerts, "total": len(alerts)}


@api.patch("/alerts")
def resolve_alert(body: ResolveAlertRequest, user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    alert = s.get(StockAlert, body.alert_id)
    if not alert:
        raise HTTPException(404, "Alert not found")
    resolve_target_user(s, user, alert.user_id, "alerts")
    alert.is_resolved = True
    s.add(alert)
    s.commit()
    logger.info("stock alert %s resolved by user %s", alert.id, user.id)
    return {"message": "Alert resolved"}


# --- Caregiver links ---
class LinkRequest(BaseModel):
    elderly_user_email: str


@api.post("/caregiver/links")
def create_link(
    body: LinkRequest,
    user: User = Depends(require_role("caregiver")),
    s: Session = Depends(get_session),
):
    elderly = s.exec(
        select(User)
        .where(User.email == body.elderly_user_email)
        .where(User.role == "elderly_user")
    ).first()
    if not elderly:
        raise HTTPException(404, "Elderly user not found. Make sure they have signed up as an Elderly User.")
    if has_link(s, user.id, elderly.id):
        raise HTTPException(400, "You are already linked to this user")
    link = CaregiverLink(caregiver_id=user.id, elderly_user_id=elderly.id)
    s.add(link)
    s.commit()
    s.refresh(link)
    logger.info("caregiver %s linked to user %s", user.id, elderly.id)
    return {
        "message": f"Successfully linked to {elderly.display_name}",
        "link": link,
        "elderly_user": elderly.public(),
    }


@api.get("/caregiver/links")
def list_links(user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    links = s.exec(select(CaregiverLink).where(CaregiverLink.caregiver_id == user.id)).all()
    out = []
    for link in links:
        elderly = s.get(User, link.elderly_user_id)
        out.append({**link.model_dump(), "elderly_user": elderly.public() if elderly else None})
    return {"links": out}


@api.delete("/caregiver/links")
def delete_link(id: int, user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    link = s.get(CaregiverLink, id)
    if not link or link.caregiver_id != user.id:
        raise HTTPException(404, "Link not found")
    s.delete(link)
    s.commit()
    return {"message": "Link removed successfully"}


@api.get("/caregiver/checkins")
def caregiver_checkins(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    s: Session = Depends(get_session),
):
    if not has_link(s, user.id, user_id):
        raise HTTPException(403, "You are not authorized to view this user's check-ins")
    checkins = s.exec(
        select(HealthCheckin)
        .where(HealthCheckin.user_id == user_id)
        .order_by(HealthCheckin.created_at.desc())
        .limit(limit)
    ).all()
    return {"checkins": checkins}


@api.get("/caregiver/medications")
def caregiver_medications(user_id: int, user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    if not has_link(s, user.id, user_id):
        raise HTTPException(403, "You are not authorized to view this user's medications")
    return {"medications": _active_medications(s, user_id)}


# --- Voice messages ---
class MessageReadRequest(BaseModel):
    id: int
    is_read: bool


@api.post("/messages")
def send_message(
    audio: UploadFile = File(...),
    recipient_id: int = Form(...),
    duration_seconds: Optional[int] = Form(None),
    user: User = Depends(get_current_user),
    s: Session = Depends(get_session),
):
    recipient = s.get(User, recipient_id)
    if not recipient:
        raise HTTPException(404, "Recipient not found")
    if not (has_link(s, user.id, recipient_id) or has_link(s, recipient_id, user.id)):
        raise HTTPException(403, "You can only message linked users")

    key = blob_store.key_for(user.id, audio.filename)
    try:
        audio_url = blob_store.upload(key, audio.file.read())
    except FileExistsError as e:
        raise HTTPException(400, str(e))

    message = VoiceMessage(
        sender_id=user.id,
        recipient_id=recipient_id,
        audio_url=audio_url,
        duration_seconds=duration_seconds or None,
    )
    s.add(message)
    s.commit()
    s.refresh(message)
    return {"message": "Voice message sent successfully", "voice_message": message}


@api.get("/messages")
def list_messages(user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    messages = s.exec(
        select(VoiceMessage)
        .where(or_(VoiceMessage.sender_id == user.id, VoiceMessage.recipient_id == user.id))
        .order_by(VoiceMessage.created_at.desc())
    ).all()
    out = []
    for m in messages:
        sender = s.get(User, m.sender_id)
        recipient = s.get(User, m.recipient_id)
        out.append({
            **m.model_dump(),
            "sender": sender.public() if sender else None,
            "recipient": recipient.public() if recipient else None,
        })
    return {"messages": out}


@api.patch("/messages")
def mark_message(body: MessageReadRequest, user: User = Depends(get_current_user), s: Session = Depends(get_session)):
    message = s.get(VoiceMessage, body.id)
    if not message or message.recipient_id != user.id:
        raise HTTPException(404, "Message not found")
    message.is_read = body.is_read
    s.add(message)
    s.commit()
    s.refresh(message)
    return {"message": "Message updated successfully", "voice_message": message}


# --- Reports ---
@api.get("/reports/{user_id}")
def report(
    user_id: int,
    type: str = "csv",
    user: User = Depends(get_current_user),
    s: Session = Depends(get_session),
):
    if type not in {"csv", "json"}:
        raise HTTPException(400, "Invalid type")
    target = resolve_target_user(s, user, user_id)
    rows = s.exec(
        select(MedicationLog, Medication.name)
        .join(Medication, Medication.id == MedicationLog.medication_id)
        .where(MedicationLog.user_id == target)
        .order_by(MedicationLog.logged_at.desc())
    ).all()
    df = pd.DataFrame(
        [
            {
                "logged_at": log.logged_at.isoformat(),
                "medication": name,
                "scheduled_time": log.scheduled_time,
                "status": log.status,
            }
            for log, name in rows
        ],
        columns=["logged_at", "medication", "scheduled_time", "status"],
    )
    if type == "json":
        return {"type": type, "user_id": target, "data": df.to_dict(orient="records"), "rows": len(df)}
    return {"type": type, "user_id": target, "data": df.to_csv(index=False), "rows": len(df)}


app.include_router(api)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
