from typing import Optional, List
from datetime import datetime, date as Date, timezone
from sqlalchemy import Column, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field

ROLES = {"elderly_user", "caregiver"}
LOG_STATUSES = {"taken", "later", "skipped"}
MOODS = ("good", "bad", "neutral")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    full_name: Optional[str] = None
    role: str  # elderly_user, caregiver
    hashed_password: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def public(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "created_at": self.created_at,
        }

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


class CaregiverLink(SQLModel, table=True):
    __tablename__ = "caregiver_link"
    __table_args__ = (UniqueConstraint("caregiver_id", "elderly_user_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    caregiver_id: int = Field(foreign_key="user.id", index=True)
    elderly_user_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)


class HealthCheckin(SQLModel, table=True):
    __tablename__ = "health_checkin"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    transcript: str
    detected_keywords: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    mood: str  # good, bad, neutral
    created_at: datetime = Field(default_factory=utcnow, index=True)


class Medication(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    name: str
    dosage: str
    time: str  # "HH:MM"
    total_stock: int = Field(default=0, ge=0)
    low_stock_threshold: int = 5
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class MedicationLog(SQLModel, table=True):
    __tablename__ = "medication_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    medication_id: int = Field(foreign_key="medication.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    status: str  # taken, later, skipped
    scheduled_time: str
    logged_at: datetime = Field(default_factory=utcnow, index=True)


class StockAlert(SQLModel, table=True):
    __tablename__ = "stock_alert"

    id: Optional[int] = Field(default=None, primary_key=True)
    medication_id: int = Field(foreign_key="medication.id")
    user_id: int = Field(foreign_key="user.id", index=True)
    message: str
    is_resolved: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class DailySummary(SQLModel, table=True):
    __tablename__ = "daily_summary"
    __table_args__ = (UniqueConstraint("user_id", "date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    date: Date
    mood_summary: Optional[str] = None
    symptoms: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    medication_adherence_rate: Optional[float] = None
    total_checkins: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class VoiceMessage(SQLModel, table=True):
    __tablename__ = "voice_message"

    id: Optional[int] = Field(default=None, primary_key=True)
    sender_id: int = Field(foreign_key="user.id", index=True)
    recipient_id: int = Field(foreign_key="user.id", index=True)
    audio_url: str
    duration_seconds: Optional[int] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
