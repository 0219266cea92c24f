import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .analysis import analyze_mood, detect_health_keywords, generate_daily_summary
from .models import (
    CaregiverLink,
    DailySummary,
    HealthCheckin,
    Medication,
    MedicationLog,
    StockAlert,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)


def has_link(s: Session, caregiver_id: int, elderly_user_id: int) -> bool:
    link = s.exec(
        select(CaregiverLink.id)
        .where(CaregiverLink.caregiver_id == caregiver_id)
        .where(CaregiverLink.elderly_user_id == elderly_user_id)
    ).first()
    return link is not None


def resolve_target_user(s: Session, user: User, requested_id: Optional[int], what: str = "data") -> int:
    """Return the user id the caller may act on, or raise 403.

    Callers always reach their own data; anyone else's needs a caregiver link.
    """
    if requested_id is None or requested_id == user.id:
        return user.id
    if not has_link(s, user.id, requested_id):
        logger.warning("user %s denied access to %s of user %s", user.id, what, requested_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You are not authorized to view this user's {what}",
        )
    return requested_id


def linked_user_ids(s: Session, caregiver_id: int) -> list[int]:
    return list(s.exec(
        select(CaregiverLink.elderly_user_id)
        .where(CaregiverLink.caregiver_id == caregiver_id)
        .order_by(CaregiverLink.id)
    ).all())


def record_checkin(s: Session, user_id: int, transcript: str) -> HealthCheckin:
    checkin = HealthCheckin(
        user_id=user_id,
        transcript=transcript,
        detected_keywords=detect_health_keywords(transcript),
        mood=analyze_mood(transcript),
    )
    s.add(checkin)
    s.commit()
    s.refresh(checkin)
    logger.info("check-in %s saved for user %s (mood=%s)", checkin.id, user_id, checkin.mood)
    return checkin


def decrement_stock(s: Session, medication_id: int) -> Optional[int]:
    """Take one dose off the stock and return what is left.

    Runs as a single conditional UPDATE so concurrent doses are never lost.
    Returns None when the medication was already out of stock.
    """
    result = s.exec(
        update(Medication)
        .where(Medication.id == medication_id)
        .where(Medication.total_stock > 0)
        .values(total_stock=Medication.total_stock - 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    return s.exec(select(Medication.total_stock).where(Medication.id == medication_id)).one()


def record_medication_log(
    s: Session, user: User, medication_id: int, log_status: str, scheduled_time: str
) -> MedicationLog:
    """
    Store one adherence event. A ``taken`` event also consumes one dose and
    raises a stock alert once the remainder drops to the medication's
    low-stock threshold. Empty stock (0) does not raise an alert.

    The log, stock change and alert commit together or not at all.
    """
    medication = s.get(Medication, medication_id)
    if not medication or medication.user_id != user.id:
        raise HTTPException(status_code=404, detail="Medication not found")

    log = MedicationLog(
        medication_id=medication_id,
        user_id=user.id,
        status=log_status,
        scheduled_time=scheduled_time,
    )
    s.add(log)

    if log_status == "taken":
        new_stock = decrement_stock(s, medication_id)
        if new_stock is not None and 0 < new_stock <= medication.low_stock_threshold:
            s.add(StockAlert(
                medication_id=medication_id,
                user_id=user.id,
                message=f"Low stock alert: {medication.name} has only {new_stock} doses remaining",
            ))
            logger.info("low stock alert for medication %s (%s left)", medication_id, new_stock)

    s.commit()
    s.refresh(log)
    logger.info("medication %s logged as %s by user %s", medication_id, log_status, user.id)
    return log


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _find_summary(s: Session, user_id: int, day: date) -> Optional[DailySummary]:
    return s.exec(
        select(DailySummary)
        .where(DailySummary.user_id == user_id)
        .where(DailySummary.date == day)
    ).first()


def _store_summary(s: Session, user_id: int, day: date, values: dict) -> DailySummary:
    summary = _find_summary(s, user_id, day)
    if summary is None:
        summary = DailySummary(user_id=user_id, date=day)
    for key, value in values.items():
        setattr(summary, key, value)
    summary.created_at = utcnow()

    s.add(summary)
    s.commit()
    s.refresh(summary)
    return summary


def upsert_daily_summary(s: Session, user_id: int, day: date) -> DailySummary:
    """Recompute the summary for one day and overwrite any stored one."""
    start, end = day_bounds(day)
    checkins = s.exec(
        select(HealthCheckin)
        .where(HealthCheckin.user_id == user_id)
        .where(HealthCheckin.created_at >= start)
        .where(HealthCheckin.created_at < end)
    ).all()
    logs = s.exec(
        select(MedicationLog)
        .where(MedicationLog.user_id == user_id)
        .where(MedicationLog.logged_at >= start)
        .where(MedicationLog.logged_at < end)
    ).all()

    values = generate_daily_summary(checkins, logs)

    try:
        summary = _store_summary(s, user_id, day, values)
    except IntegrityError:
        # another request inserted this day's row first; overwrite it instead
        s.rollback()
        logger.info("daily summary for user %s on %s created concurrently, updating", user_id, day)
        summary = _store_summary(s, user_id, day, values)
    logger.info("daily summary for user %s on %s: %s", user_id, day, values["mood_summary"])
    return summary
