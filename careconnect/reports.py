import calendar
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable

from sqlmodel import Session, select

from .analysis import adherence_rate
from .models import HealthCheckin, Medication, MedicationLog, StockAlert, User

logger = logging.getLogger(__name__)

PERIODS = {"week", "month"}

CONCERNING_KEYWORDS = {"pain", "dizzy", "chest pain", "emergency", "hospital", "fell", "bleeding"}
SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "warning": 3}

SKIP_WINDOW = timedelta(days=7)
SKIP_THRESHOLD = 3
CONCERN_WINDOW = timedelta(days=3)
MISSED_CHECKIN_WINDOW = timedelta(days=2)
RECENT_LOGS_LIMIT = 20


def period_bounds(period: str, now: datetime) -> tuple[datetime, datetime]:
    """Start and end (inclusive) of the calendar week or month containing now.

    Weeks run Sunday through Saturday.
    """
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        # weekday(): Monday == 0, Sunday == 6
        start = day_start - timedelta(days=(now.weekday() + 1) % 7)
        end = start + timedelta(days=7) - timedelta(microseconds=1)
    elif period == "month":
        start = day_start.replace(day=1)
        days_in_month = calendar.monthrange(now.year, now.month)[1]
        end = start + timedelta(days=days_in_month) - timedelta(microseconds=1)
    else:
        raise ValueError(f"Invalid period: {period}")
    return start, end


def _user_ref(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "full_name": user.full_name, "email": user.email}


def _medication_ref(medication: Medication | None) -> dict | None:
    if medication is None:
        return None
    return {"id": medication.id, "name": medication.name, "dosage": medication.dosage}


def build_adherence_report(s: Session, user_id: int, period: str, now: datetime) -> dict:
    start, end = period_bounds(period, now)
    logs = s.exec(
        select(MedicationLog)
        .where(MedicationLog.user_id == user_id)
        .where(MedicationLog.logged_at >= start)
        .where(MedicationLog.logged_at <= end)
        .order_by(MedicationLog.logged_at.desc(), MedicationLog.id.desc())
    ).all()

    counts = {"taken": 0, "skipped": 0, "later": 0}
    by_medication: dict[int, dict] = {}
    for log in logs:
        counts[log.status] += 1
        stat = by_medication.get(log.medication_id)
        if stat is None:
            stat = by_medication[log.medication_id] = {
                "medication": s.get(Medication, log.medication_id),
                "total": 0,
                "taken": 0,
                "skipped": 0,
                "later": 0,
                "adherenceRate": 0,
            }
        stat["total"] += 1
        stat[log.status] += 1

    for stat in by_medication.values():
        stat["adherenceRate"] = stat["taken"] / stat["total"] * 100 if stat["total"] else 0

    overall_rate = adherence_rate((log.status for log in logs), empty=0.0)

    return {
        "period": period,
        "startDate": start.date().isoformat(),
        "endDate": end.date().isoformat(),
        "overall": {
            "totalLogs": len(logs),
            "takenCount": counts["taken"],
            "skippedCount": counts["skipped"],
            "laterCount": counts["later"],
            "adherenceRate": f"{overall_rate:.1f}",
        },
        "byMedication": list(by_medication.values()),
        "recentLogs": logs[:RECENT_LOGS_LIMIT],
    }


def _low_stock_alerts(s: Session, user_ids: list[int]) -> list[dict]:
    rows = s.exec(
        select(StockAlert)
        .where(StockAlert.user_id.in_(user_ids))
        .where(StockAlert.is_resolved == False)  # noqa: E712
    ).all()
    return [
        {
            "id": str(row.id),
            "type": "low_stock",
            "severity": "warning",
            "message": row.message,
            "user": _user_ref(s.get(User, row.user_id)),
            "medication": _medication_ref(s.get(Medication, row.medication_id)),
            "created_at": row.created_at,
        }
        for row in rows
    ]


def _skipped_medication_alerts(s: Session, user_ids: list[int], now: datetime) -> list[dict]:
    logs = s.exec(
        select(MedicationLog)
        .where(MedicationLog.user_id.in_(user_ids))
        .where(MedicationLog.status == "skipped")
        .where(MedicationLog.logged_at >= now - SKIP_WINDOW)
    ).all()

    grouped: dict[tuple[int, int], list[MedicationLog]] = defaultdict(list)
    for log in logs:
        grouped[(log.user_id, log.medication_id)].append(log)

    alerts = []
    for (user_id, medication_id), group in grouped.items():
        if len(group) < SKIP_THRESHOLD:
            continue
        user = s.get(User, user_id)
        medication = s.get(Medication, medication_id)
        name = user.display_name if user else str(user_id)
        med_name = medication.name if medication else str(medication_id)
        alerts.append({
            "id": f"skipped-{user_id}-{medication_id}",
            "type": "medication_skipped",
            "severity": "high",
            "message": f"{name} has skipped {med_name} {len(group)} times in the last 7 days",
            "user": _user_ref(user),
            "medication": _medication_ref(medication),
            "count": len(group),
            "created_at": max(log.logged_at for log in group),
        })
    return alerts


def _health_concern_alerts(s: Session, user_ids: list[int], now: datetime) -> list[dict]:
    checkins = s.exec(
        select(HealthCheckin)
        .where(HealthCheckin.user_id.in_(user_ids))
        .where(HealthCheckin.created_at >= now - CONCERN_WINDOW)
        .order_by(HealthCheckin.created_at.desc())
    ).all()

    alerts = []
    for checkin in checkins:
        keywords = checkin.detected_keywords or []
        if not any(k.lower() in CONCERNING_KEYWORDS for k in keywords):
            continue
        user = s.get(User, checkin.user_id)
        name = user.display_name if user else str(checkin.user_id)
        alerts.append({
            "id": f"health-{checkin.id}",
            "type": "health_concern",
            "severity": "critical",
            "message": f"{name} reported concerning symptoms: {', '.join(keywords)}",
            "user": _user_ref(user),
            "keywords": keywords,
            "transcript": checkin.transcript,
            "created_at": checkin.created_at,
        })
    return alerts


def _missed_checkin_alerts(s: Session, user_ids: list[int], now: datetime) -> list[dict]:
    cutoff = now - MISSED_CHECKIN_WINDOW
    alerts = []
    for user_id in user_ids:
        recent = s.exec(
            select(HealthCheckin.id)
            .where(HealthCheckin.user_id == user_id)
            .where(HealthCheckin.created_at >= cutoff)
            .limit(1)
        ).first()
        if recent is not None:
            continue
        user = s.get(User, user_id)
        if user is None:
            continue
        alerts.append({
            "id": f"no-checkin-{user_id}",
            "type": "no_checkin",
            "severity": "medium",
            "message": f"{user.display_name} hasn't checked in for 2+ days",
            "user": _user_ref(user),
            "created_at": cutoff,
        })
    return alerts


def sort_alerts(alerts: Iterable[dict]) -> list[dict]:
    """Severity rank first, newest first within a rank, then id."""
    ordered = sorted(alerts, key=lambda a: a["id"])
    ordered.sort(key=lambda a: a["created_at"], reverse=True)
    ordered.sort(key=lambda a: SEVERITY_ORDER[a["severity"]])
    return ordered


def aggregate_alerts(s: Session, user_ids: list[int], now: datetime) -> list[dict]:
    if not user_ids:
        return []
    alerts = []
    alerts.extend(_low_stock_alerts(s, user_ids))
    alerts.extend(_skipped_medication_alerts(s, user_ids, now))
    alerts.extend(_health_concern_alerts(s, user_ids, now))
    alerts.extend(_missed_checkin_alerts(s, user_ids, now))
    logger.debug("aggregated %d alerts for %d users", len(alerts), len(user_ids))
    return sort_alerts(alerts)
