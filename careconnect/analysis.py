from collections import Counter
from typing import Iterable

from .models import MOODS

# Health-related terms looked for in check-in transcripts
HEALTH_KEYWORDS = [
    "pain",
    "tired",
    "headache",
    "dizzy",
    "fever",
    "sad",
    "anxious",
    "depressed",
    "nausea",
    "cough",
    "cold",
    "weak",
    "sick",
    "hurt",
    "ache",
    "worry",
    "upset",
    "lonely",
    "sleepy",
    "exhausted",
]

MOOD_PATTERNS = {
    "good": ["good", "great", "excellent", "fine", "well", "happy", "better", "okay"],
    "bad": ["bad", "terrible", "awful", "worse", "poor", "sick", "ill"],
}


def detect_health_keywords(transcript: str) -> list[str]:
    """Vocabulary terms found anywhere in the transcript, in vocabulary order.

    Plain substring containment: "coldness" matches "cold".
    """
    lowered = transcript.lower()
    return [keyword for keyword in HEALTH_KEYWORDS if keyword in lowered]


def analyze_mood(transcript: str) -> str:
    lowered = transcript.lower()
    good_count = sum(1 for word in MOOD_PATTERNS["good"] if word in lowered)
    bad_count = sum(1 for word in MOOD_PATTERNS["bad"] if word in lowered)

    if good_count > bad_count:
        return "good"
    if bad_count > good_count:
        return "bad"
    return "neutral"


def dominant_mood(moods: Iterable[str]) -> str:
    """Most frequent mood label; ties go to the earlier label in MOODS.

    With no labels at all the day is reported as neutral.
    """
    counts = Counter(m for m in moods if m)
    if not counts:
        return "neutral"
    best = MOODS[0]
    for mood in MOODS:
        if counts[mood] > counts[best]:
            best = mood
    return best


def adherence_rate(statuses: Iterable[str], empty: float) -> float:
    statuses = list(statuses)
    if not statuses:
        return empty
    taken = sum(1 for s in statuses if s == "taken")
    return taken / len(statuses) * 100


def generate_daily_summary(checkins, medication_logs) -> dict:
    """
    Roll one day's check-ins and medication logs into a summary record.

    A day without any medication logs counts as full adherence (100.0).
    """
    symptoms: list[str] = []
    for checkin in checkins:
        for keyword in checkin.detected_keywords or []:
            if keyword not in symptoms:
                symptoms.append(keyword)

    rate = adherence_rate((log.status for log in medication_logs), empty=100.0)

    return {
        "mood_summary": f"Overall mood: {dominant_mood(c.mood for c in checkins)}",
        "symptoms": symptoms,
        "medication_adherence_rate": round(rate, 2),
        "total_checkins": len(checkins),
    }
