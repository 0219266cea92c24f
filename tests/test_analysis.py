"""
Tests for the rule-based check-in analysis in `careconnect/analysis.py`.
"""
from types import SimpleNamespace

import pytest

from careconnect.analysis import (
    HEALTH_KEYWORDS,
    analyze_mood,
    detect_health_keywords,
    dominant_mood,
    generate_daily_summary,
)


def _checkin(mood: str, keywords: list[str] | None = None):
    return SimpleNamespace(mood=mood, detected_keywords=keywords or [], transcript="")


def _log(status: str):
    return SimpleNamespace(status=status)


class TestDetectHealthKeywords:
    @pytest.mark.parametrize("keyword", HEALTH_KEYWORDS)
    def test_each_term_found_once_in_any_case(self, keyword):
        transcript = f"Today {keyword.upper()} and again {keyword}"
        assert detect_health_keywords(transcript).count(keyword) == 1

    def test_no_terms(self):
        assert detect_health_keywords("I went for a walk in the park") == []

    def test_empty_transcript(self):
        assert detect_health_keywords("") == []

    def test_substring_match_without_word_boundary(self):
        assert "cold" in detect_health_keywords("The coldness in my hands")

    def test_output_follows_vocabulary_order(self):
        found = detect_health_keywords("I feel lonely, I have a fever and some pain")
        assert found == ["pain", "fever", "lonely"]

    def test_overlapping_terms(self):
        # "headache" also contains "ache"
        assert detect_health_keywords("bad headache") == ["headache", "ache"]


class TestAnalyzeMood:
    def test_good(self):
        assert analyze_mood("I feel great and happy") == "good"

    def test_bad(self):
        assert analyze_mood("I feel terrible and sick") == "bad"

    def test_empty_is_neutral(self):
        assert analyze_mood("") == "neutral"

    def test_tie_is_neutral(self):
        assert analyze_mood("Great morning but an awful evening") == "neutral"

    def test_repeated_term_counts_once(self):
        # one positive term repeated vs two distinct negative terms
        assert analyze_mood("happy happy happy, but poor sleep and awful food") == "bad"

    def test_case_insensitive(self):
        assert analyze_mood("EXCELLENT") == "good"


class TestDominantMood:
    def test_highest_count_wins(self):
        assert dominant_mood(["bad", "good", "bad"]) == "bad"

    def test_tie_goes_to_earlier_label(self):
        assert dominant_mood(["bad", "good"]) == "good"
        assert dominant_mood(["neutral", "bad"]) == "bad"

    def test_no_checkins_is_neutral(self):
        assert dominant_mood([]) == "neutral"


class TestGenerateDailySummary:
    def test_zero_logs_is_full_adherence(self):
        summary = generate_daily_summary([_checkin("good")], [])
        assert summary["medication_adherence_rate"] == 100

    def test_two_of_three_taken(self):
        logs = [_log("taken"), _log("taken"), _log("skipped")]
        summary = generate_daily_summary([], logs)
        assert summary["medication_adherence_rate"] == 66.67

    def test_symptoms_are_deduplicated_union(self):
        checkins = [
            _checkin("bad", ["pain", "tired"]),
            _checkin("bad", ["tired", "fever"]),
            _checkin("neutral", []),
        ]
        summary = generate_daily_summary(checkins, [])
        assert sorted(summary["symptoms"]) == ["fever", "pain", "tired"]
        assert summary["total_checkins"] == 3
        assert summary["mood_summary"] == "Overall mood: bad"

    def test_empty_day(self):
        summary = generate_daily_summary([], [])
        assert summary == {
            "mood_summary": "Overall mood: neutral",
            "symptoms": [],
            "medication_adherence_rate": 100,
            "total_checkins": 0,
        }
