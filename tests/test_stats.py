"""Tests for accuracy bookkeeping."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from wordwise.stats import accuracy, judge, normalize, record_attempt, record_session


class TestAccuracy:
    def test_zero_total(self):
        assert accuracy(0, 0) == 0.0

    @pytest.mark.parametrize("correct,total,expected", [
        (1, 1, 100.0),
        (0, 3, 0.0),
        (1, 4, 25.0),
        (2, 3, 2 / 3 * 100),
    ])
    def test_ratio(self, correct, total, expected):
        assert accuracy(correct, total) == expected


class TestJudge:
    def test_case_and_whitespace_insensitive(self):
        assert judge("  Apple ", "apple")
        assert judge("苹果", " 苹果")

    def test_wrong(self):
        assert not judge("apples", "apple")
        assert not judge("", "apple")

    def test_normalize(self):
        assert normalize("  Take Into Account\n") == "take into account"


class TestRecordAttempt:
    def test_creates_and_updates(self, tmp_db, sample_items):
        apple = sample_items[0]
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        stat, level = record_attempt(tmp_db, apple, True, now)
        assert (stat.total_attempts, stat.correct_attempts, stat.wrong_attempts) == (1, 1, 0)
        assert stat.last_attempted == now
        assert level.level == "A1"
        assert level.accuracy == 100.0

    def test_accuracy_exact_after_every_update(self, tmp_db, sample_items):
        apple, book = sample_items[0], sample_items[1]
        outcomes = [(apple, True), (apple, False), (book, False), (apple, True), (book, True)]
        for item, correct in outcomes:
            stat, level = record_attempt(tmp_db, item, correct)
            assert stat.accuracy == stat.correct_attempts / stat.total_attempts * 100
            assert stat.correct_attempts + stat.wrong_attempts == stat.total_attempts
            assert level.accuracy == level.correct_answers / level.total_questions * 100

        stored = tmp_db.get_item_stat("vocabulary", "apple")
        assert (stored.total_attempts, stored.correct_attempts) == (3, 2)
        level = tmp_db.get_level_stat("vocabulary", "A1")
        assert (level.total_questions, level.correct_answers) == (5, 3)
        assert level.accuracy == 60.0

    def test_phrase_stats_separate(self, tmp_db, sample_phrases):
        record_attempt(tmp_db, sample_phrases[0], False)
        assert tmp_db.get_level_stat("vocabulary", "C1") is None
        assert tmp_db.get_level_stat("phrase", "C1").total_questions == 1


class TestRecordSession:
    def test_accumulates(self, tmp_db, sample_items):
        record_session(tmp_db, "vocabulary", 10, 7, [sample_items[0]])
        agg = record_session(tmp_db, "vocabulary", 10, 9, [sample_items[0], sample_items[1]])
        assert agg.total_sessions == 2
        assert agg.total_questions == 20
        assert agg.correct_answers == 16
        assert agg.average_accuracy == 80.0
        assert len(tmp_db.get_weak_items("vocabulary")) == 2
