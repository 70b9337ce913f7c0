"""Tests for the database layer."""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

import pytest

from wordwise.errors import StatisticsWriteError
from wordwise.models import AggregateStats, Item, ItemStat, LevelStat


def _block(kind: str, keys: list[str], wrong_items=()) -> dict:
    return {
        "item_stats": [ItemStat(kind, key, 1, 1, 0, 100.0) for key in keys],
        "level_stats": [],
        "aggregate": AggregateStats(kind),
        "wrong_items": list(wrong_items),
        "weak_items": [],
    }


class TestImport:
    def test_import_items(self, tmp_db, sample_items):
        assert tmp_db.import_items(sample_items) == 10
        assert tmp_db.get_item_count("vocabulary") == 10

    def test_import_idempotent(self, tmp_db, sample_items):
        tmp_db.import_items(sample_items)
        assert tmp_db.import_items(sample_items) == 0
        assert tmp_db.get_item_count() == 10

    def test_same_english_in_both_kinds(self, tmp_db):
        tmp_db.import_items([
            Item("break", "打破", "A2", 2),
            Item("break", "休息", "C1", 20, kind="phrase"),
        ])
        assert tmp_db.get_item_count() == 2

    def test_delete_by_source(self, populated_db):
        assert populated_db.delete_items_by_source("phrases.json") == 3
        assert populated_db.get_item_count("phrase") == 0
        assert populated_db.get_item_count("vocabulary") == 10

    def test_file_mtime(self, tmp_db):
        assert tmp_db.get_file_mtime("/x.json") is None
        tmp_db.set_file_mtime("/x.json", 123)
        assert tmp_db.get_file_mtime("/x.json") == 123


class TestCorpusQueries:
    def test_by_level(self, populated_db):
        items = populated_db.get_items_by_level("B2")
        assert {it.source for it in items} == {"ambiguous", "negotiate"}

    def test_by_difficulty_range_inclusive(self, populated_db):
        items = populated_db.get_items_by_difficulty_range(4, 6)
        assert {it.source for it in items} == {"achieve", "efficient", "ambiguous", "negotiate"}

    def test_kinds_are_separate(self, populated_db):
        assert len(populated_db.get_all_items("phrase")) == 3
        assert all(it.kind == "phrase" for it in populated_db.get_all_items("phrase"))

    def test_get_item(self, populated_db):
        it = populated_db.get_item("apple")
        assert it.target == "苹果"
        assert populated_db.get_item("apple", "phrase") is None

    def test_search_both_sides(self, populated_db):
        assert [it.source for it in populated_db.search_items("APP")] == ["apple"]
        assert [it.source for it in populated_db.search_items("谈")] == ["negotiate"]

    def test_level_counts(self, populated_db):
        counts = populated_db.get_level_counts()
        assert counts == {"A1": 2, "A2": 2, "B1": 2, "B2": 2, "C1": 2}
        assert populated_db.get_level_counts("phrase")["A1"] == 0


class TestStatistics:
    def test_item_stat_roundtrip(self, tmp_db):
        ts = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        tmp_db.put_item_stat(ItemStat("vocabulary", "apple", 3, 2, 1, 66.6, ts))
        s = tmp_db.get_item_stat("vocabulary", "apple")
        assert s.correct_attempts == 2
        assert s.last_attempted == ts
        assert tmp_db.get_item_stat("phrase", "apple") is None

    def test_get_item_stats_keyed(self, tmp_db):
        tmp_db.put_item_stat(ItemStat("vocabulary", "apple", 1, 1, 0, 100.0))
        tmp_db.put_item_stat(ItemStat("vocabulary", "book", 1, 0, 1, 0.0))
        assert set(tmp_db.get_item_stats("vocabulary")) == {"apple", "book"}

    def test_items_needing_review(self, tmp_db):
        tmp_db.put_item_stat(ItemStat("vocabulary", "apple", 4, 1, 3, 25.0))
        tmp_db.put_item_stat(ItemStat("vocabulary", "book", 2, 2, 0, 100.0))
        tmp_db.put_item_stat(ItemStat("vocabulary", "water", 1, 0, 1, 0.0))  # too few attempts
        keys = [s.item_key for s in tmp_db.get_items_needing_review("vocabulary")]
        assert keys == ["apple", "book"]

    def test_level_stats_ordered(self, tmp_db):
        for level in ("C1", "A1", "B2"):
            tmp_db.put_level_stat(LevelStat("vocabulary", level, 1, 1, 100.0))
        assert [s.level for s in tmp_db.get_level_stats("vocabulary")] == ["A1", "B2", "C1"]

    def test_aggregate_default_zero(self, tmp_db):
        agg = tmp_db.get_aggregate_stats("phrase")
        assert agg == AggregateStats(kind="phrase")

    def test_aggregate_roundtrip(self, tmp_db):
        tmp_db.put_aggregate_stats(AggregateStats("vocabulary", 2, 40, 30, 75.0))
        assert tmp_db.get_aggregate_stats("vocabulary").correct_answers == 30

    def test_write_failure_raises(self, tmp_db):
        tmp_db.conn.execute("DROP TABLE item_stats")
        with pytest.raises(StatisticsWriteError):
            tmp_db.put_item_stat(ItemStat("vocabulary", "apple", 1, 1, 0, 100.0))


class TestWrongSet:
    def test_add_is_idempotent(self, tmp_db, sample_items):
        tmp_db.add_wrong_item(sample_items[0])
        tmp_db.add_wrong_item(sample_items[0])
        assert len(tmp_db.get_wrong_items("vocabulary")) == 1

    def test_add_many_counts_new(self, tmp_db, sample_items):
        tmp_db.add_wrong_item(sample_items[0])
        assert tmp_db.add_wrong_items(sample_items[:3]) == 2

    def test_remove(self, tmp_db, sample_items):
        tmp_db.add_wrong_item(sample_items[0])
        assert tmp_db.is_wrong_item(sample_items[0])
        tmp_db.remove_wrong_item(sample_items[0])
        assert not tmp_db.is_wrong_item(sample_items[0])

    def test_insertion_order(self, tmp_db, sample_items):
        tmp_db.add_wrong_items([sample_items[3], sample_items[1]])
        assert [it.source for it in tmp_db.get_wrong_items("vocabulary")] == ["borrow", "book"]

    def test_clear_per_kind(self, tmp_db, sample_items, sample_phrases):
        tmp_db.add_wrong_items(sample_items[:2] + sample_phrases[:1])
        tmp_db.clear_wrong_items("vocabulary")
        assert tmp_db.get_wrong_items("vocabulary") == []
        assert len(tmp_db.get_wrong_items("phrase")) == 1

    def test_weak_items(self, tmp_db, sample_items):
        assert tmp_db.add_weak_items(sample_items[:2]) == 2
        assert tmp_db.add_weak_items(sample_items[:3]) == 1
        assert len(tmp_db.get_weak_items("vocabulary")) == 3


class TestSessions:
    def test_checkpoint(self, tmp_db):
        assert tmp_db.get_current_session("vocabulary") is None
        tmp_db.save_current_session("vocabulary", {"current_index": 3})
        assert tmp_db.get_current_session("vocabulary") == {"current_index": 3}
        tmp_db.clear_current_session("vocabulary")
        assert tmp_db.get_current_session("vocabulary") is None

    def test_session_history(self, tmp_db):
        sid = tmp_db.start_session("vocabulary", "mixed", "auto")
        tmp_db.end_session(sid, 10, 7)
        tmp_db.start_session("phrase", "source_to_target", "hell", review=True)
        history = tmp_db.get_session_history()
        assert len(history) == 2
        assert history[0]["kind"] == "phrase"
        assert history[0]["review"] == 1
        assert history[1]["questions_correct"] == 7
        assert len(tmp_db.get_session_history(kind="vocabulary")) == 1


class TestBulk:
    def test_replace_statistics(self, tmp_db, sample_items):
        tmp_db.put_item_stat(ItemStat("vocabulary", "old", 1, 0, 1, 0.0))
        tmp_db.add_wrong_item(sample_items[5])
        tmp_db.replace_statistics(
            "vocabulary",
            item_stats=[ItemStat("vocabulary", "apple", 2, 2, 0, 100.0)],
            level_stats=[LevelStat("vocabulary", "A1", 2, 2, 100.0)],
            aggregate=AggregateStats("vocabulary", 1, 2, 2, 100.0),
            wrong_items=[sample_items[0]],
            weak_items=[],
        )
        assert set(tmp_db.get_item_stats("vocabulary")) == {"apple"}
        assert [it.source for it in tmp_db.get_wrong_items("vocabulary")] == ["apple"]
        assert tmp_db.get_aggregate_stats("vocabulary").total_sessions == 1

    def test_replace_rolls_back_on_failure(self, tmp_db, sample_items):
        tmp_db.add_wrong_item(sample_items[0])
        tmp_db.conn.execute("DROP TABLE weak_items")
        tmp_db.conn.execute(
            "CREATE TABLE weak_items (kind TEXT, item_key TEXT, item_json TEXT NOT NULL, "
            "added_at TEXT, CHECK (kind = 'never'))"
        )
        with pytest.raises(StatisticsWriteError):
            tmp_db.replace_statistics(
                "vocabulary", [], [], AggregateStats("vocabulary"),
                wrong_items=[], weak_items=[sample_items[1]],
            )
        assert [it.source for it in tmp_db.get_wrong_items("vocabulary")] == ["apple"]

    def test_restore_statistics_all_kinds(self, tmp_db, sample_items, sample_phrases):
        tmp_db.restore_statistics({
            "vocabulary": _block("vocabulary", ["apple"], wrong_items=[sample_items[0]]),
            "phrase": _block("phrase", ["get rid of"], wrong_items=[sample_phrases[2]]),
        })
        assert set(tmp_db.get_item_stats("vocabulary")) == {"apple"}
        assert set(tmp_db.get_item_stats("phrase")) == {"get rid of"}
        assert [it.source for it in tmp_db.get_wrong_items("phrase")] == ["get rid of"]

    def test_restore_statistics_is_one_transaction(self, tmp_db):
        tmp_db.put_item_stat(ItemStat("vocabulary", "old", 1, 0, 1, 0.0))
        tmp_db.put_item_stat(ItemStat("phrase", "get up", 1, 1, 0, 100.0))

        # The phrase block fails on its repeated key after vocabulary was replaced
        with pytest.raises(StatisticsWriteError):
            tmp_db.restore_statistics({
                "vocabulary": _block("vocabulary", ["new"]),
                "phrase": _block("phrase", ["get up", "get up"]),
            })
        assert set(tmp_db.get_item_stats("vocabulary")) == {"old"}
        assert set(tmp_db.get_item_stats("phrase")) == {"get up"}

    def test_reset_statistics(self, populated_db, sample_items):
        populated_db.put_item_stat(ItemStat("vocabulary", "apple", 1, 1, 0, 100.0))
        populated_db.add_wrong_item(sample_items[0])
        populated_db.reset_statistics("vocabulary")
        assert populated_db.get_item_stats("vocabulary") == {}
        assert populated_db.get_wrong_items("vocabulary") == []
        assert populated_db.get_item_count() == 13  # corpus untouched


class TestDashboard:
    def test_empty_stats(self, tmp_db):
        stats = tmp_db.get_stats("vocabulary")
        assert stats["total_items"] == 0
        assert stats["accuracy"] == 0
        assert stats["level_stats"] == []

    def test_stats_with_data(self, populated_db):
        populated_db.put_item_stat(ItemStat("vocabulary", "apple", 1, 1, 0, 100.0))
        populated_db.put_aggregate_stats(AggregateStats("vocabulary", 1, 3, 2, 200 / 3))
        stats = populated_db.get_stats("vocabulary")
        assert stats["total_items"] == 10
        assert stats["items_studied"] == 1
        assert stats["items_new"] == 9
        assert stats["accuracy"] == 66.7
