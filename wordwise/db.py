from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from wordwise.errors import StatisticsWriteError
from wordwise.models import (
    LEVELS,
    AggregateStats,
    Item,
    ItemStat,
    LevelStat,
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS items (
    kind TEXT NOT NULL,
    english TEXT NOT NULL,
    chinese TEXT NOT NULL,
    pos TEXT,
    level TEXT NOT NULL,
    difficulty_score REAL NOT NULL,
    category TEXT,
    source_file TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (kind, english)
);

CREATE TABLE IF NOT EXISTS item_stats (
    kind TEXT NOT NULL,
    item_key TEXT NOT NULL,
    total_attempts INTEGER DEFAULT 0,
    correct_attempts INTEGER DEFAULT 0,
    wrong_attempts INTEGER DEFAULT 0,
    accuracy REAL DEFAULT 0,
    last_attempted TEXT,
    PRIMARY KEY (kind, item_key)
);

CREATE TABLE IF NOT EXISTS level_stats (
    kind TEXT NOT NULL,
    level TEXT NOT NULL,
    total_questions INTEGER DEFAULT 0,
    correct_answers INTEGER DEFAULT 0,
    accuracy REAL DEFAULT 0,
    last_updated TEXT,
    PRIMARY KEY (kind, level)
);

CREATE TABLE IF NOT EXISTS aggregate_stats (
    kind TEXT PRIMARY KEY,
    total_sessions INTEGER DEFAULT 0,
    total_questions INTEGER DEFAULT 0,
    correct_answers INTEGER DEFAULT 0,
    average_accuracy REAL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS wrong_items (
    kind TEXT NOT NULL,
    item_key TEXT NOT NULL,
    item_json TEXT NOT NULL,
    added_at TEXT NOT NULL,
    PRIMARY KEY (kind, item_key)
);

CREATE TABLE IF NOT EXISTS weak_items (
    kind TEXT NOT NULL,
    item_key TEXT NOT NULL,
    item_json TEXT NOT NULL,
    added_at TEXT NOT NULL,
    PRIMARY KEY (kind, item_key)
);

CREATE TABLE IF NOT EXISTS current_session (
    kind TEXT PRIMARY KEY,
    payload_json TEXT NOT NULL,
    saved_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    study_mode TEXT,
    difficulty_mode TEXT,
    review INTEGER DEFAULT 0,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    questions_total INTEGER DEFAULT 0,
    questions_correct INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS file_mtimes (
    file_path TEXT PRIMARY KEY,
    mtime_ns INTEGER NOT NULL
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _item_from_row(row: sqlite3.Row) -> Item:
    return Item(
        source=row["english"],
        target=row["chinese"],
        level=row["level"],
        difficulty_score=row["difficulty_score"],
        kind=row["kind"],
        pos=row["pos"],
        category=row["category"],
        source_file=row["source_file"],
    )


def _item_stat_from_row(row: sqlite3.Row) -> ItemStat:
    return ItemStat(
        kind=row["kind"],
        item_key=row["item_key"],
        total_attempts=row["total_attempts"],
        correct_attempts=row["correct_attempts"],
        wrong_attempts=row["wrong_attempts"],
        accuracy=row["accuracy"],
        last_attempted=_parse_ts(row["last_attempted"]),
    )


def _level_stat_from_row(row: sqlite3.Row) -> LevelStat:
    return LevelStat(
        kind=row["kind"],
        level=row["level"],
        total_questions=row["total_questions"],
        correct_answers=row["correct_answers"],
        accuracy=row["accuracy"],
        last_updated=_parse_ts(row["last_updated"]),
    )


class Database:
    """SQLite-backed corpus repository and statistics store for one learner."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def _write(self, what: str):
        """Run statistics writes as one transaction; failures surface as StatisticsWriteError."""
        try:
            yield
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StatisticsWriteError(f"Could not save {what}: {e}") from e

    # ── Corpus import ─────────────────────────────────────────────────────

    def delete_items_by_source(self, source_file: str) -> int:
        """Remove all items originally imported from *source_file*."""
        cur = self.conn.execute(
            "DELETE FROM items WHERE source_file = ?", (source_file,)
        )
        self.conn.commit()
        return cur.rowcount

    def import_items(self, items: list[Item]) -> int:
        count = 0
        for it in items:
            cur = self.conn.execute(
                "INSERT OR IGNORE INTO items "
                "(kind, english, chinese, pos, level, difficulty_score, category, source_file) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (it.kind, it.source, it.target, it.pos, it.level,
                 it.difficulty_score, it.category, it.source_file),
            )
            count += cur.rowcount
        self.conn.commit()
        return count

    # ── File mtimes ─────────────────────────────────────────────────────

    def get_file_mtime(self, file_path: str) -> int | None:
        row = self.conn.execute(
            "SELECT mtime_ns FROM file_mtimes WHERE file_path = ?", (file_path,)
        ).fetchone()
        return row[0] if row else None

    def set_file_mtime(self, file_path: str, mtime_ns: int) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO file_mtimes (file_path, mtime_ns) VALUES (?, ?)",
            (file_path, mtime_ns),
        )
        self.conn.commit()

    # ── Corpus queries ────────────────────────────────────────────────────

    def get_item_count(self, kind: str | None = None) -> int:
        if kind is None:
            row = self.conn.execute("SELECT COUNT(*) FROM items").fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM items WHERE kind = ?", (kind,)
            ).fetchone()
        return row[0]

    def get_all_items(self, kind: str = "vocabulary") -> list[Item]:
        rows = self.conn.execute(
            "SELECT * FROM items WHERE kind = ? ORDER BY rowid", (kind,)
        ).fetchall()
        return [_item_from_row(r) for r in rows]

    def get_items_by_level(self, level: str, kind: str = "vocabulary") -> list[Item]:
        rows = self.conn.execute(
            "SELECT * FROM items WHERE kind = ? AND level = ? ORDER BY rowid",
            (kind, level),
        ).fetchall()
        return [_item_from_row(r) for r in rows]

    def get_items_by_difficulty_range(
        self, min_score: float, max_score: float, kind: str = "vocabulary"
    ) -> list[Item]:
        rows = self.conn.execute(
            "SELECT * FROM items WHERE kind = ? "
            "AND difficulty_score >= ? AND difficulty_score <= ? ORDER BY rowid",
            (kind, min_score, max_score),
        ).fetchall()
        return [_item_from_row(r) for r in rows]

    def get_item(self, key: str, kind: str = "vocabulary") -> Item | None:
        row = self.conn.execute(
            "SELECT * FROM items WHERE kind = ? AND english = ?", (kind, key)
        ).fetchone()
        return _item_from_row(row) if row else None

    def search_items(self, query: str, kind: str = "vocabulary") -> list[Item]:
        """Substring match on either side; LIKE is case-insensitive for ASCII."""
        pattern = f"%{query}%"
        rows = self.conn.execute(
            "SELECT * FROM items WHERE kind = ? AND (english LIKE ? OR chinese LIKE ?) "
            "ORDER BY rowid",
            (kind, pattern, pattern),
        ).fetchall()
        return [_item_from_row(r) for r in rows]

    def get_level_counts(self, kind: str = "vocabulary") -> dict[str, int]:
        rows = self.conn.execute(
            "SELECT level, COUNT(*) AS n FROM items WHERE kind = ? GROUP BY level",
            (kind,),
        ).fetchall()
        counts = {level: 0 for level in LEVELS}
        counts.update({r["level"]: r["n"] for r in rows})
        return counts

    # ── Item stats ────────────────────────────────────────────────────────

    def get_item_stat(self, kind: str, key: str) -> ItemStat | None:
        row = self.conn.execute(
            "SELECT * FROM item_stats WHERE kind = ? AND item_key = ?", (kind, key)
        ).fetchone()
        return _item_stat_from_row(row) if row else None

    def get_item_stats(self, kind: str) -> dict[str, ItemStat]:
        rows = self.conn.execute(
            "SELECT * FROM item_stats WHERE kind = ?", (kind,)
        ).fetchall()
        return {r["item_key"]: _item_stat_from_row(r) for r in rows}

    def put_item_stat(self, stat: ItemStat) -> None:
        with self._write("item statistics"):
            self._upsert_item_stat(stat)

    def put_attempt_stats(self, stat: ItemStat, level: LevelStat) -> None:
        """Store an item's and its level's counters together."""
        with self._write("answer statistics"):
            self._upsert_item_stat(stat)
            self._upsert_level_stat(level)

    def _upsert_item_stat(self, stat: ItemStat) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO item_stats (kind, item_key, total_attempts, "
            "correct_attempts, wrong_attempts, accuracy, last_attempted) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (stat.kind, stat.item_key, stat.total_attempts, stat.correct_attempts,
             stat.wrong_attempts, stat.accuracy, _ts(stat.last_attempted)),
        )

    def get_items_needing_review(self, kind: str, limit: int = 10) -> list[ItemStat]:
        """Lowest-accuracy items among those attempted at least twice."""
        rows = self.conn.execute(
            "SELECT * FROM item_stats WHERE kind = ? AND total_attempts >= 2 "
            "ORDER BY accuracy ASC, last_attempted DESC LIMIT ?",
            (kind, limit),
        ).fetchall()
        return [_item_stat_from_row(r) for r in rows]

    # ── Level stats ───────────────────────────────────────────────────────

    def get_level_stat(self, kind: str, level: str) -> LevelStat | None:
        row = self.conn.execute(
            "SELECT * FROM level_stats WHERE kind = ? AND level = ?", (kind, level)
        ).fetchone()
        return _level_stat_from_row(row) if row else None

    def get_level_stats(self, kind: str) -> list[LevelStat]:
        """Level stats in A1 < A2 < B1 < B2 < C1 order."""
        rows = self.conn.execute(
            "SELECT * FROM level_stats WHERE kind = ?", (kind,)
        ).fetchall()
        stats = [_level_stat_from_row(r) for r in rows]
        order = {level: i for i, level in enumerate(LEVELS)}
        return sorted(stats, key=lambda s: order.get(s.level, len(LEVELS)))

    def put_level_stat(self, stat: LevelStat) -> None:
        with self._write("level statistics"):
            self._upsert_level_stat(stat)

    def _upsert_level_stat(self, stat: LevelStat) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO level_stats (kind, level, total_questions, "
            "correct_answers, accuracy, last_updated) VALUES (?, ?, ?, ?, ?, ?)",
            (stat.kind, stat.level, stat.total_questions, stat.correct_answers,
             stat.accuracy, _ts(stat.last_updated)),
        )

    # ── Aggregate stats ───────────────────────────────────────────────────

    def get_aggregate_stats(self, kind: str) -> AggregateStats:
        row = self.conn.execute(
            "SELECT * FROM aggregate_stats WHERE kind = ?", (kind,)
        ).fetchone()
        if row is None:
            return AggregateStats(kind=kind)
        return AggregateStats(
            kind=kind,
            total_sessions=row["total_sessions"],
            total_questions=row["total_questions"],
            correct_answers=row["correct_answers"],
            average_accuracy=row["average_accuracy"],
        )

    def put_aggregate_stats(self, stats: AggregateStats) -> None:
        with self._write("aggregate statistics"):
            self.conn.execute(
                "INSERT OR REPLACE INTO aggregate_stats (kind, total_sessions, "
                "total_questions, correct_answers, average_accuracy) VALUES (?, ?, ?, ?, ?)",
                (stats.kind, stats.total_sessions, stats.total_questions,
                 stats.correct_answers, stats.average_accuracy),
            )

    # ── Wrong set ─────────────────────────────────────────────────────────

    def get_wrong_items(self, kind: str) -> list[Item]:
        rows = self.conn.execute(
            "SELECT item_json FROM wrong_items WHERE kind = ? ORDER BY rowid", (kind,)
        ).fetchall()
        return [Item.from_dict(json.loads(r[0]), kind) for r in rows]

    def is_wrong_item(self, item: Item) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM wrong_items WHERE kind = ? AND item_key = ?",
            (item.kind, item.key),
        ).fetchone()
        return row is not None

    def add_wrong_item(self, item: Item) -> None:
        self.add_wrong_items([item])

    def add_wrong_items(self, items: list[Item]) -> int:
        """Insert items not already in the wrong set. Returns how many were new."""
        added = 0
        with self._write("wrong items"):
            for it in items:
                cur = self.conn.execute(
                    "INSERT OR IGNORE INTO wrong_items (kind, item_key, item_json, added_at) "
                    "VALUES (?, ?, ?, ?)",
                    (it.kind, it.key, json.dumps(it.to_dict(), ensure_ascii=False), _now()),
                )
                added += cur.rowcount
        return added

    def remove_wrong_item(self, item: Item) -> None:
        with self._write("wrong items"):
            self.conn.execute(
                "DELETE FROM wrong_items WHERE kind = ? AND item_key = ?",
                (item.kind, item.key),
            )

    def clear_wrong_items(self, kind: str) -> None:
        with self._write("wrong items"):
            self.conn.execute("DELETE FROM wrong_items WHERE kind = ?", (kind,))

    # ── Weak items ────────────────────────────────────────────────────────

    def get_weak_items(self, kind: str) -> list[Item]:
        rows = self.conn.execute(
            "SELECT item_json FROM weak_items WHERE kind = ? ORDER BY rowid", (kind,)
        ).fetchall()
        return [Item.from_dict(json.loads(r[0]), kind) for r in rows]

    def add_weak_items(self, items: list[Item]) -> int:
        added = 0
        with self._write("weak items"):
            for it in items:
                cur = self.conn.execute(
                    "INSERT OR IGNORE INTO weak_items (kind, item_key, item_json, added_at) "
                    "VALUES (?, ?, ?, ?)",
                    (it.kind, it.key, json.dumps(it.to_dict(), ensure_ascii=False), _now()),
                )
                added += cur.rowcount
        return added

    # ── Current session checkpoint ─────────────────────────────────────────

    def save_current_session(self, kind: str, payload: dict) -> None:
        with self._write("current session"):
            self.conn.execute(
                "INSERT OR REPLACE INTO current_session (kind, payload_json, saved_at) "
                "VALUES (?, ?, ?)",
                (kind, json.dumps(payload, ensure_ascii=False), _now()),
            )

    def get_current_session(self, kind: str) -> dict | None:
        row = self.conn.execute(
            "SELECT payload_json FROM current_session WHERE kind = ?", (kind,)
        ).fetchone()
        return json.loads(row[0]) if row else None

    def clear_current_session(self, kind: str) -> None:
        with self._write("current session"):
            self.conn.execute("DELETE FROM current_session WHERE kind = ?", (kind,))

    # ── Session history ───────────────────────────────────────────────────

    def start_session(
        self,
        kind: str,
        study_mode: str | None = None,
        difficulty_mode: str | None = None,
        review: bool = False,
    ) -> int:
        with self._write("session"):
            cur = self.conn.execute(
                "INSERT INTO sessions (kind, study_mode, difficulty_mode, review, started_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (kind, study_mode, difficulty_mode, 1 if review else 0, _now()),
            )
        return cur.lastrowid

    def end_session(self, session_id: int, total: int, correct: int) -> None:
        with self._write("session"):
            self.conn.execute(
                "UPDATE sessions SET ended_at=?, questions_total=?, questions_correct=? "
                "WHERE id=?",
                (_now(), total, correct, session_id),
            )

    def get_session_history(self, limit: int = 20, kind: str | None = None) -> list[dict]:
        if kind is None:
            rows = self.conn.execute(
                "SELECT * FROM sessions ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM sessions WHERE kind = ? ORDER BY id DESC LIMIT ?",
                (kind, limit),
            ).fetchall()
        return [dict(r) for r in rows]

    # ── Bulk replace / reset ──────────────────────────────────────────────

    def replace_statistics(
        self,
        kind: str,
        item_stats: list[ItemStat],
        level_stats: list[LevelStat],
        aggregate: AggregateStats,
        wrong_items: list[Item],
        weak_items: list[Item],
    ) -> None:
        """Swap every statistic of *kind* in one transaction."""
        with self._write("restored statistics"):
            self._replace_kind(kind, item_stats, level_stats, aggregate,
                               wrong_items, weak_items)

    def restore_statistics(self, blocks: dict[str, dict]) -> None:
        """Replace the statistics of several kinds at once (backup restore).

        *blocks* maps kind to the keyword arguments of replace_statistics.
        Either every kind is replaced or none is.
        """
        with self._write("restored statistics"):
            for kind, block in blocks.items():
                self._replace_kind(kind, **block)

    def _replace_kind(self, kind, item_stats, level_stats, aggregate,
                      wrong_items, weak_items) -> None:
        self._delete_statistics(kind)
        self.conn.executemany(
            "INSERT INTO item_stats (kind, item_key, total_attempts, correct_attempts, "
            "wrong_attempts, accuracy, last_attempted) VALUES (?, ?, ?, ?, ?, ?, ?)",
            [(kind, s.item_key, s.total_attempts, s.correct_attempts,
              s.wrong_attempts, s.accuracy, _ts(s.last_attempted)) for s in item_stats],
        )
        self.conn.executemany(
            "INSERT INTO level_stats (kind, level, total_questions, correct_answers, "
            "accuracy, last_updated) VALUES (?, ?, ?, ?, ?, ?)",
            [(kind, s.level, s.total_questions, s.correct_answers,
              s.accuracy, _ts(s.last_updated)) for s in level_stats],
        )
        self.conn.execute(
            "INSERT INTO aggregate_stats (kind, total_sessions, total_questions, "
            "correct_answers, average_accuracy) VALUES (?, ?, ?, ?, ?)",
            (kind, aggregate.total_sessions, aggregate.total_questions,
             aggregate.correct_answers, aggregate.average_accuracy),
        )
        now = _now()
        for table, items in (("wrong_items", wrong_items), ("weak_items", weak_items)):
            self.conn.executemany(
                f"INSERT OR IGNORE INTO {table} (kind, item_key, item_json, added_at) "
                "VALUES (?, ?, ?, ?)",
                [(kind, it.key, json.dumps(it.to_dict(), ensure_ascii=False), now)
                 for it in items],
            )

    def reset_statistics(self, kind: str) -> None:
        with self._write("statistics reset"):
            self._delete_statistics(kind)

    def _delete_statistics(self, kind: str) -> None:
        for table in ("item_stats", "level_stats", "aggregate_stats",
                      "wrong_items", "weak_items", "current_session"):
            self.conn.execute(f"DELETE FROM {table} WHERE kind = ?", (kind,))

    # ── Dashboard ─────────────────────────────────────────────────────────

    def get_stats(self, kind: str = "vocabulary") -> dict:
        total_items = self.get_item_count(kind)
        studied = self.conn.execute(
            "SELECT COUNT(*) FROM item_stats WHERE kind = ?", (kind,)
        ).fetchone()[0]
        wrong = self.conn.execute(
            "SELECT COUNT(*) FROM wrong_items WHERE kind = ?", (kind,)
        ).fetchone()[0]
        weak = self.conn.execute(
            "SELECT COUNT(*) FROM weak_items WHERE kind = ?", (kind,)
        ).fetchone()[0]
        agg = self.get_aggregate_stats(kind)

        return {
            "kind": kind,
            "total_items": total_items,
            "items_studied": studied,
            "items_new": total_items - studied,
            "wrong_items": wrong,
            "weak_items": weak,
            "total_sessions": agg.total_sessions,
            "total_questions": agg.total_questions,
            "correct_answers": agg.correct_answers,
            "accuracy": round(agg.average_accuracy, 1),
            "level_counts": self.get_level_counts(kind),
            "level_stats": [
                {
                    "level": s.level,
                    "total_questions": s.total_questions,
                    "correct_answers": s.correct_answers,
                    "accuracy": round(s.accuracy, 1),
                }
                for s in self.get_level_stats(kind)
            ],
        }
