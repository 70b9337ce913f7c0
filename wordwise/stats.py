"""Accuracy bookkeeping shared by the session engine and the selector."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from wordwise.models import AggregateStats, Item, ItemStat, LevelStat

if TYPE_CHECKING:
    from wordwise.db import Database


def accuracy(correct: int, total: int) -> float:
    """Percentage of correct answers; 0 when nothing has been answered."""
    if total <= 0:
        return 0.0
    return correct / total * 100


def normalize(answer: str) -> str:
    """The form answers are compared in: trimmed and lower-cased."""
    return answer.strip().lower()


def judge(user_answer: str, correct_answer: str) -> bool:
    """Case-insensitive comparison after trimming surrounding whitespace."""
    return normalize(user_answer) == normalize(correct_answer)


def record_attempt(
    db: Database,
    item: Item,
    correct: bool,
    now: datetime | None = None,
) -> tuple[ItemStat, LevelStat]:
    """Count one answered question against the item and its level.

    Both records are created on first use and only ever grow; accuracy
    is recomputed from the counters every time so it never drifts.
    """
    now = now or datetime.now(timezone.utc)

    stat = db.get_item_stat(item.kind, item.key) or ItemStat(kind=item.kind, item_key=item.key)
    stat.total_attempts += 1
    if correct:
        stat.correct_attempts += 1
    else:
        stat.wrong_attempts += 1
    stat.accuracy = accuracy(stat.correct_attempts, stat.total_attempts)
    stat.last_attempted = now

    level = db.get_level_stat(item.kind, item.level) or LevelStat(kind=item.kind, level=item.level)
    level.total_questions += 1
    if correct:
        level.correct_answers += 1
    level.accuracy = accuracy(level.correct_answers, level.total_questions)
    level.last_updated = now

    db.put_attempt_stats(stat, level)
    return stat, level


def record_session(
    db: Database,
    kind: str,
    total_questions: int,
    correct_answers: int,
    wrong_items: list[Item],
) -> AggregateStats:
    """Fold a finished session into the lifetime totals and the weak-item list."""
    db.add_weak_items(wrong_items)
    agg = db.get_aggregate_stats(kind)
    agg.total_sessions += 1
    agg.total_questions += total_questions
    agg.correct_answers += correct_answers
    agg.average_accuracy = accuracy(agg.correct_answers, agg.total_questions)
    db.put_aggregate_stats(agg)
    return agg
