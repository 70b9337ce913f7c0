"""Quiz session state machine.

A session moves not_started -> in_progress -> completed. While in
progress it serves one question at a time, judges the answer, writes
the statistics store, and on the last answer folds its totals into the
lifetime statistics.

Store writes happen before the in-memory session changes, so a
StatisticsWriteError leaves the session exactly as it was and the same
answer can be submitted again.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from wordwise.errors import EmptyCorpusError, SessionStateError, StatisticsWriteError
from wordwise.models import (
    DIFFICULTY_MODES,
    KINDS,
    SOURCE_TO_TARGET,
    STUDY_MODES,
    TARGET_TO_SOURCE,
    Item,
    Question,
    QuestionRecord,
)
from wordwise.options import DEFAULT_OPTION_COUNT, generate_options
from wordwise.selector import ALL, pick_weighted, select_pool, stats_lookup
from wordwise.stats import accuracy, judge, record_attempt, record_session

if TYPE_CHECKING:
    from wordwise.db import Database

_log = logging.getLogger("wordwise.session")

NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"


@dataclass
class Session:
    kind: str
    mode: str  # source_to_target | target_to_source | mixed
    difficulty_mode: str
    total_questions: int = 0
    current_index: int = 0
    correct_count: int = 0
    wrong_list: list[Item] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    records: list[QuestionRecord] = field(default_factory=list)
    review: bool = False
    free_text: bool = True
    id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "mode": self.mode,
            "difficulty_mode": self.difficulty_mode,
            "review": self.review,
            "free_text": self.free_text,
            "total_questions": self.total_questions,
            "current_index": self.current_index,
            "correct_count": self.correct_count,
            "wrong_list": [it.to_dict() for it in self.wrong_list],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "records": [
                {
                    "item": r.item.to_dict(),
                    "direction": r.direction,
                    "user_answer": r.user_answer,
                    "correct_answer": r.correct_answer,
                    "is_correct": r.is_correct,
                    "answered_at": r.answered_at.isoformat(),
                }
                for r in self.records
            ],
        }


def _breakdown(records: list[QuestionRecord], key) -> dict[str, dict]:
    groups: dict[str, dict] = {}
    for r in records:
        g = groups.setdefault(key(r), {"total": 0, "correct": 0})
        g["total"] += 1
        if r.is_correct:
            g["correct"] += 1
    for g in groups.values():
        g["accuracy"] = round(accuracy(g["correct"], g["total"]), 1)
    return groups


class SessionEngine:
    def __init__(
        self,
        db: Database,
        kind: str = "vocabulary",
        mode: str = "mixed",
        difficulty_mode: str = "auto",
        question_count: int | str = 20,
        free_text: bool = True,
        review: bool = False,
        levels: list[str] | None = None,
        option_count: int = DEFAULT_OPTION_COUNT,
        rng: random.Random | None = None,
    ):
        if kind not in KINDS:
            raise ValueError(f"Unknown item kind: {kind}")
        if mode not in STUDY_MODES:
            raise ValueError(f"Unknown study mode: {mode}")
        if difficulty_mode not in DIFFICULTY_MODES:
            raise ValueError(f"Unknown difficulty mode: {difficulty_mode}")
        if question_count != ALL and (not isinstance(question_count, int) or question_count <= 0):
            raise ValueError(f"Question count must be a positive integer or {ALL!r}")

        self.db = db
        self.question_count = question_count
        self.levels = levels
        self.option_count = option_count
        self.rng = rng or random
        self.state = NOT_STARTED
        self.session = Session(
            kind=kind,
            mode=mode,
            difficulty_mode=difficulty_mode,
            review=review,
            free_text=free_text,
        )
        self.fixed_pool: list[Item] | None = None
        self.current: Question | None = None
        self._totals_recorded = False

    # ── Transitions ───────────────────────────────────────────────────────

    def start(self, pool: list[Item] | None = None) -> Session:
        """Enter in_progress. A supplied *pool* is served strictly in order."""
        if self.state != NOT_STARTED:
            raise SessionStateError(f"Cannot start a session that is {self.state}")

        s = self.session
        if pool is not None:
            candidates = list(pool)
        else:
            candidates = self._fresh_pool()
        if not candidates:
            raise EmptyCorpusError(f"No {s.kind} items available for this session")

        if self.question_count == ALL:
            total = len(candidates)
        else:
            total = min(self.question_count, len(candidates))

        s.id = self.db.start_session(s.kind, s.mode, s.difficulty_mode, s.review)
        self.fixed_pool = candidates if pool is not None else None
        s.total_questions = total
        s.started_at = datetime.now(timezone.utc)
        self.state = IN_PROGRESS
        _log.info(
            "Session %s started: %d %s questions (%s, %s%s)",
            s.id, total, s.kind, s.mode, s.difficulty_mode,
            ", review" if s.review else "",
        )
        return s

    def next_question(self) -> Question:
        """The pending question, drawing a new one if the last was answered."""
        if self.state != IN_PROGRESS:
            raise SessionStateError(f"Session is {self.state}")
        if self.current is not None:
            return self.current

        s = self.session
        if s.current_index >= s.total_questions:
            raise SessionStateError("All questions answered; finish the session")

        direction = self._direction()
        item = self._draw()
        options: list[str] = []
        if not s.free_text:
            options = generate_options(self.db, item, direction, self.option_count, self.rng)

        self.current = Question(
            index=s.current_index,
            item=item,
            direction=direction,
            prompt=item.prompt_for(direction),
            correct_answer=item.answer_for(direction),
            options=options,
        )
        return self.current

    def answer(self, user_answer: str) -> QuestionRecord:
        """Judge and record an answer to the pending question."""
        if self.state != IN_PROGRESS or self.current is None:
            raise SessionStateError("No current question")

        s = self.session
        q = self.current
        correct = judge(user_answer, q.correct_answer)
        now = datetime.now(timezone.utc)

        if correct:
            if s.review:
                self.db.remove_wrong_item(q.item)
        else:
            self.db.add_wrong_item(q.item)
        record_attempt(self.db, q.item, correct, now)

        record = QuestionRecord(
            item=q.item,
            direction=q.direction,
            user_answer=user_answer,
            correct_answer=q.correct_answer,
            is_correct=correct,
            answered_at=now,
        )
        if correct:
            s.correct_count += 1
        else:
            s.wrong_list.append(q.item)
        s.records.append(record)
        s.current_index += 1
        self.current = None
        self._checkpoint()

        if s.current_index >= s.total_questions:
            self.finish()
        return record

    def finish(self) -> dict:
        """Fold the session into lifetime stats and enter completed.

        Safe to call again after a StatisticsWriteError; totals are only
        added once.
        """
        if self.state == COMPLETED:
            return self.summary()
        s = self.session
        if self.state != IN_PROGRESS or s.current_index < s.total_questions:
            raise SessionStateError("Session still has unanswered questions")

        if not self._totals_recorded:
            record_session(self.db, s.kind, s.total_questions, s.correct_count, s.wrong_list)
            self._totals_recorded = True
        self.db.clear_current_session(s.kind)
        self.db.end_session(s.id, s.total_questions, s.correct_count)

        s.finished_at = datetime.now(timezone.utc)
        self.state = COMPLETED
        _log.info(
            "Session %s complete: %d/%d correct",
            s.id, s.correct_count, s.total_questions,
        )
        return self.summary()

    def redo_wrong(self) -> SessionEngine:
        """Start a new session over this session's wrong answers, in order.

        The durable weak-item list is used instead when it is larger.
        """
        if self.state != COMPLETED:
            raise SessionStateError("Only a completed session can be redone")

        s = self.session
        pool = list(s.wrong_list)
        weak = self.db.get_weak_items(s.kind)
        if len(weak) > len(pool):
            pool = weak
        if not pool:
            raise EmptyCorpusError("No wrong answers to redo")

        engine = SessionEngine(
            self.db,
            kind=s.kind,
            mode=s.mode,
            difficulty_mode="custom",
            question_count=len(pool),
            free_text=s.free_text,
            review=s.review,
            option_count=self.option_count,
            rng=self.rng,
        )
        engine.start(pool=pool)
        return engine

    # ── Reporting ─────────────────────────────────────────────────────────

    def summary(self) -> dict:
        s = self.session
        duration = 0
        if s.started_at is not None:
            end = s.finished_at or datetime.now(timezone.utc)
            duration = round((end - s.started_at).total_seconds())

        return {
            "session_id": s.id,
            "state": self.state,
            "kind": s.kind,
            "mode": s.mode,
            "difficulty_mode": s.difficulty_mode,
            "review": s.review,
            "total": s.total_questions,
            "answered": s.current_index,
            "correct": s.correct_count,
            "wrong": len(s.wrong_list),
            "accuracy": round(accuracy(s.correct_count, s.total_questions), 1),
            "duration_seconds": duration,
            "wrong_items": [it.to_dict() for it in s.wrong_list],
            "by_level": _breakdown(s.records, lambda r: r.item.level),
            "by_direction": _breakdown(s.records, lambda r: r.direction),
        }

    # ── Internals ─────────────────────────────────────────────────────────

    def _fresh_pool(self) -> list[Item]:
        s = self.session
        if s.review:
            return self.db.get_wrong_items(s.kind)
        return select_pool(
            self.db, s.difficulty_mode, self.question_count,
            kind=s.kind, levels=self.levels, rng=self.rng,
        )

    def _draw(self) -> Item:
        s = self.session
        if self.fixed_pool is not None:
            return self.fixed_pool[s.current_index]

        # Re-query every draw for variety across long sessions
        fresh = self._fresh_pool()
        if not fresh:
            raise EmptyCorpusError(f"No {s.kind} items left to draw from")
        return pick_weighted(fresh, stats_lookup(self.db, s.kind), self.rng)

    def _direction(self) -> str:
        mode = self.session.mode
        if mode != "mixed":
            return mode
        return SOURCE_TO_TARGET if self.rng.random() < 0.5 else TARGET_TO_SOURCE

    def _checkpoint(self) -> None:
        try:
            self.db.save_current_session(self.session.kind, self.session.to_dict())
        except StatisticsWriteError as e:
            _log.warning("Session checkpoint not saved: %s", e)
