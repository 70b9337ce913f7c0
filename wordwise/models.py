from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

LEVELS = ("A1", "A2", "B1", "B2", "C1")
KINDS = ("vocabulary", "phrase")

SOURCE_TO_TARGET = "source_to_target"  # prompt in English, answer is the translation
TARGET_TO_SOURCE = "target_to_source"  # prompt is the translation, answer in English
DIRECTIONS = (SOURCE_TO_TARGET, TARGET_TO_SOURCE)
STUDY_MODES = DIRECTIONS + ("mixed",)

DIFFICULTY_MODES = ("auto", "beginner", "expert", "hell", "custom")


@dataclass(frozen=True)
class Item:
    source: str  # English word or phrase, the identity key
    target: str  # translation
    level: str
    difficulty_score: float
    kind: str = "vocabulary"  # vocabulary | phrase
    pos: str | None = None
    category: str | None = None
    source_file: str = ""

    @property
    def key(self) -> str:
        return self.source

    def answer_for(self, direction: str) -> str:
        return self.target if direction == SOURCE_TO_TARGET else self.source

    def prompt_for(self, direction: str) -> str:
        return self.source if direction == SOURCE_TO_TARGET else self.target

    def to_dict(self) -> dict:
        return {
            "english": self.source,
            "chinese": self.target,
            "pos": self.pos,
            "level": self.level,
            "difficulty_score": self.difficulty_score,
            "category": self.category,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: dict, kind: str | None = None) -> Item:
        return cls(
            source=data["english"],
            target=data["chinese"],
            # Phrase entries may omit the level; the phrase book is C1 material
            level=data.get("level") or "C1",
            difficulty_score=data.get("difficulty_score") or 0,
            kind=kind or data.get("kind") or "vocabulary",
            pos=data.get("pos"),
            category=data.get("category"),
        )


@dataclass
class ItemStat:
    kind: str
    item_key: str
    total_attempts: int = 0
    correct_attempts: int = 0
    wrong_attempts: int = 0
    accuracy: float = 0.0
    last_attempted: datetime | None = None


@dataclass
class LevelStat:
    kind: str
    level: str
    total_questions: int = 0
    correct_answers: int = 0
    accuracy: float = 0.0
    last_updated: datetime | None = None


@dataclass
class AggregateStats:
    kind: str
    total_sessions: int = 0
    total_questions: int = 0
    correct_answers: int = 0
    average_accuracy: float = 0.0


@dataclass(frozen=True)
class QuestionRecord:
    item: Item
    direction: str
    user_answer: str
    correct_answer: str
    is_correct: bool
    answered_at: datetime


@dataclass
class Question:
    index: int
    item: Item
    direction: str
    prompt: str
    correct_answer: str
    options: list[str] = field(default_factory=list)
