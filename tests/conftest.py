"""Shared test fixtures."""
from __future__ import annotations

import json

import pytest

from wordwise.db import Database
from wordwise.models import Item


@pytest.fixture
def tmp_db(tmp_path):
    """Create a fresh temporary database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def sample_items():
    """Two vocabulary items per level, ten in all."""
    return [
        Item("apple", "苹果", "A1", 1, pos="n.", source_file="vocabulary.json"),
        Item("book", "书", "A1", 1, pos="n.", source_file="vocabulary.json"),
        Item("journey", "旅程", "A2", 3, pos="n.", source_file="vocabulary.json"),
        Item("borrow", "借", "A2", 3, pos="v.", source_file="vocabulary.json"),
        Item("achieve", "实现", "B1", 4, pos="v.", source_file="vocabulary.json"),
        Item("efficient", "高效的", "B1", 5, pos="adj.", source_file="vocabulary.json"),
        Item("ambiguous", "模棱两可的", "B2", 6, pos="adj.", source_file="vocabulary.json"),
        Item("negotiate", "谈判", "B2", 6, pos="v.", source_file="vocabulary.json"),
        Item("ubiquitous", "无处不在的", "C1", 9, pos="adj.", source_file="vocabulary.json"),
        Item("meticulous", "一丝不苟的", "C1", 9, pos="adj.", source_file="vocabulary.json"),
    ]


@pytest.fixture
def sample_phrases():
    return [
        Item("take into account", "考虑到", "C1", 55, kind="phrase", source_file="phrases.json"),
        Item("in the long run", "从长远来看", "C1", 75, kind="phrase", source_file="phrases.json"),
        Item("get rid of", "摆脱", "C1", 25, kind="phrase", source_file="phrases.json"),
    ]


@pytest.fixture
def populated_db(tmp_db, sample_items, sample_phrases):
    """A database pre-loaded with sample vocabulary and phrases."""
    tmp_db.import_items(sample_items)
    tmp_db.import_items(sample_phrases)
    return tmp_db


@pytest.fixture
def vocabulary_file(tmp_path):
    path = tmp_path / "vocabulary.json"
    path.write_text(json.dumps({
        "metadata": {"title": "test"},
        "vocabulary": [
            {"english": "apple", "chinese": "苹果", "pos": "n.", "level": "A1", "difficulty_score": 1},
            {"english": "achieve", "chinese": "实现", "pos": "v.", "level": "B1", "difficulty_score": 4},
            {"english": "ubiquitous", "chinese": "无处不在的", "level": "C1", "difficulty_score": 9},
            {"english": "mystery", "chinese": "谜", "level": "Z9", "difficulty_score": 2},
            {"english": "", "chinese": "空"},
        ],
    }, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def phrase_file(tmp_path):
    path = tmp_path / "phrases.json"
    path.write_text(json.dumps({
        "title": "test phrases",
        "phrases": {
            "page_1": [
                {"english": "take into account", "chinese": "考虑到"},
                {"english": "a piece of cake", "chinese": "小菜一碟"},
            ],
            "page_2": [
                {"english": "on behalf of", "chinese": "代表", "level": "B2", "difficulty_score": 20},
            ],
        },
    }, ensure_ascii=False), encoding="utf-8")
    return path
