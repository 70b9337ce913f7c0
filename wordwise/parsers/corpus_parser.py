"""Parse corpus JSON files into Item objects.

Handles two layouts:
  {"metadata": {...}, "vocabulary": [{english, chinese, pos, level, difficulty_score}, ...]}
  {"title": ..., "phrases": {"page_1": [{english, chinese}, ...], ...}}   (paged phrase book)

Phrases without a level default to C1 (the phrase book is C1 material);
phrases without a score get one from phrase_difficulty_score().
"""
from __future__ import annotations

import json
import logging
from pathlib import Path

from wordwise.models import LEVELS, Item

_log = logging.getLogger("wordwise.import")

DEFAULT_PHRASE_LEVEL = "C1"
DEFAULT_WORD_SCORE = 1


def phrase_difficulty_score(phrase: str) -> int:
    """Score a phrase 0-100 from its length and a few structural hints."""
    score = len(phrase.split(" ")) * 10
    score += len(phrase)
    if "of" in phrase or "to" in phrase or "for" in phrase:
        score += 5
    if "ing" in phrase or "ed" in phrase or "s " in phrase:
        score += 3
    return min(score, 100)


def parse_vocabulary_file(path: Path) -> list[Item]:
    data = json.loads(path.read_text(encoding="utf-8"))
    source = path.name
    items: list[Item] = []

    for entry in data.get("vocabulary", []):
        english = (entry.get("english") or "").strip()
        chinese = (entry.get("chinese") or "").strip()
        level = entry.get("level")
        if not english or not chinese:
            continue
        if level not in LEVELS:
            _log.warning("Skipping %r in %s: unknown level %r", english, source, level)
            continue
        items.append(Item(
            source=english,
            target=chinese,
            level=level,
            difficulty_score=entry.get("difficulty_score") or DEFAULT_WORD_SCORE,
            kind="vocabulary",
            pos=entry.get("pos") or None,
            category=entry.get("category") or None,
            source_file=source,
        ))

    return items


def parse_phrase_file(path: Path) -> list[Item]:
    data = json.loads(path.read_text(encoding="utf-8"))
    source = path.name
    items: list[Item] = []

    pages = data.get("phrases", {})
    # Flat lists are accepted as a single page
    if isinstance(pages, list):
        pages = {"page_1": pages}

    for page in pages.values():
        if not isinstance(page, list):
            continue
        for entry in page:
            english = (entry.get("english") or "").strip()
            chinese = (entry.get("chinese") or "").strip()
            if not english or not chinese:
                continue
            level = entry.get("level") or DEFAULT_PHRASE_LEVEL
            if level not in LEVELS:
                level = DEFAULT_PHRASE_LEVEL
            score = entry.get("difficulty_score")
            if score is None:
                score = phrase_difficulty_score(english)
            items.append(Item(
                source=english,
                target=chinese,
                level=level,
                difficulty_score=score,
                kind="phrase",
                source_file=source,
            ))

    return items


def parse_corpus_file(path: Path) -> list[Item]:
    """Dispatch on file name: anything with "phrase" in it is a phrase book."""
    if "phrase" in path.name:
        return parse_phrase_file(path)
    return parse_vocabulary_file(path)
