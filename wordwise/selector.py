"""Adaptive item selection: which words or phrases to quiz on next.

Two strategies:

* Fixed difficulty modes (beginner / expert / hell / custom) filter the
  corpus by level (phrases: by difficulty score) and sample without
  replacement, weighting each item by the learner's history with it
  (struggling items up, mastered and just-seen items down, never-seen
  items up).
* Auto mode stratifies across all five levels, giving more slots to the
  levels with the lowest accuracy. Phrases are split into easy, medium
  and hard score buckets instead, weighted by average phrase accuracy.
"""
from __future__ import annotations

import logging
import math
import random
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from wordwise.errors import EmptyCorpusError
from wordwise.models import DIFFICULTY_MODES, LEVELS, Item, ItemStat

if TYPE_CHECKING:
    from wordwise.db import Database

_log = logging.getLogger("wordwise.selector")

ALL = "all"

LEVEL_FILTERS = {
    "beginner": ("A1", "A2"),
    "expert": ("B1", "B2"),
    "hell": ("C1",),
}

# Phrases carry no meaningful level, so their modes filter on score (inclusive)
PHRASE_SCORE_RANGES = {
    "beginner": (0, 30),
    "expert": (30, 60),
    "hell": (60, 100),
}

# Auto-mode share of easy / medium / hard phrases by average phrase accuracy
PHRASE_BUCKET_WEIGHTS = (0.3, 0.4, 0.3)
PHRASE_BUCKET_WEIGHTS_STRUGGLING = (0.5, 0.3, 0.2)  # average below 60
PHRASE_BUCKET_WEIGHTS_CONFIDENT = (0.2, 0.3, 0.5)  # average above 85

# Per-item weighting
STRUGGLING_ACCURACY = 60
MASTERED_ACCURACY = 90
STRUGGLING_BOOST = 2.0
MASTERED_DAMPENING = 0.3
RECENT_WINDOW = timedelta(hours=24)
RECENT_DAMPENING = 0.5
NOVELTY_BOOST = 1.5

StatsLookup = Callable[[Item], "ItemStat | None"]


def item_weight(stat: ItemStat | None, now: datetime | None = None) -> float:
    """Sampling weight for one item given its history (None = never attempted)."""
    if stat is None:
        return 1.0 * NOVELTY_BOOST

    weight = 1.0
    if stat.accuracy < STRUGGLING_ACCURACY:
        weight *= STRUGGLING_BOOST
    elif stat.accuracy > MASTERED_ACCURACY:
        weight *= MASTERED_DAMPENING

    if stat.last_attempted is not None:
        now = now or datetime.now(timezone.utc)
        if now - stat.last_attempted < RECENT_WINDOW:
            weight *= RECENT_DAMPENING
    return weight


def level_weight(accuracy: float) -> float:
    """Share weight of a level in auto mode; weaker levels get more questions."""
    if accuracy == 0:
        return 0.3  # no data yet
    if accuracy >= 90:
        return 0.1
    if accuracy >= 80:
        return 0.2
    if accuracy >= 70:
        return 0.3
    if accuracy >= 60:
        return 0.5
    return 0.7


def stats_lookup(db: Database, kind: str) -> StatsLookup:
    """Snapshot the item stats of *kind* into an Item -> ItemStat lookup."""
    stats = db.get_item_stats(kind)
    return lambda item: stats.get(item.key)


def _draw_index(weights: list[float], rng) -> int:
    total = sum(weights)
    r = rng.random() * total
    for i, w in enumerate(weights):
        r -= w
        if r <= 0:
            return i
    # Floating-point residue: the walk ended a hair above zero
    return len(weights) - 1


def pick_weighted(
    items: list[Item],
    lookup: StatsLookup,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> Item:
    """Draw a single item, weighted by item_weight()."""
    if not items:
        raise EmptyCorpusError("No items to draw from")
    rng = rng or random
    now = now or datetime.now(timezone.utc)
    weights = [item_weight(lookup(it), now) for it in items]
    return items[_draw_index(weights, rng)]


def weighted_sample(
    items: list[Item],
    lookup: StatsLookup,
    count: int,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> list[Item]:
    """Weighted sampling without replacement via repeated linear draws."""
    rng = rng or random
    now = now or datetime.now(timezone.utc)
    candidates = list(items)
    weights = [item_weight(lookup(it), now) for it in candidates]

    selected: list[Item] = []
    for _ in range(min(count, len(candidates))):
        idx = _draw_index(weights, rng)
        selected.append(candidates.pop(idx))
        weights.pop(idx)
    return selected


def level_allocation(db: Database, count: int, kind: str = "vocabulary") -> dict[str, int]:
    """How many auto-mode slots each level gets for a pool of *count* items."""
    weights = {}
    for level in LEVELS:
        stat = db.get_level_stat(kind, level)
        weights[level] = level_weight(stat.accuracy if stat else 0.0)

    total = sum(weights.values())
    # round() strips float noise so e.g. 4.0000000001 does not ceil to 5
    return {
        level: math.ceil(round(count * (w / total), 9))
        for level, w in weights.items()
    }


def phrase_bucket_allocation(db: Database, count: int) -> dict[str, int] | None:
    """Auto-mode slots per phrase score bucket, or None without any phrase history."""
    stats = db.get_item_stats("phrase")
    if not stats:
        return None

    avg = sum(s.accuracy for s in stats.values()) / len(stats)
    if avg < 60:
        easy_w, medium_w, _ = PHRASE_BUCKET_WEIGHTS_STRUGGLING
    elif avg > 85:
        easy_w, medium_w, _ = PHRASE_BUCKET_WEIGHTS_CONFIDENT
    else:
        easy_w, medium_w, _ = PHRASE_BUCKET_WEIGHTS

    easy = math.ceil(round(count * easy_w, 9))
    medium = math.ceil(round(count * medium_w, 9))
    return {
        "beginner": easy,
        "expert": medium,
        "hell": max(count - easy - medium, 0),
    }


def _take_per_group(groups, allocation: dict, rng) -> list[Item]:
    chosen: list[Item] = []
    for name, items in groups:
        rng.shuffle(items)
        chosen.extend(items[: allocation[name]])
    return chosen


def _auto_pool(db: Database, count: int, kind: str, rng) -> list[Item]:
    if kind == "phrase":
        allocation = phrase_bucket_allocation(db, count)
        if allocation is None:
            # No history yet: an unweighted mix of the whole phrase book
            items = db.get_all_items(kind)
            rng.shuffle(items)
            return items[:count]
        groups = [
            (mode, db.get_items_by_difficulty_range(lo, hi, kind))
            for mode, (lo, hi) in PHRASE_SCORE_RANGES.items()
        ]
    else:
        allocation = level_allocation(db, count, kind)
        groups = [(level, db.get_items_by_level(level, kind)) for level in LEVELS]
    _log.debug("Auto allocation for %d %s items: %s", count, kind, allocation)

    chosen: list[Item] = []
    taken: set[str] = set()
    # Score ranges share their end points, so a phrase can sit in two buckets
    for it in _take_per_group(groups, allocation, rng):
        if it.key not in taken:
            taken.add(it.key)
            chosen.append(it)

    if len(chosen) < count:
        remaining = [it for it in db.get_all_items(kind) if it.key not in taken]
        rng.shuffle(remaining)
        chosen.extend(remaining[: count - len(chosen)])

    rng.shuffle(chosen)
    return chosen[:count]


def _filtered_items(
    db: Database, mode: str, kind: str, levels: list[str] | None
) -> list[Item]:
    if kind == "phrase" and mode in PHRASE_SCORE_RANGES:
        lo, hi = PHRASE_SCORE_RANGES[mode]
        return db.get_items_by_difficulty_range(lo, hi, kind)
    if mode in LEVEL_FILTERS:
        allowed = LEVEL_FILTERS[mode]
    elif mode == "custom" and levels:
        allowed = tuple(levels)
    else:
        return db.get_all_items(kind)

    items: list[Item] = []
    for level in allowed:
        items.extend(db.get_items_by_level(level, kind))
    return items


def select_pool(
    db: Database,
    mode: str,
    count: int | str,
    kind: str = "vocabulary",
    levels: list[str] | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> list[Item]:
    """Return up to *count* items (or every matching item for ALL) in random order.

    *levels* is the external level filter for custom mode and is ignored
    otherwise. An empty corpus yields an empty list.
    """
    if mode not in DIFFICULTY_MODES:
        raise ValueError(f"Unknown difficulty mode: {mode}")
    if count != ALL and count <= 0:
        return []
    rng = rng or random

    if mode == "auto":
        if count == ALL:
            items = db.get_all_items(kind)
            rng.shuffle(items)
            return items
        return _auto_pool(db, count, kind, rng)

    items = _filtered_items(db, mode, kind, levels)
    if not items:
        _log.info("No %s items match difficulty mode %r", kind, mode)
        return []

    if count == ALL:
        rng.shuffle(items)
        return items

    selected = weighted_sample(items, stats_lookup(db, kind), count, rng, now)
    rng.shuffle(selected)
    return selected
