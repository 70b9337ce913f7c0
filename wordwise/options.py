"""Multiple-choice option sets."""
from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

from wordwise.models import Item
from wordwise.stats import normalize

if TYPE_CHECKING:
    from wordwise.db import Database

_log = logging.getLogger("wordwise.options")

DEFAULT_OPTION_COUNT = 4
MAX_OPTION_ATTEMPTS = 100


def generate_options(
    db: Database,
    item: Item,
    direction: str,
    count: int = DEFAULT_OPTION_COUNT,
    rng: random.Random | None = None,
) -> list[str]:
    """Return the correct answer plus up to count-1 distinct distractors, shuffled.

    Distractors come from the whole corpus of the item's kind, not the
    session pool. When the corpus cannot supply enough distinct values
    within MAX_OPTION_ATTEMPTS draws the list is simply shorter.
    """
    if count < 1:
        raise ValueError(f"Option count must be at least 1, got {count}")
    rng = rng or random
    correct = item.answer_for(direction)
    corpus = db.get_all_items(item.kind)

    # Keyed by the judged form so no two options would be judged the same
    options: dict[str, str] = {normalize(correct): correct}
    attempts = 0
    while len(options) < count and corpus and attempts < MAX_OPTION_ATTEMPTS:
        attempts += 1
        candidate = rng.choice(corpus).answer_for(direction)
        options.setdefault(normalize(candidate), candidate)

    if len(options) < count:
        _log.debug(
            "Only %d of %d options for %r after %d draws",
            len(options), count, item.key, attempts,
        )

    result = list(options.values())
    rng.shuffle(result)
    return result
