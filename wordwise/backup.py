"""Export and import of learning data as JSON files.

Two file types:
  wrong-item export   {"system_name", "version", "export_time", "kind", "wrong_items": [...]}
  full backup         {"system_name", "version", "export_time", "data": {kind: {...}}}

Imports are validated completely before anything is written; a file
that fails the check raises MalformedImportError and changes nothing.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from wordwise.errors import MalformedImportError
from wordwise.models import KINDS, LEVELS, AggregateStats, Item, ItemStat, LevelStat

if TYPE_CHECKING:
    from wordwise.db import Database

_log = logging.getLogger("wordwise.backup")

SYSTEM_NAME = "WordWise"
FORMAT_VERSION = "1.0.0"


def _header() -> dict:
    return {
        "system_name": SYSTEM_NAME,
        "version": FORMAT_VERSION,
        "export_time": datetime.now(timezone.utc).isoformat(),
    }


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value) -> datetime | None:
    if value in (None, ""):
        return None
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


# ── Validation ────────────────────────────────────────────────────────────

def _check_header(data) -> None:
    if not isinstance(data, dict):
        raise MalformedImportError("Expected a JSON object at the top level")
    if data.get("system_name") != SYSTEM_NAME:
        raise MalformedImportError(f"Not a {SYSTEM_NAME} file")


def _parse_items(entries, kind: str, what: str) -> list[Item]:
    if not isinstance(entries, list):
        raise MalformedImportError(f"{what} must be a list")
    items = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise MalformedImportError(f"{what}[{i}] is not an object")
        english, chinese = entry.get("english"), entry.get("chinese")
        if not isinstance(english, str) or not english.strip():
            raise MalformedImportError(f"{what}[{i}] has no english text")
        if not isinstance(chinese, str) or not chinese.strip():
            raise MalformedImportError(f"{what}[{i}] has no chinese text")
        level = entry.get("level")
        if level is not None and level not in LEVELS:
            raise MalformedImportError(f"{what}[{i}] has unknown level {level!r}")
        items.append(Item.from_dict(entry, kind))
    return items


def _parse_kind_block(kind: str, block) -> dict:
    if not isinstance(block, dict):
        raise MalformedImportError(f"data.{kind} must be an object")
    try:
        agg = block.get("aggregate") or {}
        aggregate = AggregateStats(
            kind=kind,
            total_sessions=int(agg.get("total_sessions", 0)),
            total_questions=int(agg.get("total_questions", 0)),
            correct_answers=int(agg.get("correct_answers", 0)),
            average_accuracy=float(agg.get("average_accuracy", 0)),
        )
        item_stats = [
            ItemStat(
                kind=kind,
                item_key=str(s["item_key"]),
                total_attempts=int(s["total_attempts"]),
                correct_attempts=int(s["correct_attempts"]),
                wrong_attempts=int(s["wrong_attempts"]),
                accuracy=float(s["accuracy"]),
                last_attempted=_parse_ts(s.get("last_attempted")),
            )
            for s in block.get("item_stats", [])
        ]
        level_stats = [
            LevelStat(
                kind=kind,
                level=s["level"],
                total_questions=int(s["total_questions"]),
                correct_answers=int(s["correct_answers"]),
                accuracy=float(s["accuracy"]),
                last_updated=_parse_ts(s.get("last_updated")),
            )
            for s in block.get("level_stats", [])
        ]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedImportError(f"data.{kind} has malformed statistics: {e}") from e

    for s in level_stats:
        if s.level not in LEVELS:
            raise MalformedImportError(f"data.{kind} has unknown level {s.level!r}")

    for what, keys in (
        ("item_key", [s.item_key for s in item_stats]),
        ("level", [s.level for s in level_stats]),
    ):
        seen = set()
        for key in keys:
            if key in seen:
                raise MalformedImportError(f"data.{kind} repeats {what} {key!r}")
            seen.add(key)

    return {
        "item_stats": item_stats,
        "level_stats": level_stats,
        "aggregate": aggregate,
        "wrong_items": _parse_items(block.get("wrong_items", []), kind, f"data.{kind}.wrong_items"),
        "weak_items": _parse_items(block.get("weak_items", []), kind, f"data.{kind}.weak_items"),
    }


# ── Wrong items ───────────────────────────────────────────────────────────

def export_wrong_items(db: Database, kind: str = "vocabulary") -> dict:
    items = db.get_wrong_items(kind)
    payload = _header()
    payload.update({
        "kind": kind,
        "total_items": len(items),
        "wrong_items": [it.to_dict() for it in items],
    })
    return payload


def import_wrong_items(db: Database, data) -> int:
    """Merge a wrong-item export into the wrong set. Returns how many were new."""
    _check_header(data)
    kind = data.get("kind", "vocabulary")
    if kind not in KINDS:
        raise MalformedImportError(f"Unknown item kind {kind!r}")
    items = _parse_items(data.get("wrong_items"), kind, "wrong_items")
    added = db.add_wrong_items(items)
    _log.info("Imported %d wrong %s items (%d new)", len(items), kind, added)
    return added


# ── Full backup ───────────────────────────────────────────────────────────

def create_backup(db: Database) -> dict:
    data = {}
    for kind in KINDS:
        agg = db.get_aggregate_stats(kind)
        data[kind] = {
            "wrong_items": [it.to_dict() for it in db.get_wrong_items(kind)],
            "weak_items": [it.to_dict() for it in db.get_weak_items(kind)],
            "aggregate": {
                "total_sessions": agg.total_sessions,
                "total_questions": agg.total_questions,
                "correct_answers": agg.correct_answers,
                "average_accuracy": agg.average_accuracy,
            },
            "level_stats": [
                {
                    "level": s.level,
                    "total_questions": s.total_questions,
                    "correct_answers": s.correct_answers,
                    "accuracy": s.accuracy,
                    "last_updated": _ts(s.last_updated),
                }
                for s in db.get_level_stats(kind)
            ],
            "item_stats": [
                {
                    "item_key": s.item_key,
                    "total_attempts": s.total_attempts,
                    "correct_attempts": s.correct_attempts,
                    "wrong_attempts": s.wrong_attempts,
                    "accuracy": s.accuracy,
                    "last_attempted": _ts(s.last_attempted),
                }
                for s in db.get_item_stats(kind).values()
            ],
        }
    payload = _header()
    payload["data"] = data
    return payload


def restore_backup(db: Database, data) -> list[str]:
    """Replace statistics with a backup's. Returns the kinds restored."""
    _check_header(data)
    blocks = data.get("data")
    if not isinstance(blocks, dict):
        raise MalformedImportError("Backup has no data section")
    unknown = set(blocks) - set(KINDS)
    if unknown:
        raise MalformedImportError(f"Unknown item kinds in backup: {sorted(unknown)}")

    parsed = {kind: _parse_kind_block(kind, block) for kind, block in blocks.items()}
    db.restore_statistics(parsed)
    for kind, p in parsed.items():
        _log.info(
            "Restored %s statistics: %d items, %d wrong",
            kind, len(p["item_stats"]), len(p["wrong_items"]),
        )
    return list(parsed)


# ── Files ─────────────────────────────────────────────────────────────────

def read_json_file(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedImportError(f"{path.name} is not valid JSON: {e}") from e


def write_json_file(path: Path, payload: dict) -> None:
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
