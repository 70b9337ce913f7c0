"""FastAPI application with all routes."""
from __future__ import annotations

import logging
import os

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from wordwise.backup import (
    create_backup,
    export_wrong_items,
    import_wrong_items,
    restore_backup,
)
from wordwise.config import Settings, load_settings, save_settings
from wordwise.db import Database
from wordwise.errors import (
    EmptyCorpusError,
    MalformedImportError,
    SessionStateError,
    StatisticsWriteError,
)
from wordwise.models import KINDS, Question
from wordwise.parsers.corpus_parser import parse_corpus_file
from wordwise.selector import ALL
from wordwise.session import COMPLETED, SessionEngine

app = FastAPI(title="WordWise")

# Global state (initialized at startup)
_db: Database | None = None
_settings: Settings | None = None
_active_sessions: dict[int, SessionEngine] = {}  # session_id -> engine

DIFFICULTY_MODE_INFO = [
    {"id": "auto", "name": "Auto", "description": "Adjusts level mix to your accuracy history"},
    {"id": "beginner", "name": "Beginner", "description": "A1-A2 words, phrases scored 0-30"},
    {"id": "expert", "name": "Expert", "description": "B1-B2 words, phrases scored 30-60"},
    {"id": "hell", "name": "Hell", "description": "C1 words, phrases scored 60-100"},
    {"id": "custom", "name": "Custom", "description": "Pick the levels yourself"},
]


def get_db() -> Database:
    assert _db is not None
    return _db


def get_settings() -> Settings:
    assert _settings is not None
    return _settings


def _kind_param(kind: str | None) -> str:
    kind = kind or "vocabulary"
    if kind not in KINDS:
        raise HTTPException(400, f"Unknown kind: {kind}")
    return kind


def import_corpus(db: Database, settings: Settings, only_changed: bool = False) -> dict:
    """(Re-)import corpus files. With *only_changed*, skip files whose mtime is unchanged."""
    log = logging.getLogger("wordwise.import")
    counts = {kind: 0 for kind in KINDS}
    for cf in settings.resolved_corpus_files():
        if not cf.exists():
            continue
        current_mtime = cf.stat().st_mtime_ns
        if only_changed and db.get_file_mtime(str(cf)) == current_mtime:
            continue
        log.info("Importing %s", cf.name)
        db.delete_items_by_source(cf.name)
        items = parse_corpus_file(cf)
        n = db.import_items(items)
        if items:
            counts[items[0].kind] += n
        log.info("  %d items imported", n)
        db.set_file_mtime(str(cf), current_mtime)
    return counts


@app.on_event("startup")
async def startup():
    global _db, _settings
    if _db is not None:
        return  # Already initialized (e.g. by tests)
    _settings = load_settings()
    _db = Database(_settings.db_full_path)
    if not os.environ.get("WORDWISE_NO_AUTO_IMPORT"):
        import_corpus(_db, _settings, only_changed=True)


@app.on_event("shutdown")
async def shutdown():
    if _db:
        _db.close()


@app.exception_handler(StatisticsWriteError)
async def statistics_write_error(request: Request, exc: StatisticsWriteError):
    logging.getLogger("wordwise.app").warning("Statistics write failed: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"error": str(exc), "retryable": True},
    )


# ── API: Corpus ───────────────────────────────────────────────────────────

def _corpus_query(kind: str, level, min_score, max_score, q) -> list[dict]:
    db = get_db()
    if q:
        items = db.search_items(q, kind)
    elif level:
        items = db.get_items_by_level(level, kind)
    elif min_score is not None and max_score is not None:
        items = db.get_items_by_difficulty_range(min_score, max_score, kind)
    else:
        items = db.get_all_items(kind)
    return [it.to_dict() for it in items]


@app.get("/api/vocabulary")
async def api_vocabulary(
    level: str | None = None,
    minScore: float | None = None,
    maxScore: float | None = None,
    q: str | None = None,
):
    return {"success": True, "data": _corpus_query("vocabulary", level, minScore, maxScore, q)}


@app.get("/api/phrases")
async def api_phrases(
    minScore: float | None = None,
    maxScore: float | None = None,
    q: str | None = None,
):
    return {"success": True, "data": _corpus_query("phrase", None, minScore, maxScore, q)}


@app.get("/api/difficulty-modes")
async def api_difficulty_modes():
    return DIFFICULTY_MODE_INFO


# ── API: Stats ────────────────────────────────────────────────────────────

@app.get("/api/stats")
async def api_stats(type: str | None = None):
    db = get_db()
    if type is None:
        data = {kind: db.get_stats(kind) for kind in KINDS}
    else:
        data = db.get_stats(_kind_param(type))
    return {"success": True, "data": data}


@app.delete("/api/stats")
async def api_reset_stats(type: str | None = None):
    kind = _kind_param(type)
    get_db().reset_statistics(kind)
    logging.getLogger("wordwise.app").info("Reset %s statistics", kind)
    return {"success": True}


@app.get("/api/review")
async def api_review(kind: str | None = None, limit: int = 10):
    stats = get_db().get_items_needing_review(_kind_param(kind), limit)
    return [
        {
            "item_key": s.item_key,
            "total_attempts": s.total_attempts,
            "correct_attempts": s.correct_attempts,
            "accuracy": round(s.accuracy, 1),
            "last_attempted": s.last_attempted.isoformat() if s.last_attempted else None,
        }
        for s in stats
    ]


# ── API: Import ───────────────────────────────────────────────────────────

@app.post("/api/import")
async def api_import():
    db = get_db()
    counts = import_corpus(db, get_settings())
    return {
        "imported": counts,
        "totals": {kind: db.get_item_count(kind) for kind in KINDS},
    }


# ── API: Session management ──────────────────────────────────────────────

def _question_payload(engine: SessionEngine, q: Question) -> dict:
    s = engine.session
    return {
        "session_id": s.id,
        "index": q.index,
        "kind": s.kind,
        "direction": q.direction,
        "prompt": q.prompt,
        "options": q.options,
        "free_text": s.free_text,
        "level": q.item.level,
        "pos": q.item.pos,
        "progress": {
            "current": q.index + 1,
            "total": s.total_questions,
            "correct": s.correct_count,
            "wrong": len(s.wrong_list),
        },
    }


def _get_engine(session_id) -> SessionEngine:
    engine = _active_sessions.get(session_id)
    if engine is None:
        raise HTTPException(404, "Session not found")
    return engine


def _next_question(engine: SessionEngine) -> dict:
    if engine.state == COMPLETED:
        return {"session_complete": True, "session_id": engine.session.id}
    try:
        q = engine.next_question()
    except SessionStateError as e:
        raise HTTPException(400, str(e))
    except EmptyCorpusError as e:
        return {"error": str(e), "session_id": engine.session.id}
    return _question_payload(engine, q)


def _replace_active(engine: SessionEngine) -> None:
    """Register *engine*, dropping older sessions of the same kind.

    Completed engines stay registered until then so redo and finish still work.
    """
    stale = [sid for sid, e in _active_sessions.items() if e.session.kind == engine.session.kind]
    for sid in stale:
        del _active_sessions[sid]
    _active_sessions[engine.session.id] = engine


@app.post("/api/session/start")
async def api_session_start(request: Request):
    body = await request.json() if await request.body() else {}
    s = get_settings()

    count = body.get("count", s.session_size)
    if count != ALL:
        try:
            count = int(count)
        except (TypeError, ValueError):
            raise HTTPException(400, f"Invalid count: {count!r}")

    try:
        engine = SessionEngine(
            get_db(),
            kind=_kind_param(body.get("kind")),
            mode=body.get("mode", s.study_mode),
            difficulty_mode=body.get("difficulty_mode", s.difficulty_mode),
            question_count=count,
            free_text=body.get("free_text", s.free_text),
            review=body.get("review", False),
            levels=body.get("levels"),
            option_count=s.option_count,
        )
    except ValueError as e:
        raise HTTPException(400, str(e))

    try:
        engine.start()
    except EmptyCorpusError:
        return {"error": "No items available. Import a corpus or pick another difficulty.", "session_id": None}

    _replace_active(engine)
    return _next_question(engine)


@app.post("/api/session/next")
async def api_session_next(request: Request):
    body = await request.json()
    return _next_question(_get_engine(body["session_id"]))


@app.post("/api/session/answer")
async def api_session_answer(request: Request):
    body = await request.json()
    engine = _get_engine(body["session_id"])
    answer = body.get("answer", "")

    try:
        record = engine.answer(answer)
    except SessionStateError as e:
        raise HTTPException(400, str(e))

    s = engine.session
    result = {
        "correct": record.is_correct,
        "correct_answer": record.correct_answer,
        "user_answer": record.user_answer,
        "item": record.item.to_dict(),
        "session_progress": {
            "answered": s.current_index,
            "correct": s.correct_count,
            "remaining": s.total_questions - s.current_index,
        },
        "session_complete": engine.state == COMPLETED,
    }
    if engine.state == COMPLETED:
        result["summary"] = engine.summary()
    return result


@app.post("/api/session/finish")
async def api_session_finish(request: Request):
    """Retry completion after a failed statistics write."""
    body = await request.json()
    engine = _get_engine(body["session_id"])
    try:
        return engine.finish()
    except SessionStateError as e:
        raise HTTPException(400, str(e))


@app.post("/api/session/redo")
async def api_session_redo(request: Request):
    body = await request.json()
    old = _get_engine(body["session_id"])
    try:
        engine = old.redo_wrong()
    except SessionStateError as e:
        raise HTTPException(400, str(e))
    except EmptyCorpusError as e:
        return {"error": str(e), "session_id": None}

    _replace_active(engine)
    return _next_question(engine)


@app.get("/api/session/summary")
async def api_session_summary(kind: str | None = None):
    history = get_db().get_session_history(limit=10, kind=kind)
    return {"sessions": history}


@app.get("/api/session/current")
async def api_session_current(kind: str | None = None):
    return {"session": get_db().get_current_session(_kind_param(kind))}


# ── API: Wrong items ──────────────────────────────────────────────────────

@app.get("/api/wrong")
async def api_wrong(kind: str | None = None):
    items = get_db().get_wrong_items(_kind_param(kind))
    return {"count": len(items), "items": [it.to_dict() for it in items]}


@app.delete("/api/wrong")
async def api_wrong_clear(kind: str | None = None):
    get_db().clear_wrong_items(_kind_param(kind))
    return {"ok": True}


@app.get("/api/wrong/export")
async def api_wrong_export(kind: str | None = None):
    return export_wrong_items(get_db(), _kind_param(kind))


@app.post("/api/wrong/import")
async def api_wrong_import(request: Request):
    body = await request.json()
    try:
        added = import_wrong_items(get_db(), body)
    except MalformedImportError as e:
        raise HTTPException(400, str(e))
    return {"added": added}


# ── API: Backup ───────────────────────────────────────────────────────────

@app.get("/api/backup")
async def api_backup():
    return create_backup(get_db())


@app.post("/api/backup")
async def api_restore(request: Request):
    body = await request.json()
    try:
        kinds = restore_backup(get_db(), body)
    except MalformedImportError as e:
        raise HTTPException(400, str(e))
    return {"restored": kinds}


# ── API: Settings ─────────────────────────────────────────────────────────

@app.get("/api/settings")
async def api_get_settings():
    return get_settings().to_dict()


@app.put("/api/settings")
async def api_update_settings(request: Request):
    body = await request.json()
    s = get_settings()
    known = {f.name for f in Settings.__dataclass_fields__.values()}
    for k, v in body.items():
        if k in known:
            setattr(s, k, v)
    save_settings(s)
    return s.to_dict()
