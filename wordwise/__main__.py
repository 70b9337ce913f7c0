"""CLI entry point for wordwise.

Usage:
  python -m wordwise serve [--port PORT] [--host HOST] [--no-auto-import]
  python -m wordwise stop
  python -m wordwise restart [--port PORT]
  python -m wordwise status
  python -m wordwise import
  python -m wordwise stats [--kind vocabulary|phrase]
  python -m wordwise drill [--kind K] [--mode M] [--difficulty D] [--count N] [--review] [--choices]
  python -m wordwise export-wrong FILE [--kind K]
  python -m wordwise import-wrong FILE
  python -m wordwise backup FILE
  python -m wordwise restore FILE
"""
from __future__ import annotations

import os
import signal
import sys
from pathlib import Path

PID_FILE = Path(__file__).resolve().parent.parent / ".server.pid"


def main():
    args = sys.argv[1:]
    command = args[0] if args else "serve"

    if command == "serve":
        _serve(args[1:])
    elif command == "stop":
        _stop()
    elif command == "restart":
        _restart(args[1:])
    elif command == "status":
        _status()
    elif command == "import":
        _import_corpus()
    elif command == "stats":
        _stats(args[1:])
    elif command == "drill":
        _drill(args[1:])
    elif command in ("export-wrong", "import-wrong", "backup", "restore"):
        _transfer(command, args[1:])
    else:
        print(f"Unknown command: {command}")
        print("Commands: serve, stop, restart, status, import, stats, drill, "
              "export-wrong, import-wrong, backup, restore")
        sys.exit(1)


def _parse_flag(args: list[str], name: str, default: str) -> str:
    for i, a in enumerate(args):
        if a == name and i + 1 < len(args):
            return args[i + 1]
    return default


def _read_pid() -> int | None:
    """Read PID from file, return None if stale or missing."""
    if not PID_FILE.exists():
        return None
    try:
        pid = int(PID_FILE.read_text().strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        PID_FILE.unlink(missing_ok=True)
        return None


def _write_pid() -> None:
    PID_FILE.write_text(str(os.getpid()))


def _remove_pid() -> None:
    PID_FILE.unlink(missing_ok=True)


def _stop() -> bool:
    """Stop a running server. Returns True if a server was stopped."""
    pid = _read_pid()
    if pid is None:
        print("Server is not running.")
        return False
    try:
        os.kill(pid, signal.SIGTERM)
        print(f"Stopped server (PID {pid}).")
        PID_FILE.unlink(missing_ok=True)
        return True
    except ProcessLookupError:
        print("Server was not running (stale PID file removed).")
        PID_FILE.unlink(missing_ok=True)
        return False


def _status():
    pid = _read_pid()
    if pid is None:
        print("Server is not running.")
    else:
        print(f"Server is running (PID {pid}).")


def _restart(args: list[str]):
    import time
    _stop()
    time.sleep(1)
    _serve(args)


def _serve(args: list[str]):
    import uvicorn

    existing = _read_pid()
    if existing is not None:
        print(f"Server already running (PID {existing}). Use 'restart' or 'stop' first.")
        sys.exit(1)

    if "--no-auto-import" in args:
        os.environ["WORDWISE_NO_AUTO_IMPORT"] = "1"

    port = int(_parse_flag(args, "--port", "8765"))
    host = _parse_flag(args, "--host", "127.0.0.1")
    _write_pid()

    print(f"Starting WordWise on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")
    try:
        uvicorn.run(
            "wordwise.app:app",
            host=host,
            port=port,
            reload=False,
            timeout_graceful_shutdown=5,
        )
    finally:
        _remove_pid()
        os.environ.pop("WORDWISE_NO_AUTO_IMPORT", None)


def _open_db():
    from wordwise.config import load_settings
    from wordwise.db import Database

    settings = load_settings()
    return settings, Database(settings.db_full_path)


def _import_corpus():
    from wordwise.app import import_corpus

    settings, db = _open_db()
    for cf in settings.resolved_corpus_files():
        if not cf.exists():
            print(f"  Skipping (not found): {cf}")
    counts = import_corpus(db, settings)
    for kind, n in counts.items():
        print(f"  {n} {kind} items imported")

    print(f"\nTotal in DB: {db.get_item_count('vocabulary')} words, "
          f"{db.get_item_count('phrase')} phrases")
    db.close()


def _stats(args: list[str]):
    from wordwise.models import KINDS

    kind = _parse_flag(args, "--kind", "")
    _, db = _open_db()

    for k in ([kind] if kind else KINDS):
        stats = db.get_stats(k)
        print(f"WordWise {k} stats")
        print("=" * 40)
        print(f"Total items:        {stats['total_items']}")
        print(f"Items studied:      {stats['items_studied']}")
        print(f"Items new:          {stats['items_new']}")
        print(f"Wrong items:        {stats['wrong_items']}")
        print(f"Sessions completed: {stats['total_sessions']}")
        print(f"Questions answered: {stats['total_questions']}")
        print(f"Overall accuracy:   {stats['accuracy']}%")
        for ls in stats["level_stats"]:
            print(f"  {ls['level']}: {ls['correct_answers']}/{ls['total_questions']} "
                  f"({ls['accuracy']}%)")
        print()
    db.close()


def _drill(args: list[str]):
    """Run a quiz session in the terminal."""
    from wordwise.errors import EmptyCorpusError, StatisticsWriteError
    from wordwise.selector import ALL
    from wordwise.session import COMPLETED, SessionEngine

    settings, db = _open_db()
    count = _parse_flag(args, "--count", str(settings.session_size))
    try:
        engine = SessionEngine(
            db,
            kind=_parse_flag(args, "--kind", "vocabulary"),
            mode=_parse_flag(args, "--mode", settings.study_mode),
            difficulty_mode=_parse_flag(args, "--difficulty", settings.difficulty_mode),
            question_count=count if count == ALL else int(count),
            free_text="--choices" not in args,
            review="--review" in args,
            option_count=settings.option_count,
        )
        engine.start()
    except (ValueError, EmptyCorpusError) as e:
        print(f"Cannot start: {e}")
        db.close()
        sys.exit(1)

    try:
        while engine.state != COMPLETED:
            q = engine.next_question()
            print(f"\n[{q.index + 1}/{engine.session.total_questions}] {q.prompt}  ({q.item.level})")
            for i, opt in enumerate(q.options, 1):
                print(f"  {i}. {opt}")
            reply = input("> ").strip()
            if q.options and reply.isdigit() and 1 <= int(reply) <= len(q.options):
                reply = q.options[int(reply) - 1]
            try:
                record = engine.answer(reply)
            except StatisticsWriteError as e:
                print(f"  Could not save the answer ({e}); try again.")
                continue
            if record.is_correct:
                print("  Correct!")
            else:
                print(f"  Wrong. Answer: {record.correct_answer}")
    except (KeyboardInterrupt, EOFError):
        print("\nSession interrupted; progress so far is saved.")
        db.close()
        return

    summary = engine.summary()
    print(f"\nScore: {summary['correct']}/{summary['total']} ({summary['accuracy']}%)")
    for level, b in sorted(summary["by_level"].items()):
        print(f"  {level}: {b['correct']}/{b['total']}")
    if summary["wrong_items"]:
        print("Review these:")
        for it in summary["wrong_items"]:
            print(f"  {it['english']} = {it['chinese']}")
    db.close()


def _transfer(command: str, args: list[str]):
    from wordwise import backup
    from wordwise.errors import MalformedImportError

    if not args:
        print(f"Usage: python -m wordwise {command} FILE")
        sys.exit(1)
    path = Path(args[0])
    _, db = _open_db()

    try:
        if command == "export-wrong":
            payload = backup.export_wrong_items(db, _parse_flag(args, "--kind", "vocabulary"))
            backup.write_json_file(path, payload)
            print(f"Exported {payload['total_items']} wrong items to {path}")
        elif command == "backup":
            backup.write_json_file(path, backup.create_backup(db))
            print(f"Backup written to {path}")
        elif command == "import-wrong":
            added = backup.import_wrong_items(db, backup.read_json_file(path))
            print(f"Imported {added} new wrong items")
        else:
            kinds = backup.restore_backup(db, backup.read_json_file(path))
            print(f"Restored statistics for: {', '.join(kinds)}")
    except MalformedImportError as e:
        print(f"Rejected {path}: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
