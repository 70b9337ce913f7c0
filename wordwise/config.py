from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"

DEFAULTS = {
    "db_path": "progress.db",
    "corpus_files": [],
    "session_size": 20,
    "option_count": 4,
    "study_mode": "mixed",
    "difficulty_mode": "auto",
    "free_text": True,
}


@dataclass
class Settings:
    db_path: str = DEFAULTS["db_path"]
    corpus_files: list[str] = field(default_factory=lambda: list(DEFAULTS["corpus_files"]))
    session_size: int = DEFAULTS["session_size"]
    option_count: int = DEFAULTS["option_count"]
    study_mode: str = DEFAULTS["study_mode"]
    difficulty_mode: str = DEFAULTS["difficulty_mode"]
    free_text: bool = DEFAULTS["free_text"]

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parent.parent

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def db_full_path(self) -> Path:
        return self.project_root / self.db_path

    def resolved_corpus_files(self) -> list[Path]:
        if self.corpus_files:
            root = self.project_root
            return [root / f for f in self.corpus_files]
        return sorted(self.data_dir.glob("*.json"))

    def to_dict(self) -> dict:
        return {
            "db_path": self.db_path,
            "corpus_files": self.corpus_files,
            "session_size": self.session_size,
            "option_count": self.option_count,
            "study_mode": self.study_mode,
            "difficulty_mode": self.difficulty_mode,
            "free_text": self.free_text,
        }


def load_settings() -> Settings:
    if CONFIG_PATH.exists():
        raw = json.loads(CONFIG_PATH.read_text())
        known = {f.name for f in Settings.__dataclass_fields__.values()}
        filtered = {k: v for k, v in raw.items() if k in known}
        return Settings(**filtered)
    return Settings()


def save_settings(settings: Settings) -> None:
    CONFIG_PATH.write_text(json.dumps(settings.to_dict(), indent=4) + "\n")
