"""Tests for configuration loading and saving."""
from __future__ import annotations

import json
from unittest.mock import patch

from wordwise.config import DEFAULTS, Settings, load_settings, save_settings


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.session_size == 20
        assert s.option_count == 4
        assert s.study_mode == "mixed"
        assert s.difficulty_mode == "auto"
        assert s.free_text is True

    def test_to_dict(self):
        d = Settings().to_dict()
        assert d["difficulty_mode"] == "auto"
        assert isinstance(d["corpus_files"], list)
        assert len(d) == len(DEFAULTS)

    def test_to_dict_roundtrip(self):
        s = Settings(difficulty_mode="hell", session_size=30)
        s2 = Settings(**s.to_dict())
        assert s2.difficulty_mode == "hell"
        assert s2.session_size == 30

    def test_corpus_files_default_to_data_dir(self, tmp_path):
        s = Settings()
        with patch.object(Settings, "project_root", tmp_path):
            (tmp_path / "data").mkdir()
            (tmp_path / "data" / "vocabulary.json").write_text("{}")
            (tmp_path / "data" / "phrases.json").write_text("{}")
            files = s.resolved_corpus_files()
        assert [f.name for f in files] == ["phrases.json", "vocabulary.json"]

    def test_explicit_corpus_files(self, tmp_path):
        s = Settings(corpus_files=["extra/words.json"])
        with patch.object(Settings, "project_root", tmp_path):
            files = s.resolved_corpus_files()
        assert files == [tmp_path / "extra" / "words.json"]

    def test_corpus_files_not_shared_between_instances(self):
        a, b = Settings(), Settings()
        a.corpus_files.append("x.json")
        assert b.corpus_files == []


class TestLoadSaveSettings:
    def test_load_from_file(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"difficulty_mode": "expert", "session_size": 30}))

        with patch("wordwise.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.difficulty_mode == "expert"
        assert s.session_size == 30
        # Defaults for unspecified fields
        assert s.study_mode == "mixed"

    def test_load_missing_file(self, tmp_path):
        with patch("wordwise.config.CONFIG_PATH", tmp_path / "nonexistent.json"):
            s = load_settings()
        assert s.difficulty_mode == "auto"

    def test_load_ignores_unknown_keys(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"session_size": 5, "llm_provider": "ollama"}))
        with patch("wordwise.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.session_size == 5

    def test_save_and_reload(self, tmp_path):
        config_path = tmp_path / "config.json"
        with patch("wordwise.config.CONFIG_PATH", config_path):
            save_settings(Settings(option_count=6, free_text=False))
            s = load_settings()
        assert config_path.exists()
        assert s.option_count == 6
        assert s.free_text is False
