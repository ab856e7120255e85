"""Unit tests for the configuration loader."""

import json
import pytest
from pathlib import Path

from timetrack.core.config import (
    get_data_directory,
    get_default_config,
    get_default_config_path,
    load_config,
    save_config,
)


# ------------------------------------------------------------------
# get_data_directory
# ------------------------------------------------------------------

def test_get_data_directory_macos(monkeypatch):
    monkeypatch.setattr("timetrack.core.config.sys.platform", "darwin")
    result = get_data_directory()
    assert result == Path.home() / "Library" / "Application Support" / "TimeTrack"


def test_get_data_directory_windows(monkeypatch):
    monkeypatch.setattr("timetrack.core.config.sys.platform", "win32")
    monkeypatch.setenv("APPDATA", "/fake/appdata")
    result = get_data_directory()
    assert result == Path("/fake/appdata") / "TimeTrack"


def test_get_data_directory_linux(monkeypatch):
    monkeypatch.setattr("timetrack.core.config.sys.platform", "linux")
    result = get_data_directory()
    assert result == Path.home() / ".timetrack"


def test_default_config_path_is_in_data_directory():
    assert get_default_config_path() == get_data_directory() / "config.json"


# ------------------------------------------------------------------
# get_default_config
# ------------------------------------------------------------------

def test_default_config_tracking_values():
    cfg = get_default_config()
    assert cfg["sample_interval_seconds"] == 2
    assert cfg["heartbeat_interval_seconds"] == 2
    assert cfg["checkpoint_interval_seconds"] == 30
    assert cfg["minimum_ai_confidence"] == 0.7
    assert cfg["title_similarity_shared_words"] == 2


def test_default_config_ollama_values():
    ollama = get_default_config()["ollama"]
    assert ollama["enabled"] is True
    assert ollama["base_url"] == "http://localhost:11434"
    assert ollama["model"] == "llama3.2:3b"
    assert ollama["timeout_seconds"] == 30


def test_default_database_in_data_directory():
    cfg = get_default_config()
    assert cfg["database_path"] == str(get_data_directory() / "timetrack.db")


# ------------------------------------------------------------------
# save_config / load_config
# ------------------------------------------------------------------

def test_save_and_load_round_trip(tmp_path):
    path = tmp_path / "config.json"
    cfg = get_default_config()
    cfg["dashboard_port"] = 6000
    save_config(cfg, path)
    assert load_config(path) == cfg


def test_save_creates_parent_directories(tmp_path):
    path = tmp_path / "a" / "b" / "config.json"
    save_config({"log_level": "DEBUG"}, path)
    assert path.exists()


def test_load_creates_default_when_missing(tmp_path):
    path = tmp_path / "config.json"
    cfg = load_config(path)
    assert cfg == get_default_config()
    assert json.loads(path.read_text(encoding="utf-8")) == cfg


def test_load_invalid_json_returns_defaults(tmp_path, caplog):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_config(path) == get_default_config()
    assert "Failed to load config" in caplog.text


def test_load_json_array_returns_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2]", encoding="utf-8")
    assert load_config(path) == get_default_config()


def test_load_fills_missing_keys(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"checkpoint_interval_seconds": 60}), encoding="utf-8")
    cfg = load_config(path)
    assert cfg["checkpoint_interval_seconds"] == 60
    assert cfg["sample_interval_seconds"] == 2


def test_load_merges_partial_ollama_section(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"ollama": {"model": "qwen2.5:7b"}}), encoding="utf-8")
    ollama = load_config(path)["ollama"]
    assert ollama["model"] == "qwen2.5:7b"
    assert ollama["base_url"] == "http://localhost:11434"
    assert ollama["enabled"] is True


@pytest.mark.parametrize("key, value", [
    ("checkpoint_interval_seconds", 0),
    ("sample_interval_seconds", "fast"),
    ("title_similarity_shared_words", True),
    ("minimum_ai_confidence", 1.5),
])
def test_load_replaces_invalid_values(tmp_path, caplog, key, value):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({key: value}), encoding="utf-8")
    cfg = load_config(path)
    assert cfg[key] == get_default_config()[key]
    assert f"Ignoring invalid {key}" in caplog.text
