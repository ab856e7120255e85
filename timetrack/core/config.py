"""TimeTrack configuration (config.json).

The file lives in the per-user data directory:
  - macOS:   ~/Library/Application Support/TimeTrack
  - Windows: %APPDATA%/TimeTrack
  - Other:   ~/.timetrack

Unknown keys are kept as-is; known keys missing from the file, or with
values of the wrong kind, fall back to the defaults below.
"""

import copy
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

APP_DIR_NAME = "TimeTrack"
CONFIG_FILENAME = "config.json"
DATABASE_FILENAME = "timetrack.db"

_TRACKING_DEFAULTS: dict[str, Any] = {
    "sample_interval_seconds": 2,
    "heartbeat_interval_seconds": 2,
    "checkpoint_interval_seconds": 30,
    "minimum_ai_confidence": 0.7,
    "title_similarity_shared_words": 2,
}

_OLLAMA_DEFAULTS: dict[str, Any] = {
    "enabled": True,
    "base_url": "http://localhost:11434",
    "model": "llama3.2:3b",
    "timeout_seconds": 30,
}

# Keys that must hold a positive number.
_POSITIVE_NUMBERS = (
    "sample_interval_seconds",
    "heartbeat_interval_seconds",
    "checkpoint_interval_seconds",
    "title_similarity_shared_words",
)


def get_data_directory() -> Path:
    """Per-user directory holding config.json and the database."""
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    if sys.platform == "win32":
        roaming = os.environ.get("APPDATA")
        root = Path(roaming) if roaming else Path.home() / "AppData" / "Roaming"
        return root / APP_DIR_NAME
    return Path.home() / ".timetrack"


def get_default_config_path() -> Path:
    return get_data_directory() / CONFIG_FILENAME


def get_default_config() -> dict[str, Any]:
    """Fresh copy of the defaults; callers may mutate it."""
    config = copy.deepcopy(_TRACKING_DEFAULTS)
    config["ollama"] = copy.deepcopy(_OLLAMA_DEFAULTS)
    config["dashboard_port"] = 5556
    config["log_level"] = "INFO"
    config["database_path"] = str(get_data_directory() / DATABASE_FILENAME)
    return config


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    """Read config.json, creating it with defaults on first run.

    A file that cannot be read or does not hold a JSON object is logged
    and ignored (defaults are returned, the file is left untouched).
    """
    config_path = Path(path) if path is not None else get_default_config_path()

    if not config_path.exists():
        logger.info("No config at %s; writing defaults", config_path)
        config = get_default_config()
        save_config(config, config_path)
        return config

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("Failed to load config from %s: %s; using defaults", config_path, exc)
        return get_default_config()
    if not isinstance(data, dict):
        logger.error("Failed to load config from %s: expected a JSON object; using defaults", config_path)
        return get_default_config()

    return _merge_defaults(data)


def save_config(config: dict[str, Any], path: str | Path | None = None) -> None:
    """Write *config* as indented JSON, creating missing directories."""
    config_path = Path(path) if path is not None else get_default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        json.dumps(config, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )


def _merge_defaults(data: dict[str, Any]) -> dict[str, Any]:
    merged = get_default_config()
    for key, value in data.items():
        if key == "ollama" and isinstance(value, dict):
            merged["ollama"].update(value)
        else:
            merged[key] = value

    for key in _POSITIVE_NUMBERS:
        if not _is_positive_number(merged[key]):
            logger.warning("Ignoring invalid %s=%r", key, merged[key])
            merged[key] = _TRACKING_DEFAULTS[key]

    confidence = merged["minimum_ai_confidence"]
    if not _is_number(confidence) or not 0.0 <= confidence <= 1.0:
        logger.warning("Ignoring invalid minimum_ai_confidence=%r", confidence)
        merged["minimum_ai_confidence"] = _TRACKING_DEFAULTS["minimum_ai_confidence"]

    return merged


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_positive_number(value: Any) -> bool:
    return _is_number(value) and value > 0
