"""Settings persistence for spacemap."""

import json
import logging
import os
from typing import Any

from pydantic import ValidationError

from spacemap.models import Settings
from spacemap.paths import expand_path

log = logging.getLogger(__name__)

CONFIG_DIR = expand_path(os.environ.get("SPACEMAP_HOME", "~/.spacemap"))
SETTINGS_FILE = CONFIG_DIR / "settings.json"
CACHE_FILE = CONFIG_DIR / "disk-cache.json"


def load_settings() -> Settings:
    """Load settings from disk, falling back to defaults."""
    if not SETTINGS_FILE.exists():
        return Settings()

    try:
        with open(SETTINGS_FILE, encoding="utf-8") as f:
            return Settings.model_validate(json.load(f))
    except (json.JSONDecodeError, ValidationError, OSError) as e:
        log.warning("Ignoring unreadable settings file %s: %s", SETTINGS_FILE, e)
        return Settings()


def save_settings(settings: Settings) -> bool:
    """Save settings to disk. Returns False if the file could not be written."""
    try:
        SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = SETTINGS_FILE.with_name(SETTINGS_FILE.name + ".tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            f.write(settings.model_dump_json(indent=2))
        os.replace(tmp_file, SETTINGS_FILE)
        return True
    except OSError as e:
        log.error("Failed to save settings to %s: %s", SETTINGS_FILE, e)
        return False


def update_settings(**changes: Any) -> Settings:
    """
    Apply changes to the stored settings and save them.

    Raises:
        ValueError: if a key is unknown or a value does not validate
    """
    unknown = set(changes) - set(Settings.model_fields)
    if unknown:
        raise ValueError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

    current = load_settings()
    try:
        updated = Settings.model_validate({**current.model_dump(), **changes})
    except ValidationError as e:
        raise ValueError(str(e)) from e

    if not save_settings(updated):
        raise ValueError(f"Could not write {SETTINGS_FILE}")
    return updated
