"""Shared test fixtures."""

import os
from pathlib import Path

import pytest

import spacemap.settings as settings_store


def write_file(path: Path, size: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    return path


def write_bytes_named(directory: Path, *parts: bytes, size: int) -> bytes:
    """Create a file whose path components are raw, possibly non-UTF-8, bytes."""
    path = os.path.join(os.fsencode(str(directory)), *parts)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(b"x" * size)
    return path


@pytest.fixture(autouse=True)
def isolate_config(tmp_path, monkeypatch):
    """Redirect settings and cache files to a temp directory."""
    config_dir = tmp_path / "spacemap_home"
    monkeypatch.setattr(settings_store, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(settings_store, "SETTINGS_FILE", config_dir / "settings.json")
    monkeypatch.setattr(settings_store, "CACHE_FILE", config_dir / "disk-cache.json")
    return config_dir


@pytest.fixture
def data_dir(tmp_path):
    """data/ with a.txt (100 B), b.txt (50 B) and sub/c.txt (25 B)."""
    root = tmp_path / "data"
    write_file(root / "a.txt", 100)
    write_file(root / "b.txt", 50)
    write_file(root / "sub" / "c.txt", 25)
    return root
