"""State-root bootstrap for file-backed storage."""

from __future__ import annotations

from pathlib import Path

from .file_repos import FileConfigRepository

SCHEMA_VERSION = 1
STATE_DIR_NAME = ".planboard"

STATE_FILES = {
    "tasks": "tasks.yaml",
    "plans": "plans.yaml",
    "users": "users.yaml",
    "events": "events.jsonl",
    "config": "config.yaml",
}

DEFAULT_CONFIG: dict[str, dict[str, object]] = {
    "planning": {"detect_cycles": False, "default_page_limit": 50, "max_page_limit": 200},
    "server": {"debug_errors": False},
}


def ensure_state_root(data_dir: Path) -> Path:
    """Create the state root with empty collections and seed configuration defaults."""
    state_root = data_dir / STATE_DIR_NAME
    state_root.mkdir(parents=True, exist_ok=True)

    for file_name in STATE_FILES.values():
        target = state_root / file_name
        if file_name.endswith(".yaml") and not target.exists():
            target.write_text(f"version: {SCHEMA_VERSION}\n", encoding="utf-8")
        if file_name.endswith(".jsonl") and not target.exists():
            target.touch()

    config_repo = FileConfigRepository(state_root / "config.yaml", state_root / "config.lock")
    config = config_repo.load()
    config.pop("version", None)
    config["schema_version"] = SCHEMA_VERSION
    for section, defaults in DEFAULT_CONFIG.items():
        current = config.get(section)
        merged = dict(defaults)
        if isinstance(current, dict):
            merged.update(current)
        config[section] = merged
    config_repo.save(config)

    return state_root
