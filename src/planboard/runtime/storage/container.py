"""Dependency container for repositories."""

from __future__ import annotations

from pathlib import Path

from .bootstrap import ensure_state_root
from .file_repos import (
    FileConfigRepository,
    FileEventRepository,
    FilePlanRepository,
    FileTaskRepository,
    FileUserRepository,
)


class Container:
    """Wire file-backed repositories and runtime settings for one data directory."""

    def __init__(self, data_dir: Path) -> None:
        """Initialize the Container.

        Args:
            data_dir (Path): Directory holding the ``.planboard`` state root.
        """
        self.data_dir = data_dir.resolve()
        self.state_root = ensure_state_root(self.data_dir)

        self.tasks = FileTaskRepository(self.state_root / "tasks.yaml", self.state_root / "tasks.lock")
        self.plans = FilePlanRepository(self.state_root / "plans.yaml", self.state_root / "plans.lock")
        self.users = FileUserRepository(self.state_root / "users.yaml", self.state_root / "users.lock")
        self.events = FileEventRepository(self.state_root / "events.jsonl", self.state_root / "events.lock")
        self.config = FileConfigRepository(self.state_root / "config.yaml", self.state_root / "config.lock")
