"""Configuration defaults, env vars, and runtime options for mdtasks."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

COMMIT_TYPES: tuple[str, ...] = ("feat", "fix", "refactor", "docs", "test", "chore")


def _env_list(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(os.pathsep) if item.strip()]


@dataclass
class Config:
    """Runtime configuration. CLI flags win over env vars, env vars over defaults."""

    # Task list
    tasks_file: str = ""

    # Completion protocol
    test_command: str = ""
    project_type: str = ""
    test_timeout: int = 0
    commit_type: str = "feat"
    ticket: str = ""
    prompt_for_ticket: bool = True
    temp_patterns: list[str] = field(default_factory=list)

    # Misc
    verbose: bool = False

    # Derived / runtime state (not user-set)
    repo_root: str = ""

    def __post_init__(self) -> None:
        if not self.tasks_file:
            self.tasks_file = os.environ.get("MDTASKS_FILE", "")
        if not self.test_command:
            self.test_command = os.environ.get("MDTASKS_TEST_COMMAND", "")
        if not self.ticket:
            self.ticket = os.environ.get("MDTASKS_TICKET", "")
        if not self.temp_patterns:
            self.temp_patterns = _env_list("MDTASKS_TEMP")
        if self.commit_type not in COMMIT_TYPES:
            raise ValueError(
                f"Unknown commit type {self.commit_type!r}; expected one of {', '.join(COMMIT_TYPES)}"
            )


def resolve_repo_root(cwd: Path | None = None) -> Path:
    """Return the git repository root, falling back to cwd."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
            cwd=cwd,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return cwd or Path.cwd()
