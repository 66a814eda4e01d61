"""Git operations used by the completion protocol: stage, unstage, commit."""

from __future__ import annotations

import subprocess
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from mdtasks import log
from mdtasks.errors import VcsError


def _git(*args: str, cwd: Path | None = None, check: bool = False) -> subprocess.CompletedProcess[str]:
    """Run a git command with captured output."""
    return subprocess.run(
        ["git", *args],
        capture_output=True,
        text=True,
        cwd=cwd,
        check=check,
    )


def _lines(out: str) -> list[str]:
    return [line.strip() for line in out.splitlines() if line.strip()]


def _explain(r: subprocess.CompletedProcess[str]) -> str:
    return (r.stderr.strip() or r.stdout.strip() or f"exit code {r.returncode}")


def is_repo(cwd: Path | None = None) -> bool:
    r = _git("rev-parse", "--is-inside-work-tree", cwd=cwd)
    return r.returncode == 0 and r.stdout.strip() == "true"


def head_sha(cwd: Path | None = None) -> str:
    r = _git("rev-parse", "HEAD", cwd=cwd)
    return r.stdout.strip() if r.returncode == 0 else ""


def staged_files(cwd: Path | None = None) -> list[str]:
    r = _git("diff", "--cached", "--name-only", cwd=cwd)
    if r.returncode != 0:
        return []
    return _lines(r.stdout)


def stage_all(cwd: Path | None = None) -> None:
    r = _git("add", "-A", cwd=cwd)
    if r.returncode != 0:
        raise VcsError(f"git add failed: {_explain(r)}")


def unstage(paths: Sequence[str], cwd: Path | None = None) -> None:
    """Drop *paths* from the index (recursively for directories)."""
    if not paths:
        return
    r = _git("rm", "--cached", "-r", "--quiet", "--ignore-unmatch", "--", *paths, cwd=cwd)
    if r.returncode != 0:
        raise VcsError(f"git rm --cached failed: {_explain(r)}")


def commit(message: str, cwd: Path | None = None) -> str:
    """Commit the index with *message* and return the new HEAD sha."""
    r = _git("commit", "-m", message, cwd=cwd)
    if r.returncode != 0:
        raise VcsError(f"git commit failed: {_explain(r)}")
    return head_sha(cwd=cwd)


# ── Collaborator used by the completion protocol ─────────────────────


class VersionControl(ABC):
    @abstractmethod
    def stage_all(self) -> list[str]:
        """Stage every change and return the staged paths."""

    @abstractmethod
    def unstage(self, paths: Sequence[str]) -> None:
        ...

    @abstractmethod
    def commit(self, message: str) -> str:
        """Commit the index and return the new revision id."""


class GitVersionControl(VersionControl):
    """Version-control collaborator backed by the ``git`` CLI in *repo_root*."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = repo_root

    def stage_all(self) -> list[str]:
        if not is_repo(cwd=self.repo_root):
            raise VcsError(f"{self.repo_root} is not inside a git repository")
        stage_all(cwd=self.repo_root)
        paths = staged_files(cwd=self.repo_root)
        log.debug(f"Staged {len(paths)} path(s)")
        return paths

    def unstage(self, paths: Sequence[str]) -> None:
        unstage(paths, cwd=self.repo_root)

    def commit(self, message: str) -> str:
        return commit(message, cwd=self.repo_root)
