"""Completion protocol run when every sub-task of a parent task is done.

Steps run strictly in order and stop at the first failure::

    test -> stage -> cleanup -> commit

A failing step raises :class:`~mdtasks.errors.ProtocolStepFailure`
naming the step; nothing is retried.
"""

from __future__ import annotations

import shutil
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from mdtasks import log
from mdtasks.commit import build_commit_message
from mdtasks.errors import MdtasksError, ProtocolStepFailure, Step
from mdtasks.git_ops import VersionControl
from mdtasks.prompt import PromptChannel
from mdtasks.tasks.model import TaskItem
from mdtasks.testing import ProjectType, TestRunner

T = TypeVar("T")


@dataclass
class CleanupPolicy:
    """Which files count as temporary artifacts.

    Nothing is inferred: only explicit *paths*, glob *patterns* (relative to
    the repo root) and staged paths accepted by *predicate* are removed.
    """

    paths: list[str] = field(default_factory=list)
    patterns: list[str] = field(default_factory=list)
    predicate: Callable[[str], bool] | None = None

    def select(self, root: Path, staged: Iterable[str] = (), protected: Iterable[Path] = ()) -> list[str]:
        root = root.resolve()
        keep = {p.resolve() for p in protected}
        # (path, named explicitly)
        candidates: list[tuple[Path, bool]] = [(root / p, True) for p in self.paths]
        for pattern in self.patterns:
            candidates.extend((p, False) for p in sorted(root.glob(pattern)))
        if self.predicate is not None:
            candidates.extend((root / p, False) for p in staged if self.predicate(p))

        selected: list[str] = []
        for path, explicit in candidates:
            if not path.exists() and not path.is_symlink():
                continue
            resolved = path.resolve()
            if resolved in keep:
                continue
            try:
                rel = resolved.relative_to(root).as_posix()
            except ValueError:
                raise ValueError(f"refusing to remove {path}: outside {root}") from None
            if rel == ".git" or rel.startswith(".git/"):
                if explicit:
                    raise ValueError(f"refusing to remove {rel}")
                continue
            if rel == ".":
                raise ValueError(f"refusing to remove the repository root {root}")
            if rel not in selected:
                selected.append(rel)
        return selected


@dataclass
class ProtocolReport:
    parent_id: str
    test_command: str = ""
    test_output: str = ""
    staged: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    commit_message: str = ""
    commit_sha: str = ""


class CompletionProtocol:
    def __init__(
        self,
        tests: TestRunner,
        vcs: VersionControl,
        prompt: PromptChannel,
        *,
        repo_root: Path,
        project_type: ProjectType | None = None,
        cleanup: CleanupPolicy | None = None,
        commit_type: str = "feat",
        ticket: str = "",
        prompt_for_ticket: bool = True,
        protected: Iterable[Path] = (),
    ) -> None:
        self.tests = tests
        self.vcs = vcs
        self.prompt = prompt
        self.repo_root = repo_root
        self.project_type = project_type
        self.cleanup = cleanup or CleanupPolicy()
        self.commit_type = commit_type
        self.ticket = ticket
        self.prompt_for_ticket = prompt_for_ticket
        self._ticket_asked = False
        self.protected = list(protected)

    def run(self, parent: TaskItem) -> ProtocolReport:
        report = ProtocolReport(parent_id=parent.id)
        log.info(f"All sub-tasks of {parent.id} are done; running completion protocol")

        try:
            self._step(Step.TEST, lambda: self._run_tests(report))
            report.staged = self._step(Step.STAGE, self.vcs.stage_all)
            log.step(Step.STAGE.value, f"{len(report.staged)} path(s) staged")
            report.removed = self._step(Step.CLEANUP, lambda: self._remove_artifacts(report.staged))
            report.commit_message, report.commit_sha = self._step(Step.COMMIT, lambda: self._commit(parent))
        except ProtocolStepFailure as exc:
            exc.task_id = parent.id
            raise

        short = report.commit_sha[:8] or "?"
        log.step(Step.COMMIT.value, f"{short} {report.commit_message.splitlines()[0]}")
        return report

    @staticmethod
    def _step(step: Step, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except ProtocolStepFailure:
            raise
        except (MdtasksError, OSError, ValueError) as exc:
            log.debug(f"{step.value} step raised {type(exc).__name__}: {exc}")
            raise ProtocolStepFailure(step, exc) from exc

    # ── steps ────────────────────────────────────────────────────

    def _run_tests(self, report: ProtocolReport) -> None:
        result = self.tests.run(self.project_type)
        report.test_command = result.command
        report.test_output = result.output
        if not result.passed:
            label = result.command or "tests"
            cause = f"{label} exited with code {result.return_code}"
            tail = result.tail()
            if tail:
                cause = f"{cause}\n{tail}"
            raise ProtocolStepFailure(Step.TEST, cause)
        log.step(Step.TEST.value, f"{result.command} passed")

    def _remove_artifacts(self, staged: list[str]) -> list[str]:
        doomed = self.cleanup.select(self.repo_root, staged, self.protected)
        if not doomed:
            log.debug("No temporary artifacts to remove")
            return []
        for rel in doomed:
            path = self.repo_root / rel
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
            log.debug(f"Removed {rel}")
        self.vcs.unstage(doomed)
        log.step(Step.CLEANUP.value, f"removed {', '.join(doomed)}")
        return doomed

    def _resolve_ticket(self, parent: TaskItem) -> str:
        if self.ticket or self._ticket_asked or not self.prompt_for_ticket:
            return self.ticket
        answer = self.prompt.ask(f"Ticket id for {parent.id} commit (blank for none):")
        self.ticket = answer.strip()
        self._ticket_asked = True
        return self.ticket

    def _commit(self, parent: TaskItem) -> tuple[str, str]:
        message = build_commit_message(parent, self.commit_type, self._resolve_ticket(parent))
        return message, self.vcs.commit(message)
