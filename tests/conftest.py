"""Shared fixtures for mdtasks tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- Use mdtasks.io_utils read_text/write_text for consistent UTF-8 I/O.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path
from types import SimpleNamespace

import pytest

from mdtasks.errors import VcsError
from mdtasks.git_ops import VersionControl
from mdtasks.io_utils import write_text
from mdtasks.prompt import PromptChannel
from mdtasks.protocol import CleanupPolicy, CompletionProtocol
from mdtasks.tasks.markdown import load_document, save_document
from mdtasks.testing import ProjectType, TestRunner, TestRunResult
from mdtasks.workflow import TaskListWorkflow

SAMPLE = """\
# Tasks for prd-user-auth

## Relevant Files

- `src/auth.py` - Login and session handling.

### Notes

- Run tests with pytest.

## Tasks

- [ ] 1.0 Add login endpoint
  - [ ] 1.1 Define request schema
  - [ ] 1.2 Wire handler
- [ ] 2.0 Add logout
  - [x] 2.1 Clear session
  - [ ] 2.2 Redirect home
"""


# ── fake collaborators ───────────────────────────────────────────────


class FakeTests(TestRunner):
    def __init__(self, passed: bool = True, output: str = "3 passed") -> None:
        self.passed = passed
        self.output = output
        self.calls: list[ProjectType | None] = []

    def run(self, project_type: ProjectType | None = None) -> TestRunResult:
        self.calls.append(project_type)
        return TestRunResult(
            passed=self.passed,
            output=self.output,
            command="fake-test",
            return_code=0 if self.passed else 1,
        )


class FakeVcs(VersionControl):
    def __init__(self, staged: Sequence[str] = (), fail_on: str = "") -> None:
        self.staged = list(staged)
        self.fail_on = fail_on
        self.calls: list[str] = []
        self.unstaged: list[str] = []
        self.commits: list[str] = []

    def stage_all(self) -> list[str]:
        self.calls.append("stage")
        if self.fail_on == "stage":
            raise VcsError("git add failed: index.lock exists")
        return list(self.staged)

    def unstage(self, paths: Sequence[str]) -> None:
        self.calls.append("unstage")
        self.unstaged.extend(paths)

    def commit(self, message: str) -> str:
        self.calls.append("commit")
        if self.fail_on == "commit":
            raise VcsError("git commit failed: nothing to commit")
        self.commits.append(message)
        return "abc1234def5678"


class ScriptedPrompt(PromptChannel):
    def __init__(self, answers: Sequence[str] = ()) -> None:
        self.answers = list(answers)
        self.questions: list[str] = []

    def ask(self, question: str) -> str:
        self.questions.append(question)
        return self.answers.pop(0) if self.answers else ""


@pytest.fixture
def fakes() -> SimpleNamespace:
    """The fake collaborator classes, for tests that wire a protocol by hand."""
    return SimpleNamespace(Tests=FakeTests, Vcs=FakeVcs, Prompt=ScriptedPrompt)


# ── repos and documents ──────────────────────────────────────────────


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a minimal git repo for testing."""
    subprocess.run(["git", "init"], cwd=tmp_path, capture_output=True, check=True)
    subprocess.run(
        ["git", "config", "user.name", "Test"], cwd=tmp_path, capture_output=True
    )
    subprocess.run(
        ["git", "config", "user.email", "test@test"], cwd=tmp_path, capture_output=True
    )
    subprocess.run(
        ["git", "config", "commit.gpgsign", "false"], cwd=tmp_path, capture_output=True
    )
    write_text(tmp_path / "README.md", "# Test")
    subprocess.run(["git", "add", "README.md"], cwd=tmp_path, capture_output=True)
    subprocess.run(
        ["git", "commit", "-m", "Initial"], cwd=tmp_path, capture_output=True
    )
    return tmp_path


@pytest.fixture
def sample_text() -> str:
    return SAMPLE


@pytest.fixture
def task_file(tmp_path: Path):
    """Factory: write a task list under tmp_path/tasks and return its path."""

    def _write(text: str = SAMPLE, name: str = "tasks-prd-user-auth.md", root: Path | None = None) -> Path:
        path = (root or tmp_path) / "tasks" / name
        write_text(path, text)
        return path

    return _write


@pytest.fixture
def make_workflow(tmp_path: Path, task_file):
    """Factory: a TaskListWorkflow over a saved document, wired to fake collaborators."""

    def _make(
        text: str = SAMPLE,
        *,
        tests_pass: bool = True,
        test_output: str = "3 passed",
        staged: Sequence[str] = (),
        vcs_fail_on: str = "",
        answers: Sequence[str] = (),
        cleanup: CleanupPolicy | None = None,
        ticket: str = "AUTH-12",
        prompt_for_ticket: bool = True,
    ) -> TaskListWorkflow:
        path = task_file(text)
        doc = load_document(path)
        prompt = ScriptedPrompt(answers)
        protocol = CompletionProtocol(
            FakeTests(passed=tests_pass, output=test_output),
            FakeVcs(staged=staged, fail_on=vcs_fail_on),
            prompt,
            repo_root=tmp_path,
            cleanup=cleanup,
            ticket=ticket,
            prompt_for_ticket=prompt_for_ticket,
            protected=[path],
        )
        return TaskListWorkflow(doc, protocol, prompt, save=save_document)

    return _make
