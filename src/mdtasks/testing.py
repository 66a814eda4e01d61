"""Project test runner: detect the project type and run its test command."""

from __future__ import annotations

import shlex
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from mdtasks import log


class ProjectType(str, Enum):
    MAVEN = "maven"
    GRADLE = "gradle"
    NPM = "npm"
    PYTHON = "python"
    GO = "go"
    CARGO = "cargo"
    CUSTOM = "custom"


# Checked in order; the first indicator present wins.
_INDICATORS: tuple[tuple[ProjectType, tuple[str, ...]], ...] = (
    (ProjectType.MAVEN, ("pom.xml",)),
    (ProjectType.GRADLE, ("build.gradle", "build.gradle.kts")),
    (ProjectType.NPM, ("package.json",)),
    (ProjectType.PYTHON, ("pyproject.toml", "setup.py", "setup.cfg", "pytest.ini")),
    (ProjectType.GO, ("go.mod",)),
    (ProjectType.CARGO, ("Cargo.toml",)),
)

_DEFAULT_COMMANDS: dict[ProjectType, str] = {
    ProjectType.MAVEN: "mvn test",
    ProjectType.GRADLE: "gradle test",
    ProjectType.NPM: "npm test",
    ProjectType.PYTHON: "pytest",
    ProjectType.GO: "go test ./...",
    ProjectType.CARGO: "cargo test",
}


@dataclass
class TestRunResult:
    __test__ = False

    passed: bool
    output: str = ""
    command: str = ""
    return_code: int = 0

    def tail(self, lines: int = 20) -> str:
        return "\n".join(self.output.strip().splitlines()[-lines:])


def detect_project_type(root: Path) -> ProjectType | None:
    for project_type, names in _INDICATORS:
        if any((root / name).is_file() for name in names):
            return project_type
    return None


def default_test_command(project_type: ProjectType, root: Path | None = None) -> str:
    """Return the conventional test command, or ``""`` for :attr:`ProjectType.CUSTOM`."""
    if project_type == ProjectType.GRADLE and root is not None and (root / "gradlew").is_file():
        return "./gradlew test"
    return _DEFAULT_COMMANDS.get(project_type, "")


class TestRunner(ABC):
    """Runs the project's test suite for the completion protocol."""

    __test__ = False

    @abstractmethod
    def run(self, project_type: ProjectType | None = None) -> TestRunResult:
        ...


class ShellTestRunner(TestRunner):
    """Test-runner collaborator that shells out to the project's test command.

    An explicit *command* always wins; otherwise the command is derived from
    the project type handed to :meth:`run`.
    """

    def __init__(self, cwd: Path, command: str = "", timeout: int = 0) -> None:
        self.cwd = cwd
        self.command = command
        self.timeout = timeout

    def resolve_command(self, project_type: ProjectType | None) -> str:
        if self.command:
            return self.command
        if project_type is None:
            project_type = detect_project_type(self.cwd)
        if project_type is None:
            return ""
        return default_test_command(project_type, self.cwd)

    def run(self, project_type: ProjectType | None = None) -> TestRunResult:
        command = self.resolve_command(project_type)
        if not command:
            return TestRunResult(
                passed=False,
                output="No test command configured and project type could not be detected",
                return_code=-1,
            )

        log.debug(f"Running tests: {command} (cwd={self.cwd})")
        try:
            r = subprocess.run(
                shlex.split(command),
                cwd=self.cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout or None,
            )
        except FileNotFoundError as exc:
            return TestRunResult(passed=False, output=str(exc), command=command, return_code=127)
        except subprocess.TimeoutExpired:
            return TestRunResult(
                passed=False,
                output=f"Test command timed out after {self.timeout}s",
                command=command,
                return_code=-1,
            )

        output = (r.stdout or "") + (r.stderr or "")
        return TestRunResult(
            passed=r.returncode == 0,
            output=output,
            command=command,
            return_code=r.returncode,
        )
