"""Error types raised while reading, updating and closing out a task list."""

from __future__ import annotations

from enum import Enum


class MdtasksError(Exception):
    """Base class for every error the CLI reports as a plain message."""


class TaskListFormatError(MdtasksError):
    """The Markdown checklist cannot be mapped onto a two-level task tree."""

    def __init__(self, message: str, line_no: int = 0) -> None:
        self.line_no = line_no
        prefix = f"line {line_no}: " if line_no else ""
        super().__init__(f"{prefix}{message}")


class NotFoundError(MdtasksError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"No task with id {task_id}")


class AlreadyCompletedError(MdtasksError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} is already completed")


class NotALeafError(MdtasksError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(
            f"Task {task_id} has sub-tasks; complete those instead "
            f"(or run 'mdtasks close {task_id}' once they are done)"
        )


class NotAParentError(MdtasksError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} has no sub-tasks to close out")


class ApprovalRequiredError(MdtasksError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Approval required before starting {task_id}")


class VcsError(MdtasksError):
    """A git command exited non-zero."""


class Step(str, Enum):
    TEST = "test"
    STAGE = "stage"
    CLEANUP = "cleanup"
    COMMIT = "commit"


class ProtocolStepFailure(MdtasksError):
    """One completion-protocol step failed; the parent task stays pending."""

    def __init__(self, step: Step, cause: str | BaseException, task_id: str = "") -> None:
        self.step = step
        self.cause = cause
        self.task_id = task_id
        super().__init__(f"{step.value} step failed: {cause}")
