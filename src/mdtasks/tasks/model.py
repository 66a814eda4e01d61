"""TaskItem and TaskTree: the two-level checklist held by a task-list document."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from mdtasks.errors import NotFoundError

TASK_ID_RE = re.compile(r"^\d+\.\d+$")


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass
class TaskItem:
    id: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    children: list[TaskItem] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def all_children_completed(self) -> bool:
        return bool(self.children) and all(c.completed for c in self.children)


def major(task_id: str) -> str:
    """Leading number of a dotted id: ``"3"`` for ``"3.2"``."""
    return task_id.split(".", 1)[0]


@dataclass
class TaskTree:
    """Ordered parent tasks, each owning its ordered sub-tasks."""

    parents: list[TaskItem] = field(default_factory=list)

    def __iter__(self):
        """Walk every item in document order (parent, then its children)."""
        for parent in self.parents:
            yield parent
            yield from parent.children

    def find(self, task_id: str) -> TaskItem | None:
        for item in self:
            if item.id == task_id:
                return item
        return None

    def get(self, task_id: str) -> TaskItem:
        item = self.find(task_id)
        if item is None:
            raise NotFoundError(task_id)
        return item

    def parent_of(self, task_id: str) -> TaskItem | None:
        for parent in self.parents:
            for child in parent.children:
                if child.id == task_id:
                    return parent
        return None

    def leaves(self) -> list[TaskItem]:
        """Units of work in document order; a childless parent is its own leaf."""
        out: list[TaskItem] = []
        for parent in self.parents:
            if parent.children:
                out.extend(parent.children)
            else:
                out.append(parent)
        return out

    def pending_leaves(self) -> list[TaskItem]:
        return [t for t in self.leaves() if not t.completed]

    def unclosed_parents(self) -> list[TaskItem]:
        """Parents whose sub-tasks are all done but which are still pending."""
        return [p for p in self.parents if not p.completed and p.all_children_completed()]

    def counts(self) -> tuple[int, int]:
        leaves = self.leaves()
        return sum(1 for t in leaves if t.completed), len(leaves)

    # ── building ─────────────────────────────────────────────────

    def add_parent(self, description: str) -> TaskItem:
        numbers = [int(major(p.id)) for p in self.parents if major(p.id).isdigit()]
        item = TaskItem(id=f"{max(numbers, default=0) + 1}.0", description=description)
        self.parents.append(item)
        return item

    def add_subtask(self, parent_id: str, description: str) -> TaskItem:
        parent = next((p for p in self.parents if p.id == parent_id), None)
        if parent is None:
            raise NotFoundError(parent_id)
        minors = []
        for child in parent.children:
            tail = child.id.split(".", 1)[-1]
            if tail.isdigit():
                minors.append(int(tail))
        item = TaskItem(
            id=f"{major(parent.id)}.{max(minors, default=0) + 1}",
            description=description,
        )
        parent.children.append(item)
        # A newly added sub-task reopens its parent.
        parent.status = TaskStatus.PENDING
        return item
