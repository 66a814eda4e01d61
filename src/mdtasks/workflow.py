"""TaskListWorkflow: one-sub-task-at-a-time progression over a task-list document.

Usage::

    wf = TaskListWorkflow(doc, protocol, prompt, save=save_document)
    item = wf.get_next_pending()       # first pending sub-task, document order
    wf.mark_complete(item.id)          # check it off; may close the parent
    if wf.request_approval():          # gate: explicit "yes" before the next one
        ...
"""

from __future__ import annotations

from collections.abc import Callable

from mdtasks import log
from mdtasks.errors import (
    AlreadyCompletedError,
    ApprovalRequiredError,
    NotALeafError,
    NotAParentError,
)
from mdtasks.prompt import PromptChannel, is_affirmative
from mdtasks.protocol import CompletionProtocol, ProtocolReport
from mdtasks.tasks.markdown import TaskDocument
from mdtasks.tasks.model import TaskItem, TaskStatus, TaskTree

SaveFn = Callable[[TaskDocument], object]


class TaskListWorkflow:
    def __init__(
        self,
        doc: TaskDocument,
        protocol: CompletionProtocol,
        prompt: PromptChannel,
        *,
        save: SaveFn | None = None,
    ) -> None:
        self.doc = doc
        self.protocol = protocol
        self.prompt = prompt
        self._save = save

    @property
    def tree(self) -> TaskTree:
        return self.doc.tree

    @property
    def gate_open(self) -> bool:
        """Closed after each completion until approved; the state lives in the document."""
        return not self.doc.awaiting_approval

    def _persist(self) -> None:
        if self._save is not None:
            self._save(self.doc)

    # ── queries ──────────────────────────────────────────────────

    def get_next_pending(self) -> TaskItem | None:
        for leaf in self.tree.leaves():
            if not leaf.completed:
                return leaf
        return None

    # ── gate ─────────────────────────────────────────────────────

    def request_approval(self, question: str | None = None) -> bool:
        if question is None:
            nxt = self.get_next_pending()
            target = f"{nxt.id} {nxt.description}" if nxt else "the next step"
            question = f"Proceed with {target}? [y/N]"
        approved = is_affirmative(self.prompt.ask(question))
        if approved and self.doc.awaiting_approval:
            self.doc.awaiting_approval = False
            self._persist()
        log.debug(f"Approval {'granted' if approved else 'withheld'}")
        return approved

    # ── transitions ──────────────────────────────────────────────

    def mark_complete(self, task_id: str) -> ProtocolReport | None:
        """Check off sub-task *task_id*; returns the protocol report if its parent closed."""
        item = self.tree.get(task_id)
        if item.completed:
            raise AlreadyCompletedError(task_id)
        if not item.is_leaf:
            raise NotALeafError(task_id)
        if not self.gate_open:
            raise ApprovalRequiredError(task_id)

        parent = self.tree.parent_of(task_id)
        if parent is None:
            # Top-level task without sub-tasks: it is its own parent.
            report = self.protocol.run(item)
            item.status = TaskStatus.COMPLETED
            self.doc.awaiting_approval = True
            self._persist()
            log.success(f"Task {task_id} completed")
            return report

        item.status = TaskStatus.COMPLETED
        self.doc.awaiting_approval = True
        self._persist()
        log.success(f"Sub-task {task_id} completed")
        return self.check_parent_completion(parent.id)

    def check_parent_completion(self, parent_id: str) -> ProtocolReport | None:
        """Close *parent_id* through the completion protocol once all its sub-tasks are done.

        Returns ``None`` while a sub-task is still pending. A failing protocol
        step propagates as :class:`~mdtasks.errors.ProtocolStepFailure` and the
        parent stays pending.
        """
        parent = self.tree.get(parent_id)
        if parent.completed:
            raise AlreadyCompletedError(parent_id)
        if parent.is_leaf:
            raise NotAParentError(parent_id)
        if not parent.all_children_completed():
            remaining = [c.id for c in parent.children if not c.completed]
            log.debug(f"Parent {parent_id} still has pending sub-tasks: {', '.join(remaining)}")
            return None

        report = self.protocol.run(parent)
        parent.status = TaskStatus.COMPLETED
        self._persist()
        log.success(f"Parent task {parent_id} completed")
        return report

    # ── ledger ───────────────────────────────────────────────────

    def record_file(self, path: str, description: str) -> None:
        self.doc.ledger.record(path, description)
        self._persist()

