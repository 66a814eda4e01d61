"""Structural checks for a parsed task-list document."""

from __future__ import annotations

from mdtasks import log
from mdtasks.tasks.markdown import TASKS, TaskDocument
from mdtasks.tasks.model import TASK_ID_RE, major


def validate(doc: TaskDocument) -> list[str]:
    """Return a list of human-readable problems; empty when the document is usable."""
    errors: list[str] = []

    if doc.section(TASKS) is None:
        errors.append("Missing '## Tasks' section")
        return errors
    if not doc.tree.parents:
        errors.append("No tasks found under '## Tasks'")
        return errors

    seen: set[str] = set()
    for item in doc.tree:
        if item.id in seen:
            errors.append(f"Duplicate task id: {item.id}")
        seen.add(item.id)
        if not TASK_ID_RE.match(item.id):
            errors.append(f"Malformed task id {item.id!r} (expected N.M, e.g. 1.0 or 1.2)")
        if not item.description.strip():
            errors.append(f"Task {item.id} has no description")

    for parent in doc.tree.parents:
        for child in parent.children:
            if major(child.id) != major(parent.id):
                errors.append(f"Sub-task {child.id} is listed under parent {parent.id}")
        if parent.completed and any(not c.completed for c in parent.children):
            pending = ", ".join(c.id for c in parent.children if not c.completed)
            errors.append(f"Parent {parent.id} is checked but sub-tasks are pending: {pending}")

    return errors


def validate_and_report(doc: TaskDocument) -> bool:
    errors = validate(doc)
    for err in errors:
        log.error(err)
    if errors:
        return False
    done, total = doc.tree.counts()
    log.debug(f"Task list OK: {done}/{total} sub-tasks completed")
    return True
