"""Commit messages for a finished parent task (conventional-commit style)."""

from __future__ import annotations

from mdtasks.tasks.model import TaskItem

SUMMARY_MAX = 72


def _summary(text: str) -> str:
    text = " ".join(text.split()).rstrip(".")
    if text[:1].isupper() and not text[1:2].isupper():
        text = text[0].lower() + text[1:]
    return text


def build_commit_message(parent: TaskItem, commit_type: str = "feat", ticket: str = "") -> str:
    """Build the multi-line message for *parent*.

    ::

        feat: add login endpoint

        - Define request schema
        - Wire handler

        Related to AUTH-12 in PRD
    """
    subject = f"{commit_type}: {_summary(parent.description) or parent.id}"
    if len(subject) > SUMMARY_MAX:
        subject = subject[: SUMMARY_MAX - 3].rstrip() + "..."

    parts = [subject]
    bullets = [f"- {' '.join(c.description.split())}" for c in parent.children if c.description.strip()]
    if bullets:
        parts.append("\n".join(bullets))
    ticket = ticket.strip()
    if ticket:
        parts.append(f"Related to {ticket} in PRD")
    return "\n\n".join(parts)
