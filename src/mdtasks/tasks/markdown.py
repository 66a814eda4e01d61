"""Markdown task-list documents: parse, render, load and save.

A document looks like::

    # Tasks for prd-user-auth

    ## Relevant Files

    - `src/auth.py` - Login and session handling.

    ### Notes

    - Run the suite with `pytest`.

    ## Tasks

    - [ ] 1.0 Add login endpoint
      - [x] 1.1 Define request schema
      - [ ] 1.2 Wire handler

Only the "Relevant Files" bullets and the "Tasks" checklist are
structured; every other line is carried through verbatim. While a
checked-off sub-task waits for approval of the next one, the Tasks
section ends with an ``<!-- mdtasks: awaiting approval -->`` comment.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from mdtasks.errors import TaskListFormatError
from mdtasks.io_utils import read_text, write_text
from mdtasks.tasks.ledger import RelevantFilesLedger
from mdtasks.tasks.model import TaskItem, TaskStatus, TaskTree

RELEVANT_FILES = "relevant files"
TASKS = "tasks"

_SECTION_RE = re.compile(r"^##\s+(?P<title>.+?)\s*#*\s*$")
_LEDGER_RE = re.compile(
    r"^[-*]\s+(?:`(?P<quoted>[^`]+)`|(?P<plain>\S+))"
    r"(?:\s+[-–—]\s+(?P<desc>.*?))?\s*$"
)
_CHECKBOX_RE = re.compile(r"^(?P<indent>[ \t]*)[-*]\s+\[(?P<mark>[ xX])\]\s*(?P<rest>.*)$")
_TASK_RE = re.compile(r"^(?P<id>\d+(?:\.\d+)*)\.?(?:\s+(?P<desc>.*?))?\s*$")

GATE_MARKER = "<!-- mdtasks: awaiting approval -->"


@dataclass
class Section:
    """A ``## `` section. For the structured ones, *lines* holds the free text around them."""

    title: str
    lines: list[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.title.strip().lower()


@dataclass
class TaskDocument:
    preamble: list[str] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    ledger: RelevantFilesLedger = field(default_factory=RelevantFilesLedger)
    tree: TaskTree = field(default_factory=TaskTree)
    path: Path | None = None
    # A sub-task was checked off and the next one has not been approved yet.
    awaiting_approval: bool = False

    def section(self, key: str) -> Section | None:
        for s in self.sections:
            if s.key == key:
                return s
        return None

    def ensure_sections(self) -> None:
        """Add the "Relevant Files" / "Tasks" headings when content needs them."""
        tasks = self.section(TASKS)
        if self.tree.parents and tasks is None:
            tasks = Section("Tasks")
            self.sections.append(tasks)
        if len(self.ledger) and self.section(RELEVANT_FILES) is None:
            idx = self.sections.index(tasks) if tasks is not None else len(self.sections)
            self.sections.insert(idx, Section("Relevant Files"))


# ── parsing ──────────────────────────────────────────────────────────


def _split_sections(lines: list[str]) -> tuple[list[str], list[tuple[Section, int]]]:
    preamble: list[str] = []
    sections: list[tuple[Section, int]] = []
    for no, line in enumerate(lines, start=1):
        m = _SECTION_RE.match(line)
        if m:
            sections.append((Section(m.group("title")), no))
        elif sections:
            sections[-1][0].lines.append(line)
        else:
            preamble.append(line)
    return preamble, sections


def _parse_ledger(section: Section) -> RelevantFilesLedger:
    ledger = RelevantFilesLedger()
    body = section.lines
    i = 0
    while i < len(body):
        line = body[i]
        if not line.strip():
            i += 1
            continue
        m = _LEDGER_RE.match(line)
        if not m:
            break
        ledger.record(m.group("quoted") or m.group("plain"), m.group("desc") or "")
        i += 1
    section.lines = body[i:]
    return ledger


def _parse_tasks(section: Section, first_line_no: int) -> TaskTree:
    tree = TaskTree()
    prefix: list[str] = []
    current: TaskItem | None = None
    last: TaskItem | None = None
    child_indent = 0
    seen: dict[str, int] = {}
    blanks = 0

    for offset, line in enumerate(section.lines, start=1):
        line_no = first_line_no + offset
        box = _CHECKBOX_RE.match(line)
        if box is None:
            if not line.strip():
                blanks += 1
                continue
            # Blank lines only survive between two lines of free text.
            text = prefix if last is None else last.notes
            if text:
                text.extend([""] * blanks)
            text.append(line)
            blanks = 0
            continue
        blanks = 0

        tm = _TASK_RE.match(box.group("rest"))
        if tm is None:
            raise TaskListFormatError(f"checklist item without a task id: {line.strip()!r}", line_no)
        if tm.group("id") in seen:
            raise TaskListFormatError(
                f"duplicate task id {tm.group('id')} (first used on line {seen[tm.group('id')]})", line_no
            )
        seen[tm.group("id")] = line_no

        item = TaskItem(
            id=tm.group("id"),
            description=tm.group("desc") or "",
            status=TaskStatus.PENDING if box.group("mark") == " " else TaskStatus.COMPLETED,
        )
        indent = len(box.group("indent").expandtabs(4))
        if indent == 0:
            tree.parents.append(item)
            current = item
            child_indent = 0
        else:
            if current is None:
                raise TaskListFormatError(f"sub-task {item.id} appears before any parent task", line_no)
            if not child_indent:
                child_indent = indent
            elif indent > child_indent:
                raise TaskListFormatError(
                    f"task {item.id} is nested deeper than two levels", line_no
                )
            current.children.append(item)
        last = item

    section.lines = prefix
    return tree


def parse_document(text: str) -> TaskDocument:
    """Parse a task-list document. Raises :class:`TaskListFormatError` on a broken checklist."""
    preamble, located = _split_sections(text.splitlines())
    doc = TaskDocument(preamble=preamble, sections=[s for s, _ in located])

    seen_ledger = seen_tasks = False
    for section, line_no in located:
        if section.key == RELEVANT_FILES and not seen_ledger:
            doc.ledger = _parse_ledger(section)
            seen_ledger = True
        elif section.key == TASKS and not seen_tasks:
            # The marker line is blanked rather than removed so line numbers stay put.
            if any(line.strip() == GATE_MARKER for line in section.lines):
                doc.awaiting_approval = True
                section.lines = ["" if line.strip() == GATE_MARKER else line for line in section.lines]
            doc.tree = _parse_tasks(section, line_no)
            seen_tasks = True
    return doc


# ── rendering ────────────────────────────────────────────────────────


def _trim(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def _render_item(item: TaskItem, indent: str) -> list[str]:
    mark = "x" if item.completed else " "
    out = [f"{indent}- [{mark}] {item.id} {item.description}".rstrip()]
    out.extend(item.notes)
    return out


def render_tasks(tree: TaskTree) -> str:
    lines: list[str] = []
    for parent in tree.parents:
        lines.extend(_render_item(parent, ""))
        for child in parent.children:
            lines.extend(_render_item(child, "  "))
    return "\n".join(lines)


def render_document(doc: TaskDocument) -> str:
    doc.ensure_sections()
    out: list[str] = []
    preamble = _trim(doc.preamble)
    if preamble:
        out.extend(preamble)
        out.append("")

    ledger_done = tasks_done = False
    for section in doc.sections:
        out.append(f"## {section.title}")
        out.append("")
        body = _trim(section.lines)
        if section.key == RELEVANT_FILES and not ledger_done:
            ledger_done = True
            if len(doc.ledger):
                out.append(doc.ledger.render())
                if body:
                    out.append("")
            out.extend(body)
        elif section.key == TASKS and not tasks_done:
            tasks_done = True
            if body:
                out.extend(body)
                out.append("")
            if doc.tree.parents:
                out.append(render_tasks(doc.tree))
            if doc.awaiting_approval:
                out.extend(["", GATE_MARKER])
        else:
            out.extend(body)
        if out[-1] != "":
            out.append("")

    return "\n".join(out).rstrip("\n") + "\n"


# ── files ────────────────────────────────────────────────────────────


def load_document(path: Path) -> TaskDocument:
    doc = parse_document(read_text(path))
    doc.path = path
    return doc


def save_document(doc: TaskDocument, path: Path | None = None) -> Path:
    target = path or doc.path
    if target is None:
        raise ValueError("document has no path to save to")
    write_text(target, render_document(doc))
    return target
