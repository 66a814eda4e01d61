"""PRD handling: find PRD files and task lists, create a task-list skeleton."""

from __future__ import annotations

import re
from pathlib import Path

from mdtasks.io_utils import read_text, write_text

TASKS_DIR = Path("tasks")

_SKELETON = """\
# Tasks for {name}

Source PRD: `{prd}`

## Relevant Files

### Notes

- Unit tests should sit alongside the code they test.
- Sub-tasks are completed one at a time; each needs an explicit "yes" before the next starts.
- When every sub-task of a parent is done, the test suite runs, changes are staged, temporary files are removed and a commit is made.

## Tasks
"""


def slugify(text: str, max_len: int = 50) -> str:
    """Convert text to a file-name-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_len]


def extract_prd_title(prd_file: Path) -> str:
    """Return the first Markdown heading of *prd_file*, or ``""``."""
    if not prd_file.is_file():
        return ""
    for line in read_text(prd_file).splitlines():
        if line.startswith("#"):
            return line.lstrip("#").strip()
    return ""


def find_prd_file(base: Path = Path(".")) -> Path | None:
    """Search common locations for a PRD file and return the first match."""
    for name in ("PRD.md", "prd.md"):
        p = base / name
        if p.is_file():
            return p
    matches = sorted((base / TASKS_DIR).glob("prd-*.md"))
    return matches[0] if matches else None


def task_list_path_for(prd_file: Path, base: Path = Path(".")) -> Path:
    """``tasks/prd-user-auth.md`` -> ``tasks/tasks-prd-user-auth.md``."""
    return base / TASKS_DIR / f"tasks-{slugify(prd_file.stem) or 'prd'}.md"


def find_task_list(base: Path = Path(".")) -> Path | None:
    """Return the single ``tasks/tasks-*.md`` file, or ``None`` when absent or ambiguous."""
    matches = sorted((base / TASKS_DIR).glob("tasks-*.md"))
    if len(matches) == 1:
        return matches[0]
    return None


def create_task_list(prd_file: Path, output: Path, *, force: bool = False) -> Path:
    """Write an empty task-list document for *prd_file* to *output*."""
    if output.exists() and not force:
        raise FileExistsError(f"{output} already exists")
    name = extract_prd_title(prd_file) or prd_file.stem
    write_text(output, _SKELETON.format(name=name, prd=prd_file.as_posix()))
    return output
