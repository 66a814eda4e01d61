"""The "Relevant Files" ledger: one line per file the work has touched."""

from __future__ import annotations

from collections.abc import Iterable


class RelevantFilesLedger:
    """Insertion-ordered ``path -> description`` record.

    Entries are never removed; recording a known path only replaces its
    description.
    """

    def __init__(self, entries: Iterable[tuple[str, str]] = ()) -> None:
        self._entries: dict[str, str] = {}
        for path, description in entries:
            self.record(path, description)

    def record(self, path: str, description: str) -> None:
        self._entries[path.strip()] = description.strip()

    def get(self, path: str) -> str | None:
        return self._entries.get(path)

    def entries(self) -> list[tuple[str, str]]:
        return list(self._entries.items())

    def missing(self, paths: Iterable[str]) -> list[str]:
        """Return *paths* not yet recorded, in the given order, without duplicates."""
        out: list[str] = []
        for p in paths:
            if p not in self._entries and p not in out:
                out.append(p)
        return out

    def render(self) -> str:
        lines = []
        for path, description in self._entries.items():
            if description:
                lines.append(f"- `{path}` - {description}")
            else:
                lines.append(f"- `{path}`")
        return "\n".join(lines)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"RelevantFilesLedger({self.entries()!r})"
