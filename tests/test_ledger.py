"""Tests for mdtasks.tasks.ledger."""

from __future__ import annotations

from mdtasks.tasks.ledger import RelevantFilesLedger


def test_record_twice_keeps_one_entry_with_latest_description():
    ledger = RelevantFilesLedger()
    ledger.record("src/auth.py", "Login")
    ledger.record("src/auth.py", "Login and logout")
    assert len(ledger) == 1
    assert ledger.get("src/auth.py") == "Login and logout"


def test_record_is_idempotent():
    ledger = RelevantFilesLedger()
    ledger.record("a.py", "A")
    ledger.record("a.py", "A")
    assert ledger.entries() == [("a.py", "A")]


def test_update_keeps_insertion_position():
    ledger = RelevantFilesLedger([("a.py", "A"), ("b.py", "B")])
    ledger.record("a.py", "A, revised")
    assert [p for p, _ in ledger.entries()] == ["a.py", "b.py"]


def test_render_in_insertion_order():
    ledger = RelevantFilesLedger()
    ledger.record("z.py", "Last alphabetically")
    ledger.record("a.py", "First alphabetically")
    ledger.record("docs/", "")
    assert ledger.render() == (
        "- `z.py` - Last alphabetically\n"
        "- `a.py` - First alphabetically\n"
        "- `docs/`"
    )


def test_render_empty():
    assert RelevantFilesLedger().render() == ""


def test_whitespace_is_trimmed():
    ledger = RelevantFilesLedger()
    ledger.record("  a.py ", "  Thing  ")
    assert ledger.entries() == [("a.py", "Thing")]
    assert "a.py" in ledger


def test_missing():
    ledger = RelevantFilesLedger([("a.py", "A")])
    assert ledger.missing(["a.py", "b.py", "c.py", "b.py"]) == ["b.py", "c.py"]
