"""Tests for mdtasks.protocol: step order, cleanup selection, ticket prompting."""

from __future__ import annotations

from pathlib import Path

import pytest

from mdtasks.errors import ProtocolStepFailure, Step
from mdtasks.io_utils import write_text
from mdtasks.protocol import CleanupPolicy, CompletionProtocol
from mdtasks.tasks.model import TaskItem, TaskStatus
from mdtasks.testing import ProjectType


def _parent(pid: str = "1.0", description: str = "Add login endpoint") -> TaskItem:
    return TaskItem(
        id=pid,
        description=description,
        children=[
            TaskItem(id=f"{pid[0]}.1", description="Define request schema", status=TaskStatus.COMPLETED),
            TaskItem(id=f"{pid[0]}.2", description="Wire handler", status=TaskStatus.COMPLETED),
        ],
    )


def _protocol(fakes, root: Path, **kwargs):
    tests = kwargs.pop("tests", None) or fakes.Tests()
    vcs = kwargs.pop("vcs", None) or fakes.Vcs()
    prompt = kwargs.pop("prompt", None) or fakes.Prompt()
    kwargs.setdefault("ticket", "AUTH-12")
    return CompletionProtocol(tests, vcs, prompt, repo_root=root, **kwargs)


class TestStepOrder:
    def test_runs_all_steps_in_order(self, fakes, tmp_path):
        proto = _protocol(fakes, tmp_path, vcs=fakes.Vcs(staged=["src/a.py"]))
        report = proto.run(_parent())
        assert proto.tests.calls == [None]
        assert proto.vcs.calls == ["stage", "commit"]
        assert report.staged == ["src/a.py"]
        assert report.removed == []
        assert report.commit_sha == "abc1234def5678"
        assert report.test_command == "fake-test"

    def test_project_type_reaches_test_runner(self, fakes, tmp_path):
        proto = _protocol(fakes, tmp_path, project_type=ProjectType.MAVEN)
        proto.run(_parent())
        assert proto.tests.calls == [ProjectType.MAVEN]

    def test_test_failure_short_circuits(self, fakes, tmp_path):
        proto = _protocol(fakes, tmp_path, tests=fakes.Tests(passed=False, output="FAILED test_login"))
        with pytest.raises(ProtocolStepFailure) as exc_info:
            proto.run(_parent())
        err = exc_info.value
        assert err.step == Step.TEST
        assert err.task_id == "1.0"
        assert "FAILED test_login" in str(err)
        assert "test step failed" in str(err)
        assert proto.vcs.calls == []

    def test_stage_failure_reports_cause(self, fakes, tmp_path):
        proto = _protocol(fakes, tmp_path, vcs=fakes.Vcs(fail_on="stage"))
        with pytest.raises(ProtocolStepFailure) as exc_info:
            proto.run(_parent())
        assert exc_info.value.step == Step.STAGE
        assert "index.lock" in str(exc_info.value.cause)

    def test_commit_failure(self, fakes, tmp_path):
        proto = _protocol(fakes, tmp_path, vcs=fakes.Vcs(fail_on="commit"))
        with pytest.raises(ProtocolStepFailure) as exc_info:
            proto.run(_parent())
        assert exc_info.value.step == Step.COMMIT


class TestCleanup:
    def test_glob_patterns_remove_files_and_directories(self, fakes, tmp_path):
        write_text(tmp_path / "debug.log", "noise")
        write_text(tmp_path / "scratch" / "notes.txt", "wip")
        write_text(tmp_path / "src" / "keep.py", "x = 1")

        proto = _protocol(fakes, tmp_path, cleanup=CleanupPolicy(patterns=["*.log", "scratch"]))
        report = proto.run(_parent())

        assert report.removed == ["debug.log", "scratch"]
        assert not (tmp_path / "debug.log").exists()
        assert not (tmp_path / "scratch").exists()
        assert (tmp_path / "src" / "keep.py").exists()
        assert proto.vcs.unstaged == ["debug.log", "scratch"]
        assert proto.vcs.calls == ["stage", "unstage", "commit"]

    def test_predicate_over_staged_paths(self, fakes, tmp_path):
        write_text(tmp_path / "out.tmp", "x")
        write_text(tmp_path / "app.py", "x")
        policy = CleanupPolicy(predicate=lambda p: p.endswith(".tmp"))
        proto = _protocol(fakes, tmp_path, cleanup=policy, vcs=fakes.Vcs(staged=["app.py", "out.tmp"]))
        report = proto.run(_parent())
        assert report.removed == ["out.tmp"]
        assert (tmp_path / "app.py").exists()

    def test_missing_explicit_paths_are_skipped(self, tmp_path):
        assert CleanupPolicy(paths=["nope.txt"]).select(tmp_path) == []

    def test_protected_paths_survive(self, tmp_path):
        task_list = tmp_path / "tasks" / "tasks-prd.md"
        write_text(task_list, "## Tasks\n")
        write_text(tmp_path / "tasks" / "draft.md", "draft")
        selected = CleanupPolicy(patterns=["tasks/*.md"]).select(tmp_path, protected=[task_list])
        assert selected == ["tasks/draft.md"]

    def test_refuses_paths_outside_root(self, tmp_path):
        root = tmp_path / "repo"
        root.mkdir()
        write_text(tmp_path / "outside.txt", "x")
        with pytest.raises(ValueError, match="outside"):
            CleanupPolicy(paths=["../outside.txt"]).select(root)

    def test_outside_root_fails_cleanup_step(self, fakes, tmp_path):
        root = tmp_path / "repo"
        root.mkdir()
        write_text(tmp_path / "outside.txt", "x")
        proto = _protocol(fakes, root, cleanup=CleanupPolicy(paths=["../outside.txt"]))
        with pytest.raises(ProtocolStepFailure) as exc_info:
            proto.run(_parent())
        assert exc_info.value.step == Step.CLEANUP
        assert (tmp_path / "outside.txt").exists()
        assert "commit" not in proto.vcs.calls

    def test_refuses_explicit_git_dir(self, tmp_path):
        (tmp_path / ".git").mkdir()
        with pytest.raises(ValueError):
            CleanupPolicy(paths=[".git"]).select(tmp_path)

    def test_recursive_glob_skips_git_dir(self, tmp_path):
        write_text(tmp_path / ".git" / "rebase.tmp", "x")
        write_text(tmp_path / "src" / "out.tmp", "x")
        assert CleanupPolicy(patterns=["**/*.tmp", ".git"]).select(tmp_path) == ["src/out.tmp"]

    def test_duplicates_collapse(self, tmp_path):
        write_text(tmp_path / "a.log", "x")
        selected = CleanupPolicy(paths=["a.log"], patterns=["*.log"]).select(tmp_path)
        assert selected == ["a.log"]


class TestTicket:
    def test_configured_ticket_is_not_prompted(self, fakes, tmp_path):
        proto = _protocol(fakes, tmp_path)
        report = proto.run(_parent())
        assert proto.prompt.questions == []
        assert "Related to AUTH-12 in PRD" in report.commit_message

    def test_prompts_once_and_reuses_answer(self, fakes, tmp_path):
        proto = _protocol(fakes, tmp_path, ticket="", prompt=fakes.Prompt(["PAY-7"]))
        first = proto.run(_parent("1.0"))
        second = proto.run(_parent("2.0", "Add logout"))
        assert len(proto.prompt.questions) == 1
        assert "1.0" in proto.prompt.questions[0]
        assert first.commit_message.endswith("Related to PAY-7 in PRD")
        assert second.commit_message.endswith("Related to PAY-7 in PRD")

    def test_blank_answer_omits_reference(self, fakes, tmp_path):
        proto = _protocol(fakes, tmp_path, ticket="", prompt=fakes.Prompt([""]))
        report = proto.run(_parent())
        assert "Related to" not in report.commit_message

    def test_blank_answer_is_not_asked_again(self, fakes, tmp_path):
        proto = _protocol(fakes, tmp_path, ticket="", prompt=fakes.Prompt(["", "LATE-1"]))
        proto.run(_parent("1.0"))
        second = proto.run(_parent("2.0", "Add logout"))
        assert len(proto.prompt.questions) == 1
        assert "Related to" not in second.commit_message

    def test_prompt_disabled(self, fakes, tmp_path):
        proto = _protocol(fakes, tmp_path, ticket="", prompt_for_ticket=False)
        report = proto.run(_parent())
        assert proto.prompt.questions == []
        assert "Related to" not in report.commit_message
