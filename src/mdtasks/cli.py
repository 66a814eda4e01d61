"""mdtasks CLI: track a Markdown task list one sub-task at a time.

Installed as the ``mdtasks`` console_script.
"""

from __future__ import annotations

from pathlib import Path

import click
from rich.markup import escape

from mdtasks import __version__
from mdtasks import log as glog
from mdtasks.config import COMMIT_TYPES, Config, resolve_repo_root
from mdtasks.errors import ApprovalRequiredError, MdtasksError, ProtocolStepFailure
from mdtasks.git_ops import GitVersionControl
from mdtasks.prompt import ConsolePrompt, PromptChannel
from mdtasks.protocol import CleanupPolicy, CompletionProtocol, ProtocolReport
from mdtasks.tasks.markdown import TaskDocument, load_document, save_document
from mdtasks.tasks.model import TaskItem
from mdtasks.testing import ProjectType, ShellTestRunner
from mdtasks.workflow import TaskListWorkflow


class MdtasksGroup(click.Group):
    """Report :class:`MdtasksError` as a plain message with exit code 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except ProtocolStepFailure as exc:
            glog.error(str(exc))
            if exc.task_id:
                glog.warn(
                    f"Task {exc.task_id} stays pending. Fix the cause, then run "
                    f"'mdtasks close {exc.task_id}'."
                )
            ctx.exit(1)
        except MdtasksError as exc:
            glog.error(str(exc))
            ctx.exit(1)


CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


@click.group(cls=MdtasksGroup, context_settings=CONTEXT_SETTINGS)
@click.option("-f", "--file", "tasks_file", default="", help="Task list (default: the single tasks/tasks-*.md)")
@click.option("--test-command", default="", help="Command run by the test step (default: detected)")
@click.option(
    "--project-type",
    type=click.Choice([p.value for p in ProjectType]),
    default=None,
    help="Project type used to pick the test command",
)
@click.option("--test-timeout", type=int, default=0, help="Seconds before the test step is killed (0=never)")
@click.option("--ticket", default="", help="Ticket id for commit messages")
@click.option("--no-ticket-prompt", is_flag=True, help="Never ask for a ticket id")
@click.option("--commit-type", type=click.Choice(COMMIT_TYPES), default="feat", help="Conventional commit type")
@click.option("--temp", "temp_patterns", multiple=True, help="Glob of temporary files to remove before commit (repeatable)")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="mdtasks")
@click.pass_context
def main(
    ctx: click.Context,
    tasks_file: str,
    test_command: str,
    project_type: str | None,
    test_timeout: int,
    ticket: str,
    no_ticket_prompt: bool,
    commit_type: str,
    temp_patterns: tuple[str, ...],
    verbose: bool,
) -> None:
    """mdtasks: work through a PRD task list one sub-task at a time.

    \b
    EXAMPLES:
      mdtasks init tasks/prd-user-auth.md        # Create tasks/tasks-prd-user-auth.md
      mdtasks add "Add login endpoint"           # New parent task (1.0)
      mdtasks add "Define schema" --under 1.0    # New sub-task (1.1)
      mdtasks next                               # What to work on now
      mdtasks done 1.1                           # Check off a sub-task
      mdtasks run                                # Interactive, gated loop

    \b
    WORKFLOW:
      1. Finish one sub-task, then check it off.
      2. Wait for an explicit "yes" before starting the next one.
      3. When every sub-task of a parent is done: run tests, stage,
         remove temporary files, commit, then check off the parent.
    """
    glog.set_verbose(verbose)

    ctx.obj = Config(
        tasks_file=tasks_file,
        test_command=test_command,
        project_type=project_type or "",
        test_timeout=test_timeout,
        commit_type=commit_type,
        ticket=ticket,
        prompt_for_ticket=not no_ticket_prompt,
        temp_patterns=list(temp_patterns),
        verbose=verbose,
    )


# ── helpers ──────────────────────────────────────────────────────────


def _tasks_path(cfg: Config) -> Path:
    from mdtasks.prd import find_task_list

    if cfg.tasks_file:
        return Path(cfg.tasks_file)
    found = find_task_list()
    if found is None:
        raise click.UsageError(
            "No task list found. Pass --file, set MDTASKS_FILE, or keep exactly one tasks/tasks-*.md."
        )
    return found


def _load(cfg: Config) -> TaskDocument:
    path = _tasks_path(cfg)
    if not path.is_file():
        raise click.UsageError(f"Task list not found: {path}")
    glog.debug(f"Loading {path}")
    return load_document(path)


def _build_workflow(cfg: Config, doc: TaskDocument, prompt: PromptChannel | None = None) -> TaskListWorkflow:
    if doc.path is None:
        raise click.UsageError("Task list has no file path")
    repo_root = resolve_repo_root(doc.path.resolve().parent)
    cfg.repo_root = str(repo_root)
    prompt = prompt or ConsolePrompt()
    protocol = CompletionProtocol(
        ShellTestRunner(repo_root, command=cfg.test_command, timeout=cfg.test_timeout),
        GitVersionControl(repo_root),
        prompt,
        repo_root=repo_root,
        project_type=ProjectType(cfg.project_type) if cfg.project_type else None,
        cleanup=CleanupPolicy(patterns=list(cfg.temp_patterns)),
        commit_type=cfg.commit_type,
        ticket=cfg.ticket,
        prompt_for_ticket=cfg.prompt_for_ticket,
        protected=[doc.path],
    )
    return TaskListWorkflow(doc, protocol, prompt, save=save_document)


def _line(item: TaskItem) -> str:
    mark = "x" if item.completed else " "
    return f"\\[{mark}] {item.id} {escape(item.description)}"


def _show_tree(doc: TaskDocument) -> None:
    nxt = next(iter(doc.tree.pending_leaves()), None)
    glog.console.print(f"[bold]{escape(str(doc.path))}[/bold]")
    for parent in doc.tree.parents:
        style = "green" if parent.completed else "bold"
        suffix = "  [cyan]<- next[/cyan]" if parent is nxt else ""
        glog.console.print(f"[{style}]{_line(parent)}[/{style}]{suffix}")
        for child in parent.children:
            style = "green" if child.completed else "default"
            suffix = "  [cyan]<- next[/cyan]" if child is nxt else ""
            glog.console.print(f"  [{style}]{_line(child)}[/{style}]{suffix}")
    done, total = doc.tree.counts()
    glog.console.print(f"{done}/{total} sub-tasks completed")
    if doc.awaiting_approval:
        glog.info("Last check-off not approved yet; 'mdtasks done' or 'mdtasks run' will ask first.")


def _warn_unclosed(doc: TaskDocument) -> None:
    for parent in doc.tree.unclosed_parents():
        glog.warn(f"All sub-tasks of {parent.id} are done but it is not closed; run 'mdtasks close {parent.id}'")


def _show_next(wf: TaskListWorkflow) -> None:
    nxt = wf.get_next_pending()
    if nxt is None:
        if not wf.tree.unclosed_parents():
            glog.success("All tasks completed.")
        return
    parent = wf.tree.parent_of(nxt.id)
    glog.info(f"Next: {nxt.id} {nxt.description}")
    if parent is not None:
        glog.console.print(f"[dim]  under {escape(parent.id)} {escape(parent.description)}[/dim]")


def _show_report(wf: TaskListWorkflow, report: ProtocolReport) -> None:
    subject = report.commit_message.splitlines()[0] if report.commit_message else ""
    glog.success(f"Committed {report.commit_sha[:8]}: {subject}")
    if report.removed:
        glog.info(f"Removed temporary files: {', '.join(report.removed)}")

    root = wf.protocol.repo_root.resolve()
    task_file = wf.doc.path.resolve() if wf.doc.path else None
    touched = [
        p for p in report.staged
        if p not in report.removed and (root / p).resolve() != task_file
    ]
    missing = wf.doc.ledger.missing(touched)
    if missing:
        glog.warn(
            "Not listed under Relevant Files: "
            + ", ".join(missing)
            + " (add with 'mdtasks files add PATH DESCRIPTION')"
        )


# ── commands ─────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def status(cfg: Config) -> None:
    """Show the task tree and progress."""
    doc = _load(cfg)
    _show_tree(doc)
    _warn_unclosed(doc)


@main.command(name="next")
@click.pass_obj
def next_task(cfg: Config) -> None:
    """Show the next pending sub-task."""
    doc = _load(cfg)
    _warn_unclosed(doc)
    _show_next(_build_workflow(cfg, doc))


@main.command()
@click.argument("task_id")
@click.pass_obj
def done(cfg: Config, task_id: str) -> None:
    """Check off sub-task TASK_ID.

    When it is the last open sub-task of its parent, the completion
    protocol runs (test, stage, cleanup, commit) and the parent is
    checked off only if every step succeeds.
    """
    doc = _load(cfg)
    wf = _build_workflow(cfg, doc)
    if not wf.gate_open:
        item = wf.tree.get(task_id)
        if not item.completed and not wf.request_approval(
            f"The last check-off has not been approved yet. Proceed with {item.id} {item.description}? [y/N]"
        ):
            raise ApprovalRequiredError(task_id)
    report = wf.mark_complete(task_id)
    if report is not None:
        _show_report(wf, report)
    _show_next(wf)


@main.command()
@click.argument("parent_id")
@click.pass_context
def close(ctx: click.Context, parent_id: str) -> None:
    """Run the completion protocol for PARENT_ID whose sub-tasks are all done."""
    cfg: Config = ctx.obj
    doc = _load(cfg)
    wf = _build_workflow(cfg, doc)
    report = wf.check_parent_completion(parent_id)
    if report is None:
        pending = [c.id for c in wf.tree.get(parent_id).children if not c.completed]
        glog.error(f"Task {parent_id} still has pending sub-tasks: {', '.join(pending)}")
        ctx.exit(1)
    _show_report(wf, report)
    _show_next(wf)


@main.command()
@click.pass_obj
def run(cfg: Config) -> None:
    """Work through the list interactively, one approved sub-task at a time."""
    doc = _load(cfg)
    wf = _build_workflow(cfg, doc)

    while True:
        for parent in wf.tree.unclosed_parents():
            if not wf.request_approval(
                f"All sub-tasks of {parent.id} are done. Run tests and commit now? [y/N]"
            ):
                glog.info("Paused. Run 'mdtasks run' again to continue.")
                return
            _show_report(wf, wf.check_parent_completion(parent.id))

        nxt = wf.get_next_pending()
        if nxt is None:
            glog.success("All tasks completed.")
            return

        _show_next(wf)
        if not wf.request_approval(f"Is {nxt.id} done? Check it off and continue? [y/N]"):
            glog.info("Paused. Run 'mdtasks run' again to continue.")
            return
        report = wf.mark_complete(nxt.id)
        if report is not None:
            _show_report(wf, report)


@main.command()
@click.argument("description")
@click.option("--under", "parent_id", default="", help="Add as a sub-task of this parent id")
@click.pass_obj
def add(cfg: Config, description: str, parent_id: str) -> None:
    """Append a parent task, or a sub-task with --under."""
    doc = _load(cfg)
    if parent_id:
        item = doc.tree.add_subtask(parent_id, description)
    else:
        item = doc.tree.add_parent(description)
    save_document(doc)
    glog.success(f"Added {item.id} {item.description}")


@main.group()
def files() -> None:
    """Maintain the Relevant Files list."""


@files.command(name="add")
@click.argument("path")
@click.argument("description")
@click.pass_obj
def files_add(cfg: Config, path: str, description: str) -> None:
    """Record PATH with a one-line DESCRIPTION (updates an existing entry)."""
    doc = _load(cfg)
    existed = path in doc.ledger
    doc.ledger.record(path, description)
    save_document(doc)
    glog.success(f"{'Updated' if existed else 'Recorded'} {path}")


@files.command(name="list")
@click.pass_obj
def files_list(cfg: Config) -> None:
    """Print the Relevant Files list."""
    doc = _load(cfg)
    if not len(doc.ledger):
        glog.info("No relevant files recorded yet.")
        return
    click.echo(doc.ledger.render())


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Validate the task list."""
    from mdtasks.tasks.validate import validate_and_report

    doc = _load(ctx.obj)
    if not validate_and_report(doc):
        ctx.exit(1)
    done_count, total = doc.tree.counts()
    glog.success(f"{doc.path}: {len(doc.tree.parents)} parent task(s), {done_count}/{total} sub-tasks completed")


@main.command()
@click.argument("prd_file", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--output", "-o", default="", help="Output path (default: tasks/tasks-<prd name>.md)")
@click.option("--force", is_flag=True, help="Overwrite an existing task list")
def init(prd_file: Path | None, output: str, force: bool) -> None:
    """Create an empty task list for PRD_FILE."""
    from mdtasks.prd import create_task_list, find_prd_file, task_list_path_for

    if prd_file is None:
        prd_file = find_prd_file()
        if prd_file is None:
            raise click.UsageError("No PRD found (looked for PRD.md and tasks/prd-*.md); pass PRD_FILE.")
    elif not prd_file.is_file():
        raise click.UsageError(f"PRD not found: {prd_file}")

    target = Path(output) if output else task_list_path_for(prd_file)
    try:
        create_task_list(prd_file, target, force=force)
    except FileExistsError:
        raise click.UsageError(f"{target} already exists (use --force to overwrite)") from None
    glog.success(f"Created {target}")
