"""Interactive prompt channel on the terminal."""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod

import click

from mdtasks import log

AFFIRMATIVE = frozenset({"y", "yes"})


def is_affirmative(answer: str) -> bool:
    return answer.strip().lower() in AFFIRMATIVE


class PromptChannel(ABC):
    @abstractmethod
    def ask(self, question: str) -> str:
        """Return the operator's typed answer to *question*."""


class ConsolePrompt(PromptChannel):
    """Blocks on stdin until the operator answers. There is no timeout."""

    def ask(self, question: str) -> str:
        if sys.stdin.isatty():
            return click.prompt(question, default="", show_default=False).strip()

        click.echo(f"{question} ", nl=False)
        line = sys.stdin.readline()
        if not line:
            log.warn("No input on stdin; treating the answer as empty.")
        return line.strip()
