"""Interactive prompts, available only when stdin is a terminal."""

from __future__ import annotations

import sys
from typing import Any

import questionary

from gl_cli.exceptions import CommandError


def is_interactive() -> bool:
    return sys.stdin.isatty()


def _answer(question: questionary.Question) -> Any:
    answer = question.ask()  # None on Ctrl+C / Esc
    if answer is None:
        raise CommandError("aborted by user")
    return answer


def select(message: str, choices: list[tuple[str, Any]]) -> Any:
    """Pick one value from ``(title, value)`` pairs."""
    return _answer(
        questionary.select(
            message,
            choices=[questionary.Choice(title=title, value=value) for title, value in choices],
            use_arrow_keys=True,
        )
    )


def text(message: str, default: str = "") -> str:
    return _answer(questionary.text(message, default=default))


def confirm(message: str, default: bool = False) -> bool:
    return _answer(questionary.confirm(message, default=default))
