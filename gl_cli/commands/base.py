"""Base class and registry for commands."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from abc import ABC, abstractmethod
from functools import cached_property
from typing import IO, TYPE_CHECKING

import requests

from gl_cli import git
from gl_cli.exceptions import CommandError
from gl_cli.models import Repo
from gl_cli.output import print_json

if TYPE_CHECKING:
    from gl_cli.client import GitLabClient
    from gl_cli.config import Config

# ---------------------------------------------------------------------------
# Command Registry
# ---------------------------------------------------------------------------

_command_registry: dict[str, dict[str, type[Command]]] = {}


def register_command(group: str, name: str | None = None):
    """Decorator to register a command class as ``gl-cli GROUP NAME``.

    Without a name the class is the top-level command ``gl-cli GROUP`` itself.
    """

    def decorator(cls):
        _command_registry.setdefault(group, {})[name or ""] = cls
        # A class registered under several names keeps its first one
        if "group_name" not in cls.__dict__:
            cls.group_name = group
            cls.command_name = name or ""
        return cls

    return decorator


def get_command_registry() -> dict[str, dict[str, type[Command]]]:
    """Get the command registry, keyed by group then command name."""
    return _command_registry


# ---------------------------------------------------------------------------
# Input resolution
# ---------------------------------------------------------------------------


def resolve_repo(value: str | None) -> Repo:
    """Resolve the target project from --repo, GITLAB_REPO or the origin remote."""
    candidates = [value, os.environ.get("GITLAB_REPO")]
    for candidate in candidates:
        if candidate:
            try:
                return Repo.parse(candidate)
            except ValueError as e:
                raise CommandError(str(e)) from e

    remote = git.remote_url("origin")
    if remote:
        try:
            return Repo.parse(remote)
        except ValueError:
            pass  # Not a project remote; fall through to the error below
    raise CommandError("could not determine repository; use --repo OWNER/REPO")


# ---------------------------------------------------------------------------
# Command Base Class
# ---------------------------------------------------------------------------


class Command(ABC):
    """Base class for all commands."""

    group_name: str = ""
    command_name: str = ""
    needs_repo: bool = True
    needs_token: bool = True
    json_output: bool = False

    def __init__(
        self,
        client: GitLabClient,
        args: argparse.Namespace,
        config: Config | None = None,
        out: IO[str] | None = None,
        err: IO[str] | None = None,
    ):
        self.client = client
        self.args = args
        self.config = config
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.logger = logging.getLogger("gl-cli")

    @classmethod
    def configure_parser(cls, parser: argparse.ArgumentParser) -> None:
        """Add the common flags, then the command's own arguments."""
        if cls.needs_repo:
            parser.add_argument(
                "-R", "--repo", default=None, help="Select another repository (OWNER/REPO, group/namespace/repo or URL)"
            )
        if cls.json_output:
            parser.add_argument(
                "-F", "--output", choices=("text", "json"), default="text", help="Format output as: text, json"
            )
        cls.add_arguments(parser)

    @staticmethod
    @abstractmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        """Add command-specific CLI arguments."""
        ...

    @abstractmethod
    def run(self) -> None:
        """Execute the command. Failures are raised as CommandError."""
        ...

    @cached_property
    def repo(self) -> Repo:
        return resolve_repo(getattr(self.args, "repo", None))

    @property
    def wants_json(self) -> bool:
        return getattr(self.args, "output", "text") == "json"

    def print_json(self, data) -> None:
        print_json(data, self.out)

    def resolve_branch(self, branch: str | None = None) -> str:
        """Explicit branch, else the current git branch, else the project default."""
        if branch:
            return branch
        current = git.current_branch()
        if current:
            return current
        return self.default_branch()

    def default_branch(self) -> str:
        try:
            return self.client.get_default_branch(self.repo.path) or "main"
        except requests.RequestException as e:
            self.logger.debug(f"Could not read default branch of {self.repo}: {e}")
            return "main"
