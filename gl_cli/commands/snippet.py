"""Snippet commands."""

from __future__ import annotations

import argparse
import os
import sys

import requests

from gl_cli.commands.base import Command, register_command
from gl_cli.exceptions import CommandError, wrap_api_error
from gl_cli.models import Snippet


@register_command("snippet", "create")
class CreateSnippetCommand(Command):
    """Create a new snippet from files or stdin"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("paths", nargs="*", default=[], help="Files to add to the snippet")
        parser.add_argument("-t", "--title", required=True, help="Title of the snippet")
        parser.add_argument("-d", "--description", default="", help="Description of the snippet")
        parser.add_argument(
            "-f", "--filename", default=None, help="Filename of the snippet in GitLab (required with stdin)"
        )
        parser.add_argument(
            "-v",
            "--visibility",
            default="private",
            choices=("private", "internal", "public"),
            help="Snippet visibility (default: private)",
        )
        parser.add_argument(
            "-p", "--personal", action="store_true", help="Create a personal snippet instead of a project snippet"
        )

    def run(self) -> None:
        files = self._read_files()
        data = {
            "title": self.args.title,
            "description": self.args.description,
            "visibility": self.args.visibility,
            "files": files,
        }

        if self.args.personal:
            self.err.write("- Creating snippet in personal space\n")
        else:
            self.err.write(f"- Creating snippet in {self.repo}\n")

        try:
            if self.args.personal:
                created = self.client.create_snippet(data)
            else:
                created = self.client.create_project_snippet(self.repo.path, data)
        except requests.RequestException as e:
            raise wrap_api_error("failed to create snippet", e) from e
        self.out.write(f"{Snippet.from_dict(created).web_url}\n")

    def _read_files(self) -> list[dict]:
        paths = self.args.paths
        if not paths:
            if not self.args.filename:
                raise CommandError("if 'path' is not provided, 'filename' and stdin are required")
            if sys.stdin.isatty():
                raise CommandError("stdin required if no 'path' is provided")
            return [{"file_path": self.args.filename, "content": sys.stdin.read()}]

        files = []
        for path in paths:
            try:
                with open(path, encoding="utf-8") as fh:
                    content = fh.read()
            except OSError as e:
                raise CommandError(f"failed to read {path}: {e}") from e
            name = self.args.filename if self.args.filename and len(paths) == 1 else os.path.basename(path)
            files.append({"file_path": name, "content": content})
        return files
