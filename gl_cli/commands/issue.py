"""Issue and incident commands."""

from __future__ import annotations

import argparse

import requests

from gl_cli import prompt
from gl_cli.commands.base import Command, register_command
from gl_cli.exceptions import CommandError, api_error_message, wrap_api_error
from gl_cli.models import Note


def _parse_issue_iid(value: str) -> int:
    candidate = value[1:] if value.startswith("#") else value
    if not candidate.isdigit():
        raise argparse.ArgumentTypeError(f"invalid issue ID {value!r}")
    return int(candidate)


@register_command("issue", "note")
class NoteIssueCommand(Command):
    """Comment on an issue in GitLab"""

    issue_type = "issue"

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("issue", type=_parse_issue_iid, help="Issue ID (123 or #123)")
        parser.add_argument("-m", "--message", default=None, help="Comment or note message")
        parser.add_argument(
            "--unique", action="store_true", help="Don't create a comment or note if it already exists"
        )

    def run(self) -> None:
        iid = self.args.issue
        try:
            issue = self.client.get_issue(self.repo.path, iid)
        except requests.RequestException as e:
            raise CommandError(api_error_message(e)) from e

        if self.issue_type == "incident" and issue.get("issue_type", "issue") != "incident":
            self.out.write(
                "Incident not found, but an issue with the provided ID exists. "
                "Run `gl-cli issue note <id>` to comment.\n"
            )
            return

        web_url = issue.get("web_url", "")
        message = self.args.message
        if message is None:
            if not prompt.is_interactive():
                raise CommandError("--message required when not running interactively")
            message = prompt.text("Note message:")
        if not message.strip():
            raise CommandError("aborted... Note is empty.")

        if self.args.unique:
            try:
                notes = self.client.list_issue_notes(self.repo.path, iid)
            except requests.RequestException as e:
                raise wrap_api_error("failed to list notes", e) from e
            for data in notes:
                note = Note.from_dict(data)
                if note.body == message:
                    self.out.write(f"{web_url}#note_{note.id}\n")
                    return

        try:
            created = self.client.create_issue_note(self.repo.path, iid, message)
            if isinstance(created, list):
                # Some servers answer with the full note list; use the newest note
                created = self.client.get_latest_issue_note(self.repo.path, iid)
        except requests.RequestException as e:
            raise wrap_api_error("failed to create note", e) from e
        if not created:
            raise CommandError("failed to create note: no note returned")

        self.out.write(f"{web_url}#note_{Note.from_dict(created).id}\n")


@register_command("incident", "note")
class NoteIncidentCommand(NoteIssueCommand):
    """Comment on an incident in GitLab"""

    issue_type = "incident"
