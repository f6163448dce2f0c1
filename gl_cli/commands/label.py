"""Label commands."""

from __future__ import annotations

import argparse

import requests

from gl_cli.commands.base import Command, register_command
from gl_cli.exceptions import wrap_api_error
from gl_cli.models import Label


@register_command("label", "create")
class CreateLabelCommand(Command):
    """Create labels for a repository or project"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("-n", "--name", required=True, help="Name of the label")
        parser.add_argument(
            "-c",
            "--color",
            default="#428BCA",
            help="Color of the label, in plain or HEX code (default: #428BCA)",
        )
        parser.add_argument("-d", "--description", default=None, help="Label description")
        parser.add_argument("-p", "--priority", type=int, default=None, help="Label priority")

    def run(self) -> None:
        data = {"name": self.args.name, "color": self.args.color}
        if self.args.description:
            data["description"] = self.args.description
        if self.args.priority is not None:
            data["priority"] = self.args.priority
        try:
            label = Label.from_dict(self.client.create_label(self.repo.path, data))
        except requests.RequestException as e:
            raise wrap_api_error("failed to create label", e) from e
        self.out.write(f"Created label: {label.name}\nWith color: {label.color}\n")


@register_command("label", "delete")
class DeleteLabelCommand(Command):
    """Delete labels for a repository or project"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("name", help="Name of the label to delete")

    def run(self) -> None:
        try:
            self.client.delete_label(self.repo.path, self.args.name)
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to delete label {self.args.name!r}", e) from e
        self.out.write("Label deleted\n")


@register_command("label", "list")
class ListLabelsCommand(Command):
    """List labels in the repository"""

    json_output = True

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("-g", "--group", default=None, help="List labels for a group instead of the repository")
        parser.add_argument("-p", "--page", type=int, default=1, help="Page number (default: 1)")
        parser.add_argument("-P", "--per-page", type=int, default=30, help="Number of items per page (default: 30)")

    def run(self) -> None:
        params = {"page": self.args.page, "per_page": self.args.per_page}
        try:
            if self.args.group:
                data, total = self.client.list_group_labels(self.args.group, params=params)
            else:
                data, total = self.client.list_labels(self.repo.path, params=params)
        except requests.RequestException as e:
            raise wrap_api_error("failed to list labels", e) from e

        if self.wants_json:
            self.print_json(data)
            return

        where = f"for group {self.args.group}" if self.args.group else f"on {self.repo}"
        self.out.write(f"Showing label {len(data)} of {total} {where}.\n\n")
        self.out.write("ID\tName\tDescription\tColor\n")
        for label in (Label.from_dict(d) for d in data):
            self.out.write(f"{label.id}\t{label.name}\t{label.description}\t{label.color}\n")
        self.out.write("\n")
