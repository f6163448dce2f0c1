"""Tests for the label commands."""

import json

import pytest
import responses
from responses import matchers

from conftest import MOCK_API_URL, MOCK_PROJECT_URL, run_command
from gl_cli.commands.label import CreateLabelCommand, DeleteLabelCommand, ListLabelsCommand
from gl_cli.exceptions import CommandError

LABELS = [
    {"id": 1, "name": "bug", "description": "Something is broken", "color": "#FF0000"},
    {"id": 2, "name": "docs", "description": None, "color": "#428BCA"},
]


class TestCreateLabel:
    """Tests for label create."""

    @responses.activate
    def test_create(self, mock_client):
        responses.add(
            responses.POST,
            f"{MOCK_PROJECT_URL}/labels",
            json={"id": 3, "name": "bug", "color": "#FF0000"},
            match=[
                matchers.json_params_matcher(
                    {"name": "bug", "color": "#FF0000", "description": "Broken", "priority": 1}
                )
            ],
        )

        out, _ = run_command(
            CreateLabelCommand, mock_client, name="bug", color="#FF0000", description="Broken", priority=1
        )

        assert out == "Created label: bug\nWith color: #FF0000\n"

    @responses.activate
    def test_default_color_and_optional_fields_omitted(self, mock_client):
        responses.add(
            responses.POST,
            f"{MOCK_PROJECT_URL}/labels",
            json={"id": 3, "name": "docs", "color": "#428BCA"},
            match=[matchers.json_params_matcher({"name": "docs", "color": "#428BCA"})],
        )

        out, _ = run_command(
            CreateLabelCommand, mock_client, name="docs", color="#428BCA", description=None, priority=None
        )

        assert out == "Created label: docs\nWith color: #428BCA\n"

    @responses.activate
    def test_conflict(self, mock_client):
        responses.add(
            responses.POST, f"{MOCK_PROJECT_URL}/labels", status=409, json={"message": "Label already exists"}
        )

        with pytest.raises(CommandError, match="^failed to create label: 409 Label already exists$"):
            run_command(CreateLabelCommand, mock_client, name="bug", color="#FF0000", description=None, priority=None)


class TestDeleteLabel:
    """Tests for label delete."""

    @responses.activate
    def test_delete(self, mock_client):
        responses.add(responses.DELETE, f"{MOCK_PROJECT_URL}/labels/needs%20review", status=204)

        out, _ = run_command(DeleteLabelCommand, mock_client, name="needs review")

        assert out == "Label deleted\n"


class TestListLabels:
    """Tests for label list."""

    @responses.activate
    def test_project_labels(self, mock_client):
        responses.add(
            responses.GET,
            f"{MOCK_PROJECT_URL}/labels",
            json=LABELS,
            headers={"x-total": "12"},
            match=[matchers.query_param_matcher({"page": "1", "per_page": "2"})],
        )

        out, _ = run_command(ListLabelsCommand, mock_client, group=None, page=1, per_page=2)

        assert out == (
            "Showing label 2 of 12 on OWNER/REPO.\n"
            "\n"
            "ID\tName\tDescription\tColor\n"
            "1\tbug\tSomething is broken\t#FF0000\n"
            "2\tdocs\t\t#428BCA\n"
            "\n"
        )

    @responses.activate
    def test_group_labels(self, mock_client):
        responses.add(responses.GET, f"{MOCK_API_URL}/groups/myorg%2Fteam/labels", json=LABELS[:1])

        out, _ = run_command(ListLabelsCommand, mock_client, group="myorg/team", page=1, per_page=30)

        assert out.startswith("Showing label 1 of 1 for group myorg/team.\n")

    @responses.activate
    def test_json_output(self, mock_client):
        responses.add(responses.GET, f"{MOCK_PROJECT_URL}/labels", json=LABELS)

        out, _ = run_command(ListLabelsCommand, mock_client, group=None, page=1, per_page=30, output="json")

        assert json.loads(out) == LABELS
