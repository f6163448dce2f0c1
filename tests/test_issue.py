"""Tests for the issue and incident commands."""

import argparse
from unittest.mock import patch

import pytest
import responses
from responses import matchers

from conftest import MOCK_GITLAB_URL, MOCK_PROJECT_URL, run_command
from gl_cli.commands.issue import NoteIncidentCommand, NoteIssueCommand, _parse_issue_iid
from gl_cli.exceptions import CommandError

ISSUE_URL = f"{MOCK_PROJECT_URL}/issues/1"
ISSUE_WEB_URL = f"{MOCK_GITLAB_URL}/OWNER/REPO/-/issues/1"


def _issue(issue_type: str = "issue") -> dict:
    return {"id": 1, "iid": 1, "title": "Broken build", "issue_type": issue_type, "web_url": ISSUE_WEB_URL}


class TestParseIssueIid:
    """Tests for issue ID arguments."""

    def test_plain_and_hash(self):
        assert _parse_issue_iid("1") == 1
        assert _parse_issue_iid("#42") == 42

    def test_rejects_names(self):
        with pytest.raises(argparse.ArgumentTypeError):
            _parse_issue_iid("feature")


class TestNoteIssue:
    """Tests for issue note."""

    @responses.activate
    def test_create_note(self, mock_client):
        responses.add(responses.GET, ISSUE_URL, json=_issue())
        responses.add(
            responses.POST,
            f"{ISSUE_URL}/notes",
            json={"id": 301, "body": "Here is my note"},
            match=[matchers.json_params_matcher({"body": "Here is my note"})],
        )

        out, _ = run_command(NoteIssueCommand, mock_client, issue=1, message="Here is my note", unique=False)

        assert out == f"{ISSUE_WEB_URL}#note_301\n"

    @responses.activate
    def test_issue_not_found(self, mock_client):
        responses.add(responses.GET, ISSUE_URL, status=404, json={"message": "404 Not Found"})

        with pytest.raises(CommandError, match="^404 Not Found$"):
            run_command(NoteIssueCommand, mock_client, issue=1, message="Here is my note", unique=False)

    @responses.activate
    def test_unique_reuses_existing_note(self, mock_client):
        responses.add(responses.GET, ISSUE_URL, json=_issue())
        responses.add(
            responses.GET,
            f"{ISSUE_URL}/notes",
            json=[{"id": 200, "body": "other"}, {"id": 201, "body": "Here is my note"}],
        )

        out, _ = run_command(NoteIssueCommand, mock_client, issue=1, message="Here is my note", unique=True)

        assert out == f"{ISSUE_WEB_URL}#note_201\n"
        assert not any(c.request.method == "POST" for c in responses.calls)

    @responses.activate
    def test_list_response_uses_latest_note(self, mock_client):
        responses.add(responses.GET, ISSUE_URL, json=_issue())
        responses.add(responses.POST, f"{ISSUE_URL}/notes", json=[{"id": 1, "body": "older"}])
        responses.add(
            responses.GET,
            f"{ISSUE_URL}/notes",
            json=[{"id": 302, "body": "Here is my note"}],
            match=[matchers.query_param_matcher({"order_by": "created_at", "sort": "desc", "per_page": "1"})],
        )

        out, _ = run_command(NoteIssueCommand, mock_client, issue=1, message="Here is my note", unique=False)

        assert out == f"{ISSUE_WEB_URL}#note_302\n"

    @responses.activate
    def test_empty_message(self, mock_client):
        responses.add(responses.GET, ISSUE_URL, json=_issue())

        with pytest.raises(CommandError, match=r"^aborted\.\.\. Note is empty\.$"):
            run_command(NoteIssueCommand, mock_client, issue=1, message="  ", unique=False)

    @responses.activate
    def test_message_required_without_terminal(self, mock_client):
        responses.add(responses.GET, ISSUE_URL, json=_issue())

        with patch("gl_cli.prompt.is_interactive", return_value=False):
            with pytest.raises(CommandError, match="--message required"):
                run_command(NoteIssueCommand, mock_client, issue=1, message=None, unique=False)

    @responses.activate
    def test_message_prompted(self, mock_client):
        responses.add(responses.GET, ISSUE_URL, json=_issue())
        responses.add(responses.POST, f"{ISSUE_URL}/notes", json={"id": 303, "body": "typed"})

        with patch("gl_cli.prompt.is_interactive", return_value=True):
            with patch("gl_cli.prompt.text", return_value="typed"):
                out, _ = run_command(NoteIssueCommand, mock_client, issue=1, message=None, unique=False)

        assert out == f"{ISSUE_WEB_URL}#note_303\n"


class TestNoteIncident:
    """Tests for incident note."""

    @responses.activate
    def test_create_note(self, mock_client):
        responses.add(responses.GET, ISSUE_URL, json=_issue("incident"))
        responses.add(responses.POST, f"{ISSUE_URL}/notes", json={"id": 304, "body": "Investigating"})

        out, _ = run_command(NoteIncidentCommand, mock_client, issue=1, message="Investigating", unique=False)

        assert out == f"{ISSUE_WEB_URL}#note_304\n"

    @responses.activate
    def test_plain_issue_is_not_commented(self, mock_client):
        responses.add(responses.GET, ISSUE_URL, json=_issue())

        out, _ = run_command(NoteIncidentCommand, mock_client, issue=1, message="Investigating", unique=False)

        assert out == (
            "Incident not found, but an issue with the provided ID exists. Run `gl-cli issue note <id>` to comment.\n"
        )
        assert len(responses.calls) == 1
