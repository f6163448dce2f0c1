"""Tests for snippet create."""

import io
from unittest.mock import patch

import pytest
import responses
from responses import matchers

from conftest import MOCK_API_URL, MOCK_PROJECT_URL, run_command
from gl_cli.commands.snippet import CreateSnippetCommand
from gl_cli.exceptions import CommandError

SNIPPET = {"id": 1, "title": "Title", "web_url": "https://gitlab.example.com/OWNER/REPO/-/snippets/1"}


class FakeStdin(io.StringIO):
    """stdin stand-in with a configurable isatty()."""

    def __init__(self, value: str = "", tty: bool = False):
        super().__init__(value)
        self.tty = tty

    def isatty(self) -> bool:
        return self.tty


def _snippet_args(**kwargs) -> dict:
    args = {
        "paths": [],
        "title": "Title",
        "description": "",
        "filename": None,
        "visibility": "private",
        "personal": False,
    }
    args.update(kwargs)
    return args


class TestCreateSnippet:
    """Tests for snippet create."""

    @responses.activate
    def test_project_snippet_from_files(self, mock_client, tmp_path):
        first = tmp_path / "a.py"
        first.write_text("print('a')\n")
        second = tmp_path / "b.txt"
        second.write_text("b\n")
        responses.add(
            responses.POST,
            f"{MOCK_PROJECT_URL}/snippets",
            json=SNIPPET,
            match=[
                matchers.json_params_matcher(
                    {
                        "title": "Title",
                        "description": "",
                        "visibility": "private",
                        "files": [
                            {"file_path": "a.py", "content": "print('a')\n"},
                            {"file_path": "b.txt", "content": "b\n"},
                        ],
                    }
                )
            ],
        )

        out, err = run_command(
            CreateSnippetCommand, mock_client, **_snippet_args(paths=[str(first), str(second)])
        )

        assert err == "- Creating snippet in OWNER/REPO\n"
        assert out == f"{SNIPPET['web_url']}\n"

    @responses.activate
    def test_personal_snippet_from_stdin(self, mock_client):
        responses.add(
            responses.POST,
            f"{MOCK_API_URL}/snippets",
            json=SNIPPET,
            match=[
                matchers.json_params_matcher(
                    {"files": [{"file_path": "notes.md", "content": "piped"}], "visibility": "public"},
                    strict_match=False,
                )
            ],
        )

        with patch("sys.stdin", FakeStdin("piped")):
            out, err = run_command(
                CreateSnippetCommand,
                mock_client,
                **_snippet_args(filename="notes.md", personal=True, visibility="public"),
            )

        assert err == "- Creating snippet in personal space\n"
        assert out == f"{SNIPPET['web_url']}\n"

    def test_stdin_needs_filename(self, mock_client):
        with pytest.raises(CommandError, match="^if 'path' is not provided, 'filename' and stdin are required$"):
            run_command(CreateSnippetCommand, mock_client, **_snippet_args())

    def test_stdin_must_not_be_terminal(self, mock_client):
        with patch("sys.stdin", FakeStdin(tty=True)):
            with pytest.raises(CommandError, match="^stdin required if no 'path' is provided$"):
                run_command(CreateSnippetCommand, mock_client, **_snippet_args(filename="notes.md"))

    @responses.activate
    def test_api_error(self, mock_client, tmp_path):
        path = tmp_path / "a.py"
        path.write_text("x")
        responses.add(
            responses.POST, f"{MOCK_PROJECT_URL}/snippets", status=400, json={"message": {"title": ["is missing"]}}
        )

        with pytest.raises(CommandError, match="^failed to create snippet: 400 title is missing$"):
            run_command(CreateSnippetCommand, mock_client, **_snippet_args(paths=[str(path)]))
