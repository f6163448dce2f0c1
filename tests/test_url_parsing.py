"""Unit tests for project path parsing and repository resolution."""

from unittest.mock import patch

import pytest

from gl_cli.commands.base import resolve_repo
from gl_cli.exceptions import CommandError
from gl_cli.models import Repo, extract_host_from_url, extract_path_from_url


class TestExtractPathFromUrl:
    """Tests for extract_path_from_url."""

    def test_full_https_url(self):
        """Full HTTPS URL extracts path correctly."""
        assert extract_path_from_url("https://gitlab.com/org/project") == "org/project"

    def test_url_with_trailing_slash(self):
        """URL with trailing slash handles correctly."""
        assert extract_path_from_url("https://gitlab.com/org/project/") == "org/project"

    def test_url_with_git_suffix(self):
        """URL with .git suffix strips it."""
        assert extract_path_from_url("https://gitlab.com/org/project.git") == "org/project"

    def test_url_with_dash_path(self):
        """URL pointing inside the project strips the /-/ part."""
        assert extract_path_from_url("https://gitlab.com/org/project/-/merge_requests/4") == "org/project"

    def test_nested_namespace(self):
        """Subgroup paths are kept whole."""
        assert extract_path_from_url("https://gitlab.com/org/team/project") == "org/team/project"

    def test_scp_remote(self):
        """SCP-like SSH remote."""
        assert extract_path_from_url("git@gitlab.com:org/project.git") == "org/project"

    def test_ssh_url_remote(self):
        """ssh:// remote with a port."""
        assert extract_path_from_url("ssh://git@gitlab.example.com:2222/org/project.git") == "org/project"

    def test_bare_path_with_slashes(self):
        """Bare path with leading/trailing slashes."""
        assert extract_path_from_url("/org/project/") == "org/project"

    def test_dot_git_inside_project_name(self):
        """Pages projects keep the .gitlab.io part of their name."""
        assert extract_path_from_url("git@gitlab.com:g/g.gitlab.io.git") == "g/g.gitlab.io"
        assert extract_path_from_url("https://gitlab.com/g/g.gitlab.io") == "g/g.gitlab.io"
        assert extract_path_from_url("https://gitlab.com/g/g.gitlab.io.git") == "g/g.gitlab.io"

    def test_dot_git_namespace_with_route(self):
        """A .git-looking group name is kept when a /-/ route follows."""
        assert extract_path_from_url("https://gitlab.com/my.github/app/-/tree/main") == "my.github/app"


class TestExtractHostFromUrl:
    """Tests for extract_host_from_url."""

    def test_https_url(self):
        assert extract_host_from_url("https://gitlab.example.com/org/project") == "gitlab.example.com"

    def test_scp_remote(self):
        assert extract_host_from_url("git@gitlab.com:org/project.git") == "gitlab.com"

    def test_bare_path_has_no_host(self):
        assert extract_host_from_url("org/project") is None


class TestRepoParse:
    """Tests for Repo.parse."""

    def test_owner_repo(self):
        repo = Repo.parse("OWNER/REPO")
        assert repo.path == "OWNER/REPO"
        assert repo.host is None
        assert str(repo) == "OWNER/REPO"

    def test_single_segment_rejected(self):
        """A bare name is not a project path."""
        with pytest.raises(ValueError):
            Repo.parse("myorg")


class TestResolveRepo:
    """Tests for resolve_repo precedence."""

    def test_flag_wins(self, monkeypatch):
        monkeypatch.setenv("GITLAB_REPO", "env/repo")
        assert resolve_repo("flag/repo").path == "flag/repo"

    def test_env_before_remote(self, monkeypatch):
        monkeypatch.setenv("GITLAB_REPO", "env/repo")
        with patch("gl_cli.git.remote_url", return_value="git@gitlab.com:remote/repo.git"):
            assert resolve_repo(None).path == "env/repo"

    def test_origin_remote(self):
        with patch("gl_cli.git.remote_url", return_value="git@gitlab.com:remote/repo.git"):
            repo = resolve_repo(None)
        assert repo.path == "remote/repo"
        assert repo.host == "gitlab.com"

    def test_origin_remote_of_pages_project(self):
        with patch("gl_cli.git.remote_url", return_value="git@gitlab.com:mygroup/mygroup.gitlab.io.git"):
            assert resolve_repo(None).path == "mygroup/mygroup.gitlab.io"

    def test_nothing_to_resolve(self):
        with patch("gl_cli.git.remote_url", return_value=None):
            with pytest.raises(CommandError, match="could not determine repository"):
                resolve_repo(None)

    def test_invalid_flag(self):
        with pytest.raises(CommandError, match="OWNER/REPO"):
            resolve_repo("justaname")
