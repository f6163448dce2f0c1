"""Shared test fixtures for gl-cli tests."""

import argparse
import io
import sys
from pathlib import Path
from typing import Any

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from gl_cli.client import GitLabClient
from gl_cli.config import Config

# Constants for use in tests - pytest makes conftest.py fixtures available,
# but these constants need to be imported directly from tests
MOCK_GITLAB_URL = "https://gitlab.example.com"
MOCK_API_URL = f"{MOCK_GITLAB_URL}/api/v4"
MOCK_REPO = "OWNER/REPO"
MOCK_PROJECT_URL = f"{MOCK_API_URL}/projects/OWNER%2FREPO"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep tests away from the user's config and environment."""
    monkeypatch.setenv("GLCLI_CONFIG_DIR", str(tmp_path / "config"))
    for var in ("GITLAB_TOKEN", "GITLAB_URL", "GITLAB_REPO", "GLCLI_CHECK_UPDATE", "CI_DEFAULT_BRANCH"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def mock_client():
    """GitLabClient pointing at mock server."""
    return GitLabClient(MOCK_GITLAB_URL, "test-token", max_retries=0)


@pytest.fixture
def config(tmp_path) -> Config:
    """Empty config backed by a temporary file."""
    return Config(path=tmp_path / "config" / "config.yml")


@pytest.fixture
def sample_pipeline() -> dict[str, Any]:
    """Sample pipeline API response."""
    return {
        "id": 1,
        "iid": 4,
        "project_id": 5,
        "status": "success",
        "source": "push",
        "ref": "main",
        "sha": "0ff3ae198f8601a285adcf5c0fff204ee6fba5fd",
        "tag": False,
        "yaml_errors": None,
        "user": {"username": "administrator"},
        "created_at": "2023-10-10T00:00:00Z",
        "started_at": "2023-10-10T00:00:00Z",
        "updated_at": "2023-10-10T00:00:00Z",
        "web_url": f"{MOCK_GITLAB_URL}/OWNER/REPO/-/pipelines/1",
    }


@pytest.fixture
def sample_mr() -> dict[str, Any]:
    """Sample merge request API response."""
    return {
        "id": 100,
        "iid": 1,
        "title": "Add feature",
        "state": "opened",
        "source_branch": "feature",
        "target_branch": "main",
        "source_project_id": 3,
        "target_project_id": 3,
        "project_id": 3,
        "web_url": f"{MOCK_GITLAB_URL}/OWNER/REPO/-/merge_requests/1",
        "head_pipeline": {"id": 11, "status": "running"},
    }


@pytest.fixture
def sample_release() -> dict[str, Any]:
    """Sample release API response."""
    return {
        "tag_name": "v1.0.0",
        "name": "Release 1.0",
        "description": "First release",
        "author": {"name": "Jane Doe"},
        "commit": {"short_id": "abc123de"},
        "released_at": "2023-10-10T00:00:00Z",
        "_links": {"self": f"{MOCK_GITLAB_URL}/OWNER/REPO/-/releases/v1.0.0"},
        "assets": {
            "links": [
                {
                    "id": 1,
                    "name": "linux.tar.gz",
                    "url": f"{MOCK_GITLAB_URL}/OWNER/REPO/-/package_files/1/download",
                    "direct_asset_url": f"{MOCK_GITLAB_URL}/OWNER/REPO/-/releases/v1.0.0/downloads/linux.tar.gz",
                    "link_type": "package",
                }
            ],
            "sources": [
                {"format": "zip", "url": f"{MOCK_GITLAB_URL}/OWNER/REPO/-/archive/v1.0.0/REPO-v1.0.0.zip"},
            ],
        },
    }


def make_args(**kwargs) -> argparse.Namespace:
    """Helper to create argparse.Namespace with default values."""
    defaults = {
        "verbose": False,
        "log_json": False,
        "gitlab_url": None,
        "max_retries": 0,
        "repo": MOCK_REPO,
        "output": "text",
    }
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


def run_command(cmd_cls, client, config=None, **kwargs) -> tuple[str, str]:
    """Run a command with captured output streams, returning (stdout, stderr)."""
    out = io.StringIO()
    err = io.StringIO()
    cmd_cls(client=client, args=make_args(**kwargs), config=config, out=out, err=err).run()
    return out.getvalue(), err.getvalue()
