"""
gl-cli: A command-line client for GitLab pipelines, merge requests, releases,
labels and snippets.

Each subcommand resolves the target project (``--repo``, ``GITLAB_REPO`` or the
``origin`` git remote), talks to the GitLab REST API v4 and prints the result
as text or JSON.

Environment:
    GITLAB_TOKEN       - GitLab Personal Access Token
    GITLAB_URL         - GitLab instance URL (default: https://gitlab.com)
    GITLAB_REPO        - Default OWNER/REPO when --repo is not given
    GLCLI_CONFIG_DIR   - Directory holding config.yml
    GLCLI_CHECK_UPDATE - Force the update check after each command
"""

__version__ = "0.1.0"

from gl_cli.cli import main  # noqa: E402
from gl_cli.client import GitLabClient  # noqa: E402
from gl_cli.models import (  # noqa: E402
    DEFAULT_MAX_RETRIES,
    RETRY_BACKOFF_FACTOR,
    RETRYABLE_STATUS_CODES,
)

__all__ = [
    "main",
    "__version__",
    "GitLabClient",
    "DEFAULT_MAX_RETRIES",
    "RETRY_BACKOFF_FACTOR",
    "RETRYABLE_STATUS_CODES",
]
