"""Update checking against the releases of gl-cli's own project."""

from __future__ import annotations

import argparse
import os
import re
from datetime import datetime, timedelta, timezone
from typing import IO

import requests

from gl_cli import __version__
from gl_cli.client import GitLabClient
from gl_cli.commands.base import Command, register_command
from gl_cli.config import Config
from gl_cli.exceptions import CommandError, api_error_message
from gl_cli.models import DEFAULT_GITLAB_URL, Release, parse_time

UPDATE_HOST = DEFAULT_GITLAB_URL
UPDATE_PROJECT = "gl-cli/gl-cli"
UPDATE_INTERVAL = timedelta(hours=24)

# Commands after which the automatic check never runs
SKIP_UPDATE_COMMANDS = {"check-update", "update", "completion", "config"}

_SEMVER_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$")


def _parse_version(version: str) -> tuple[tuple[int, int, int], list[str]] | None:
    match = _SEMVER_RE.match(version.strip())
    if not match:
        return None
    major, minor, patch, pre = match.groups()
    return (int(major), int(minor), int(patch)), pre.split(".") if pre else []


def _compare_prerelease(a: list[str], b: list[str]) -> int:
    """Semver precedence of two pre-release identifier lists (empty means a release)."""
    if not a or not b:
        return (not a) - (not b)
    for x, y in zip(a, b):
        if x == y:
            continue
        if x.isdigit() and y.isdigit():
            return -1 if int(x) < int(y) else 1
        if x.isdigit() or y.isdigit():
            return -1 if x.isdigit() else 1
        return -1 if x < y else 1
    return (len(a) > len(b)) - (len(a) < len(b))


def is_older_version(latest: str, current: str) -> bool:
    """True if ``current`` sorts before ``latest``. A pre-release sorts before its release."""
    parsed_latest = _parse_version(latest)
    parsed_current = _parse_version(current)
    if parsed_latest is None or parsed_current is None:
        return False
    if parsed_current[0] != parsed_latest[0]:
        return parsed_current[0] < parsed_latest[0]
    return _compare_prerelease(parsed_current[1], parsed_latest[1]) < 0


def is_env_forcing_update() -> bool:
    return os.environ.get("GLCLI_CHECK_UPDATE", "").strip().lower() in ("true", "yes", "1")


def should_skip_update(command: str) -> bool:
    return command in SKIP_UPDATE_COMMANDS


def check_last_update(config: Config, now: datetime | None = None) -> bool:
    """Decide whether to check for updates now, recording the check time when it runs.

    Raises ValueError if the stored timestamp cannot be parsed.
    """
    now = now or datetime.now(timezone.utc)
    if is_env_forcing_update():
        return True

    last = config.get("last_update_check_timestamp")
    if last:
        if isinstance(last, datetime):
            last_check = last
        else:
            last_check = parse_time(str(last))
        if last_check.tzinfo is None:
            last_check = last_check.replace(tzinfo=timezone.utc)
        if now - last_check < UPDATE_INTERVAL:
            return False

    config.set("last_update_check_timestamp", now.replace(microsecond=0).isoformat())
    config.write()
    return True


def make_update_client() -> GitLabClient:
    """Client for the host that publishes gl-cli releases."""
    return GitLabClient(UPDATE_HOST, max_retries=1, user_agent=f"gl-cli/{__version__}")


def check_for_update(client: GitLabClient, current_version: str, err: IO[str]) -> None:
    try:
        releases = client.list_releases(UPDATE_PROJECT, params={"page": 1, "per_page": 1})
    except requests.RequestException as e:
        raise CommandError(f"failed checking for gl-cli updates: {api_error_message(e)}") from e
    if not releases:
        raise CommandError("no release found for gl-cli.")

    latest = Release.from_dict(releases[0])
    current = current_version if current_version.startswith("v") else f"v{current_version}"
    if is_older_version(latest.tag_name, current):
        url = latest.web_url or f"{UPDATE_HOST}/{UPDATE_PROJECT}/-/releases/{latest.tag_name}"
        err.write(f"A new version of gl-cli has been released: {current} -> {latest.tag_name}\n{url}\n")
    else:
        err.write("You are already using the latest version of gl-cli!\n")


def print_update_error(exc: Exception, err: IO[str], host: str = UPDATE_HOST) -> None:
    """Report a failed background update check without failing the command."""
    cause = exc.__cause__ or exc
    if isinstance(cause, requests.ConnectionError):
        hostname = host.split("://", 1)[-1].rstrip("/")
        err.write(f"x error connecting to {hostname}\n")
        return
    err.write(f"ERROR: {exc}\n")


@register_command("update", "check")
@register_command("check-update")
class CheckUpdateCommand(Command):
    """Check for the latest gl-cli version"""

    needs_repo = False
    needs_token = False

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        pass

    def run(self) -> None:
        check_for_update(make_update_client(), __version__, self.err)
        if self.config is not None:
            self.config.set("last_update_check_timestamp", datetime.now(timezone.utc).replace(microsecond=0).isoformat())
            self.config.write()
