"""Thin wrappers around the git executable."""

from __future__ import annotations

import logging
import subprocess

from gl_cli.exceptions import GlCliError

logger = logging.getLogger("gl-cli")


class GitError(GlCliError):
    """A git command failed or git is not available."""


def run(*args: str) -> str:
    """Run ``git ARGS`` and return its stripped stdout."""
    cmd = ["git", *args]
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except FileNotFoundError as e:
        raise GitError("unable to find git executable in PATH") from e
    if proc.returncode != 0:
        raise GitError(proc.stderr.strip() or f"git {args[0]} exited with status {proc.returncode}")
    return proc.stdout.strip()


def current_branch() -> str | None:
    """The checked-out branch, or None outside a repository or on a detached HEAD."""
    try:
        branch = run("symbolic-ref", "--quiet", "--short", "HEAD")
    except GitError:
        return None
    return branch or None


def remote_url(name: str = "origin") -> str | None:
    try:
        url = run("remote", "get-url", name)
    except GitError:
        return None
    return url or None


def fetch(remote: str, refspec: str) -> None:
    run("fetch", remote, refspec)


def set_config(key: str, value: str) -> None:
    run("config", key, value)


def checkout(branch: str) -> None:
    run("checkout", branch)


def commits_between(base: str, head: str) -> list[tuple[str, str]]:
    """``(sha, subject)`` of commits on ``head`` but not ``base``, newest first."""
    output = run("-c", "log.ShowSignature=false", "log", "--pretty=format:%H,%s", "--cherry", f"{base}...{head}")
    commits = []
    for line in output.splitlines():
        sha, _, subject = line.partition(",")
        if sha:
            commits.append((sha, subject))
    return commits


def commit_body(sha: str) -> str:
    return run("-c", "log.ShowSignature=false", "show", "-s", "--pretty=format:%b", sha)


def push(remote: str, branch: str) -> None:
    run("push", "--set-upstream", remote, branch)
