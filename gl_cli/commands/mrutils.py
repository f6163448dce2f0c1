"""Merge request resolution shared by the mr commands."""

from __future__ import annotations

import argparse

import requests

from gl_cli import git, prompt
from gl_cli.client import GitLabClient
from gl_cli.exceptions import CommandError, wrap_api_error
from gl_cli.models import MergeRequest, Repo


def add_mr_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "mr", nargs="?", default=None, help="Merge request ID (123 or !123) or source branch (default: current branch)"
    )


def parse_mr_iid(value: str) -> int | None:
    """Return the IID for ``123`` or ``!123``, None for anything else."""
    candidate = value[1:] if value.startswith("!") else value
    return int(candidate) if candidate.isdigit() else None


def resolve_mr(
    client: GitLabClient,
    repo: Repo,
    arg: str | None,
    state: str | None = None,
    params: dict | None = None,
) -> MergeRequest:
    """Find the merge request an argument refers to.

    A numeric argument is an IID. Anything else is a source branch, and no
    argument means the current git branch. ``state`` narrows the branch
    lookup (``opened``, ``closed``, ...).
    """
    iid = parse_mr_iid(arg) if arg else None
    if iid is None:
        branch = arg or git.current_branch()
        if not branch:
            raise CommandError("could not determine the current branch; pass a merge request ID or branch")
        iid = find_mr_for_branch(client, repo, branch, state)

    try:
        return MergeRequest.from_dict(client.get_merge_request(repo.path, iid, params=params))
    except requests.RequestException as e:
        raise wrap_api_error(f"failed to get merge request {iid}", e) from e


def find_mr_for_branch(client: GitLabClient, repo: Repo, branch: str, state: str | None) -> int:
    """IID of the merge request whose source is ``branch``, prompting when there are several."""
    params = {"source_branch": branch}
    if state:
        params["state"] = state
    try:
        mrs = client.list_merge_requests(repo.path, params=params)
    except requests.RequestException as e:
        raise wrap_api_error(f"failed to get merge request for {branch}", e) from e

    if not mrs:
        raise CommandError(f'no merge request available for "{branch}"')
    if len(mrs) == 1:
        return mrs[0]["iid"]

    if not prompt.is_interactive():
        iids = ", ".join(f"!{mr['iid']}" for mr in mrs)
        raise CommandError(f'multiple merge requests exist for "{branch}": {iids}; specify one by ID')
    return prompt.select(
        "Multiple merge requests exist for this branch. Select one:",
        [(f"!{mr['iid']} ({mr.get('source_branch', branch)}) {mr.get('title', '')}", mr["iid"]) for mr in mrs],
    )


def humanize_branch(branch: str) -> str:
    return branch.replace("-", " ").replace("_", " ")


def title_and_description_from_commits(
    source_branch: str, target_ref: str, fill_commit_body: bool = False
) -> tuple[str, str]:
    """Derive an MR title and description from the commits ``source_branch`` adds.

    One commit gives its subject and body. Several commits give the branch name
    as title and a list of commit subjects (with bodies when asked) as
    description, oldest first.
    """
    commits = git.commits_between(target_ref, source_branch)
    if not commits:
        raise CommandError(f"no commits between {target_ref} and {source_branch}")

    if len(commits) == 1:
        sha, subject = commits[0]
        return subject, git.commit_body(sha)

    description = ""
    for sha, subject in reversed(commits):
        if not fill_commit_body:
            description += f"- {subject}\n"
            continue
        description += f"- {subject}  \n"
        body = git.commit_body(sha)
        if body:
            # Markdown line break instead of a paragraph break
            description += body.replace("\n\n", "  \n") + "\n"
        description += "\n"
    return humanize_branch(source_branch), description
