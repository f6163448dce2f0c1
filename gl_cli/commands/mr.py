"""Merge request commands."""

from __future__ import annotations

import argparse
import time
from typing import IO

import requests

from gl_cli import git, prompt
from gl_cli.client import GitLabClient
from gl_cli.commands.base import Command, register_command
from gl_cli.commands.mrutils import add_mr_argument, resolve_mr, title_and_description_from_commits
from gl_cli.exceptions import CommandError, is_not_found, wrap_api_error
from gl_cli.models import MergeRequest, Milestone, Note, Repo, parse_time
from gl_cli.output import time_ago

REBASE_POLL_INTERVAL = 1  # seconds

DRAFT_PREFIXES = ("draft:", "[draft]", "(draft)", "wip:", "[wip]")


def _split_list(values: list[str] | None) -> list[str]:
    items = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


@register_command("mr", "create")
class CreateMergeRequestCommand(Command):
    """Create a new merge request"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("-t", "--title", default=None, help="Supply a title for the merge request")
        parser.add_argument("-d", "--description", default=None, help="Supply a description for the merge request")
        parser.add_argument("-s", "--source-branch", default=None, help="The source branch (default: current branch)")
        parser.add_argument(
            "-b", "--target-branch", default=None, help="The target branch (default: the project's default branch)"
        )
        parser.add_argument("-l", "--label", action="append", default=[], help="Add labels by name (repeatable)")
        parser.add_argument(
            "-a", "--assignee", action="append", default=[], help="Assign merge request to people by username"
        )
        parser.add_argument("--reviewer", action="append", default=[], help="Request review from users by username")
        parser.add_argument("-m", "--milestone", default=None, help="Milestone title or ID")
        parser.add_argument("--draft", action="store_true", help="Mark merge request as a draft")
        parser.add_argument(
            "-i",
            "--related-issue",
            type=int,
            default=None,
            help="Create a draft merge request that closes this issue",
        )
        parser.add_argument(
            "-f", "--fill", action="store_true", help="Use commit info for title and description, without prompting"
        )
        parser.add_argument(
            "--fill-commit-body", action="store_true", help="Fill description with each commit body (with --fill)"
        )
        parser.add_argument(
            "--remove-source-branch", action="store_true", help="Remove source branch on merge"
        )
        parser.add_argument("--squash-before-merge", action="store_true", help="Squash commits into one on merge")
        parser.add_argument(
            "--allow-collaboration", action="store_true", help="Allow commits from other members"
        )
        parser.add_argument("--push", action="store_true", help="Push the source branch to origin first")
        parser.add_argument("-y", "--yes", action="store_true", help="Skip the submission confirmation prompt")

    def run(self) -> None:
        source = self.args.source_branch or git.current_branch()
        if not source:
            raise CommandError("could not determine the source branch; use --source-branch")

        try:
            project = self.client.get_project(self.repo.path)
        except requests.RequestException as e:
            raise wrap_api_error("failed to get project", e) from e
        target = self.args.target_branch or project.get("default_branch") or "main"

        title = self.args.title
        description = self.args.description

        if self.args.related_issue is not None:
            title, description = self._from_related_issue(title, description)
        if self.args.fill:
            filled_title, filled_description = title_and_description_from_commits(
                source, f"origin/{target}", self.args.fill_commit_body
            )
            title = title or filled_title
            description = description if description is not None else filled_description

        if not title:
            if self.args.fill or not prompt.is_interactive():
                raise CommandError("--title or --fill required for non-interactive mode.")
            title = prompt.text("Title:")
            if description is None:
                description = prompt.text("Description:")
        if not title.strip():
            raise CommandError("aborted... Merge request has an empty title.")

        draft = self.args.draft or self.args.related_issue is not None
        if draft and not title.lower().startswith(DRAFT_PREFIXES):
            title = f"Draft: {title}"

        data: dict = {"title": title, "source_branch": source, "target_branch": target}
        if description:
            data["description"] = description
        labels = _split_list(self.args.label)
        if labels:
            data["labels"] = ",".join(labels)
        assignees = _split_list(self.args.assignee)
        if assignees:
            data["assignee_ids"] = [self._user_id(name) for name in assignees]
        reviewers = _split_list(self.args.reviewer)
        if reviewers:
            data["reviewer_ids"] = [self._user_id(name) for name in reviewers]
        if self.args.milestone:
            data["milestone_id"] = self._milestone_id(self.args.milestone)
        if self.args.remove_source_branch:
            data["remove_source_branch"] = True
        if self.args.squash_before_merge:
            data["squash"] = True
        if self.args.allow_collaboration:
            data["allow_collaboration"] = True

        kind = "draft merge request" if draft else "merge request"
        self.err.write(f"\nCreating {kind} for {source} into {target} in {self.repo}\n\n")

        if prompt.is_interactive() and not (self.args.yes or self.args.fill):
            if not prompt.confirm("Submit merge request?", default=True):
                raise CommandError("aborted by user")

        if self.args.push:
            git.push("origin", source)

        try:
            mr = MergeRequest.from_dict(self.client.create_merge_request(self.repo.path, data))
        except requests.RequestException as e:
            raise wrap_api_error("failed to create merge request", e) from e
        self.out.write(f"!{mr.iid} {mr.title} ({mr.source_branch})\n {mr.web_url}\n\n")

    def _from_related_issue(self, title: str | None, description: str | None) -> tuple[str, str]:
        iid = self.args.related_issue
        try:
            issue = self.client.get_issue(self.repo.path, iid)
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to get issue #{iid}", e) from e
        title = title or f'Resolve "{issue.get("title", "")}"'
        return title, f"{description or ''}\n\nCloses #{iid}"

    def _user_id(self, username: str) -> int:
        username = username.lstrip("@")
        try:
            user = self.client.find_user(username)
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to find user {username}", e) from e
        if user is None:
            raise CommandError(f"user {username!r} not found")
        return user["id"]

    def _milestone_id(self, value: str) -> int:
        if value.isdigit():
            return int(value)
        try:
            milestones = [
                Milestone.from_dict(m) for m in self.client.list_milestones(self.repo.path, params={"title": value})
            ]
        except requests.RequestException as e:
            raise wrap_api_error(f'failed to find milestone "{value}"', e) from e
        match = next((m for m in milestones if m.title == value), None)
        if match is None:
            raise CommandError(f'milestone "{value}" not found')
        return match.id


@register_command("mr", "close")
class CloseMergeRequestCommand(Command):
    """Close a merge request"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        add_mr_argument(parser)

    def run(self) -> None:
        mr = resolve_mr(self.client, self.repo, self.args.mr, state="opened")
        if mr.state == "closed":
            raise CommandError(f"merge request !{mr.iid} is already closed")
        if mr.state == "merged":
            raise CommandError(f"merge request !{mr.iid} is already merged")

        self.out.write("- Closing merge request...\n")
        try:
            self.client.update_merge_request(self.repo.path, mr.iid, {"state_event": "close"})
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to close merge request !{mr.iid}", e) from e
        self.out.write(f"✓ Closed merge request !{mr.iid}.\n\n")


@register_command("mr", "reopen")
class ReopenMergeRequestCommand(Command):
    """Reopen a merge request"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        add_mr_argument(parser)

    def run(self) -> None:
        mr = resolve_mr(self.client, self.repo, self.args.mr, state="closed")
        if mr.state == "opened":
            self.err.write(f"! Merge request !{mr.iid} is already open.\n")
            return
        if mr.state == "merged":
            raise CommandError(f"merge request !{mr.iid} is already merged")

        self.out.write(f"- Reopening merge request !{mr.iid}...\n")
        try:
            self.client.update_merge_request(self.repo.path, mr.iid, {"state_event": "reopen"})
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to reopen merge request !{mr.iid}", e) from e
        self.out.write(f"✓ Reopened merge request !{mr.iid}.\n\n")


@register_command("mr", "merge")
class MergeMergeRequestCommand(Command):
    """Merge or accept a merge request"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        add_mr_argument(parser)
        parser.add_argument(
            "--auto-merge", action="store_true", help="Merge when the pipeline succeeds instead of immediately"
        )
        parser.add_argument("-s", "--squash", action="store_true", help="Squash commits on merge")
        parser.add_argument(
            "-d", "--remove-source-branch", action="store_true", help="Remove source branch on merge"
        )
        parser.add_argument("--sha", default=None, help="Merge only if the HEAD of the source branch matches this SHA")
        parser.add_argument("-m", "--message", default=None, help="Custom merge commit message")
        parser.add_argument("--squash-message", default=None, help="Custom squash commit message")
        parser.add_argument("-r", "--rebase", action="store_true", help="Rebase the commits onto the base branch first")

    def run(self) -> None:
        mr = resolve_mr(self.client, self.repo, self.args.mr, state="opened")
        if mr.state != "opened":
            raise CommandError(f"merge request !{mr.iid} is not open (state: {mr.state})")

        if not mr.has_pipeline:
            self.out.write(f"! No pipeline running on {mr.source_branch}\n")

        if self.args.rebase:
            rebase_merge_request(self.client, self.repo, mr, out=self.out)

        data: dict = {}
        if self.args.squash:
            data["squash"] = True
        if self.args.remove_source_branch:
            data["should_remove_source_branch"] = True
        if self.args.sha:
            data["sha"] = self.args.sha
        if self.args.message:
            data["merge_commit_message"] = self.args.message
        if self.args.squash_message:
            data["squash_commit_message"] = self.args.squash_message
        auto_merge = self.args.auto_merge and mr.has_pipeline
        if auto_merge:
            data["merge_when_pipeline_succeeds"] = True

        try:
            merged = MergeRequest.from_dict(self.client.accept_merge_request(self.repo.path, mr.iid, data))
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to merge merge request !{mr.iid}", e) from e

        if merged.state == "merged" or not auto_merge:
            self.out.write("✓ Merged!\n")
        else:
            self.out.write("✓ Will auto-merge when the pipeline succeeds\n")
        self.out.write(f"{merged.web_url or mr.web_url}\n")


def rebase_merge_request(
    client: GitLabClient, repo: Repo, mr: MergeRequest, skip_ci: bool = False, out: IO[str] | None = None
) -> None:
    """Request a rebase and wait for it to finish."""
    try:
        client.rebase_merge_request(repo.path, mr.iid, skip_ci=skip_ci)
    except requests.RequestException as e:
        raise wrap_api_error(f"failed to rebase merge request !{mr.iid}", e) from e

    while True:
        try:
            current = MergeRequest.from_dict(
                client.get_merge_request(repo.path, mr.iid, params={"include_rebase_in_progress": "true"})
            )
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to get merge request !{mr.iid}", e) from e
        if not current.rebase_in_progress:
            break
        time.sleep(REBASE_POLL_INTERVAL)

    if current.merge_error:
        raise CommandError(f"rebase failed: {current.merge_error}")
    if out is not None:
        out.write("✓ Rebase successful!\n")


@register_command("mr", "rebase")
class RebaseMergeRequestCommand(Command):
    """Rebase the source branch of a merge request against its target branch"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        add_mr_argument(parser)
        parser.add_argument("--skip-ci", action="store_true", help="Rebase merge request while skipping CI/CD pipeline")

    def run(self) -> None:
        mr = resolve_mr(self.client, self.repo, self.args.mr, state="opened")
        rebase_merge_request(self.client, self.repo, mr, skip_ci=self.args.skip_ci, out=self.out)


@register_command("mr", "checkout")
class CheckoutMergeRequestCommand(Command):
    """Check out an open merge request"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        add_mr_argument(parser)
        parser.add_argument("-b", "--branch", default=None, help="Check out merge request with name <branch>")
        parser.add_argument("-t", "--track", action="store_true", help="Set checked out branch to track the remote")

    def run(self) -> None:
        mr = resolve_mr(self.client, self.repo, self.args.mr, state="opened")
        local = self.args.branch or mr.source_branch

        fetch_ref = f"refs/heads/{mr.source_branch}"
        try:
            project = self.client.get_project(mr.source_project_id or self.repo.path)
        except requests.HTTPError as e:
            if not is_not_found(e):
                raise wrap_api_error("failed to get source project", e) from e
            # Private fork: fetch the MR head from the target project instead
            self.logger.debug(f"Source project of !{mr.iid} is not accessible, using the target project")
            fetch_ref = f"refs/merge-requests/{mr.iid}/head"
            try:
                project = self.client.get_project(mr.target_project_id or self.repo.path)
            except requests.RequestException as e2:
                raise wrap_api_error("failed to get target project", e2) from e2

        protocol = self.config.get("git_protocol") if self.config else "ssh"
        if protocol == "https":
            url = project.get("http_url_to_repo") or project.get("ssh_url_to_repo")
        else:
            url = project.get("ssh_url_to_repo") or project.get("http_url_to_repo")
        if not url:
            raise CommandError(f"could not determine a clone URL for project {project.get('id')}")

        if self.args.track and fetch_ref.startswith("refs/heads/"):
            remote = (project.get("namespace") or {}).get("full_path") or "origin"
            if git.remote_url(remote) is None:
                git.run("remote", "add", remote, url)
            git.run("fetch", remote, f"{fetch_ref}:refs/remotes/{remote}/{mr.source_branch}")
            git.run("checkout", "-b", local, "--track", f"{remote}/{mr.source_branch}")
            return

        git.fetch(url, f"{fetch_ref}:{local}")
        git.set_config(f"branch.{local}.remote", url)
        if mr.raw.get("allow_collaboration"):
            git.set_config(f"branch.{local}.pushRemote", url)
        git.set_config(f"branch.{local}.merge", fetch_ref)
        git.checkout(local)


def format_diff(diff: dict) -> str:
    """Render one entry of a merge request diff version as a git patch."""
    old_path = diff.get("old_path", "")
    new_path = diff.get("new_path", "")
    lines = [f"diff --git a/{old_path} b/{new_path}"]
    if diff.get("new_file"):
        lines.append(f"new file mode {diff.get('b_mode', '100644')}")
    elif diff.get("deleted_file"):
        lines.append(f"deleted file mode {diff.get('a_mode', '100644')}")
    if diff.get("renamed_file") and old_path != new_path:
        lines.append(f"rename from {old_path}")
        lines.append(f"rename to {new_path}")
    lines.append("--- /dev/null" if diff.get("new_file") else f"--- a/{old_path}")
    lines.append("+++ /dev/null" if diff.get("deleted_file") else f"+++ b/{new_path}")
    body = diff.get("diff", "")
    return "\n".join(lines) + "\n" + body + ("" if not body or body.endswith("\n") else "\n")


@register_command("mr", "diff")
class DiffMergeRequestCommand(Command):
    """View changes in a merge request"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        add_mr_argument(parser)
        parser.add_argument("--raw", action="store_true", help="Use raw diff format that can be piped to commands")

    def run(self) -> None:
        if self.args.repo and not self.args.mr:
            raise CommandError("argument required when using the --repo flag.")
        mr = resolve_mr(self.client, self.repo, self.args.mr, state="opened")

        if self.args.raw:
            try:
                self.out.write(self.client.get_merge_request_raw_diffs(self.repo.path, mr.iid))
            except requests.RequestException as e:
                raise wrap_api_error("could not find merge request diffs", e) from e
            return

        try:
            versions = self.client.list_merge_request_diff_versions(self.repo.path, mr.iid)
            if not versions:
                raise CommandError("no merge request diffs found")
            # Versions are listed newest first
            version = self.client.get_merge_request_diff_version(self.repo.path, mr.iid, versions[0]["id"])
        except requests.RequestException as e:
            raise wrap_api_error("could not find merge request diffs", e) from e

        for diff in version.get("diffs") or []:
            self.out.write(format_diff(diff))


@register_command("mr", "note")
class NoteMergeRequestCommand(Command):
    """Add a comment or note to a merge request"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        add_mr_argument(parser)
        parser.add_argument("-m", "--message", default=None, help="Comment or note message")
        parser.add_argument(
            "--unique", action="store_true", help="Don't create a comment or note if it already exists"
        )

    def run(self) -> None:
        mr = resolve_mr(self.client, self.repo, self.args.mr)

        message = self.args.message
        if message is None:
            if not prompt.is_interactive():
                raise CommandError("--message required when not running interactively")
            message = prompt.text("Note message:")
        if not message.strip():
            raise CommandError("aborted... Note has an empty message.")

        if self.args.unique:
            try:
                notes = self.client.list_merge_request_notes(self.repo.path, mr.iid)
            except requests.RequestException as e:
                raise wrap_api_error("failed to list notes", e) from e
            for data in notes:
                note = Note.from_dict(data)
                if note.body == message:
                    self.out.write(f"{mr.web_url}#note_{note.id}\n")
                    return

        try:
            created = self.client.create_merge_request_note(self.repo.path, mr.iid, message)
            if isinstance(created, list):
                # Some servers answer with the full note list; use the newest note
                created = self.client.get_latest_merge_request_note(self.repo.path, mr.iid)
        except requests.RequestException as e:
            raise wrap_api_error("failed to create note", e) from e
        if not created:
            raise CommandError("failed to create note: no note returned")

        self.out.write(f"{mr.web_url}#note_{Note.from_dict(created).id}\n")


@register_command("mr", "todo")
class TodoMergeRequestCommand(Command):
    """Add a to-do item for merge request"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        add_mr_argument(parser)

    def run(self) -> None:
        mr = resolve_mr(self.client, self.repo, self.args.mr)
        try:
            created = self.client.create_merge_request_todo(self.repo.path, mr.iid)
        except requests.RequestException as e:
            raise wrap_api_error("failed to add to-do item", e) from e
        if not created:
            raise CommandError("this merge request is already in your to-do list")
        self.out.write("✓ Done!!\n")


@register_command("mr", "issues")
class IssuesMergeRequestCommand(Command):
    """Get issues related to a particular merge request"""

    json_output = True

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        add_mr_argument(parser)

    def run(self) -> None:
        mr = resolve_mr(self.client, self.repo, self.args.mr)
        try:
            issues = self.client.get_issues_closed_on_merge(self.repo.path, mr.iid)
        except requests.RequestException as e:
            raise wrap_api_error("failed to get issues closed on merge", e) from e

        if self.wants_json:
            self.print_json(issues)
            return

        if not issues:
            self.out.write(f"No issues match your search in {self.repo}.\n")
            return

        self.out.write(f"Showing {len(issues)} issues in {self.repo} that match your search.\n\n")
        for issue in issues:
            labels = ", ".join(issue.get("labels") or [])
            labels = f"({labels})" if labels else ""
            created = time_ago(parse_time(issue.get("created_at")))
            self.out.write(f"#{issue['iid']}\t{issue.get('title', '')}\t{labels}\t{created}\n")
        self.out.write("\n")


@register_command("mr", "approvers")
class ApproversMergeRequestCommand(Command):
    """List eligible approvers for merge requests in any state"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        add_mr_argument(parser)

    def run(self) -> None:
        mr = resolve_mr(self.client, self.repo, self.args.mr)
        try:
            state = self.client.get_approval_state(self.repo.path, mr.iid)
        except requests.RequestException as e:
            raise wrap_api_error("failed to get approval state", e) from e

        self.out.write(f"\nListing merge request !{mr.iid} eligible approvers:\n")
        if state.get("approval_rules_overwritten"):
            self.out.write("Approval rules overwritten.\n")

        for rule in state.get("rules") or []:
            approved_by = rule.get("approved_by") or []
            eligible = rule.get("eligible_approvers") or []
            approved_ids = {user["id"] for user in approved_by}
            sufficient = "sufficient" if rule.get("approved") else "insufficient"
            self.out.write(
                f'Rule "{rule.get("name", "")}" {sufficient} approvals '
                f'({len(approved_by)}/{rule.get("approvals_required", 0)} required):\n'
            )
            self.out.write("Name\tUsername\tApproved\n")
            for user in eligible:
                mark = "👍" if user["id"] in approved_ids else "-"
                self.out.write(f"{user.get('name', '')}\t{user.get('username', '')}\t{mark}\t\n")
            eligible_ids = {user["id"] for user in eligible}
            for user in approved_by:
                if user["id"] not in eligible_ids:
                    self.out.write(f"{user.get('name', '')}\t{user.get('username', '')}\t👍\t\n")
            self.out.write("\n")
