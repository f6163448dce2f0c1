"""Release commands: create, upload, download, view, delete."""

from __future__ import annotations

import argparse
import fnmatch
import os
import time

import requests

from gl_cli import prompt
from gl_cli.commands import releaseutils
from gl_cli.commands.base import Command, register_command
from gl_cli.exceptions import CommandError, is_not_found, wrap_api_error
from gl_cli.models import Milestone, Release
from gl_cli.output import time_ago


class ReleaseCommand(Command):
    """Shared release lookups."""

    def get_release(self, tag: str) -> dict | None:
        """The release for ``tag``, or None when there is none."""
        try:
            return self.client.get_release(self.repo.path, tag)
        except requests.HTTPError as e:
            if is_not_found(e):
                return None
            raise wrap_api_error("failed to get release", e) from e
        except requests.RequestException as e:
            raise wrap_api_error("failed to get release", e) from e

    def get_release_or_latest(self, tag: str | None) -> dict:
        if tag:
            release = self.get_release(tag)
            if release is None:
                raise CommandError(f'no release found for tag "{tag}"')
            return release
        try:
            releases = self.client.list_releases(self.repo.path, params={"page": 1, "per_page": 1})
        except requests.RequestException as e:
            raise wrap_api_error("failed to get latest release", e) from e
        if not releases:
            raise CommandError("no release found: not found")
        return releases[0]


@register_command("release", "create")
class CreateReleaseCommand(ReleaseCommand):
    """Create or update a GitLab release, or upload release assets"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("tag", help="Tag to create the release for")
        releaseutils.add_asset_arguments(parser)
        parser.add_argument("-n", "--name", default=None, help="The release name or title (default: the tag)")
        parser.add_argument(
            "-r", "--ref", default=None, help="Commit SHA, tag or branch to create the tag from if it does not exist"
        )
        parser.add_argument("-T", "--tag-message", default=None, help="Message to use if creating a new annotated tag")
        notes = parser.add_mutually_exclusive_group()
        notes.add_argument("-N", "--notes", default=None, help="The release notes or description")
        notes.add_argument(
            "-F", "--notes-file", default=None, help="Read release notes from a file. Pass '-' to read from stdin"
        )
        parser.add_argument(
            "-m", "--milestone", action="append", default=[], help="Milestone title to associate (repeatable)"
        )
        parser.add_argument(
            "-D", "--released-at", default=None, help="ISO 8601 date/time when the release is ready"
        )
        parser.add_argument(
            "--no-update", action="store_true", help="Fail if a release already exists for the tag"
        )
        parser.add_argument(
            "--no-close-milestone", action="store_true", help="Do not close the associated milestones"
        )

    def run(self) -> None:
        started = time.monotonic()
        tag = self.args.tag
        files = [releaseutils.parse_file_spec(spec) for spec in self.args.files]
        links = releaseutils.parse_assets_links(self.args.assets_links)
        description = releaseutils.read_notes(self.args.notes, self.args.notes_file)

        self.out.write(f"• Validating tag {tag}\n")
        ref = None
        if not self._tag_exists(tag):
            ref = self.args.ref or self._default_ref()

        existing = self.get_release(tag)
        if existing is not None and self.args.no_update:
            raise CommandError(f'release for tag "{tag}" already exists and --no-update flag was specified')

        self.out.write(f"• Creating or updating release repo={self.repo} tag={tag}\n")
        data = {
            "name": self.args.name or tag,
            "description": description,
            "milestones": self.args.milestone or None,
            "released_at": self.args.released_at,
        }
        try:
            if existing is None:
                data.update({"tag_name": tag, "ref": ref, "tag_message": self.args.tag_message})
                release = self.client.create_release(self.repo.path, _without_none(data))
                action = "created"
            else:
                release = self.client.update_release(self.repo.path, tag, _without_none(data))
                action = "updated"
        except requests.RequestException as e:
            raise wrap_api_error("failed to create or update release", e) from e
        self.out.write(f"✓ Release {action}:\turl={Release.from_dict(release).web_url}\n")

        if files or links:
            self.out.write(f"• Uploading release assets repo={self.repo} tag={tag}\n")
            releaseutils.upload_assets(self.client, self.repo, tag, files, links, self.out)

        if self.args.milestone:
            if self.args.no_close_milestone:
                self.out.write("✓ Skipping closing milestones\n")
            else:
                for title in self.args.milestone:
                    self._close_milestone(title)

        self.out.write(f"✓ Release succeeded after {time.monotonic() - started:.2f}s.\n")

    def _tag_exists(self, tag: str) -> bool:
        try:
            self.client.get_tag(self.repo.path, tag)
        except requests.HTTPError as e:
            if is_not_found(e):
                return False
            raise wrap_api_error("failed to validate tag", e) from e
        except requests.RequestException as e:
            raise wrap_api_error("failed to validate tag", e) from e
        return True

    def _default_ref(self) -> str | None:
        """Ref for a new tag: project default branch, else CI_DEFAULT_BRANCH."""
        try:
            branch = self.client.get_default_branch(self.repo.path)
        except requests.RequestException as e:
            self.logger.debug(f"Could not read default branch of {self.repo}: {e}")
            branch = None
        return branch or os.environ.get("CI_DEFAULT_BRANCH") or None

    def _close_milestone(self, title: str) -> None:
        try:
            milestones = [Milestone.from_dict(m) for m in self.client.list_milestones(self.repo.path, params={"title": title})]
            match = next((m for m in milestones if m.title == title), None)
            if match is None:
                self.err.write(f'! Milestone "{title}" not found\n')
                return
            self.client.update_milestone(self.repo.path, match.id, {"state_event": "close"})
        except requests.RequestException as e:
            raise wrap_api_error(f'failed to close milestone "{title}"', e) from e
        self.out.write(f'✓ Closed milestone "{title}"\n')


def _without_none(data: dict) -> dict:
    return {key: value for key, value in data.items() if value is not None}


@register_command("release", "upload")
class UploadReleaseCommand(ReleaseCommand):
    """Upload release asset files or links to a GitLab release"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("tag", help="Tag of the release to attach assets to")
        releaseutils.add_asset_arguments(parser)

    def run(self) -> None:
        started = time.monotonic()
        tag = self.args.tag
        files = [releaseutils.parse_file_spec(spec) for spec in self.args.files]
        links = releaseutils.parse_assets_links(self.args.assets_links)
        if not files and not links:
            raise CommandError("no files or asset links provided to upload")

        self.out.write(f"• Validating tag repo={self.repo} tag={tag}\n")
        if self.get_release(tag) is None:
            raise CommandError(f'no release found for tag "{tag}"')

        self.out.write(f"• Uploading release assets repo={self.repo} tag={tag}\n")
        releaseutils.upload_assets(self.client, self.repo, tag, files, links, self.out)
        self.out.write(f"✓ Upload succeeded after {time.monotonic() - started:.2f}s.\n")


@register_command("release", "download")
class DownloadReleaseCommand(ReleaseCommand):
    """Download asset files from a GitLab release"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("tag", nargs="?", default=None, help="Release tag (default: latest release)")
        parser.add_argument(
            "-n",
            "--asset-name",
            action="append",
            default=[],
            help="Download only assets matching this glob pattern (repeatable)",
        )
        parser.add_argument("-D", "--dir", default=".", help="Directory to download the release assets to")

    def run(self) -> None:
        release = Release.from_dict(self.get_release_or_latest(self.args.tag))

        assets = [(link.name, link.direct_asset_url or link.url) for link in release.links]
        for source in release.sources:
            url = source.get("url", "")
            assets.append((url.rsplit("/", 1)[-1], url))
        if self.args.asset_name:
            assets = [
                (name, url)
                for name, url in assets
                if any(fnmatch.fnmatch(name, pattern) for pattern in self.args.asset_name)
            ]

        if not assets:
            self.out.write("! no release assets found\n")
            return

        os.makedirs(self.args.dir, exist_ok=True)
        for name, url in assets:
            destination = releaseutils.safe_destination(self.args.dir, name)
            self.out.write(f"• Downloading {name}\n")
            releaseutils.download_asset(self.client, url, destination)
        self.out.write(f"✓ Downloaded {len(assets)} assets of release {release.tag_name}\n")


@register_command("release", "view")
class ViewReleaseCommand(ReleaseCommand):
    """View information about a GitLab release"""

    json_output = True

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("tag", nargs="?", default=None, help="Release tag (default: latest release)")

    def run(self) -> None:
        data = self.get_release_or_latest(self.args.tag)
        if self.wants_json:
            self.print_json(data)
            return

        release = Release.from_dict(data)
        self.out.write(f"{release.name}\n")
        self.out.write(f"{release.author_name} released this {time_ago(release.released_at)}\n")
        self.out.write(f"{release.commit_short_id} - {release.tag_name}\n")
        self.out.write(f"\n{release.description}\n\n")
        if release.links:
            self.out.write("ASSETS\n")
            for link in release.links:
                self.out.write(f"{link.name}\t{link.direct_asset_url or link.url}\n")
            self.out.write("\n")
        if release.sources:
            self.out.write("SOURCES\n")
            for source in release.sources:
                self.out.write(f"{source.get('url', '')}\n")
            self.out.write("\n")
        self.out.write(f"\nView this release on GitLab at {release.web_url}\n")


@register_command("release", "delete")
class DeleteReleaseCommand(ReleaseCommand):
    """Delete a GitLab release"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("tag", help="Tag of the release to delete")
        parser.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt")
        parser.add_argument("-t", "--with-tag", action="store_true", help="Also delete the associated tag")

    def run(self) -> None:
        tag = self.args.tag
        self.out.write(f"• Validating tag repo={self.repo} tag={tag}\n")
        data = self.get_release(tag)
        if data is None:
            raise CommandError(f'no release found for tag "{tag}"')
        release = Release.from_dict(data)

        if not self.args.yes:
            if not prompt.is_interactive():
                raise CommandError("--yes required when not running interactively")
            what = f'release "{release.name}" and tag "{tag}"' if self.args.with_tag else f'release "{release.name}"'
            if not prompt.confirm(f"Are you sure you want to delete {what}?"):
                self.err.write("✗ Aborted.\n")
                return

        self.out.write(f"• Deleting release repo={self.repo} tag={tag}\n")
        try:
            self.client.delete_release(self.repo.path, tag)
        except requests.RequestException as e:
            raise wrap_api_error("failed to delete release", e) from e
        self.out.write(f'✓ Release "{release.name}" deleted.\n')

        if self.args.with_tag:
            self.out.write(f'• Deleting associated tag "{tag}".\n')
            try:
                self.client.delete_tag(self.repo.path, tag)
            except requests.RequestException as e:
                raise wrap_api_error("failed to delete tag", e) from e
            self.out.write(f'✓ Tag "{tag}" deleted.\n')
