"""Release asset parsing, upload and download helpers."""

from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import dataclass, field
from typing import IO

import requests

from gl_cli.client import GitLabClient
from gl_cli.exceptions import CommandError, wrap_api_error
from gl_cli.models import LINK_TYPES, ReleaseLink, Repo


@dataclass
class AssetFile:
    """A local file to attach to a release."""

    path: str
    name: str
    link_type: str | None = None


@dataclass
class AssetLink:
    """An asset link given as JSON on the command line."""

    name: str
    url: str
    link_type: str | None = None
    direct_asset_path: str | None = None
    aliased_filepath: bool = False
    extra: dict = field(default_factory=dict)


def add_asset_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "files",
        nargs="*",
        default=[],
        help="Files to upload, as PATH[#DISPLAY_NAME[#LINK_TYPE]]",
    )
    parser.add_argument(
        "-a",
        "--assets-links",
        default=None,
        help="JSON list of asset links, e.g. "
        '\'[{"name": "Asset1", "url": "https://<domain>/some/location/1", "link_type": "other", '
        '"direct_asset_path": "path/to/file"}]\'',
    )


def parse_file_spec(spec: str) -> AssetFile:
    """Parse ``PATH[#DISPLAY_NAME[#LINK_TYPE]]``."""
    path, _, rest = spec.partition("#")
    name, _, link_type = rest.partition("#")
    if not path:
        raise CommandError(f"invalid asset file: {spec!r}")
    if link_type and link_type not in LINK_TYPES:
        raise CommandError(f"invalid link type {link_type!r}; must be one of: {', '.join(LINK_TYPES)}")
    if not os.path.isfile(path):
        raise CommandError(f"asset file not found: {path}")
    return AssetFile(path=path, name=name or os.path.basename(path), link_type=link_type or None)


def parse_assets_links(value: str | None) -> list[AssetLink]:
    if not value:
        return []
    try:
        items = json.loads(value)
    except json.JSONDecodeError as e:
        raise CommandError(f"failed to parse JSON string: {e}") from e
    if not isinstance(items, list):
        raise CommandError("failed to parse JSON string: expected a list of asset links")

    links = []
    for item in items:
        if not isinstance(item, dict) or not item.get("name") or not item.get("url"):
            raise CommandError("each asset link needs a name and a url")
        item = dict(item)
        link = AssetLink(name=item.pop("name"), url=item.pop("url"), link_type=item.pop("link_type", None))
        link.direct_asset_path = item.pop("direct_asset_path", None)
        filepath = item.pop("filepath", None)
        if filepath and not link.direct_asset_path:
            link.direct_asset_path = filepath
            link.aliased_filepath = True
        if link.link_type and link.link_type not in LINK_TYPES:
            raise CommandError(f"invalid link type {link.link_type!r}; must be one of: {', '.join(LINK_TYPES)}")
        link.extra = item
        links.append(link)
    return links


def read_notes(notes: str | None, notes_file: str | None) -> str | None:
    """Release notes from --notes, or from --notes-file (``-`` reads stdin)."""
    if notes is not None:
        return notes
    if notes_file is None:
        return None
    if notes_file == "-":
        return sys.stdin.read()
    try:
        with open(notes_file, encoding="utf-8") as fh:
            return fh.read()
    except OSError as e:
        raise CommandError(f"failed to read notes file: {e}") from e


def upload_assets(
    client: GitLabClient,
    repo: Repo,
    tag: str,
    files: list[AssetFile],
    links: list[AssetLink],
    out: IO[str],
) -> None:
    """Upload local files and attach them, then attach the JSON links."""
    for asset in files:
        filename = os.path.basename(asset.path)
        out.write(f"• Uploading to release\tfile={asset.path} name={filename}\n")
        try:
            uploaded = client.upload_project_file(repo.path, asset.path, filename)
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to upload {asset.path}", e) from e
        data = {"name": asset.name, "url": client.base_url + uploaded["full_path"]}
        if asset.link_type:
            data["link_type"] = asset.link_type
        try:
            client.create_release_link(repo.path, tag, data)
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to create release link for {asset.name}", e) from e

    for link in links:
        data = {"name": link.name, "url": link.url, **link.extra}
        if link.link_type:
            data["link_type"] = link.link_type
        if link.direct_asset_path:
            data["direct_asset_path"] = link.direct_asset_path
        try:
            created = ReleaseLink.from_dict(client.create_release_link(repo.path, tag, data))
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to create release link {link.name}", e) from e
        out.write(f"✓ Added release asset\tname={created.name} url={created.direct_asset_url or created.url}\n")
        if link.aliased_filepath:
            out.write(
                "\t! Aliased deprecated `filepath` field to `direct_asset_path`. "
                f"Replace `filepath` with `direct_asset_path`\tname={link.name}\n"
            )


def safe_destination(directory: str, name: str) -> str:
    """Join an asset name onto ``directory`` without letting it escape."""
    clean = os.path.normpath(name)
    if os.path.isabs(clean) or clean == os.pardir or clean.startswith(os.pardir + os.sep):
        raise CommandError(f"invalid file path name: {name}")
    return os.path.join(directory, clean)


def download_asset(client: GitLabClient, url: str, destination: str) -> None:
    try:
        fh = open(destination, "wb")
    except OSError as e:
        raise CommandError(f"failed to create {destination}: {e}") from e
    with fh:
        try:
            client.download(url, fh)
        except requests.RequestException as e:
            fh.close()
            os.remove(destination)
            raise wrap_api_error(f"failed to download {url}", e) from e
