"""Data models and constants for gl-cli."""

from __future__ import annotations

import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_GITLAB_URL = "https://gitlab.com"
API_V4 = "/api/v4"
PER_PAGE = 100

# Retry configuration
DEFAULT_MAX_RETRIES = 3
RETRY_BACKOFF_FACTOR = 0.5  # seconds
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# Release asset link types accepted by the API
LINK_TYPES = ("other", "runbook", "image", "package")

# Job statuses that still produce trace output
RUNNING_JOB_STATUSES = {"created", "pending", "running", "waiting_for_resource", "preparing"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_time(value: str | None) -> datetime | None:
    """Parse an API timestamp (RFC 3339, 'Z' suffix allowed)."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def extract_path_from_url(url: str) -> str:
    """Extract the namespace/project path from a GitLab URL or git remote."""
    if url.startswith("git@") or ("@" in url and "://" not in url):
        # SCP-like remote: git@gitlab.com:myorg/myproject.git
        path = url.split(":", 1)[1]
        return _strip_suffixes(path.strip("/"))
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme and parsed.netloc:
        # Full URL: https://gitlab.com/myorg/myteam/myproject
        return _strip_suffixes(parsed.path.strip("/"))
    # Bare path: myorg/myteam/myproject
    return url.strip("/")


def extract_host_from_url(url: str) -> str | None:
    """Return the host of a URL or SCP-like remote, or None for a bare path."""
    if url.startswith("git@") or ("@" in url and "://" not in url):
        return url.split("@", 1)[1].split(":", 1)[0]
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme and parsed.netloc:
        return parsed.hostname
    return None


def _strip_suffixes(path: str) -> str:
    # Cut at the "/-/" route separator; ".git" only counts at the very end
    if "/-/" in path:
        path = path[: path.index("/-/")]
    elif path.endswith("/-"):
        path = path[:-2]
    return path.removesuffix(".git").rstrip("/")


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------


@dataclass
class Repo:
    """A project on a GitLab host, addressed by its full path."""

    path: str
    host: str | None = None

    @classmethod
    def parse(cls, value: str) -> Repo:
        path = extract_path_from_url(value)
        if path.count("/") < 1:
            raise ValueError(f"expected the OWNER/REPO format, got {value!r}")
        return cls(path=path, host=extract_host_from_url(value))

    def __str__(self) -> str:
        return self.path


@dataclass
class Job:
    id: int
    name: str
    status: str
    stage: str = ""
    ref: str = ""
    web_url: str = ""
    duration: float | None = None
    failure_reason: str = ""
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            status=data.get("status", ""),
            stage=data.get("stage", ""),
            ref=data.get("ref", ""),
            web_url=data.get("web_url", ""),
            duration=data.get("duration"),
            failure_reason=data.get("failure_reason") or "",
            raw=data,
        )


@dataclass
class Pipeline:
    id: int
    iid: int | None
    status: str
    ref: str = ""
    sha: str = ""
    source: str = ""
    tag: bool = False
    yaml_errors: str | None = None
    username: str = ""
    project_id: int | None = None
    web_url: str = ""
    created_at: datetime | None = None
    started_at: datetime | None = None
    updated_at: datetime | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Pipeline:
        user = data.get("user") or {}
        return cls(
            id=data["id"],
            iid=data.get("iid"),
            status=data.get("status", ""),
            ref=data.get("ref", ""),
            sha=data.get("sha", ""),
            source=data.get("source", ""),
            tag=bool(data.get("tag", False)),
            yaml_errors=data.get("yaml_errors"),
            username=user.get("username", ""),
            project_id=data.get("project_id"),
            web_url=data.get("web_url", ""),
            created_at=parse_time(data.get("created_at")),
            started_at=parse_time(data.get("started_at")),
            updated_at=parse_time(data.get("updated_at")),
            raw=data,
        )


@dataclass
class MergeRequest:
    id: int
    iid: int
    title: str = ""
    state: str = ""
    source_branch: str = ""
    target_branch: str = ""
    source_project_id: int | None = None
    target_project_id: int | None = None
    project_id: int | None = None
    web_url: str = ""
    head_pipeline_id: int | None = None
    has_pipeline: bool = False
    rebase_in_progress: bool = False
    merge_error: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MergeRequest:
        head_pipeline = data.get("head_pipeline") or data.get("pipeline") or {}
        return cls(
            id=data["id"],
            iid=data["iid"],
            title=data.get("title", ""),
            state=data.get("state", ""),
            source_branch=data.get("source_branch", ""),
            target_branch=data.get("target_branch", ""),
            source_project_id=data.get("source_project_id"),
            target_project_id=data.get("target_project_id"),
            project_id=data.get("project_id"),
            web_url=data.get("web_url", ""),
            head_pipeline_id=head_pipeline.get("id"),
            has_pipeline=bool(head_pipeline),
            rebase_in_progress=bool(data.get("rebase_in_progress", False)),
            merge_error=data.get("merge_error"),
            raw=data,
        )


@dataclass
class ReleaseLink:
    id: int | None
    name: str
    url: str
    direct_asset_url: str = ""
    link_type: str = "other"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReleaseLink:
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            url=data.get("url", ""),
            direct_asset_url=data.get("direct_asset_url", ""),
            link_type=data.get("link_type") or "other",
        )


@dataclass
class Release:
    tag_name: str
    name: str = ""
    description: str = ""
    author_name: str = ""
    commit_short_id: str = ""
    released_at: datetime | None = None
    web_url: str = ""
    links: list[ReleaseLink] = field(default_factory=list)
    sources: list[dict[str, Any]] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Release:
        assets = data.get("assets") or {}
        return cls(
            tag_name=data.get("tag_name", ""),
            name=data.get("name") or "",
            description=data.get("description") or "",
            author_name=(data.get("author") or {}).get("name", ""),
            commit_short_id=(data.get("commit") or {}).get("short_id", ""),
            released_at=parse_time(data.get("released_at")),
            web_url=(data.get("_links") or {}).get("self", ""),
            links=[ReleaseLink.from_dict(link) for link in assets.get("links") or []],
            sources=list(assets.get("sources") or []),
            raw=data,
        )


@dataclass
class Label:
    id: int
    name: str
    color: str = ""
    description: str = ""
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Label:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            color=data.get("color", ""),
            description=data.get("description") or "",
            raw=data,
        )


@dataclass
class Snippet:
    id: int
    title: str
    web_url: str
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snippet:
        return cls(id=data["id"], title=data.get("title", ""), web_url=data.get("web_url", ""), raw=data)


@dataclass
class Note:
    id: int
    body: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Note:
        return cls(id=data["id"], body=data.get("body", ""))


@dataclass
class Milestone:
    id: int
    iid: int | None
    title: str
    state: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Milestone:
        return cls(id=data["id"], iid=data.get("iid"), title=data.get("title", ""), state=data.get("state", ""))
