"""GitLab API client with pagination and retry support."""

from __future__ import annotations

import logging
import os
import time
import urllib.parse
from collections.abc import Iterator
from typing import IO, Any

import requests

from gl_cli.models import (
    API_V4,
    DEFAULT_MAX_RETRIES,
    PER_PAGE,
    RETRY_BACKOFF_FACTOR,
    RETRYABLE_STATUS_CODES,
)

# Methods that are safe to send more than once
IDEMPOTENT_METHODS = {"GET", "HEAD"}


def _pid(project: str | int) -> str:
    """Encode a project path (or pass through a numeric ID) for use in a URL."""
    if isinstance(project, int):
        return str(project)
    return urllib.parse.quote(str(project), safe="")


def _quote(value: str) -> str:
    return urllib.parse.quote(value, safe="")


class GitLabSession(requests.Session):
    """Session that drops the token when a redirect leaves the original host."""

    def rebuild_auth(self, prepared_request, response):
        super().rebuild_auth(prepared_request, response)
        if "PRIVATE-TOKEN" in prepared_request.headers and self.should_strip_auth(
            response.request.url, prepared_request.url
        ):
            del prepared_request.headers["PRIVATE-TOKEN"]


class GitLabClient:
    """Thin wrapper around GitLab REST API v4 with pagination support and retry logic."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = "gl-cli",
    ):
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}{API_V4}"
        self.host = urllib.parse.urlparse(self.base_url).hostname
        self.session = GitLabSession()
        self.session.headers.update({"User-Agent": user_agent})
        if token:
            self.session.headers["PRIVATE-TOKEN"] = token
        self.max_retries = max_retries
        self.logger = logging.getLogger("gl-cli")

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """Make an HTTP request, retrying idempotent requests on transient failures."""
        url = endpoint if endpoint.startswith(("http://", "https://")) else f"{self.api_url}{endpoint}"
        method = method.upper()
        retries = self.max_retries if method in IDEMPOTENT_METHODS else 0
        last_exception: Exception | None = None

        for attempt in range(retries + 1):
            try:
                self.logger.debug(
                    f"{method} {url} {kwargs.get('params') or ''} {kwargs.get('json') or ''} "
                    f"(attempt {attempt + 1}/{retries + 1})"
                )
                resp = self.session.request(method, url, **kwargs)

                # Retry on rate limit or server errors
                if resp.status_code in RETRYABLE_STATUS_CODES and attempt < retries:
                    wait_time = self._calculate_backoff(resp, attempt)
                    resp.close()
                    self.logger.warning(f"Retryable error {resp.status_code}, waiting {wait_time:.1f}s before retry")
                    time.sleep(wait_time)
                    continue

                if resp.status_code >= 400:
                    self.logger.debug(f"API error {resp.status_code}: {resp.text[:500]}")
                resp.raise_for_status()
                return resp

            except requests.exceptions.ConnectionError as e:
                last_exception = e
                if attempt < retries:
                    wait_time = RETRY_BACKOFF_FACTOR * (2**attempt)
                    self.logger.warning(f"Connection error, retrying in {wait_time:.1f}s: {e}")
                    time.sleep(wait_time)
                    continue
                raise

        # Should not reach here, but safety net
        if last_exception:
            raise last_exception
        raise RuntimeError("Unexpected retry loop exit")

    def _calculate_backoff(self, resp: requests.Response, attempt: int) -> float:
        """Calculate backoff time, respecting Retry-After header for 429s."""
        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After")
            if retry_after:
                try:
                    return float(retry_after)
                except ValueError:
                    pass  # Fall through to exponential backoff
        return RETRY_BACKOFF_FACTOR * (2**attempt)

    def get(self, endpoint: str, params: dict | None = None) -> Any:
        return self._request("GET", endpoint, params=params).json()

    def post(self, endpoint: str, data: dict | None = None) -> Any:
        return self._request("POST", endpoint, json=data).json()

    def put(self, endpoint: str, data: dict | None = None) -> Any:
        return self._request("PUT", endpoint, json=data).json()

    def delete(self, endpoint: str, params: dict | None = None) -> requests.Response:
        return self._request("DELETE", endpoint, params=params)

    def iter_pages(self, endpoint: str, params: dict | None = None) -> Iterator[list[dict]]:
        """Yield a paginated endpoint one page at a time."""
        params = dict(params or {})
        params.setdefault("per_page", PER_PAGE)
        page = int(params.get("page", 1))
        while True:
            params["page"] = page
            resp = self._request("GET", endpoint, params=params)
            data = resp.json()
            if not data:
                return
            yield data
            # GitLab omits x-total-pages for very large collections; x-next-page is always sent
            next_page = resp.headers.get("x-next-page")
            total_pages = resp.headers.get("x-total-pages")
            if next_page is not None:
                if not next_page:
                    return
                page = int(next_page)
            elif total_pages is not None:
                if page >= int(total_pages):
                    return
                page += 1
            else:
                return

    def paginate(self, endpoint: str, params: dict | None = None) -> list[dict]:
        """Fetch all pages of a paginated endpoint."""
        results = []
        for data in self.iter_pages(endpoint, params):
            results.extend(data)
        return results

    def get_page(self, endpoint: str, params: dict | None = None) -> tuple[list[dict], int]:
        """Fetch a single page and the collection total reported by the server."""
        resp = self._request("GET", endpoint, params=params)
        data = resp.json()
        total = resp.headers.get("x-total")
        return data, int(total) if total else len(data)

    def download(self, url: str, fh: IO[bytes], chunk_size: int = 64 * 1024) -> int:
        """Stream ``url`` into ``fh``. The token is only sent to this client's host."""
        headers = {}
        if urllib.parse.urlparse(url).hostname != self.host:
            # Asset hosted elsewhere
            headers["PRIVATE-TOKEN"] = None
        written = 0
        with self._request("GET", url, headers=headers, stream=True) as resp:
            for chunk in resp.iter_content(chunk_size=chunk_size):
                fh.write(chunk)
                written += len(chunk)
        return written

    # -- Projects, commits, tags --

    def get_project(self, project: str | int) -> dict:
        return self.get(f"/projects/{_pid(project)}")

    def get_default_branch(self, project: str | int) -> str | None:
        return self.get_project(project).get("default_branch") or None

    def get_commit(self, project: str | int, sha: str) -> dict:
        return self.get(f"/projects/{_pid(project)}/repository/commits/{_quote(sha)}")

    def get_tag(self, project: str | int, tag: str) -> dict:
        return self.get(f"/projects/{_pid(project)}/repository/tags/{_quote(tag)}")

    def delete_tag(self, project: str | int, tag: str) -> None:
        self.delete(f"/projects/{_pid(project)}/repository/tags/{_quote(tag)}")

    # -- Pipelines and jobs --

    def list_pipelines(self, project: str | int, params: dict | None = None) -> list[dict]:
        return self.get(f"/projects/{_pid(project)}/pipelines", params=params)

    def create_pipeline(self, project: str | int, data: dict) -> dict:
        return self.post(f"/projects/{_pid(project)}/pipeline", data=data)

    def run_pipeline_trigger(self, project: str | int, data: dict) -> dict:
        return self.post(f"/projects/{_pid(project)}/trigger/pipeline", data=data)

    def get_pipeline(self, project: str | int, pipeline_id: int) -> dict:
        return self.get(f"/projects/{_pid(project)}/pipelines/{pipeline_id}")

    def get_latest_pipeline(self, project: str | int, ref: str | None = None) -> dict:
        params = {"ref": ref} if ref else None
        return self.get(f"/projects/{_pid(project)}/pipelines/latest", params=params)

    def get_pipeline_variables(self, project: str | int, pipeline_id: int) -> list[dict]:
        return self.get(f"/projects/{_pid(project)}/pipelines/{pipeline_id}/variables")

    def iter_pipeline_jobs(self, project: str | int, pipeline_id: int) -> Iterator[list[dict]]:
        return self.iter_pages(f"/projects/{_pid(project)}/pipelines/{pipeline_id}/jobs")

    def list_pipeline_jobs(self, project: str | int, pipeline_id: int) -> list[dict]:
        return self.paginate(f"/projects/{_pid(project)}/pipelines/{pipeline_id}/jobs")

    def get_job(self, project: str | int, job_id: int) -> dict:
        return self.get(f"/projects/{_pid(project)}/jobs/{job_id}")

    def retry_job(self, project: str | int, job_id: int) -> dict:
        return self.post(f"/projects/{_pid(project)}/jobs/{job_id}/retry")

    def get_job_trace(self, project: str | int, job_id: int) -> str:
        resp = self._request("GET", f"/projects/{_pid(project)}/jobs/{job_id}/trace")
        return resp.text

    def download_job_artifacts(self, project: str | int, ref: str, job_name: str) -> bytes:
        resp = self._request(
            "GET",
            f"/projects/{_pid(project)}/jobs/artifacts/{_quote(ref)}/download",
            params={"job": job_name},
        )
        return resp.content

    # -- Merge requests --

    def list_merge_requests(self, project: str | int, params: dict | None = None) -> list[dict]:
        return self.get(f"/projects/{_pid(project)}/merge_requests", params=params)

    def get_merge_request(self, project: str | int, iid: int, params: dict | None = None) -> dict:
        return self.get(f"/projects/{_pid(project)}/merge_requests/{iid}", params=params)

    def create_merge_request(self, project: str | int, data: dict) -> dict:
        return self.post(f"/projects/{_pid(project)}/merge_requests", data=data)

    def update_merge_request(self, project: str | int, iid: int, data: dict) -> dict:
        return self.put(f"/projects/{_pid(project)}/merge_requests/{iid}", data=data)

    def accept_merge_request(self, project: str | int, iid: int, data: dict | None = None) -> dict:
        return self.put(f"/projects/{_pid(project)}/merge_requests/{iid}/merge", data=data or {})

    def rebase_merge_request(self, project: str | int, iid: int, skip_ci: bool = False) -> dict:
        data = {"skip_ci": True} if skip_ci else {}
        return self.put(f"/projects/{_pid(project)}/merge_requests/{iid}/rebase", data=data)

    def create_merge_request_todo(self, project: str | int, iid: int) -> bool:
        """Add the MR to the to-do list. Returns False if it was already there (304)."""
        resp = self._request("POST", f"/projects/{_pid(project)}/merge_requests/{iid}/todo")
        return resp.status_code != 304

    def list_merge_request_notes(self, project: str | int, iid: int, params: dict | None = None) -> list[dict]:
        return self.paginate(f"/projects/{_pid(project)}/merge_requests/{iid}/notes", params=params)

    def get_latest_merge_request_note(self, project: str | int, iid: int) -> dict | None:
        notes = self.get(
            f"/projects/{_pid(project)}/merge_requests/{iid}/notes",
            params={"order_by": "created_at", "sort": "desc", "per_page": 1},
        )
        return notes[0] if notes else None

    def create_merge_request_note(self, project: str | int, iid: int, body: str) -> Any:
        return self.post(f"/projects/{_pid(project)}/merge_requests/{iid}/notes", data={"body": body})

    def create_merge_request_pipeline(self, project: str | int, iid: int) -> dict:
        return self.post(f"/projects/{_pid(project)}/merge_requests/{iid}/pipelines")

    def list_merge_request_diff_versions(self, project: str | int, iid: int) -> list[dict]:
        return self.get(f"/projects/{_pid(project)}/merge_requests/{iid}/versions")

    def get_merge_request_diff_version(self, project: str | int, iid: int, version_id: int) -> dict:
        return self.get(f"/projects/{_pid(project)}/merge_requests/{iid}/versions/{version_id}")

    def get_merge_request_raw_diffs(self, project: str | int, iid: int) -> str:
        resp = self._request("GET", f"/projects/{_pid(project)}/merge_requests/{iid}/raw_diffs")
        return resp.text

    def get_approval_state(self, project: str | int, iid: int) -> dict:
        return self.get(f"/projects/{_pid(project)}/merge_requests/{iid}/approval_state")

    def get_issues_closed_on_merge(self, project: str | int, iid: int) -> list[dict]:
        return self.paginate(f"/projects/{_pid(project)}/merge_requests/{iid}/closes_issues")

    # -- Issues --

    def get_issue(self, project: str | int, iid: int) -> dict:
        return self.get(f"/projects/{_pid(project)}/issues/{iid}")

    def list_issue_notes(self, project: str | int, iid: int, params: dict | None = None) -> list[dict]:
        return self.paginate(f"/projects/{_pid(project)}/issues/{iid}/notes", params=params)

    def get_latest_issue_note(self, project: str | int, iid: int) -> dict | None:
        notes = self.get(
            f"/projects/{_pid(project)}/issues/{iid}/notes",
            params={"order_by": "created_at", "sort": "desc", "per_page": 1},
        )
        return notes[0] if notes else None

    def create_issue_note(self, project: str | int, iid: int, body: str) -> Any:
        return self.post(f"/projects/{_pid(project)}/issues/{iid}/notes", data={"body": body})

    # -- Users --

    def find_user(self, username: str) -> dict | None:
        users = self.get("/users", params={"username": username})
        return users[0] if users else None

    # -- Releases --

    def get_release(self, project: str | int, tag: str) -> dict:
        return self.get(f"/projects/{_pid(project)}/releases/{_quote(tag)}")

    def list_releases(self, project: str | int, params: dict | None = None) -> list[dict]:
        return self.get(f"/projects/{_pid(project)}/releases", params=params)

    def create_release(self, project: str | int, data: dict) -> dict:
        return self.post(f"/projects/{_pid(project)}/releases", data=data)

    def update_release(self, project: str | int, tag: str, data: dict) -> dict:
        return self.put(f"/projects/{_pid(project)}/releases/{_quote(tag)}", data=data)

    def delete_release(self, project: str | int, tag: str) -> None:
        self.delete(f"/projects/{_pid(project)}/releases/{_quote(tag)}")

    def create_release_link(self, project: str | int, tag: str, data: dict) -> dict:
        return self.post(f"/projects/{_pid(project)}/releases/{_quote(tag)}/assets/links", data=data)

    def upload_project_file(self, project: str | int, path: str, filename: str | None = None) -> dict:
        """Upload a local file to the project's markdown uploads."""
        filename = filename or os.path.basename(path)
        with open(path, "rb") as fh:
            resp = self._request("POST", f"/projects/{_pid(project)}/uploads", files={"file": (filename, fh)})
        return resp.json()

    # -- Milestones --

    def list_milestones(self, project: str | int, params: dict | None = None) -> list[dict]:
        return self.paginate(f"/projects/{_pid(project)}/milestones", params=params)

    def update_milestone(self, project: str | int, milestone_id: int, data: dict) -> dict:
        return self.put(f"/projects/{_pid(project)}/milestones/{milestone_id}", data=data)

    # -- Labels --

    def create_label(self, project: str | int, data: dict) -> dict:
        return self.post(f"/projects/{_pid(project)}/labels", data=data)

    def delete_label(self, project: str | int, name: str) -> None:
        self.delete(f"/projects/{_pid(project)}/labels/{_quote(name)}")

    def list_labels(self, project: str | int, params: dict | None = None) -> tuple[list[dict], int]:
        return self.get_page(f"/projects/{_pid(project)}/labels", params=params)

    def list_group_labels(self, group: str | int, params: dict | None = None) -> tuple[list[dict], int]:
        return self.get_page(f"/groups/{_pid(group)}/labels", params=params)

    # -- Snippets --

    def create_snippet(self, data: dict) -> dict:
        return self.post("/snippets", data=data)

    def create_project_snippet(self, project: str | int, data: dict) -> dict:
        return self.post(f"/projects/{_pid(project)}/snippets", data=data)
