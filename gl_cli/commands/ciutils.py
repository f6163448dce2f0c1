"""Pipeline and job resolution shared by the ci commands."""

from __future__ import annotations

import logging
import time
from typing import IO

import requests

from gl_cli import prompt
from gl_cli.client import GitLabClient
from gl_cli.exceptions import CommandError, wrap_api_error
from gl_cli.models import RUNNING_JOB_STATUSES, Job, Repo

logger = logging.getLogger("gl-cli")

TRACE_POLL_INTERVAL = 3  # seconds


def find_latest_pipeline_id(client: GitLabClient, repo: Repo, branch: str) -> int:
    """Latest pipeline of ``branch``: the commit's last pipeline, else its open MR's head pipeline."""
    try:
        commit = client.get_commit(repo.path, branch)
    except requests.RequestException as e:
        raise wrap_api_error(f"get commit for branch {branch}", e) from e
    last_pipeline = commit.get("last_pipeline")
    if last_pipeline:
        return last_pipeline["id"]

    # Merged results pipelines are attached to the MR, not to the branch commit
    logger.debug(f"No commit pipeline on {branch}, looking for a merge request pipeline")
    try:
        mrs = client.list_merge_requests(
            repo.path,
            params={"source_branch": branch, "state": "opened", "order_by": "updated_at", "per_page": 1},
        )
        if mrs:
            mr = client.get_merge_request(repo.path, mrs[0]["iid"])
            head_pipeline = mr.get("head_pipeline") or {}
            if head_pipeline.get("id"):
                return head_pipeline["id"]
    except requests.RequestException as e:
        raise wrap_api_error(f"get merge request pipeline for branch {branch}", e) from e
    raise CommandError(f"no pipeline found for branch {branch}")


def get_job_id(
    client: GitLabClient,
    repo: Repo,
    job: str | None,
    pipeline_id: int | None = None,
    branch: str = "main",
) -> int:
    """Resolve a job argument to a job ID.

    A numeric argument is used as is. A job name is looked up in the given
    pipeline, or the latest pipeline of ``branch``; pages are fetched only
    until the first match. Without an argument the user picks a job from
    the pipeline interactively.
    """
    if job and job.isdigit():
        return int(job)

    if pipeline_id is None:
        try:
            pipeline_id = client.get_latest_pipeline(repo.path, ref=branch)["id"]
        except requests.RequestException as e:
            raise wrap_api_error("get pipeline: get last pipeline", e) from e

    if job:
        try:
            for page in client.iter_pipeline_jobs(repo.path, pipeline_id):
                for data in page:
                    if data.get("name") == job:
                        return data["id"]
        except requests.RequestException as e:
            raise wrap_api_error("list pipeline jobs", e) from e
        raise CommandError(f"pipeline job not found: {job}")

    try:
        jobs = [Job.from_dict(data) for data in client.list_pipeline_jobs(repo.path, pipeline_id)]
    except requests.RequestException as e:
        raise wrap_api_error("list pipeline jobs", e) from e
    if not jobs:
        raise CommandError(f"no jobs found in pipeline {pipeline_id}")
    if not prompt.is_interactive():
        raise CommandError("job name or ID required when not running interactively")
    return prompt.select(
        "Select pipeline job to trace:",
        [(f"{j.name} ({j.id}) - {j.status}", j.id) for j in jobs],
    )


def trace_job(
    client: GitLabClient,
    repo: Repo,
    job_id: int,
    out: IO[str],
    poll_interval: float = TRACE_POLL_INTERVAL,
) -> None:
    """Print a job's log, following it while the job is still running."""
    out.write("\nGetting job trace...\n")
    try:
        job = Job.from_dict(client.get_job(repo.path, job_id))
    except requests.RequestException as e:
        raise wrap_api_error("failed to find job", e) from e
    out.write(f"Showing logs for {job.name} job #{job.id}.\n")

    offset = 0
    while True:
        try:
            trace = client.get_job_trace(repo.path, job_id)
        except requests.RequestException as e:
            raise wrap_api_error("failed to find job", e) from e
        if len(trace) > offset:
            out.write(trace[offset:])
            out.flush()
            offset = len(trace)
        if job.status not in RUNNING_JOB_STATUSES:
            return
        time.sleep(poll_interval)
        try:
            job = Job.from_dict(client.get_job(repo.path, job_id))
        except requests.RequestException as e:
            raise wrap_api_error("failed to find job", e) from e


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    raise ValueError(f"invalid boolean {value!r}")


# Typed pipeline inputs: name:int(3), name:bool(true), name:array(a,b)
INPUT_TYPES = {
    "string": str,
    "int": int,
    "float": float,
    "bool": _parse_bool,
    "array": lambda v: [item.strip() for item in v.split(",")] if v else [],
}


def split_key_values(values: list[str] | None) -> list[str]:
    """Flatten repeated flags that may also hold comma separated KEY:VALUE pairs."""
    items = []
    for value in values or []:
        items.extend(part for part in value.split(",") if part)
    return items


def parse_key_value(value: str, what: str = "variable") -> tuple[str, str]:
    key, sep, val = value.partition(":")
    if not sep or not key:
        raise CommandError(f'invalid {what} "{value}": expected KEY:VALUE')
    return key, val


def parse_variables(values: list[str] | None, variable_type: str = "env_var") -> list[dict]:
    """Build pipeline variables for ``POST /pipeline`` from KEY:VALUE flags."""
    variables = []
    for item in split_key_values(values):
        key, val = parse_key_value(item)
        variables.append({"key": key, "value": val, "variable_type": variable_type})
    return variables


def parse_file_variables(values: list[str] | None) -> list[dict]:
    """KEY:PATH flags become ``file`` variables holding the file's content."""
    variables = []
    for item in split_key_values(values):
        key, path = parse_key_value(item, "file variable")
        try:
            with open(path, encoding="utf-8") as fh:
                content = fh.read()
        except OSError as e:
            raise CommandError(f"failed to read variable file {path}: {e}") from e
        variables.append({"key": key, "value": content, "variable_type": "file"})
    return variables


def parse_inputs(values: list[str] | None) -> dict:
    """Parse ``-i name:value`` flags. Untyped values are strings."""
    inputs = {}
    for item in values or []:
        name, raw = parse_key_value(item, "input")
        value: object = raw
        if raw.endswith(")") and "(" in raw:
            type_name, _, inner = raw[:-1].partition("(")
            converter = INPUT_TYPES.get(type_name)
            if converter is not None:
                try:
                    value = converter(inner)
                except ValueError as e:
                    raise CommandError(f'invalid input "{item}": {e}') from e
        inputs[name] = value
    return inputs
