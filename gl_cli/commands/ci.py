"""Pipeline and job commands: ci list, get, run, run-trig, retry, trace, artifact."""

from __future__ import annotations

import argparse
import io
import os
import zipfile

import requests

from gl_cli import git
from gl_cli.commands import ciutils
from gl_cli.commands.base import Command, register_command
from gl_cli.commands.mrutils import find_mr_for_branch
from gl_cli.exceptions import CommandError, wrap_api_error
from gl_cli.models import Job, Pipeline
from gl_cli.output import format_bool, format_duration, format_time, time_ago


def _add_job_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("job", nargs="?", default=None, help="Job ID or name. Prompts for a job if omitted")
    parser.add_argument("-b", "--branch", default=None, help="Branch to search for the job (default: current branch)")
    parser.add_argument("-p", "--pipeline-id", type=int, default=None, help="Pipeline ID to search for the job")


@register_command("ci", "list")
class ListPipelinesCommand(Command):
    """List CI/CD pipelines"""

    json_output = True

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "-s",
            "--status",
            default=None,
            choices=(
                "created",
                "waiting_for_resource",
                "preparing",
                "pending",
                "running",
                "success",
                "failed",
                "canceled",
                "skipped",
                "manual",
                "scheduled",
            ),
            help="Get pipelines with this status",
        )
        parser.add_argument("-r", "--ref", default=None, help="Return only pipelines for this ref")
        parser.add_argument("--source", default=None, help="Return only pipelines triggered by this source")
        parser.add_argument(
            "-o",
            "--order-by",
            default="id",
            choices=("id", "status", "ref", "updated_at", "user_id"),
            help="Order pipelines by this field (default: id)",
        )
        parser.add_argument("--sort", default="desc", choices=("asc", "desc"), help="Sort direction (default: desc)")
        parser.add_argument("-p", "--page", type=int, default=1, help="Page number (default: 1)")
        parser.add_argument("-P", "--per-page", type=int, default=30, help="Number of items per page (default: 30)")

    def run(self) -> None:
        params = {
            "order_by": self.args.order_by,
            "sort": self.args.sort,
            "page": self.args.page,
            "per_page": self.args.per_page,
        }
        for key in ("status", "ref", "source"):
            value = getattr(self.args, key)
            if value:
                params[key] = value

        try:
            data = self.client.list_pipelines(self.repo.path, params=params)
        except requests.RequestException as e:
            raise wrap_api_error("list pipelines", e) from e

        if self.wants_json:
            self.print_json(data)
            return

        if not data:
            self.out.write(f"No pipelines available on {self.repo}.\n")
            return

        pipelines = [Pipeline.from_dict(p) for p in data]
        self.out.write(f"Showing {len(pipelines)} pipelines on {self.repo}. (Page {self.args.page})\n\n")
        self.out.write("State\tIID\tRef\tCreated\n")
        for p in pipelines:
            self.out.write(f"({p.status}) • #{p.id}\t(#{p.iid})\t{p.ref}\t({time_ago(p.created_at)})\n")
        self.out.write("\n")


@register_command("ci", "get")
class GetPipelineCommand(Command):
    """Get JSON or text of a single pipeline on a branch"""

    json_output = True

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("-b", "--branch", default=None, help="Check pipeline status for a branch (default: current)")
        parser.add_argument("-p", "--pipeline-id", type=int, default=None, help="Provide pipeline ID")
        parser.add_argument("-d", "--with-job-details", action="store_true", help="Show extended job information")
        parser.add_argument("--with-variables", action="store_true", help="Show variables in the pipeline")

    def run(self) -> None:
        pipeline_id = self.args.pipeline_id
        if pipeline_id is None:
            branch = self.resolve_branch(self.args.branch)
            pipeline_id = ciutils.find_latest_pipeline_id(self.client, self.repo, branch)

        try:
            data = self.client.get_pipeline(self.repo.path, pipeline_id)
        except requests.RequestException as e:
            raise wrap_api_error("get pipeline", e) from e
        pipeline = Pipeline.from_dict(data)

        try:
            jobs_data = self.client.list_pipeline_jobs(self.repo.path, pipeline_id)
        except requests.RequestException as e:
            raise wrap_api_error("list pipeline jobs", e) from e

        variables = None
        if self.args.with_variables:
            try:
                variables = self.client.get_pipeline_variables(pipeline.project_id or self.repo.path, pipeline_id)
            except requests.RequestException as e:
                raise wrap_api_error("get pipeline variables", e) from e

        if self.wants_json:
            payload = dict(data)
            payload["jobs"] = jobs_data
            if variables is not None:
                payload["variables"] = variables
            self.print_json(payload)
            return

        self._print_pipeline(pipeline)
        self._print_jobs([Job.from_dict(j) for j in jobs_data])
        if variables is not None:
            self._print_variables(variables)

    def _print_pipeline(self, p: Pipeline) -> None:
        rows = [
            ("id", p.id),
            ("status", p.status),
            ("source", p.source),
            ("ref", p.ref),
            ("sha", p.sha),
            ("tag", format_bool(p.tag)),
            ("yaml Errors", p.yaml_errors or "-"),
            ("user", p.username),
            ("created", format_time(p.created_at)),
            ("started", format_time(p.started_at)),
            ("updated", format_time(p.updated_at)),
        ]
        self.out.write("# Pipeline:\n")
        for key, value in rows:
            self.out.write(f"{key}:\t{value}\n")
        self.out.write("\n")

    def _print_jobs(self, jobs: list[Job]) -> None:
        self.out.write("# Jobs:\n")
        if self.args.with_job_details:
            if jobs:
                self.out.write("ID\tName\tStatus\tDuration\tFailure reason\n")
            for job in jobs:
                self.out.write(
                    f"{job.id}\t{job.name}\t{job.status}\t{format_duration(job.duration)}\t{job.failure_reason}\n"
                )
        else:
            for job in jobs:
                self.out.write(f"{job.name}:\t{job.status}\n")
        self.out.write("\n")

    def _print_variables(self, variables: list[dict]) -> None:
        self.out.write("# Variables:\n")
        if not variables:
            self.out.write("No variables found in pipeline.\n")
            return
        for variable in variables:
            self.out.write(f"{variable['key']}:\t{variable.get('value', '')}\n")
        self.out.write("\n")


@register_command("ci", "retry")
class RetryJobCommand(Command):
    """Retry a CI/CD job"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        _add_job_arguments(parser)

    def run(self) -> None:
        branch = self.resolve_branch(self.args.branch)
        job_id = ciutils.get_job_id(self.client, self.repo, self.args.job, self.args.pipeline_id, branch)
        try:
            job = Job.from_dict(self.client.retry_job(self.repo.path, job_id))
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to retry job {job_id}", e) from e
        self.out.write(f"Retried job (ID: {job.id}), status: {job.status}, ref: {job.ref}, weburl: {job.web_url}\n")


@register_command("ci", "trace")
class TraceJobCommand(Command):
    """Trace a CI/CD job log in real time"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        _add_job_arguments(parser)

    def run(self) -> None:
        branch = self.resolve_branch(self.args.branch)
        job_id = ciutils.get_job_id(self.client, self.repo, self.args.job, self.args.pipeline_id, branch)
        ciutils.trace_job(self.client, self.repo, job_id, self.out)


@register_command("ci", "artifact")
class DownloadArtifactCommand(Command):
    """Download all artifacts from the last pipeline"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("ref", help="Branch or tag the job ran on")
        parser.add_argument("job_name", help="Name of the job")
        parser.add_argument("-p", "--path", default="./", help="Path to download the artifact files (default: ./)")

    def run(self) -> None:
        try:
            content = self.client.download_job_artifacts(self.repo.path, self.args.ref, self.args.job_name)
        except requests.RequestException as e:
            raise wrap_api_error("failed to download artifacts", e) from e

        try:
            archive = zipfile.ZipFile(io.BytesIO(content))
        except zipfile.BadZipFile as e:
            raise CommandError(f"artifact is not a valid zip archive: {e}") from e

        with archive:
            extract_artifacts(archive, self.args.path)


def extract_artifacts(archive: zipfile.ZipFile, destination: str) -> None:
    """Extract ``archive`` into ``destination``, refusing unsafe entries."""
    os.makedirs(destination, exist_ok=True)
    for info in archive.infolist():
        name = info.filename
        if ".." in name or os.path.isabs(name):
            raise CommandError(f"invalid file path in artifact: {name}")
        target = os.path.join(destination, name)
        if os.path.islink(target):
            raise CommandError("file in artifact would overwrite a symbolic link- cannot extract")
        if info.is_dir():
            os.makedirs(target, exist_ok=True)
            continue
        os.makedirs(os.path.dirname(target) or destination, exist_ok=True)
        with archive.open(info) as src, open(target, "wb") as dst:
            dst.write(src.read())


def _add_pipeline_input_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-b", "--branch", default=None, help="Create pipeline on branch/ref (default: current branch)")
    parser.add_argument(
        "-i",
        "--input",
        action="append",
        default=[],
        help="Pipeline input as name:value, typed as int(1), bool(true), array(a,b) or string(x) (repeatable)",
    )


@register_command("ci", "run")
class RunPipelineCommand(Command):
    """Create or run a new CI/CD pipeline"""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        _add_pipeline_input_arguments(parser)
        parser.add_argument(
            "--variables", action="append", default=[], help="Pass variables to pipeline as KEY:VALUE (repeatable)"
        )
        parser.add_argument(
            "--variables-env",
            action="append",
            default=[],
            help="Pass environment variables to pipeline as KEY:VALUE (repeatable)",
        )
        parser.add_argument(
            "--variables-file",
            action="append",
            default=[],
            help="Pass file contents as a file variable, as KEY:FILENAME (repeatable)",
        )
        parser.add_argument(
            "--mr", action="store_true", help="Run merge request pipeline instead of branch pipeline"
        )

    def run(self) -> None:
        if self.args.mr:
            if self.args.variables or self.args.variables_env or self.args.variables_file or self.args.input:
                raise CommandError(
                    "--mr cannot be combined with --variables, --variables-env, --variables-file or --input"
                )
            self._run_merge_request_pipeline()
            return

        data: dict = {"ref": self.resolve_branch(self.args.branch)}
        variables = (
            ciutils.parse_variables(self.args.variables)
            + ciutils.parse_variables(self.args.variables_env)
            + ciutils.parse_file_variables(self.args.variables_file)
        )
        if variables:
            data["variables"] = variables
        inputs = ciutils.parse_inputs(self.args.input)
        if inputs:
            data["inputs"] = inputs

        try:
            pipeline = Pipeline.from_dict(self.client.create_pipeline(self.repo.path, data))
        except requests.RequestException as e:
            raise wrap_api_error("pipeline not created", e) from e
        self._print_created(pipeline)

    def _run_merge_request_pipeline(self) -> None:
        branch = self.args.branch or git.current_branch()
        if not branch:
            raise CommandError("could not determine the current branch; use --branch")
        iid = find_mr_for_branch(self.client, self.repo, branch, state="opened")
        try:
            pipeline = Pipeline.from_dict(self.client.create_merge_request_pipeline(self.repo.path, iid))
        except requests.RequestException as e:
            raise wrap_api_error(f"failed to create pipeline for merge request !{iid}", e) from e
        self._print_created(pipeline)

    def _print_created(self, pipeline: Pipeline) -> None:
        self.out.write(
            f"Created pipeline (id: {pipeline.id}), status: {pipeline.status}, "
            f"ref: {pipeline.ref}, weburl: {pipeline.web_url}\n"
        )


@register_command("ci", "run-trig")
class RunTriggerPipelineCommand(Command):
    """Run a CI/CD pipeline trigger"""

    needs_token = False

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        _add_pipeline_input_arguments(parser)
        parser.add_argument(
            "-t", "--token", default=None, help="Pipeline trigger token (default: CI_JOB_TOKEN environment variable)"
        )
        parser.add_argument(
            "--variables", action="append", default=[], help="Pass variables to pipeline as KEY:VALUE (repeatable)"
        )

    def run(self) -> None:
        token = self.args.token or os.environ.get("CI_JOB_TOKEN")
        if not token:
            raise CommandError("`--token` parameter can be omitted only if `CI_JOB_TOKEN` environment variable is set")

        data: dict = {"token": token, "ref": self.resolve_branch(self.args.branch)}
        variables = {}
        for item in ciutils.split_key_values(self.args.variables):
            key, value = ciutils.parse_key_value(item)
            variables[key] = value
        if variables:
            data["variables"] = variables
        inputs = ciutils.parse_inputs(self.args.input)
        if inputs:
            data["inputs"] = inputs

        try:
            pipeline = Pipeline.from_dict(self.client.run_pipeline_trigger(self.repo.path, data))
        except requests.RequestException as e:
            raise wrap_api_error("pipeline not created", e) from e
        self.out.write(
            f"Created pipeline (ID: {pipeline.id}), status: {pipeline.status}, "
            f"ref: {pipeline.ref}, weburl: {pipeline.web_url}\n"
        )
