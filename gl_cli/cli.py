"""CLI entry point for gl-cli."""

from __future__ import annotations

import argparse
import os
import sys

import requests

# Ensure all commands are registered by importing the commands package
import gl_cli.commands  # noqa: F401
from gl_cli import __version__
from gl_cli.client import GitLabClient
from gl_cli.commands import get_command_registry
from gl_cli.commands.update import (
    check_for_update,
    check_last_update,
    make_update_client,
    print_update_error,
    should_skip_update,
)
from gl_cli.config import Config
from gl_cli.exceptions import GlCliError, api_error_message
from gl_cli.logging_utils import setup_logging
from gl_cli.models import DEFAULT_GITLAB_URL, DEFAULT_MAX_RETRIES

GROUP_HELP = {
    "ci": "Work with GitLab CI/CD pipelines and jobs",
    "mr": "Create, view, and manage merge requests",
    "issue": "Work with GitLab issues",
    "incident": "Work with GitLab incidents",
    "release": "Manage GitLab releases",
    "label": "Manage labels on remote",
    "snippet": "Create, view and manage snippets",
    "update": "Check for gl-cli updates",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gl-cli",
        description="Work with GitLab pipelines, merge requests, releases, labels and snippets from the command line.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
    GITLAB_TOKEN       - GitLab Personal Access Token
    GITLAB_URL         - GitLab instance URL (default: https://gitlab.com)
    GITLAB_REPO        - Default repository when --repo is not given
    GLCLI_CONFIG_DIR   - Directory holding config.yml
    GLCLI_CHECK_UPDATE - Set to true to check for updates after every command

Examples:
    # Show the latest pipeline of the current branch
    gl-cli ci get

    # Run a pipeline on the current branch with a variable
    gl-cli ci run --variables DEPLOY:staging

    # Follow the log of the "lint" job
    gl-cli ci trace lint

    # Merge the merge request of the current branch once its pipeline passes
    gl-cli mr merge --auto-merge

    # Create a release with an asset
    gl-cli release create v1.2.0 dist/app.tar.gz#Binary#package --notes "Bug fixes"

    # JSON output for machine parsing
    gl-cli ci list -F json
""",
    )
    parser.add_argument("--version", action="version", version=f"gl-cli {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-json", action="store_true", help="Emit log records as JSON lines (to stderr)")
    parser.add_argument(
        "--gitlab-url", default=None, help="GitLab instance URL (default: from GITLAB_URL env, config or https://gitlab.com)"
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help=f"Maximum retry attempts for transient errors (default: {DEFAULT_MAX_RETRIES})",
    )

    groups = parser.add_subparsers(dest="group", required=True, help="Command group")

    registry = get_command_registry()
    for group, commands in sorted(registry.items()):
        if "" in commands:
            cmd_cls = commands[""]
            sub = groups.add_parser(group, help=cmd_cls.__doc__)
            sub.set_defaults(command="")
            cmd_cls.configure_parser(sub)
            continue

        group_parser = groups.add_parser(group, help=GROUP_HELP.get(group))
        subcommands = group_parser.add_subparsers(dest="command", required=True, help="Command to run")
        for name, cmd_cls in sorted(commands.items()):
            sub = subcommands.add_parser(name, help=cmd_cls.__doc__)
            cmd_cls.configure_parser(sub)

    return parser


def resolve_gitlab_url(args: argparse.Namespace, config: Config) -> str:
    url = args.gitlab_url or os.environ.get("GITLAB_URL") or config.get("host") or DEFAULT_GITLAB_URL
    if "://" not in url:
        url = f"https://{url}"
    return url.rstrip("/")


def run_update_check(group: str, config: Config) -> None:
    """Check for a newer gl-cli after a command, at most once a day."""
    if should_skip_update(group) or not config.get_bool("check_update"):
        return
    try:
        if check_last_update(config):
            check_for_update(make_update_client(), __version__, sys.stderr)
    except (GlCliError, ValueError, OSError, requests.RequestException) as e:
        print_update_error(e, sys.stderr)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging
    logger = setup_logging(json_mode=args.log_json, verbose=args.verbose)

    try:
        config = Config.load()
    except GlCliError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    registry = get_command_registry()
    cmd_cls = registry[args.group][args.command]

    # Get token
    token = os.environ.get("GITLAB_TOKEN") or config.get("token")
    if not token and cmd_cls.needs_token:
        print("ERROR: GITLAB_TOKEN environment variable is not set and no token is configured.", file=sys.stderr)
        return 1

    # Build client
    gitlab_url = resolve_gitlab_url(args, config)
    logger.debug(f"Using GitLab instance {gitlab_url}")
    client = GitLabClient(
        base_url=gitlab_url, token=token, max_retries=args.max_retries, user_agent=f"gl-cli/{__version__}"
    )

    command = cmd_cls(client=client, args=args, config=config)

    exit_code = 0
    try:
        command.run()
    except GlCliError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        exit_code = 1
    except requests.HTTPError as e:
        logger.debug(f"Unhandled API error: {e}")
        print(f"ERROR: {api_error_message(e)}", file=sys.stderr)
        exit_code = 1
    except requests.ConnectionError as e:
        print(f"ERROR: error connecting to {client.host}: {e}", file=sys.stderr)
        exit_code = 1
    except requests.RequestException as e:
        print(f"ERROR: {api_error_message(e)}", file=sys.stderr)
        exit_code = 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    run_update_check(args.group, config)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
