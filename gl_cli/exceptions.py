"""Exception types for gl-cli.

Commands raise :class:`CommandError` for every user-visible failure; the CLI
entry point prints the message and exits non-zero. API failures are turned
into a ``CommandError`` with a short context prefix via :func:`wrap_api_error`.
"""

from __future__ import annotations

import requests


class GlCliError(Exception):
    """Base exception for gl-cli."""


class CommandError(GlCliError):
    """A command failed; the message is shown to the user as-is."""


def api_error_message(exc: requests.RequestException) -> str:
    """Render an API failure the way GitLab reports it, e.g. ``404 Not Found``."""
    response = getattr(exc, "response", None)
    if response is None:
        return str(exc)

    status = response.status_code
    message = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if isinstance(message, dict):
            # Validation errors: {"message": {"name": ["has already been taken"]}}
            message = "; ".join(f"{k} {', '.join(map(str, v))}" for k, v in message.items())

    if message:
        message = str(message)
        return message if message.startswith(str(status)) else f"{status} {message}"
    return f"{status} {response.reason or ''}".rstrip()


def wrap_api_error(context: str, exc: requests.RequestException) -> CommandError:
    """Build a ``CommandError`` prefixed with what was being attempted."""
    return CommandError(f"{context}: {api_error_message(exc)}")


def is_not_found(exc: requests.HTTPError) -> bool:
    return exc.response is not None and exc.response.status_code == 404
