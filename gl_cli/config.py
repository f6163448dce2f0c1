"""Configuration file handling for gl-cli.

Settings live in ``config.yml`` inside the config directory:

* ``$GLCLI_CONFIG_DIR`` when set,
* else ``$XDG_CONFIG_HOME/gl-cli``,
* else ``~/.config/gl-cli``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from gl_cli.exceptions import GlCliError

CONFIG_FILE_NAME = "config.yml"

DEFAULTS: dict[str, Any] = {
    "git_protocol": "ssh",
    "check_update": True,
}

logger = logging.getLogger("gl-cli")


def config_dir() -> Path:
    env_dir = os.environ.get("GLCLI_CONFIG_DIR")
    if env_dir:
        return Path(env_dir)
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "gl-cli"
    return Path.home() / ".config" / "gl-cli"


class Config:
    """A flat key/value view over the YAML config file."""

    def __init__(self, path: Path | None = None, data: dict[str, Any] | None = None):
        self.path = path or config_dir() / CONFIG_FILE_NAME
        self.data: dict[str, Any] = dict(data or {})

    @classmethod
    def load(cls, path: Path | None = None) -> Config:
        config = cls(path)
        if not config.path.exists():
            logger.debug(f"No config file at {config.path}")
            return config
        try:
            with open(config.path, encoding="utf-8") as fh:
                loaded = yaml.safe_load(fh) or {}
        except yaml.YAMLError as e:
            raise GlCliError(f"invalid config file {config.path}: {e}") from e
        except OSError as e:
            raise GlCliError(f"could not read config file {config.path}: {e}") from e
        if not isinstance(loaded, dict):
            raise GlCliError(f"invalid config file {config.path}: expected a mapping")
        config.data = loaded
        return config

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.data and self.data[key] is not None:
            return self.data[key]
        if default is not None:
            return default
        return DEFAULTS.get(key)

    def get_bool(self, key: str) -> bool:
        value = self.get(key)
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "1", "on")
        return bool(value)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def write(self) -> None:
        """Persist the config, creating the directory and a 0600 file if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            yaml.safe_dump(self.data, fh, default_flow_style=False, sort_keys=True)
        logger.debug(f"Wrote config file {self.path}")
