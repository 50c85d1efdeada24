"""Upstream API key loading.

Keys are read from the environment with this priority:
  1. Environment variables (highest, already set in shell)
  2. ~/.mamacare/keys.env (user-level keys)
  3. .env in current directory (project-level)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# Directory for user-level mamacare configuration
MAMACARE_HOME = Path.home() / ".mamacare"
KEYS_FILE = MAMACARE_HOME / "keys.env"


def load_keys_env() -> None:
    """Load API keys from ~/.mamacare/keys.env and .env into os.environ.

    Existing env vars are NOT overwritten, and a file loaded earlier
    wins over one loaded later.
    """
    for env_file in (KEYS_FILE, Path.cwd() / ".env"):
        if env_file.is_file():
            _load_env_file(env_file)


def _load_env_file(path: Path) -> None:
    """Parse a simple KEY=VALUE .env file and set vars that aren't already set."""
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and not os.environ.get(key):
                os.environ[key] = value
                logger.debug("Loaded %s from %s", key, path)
    except OSError:
        logger.debug("Could not read %s", path)


def get_api_key(env_var: str) -> str:
    """Return the configured key for ``env_var``, or an empty string."""
    load_keys_env()
    return os.environ.get(env_var, "")
