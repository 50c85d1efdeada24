"""TOML configuration loader.

Loads upstream, proxy, client, and persistence settings from
defaults.toml (or the file named by MAMACARE_CONFIG) into AppConfig.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from mamacare.schemas.config import (
    AppConfig,
    ClientConfig,
    GibberishConfig,
    PersistenceConfig,
    ProxyConfig,
    UpstreamConfig,
)

# Default config directory relative to the mamacare package
CONFIG_DIR = Path(__file__).parent / "config"

CONFIG_ENV = "MAMACARE_CONFIG"


def default_config_path() -> Path:
    """Return the config file in effect: MAMACARE_CONFIG or the packaged defaults."""
    explicit = os.environ.get(CONFIG_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return CONFIG_DIR / "defaults.toml"


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the application configuration from a TOML file.

    Args:
        config_path: Path to a TOML file. Defaults to default_config_path().

    Returns:
        AppConfig populated from the file; missing optional sections
        fall back to model defaults.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the [upstream] section is missing.
    """
    path = config_path or default_config_path()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    upstream_section = raw.get("upstream")
    if not upstream_section or not isinstance(upstream_section, dict):
        raise ValueError(f"No [upstream] section found in {path}")

    proxy_section = dict(raw.get("proxy", {}))
    gibberish_data = proxy_section.pop("gibberish", {})

    return AppConfig(
        upstream=UpstreamConfig(**upstream_section),
        proxy=ProxyConfig(**proxy_section, gibberish=GibberishConfig(**gibberish_data)),
        client=ClientConfig(**raw.get("client", {})),
        persistence=PersistenceConfig(**raw.get("persistence", {})),
    )
