"""Configuration loading and saving.

Config file location: ~/.config/insta-media/config.toml

Schema:
    [http]
    timeout = 10.0
    user_agent = "Mozilla/5.0 ..."

    [output]
    format = "text"   # text | json | csv

A missing file means defaults. INSTA_MEDIA_USER_AGENT overrides the default
user agent when the file does not set one.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import tomli_w

from .http import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT

CONFIG_DIR = Path.home() / ".config" / "insta-media"
CONFIG_FILE = CONFIG_DIR / "config.toml"

OUTPUT_FORMATS = ("text", "json", "csv")


def _default_user_agent() -> str:
    return os.environ.get("INSTA_MEDIA_USER_AGENT", DEFAULT_USER_AGENT)


@dataclass
class AppConfig:
    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = field(default_factory=_default_user_agent)
    output_format: str = "text"


def load_config(config_path: Path = CONFIG_FILE) -> AppConfig:
    """Load and validate config from TOML file, or defaults if absent."""
    if not config_path.exists():
        return AppConfig()

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    http_data = data.get("http", {})
    output_data = data.get("output", {})

    try:
        timeout = float(http_data.get("timeout", DEFAULT_TIMEOUT))
    except (TypeError, ValueError):
        raise ValueError("http.timeout must be a number") from None
    if timeout <= 0:
        raise ValueError("http.timeout must be positive")

    output_format = output_data.get("format", "text")
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(
            f"output.format must be one of {', '.join(OUTPUT_FORMATS)}"
        )

    return AppConfig(
        timeout=timeout,
        user_agent=http_data.get("user_agent") or _default_user_agent(),
        output_format=output_format,
    )


def save_config(config: AppConfig, config_path: Path = CONFIG_FILE) -> None:
    """Write config to TOML file."""
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "http": {
            "timeout": config.timeout,
            "user_agent": config.user_agent,
        },
        "output": {
            "format": config.output_format,
        },
    }

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)


def config_exists(config_path: Path = CONFIG_FILE) -> bool:
    """Check if config file exists."""
    return config_path.exists()
