from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    config_path: str = os.getenv("PREVIEWS_CONFIG_PATH", "config.toml")
    config_required: bool = _env_bool("PREVIEWS_CONFIG_REQUIRED", False)
    db_path: str = os.getenv("PREVIEWS_DB_PATH", "previews.db")

    # Docker backend
    network_suffix: str = os.getenv("PREVIEWS_NETWORK_SUFFIX", "-net")
    pull_images: bool = _env_bool("PREVIEWS_PULL_IMAGES", True)
    stop_timeout_s: int = _env_int("PREVIEWS_STOP_TIMEOUT_S", 10)


settings = Settings()
