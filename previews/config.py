"""Server configuration: container defaults and companion templates.

Example ``config.toml``::

    [containers]
    memory_limit = "512m"

    [companions.openid]
    type = "application"
    service_name = "openid"
    image = "quay.io/keycloak/keycloak:24.0"

    [companions.openid.env]
    KC_HOSTNAME_PATH = "/{{ application.name }}/openid"

Companions are kept in the order they appear in the file.
"""
from __future__ import annotations

import os
import tomllib
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import ContainerType, ServiceConfig


class ConfigError(RuntimeError):
    """Raised when the server configuration cannot be loaded or validated."""


class ContainerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    memory_limit: str | None = Field(None, description="Docker memory limit, e.g. 512m or 1g")


class CompanionConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["application", "service"]
    service_name: str = Field(..., min_length=1, description="Service name, may contain template expressions")
    image: str = Field(..., min_length=1)
    env: dict[str, str] = Field(default_factory=dict)
    volumes: dict[str, str] = Field(default_factory=dict, description="container path -> file content")
    labels: dict[str, str] = Field(default_factory=dict)
    port: int = Field(80, ge=1, le=65535)

    def to_service_config(self) -> ServiceConfig:
        container_type = (
            ContainerType.APPLICATION_COMPANION if self.type == "application" else ContainerType.SERVICE_COMPANION
        )
        return ServiceConfig(
            service_name=self.service_name,
            image=self.image,
            env=dict(self.env),
            volumes=dict(self.volumes),
            labels=dict(self.labels),
            port=self.port,
            container_type=container_type,
        )


class Config(BaseModel):
    """Immutable, process-wide configuration."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    containers: ContainerConfig = Field(default_factory=ContainerConfig)
    companions: dict[str, CompanionConfig] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: str, missing_ok: bool = False) -> Config:
        if not os.path.exists(path):
            if missing_ok:
                return cls()
            raise ConfigError(f"Configuration file {path!r} does not exist.")
        try:
            with open(path, "rb") as fh:
                raw = tomllib.load(fh)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Cannot read configuration file {path!r}: {e}") from e
        return cls.from_dict(raw, source=path)

    @classmethod
    def from_dict(cls, raw: dict, source: str = "<dict>") -> Config:
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {source}: {e}") from e

    def get_application_companion_configs(self) -> list[ServiceConfig]:
        return [c.to_service_config() for c in self.companions.values() if c.type == "application"]

    def get_container_config(self) -> ContainerConfig:
        return self.containers
