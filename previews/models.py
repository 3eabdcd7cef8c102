from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


SERVICE_NAME_RE = re.compile(r"^[a-z][a-z0-9\-]{0,62}$")
APP_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9\-_\.]{0,62}$")


class ServiceError(ValueError):
    """Raised when a service configuration is semantically invalid."""


class ContainerType(str, Enum):
    PRIMARY = "primary"
    REPLICA = "replica"
    APPLICATION_COMPANION = "app-companion"
    SERVICE_COMPANION = "service-companion"


def validate_service_name(name: str) -> None:
    if not SERVICE_NAME_RE.match(name or ""):
        raise ServiceError(
            f"Invalid service name {name!r}. Use lowercase letters/numbers and hyphen, "
            "starting with a letter (max 63 chars)."
        )


def validate_app_name(name: str) -> None:
    if not APP_NAME_RE.match(name or ""):
        raise ServiceError(
            f"Invalid application name {name!r}. Use lowercase letters/numbers and -_. (max 63 chars)."
        )


@dataclass(frozen=True)
class ServiceConfig:
    """Specification of one deployable service of an application.

    Everything besides ``service_name`` and ``container_type`` is passed to the
    infrastructure untouched.
    """

    service_name: str
    image: str
    env: dict[str, str] = field(default_factory=dict)
    volumes: dict[str, str] = field(default_factory=dict)  # container path -> file content
    labels: dict[str, str] = field(default_factory=dict)
    port: int = 80
    container_type: ContainerType = ContainerType.PRIMARY

    def validate(self) -> None:
        validate_service_name(self.service_name)
        if not self.image or any(ch.isspace() for ch in self.image):
            raise ServiceError(f"Invalid image reference {self.image!r} for service {self.service_name!r}.")
        if not 1 <= int(self.port) <= 65535:
            raise ServiceError(f"Invalid port {self.port} for service {self.service_name!r}.")
        for path in self.volumes:
            if not path.startswith("/"):
                raise ServiceError(f"Volume path {path!r} of service {self.service_name!r} must be absolute.")

    def with_container_type(self, container_type: ContainerType) -> ServiceConfig:
        return replace(self, container_type=container_type)


@dataclass(frozen=True)
class Service:
    """A service as it is realized by the infrastructure."""

    app_name: str
    service_name: str
    container_id: str
    container_type: ContainerType
    image: str
    status: str
    started_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "app_name": self.app_name,
            "service_name": self.service_name,
            "container_id": self.container_id,
            "container_type": self.container_type.value,
            "image": self.image,
            "status": self.status,
            "started_at": self.started_at,
        }


def validate_unique_names(configs: list[ServiceConfig]) -> None:
    seen: set[str] = set()
    for config in configs:
        if config.service_name in seen:
            raise ServiceError(f"Service {config.service_name!r} is defined more than once.")
        seen.add(config.service_name)
