from __future__ import annotations

from abc import ABC, abstractmethod

from .config import ContainerConfig
from .models import Service, ServiceConfig


class BackendError(RuntimeError):
    """Raised by an infrastructure backend when it cannot query or change container state."""


class Infrastructure(ABC):
    """Capability set the apps service needs from a container backend.

    Calls are synchronous. Implementations report every backend specific failure
    as ``BackendError``.
    """

    @abstractmethod
    def get_services(self) -> dict[str, list[Service]]:
        """Return every running service grouped by application name."""
        raise NotImplementedError

    @abstractmethod
    def get_configs_of_app(self, app_name: str) -> list[ServiceConfig]:
        """Return the configurations of the services currently deployed for ``app_name``."""
        raise NotImplementedError

    @abstractmethod
    def start_services(
        self,
        app_name: str,
        configs: list[ServiceConfig],
        container_config: ContainerConfig,
    ) -> list[Service]:
        """Deploy ``configs`` for ``app_name`` and return the started services."""
        raise NotImplementedError

    @abstractmethod
    def stop_services(self, app_name: str) -> list[Service]:
        """Stop and remove all services of ``app_name`` and return them."""
        raise NotImplementedError
