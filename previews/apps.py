from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from .config import Config, ConfigError
from .events import log_event
from .infrastructure import BackendError, Infrastructure
from .models import (
    ContainerType,
    Service,
    ServiceConfig,
    ServiceError,
    validate_app_name,
    validate_unique_names,
)
from .runtime import AppLocks
from .settings import settings
from .templating import TemplateRenderError, apply_templating_for_application_companion


MASTER_APP = "master"
_NOT_REPLICATED = (ContainerType.REPLICA, ContainerType.APPLICATION_COMPANION)


class AppsServiceError(Exception):
    """Base class of the errors the apps service reports to its callers."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class InvalidServiceModel(AppsServiceError):
    """The service configuration requested by the client is invalid."""


class AppNotFound(AppsServiceError):
    """No application with the given name is running."""

    def __init__(self, app_name: str):
        super().__init__(f"Application {app_name!r} does not exist.")
        self.app_name = app_name


class InfrastructureError(AppsServiceError):
    """The backend could not query or change container state."""


class InvalidServerConfiguration(AppsServiceError):
    """The server configuration could not be loaded."""


class InvalidTemplateFormat(AppsServiceError):
    """An application companion template could not be resolved."""


# Each lower level error maps to exactly one kind.
_ERROR_KINDS: tuple[tuple[type[Exception], type[AppsServiceError]], ...] = (
    (ServiceError, InvalidServiceModel),
    (BackendError, InfrastructureError),
    (ConfigError, InvalidServerConfiguration),
    (TemplateRenderError, InvalidTemplateFormat),
)


@contextmanager
def translate_errors(app_name: str | None = None) -> Iterator[None]:
    try:
        yield
    except AppsServiceError:
        raise
    except tuple(lower for lower, _ in _ERROR_KINDS) as e:
        kind = next(k for lower, k in _ERROR_KINDS if isinstance(e, lower))
        log_event("ERROR", f"{kind.__name__}: {e}", app_name=app_name)
        raise kind(str(e), cause=e) from e


class AppsService:
    """Resolves the full set of services of an application and hands it to the infrastructure."""

    def __init__(self, config: Config, infrastructure: Infrastructure, locks: AppLocks | None = None):
        self.config = config
        self.infrastructure = infrastructure
        self.locks = locks or AppLocks()

    @classmethod
    def from_settings(cls) -> AppsService:
        from .docker_infrastructure import DockerInfrastructure

        with translate_errors():
            config = Config.load(settings.config_path, missing_ok=not settings.config_required)
        return cls(config, DockerInfrastructure())

    def get_apps(self) -> dict[str, list[Service]]:
        """Return the running services of every application, keyed by app name."""
        with translate_errors():
            return self.infrastructure.get_services()

    def resolve_service_configs(self, app_name: str, service_configs: list[ServiceConfig]) -> list[ServiceConfig]:
        """Compute the full list of services ``app_name`` should run.

        The given configs are extended with:
        - replicas of the services of ``master`` the caller did not override
          (master's replicas and application companions are left out)
        - the application companions, rendered in configuration order
        """
        configs = list(service_configs)
        explicit = {c.service_name for c in service_configs}

        if app_name != MASTER_APP:
            replicated = 0
            for config in self.infrastructure.get_configs_of_app(MASTER_APP):
                # Master's own companions are rendered for master; this app gets its own below.
                if config.container_type in _NOT_REPLICATED or config.service_name in explicit:
                    continue
                configs.append(config.with_container_type(ContainerType.REPLICA))
                replicated += 1
            if replicated:
                log_event("INFO", f"Replicating {replicated} service(s) from {MASTER_APP}", app_name=app_name)

        for template in self.config.get_application_companion_configs():
            companion = apply_templating_for_application_companion(template, app_name, configs)
            if companion.service_name in explicit:
                log_event(
                    "WARN",
                    "Companion skipped, service is defined by the request",
                    app_name=app_name,
                    service_name=companion.service_name,
                )
                continue
            # A companion replaces an earlier derived service of the same name.
            configs = [c for c in configs if c.service_name != companion.service_name]
            configs.append(companion)
            log_event("INFO", "Resolved application companion", app_name=app_name, service_name=companion.service_name)

        return configs

    def create_or_update(self, app_name: str, service_configs: list[ServiceConfig]) -> list[Service]:
        """Create or update ``app_name`` with the given service configurations.

        Nothing is sent to the infrastructure unless the complete set of
        services could be resolved.
        """
        with translate_errors(app_name):
            validate_app_name(app_name)
            for config in service_configs:
                config.validate()
            validate_unique_names(service_configs)

            with self.locks.hold(app_name):
                configs = self.resolve_service_configs(app_name, service_configs)
                services = self.infrastructure.start_services(
                    app_name,
                    configs,
                    self.config.get_container_config(),
                )

        log_event("INFO", f"Started {len(services)} service(s)", app_name=app_name)
        return services

    def delete_app(self, app_name: str) -> list[Service]:
        """Stop all services of ``app_name``.

        The existence check and the stop are two backend calls; another process
        may remove the app in between, in which case the backend decides.
        """
        with translate_errors(app_name):
            try:
                validate_app_name(app_name)
            except ServiceError:
                raise AppNotFound(app_name) from None

            with self.locks.hold(app_name):
                if app_name not in self.infrastructure.get_services():
                    raise AppNotFound(app_name)
                services = self.infrastructure.stop_services(app_name)

        log_event("INFO", f"Stopped {len(services)} service(s)", app_name=app_name)
        return services
