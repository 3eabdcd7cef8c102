from __future__ import annotations

import io
import tarfile
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

import docker
from docker.errors import DockerException, ImageNotFound, NotFound

from .config import ContainerConfig
from .events import log_event
from .infrastructure import BackendError, Infrastructure
from .models import ContainerType, Service, ServiceConfig
from .settings import settings


APP_LABEL = "com.previews.app-name"
SERVICE_LABEL = "com.previews.service-name"
TYPE_LABEL = "com.previews.container-type"
PORT_LABEL = "com.previews.port"
_OWN_LABELS = {APP_LABEL, SERVICE_LABEL, TYPE_LABEL, PORT_LABEL}

T = TypeVar("T")


def _client() -> docker.DockerClient:
    return docker.from_env()


def docker_available() -> bool:
    try:
        c = _client()
        c.ping()
        return True
    except DockerException:
        return False


@contextmanager
def _docker_errors(action: str) -> Iterator[None]:
    try:
        yield
    except DockerException as e:
        raise BackendError(f"Docker failed to {action}: {e}") from e


def network_name(app_name: str) -> str:
    return f"{app_name}{settings.network_suffix}"


def container_name(app_name: str, service_name: str) -> str:
    return f"{app_name}.{service_name}"


def _to_service(container: Any) -> Service:
    labels = container.labels or {}
    return Service(
        app_name=labels[APP_LABEL],
        service_name=labels[SERVICE_LABEL],
        container_id=container.id,
        container_type=ContainerType(labels.get(TYPE_LABEL, ContainerType.PRIMARY.value)),
        image=container.attrs.get("Config", {}).get("Image", ""),
        status=container.status,
        started_at=container.attrs.get("State", {}).get("StartedAt"),
    )


def _to_service_config(container: Any) -> ServiceConfig:
    labels = container.labels or {}
    env: dict[str, str] = {}
    for item in container.attrs.get("Config", {}).get("Env") or []:
        key, _, value = item.partition("=")
        env[key] = value
    return ServiceConfig(
        service_name=labels[SERVICE_LABEL],
        image=container.attrs.get("Config", {}).get("Image", ""),
        env=env,
        labels={k: v for k, v in labels.items() if k not in _OWN_LABELS},
        port=int(labels.get(PORT_LABEL, 80)),
        container_type=ContainerType(labels.get(TYPE_LABEL, ContainerType.PRIMARY.value)),
    )


def _parse_containers(containers: list[Any], parse: Callable[[Any], T]) -> list[T]:
    """Apply ``parse`` to each container, skipping ones whose labels do not describe a service."""
    parsed: list[T] = []
    for container in containers:
        try:
            parsed.append(parse(container))
        except (KeyError, ValueError) as e:
            log_event(
                "WARN",
                f"Ignoring container {container.name}: unreadable labels ({type(e).__name__}: {e})",
                app_name=(container.labels or {}).get(APP_LABEL),
            )
    return parsed


def _volume_archive(volumes: dict[str, str]) -> bytes:
    """Pack ``path -> content`` into a tar archive rooted at ``/``."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for path, content in volumes.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name=path.lstrip("/"))
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class DockerInfrastructure(Infrastructure):
    """Runs every service of an application as a labeled container on a per-app network."""

    def _app_containers(self, c: docker.DockerClient, app_name: str | None = None) -> list[Any]:
        label = f"{APP_LABEL}={app_name}" if app_name else APP_LABEL
        return c.containers.list(all=True, filters={"label": [label]})

    def _connect(self) -> docker.DockerClient:
        if not docker_available():
            raise BackendError("Docker is not available. Start Docker Desktop / docker daemon and try again.")
        return _client()

    def get_services(self) -> dict[str, list[Service]]:
        with _docker_errors("list containers"):
            c = self._connect()
            services: dict[str, list[Service]] = {}
            for service in _parse_containers(self._app_containers(c), _to_service):
                services.setdefault(service.app_name, []).append(service)
        return services

    def get_configs_of_app(self, app_name: str) -> list[ServiceConfig]:
        with _docker_errors(f"inspect containers of {app_name}"):
            c = self._connect()
            configs = _parse_containers(self._app_containers(c, app_name), _to_service_config)
        return sorted(configs, key=lambda x: x.service_name)

    def _ensure_network(self, c: docker.DockerClient, app_name: str) -> Any:
        name = network_name(app_name)
        try:
            return c.networks.get(name)
        except NotFound:
            network = c.networks.create(name, driver="bridge", labels={APP_LABEL: app_name})
            log_event("INFO", f"Created docker network '{name}'.", app_name=app_name)
            return network

    def _ensure_image(self, c: docker.DockerClient, image: str, app_name: str) -> None:
        if not settings.pull_images:
            return
        try:
            c.images.get(image)
        except ImageNotFound:
            log_event("INFO", f"Pulling image {image}", app_name=app_name)
            c.images.pull(image)

    def _start_service(
        self,
        c: docker.DockerClient,
        network: Any,
        app_name: str,
        config: ServiceConfig,
        container_config: ContainerConfig,
    ) -> Service:
        name = container_name(app_name, config.service_name)
        try:
            existing = c.containers.get(name)
        except NotFound:
            existing = None
        if existing is not None:
            existing.remove(force=True)
            log_event("INFO", f"Replacing container {name}", app_name=app_name, service_name=config.service_name)

        self._ensure_image(c, config.image, app_name)

        labels: dict[str, str] = dict(config.labels)
        labels.update(
            {
                APP_LABEL: app_name,
                SERVICE_LABEL: config.service_name,
                TYPE_LABEL: config.container_type.value,
                PORT_LABEL: str(config.port),
            }
        )
        kwargs: dict[str, Any] = {}
        if container_config.memory_limit:
            kwargs["mem_limit"] = container_config.memory_limit

        container = c.containers.create(
            config.image,
            name=name,
            environment=config.env,
            labels=labels,
            restart_policy={"Name": "unless-stopped"},
            **kwargs,
        )
        network.connect(container, aliases=[config.service_name])
        if config.volumes:
            container.put_archive("/", _volume_archive(config.volumes))
        container.start()
        container.reload()

        log_event("INFO", f"Started container {name} from image {config.image}", app_name=app_name, service_name=config.service_name)
        return _to_service(container)

    def start_services(
        self,
        app_name: str,
        configs: list[ServiceConfig],
        container_config: ContainerConfig,
    ) -> list[Service]:
        with _docker_errors(f"start services of {app_name}"):
            c = self._connect()
            network = self._ensure_network(c, app_name)
            return [self._start_service(c, network, app_name, config, container_config) for config in configs]

    def stop_services(self, app_name: str) -> list[Service]:
        with _docker_errors(f"stop services of {app_name}"):
            c = self._connect()
            services: list[Service] = []
            for container in self._app_containers(c, app_name):
                services.extend(_parse_containers([container], _to_service))
                container.stop(timeout=settings.stop_timeout_s)
                container.remove(force=True)
                log_event("INFO", f"Removed container {container.name}", app_name=app_name)

            try:
                c.networks.get(network_name(app_name)).remove()
            except NotFound:
                pass
        return services
