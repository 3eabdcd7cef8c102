import os
import sys

import pytest

# Ensure project root is importable (so `import main` / `import cli` work reliably across environments)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from previews import events
from previews.config import Config
from previews.infrastructure import BackendError, Infrastructure
from previews.models import ContainerType, Service, ServiceConfig
from previews.settings import Settings


class InMemoryInfrastructure(Infrastructure):
    """Keeps deployed configs in a dict and records every call."""

    def __init__(self) -> None:
        self.apps: dict[str, list[ServiceConfig]] = {}
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise BackendError(f"{op} failed")

    @staticmethod
    def _service(app_name: str, config: ServiceConfig) -> Service:
        return Service(
            app_name=app_name,
            service_name=config.service_name,
            container_id=f"{app_name}.{config.service_name}",
            container_type=config.container_type,
            image=config.image,
            status="running",
        )

    def get_services(self) -> dict[str, list[Service]]:
        self.calls.append(("get_services",))
        self._check("get_services")
        return {app: [self._service(app, c) for c in configs] for app, configs in self.apps.items()}

    def get_configs_of_app(self, app_name: str) -> list[ServiceConfig]:
        self.calls.append(("get_configs_of_app", app_name))
        self._check("get_configs_of_app")
        return list(self.apps.get(app_name, []))

    def start_services(self, app_name, configs, container_config) -> list[Service]:
        self.calls.append(("start_services", app_name, list(configs), container_config))
        self._check("start_services")
        self.apps[app_name] = list(configs)
        return [self._service(app_name, c) for c in configs]

    def stop_services(self, app_name: str) -> list[Service]:
        self.calls.append(("stop_services", app_name))
        self._check("stop_services")
        configs = self.apps.pop(app_name, [])
        return [self._service(app_name, c) for c in configs]

    def started(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "start_services"]


@pytest.fixture(autouse=True)
def event_db(tmp_path, monkeypatch):
    """Isolated sqlite event log for every test."""
    monkeypatch.setattr(events, "settings", Settings(db_path=str(tmp_path / "events.db")))
    events.init_db()
    return tmp_path / "events.db"


@pytest.fixture()
def infrastructure():
    return InMemoryInfrastructure()


@pytest.fixture()
def empty_config():
    return Config()


def primary(name: str, image: str = "example/app:latest", **kwargs) -> ServiceConfig:
    return ServiceConfig(service_name=name, image=image, container_type=ContainerType.PRIMARY, **kwargs)


def companion(key: str, **fields) -> tuple[str, dict]:
    fields.setdefault("type", "application")
    fields.setdefault("image", "example/companion:1")
    return key, fields


def config_with(*companions, memory_limit=None) -> Config:
    return Config.from_dict(
        {
            "containers": {"memory_limit": memory_limit},
            "companions": dict(companions),
        }
    )

