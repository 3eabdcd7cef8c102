from __future__ import annotations

from dataclasses import replace
from typing import Any

from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from .models import ContainerType, ServiceConfig, ServiceError


class TemplateRenderError(ValueError):
    """Raised when a companion template cannot be rendered."""

    def __init__(self, message: str, template_name: str | None = None):
        super().__init__(message)
        self.template_name = template_name


def _is_companion(service: dict[str, Any]) -> bool:
    return isinstance(service, dict) and service.get("type") in (
        ContainerType.APPLICATION_COMPANION.value,
        ContainerType.SERVICE_COMPANION.value,
    )


def _is_replica(service: dict[str, Any]) -> bool:
    return isinstance(service, dict) and service.get("type") == ContainerType.REPLICA.value


def _environment() -> SandboxedEnvironment:
    env = SandboxedEnvironment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=True)
    env.tests["companion"] = _is_companion
    env.tests["replica"] = _is_replica
    return env


_ENV = _environment()


def build_context(app_name: str, services: list[ServiceConfig]) -> dict[str, Any]:
    """Template variables visible to a companion: the application and its services so far."""
    return {
        "application": {"name": app_name},
        "services": [
            {"name": s.service_name, "port": s.port, "type": s.container_type.value}
            for s in services
        ],
    }


def _render(source: str, context: dict[str, Any], template_name: str) -> str:
    try:
        return _ENV.from_string(source).render(context)
    except TemplateError as e:
        raise TemplateRenderError(f"Cannot render companion {template_name!r}: {e}", template_name) from e


def apply_templating_for_application_companion(
    template: ServiceConfig,
    app_name: str,
    context_services: list[ServiceConfig],
) -> ServiceConfig:
    """Resolve an application companion template for ``app_name``.

    ``context_services`` is only read; the returned config is a new object.
    """
    context = build_context(app_name, context_services)
    name = template.service_name

    service_name = _render(template.service_name, context, name).strip()
    resolved = replace(
        template,
        service_name=service_name,
        image=_render(template.image, context, name).strip(),
        env={k: _render(v, context, name) for k, v in template.env.items()},
        volumes={path: _render(content, context, name) for path, content in template.volumes.items()},
        labels={k: _render(v, context, name) for k, v in template.labels.items()},
        container_type=ContainerType.APPLICATION_COMPANION,
    )

    try:
        resolved.validate()
    except ServiceError as e:
        raise TemplateRenderError(f"Companion {name!r} rendered to an invalid service: {e}", name) from e
    return resolved
