from __future__ import annotations

from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query

from previews.api_models import ServiceConfigRequest
from previews.apps import (
    AppNotFound,
    AppsService,
    AppsServiceError,
    InvalidServiceModel,
)
from previews.events import init_db, latest_events
from previews.models import Service

app = FastAPI(title="Preview Apps")


@lru_cache(maxsize=1)
def get_apps_service() -> AppsService:
    return AppsService.from_settings()


def _http_error(e: AppsServiceError) -> HTTPException:
    if isinstance(e, AppNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidServiceModel):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _service_list(services: list[Service]) -> list[dict[str, Any]]:
    return [s.to_dict() for s in services]


def _apps_service() -> AppsService:
    try:
        return get_apps_service()
    except AppsServiceError as e:
        raise _http_error(e) from e


@app.on_event("startup")
def startup() -> None:
    init_db()


@app.get("/apps")
def list_apps(service: AppsService = Depends(_apps_service)) -> dict[str, list[dict[str, Any]]]:
    try:
        apps = service.get_apps()
    except AppsServiceError as e:
        raise _http_error(e) from e
    return {name: _service_list(services) for name, services in apps.items()}


@app.post("/apps/{app_name}")
def create_or_update_app(
    app_name: str,
    payload: list[ServiceConfigRequest],
    service: AppsService = Depends(_apps_service),
) -> list[dict[str, Any]]:
    try:
        services = service.create_or_update(app_name, [p.to_service_config() for p in payload])
    except AppsServiceError as e:
        raise _http_error(e) from e
    return _service_list(services)


@app.delete("/apps/{app_name}")
def delete_app(app_name: str, service: AppsService = Depends(_apps_service)) -> list[dict[str, Any]]:
    try:
        services = service.delete_app(app_name)
    except AppsServiceError as e:
        raise _http_error(e) from e
    return _service_list(services)


@app.get("/events")
def events(limit: int = Query(50, ge=1, le=1000), app_name: str | None = None) -> list[dict[str, Any]]:
    return latest_events(limit=limit, app_name=app_name)
