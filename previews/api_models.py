from __future__ import annotations

from pydantic import BaseModel, Field

from .models import ContainerType, ServiceConfig


class ServiceConfigRequest(BaseModel):
    service_name: str = Field(..., description="Service name, unique within the application (dns-safe)")
    image: str = Field(..., description="Docker image (name:tag)")
    env: dict[str, str] = Field(default_factory=dict)
    volumes: dict[str, str] = Field(default_factory=dict, description="Absolute container path -> file content")
    labels: dict[str, str] = Field(default_factory=dict)
    port: int = Field(80, ge=1, le=65535, description="Container port the service listens on")

    def to_service_config(self) -> ServiceConfig:
        return ServiceConfig(
            service_name=self.service_name,
            image=self.image,
            env=dict(self.env),
            volumes=dict(self.volumes),
            labels=dict(self.labels),
            port=self.port,
            container_type=ContainerType.PRIMARY,
        )
