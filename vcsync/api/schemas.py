"""Response models for the vcsync HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    error: str
    detail: str = ""


class HealthResponse(BaseModel):
    status: str
    version: str


class CacheStatus(BaseModel):
    readiness: str
    objects: int


class KindStatus(BaseModel):
    kind: str
    queue_depth: int
    processing: int
    caches: dict[str, CacheStatus]


class ReadinessResponse(BaseModel):
    ready: bool
    not_ready: list[str] = Field(default_factory=list)


class StatusResponse(BaseModel):
    version: str
    instance: str
    multi_namespace: bool
    target_namespace: str
    kinds: list[KindStatus]
