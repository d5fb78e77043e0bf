"""Cluster access layer.

Submodules:
    base    -- ClusterClient interface, WatchEvent, ListResult.
    errors  -- ApiError taxonomy (NotFound, Conflict, AlreadyExists, Forbidden, Invalid).
    kube    -- kubernetes_asyncio dynamic-client implementation.

``kube`` is not imported here: it pulls in kubernetes_asyncio, which the
translation and engine layers never need.
"""

from vcsync.clients.base import ClusterClient, ListResult, WatchEvent
from vcsync.clients.errors import (
    AlreadyExistsError,
    ApiError,
    ConflictError,
    ForbiddenError,
    InvalidError,
    NotFoundError,
)

__all__ = [
    "AlreadyExistsError",
    "ApiError",
    "ClusterClient",
    "ConflictError",
    "ForbiddenError",
    "InvalidError",
    "ListResult",
    "NotFoundError",
    "WatchEvent",
]
