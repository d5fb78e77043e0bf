"""Uniform capability interface for one Kubernetes API endpoint.

The engine talks to the virtual and the host cluster exclusively through
this interface, which keeps it testable against an in-memory fake and keeps
the transport (kubernetes_asyncio) in one module.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from vcsync.models.objects import GroupVersionKind, KubeObject


@dataclass(frozen=True)
class WatchEvent:
    """A single watch notification: ADDED, MODIFIED, DELETED or BOOKMARK."""

    type: str
    object: KubeObject


@dataclass(frozen=True)
class ListResult:
    items: list[KubeObject]
    resource_version: str = ""


class ClusterClient(ABC):
    """Get/List/Watch/Create/Update/Patch/Delete plus the status subresource.

    Every method raises a subclass of :class:`vcsync.clients.errors.ApiError`
    on an error response.
    """

    side: str = ""

    @abstractmethod
    async def get(self, gvk: GroupVersionKind, namespace: str, name: str) -> KubeObject:
        """Return the object or raise NotFoundError."""

    @abstractmethod
    async def list(
        self,
        gvk: GroupVersionKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> ListResult:
        """List objects, optionally scoped to a namespace and label selector."""

    @abstractmethod
    def watch(
        self,
        gvk: GroupVersionKind,
        namespace: str | None = None,
        label_selector: str | None = None,
        resource_version: str | None = None,
    ) -> AsyncIterator[WatchEvent]:
        """Stream changes after *resource_version* until the server closes the watch."""

    @abstractmethod
    async def create(self, gvk: GroupVersionKind, obj: KubeObject) -> KubeObject:
        """Create the object; AlreadyExistsError if the name is taken."""

    @abstractmethod
    async def update(self, gvk: GroupVersionKind, obj: KubeObject) -> KubeObject:
        """Replace the object; ConflictError on a stale resourceVersion."""

    @abstractmethod
    async def patch(
        self,
        gvk: GroupVersionKind,
        namespace: str,
        name: str,
        patch: dict[str, Any],
    ) -> KubeObject:
        """Apply a JSON merge patch to the main resource."""

    @abstractmethod
    async def patch_status(
        self,
        gvk: GroupVersionKind,
        namespace: str,
        name: str,
        patch: dict[str, Any],
    ) -> KubeObject:
        """Apply a JSON merge patch to the status subresource."""

    @abstractmethod
    async def delete(
        self,
        gvk: GroupVersionKind,
        namespace: str,
        name: str,
        grace_period_seconds: int | None = None,
        precondition_uid: str | None = None,
    ) -> None:
        """Delete the object. NotFoundError if it is already gone."""
