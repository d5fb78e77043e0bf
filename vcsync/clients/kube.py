"""ClusterClient backed by the kubernetes_asyncio dynamic client.

Resources are discovered lazily per GVK and memoized. Every ApiException is
translated into the vcsync error taxonomy at this boundary so that nothing
above it imports kubernetes_asyncio.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]
from kubernetes_asyncio.client import ApiClient, Configuration  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]
from kubernetes_asyncio.dynamic import DynamicClient  # type: ignore[import-untyped]

from vcsync.clients.base import ClusterClient, ListResult, WatchEvent
from vcsync.clients.errors import ApiError, error_from_status
from vcsync.models.objects import GroupVersionKind, KubeObject, name_of, namespace_of
from vcsync.observability.logging import get_logger

_MERGE_PATCH = "application/merge-patch+json"


def _translate(exc: ApiException) -> ApiError:
    reason = ""
    message = str(exc.reason or "")
    body = getattr(exc, "body", None)
    if body:
        try:
            status = json.loads(body)
            reason = str(status.get("reason", ""))
            message = str(status.get("message", message))
        except (TypeError, ValueError):
            pass
    return error_from_status(int(exc.status or 0), reason, message)


def _to_dict(instance: Any) -> KubeObject:
    if isinstance(instance, dict):
        return instance
    return instance.to_dict()


async def load_api_client(kubeconfig: str) -> ApiClient:
    """Build an ApiClient from a kubeconfig path, or in-cluster config if empty."""
    configuration = Configuration()
    if kubeconfig:
        await k8s_config.load_kube_config(config_file=kubeconfig, client_configuration=configuration)
    else:
        # load_incluster_config() is synchronous in kubernetes-asyncio
        k8s_config.load_incluster_config(client_configuration=configuration)
    return ApiClient(configuration=configuration)


class KubeClusterClient(ClusterClient):
    """One API endpoint (virtual or host) reached through kubernetes_asyncio."""

    def __init__(self, side: str, api_client: ApiClient) -> None:
        self.side = side
        self._api_client = api_client
        self._dynamic: Any = None
        self._resources: dict[GroupVersionKind, Any] = {}
        self._log = get_logger(f"clients.{side}")

    async def _client(self) -> Any:
        if self._dynamic is None:
            self._dynamic = await DynamicClient(self._api_client)
        return self._dynamic

    async def _resource(self, gvk: GroupVersionKind) -> Any:
        resource = self._resources.get(gvk)
        if resource is None:
            client = await self._client()
            resource = await client.resources.get(api_version=gvk.api_version, kind=gvk.kind)
            self._resources[gvk] = resource
        return resource

    async def close(self) -> None:
        await self._api_client.close()

    async def stop(self) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, gvk: GroupVersionKind, namespace: str, name: str) -> KubeObject:
        client = await self._client()
        resource = await self._resource(gvk)
        try:
            result = await client.get(resource, name=name, namespace=namespace or None)
        except ApiException as exc:
            raise _translate(exc) from exc
        return _to_dict(result)

    async def list(
        self,
        gvk: GroupVersionKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> ListResult:
        client = await self._client()
        resource = await self._resource(gvk)
        kwargs: dict[str, Any] = {"namespace": namespace or None}
        if label_selector:
            kwargs["label_selector"] = label_selector
        try:
            result = _to_dict(await client.get(resource, **kwargs))
        except ApiException as exc:
            raise _translate(exc) from exc

        items = []
        for item in result.get("items") or []:
            # list items come back without type information
            item.setdefault("apiVersion", gvk.api_version)
            item.setdefault("kind", gvk.kind)
            items.append(item)
        resource_version = str((result.get("metadata") or {}).get("resourceVersion") or "")
        return ListResult(items=items, resource_version=resource_version)

    async def watch(  # type: ignore[override]
        self,
        gvk: GroupVersionKind,
        namespace: str | None = None,
        label_selector: str | None = None,
        resource_version: str | None = None,
    ) -> AsyncIterator[WatchEvent]:
        client = await self._client()
        resource = await self._resource(gvk)
        kwargs: dict[str, Any] = {"namespace": namespace or None}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if resource_version:
            kwargs["resource_version"] = resource_version
        try:
            async for event in client.watch(resource, **kwargs):
                raw = event.get("raw_object")
                if raw is None:
                    raw = _to_dict(event["object"])
                if event.get("type") == "ERROR":
                    code = int(raw.get("code") or 500)
                    raise error_from_status(code, str(raw.get("reason", "")), str(raw.get("message", "")))
                yield WatchEvent(type=str(event.get("type", "")), object=raw)
        except ApiException as exc:
            raise _translate(exc) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, gvk: GroupVersionKind, obj: KubeObject) -> KubeObject:
        client = await self._client()
        resource = await self._resource(gvk)
        try:
            result = await client.create(resource, body=obj, namespace=namespace_of(obj) or None)
        except ApiException as exc:
            raise _translate(exc) from exc
        return _to_dict(result)

    async def update(self, gvk: GroupVersionKind, obj: KubeObject) -> KubeObject:
        client = await self._client()
        resource = await self._resource(gvk)
        try:
            result = await client.replace(
                resource,
                body=obj,
                name=name_of(obj),
                namespace=namespace_of(obj) or None,
            )
        except ApiException as exc:
            raise _translate(exc) from exc
        return _to_dict(result)

    async def patch(
        self,
        gvk: GroupVersionKind,
        namespace: str,
        name: str,
        patch: dict[str, Any],
    ) -> KubeObject:
        client = await self._client()
        resource = await self._resource(gvk)
        return await self._patch(client, resource, namespace, name, patch)

    async def patch_status(
        self,
        gvk: GroupVersionKind,
        namespace: str,
        name: str,
        patch: dict[str, Any],
    ) -> KubeObject:
        client = await self._client()
        resource = await self._resource(gvk)
        return await self._patch(client, resource.subresources["status"], namespace, name, patch)

    async def _patch(
        self,
        client: Any,
        resource: Any,
        namespace: str,
        name: str,
        patch: dict[str, Any],
    ) -> KubeObject:
        try:
            result = await client.patch(
                resource,
                body=patch,
                name=name,
                namespace=namespace or None,
                content_type=_MERGE_PATCH,
            )
        except ApiException as exc:
            raise _translate(exc) from exc
        return _to_dict(result)

    async def delete(
        self,
        gvk: GroupVersionKind,
        namespace: str,
        name: str,
        grace_period_seconds: int | None = None,
        precondition_uid: str | None = None,
    ) -> None:
        client = await self._client()
        resource = await self._resource(gvk)
        body: dict[str, Any] = {"apiVersion": "v1", "kind": "DeleteOptions"}
        if grace_period_seconds is not None:
            body["gracePeriodSeconds"] = grace_period_seconds
        if precondition_uid:
            body["preconditions"] = {"uid": precondition_uid}
        try:
            await client.delete(resource, name=name, namespace=namespace or None, body=body)
        except ApiException as exc:
            raise _translate(exc) from exc
        self._log.debug(
            "object deleted",
            kind=gvk.kind,
            object=f"{namespace}/{name}",
            grace_period=grace_period_seconds,
        )
