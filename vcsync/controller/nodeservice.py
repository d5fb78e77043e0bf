"""Shared per-node host Services.

Every node that runs tenant pods gets one Service in the instance's own host
namespace; it gives the virtual node a stable address for its kubelet
endpoint. Several reconciles (one per pod on that node) race to create the
same Service, so get-check-create runs under a single lock. This is the only
mutex in the engine; everything else relies on optimistic concurrency.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from vcsync.clients.base import ClusterClient
from vcsync.clients.errors import AlreadyExistsError, NotFoundError
from vcsync.models.config import TranslateConfig
from vcsync.models.objects import GroupVersionKind, KubeObject, get_field, labels_of, name_of
from vcsync.observability.logging import get_logger
from vcsync.translate.constants import MARKER_LABEL, NODE_SERVICE_LABEL
from vcsync.translate.names import safe_concat_name

SERVICE_GVK = GroupVersionKind("", "v1", "Service")
NODE_GVK = GroupVersionKind("", "v1", "Node")

KUBELET_PORT = 10250
KUBELET_TARGET_PORT = 8443


class NodeServiceProvider:
    """Allocates and garbage-collects the per-node host Services."""

    def __init__(
        self,
        host_client: ClusterClient,
        config: TranslateConfig,
        selector: dict[str, str] | None = None,
    ) -> None:
        self._host = host_client
        self._config = config
        self._selector = selector or {"app": "vcluster", "release": config.name}
        self._lock = asyncio.Lock()
        self._log = get_logger("controller.nodeservice")

    @property
    def namespace(self) -> str:
        return self._config.current_namespace

    def service_name(self, node_name: str) -> str:
        return safe_concat_name(self._config.name, "node", node_name.replace(".", "-"))

    def _build(self, node_name: str) -> KubeObject:
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {
                "name": self.service_name(node_name),
                "namespace": self.namespace,
                "labels": {
                    MARKER_LABEL: self._config.name,
                    NODE_SERVICE_LABEL: node_name,
                },
            },
            "spec": {
                "selector": dict(self._selector),
                "ports": [
                    {
                        "name": "kubelet",
                        "port": KUBELET_PORT,
                        "targetPort": KUBELET_TARGET_PORT,
                        "protocol": "TCP",
                    }
                ],
            },
        }

    async def ensure(self, node_name: str) -> str:
        """Return the ClusterIP of *node_name*'s Service, creating it if needed."""
        name = self.service_name(node_name)
        async with self._lock:
            try:
                service = await self._host.get(SERVICE_GVK, self.namespace, name)
            except NotFoundError:
                try:
                    service = await self._host.create(SERVICE_GVK, self._build(node_name))
                    self._log.info("node service created", node=node_name, service=name)
                except AlreadyExistsError:
                    service = await self._host.get(SERVICE_GVK, self.namespace, name)
        return str(get_field(service, ("spec", "clusterIP")) or "")

    async def cleanup(self, existing_nodes: Iterable[str]) -> int:
        """Delete Services whose node is not in *existing_nodes*. Returns the count."""
        keep = set(existing_nodes)
        selector = f"{MARKER_LABEL}={self._config.name},{NODE_SERVICE_LABEL}"
        result = await self._host.list(SERVICE_GVK, namespace=self.namespace, label_selector=selector)
        removed = 0
        async with self._lock:
            for service in result.items:
                node_name = labels_of(service).get(NODE_SERVICE_LABEL, "")
                if not node_name or node_name in keep:
                    continue
                try:
                    await self._host.delete(SERVICE_GVK, self.namespace, name_of(service))
                except NotFoundError:
                    continue
                removed += 1
                self._log.info("node service removed", node=node_name, service=name_of(service))
        return removed
