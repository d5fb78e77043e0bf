"""Built-in kind descriptors: ConfigMap, Secret and Pod."""

from __future__ import annotations

from typing import Any

from vcsync.models.objects import GroupVersionKind, KubeObject, get_field, name_of, namespace_of
from vcsync.sync.descriptor import BackSyncPolicy, DescriptorRegistry, KindDescriptor
from vcsync.sync.generic import default_diff, translate_to_host
from vcsync.translate.constants import MARKER_LABEL, NAMESPACE_LABEL

CONFIGMAP = GroupVersionKind("", "v1", "ConfigMap")
SECRET = GroupVersionKind("", "v1", "Secret")
POD = GroupVersionKind("", "v1", "Pod")

# Every namespace gets its own copy of this from the platform, on both sides.
ROOT_CA_CONFIGMAP = "kube-root-ca.crt"
SERVICE_ACCOUNT_TOKEN_TYPE = "kubernetes.io/service-account-token"


# ---------------------------------------------------------------------------
# ConfigMap / Secret
# ---------------------------------------------------------------------------


def _sync_configmap(obj: KubeObject) -> bool:
    return name_of(obj) != ROOT_CA_CONFIGMAP


def _sync_secret(obj: KubeObject) -> bool:
    return obj.get("type") != SERVICE_ACCOUNT_TOKEN_TYPE


CONFIGMAP_DESCRIPTOR = KindDescriptor(
    gvk=CONFIGMAP,
    forward_fields=(("data",), ("binaryData",), ("immutable",)),
    has_status=False,
    should_sync=_sync_configmap,
)

SECRET_DESCRIPTOR = KindDescriptor(
    gvk=SECRET,
    forward_fields=(("data",), ("type",)),
    has_status=False,
    should_sync=_sync_secret,
)


# ---------------------------------------------------------------------------
# Pod
# ---------------------------------------------------------------------------


def _rewrite_pod_references(ctx: Any, spec: dict[str, Any], namespace: str) -> None:
    """Point ConfigMap and Secret references at the host copies."""

    def host(name: str) -> str:
        if not name or name == ROOT_CA_CONFIGMAP:
            return name
        return ctx.names.host_name(name, namespace)

    for volume in spec.get("volumes") or []:
        if "configMap" in volume:
            volume["configMap"]["name"] = host(volume["configMap"].get("name", ""))
        if "secret" in volume:
            volume["secret"]["secretName"] = host(volume["secret"].get("secretName", ""))
        for source in (volume.get("projected") or {}).get("sources") or []:
            if "configMap" in source:
                source["configMap"]["name"] = host(source["configMap"].get("name", ""))
            if "secret" in source:
                source["secret"]["name"] = host(source["secret"].get("name", ""))

    containers = list(spec.get("initContainers") or []) + list(spec.get("containers") or [])
    for container in containers:
        for env_from in container.get("envFrom") or []:
            for ref_key in ("configMapRef", "secretRef"):
                if ref_key in env_from:
                    env_from[ref_key]["name"] = host(env_from[ref_key].get("name", ""))
        for env in container.get("env") or []:
            value_from = env.get("valueFrom") or {}
            for ref_key in ("configMapKeyRef", "secretKeyRef"):
                if ref_key in value_from:
                    value_from[ref_key]["name"] = host(value_from[ref_key].get("name", ""))

    for pull_secret in spec.get("imagePullSecrets") or []:
        pull_secret["name"] = host(pull_secret.get("name", ""))


def _host_pod_selector(ctx: Any, selector: dict[str, Any] | None, namespace: str) -> dict[str, Any]:
    host = ctx.metadata.host_label_selector(selector) or {}
    host.setdefault("matchLabels", {})[MARKER_LABEL] = ctx.config.name
    if namespace:
        host["matchLabels"][NAMESPACE_LABEL] = namespace
    return host


def _rewrite_affinity_term(ctx: Any, term: dict[str, Any], namespace: str) -> dict[str, Any]:
    # every virtual namespace shares one host namespace, so namespaces become a label match
    namespaces = term.get("namespaces") or []
    selector = _host_pod_selector(ctx, term.get("labelSelector"), "" if namespaces else namespace)
    if namespaces:
        selector.setdefault("matchExpressions", []).append(
            {"key": NAMESPACE_LABEL, "operator": "In", "values": list(namespaces)}
        )
    return {"labelSelector": selector, "topologyKey": term.get("topologyKey", "")}


def _rewrite_pod_selectors(ctx: Any, spec: dict[str, Any], namespace: str) -> None:
    """Translate label selectors that match other pods."""
    for constraint in spec.get("topologySpreadConstraints") or []:
        constraint["labelSelector"] = _host_pod_selector(ctx, constraint.get("labelSelector"), namespace)

    affinity = spec.get("affinity") or {}
    for kind in ("podAffinity", "podAntiAffinity"):
        rules = affinity.get(kind)
        if not rules:
            continue
        required = rules.get("requiredDuringSchedulingIgnoredDuringExecution")
        if required:
            rules["requiredDuringSchedulingIgnoredDuringExecution"] = [
                _rewrite_affinity_term(ctx, term, namespace) for term in required
            ]
        for weighted in rules.get("preferredDuringSchedulingIgnoredDuringExecution") or []:
            weighted["podAffinityTerm"] = _rewrite_affinity_term(ctx, weighted.get("podAffinityTerm") or {}, namespace)


def translate_pod_to_host(ctx: Any, descriptor: KindDescriptor, virtual: KubeObject) -> KubeObject:
    host = translate_to_host(ctx, descriptor, virtual)
    spec = host.setdefault("spec", {})
    # scheduling happens on the host; service accounts do not exist there
    spec.pop("nodeName", None)
    spec.pop("serviceAccount", None)
    spec.pop("serviceAccountName", None)
    spec["automountServiceAccountToken"] = False
    spec["enableServiceLinks"] = False
    _rewrite_pod_references(ctx, spec, namespace_of(virtual))
    if not ctx.config.multi_namespace:
        _rewrite_pod_selectors(ctx, spec, namespace_of(virtual))
    return host


def pod_diff(event: Any, descriptor: KindDescriptor) -> None:
    """Generic diff, then forward container images (the mutable part of a pod spec)."""
    default_diff(event, descriptor)
    if event.virtual is None or event.host_after is None:
        return
    for key in ("initContainers", "containers"):
        images = {c.get("name"): c.get("image") for c in get_field(event.virtual, ("spec", key)) or []}
        for container in get_field(event.host_after, ("spec", key)) or []:
            image = images.get(container.get("name"))
            if image:
                container["image"] = image


def _pod_host_existed(virtual: KubeObject) -> bool:
    # only a host pod ever sets startTime; it reaches the virtual pod via status back-sync
    return bool(get_field(virtual, ("status", "startTime")))


async def _ensure_node_service(event: Any) -> None:
    provider = event.ctx.node_services
    node_name = get_field(event.host, ("spec", "nodeName"))
    if provider is not None and node_name:
        await provider.ensure(node_name)


POD_DESCRIPTOR = KindDescriptor(
    gvk=POD,
    merge_fields=(("spec", "activeDeadlineSeconds"),),
    back_sync=BackSyncPolicy(status=True, spec_fields=(("spec", "nodeName"),)),
    default_grace_period=30,
    to_host_fn=translate_pod_to_host,
    diff_fn=pod_diff,
    host_existed=_pod_host_existed,
    on_synced=_ensure_node_service,
)


def default_registry() -> DescriptorRegistry:
    return DescriptorRegistry([CONFIGMAP_DESCRIPTOR, SECRET_DESCRIPTOR, POD_DESCRIPTOR])
