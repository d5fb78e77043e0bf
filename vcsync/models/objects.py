"""Kubernetes object identities and metadata accessors.

Objects travel through vcsync as the plain JSON-shaped dicts returned by the
API server. The helpers here read metadata with absent-safe defaults so that
callers never have to guard against missing ``metadata`` / ``labels`` maps.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

KubeObject = dict[str, Any]


@dataclass(frozen=True)
class GroupVersionKind:
    """Type identity of a Kubernetes object."""

    group: str
    version: str
    kind: str

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> GroupVersionKind:
        group, _, version = api_version.rpartition("/")
        return cls(group=group, version=version, kind=kind)

    @classmethod
    def of(cls, obj: KubeObject) -> GroupVersionKind:
        return cls.from_api_version(str(obj.get("apiVersion", "")), str(obj.get("kind", "")))

    @property
    def api_version(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"

    def __str__(self) -> str:
        # Wire format of the kind annotation: "<group>/<version>, Kind=<kind>"
        return f"{self.group}/{self.version}, Kind={self.kind}"


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Namespace/name pair identifying an object within one cluster."""

    namespace: str
    name: str

    @classmethod
    def of(cls, obj: KubeObject) -> ObjectKey:
        return cls(namespace=namespace_of(obj), name=name_of(obj))

    def __str__(self) -> str:
        if not self.namespace:
            return self.name
        return f"{self.namespace}/{self.name}"


def metadata(obj: KubeObject) -> dict[str, Any]:
    """Return the metadata map of *obj*, creating it if missing."""
    meta = obj.get("metadata")
    if meta is None:
        meta = {}
        obj["metadata"] = meta
    return meta


def name_of(obj: KubeObject) -> str:
    return str((obj.get("metadata") or {}).get("name") or "")


def namespace_of(obj: KubeObject) -> str:
    return str((obj.get("metadata") or {}).get("namespace") or "")


def uid_of(obj: KubeObject) -> str:
    return str((obj.get("metadata") or {}).get("uid") or "")


def resource_version_of(obj: KubeObject) -> str:
    return str((obj.get("metadata") or {}).get("resourceVersion") or "")


def labels_of(obj: KubeObject | None) -> dict[str, str]:
    if obj is None:
        return {}
    return dict((obj.get("metadata") or {}).get("labels") or {})


def annotations_of(obj: KubeObject | None) -> dict[str, str]:
    if obj is None:
        return {}
    return dict((obj.get("metadata") or {}).get("annotations") or {})


def deletion_timestamp_of(obj: KubeObject) -> str | None:
    return (obj.get("metadata") or {}).get("deletionTimestamp")


def deletion_grace_period_of(obj: KubeObject) -> int | None:
    value = (obj.get("metadata") or {}).get("deletionGracePeriodSeconds")
    return int(value) if value is not None else None


def finalizers_of(obj: KubeObject) -> list[str]:
    return list((obj.get("metadata") or {}).get("finalizers") or [])


def set_labels(obj: KubeObject, labels: dict[str, str] | None) -> None:
    meta = metadata(obj)
    if labels:
        meta["labels"] = dict(labels)
    else:
        meta.pop("labels", None)


def set_annotations(obj: KubeObject, annotations: dict[str, str] | None) -> None:
    meta = metadata(obj)
    if annotations:
        meta["annotations"] = dict(annotations)
    else:
        meta.pop("annotations", None)


def is_newer_resource_version(old: KubeObject, new: KubeObject) -> bool:
    """True if *old* carries a strictly higher resourceVersion than *new*.

    Non-numeric versions compare as 0, so they never block a reconcile.
    """
    return _rv_int(old) > _rv_int(new)


def _rv_int(obj: KubeObject) -> int:
    try:
        return int(resource_version_of(obj))
    except ValueError:
        return 0


def deep_copy(obj: KubeObject | None) -> KubeObject | None:
    if obj is None:
        return None
    return copy.deepcopy(obj)


# Fields set by the API server that never carry over when an object is
# re-created on the other side.
_SERVER_METADATA_FIELDS = (
    "generateName",
    "selfLink",
    "uid",
    "resourceVersion",
    "generation",
    "creationTimestamp",
    "deletionTimestamp",
    "deletionGracePeriodSeconds",
    "ownerReferences",
    "finalizers",
    "managedFields",
)


def reset_object_metadata(obj: KubeObject) -> None:
    """Strip server-assigned metadata, keeping name, namespace, labels and annotations."""
    meta = metadata(obj)
    for field_name in _SERVER_METADATA_FIELDS:
        meta.pop(field_name, None)


def get_field(obj: KubeObject | None, path: tuple[str, ...]) -> Any:
    """Return the value at *path* (e.g. ``("spec", "nodeName")``) or None."""
    current: Any = obj
    for part in path:
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def set_field(obj: KubeObject, path: tuple[str, ...], value: Any) -> None:
    """Set the value at *path*, creating parents. ``None`` removes the field."""
    current = obj
    for part in path[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            if value is None:
                return
            child = {}
            current[part] = child
        current = child
    if value is None:
        current.pop(path[-1], None)
    else:
        current[path[-1]] = copy.deepcopy(value)
