"""Deterministic virtual -> host name and namespace translation.

Every function here is pure: the host identity of an object is computed from
its virtual (name, namespace) and the instance configuration alone, so no
mapping table has to be stored or looked up. The reverse direction is
reconstructed from the identity annotations written on the host object.
"""

from __future__ import annotations

import hashlib

from vcsync.models.config import TranslateConfig
from vcsync.models.objects import KubeObject, ObjectKey, annotations_of
from vcsync.translate.constants import MAX_NAME_LENGTH, NAME_ANNOTATION, NAMESPACE_ANNOTATION

# Keep 52 characters of the readable name, then "-" + 10 hash characters = 63.
_TRUNCATE_AT = 52
_HASH_CHARS = 10


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


def safe_concat_name(*parts: str) -> str:
    """Join *parts* with ``-``, hashing the overflow beyond 63 characters.

    The hash is taken over the full joined string, so two keys that share a
    52-character prefix still map to different names.
    """
    full = "-".join(parts)
    if len(full) > MAX_NAME_LENGTH:
        digest = sha256_hex(full)
        return (full[:_TRUNCATE_AT] + "-" + digest[:_HASH_CHARS]).replace(".-", "-")
    return full


class NameTranslator:
    """Maps virtual object identities to host identities for one instance."""

    def __init__(self, config: TranslateConfig) -> None:
        self._config = config
        self._namespace_suffix = sha256_hex(config.current_namespace + "x" + config.name)[:8]

    @property
    def config(self) -> TranslateConfig:
        return self._config

    @property
    def multi_namespace(self) -> bool:
        return self._config.multi_namespace

    def host_name(self, name: str, namespace: str) -> str:
        if not name:
            return ""
        if self._config.multi_namespace:
            return name
        return safe_concat_name(name, "x", namespace, "x", self._config.name)

    def host_name_cluster_scoped(self, name: str) -> str:
        if not name:
            return ""
        return safe_concat_name("vcluster", name, "x", self._config.scope_namespace, "x", self._config.name)

    def host_namespace(self, namespace: str) -> str:
        if not namespace:
            return ""
        if not self._config.multi_namespace:
            return self._config.target_namespace
        return f"{self._config.namespace_prefix}-{sha256_hex(namespace)[:8]}-{self._namespace_suffix}"

    def is_targeted_namespace(self, host_namespace: str) -> bool:
        if not self._config.multi_namespace:
            return host_namespace == self._config.target_namespace
        return host_namespace.startswith(self._config.namespace_prefix + "-") and host_namespace.endswith(
            "-" + self._namespace_suffix
        )

    def host_key(self, key: ObjectKey, namespaced: bool = True) -> ObjectKey:
        if not namespaced:
            return ObjectKey(namespace="", name=self.host_name_cluster_scoped(key.name))
        return ObjectKey(namespace=self.host_namespace(key.namespace), name=self.host_name(key.name, key.namespace))

    def virtual_key(self, host_obj: KubeObject) -> ObjectKey | None:
        """Reconstruct the virtual key from identity annotations, or None if absent."""
        annotations = annotations_of(host_obj)
        name = annotations.get(NAME_ANNOTATION, "")
        if not name:
            return None
        return ObjectKey(namespace=annotations.get(NAMESPACE_ANNOTATION, ""), name=name)

    def marker_label_cluster(self) -> str:
        return safe_concat_name(self._config.scope_namespace, "x", self._config.name)
