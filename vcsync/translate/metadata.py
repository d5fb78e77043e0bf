"""Bidirectional label and annotation translation.

Host objects carry two kinds of metadata: keys that originate from the
virtual object (engine-owned) and keys that somebody else put there (foreign).
The engine records which keys it owns in manifest annotations on the host
object itself::

    vcluster.loft.sh/managed-annotations: "app.kubernetes.io/version\\nteam"
    vcluster.loft.sh/managed-labels:      "vcluster.loft.sh/label-vc-x-0a1b2c3d4e"

On every translation, prior host keys absent from the previous manifest are
foreign and are preserved verbatim; keys listed in it are recomputed from the
virtual object, so a key removed on the virtual side disappears from the host
exactly once the manifest says the engine owned it.

Label keys are not copied verbatim: each virtual key is replaced by a
one-way hash so tenants cannot forge host-side selectors, except keys on the
configured passthrough allow-list (exact keys or ``prefix/*`` patterns).
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from vcsync.models.config import TranslateConfig
from vcsync.models.objects import (
    GroupVersionKind,
    KubeObject,
    annotations_of,
    labels_of,
    name_of,
    namespace_of,
    uid_of,
)
from vcsync.translate.constants import (
    CONTROLLER_LABEL,
    KIND_ANNOTATION,
    LABEL_PREFIX,
    MANAGED_ANNOTATIONS_ANNOTATION,
    MANAGED_LABELS_ANNOTATION,
    MARKER_LABEL,
    NAME_ANNOTATION,
    NAMESPACE_ANNOTATION,
    NAMESPACE_LABEL,
    SYSTEM_ANNOTATIONS,
    SYSTEM_LABELS,
    UID_ANNOTATION,
)
from vcsync.translate.names import NameTranslator, safe_concat_name, sha256_hex


def _split_manifest(value: str | None) -> set[str]:
    if not value:
        return set()
    return {key for key in value.split("\n") if key}


def _join_manifest(keys: Iterable[str]) -> str:
    return "\n".join(sorted(set(keys)))


def _compile_patterns(patterns: Iterable[str]) -> tuple[frozenset[str], tuple[re.Pattern[str], ...]]:
    exact: set[str] = set()
    wildcards: list[re.Pattern[str]] = []
    for pattern in patterns:
        if pattern.endswith("/*"):
            wildcards.append(re.compile(re.escape(pattern[:-1]) + ".*"))
        else:
            exact.add(pattern)
    return frozenset(exact), tuple(wildcards)


class MetadataTranslator:
    """Translates labels and annotations between a virtual and a host object."""

    def __init__(self, config: TranslateConfig, names: NameTranslator) -> None:
        self._config = config
        self._names = names
        self._passthrough_exact, self._passthrough_wildcards = _compile_patterns(config.sync_labels)

    # ------------------------------------------------------------------
    # Label keys
    # ------------------------------------------------------------------

    def is_passthrough(self, key: str) -> bool:
        if key in self._passthrough_exact:
            return True
        return any(pattern.fullmatch(key) for pattern in self._passthrough_wildcards)

    def host_label_key(self, key: str, namespaced: bool = True) -> str:
        if self.is_passthrough(key):
            return key
        digest = sha256_hex(key)[:10]
        if namespaced:
            return safe_concat_name(LABEL_PREFIX, self._config.name, "x", digest)
        return safe_concat_name(LABEL_PREFIX, self._config.scope_namespace, "x", self._config.name, "x", digest)

    def virtual_label_key(self, host_key: str, candidates: Iterable[str], namespaced: bool = True) -> str:
        """Map *host_key* back to the candidate whose forward hash equals it.

        Unmatched keys are opaque and come back unchanged.
        """
        for candidate in candidates:
            if self.host_label_key(candidate, namespaced) == host_key:
                return candidate
        return host_key

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    def host_labels(self, virtual: KubeObject, prior_host: KubeObject | None = None) -> dict[str, str]:
        namespace = namespace_of(virtual)
        namespaced = bool(namespace)
        translated = self._translated_labels(labels_of(virtual), namespaced)

        result: dict[str, str] = {}
        prior_labels = labels_of(prior_host)
        prior_managed = _split_manifest(annotations_of(prior_host).get(MANAGED_LABELS_ANNOTATION))
        for key, value in prior_labels.items():
            if key in SYSTEM_LABELS or key in prior_managed or key in translated:
                continue
            if key.startswith(LABEL_PREFIX):
                # engine-namespaced keys are never foreign
                continue
            result[key] = value

        result.update(translated)
        if namespaced:
            result[MARKER_LABEL] = self._config.name
            result[NAMESPACE_LABEL] = namespace
        else:
            result[MARKER_LABEL] = self._names.marker_label_cluster()
        if prior_labels.get(CONTROLLER_LABEL):
            result[CONTROLLER_LABEL] = prior_labels[CONTROLLER_LABEL]
        return result

    def managed_label_keys(self, virtual: KubeObject) -> list[str]:
        namespaced = bool(namespace_of(virtual))
        return sorted(self._translated_labels(labels_of(virtual), namespaced))

    def virtual_labels(
        self,
        host: KubeObject,
        prior_virtual: KubeObject | None = None,
        excluded: Iterable[str] = (),
    ) -> dict[str, str]:
        excluded_keys = set(excluded)
        namespaced = bool(namespace_of(host))
        prior_labels = labels_of(prior_virtual)
        candidates = list(prior_labels)
        candidates.extend(key for key in self._passthrough_exact if key not in prior_labels)

        result = {key: value for key, value in prior_labels.items() if key in excluded_keys}
        for key, value in labels_of(host).items():
            if key in SYSTEM_LABELS:
                continue
            virtual_key = self.virtual_label_key(key, candidates, namespaced)
            if virtual_key in excluded_keys:
                continue
            result[virtual_key] = value
        return result

    def _translated_labels(self, labels: dict[str, str], namespaced: bool) -> dict[str, str]:
        translated: dict[str, str] = {}
        for key, value in labels.items():
            if key in SYSTEM_LABELS:
                continue
            translated[self.host_label_key(key, namespaced)] = value
        return translated

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def host_annotations(
        self,
        virtual: KubeObject,
        prior_host: KubeObject | None = None,
        excluded: Iterable[str] = (),
        gvk: GroupVersionKind | None = None,
    ) -> dict[str, str]:
        excluded_keys = set(excluded) | SYSTEM_ANNOTATIONS
        managed = {
            key: value for key, value in annotations_of(virtual).items() if key not in excluded_keys
        }

        result: dict[str, str] = {}
        prior_annotations = annotations_of(prior_host)
        prior_managed = _split_manifest(prior_annotations.get(MANAGED_ANNOTATIONS_ANNOTATION))
        for key, value in prior_annotations.items():
            if key in SYSTEM_ANNOTATIONS:
                continue
            if key in excluded_keys:
                if value != "":
                    result[key] = value
                continue
            if key in managed or key in prior_managed:
                continue
            result[key] = value

        result.update(managed)
        if managed:
            result[MANAGED_ANNOTATIONS_ANNOTATION] = _join_manifest(managed)
        label_keys = self.managed_label_keys(virtual)
        if label_keys:
            result[MANAGED_LABELS_ANNOTATION] = _join_manifest(label_keys)

        result[NAME_ANNOTATION] = name_of(virtual)
        result[UID_ANNOTATION] = uid_of(virtual)
        namespace = namespace_of(virtual)
        if namespace:
            result[NAMESPACE_ANNOTATION] = namespace
        if gvk is None and virtual.get("kind"):
            gvk = GroupVersionKind.of(virtual)
        if gvk is not None:
            result[KIND_ANNOTATION] = str(gvk)
        return result

    def virtual_annotations(
        self,
        host: KubeObject,
        prior_virtual: KubeObject | None = None,
        excluded: Iterable[str] = (),
    ) -> dict[str, str]:
        excluded_keys = set(excluded)
        result = {key: value for key, value in annotations_of(prior_virtual).items() if key in excluded_keys}
        for key, value in annotations_of(host).items():
            if key in SYSTEM_ANNOTATIONS or key in excluded_keys:
                continue
            result[key] = value
        return result

    # ------------------------------------------------------------------
    # Selectors
    # ------------------------------------------------------------------

    def host_label_selector(self, selector: dict[str, Any] | None, namespaced: bool = True) -> dict[str, Any] | None:
        if selector is None:
            return None
        return _rewrite_selector(selector, lambda key: self.host_label_key(key, namespaced))


def _rewrite_selector(selector: dict[str, Any], rewrite: Any) -> dict[str, Any]:
    result: dict[str, Any] = {}
    match_labels = selector.get("matchLabels")
    if match_labels is not None:
        result["matchLabels"] = {rewrite(key): value for key, value in match_labels.items()}
    expressions = selector.get("matchExpressions")
    if expressions:
        result["matchExpressions"] = [{**expr, "key": rewrite(expr["key"])} for expr in expressions]
    return result
