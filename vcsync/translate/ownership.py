"""Decides whether a host object was created by this engine instance.

Only managed objects are ever mutated or deleted. The checks are layered from
cheap to expensive: namespace scope, marker label, identity annotations, then
re-deriving the host name from those annotations so that a foreign object
which happens to carry copied annotations is still rejected.
"""

from __future__ import annotations

from vcsync.models.config import LegacyMarkerPolicy, TranslateConfig
from vcsync.models.objects import (
    GroupVersionKind,
    KubeObject,
    annotations_of,
    labels_of,
    name_of,
    namespace_of,
)
from vcsync.observability.logging import get_logger
from vcsync.translate.constants import KIND_ANNOTATION, MARKER_LABEL, NAME_ANNOTATION, NAMESPACE_ANNOTATION
from vcsync.translate.names import NameTranslator

_log = get_logger("translate.ownership")


class OwnershipClassifier:
    """Ownership predicate for host objects of one engine instance."""

    def __init__(self, config: TranslateConfig, names: NameTranslator) -> None:
        self._config = config
        self._names = names

    def _marker_accepted(self, value: str | None, expected: str) -> bool:
        if value == expected:
            return True
        if self._config.legacy_marker_policy == LegacyMarkerPolicy.ACCEPT_LEGACY:
            return value is not None and value in self._config.legacy_marker_values
        return False

    def is_managed(self, host_obj: KubeObject, gvk: GroupVersionKind, namespaced: bool = True) -> bool:
        if not namespaced:
            return self.is_managed_cluster(host_obj)

        namespace = namespace_of(host_obj)
        name = name_of(host_obj)
        if not self._names.is_targeted_namespace(namespace):
            return False
        if not self._marker_accepted(labels_of(host_obj).get(MARKER_LABEL), self._config.name):
            return False

        annotations = annotations_of(host_obj)
        virtual_name = annotations.get(NAME_ANNOTATION, "")
        virtual_namespace = annotations.get(NAMESPACE_ANNOTATION, "")
        if not virtual_name or not virtual_namespace:
            return False

        expected_name = self._names.host_name(virtual_name, virtual_namespace)
        if name != expected_name or namespace != self._names.host_namespace(virtual_namespace):
            _log.debug(
                "host object does not match its name annotations",
                kind=gvk.kind,
                object=f"{namespace}/{name}",
                expected_name=expected_name,
                name_annotation=f"{virtual_namespace}/{virtual_name}",
            )
            return False

        kind_annotation = annotations.get(KIND_ANNOTATION, "")
        if kind_annotation and kind_annotation != str(gvk):
            _log.debug(
                "host object does not match its kind annotation",
                object=f"{namespace}/{name}",
                existing_kind=str(gvk),
                expected_kind=kind_annotation,
            )
            return False
        return True

    def is_managed_cluster(self, host_obj: KubeObject) -> bool:
        return self._marker_accepted(labels_of(host_obj).get(MARKER_LABEL), self._names.marker_label_cluster())


def always_managed(host_obj: KubeObject, gvk: GroupVersionKind, namespaced: bool = True) -> bool:
    """Ownership override for kinds without an independent lifecycle (e.g. events)."""
    return True
