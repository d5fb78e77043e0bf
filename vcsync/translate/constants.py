"""Wire-level label and annotation keys.

These values are read by other tooling and by older releases of the syncer;
they must stay bit-exact.
"""

from __future__ import annotations

MARKER_LABEL = "vcluster.loft.sh/managed-by"
NAMESPACE_LABEL = "vcluster.loft.sh/namespace"
CONTROLLER_LABEL = "vcluster.loft.sh/controlled-by"
LABEL_PREFIX = "vcluster.loft.sh/label"

NAME_ANNOTATION = "vcluster.loft.sh/object-name"
NAMESPACE_ANNOTATION = "vcluster.loft.sh/object-namespace"
UID_ANNOTATION = "vcluster.loft.sh/object-uid"
KIND_ANNOTATION = "vcluster.loft.sh/object-kind"

MANAGED_ANNOTATIONS_ANNOTATION = "vcluster.loft.sh/managed-annotations"
MANAGED_LABELS_ANNOTATION = "vcluster.loft.sh/managed-labels"

IDENTITY_ANNOTATIONS = frozenset(
    {
        NAME_ANNOTATION,
        NAMESPACE_ANNOTATION,
        UID_ANNOTATION,
        KIND_ANNOTATION,
    }
)

MANIFEST_ANNOTATIONS = frozenset({MANAGED_ANNOTATIONS_ANNOTATION, MANAGED_LABELS_ANNOTATION})

SYSTEM_ANNOTATIONS = IDENTITY_ANNOTATIONS | MANIFEST_ANNOTATIONS

SYSTEM_LABELS = frozenset({MARKER_LABEL, NAMESPACE_LABEL, CONTROLLER_LABEL})

# Platform identifier length limit (DNS-1123 label, label value).
MAX_NAME_LENGTH = 63

# Host Services that expose a virtual node's kubelet endpoint carry this label.
NODE_SERVICE_LABEL = "vcluster.loft.sh/node"
