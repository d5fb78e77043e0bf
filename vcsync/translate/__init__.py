"""Translation layer: names, metadata and ownership.

Submodules:
    constants  -- Wire-level label and annotation keys.
    names      -- NameTranslator: pure virtual -> host name/namespace mapping.
    metadata   -- MetadataTranslator: label/annotation merge with managed-key manifests.
    ownership  -- OwnershipClassifier: "did this instance create that host object?".
"""

from vcsync.translate.metadata import MetadataTranslator
from vcsync.translate.names import NameTranslator, safe_concat_name
from vcsync.translate.ownership import OwnershipClassifier, always_managed

__all__ = [
    "MetadataTranslator",
    "NameTranslator",
    "OwnershipClassifier",
    "always_managed",
    "safe_concat_name",
]
