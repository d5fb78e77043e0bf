"""Cache layer for vcsync.

Provides in-memory object caching backed by Kubernetes list/watch streams,
one cache per (cluster side, kind). The engine reads through these caches
and falls back to the API server when no cache is attached.

Submodules:
    object_cache  -- ObjectCache with a 3-state readiness model and sync barrier.
"""

from vcsync.cache.object_cache import ObjectCache

__all__ = ["ObjectCache"]
