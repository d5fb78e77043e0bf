"""HTTP API layer for vcsync.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by the vcsync.app bootstrap).
"""

from vcsync.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
