"""Entry point for `python -m vcsync`.

Usage:
    python -m vcsync
    uv run python -m vcsync
"""

from __future__ import annotations

import asyncio

from vcsync.app import main

asyncio.run(main())
