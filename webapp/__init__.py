from __future__ import annotations

from .server import StateHub, create_app

__all__ = ["StateHub", "create_app"]
