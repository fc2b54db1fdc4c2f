"""Console package for running and administering the ReelTrack service."""

from __future__ import annotations

from app.main import app, create_app

__all__ = ["app", "create_app"]
