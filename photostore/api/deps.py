"""Shared API dependencies: settings and the content store."""

from __future__ import annotations

from fastapi import Request

from photostore.config import Settings
from photostore.services.content_store import ContentStore


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_store(request: Request) -> ContentStore:
    """Get the content store from app state."""
    store: ContentStore = request.app.state.store
    return store
