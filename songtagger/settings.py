#!/usr/bin/env python
"""
Centralized configuration schema for the Spotify integration.

Merges defaults from config.Config with optional runtime overrides and
validates the values the remote gateway and the reconciler rely on.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import Config

# Spotify rejects playlist item pages and add/remove batches larger than this
SPOTIFY_MAX_BATCH = 100


def _parse_scopes(value: Optional[object]) -> List[str]:
    """Normalize OAuth scopes into a unique ordered list."""
    if value is None:
        tokens: List[str] = []
    elif isinstance(value, str):
        tokens = [token.strip() for token in value.replace(" ", ",").split(",")]
    elif isinstance(value, (list, tuple, set)):
        tokens = [str(token).strip() for token in value]
    else:
        tokens = [str(value).strip()]

    normalized: List[str] = []
    for token in tokens:
        if not token:
            continue
        key = token.lower()
        if key not in normalized:
            normalized.append(key)
    return normalized


class AppSettings(BaseModel):
    """Application-wide settings for provider access and playlist sync."""

    model_config = ConfigDict(extra="ignore")

    # Spotify OAuth application
    spotify_client_id: Optional[str] = None
    spotify_client_secret: Optional[str] = None
    spotify_redirect_uri: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)

    # Web API behaviour
    page_size: int = SPOTIFY_MAX_BATCH
    request_timeout: float = 10.0
    default_description: str = ""

    # Session state expiry
    app_state_max_age_seconds: int = 24 * 60 * 60

    @field_validator("scopes", mode="before")
    @classmethod
    def _normalize_scopes(cls, value: Optional[object]) -> List[str]:
        return _parse_scopes(value)

    @field_validator("page_size", mode="before")
    @classmethod
    def _coerce_page_size(cls, value: object) -> int:
        try:
            size = int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return SPOTIFY_MAX_BATCH
        return max(1, min(size, SPOTIFY_MAX_BATCH))

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _coerce_timeout(cls, value: object) -> float:
        try:
            timeout = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 10.0
        return timeout if timeout > 0 else 10.0

    @field_validator("app_state_max_age_seconds", mode="before")
    @classmethod
    def _coerce_max_age(cls, value: object) -> int:
        try:
            seconds = int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 24 * 60 * 60
        return max(60, seconds)

    @property
    def has_spotify_credentials(self) -> bool:
        return bool(self.spotify_client_id and self.spotify_client_secret)

    @property
    def scope_string(self) -> str:
        return " ".join(self.scopes)


def load_app_settings(overrides: Optional[Dict[str, Any]] = None) -> AppSettings:
    """Load settings merging config defaults with optional runtime overrides."""
    data: Dict[str, Any] = {
        "spotify_client_id": Config.SPOTIPY_CLIENT_ID,
        "spotify_client_secret": Config.SPOTIPY_CLIENT_SECRET,
        "spotify_redirect_uri": Config.SPOTIPY_REDIRECT_URI,
        "scopes": Config.SPOTIFY_SCOPES,
        "page_size": Config.SPOTIFY_PAGE_SIZE,
        "request_timeout": Config.SPOTIFY_REQUEST_TIMEOUT,
        "default_description": Config.DEFAULT_PLAYLIST_DESCRIPTION,
        "app_state_max_age_seconds": Config.APP_STATE_MAX_AGE_SECONDS,
    }
    if overrides:
        data.update(overrides)
    return AppSettings.model_validate(data)


__all__ = [
    "AppSettings",
    "SPOTIFY_MAX_BATCH",
    "load_app_settings",
]
