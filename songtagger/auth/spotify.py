#!/usr/bin/env python
"""Spotify OAuth (authorization-code flow) and per-user bearer credentials."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError
from sqlalchemy.exc import SQLAlchemyError

from songtagger.database.db_manager import User, db
from songtagger.domain.sync.errors import AuthError, RemoteUnavailable
from songtagger.settings import AppSettings, load_app_settings

logger = logging.getLogger(__name__)

# Refresh a little early so a token does not expire mid-sync
TOKEN_REFRESH_MARGIN_SECONDS = 60


def build_oauth(settings: Optional[AppSettings] = None, *, state: Optional[str] = None) -> SpotifyOAuth:
    settings = settings or load_app_settings()
    return SpotifyOAuth(
        client_id=settings.spotify_client_id,
        client_secret=settings.spotify_client_secret,
        redirect_uri=settings.spotify_redirect_uri,
        scope=settings.scope_string,
        state=state,
        # Tokens live on the User row; never touch spotipy's .cache file
        cache_handler=MemoryCacheHandler(),
        open_browser=False,
        requests_timeout=settings.request_timeout,
    )


def store_token_info(user: User, token_info: Dict[str, Any], *, now: Optional[int] = None) -> None:
    """Copy a spotipy token_info dict onto the user. The caller commits."""
    now = int(now if now is not None else time.time())
    user.access_token = token_info.get("access_token")
    # Spotify omits refresh_token on refresh unless it rotated
    if token_info.get("refresh_token"):
        user.refresh_token = token_info["refresh_token"]
    expires_at = token_info.get("expires_at")
    if expires_at is None and token_info.get("expires_in") is not None:
        expires_at = now + int(token_info["expires_in"])
    user.token_expires_at = int(expires_at) if expires_at is not None else None


def token_is_expired(user: User, *, now: Optional[int] = None) -> bool:
    if not user.token_expires_at:
        return False
    now = int(now if now is not None else time.time())
    return user.token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS <= now


def get_access_token(
    user: User,
    *,
    oauth_factory: Optional[Callable[[], SpotifyOAuth]] = None,
    now: Optional[int] = None,
) -> str:
    """Return a usable bearer token for the user, refreshing it when expired.

    Raises AuthError when the user has no credential or the refresh is
    rejected, and RemoteUnavailable when the accounts service cannot be reached.
    """
    if not user.access_token:
        raise AuthError("No Spotify credential on record. Sign in with Spotify again.")
    if not token_is_expired(user, now=now):
        return user.access_token
    if not user.refresh_token:
        raise AuthError("The Spotify credential expired. Sign in with Spotify again.")

    oauth = oauth_factory() if oauth_factory else build_oauth()
    try:
        token_info = oauth.refresh_access_token(user.refresh_token)
    except SpotifyOauthError as exc:
        logger.warning("Spotify refused to refresh the token for user %s: %s", user.id, exc)
        user.clear_tokens()
        db.session.commit()
        raise AuthError("The Spotify credential was revoked. Sign in with Spotify again.") from exc
    except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
        raise RemoteUnavailable("Could not reach the Spotify accounts service.") from exc

    store_token_info(user, token_info, now=now)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Refreshed Spotify token for user %s", user.id)
    return user.access_token


__all__ = [
    "TOKEN_REFRESH_MARGIN_SECONDS",
    "build_oauth",
    "get_access_token",
    "store_token_info",
    "token_is_expired",
]
