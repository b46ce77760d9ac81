"""Per-request wiring shared by the route blueprints."""

from __future__ import annotations

import logging
from typing import Any, Dict

from flask import current_app, jsonify
from flask_login import current_user

from songtagger.auth.spotify import get_access_token
from songtagger.domain.library.store import SqlPlaylistStore
from songtagger.domain.sync.errors import AlreadyImported, SyncError
from songtagger.domain.sync.reconciler import PlaylistReconciler
from songtagger.domain.sync.remote import SpotifyGateway
from songtagger.settings import AppSettings, load_app_settings

logger = logging.getLogger(__name__)


def current_settings() -> AppSettings:
    settings = current_app.extensions.get('app_settings')
    if settings is None:
        settings = load_app_settings()
    return settings


def spotify_gateway() -> SpotifyGateway:
    """Gateway acting as the signed-in user; refreshes their token when needed."""
    user = current_user._get_current_object()
    token = get_access_token(user, oauth_factory=current_app.extensions['spotify_oauth_factory'])
    return current_app.extensions['spotify_gateway_factory'](token)


def playlist_reconciler() -> PlaylistReconciler:
    return PlaylistReconciler(
        SqlPlaylistStore(),
        spotify_gateway(),
        default_description=current_settings().default_description,
    )


def handle_sync_error(exc: SyncError):
    if isinstance(exc, AlreadyImported):
        return jsonify({'status': 'already_imported', 'playlist_id': exc.playlist_id}), 200
    if exc.http_status >= 500:
        logger.warning("Request failed: %s", exc)
    return jsonify(exc.to_dict()), exc.http_status


def pagination_payload(pagination) -> Dict[str, Any]:
    return {
        'page': pagination.page,
        'per_page': pagination.per_page,
        'total': pagination.total,
        'pages': pagination.pages,
        'has_next': pagination.has_next,
        'has_prev': pagination.has_prev,
    }


__all__ = [
    "current_settings",
    "handle_sync_error",
    "pagination_payload",
    "playlist_reconciler",
    "spotify_gateway",
]
