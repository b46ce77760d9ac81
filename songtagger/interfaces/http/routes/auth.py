#!/usr/bin/env python
"""Sign in with Spotify (authorization-code flow) and session endpoints."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime

from flask import Blueprint, current_app, jsonify, redirect, request, session
from flask_login import current_user, login_user, logout_user
from spotipy.oauth2 import SpotifyOauthError
from sqlalchemy.exc import SQLAlchemyError

from songtagger.auth.spotify import store_token_info
from songtagger.database.db_manager import User, db
from songtagger.domain.sync.errors import SyncError
from songtagger.interfaces.http.dependencies import current_settings
from songtagger.support.app_state import clear_state

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

_STATE_SESSION_KEY = "spotify_oauth_state"


def _error_redirect(reason: str):
    return redirect(f"/?error={reason}")


def _upsert_user(profile: dict, token_info: dict) -> User:
    spotify_id = profile.get("id")
    if not spotify_id:
        raise ValueError("Spotify profile has no id")
    user = User.query.filter_by(spotify_id=spotify_id).first()
    if user is None:
        user = User(spotify_id=spotify_id)
        db.session.add(user)
    images = profile.get("images") or []
    user.display_name = profile.get("display_name") or spotify_id
    user.email = profile.get("email")
    user.avatar_url = images[0].get("url") if images else None
    user.last_login_at = datetime.utcnow()
    store_token_info(user, token_info)
    return user


@auth_bp.route("/login", methods=["GET"])
def login():
    if not current_settings().has_spotify_credentials:
        return jsonify({"error": "spotify_not_configured"}), 503
    state = secrets.token_urlsafe(16)
    session[_STATE_SESSION_KEY] = state
    oauth = current_app.extensions["spotify_oauth_factory"](state)
    return redirect(oauth.get_authorize_url(state=state))


@auth_bp.route("/callback/spotify", methods=["GET"])
def spotify_callback():
    if request.args.get("error"):
        logger.info("Spotify login declined: %s", request.args.get("error"))
        return _error_redirect("access_denied")

    code = request.args.get("code")
    if not code:
        return _error_redirect("no_code")

    expected_state = session.pop(_STATE_SESSION_KEY, None)
    if not expected_state or request.args.get("state") != expected_state:
        logger.warning("Spotify callback state mismatch")
        return _error_redirect("state_mismatch")

    try:
        oauth = current_app.extensions["spotify_oauth_factory"](expected_state)
        token_info = oauth.get_access_token(code, as_dict=True, check_cache=False)
        gateway = current_app.extensions["spotify_gateway_factory"](token_info["access_token"])
        profile = gateway.current_user_profile()
        user = _upsert_user(profile, token_info)
        db.session.commit()
    except (SpotifyOauthError, SyncError, KeyError, ValueError):
        logger.exception("Spotify sign-in failed")
        db.session.rollback()
        return _error_redirect("auth_failed")
    except SQLAlchemyError:
        logger.exception("Could not store Spotify sign-in")
        db.session.rollback()
        return _error_redirect("auth_failed")

    login_user(user, remember=True)
    logger.info("User %s signed in with Spotify", user.id)
    return redirect(current_app.config.get("POST_LOGIN_REDIRECT", "/dashboard"))


@auth_bp.route("/logout", methods=["POST"])
def logout():
    if current_user.is_authenticated:
        user = current_user._get_current_object()
        user.clear_tokens()
        clear_state(user)
        logout_user()
    return jsonify({"success": True}), 200


@auth_bp.route("/session", methods=["GET"])
def session_info():
    if current_user.is_authenticated:
        return jsonify({"user": current_user.to_dict()}), 200
    return jsonify({"user": None}), 200


__all__ = ["auth_bp"]
