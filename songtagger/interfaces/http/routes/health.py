from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from songtagger.database.db_manager import db

health_bp = Blueprint("health_bp", __name__)


def _spotify_configured() -> bool:
    settings = current_app.extensions.get("app_settings")
    return bool(settings and settings.has_spotify_credentials)


@health_bp.route("/healthz")
def healthz():
    status = 200
    checks = {}

    try:
        db.session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as exc:  # pragma: no cover - DB failure path
        status = 503
        checks["database"] = f"error: {exc}"

    checks["spotify_credentials"] = "ok" if _spotify_configured() else "missing"

    overall = "ok" if status == 200 else "degraded"
    return jsonify({"status": overall, "checks": checks}), status


@health_bp.route("/readyz")
def readyz():
    # Sign-in needs the OAuth application; without it no user can sync
    ready = _spotify_configured()
    payload = {
        "status": "ready" if ready else "blocked",
        "spotify_credentials": ready,
    }
    return jsonify(payload), 200 if ready else 503


__all__ = ["health_bp"]
