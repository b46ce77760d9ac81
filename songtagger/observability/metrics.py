from __future__ import annotations

from flask import Blueprint, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

metrics_blueprint = Blueprint("metrics_bp", __name__)

SYNC_OPERATIONS = Counter(
    "songtagger_sync_operations_total",
    "Playlist import, sync and create operations by outcome.",
    ["action", "outcome"],
)
SYNC_FAILURES = Counter(
    "songtagger_sync_failures_total",
    "Failed playlist operations by the phase they failed in.",
    ["action", "phase"],
)
TRACKS_ADDED = Counter(
    "songtagger_remote_tracks_added_total",
    "Tracks added to Spotify playlists by sync and create.",
)
TRACKS_REMOVED = Counter(
    "songtagger_remote_tracks_removed_total",
    "Tracks removed from Spotify playlists by sync.",
)


def record_sync_success(action: str, added: int = 0, removed: int = 0) -> None:
    SYNC_OPERATIONS.labels(action=action, outcome="success").inc()
    if added:
        TRACKS_ADDED.inc(added)
    if removed:
        TRACKS_REMOVED.inc(removed)


def record_sync_failure(action: str, phase: str) -> None:
    SYNC_OPERATIONS.labels(action=action, outcome="failure").inc()
    SYNC_FAILURES.labels(action=action, phase=phase).inc()


@metrics_blueprint.route("/metrics")
def metrics_endpoint() -> Response:
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


__all__ = [
    "metrics_blueprint",
    "record_sync_failure",
    "record_sync_success",
]
