"""Playlist CRUD, Spotify import and sync routes with ownership enforcement."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from songtagger.database.db_manager import db, Playlist, PlaylistTrack, Track
from songtagger.domain.library.store import append_track_rows, ensure_track
from songtagger.domain.sync.errors import SyncError
from songtagger.domain.sync.remote import normalize_playlist_id
from songtagger.interfaces.http.dependencies import (
    handle_sync_error,
    pagination_payload,
    playlist_reconciler,
)
from songtagger.models.dto import TrackDTO


playlist_bp = Blueprint('playlist_bp', __name__, url_prefix='/api/playlists')
playlist_bp.register_error_handler(SyncError, handle_sync_error)

SYNC_ACTIONS = ('sync', 'create')


def _serialize_playlist(playlist: Playlist, *, include_tracks: bool = True) -> dict:
    return playlist.to_dict(include_tracks=include_tracks)


def _owned_playlist(playlist_id: int) -> Playlist | None:
    if not getattr(current_user, 'is_authenticated', False):
        return None
    return (
        Playlist.query.options(
            selectinload(Playlist.entries).selectinload(PlaylistTrack.track)
        )
        .filter_by(id=playlist_id, user_id=current_user.id)
        .first()
    )


def _touch(playlist: Playlist) -> None:
    # Entry changes do not update the playlist row on their own
    playlist.updated_at = datetime.utcnow()


def _normalize_artist(value) -> str:
    if isinstance(value, (list, tuple)):
        names = [str(v).strip() for v in value if str(v).strip()]
        return ', '.join(names)
    return str(value or '').strip()


def _resolve_track(track_payload: dict, user_id: int) -> Track:
    """Find or create the owner's Track for a request payload entry."""
    local_id = track_payload.get('track_id')
    if local_id is not None:
        track = Track.query.filter_by(id=local_id, user_id=user_id).first()
        if track is None:
            raise ValueError(f'Track {local_id} is not in your library')
        return track

    spotify_id = (track_payload.get('spotify_id') or '').strip() or None
    title = (track_payload.get('title') or track_payload.get('name') or '').strip()
    if not title:
        raise ValueError('Track title is required')
    uri = track_payload.get('uri') or (f'spotify:track:{spotify_id}' if spotify_id else None)

    payload = TrackDTO(
        spotify_id=spotify_id,
        uri=uri,
        title=title,
        artist=_normalize_artist(track_payload.get('artist') or track_payload.get('artists')) or 'Unknown Artist',
        album=track_payload.get('album'),
        duration_ms=track_payload.get('duration_ms'),
        image_url=track_payload.get('image_url'),
        preview_url=track_payload.get('preview_url'),
        spotify_url=track_payload.get('spotify_url'),
    )
    return ensure_track(user_id, payload)


def _apply_tracks(playlist: Playlist, tracks: Iterable[dict]) -> int:
    resolved: List[Track] = [_resolve_track(payload, playlist.user_id) for payload in tracks]
    return append_track_rows(playlist, resolved)


@playlist_bp.route('', methods=['GET'])
@login_required
def list_playlists():
    page = max(1, request.args.get('page', type=int) or 1)
    per_page = request.args.get('per_page', type=int) or 10
    per_page = max(1, min(per_page, 50))

    query = Playlist.query.filter_by(user_id=current_user.id).order_by(Playlist.updated_at.desc())
    pagination = query.paginate(page=page, per_page=per_page, error_out=False)

    return (
        jsonify(
            {
                'items': [
                    _serialize_playlist(playlist, include_tracks=False)
                    for playlist in pagination.items
                ],
                'pagination': pagination_payload(pagination),
            }
        ),
        200,
    )


@playlist_bp.route('', methods=['POST'])
@login_required
def create_playlist():
    payload = request.get_json() or {}
    name = (payload.get('name') or '').strip()
    description = (payload.get('description') or '').strip() or None

    if not name:
        return jsonify({'error': 'name_required'}), 400

    playlist = Playlist(name=name, description=description, user_id=current_user.id)
    db.session.add(playlist)

    tracks_payload = payload.get('tracks') or []
    try:
        _apply_tracks(playlist, tracks_payload)
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'error': 'invalid_track', 'message': str(exc)}), 400
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'duplicate_track'}), 409

    return jsonify({'playlist': _serialize_playlist(playlist)}), 201


@playlist_bp.route('/<int:playlist_id>', methods=['GET'])
@login_required
def get_playlist(playlist_id: int):
    playlist = _owned_playlist(playlist_id)
    if playlist is None:
        return jsonify({'error': 'not_found'}), 404
    return jsonify({'playlist': _serialize_playlist(playlist)}), 200


@playlist_bp.route('/<int:playlist_id>', methods=['PUT'])
@login_required
def update_playlist(playlist_id: int):
    playlist = _owned_playlist(playlist_id)
    if playlist is None:
        return jsonify({'error': 'not_found'}), 404

    payload = request.get_json() or {}
    if 'name' in payload:
        name = (payload.get('name') or '').strip()
        if not name:
            return jsonify({'error': 'name_required'}), 400
        playlist.name = name
    if 'description' in payload:
        playlist.description = (payload.get('description') or '').strip() or None

    if 'tracks' in payload:
        # Replace all tracks when explicit list provided
        playlist.entries.clear()
        db.session.flush()
        try:
            _apply_tracks(playlist, payload.get('tracks') or [])
        except ValueError as exc:
            db.session.rollback()
            return jsonify({'error': 'invalid_track', 'message': str(exc)}), 400
        except IntegrityError:
            db.session.rollback()
            return jsonify({'error': 'duplicate_track'}), 409

    _touch(playlist)
    db.session.commit()
    return jsonify({'playlist': _serialize_playlist(playlist)}), 200


@playlist_bp.route('/<int:playlist_id>', methods=['DELETE'])
@login_required
def delete_playlist(playlist_id: int):
    playlist = _owned_playlist(playlist_id)
    if playlist is None:
        return jsonify({'error': 'not_found'}), 404

    db.session.delete(playlist)
    db.session.commit()
    return jsonify({'status': 'deleted'}), 200


@playlist_bp.route('/<int:playlist_id>/tracks', methods=['POST'])
@login_required
def add_tracks(playlist_id: int):
    playlist = _owned_playlist(playlist_id)
    if playlist is None:
        return jsonify({'error': 'not_found'}), 404

    payload = request.get_json() or {}
    tracks_payload = payload.get('tracks')
    if isinstance(tracks_payload, dict):
        tracks_payload = [tracks_payload]
    if not isinstance(tracks_payload, list):
        return jsonify({'error': 'invalid_payload'}), 400

    try:
        added = _apply_tracks(playlist, tracks_payload)
        _touch(playlist)
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'error': 'invalid_track', 'message': str(exc)}), 400
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'duplicate_track'}), 409

    return jsonify({'playlist': _serialize_playlist(playlist), 'added': added}), 200


@playlist_bp.route('/<int:playlist_id>/tracks/<int:entry_id>', methods=['DELETE'])
@login_required
def remove_track(playlist_id: int, entry_id: int):
    playlist = _owned_playlist(playlist_id)
    if playlist is None:
        return jsonify({'error': 'not_found'}), 404

    entry = next((item for item in playlist.entries if item.id == entry_id), None)
    if entry is None:
        return jsonify({'error': 'track_not_found'}), 404

    playlist.entries.remove(entry)
    for index, item in enumerate(playlist.entries):
        item.position = index
    _touch(playlist)
    db.session.commit()
    return jsonify({'playlist': _serialize_playlist(playlist)}), 200


@playlist_bp.route('/<int:playlist_id>/tracks/reorder', methods=['PUT'])
@login_required
def reorder_tracks(playlist_id: int):
    playlist = _owned_playlist(playlist_id)
    if playlist is None:
        return jsonify({'error': 'not_found'}), 404

    payload = request.get_json() or {}
    order = payload.get('order') or []
    if not isinstance(order, list) or not order:
        return jsonify({'error': 'invalid_payload'}), 400

    entry_map = {entry.id: entry for entry in playlist.entries}
    missing_ids = [entry_id for entry_id in order if entry_id not in entry_map]
    if missing_ids:
        return jsonify({'error': 'unknown_entries', 'entries': missing_ids}), 400

    for position, entry_id in enumerate(order):
        entry_map[entry_id].position = position

    # Keep unspecified entries at the end preserving order
    unspecified = [entry for entry in playlist.entries if entry.id not in order]
    base = len(order)
    for offset, entry in enumerate(sorted(unspecified, key=lambda e: e.position)):
        entry.position = base + offset

    _touch(playlist)
    db.session.commit()
    return jsonify({'playlist': _serialize_playlist(playlist)}), 200


@playlist_bp.route('/import', methods=['POST'])
@login_required
def import_playlist():
    payload = request.get_json() or {}
    raw_id = payload.get('spotify_playlist_id') or payload.get('spotifyPlaylistId')
    if not raw_id:
        return jsonify({'error': 'spotify_playlist_id_required'}), 400
    spotify_playlist_id = normalize_playlist_id(raw_id)
    if spotify_playlist_id is None:
        return jsonify({'error': 'invalid_spotify_playlist_id'}), 400

    result = playlist_reconciler().import_playlist(current_user.id, spotify_playlist_id)
    return jsonify(result.to_dict()), 201


@playlist_bp.route('/<int:playlist_id>/sync', methods=['POST'])
@login_required
def sync_playlist(playlist_id: int):
    payload = request.get_json(silent=True) or {}
    action = payload.get('action') or 'sync'
    if action not in SYNC_ACTIONS:
        return jsonify({'error': 'invalid_action', 'allowed': list(SYNC_ACTIONS)}), 400

    result = playlist_reconciler().run(current_user.id, playlist_id, action)
    return jsonify(result.to_dict()), 200


__all__ = ['playlist_bp']
