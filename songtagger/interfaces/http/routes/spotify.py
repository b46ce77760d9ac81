"""Read-only Spotify pages: track search, the user's playlists, recently played."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from songtagger.database.db_manager import Playlist, Track
from songtagger.domain.sync.errors import SyncError
from songtagger.interfaces.http.dependencies import handle_sync_error, spotify_gateway


spotify_bp = Blueprint('spotify_bp', __name__, url_prefix='/api')
spotify_bp.register_error_handler(SyncError, handle_sync_error)


def _saved_track_ids(spotify_ids) -> dict:
    ids = [sid for sid in spotify_ids if sid]
    if not ids:
        return {}
    rows = Track.query.filter(Track.user_id == current_user.id, Track.spotify_id.in_(ids)).all()
    return {track.spotify_id: track.id for track in rows}


@spotify_bp.route('/spotify/search', methods=['GET'])
@login_required
def search_tracks():
    query = (request.args.get('q') or '').strip()
    if not query:
        return jsonify({'tracks': []}), 200
    limit = request.args.get('limit', type=int) or 20

    tracks = spotify_gateway().search_tracks(query, limit=limit)
    saved = _saved_track_ids(track.spotify_id for track in tracks)
    items = []
    for track in tracks:
        data = track.model_dump()
        data['library_track_id'] = saved.get(track.spotify_id)
        items.append(data)
    return jsonify({'tracks': items}), 200


@spotify_bp.route('/spotify/playlists', methods=['GET'])
@login_required
def list_spotify_playlists():
    remote_playlists = spotify_gateway().current_user_playlists()
    linked = {
        playlist.spotify_id: playlist.id
        for playlist in Playlist.query.filter(
            Playlist.user_id == current_user.id,
            Playlist.spotify_id.isnot(None),
        ).all()
    }
    items = []
    for remote in remote_playlists:
        data = remote.model_dump()
        data['imported'] = remote.id in linked
        data['playlist_id'] = linked.get(remote.id)
        items.append(data)
    return jsonify({'playlists': items}), 200


@spotify_bp.route('/recent-songs', methods=['GET'])
@login_required
def recent_songs():
    limit = request.args.get('limit', type=int) or 50
    items = spotify_gateway().recently_played(limit=limit)
    saved = _saved_track_ids(item.get('spotify_id') for item in items)
    for item in items:
        item['library_track_id'] = saved.get(item.get('spotify_id'))
    return jsonify({'tracks': items}), 200


__all__ = ['spotify_bp']
