"""Saved tracks and the merged playlist list of the user's library."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from songtagger.database.db_manager import db, PlaylistTrack, Tag, Track
from songtagger.domain.library.store import SqlPlaylistStore, ensure_track
from songtagger.interfaces.http.dependencies import pagination_payload
from songtagger.models.dto import TrackDTO
from songtagger.models.views import build_playlist_view, serialize_view, sort_for_display


library_bp = Blueprint('library_bp', __name__, url_prefix='/api')

VIEW_KINDS = {'local', 'remote_linked'}


def _owned_track(track_id: int) -> Track | None:
    return Track.query.filter_by(id=track_id, user_id=current_user.id).first()


def _track_payload(payload: dict) -> TrackDTO:
    spotify_id = str(payload.get('spotify_id') or payload.get('id') or '').strip() or None
    title = (payload.get('title') or payload.get('name') or '').strip()
    if not title:
        raise ValueError('Track title is required')
    artist = payload.get('artist') or payload.get('artists') or ''
    if isinstance(artist, (list, tuple)):
        artist = ', '.join(str(name).strip() for name in artist if str(name).strip())
    return TrackDTO(
        spotify_id=spotify_id,
        uri=payload.get('uri') or (f'spotify:track:{spotify_id}' if spotify_id else None),
        title=title,
        artist=str(artist).strip() or 'Unknown Artist',
        album=payload.get('album'),
        duration_ms=payload.get('duration_ms') or payload.get('duration'),
        image_url=payload.get('image_url'),
        preview_url=payload.get('preview_url'),
        spotify_url=payload.get('spotify_url'),
    )


@library_bp.route('/library/playlists', methods=['GET'])
@login_required
def list_playlist_views():
    kind = (request.args.get('kind') or '').strip().lower()
    records = SqlPlaylistStore().list_for_owner(current_user.id)
    views = [build_playlist_view(record) for record in records]
    if kind in VIEW_KINDS:
        views = [view for view in views if view.kind == kind]
    return jsonify({'items': [serialize_view(view) for view in sort_for_display(views)]}), 200


@library_bp.route('/tracks', methods=['GET'])
@login_required
def list_tracks():
    page = max(1, request.args.get('page', type=int) or 1)
    per_page = request.args.get('per_page', type=int) or 50
    per_page = max(1, min(per_page, 200))
    tag = (request.args.get('tag') or '').strip()
    search = (request.args.get('q') or '').strip()

    query = Track.query.filter_by(user_id=current_user.id)
    if tag:
        tag_filter = Tag.id == int(tag) if tag.isdigit() else Tag.name == tag
        query = query.filter(Track.tags.any(tag_filter))
    if search:
        pattern = f'%{search}%'
        query = query.filter(
            or_(Track.title.ilike(pattern), Track.artist.ilike(pattern), Track.album.ilike(pattern))
        )

    pagination = query.order_by(Track.created_at.desc(), Track.id.desc()).paginate(
        page=page,
        per_page=per_page,
        error_out=False,
    )
    return (
        jsonify(
            {
                'items': [track.to_dict() for track in pagination.items],
                'pagination': pagination_payload(pagination),
            }
        ),
        200,
    )


@library_bp.route('/tracks', methods=['POST'])
@login_required
def save_track():
    payload = request.get_json() or {}
    try:
        track_payload = _track_payload(payload)
    except ValueError as exc:
        return jsonify({'error': 'invalid_track', 'message': str(exc)}), 400

    existing = None
    if track_payload.spotify_id:
        existing = Track.query.filter_by(user_id=current_user.id, spotify_id=track_payload.spotify_id).first()
    if existing is not None:
        return jsonify({'track': existing.to_dict(), 'created': False}), 200

    try:
        track = ensure_track(current_user.id, track_payload)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'duplicate_track'}), 409
    return jsonify({'track': track.to_dict(), 'created': True}), 201


@library_bp.route('/tracks/<int:track_id>', methods=['GET'])
@login_required
def get_track(track_id: int):
    track = _owned_track(track_id)
    if track is None:
        return jsonify({'error': 'not_found'}), 404
    data = track.to_dict()
    data['bookmarks'] = [bookmark.to_dict() for bookmark in track.bookmarks]
    return jsonify({'track': data}), 200


@library_bp.route('/tracks/<int:track_id>', methods=['DELETE'])
@login_required
def delete_track(track_id: int):
    track = _owned_track(track_id)
    if track is None:
        return jsonify({'error': 'not_found'}), 404
    # Playlist entries reference the track without an ORM cascade
    PlaylistTrack.query.filter_by(track_id=track.id).delete(synchronize_session=False)
    db.session.delete(track)
    db.session.commit()
    return jsonify({'status': 'deleted'}), 200


__all__ = ['library_bp']
