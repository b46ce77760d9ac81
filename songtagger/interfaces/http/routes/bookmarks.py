"""Time-position bookmarks inside library tracks."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from songtagger.database.db_manager import db, Bookmark, Track


bookmark_bp = Blueprint('bookmark_bp', __name__, url_prefix='/api')


def _parse_time(value) -> int | None:
    try:
        seconds = int(float(value))
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def _owned_bookmark(bookmark_id: int) -> Bookmark | None:
    return Bookmark.query.filter_by(id=bookmark_id, user_id=current_user.id).first()


@bookmark_bp.route('/tracks/<int:track_id>/bookmarks', methods=['GET'])
@login_required
def list_bookmarks(track_id: int):
    track = Track.query.filter_by(id=track_id, user_id=current_user.id).first()
    if track is None:
        return jsonify({'error': 'not_found'}), 404
    return jsonify({'items': [bookmark.to_dict() for bookmark in track.bookmarks]}), 200


@bookmark_bp.route('/tracks/<int:track_id>/bookmarks', methods=['POST'])
@login_required
def create_bookmark(track_id: int):
    track = Track.query.filter_by(id=track_id, user_id=current_user.id).first()
    if track is None:
        return jsonify({'error': 'not_found'}), 404

    payload = request.get_json() or {}
    label = (payload.get('label') or '').strip()
    if not label:
        return jsonify({'error': 'label_required'}), 400
    seconds = _parse_time(payload.get('time_in_seconds', 0))
    if seconds is None:
        return jsonify({'error': 'invalid_time'}), 400
    if track.duration_ms and seconds * 1000 > track.duration_ms:
        return jsonify({'error': 'time_out_of_range'}), 400

    bookmark = Bookmark(
        user_id=current_user.id,
        track=track,
        time_in_seconds=seconds,
        label=label,
        description=(payload.get('description') or '').strip() or None,
    )
    db.session.add(bookmark)
    db.session.commit()
    return jsonify({'bookmark': bookmark.to_dict()}), 201


@bookmark_bp.route('/bookmarks/<int:bookmark_id>', methods=['PUT'])
@login_required
def update_bookmark(bookmark_id: int):
    bookmark = _owned_bookmark(bookmark_id)
    if bookmark is None:
        return jsonify({'error': 'not_found'}), 404

    payload = request.get_json() or {}
    if 'label' in payload:
        label = (payload.get('label') or '').strip()
        if not label:
            return jsonify({'error': 'label_required'}), 400
        bookmark.label = label
    if 'time_in_seconds' in payload:
        seconds = _parse_time(payload.get('time_in_seconds'))
        if seconds is None:
            return jsonify({'error': 'invalid_time'}), 400
        duration_ms = bookmark.track.duration_ms if bookmark.track else None
        if duration_ms and seconds * 1000 > duration_ms:
            return jsonify({'error': 'time_out_of_range'}), 400
        bookmark.time_in_seconds = seconds
    if 'description' in payload:
        bookmark.description = (payload.get('description') or '').strip() or None
    db.session.commit()
    return jsonify({'bookmark': bookmark.to_dict()}), 200


@bookmark_bp.route('/bookmarks/<int:bookmark_id>', methods=['DELETE'])
@login_required
def delete_bookmark(bookmark_id: int):
    bookmark = _owned_bookmark(bookmark_id)
    if bookmark is None:
        return jsonify({'error': 'not_found'}), 404
    db.session.delete(bookmark)
    db.session.commit()
    return jsonify({'status': 'deleted'}), 200


__all__ = ['bookmark_bp']
