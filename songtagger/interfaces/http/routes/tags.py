"""Tag CRUD and tag assignment on library tracks."""

from __future__ import annotations

import re

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError

from songtagger.database.db_manager import db, Tag, Track


tag_bp = Blueprint('tag_bp', __name__, url_prefix='/api')

_COLOR_RE = re.compile(r'^#[0-9a-fA-F]{6}$')
MAX_TAG_NAME_LENGTH = 64


def _owned_tag(tag_id: int) -> Tag | None:
    return Tag.query.filter_by(id=tag_id, user_id=current_user.id).first()


def _owned_track(track_id: int) -> Track | None:
    return Track.query.filter_by(id=track_id, user_id=current_user.id).first()


def _validate_tag_payload(payload: dict, *, partial: bool) -> tuple[dict, str | None]:
    fields = {}
    if 'name' in payload or not partial:
        name = (payload.get('name') or '').strip()
        if not name:
            return {}, 'name_required'
        if len(name) > MAX_TAG_NAME_LENGTH:
            return {}, 'name_too_long'
        fields['name'] = name
    if 'color' in payload and payload.get('color') is not None:
        color = str(payload.get('color')).strip()
        if not _COLOR_RE.match(color):
            return {}, 'invalid_color'
        fields['color'] = color.lower()
    return fields, None


@tag_bp.route('/tags', methods=['GET'])
@login_required
def list_tags():
    tags = Tag.query.filter_by(user_id=current_user.id).order_by(Tag.name.asc()).all()
    usage = Tag.usage_for_user(current_user.id)
    items = []
    for tag in tags:
        data = tag.to_dict()
        data['track_count'] = usage.get(tag.id, 0)
        items.append(data)
    return jsonify({'items': items}), 200


@tag_bp.route('/tags', methods=['POST'])
@login_required
def create_tag():
    payload = request.get_json() or {}
    fields, error = _validate_tag_payload(payload, partial=False)
    if error:
        return jsonify({'error': error}), 400

    tag = Tag(user_id=current_user.id, **fields)
    db.session.add(tag)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'duplicate_tag'}), 409
    return jsonify({'tag': tag.to_dict()}), 201


@tag_bp.route('/tags/<int:tag_id>', methods=['PUT'])
@login_required
def update_tag(tag_id: int):
    tag = _owned_tag(tag_id)
    if tag is None:
        return jsonify({'error': 'not_found'}), 404

    payload = request.get_json() or {}
    fields, error = _validate_tag_payload(payload, partial=True)
    if error:
        return jsonify({'error': error}), 400
    for key, value in fields.items():
        setattr(tag, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'duplicate_tag'}), 409
    return jsonify({'tag': tag.to_dict()}), 200


@tag_bp.route('/tags/<int:tag_id>', methods=['DELETE'])
@login_required
def delete_tag(tag_id: int):
    tag = _owned_tag(tag_id)
    if tag is None:
        return jsonify({'error': 'not_found'}), 404
    # Clearing the collection removes the association rows
    tag.tracks.clear()
    db.session.delete(tag)
    db.session.commit()
    return jsonify({'status': 'deleted'}), 200


@tag_bp.route('/tracks/<int:track_id>/tags/<int:tag_id>', methods=['PUT'])
@login_required
def attach_tag(track_id: int, tag_id: int):
    track = _owned_track(track_id)
    tag = _owned_tag(tag_id)
    if track is None or tag is None:
        return jsonify({'error': 'not_found'}), 404
    if tag not in track.tags:
        track.tags.append(tag)
        db.session.commit()
    return jsonify({'track': track.to_dict()}), 200


@tag_bp.route('/tracks/<int:track_id>/tags/<int:tag_id>', methods=['DELETE'])
@login_required
def detach_tag(track_id: int, tag_id: int):
    track = _owned_track(track_id)
    tag = _owned_tag(tag_id)
    if track is None or tag is None:
        return jsonify({'error': 'not_found'}), 404
    if tag in track.tags:
        track.tags.remove(tag)
        db.session.commit()
    return jsonify({'track': track.to_dict()}), 200


__all__ = ['tag_bp']
