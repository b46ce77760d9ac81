"""Persisted navigation and player state of the signed-in user."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from pydantic import ValidationError

from songtagger.interfaces.http.dependencies import current_settings
from songtagger.support.app_state import clear_state, load_state, save_state


state_bp = Blueprint('state_bp', __name__, url_prefix='/api/state')


def _user():
    return current_user._get_current_object()


@state_bp.route('', methods=['GET'])
@login_required
def get_state():
    state = load_state(_user(), max_age_seconds=current_settings().app_state_max_age_seconds)
    return jsonify({'state': state.model_dump(mode='json')}), 200


@state_bp.route('', methods=['PUT'])
@login_required
def put_state():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({'error': 'invalid_payload'}), 400
    try:
        state = save_state(
            _user(),
            payload,
            max_age_seconds=current_settings().app_state_max_age_seconds,
        )
    except ValidationError as exc:
        details = [
            {'field': '.'.join(str(part) for part in error['loc']), 'message': error['msg']}
            for error in exc.errors()
        ]
        return jsonify({'error': 'invalid_state', 'details': details}), 400
    return jsonify({'state': state.model_dump(mode='json')}), 200


@state_bp.route('', methods=['DELETE'])
@login_required
def delete_state():
    clear_state(_user())
    return jsonify({'status': 'cleared'}), 200


__all__ = ['state_bp']
