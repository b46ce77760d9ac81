#!/usr/bin/env python
"""Per-user navigation and player state, persisted in ``User.preferences``.

The dashboard saves this blob whenever the view, queue or player changes and
loads it again on the next visit. A state older than the configured max age
is discarded, keeping only the listener preferences (volume, autoplay).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from sqlalchemy.exc import SQLAlchemyError

from songtagger.database.db_manager import User, db

logger = logging.getLogger(__name__)

STATE_KEY = "app_state"
PREFERENCE_FIELDS = ("volume", "autoplay")


class ActiveView(str, Enum):
    SEARCH = "search"
    LIBRARY = "library"
    TAGS = "tags"
    PLAYLISTS = "playlists"
    RECENT = "recent"


def new_session_id() -> str:
    return f"session-{uuid4().hex}"


class AppState(BaseModel):
    # Navigation
    active_view: ActiveView = ActiveView.SEARCH
    search_query: str = ""

    # Player
    current_track_id: Optional[str] = None
    queue: List[str] = Field(default_factory=list)
    current_index: int = Field(default=0, ge=0)
    is_player_visible: bool = False
    playback_position: float = Field(default=0.0, ge=0)

    selected_playlist_id: Optional[int] = None

    # Listener preferences; these survive expiry
    volume: float = Field(default=0.8, ge=0, le=1)
    autoplay: bool = True

    last_updated: datetime = Field(default_factory=datetime.utcnow)
    session_id: str = Field(default_factory=new_session_id)

    @model_validator(mode="after")
    def _check_queue_index(self) -> "AppState":
        if self.queue and self.current_index >= len(self.queue):
            raise ValueError("current_index must point inside the queue")
        return self


class AppStateUpdate(BaseModel):
    """Partial update accepted from the client; identity and timestamps stay server-side."""

    model_config = ConfigDict(extra="forbid")

    active_view: Optional[ActiveView] = None
    search_query: Optional[str] = None
    current_track_id: Optional[str] = None
    queue: Optional[List[str]] = None
    current_index: Optional[int] = Field(default=None, ge=0)
    is_player_visible: Optional[bool] = None
    playback_position: Optional[float] = Field(default=None, ge=0)
    selected_playlist_id: Optional[int] = None
    volume: Optional[float] = Field(default=None, ge=0, le=1)
    autoplay: Optional[bool] = None


def _stored_state(user: User) -> Optional[AppState]:
    raw = (user.preferences or {}).get(STATE_KEY)
    if not isinstance(raw, dict):
        return None
    try:
        return AppState.model_validate(raw)
    except ValidationError:
        logger.warning("Discarding unreadable app state for user %s", user.id)
        return None


def _persist(user: User, state: Optional[AppState]) -> None:
    prefs: Dict[str, Any] = dict(user.preferences or {})
    if state is None:
        prefs.pop(STATE_KEY, None)
    else:
        prefs[STATE_KEY] = state.model_dump(mode="json")
    user.preferences = prefs
    try:
        db.session.add(user)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def _is_fresh(state: AppState, now: datetime, max_age_seconds: int) -> bool:
    return now - state.last_updated < timedelta(seconds=max_age_seconds)


def load_state(user: User, *, max_age_seconds: int, now: Optional[datetime] = None) -> AppState:
    """Return the state to resume with and persist it under a new session id."""
    now = now or datetime.utcnow()
    stored = _stored_state(user)
    if stored is None:
        state = AppState(last_updated=now)
    elif _is_fresh(stored, now, max_age_seconds):
        state = stored.model_copy(update={"session_id": new_session_id(), "last_updated": now})
    else:
        logger.info("App state for user %s expired; keeping preferences only", user.id)
        kept = {name: getattr(stored, name) for name in PREFERENCE_FIELDS}
        state = AppState(last_updated=now, **kept)
    _persist(user, state)
    return state


def save_state(
    user: User,
    updates: Dict[str, Any],
    *,
    max_age_seconds: int,
    now: Optional[datetime] = None,
) -> AppState:
    """Validate a partial update, merge it onto the stored state and persist it.

    Raises ``pydantic.ValidationError`` for unknown fields or out-of-range values.
    """
    now = now or datetime.utcnow()
    changes = AppStateUpdate.model_validate(updates).model_dump(exclude_unset=True)

    base = _stored_state(user)
    if base is None:
        base = AppState(last_updated=now)
    elif not _is_fresh(base, now, max_age_seconds):
        base = AppState(last_updated=now, **{name: getattr(base, name) for name in PREFERENCE_FIELDS})

    if 'current_track_id' in changes and changes['current_track_id'] != base.current_track_id:
        changes.setdefault('playback_position', 0.0)

    merged = base.model_dump()
    merged.update(changes)
    merged['last_updated'] = now
    state = AppState.model_validate(merged)
    _persist(user, state)
    return state


def clear_state(user: User) -> None:
    _persist(user, None)


__all__ = [
    "ActiveView",
    "AppState",
    "AppStateUpdate",
    "clear_state",
    "load_state",
    "new_session_id",
    "save_state",
]
