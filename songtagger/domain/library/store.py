from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from songtagger.database.db_manager import db, Playlist, PlaylistTrack, Track
from songtagger.domain.sync.errors import AlreadyImported, NotFound, Unauthorized
from songtagger.models.dto import PlaylistRecord, TrackDTO


logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"name", "description", "spotify_id", "last_synced_at"})


class PlaylistStore:
    """Owner-scoped document access to local playlists."""

    def get(self, owner_id: int, playlist_id: int) -> PlaylistRecord:  # pragma: no cover - interface
        raise NotImplementedError

    def create(
        self,
        owner_id: int,
        *,
        name: str,
        description: Optional[str] = None,
        tracks: Iterable[TrackDTO] = (),
        spotify_id: Optional[str] = None,
        last_synced_at=None,
    ) -> PlaylistRecord:  # pragma: no cover - interface
        raise NotImplementedError

    def update_fields(self, owner_id: int, playlist_id: int, **fields: Any) -> PlaylistRecord:  # pragma: no cover - interface
        raise NotImplementedError

    def delete(self, owner_id: int, playlist_id: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def find_by_remote_id(self, owner_id: int, spotify_id: str) -> Optional[PlaylistRecord]:  # pragma: no cover - interface
        raise NotImplementedError

    def list_for_owner(self, owner_id: int) -> List[PlaylistRecord]:  # pragma: no cover - interface
        raise NotImplementedError


def _check_fields(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported playlist fields: {', '.join(sorted(unknown))}")
    if 'name' in fields and not (fields['name'] or '').strip():
        raise ValueError('Playlist name is required')


def to_record(playlist: Playlist) -> PlaylistRecord:
    return PlaylistRecord(
        id=playlist.id,
        owner_id=playlist.user_id,
        name=playlist.name,
        description=playlist.description,
        tracks=[TrackDTO.model_validate(entry.track) for entry in playlist.entries if entry.track],
        spotify_id=playlist.spotify_id,
        last_synced_at=playlist.last_synced_at,
        created_at=playlist.created_at,
        updated_at=playlist.updated_at,
    )


def ensure_track(owner_id: int, payload: TrackDTO) -> Track:
    """Return the owner's Track for this provider id, creating it when unknown.

    Known tracks are reused as-is; only hand-entered tracks (no provider id)
    always produce a new row. The caller commits.
    """
    track = None
    if payload.id is not None:
        track = Track.query.filter_by(id=payload.id, user_id=owner_id).first()
    if track is None and payload.spotify_id:
        track = Track.query.filter_by(user_id=owner_id, spotify_id=payload.spotify_id).first()
    if track is not None:
        return track

    track = Track(
        user_id=owner_id,
        spotify_id=payload.spotify_id,
        uri=payload.uri,
        title=payload.title,
        artist=payload.artist,
        album=payload.album,
        duration_ms=payload.duration_ms,
        image_url=payload.image_url,
        preview_url=payload.preview_url,
        spotify_url=payload.spotify_url,
    )
    db.session.add(track)
    db.session.flush()
    return track


def append_track_rows(playlist: Playlist, tracks: Iterable[Track]) -> int:
    """Append stored tracks after the current last entry, skipping ones already present."""
    existing_track_ids = {entry.track_id for entry in playlist.entries if entry.track_id is not None}
    existing_track_ids.update(entry.track.id for entry in playlist.entries if entry.track is not None)
    next_position = max((entry.position for entry in playlist.entries), default=-1) + 1
    appended = 0
    for track in tracks:
        if track.id in existing_track_ids:
            continue
        db.session.add(
            PlaylistTrack(
                playlist=playlist,
                track=track,
                position=next_position + appended,
            )
        )
        existing_track_ids.add(track.id)
        appended += 1
    return appended


def append_tracks(playlist: Playlist, tracks: Iterable[TrackDTO]) -> int:
    return append_track_rows(playlist, (ensure_track(playlist.user_id, payload) for payload in tracks))


class SqlPlaylistStore(PlaylistStore):
    """PlaylistStore backed by the Flask-SQLAlchemy session; one commit per call."""

    def _load(self, playlist_id: int) -> Optional[Playlist]:
        return (
            Playlist.query.options(
                selectinload(Playlist.entries).selectinload(PlaylistTrack.track)
            )
            .filter_by(id=playlist_id)
            .first()
        )

    def _owned(self, owner_id: int, playlist_id: int) -> Playlist:
        playlist = self._load(playlist_id)
        if playlist is None:
            raise NotFound(f"Playlist {playlist_id} does not exist.")
        if playlist.user_id != owner_id:
            logger.warning("User %s attempted to access playlist %s owned by %s", owner_id, playlist_id, playlist.user_id)
            raise Unauthorized(f"Playlist {playlist_id} belongs to another user.")
        return playlist

    def get(self, owner_id: int, playlist_id: int) -> PlaylistRecord:
        return to_record(self._owned(owner_id, playlist_id))

    def create(
        self,
        owner_id: int,
        *,
        name: str,
        description: Optional[str] = None,
        tracks: Iterable[TrackDTO] = (),
        spotify_id: Optional[str] = None,
        last_synced_at=None,
    ) -> PlaylistRecord:
        _check_fields({'name': name})
        playlist = Playlist(
            user_id=owner_id,
            name=name.strip(),
            description=(description or '').strip() or None,
            spotify_id=spotify_id,
            last_synced_at=last_synced_at,
        )
        db.session.add(playlist)
        try:
            append_tracks(playlist, tracks)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if spotify_id:
                existing = self.find_by_remote_id(owner_id, spotify_id)
                if existing is not None:
                    raise AlreadyImported(
                        f"Spotify playlist {spotify_id} is already imported.",
                        playlist_id=existing.id,
                    ) from exc
            raise
        except SQLAlchemyError:
            db.session.rollback()
            raise
        logger.info("Created playlist %s for user %s (linked=%s)", playlist.id, owner_id, bool(spotify_id))
        return to_record(playlist)

    def update_fields(self, owner_id: int, playlist_id: int, **fields: Any) -> PlaylistRecord:
        _check_fields(fields)
        playlist = self._owned(owner_id, playlist_id)
        for key, value in fields.items():
            if key == 'name':
                value = value.strip()
            elif key == 'description':
                value = (value or '').strip() or None
            setattr(playlist, key, value)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return to_record(playlist)

    def delete(self, owner_id: int, playlist_id: int) -> None:
        playlist = self._owned(owner_id, playlist_id)
        db.session.delete(playlist)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        logger.info("Deleted playlist %s for user %s", playlist_id, owner_id)

    def find_by_remote_id(self, owner_id: int, spotify_id: str) -> Optional[PlaylistRecord]:
        playlist = Playlist.query.filter_by(user_id=owner_id, spotify_id=spotify_id).first()
        return to_record(playlist) if playlist else None

    def list_for_owner(self, owner_id: int) -> List[PlaylistRecord]:
        playlists = (
            Playlist.query.filter_by(user_id=owner_id)
            .order_by(Playlist.updated_at.desc())
            .all()
        )
        return [to_record(playlist) for playlist in playlists]


__all__ = [
    "PlaylistStore",
    "SqlPlaylistStore",
    "UPDATABLE_FIELDS",
    "append_track_rows",
    "append_tracks",
    "ensure_track",
    "to_record",
]
