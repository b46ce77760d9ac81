"""In-process fakes for the Spotify Web API client and the playlist store."""

from __future__ import annotations

import itertools
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from spotipy.exceptions import SpotifyException

from songtagger.domain.library.store import PlaylistStore, _check_fields
from songtagger.domain.sync.errors import AlreadyImported, NotFound, Unauthorized
from songtagger.models.dto import PlaylistRecord, TrackDTO


def spotify_track(n, *, uri: Optional[str] = "default") -> dict:
    """Spotify track object as returned inside playlist items."""
    track_id = f"t{n}"
    return {
        "id": track_id,
        "uri": f"spotify:track:{track_id}" if uri == "default" else uri,
        "name": f"Song {n}",
        "duration_ms": 180000,
        "preview_url": None,
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
        "artists": [{"name": f"Artist {n}"}],
        "album": {"name": f"Album {n}", "images": [{"url": f"http://img/{track_id}.jpg"}]},
    }


def track_dto(n, *, with_uri: bool = True) -> TrackDTO:
    track_id = f"t{n}"
    return TrackDTO(
        spotify_id=track_id if with_uri else None,
        uri=f"spotify:track:{track_id}" if with_uri else None,
        title=f"Song {n}",
        artist=f"Artist {n}",
    )


def uri(n) -> str:
    return f"spotify:track:t{n}"


class FakeSpotifyClient:
    """Implements the subset of ``spotipy.Spotify`` the gateway calls.

    ``fail_on[method]`` raises the given exception the next time ``method``
    is called; ``calls`` records (method, args) for every call.
    """

    def __init__(self, user_id: str = "spotify-user"):
        self.user_id = user_id
        self.playlists: Dict[str, dict] = {}
        self.catalog: Dict[str, dict] = {}
        self.fail_on: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.recent: List[dict] = []
        self._ids = itertools.count(1)

    # --- test helpers ---

    def add_playlist(self, playlist_id: str, name: str, tracks: Iterable[dict] = (), description: str = "") -> dict:
        items = []
        for track in tracks:
            if track.get("uri"):
                self.catalog[track["uri"]] = track
            items.append(track)
        self.playlists[playlist_id] = {
            "id": playlist_id,
            "name": name,
            "description": description,
            "public": False,
            "owner": {"id": self.user_id},
            "items": items,
        }
        return self.playlists[playlist_id]

    def remote_uris(self, playlist_id: str) -> List[str]:
        return [track.get("uri") for track in self.playlists[playlist_id]["items"]]

    def write_calls(self) -> List[str]:
        writes = {
            "user_playlist_create",
            "playlist_add_items",
            "playlist_remove_all_occurrences_of_items",
            "playlist_replace_items",
            "playlist_change_details",
        }
        return [name for name, _ in self.calls if name in writes]

    def _enter(self, name: str, *args):
        self.calls.append((name, args))
        error = self.fail_on.pop(name, None)
        if error is not None:
            raise error

    def _get(self, playlist_id: str) -> dict:
        playlist = self.playlists.get(playlist_id)
        if playlist is None:
            raise SpotifyException(404, -1, f"playlist {playlist_id} not found")
        return playlist

    def _track_for(self, track_uri: str) -> dict:
        if track_uri in self.catalog:
            return self.catalog[track_uri]
        track_id = track_uri.rsplit(":", 1)[-1]
        return {"id": track_id, "uri": track_uri, "name": track_id, "artists": [], "album": {}}

    # --- spotipy surface ---

    def playlist(self, playlist_id, fields=None, market=None, additional_types=("track",)):
        self._enter("playlist", playlist_id)
        playlist = self._get(playlist_id)
        return {
            "id": playlist["id"],
            "name": playlist["name"],
            "description": playlist["description"],
            "public": playlist["public"],
            "owner": playlist["owner"],
            "tracks": {"total": len(playlist["items"])},
            "external_urls": {"spotify": f"https://open.spotify.com/playlist/{playlist_id}"},
            "images": [],
        }

    def playlist_items(self, playlist_id, fields=None, limit=100, offset=0, market=None, additional_types=("track", "episode")):
        self._enter("playlist_items", playlist_id, limit, offset)
        playlist = self._get(playlist_id)
        page = playlist["items"][offset:offset + limit]
        items = [{"is_local": False, "track": track} for track in page]
        has_more = offset + limit < len(playlist["items"])
        return {"items": items, "next": "next-page" if has_more else None}

    def current_user(self):
        self._enter("current_user")
        return {
            "id": self.user_id,
            "display_name": "Test Listener",
            "email": "listener@example.com",
            "images": [{"url": "http://img/me.jpg"}],
        }

    def user_playlist_create(self, user, name, public=True, collaborative=False, description=""):
        self._enter("user_playlist_create", user, name)
        playlist_id = f"remote{next(self._ids)}"
        self.add_playlist(playlist_id, name, description=description)
        return self.playlist(playlist_id)

    def playlist_add_items(self, playlist_id, items, position=None):
        self._enter("playlist_add_items", playlist_id, list(items))
        playlist = self._get(playlist_id)
        if len(items) > 100:
            raise SpotifyException(400, -1, "too many items")
        playlist["items"].extend(self._track_for(item) for item in items)
        return {"snapshot_id": "snap"}

    def playlist_remove_all_occurrences_of_items(self, playlist_id, items, snapshot_id=None):
        self._enter("playlist_remove_all_occurrences_of_items", playlist_id, list(items))
        playlist = self._get(playlist_id)
        if len(items) > 100:
            raise SpotifyException(400, -1, "too many items")
        doomed = set(items)
        playlist["items"] = [track for track in playlist["items"] if track.get("uri") not in doomed]
        return {"snapshot_id": "snap"}

    def playlist_replace_items(self, playlist_id, items):
        self._enter("playlist_replace_items", playlist_id, list(items))
        playlist = self._get(playlist_id)
        playlist["items"] = [self._track_for(item) for item in items]
        return {"snapshot_id": "snap"}

    def playlist_change_details(self, playlist_id, name=None, public=None, collaborative=None, description=None):
        self._enter("playlist_change_details", playlist_id, name, description)
        playlist = self._get(playlist_id)
        if name is not None:
            playlist["name"] = name
        if description is not None:
            playlist["description"] = description

    def search(self, q, limit=10, offset=0, type="track", market=None):
        self._enter("search", q, limit)
        matches = [track for track in self.catalog.values() if q.lower() in track["name"].lower()]
        return {"tracks": {"items": matches[:limit]}}

    def current_user_playlists(self, limit=50, offset=0):
        self._enter("current_user_playlists", limit, offset)
        ordered = list(self.playlists)
        page = ordered[offset:offset + limit]
        return {
            "items": [self.playlist(playlist_id) for playlist_id in page],
            "next": "next-page" if offset + limit < len(ordered) else None,
        }

    def current_user_recently_played(self, limit=50, after=None, before=None):
        self._enter("current_user_recently_played", limit)
        return {"items": self.recent[:limit]}


class InMemoryPlaylistStore(PlaylistStore):
    """PlaylistStore keeping records in a dict; ``commits`` counts writes."""

    def __init__(self):
        self.records: Dict[int, PlaylistRecord] = {}
        self.commits = 0
        self._ids = itertools.count(1)

    def _owned(self, owner_id: int, playlist_id: int) -> PlaylistRecord:
        record = self.records.get(playlist_id)
        if record is None:
            raise NotFound(f"Playlist {playlist_id} does not exist.")
        if record.owner_id != owner_id:
            raise Unauthorized(f"Playlist {playlist_id} belongs to another user.")
        return record

    def get(self, owner_id, playlist_id):
        return self._owned(owner_id, playlist_id).model_copy(deep=True)

    def create(self, owner_id, *, name, description=None, tracks=(), spotify_id=None, last_synced_at=None):
        _check_fields({'name': name})
        if spotify_id:
            existing = self.find_by_remote_id(owner_id, spotify_id)
            if existing is not None:
                raise AlreadyImported("already imported", playlist_id=existing.id)
        now = datetime.utcnow()
        record = PlaylistRecord(
            id=next(self._ids),
            owner_id=owner_id,
            name=name,
            description=description,
            tracks=list(tracks),
            spotify_id=spotify_id,
            last_synced_at=last_synced_at,
            created_at=now,
            updated_at=now,
        )
        self.records[record.id] = record
        self.commits += 1
        return record.model_copy(deep=True)

    def update_fields(self, owner_id, playlist_id, **fields):
        _check_fields(fields)
        record = self._owned(owner_id, playlist_id)
        updated = record.model_copy(update={**fields, 'updated_at': datetime.utcnow()})
        self.records[playlist_id] = updated
        self.commits += 1
        return updated.model_copy(deep=True)

    def delete(self, owner_id, playlist_id):
        self._owned(owner_id, playlist_id)
        del self.records[playlist_id]
        self.commits += 1

    def find_by_remote_id(self, owner_id, spotify_id):
        for record in self.records.values():
            if record.owner_id == owner_id and record.spotify_id == spotify_id:
                return record.model_copy(deep=True)
        return None

    def list_for_owner(self, owner_id):
        return [record for record in self.records.values() if record.owner_id == owner_id]


__all__ = [
    "FakeSpotifyClient",
    "InMemoryPlaylistStore",
    "spotify_track",
    "track_dto",
    "uri",
]
