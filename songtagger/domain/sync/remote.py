# songtagger/domain/sync/remote.py
import html
import logging
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from songtagger.domain.sync.errors import AuthError, NotFound, RemoteError, RemoteUnavailable, Unauthorized
from songtagger.models.dto import RemotePlaylist, TrackDTO
from songtagger.settings import SPOTIFY_MAX_BATCH, AppSettings, load_app_settings

logger = logging.getLogger(__name__)

_PLAYLIST_ITEM_FIELDS = (
    "items(is_local,track(id,uri,name,duration_ms,preview_url,external_urls,"
    "artists(name),album(name,images))),next"
)


_PLAYLIST_LINK_RE = re.compile(r"(?:spotify:playlist:|open\.spotify\.com/(?:[\w-]+/)?playlist/)([A-Za-z0-9]+)")


def normalize_playlist_id(value: Optional[str]) -> Optional[str]:
    """Accept a bare playlist id, a spotify:playlist: URI or an open.spotify.com link."""
    candidate = (value or '').strip()
    if not candidate:
        return None
    match = _PLAYLIST_LINK_RE.search(candidate)
    if match:
        return match.group(1)
    return candidate if re.fullmatch(r"[A-Za-z0-9]+", candidate) else None


def track_from_spotify(track: Dict[str, Any]) -> TrackDTO:
    """Map a Spotify track object onto a TrackDTO."""
    artists = track.get('artists') or []
    album = track.get('album') or {}
    images = album.get('images') or []
    return TrackDTO(
        spotify_id=track.get('id'),
        uri=track.get('uri'),
        title=track.get('name') or 'Unknown Title',
        artist=(artists[0].get('name') if artists else None) or 'Unknown Artist',
        album=album.get('name') or 'Unknown Album',
        duration_ms=track.get('duration_ms'),
        image_url=images[0].get('url') if images else None,
        preview_url=track.get('preview_url'),
        spotify_url=(track.get('external_urls') or {}).get('spotify'),
    )


def playlist_from_spotify(payload: Dict[str, Any]) -> RemotePlaylist:
    """Map a Spotify playlist object; descriptions come back HTML-escaped."""
    images = payload.get('images') or []
    return RemotePlaylist(
        id=payload['id'],
        name=payload.get('name') or '',
        description=html.unescape(payload.get('description') or '') or None,
        owner_id=(payload.get('owner') or {}).get('id'),
        public=payload.get('public'),
        tracks_total=(payload.get('tracks') or {}).get('total'),
        url=(payload.get('external_urls') or {}).get('spotify'),
        image_url=images[0].get('url') if images else None,
    )


def _chunked(values: Sequence[str], size: int) -> Iterator[List[str]]:
    for start in range(0, len(values), size):
        yield list(values[start:start + size])


class SpotifyGateway:
    """Spotify Web API access on behalf of one signed-in user.

    Every spotipy failure is translated once, here, into the sync error
    taxonomy. Nothing is retried locally: spotipy is built with retries
    disabled so a 5xx or 429 surfaces immediately as RemoteUnavailable.
    """

    def __init__(self, client, *, page_size: int = SPOTIFY_MAX_BATCH):
        self.sp = client
        self.page_size = max(1, min(int(page_size), SPOTIFY_MAX_BATCH))

    @classmethod
    def for_token(cls, access_token: str, settings: Optional[AppSettings] = None) -> "SpotifyGateway":
        settings = settings or load_app_settings()
        client = spotipy.Spotify(
            auth=access_token,
            requests_timeout=settings.request_timeout,
            retries=0,
            status_retries=0,
        )
        return cls(client, page_size=settings.page_size)

    def _call(self, action: str, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except SpotifyException as exc:
            status = exc.http_status
            if status == 401:
                logger.warning("Spotify rejected credential during %s: %s", action, exc.msg)
                raise AuthError(f"Spotify rejected the access token while trying to {action}.") from exc
            if status == 403:
                # Followed playlists owned by someone else are read-only
                logger.warning("Spotify refused %s: %s", action, exc.msg)
                raise Unauthorized(f"Spotify does not allow you to {action}: {exc.msg}") from exc
            if status == 404:
                raise NotFound(f"Spotify could not find the resource while trying to {action}.") from exc
            if status == 429 or (status is not None and status >= 500):
                logger.warning("Spotify unavailable during %s (HTTP %s)", action, status)
                raise RemoteUnavailable(f"Spotify is unavailable (HTTP {status}) while trying to {action}.") from exc
            logger.error("Spotify API call failed during %s: %s", action, exc)
            raise RemoteError(f"Spotify refused to {action}: {exc.msg}") from exc
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
            logger.warning("Spotify request failed during %s: %s", action, exc)
            raise RemoteUnavailable(f"Could not reach Spotify while trying to {action}.") from exc

    # --- Remote Playlist Reader ---

    def get_playlist(self, playlist_id: str) -> RemotePlaylist:
        payload = self._call(
            f"fetch playlist {playlist_id}",
            lambda: self.sp.playlist(
                playlist_id,
                fields="id,name,description,public,owner(id),tracks(total),external_urls,images",
            ),
        )
        if not payload:
            raise NotFound(f"Spotify playlist {playlist_id} does not exist.")
        return playlist_from_spotify(payload)

    def read_playlist_tracks(self, playlist_id: str) -> List[TrackDTO]:
        """Return every track of the playlist in order, following pagination.

        Pages are requested until one comes back shorter than the page size.
        Empty slots and provider-local files are skipped.
        """
        tracks: List[TrackDTO] = []
        offset = 0
        while True:
            page = self._call(
                f"read tracks of playlist {playlist_id}",
                lambda: self.sp.playlist_items(
                    playlist_id,
                    fields=_PLAYLIST_ITEM_FIELDS,
                    limit=self.page_size,
                    offset=offset,
                    additional_types=("track",),
                ),
            ) or {}
            items = page.get('items') or []
            for item in items:
                track = item.get('track') if item else None
                if not track or item.get('is_local') or not track.get('uri'):
                    continue
                tracks.append(track_from_spotify(track))
            if len(items) < self.page_size:
                break
            offset += self.page_size
        logger.debug("Read %s tracks from Spotify playlist %s", len(tracks), playlist_id)
        return tracks

    # --- Remote writes ---

    def current_user_profile(self) -> Dict[str, Any]:
        return self._call("read the current user", self.sp.current_user) or {}

    def current_user_id(self) -> str:
        user_id = self.current_user_profile().get('id')
        if not user_id:
            raise RemoteError("Spotify did not return the current user id.")
        return user_id

    def create_playlist(self, name: str, description: Optional[str] = None, *, public: bool = False) -> RemotePlaylist:
        user_id = self.current_user_id()
        payload = self._call(
            f"create playlist '{name}'",
            lambda: self.sp.user_playlist_create(
                user_id,
                name,
                public=public,
                description=description or "",
            ),
        )
        return playlist_from_spotify(payload)

    def add_tracks(self, playlist_id: str, uris: Sequence[str]) -> int:
        added = 0
        for chunk in _chunked(list(uris), SPOTIFY_MAX_BATCH):
            self._call(
                f"add tracks to playlist {playlist_id}",
                lambda chunk=chunk: self.sp.playlist_add_items(playlist_id, chunk),
            )
            added += len(chunk)
        return added

    def remove_tracks(self, playlist_id: str, uris: Sequence[str]) -> int:
        removed = 0
        for chunk in _chunked(list(uris), SPOTIFY_MAX_BATCH):
            self._call(
                f"remove tracks from playlist {playlist_id}",
                lambda chunk=chunk: self.sp.playlist_remove_all_occurrences_of_items(playlist_id, chunk),
            )
            removed += len(chunk)
        return removed

    def replace_tracks(self, playlist_id: str, uris: Sequence[str]) -> None:
        uris = list(uris)
        self._call(
            f"replace tracks of playlist {playlist_id}",
            lambda: self.sp.playlist_replace_items(playlist_id, uris[:SPOTIFY_MAX_BATCH]),
        )
        if len(uris) > SPOTIFY_MAX_BATCH:
            self.add_tracks(playlist_id, uris[SPOTIFY_MAX_BATCH:])

    def update_details(self, playlist_id: str, *, name: str, description: Optional[str]) -> None:
        self._call(
            f"update details of playlist {playlist_id}",
            lambda: self.sp.playlist_change_details(
                playlist_id,
                name=name,
                description=description or "",
            ),
        )

    # --- Read helpers for the library pages ---

    def search_tracks(self, query: str, *, limit: int = 20) -> List[TrackDTO]:
        limit = max(1, min(int(limit), 50))
        payload = self._call(
            f"search tracks for '{query}'",
            lambda: self.sp.search(q=query, type='track', limit=limit),
        ) or {}
        items = (payload.get('tracks') or {}).get('items') or []
        return [track_from_spotify(item) for item in items if item]

    def current_user_playlists(self, *, limit: int = 50) -> List[RemotePlaylist]:
        playlists: List[RemotePlaylist] = []
        offset = 0
        page_size = max(1, min(int(limit), 50))
        while True:
            page = self._call(
                "list the current user's playlists",
                lambda: self.sp.current_user_playlists(limit=page_size, offset=offset),
            ) or {}
            items = [item for item in (page.get('items') or []) if item]
            playlists.extend(playlist_from_spotify(item) for item in items)
            if not page.get('next') or not items:
                break
            offset += page_size
        return playlists

    def recently_played(self, *, limit: int = 50) -> List[Dict[str, Any]]:
        limit = max(1, min(int(limit), 50))
        payload = self._call(
            "read recently played tracks",
            lambda: self.sp.current_user_recently_played(limit=limit),
        ) or {}
        recent: List[Dict[str, Any]] = []
        for item in payload.get('items') or []:
            track = (item or {}).get('track')
            if not track:
                continue
            data = track_from_spotify(track).model_dump()
            data['played_at'] = item.get('played_at')
            recent.append(data)
        return recent


__all__ = [
    "SpotifyGateway",
    "normalize_playlist_id",
    "playlist_from_spotify",
    "track_from_spotify",
]
