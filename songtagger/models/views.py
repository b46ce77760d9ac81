"""Display variants for the merged playlist list.

Local and remote-linked playlists share one list in the UI. Each variant is
tagged with ``kind`` and exposes the same projection used for sorting.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from songtagger.models.dto import PlaylistRecord


class _PlaylistViewBase(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    track_count: int = 0
    updated_at: Optional[datetime] = None

    @property
    def last_activity(self) -> Optional[datetime]:
        return self.updated_at

    def projection(self) -> dict:
        activity = self.last_activity
        return {
            'name': self.name,
            'track_count': self.track_count,
            'last_activity': activity.isoformat() if activity else None,
        }


class LocalPlaylistView(_PlaylistViewBase):
    kind: Literal["local"] = "local"


class RemoteLinkedPlaylistView(_PlaylistViewBase):
    kind: Literal["remote_linked"] = "remote_linked"
    spotify_id: str
    spotify_url: str
    last_synced_at: Optional[datetime] = None

    @property
    def last_activity(self) -> Optional[datetime]:
        candidates = [value for value in (self.updated_at, self.last_synced_at) if value]
        return max(candidates) if candidates else None


PlaylistView = Annotated[
    Union[LocalPlaylistView, RemoteLinkedPlaylistView],
    Field(discriminator="kind"),
]

_VIEW_ADAPTER: TypeAdapter = TypeAdapter(PlaylistView)


def build_playlist_view(record: PlaylistRecord) -> Union[LocalPlaylistView, RemoteLinkedPlaylistView]:
    common = {
        'id': record.id,
        'name': record.name,
        'description': record.description,
        'track_count': len(record.tracks),
        'updated_at': record.updated_at,
    }
    if record.is_linked:
        return RemoteLinkedPlaylistView(
            spotify_id=record.spotify_id,
            spotify_url=f"https://open.spotify.com/playlist/{record.spotify_id}",
            last_synced_at=record.last_synced_at,
            **common,
        )
    return LocalPlaylistView(**common)


def parse_playlist_view(payload: dict) -> Union[LocalPlaylistView, RemoteLinkedPlaylistView]:
    return _VIEW_ADAPTER.validate_python(payload)


def sort_for_display(views: Iterable[_PlaylistViewBase]) -> List[_PlaylistViewBase]:
    """Newest activity first; playlists without any activity go last."""
    return sorted(
        views,
        key=lambda view: (view.last_activity is not None, view.last_activity or datetime.min),
        reverse=True,
    )


def serialize_view(view: _PlaylistViewBase) -> dict:
    data = view.model_dump(mode="json")
    data.update(view.projection())
    return data


__all__ = [
    "LocalPlaylistView",
    "RemoteLinkedPlaylistView",
    "PlaylistView",
    "build_playlist_view",
    "parse_playlist_view",
    "sort_for_display",
    "serialize_view",
]
