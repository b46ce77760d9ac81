#!/usr/bin/env python
"""
Pydantic DTOs shared by the playlist store, the Spotify gateway and the
reconciler.

Store methods hand out plain records rather than ORM rows so that the
reconciler never mutates the session outside the single commit point.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TrackDTO(BaseModel):
    """Normalized track metadata; ``id`` is set once the track is stored locally."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    spotify_id: Optional[str] = None
    uri: Optional[str] = None
    title: str
    artist: str = "Unknown Artist"
    album: Optional[str] = None
    duration_ms: Optional[int] = Field(default=None, ge=0)
    image_url: Optional[str] = None
    preview_url: Optional[str] = None
    spotify_url: Optional[str] = None


class RemotePlaylist(BaseModel):
    """Playlist metadata as reported by the provider."""

    id: str
    name: str
    description: Optional[str] = None
    owner_id: Optional[str] = None
    public: Optional[bool] = None
    tracks_total: Optional[int] = None
    url: Optional[str] = None
    image_url: Optional[str] = None


class PlaylistRecord(BaseModel):
    """Document-shaped snapshot of a local playlist and its ordered tracks."""

    id: int
    owner_id: int
    name: str
    description: Optional[str] = None
    tracks: List[TrackDTO] = Field(default_factory=list)
    spotify_id: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_linked(self) -> bool:
        return bool(self.spotify_id)

    def track_uris(self) -> List[str]:
        """Provider URIs in playlist order; tracks without a URI are left out."""
        return [track.uri for track in self.tracks if track.uri]

    def summary(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'spotify_id': self.spotify_id,
            'spotify_url': f"https://open.spotify.com/playlist/{self.spotify_id}" if self.spotify_id else None,
            'is_linked': self.is_linked,
            'track_count': len(self.tracks),
            'last_synced_at': self.last_synced_at.isoformat() if self.last_synced_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


__all__ = ["TrackDTO", "RemotePlaylist", "PlaylistRecord"]
