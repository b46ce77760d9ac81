"""Owner-scoped access to the local playlist library."""

from .store import PlaylistStore, SqlPlaylistStore

__all__ = ["PlaylistStore", "SqlPlaylistStore"]
