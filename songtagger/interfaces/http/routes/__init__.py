"""Route blueprints exposed via Flask."""

from .auth import auth_bp
from .bookmarks import bookmark_bp
from .health import health_bp
from .library import library_bp
from .playlist import playlist_bp
from .spotify import spotify_bp
from .state import state_bp
from .tags import tag_bp

__all__ = [
    "auth_bp",
    "bookmark_bp",
    "health_bp",
    "library_bp",
    "playlist_bp",
    "spotify_bp",
    "state_bp",
    "tag_bp",
]
