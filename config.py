#!/usr/bin/env python
# config.py
import os
from typing import List

# This assumes config.py is at the root of your project
basedir = os.path.abspath(os.path.dirname(__file__))


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _get_csv_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name)
    source = raw if raw is not None else default
    return [token.strip() for token in source.split(",") if token and token.strip()]


DEFAULT_SPOTIFY_SCOPES = ",".join(
    [
        "user-read-private",
        "user-read-email",
        "playlist-read-private",
        "playlist-modify-public",
        "playlist-modify-private",
        "user-library-read",
        "user-library-modify",
        "streaming",
        "user-read-playback-state",
        "user-modify-playback-state",
        "user-read-recently-played",
    ]
)


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'song-tagger-dev-secret'

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'songtagger', 'database', 'instance', 'songtagger.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Spotify OAuth application
    SPOTIPY_CLIENT_ID = os.environ.get('SPOTIPY_CLIENT_ID')
    SPOTIPY_CLIENT_SECRET = os.environ.get('SPOTIPY_CLIENT_SECRET')
    SPOTIPY_REDIRECT_URI = os.environ.get('SPOTIPY_REDIRECT_URI') or \
        'http://127.0.0.1:5000/api/auth/callback/spotify'
    SPOTIFY_SCOPES = _get_csv_list('SPOTIFY_SCOPES', DEFAULT_SPOTIFY_SCOPES)

    # Spotify Web API behaviour
    # The provider caps playlist item pages at 100 entries
    SPOTIFY_PAGE_SIZE = _get_int('SPOTIFY_PAGE_SIZE', 100)
    SPOTIFY_REQUEST_TIMEOUT = _get_float('SPOTIFY_REQUEST_TIMEOUT', 10.0)
    DEFAULT_PLAYLIST_DESCRIPTION = os.getenv('DEFAULT_PLAYLIST_DESCRIPTION', 'Created with Song Tagger')

    # Session state persistence (navigation/player)
    APP_STATE_MAX_AGE_SECONDS = _get_int('APP_STATE_MAX_AGE_SECONDS', 24 * 60 * 60)

    # Flask-Login session protection mode (strong, basic or empty to disable)
    SESSION_PROTECTION = os.getenv('SESSION_PROTECTION', 'strong') or None

    # Where the browser lands after a successful provider login
    POST_LOGIN_REDIRECT = os.getenv('POST_LOGIN_REDIRECT', '/dashboard')

    # HTTP surface
    CORS_ALLOWED_ORIGINS = _get_csv_list('CORS_ALLOWED_ORIGINS', 'http://localhost:3000')
    OAUTH_REDIRECT_ALLOWLIST = _get_csv_list('OAUTH_REDIRECT_ALLOWLIST', '')
    CONTENT_SECURITY_POLICY = os.getenv('CONTENT_SECURITY_POLICY', '')

    # Observability
    OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT')
    OTEL_EXPORTER_OTLP_HEADERS = os.getenv('OTEL_EXPORTER_OTLP_HEADERS')
    OTEL_EXPORTER_OTLP_INSECURE = _get_bool('OTEL_EXPORTER_OTLP_INSECURE', True)
    OTEL_SERVICE_NAME = os.getenv('OTEL_SERVICE_NAME', 'song-tagger')

    # Runtime behavior
    # Turn Flask debug on/off from env; default off to avoid noisy console
    DEBUG = _get_bool('DEBUG', False)
    # Control console logging; when disabled, logs go only to file
    ENABLE_CONSOLE_LOGS = _get_bool('ENABLE_CONSOLE_LOGS', False)
    # JSON lines on stdout (request id, path, user) for log shippers
    STRUCTURED_LOGS = _get_bool('STRUCTURED_LOGS', True)
