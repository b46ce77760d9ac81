import os
import logging
from datetime import datetime
from urllib.parse import urlparse
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Flask specific imports ---
from flask import Flask, request, jsonify, g
from flask_cors import CORS

from config import Config
from songtagger.auth import init_auth
from songtagger.auth.spotify import build_oauth
from songtagger.database.db_manager import initialize_database
from songtagger.domain.sync.remote import SpotifyGateway
from songtagger.interfaces.http.routes import (
    bookmark_bp,
    health_bp,
    library_bp,
    playlist_bp,
    spotify_bp,
    state_bp,
    tag_bp,
)
from songtagger.observability import configure_structured_logging, metrics_blueprint, init_tracing
from songtagger.settings import load_app_settings


logger = logging.getLogger(__name__)


def configure_logging(log_dir: str) -> str:
    """
    Configure root logging with:
      - FileHandler (INFO+) to a new file per run: log-YYYY-MM-DD-HH-MM-SS
      - StreamHandler (WARNING+) to console when ENABLE_CONSOLE_LOGS is set
      - Werkzeug/Flask loggers routed to root

    Returns the path to the created log file.
    """
    os.makedirs(log_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
    log_path = os.path.join(log_dir, f"log-{timestamp}")

    root = logging.getLogger()
    root.setLevel(logging.INFO)

    # Preserve structured handlers; remove existing FileHandlers to avoid duplicates
    root.handlers = [h for h in root.handlers if not isinstance(h, logging.FileHandler)]

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.FileHandler(log_path, encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if Config.ENABLE_CONSOLE_LOGS:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    for name in ("werkzeug", "flask.app"):
        _l = logging.getLogger(name)
        _l.setLevel(logging.INFO)
        _l.handlers = []
        _l.propagate = True

    return log_path


def _settings_from_config(config) -> dict:
    return {
        'spotify_client_id': config.get('SPOTIPY_CLIENT_ID'),
        'spotify_client_secret': config.get('SPOTIPY_CLIENT_SECRET'),
        'spotify_redirect_uri': config.get('SPOTIPY_REDIRECT_URI'),
        'scopes': config.get('SPOTIFY_SCOPES'),
        'page_size': config.get('SPOTIFY_PAGE_SIZE'),
        'request_timeout': config.get('SPOTIFY_REQUEST_TIMEOUT'),
        'default_description': config.get('DEFAULT_PLAYLIST_DESCRIPTION'),
        'app_state_max_age_seconds': config.get('APP_STATE_MAX_AGE_SECONDS'),
    }


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config['OAUTH_REDIRECT_ALLOWLIST'] = tuple(Config.OAUTH_REDIRECT_ALLOWLIST)
    if config_overrides:
        app.config.update(config_overrides)

    configure_structured_logging(app)
    init_tracing(app)

    @app.before_request
    def _assign_request_id():
        g.request_id = request.headers.get('X-Request-ID') or uuid4().hex

    @app.after_request
    def _inject_request_id(response):
        if getattr(g, 'request_id', None):
            response.headers.setdefault('X-Request-ID', g.request_id)
        return response

    allowed_origins = sorted({
        origin.strip()
        for origin in app.config['CORS_ALLOWED_ORIGINS']
        if origin and origin.strip() and origin.strip() != "*"
    })
    CORS(
        app,
        resources={r"/api/*": {"origins": allowed_origins}},
        supports_credentials=True,
    )

    redirect_allowlist = {origin.rstrip('/') for origin in app.config['OAUTH_REDIRECT_ALLOWLIST'] if origin}

    def _is_redirect_allowed(target: str) -> bool:
        if not target:
            return False
        try:
            parsed = urlparse(target)
        except ValueError:
            return False
        if not parsed.scheme or not parsed.netloc:
            return False
        normalized = f"{parsed.scheme}://{parsed.netloc}".rstrip('/')
        return normalized in redirect_allowlist

    if redirect_allowlist:

        @app.before_request
        def _enforce_redirect_allowlist():
            endpoint = request.endpoint or ""
            if not endpoint.startswith("auth."):
                return None
            candidate = request.args.get("redirect") or request.args.get("redirect_uri")
            if not candidate:
                return None
            if _is_redirect_allowed(candidate):
                return None
            app.logger.warning(
                "Blocked disallowed OAuth redirect",
                extra={
                    "policy": "redirect_allowlist",
                    "redirect": candidate,
                },
            )
            return jsonify(
                {
                    "error": "policy_violation",
                    "policy": "redirect_allowlist",
                    "message": "Redirect URI is not permitted for this deployment.",
                }
            ), 400

    csp_policy = app.config.get('CONTENT_SECURITY_POLICY')
    if csp_policy:

        @app.after_request
        def _apply_csp(response):
            response.headers.setdefault('Content-Security-Policy', csp_policy)
            return response

    # Initialize database and sign-in
    initialize_database(app)
    init_auth(app)

    # Spotify access is built per request from the signed-in user's token
    settings = load_app_settings(_settings_from_config(app.config))
    app.extensions['app_settings'] = settings
    app.extensions['spotify_oauth_factory'] = lambda state=None: build_oauth(settings, state=state)
    app.extensions['spotify_gateway_factory'] = lambda token: SpotifyGateway.for_token(token, settings)
    if not settings.has_spotify_credentials:
        app.logger.warning("Spotify client credentials are not configured; sign-in is disabled.")

    # --- Register Blueprints ---
    app.register_blueprint(playlist_bp)
    app.register_blueprint(library_bp)
    app.register_blueprint(tag_bp)
    app.register_blueprint(bookmark_bp)
    app.register_blueprint(spotify_bp)
    app.register_blueprint(state_bp)
    app.register_blueprint(metrics_blueprint)
    app.register_blueprint(health_bp)

    return app


if __name__ == '__main__':
    # Configure logging:
    # - In debug with reloader: only in the child process to avoid duplicate files
    # - In non-debug: always configure here
    debug_mode = bool(Config.DEBUG)
    log_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'songtagger', 'log')
    if not debug_mode or os.environ.get('WERKZEUG_RUN_MAIN') == 'true':
        log_file_path = configure_logging(log_dir)
        logger.info("File logging initialized at %s", log_file_path)

    if not Config.SPOTIPY_CLIENT_ID or not Config.SPOTIPY_CLIENT_SECRET:
        logger.warning("Spotify API client ID or client secret not found in environment variables.")
        logger.warning("Please set SPOTIPY_CLIENT_ID and SPOTIPY_CLIENT_SECRET to enable sign-in.")

    app = create_app()
    # Route app.logger through root handlers, keep levels consistent
    app.logger.handlers = []
    app.logger.setLevel(logging.INFO)
    app.logger.propagate = True
    logger.info("Starting Flask application...")
    app.run(debug=Config.DEBUG, host='0.0.0.0', port=5000, threaded=True)
