import os
import sys

import pytest

# Ensure project root is on sys.path so 'app', 'config', and 'songtagger' import correctly
_TESTS_DIR = os.path.dirname(__file__)
_ROOT_DIR = os.path.abspath(os.path.join(_TESTS_DIR, os.pardir))
if _ROOT_DIR not in sys.path:
    sys.path.insert(0, _ROOT_DIR)

from flask_login import FlaskLoginClient

from songtagger.domain.sync.remote import SpotifyGateway
from tests.support import factories as test_factories
from tests.support.fakes import FakeSpotifyClient, InMemoryPlaylistStore


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep tests independent from a developer's .env."""
    monkeypatch.setenv("SPOTIPY_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("SPOTIPY_CLIENT_SECRET", "test-client-secret")
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    yield


@pytest.fixture
def fake_spotify():
    return FakeSpotifyClient()


@pytest.fixture
def memory_store():
    return InMemoryPlaylistStore()


@pytest.fixture
def gateway(fake_spotify):
    return SpotifyGateway(fake_spotify, page_size=100)


@pytest.fixture
def app_factory(tmp_path, fake_spotify):
    import app as app_module

    def _build(**overrides):
        config = {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{(tmp_path / 'test.sqlite').as_posix()}",
            "SPOTIPY_CLIENT_ID": "test-client-id",
            "SPOTIPY_CLIENT_SECRET": "test-client-secret",
            "SESSION_PROTECTION": "basic",
            "STRUCTURED_LOGS": False,
            "DEFAULT_PLAYLIST_DESCRIPTION": "Created with Song Tagger",
        }
        config.update(overrides)
        application = app_module.create_app(config)
        application.test_client_class = FlaskLoginClient
        # Every request talks to the in-process fake instead of api.spotify.com
        application.extensions["spotify_gateway_factory"] = lambda token: SpotifyGateway(fake_spotify)
        return application

    return _build


@pytest.fixture
def app(app_factory):
    yield app_factory()


@pytest.fixture
def app_context(app):
    with app.app_context():
        yield app


@pytest.fixture
def db_session(app_context):
    from songtagger.database.db_manager import db

    test_factories.set_session(db.session)
    try:
        yield db.session
    finally:
        db.session.rollback()
        db.session.remove()
        test_factories.reset_session()


@pytest.fixture
def factories(db_session):
    yield test_factories


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user(db_session, factories):
    listener = factories.UserFactory(spotify_id="spotify-user")
    db_session.commit()
    return listener


@pytest.fixture
def auth_client(app, user):
    return app.test_client(user=user)
