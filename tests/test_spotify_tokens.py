import pytest
import requests
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from songtagger.auth.spotify import (
    TOKEN_REFRESH_MARGIN_SECONDS,
    build_oauth,
    get_access_token,
    store_token_info,
    token_is_expired,
)
from songtagger.domain.sync.errors import AuthError, RemoteUnavailable
from songtagger.settings import load_app_settings

NOW = 1_700_000_000


class _OAuthStub:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.refreshed_with = []

    def refresh_access_token(self, refresh_token):
        self.refreshed_with.append(refresh_token)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.mark.unit
def test_valid_token_is_returned_without_refresh(user):
    user.token_expires_at = NOW + 3600
    oauth = _OAuthStub()

    assert get_access_token(user, oauth_factory=lambda: oauth, now=NOW) == user.access_token
    assert oauth.refreshed_with == []


@pytest.mark.unit
def test_token_inside_margin_counts_as_expired(user):
    user.token_expires_at = NOW + TOKEN_REFRESH_MARGIN_SECONDS - 1
    assert token_is_expired(user, now=NOW)
    user.token_expires_at = None
    assert not token_is_expired(user, now=NOW)


@pytest.mark.unit
def test_expired_token_is_refreshed_and_stored(user, db_session):
    user.access_token = "old"
    user.refresh_token = "refresh-1"
    user.token_expires_at = NOW - 10
    oauth = _OAuthStub(result={"access_token": "new", "expires_in": 3600})

    token = get_access_token(user, oauth_factory=lambda: oauth, now=NOW)

    assert token == "new"
    assert oauth.refreshed_with == ["refresh-1"]
    db_session.refresh(user)
    assert user.access_token == "new"
    # provider did not rotate the refresh token
    assert user.refresh_token == "refresh-1"
    assert user.token_expires_at == NOW + 3600


@pytest.mark.unit
def test_revoked_refresh_token_clears_credentials(user, db_session):
    user.token_expires_at = NOW - 10
    oauth = _OAuthStub(error=SpotifyOauthError("invalid_grant"))

    with pytest.raises(AuthError):
        get_access_token(user, oauth_factory=lambda: oauth, now=NOW)

    db_session.refresh(user)
    assert user.access_token is None
    assert user.refresh_token is None


@pytest.mark.unit
def test_unreachable_accounts_service_is_retryable(user):
    user.token_expires_at = NOW - 10
    oauth = _OAuthStub(error=requests.exceptions.ConnectionError("down"))

    with pytest.raises(RemoteUnavailable):
        get_access_token(user, oauth_factory=lambda: oauth, now=NOW)
    assert user.access_token is not None


@pytest.mark.unit
def test_missing_credentials_raise_auth_error(user):
    user.access_token = None
    with pytest.raises(AuthError):
        get_access_token(user, now=NOW)

    user.access_token = "tok"
    user.refresh_token = None
    user.token_expires_at = NOW - 10
    with pytest.raises(AuthError):
        get_access_token(user, now=NOW)


@pytest.mark.unit
def test_store_token_info_prefers_absolute_expiry(user):
    store_token_info(user, {"access_token": "a", "refresh_token": "r", "expires_at": NOW + 5, "expires_in": 3600}, now=NOW)
    assert (user.access_token, user.refresh_token, user.token_expires_at) == ("a", "r", NOW + 5)


@pytest.mark.unit
def test_build_oauth_keeps_tokens_out_of_cache_file():
    settings = load_app_settings(
        {
            "spotify_client_id": "cid",
            "spotify_client_secret": "secret",
            "spotify_redirect_uri": "http://127.0.0.1:5000/api/auth/callback/spotify",
            "scopes": "playlist-modify-private user-read-email",
        }
    )

    oauth = build_oauth(settings, state="xyz")

    assert isinstance(oauth, SpotifyOAuth)
    assert oauth.client_id == "cid"
    assert oauth.state == "xyz"
    assert "playlist-modify-private" in oauth.scope
    assert "state=xyz" in oauth.get_authorize_url(state="xyz")
