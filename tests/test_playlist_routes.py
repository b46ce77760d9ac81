import pytest
from spotipy.exceptions import SpotifyException

from songtagger.database.db_manager import Playlist, PlaylistTrack
from tests.support.fakes import spotify_track, uri


@pytest.fixture
def library(user, factories, db_session):
    tracks = [factories.TrackFactory(owner=user, spotify_id=f"t{n}") for n in range(1, 4)]
    db_session.commit()
    return tracks


@pytest.mark.unit
def test_playlists_require_sign_in(client):
    r = client.get('/api/playlists')
    assert r.status_code == 401
    assert r.get_json() == {'error': 'authentication_required'}


@pytest.mark.unit
def test_create_playlist_with_new_and_hand_entered_tracks(auth_client):
    r = auth_client.post(
        '/api/playlists',
        json={
            'name': ' Chill ',
            'tracks': [
                {'spotify_id': 't7', 'title': 'Song 7', 'artist': ['A', 'B']},
                {'title': 'Hand typed'},
            ],
        },
    )

    assert r.status_code == 201
    playlist = r.get_json()['playlist']
    assert playlist['name'] == 'Chill'
    assert playlist['is_linked'] is False
    tracks = [entry['track'] for entry in playlist['tracks']]
    assert [t['title'] for t in tracks] == ['Song 7', 'Hand typed']
    assert tracks[0]['artist'] == 'A, B'
    assert tracks[0]['uri'] == 'spotify:track:t7'
    assert tracks[1]['uri'] is None


@pytest.mark.unit
def test_create_playlist_validation(auth_client):
    assert auth_client.post('/api/playlists', json={'name': '  '}).get_json() == {'error': 'name_required'}

    r = auth_client.post('/api/playlists', json={'name': 'X', 'tracks': [{'artist': 'No title'}]})
    assert r.status_code == 400
    assert r.get_json()['error'] == 'invalid_track'


@pytest.mark.unit
def test_list_is_paginated_and_owner_scoped(auth_client, user, factories, db_session):
    for _ in range(3):
        factories.PlaylistFactory(owner=user)
    factories.PlaylistFactory()
    db_session.commit()

    body = auth_client.get('/api/playlists?per_page=2').get_json()

    assert len(body['items']) == 2
    assert body['pagination']['total'] == 3
    assert body['pagination']['has_next'] is True


@pytest.mark.unit
def test_other_users_playlist_is_not_found(auth_client, factories, db_session):
    theirs = factories.PlaylistFactory()
    db_session.commit()

    assert auth_client.get(f'/api/playlists/{theirs.id}').status_code == 404
    assert auth_client.delete(f'/api/playlists/{theirs.id}').status_code == 404


@pytest.mark.unit
def test_update_renames_and_replaces_tracks(auth_client, user, library, factories, db_session):
    playlist = factories.playlist_with_tracks(user, library[:2])
    db_session.commit()

    r = auth_client.put(
        f'/api/playlists/{playlist.id}',
        json={'name': 'Renamed', 'description': '', 'tracks': [{'track_id': library[2].id}]},
    )

    assert r.status_code == 200
    body = r.get_json()['playlist']
    assert body['name'] == 'Renamed'
    assert body['description'] is None
    assert [entry['track_id'] for entry in body['tracks']] == [library[2].id]


@pytest.mark.unit
def test_add_remove_and_reorder_entries(auth_client, user, library, factories, db_session):
    playlist = factories.PlaylistFactory(owner=user)
    db_session.commit()
    base = f'/api/playlists/{playlist.id}/tracks'

    r = auth_client.post(base, json={'tracks': [{'track_id': t.id} for t in library]})
    assert r.get_json()['added'] == 3
    again = auth_client.post(base, json={'tracks': {'track_id': library[0].id}})
    assert again.get_json()['added'] == 0

    entries = again.get_json()['playlist']['tracks']
    r = auth_client.delete(f"{base}/{entries[0]['id']}")
    remaining = r.get_json()['playlist']['tracks']
    assert [(e['track_id'], e['position']) for e in remaining] == [(library[1].id, 0), (library[2].id, 1)]

    r = auth_client.put(f'{base}/reorder', json={'order': [remaining[1]['id']]})
    reordered = r.get_json()['playlist']['tracks']
    assert [e['track_id'] for e in reordered] == [library[2].id, library[1].id]

    bad = auth_client.put(f'{base}/reorder', json={'order': [999999]})
    assert bad.status_code == 400
    assert bad.get_json()['error'] == 'unknown_entries'


@pytest.mark.unit
def test_adding_unknown_library_track_is_rejected(auth_client, user, factories, db_session):
    playlist = factories.PlaylistFactory(owner=user)
    someone_elses = factories.TrackFactory()
    db_session.commit()

    r = auth_client.post(f'/api/playlists/{playlist.id}/tracks', json={'tracks': [{'track_id': someone_elses.id}]})

    assert r.status_code == 400
    assert r.get_json()['error'] == 'invalid_track'


@pytest.mark.unit
def test_delete_playlist(auth_client, user, library, factories, db_session):
    playlist = factories.playlist_with_tracks(user, library)
    db_session.commit()
    playlist_id = playlist.id

    assert auth_client.delete(f'/api/playlists/{playlist_id}').get_json() == {'status': 'deleted'}
    assert db_session.get(Playlist, playlist_id) is None
    assert PlaylistTrack.query.filter_by(playlist_id=playlist_id).count() == 0


@pytest.mark.unit
def test_import_creates_linked_playlist_and_reuses_saved_tracks(auth_client, user, library, fake_spotify):
    fake_spotify.add_playlist('37i9dQZF1DX', 'Road Trip', [spotify_track(n) for n in (1, 2, 9)], description='Summer')

    r = auth_client.post(
        '/api/playlists/import',
        json={'spotifyPlaylistId': 'https://open.spotify.com/playlist/37i9dQZF1DX?si=share'},
    )

    assert r.status_code == 201
    body = r.get_json()
    assert body['status'] == 'imported'
    assert body['tracks_imported'] == 3
    assert body['playlist']['spotify_id'] == '37i9dQZF1DX'
    assert body['playlist']['last_synced_at'] is not None
    playlist = Playlist.query.filter_by(user_id=user.id, spotify_id='37i9dQZF1DX').one()
    assert [entry.track_id for entry in playlist.entries][:2] == [library[0].id, library[1].id]


@pytest.mark.unit
def test_import_twice_reports_already_imported(auth_client, user, fake_spotify):
    fake_spotify.add_playlist('p9', 'Road Trip', [spotify_track(1)])
    first = auth_client.post('/api/playlists/import', json={'spotify_playlist_id': 'p9'}).get_json()

    r = auth_client.post('/api/playlists/import', json={'spotify_playlist_id': 'spotify:playlist:p9'})

    assert r.status_code == 200
    assert r.get_json() == {'status': 'already_imported', 'playlist_id': first['playlist']['id']}
    assert Playlist.query.filter_by(user_id=user.id).count() == 1


@pytest.mark.unit
def test_import_validates_identifier(auth_client):
    assert auth_client.post('/api/playlists/import', json={}).get_json()['error'] == 'spotify_playlist_id_required'
    r = auth_client.post('/api/playlists/import', json={'spotify_playlist_id': 'not valid!'})
    assert r.status_code == 400
    assert r.get_json()['error'] == 'invalid_spotify_playlist_id'


@pytest.mark.unit
def test_import_of_missing_remote_playlist_is_404(auth_client):
    r = auth_client.post('/api/playlists/import', json={'spotify_playlist_id': 'gone'})

    assert r.status_code == 404
    body = r.get_json()
    assert body['error'] == 'not_found'
    assert body['phase'] == 'read-remote'


@pytest.mark.unit
def test_sync_route_reconciles_membership(auth_client, user, library, factories, db_session, fake_spotify):
    playlist = factories.playlist_with_tracks(user, library[:2], spotify_id='p1', name='Mix')
    db_session.commit()
    fake_spotify.add_playlist('p1', 'Mix', [spotify_track(2), spotify_track(5)])

    r = auth_client.post(f'/api/playlists/{playlist.id}/sync', json={'action': 'sync'})

    assert r.status_code == 200
    body = r.get_json()
    assert body['status'] == 'synced'
    assert (body['tracks_added'], body['tracks_removed']) == (1, 1)
    assert set(fake_spotify.remote_uris('p1')) == {uri(1), uri(2)}
    assert body['playlist']['last_synced_at'] is not None


@pytest.mark.unit
def test_sync_route_create_action_links_playlist(auth_client, user, library, factories, db_session, fake_spotify):
    playlist = factories.playlist_with_tracks(user, library, name='Fresh')
    db_session.commit()

    r = auth_client.post(f'/api/playlists/{playlist.id}/sync', json={'action': 'create'})

    assert r.status_code == 200
    body = r.get_json()
    assert body['status'] == 'created'
    assert body['playlist']['spotify_id'] == 'remote1'
    assert fake_spotify.playlists['remote1']['description'] == 'Created with Song Tagger'
    assert fake_spotify.remote_uris('remote1') == [uri(1), uri(2), uri(3)]


@pytest.mark.unit
def test_sync_route_errors(auth_client, user, factories, db_session):
    local_only = factories.PlaylistFactory(owner=user)
    db_session.commit()

    r = auth_client.post(f'/api/playlists/{local_only.id}/sync')
    assert r.status_code == 409
    assert r.get_json()['error'] == 'playlist_not_linked'

    r = auth_client.post(f'/api/playlists/{local_only.id}/sync', json={'action': 'merge'})
    assert r.status_code == 400
    assert r.get_json()['error'] == 'invalid_action'

    assert auth_client.post('/api/playlists/999999/sync').status_code == 404


@pytest.mark.unit
def test_sync_route_reports_failed_phase_and_keeps_timestamp(auth_client, user, library, factories, db_session, fake_spotify):
    playlist = factories.playlist_with_tracks(user, library[:1], spotify_id='p1', name='Mix')
    db_session.commit()
    fake_spotify.add_playlist('p1', 'Mix', [spotify_track(4)])
    fake_spotify.fail_on['playlist_remove_all_occurrences_of_items'] = SpotifyException(502, -1, 'bad gateway')

    r = auth_client.post(f'/api/playlists/{playlist.id}/sync')

    assert r.status_code == 503
    body = r.get_json()
    assert body['error'] == 'remote_unavailable'
    assert body['phase'] == 'remove'
    assert body['retryable'] is True
    db_session.expire_all()
    assert db_session.get(Playlist, playlist.id).last_synced_at is None


@pytest.mark.unit
def test_sync_of_followed_playlist_is_forbidden_without_signing_out(auth_client, user, library, factories, db_session, fake_spotify):
    playlist = factories.playlist_with_tracks(user, library[:1], spotify_id='p1', name='Mix')
    db_session.commit()
    fake_spotify.add_playlist('p1', 'Mix')
    fake_spotify.fail_on['playlist_add_items'] = SpotifyException(403, -1, "You cannot add tracks to a playlist you don't own.")

    r = auth_client.post(f'/api/playlists/{playlist.id}/sync')

    assert r.status_code == 403
    body = r.get_json()
    assert body['error'] == 'unauthorized'
    assert body['phase'] == 'add'
    assert body['retryable'] is False
    assert "don't own" in body['message']
    assert auth_client.get('/api/auth/session').get_json()['user']['id'] == user.id


@pytest.mark.unit
def test_expired_credential_without_refresh_token_is_401(auth_client, user, factories, db_session):
    playlist = factories.PlaylistFactory(owner=user, spotify_id='p1')
    user.token_expires_at = 1
    user.refresh_token = None
    db_session.commit()

    r = auth_client.post(f'/api/playlists/{playlist.id}/sync')

    assert r.status_code == 401
    assert r.get_json()['error'] == 'auth_error'
