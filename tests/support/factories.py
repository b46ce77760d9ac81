"""Factory Boy factories for database models used in tests."""

import time

import factory
from factory.alchemy import SQLAlchemyModelFactory

from songtagger.database.db_manager import Bookmark, Playlist, PlaylistTrack, Tag, Track, User


class _BaseFactory(SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        sqlalchemy_session = None
        sqlalchemy_session_persistence = "flush"


class UserFactory(_BaseFactory):
    class Meta:
        model = User

    spotify_id = factory.Sequence(lambda n: f"listener-{n}")
    display_name = factory.Sequence(lambda n: f"Listener {n}")
    email = factory.LazyAttribute(lambda obj: f"{obj.spotify_id}@example.com")
    access_token = factory.Sequence(lambda n: f"access-token-{n}")
    refresh_token = factory.Sequence(lambda n: f"refresh-token-{n}")
    token_expires_at = factory.LazyFunction(lambda: int(time.time()) + 3600)
    is_active = True


class TrackFactory(_BaseFactory):
    class Meta:
        model = Track

    owner = factory.SubFactory(UserFactory)
    spotify_id = factory.Sequence(lambda n: f"t{n}")
    uri = factory.LazyAttribute(lambda obj: f"spotify:track:{obj.spotify_id}" if obj.spotify_id else None)
    title = factory.Sequence(lambda n: f"Song {n}")
    artist = factory.Sequence(lambda n: f"Artist {n}")
    album = "Album"
    duration_ms = 180000
    spotify_url = factory.LazyAttribute(
        lambda obj: f"https://open.spotify.com/track/{obj.spotify_id}" if obj.spotify_id else None
    )


class PlaylistFactory(_BaseFactory):
    class Meta:
        model = Playlist

    owner = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f"Playlist {n}")
    description = None
    spotify_id = None


class PlaylistTrackFactory(_BaseFactory):
    class Meta:
        model = PlaylistTrack

    playlist = factory.SubFactory(PlaylistFactory)
    track = factory.SubFactory(TrackFactory, owner=factory.SelfAttribute("..playlist.owner"))
    position = factory.Sequence(lambda n: n)


class TagFactory(_BaseFactory):
    class Meta:
        model = Tag

    owner = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f"tag-{n}")
    color = "#6366f1"


class BookmarkFactory(_BaseFactory):
    class Meta:
        model = Bookmark

    track = factory.SubFactory(TrackFactory)
    owner = factory.SelfAttribute("track.owner")
    time_in_seconds = 30
    label = factory.Sequence(lambda n: f"Bookmark {n}")


_FACTORIES = [UserFactory, TrackFactory, PlaylistFactory, PlaylistTrackFactory, TagFactory, BookmarkFactory]


def set_session(session):
    for factory_cls in _FACTORIES:
        factory_cls._meta.sqlalchemy_session = session


def reset_session():
    for factory_cls in _FACTORIES:
        factory_cls._meta.sqlalchemy_session = None


def playlist_with_tracks(owner, tracks, **kwargs):
    """Playlist owned by ``owner`` whose entries follow ``tracks`` in order."""
    playlist = PlaylistFactory(owner=owner, **kwargs)
    for position, track in enumerate(tracks):
        PlaylistTrackFactory(playlist=playlist, track=track, position=position)
    return playlist


__all__ = [
    "BookmarkFactory",
    "PlaylistFactory",
    "PlaylistTrackFactory",
    "TagFactory",
    "TrackFactory",
    "UserFactory",
    "playlist_with_tracks",
    "set_session",
    "reset_session",
]
