# songtagger/database/db_manager.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
import os
import logging
from datetime import datetime
from sqlalchemy import ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.engine import make_url
from sqlalchemy.orm import relationship

# Initialize the SQLAlchemy object
db = SQLAlchemy()
logger = logging.getLogger(__name__)


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    # Provider (Spotify) account id; the identity users sign in with
    spotify_id = db.Column(db.String(128), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    avatar_url = db.Column(db.String(512), nullable=True)

    # Bearer credential for the provider API
    access_token = db.Column(db.Text, nullable=True)
    refresh_token = db.Column(db.Text, nullable=True)
    token_expires_at = db.Column(db.Integer, nullable=True)  # epoch seconds

    preferences = db.Column(db.JSON, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tracks = relationship("Track", back_populates="owner", cascade="all, delete-orphan", lazy=True)
    playlists = relationship(
        "Playlist",
        back_populates="owner",
        cascade="all, delete-orphan",
        lazy=True,
    )
    tags = relationship("Tag", back_populates="owner", cascade="all, delete-orphan", lazy=True)
    bookmarks = relationship("Bookmark", back_populates="owner", cascade="all, delete-orphan", lazy=True)

    def get_id(self) -> str:
        return str(self.id)

    def clear_tokens(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.token_expires_at = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "spotify_id": self.spotify_id,
            "display_name": self.display_name,
            "email": self.email,
            "avatar_url": self.avatar_url,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<User {self.spotify_id}>"


track_tags = db.Table(
    "track_tags",
    db.Column("track_id", db.Integer, ForeignKey("tracks.id", ondelete="CASCADE"), primary_key=True),
    db.Column("tag_id", db.Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    db.Column("created_at", db.DateTime, default=datetime.utcnow, nullable=False),
)


class Track(db.Model):
    __tablename__ = 'tracks'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    # Core identifiers; hand-entered tracks may have neither
    spotify_id = db.Column(db.String(64), nullable=True, index=True)
    uri = db.Column(db.String(128), nullable=True)

    title = db.Column(db.String(255), nullable=False)
    artist = db.Column(db.String(255), nullable=False)
    album = db.Column(db.String(255), nullable=True)
    duration_ms = db.Column(db.Integer, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    preview_url = db.Column(db.String(500), nullable=True)
    spotify_url = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = relationship('User', back_populates='tracks')
    tags = relationship('Tag', secondary=track_tags, back_populates='tracks', lazy='selectin')
    bookmarks = relationship(
        'Bookmark',
        back_populates='track',
        cascade='all, delete-orphan',
        order_by='Bookmark.time_in_seconds',
        lazy=True,
    )

    __table_args__ = (
        UniqueConstraint('user_id', 'spotify_id', name='uq_tracks_owner_spotify_id'),
    )

    def to_dict(self, *, include_tags: bool = True) -> dict:
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'spotify_id': self.spotify_id,
            'uri': self.uri,
            'title': self.title,
            'artist': self.artist,
            'album': self.album,
            'duration_ms': self.duration_ms,
            'image_url': self.image_url,
            'preview_url': self.preview_url,
            'spotify_url': self.spotify_url,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if include_tags:
            data['tags'] = [tag.to_dict() for tag in sorted(self.tags, key=lambda t: t.name.lower())]
        return data


class Playlist(db.Model):
    __tablename__ = 'playlists'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    # Remote link; present means the playlist is "linked"
    spotify_id = db.Column(db.String(128), nullable=True, index=True)
    last_synced_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    owner = relationship('User', back_populates='playlists')
    entries = relationship(
        'PlaylistTrack',
        back_populates='playlist',
        order_by='PlaylistTrack.position',
        cascade='all, delete-orphan',
        lazy='joined',
    )

    __table_args__ = (
        UniqueConstraint('user_id', 'spotify_id', name='uq_playlists_owner_remote_link'),
    )

    @property
    def is_linked(self) -> bool:
        return bool(self.spotify_id)

    @property
    def spotify_url(self):
        if not self.spotify_id:
            return None
        return f"https://open.spotify.com/playlist/{self.spotify_id}"

    def to_dict(self, *, include_tracks: bool = False) -> dict:
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'description': self.description,
            'spotify_id': self.spotify_id,
            'spotify_url': self.spotify_url,
            'is_linked': self.is_linked,
            'last_synced_at': _iso(self.last_synced_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'track_count': len(self.entries or []),
        }
        if include_tracks:
            data['tracks'] = [entry.to_dict() for entry in self.entries]
        return data


class PlaylistTrack(db.Model):
    __tablename__ = 'playlist_tracks'

    id = db.Column(db.Integer, primary_key=True)
    playlist_id = db.Column(
        db.Integer,
        ForeignKey('playlists.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    track_id = db.Column(
        db.Integer,
        ForeignKey('tracks.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    added_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    playlist = relationship('Playlist', back_populates='entries')
    track = relationship('Track', lazy='joined')

    __table_args__ = (
        UniqueConstraint('playlist_id', 'track_id', name='uq_playlist_track_once'),
    )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'playlist_id': self.playlist_id,
            'track_id': self.track_id,
            'position': self.position,
            'added_at': _iso(self.added_at),
            'track': self.track.to_dict(include_tags=False) if self.track else None,
        }


class Tag(db.Model):
    __tablename__ = 'tags'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(64), nullable=False)
    color = db.Column(db.String(16), nullable=False, default='#6366f1')
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = relationship('User', back_populates='tags')
    tracks = relationship('Track', secondary=track_tags, back_populates='tags', lazy=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='uq_tags_owner_name'),
    )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'color': self.color,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }

    @staticmethod
    def usage_for_user(user_id: int) -> dict:
        from sqlalchemy import func

        rows = (
            db.session.query(Tag.id, func.count(track_tags.c.track_id))
            .outerjoin(track_tags, track_tags.c.tag_id == Tag.id)
            .filter(Tag.user_id == user_id)
            .group_by(Tag.id)
            .all()
        )
        return {tag_id: count for tag_id, count in rows}


class Bookmark(db.Model):
    __tablename__ = 'bookmarks'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    track_id = db.Column(
        db.Integer,
        ForeignKey('tracks.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    time_in_seconds = db.Column(db.Integer, nullable=False, default=0)
    label = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = relationship('User', back_populates='bookmarks')
    track = relationship('Track', back_populates='bookmarks')

    __table_args__ = (
        CheckConstraint('time_in_seconds >= 0', name='ck_bookmarks_time_non_negative'),
    )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'track_id': self.track_id,
            'time_in_seconds': self.time_in_seconds,
            'label': self.label,
            'description': self.description,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


def initialize_database(app):
    """
    Initializes the SQLAlchemy extension with the Flask app instance
    and creates all database tables if they don't already exist.
    """
    db.init_app(app)
    # Ensure the instance folder exists for SQLite database file
    instance_path = app.instance_path
    if not os.path.exists(instance_path):
        os.makedirs(instance_path)
        logger.info("Created instance folder: %s", instance_path)

    # Ensure the directory for the configured SQLite file exists
    try:
        uri = app.config.get('SQLALCHEMY_DATABASE_URI')
        if uri:
            url = make_url(uri)
            # Only handle file-based SQLite (not :memory:)
            if url.get_backend_name() == 'sqlite' and url.database and url.database != ':memory:':
                db_dir = os.path.dirname(url.database)
                if db_dir and not os.path.exists(db_dir):
                    os.makedirs(db_dir, exist_ok=True)
                    logger.info("Created SQLite DB directory: %s", db_dir)
    except Exception as e:
        # Don't block app startup on path parsing issues; log and continue
        logger.warning("Could not ensure SQLite directory exists: %s", e)

    # Create database tables within the application context
    with app.app_context():
        db.create_all()
        logger.info("Database tables created or already exist.")


__all__ = [
    "db",
    "User",
    "Track",
    "Playlist",
    "PlaylistTrack",
    "Tag",
    "Bookmark",
    "track_tags",
    "initialize_database",
]
