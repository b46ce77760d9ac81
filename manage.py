# manage.py
import sys

from flask_login import login_user

from app import create_app
from songtagger.database.db_manager import Playlist, User, db
from songtagger.domain.sync.errors import SyncError
from songtagger.interfaces.http.dependencies import playlist_reconciler

USAGE = "Usage: python manage.py create_db | sync_user <spotify_user_id>"


def create_db():
    """Creates the database tables."""
    app = create_app()
    with app.app_context():
        db.create_all()
        print(f"Database tables ready at {app.config['SQLALCHEMY_DATABASE_URI']}")


def sync_user(spotify_user_id: str) -> int:
    """Push every linked playlist of one user to Spotify using their stored token."""
    app = create_app()
    failures = 0
    with app.app_context():
        user = User.query.filter_by(spotify_id=spotify_user_id).first()
        if user is None:
            print(f"No user with Spotify id {spotify_user_id}")
            return 1
        playlist_ids = [
            playlist.id
            for playlist in Playlist.query.filter(
                Playlist.user_id == user.id,
                Playlist.spotify_id.isnot(None),
            ).order_by(Playlist.id)
        ]
        # playlist_reconciler() resolves the acting user through Flask-Login
        with app.test_request_context():
            login_user(user)
            for playlist_id in playlist_ids:
                try:
                    result = playlist_reconciler().run(user.id, playlist_id, 'sync')
                except SyncError as exc:
                    failures += 1
                    print(f"Playlist {playlist_id}: {exc}")
                    continue
                print(
                    f"Playlist {playlist_id}: +{result.tracks_added} -{result.tracks_removed}"
                    f" (skipped {result.tracks_skipped})"
                )
    return 1 if failures else 0


if __name__ == '__main__':
    if len(sys.argv) > 1:
        command = sys.argv[1]
        if command == 'create_db':
            create_db()
        elif command == 'sync_user' and len(sys.argv) > 2:
            sys.exit(sync_user(sys.argv[2]))
        else:
            print(f"Unknown command: {command}")
            print(USAGE)
    else:
        print(f"No command provided. {USAGE}")
