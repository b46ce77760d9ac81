"""Song Tagger backend: local library, tagging and Spotify playlist sync."""
