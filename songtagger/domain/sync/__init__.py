"""Playlist import and synchronization with Spotify."""
