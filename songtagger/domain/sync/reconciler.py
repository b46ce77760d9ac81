"""Playlist import and synchronization against Spotify.

Each public operation follows the same shape: read local state, talk to the
provider, and only when every remote call succeeded write local state once.
Remote failures are re-raised tagged with the phase they happened in.

Membership is reconciled as a set. The relative order of tracks present on
both sides is left as the provider has it; only missing and extra tracks are
corrected.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from songtagger.domain.library.store import PlaylistStore
from songtagger.domain.sync.errors import (
    AlreadyImported,
    PlaylistAlreadyLinked,
    PlaylistNotLinked,
    SyncError,
    SyncPhase,
)
from songtagger.domain.sync.remote import SpotifyGateway
from songtagger.models.dto import PlaylistRecord
from songtagger.observability.metrics import record_sync_failure, record_sync_success
from songtagger.observability.tracing import sync_span

logger = logging.getLogger(__name__)


def unique_in_order(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


@dataclass(frozen=True)
class SyncPlan:
    to_add: List[str] = field(default_factory=list)
    to_remove: List[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.to_add and not self.to_remove


def compute_sync_plan(local_uris: Sequence[str], remote_uris: Sequence[str]) -> SyncPlan:
    """toAdd = L - R in L's order, toRemove = R - L in R's order."""
    local_set = set(local_uris)
    remote_set = set(remote_uris)
    return SyncPlan(
        to_add=[uri for uri in unique_in_order(local_uris) if uri not in remote_set],
        to_remove=[uri for uri in unique_in_order(remote_uris) if uri not in local_set],
    )


@dataclass
class SyncResult:
    action: str
    playlist: PlaylistRecord
    tracks_added: int = 0
    tracks_removed: int = 0
    tracks_skipped: int = 0
    metadata_updated: bool = False

    def to_dict(self) -> dict:
        return {
            'status': 'created' if self.action == 'create' else 'synced',
            'playlist': self.playlist.summary(),
            'tracks_added': self.tracks_added,
            'tracks_removed': self.tracks_removed,
            'tracks_skipped': self.tracks_skipped,
            'metadata_updated': self.metadata_updated,
        }


@dataclass
class ImportResult:
    playlist: PlaylistRecord
    tracks_imported: int
    tracks_skipped: int = 0

    def to_dict(self) -> dict:
        return {
            'status': 'imported',
            'playlist': self.playlist.summary(),
            'tracks_imported': self.tracks_imported,
            'tracks_skipped': self.tracks_skipped,
        }


@contextmanager
def phase(current: SyncPhase) -> Iterator[None]:
    """Run the block in a trace span and tag any escaping SyncError with the phase."""
    with sync_span(f"playlist.{current.value}", phase=current.value):
        try:
            yield
        except SyncError as exc:
            if exc.phase is None:
                exc.phase = current
            raise


def _normalize(text: Optional[str]) -> str:
    return (text or '').strip()


class PlaylistReconciler:
    """Import, Sync and CreateOnRemote for one owner's playlists."""

    def __init__(
        self,
        store: PlaylistStore,
        gateway: SpotifyGateway,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
        default_description: str = "",
    ):
        self.store = store
        self.gateway = gateway
        self.clock = clock
        self.default_description = default_description

    # --- Import ---

    def import_playlist(self, owner_id: int, spotify_playlist_id: str) -> ImportResult:
        try:
            return self._import(owner_id, spotify_playlist_id)
        except AlreadyImported:
            raise
        except SyncError as exc:
            logger.warning("Import of Spotify playlist %s failed: %s", spotify_playlist_id, exc)
            record_sync_failure('import', exc.phase.value if exc.phase else 'unknown')
            raise

    def _import(self, owner_id: int, spotify_playlist_id: str) -> ImportResult:
        with phase(SyncPhase.LOAD_LOCAL):
            existing = self.store.find_by_remote_id(owner_id, spotify_playlist_id)
        if existing is not None:
            raise AlreadyImported(
                f"Spotify playlist {spotify_playlist_id} is already imported.",
                playlist_id=existing.id,
            )

        with phase(SyncPhase.READ_REMOTE):
            remote = self.gateway.get_playlist(spotify_playlist_id)
            remote_tracks = self.gateway.read_playlist_tracks(spotify_playlist_id)

        importable = [track for track in remote_tracks if track.spotify_id]
        skipped = len(remote_tracks) - len(importable)

        with phase(SyncPhase.COMMIT):
            record = self.store.create(
                owner_id,
                name=remote.name or spotify_playlist_id,
                description=remote.description,
                tracks=importable,
                spotify_id=spotify_playlist_id,
                last_synced_at=self.clock(),
            )
        logger.info(
            "Imported Spotify playlist %s as %s (%s tracks, %s skipped)",
            spotify_playlist_id, record.id, len(record.tracks), skipped,
        )
        record_sync_success('import')
        return ImportResult(playlist=record, tracks_imported=len(record.tracks), tracks_skipped=skipped)

    # --- Sync ---

    def sync(self, owner_id: int, playlist_id: int) -> SyncResult:
        with phase(SyncPhase.LOAD_LOCAL):
            record = self.store.get(owner_id, playlist_id)
        if not record.is_linked:
            raise PlaylistNotLinked(
                f"Playlist {playlist_id} is not connected to Spotify. Create it on Spotify first.",
                phase=SyncPhase.LOAD_LOCAL,
            )
        remote_id = record.spotify_id

        with phase(SyncPhase.READ_REMOTE):
            remote = self.gateway.get_playlist(remote_id)
            remote_uris = [track.uri for track in self.gateway.read_playlist_tracks(remote_id)]

        local_uris = record.track_uris()
        plan = compute_sync_plan(local_uris, remote_uris)
        skipped = len(record.tracks) - len(local_uris)
        logger.info(
            "Sync plan for playlist %s -> %s: %s to add, %s to remove",
            playlist_id, remote_id, len(plan.to_add), len(plan.to_remove),
        )

        if plan.to_add:
            with phase(SyncPhase.ADD):
                self.gateway.add_tracks(remote_id, plan.to_add)
        if plan.to_remove:
            with phase(SyncPhase.REMOVE):
                self.gateway.remove_tracks(remote_id, plan.to_remove)

        metadata_updated = False
        if _normalize(remote.name) != _normalize(record.name) or \
                _normalize(remote.description) != _normalize(record.description):
            with phase(SyncPhase.UPDATE_METADATA):
                self.gateway.update_details(remote_id, name=record.name, description=record.description or "")
            metadata_updated = True

        with phase(SyncPhase.COMMIT):
            updated = self.store.update_fields(owner_id, playlist_id, last_synced_at=self.clock())
        record_sync_success('sync', added=len(plan.to_add), removed=len(plan.to_remove))
        return SyncResult(
            action='sync',
            playlist=updated,
            tracks_added=len(plan.to_add),
            tracks_removed=len(plan.to_remove),
            tracks_skipped=skipped,
            metadata_updated=metadata_updated,
        )

    # --- CreateOnRemote ---

    def create_on_remote(self, owner_id: int, playlist_id: int) -> SyncResult:
        with phase(SyncPhase.LOAD_LOCAL):
            record = self.store.get(owner_id, playlist_id)
        if record.is_linked:
            raise PlaylistAlreadyLinked(
                f"Playlist {playlist_id} is already linked to Spotify playlist {record.spotify_id}.",
                phase=SyncPhase.LOAD_LOCAL,
            )

        uris = unique_in_order(record.track_uris())
        skipped = len(record.tracks) - len(record.track_uris())

        with phase(SyncPhase.CREATE):
            remote = self.gateway.create_playlist(
                record.name,
                record.description or self.default_description,
                public=False,
            )
        if uris:
            with phase(SyncPhase.ADD):
                self.gateway.add_tracks(remote.id, uris)

        with phase(SyncPhase.COMMIT):
            updated = self.store.update_fields(
                owner_id,
                playlist_id,
                spotify_id=remote.id,
                last_synced_at=self.clock(),
            )
        logger.info(
            "Created Spotify playlist %s for playlist %s (%s tracks, %s skipped)",
            remote.id, playlist_id, len(uris), skipped,
        )
        record_sync_success('create', added=len(uris))
        return SyncResult(
            action='create',
            playlist=updated,
            tracks_added=len(uris),
            tracks_skipped=skipped,
        )

    def run(self, owner_id: int, playlist_id: int, action: str = 'sync') -> SyncResult:
        """Dispatch the sync entrypoint's action selector."""
        operation = self.create_on_remote if action == 'create' else self.sync
        try:
            return operation(owner_id, playlist_id)
        except SyncError as exc:
            logger.warning("Playlist %s %s failed: %s", playlist_id, action, exc)
            record_sync_failure(action, exc.phase.value if exc.phase else 'unknown')
            raise


__all__ = [
    "ImportResult",
    "PlaylistReconciler",
    "SyncPlan",
    "SyncResult",
    "compute_sync_plan",
    "phase",
    "unique_in_order",
]
