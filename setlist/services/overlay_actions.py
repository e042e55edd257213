"""
Gig-scoped overlay actions: section assignment and singer keys.

Section overrides live in the shared tag collection as encoded tokens.
Replacing a token selects the song's tag rows, decodes each, and deletes
by row id only those whose gig matches, so tokens for other gigs (and
other songs in this gig) are never touched.

Key overrides live in SetlistGigSingerKeys, one row per (gig, song,
singer), rewritten as delete-then-insert.
"""

from __future__ import annotations

import logging

from setlist.contracts.row_types import Collection
from setlist.core.overlay import (
    KeyConflict,
    effective_section,
    key_conflict,
    overridden_singers,
    with_resolved_key,
    with_section_override,
    with_singer_key,
    without_section_override,
)
from setlist.core.section_codec import decode, encode, normalize_section
from setlist.errors import UnknownEntityError
from setlist.models.domain import AppState, Gig, Song
from setlist.services.actions import Actions

logger = logging.getLogger(__name__)


class OverlayActions(Actions):
    """assign_section, assign_singer_key, resolve_conflicting_key and friends."""

    def _gig_and_song(self, gig_id: str, song_id: str) -> tuple[Gig, Song]:
        gig = self.state.gig(gig_id)
        if gig is None:
            raise UnknownEntityError("gig", gig_id)
        song = self.state.song(song_id)
        if song is None:
            raise UnknownEntityError("song", song_id)
        return gig, song

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    async def _replace_section_token(self, gig_id: str, song_id: str, token: str | None) -> None:
        store = self.ctx.store
        rows = await store.select(Collection.SONG_TAGS, self.ctx.match(song_id=song_id))
        for row in rows:
            decoded = decode(row.get("tag"))
            if decoded is not None and decoded.gig_id == gig_id:
                await store.delete(Collection.SONG_TAGS, {"id": row["id"]})
        if token is not None:
            await store.insert(
                Collection.SONG_TAGS,
                [self.ctx.row(song_id=song_id, tag=token)],
            )

    def assign_section(self, gig_id: str, song_id: str, section: str) -> bool:
        """
        Place *song_id* in *section* at this gig only.

        Raises ValueError for a blank label and UnknownEntityError for an
        unknown gig or song.
        """
        self._gig_and_song(gig_id, song_id)
        label = normalize_section(section)
        token = encode(gig_id, label)
        if not self.ctx.commit(
            f"Move to {label}",
            lambda s: with_section_override(s, gig_id, song_id, label),
        ):
            return False
        self.ctx.write("Assign section", self._replace_section_token(gig_id, song_id, token))
        return True

    def clear_section(self, gig_id: str, song_id: str) -> bool:
        """Drop the override; the song's tags decide its section again."""
        self._gig_and_song(gig_id, song_id)
        if not self.ctx.commit(
            "Clear section override",
            lambda s: without_section_override(s, gig_id, song_id),
        ):
            return False
        self.ctx.write("Clear section", self._replace_section_token(gig_id, song_id, None))
        return True

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    async def _replace_gig_key(self, gig_id: str, song_id: str, singer: str, key: str) -> None:
        store = self.ctx.store
        await store.delete(
            Collection.GIG_SINGER_KEYS,
            self.ctx.match(gig_id=gig_id, song_id=song_id, singer_name=singer),
        )
        await store.insert(
            Collection.GIG_SINGER_KEYS,
            [self.ctx.row(gig_id=gig_id, song_id=song_id, singer_name=singer, gig_key=key)],
        )

    async def _assign_key_writes(
        self, gig_id: str, song_id: str, singer: str, key: str, create_binding: bool,
    ) -> None:
        if create_binding:
            await self.ctx.store.insert(
                Collection.SONG_KEYS,
                [self.ctx.row(song_id=song_id, singer_name=singer, default_key=key)],
            )
        await self._replace_gig_key(gig_id, song_id, singer, key)

    def assign_singer_key(self, gig_id: str, song_id: str, singer: str, key: str = "") -> bool:
        """
        Set *singer*'s key for this song at this gig.

        A blank *key* falls back to the song's original key.  A singer with
        no binding gets one whose default is that key.
        """
        _gig, song = self._gig_and_song(gig_id, song_id)
        singer = singer.strip()
        key = key.strip() or song.original_key.strip()
        if not singer or not key:
            raise ValueError("Singer and key are required")
        create_binding = song.binding_for(singer) is None
        if not self.ctx.commit(
            "Assign singer key",
            lambda s: with_singer_key(s, gig_id, song_id, singer, key),
        ):
            return False
        self.ctx.write(
            "Assign singer key",
            self._assign_key_writes(gig_id, song_id, singer, key, create_binding),
        )
        return True

    def detect_conflicts(self, gig_id: str) -> list[KeyConflict]:
        """Songs at this gig whose singers' overrides disagree."""
        gig = self.state.gig(gig_id)
        if gig is None:
            raise UnknownEntityError("gig", gig_id)
        conflicts = (key_conflict(gig, song) for song in self.state.gig_songs(gig_id))
        return [c for c in conflicts if c is not None]

    async def _resolve_key_writes(self, gig_id: str, song_id: str, singers: list[str], key: str) -> None:
        for singer in singers:
            await self._replace_gig_key(gig_id, song_id, singer, key)

    def resolve_conflicting_key(self, gig_id: str, song_id: str, key: str) -> bool:
        """
        Rewrite every existing gig override for (gig, song) to *key*.

        Each singer is an independent delete-then-insert.  A failure part
        way leaves some singers rewritten; calling again converges.
        """
        _gig, song = self._gig_and_song(gig_id, song_id)
        key = key.strip()
        if not key:
            raise ValueError("Key is required")
        singers = overridden_singers(song, gig_id)
        if not self.ctx.commit(
            "Resolve key conflict",
            lambda s: with_resolved_key(s, gig_id, song_id, key),
        ):
            return False
        if singers:
            self.ctx.write(
                "Resolve key conflict",
                self._resolve_key_writes(gig_id, song_id, singers, key),
            )
        logger.info("Resolved %s at %s to %s for %d singer(s)", song_id, gig_id, key, len(singers))
        return True

    # ------------------------------------------------------------------
    # Import a section from another gig
    # ------------------------------------------------------------------

    def import_section_from_gig(self, section: str, source_gig_id: str, target_gig_id: str) -> list[str]:
        """
        Copy every song in *section* at the source gig into the target gig.

        Songs keep their source section overrides and key overrides at the
        target.  Returns the copied song ids (empty when nothing matched or
        the role may not mutate).
        """
        state = self.state
        source = state.gig(source_gig_id)
        if source is None:
            raise UnknownEntityError("gig", source_gig_id)
        target = state.gig(target_gig_id)
        if target is None:
            raise UnknownEntityError("gig", target_gig_id)
        label = normalize_section(section)
        songs = [
            song for song in state.gig_songs(source_gig_id)
            if effective_section(state, source, song) == label
        ]
        if not songs:
            return []
        added = [song.id for song in songs if song.id not in target.song_ids]
        overrides = {
            song.id: state.section_overrides[(source_gig_id, song.id)]
            for song in songs
            if (source_gig_id, song.id) in state.section_overrides
        }
        keys = [
            (song.id, binding.singer, binding.gig_overrides[source_gig_id])
            for song in songs
            for binding in song.keys
            if source_gig_id in binding.gig_overrides
        ]

        def _import(s: AppState) -> AppState:
            gig = s.gig(target_gig_id)
            if gig is None:
                return s
            s = s.replace_gig(gig.with_appended(added))
            for song_id, override in overrides.items():
                s = with_section_override(s, target_gig_id, song_id, override)
            for song_id, singer, key in keys:
                s = with_singer_key(s, target_gig_id, song_id, singer, key)
            return s

        if not self.ctx.commit(f"Import {label} from gig", _import):
            return []
        self.ctx.write(
            f"Import {label} from gig",
            self._import_writes(target_gig_id, target.next_sort_order, added, overrides, keys),
        )
        return [song.id for song in songs]

    async def _import_writes(
        self,
        gig_id: str,
        start_order: int,
        added: list[str],
        overrides: dict[str, str],
        keys: list[tuple[str, str, str]],
    ) -> None:
        if added:
            await self.ctx.store.insert(Collection.GIG_SONGS, [
                self.ctx.row(gig_id=gig_id, song_id=song_id, sort_order=start_order + i)
                for i, song_id in enumerate(added)
            ])
        for song_id, override in overrides.items():
            await self._replace_section_token(gig_id, song_id, encode(gig_id, override))
        for song_id, singer, key in keys:
            await self._replace_gig_key(gig_id, song_id, singer, key)
