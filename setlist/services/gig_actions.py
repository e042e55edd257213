"""
Gig actions: gigs, their song order, roster and special requests.

Gig membership rows carry an explicit ``sort_order``; appended songs
continue from the gig's current length.  Removing a song from a gig also
removes its gig-scoped overlays (key overrides and section token), or the
reconciler's recovery would put it straight back.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional

from setlist.contracts.row_types import Collection, Row
from setlist.core.section_codec import decode, normalize_section
from setlist.core.titles import find_song, parse_song_list
from setlist.errors import UnknownEntityError
from setlist.models.domain import (
    AppState,
    Gig,
    GigMusician,
    Musician,
    Song,
    SpecialRequest,
    unique_tags,
)
from setlist.services.actions import Actions, new_id, now_iso, today_iso
from setlist.services.catalog_actions import build_musician, musician_columns

logger = logging.getLogger(__name__)

SPECIAL_REQUEST_TAG = "Special Request"


def _without_gig_overrides(song: Song, gig_id: str) -> Song:
    keys = tuple(
        binding.model_copy(update={
            "gig_overrides": {g: k for g, k in binding.gig_overrides.items() if g != gig_id},
        })
        for binding in song.keys
    )
    return song.model_copy(update={"keys": keys})


class GigActions(Actions):
    """Gigs, gig songs, gig roster and special requests."""

    def _gig(self, gig_id: str) -> Gig:
        gig = self.state.gig(gig_id)
        if gig is None:
            raise UnknownEntityError("gig", gig_id)
        return gig

    # ------------------------------------------------------------------
    # Gigs
    # ------------------------------------------------------------------

    def create_gig(self, name: str = "New Gig", date: str | None = None, venue: str = "") -> str | None:
        gig = Gig(id=new_id(), name=name.strip() or "New Gig", date=date or today_iso(), venue=venue.strip())
        if not self.ctx.commit(
            "Create gig",
            lambda s: s.model_copy(update={"gigs": (gig,) + s.gigs}),
        ):
            return None
        self.ctx.write("Create gig", self.ctx.store.insert(Collection.GIGS, [self.ctx.row(
            id=gig.id, gig_name=gig.name, gig_date=gig.date, venue_address=gig.venue,
        )]))
        return gig.id

    def update_gig(
        self,
        gig_id: str,
        *,
        name: Optional[str] = None,
        date: Optional[str] = None,
        venue: Optional[str] = None,
    ) -> bool:
        self._gig(gig_id)
        changes: dict[str, object] = {}
        columns: dict[str, object] = {}
        if name is not None and name.strip():
            changes["name"] = columns["gig_name"] = name.strip()
        if date is not None and date.strip():
            changes["date"] = columns["gig_date"] = date.strip()
        if venue is not None:
            changes["venue"] = columns["venue_address"] = venue.strip()
        if not changes:
            return False

        def _update(s: AppState) -> AppState:
            gig = s.gig(gig_id)
            return s if gig is None else s.replace_gig(gig.model_copy(update=changes))

        if not self.ctx.commit("Update gig", _update):
            return False
        self.ctx.write("Update gig", self.ctx.store.update(
            Collection.GIGS, columns, self.ctx.match(id=gig_id),
        ))
        return True

    def duplicate_gig(self, gig_id: str) -> str | None:
        """Copy a gig and its song order; dated today, named "... (Copy)"."""
        source = self._gig(gig_id)
        copy = Gig(
            id=new_id(),
            name=f"{source.name} (Copy)",
            date=today_iso(),
            venue=source.venue,
            song_ids=source.song_ids,
            next_sort_order=len(source.song_ids),
        )
        if not self.ctx.commit(
            "Duplicate gig",
            lambda s: s.model_copy(update={"gigs": (copy,) + s.gigs}),
        ):
            return None
        self.ctx.write("Duplicate gig", self._insert_gig_with_songs(copy))
        return copy.id

    async def _insert_gig_with_songs(self, gig: Gig) -> None:
        await self.ctx.store.insert(Collection.GIGS, [self.ctx.row(
            id=gig.id, gig_name=gig.name, gig_date=gig.date, venue_address=gig.venue,
        )])
        if gig.song_ids:
            await self.ctx.store.insert(Collection.GIG_SONGS, [
                self.ctx.row(gig_id=gig.id, song_id=song_id, sort_order=i)
                for i, song_id in enumerate(gig.song_ids)
            ])

    def delete_gig(self, gig_id: str) -> bool:
        """Soft-delete a gig; its requests, roster and overlays leave the snapshot."""
        self._gig(gig_id)

        def _delete(s: AppState) -> AppState:
            return s.model_copy(update={
                "gigs": tuple(g for g in s.gigs if g.id != gig_id),
                "special_requests": tuple(r for r in s.special_requests if r.gig_id != gig_id),
                "gig_musicians": tuple(gm for gm in s.gig_musicians if gm.gig_id != gig_id),
                "section_overrides": {
                    pair: label for pair, label in s.section_overrides.items() if pair[0] != gig_id
                },
                "now_playing": {g: v for g, v in s.now_playing.items() if g != gig_id},
            })

        if not self.ctx.commit("Delete gig", _delete):
            return False
        if self.ctx.local is not None:
            self.ctx.local.forget_gig(gig_id)
        self.ctx.write("Delete gig", self.ctx.store.update(
            Collection.GIGS, {"deleted_at": now_iso()}, self.ctx.match(id=gig_id),
        ))
        return True

    # ------------------------------------------------------------------
    # Gig songs
    # ------------------------------------------------------------------

    def add_songs(self, gig_id: str, song_ids: Sequence[str]) -> list[str]:
        """Append songs not already in the gig; returns the ids appended."""
        gig = self._gig(gig_id)
        for song_id in song_ids:
            if self.state.song(song_id) is None:
                raise UnknownEntityError("song", song_id)
        added = list(dict.fromkeys(sid for sid in song_ids if sid not in gig.song_ids))
        if not added:
            return []

        def _add(s: AppState) -> AppState:
            current = s.gig(gig_id)
            if current is None:
                return s
            return s.replace_gig(current.with_appended(added))

        if not self.ctx.commit("Add songs", _add):
            return []
        start = gig.next_sort_order
        self.ctx.write("Add songs", self.ctx.store.insert(Collection.GIG_SONGS, [
            self.ctx.row(gig_id=gig_id, song_id=song_id, sort_order=start + i)
            for i, song_id in enumerate(added)
        ]))
        return added

    def remove_song(self, gig_id: str, song_id: str) -> bool:
        """Remove a song from the gig along with its gig-scoped overlays."""
        gig = self._gig(gig_id)
        if song_id not in gig.song_ids:
            return False

        def _remove(s: AppState) -> AppState:
            current = s.gig(gig_id)
            if current is None:
                return s
            s = s.replace_gig(current.model_copy(update={
                "song_ids": tuple(sid for sid in current.song_ids if sid != song_id),
            }))
            song = s.song(song_id)
            if song is not None:
                s = s.replace_song(_without_gig_overrides(song, gig_id))
            return s.model_copy(update={
                "section_overrides": {
                    pair: label for pair, label in s.section_overrides.items()
                    if pair != (gig_id, song_id)
                },
            })

        if not self.ctx.commit("Remove song", _remove):
            return False
        self.ctx.write("Remove song", self._remove_song_writes(gig_id, song_id))
        return True

    async def _remove_song_writes(self, gig_id: str, song_id: str) -> None:
        store = self.ctx.store
        await store.delete(Collection.GIG_SONGS, self.ctx.match(gig_id=gig_id, song_id=song_id))
        await store.delete(Collection.GIG_SINGER_KEYS, self.ctx.match(gig_id=gig_id, song_id=song_id))
        for row in await store.select(Collection.SONG_TAGS, self.ctx.match(song_id=song_id)):
            token = decode(row.get("tag"))
            if token is not None and token.gig_id == gig_id:
                await store.delete(Collection.SONG_TAGS, {"id": row["id"]})

    def reorder_songs(self, gig_id: str, song_ids: Sequence[str]) -> bool:
        """Set the gig's song order; *song_ids* must be a permutation of it."""
        gig = self._gig(gig_id)
        ordered = tuple(song_ids)
        if sorted(ordered) != sorted(gig.song_ids):
            raise ValueError("New order must contain exactly the gig's songs")
        if ordered == gig.song_ids:
            return False

        def _reorder(s: AppState) -> AppState:
            current = s.gig(gig_id)
            if current is None:
                return s
            return s.replace_gig(current.model_copy(update={
                "song_ids": ordered,
                "next_sort_order": max(current.next_sort_order, len(ordered)),
            }))

        if not self.ctx.commit("Reorder songs", _reorder):
            return False
        self.ctx.write("Reorder songs", self._reorder_writes(gig_id, ordered))
        return True

    async def _reorder_writes(self, gig_id: str, ordered: Sequence[str]) -> None:
        for i, song_id in enumerate(ordered):
            await self.ctx.store.update(
                Collection.GIG_SONGS,
                {"sort_order": i},
                self.ctx.match(gig_id=gig_id, song_id=song_id),
            )

    def import_section_from_paste(self, gig_id: str, section: str, text: str) -> list[str]:
        """
        Add a pasted song list to the gig under *section*.

        Known songs (matched by normalized title, and artist when given)
        gain the section tag when missing; unknown titles become new songs
        tagged with it.  Returns the song ids appended to the gig.
        """
        gig = self._gig(gig_id)
        label = normalize_section(section)
        if not label:
            raise ValueError("Section label must not be blank")
        entries = parse_song_list(text)
        if not entries:
            return []

        known = list(self.state.songs)
        new_songs: list[Song] = []
        to_tag: list[str] = []
        to_add: list[str] = []
        for entry in entries:
            found = find_song(known, entry.title, entry.artist)
            if found is None:
                found = Song(id=new_id(), title=entry.title, artist=entry.artist, tags=(label,))
                new_songs.append(found)
                known.append(found)
            elif not found.has_tag(label) and found.id not in to_tag:
                to_tag.append(found.id)
            if found.id not in gig.song_ids and found.id not in to_add:
                to_add.append(found.id)

        def _import(s: AppState) -> AppState:
            songs = tuple(
                song.model_copy(update={"tags": unique_tags(song.tags, [label])})
                if song.id in to_tag else song
                for song in s.songs
            )
            s = s.model_copy(update={
                "songs": tuple(new_songs) + songs,
                "tags_catalog": unique_tags(s.tags_catalog, [label]),
            })
            current = s.gig(gig_id)
            if current is None:
                return s
            return s.replace_gig(current.with_appended(to_add))

        if not self.ctx.commit(f"Import {label} paste", _import):
            return []
        self.ctx.write(
            f"Import {label} paste",
            self._paste_writes(gig_id, gig.next_sort_order, label, new_songs, to_tag, to_add),
        )
        return to_add

    async def _paste_writes(
        self,
        gig_id: str,
        start: int,
        label: str,
        new_songs: list[Song],
        to_tag: list[str],
        to_add: list[str],
    ) -> None:
        store = self.ctx.store
        if new_songs:
            await store.insert(Collection.SONGS, [
                self.ctx.row(id=song.id, title=song.title, artist=song.artist or None)
                for song in new_songs
            ])
        tag_rows = [self.ctx.row(song_id=sid, tag=label) for sid in to_tag]
        tag_rows += [self.ctx.row(song_id=song.id, tag=label) for song in new_songs]
        if tag_rows:
            await store.insert(Collection.SONG_TAGS, tag_rows)
        if to_add:
            await store.insert(Collection.GIG_SONGS, [
                self.ctx.row(gig_id=gig_id, song_id=sid, sort_order=start + i)
                for i, sid in enumerate(to_add)
            ])

    # ------------------------------------------------------------------
    # Gig roster
    # ------------------------------------------------------------------

    def _assignment_row(self, gig_id: str, musician_id: str, status: str = "active") -> Row:
        return self.ctx.row(gig_id=gig_id, musician_id=musician_id, status=status)

    def add_musician_to_gig(self, gig_id: str, musician_id: str) -> bool:
        self._gig(gig_id)
        if self.state.musician(musician_id) is None:
            raise UnknownEntityError("musician", musician_id)
        if any(gm.gig_id == gig_id and gm.musician_id == musician_id for gm in self.state.gig_musicians):
            return False
        assignment = GigMusician(gig_id=gig_id, musician_id=musician_id)
        if not self.ctx.commit(
            "Add musician to gig",
            lambda s: s.model_copy(update={"gig_musicians": s.gig_musicians + (assignment,)}),
        ):
            return False
        self.ctx.write("Add musician to gig", self.ctx.store.insert(
            Collection.GIG_MUSICIANS, [self._assignment_row(gig_id, musician_id)],
        ))
        return True

    def remove_musician_from_gig(self, gig_id: str, musician_id: str) -> bool:
        self._gig(gig_id)

        def _remove(s: AppState) -> AppState:
            return s.model_copy(update={"gig_musicians": tuple(
                gm for gm in s.gig_musicians
                if not (gm.gig_id == gig_id and gm.musician_id == musician_id)
            )})

        if not self.ctx.commit("Remove musician from gig", _remove):
            return False
        self.ctx.write("Remove musician from gig", self.ctx.store.delete(
            Collection.GIG_MUSICIANS, self.ctx.match(gig_id=gig_id, musician_id=musician_id),
        ))
        return True

    def toggle_musician_status(self, gig_id: str, musician_id: str) -> str | None:
        """Flip active/out; returns the new status (None when not assigned)."""
        current = next(
            (gm for gm in self.state.gig_musicians if gm.gig_id == gig_id and gm.musician_id == musician_id),
            None,
        )
        if current is None:
            return None
        status = "out" if current.status == "active" else "active"

        def _toggle(s: AppState) -> AppState:
            return s.model_copy(update={"gig_musicians": tuple(
                gm.model_copy(update={"status": status})
                if gm.gig_id == gig_id and gm.musician_id == musician_id else gm
                for gm in s.gig_musicians
            )})

        if not self.ctx.commit("Toggle musician", _toggle):
            return None
        self.ctx.write("Toggle musician", self.ctx.store.update(
            Collection.GIG_MUSICIANS,
            {"status": status},
            self.ctx.match(gig_id=gig_id, musician_id=musician_id),
        ))
        return status

    def import_roster(self, gig_id: str) -> bool:
        """Replace the gig's roster with every musician, all active."""
        self._gig(gig_id)
        musician_ids = [m.id for m in self.state.musicians]

        def _import(s: AppState) -> AppState:
            kept = tuple(gm for gm in s.gig_musicians if gm.gig_id != gig_id)
            return s.model_copy(update={"gig_musicians": kept + tuple(
                GigMusician(gig_id=gig_id, musician_id=mid) for mid in musician_ids
            )})

        if not self.ctx.commit("Import roster", _import):
            return False
        self.ctx.write("Import roster", self._import_roster_writes(gig_id, musician_ids))
        return True

    async def _import_roster_writes(self, gig_id: str, musician_ids: list[str]) -> None:
        await self.ctx.store.delete(Collection.GIG_MUSICIANS, self.ctx.match(gig_id=gig_id))
        if musician_ids:
            await self.ctx.store.insert(
                Collection.GIG_MUSICIANS,
                [self._assignment_row(gig_id, mid) for mid in musician_ids],
            )

    def add_sub_and_assign(
        self,
        gig_id: str,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        instruments: Sequence[str] = (),
        singer: Optional[str] = None,
    ) -> str | None:
        """Create a sub (roster "sub") and assign them to the gig in one commit."""
        self._gig(gig_id)
        sub = build_musician(name, "sub", email, phone, instruments, singer)
        assignment = GigMusician(gig_id=gig_id, musician_id=sub.id)
        if not self.ctx.commit("Add sub to gig", lambda s: s.model_copy(update={
            "musicians": (sub,) + s.musicians,
            "gig_musicians": s.gig_musicians + (assignment,),
        })):
            return None
        self.ctx.write("Add sub to gig", self._add_sub_writes(gig_id, sub))
        return sub.id

    async def _add_sub_writes(self, gig_id: str, sub: Musician) -> None:
        await self.ctx.store.insert(
            Collection.MUSICIANS,
            [self.ctx.row(id=sub.id, **musician_columns(sub))],
        )
        await self.ctx.store.insert(Collection.GIG_MUSICIANS, [self._assignment_row(gig_id, sub.id)])

    # ------------------------------------------------------------------
    # Special requests
    # ------------------------------------------------------------------

    def add_special_request(
        self,
        gig_id: str,
        request_type: str,
        song_title: str,
        *,
        song_artist: str = "",
        singers: Sequence[str] = (),
        key: str = "",
        note: str = "",
        dj_only: bool = False,
        external_audio_url: str = "",
    ) -> str | None:
        """
        Add a request for a catalogued song or an inline title.

        An unknown title becomes a new library song tagged "Special Request"
        plus the request type.  Singers and key are required unless the
        request is DJ-only, in which case both are dropped.
        """
        self._gig(gig_id)
        request_type, song_title = request_type.strip(), song_title.strip()
        if not request_type or not song_title:
            raise ValueError("Request type and song title are required")
        singers = () if dj_only else tuple(s.strip() for s in singers if s.strip())
        key = "" if dj_only else key.strip()
        if not dj_only and (not singers or not key):
            raise ValueError("Singers and key are required unless the request is DJ-only")

        existing = find_song(self.state.songs, song_title)
        new_song: Song | None = None
        if existing is None:
            new_song = Song(
                id=new_id(),
                title=song_title,
                artist=song_artist.strip(),
                tags=unique_tags([SPECIAL_REQUEST_TAG, request_type]),
                special_played_count=1,
            )
            song_id, title, artist = new_song.id, song_title, song_artist.strip()
        else:
            song_id, title, artist = existing.id, existing.title, existing.artist
        request = SpecialRequest(
            id=new_id(),
            gig_id=gig_id,
            request_type=request_type,
            song_title=title,
            song_artist=artist,
            song_id=song_id,
            singers=singers,
            key=key,
            note=note.strip() or None,
            dj_only=dj_only,
            external_audio_url=external_audio_url.strip() or None,
        )

        def _add(s: AppState) -> AppState:
            if new_song is not None:
                songs = (new_song,) + s.songs
            else:
                songs = tuple(
                    song.model_copy(update={"special_played_count": song.special_played_count + 1})
                    if song.id == request.song_id else song
                    for song in s.songs
                )
            special_types = s.special_types if request_type in s.special_types else s.special_types + (request_type,)
            singers_catalog = s.singers_catalog + tuple(x for x in singers if x not in s.singers_catalog)
            return s.model_copy(update={
                "songs": songs,
                "special_requests": (request,) + s.special_requests,
                "special_types": special_types,
                "singers_catalog": singers_catalog,
                "tags_catalog": unique_tags(s.tags_catalog, [request_type]),
            })

        if not self.ctx.commit("Add special request", _add):
            return None
        self.ctx.write("Add special request", self._request_writes(request, new_song))
        return request.id

    async def _request_writes(self, request: SpecialRequest, new_song: Song | None) -> None:
        store = self.ctx.store
        if new_song is not None:
            await store.insert(Collection.SONGS, [self.ctx.row(
                id=new_song.id, title=new_song.title, artist=new_song.artist or None,
            )])
            await store.insert(Collection.SONG_TAGS, [
                self.ctx.row(song_id=new_song.id, tag=tag) for tag in new_song.tags
            ])
        await store.insert(Collection.SPECIAL_REQUESTS, [self.ctx.row(
            id=request.id,
            gig_id=request.gig_id,
            request_type=request.request_type,
            song_title=request.song_title,
            song_artist=request.song_artist or None,
            song_id=request.song_id,
            singers=list(request.singers),
            song_key=request.key or None,
            note=request.note,
            dj_only=request.dj_only,
            external_audio_url=request.external_audio_url,
        )])

    def remove_special_request(self, request_id: str) -> bool:
        if not any(r.id == request_id for r in self.state.special_requests):
            raise UnknownEntityError("special request", request_id)
        if not self.ctx.commit("Remove special request", lambda s: s.model_copy(update={
            "special_requests": tuple(r for r in s.special_requests if r.id != request_id),
        })):
            return False
        self.ctx.write("Remove special request", self.ctx.store.delete(
            Collection.SPECIAL_REQUESTS, self.ctx.match(id=request_id),
        ))
        return True

