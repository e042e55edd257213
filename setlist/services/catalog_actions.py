"""
Catalog actions: the shared song library, musicians and documents.

Songs and musicians are soft-deleted (``deleted_at``) so gigs that still
reference them keep their rows.  Song tag edits are diffed against the
current descriptive tags: encoded section tokens share the tag collection
and must never be touched by a tag edit.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional

from setlist.contracts.row_types import Collection
from setlist.core.section_codec import is_section_token
from setlist.core.titles import find_song
from setlist.errors import DuplicateSongError, UnknownEntityError
from setlist.models.domain import AppState, Document, Musician, Song, unique_tags
from setlist.services.actions import Actions, new_id, now_iso

logger = logging.getLogger(__name__)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def build_musician(
    name: str,
    roster: str = "core",
    email: Optional[str] = None,
    phone: Optional[str] = None,
    instruments: Sequence[str] = (),
    singer: Optional[str] = None,
) -> Musician:
    """A new Musician; raises ValueError for a blank name."""
    name = name.strip()
    if not name:
        raise ValueError("Musician name is required")
    return Musician(
        id=new_id(),
        name=name,
        roster=roster,  # type: ignore[arg-type]
        email=_blank_to_none(email),
        phone=_blank_to_none(phone),
        instruments=tuple(instruments),
        singer=singer or None,  # type: ignore[arg-type]
    )


def musician_columns(musician: Musician) -> dict[str, object]:
    return {
        "name": musician.name,
        "roster": musician.roster,
        "email": musician.email,
        "phone": musician.phone,
        "instruments": list(musician.instruments),
        "singer": musician.singer,
    }


class CatalogActions(Actions):
    """Songs, musicians and documents."""

    # ------------------------------------------------------------------
    # Songs
    # ------------------------------------------------------------------

    def add_song(
        self,
        title: str,
        artist: str = "",
        original_key: str = "",
        audio_url: str = "",
        tags: Sequence[str] = (),
    ) -> str | None:
        """
        Add a song to the library; returns its id (None for a non-admin).

        Raises DuplicateSongError when the normalized title (and artist,
        when given) already exists.
        """
        title, artist = title.strip(), artist.strip()
        if not title:
            raise ValueError("Song title is required")
        existing = find_song(self.state.songs, title, artist)
        if existing is not None:
            raise DuplicateSongError(existing.id, existing.title)

        song = Song(
            id=new_id(),
            title=title,
            artist=artist,
            original_key=original_key.strip(),
            audio_url=audio_url.strip(),
            tags=unique_tags(tags),
        )

        def _add(s: AppState) -> AppState:
            return s.model_copy(update={
                "songs": (song,) + s.songs,
                "tags_catalog": unique_tags(s.tags_catalog, song.tags),
            })

        if not self.ctx.commit("Add song", _add):
            return None
        self.ctx.write("Add song", self._insert_song(song))
        return song.id

    async def _insert_song(self, song: Song) -> None:
        store = self.ctx.store
        await store.insert(Collection.SONGS, [self.ctx.row(
            id=song.id,
            title=song.title,
            artist=song.artist or None,
            audio_url=song.audio_url or None,
            original_key=song.original_key or None,
        )])
        if song.tags:
            await store.insert(Collection.SONG_TAGS, [
                self.ctx.row(song_id=song.id, tag=tag) for tag in song.tags
            ])

    def update_song(
        self,
        song_id: str,
        *,
        title: Optional[str] = None,
        artist: Optional[str] = None,
        original_key: Optional[str] = None,
        audio_url: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> bool:
        """Update song fields; only the fields given change."""
        song = self.state.song(song_id)
        if song is None:
            raise UnknownEntityError("song", song_id)
        changes: dict[str, object] = {}
        if title is not None:
            if not title.strip():
                raise ValueError("Song title is required")
            changes["title"] = title.strip()
        if artist is not None:
            changes["artist"] = artist.strip()
        if original_key is not None:
            changes["original_key"] = original_key.strip()
        if audio_url is not None:
            changes["audio_url"] = audio_url.strip()

        removed: list[str] = []
        added: list[str] = []
        if tags is not None:
            new_tags = unique_tags(tags)
            old_folded = {t.casefold() for t in song.tags}
            new_folded = {t.casefold() for t in new_tags}
            removed = [t for t in song.tags if t.casefold() not in new_folded]
            added = [t for t in new_tags if t.casefold() not in old_folded]
            changes["tags"] = new_tags

        def _update(s: AppState) -> AppState:
            current = s.song(song_id)
            if current is None:
                return s
            s = s.replace_song(current.model_copy(update=changes))
            return s.model_copy(update={"tags_catalog": unique_tags(s.tags_catalog, added)})

        if not self.ctx.commit("Update song", _update):
            return False
        self.ctx.write("Update song", self._update_song_writes(song_id, changes, removed, added))
        return True

    async def _update_song_writes(
        self, song_id: str, changes: dict[str, object], removed: list[str], added: list[str],
    ) -> None:
        store = self.ctx.store
        columns: dict[str, object] = {
            column: _blank_to_none(str(value)) for column, value in changes.items() if column != "tags"
        }
        if "title" in changes:
            columns["title"] = changes["title"]
        if columns:
            await store.update(Collection.SONGS, columns, self.ctx.match(id=song_id))
        if removed:
            folded = {tag.casefold() for tag in removed}
            for row in await store.select(Collection.SONG_TAGS, self.ctx.match(song_id=song_id)):
                value = row.get("tag")
                if not isinstance(value, str) or is_section_token(value):
                    continue
                if value.strip().casefold() in folded:
                    await store.delete(Collection.SONG_TAGS, {"id": row["id"]})
        if added:
            await store.insert(Collection.SONG_TAGS, [
                self.ctx.row(song_id=song_id, tag=tag) for tag in added
            ])

    def delete_song(self, song_id: str) -> bool:
        """Soft-delete a song and drop it from every local gig ordering."""
        if self.state.song(song_id) is None:
            raise UnknownEntityError("song", song_id)

        def _delete(s: AppState) -> AppState:
            return s.model_copy(update={
                "songs": tuple(song for song in s.songs if song.id != song_id),
                "gigs": tuple(
                    gig.model_copy(update={
                        "song_ids": tuple(sid for sid in gig.song_ids if sid != song_id),
                    })
                    for gig in s.gigs
                ),
            })

        if not self.ctx.commit("Delete song", _delete):
            return False
        self.ctx.write(
            "Delete song",
            self.ctx.store.update(Collection.SONGS, {"deleted_at": now_iso()}, self.ctx.match(id=song_id)),
        )
        return True

    # ------------------------------------------------------------------
    # Musicians
    # ------------------------------------------------------------------

    def add_musician(
        self,
        name: str,
        roster: str = "core",
        email: Optional[str] = None,
        phone: Optional[str] = None,
        instruments: Sequence[str] = (),
        singer: Optional[str] = None,
    ) -> str | None:
        musician = build_musician(name, roster, email, phone, instruments, singer)
        if not self.ctx.commit(
            "Add musician",
            lambda s: s.model_copy(update={"musicians": (musician,) + s.musicians}),
        ):
            return None
        self.ctx.write("Add musician", self.ctx.store.insert(
            Collection.MUSICIANS,
            [self.ctx.row(id=musician.id, **musician_columns(musician))],
        ))
        return musician.id

    def update_musician(
        self,
        musician_id: str,
        *,
        name: Optional[str] = None,
        roster: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        instruments: Optional[Sequence[str]] = None,
        singer: Optional[str] = None,
    ) -> bool:
        current = self.state.musician(musician_id)
        if current is None:
            raise UnknownEntityError("musician", musician_id)
        changes: dict[str, object] = {}
        if name is not None:
            if not name.strip():
                raise ValueError("Musician name is required")
            changes["name"] = name.strip()
        if roster is not None:
            changes["roster"] = roster
        if email is not None:
            changes["email"] = _blank_to_none(email)
        if phone is not None:
            changes["phone"] = _blank_to_none(phone)
        if instruments is not None:
            changes["instruments"] = tuple(instruments)
        if singer is not None:
            changes["singer"] = singer or None
        updated = Musician.model_validate({**current.model_dump(), **changes})

        def _update(s: AppState) -> AppState:
            return s.model_copy(update={
                "musicians": tuple(updated if m.id == musician_id else m for m in s.musicians),
            })

        if not self.ctx.commit("Update musician", _update):
            return False
        self.ctx.write("Update musician", self.ctx.store.update(
            Collection.MUSICIANS,
            musician_columns(updated),
            self.ctx.match(id=musician_id),
        ))
        return True

    def delete_musician(self, musician_id: str) -> bool:
        """Soft-delete a musician and drop their gig assignments locally."""
        if self.state.musician(musician_id) is None:
            raise UnknownEntityError("musician", musician_id)

        def _delete(s: AppState) -> AppState:
            return s.model_copy(update={
                "musicians": tuple(m for m in s.musicians if m.id != musician_id),
                "gig_musicians": tuple(gm for gm in s.gig_musicians if gm.musician_id != musician_id),
            })

        if not self.ctx.commit("Delete musician", _delete):
            return False
        self.ctx.write("Delete musician", self.ctx.store.update(
            Collection.MUSICIANS, {"deleted_at": now_iso()}, self.ctx.match(id=musician_id),
        ))
        return True

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def save_document(
        self,
        song_id: str,
        doc_type: str = "Chart",
        instrument: str = "",
        title: str = "",
        url: Optional[str] = None,
        content: Optional[str] = None,
    ) -> str | None:
        """
        Attach a chart, lyric sheet or lead sheet to a song.

        A document with the same song, type, instrument and title is
        updated in place.  Lyrics are titled after the song.
        """
        song = self.state.song(song_id)
        if song is None:
            raise UnknownEntityError("song", song_id)
        instrument = instrument.strip() or "All"
        if doc_type == "Lyrics":
            title = f"{song.title} - {song.artist}" if song.artist else song.title
        else:
            title = title.strip() or f"{song.title} {doc_type}"
        existing = next(
            (
                d for d in self.state.documents
                if d.song_id == song_id and d.doc_type == doc_type
                and d.instrument == instrument and d.title == title
            ),
            None,
        )
        document = Document(
            id=existing.id if existing else new_id(),
            song_id=song_id,
            doc_type=doc_type,  # type: ignore[arg-type]
            instrument=instrument,
            title=title,
            url=_blank_to_none(url),
            content=content or None,
        )

        def _save(s: AppState) -> AppState:
            if existing is None:
                return s.model_copy(update={"documents": s.documents + (document,)})
            return s.model_copy(update={
                "documents": tuple(document if d.id == document.id else d for d in s.documents),
            })

        if not self.ctx.commit("Save document", _save):
            return None
        columns = {
            "doc_type": document.doc_type,
            "instrument": document.instrument,
            "title": document.title,
            "file_url": document.url,
            "content": document.content,
        }
        if existing is None:
            write = self.ctx.store.insert(
                Collection.DOCUMENTS,
                [self.ctx.row(id=document.id, song_id=song_id, **columns)],
            )
        else:
            write = self.ctx.store.update(Collection.DOCUMENTS, columns, self.ctx.match(id=document.id))
        self.ctx.write("Save document", write)
        return document.id

    def delete_document(self, document_id: str) -> bool:
        if not any(d.id == document_id for d in self.state.documents):
            raise UnknownEntityError("document", document_id)
        if not self.ctx.commit(
            "Delete document",
            lambda s: s.model_copy(update={
                "documents": tuple(d for d in s.documents if d.id != document_id),
            }),
        ):
            return False
        self.ctx.write(
            "Delete document",
            self.ctx.store.delete(Collection.DOCUMENTS, self.ctx.match(id=document_id)),
        )
        return True
