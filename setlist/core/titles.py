"""
Song title matching and pasted-list parsing.

Titles are compared after normalization: lower-cased, apostrophes removed,
whitespace collapsed.  A pasted song list has one song per line, optionally
bulleted or numbered, as ``Title``, ``Title - Artist`` or
``Title – Artist (notes)``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import NamedTuple

from setlist.models.domain import Song

_APOSTROPHES_RE = re.compile(r"[’']")
_BULLET_RE = re.compile(r"^[\-\*•\d\.\)\s]+")
_TRAILING_NOTE_RE = re.compile(r"\s*\(.*\)\s*$")
_DIVIDERS = (" – ", " - ")


class PastedSong(NamedTuple):
    title: str
    artist: str


def normalize_title(value: str) -> str:
    return " ".join(_APOSTROPHES_RE.sub("", value.lower()).split())


def find_song(songs: Iterable[Song], title: str, artist: str = "") -> Song | None:
    """
    First song whose normalized title matches.

    When *artist* is given the artist must match too; without it any
    artist matches.
    """
    title_key = normalize_title(title)
    artist_key = normalize_title(artist)
    for song in songs:
        if normalize_title(song.title) != title_key:
            continue
        if not artist_key or normalize_title(song.artist) == artist_key:
            return song
    return None


def parse_song_line(line: str) -> PastedSong | None:
    cleaned = _BULLET_RE.sub("", line.strip()).strip()
    if not cleaned:
        return None
    for divider in _DIVIDERS:
        if divider in cleaned:
            title, _, artist = cleaned.partition(divider)
            title = title.strip()
            if not title:
                return None
            return PastedSong(title, _TRAILING_NOTE_RE.sub("", artist).strip())
    return PastedSong(cleaned, "")


def parse_song_list(text: str) -> list[PastedSong]:
    """Parse a pasted list; blank and bullet-only lines are skipped."""
    parsed = (parse_song_line(line) for line in text.splitlines())
    return [entry for entry in parsed if entry is not None]
