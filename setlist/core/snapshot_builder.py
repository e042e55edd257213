"""
Snapshot builder: raw collection rows → AppState.

Pure and synchronous.  The reconciler fetches every tracked collection and
hands the rows here; nothing in this module touches the backend.

Build order:
    1. Tag rows are split by the section codec into overlay tokens
       (→ section_overrides) and genuine tags (→ Song.tags, tags_catalog).
    2. Gig song order comes from membership rows, sorted by sort_order.
    3. Recovery: a (gig, song) pair referenced by a gig-singer-key row but
       missing from the gig's membership order is appended to the gig.
    4. Every catalog is rebuilt from scratch.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping

from setlist.config import DEFAULT_SECTIONS, DEFAULT_SPECIAL_TYPES, DEFAULT_TAGS
from setlist.contracts.row_types import Collection, Row
from setlist.core.overlay import sections_for_gig
from setlist.core.section_codec import decode
from setlist.models.domain import (
    AppState,
    Document,
    Gig,
    GigMusician,
    Musician,
    SingerKeyBinding,
    Song,
    SpecialRequest,
    unique_tags,
)

logger = logging.getLogger(__name__)

Rows = Mapping[Collection, list[Row]]


def _text(row: Row, column: str, default: str = "") -> str:
    value = row.get(column)
    return default if value is None else str(value)


def _optional(row: Row, column: str) -> str | None:
    value = row.get(column)
    return None if value is None or value == "" else str(value)


def _strings(row: Row, column: str) -> tuple[str, ...]:
    value = row.get(column)
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(v) for v in value)


def _sort_key(row: Row) -> tuple[bool, float]:
    order = row.get("sort_order")
    if isinstance(order, (int, float)) and not isinstance(order, bool):
        return (False, float(order))
    return (True, 0.0)


def _live(rows: Iterable[Row]) -> list[Row]:
    return [r for r in rows if not r.get("deleted_at")]


def _ordered_unique(values: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            out.append(value)
    return tuple(out)


# ---------------------------------------------------------------------------
# Gig song ordering
# ---------------------------------------------------------------------------


def gig_song_order(
    gig_song_rows: Iterable[Row],
    gig_singer_key_rows: Iterable[Row],
    live_song_ids: set[str],
    gig_ids: set[str],
) -> dict[str, list[str]]:
    """
    Ordered song ids per gig.

    Membership rows decide the order.  A pair that only survives in a
    gig-singer-key row is appended after the ordered songs, in row order.
    Songs that are not live are skipped either way.
    """
    order: dict[str, list[str]] = defaultdict(list)
    for row in sorted(gig_song_rows, key=_sort_key):
        gig_id, song_id = _text(row, "gig_id"), _text(row, "song_id")
        if song_id not in live_song_ids or song_id in order[gig_id]:
            continue
        order[gig_id].append(song_id)

    recovered = 0
    for row in gig_singer_key_rows:
        gig_id, song_id = _text(row, "gig_id"), _text(row, "song_id")
        if gig_id not in gig_ids or song_id not in live_song_ids:
            continue
        if song_id in order[gig_id]:
            continue
        order[gig_id].append(song_id)
        recovered += 1
    if recovered:
        logger.warning(
            "⚠️ Recovered %d gig song(s) from key overrides with no membership row",
            recovered,
        )
    return dict(order)


def next_sort_orders(gig_song_rows: Iterable[Row]) -> dict[str, int]:
    """One past the highest numeric sort_order per gig, over every membership row."""
    highest: dict[str, int] = {}
    for row in gig_song_rows:
        missing, order = _sort_key(row)
        if missing:
            continue
        gig_id = _text(row, "gig_id")
        highest[gig_id] = max(highest.get(gig_id, 0), int(order) + 1)
    return highest


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


def build_snapshot(rows: Rows) -> AppState:
    """Rebuild the complete AppState from one full fetch."""
    song_rows = _live(rows.get(Collection.SONGS, []))
    gig_rows = _live(rows.get(Collection.GIGS, []))
    tag_rows = rows.get(Collection.SONG_TAGS, [])
    key_rows = rows.get(Collection.SONG_KEYS, [])
    gig_key_rows = rows.get(Collection.GIG_SINGER_KEYS, [])
    request_rows = rows.get(Collection.SPECIAL_REQUESTS, [])
    musician_rows = _live(rows.get(Collection.MUSICIANS, []))

    live_song_ids = {_text(r, "id") for r in song_rows}
    gig_ids = {_text(r, "id") for r in gig_rows}

    # 1. Tags and overlay tokens
    tags_by_song: dict[str, list[str]] = defaultdict(list)
    genuine_tags: list[str] = []
    section_overrides: dict[tuple[str, str], str] = {}
    for row in tag_rows:
        song_id, value = _text(row, "song_id"), _text(row, "tag")
        token = decode(value)
        if token is not None:
            if song_id in live_song_ids:
                section_overrides[(token.gig_id, song_id)] = token.section
            continue
        tags_by_song[song_id].append(value)
        genuine_tags.append(value)

    # Keys: default bindings plus per-gig overrides keyed by (song, singer)
    gig_overrides: dict[tuple[str, str], dict[str, str]] = defaultdict(dict)
    for row in gig_key_rows:
        pair = (_text(row, "song_id"), _text(row, "singer_name"))
        gig_overrides[pair][_text(row, "gig_id")] = _text(row, "gig_key")

    bindings_by_song: dict[str, list[SingerKeyBinding]] = defaultdict(list)
    for row in key_rows:
        song_id, singer = _text(row, "song_id"), _text(row, "singer_name")
        if any(b.singer == singer for b in bindings_by_song[song_id]):
            continue
        bindings_by_song[song_id].append(SingerKeyBinding(
            singer=singer,
            default_key=_text(row, "default_key"),
            gig_overrides=dict(gig_overrides.get((song_id, singer), {})),
        ))

    special_count: dict[str, int] = defaultdict(int)
    for row in request_rows:
        if row.get("song_id"):
            special_count[_text(row, "song_id")] += 1

    songs = tuple(
        Song(
            id=_text(row, "id"),
            title=_text(row, "title"),
            artist=_text(row, "artist"),
            original_key=_text(row, "original_key"),
            audio_url=_text(row, "audio_url"),
            tags=unique_tags(tags_by_song.get(_text(row, "id"), [])),
            keys=tuple(bindings_by_song.get(_text(row, "id"), [])),
            special_played_count=special_count.get(_text(row, "id"), 0),
        )
        for row in song_rows
    )

    # 2 + 3. Gig ordering with recovery
    order = gig_song_order(
        rows.get(Collection.GIG_SONGS, []),
        gig_key_rows,
        live_song_ids,
        gig_ids,
    )
    next_orders = next_sort_orders(rows.get(Collection.GIG_SONGS, []))
    gigs = tuple(
        Gig(
            id=_text(row, "id"),
            name=_text(row, "gig_name"),
            date=_text(row, "gig_date"),
            venue=_text(row, "venue_address"),
            song_ids=tuple(order.get(_text(row, "id"), [])),
            sections=sections_for_gig(_text(row, "id"), section_overrides, DEFAULT_SECTIONS),
            next_sort_order=next_orders.get(_text(row, "id"), 0),
        )
        for row in gig_rows
    )

    special_requests = tuple(
        SpecialRequest(
            id=_text(row, "id"),
            gig_id=_text(row, "gig_id"),
            request_type=_text(row, "request_type"),
            song_title=_text(row, "song_title"),
            song_artist=_text(row, "song_artist"),
            song_id=_optional(row, "song_id"),
            singers=_strings(row, "singers"),
            key=_text(row, "song_key"),
            note=_optional(row, "note"),
            dj_only=bool(row.get("dj_only") or False),
            external_audio_url=_optional(row, "external_audio_url"),
        )
        for row in request_rows
    )

    documents = tuple(
        Document(
            id=_text(row, "id"),
            song_id=_text(row, "song_id"),
            doc_type=_text(row, "doc_type", "Chart"),
            instrument=_text(row, "instrument", "All"),
            title=_text(row, "title"),
            url=_optional(row, "file_url"),
            content=_optional(row, "content"),
        )
        for row in rows.get(Collection.DOCUMENTS, [])
    )

    musicians = tuple(
        Musician(
            id=_text(row, "id"),
            name=_text(row, "name"),
            roster=_text(row, "roster", "core"),
            email=_optional(row, "email"),
            phone=_optional(row, "phone"),
            instruments=_strings(row, "instruments"),
            singer=_optional(row, "singer"),
        )
        for row in musician_rows
    )
    musician_ids = {m.id for m in musicians}
    gig_musicians = tuple(
        GigMusician(
            gig_id=_text(row, "gig_id"),
            musician_id=_text(row, "musician_id"),
            status=_text(row, "status", "active"),
            note=_optional(row, "note"),
        )
        for row in rows.get(Collection.GIG_MUSICIANS, [])
        if _text(row, "musician_id") in musician_ids
    )

    # 4. Catalogs
    tags_catalog = unique_tags(DEFAULT_TAGS, genuine_tags)
    special_types = _ordered_unique([
        *DEFAULT_SPECIAL_TYPES,
        *(_text(r, "request_type") for r in request_rows),
    ])
    singers_catalog = _ordered_unique([
        *(_text(r, "singer_name") for r in key_rows),
        *(singer for r in request_rows for singer in _strings(r, "singers")),
    ])
    now_playing = {
        _text(row, "gig_id"): _optional(row, "song_id")
        for row in rows.get(Collection.NOW_PLAYING, [])
    }

    return AppState(
        songs=songs,
        gigs=gigs,
        special_requests=special_requests,
        tags_catalog=tags_catalog,
        special_types=special_types,
        singers_catalog=singers_catalog,
        documents=documents,
        musicians=musicians,
        gig_musicians=gig_musicians,
        section_overrides=section_overrides,
        now_playing=now_playing,
    )
