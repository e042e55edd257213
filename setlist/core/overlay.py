"""
Overlay resolution: per-gig facts layered over the shared song library.

Two overlays exist:
    section_overrides       (gig_id, song_id) → section label
    SingerKeyBinding.gig_overrides   gig_id → key, per singer

Precedence is resolved at read time by the functions here, never by
mutating the shared Song.  A song's own tags are the fallback for section
membership; a binding's default key is the fallback for keys.

Updaters (``with_*``) are pure AppState → AppState functions suitable for
``OptimisticStore.commit_change``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import NamedTuple

from setlist.core.section_codec import normalize_section
from setlist.models.domain import AppState, Gig, SingerKeyBinding, Song

# "Dance Set 2", "Dinner 3" → base "Dance" / "Dinner"
_NUMBERED_VARIANT_RE = re.compile(r"^(?P<base>.+?)\s+(?:set\s+)?\d+$", re.IGNORECASE)

UNSECTIONED = ""


class EffectiveKey(NamedTuple):
    """A singer's resolved key at one gig."""

    singer: str
    key: str
    overridden: bool


class KeyConflict(NamedTuple):
    """Bound singers disagree about the key of a song at a gig."""

    gig_id: str
    song_id: str
    keys_by_singer: dict[str, str]

    @property
    def distinct_keys(self) -> list[str]:
        return sorted(set(self.keys_by_singer.values()))


def section_base(label: str) -> str:
    """Strip a numbered-variant suffix: "Dance Set 2" → "Dance"."""
    label = normalize_section(label)
    match = _NUMBERED_VARIANT_RE.match(label)
    return match.group("base") if match else label


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def section_override(state: AppState, gig_id: str, song_id: str) -> str | None:
    """The override label for (gig, song), or None."""
    return state.section_overrides.get((gig_id, song_id))


def tag_section(gig: Gig, song: Song) -> str | None:
    """
    Section a song belongs to by its own tags alone.

    An exact label match wins over a numbered-variant match, so a gig with
    both "Dinner" and "Dinner Set 2" places a "Dinner"-tagged song in
    "Dinner".  Ties go to the first section in gig order.
    """
    for label in gig.sections:
        if song.has_tag(label):
            return label
    for label in gig.sections:
        base = section_base(label)
        if base != label and song.has_tag(base):
            return label
    return None


def effective_section(state: AppState, gig: Gig, song: Song) -> str | None:
    """
    Effective section of *song* at *gig*.

    An override for (gig, song) wins regardless of the song's tags.
    Returns None when the song belongs to no configured section.
    """
    override = section_override(state, gig.id, song.id)
    if override:
        return override
    return tag_section(gig, song)


def section_members(
    state: AppState,
    gig: Gig,
    manual_order: Mapping[str, Sequence[str]] | None = None,
) -> dict[str, list[Song]]:
    """
    Group a gig's songs by effective section.

    Keys follow ``gig.sections``; songs in no section are collected under
    ``UNSECTIONED``.  Within a section songs keep gig order unless
    *manual_order* gives an explicit song-id order for that section (ids it
    does not mention follow, in gig order).
    """
    groups: dict[str, list[Song]] = {label: [] for label in gig.sections}
    groups[UNSECTIONED] = []
    for song in state.gig_songs(gig.id):
        label = effective_section(state, gig, song)
        groups.setdefault(label or UNSECTIONED, []).append(song)

    if manual_order:
        for label, ordered_ids in manual_order.items():
            if label not in groups:
                continue
            rank = {sid: i for i, sid in enumerate(ordered_ids)}
            groups[label].sort(key=lambda s: rank.get(s.id, len(rank)))
    return groups


def with_gig_section(gig: Gig, label: str) -> Gig:
    """Add *label* to the gig's sections, after its base section when present."""
    label = normalize_section(label)
    if label in gig.sections:
        return gig
    base = section_base(label)
    sections = list(gig.sections)
    anchor = max(
        (i for i, existing in enumerate(sections) if section_base(existing) == base),
        default=None,
    )
    if anchor is None:
        sections.append(label)
    else:
        sections.insert(anchor + 1, label)
    return gig.model_copy(update={"sections": tuple(sections)})


def with_section_override(state: AppState, gig_id: str, song_id: str, section: str) -> AppState:
    """Set the (gig, song) override; the label joins the gig's sections."""
    label = normalize_section(section)
    if not label:
        raise ValueError("Section label must not be blank")
    overrides = dict(state.section_overrides)
    overrides[(gig_id, song_id)] = label
    next_state = state.model_copy(update={"section_overrides": overrides})
    gig = next_state.gig(gig_id)
    if gig is not None:
        next_state = next_state.replace_gig(with_gig_section(gig, label))
    return next_state


def without_section_override(state: AppState, gig_id: str, song_id: str) -> AppState:
    """Drop the (gig, song) override; tags decide membership again."""
    if (gig_id, song_id) not in state.section_overrides:
        return state
    overrides = {k: v for k, v in state.section_overrides.items() if k != (gig_id, song_id)}
    return state.model_copy(update={"section_overrides": overrides})


def sections_for_gig(
    gig_id: str,
    overrides: Mapping[tuple[str, str], str],
    base_sections: Sequence[str],
) -> tuple[str, ...]:
    """Configured sections: the base list plus every label a gig override uses."""
    gig = Gig(id=gig_id, name="", date="", sections=tuple(base_sections))
    for (override_gig, _song), label in sorted(overrides.items()):
        if override_gig == gig_id:
            gig = with_gig_section(gig, label)
    return gig.sections


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


def effective_keys(gig: Gig, song: Song) -> list[EffectiveKey]:
    """
    Every bound singer's key for *song* at *gig*.

    Singers with no binding are absent ("unassigned"); the song's original
    key is never substituted for them.
    """
    return [
        EffectiveKey(
            singer=binding.singer,
            key=binding.key_for(gig.id),
            overridden=gig.id in binding.gig_overrides,
        )
        for binding in song.keys
    ]


def gig_keys_text(gig: Gig, song: Song) -> str:
    """Gig-specific keys only, e.g. ``"Maya: D · Sam: E"``; empty when none."""
    entries = [
        f"{binding.singer}: {binding.gig_overrides[gig.id]}"
        for binding in song.keys
        if binding.gig_overrides.get(gig.id)
    ]
    return " · ".join(entries)


def key_conflict(gig: Gig, song: Song) -> KeyConflict | None:
    """Return a conflict when the singers' gig overrides disagree, else None."""
    keys_by_singer = {
        binding.singer: binding.gig_overrides[gig.id]
        for binding in song.keys
        if gig.id in binding.gig_overrides
    }
    if len(set(keys_by_singer.values())) < 2:
        return None
    return KeyConflict(gig_id=gig.id, song_id=song.id, keys_by_singer=keys_by_singer)


def with_singer_key(state: AppState, gig_id: str, song_id: str, singer: str, key: str) -> AppState:
    """
    Set *singer*'s key for (gig, song).

    A singer with no binding gets one whose default is *key*.
    """
    song = state.song(song_id)
    if song is None:
        return state
    binding = song.binding_for(singer)
    if binding is None:
        keys = song.keys + (
            SingerKeyBinding(singer=singer, default_key=key, gig_overrides={gig_id: key}),
        )
    else:
        updated = binding.model_copy(update={
            "gig_overrides": {**binding.gig_overrides, gig_id: key},
        })
        keys = tuple(updated if b.singer == singer else b for b in song.keys)
    next_state = state.replace_song(song.model_copy(update={"keys": keys}))
    if singer not in next_state.singers_catalog:
        next_state = next_state.model_copy(update={
            "singers_catalog": next_state.singers_catalog + (singer,),
        })
    return next_state


def with_resolved_key(state: AppState, gig_id: str, song_id: str, key: str) -> AppState:
    """Rewrite every existing gig override for (gig, song) to *key*."""
    song = state.song(song_id)
    if song is None:
        return state
    keys = tuple(
        binding.model_copy(update={"gig_overrides": {**binding.gig_overrides, gig_id: key}})
        if gig_id in binding.gig_overrides
        else binding
        for binding in song.keys
    )
    return state.replace_song(song.model_copy(update={"keys": keys}))


def overridden_singers(song: Song, gig_id: str) -> list[str]:
    """Singers holding a gig override for *gig_id* on *song*."""
    return [b.singer for b in song.keys if gig_id in b.gig_overrides]
