"""
Tests for overlay resolution (sections and singer keys per gig).

Pure functions over hand-built AppState values; no store involved.
"""
from __future__ import annotations

import pytest

from setlist.core.overlay import (
    UNSECTIONED,
    effective_keys,
    effective_section,
    gig_keys_text,
    key_conflict,
    overridden_singers,
    section_base,
    section_members,
    sections_for_gig,
    tag_section,
    with_gig_section,
    with_resolved_key,
    with_section_override,
    with_singer_key,
    without_section_override,
)
from setlist.models.domain import AppState, Gig, SingerKeyBinding, Song


def _state(*songs: Song, gigs: tuple[Gig, ...] = ()) -> AppState:
    return AppState(songs=songs, gigs=gigs)


def _gig(gig_id: str, *song_ids: str, sections: tuple[str, ...] = ("Dinner", "Latin", "Dance")) -> Gig:
    return Gig(id=gig_id, name=gig_id, date="2026-06-01", song_ids=song_ids, sections=sections)


class TestSectionBase:
    @pytest.mark.parametrize("label,base", [
        ("Dance Set 2", "Dance"),
        ("Dinner 3", "Dinner"),
        ("dance set 10", "dance"),
        ("Dinner", "Dinner"),
    ])
    def test_strips_numbered_suffix(self, label: str, base: str) -> None:
        assert section_base(label) == base


class TestEffectiveSection:
    def test_tag_decides_without_override(self) -> None:
        song = Song(id="s", title="September", tags=("Dinner",))
        gig = _gig("g", "s")
        assert effective_section(_state(song, gigs=(gig,)), gig, song) == "Dinner"

    def test_override_wins_over_tags(self) -> None:
        song = Song(id="s", title="September", tags=("Dinner",))
        gig = _gig("g", "s")
        state = with_section_override(_state(song, gigs=(gig,)), "g", "s", "Dance Set 2")
        assert effective_section(state, state.gig("g"), song) == "Dance Set 2"

    def test_override_applies_even_with_no_tags(self) -> None:
        song = Song(id="s", title="Untagged")
        gig = _gig("g", "s")
        state = with_section_override(_state(song, gigs=(gig,)), "g", "s", "Latin")
        assert effective_section(state, state.gig("g"), song) == "Latin"

    def test_override_is_scoped_to_its_gig(self) -> None:
        song = Song(id="s", title="September", tags=("Dinner",))
        g, h = _gig("g", "s"), _gig("h", "s")
        state = with_section_override(_state(song, gigs=(g, h)), "g", "s", "Dance Set 2")
        assert effective_section(state, state.gig("g"), song) == "Dance Set 2"
        assert effective_section(state, state.gig("h"), song) == "Dinner"

    def test_no_match_is_none(self) -> None:
        song = Song(id="s", title="Ballad", tags=("Special Request",))
        gig = _gig("g", "s")
        assert effective_section(_state(song, gigs=(gig,)), gig, song) is None

    def test_exact_label_beats_numbered_variant(self) -> None:
        song = Song(id="s", title="Fly Me", tags=("Dinner",))
        gig = _gig("g", "s", sections=("Dinner Set 2", "Dinner"))
        assert tag_section(gig, song) == "Dinner"

    def test_numbered_variant_matches_base_tag(self) -> None:
        song = Song(id="s", title="Shout", tags=("dance",))
        gig = _gig("g", "s", sections=("Dinner", "Dance Set 2"))
        assert tag_section(gig, song) == "Dance Set 2"

    def test_clearing_override_restores_tag_section(self) -> None:
        song = Song(id="s", title="September", tags=("Dinner",))
        gig = _gig("g", "s")
        state = with_section_override(_state(song, gigs=(gig,)), "g", "s", "Latin")
        state = without_section_override(state, "g", "s")
        assert effective_section(state, state.gig("g"), song) == "Dinner"


class TestGigSections:
    def test_variant_is_inserted_after_its_base(self) -> None:
        gig = with_gig_section(_gig("g"), "Dinner Set 2")
        assert gig.sections == ("Dinner", "Dinner Set 2", "Latin", "Dance")

    def test_unknown_label_is_appended(self) -> None:
        gig = with_gig_section(_gig("g"), "Ceremony")
        assert gig.sections[-1] == "Ceremony"

    def test_existing_label_is_unchanged(self) -> None:
        gig = _gig("g")
        assert with_gig_section(gig, "Latin") is gig

    def test_sections_for_gig_only_uses_own_overrides(self) -> None:
        overrides = {("g", "s1"): "Dance Set 2", ("h", "s1"): "Ceremony"}
        assert sections_for_gig("g", overrides, ["Dinner", "Dance"]) == ("Dinner", "Dance", "Dance Set 2")

    def test_override_adds_label_to_gig(self) -> None:
        song = Song(id="s", title="September")
        state = with_section_override(_state(song, gigs=(_gig("g", "s"),)), "g", "s", "Dance Set 2")
        assert "Dance Set 2" in state.gig("g").sections

    def test_blank_override_rejected(self) -> None:
        state = _state(Song(id="s", title="x"), gigs=(_gig("g", "s"),))
        with pytest.raises(ValueError):
            with_section_override(state, "g", "s", "  ")


class TestSectionMembers:
    def test_groups_in_gig_order(self) -> None:
        songs = (
            Song(id="a", title="A", tags=("Dance",)),
            Song(id="b", title="B", tags=("Dinner",)),
            Song(id="c", title="C", tags=("Dance",)),
            Song(id="d", title="D"),
        )
        gig = _gig("g", "a", "b", "c", "d")
        groups = section_members(_state(*songs, gigs=(gig,)), gig)
        assert [s.id for s in groups["Dance"]] == ["a", "c"]
        assert [s.id for s in groups["Dinner"]] == ["b"]
        assert [s.id for s in groups[UNSECTIONED]] == ["d"]

    def test_manual_order_applies_within_section(self) -> None:
        songs = (
            Song(id="a", title="A", tags=("Dance",)),
            Song(id="b", title="B", tags=("Dance",)),
            Song(id="c", title="C", tags=("Dance",)),
        )
        gig = _gig("g", "a", "b", "c")
        groups = section_members(_state(*songs, gigs=(gig,)), gig, {"Dance": ["c", "a"]})
        assert [s.id for s in groups["Dance"]] == ["c", "a", "b"]


def _maya_song(**overrides: str) -> Song:
    return Song(
        id="s",
        title="September",
        original_key="A",
        keys=(SingerKeyBinding(singer="Maya", default_key="C", gig_overrides=overrides),),
    )


class TestEffectiveKeys:
    def test_override_at_one_gig_default_at_another(self) -> None:
        song = _maya_song(g1="D")
        assert effective_keys(_gig("g1"), song)[0].key == "D"
        assert effective_keys(_gig("g1"), song)[0].overridden
        assert effective_keys(_gig("g2"), song)[0].key == "C"
        assert not effective_keys(_gig("g2"), song)[0].overridden

    def test_unbound_singer_is_absent(self) -> None:
        song = Song(id="s", title="September", original_key="A")
        assert effective_keys(_gig("g1"), song) == []

    def test_gig_keys_text_lists_overrides_only(self) -> None:
        song = Song(id="s", title="x", keys=(
            SingerKeyBinding(singer="Maya", default_key="C", gig_overrides={"g": "D"}),
            SingerKeyBinding(singer="Sam", default_key="E"),
        ))
        assert gig_keys_text(_gig("g"), song) == "Maya: D"
        assert gig_keys_text(_gig("h"), song) == ""


class TestKeyConflicts:
    def _song(self) -> Song:
        return Song(id="s", title="x", keys=(
            SingerKeyBinding(singer="Maya", default_key="C", gig_overrides={"g": "D"}),
            SingerKeyBinding(singer="Sam", default_key="E", gig_overrides={"g": "F"}),
            SingerKeyBinding(singer="Ana", default_key="G"),
        ))

    def test_disagreeing_overrides_conflict(self) -> None:
        conflict = key_conflict(_gig("g"), self._song())
        assert conflict is not None
        assert conflict.keys_by_singer == {"Maya": "D", "Sam": "F"}
        assert conflict.distinct_keys == ["D", "F"]

    def test_no_conflict_at_other_gig(self) -> None:
        assert key_conflict(_gig("h"), self._song()) is None

    def test_resolve_rewrites_only_existing_overrides(self) -> None:
        state = with_resolved_key(_state(self._song()), "g", "s", "Eb")
        song = state.song("s")
        assert {b.singer: b.gig_overrides.get("g") for b in song.keys} == {
            "Maya": "Eb", "Sam": "Eb", "Ana": None,
        }
        assert key_conflict(_gig("g"), song) is None
        assert overridden_singers(song, "g") == ["Maya", "Sam"]

    def test_resolve_is_idempotent(self) -> None:
        once = with_resolved_key(_state(self._song()), "g", "s", "Eb")
        assert with_resolved_key(once, "g", "s", "Eb") == once


class TestWithSingerKey:
    def test_existing_binding_gets_gig_override(self) -> None:
        state = with_singer_key(_state(_maya_song()), "g1", "s", "Maya", "D")
        binding = state.song("s").binding_for("Maya")
        assert binding.default_key == "C"
        assert binding.gig_overrides == {"g1": "D"}

    def test_new_singer_gets_binding_and_catalog_entry(self) -> None:
        state = with_singer_key(_state(_maya_song()), "g1", "s", "Sam", "E")
        binding = state.song("s").binding_for("Sam")
        assert binding.default_key == "E"
        assert binding.gig_overrides == {"g1": "E"}
        assert "Sam" in state.singers_catalog

    def test_shared_song_is_not_mutated(self) -> None:
        original = _state(_maya_song())
        with_singer_key(original, "g1", "s", "Maya", "D")
        assert original.song("s").binding_for("Maya").gig_overrides == {}
