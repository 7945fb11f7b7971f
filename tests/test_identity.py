"""
tests/test_identity.py — Roster Identity Resolution
====================================================
"""

from __future__ import annotations

from factionhub.engine.identity import (
    Identity,
    RosterIndex,
    match_containment,
    match_exact,
    resolve_identity,
)

JON = Identity("2001", "jonsmith", "Jon Smith")
MIKE = Identity("2002", "mike_99", "Mike Rowe")
DREW = Identity("1001", "drew", "Drew Carter")
ROSTER = [JON, MIKE, DREW]


class TestRosterIndex:
    def test_deduplicates_by_discord_id(self):
        index = RosterIndex.build([JON, Identity("2001", "other", None), MIKE])
        assert len(index) == 2
        assert index.keys["jonsmith"] is JON

    def test_digit_stripped_key(self):
        index = RosterIndex.build(ROSTER)
        assert index.keys["mike_"] is MIKE

    def test_skips_members_without_username(self):
        assert len(RosterIndex.build([Identity("9", "", "Ghost")])) == 0


class TestStrategies:
    def test_exact_on_username_and_display_name(self):
        index = RosterIndex.build(ROSTER)
        assert match_exact("jonsmith", index) is JON
        assert match_exact("jon smith", index) is JON
        assert match_exact("nobody", index) is None

    def test_containment_both_directions(self):
        index = RosterIndex.build(ROSTER)
        assert match_containment("jonsmith123", index) is JON
        assert match_containment("drew", index) is DREW
        assert match_containment("rowe", index) is MIKE

    def test_containment_ignores_single_characters(self):
        assert match_containment("j", RosterIndex.build(ROSTER)) is None


class TestResolveIdentity:
    def test_handle_and_full_name_resolve_to_same_member(self):
        assert resolve_identity("@jonsmith", ROSTER) is JON
        assert resolve_identity("Jon Smith", ROSTER) is JON

    def test_case_insensitive(self):
        assert resolve_identity("@JONSMITH", ROSTER) is JON

    def test_unregistered_name(self):
        assert resolve_identity("Zed Quill", ROSTER) is None

    def test_empty_inputs(self):
        assert resolve_identity("@", ROSTER) is None
        assert resolve_identity("Jon Smith", []) is None

    def test_custom_strategy_order(self):
        assert resolve_identity("jonsmith123", ROSTER, strategies=[match_exact]) is None
