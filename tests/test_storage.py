"""Tests for the SQLite repositories: pending buffer, turns, compaction, facts."""

from __future__ import annotations

from datetime import timedelta

import pytest

from mimic_bot.core.types import Role
from mimic_bot.storage.models import Turn


class TestPendingBuffer:
    async def test_append_and_list_in_order(self, conversations, pending):
        await conversations.upsert_party(7, first_name="Ann")
        first = await pending.append(7, "one", 2, source_message_id=11)
        second = await pending.append(7, "two", 2, source_message_id=12, image=b"\x89PNG")

        rows = await pending.list_unprocessed(7)
        assert [r.id for r in rows] == [first, second]
        assert rows[1].image == b"\x89PNG"
        assert not rows[0].from_owner

    async def test_mark_processed_is_idempotent_and_partial(self, conversations, pending):
        await conversations.upsert_party(7)
        a = await pending.append(7, "a", 0)
        b = await pending.append(7, "b", 0)

        assert await pending.mark_processed([a]) == 1
        assert await pending.mark_processed([a, b]) == 1
        assert await pending.mark_processed([a, b]) == 0
        assert await pending.mark_processed([]) == 0
        assert await pending.list_unprocessed(7) == []

    async def test_claim_all_flags_rows(self, conversations, pending):
        await conversations.upsert_party(7)
        await pending.append(7, "a", 0)
        await pending.append(7, "b", 0)

        claimed = await pending.claim_all(7)
        assert [c.content for c in claimed] == ["a", "b"]
        assert await pending.list_unprocessed(7) == []
        assert await pending.claim_all(7) == []

    async def test_mark_processed_by_source(self, conversations, pending):
        await conversations.upsert_party(7)
        await pending.append(7, "keep", 0, source_message_id=1)
        await pending.append(7, "gone", 0, source_message_id=2)

        assert await pending.mark_processed_by_source(7, [2, 99]) == 1
        assert [r.content for r in await pending.list_unprocessed(7)] == ["keep"]

    async def test_prune_only_removes_old_processed_rows(self, db, conversations, pending):
        await conversations.upsert_party(7)
        old = await pending.append(7, "old", 0)
        await pending.append(7, "live", 0)
        await pending.mark_processed([old])

        assert await pending.prune_processed(timedelta(hours=1)) == 0
        assert await pending.prune_processed(timedelta(seconds=-60)) == 1

        cursor = await db.conn.execute("SELECT content FROM pending_messages")
        assert [row["content"] for row in await cursor.fetchall()] == ["live"]


class TestConversations:
    async def test_upsert_party_refreshes_names(self, conversations):
        await conversations.upsert_party(7, username="ann", first_name="Ann")
        party = await conversations.upsert_party(7, username="ann2", first_name="Anna", last_name="K")
        assert party.username == "ann2"
        assert party.display_name == "Anna K"

    async def test_upsert_party_raises_when_row_vanishes(self, conversations, monkeypatch):
        async def _missing(party_id):
            return None

        monkeypatch.setattr(conversations, "get_party", _missing)
        with pytest.raises(RuntimeError, match="Party 7"):
            await conversations.upsert_party(7)

    async def test_recent_turns_oldest_first(self, conversations):
        await conversations.upsert_party(7)
        conv = await conversations.get_or_create_conversation(7)
        for i in range(5):
            await conversations.save_turn(Turn(conv.id, Role.USER, f"m{i}"))

        recent = await conversations.recent_turns(conv.id, 3)
        assert [t.content for t in recent] == ["m2", "m3", "m4"]

    async def test_ignored_flag_and_list(self, conversations):
        await conversations.upsert_party(7, first_name="Ann")
        await conversations.upsert_party(8, first_name="Bob")
        await conversations.set_ignored(7, True)

        assert (await conversations.get_or_create_conversation(7)).ignored
        assert [p.id for p in await conversations.list_ignored_parties()] == [7]

        await conversations.set_ignored(7, False)
        assert await conversations.list_ignored_parties() == []

    async def test_custom_context_roundtrip(self, conversations):
        await conversations.upsert_party(7)
        assert await conversations.set_custom_context(7, "My manager")
        assert (await conversations.get_party(7)).custom_context == "My manager"
        await conversations.set_custom_context(7, None)
        assert (await conversations.get_party(7)).custom_context is None


class TestCompactionAtomicity:
    async def test_replace_summary_deletes_turns(self, conversations):
        await conversations.upsert_party(7)
        conv = await conversations.get_or_create_conversation(7)
        ids = [await conversations.save_turn(Turn(conv.id, Role.USER, f"m{i}")) for i in range(4)]

        assert await conversations.replace_summary(conv.id, "sum", ids[:2]) == 2
        assert await conversations.count_turns(conv.id) == 2
        assert (await conversations.get_or_create_conversation(7)).summary == "sum"

    async def test_failed_delete_rolls_back_summary(self, conversations, monkeypatch):
        await conversations.upsert_party(7)
        conv = await conversations.get_or_create_conversation(7)
        ids = [await conversations.save_turn(Turn(conv.id, Role.USER, f"m{i}")) for i in range(4)]

        async def _boom(conn, turn_ids):
            raise RuntimeError("disk full")

        monkeypatch.setattr(conversations, "_delete_turns", _boom)
        with pytest.raises(RuntimeError):
            await conversations.replace_summary(conv.id, "sum", ids[:2])

        assert await conversations.count_turns(conv.id) == 4
        assert (await conversations.get_or_create_conversation(7)).summary is None


class TestFacts:
    async def test_upsert_keeps_one_value_per_category(self, conversations):
        await conversations.upsert_party(7)
        await conversations.upsert_fact(7, "work", "Designer")
        await conversations.upsert_fact(7, "work", "Architect")
        await conversations.upsert_fact(7, "birthday", "May 15")

        facts = {f.category: f.value for f in await conversations.get_facts(7)}
        assert facts == {"work": "Architect", "birthday": "May 15"}

    async def test_delete_facts(self, conversations):
        await conversations.upsert_party(7)
        await conversations.upsert_fact(7, "work", "Designer")
        await conversations.upsert_fact(7, "plans", "Trip")

        assert await conversations.delete_facts(7, "work") == 1
        assert [f.category for f in await conversations.get_facts(7)] == ["plans"]
        assert await conversations.delete_facts(7) == 1
        assert await conversations.get_facts(7) == []

    async def test_party_stats(self, conversations, pending):
        await conversations.upsert_party(7)
        conv = await conversations.get_or_create_conversation(7)
        await conversations.save_turn(Turn(conv.id, Role.USER, "hi"))
        await conversations.save_turn(Turn(conv.id, Role.ASSISTANT, "hey"))
        await pending.append(7, "later", 0)
        await conversations.upsert_fact(7, "work", "Designer")

        stats = await conversations.party_stats(7)
        assert (stats.conversations, stats.turns, stats.user_turns) == (1, 2, 1)
        assert (stats.assistant_turns, stats.pending, stats.facts) == (1, 1, 1)
