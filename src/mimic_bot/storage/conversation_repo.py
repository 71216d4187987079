"""Repository for parties, conversations, turns and facts."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from mimic_bot.core.types import Role
from mimic_bot.log import get_logger
from mimic_bot.storage.database import Database
from mimic_bot.storage.models import Conversation, Fact, Party, PartyStats, Turn

logger = get_logger(__name__)

_NOW = "strftime('%Y-%m-%dT%H:%M:%f','now')"


class ConversationRepository:
    """CRUD over the conversation side of the schema."""

    def __init__(self, db: Database):
        self._db = db

    # -- parties ---------------------------------------------------------

    async def upsert_party(
        self,
        party_id: int,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Party:
        """Create the party on first sight, refresh its names afterwards."""
        async with self._db.transaction() as conn:
            await conn.execute(
                f"""INSERT INTO parties (id, username, first_name, last_name)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       username = excluded.username,
                       first_name = excluded.first_name,
                       last_name = excluded.last_name,
                       updated_at = {_NOW}""",
                (party_id, username, first_name, last_name),
            )
        party = await self.get_party(party_id)
        if party is None:
            raise RuntimeError(f"Party {party_id} missing after upsert")
        return party

    async def get_party(self, party_id: int) -> Party | None:
        cursor = await self._db.conn.execute("SELECT * FROM parties WHERE id = ?", (party_id,))
        row = await cursor.fetchone()
        return self._row_to_party(row) if row else None

    async def set_custom_context(self, party_id: int, context: Optional[str]) -> bool:
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"UPDATE parties SET custom_context = ?, updated_at = {_NOW} WHERE id = ?",
                (context, party_id),
            )
        return cursor.rowcount > 0

    # -- conversations ---------------------------------------------------

    async def get_or_create_conversation(self, party_id: int) -> Conversation:
        """Return the most recently active conversation, creating one if needed."""
        conversation = await self.current_conversation(party_id)
        if conversation:
            return conversation
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "INSERT INTO conversations (party_id) VALUES (?)", (party_id,)
            )
        logger.info("conversation_created", party_id=party_id, conversation_id=cursor.lastrowid)
        conversation = await self.current_conversation(party_id)
        if conversation is None:
            raise RuntimeError(f"Conversation for party {party_id} missing after insert")
        return conversation

    async def current_conversation(self, party_id: int) -> Conversation | None:
        cursor = await self._db.conn.execute(
            """SELECT * FROM conversations WHERE party_id = ?
               ORDER BY last_activity_at DESC, id DESC LIMIT 1""",
            (party_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_conversation(row) if row else None

    async def set_ignored(self, party_id: int, ignored: bool) -> Conversation:
        conversation = await self.get_or_create_conversation(party_id)
        async with self._db.transaction() as conn:
            await conn.execute(
                "UPDATE conversations SET ignored = ? WHERE id = ?",
                (int(ignored), conversation.id),
            )
        conversation.ignored = ignored
        logger.info("conversation_ignored_set", party_id=party_id, ignored=ignored)
        return conversation

    async def list_ignored_parties(self) -> list[Party]:
        cursor = await self._db.conn.execute(
            """SELECT DISTINCT p.* FROM parties p
               JOIN conversations c ON c.party_id = p.id
               WHERE c.ignored = 1
               ORDER BY p.id"""
        )
        rows = await cursor.fetchall()
        return [self._row_to_party(row) for row in rows]

    # -- turns -----------------------------------------------------------

    async def save_turn(self, turn: Turn) -> int:
        """Append a turn and bump the conversation's activity timestamp."""
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                """INSERT INTO turns (conversation_id, role, content, image, source_message_id)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    turn.conversation_id,
                    str(turn.role),
                    turn.content,
                    turn.image,
                    turn.source_message_id,
                ),
            )
            await conn.execute(
                f"UPDATE conversations SET last_activity_at = {_NOW} WHERE id = ?",
                (turn.conversation_id,),
            )
        return cursor.lastrowid  # type: ignore[return-value]

    async def recent_turns(self, conversation_id: int, limit: int) -> list[Turn]:
        """The newest *limit* turns, returned oldest first."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM turns WHERE conversation_id = ?
               ORDER BY created_at DESC, id DESC
               LIMIT ?""",
            (conversation_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_turn(row) for row in reversed(rows)]

    async def all_turns(self, conversation_id: int) -> list[Turn]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM turns WHERE conversation_id = ? ORDER BY created_at ASC, id ASC",
            (conversation_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_turn(row) for row in rows]

    async def count_turns(self, conversation_id: int) -> int:
        cursor = await self._db.conn.execute(
            "SELECT COUNT(*) FROM turns WHERE conversation_id = ?", (conversation_id,)
        )
        row = await cursor.fetchone()
        return row[0]

    async def replace_summary(
        self, conversation_id: int, summary: str, compacted_turn_ids: Iterable[int]
    ) -> int:
        """Write the new summary and drop the turns it covers, atomically."""
        ids = list(compacted_turn_ids)
        async with self._db.transaction() as conn:
            await conn.execute(
                "UPDATE conversations SET summary = ? WHERE id = ?",
                (summary, conversation_id),
            )
            deleted = await self._delete_turns(conn, ids)
        logger.info("conversation_compacted", conversation_id=conversation_id, deleted=deleted)
        return deleted

    async def _delete_turns(self, conn, turn_ids: list[int]) -> int:
        if not turn_ids:
            return 0
        placeholders = ",".join("?" for _ in turn_ids)
        cursor = await conn.execute(
            f"DELETE FROM turns WHERE id IN ({placeholders})", turn_ids
        )
        return cursor.rowcount

    # -- facts -----------------------------------------------------------

    async def upsert_fact(self, party_id: int, category: str, value: str) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                f"""INSERT INTO facts (party_id, category, value) VALUES (?, ?, ?)
                   ON CONFLICT(party_id, category) DO UPDATE SET
                       value = excluded.value,
                       updated_at = {_NOW}""",
                (party_id, category, value),
            )

    async def get_facts(self, party_id: int) -> list[Fact]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM facts WHERE party_id = ? ORDER BY created_at ASC, id ASC",
            (party_id,),
        )
        rows = await cursor.fetchall()
        return [
            Fact(
                party_id=row["party_id"],
                category=row["category"],
                value=row["value"],
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]

    async def delete_facts(self, party_id: int, category: Optional[str] = None) -> int:
        """Delete one category, or every fact of the party when *category* is None."""
        async with self._db.transaction() as conn:
            if category is None:
                cursor = await conn.execute("DELETE FROM facts WHERE party_id = ?", (party_id,))
            else:
                cursor = await conn.execute(
                    "DELETE FROM facts WHERE party_id = ? AND category = ?",
                    (party_id, category),
                )
        return cursor.rowcount

    # -- stats -----------------------------------------------------------

    async def party_stats(self, party_id: int) -> PartyStats:
        cursor = await self._db.conn.execute(
            """SELECT
                   (SELECT COUNT(*) FROM conversations WHERE party_id = :p) AS conversations,
                   (SELECT COUNT(*) FROM turns t JOIN conversations c ON t.conversation_id = c.id
                        WHERE c.party_id = :p) AS turns,
                   (SELECT COUNT(*) FROM turns t JOIN conversations c ON t.conversation_id = c.id
                        WHERE c.party_id = :p AND t.role = 'user') AS user_turns,
                   (SELECT COUNT(*) FROM turns t JOIN conversations c ON t.conversation_id = c.id
                        WHERE c.party_id = :p AND t.role = 'assistant') AS assistant_turns,
                   (SELECT COUNT(*) FROM pending_messages
                        WHERE party_id = :p AND processed = 0) AS pending,
                   (SELECT COUNT(*) FROM facts WHERE party_id = :p) AS facts""",
            {"p": party_id},
        )
        row = await cursor.fetchone()
        return PartyStats(**{key: row[key] for key in row.keys()})

    # -- row mapping -----------------------------------------------------

    @staticmethod
    def _row_to_party(row) -> Party:
        return Party(
            id=row["id"],
            username=row["username"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            custom_context=row["custom_context"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_conversation(row) -> Conversation:
        return Conversation(
            id=row["id"],
            party_id=row["party_id"],
            summary=row["summary"],
            ignored=bool(row["ignored"]),
            last_activity_at=datetime.fromisoformat(row["last_activity_at"]),
        )

    @staticmethod
    def _row_to_turn(row) -> Turn:
        return Turn(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=Role(row["role"]),
            content=row["content"],
            image=row["image"],
            source_message_id=row["source_message_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
