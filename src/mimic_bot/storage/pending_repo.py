"""Pending-message buffer: inbound messages waiting for a reply pass."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from mimic_bot.log import get_logger
from mimic_bot.storage.database import Database
from mimic_bot.storage.models import PendingMessage

logger = get_logger(__name__)

_NOW = "strftime('%Y-%m-%dT%H:%M:%f','now')"


class PendingMessageRepository:
    """Append-only staging area keyed by party.

    Rows only ever move from unprocessed to processed. Every state change is
    a conditional update on ``processed = 0`` so repeated or overlapping
    calls are no-ops for rows that already moved.
    """

    def __init__(self, db: Database):
        self._db = db

    async def append(
        self,
        party_id: int,
        content: str,
        delay_seconds: float,
        image: Optional[bytes] = None,
        source_message_id: Optional[int] = None,
        from_owner: bool = False,
    ) -> int:
        scheduled_for = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                """INSERT INTO pending_messages
                   (party_id, content, image, source_message_id, scheduled_for, from_owner)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    party_id,
                    content,
                    image,
                    source_message_id,
                    scheduled_for.isoformat(),
                    int(from_owner),
                ),
            )
        logger.debug("pending_appended", party_id=party_id, pending_id=cursor.lastrowid)
        return cursor.lastrowid  # type: ignore[return-value]

    async def list_unprocessed(self, party_id: int) -> list[PendingMessage]:
        cursor = await self._db.conn.execute(
            """SELECT * FROM pending_messages
               WHERE party_id = ? AND processed = 0
               ORDER BY created_at ASC, id ASC""",
            (party_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_pending(row) for row in rows]

    async def mark_processed(self, ids: Iterable[int]) -> int:
        """Mark the given ids processed. Returns how many actually changed."""
        id_list = list(ids)
        if not id_list:
            return 0
        placeholders = ",".join("?" for _ in id_list)
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"""UPDATE pending_messages SET processed = 1, processed_at = {_NOW}
                   WHERE processed = 0 AND id IN ({placeholders})""",
                id_list,
            )
        return cursor.rowcount

    async def claim_all(self, party_id: int) -> list[PendingMessage]:
        """Retire every unprocessed message of *party_id* on the owner's behalf.

        Returns the rows that were claimed by this call.
        """
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                """SELECT * FROM pending_messages
                   WHERE party_id = ? AND processed = 0
                   ORDER BY created_at ASC, id ASC""",
                (party_id,),
            )
            rows = await cursor.fetchall()
            if rows:
                await conn.execute(
                    f"""UPDATE pending_messages
                       SET processed = 1, claimed_by_owner = 1, processed_at = {_NOW}
                       WHERE party_id = ? AND processed = 0""",
                    (party_id,),
                )
        claimed = [self._row_to_pending(row) for row in rows]
        if claimed:
            logger.info("pending_claimed_by_owner", party_id=party_id, count=len(claimed))
        return claimed

    async def mark_processed_by_source(
        self, party_id: int, source_message_ids: Iterable[int]
    ) -> int:
        """Retire pending rows whose source messages were deleted."""
        id_list = list(source_message_ids)
        if not id_list:
            return 0
        placeholders = ",".join("?" for _ in id_list)
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"""UPDATE pending_messages SET processed = 1, processed_at = {_NOW}
                   WHERE party_id = ? AND processed = 0
                   AND source_message_id IN ({placeholders})""",
                [party_id, *id_list],
            )
        return cursor.rowcount

    async def prune_processed(self, older_than: timedelta) -> int:
        """Physically delete processed rows older than *older_than*."""
        cutoff = (datetime.now(timezone.utc) - older_than).strftime("%Y-%m-%dT%H:%M:%S.%f")
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM pending_messages WHERE processed = 1 AND processed_at < ?",
                (cutoff,),
            )
        if cursor.rowcount:
            logger.info("pending_pruned", count=cursor.rowcount)
        return cursor.rowcount

    @staticmethod
    def _row_to_pending(row) -> PendingMessage:
        return PendingMessage(
            id=row["id"],
            party_id=row["party_id"],
            content=row["content"],
            image=row["image"],
            source_message_id=row["source_message_id"],
            scheduled_for=datetime.fromisoformat(row["scheduled_for"]),
            from_owner=bool(row["from_owner"]),
            claimed_by_owner=bool(row["claimed_by_owner"]),
            processed=bool(row["processed"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
