"""PostgreSQL email queue repository - Implements EmailRepository protocol."""

import logging
from datetime import datetime
from typing import Any

from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from dndwithin.domain.models import EmailData
from dndwithin.domain.ports import Clock

logger = logging.getLogger(__name__)

_EMAIL_COLUMNS = """
    id, account_id_sender, account_id_receiver, should_send, send_after_utc,
    sender_email, recipient_email, subject, body, send_attempts, response_log
"""


def _map_email(row: dict[str, Any]) -> EmailData:
    return EmailData(
        id=row["id"],
        sender_account_id=row["account_id_sender"],
        receiver_account_id=row["account_id_receiver"],
        sender_email=row["sender_email"],
        recipient_email=row["recipient_email"],
        subject=row["subject"],
        body=row["body"],
        send_after_utc=row["send_after_utc"],
        should_send=row["should_send"],
        send_attempts=row["send_attempts"],
        response_log=row["response_log"],
    )


class PostgresEmailRepository:
    """
    Implements EmailRepository protocol via psycopg3.

    Rows are never deleted; the response_log column is the audit trail.
    """

    def __init__(self, pool: AsyncConnectionPool, clock: Clock) -> None:
        self._pool = pool
        self._clock = clock

    async def queue(self, email: EmailData) -> bool:
        email.append_log(self._clock.now(), "Email queued")
        query = f"""
            INSERT INTO email ({_EMAIL_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        async with self._pool.connection() as conn, conn.transaction():
            cursor = await conn.execute(
                query,
                (
                    email.id,
                    email.sender_account_id,
                    email.receiver_account_id,
                    email.should_send,
                    email.send_after_utc,
                    email.sender_email,
                    email.recipient_email,
                    email.subject,
                    email.body,
                    email.send_attempts,
                    email.response_log,
                ),
            )
            return cursor.rowcount == 1

    async def get_for_processing(self, batch_size: int, now: datetime) -> list[EmailData]:
        """Oldest-first batch of emails that are due and still eligible to send."""
        query = f"""
            SELECT {_EMAIL_COLUMNS}
            FROM email
            WHERE should_send AND send_after_utc <= %s
            ORDER BY send_after_utc
            LIMIT %s
        """
        async with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(query, (now, batch_size))
            rows = await cursor.fetchall()
        return [_map_email(row) for row in rows]

    async def update(self, email: EmailData) -> bool:
        """Persist the worker-owned columns. send_attempts never decreases."""
        async with self._pool.connection() as conn, conn.transaction():
            cursor = await conn.execute(
                """
                UPDATE email
                SET should_send = %s,
                    send_attempts = GREATEST(send_attempts, %s),
                    response_log = %s
                WHERE id = %s
                """,
                (email.should_send, email.send_attempts, email.response_log, email.id),
            )
            if cursor.rowcount != 1:
                logger.error("Email %s not found for update", email.id)
                return False
            return True
