"""
PostgreSQL account repository - Implements AccountRepository protocol.

Accounts live in ``account``; pending activation and password reset codes
live in ``account_activation`` and ``account_password_reset`` keyed by
account id. Every write that touches more than one table runs inside a
single transaction, so no reader can observe a CREATED account without
its activation record.

Soft-deleted rows (deleted_utc set) are excluded from every ``get_*``
lookup. The ``exists_by_username``/``exists_by_email`` checks include them
because those names stay reserved by the unique indexes.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from psycopg import errors, sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from dndwithin.domain.exceptions import DuplicateAccountError
from dndwithin.domain.models import (
    Account,
    AccountActivation,
    AccountRole,
    AccountStatus,
    GetAllAccountsOptions,
    PasswordReset,
    SortOrder,
)

logger = logging.getLogger(__name__)

_SELECT_ACCOUNT = """
    SELECT a.id, a.first_name, a.last_name, a.username, a.email, a.password,
           a.account_status, a.account_role, a.created_utc, a.updated_utc,
           a.last_login_utc, a.activated_utc, a.deleted_utc,
           act.code AS activation_code, act.expiration_utc AS activation_expiration_utc
    FROM account a
    LEFT JOIN account_activation act ON act.account_id = a.id
"""

_SORT_COLUMNS = {
    "username": "username",
    "lastlogin": "last_login_utc",
}

_UNIQUE_CONSTRAINT_FIELDS = {
    "account_username_key": "username",
    "account_email_key": "email",
}


def _map_account(row: dict[str, Any]) -> Account:
    return Account(
        id=row["id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        username=row["username"],
        email=row["email"],
        password=row["password"],
        account_status=AccountStatus(row["account_status"]),
        account_role=AccountRole(row["account_role"]),
        created_utc=row["created_utc"],
        updated_utc=row["updated_utc"],
        last_login_utc=row["last_login_utc"],
        activated_utc=row["activated_utc"],
        deleted_utc=row["deleted_utc"],
        activation_code=row["activation_code"],
        activation_expiration_utc=row["activation_expiration_utc"],
    )


class PostgresAccountRepository:
    """
    Implements AccountRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def create(self, account: Account, activation: AccountActivation) -> bool:
        """
        Insert the account and its activation record atomically.

        Raises:
            DuplicateAccountError: If the username or email unique index rejects the row
        """
        insert_account = """
            INSERT INTO account (id, first_name, last_name, username, email, password,
                                 account_status, account_role, created_utc, updated_utc,
                                 last_login_utc, activated_utc, deleted_utc)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        insert_activation = """
            INSERT INTO account_activation (account_id, code, expiration_utc)
            VALUES (%s, %s, %s)
        """

        try:
            async with self._pool.connection() as conn, conn.transaction():
                cursor = await conn.execute(
                    insert_account,
                    (
                        account.id,
                        account.first_name,
                        account.last_name,
                        account.username,
                        account.email,
                        account.password,
                        account.account_status.value,
                        account.account_role.value,
                        account.created_utc,
                        account.updated_utc,
                        account.last_login_utc,
                        account.activated_utc,
                        account.deleted_utc,
                    ),
                )
                account_rows = cursor.rowcount
                cursor = await conn.execute(
                    insert_activation,
                    (account.id, activation.activation_code, activation.expiration),
                )
                return account_rows == 1 and cursor.rowcount == 1
        except errors.UniqueViolation as e:
            constraint = e.diag.constraint_name or ""
            field = _UNIQUE_CONSTRAINT_FIELDS.get(constraint, "username")
            logger.info("Account insert rejected by unique constraint %s", constraint)
            raise DuplicateAccountError(field) from None

    async def exists_by_id(self, account_id: UUID) -> bool:
        return await self._exists(
            "SELECT 1 FROM account WHERE id = %s AND deleted_utc IS NULL", (account_id,)
        )

    async def exists_by_username(self, username: str) -> bool:
        return await self._exists(
            "SELECT 1 FROM account WHERE lower(username) = lower(%s)", (username,)
        )

    async def exists_by_email(self, email: str) -> bool:
        return await self._exists("SELECT 1 FROM account WHERE lower(email) = lower(%s)", (email,))

    async def get_by_id(self, account_id: UUID) -> Account | None:
        return await self._get_one("a.id = %s", (account_id,))

    async def get_by_username(self, username: str) -> Account | None:
        return await self._get_one("lower(a.username) = lower(%s)", (username,))

    async def get_by_email(self, email: str) -> Account | None:
        return await self._get_one("lower(a.email) = lower(%s)", (email,))

    async def get_all(self, options: GetAllAccountsOptions) -> list[Account]:
        """Return one page of accounts matching the optional filters."""
        query = sql.SQL(_SELECT_ACCOUNT) + sql.SQL(
            """
            WHERE a.deleted_utc IS NULL
              AND (%(username)s::text IS NULL OR a.username ILIKE '%%' || %(username)s || '%%')
              AND (%(role)s::text IS NULL OR a.account_role = %(role)s)
              AND (%(status)s::text IS NULL OR a.account_status = %(status)s)
            """
        )

        column = _SORT_COLUMNS.get((options.sort_field or "").lower())
        if column is not None and options.sort_order is not SortOrder.UNORDERED:
            direction = "DESC" if options.sort_order is SortOrder.DESCENDING else "ASC"
            query += sql.SQL(" ORDER BY {} {}").format(
                sql.Identifier("a", column), sql.SQL(direction)
            )

        query += sql.SQL(" LIMIT %(limit)s OFFSET %(offset)s")
        params = {
            "username": options.username,
            "role": options.account_role.value if options.account_role else None,
            "status": options.account_status.value if options.account_status else None,
            "limit": options.page_size,
            "offset": (options.page - 1) * options.page_size,
        }

        async with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(query, params)
            rows = await cursor.fetchall()
        return [_map_account(row) for row in rows]

    async def get_count(self, username: str | None) -> int:
        query = """
            SELECT count(id) FROM account
            WHERE deleted_utc IS NULL
              AND (%(username)s::text IS NULL OR username ILIKE '%%' || %(username)s || '%%')
        """
        async with self._pool.connection() as conn:
            cursor = await conn.execute(query, {"username": username})
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def update(self, account: Account) -> bool:
        query = """
            UPDATE account
            SET first_name = %s, last_name = %s, account_status = %s,
                account_role = %s, updated_utc = %s
            WHERE id = %s AND deleted_utc IS NULL
        """
        async with self._pool.connection() as conn, conn.transaction():
            cursor = await conn.execute(
                query,
                (
                    account.first_name,
                    account.last_name,
                    account.account_status.value,
                    account.account_role.value,
                    account.updated_utc,
                    account.id,
                ),
            )
            return cursor.rowcount == 1

    async def delete(self, account_id: UUID, deleted_utc: datetime) -> bool:
        """Soft delete and discard pending activation/reset codes in one transaction."""
        async with self._pool.connection() as conn, conn.transaction():
            cursor = await conn.execute(
                """
                UPDATE account SET deleted_utc = %s, updated_utc = %s
                WHERE id = %s AND deleted_utc IS NULL
                """,
                (deleted_utc, deleted_utc, account_id),
            )
            if cursor.rowcount != 1:
                return False
            await conn.execute("DELETE FROM account_activation WHERE account_id = %s", (account_id,))
            await conn.execute(
                "DELETE FROM account_password_reset WHERE account_id = %s", (account_id,)
            )
            return True

    async def activate(self, account: Account) -> bool:
        """Set status/timestamps and drop the activation record in one transaction."""
        async with self._pool.connection() as conn, conn.transaction():
            cursor = await conn.execute(
                """
                UPDATE account
                SET account_status = %s, activated_utc = %s, updated_utc = %s
                WHERE id = %s AND deleted_utc IS NULL
                """,
                (
                    account.account_status.value,
                    account.activated_utc,
                    account.updated_utc,
                    account.id,
                ),
            )
            if cursor.rowcount != 1:
                return False
            await conn.execute("DELETE FROM account_activation WHERE account_id = %s", (account.id,))
            return True

    async def update_activation(self, account_id: UUID, activation: AccountActivation) -> bool:
        """Replace code and expiry of an existing activation record only."""
        async with self._pool.connection() as conn, conn.transaction():
            cursor = await conn.execute(
                """
                UPDATE account_activation SET code = %s, expiration_utc = %s
                WHERE account_id = %s
                """,
                (activation.activation_code, activation.expiration, account_id),
            )
            return cursor.rowcount == 1

    async def update_last_login(self, account_id: UUID, last_login_utc: datetime) -> bool:
        async with self._pool.connection() as conn, conn.transaction():
            cursor = await conn.execute(
                "UPDATE account SET last_login_utc = %s WHERE id = %s AND deleted_utc IS NULL",
                (last_login_utc, account_id),
            )
            return cursor.rowcount == 1

    async def get_password_reset(self, account_id: UUID) -> PasswordReset | None:
        async with self._pool.connection() as conn:
            cursor = await conn.execute(
                """
                SELECT account_id, code, expiration_utc
                FROM account_password_reset WHERE account_id = %s
                """,
                (account_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return PasswordReset(account_id=row[0], code=row[1], expiration=row[2])

    async def save_password_reset(self, reset: PasswordReset) -> bool:
        """Insert or replace the pending reset; at most one per account."""
        async with self._pool.connection() as conn, conn.transaction():
            cursor = await conn.execute(
                """
                INSERT INTO account_password_reset (account_id, code, expiration_utc)
                SELECT %s, %s, %s
                WHERE EXISTS (SELECT 1 FROM account WHERE id = %s AND deleted_utc IS NULL)
                ON CONFLICT (account_id) DO UPDATE
                SET code = EXCLUDED.code, expiration_utc = EXCLUDED.expiration_utc
                """,
                (reset.account_id, reset.code, reset.expiration, reset.account_id),
            )
            return cursor.rowcount == 1

    async def reset_password(
        self, account_id: UUID, password_hash: str, updated_utc: datetime
    ) -> bool:
        """Store the new hash and consume the pending reset in one transaction."""
        async with self._pool.connection() as conn, conn.transaction():
            cursor = await conn.execute(
                """
                UPDATE account SET password = %s, updated_utc = %s
                WHERE id = %s AND deleted_utc IS NULL
                """,
                (password_hash, updated_utc, account_id),
            )
            if cursor.rowcount != 1:
                return False
            await conn.execute(
                "DELETE FROM account_password_reset WHERE account_id = %s", (account_id,)
            )
            return True

    async def _exists(self, query: str, params: tuple) -> bool:
        async with self._pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone() is not None

    async def _get_one(self, condition: str, params: tuple) -> Account | None:
        query = f"{_SELECT_ACCOUNT} WHERE {condition} AND a.deleted_utc IS NULL"
        async with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(query, params)
            row = await cursor.fetchone()
        return _map_account(row) if row else None
