"""PostgreSQL global settings repository - Implements GlobalSettingsRepository protocol."""

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from dndwithin.domain.models import GetAllGlobalSettingsOptions, GlobalSetting, SortOrder


class PostgresGlobalSettingsRepository:
    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def create(self, setting: GlobalSetting) -> bool:
        """Insert a setting. Returns False when the name is already taken."""
        async with self._pool.connection() as conn, conn.transaction():
            cursor = await conn.execute(
                """
                INSERT INTO globalsettings (id, name, value)
                VALUES (%s, %s, %s)
                ON CONFLICT (name) DO NOTHING
                """,
                (setting.id, setting.name, setting.value),
            )
            return cursor.rowcount == 1

    async def get(self, name: str) -> GlobalSetting | None:
        async with self._pool.connection() as conn:
            cursor = await conn.execute(
                "SELECT id, name, value FROM globalsettings WHERE name = %s", (name,)
            )
            row = await cursor.fetchone()
        return GlobalSetting(id=row[0], name=row[1], value=row[2]) if row else None

    async def get_all(self, options: GetAllGlobalSettingsOptions) -> list[GlobalSetting]:
        query = sql.SQL(
            """
            SELECT id, name, value FROM globalsettings
            WHERE (%(name)s::text IS NULL OR name ILIKE '%%' || %(name)s || '%%')
            """
        )
        if (options.sort_field or "").lower() == "name" and options.sort_order is not SortOrder.UNORDERED:
            direction = "DESC" if options.sort_order is SortOrder.DESCENDING else "ASC"
            query += sql.SQL(" ORDER BY name {}").format(sql.SQL(direction))
        query += sql.SQL(" LIMIT %(limit)s OFFSET %(offset)s")

        async with self._pool.connection() as conn:
            cursor = await conn.execute(
                query,
                {
                    "name": options.name,
                    "limit": options.page_size,
                    "offset": (options.page - 1) * options.page_size,
                },
            )
            rows = await cursor.fetchall()
        return [GlobalSetting(id=row[0], name=row[1], value=row[2]) for row in rows]

    async def get_count(self, name: str | None) -> int:
        async with self._pool.connection() as conn:
            cursor = await conn.execute(
                """
                SELECT count(id) FROM globalsettings
                WHERE (%(name)s::text IS NULL OR name ILIKE '%%' || %(name)s || '%%')
                """,
                {"name": name},
            )
            row = await cursor.fetchone()
        return row[0] if row else 0
