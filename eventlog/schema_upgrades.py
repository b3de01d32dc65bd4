"""Idempotent schema upgrades applied after metadata.create_all()."""
from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import inspect, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection

from eventlog.event_rules import DESCRIPTION_MAX_LENGTH, derive_duration, normalize_time
from eventlog.services.hash_tags import hash_tag_names
from eventlog.services.markdown import MarkdownService
from eventlog.time_zones import DEFAULT_TIME_ZONE, resolve_time_zone

logger = logging.getLogger("schema_upgrades")

_DUPLICATE_COLUMN_PHRASES = ("duplicate column name", "already exists")


async def _column_names(conn: AsyncConnection, table: str) -> set[str]:
    def _inspect(sync_conn) -> set[str]:
        inspector = inspect(sync_conn)
        if not inspector.has_table(table):
            return set()
        return {col["name"] for col in inspector.get_columns(table)}

    return await conn.run_sync(_inspect)


async def _add_columns(conn: AsyncConnection, table: str, columns: Iterable[tuple[str, str, str]]) -> None:
    """Add ``(name, sqlite_ddl, postgres_ddl)`` columns, tolerating ones that exist."""

    for name, sqlite_ddl, postgres_ddl in columns:
        if conn.dialect.name == "sqlite":
            ddl = f"ALTER TABLE {table} ADD COLUMN {name} {sqlite_ddl}"
        else:
            ddl = f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {name} {postgres_ddl}"

        try:
            await conn.execute(text(ddl))
        except DBAPIError as ddl_error:  # column may already exist
            message = str(getattr(ddl_error, "orig", ddl_error)).lower()
            if not any(phrase in message for phrase in _DUPLICATE_COLUMN_PHRASES):
                raise
        else:
            logger.info("Added column %s.%s", table, name)


async def ensure_user_online_column(conn: AsyncConnection) -> None:
    if "online" in await _column_names(conn, "users"):
        return
    await _add_columns(
        conn,
        "users",
        [("online", "BOOLEAN NOT NULL DEFAULT 0", "BOOLEAN NOT NULL DEFAULT FALSE")],
    )


async def ensure_user_time_zone_column(conn: AsyncConnection) -> None:
    if "time_zone" in await _column_names(conn, "users"):
        return
    # the zone name is a config value, never user input
    default = DEFAULT_TIME_ZONE.replace("'", "")
    await _add_columns(
        conn,
        "users",
        [
            (
                "time_zone",
                f"VARCHAR(64) NOT NULL DEFAULT '{default}'",
                f"VARCHAR(64) NOT NULL DEFAULT '{default}'",
            )
        ],
    )


async def ensure_event_start_time_column(conn: AsyncConnection) -> None:
    """Older event tables kept a single ``time`` column; move it to ``start_time``."""

    columns = await _column_names(conn, "events")
    if "time" not in columns:
        return

    if "start_time" not in columns:
        await _add_columns(conn, "events", [("start_time", "VARCHAR(8)", "VARCHAR(8)")])
    await conn.execute(text('UPDATE events SET start_time = "time" WHERE start_time IS NULL'))
    # the old NOT NULL column would reject rows written by the current model
    await conn.execute(text('ALTER TABLE events DROP COLUMN "time"'))
    logger.info("Moved events.time to events.start_time")


async def ensure_event_detail_columns(conn: AsyncConnection) -> None:
    columns = await _column_names(conn, "events")
    if not columns:
        return

    wanted = [
        ("end_time", "VARCHAR(8)", "VARCHAR(8)"),
        ("duration", "INTEGER", "INTEGER"),
        ("html_description", "TEXT", "TEXT"),
        ("text_description", "TEXT", "TEXT"),
        ("status", "VARCHAR(16) NOT NULL DEFAULT 'active'", "VARCHAR(16) NOT NULL DEFAULT 'active'"),
        ("deleted_at", "DATETIME", "TIMESTAMP WITH TIME ZONE"),
    ]
    await _add_columns(conn, "events", [col for col in wanted if col[0] not in columns])

    if "created_at" not in columns:
        await _add_columns(conn, "events", [("created_at", "DATETIME", "TIMESTAMP")])
        await conn.execute(text("UPDATE events SET created_at = CURRENT_TIMESTAMP WHERE created_at IS NULL"))
    if "updated_at" not in columns:
        await _add_columns(conn, "events", [("updated_at", "DATETIME", "TIMESTAMP")])
        await conn.execute(text("UPDATE events SET updated_at = CURRENT_TIMESTAMP WHERE updated_at IS NULL"))

    await conn.execute(text("UPDATE events SET status = 'active' WHERE status IS NULL"))
    if "deleted" in columns:
        # boolean soft-delete flag from the older schema
        await conn.execute(text("UPDATE events SET status = 'deleted' WHERE deleted"))


async def normalize_event_times(conn: AsyncConnection) -> None:
    """Rewrite stored times as zero-padded ``HH:MM[:SS]`` so string order is time order."""

    columns = await _column_names(conn, "events")
    for column in ("start_time", "end_time"):
        if column not in columns:
            continue
        rows = (
            await conn.execute(
                text(
                    f"SELECT id, {column} AS value FROM events "
                    f"WHERE {column} IS NOT NULL "
                    f"AND {column} NOT LIKE '__:__' AND {column} NOT LIKE '__:__:__'"
                )
            )
        ).mappings().all()

        fixed = 0
        for row in rows:
            try:
                value = normalize_time(row["value"])
            except ValueError:
                logger.warning("Skipping %s normalisation for event %s: %r", column, row["id"], row["value"])
                continue
            await conn.execute(
                text(f"UPDATE events SET {column} = :value WHERE id = :id"),
                {"value": value, "id": row["id"]},
            )
            fixed += 1
        if fixed:
            logger.info("Normalised events.%s on %s events", column, fixed)


async def widen_hash_tag_name_column(conn: AsyncConnection) -> None:
    if conn.dialect.name == "sqlite" or not await _column_names(conn, "hash_tags"):
        return
    await conn.execute(
        text(f"ALTER TABLE hash_tags ALTER COLUMN name TYPE VARCHAR({DESCRIPTION_MAX_LENGTH})")
    )


async def backfill_event_durations(conn: AsyncConnection) -> None:
    if not await _column_names(conn, "events"):
        return

    rows = (
        await conn.execute(
            text(
                "SELECT events.id, events.date, events.start_time, events.end_time, users.time_zone "
                "FROM events JOIN users ON users.id = events.user_id "
                "WHERE events.duration IS NULL AND events.end_time IS NOT NULL AND events.end_time != ''"
            )
        )
    ).mappings().all()

    for row in rows:
        try:
            duration = derive_duration(
                row["date"], row["start_time"], row["end_time"], resolve_time_zone(row["time_zone"])
            )
        except ValueError:
            logger.warning("Skipping duration backfill for event %s: unparseable times", row["id"])
            continue
        await conn.execute(
            text("UPDATE events SET duration = :duration WHERE id = :id"),
            {"duration": duration, "id": row["id"]},
        )
    if rows:
        logger.info("Backfilled duration on %s events", len(rows))


async def _link_hash_tags(conn: AsyncConnection, user_id: str, event_id: str, names: list[str]) -> None:
    """Create the owner's missing ``hash_tags`` rows and link each one to the event."""

    for name in names:
        params = {"user_id": user_id, "name": name}
        tag_id = (
            await conn.execute(
                text("SELECT id FROM hash_tags WHERE user_id = :user_id AND name = :name"), params
            )
        ).scalar()
        if tag_id is None:
            await conn.execute(
                text(
                    "INSERT INTO hash_tags (user_id, name, created_at) "
                    "VALUES (:user_id, :name, CURRENT_TIMESTAMP)"
                ),
                params,
            )
            tag_id = (
                await conn.execute(
                    text("SELECT id FROM hash_tags WHERE user_id = :user_id AND name = :name"), params
                )
            ).scalar_one()

        link = {"event_id": event_id, "hash_tag_id": tag_id}
        linked = (
            await conn.execute(
                text(
                    "SELECT 1 FROM event_hash_tags "
                    "WHERE event_id = :event_id AND hash_tag_id = :hash_tag_id"
                ),
                link,
            )
        ).first()
        if linked is None:
            await conn.execute(
                text("INSERT INTO event_hash_tags (event_id, hash_tag_id) VALUES (:event_id, :hash_tag_id)"),
                link,
            )


async def backfill_event_renderings(conn: AsyncConnection) -> None:
    """Render legacy descriptions, resolving their hashtags the same way new events do."""

    if not await _column_names(conn, "events"):
        return
    # without the tag tables nothing can be linked, so nothing is rendered as a link
    can_tag = bool(
        await _column_names(conn, "hash_tags") and await _column_names(conn, "event_hash_tags")
    )

    rows = (
        await conn.execute(
            text(
                "SELECT id, user_id, description FROM events "
                "WHERE html_description IS NULL OR text_description IS NULL"
            )
        )
    ).mappings().all()

    renderer = MarkdownService()
    for row in rows:
        description = row["description"] or ""
        names = hash_tag_names(description) if can_tag else []
        await _link_hash_tags(conn, row["user_id"], row["id"], names)
        rendered = renderer.render(description, names)
        await conn.execute(
            text("UPDATE events SET html_description = :html, text_description = :text WHERE id = :id"),
            {"html": rendered.html, "text": rendered.text, "id": row["id"]},
        )
    if rows:
        logger.info("Rendered descriptions for %s events", len(rows))


def upgrade_order() -> tuple:
    return (
        ensure_user_online_column,
        ensure_user_time_zone_column,
        ensure_event_start_time_column,
        ensure_event_detail_columns,
        normalize_event_times,
        widen_hash_tag_name_column,
        backfill_event_durations,
        backfill_event_renderings,
    )


async def run_post_creation_upgrades(conn: AsyncConnection) -> None:
    for step in upgrade_order():
        await step(conn)
