import asyncio
import logging

from eventlog.main import ensure_database


async def main() -> None:
    """Create tables and apply schema upgrades against the configured database."""

    await ensure_database()
    logging.info("Database ready.")


if __name__ == "__main__":
    asyncio.run(main())
