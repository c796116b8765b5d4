"""
Storefront Schema - Provisioning Entry Points

Creates, seeds and drops the schema against the configured database.
"""

from typing import Dict, Optional

import structlog

from storefront.config import get_settings
from storefront.config.logging import configure_logging
from storefront.database.connection import (
    close_database,
    create_schema,
    drop_schema,
    get_db,
    init_database,
)
from storefront.database.seed import seed_lookup_data

logger = structlog.get_logger(__name__)


async def provision(
    url: Optional[str] = None,
    drop_existing: Optional[bool] = None,
    seed: Optional[bool] = None,
) -> Dict[str, int]:
    """
    Create the schema and load the lookup tables.

    Args:
        url: Override the configured database URL
        drop_existing: Drop all tables first (defaults to PROVISION_DROP_EXISTING)
        seed: Load lookup rows (defaults to PROVISION_SEED_LOOKUP_DATA)

    Returns:
        dict: Lookup rows inserted per table (empty when not seeding)
    """
    settings = get_settings()
    drop_existing = settings.provisioning.drop_existing if drop_existing is None else drop_existing
    seed = settings.provisioning.seed_lookup_data if seed is None else seed

    logger.info("Provisioning schema", environment=settings.app_env, drop_existing=drop_existing, seed=seed)

    await init_database(url)
    try:
        if drop_existing:
            await drop_schema()
        await create_schema()

        counts: Dict[str, int] = {}
        if seed:
            async with get_db() as db:
                counts = await seed_lookup_data(db)

        logger.info("Provisioning complete", seeded=counts)
        return counts
    finally:
        await close_database()


async def teardown(url: Optional[str] = None) -> None:
    """Drop every table of the schema"""
    settings = get_settings()
    if settings.is_production:
        logger.warning("Dropping schema in production", database=settings.database.db)

    await init_database(url)
    try:
        await drop_schema()
    finally:
        await close_database()


def main() -> None:
    """Console entry point: provision with the configured settings."""
    import asyncio

    configure_logging()
    asyncio.run(provision())


if __name__ == "__main__":
    main()
