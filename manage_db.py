#!/usr/bin/env python
"""
Database Management Entry Point

Creates, seeds and drops the storefront schema, or prints its DDL.
Usage:
    Create and seed:   python manage_db.py --create --seed
    Rebuild:           python manage_db.py --drop --create --seed
    Print DDL:         python manage_db.py --ddl postgresql

    The target database comes from DATABASE_URL / POSTGRES_* settings
    unless --url is given.
"""

import argparse
import asyncio
import sys


def print_ddl(dialect: str) -> None:
    """Print the schema DDL for a dialect."""
    from storefront.database.ddl import render_ddl

    print(render_ddl(dialect))


async def run_actions(url, drop: bool, create: bool, seed: bool) -> None:
    """Run the requested provisioning steps in order: drop, create, seed."""
    from storefront.database.connection import (
        close_database,
        create_schema,
        drop_schema,
        get_db,
        init_database,
    )
    from storefront.database.seed import seed_lookup_data

    await init_database(url)
    try:
        if drop:
            print("🗑️  Dropping schema...")
            await drop_schema()
        if create:
            print("🏗️  Creating schema...")
            await create_schema()
        if seed:
            print("🌱 Seeding lookup tables...")
            async with get_db() as db:
                counts = await seed_lookup_data(db)
            for table, inserted in counts.items():
                print(f"   {table}: {inserted} inserted")
    finally:
        await close_database()


if __name__ == "__main__":
    from storefront.database.ddl import SUPPORTED_DIALECTS

    parser = argparse.ArgumentParser(description="E-Commerce Storefront Schema Management")
    parser.add_argument(
        "--create",
        action="store_true",
        help="Create all tables, constraints and indexes"
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Load lookup rows (idempotent)"
    )
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop all tables before anything else"
    )
    parser.add_argument(
        "--ddl",
        choices=SUPPORTED_DIALECTS,
        metavar="DIALECT",
        help=f"Print the schema DDL for one of: {', '.join(SUPPORTED_DIALECTS)}"
    )
    parser.add_argument(
        "--url",
        default=None,
        help="Database URL (default: from settings)"
    )

    args = parser.parse_args()

    if args.ddl:
        print_ddl(args.ddl)
        sys.exit(0)

    if not (args.create or args.seed or args.drop):
        parser.print_help()
        sys.exit(1)

    from storefront.config.logging import configure_logging

    configure_logging()
    asyncio.run(run_actions(args.url, drop=args.drop, create=args.create, seed=args.seed))
    print("✅ Done")
