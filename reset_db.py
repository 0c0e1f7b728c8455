# reset_db.py
"""
Drop every table in the public schema and recreate the schema from the ORM
models.

Usage:
    python reset_db.py           # Reset only
    python reset_db.py --seed    # Reset + seed sample data
"""
import argparse

import psycopg2
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from sqlalchemy import create_engine, inspect

from config import settings
from config.database import redact_url, to_sync_url
from db_base import Base

# Import all models to register them with Base.metadata
import db_models  # noqa: F401


def drop_public_tables(sync_url: str) -> list[str]:
    conn = psycopg2.connect(sync_url)
    conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT tablename FROM pg_tables WHERE schemaname = 'public'")
            tables = [row[0] for row in cur.fetchall()]
            for table in tables:
                cur.execute(f'DROP TABLE IF EXISTS "{table}" CASCADE')
    finally:
        conn.close()
    return tables


def reset_database() -> None:
    sync_url = to_sync_url(settings.DATABASE_URL)
    print(f"Connecting to: {redact_url(sync_url)}")

    dropped = drop_public_tables(sync_url)
    print(f"Dropped {len(dropped)} tables" + (f": {', '.join(sorted(dropped))}" if dropped else ""))

    engine = create_engine(sync_url)
    Base.metadata.create_all(bind=engine)

    inspector = inspect(engine)
    for table in sorted(inspector.get_table_names()):
        columns = ", ".join(column["name"] for column in inspector.get_columns(table))
        print(f"  {table}: {columns}")
    engine.dispose()
    print("[OK] Database reset complete")


def main():
    parser = argparse.ArgumentParser(description="Drop all tables and recreate them from the models")
    parser.add_argument("--seed", action="store_true", help="Seed sample data after the reset")
    parser.add_argument("--seed-only", action="store_true", help="Only seed data (skip table reset)")
    args = parser.parse_args()

    if not args.seed_only:
        reset_database()

    if args.seed or args.seed_only:
        from seed_database import seed_database
        seed_database()


if __name__ == "__main__":
    main()
