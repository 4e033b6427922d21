#!/usr/bin/env python3
"""
Run SQL migration files against the database.

Usage:
    python scripts/run_migration.py                                   # every file in backend/migrations
    python scripts/run_migration.py backend/migrations/001_create_tables.sql
"""
import os
import sys
import asyncio
import asyncpg
from pathlib import Path
from dotenv import load_dotenv

backend_dir = Path(__file__).parent.parent
MIGRATIONS_DIR = backend_dir / "migrations"

# Load environment variables
env_path = backend_dir / '.env'
if env_path.exists():
    load_dotenv(env_path)
    print(f"✓ Loaded environment from {env_path}")
else:
    print(f"⚠️  No .env file found at {env_path}, using system environment")


async def run_migrations(database_url: str, migration_files):
    """Execute each SQL file in order inside its own transaction."""
    # Disable prepared statement cache for pgbouncer compatibility
    conn = await asyncpg.connect(database_url, statement_cache_size=0)
    try:
        print("✓ Connected to database")
        for migration_path in migration_files:
            print("=" * 80)
            print(f"Running Migration: {migration_path.name}")
            print("=" * 80)
            sql = migration_path.read_text()
            async with conn.transaction():
                await conn.execute(sql)
            print("✓ Migration completed successfully")
            print()
    finally:
        await conn.close()


def main(argv) -> int:
    database_url = os.environ.get('DATABASE_URL')
    if not database_url:
        print("❌ ERROR: DATABASE_URL not found in environment")
        return 1

    if argv:
        migration_files = [Path(arg) for arg in argv]
    else:
        migration_files = sorted(MIGRATIONS_DIR.glob("*.sql"))

    missing = [str(p) for p in migration_files if not p.exists()]
    if missing:
        print(f"❌ ERROR: Migration file not found: {', '.join(missing)}")
        return 1

    try:
        asyncio.run(run_migrations(database_url, migration_files))
    except (asyncpg.PostgresError, OSError) as e:
        print(f"❌ Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
