# restobot/database/database.py
import asyncpg
import logging
from pathlib import Path
from typing import List, Optional
from ..config import Config

MIGRATIONS_PATH = Path(__file__).parent / "migrations"

# Held while migrating so that two bot processes never apply the same file
MIGRATION_LOCK_ID = 7_311_041

class Database:
    """asyncpg pool for menu, offers and orders"""

    def __init__(self, dsn: Optional[str] = None,
                 min_size: Optional[int] = None, max_size: Optional[int] = None,
                 migrations_path: Path = MIGRATIONS_PATH):
        self.dsn = dsn or Config.DATABASE_URL
        self.min_size = min_size or Config.DB_POOL_MIN_SIZE
        self.max_size = max_size or Config.DB_POOL_MAX_SIZE
        self.migrations_path = migrations_path
        self.pool: Optional[asyncpg.Pool] = None
        self.logger = logging.getLogger(__name__)

    async def connect(self):
        """Open the pool and bring the schema up to date"""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size
            )
            applied = await self.run_migrations()
        except Exception as e:
            self.logger.error(f"Error connecting to database: {e}")
            raise

        self.logger.info(
            f"Connected to database (pool {self.min_size}-{self.max_size}, "
            f"{len(applied)} new migration(s))"
        )

    async def close(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("Database connection closed")

    def migration_files(self) -> List[Path]:
        return sorted(self.migrations_path.glob("*.sql"))

    async def run_migrations(self) -> List[str]:
        """Apply pending migration files in name order; returns their names"""
        applied: List[str] = []

        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS migrations (
                    id SERIAL PRIMARY KEY,
                    name VARCHAR(255) NOT NULL UNIQUE,
                    applied_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                )
            """)

            async with conn.transaction():
                await conn.execute("SELECT pg_advisory_xact_lock($1)", MIGRATION_LOCK_ID)
                done = {row["name"] for row in await conn.fetch("SELECT name FROM migrations")}

                for migration_file in self.migration_files():
                    if migration_file.name in done:
                        continue
                    try:
                        await conn.execute(migration_file.read_text())
                    except asyncpg.PostgresError as e:
                        self.logger.error(f"Migration {migration_file.name} failed: {e}")
                        raise
                    await conn.execute("INSERT INTO migrations (name) VALUES ($1)", migration_file.name)
                    applied.append(migration_file.name)
                    self.logger.info(f"Migration {migration_file.name} applied")

        return applied
