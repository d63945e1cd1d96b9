import asyncio

from sqlalchemy import text

from nuggetdepot import migrations
from nuggetdepot.database import Database


async def test_migrations_run_once_and_are_recorded(tmp_path, monkeypatch):
    calls = []

    async def add_note_column(conn):
        calls.append("note")
        await conn.execute(text("ALTER TABLE posts ADD COLUMN note TEXT"))

    monkeypatch.setattr(migrations, "MIGRATIONS", [("test_add_note_to_posts", add_note_column)])
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'migrate.db'}")
    try:
        await db.create_tables()
        async with db.engine.begin() as conn:
            await migrations.run_migrations(conn)
            assert await migrations.has_migration(conn, "test_add_note_to_posts")
            rows = (await conn.execute(text("SELECT name FROM schema_migrations"))).scalars().all()
    finally:
        await db.dispose()
    assert calls == ["note"]
    assert rows == ["test_add_note_to_posts"]


async def test_fresh_schema_has_an_empty_ledger(database):
    async with database.engine.begin() as conn:
        rows = (await conn.execute(text("SELECT name FROM schema_migrations"))).scalars().all()
    assert rows == []


async def test_concurrent_first_requests_create_the_schema_once(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    attempts = []
    create_tables = db.create_tables

    async def counting_create_tables():
        attempts.append(1)
        await asyncio.sleep(0.01)
        await create_tables()

    db.create_tables = counting_create_tables
    try:
        results = await asyncio.gather(*(db.ensure_ready() for _ in range(5)))
    finally:
        await db.dispose()
    assert results == [True] * 5
    assert len(attempts) == 1
