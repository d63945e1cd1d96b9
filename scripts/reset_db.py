import asyncio
import sys
from pathlib import Path


async def recreate_db():
    project_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(project_root))

    from nuggetdepot.config import settings
    from nuggetdepot.database import Base, build_database, _register_models

    database = build_database(settings.database_url)
    if database is None:
        print("DATABASE_URL is empty; nothing to reset.")
        return
    _register_models()
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.exec_driver_sql("DROP TABLE IF EXISTS schema_migrations")
    await database.create_tables()
    await database.dispose()
    print(f"Database recreated: {database.engine.url.render_as_string(hide_password=True)}")


if __name__ == '__main__':
    asyncio.run(recreate_db())
