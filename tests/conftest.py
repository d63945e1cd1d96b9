from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from nuggetdepot.config import Settings
from nuggetdepot.database import Database
from nuggetdepot.main import create_app
from nuggetdepot.security import build_proxy_message
from nuggetdepot.utils.tokens import hmac_hex

SECRET = "test-secret"
SHOP = "s1.myshopify.com"
PATH_PREFIX = "/apps/nuggetdepot"
BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def sign(params: dict, secret: str = SECRET) -> dict:
    """Sign query params the way the storefront proxy does."""
    multi = {key: value if isinstance(value, list) else [value] for key, value in params.items()}
    signed = dict(params)
    signed["signature"] = hmac_hex(secret, build_proxy_message(multi))
    return signed


def proxy_params(customer_id: str = "42", *, shop: str = SHOP, **extra) -> dict:
    params = {
        "shop": shop,
        "logged_in_customer_id": customer_id,
        "path_prefix": PATH_PREFIX,
        "timestamp": "1767268800",
    }
    params.update(extra)
    return sign(params)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        SHOPIFY_API_SECRET=SECRET,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        LOG_LEVEL="WARNING",
        TIMELINE_PAGE_SIZE=10,
    )


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'service.db'}")
    await db.create_tables()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def session(database):
    async with database.session() as s:
        yield s
