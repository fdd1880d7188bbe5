"""
Pytest configuration and shared fixtures for QuizScout tests.
"""

import io
import os
from pathlib import Path

import pytest
from dotenv import load_dotenv


# Load test environment variables before any quizscout imports
env_file = Path(__file__).parent.parent / ".env.test"
if env_file.exists():
    load_dotenv(env_file, override=True)
else:
    # Fallback: Set minimal environment variables for testing
    os.environ.setdefault("DATABASE_URL", "sqlite://")
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
    os.environ.setdefault("USE_REDIS_LOCKS", "False")
    os.environ.setdefault("STORAGE_BACKEND", "local")
    os.environ.setdefault("STORAGE_ROOT", "/tmp/quizscout-test-static")
    os.environ.setdefault("DEBUG", "False")

import httpx  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> str:
    """Read a fixture document from tests/fixtures."""
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


def image_bytes(fmt: str = "PNG", size=(400, 300), color="red") -> bytes:
    """Encode a solid-colour test image."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by handler(request)."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


# ============================================================================
# Question One documents
# ============================================================================


def question_one_feed(venues) -> str:
    """
    RSS feed page for (slug, title) pairs; an empty list gives an empty channel.
    """
    items = "".join(
        f"""
        <item>
            <title>{title}</title>
            <link>https://questionone.com/venues/{slug}/?utm_source=rss</link>
        </item>"""
        for slug, title in venues
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>Venues</title>{items}
</channel></rss>"""


def question_one_page(
    title: str,
    address: str,
    time_text: str = "Tuesdays, 7.30pm",
    fee_text: str = "£2 per person",
    hero_image_url: str = None,
) -> str:
    """Minimal venue page in the Question One markup."""

    def block(icon, text):
        if text is None:
            return ""
        return f"""
        <div class="text-with-icon">
            <svg><use href="/wp-content/themes/q1/icons.svg#{icon}"></use></svg>
            <span class="text-with-icon__text">{text}</span>
        </div>"""

    hero = f'<img src="{hero_image_url}" alt="venue">' if hero_image_url else ""
    return f"""<html><body>
        <h1 class="post-title">PUB QUIZ – {title}</h1>
        {hero}
        {block("pin", address)}
        {block("calendar", time_text)}
        {block("tag", fee_text)}
        <div class="post-content-area"><p>Weekly quiz with a cash jackpot.</p></div>
    </body></html>"""


# ============================================================================
# Database fixtures
# ============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory sqlite database with every table created."""
    import quizscout.models  # noqa: F401
    from quizscout.database import create_db_engine
    from quizscout.models.base import Base

    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """
    Provide a database session for integration tests.

    Usage:
        def test_something(db_session):
            venue = upsert_venue(db_session, raw).venue
    """
    factory = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def question_one_source(db_session):
    """Source row for question_one."""
    from quizscout.scrapers.registry import ensure_source_row, get_source

    source = ensure_source_row(db_session, get_source("question_one"))
    db_session.commit()
    return source


@pytest.fixture
def quizmeisters_source(db_session):
    """Source row for quizmeisters."""
    from quizscout.scrapers.registry import ensure_source_row, get_source

    source = ensure_source_row(db_session, get_source("quizmeisters"))
    db_session.commit()
    return source


# ============================================================================
# Storage fixtures
# ============================================================================


@pytest.fixture
def local_storage(tmp_path):
    """LocalStorage rooted in a temporary directory."""
    from quizscout.storage.backends import LocalStorage

    return LocalStorage(str(tmp_path / "static"))


@pytest.fixture
def png_bytes():
    return image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return image_bytes("JPEG", color="blue")


@pytest.fixture
def image_requests():
    """Requests seen by the image server fixture."""
    return []


@pytest.fixture
def image_server(png_bytes, jpeg_bytes, image_requests):
    """
    Handler serving test images.

    /missing.* answers 404 and /notanimage.jpg answers with HTML; every
    other .png or .jpg path answers with an image of that format.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        image_requests.append(str(request.url))
        path = request.url.path.lower()
        if "missing" in path:
            return httpx.Response(404)
        if "notanimage" in path:
            return httpx.Response(200, content=b"<html>nope</html>", headers={"content-type": "text/html"})
        if path.endswith(".png"):
            return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})
        return httpx.Response(200, content=jpeg_bytes, headers={"content-type": "image/jpeg"})

    return handler


@pytest.fixture
def asset_store(local_storage, image_server):
    """AssetStore over local storage with process-local locks."""
    from quizscout.storage.asset_store import AssetStore
    from quizscout.storage.locks import OwnerLocks

    return AssetStore(local_storage, OwnerLocks(), http_client=mock_client(image_server))
