import os
import sys
import tempfile
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Predictable test environment, set before anything from 'app' is imported
os.environ["APP_ENV"] = "test"
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite:///:memory:")
os.environ.setdefault("UPLOAD_ROOT", tempfile.mkdtemp(prefix="catalog-uploads-"))

# Ensure the project root (which contains the 'app' package) is on sys.path
THIS_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(THIS_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app.main import app
from app.api import deps
from app.domain.catalog.models import Category
from app.repositories.db import Base
from app.services.catalog_repository import CatalogItemRepository
from app.services.image_upload import ImageFile, ImageUploadPipeline
from app.services.object_store import LocalObjectStore
from app.services.query_cache import QueryCache

PUBLIC_BASE = "http://testserver/static/uploads"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="function")
def session_factory():
    """In-memory database per test function."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def categories(db_session):
    """Name (English) -> id for the standard categories."""
    rows = [
        Category(name_ar="بيتزا", name_en="Pizza"),
        Category(name_ar="ساندويتشات", name_en="Sandwiches"),
        Category(name_ar="كريب", name_en="Crepe"),
        Category(name_ar="كريب بيتزا", name_en="Crepe Pizza"),
        Category(name_ar="مشروبات", name_en="Drinks"),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return {r.name_en: r.id for r in rows}


@pytest.fixture
def store(tmp_path):
    return LocalObjectStore(root=tmp_path / "uploads", public_base_url=PUBLIC_BASE)


@pytest.fixture
def pipeline(store):
    return ImageUploadPipeline(store)


@pytest.fixture
def repository(store, session_factory):
    return CatalogItemRepository(store, session_factory=session_factory)


@pytest.fixture
def cache():
    return QueryCache()


def make_image(name: str = "photo.png", content_type: str = "image/png", size: int = 16) -> ImageFile:
    return ImageFile(filename=name, content_type=content_type, data=b"\x89" * size)


@pytest.fixture
def image():
    return make_image


@pytest.fixture(scope="function")
def client(session_factory, store):
    """TestClient wired to the test database and object store."""
    test_cache = QueryCache()
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    app.dependency_overrides[deps.get_object_store] = lambda: store
    app.dependency_overrides[deps.get_query_cache] = lambda: test_cache
    yield TestClient(app)
    app.dependency_overrides.clear()
