import os

# Set default env vars for tests before any povgen imports
os.environ.setdefault("GENERATION_PROVIDER", "mock")
os.environ.setdefault("STATUS_STORE_BACKEND", "memory")
os.environ.setdefault("DATABASE_DSN", "sqlite:///./test_povgen.db")
os.environ.setdefault("TASK_QUEUE_ENABLED", "false")
os.environ.setdefault("STUB_UNKNOWN_STATUS", "false")
for _delay in ("MOCK_ENHANCE_DELAY", "MOCK_IMAGE_DELAY", "MOCK_VIDEO_DELAY", "MOCK_SUBTITLE_DELAY"):
    os.environ.setdefault(_delay, "0")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from povgen.main import app  # noqa: E402
from povgen.services.generator import MockGenerationBackend  # noqa: E402
from povgen.services.pipeline import GenerationPipeline, get_pipeline  # noqa: E402
from povgen.services.status_store import InMemoryJobStore, SqlJobStore  # noqa: E402


def make_sql_store() -> SqlJobStore:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return SqlJobStore(sessionmaker(bind=engine, autoflush=False, expire_on_commit=False))


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryJobStore()
    return make_sql_store()


@pytest.fixture
def memory_store():
    return InMemoryJobStore()


@pytest.fixture
def pipeline(memory_store):
    return GenerationPipeline(store=memory_store, backend=MockGenerationBackend(0, 0, 0, 0))


@pytest.fixture
def client(pipeline):
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
