import io
import os
import tempfile
from urllib.error import HTTPError

# Keep the module-level engine and local store out of the working tree.
os.environ.setdefault("BUDGET_DATA_DIR", tempfile.mkdtemp(prefix="budget-tests-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from database import Base  # noqa: E402
from main import app, get_db  # noqa: E402


@pytest.fixture
def api():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    engine.dispose()


class FakeResponse:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


@pytest.fixture
def routed_urlopen(api):
    """urlopen stand-in that sends client requests to the in-process app."""
    calls = []

    def fake_urlopen(req, timeout=None):
        calls.append((req.get_method(), req.full_url))
        path = req.full_url.replace("http://testserver", "", 1)
        resp = api.request(
            req.get_method(),
            path,
            content=req.data,
            headers=dict(req.header_items()),
        )
        if resp.status_code >= 400:
            raise HTTPError(
                req.full_url, resp.status_code, "error", None, io.BytesIO(resp.content)
            )
        return FakeResponse(resp.content)

    fake_urlopen.calls = calls
    return fake_urlopen
