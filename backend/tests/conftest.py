import os

import pytest
from fastapi.testclient import TestClient

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

from sajubot.database import Base, SessionLocal, engine  # noqa: E402
from sajubot.dependencies import get_fortune_generator  # noqa: E402
from sajubot.llm_engine import FortuneType  # noqa: E402
from sajubot.main import app  # noqa: E402


class FakeFortuneGenerator:
    """Records calls instead of reaching the chat completions API."""

    def __init__(self):
        self.calls: list[tuple[str, str | None, FortuneType]] = []

    def generate(self, birth_date, birth_time, fortune_type=FortuneType.DAILY):
        self.calls.append((birth_date, birth_time, fortune_type))
        return f"생성된 {fortune_type.value} 운세"


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def fake_generator():
    return FakeFortuneGenerator()


@pytest.fixture()
def client(fake_generator):
    app.dependency_overrides[get_fortune_generator] = lambda: fake_generator
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
