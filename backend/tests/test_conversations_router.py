import pytest

from sajubot import services
from sajubot.config import settings

API_KEY = "internal-test-key"


@pytest.fixture(autouse=True)
def internal_key(monkeypatch):
    monkeypatch.setattr(settings, "internal_api_key", API_KEY)


def _seed(db_session, fake_generator, key="history-user"):
    for message in ("오늘 운세", "올해 운세"):
        services.process_fortune_request(db_session, fake_generator, key, message, "1990-01-01")


def test_history_requires_api_key(client, db_session, fake_generator):
    _seed(db_session, fake_generator)
    assert client.get("/v1/users/history-user/conversations").status_code == 401
    resp = client.get("/v1/users/history-user/conversations", headers={"X-Internal-API-Key": "wrong"})
    assert resp.status_code == 401


def test_history_unavailable_without_configured_key(client, monkeypatch):
    monkeypatch.setattr(settings, "internal_api_key", None)
    resp = client.get("/v1/users/anyone/conversations", headers={"X-Internal-API-Key": API_KEY})
    assert resp.status_code == 503


def test_history_lists_newest_first(client, db_session, fake_generator):
    _seed(db_session, fake_generator)
    resp = client.get("/v1/users/history-user/conversations", headers={"X-Internal-API-Key": API_KEY})
    assert resp.status_code == 200
    body = resp.json()
    assert body["kakao_user_key"] == "history-user"
    assert [item["fortune_type"] for item in body["conversations"]] == ["yearly", "daily"]
    assert body["conversations"][1]["message"] == "오늘 운세"


def test_history_limit(client, db_session, fake_generator):
    _seed(db_session, fake_generator)
    resp = client.get(
        "/v1/users/history-user/conversations",
        params={"limit": 1},
        headers={"X-Internal-API-Key": API_KEY},
    )
    assert resp.status_code == 200
    assert len(resp.json()["conversations"]) == 1


def test_history_unknown_user(client):
    resp = client.get("/v1/users/ghost/conversations", headers={"X-Internal-API-Key": API_KEY})
    assert resp.status_code == 404
