from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from sajubot import models, services
from sajubot.calendar_utils import korean_age
from sajubot.llm_engine import FALLBACK_NOTICE, FortuneGenerator, FortuneType


# ── detect_fortune_type ──────────────────────────────────────────────

@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("오늘의 운세", FortuneType.DAILY),
        ("데일리 부탁해", FortuneType.DAILY),
        ("이번 달 운세", FortuneType.MONTHLY),
        ("월간 운세", FortuneType.MONTHLY),
        ("올해 운세", FortuneType.YEARLY),
        ("연간 운세 알려줘", FortuneType.YEARLY),
        ("평생 사주", FortuneType.LIFETIME),
        ("인생 운세", FortuneType.LIFETIME),
        ("1990-01-01", FortuneType.DAILY),
    ],
)
def test_detect_fortune_type(message, expected):
    assert services.detect_fortune_type(message) is expected


def test_daily_keyword_beats_yearly_keyword():
    assert services.detect_fortune_type("올해 말고 오늘 운세") is FortuneType.DAILY


def test_monthly_keyword_beats_lifetime_keyword():
    assert services.detect_fortune_type("사주로 보는 이번달 흐름") is FortuneType.MONTHLY


# ── quick replies ────────────────────────────────────────────────────

def test_quick_replies_exclude_served_horizon():
    labels = [reply["label"] for reply in services.generate_quick_replies(FortuneType.MONTHLY)]
    assert labels == ["오늘 운세", "연간 운세"]


def test_lifetime_keeps_all_quick_replies():
    replies = services.generate_quick_replies(FortuneType.LIFETIME)
    assert [reply["messageText"] for reply in replies] == ["오늘의 운세", "이번 달 운세", "올해 운세"]
    assert all(reply["action"] == "message" for reply in replies)


# ── users ────────────────────────────────────────────────────────────

def test_unknown_user_without_birth_date_is_not_created(db_session):
    assert services.get_or_create_user(db_session, "nobody") is None
    assert db_session.query(models.User).count() == 0


def test_user_created_with_birth_data(db_session):
    user = services.get_or_create_user(db_session, "u1", "1990-01-01", "14:30")
    assert user.birth_date == date(1990, 1, 1)
    assert user.birth_time == "14:30"
    assert user.zodiac_animal == "말띠"
    assert user.zodiac_sign == "염소자리"


def test_user_updated_only_when_birth_date_changes(db_session):
    services.get_or_create_user(db_session, "u2", "1990-01-01", "14:30")

    same = services.get_or_create_user(db_session, "u2", "1990-01-01", "08:00")
    assert same.birth_time == "14:30"

    changed = services.get_or_create_user(db_session, "u2", "1991-06-15", None)
    assert changed.birth_date == date(1991, 6, 15)
    assert changed.birth_time is None
    assert db_session.query(models.User).count() == 1


# ── process_fortune_request ──────────────────────────────────────────

def test_enrich_birth_info():
    info = services.enrich_birth_info("1990-01-01", "14:30", today=date(2026, 10, 19))
    assert info == "📅 1990년 1월 1일생 14시 30분\n🐾 말띠 | ⭐ 염소자리 | 🎂 한국나이 37세"


def test_first_request_generates_and_caches(db_session, fake_generator):
    text = services.process_fortune_request(db_session, fake_generator, "u3", "오늘 운세 1990-01-01", "1990-01-01")

    assert fake_generator.calls == [("1990-01-01", None, FortuneType.DAILY)]
    assert text.startswith("📅 1990년 1월 1일생")
    assert f"한국나이 {korean_age(date(1990, 1, 1))}세" in text
    assert text.endswith("생성된 daily 운세")
    assert db_session.query(models.FortuneCache).count() == 1

    conversation = db_session.query(models.Conversation).one()
    assert conversation.message == "오늘 운세 1990-01-01"
    assert conversation.response == text
    assert conversation.fortune_type == "daily"


def test_repeat_request_uses_cache(db_session, fake_generator):
    first = services.process_fortune_request(db_session, fake_generator, "u4", "올해 운세", "1990-01-01")
    second = services.process_fortune_request(db_session, fake_generator, "u4", "올해 운세", "1990-01-01")

    assert len(fake_generator.calls) == 1
    assert second == f"{first}\n\n{services.CACHED_NOTICE}"
    assert db_session.query(models.Conversation).count() == 2


def test_other_horizon_is_a_cache_miss(db_session, fake_generator):
    services.process_fortune_request(db_session, fake_generator, "u5", "오늘 운세", "1990-01-01")
    services.process_fortune_request(db_session, fake_generator, "u5", "평생 사주", "1990-01-01")
    assert [call[2] for call in fake_generator.calls] == [FortuneType.DAILY, FortuneType.LIFETIME]


def test_generator_failure_still_answers(db_session):
    generator = FortuneGenerator()
    generator.request_text = lambda prompt: None

    text = services.process_fortune_request(db_session, generator, "u6", "이번 달 운세", "1990-01-01")
    assert text.endswith(FALLBACK_NOTICE)


def test_user_store_failure_aborts_request(db_session, fake_generator, monkeypatch):
    monkeypatch.setattr(services, "get_or_create_user", lambda *args, **kwargs: None)

    text = services.process_fortune_request(db_session, fake_generator, "u7", "오늘 운세", "1990-01-01")
    assert text == services.USER_SAVE_FAILED_MESSAGE
    assert fake_generator.calls == []


def test_conversation_save_failure_is_swallowed(db_session, fake_generator, monkeypatch):
    original_commit = db_session.commit
    state = {"commits": 0}

    def flaky_commit():
        state["commits"] += 1
        # user insert, cache save, then the conversation insert fails
        if state["commits"] == 3:
            raise OperationalError("INSERT INTO conversations", {}, Exception("disk full"))
        return original_commit()

    monkeypatch.setattr(db_session, "commit", flaky_commit)

    text = services.process_fortune_request(db_session, fake_generator, "u8", "오늘 운세", "1990-01-01")
    assert text.endswith("생성된 daily 운세")
    assert db_session.query(models.Conversation).count() == 0


def test_unexpected_error_becomes_apology(db_session, fake_generator, monkeypatch):
    def explode(message):
        raise RuntimeError("boom")

    monkeypatch.setattr(services, "detect_fortune_type", explode)

    text = services.process_fortune_request(db_session, fake_generator, "u9", "오늘 운세", "1990-01-01")
    assert text == services.FORTUNE_ERROR_MESSAGE


def test_recent_conversations_newest_first(db_session, fake_generator):
    for message in ("오늘 운세", "이번 달 운세", "올해 운세"):
        services.process_fortune_request(db_session, fake_generator, "u10", message, "1990-01-01")
    user = services.find_user(db_session, "u10")

    rows = services.get_recent_conversations(db_session, user.id, limit=2)
    assert [row.fortune_type for row in rows] == ["yearly", "monthly"]


@pytest.mark.parametrize("birth_date", ["1990-02-29", "1990-02-30", "2001-04-31"])
def test_non_calendar_birth_date_takes_user_save_failure_path(db_session, fake_generator, birth_date):
    text = services.process_fortune_request(db_session, fake_generator, "u11", "오늘 운세", birth_date)

    assert text == services.USER_SAVE_FAILED_MESSAGE
    assert fake_generator.calls == []
    assert db_session.query(models.User).count() == 0


def test_leap_day_birth_date_is_accepted(db_session, fake_generator):
    text = services.process_fortune_request(db_session, fake_generator, "u12", "오늘 운세", "1992-02-29")
    assert text.startswith("📅 1992년 2월 29일생")
    assert len(fake_generator.calls) == 1


def test_user_insert_failure_returns_retry_message(db_session, fake_generator, monkeypatch):
    def failing_commit():
        raise OperationalError("INSERT INTO users", {}, Exception("database is locked"))

    monkeypatch.setattr(db_session, "commit", failing_commit)

    text = services.process_fortune_request(db_session, fake_generator, "u13", "오늘 운세", "1990-01-01")
    assert text == services.USER_SAVE_FAILED_MESSAGE
    assert fake_generator.calls == []
    monkeypatch.undo()
    assert db_session.query(models.User).count() == 0


def test_cache_failures_do_not_fail_the_request(db_session, fake_generator, monkeypatch):
    original_query = db_session.query

    def query(*entities, **kwargs):
        if entities and entities[0] is models.FortuneCache:
            raise OperationalError("SELECT FROM fortune_cache", {}, Exception("no such table"))
        return original_query(*entities, **kwargs)

    monkeypatch.setattr(db_session, "query", query)

    first = services.process_fortune_request(db_session, fake_generator, "u14", "오늘 운세", "1990-01-01")
    second = services.process_fortune_request(db_session, fake_generator, "u14", "오늘 운세", "1990-01-01")

    assert first.endswith("생성된 daily 운세")
    assert second == first
    assert len(fake_generator.calls) == 2
    assert db_session.query(models.Conversation).count() == 2
