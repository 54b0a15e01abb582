from datetime import date
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .calendar_utils import korean_age, zodiac_animal, zodiac_sign
from .fortune_cache import get_cached_fortune, save_cached_fortune
from .llm_engine import FortuneGenerator, FortuneType

logger = logging.getLogger("sajubot.fortune")
store_logger = logging.getLogger("sajubot.store")

CACHED_NOTICE = "📌 이전에 조회한 운세입니다."
USER_SAVE_FAILED_MESSAGE = "사용자 정보를 저장할 수 없습니다. 다시 시도해주세요."
FORTUNE_ERROR_MESSAGE = "운세 생성 중 오류가 발생했습니다. 잠시 후 다시 시도해주세요."

# Checked in order; the first horizon with a matching keyword wins.
FORTUNE_TYPE_RULES: tuple[tuple[FortuneType, tuple[str, ...]], ...] = (
    (FortuneType.DAILY, ("오늘", "일일", "데일리")),
    (FortuneType.MONTHLY, ("이번달", "월간", "이번 달")),
    (FortuneType.YEARLY, ("올해", "연간", "년간")),
    (FortuneType.LIFETIME, ("평생", "인생", "사주")),
)

QUICK_REPLY_OPTIONS: tuple[tuple[FortuneType, str, str], ...] = (
    (FortuneType.DAILY, "오늘의 운세", "오늘 운세"),
    (FortuneType.MONTHLY, "이번 달 운세", "월간 운세"),
    (FortuneType.YEARLY, "올해 운세", "연간 운세"),
)


def detect_fortune_type(message: str) -> FortuneType:
    for fortune_type, keywords in FORTUNE_TYPE_RULES:
        if any(keyword in message for keyword in keywords):
            return fortune_type
    return FortuneType.DAILY


def generate_quick_replies(fortune_type: FortuneType) -> list[dict[str, str]]:
    return [
        {"messageText": message_text, "action": "message", "label": label}
        for option_type, message_text, label in QUICK_REPLY_OPTIONS
        if option_type != fortune_type
    ]


# ── Users & conversations ────────────────────────────────────────────

def find_user(db: Session, kakao_user_key: str) -> models.User | None:
    return db.query(models.User).filter(models.User.kakao_user_key == kakao_user_key).first()


def _apply_birth_data(user: models.User, birth_date: date, birth_time: str | None) -> None:
    user.birth_date = birth_date
    user.birth_time = birth_time
    user.zodiac_animal = zodiac_animal(birth_date.year)
    user.zodiac_sign = zodiac_sign(birth_date.month, birth_date.day)
    user.updated_at = models.utcnow()


def get_or_create_user(
    db: Session,
    kakao_user_key: str,
    birth_date: str | None = None,
    birth_time: str | None = None,
) -> models.User | None:
    """Return the stored user, attaching birth data when it is new or changed.

    Unknown users are only created when a birth date is supplied. Returns
    None when the birth date is not a real calendar day or the datastore
    write fails.
    """
    try:
        parsed_date = date.fromisoformat(birth_date) if birth_date else None
    except ValueError:
        store_logger.warning("User upsert rejected | kakao_user_key=%s | birth_date=%s", kakao_user_key, birth_date)
        return None

    try:
        user = find_user(db, kakao_user_key)
        if user is not None:
            if parsed_date is not None and user.birth_date != parsed_date:
                _apply_birth_data(user, parsed_date, birth_time)
                db.commit()
                db.refresh(user)
            return user

        if parsed_date is None:
            return None

        user = models.User(kakao_user_key=kakao_user_key)
        _apply_birth_data(user, parsed_date, birth_time)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = find_user(db, kakao_user_key)
            if existing:
                return existing
            raise
        db.refresh(user)
        return user
    except SQLAlchemyError:
        db.rollback()
        store_logger.exception("User upsert failed | kakao_user_key=%s", kakao_user_key)
        return None


def save_conversation(
    db: Session,
    user_id: int,
    message: str,
    response: str,
    fortune_type: FortuneType | None = None,
) -> None:
    try:
        db.add(
            models.Conversation(
                user_id=user_id,
                message=message,
                response=response,
                fortune_type=fortune_type.value if fortune_type else None,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        store_logger.exception("Conversation save failed | user_id=%s", user_id)


def get_recent_conversations(db: Session, user_id: int, limit: int = 10) -> list[models.Conversation]:
    return (
        db.query(models.Conversation)
        .filter(models.Conversation.user_id == user_id)
        .order_by(models.Conversation.created_at.desc())
        .limit(limit)
        .all()
    )


# ── Fortune pipeline ─────────────────────────────────────────────────

def enrich_birth_info(birth_date: str, birth_time: str | None = None, today: date | None = None) -> str:
    born = date.fromisoformat(birth_date)
    info = f"📅 {born.year}년 {born.month}월 {born.day}일생"
    if birth_time:
        hour, minute = birth_time.split(":")
        info += f" {int(hour)}시 {minute}분"
    info += (
        f"\n🐾 {zodiac_animal(born.year)} | ⭐ {zodiac_sign(born.month, born.day)}"
        f" | 🎂 한국나이 {korean_age(born, today)}세"
    )
    return info


def process_fortune_request(
    db: Session,
    generator: FortuneGenerator,
    kakao_user_key: str,
    message: str,
    birth_date: str,
    birth_time: str | None = None,
) -> str:
    try:
        user = get_or_create_user(db, kakao_user_key, birth_date, birth_time)
        if user is None:
            return USER_SAVE_FAILED_MESSAGE

        fortune_type = detect_fortune_type(message)
        cached = get_cached_fortune(db, user.id, fortune_type)

        if cached:
            logger.info("Fortune cache hit | user_id=%s | type=%s", user.id, fortune_type.value)
            content = f"{cached}\n\n{CACHED_NOTICE}"
        else:
            logger.info("Fortune cache miss | user_id=%s | type=%s", user.id, fortune_type.value)
            birth_info = enrich_birth_info(birth_date, birth_time)
            generated = generator.generate(birth_date, birth_time, fortune_type)
            content = f"{birth_info}\n\n{generated}"
            save_cached_fortune(db, user.id, fortune_type, content)

        save_conversation(db, user.id, message, content, fortune_type)
        return content
    except Exception:
        logger.exception("Fortune processing failed | kakao_user_key=%s", kakao_user_key)
        return FORTUNE_ERROR_MESSAGE
