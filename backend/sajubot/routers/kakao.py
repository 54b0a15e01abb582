"""KakaoTalk skill webhook.

Always answers HTTP 200 with a well-formed skill envelope, including when
the request body cannot be decoded.
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import schemas, services
from ..database import get_db
from ..dependencies import get_fortune_generator
from ..input_parser import parse_user_input
from ..llm_engine import FortuneGenerator

router = APIRouter(prefix="/api/kakao", tags=["kakao"])
logger = logging.getLogger("sajubot.kakao")

GREETING_KEYWORDS = ("안녕", "시작")
HELP_KEYWORDS = ("도움", "help")
FORTUNE_KEYWORDS = ("운세", "사주")

WELCOME_TEXT = (
    "안녕하세요! 사주·운세 챗봇입니다. 🔮\n\n"
    "생년월일과 생시를 알려주시면 오늘의 운세를 알려드릴게요.\n\n"
    "📝 입력 예시:\n"
    "• 1990년 1월 1일 14시 30분\n"
    "• 1990-01-01 14:30\n"
    "• 19900101\n\n"
    "생시를 모르시면 생년월일만 입력하셔도 됩니다!"
)

HELP_TEXT = (
    "📚 사용 방법 안내\n\n"
    "1️⃣ 생년월일 입력하기\n"
    "   • YYYY-MM-DD 형식 (예: 1990-01-01)\n"
    "   • YYYYMMDD 형식 (예: 19900101)\n"
    "   • YYYY년 MM월 DD일 형식\n\n"
    "2️⃣ 생시 입력하기 (선택사항)\n"
    "   • HH:MM 형식 (예: 14:30)\n"
    "   • HH시 MM분 형식\n\n"
    "3️⃣ 운세 종류\n"
    "   • 오늘의 운세\n"
    "   • 이번 달 운세\n"
    "   • 올해 운세\n"
    "   • 평생 사주\n\n"
    "궁금한 점이 있으시면 언제든 물어보세요!"
)

ERROR_TEXT = "죄송합니다. 일시적인 오류가 발생했습니다.\n잠시 후 다시 시도해주세요."
INPUT_CHECK_TEXT = "입력 형식을 확인해주세요."

WELCOME_QUICK_REPLIES = [{"messageText": "예시: 1990-01-01 14:30", "action": "message", "label": "입력 예시 보기"}]
HELP_QUICK_REPLIES = [{"messageText": "도움말", "action": "message", "label": "사용 방법 보기"}]


def _contains_any(message: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in message for keyword in keywords)


def _fortune_response(text: str, utterance: str) -> schemas.KakaoResponse:
    if text in (services.USER_SAVE_FAILED_MESSAGE, services.FORTUNE_ERROR_MESSAGE):
        return schemas.build_kakao_response(text, HELP_QUICK_REPLIES)
    quick_replies = services.generate_quick_replies(services.detect_fortune_type(utterance))
    return schemas.build_kakao_response(text, quick_replies)


def handle_utterance(
    db: Session,
    generator: FortuneGenerator,
    kakao_user_key: str,
    utterance: str,
) -> schemas.KakaoResponse:
    if _contains_any(utterance, GREETING_KEYWORDS):
        return schemas.build_kakao_response(WELCOME_TEXT, WELCOME_QUICK_REPLIES)

    if _contains_any(utterance, HELP_KEYWORDS):
        return schemas.build_kakao_response(HELP_TEXT)

    existing_user = services.find_user(db, kakao_user_key)
    if existing_user is not None and existing_user.birth_date and _contains_any(utterance, FORTUNE_KEYWORDS):
        text = services.process_fortune_request(
            db,
            generator,
            kakao_user_key,
            utterance,
            existing_user.birth_date.isoformat(),
            existing_user.birth_time,
        )
        return _fortune_response(text, utterance)

    parsed = parse_user_input(utterance)
    if not parsed.is_valid:
        return schemas.build_kakao_response(parsed.error_message or INPUT_CHECK_TEXT, HELP_QUICK_REPLIES)

    text = services.process_fortune_request(
        db,
        generator,
        kakao_user_key,
        utterance,
        parsed.birth_date,
        parsed.birth_time,
    )
    return _fortune_response(text, utterance)


@router.post("/webhook")
async def kakao_webhook(
    request: Request,
    db: Session = Depends(get_db),
    generator: FortuneGenerator = Depends(get_fortune_generator),
):
    try:
        body = await request.json()
        payload = schemas.KakaoRequest.model_validate(body)
        utterance = payload.userRequest.utterance
        kakao_user_key = payload.userRequest.user.id
        logger.info("Kakao message | user=%s | text=%s", kakao_user_key, utterance[:200])

        response = await asyncio.to_thread(handle_utterance, db, generator, kakao_user_key, utterance)
    except ValidationError as exc:
        logger.warning("Kakao payload rejected | errors=%s", exc.error_count())
        response = schemas.build_kakao_response(ERROR_TEXT)
    except Exception:
        logger.exception("Kakao webhook failed")
        response = schemas.build_kakao_response(ERROR_TEXT)
    return response.model_dump(exclude_none=True)
