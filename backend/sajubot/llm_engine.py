from __future__ import annotations

import logging
import time
from datetime import date
from enum import Enum
from typing import Any

import httpx

from .calendar_utils import format_korean_long_date, today_kst
from .config import Settings, settings as default_settings

logger = logging.getLogger("sajubot.llm")


class FortuneType(str, Enum):
    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    LIFETIME = "lifetime"


SYSTEM_PERSONA = (
    "당신은 한국의 유명한 사주 전문가이자 운세 상담사입니다. "
    "동양 철학과 사주팔자, 주역을 깊이 이해하고 있으며, "
    "따뜻하고 긍정적인 조언을 제공합니다. "
    "모든 응답은 한국어로 작성하며, 이모지를 적절히 사용하여 친근하게 대답합니다."
)

FORTUNE_MAX_TOKENS = 500
FORTUNE_TEMPERATURE = 0.8
FORTUNE_PRESENCE_PENALTY = 0.3
FORTUNE_FREQUENCY_PENALTY = 0.3

FALLBACK_NOTICE = "⚠️ 일시적인 연결 문제로 간단한 운세를 제공했습니다."


# ── Prompts ──────────────────────────────────────────────────────────

_PROMPT_TEMPLATES: dict[FortuneType, str] = {
    FortuneType.DAILY: (
        "{birth_info}인 사람의 {today} 오늘 운세를 알려주세요.\n\n"
        "다음 항목들을 포함해주세요:\n"
        "1. 🌅 종합운: 오늘의 전반적인 운세\n"
        "2. 💼 직장/학업운: 업무나 공부 관련 조언\n"
        "3. 💕 애정운: 연애나 인간관계 조언\n"
        "4. 💰 금전운: 재물 관련 조언\n"
        "5. 🍀 행운의 숫자와 색상\n"
        "6. ⚠️ 주의사항\n\n"
        "긍정적이고 희망적인 톤으로 작성해주세요."
    ),
    FortuneType.MONTHLY: (
        "{birth_info}인 사람의 이번 달 운세를 알려주세요. (오늘: {today})\n\n"
        "다음 항목들을 포함해주세요:\n"
        "1. 📅 이번 달 전체 운세\n"
        "2. 🌟 중요한 시기와 기회\n"
        "3. 💡 이번 달 집중해야 할 분야\n"
        "4. 🎯 목표 달성을 위한 조언\n"
        "5. 🍀 행운의 날짜\n\n"
        "구체적이고 실용적인 조언을 포함해주세요."
    ),
    FortuneType.YEARLY: (
        "{birth_info}인 사람의 올해 연간 운세를 알려주세요. (오늘: {today})\n\n"
        "다음 항목들을 포함해주세요:\n"
        "1. 🎊 올해의 전반적인 운세\n"
        "2. 📈 상반기/하반기 운세 흐름\n"
        "3. 🎯 올해 이룰 수 있는 성과\n"
        "4. ⚠️ 주의해야 할 시기\n"
        "5. 🌈 올해의 테마와 조언\n\n"
        "장기적인 관점에서 조언해주세요."
    ),
    FortuneType.LIFETIME: (
        "{birth_info}인 사람의 타고난 사주와 평생 운세를 알려주세요. (오늘: {today})\n\n"
        "다음 항목들을 포함해주세요:\n"
        "1. 🌟 타고난 성격과 기질\n"
        "2. 💪 강점과 재능\n"
        "3. 🎯 인생의 방향성\n"
        "4. 💑 인연과 관계\n"
        "5. 💼 적합한 직업이나 분야\n"
        "6. 🍀 인생 조언\n\n"
        "깊이 있고 통찰력 있는 분석을 제공해주세요."
    ),
}

_FALLBACK_FORTUNES: dict[FortuneType, str] = {
    FortuneType.DAILY: (
        "🔮 오늘의 운세\n\n"
        "오늘은 새로운 시작을 위한 좋은 날입니다.\n"
        "긍정적인 마음가짐으로 하루를 시작하세요.\n\n"
        "• 행운의 숫자: 3, 7\n"
        "• 행운의 색상: 파란색\n"
        "• 조언: 주변 사람들과의 소통을 늘려보세요."
    ),
    FortuneType.MONTHLY: (
        "📅 이번 달 운세\n\n"
        "이번 달은 도약의 시기입니다.\n"
        "그동안 준비해온 일들이 결실을 맺을 수 있습니다.\n\n"
        "• 중요 시기: 중순\n"
        "• 집중 분야: 인간관계\n"
        "• 조언: 꾸준함이 성공의 열쇠입니다."
    ),
    FortuneType.YEARLY: (
        "🎊 올해 운세\n\n"
        "올해는 변화와 성장의 해입니다.\n"
        "새로운 도전을 두려워하지 마세요.\n\n"
        "• 상반기: 준비와 계획\n"
        "• 하반기: 실행과 성과\n"
        "• 조언: 건강 관리에 신경 쓰세요."
    ),
    FortuneType.LIFETIME: (
        "🌟 평생 운세\n\n"
        "당신은 타고난 리더십과 창의성을 가지고 있습니다.\n"
        "인생의 중요한 전환점에서 올바른 선택을 하게 될 것입니다.\n\n"
        "• 강점: 직관력과 판단력\n"
        "• 적합 분야: 창의적인 일\n"
        "• 조언: 자신을 믿고 나아가세요."
    ),
}


def build_fortune_prompt(
    birth_date: str,
    birth_time: str | None,
    fortune_type: FortuneType,
    today: date | None = None,
) -> str:
    birth_info = f"생년월일: {birth_date}, 생시: {birth_time}" if birth_time else f"생년월일: {birth_date}"
    today_label = format_korean_long_date(today or today_kst())
    return _PROMPT_TEMPLATES[fortune_type].format(birth_info=birth_info, today=today_label)


def fallback_fortune(fortune_type: FortuneType) -> str:
    return f"{_FALLBACK_FORTUNES[fortune_type]}\n\n{FALLBACK_NOTICE}"


# ── Chat completions client ──────────────────────────────────────────

def _extract_completion_text(data: Any) -> str | None:
    try:
        text = data["choices"][0]["message"]["content"]
    except Exception:
        return None
    if isinstance(text, list):
        chunks: list[str] = []
        for item in text:
            if isinstance(item, dict):
                part = item.get("text")
                if isinstance(part, str) and part.strip():
                    chunks.append(part.strip())
        if chunks:
            return "\n".join(chunks).strip()
    if isinstance(text, str) and text.strip():
        return text.strip()
    return None


class FortuneGenerator:
    """Generates fortune text through an OpenAI-compatible chat completions API.

    ``generate`` never raises: any failure yields the static fallback for the
    requested horizon.
    """

    def __init__(self, config: Settings | None = None, client: httpx.Client | None = None):
        self.config = config or default_settings
        self._client = client

    def _headers(self) -> dict[str, str] | None:
        if not self.config.openai_api_key:
            logger.error("OpenAI API key not configured")
            return None
        return {
            "Authorization": f"Bearer {self.config.openai_api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.config.openai_model,
            "messages": [
                {"role": "system", "content": SYSTEM_PERSONA},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": FORTUNE_MAX_TOKENS,
            "temperature": FORTUNE_TEMPERATURE,
            "presence_penalty": FORTUNE_PRESENCE_PENALTY,
            "frequency_penalty": FORTUNE_FREQUENCY_PENALTY,
        }

    def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> httpx.Response:
        timeout = self.config.openai_timeout_seconds
        if self._client is not None:
            return self._client.post(url, json=payload, headers=headers, timeout=timeout)
        return httpx.post(url, json=payload, headers=headers, timeout=timeout)

    def request_text(self, prompt: str) -> str | None:
        headers = self._headers()
        if not headers:
            return None

        model = self.config.openai_model
        url = f"{self.config.openai_base_url.rstrip('/')}/chat/completions"
        started_at = time.time()
        try:
            response = self._post(url, self._payload(prompt), headers)
            response.raise_for_status()
            text = _extract_completion_text(response.json())
            if text:
                logger.info("LLM success | model=%s | time=%.2fs", model, time.time() - started_at)
                return text
            logger.warning("LLM empty response | model=%s", model)
        except httpx.TimeoutException:
            logger.warning(
                "LLM timeout after %.0fs | model=%s",
                self.config.openai_timeout_seconds,
                model,
            )
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code if exc.response is not None else -1
            body = exc.response.text[:300] if exc.response is not None else ""
            logger.warning("LLM HTTP error | status=%s | model=%s | body=%s", status, model, body)
        except Exception as exc:
            logger.warning("LLM request failed | model=%s | err=%s", model, exc)
        return None

    def generate(
        self,
        birth_date: str,
        birth_time: str | None,
        fortune_type: FortuneType = FortuneType.DAILY,
    ) -> str:
        try:
            prompt = build_fortune_prompt(birth_date, birth_time, fortune_type)
            text = self.request_text(prompt)
        except Exception:
            logger.exception("Fortune prompt failed | type=%s", fortune_type.value)
            text = None
        if text:
            return text
        logger.error("LLM FAILED, using fallback | type=%s", fortune_type.value)
        return fallback_fortune(fortune_type)
