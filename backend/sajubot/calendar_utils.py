"""Pure calendar helpers: zodiac animal, zodiac sign, Korean and international age."""
from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from .config import settings


# ── Zodiac animal (띠) ───────────────────────────────────────────────

# Indexed by year % 12; year % 12 == 0 is 원숭이 (monkey).
ANIMALS: tuple[str, ...] = (
    "원숭이", "닭", "개", "돼지",
    "쥐", "소", "호랑이", "토끼",
    "용", "뱀", "말", "양",
)


def zodiac_animal(birth_year: int) -> str:
    return f"{ANIMALS[birth_year % 12]}띠"


# ── Zodiac sign (별자리) ─────────────────────────────────────────────

# (name, (start_month, start_day), (end_month, end_day))
ZODIAC_SIGNS: tuple[tuple[str, tuple[int, int], tuple[int, int]], ...] = (
    ("염소자리", (12, 22), (1, 19)),
    ("물병자리", (1, 20), (2, 18)),
    ("물고기자리", (2, 19), (3, 20)),
    ("양자리", (3, 21), (4, 19)),
    ("황소자리", (4, 20), (5, 20)),
    ("쌍둥이자리", (5, 21), (6, 20)),
    ("게자리", (6, 21), (7, 22)),
    ("사자자리", (7, 23), (8, 22)),
    ("처녀자리", (8, 23), (9, 22)),
    ("천칭자리", (9, 23), (10, 22)),
    ("전갈자리", (10, 23), (11, 21)),
    ("사수자리", (11, 22), (12, 21)),
)

UNKNOWN_SIGN = "알 수 없음"


def zodiac_sign(month: int, day: int) -> str:
    for name, (start_month, start_day), (end_month, end_day) in ZODIAC_SIGNS:
        if start_month == 12:
            # Capricorn wraps the year boundary
            if (month == 12 and day >= start_day) or (month == 1 and day <= end_day):
                return name
        elif (
            (month == start_month and day >= start_day)
            or (month == end_month and day <= end_day)
            or start_month < month < end_month
        ):
            return name
    return UNKNOWN_SIGN


# ── Current time & ages ──────────────────────────────────────────────

def now_kst() -> datetime:
    return datetime.now(ZoneInfo(settings.fortune_timezone))


def today_kst() -> date:
    return now_kst().date()


def korean_age(birth_date: date, today: date | None = None) -> int:
    """Counting age: every person turns one year older on January 1st."""
    today = today or today_kst()
    return today.year - birth_date.year + 1


def international_age(birth_date: date, today: date | None = None) -> int:
    today = today or today_kst()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


# ── Display helpers ──────────────────────────────────────────────────

WEEKDAYS_KO: tuple[str, ...] = ("월요일", "화요일", "수요일", "목요일", "금요일", "토요일", "일요일")


def format_korean_long_date(value: date) -> str:
    return f"{value.year}년 {value.month}월 {value.day}일 {WEEKDAYS_KO[value.weekday()]}"


def solar_date_label(value: date) -> str:
    return f"양력 {value.year}년 {value.month}월 {value.day}일"


def to_lunar_date(value: date) -> str:
    """Solar → lunar conversion is not supported.

    Raising keeps callers from presenting a solar date as a lunar one.
    """
    raise NotImplementedError("Lunar calendar conversion is not implemented")
