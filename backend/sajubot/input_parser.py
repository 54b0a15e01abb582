"""Free-text birth date/time extraction for chat utterances.

Accepted date forms: ``1990-01-01``, ``1990/01/01``, ``1990년 1월 1일``, ``19900101``.
Accepted time forms: ``14:30``, ``14시 30분``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from .calendar_utils import today_kst

_DATE_RE = re.compile(r"(\d{4})\s*[-/.년]?\s*(\d{1,2})\s*[-/.월]?\s*(\d{1,2})")
_TIME_RE = re.compile(r"(\d{1,2})\s*[시:]\s*(\d{2})")

_NORMALIZED_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NORMALIZED_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

MIN_BIRTH_YEAR = 1900

MISSING_DATE_MESSAGE = "생년월일을 입력해주세요.\n예시: 1990-01-01 또는 19900101"
INVALID_DATE_MESSAGE = "올바른 생년월일 형식이 아닙니다.\n예시: 1990-01-01"
INVALID_TIME_MESSAGE = "올바른 생시 형식이 아닙니다.\n예시: 14:30 또는 14시 30분"


@dataclass(frozen=True)
class BirthInputResult:
    is_valid: bool
    birth_date: str | None = None
    birth_time: str | None = None
    error_message: str | None = None

    @classmethod
    def valid(cls, birth_date: str, birth_time: str | None = None) -> "BirthInputResult":
        return cls(is_valid=True, birth_date=birth_date, birth_time=birth_time)

    @classmethod
    def invalid(cls, message: str) -> "BirthInputResult":
        return cls(is_valid=False, error_message=message)


def is_valid_birth_date(value: str) -> bool:
    if not _NORMALIZED_DATE_RE.match(value):
        return False
    year, month, day = (int(part) for part in value.split("-"))
    if year < MIN_BIRTH_YEAR or year > today_kst().year:
        return False
    if month < 1 or month > 12:
        return False
    # Day-of-month is range checked only (Feb 30 passes)
    if day < 1 or day > 31:
        return False
    return True


def is_valid_birth_time(value: str) -> bool:
    return bool(_NORMALIZED_TIME_RE.match(value))


def extract_birth_date(utterance: str) -> str | None:
    match = _DATE_RE.search(utterance)
    if not match:
        return None
    year, month, day = match.groups()
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def extract_birth_time(utterance: str) -> str | None:
    match = _TIME_RE.search(utterance)
    if not match:
        return None
    hour, minute = match.groups()
    return f"{hour.zfill(2)}:{minute}"


def parse_user_input(utterance: str) -> BirthInputResult:
    text = utterance or ""
    birth_date = extract_birth_date(text)
    if birth_date is None:
        return BirthInputResult.invalid(MISSING_DATE_MESSAGE)
    if not is_valid_birth_date(birth_date):
        return BirthInputResult.invalid(INVALID_DATE_MESSAGE)

    birth_time = extract_birth_time(text)
    if birth_time is not None and not is_valid_birth_time(birth_time):
        return BirthInputResult.invalid(INVALID_TIME_MESSAGE)

    return BirthInputResult.valid(birth_date, birth_time)
