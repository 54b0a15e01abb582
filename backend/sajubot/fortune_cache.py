"""Per-user fortune cache stored in the ``fortune_cache`` table.

Key schema: one row per (user_id, fortune_type). Expiry is enforced lazily
on read; nothing evicts rows in the background.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .llm_engine import FortuneType

logger = logging.getLogger("sajubot.cache")

CACHE_TTL_HOURS: dict[FortuneType, int] = {
    FortuneType.DAILY: 24,
    FortuneType.MONTHLY: 24 * 7,
    FortuneType.YEARLY: 24 * 30,
    FortuneType.LIFETIME: 24 * 365,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip; stored values are always UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def cache_expiry(fortune_type: FortuneType, now: datetime | None = None) -> datetime:
    now = now or _utcnow()
    return now + timedelta(hours=CACHE_TTL_HOURS[fortune_type])


def _delete_entry(db: Session, user_id: int, fortune_type: FortuneType) -> None:
    (
        db.query(models.FortuneCache)
        .filter(
            models.FortuneCache.user_id == user_id,
            models.FortuneCache.fortune_type == fortune_type.value,
        )
        .delete(synchronize_session=False)
    )


def get_cached_fortune(
    db: Session,
    user_id: int,
    fortune_type: FortuneType,
    now: datetime | None = None,
) -> str | None:
    now = now or _utcnow()
    try:
        entry = (
            db.query(models.FortuneCache)
            .filter(
                models.FortuneCache.user_id == user_id,
                models.FortuneCache.fortune_type == fortune_type.value,
            )
            .first()
        )
        if entry is None:
            return None

        if _as_aware(entry.expires_at) < now:
            _delete_entry(db, user_id, fortune_type)
            db.commit()
            logger.info("Cache expired | user_id=%s | type=%s", user_id, fortune_type.value)
            return None

        return entry.content
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Cache fetch failed | user_id=%s | type=%s", user_id, fortune_type.value)
        return None


def save_cached_fortune(
    db: Session,
    user_id: int,
    fortune_type: FortuneType,
    content: str,
    now: datetime | None = None,
) -> None:
    now = now or _utcnow()
    try:
        _delete_entry(db, user_id, fortune_type)
        db.add(
            models.FortuneCache(
                user_id=user_id,
                fortune_type=fortune_type.value,
                content=content,
                expires_at=cache_expiry(fortune_type, now),
                created_at=now,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Cache save failed | user_id=%s | type=%s", user_id, fortune_type.value)
