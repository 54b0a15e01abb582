import hmac

from fastapi import Header, HTTPException

from .config import settings
from .llm_engine import FortuneGenerator


def get_fortune_generator() -> FortuneGenerator:
    return FortuneGenerator(settings)


def require_internal_api_key(
    x_internal_api_key: str | None = Header(default=None, alias="X-Internal-API-Key"),
) -> None:
    if not settings.internal_api_key:
        raise HTTPException(status_code=503, detail="INTERNAL_API_KEY is not configured")
    if not x_internal_api_key or not hmac.compare_digest(x_internal_api_key, settings.internal_api_key):
        raise HTTPException(status_code=401, detail="Unauthorized")
