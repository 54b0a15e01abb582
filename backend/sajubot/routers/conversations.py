from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .. import schemas, services
from ..database import get_db
from ..dependencies import require_internal_api_key

router = APIRouter(
    prefix="/v1/users",
    tags=["conversations"],
    dependencies=[Depends(require_internal_api_key)],
)


@router.get("/{kakao_user_key}/conversations", response_model=schemas.ConversationListResponse)
def list_conversations(
    kakao_user_key: str,
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    user = services.find_user(db, kakao_user_key)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    rows = services.get_recent_conversations(db, user.id, limit=limit)
    return schemas.ConversationListResponse(
        kakao_user_key=kakao_user_key,
        conversations=[
            schemas.ConversationResponse(
                id=row.id,
                message=row.message,
                response=row.response,
                fortune_type=row.fortune_type,
                created_at=row.created_at,
            )
            for row in rows
        ],
    )
