"""
관리용 API 라우터 (본인 데이터 초기화)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from charsheet.core.database import get_db
from charsheet.core.security import get_current_user
from charsheet.models.user import User
from charsheet.services.character_service import reset_all_data

router = APIRouter()


@router.delete("/reset-all")
async def reset_all(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """내 캐릭터와 저장 이력 전체 삭제"""
    deleted = await reset_all_data(db, current_user.id)
    return {"message": "All character data has been reset", "deleted": deleted}
