"""
사용자 관련 Pydantic 스키마
"""

from pydantic import BaseModel, ConfigDict
import uuid


class UserResponse(BaseModel):
    """사용자 응답 스키마 (공개 필드만)"""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    username: str
