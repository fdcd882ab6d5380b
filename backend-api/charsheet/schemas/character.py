"""
캐릭터 관련 Pydantic 스키마

요청 본문은 프런트엔드 필드명(camelCase)을 그대로 받고,
응답은 저장소 컬럼명(snake_case)을 그대로 돌려준다.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
import uuid


class CharacterCreate(BaseModel):
    """캐릭터 생성 요청"""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    character_data: Dict[str, Any] = Field(default_factory=dict, alias="characterData")
    set_as_active: bool = Field(True, alias="setAsActive")


class CharacterPost(CharacterCreate):
    """POST /characters 본문

    name 이 있으면 생성, characterId + characterData 는 자동 저장,
    characterId 만 있으면 활성 캐릭터 지정으로 처리된다.
    """
    character_id: Optional[uuid.UUID] = Field(None, alias="characterId")
    character_data: Optional[Dict[str, Any]] = Field(None, alias="characterData")


class CharacterUpdate(BaseModel):
    """캐릭터 부분 업데이트 / 공유 토글"""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    character_data: Optional[Dict[str, Any]] = Field(None, alias="characterData")
    is_shared: Optional[bool] = Field(None, alias="isShared")


class SetActiveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    character_id: Optional[uuid.UUID] = Field(None, alias="characterId")


class CharacterResponse(BaseModel):
    """소유자용 캐릭터 응답"""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    character_data: Dict[str, Any]
    is_shared: bool
    share_token: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SharedCharacterResponse(BaseModel):
    """공유 링크용 공개 응답 (토큰/소유자 id 제외)"""
    id: uuid.UUID
    name: str
    character_data: Dict[str, Any]
    owner_username: str
    is_shared: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CharacterEnvelope(BaseModel):
    character: CharacterResponse


class CharacterListResponse(BaseModel):
    characters: List[CharacterResponse]
    activeCharacterId: Optional[uuid.UUID] = None


class SharedCharacterEnvelope(BaseModel):
    character: SharedCharacterResponse


class CharacterSaveResponse(BaseModel):
    """저장 이력 항목"""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    character_id: uuid.UUID
    save_type: str
    save_data: Dict[str, Any]
    created_at: Optional[datetime] = None


class CharacterSaveListResponse(BaseModel):
    saves: List[CharacterSaveResponse]
