"""
캐릭터 관련 API 라우터
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import uuid

from charsheet.core.database import get_db
from charsheet.core.security import get_current_user
from charsheet.models.user import User
from charsheet.models.character import Character
from charsheet.schemas.character import (
    CharacterPost,
    CharacterUpdate,
    SetActiveRequest,
    CharacterEnvelope,
    CharacterListResponse,
    SharedCharacterEnvelope,
    CharacterSaveListResponse,
)
from charsheet.services import character_service

router = APIRouter()

NOT_FOUND = "Character not found"


def _not_found(detail: str = NOT_FOUND) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def _parse_id(raw: str) -> uuid.UUID:
    # 형식이 잘못된 id 도 "없음"과 같은 응답
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise _not_found()


async def _owned_or_404(db: AsyncSession, user: User, raw_id: str) -> Character:
    character = await character_service.get_owned_character(db, user.id, _parse_id(raw_id))
    if character is None:
        raise _not_found()
    return character


@router.get("", response_model=CharacterListResponse)
async def list_characters(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """내 캐릭터 목록"""
    characters, active_id = await character_service.list_characters(db, current_user.id)
    return {"characters": characters, "activeCharacterId": active_id}


@router.post("", response_model=CharacterEnvelope)
async def create_or_save_character(
    payload: CharacterPost,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """캐릭터 생성 / 자동 저장 / 활성 지정

    - name 이 있으면 새 캐릭터 생성 (201)
    - characterId + characterData 는 자동 저장
    - characterId 만 있으면 활성 캐릭터 지정
    """
    if payload.character_id is not None and payload.name is None:
        if payload.character_data is not None:
            character = await character_service.autosave_character(
                db, current_user.id, payload.character_id, payload.character_data
            )
        else:
            character = await character_service.set_active_character(
                db, current_user.id, payload.character_id
            )
        if character is None:
            raise _not_found()
        return {"character": character}

    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Character name is required")

    character = await character_service.create_character(
        db,
        current_user.id,
        name=name,
        character_data=payload.character_data or {},
        set_as_active=payload.set_as_active,
    )
    response.status_code = status.HTTP_201_CREATED
    return {"character": character}


@router.get("/active", response_model=CharacterEnvelope)
async def get_active_character(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """활성 캐릭터 조회"""
    character = await character_service.get_active_character(db, current_user.id)
    if character is None:
        raise _not_found("No active character found")
    return {"character": character}


@router.post("/active", response_model=CharacterEnvelope)
async def set_active_character(
    payload: SetActiveRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """활성 캐릭터 지정 (나머지는 모두 비활성)"""
    if payload.character_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Character ID is required")
    character = await character_service.set_active_character(db, current_user.id, payload.character_id)
    if character is None:
        raise _not_found()
    return {"character": character}


@router.get("/shared/{share_token}", response_model=SharedCharacterEnvelope)
async def get_shared_character(
    share_token: str,
    db: AsyncSession = Depends(get_db)
):
    """공유 링크 조회 (인증 불필요)"""
    found = await character_service.get_shared_character(db, share_token)
    if found is None:
        raise _not_found("Shared character not found")
    character, owner_username = found
    return {
        "character": {
            "id": character.id,
            "name": character.name,
            "character_data": character.character_data,
            "owner_username": owner_username,
            "is_shared": True,
            "created_at": character.created_at,
            "updated_at": character.updated_at,
        }
    }


@router.get("/{character_id}", response_model=CharacterEnvelope)
async def get_character(
    character_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """캐릭터 단건 조회"""
    return {"character": await _owned_or_404(db, current_user, character_id)}


@router.put("/{character_id}", response_model=CharacterEnvelope)
async def update_character(
    character_id: str,
    payload: CharacterUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """캐릭터 수정. isShared 가 있으면 공유 토글로 처리"""
    character = await _owned_or_404(db, current_user, character_id)

    if "is_shared" in payload.model_fields_set:
        if payload.is_shared is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="isShared must be a boolean")
        character = await character_service.set_sharing(db, character, payload.is_shared)
        return {"character": character}

    if payload.name is None and payload.character_data is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields to update")
    name = None
    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Character name cannot be empty")

    character = await character_service.update_character(
        db, character, name=name, character_data=payload.character_data
    )
    return {"character": character}


@router.delete("/{character_id}")
async def delete_character(
    character_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """캐릭터 삭제"""
    character = await _owned_or_404(db, current_user, character_id)
    await character_service.delete_character(db, character)
    return {"message": "Character deleted successfully"}


@router.get("/{character_id}/saves", response_model=CharacterSaveListResponse)
async def list_character_saves(
    character_id: str,
    limit: Optional[int] = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """저장 이력 조회 (최신 순)"""
    character = await _owned_or_404(db, current_user, character_id)
    saves = await character_service.list_saves(db, current_user.id, character.id, limit=limit)
    return {"saves": saves}
