"""
캐릭터 관련 서비스

모든 함수는 소유자(user_id) 범위 안에서만 동작한다. 다른 사용자의
캐릭터는 존재하지 않는 것과 동일하게 None 으로 돌려준다.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from typing import Any, Dict, List, Optional, Tuple
import logging
import uuid

from charsheet.core.config import settings
from charsheet.models.character import Character, CharacterSave
from charsheet.models.user import User

logger = logging.getLogger(__name__)

SAVE_TYPE_AUTO = "auto"
SAVE_TYPE_MANUAL = "manual"


async def list_characters(db: AsyncSession, user_id: uuid.UUID) -> Tuple[List[Character], Optional[uuid.UUID]]:
    """캐릭터 목록 (활성 우선, 최근 수정 순) + 활성 캐릭터 id"""
    result = await db.execute(
        select(Character)
        .where(Character.user_id == user_id)
        .order_by(Character.is_active.desc(), Character.updated_at.desc())
    )
    characters = list(result.scalars().all())
    active_id = await db.scalar(select(User.active_character_id).where(User.id == user_id))
    return characters, active_id


async def get_owned_character(
    db: AsyncSession,
    user_id: uuid.UUID,
    character_id: uuid.UUID,
) -> Optional[Character]:
    """소유자 범위 단건 조회"""
    result = await db.execute(
        select(Character).where(Character.id == character_id, Character.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def _lock_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    # SQLite 에서는 FOR UPDATE 가 무시된다 (DB 전체 잠금)
    result = await db.execute(select(User).where(User.id == user_id).with_for_update())
    return result.scalar_one_or_none()


async def _activate(db: AsyncSession, user_id: uuid.UUID, character_id: uuid.UUID) -> None:
    await db.execute(
        update(Character)
        .where(Character.user_id == user_id, Character.id != character_id, Character.is_active.is_(True))
        .values(is_active=False)
    )
    await db.execute(
        update(Character)
        .where(Character.id == character_id, Character.user_id == user_id)
        .values(is_active=True)
    )
    await db.execute(
        update(User).where(User.id == user_id).values(active_character_id=character_id)
    )


async def create_character(
    db: AsyncSession,
    user_id: uuid.UUID,
    name: str,
    character_data: Optional[Dict[str, Any]] = None,
    set_as_active: bool = True,
) -> Character:
    """캐릭터 생성 + 최초 manual 저장 기록 (+ 활성 지정)"""
    data = character_data or {}
    try:
        if set_as_active:
            await _lock_user(db, user_id)
        character = Character(user_id=user_id, name=name, character_data=data, is_active=False)
        db.add(character)
        await db.flush()

        db.add(CharacterSave(
            character_id=character.id,
            user_id=user_id,
            save_data=data,
            save_type=SAVE_TYPE_MANUAL,
        ))
        if set_as_active:
            await _activate(db, user_id, character.id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(character)
    logger.info(f"🧙 캐릭터 생성: id={character.id}, user_id={user_id}, active={set_as_active}")
    return character


async def update_character(
    db: AsyncSession,
    character: Character,
    name: Optional[str] = None,
    character_data: Optional[Dict[str, Any]] = None,
) -> Character:
    """부분 업데이트. character_data 는 통째로 교체한다 (deep merge 아님)"""
    try:
        if name is not None:
            character.name = name
        if character_data is not None:
            character.character_data = character_data
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(character)
    return character


async def set_sharing(db: AsyncSession, character: Character, enabled: bool) -> Character:
    """공유 토글: 켤 때 토큰이 없으면 발급, 끌 때는 토큰 삭제"""
    try:
        if enabled:
            character.is_shared = True
            if not character.share_token:
                character.share_token = str(uuid.uuid4())
        else:
            character.is_shared = False
            character.share_token = None
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(character)
    return character


async def delete_character(db: AsyncSession, character: Character) -> None:
    """캐릭터 삭제 (저장 이력 포함)"""
    try:
        await db.execute(
            update(User)
            .where(User.id == character.user_id, User.active_character_id == character.id)
            .values(active_character_id=None)
        )
        await db.execute(delete(CharacterSave).where(CharacterSave.character_id == character.id))
        await db.execute(delete(Character).where(Character.id == character.id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(f"🗑️ 캐릭터 삭제: id={character.id}")


async def get_shared_character(db: AsyncSession, share_token: str) -> Optional[Tuple[Character, str]]:
    """공유 토큰으로 조회 (공유 중일 때만). 반환: (캐릭터, 소유자 username)"""
    result = await db.execute(
        select(Character, User.username)
        .join(User, User.id == Character.user_id)
        .where(Character.share_token == share_token, Character.is_shared.is_(True))
    )
    row = result.first()
    if row is None:
        return None
    return row[0], row[1]


async def get_active_character(db: AsyncSession, user_id: uuid.UUID) -> Optional[Character]:
    """users.active_character_id 기준 활성 캐릭터"""
    result = await db.execute(
        select(Character)
        .join(User, User.active_character_id == Character.id)
        .where(User.id == user_id, Character.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def set_active_character(
    db: AsyncSession,
    user_id: uuid.UUID,
    character_id: uuid.UUID,
) -> Optional[Character]:
    """활성 캐릭터 지정 (단일 트랜잭션). 소유하지 않은 캐릭터면 None"""
    try:
        await _lock_user(db, user_id)
        character = await get_owned_character(db, user_id, character_id)
        if character is None:
            await db.rollback()
            return None
        await _activate(db, user_id, character_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(character)
    return character


async def autosave_character(
    db: AsyncSession,
    user_id: uuid.UUID,
    character_id: uuid.UUID,
    character_data: Dict[str, Any],
    retention: Optional[int] = None,
) -> Optional[Character]:
    """자동 저장: 문서 교체 + auto 이력 추가 + 오래된 auto 이력 정리"""
    keep = retention if retention is not None else settings.AUTO_SAVE_RETENTION
    try:
        character = await get_owned_character(db, user_id, character_id)
        if character is None:
            return None
        character.character_data = character_data
        db.add(CharacterSave(
            character_id=character_id,
            user_id=user_id,
            save_data=character_data,
            save_type=SAVE_TYPE_AUTO,
        ))
        await db.flush()

        stale_ids = (await db.execute(
            select(CharacterSave.id)
            .where(CharacterSave.character_id == character_id, CharacterSave.save_type == SAVE_TYPE_AUTO)
            .order_by(CharacterSave.created_at.desc())
            .offset(keep)
        )).scalars().all()
        if stale_ids:
            await db.execute(delete(CharacterSave).where(CharacterSave.id.in_(stale_ids)))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(character)
    return character


async def list_saves(
    db: AsyncSession,
    user_id: uuid.UUID,
    character_id: uuid.UUID,
    limit: int = 20,
) -> List[CharacterSave]:
    """저장 이력 (최신 순)"""
    result = await db.execute(
        select(CharacterSave)
        .where(CharacterSave.character_id == character_id, CharacterSave.user_id == user_id)
        .order_by(CharacterSave.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def reset_all_data(db: AsyncSession, user_id: uuid.UUID) -> Dict[str, int]:
    """사용자의 모든 캐릭터/저장 이력 삭제 + 활성 캐릭터 해제 (all-or-nothing)"""
    try:
        saves = await db.execute(delete(CharacterSave).where(CharacterSave.user_id == user_id))
        await db.execute(update(User).where(User.id == user_id).values(active_character_id=None))
        characters = await db.execute(delete(Character).where(Character.user_id == user_id))
        await db.commit()
    except Exception:
        await db.rollback()
        logger.error(f"❌ 전체 초기화 실패 (롤백): user_id={user_id}")
        raise

    counts = {"characters": characters.rowcount or 0, "saves": saves.rowcount or 0}
    logger.info(f"🧹 전체 초기화: user_id={user_id}, {counts}")
    return counts
