"""
사용자 관련 서비스
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union
import logging
import uuid

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from charsheet.core.config import settings
from charsheet.models.user import User
from charsheet.models.password_reset import PasswordReset

logger = logging.getLogger(__name__)


class ConflictError(Exception):
    """이메일/사용자명 중복"""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} already exists")


async def get_user_by_id(db: AsyncSession, user_id: Union[str, uuid.UUID]) -> Optional[User]:
    """ID로 사용자 조회"""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """이메일로 사용자 조회"""
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> Optional[User]:
    """사용자명으로 사용자 조회"""
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    email: str,
    username: str,
    password_hash: str,
) -> User:
    """사용자 생성

    사전 중복 확인을 통과했더라도 동시 가입은 unique 제약에서 걸리므로
    IntegrityError 를 ConflictError 로 바꿔 올린다.
    """
    user = User(
        email=email.strip().lower(),
        username=username,
        hashed_password=password_hash,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if await get_user_by_email(db, email):
            raise ConflictError("Email")
        raise ConflictError("Username")
    await db.refresh(user)
    return user


def _as_utc(value: datetime) -> datetime:
    # SQLite 는 tz 정보를 잃어버린다
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def create_password_reset(db: AsyncSession, user: User) -> PasswordReset:
    """재설정 토큰 발급 (기존 토큰은 교체)"""
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
    try:
        result = await db.execute(select(PasswordReset).where(PasswordReset.user_id == user.id))
        reset = result.scalar_one_or_none()
        if reset is None:
            reset = PasswordReset(user_id=user.id)
            db.add(reset)
        reset.token = str(uuid.uuid4())
        reset.expires_at = expires_at
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(reset)
    return reset


async def complete_password_reset(db: AsyncSession, token: str, password_hash: str) -> bool:
    """토큰 검증 후 비밀번호 교체 + 토큰 삭제 (단일 트랜잭션)"""
    result = await db.execute(select(PasswordReset).where(PasswordReset.token == token))
    reset = result.scalar_one_or_none()
    if reset is None or _as_utc(reset.expires_at) <= datetime.now(timezone.utc):
        return False

    user = await get_user_by_id(db, reset.user_id)
    if user is None:
        return False
    try:
        user.hashed_password = password_hash
        await db.execute(delete(PasswordReset).where(PasswordReset.id == reset.id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(f"🔑 비밀번호 재설정 완료: user_id={user.id}")
    return True
