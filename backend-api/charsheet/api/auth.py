"""
인증 관련 API 라우터
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import re

from charsheet.core.config import settings
from charsheet.core.database import get_db
from charsheet.core.rate_limit import enforce_rate_limit
from charsheet.core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    get_current_user,
)
from charsheet.models.user import User
from charsheet.schemas.auth import (
    RegisterRequest,
    RegisterResponse,
    LoginRequest,
    LoginResponse,
    PasswordResetRequest,
    PasswordResetConfirm,
    ForgotPasswordResponse,
)
from charsheet.schemas.user import UserResponse
from charsheet.services.user_service import (
    ConflictError,
    get_user_by_email,
    get_user_by_username,
    create_user,
    create_password_reset,
    complete_password_reset,
)
from charsheet.services.mail_service import build_reset_url, send_password_reset_email

logger = logging.getLogger(__name__)

router = APIRouter()

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
MIN_USERNAME_LENGTH = 3
GENERIC_RESET_MESSAGE = "If an account with that email exists, a password reset link has been sent."


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db)
):
    """사용자 회원가입"""
    if not payload.email or not payload.password or not payload.username:
        raise _bad_request("Email, password, and username are required")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise _bad_request(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    username = payload.username.strip()
    if len(username) < MIN_USERNAME_LENGTH:
        raise _bad_request(f"Username must be at least {MIN_USERNAME_LENGTH} characters long")
    email = payload.email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise _bad_request("Invalid email format")

    # 중복 확인 (동시 가입은 create_user 에서 한번 더 걸러짐)
    if await get_user_by_email(db, email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
    if await get_user_by_username(db, username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")

    try:
        user = await create_user(
            db=db,
            email=email,
            username=username,
            password_hash=get_password_hash(payload.password),
        )
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    logger.info(f"👤 회원가입: user_id={user.id}")
    return {"message": "User created successfully", "user": user}


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """사용자 로그인"""
    await enforce_rate_limit(request, "login", settings.RATE_LIMIT_LOGIN_PER_MINUTE)
    if not payload.email or not payload.password:
        raise _bad_request("Email and password are required")

    # 존재하지 않는 계정과 비밀번호 오류는 같은 응답
    user = await get_user_by_email(db, payload.email)
    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = create_access_token(data={"sub": str(user.id)})
    return {"message": "Login successful", "user": user, "token": token}


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """현재 사용자 정보 조회"""
    return current_user


@router.post("/forgot-password", response_model=ForgotPasswordResponse, response_model_exclude_none=True)
async def forgot_password(
    payload: PasswordResetRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """비밀번호 재설정 메일 발송

    계정 존재 여부와 무관하게 같은 메시지를 돌려준다.
    운영 환경이 아니면 토큰과 링크를 응답에 함께 실어준다.
    """
    await enforce_rate_limit(request, "forgot", settings.RATE_LIMIT_FORGOT_PER_MINUTE)
    if not payload.email:
        raise _bad_request("Email is required")

    user = await get_user_by_email(db, payload.email)
    if not user:
        return {"message": GENERIC_RESET_MESSAGE}

    reset = await create_password_reset(db, user)
    try:
        await send_password_reset_email(user.email, reset.token)
    except Exception as e:
        # 발송 실패해도 토큰은 유지
        logger.warning(f"비밀번호 재설정 메일 발송 실패: {e}")

    if settings.is_production:
        return {"message": GENERIC_RESET_MESSAGE}
    return {
        "message": GENERIC_RESET_MESSAGE,
        "resetToken": reset.token,
        "resetUrl": build_reset_url(reset.token),
    }


@router.post("/reset-password")
async def reset_password(
    payload: PasswordResetConfirm,
    db: AsyncSession = Depends(get_db)
):
    """비밀번호 재설정 (토큰 검증)"""
    if not payload.token or not payload.password:
        raise _bad_request("Token and password are required")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise _bad_request(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    ok = await complete_password_reset(db, payload.token, get_password_hash(payload.password))
    if not ok:
        raise _bad_request("Invalid or expired reset token")

    return {"message": "Password has been reset successfully"}
