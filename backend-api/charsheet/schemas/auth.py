"""
인증 관련 Pydantic 스키마
"""

from pydantic import BaseModel
from typing import Optional

from charsheet.schemas.user import UserResponse


class RegisterRequest(BaseModel):
    """회원가입 요청 (필수값 검사는 라우터에서 메시지와 함께 처리)"""
    email: Optional[str] = None
    password: Optional[str] = None
    username: Optional[str] = None


class LoginRequest(BaseModel):
    """로그인 요청"""
    email: Optional[str] = None
    password: Optional[str] = None


class RegisterResponse(BaseModel):
    message: str
    user: UserResponse


class LoginResponse(BaseModel):
    """로그인 응답 (토큰 포함)"""
    message: str
    user: UserResponse
    token: str


class PasswordResetRequest(BaseModel):
    """패스워드 재설정 요청 스키마"""
    email: Optional[str] = None


class PasswordResetConfirm(BaseModel):
    """패스워드 재설정 확인 스키마"""
    token: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordResponse(BaseModel):
    message: str
    # 비운영 환경에서만 채워짐
    resetToken: Optional[str] = None
    resetUrl: Optional[str] = None
