"""
Pydantic 스키마 패키지
"""

from .auth import (
    RegisterRequest,
    RegisterResponse,
    LoginRequest,
    LoginResponse,
    PasswordResetRequest,
    PasswordResetConfirm,
    ForgotPasswordResponse,
)
from .user import UserResponse
from .character import (
    CharacterCreate,
    CharacterPost,
    CharacterUpdate,
    SetActiveRequest,
    CharacterResponse,
    SharedCharacterResponse,
    CharacterEnvelope,
    CharacterListResponse,
    SharedCharacterEnvelope,
    CharacterSaveResponse,
    CharacterSaveListResponse,
)

__all__ = [
    "RegisterRequest",
    "RegisterResponse",
    "LoginRequest",
    "LoginResponse",
    "PasswordResetRequest",
    "PasswordResetConfirm",
    "ForgotPasswordResponse",
    "UserResponse",
    "CharacterCreate",
    "CharacterPost",
    "CharacterUpdate",
    "SetActiveRequest",
    "CharacterResponse",
    "SharedCharacterResponse",
    "CharacterEnvelope",
    "CharacterListResponse",
    "SharedCharacterEnvelope",
    "CharacterSaveResponse",
    "CharacterSaveListResponse",
]
