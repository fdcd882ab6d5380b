"""
모델 패키지
"""

from .user import User
from .character import Character, CharacterSave
from .password_reset import PasswordReset

__all__ = [
    "User",
    "Character",
    "CharacterSave",
    "PasswordReset",
]
