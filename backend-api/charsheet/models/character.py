"""
캐릭터 시트 모델
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid

from charsheet.core.database import Base, UUID, JSON


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Character(Base):
    """캐릭터 모델 - character_data는 불투명 JSON 문서"""
    __tablename__ = "characters"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    character_data = Column(JSON, nullable=False, default=dict)

    # 공유 설정 (share_token은 공유 중일 때만 존재)
    is_shared = Column(Boolean, nullable=False, default=False)
    share_token = Column(String(64), unique=True, nullable=True, index=True)

    # 사용자별 활성 캐릭터는 최대 1개
    is_active = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    # 목록 정렬 기준
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner = relationship("User", back_populates="characters", foreign_keys=[user_id])
    saves = relationship(
        "CharacterSave",
        back_populates="character",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_characters_user_active_updated", "user_id", "is_active", "updated_at"),
    )

    def __repr__(self):
        return f"<Character(id={self.id}, name={self.name}, user_id={self.user_id})>"


class CharacterSave(Base):
    """캐릭터 저장 이력 (append-only)"""
    __tablename__ = "character_saves"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4, index=True)
    character_id = Column(UUID(), ForeignKey("characters.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    save_data = Column(JSON, nullable=False)
    # auto / manual 등 자유 태그
    save_type = Column(String(50), nullable=False, default="auto")
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    character = relationship("Character", back_populates="saves")

    def __repr__(self):
        return f"<CharacterSave(id={self.id}, character_id={self.character_id}, type={self.save_type})>"
