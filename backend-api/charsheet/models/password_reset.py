"""
비밀번호 재설정 토큰 모델
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, func
import uuid

from charsheet.core.database import Base, UUID


class PasswordReset(Base):
    """사용자당 1개의 미사용 재설정 토큰"""
    __tablename__ = "password_resets"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    token = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<PasswordReset(user_id={self.user_id}, expires_at={self.expires_at})>"
