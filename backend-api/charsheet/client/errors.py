"""
클라이언트 예외 클래스들
"""

from typing import Optional


class CharacterSheetError(Exception):
    """클라이언트 기본 예외"""
    pass


class DocumentError(CharacterSheetError):
    """문서 직렬화/마이그레이션 실패"""
    pass


class StorageQuotaError(CharacterSheetError):
    """로컬 저장소 용량 초과"""

    def __init__(self, key: str, required: int, quota: int):
        self.key = key
        self.required = required
        self.quota = quota
        super().__init__(f"storage quota exceeded writing {key}: {required} > {quota} bytes")


class RemoteError(CharacterSheetError):
    """서버 응답 에러"""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class AutosaveError(CharacterSheetError):
    """저장 흐름 에러 (현재 캐릭터 없음 등)"""
    pass
