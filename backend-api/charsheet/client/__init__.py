"""
캐릭터 상태 동기화/저장 클라이언트 코어

화면은 SheetView, 모듈 간 공유 상태는 UIStateBus, 로컬 저장은 LocalCache 를
거친다. 서버 동기화는 RemoteRepository + AutosaveOrchestrator.
"""

from .errors import (
    CharacterSheetError,
    DocumentError,
    StorageQuotaError,
    RemoteError,
    AutosaveError,
)
from .document import SCHEMA_VERSION, default_document, migrate, repair_references
from .state_bus import UIStateBus
from .view import SheetView, MemoryView
from .state import CharacterState, CharacterStateManager
from .local_cache import LocalCache, MemoryBackend, JsonFileBackend
from .snapshot import SnapshotCapture
from .remote import RemoteRepository
from .autosave import AutosaveOrchestrator, SaveOutcome

__all__ = [
    "CharacterSheetError",
    "DocumentError",
    "StorageQuotaError",
    "RemoteError",
    "AutosaveError",
    "SCHEMA_VERSION",
    "default_document",
    "migrate",
    "repair_references",
    "UIStateBus",
    "SheetView",
    "MemoryView",
    "CharacterState",
    "CharacterStateManager",
    "LocalCache",
    "MemoryBackend",
    "JsonFileBackend",
    "SnapshotCapture",
    "RemoteRepository",
    "AutosaveOrchestrator",
    "SaveOutcome",
]
