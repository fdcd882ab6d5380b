"""
로컬 캐시 (캐릭터 파일 키-값 저장소)

키 규칙
- zevi-character-file-{id}  : 캐릭터 파일 {id, remoteId, document, snapshot,
                              lastModified, syncedModified}
- zevi-character-directory  : 캐릭터 목록 인덱스
- zevi-current-character-id : 현재 캐릭터 포인터
- GLOBAL_KEYS               : 캐릭터와 무관한 전역 설정 (정리 대상 아님)
그 외 zevi-* 키는 캐릭터 단위 모듈 값으로 보고 정리 대상이 된다.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .errors import DocumentError, StorageQuotaError

logger = logging.getLogger(__name__)

PREFIX = "zevi-"
FILE_PREFIX = "zevi-character-file-"
DIRECTORY_KEY = "zevi-character-directory"
CURRENT_CHARACTER_KEY = "zevi-current-character-id"
LEGACY_SNAPSHOT_PREFIX = "zevi-comprehensive-character-"

GLOBAL_KEYS = frozenset({
    "zevi-auth-token",
    "zevi-current-user",
    CURRENT_CHARACTER_KEY,
    "zevi-theme",
    "zevi-character-code",
    "zevi-custom-accent-base",
    "zevi-custom-accent-light",
    "zevi-custom-accent-dark",
})

CHARACTER_SPECIFIC_KEYS = (
    "zevi-hope",
    "zevi-max-hope",
    "zevi-hp-circles",
    "zevi-hp-current",
    "zevi-stress-circles",
    "zevi-stress-current",
    "zevi-armor-circles",
    "zevi-active-armor-count",
    "zevi-total-armor-circles",
    "zevi-minor-damage-value",
    "zevi-major-damage-value",
    "zevi-equipment",
    "zevi-journal-entries",
    "zevi-character-details",
    "zevi-experiences",
    "zevi-projects",
    "zevi-domain-vault",
    "zevi-effects-features",
    "zevi-section-order",
    "zevi-backpack-enabled",
    "zevi-background-image",
    "zevi-accent-color",
    "zevi-glass-color",
    "zevi-glass-opacity",
)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class KeyValueBackend(Protocol):
    """문자열 키/값 저장소. set 이 실패하면 기존 값은 그대로여야 한다."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...


class MemoryBackend:
    """메모리 저장소 (용량 제한 포함)"""

    def __init__(self, quota_bytes: int = DEFAULT_QUOTA_BYTES):
        self.quota_bytes = quota_bytes
        self._items: Dict[str, str] = {}

    def used_bytes(self) -> int:
        return sum(_entry_size(k, v) for k, v in self._items.items())

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        current = self._items.get(key)
        used = self.used_bytes() - (_entry_size(key, current) if current is not None else 0)
        required = used + _entry_size(key, value)
        if required > self.quota_bytes:
            raise StorageQuotaError(key, required, self.quota_bytes)
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)


class JsonFileBackend(MemoryBackend):
    """JSON 파일 저장소. 쓰기는 임시 파일 교체로 원자적으로 처리"""

    def __init__(self, path, quota_bytes: int = DEFAULT_QUOTA_BYTES):
        super().__init__(quota_bytes)
        self.path = Path(path)
        if self.path.exists():
            with self.path.open("r", encoding="utf-8") as f:
                loaded = json.load(f)
            self._items = {str(k): str(v) for k, v in loaded.items()}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".cache-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._items, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def set(self, key: str, value: str) -> None:
        previous = self._items.get(key)
        super().set(key, value)
        try:
            self._flush()
        except Exception:
            # 디스크 기록 실패 시 메모리 상태도 되돌린다
            if previous is None:
                self._items.pop(key, None)
            else:
                self._items[key] = previous
            raise

    def remove(self, key: str) -> None:
        if key in self._items:
            super().remove(key)
            self._flush()


class LocalCache:
    """캐릭터 파일/디렉터리/현재 포인터 관리"""

    def __init__(self, backend: Optional[KeyValueBackend] = None):
        self.backend = backend if backend is not None else MemoryBackend()

    # --- 원시 값 -------------------------------------------------------------

    def get_raw(self, key: str, default: Any = None) -> Any:
        text = self.backend.get(key)
        if text is None:
            return default
        try:
            return json.loads(text)
        except ValueError:
            return text

    def set_raw(self, key: str, value: Any) -> None:
        self.backend.set(key, self._serialize(key, value))

    def remove_raw(self, key: str) -> None:
        self.backend.remove(key)

    @staticmethod
    def _serialize(key: str, value: Any) -> str:
        # 직렬화가 끝난 뒤에만 저장소를 건드린다
        try:
            return json.dumps(value, ensure_ascii=False, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise DocumentError(f"cannot serialize {key}: {e}") from e

    # --- 분류 ----------------------------------------------------------------

    @staticmethod
    def file_key(character_id: str) -> str:
        return f"{FILE_PREFIX}{character_id}"

    @staticmethod
    def is_character_scoped(key: str) -> bool:
        """캐릭터 단위 모듈 키 여부 (파일/디렉터리/전역/레거시 제외)"""
        return (
            key.startswith(PREFIX)
            and key not in GLOBAL_KEYS
            and key != DIRECTORY_KEY
            and not key.startswith(FILE_PREFIX)
            and not key.startswith(LEGACY_SNAPSHOT_PREFIX)
        )

    def character_scoped_values(self) -> Dict[str, Any]:
        return {key: self.get_raw(key) for key in sorted(self.backend.keys()) if self.is_character_scoped(key)}

    def replace_character_scoped_values(self, values: Dict[str, Any]) -> None:
        """캐릭터 단위 키를 통째로 교체 (스냅샷 복원용)"""
        payload = {key: self._serialize(key, value) for key, value in values.items() if self.is_character_scoped(key)}
        for key in self.backend.keys():
            if self.is_character_scoped(key) and key not in payload:
                self.backend.remove(key)
        for key, text in payload.items():
            self.backend.set(key, text)

    def analyze(self) -> Dict[str, List[str]]:
        result: Dict[str, List[str]] = {"global": [], "character_files": [], "character_specific": [], "unknown": []}
        for key in sorted(self.backend.keys()):
            if key in GLOBAL_KEYS or key == DIRECTORY_KEY:
                result["global"].append(key)
            elif key.startswith(FILE_PREFIX):
                result["character_files"].append(key)
            elif any(key == base or key.startswith(base + "-") for base in CHARACTER_SPECIFIC_KEYS):
                result["character_specific"].append(key)
            else:
                result["unknown"].append(key)
        return result

    def clear_character_data(self) -> int:
        """캐릭터 단위 키 정리. 전역 키와 캐릭터 파일은 남긴다"""
        removed = 0
        for key in self.backend.keys():
            if self.is_character_scoped(key):
                self.backend.remove(key)
                removed += 1
        logger.info(f"🧹 캐릭터 단위 로컬 키 {removed}개 정리")
        return removed

    # --- 현재 캐릭터 ---------------------------------------------------------

    @property
    def current_character_id(self) -> Optional[str]:
        value = self.backend.get(CURRENT_CHARACTER_KEY)
        return value or None

    @current_character_id.setter
    def current_character_id(self, character_id: Optional[str]) -> None:
        if character_id is None:
            self.backend.remove(CURRENT_CHARACTER_KEY)
        else:
            self.backend.set(CURRENT_CHARACTER_KEY, str(character_id))

    # --- 캐릭터 파일 ---------------------------------------------------------

    def save_character(
        self,
        character_id: str,
        document: Dict[str, Any],
        snapshot: Optional[Dict[str, Any]] = None,
        modified_at: Optional[str] = None,
        remote_id: Optional[str] = None,
    ) -> None:
        """캐릭터 파일 저장. 용량 초과 시 정리 후 한 번 재시도

        remote_id 를 주지 않으면 기존 파일의 서버 id 를 유지한다.
        syncedModified 는 서버에 마지막으로 반영된 문서의 lastModified.
        """
        modified_at = modified_at or document.get("lastModified")
        previous = self.load_character(character_id) or {}
        if remote_id is None:
            remote_id = previous.get("remoteId")
        record = {
            "id": character_id,
            "remoteId": remote_id,
            "document": document,
            "snapshot": snapshot,
            "lastModified": modified_at,
            "syncedModified": previous.get("syncedModified"),
        }
        key = self.file_key(character_id)
        text = self._serialize(key, record)
        try:
            self._write_file(key, text, character_id, document, modified_at)
        except StorageQuotaError:
            freed = self.cleanup(keep_character_id=character_id, needed_bytes=_entry_size(key, text))
            logger.warning(f"⚠️ 로컬 저장 용량 초과, {freed}개 정리 후 재시도: {character_id}")
            self._write_file(key, text, character_id, document, modified_at)

    def _write_file(
        self,
        key: str,
        text: str,
        character_id: str,
        document: Dict[str, Any],
        modified_at: Optional[str],
    ) -> None:
        # 파일과 디렉터리는 같이 재시도한다
        self.backend.set(key, text)
        self._update_directory(character_id, document, modified_at)

    def load_character(self, character_id: str) -> Optional[Dict[str, Any]]:
        record = self.get_raw(self.file_key(character_id))
        return record if isinstance(record, dict) else None

    def remote_id(self, character_id: str) -> Optional[str]:
        record = self.load_character(character_id)
        return record.get("remoteId") if record else None

    def mark_synced(self, character_id: str, modified_at: Optional[str]) -> None:
        """서버 반영 완료 표시. 그 사이 더 새로 저장됐으면 미반영 상태로 남는다"""
        record = self.load_character(character_id)
        if record is None:
            return
        record["syncedModified"] = modified_at
        key = self.file_key(character_id)
        self.backend.set(key, self._serialize(key, record))

    def has_unsynced_changes(self, character_id: str) -> bool:
        """로컬 문서가 서버에 아직 반영되지 않았는지"""
        record = self.load_character(character_id)
        if record is None or record.get("lastModified") is None:
            return False
        synced = record.get("syncedModified")
        # ISO-8601 UTC 문자열이라 문자열 비교로 시간 순서가 맞다
        return synced is None or synced < record["lastModified"]

    def delete_character(self, character_id: str) -> bool:
        key = self.file_key(character_id)
        existed = self.backend.get(key) is not None
        self.backend.remove(key)
        directory = [e for e in self._directory() if e.get("id") != character_id]
        self.backend.set(DIRECTORY_KEY, self._serialize(DIRECTORY_KEY, directory))
        if self.current_character_id == character_id:
            self.current_character_id = None
        return existed

    def list_characters(self) -> List[Dict[str, Any]]:
        """디렉터리 (최근 수정 순)"""
        return sorted(self._directory(), key=lambda e: e.get("lastModified") or "", reverse=True)

    def clear_all_characters(self) -> int:
        keys = [k for k in self.backend.keys() if k.startswith(FILE_PREFIX) or k.startswith(LEGACY_SNAPSHOT_PREFIX)]
        for key in keys:
            self.backend.remove(key)
        self.backend.remove(DIRECTORY_KEY)
        self.backend.remove(CURRENT_CHARACTER_KEY)
        logger.info(f"🧹 캐릭터 파일 {len(keys)}개 삭제")
        return len(keys)

    def _directory(self) -> List[Dict[str, Any]]:
        directory = self.get_raw(DIRECTORY_KEY, [])
        return directory if isinstance(directory, list) else []

    def _update_directory(self, character_id: str, document: Dict[str, Any], modified_at: Optional[str]) -> None:
        entry = {
            "id": character_id,
            "name": document.get("name"),
            "level": document.get("level"),
            "imageUrl": document.get("imageUrl") or "",
            "lastModified": modified_at,
        }
        directory = [e for e in self._directory() if e.get("id") != character_id]
        directory.append(entry)
        self.backend.set(DIRECTORY_KEY, self._serialize(DIRECTORY_KEY, directory))

    # --- 용량 정리 -----------------------------------------------------------

    def cleanup(self, keep_character_id: Optional[str] = None, needed_bytes: int = 0) -> int:
        """용량 확보. 문서는 지우지 않는다.

        1) 레거시 스냅샷 키 삭제
        2) 다른 캐릭터 파일의 snapshot 부분을 오래된 것부터 비움
        """
        freed = 0
        for key in self.backend.keys():
            if key.startswith(LEGACY_SNAPSHOT_PREFIX):
                self.backend.remove(key)
                freed += 1

        for entry in sorted(self._directory(), key=lambda e: e.get("lastModified") or ""):
            if self._has_room(needed_bytes):
                break
            character_id = entry.get("id")
            if character_id is None or character_id == keep_character_id:
                continue
            record = self.load_character(character_id)
            if not record or record.get("snapshot") is None:
                continue
            record["snapshot"] = None
            key = self.file_key(character_id)
            self.backend.set(key, self._serialize(key, record))
            freed += 1
        return freed

    def _has_room(self, needed_bytes: int) -> bool:
        quota = getattr(self.backend, "quota_bytes", None)
        used = getattr(self.backend, "used_bytes", None)
        if quota is None or used is None:
            return False
        return used() + needed_bytes <= quota
