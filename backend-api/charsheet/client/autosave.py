"""
자동 저장 / 동기화

트리거: 주기(기본 5초), 주요 UI 이벤트(1초 디바운스), 수동 저장,
화면 숨김, 페이지 종료. 저장 한 번 = 수집 → 스냅샷 → 로컬 캐시 → 서버.
수집과 로컬 기록은 await 없이 한 번에 끝나므로 중간 상태가 저장되지 않는다.
"""

import asyncio
import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .document import default_document, touch
from .errors import AutosaveError, DocumentError, RemoteError, StorageQuotaError
from .local_cache import LocalCache
from .remote import RemoteRepository
from .snapshot import AMBIENT_SECTIONS, SnapshotCapture
from .state import CharacterState, CharacterStateManager

logger = logging.getLogger(__name__)

STATUS_SAVED = "saved"
STATUS_QUOTA = "quota"
STATUS_ERROR = "error"
STATUS_OFFLINE = "offline"
STATUS_SKIPPED = "skipped"

# 바로 저장을 예약하는 이벤트
IMMEDIATE_REASONS = frozenset({
    "name_blur",
    "level_blur",
    "image_upload",
    "tab_switch",
    "tracker_click",
    "attribute_change",
})

DEFAULT_INTERVAL_SECONDS = 5.0
DEFAULT_DEBOUNCE_SECONDS = 1.0
DEFAULT_EVENT_DELAY_SECONDS = 0.1


@dataclass
class SaveOutcome:
    """저장 1회 결과"""
    status: str
    character_id: Optional[str]
    reason: str
    remote_synced: bool = False
    message: Optional[str] = None


def new_character_id() -> str:
    """오프라인 캐릭터 id (char_<ms>_<rand>)"""
    return f"char_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def _is_server_id(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class AutosaveOrchestrator:
    """캐릭터 매니저 + 스냅샷 + 로컬 캐시 + 서버 저장소를 묶는다"""

    def __init__(
        self,
        manager: CharacterStateManager,
        snapshot: SnapshotCapture,
        cache: LocalCache,
        remote: Optional[RemoteRepository] = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        event_delay_seconds: float = DEFAULT_EVENT_DELAY_SECONDS,
        on_status: Optional[Callable[[SaveOutcome], None]] = None,
    ):
        self.manager = manager
        self.snapshot = snapshot
        self.cache = cache
        self.remote = remote
        self.interval_seconds = interval_seconds
        self.debounce_seconds = debounce_seconds
        self.event_delay_seconds = event_delay_seconds
        self.on_status = on_status
        self.last_outcome: Optional[SaveOutcome] = None

        self._lock = asyncio.Lock()
        self._push_lock = asyncio.Lock()
        self._seq = 0
        self._latest_seq: Dict[str, int] = {}
        self._last_save_at: Optional[float] = None
        self._pending: Optional[asyncio.Task] = None
        self._interval_task: Optional[asyncio.Task] = None

        manager.set_on_change(self.trigger)
        snapshot.on_tracker_change = self.trigger

    # --- 수명 ----------------------------------------------------------------

    def start(self) -> None:
        """주기 저장 시작 (실행 중인 이벤트 루프 필요)"""
        if self._interval_task is not None and not self._interval_task.done():
            return
        self._interval_task = asyncio.get_running_loop().create_task(self._run_interval())
        logger.info(f"💾 자동 저장 시작 (주기 {self.interval_seconds}s)")

    async def stop(self) -> None:
        for task in (self._interval_task, self._pending):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._interval_task = None
        self._pending = None
        logger.info("💾 자동 저장 중지")

    async def _run_interval(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            if self.manager.active_state is None:
                continue
            try:
                await self.save("interval")
            except Exception as e:
                # 주기 저장 루프는 죽지 않는다
                logger.error(f"주기 저장 실패: {e}", exc_info=True)

    # --- 트리거 --------------------------------------------------------------

    def trigger(self, reason: str) -> None:
        """상태 변경 훅. 주요 이벤트만 저장을 예약한다"""
        if reason not in IMMEDIATE_REASONS:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"이벤트 루프 없음, 저장 예약 생략: {reason}")
            return
        if self._pending is not None and not self._pending.done():
            # 이미 예약된 저장이 최신 상태를 수집한다
            return
        self._pending = loop.create_task(self._delayed_save(self._delay_for_event(loop.time()), reason))

    def _delay_for_event(self, now: float) -> float:
        delay = self.event_delay_seconds
        if self._last_save_at is not None:
            delay = max(delay, self.debounce_seconds - (now - self._last_save_at))
        return delay

    async def _delayed_save(self, delay: float, reason: str) -> None:
        await asyncio.sleep(delay)
        try:
            await self.save(reason)
        except Exception as e:
            logger.error(f"이벤트 저장 실패 ({reason}): {e}", exc_info=True)

    async def manual_save(self) -> SaveOutcome:
        """단축키 저장"""
        self._cancel_pending()
        return await self.save("manual")

    async def on_visibility_hidden(self) -> SaveOutcome:
        return await self.save("visibility_hidden")

    def on_unload(self) -> SaveOutcome:
        """페이지 종료. 기다릴 수 없으므로 로컬 캐시에만 기록"""
        self._cancel_pending()
        outcome, _ = self._save_local("unload")
        self._report(outcome)
        return outcome

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    # --- 저장 ----------------------------------------------------------------

    async def save(self, reason: str = "manual") -> SaveOutcome:
        async with self._lock:
            outcome, document = self._save_local(reason)
        if document is not None:
            outcome = await self._push(outcome, document)
        self._report(outcome)
        return outcome

    def _save_local(self, reason: str):
        """수집 → 스냅샷 → 로컬 캐시. 반환: (결과, 서버로 보낼 문서)"""
        state = self.manager.active_state
        if state is None:
            return SaveOutcome(STATUS_SKIPPED, None, reason, message="no active character"), None

        character_id = state.character_id
        self.manager.collect_active()
        touch(state.data)
        document = state.get_all_data()
        self._last_save_at = self._now()

        try:
            captured = self.snapshot.capture(character_id)
        except Exception as e:
            logger.error(f"스냅샷 캡처 실패 ({character_id}): {e}", exc_info=True)
            captured = None

        try:
            self.cache.save_character(character_id, document, captured)
            self.cache.current_character_id = character_id
        except StorageQuotaError as e:
            logger.error(f"❌ 로컬 저장 공간 부족 ({character_id}): {e}")
            return SaveOutcome(STATUS_QUOTA, character_id, reason, message=str(e)), document
        except DocumentError as e:
            logger.error(f"❌ 로컬 저장 실패 ({character_id}): {e}")
            return SaveOutcome(STATUS_ERROR, character_id, reason, message=str(e)), document

        logger.debug(f"💾 로컬 저장 완료: {character_id} ({reason})")
        return SaveOutcome(STATUS_SAVED, character_id, reason), document

    async def _push(self, outcome: SaveOutcome, document: Dict[str, Any]) -> SaveOutcome:
        """서버 반영. 같은 캐릭터의 더 새로운 저장이 대기 중이면 건너뛴다"""
        if self.remote is None or outcome.character_id is None:
            return outcome
        character_id = outcome.character_id
        self._seq += 1
        seq = self._seq
        self._latest_seq[character_id] = seq

        async with self._push_lock:
            if self._latest_seq.get(character_id) != seq:
                logger.debug(f"더 새로운 저장이 있어 서버 반영 생략: {character_id}")
                return outcome
            try:
                remote_id = await self._ensure_remote(character_id, document)
                await self.remote.autosave(remote_id, document)
            except RemoteError as e:
                if e.status is None:
                    logger.warning(f"⚠️ 서버 연결 실패, 로컬만 저장: {e}")
                    status = STATUS_OFFLINE if outcome.status == STATUS_SAVED else outcome.status
                    return SaveOutcome(status, character_id, outcome.reason, message=str(e))
                logger.error(f"❌ 서버 저장 실패 ({e.status}): {e}")
                return SaveOutcome(STATUS_ERROR, character_id, outcome.reason, message=str(e))
            try:
                self.cache.mark_synced(character_id, document.get("lastModified"))
            except StorageQuotaError as e:
                logger.warning(f"⚠️ 동기화 표시 기록 실패 ({character_id}): {e}")

        outcome.remote_synced = True
        return outcome

    async def _ensure_remote(self, character_id: str, document: Dict[str, Any]) -> str:
        """로컬 캐릭터의 서버 id (없으면 서버에 생성)"""
        remote_id = self.cache.remote_id(character_id)
        if remote_id:
            return remote_id
        if _is_server_id(character_id):
            return character_id
        created = await self.remote.create_character(
            document.get("name") or "New Character",
            document,
            set_as_active=False,
        )
        remote_id = str(created["id"])
        record = self.cache.load_character(character_id) or {}
        self.cache.save_character(
            character_id,
            record.get("document") or document,
            record.get("snapshot"),
            remote_id=remote_id,
        )
        logger.info(f"☁️ 서버 캐릭터 생성: {character_id} → {remote_id}")
        return remote_id

    def _report(self, outcome: SaveOutcome) -> None:
        self.last_outcome = outcome
        if self.on_status is None:
            return
        try:
            self.on_status(outcome)
        except Exception as e:
            logger.warning(f"저장 상태 콜백 오류: {e}")

    @staticmethod
    def _now() -> float:
        try:
            return asyncio.get_running_loop().time()
        except RuntimeError:
            return time.monotonic()

    # --- 캐릭터 전환 / 생성 --------------------------------------------------

    async def switch_character(
        self,
        character_id: str,
        cloud_data: Optional[Dict[str, Any]] = None,
    ) -> CharacterState:
        """현재 캐릭터를 먼저 저장한 뒤 대상 캐릭터를 불러온다

        서버 조회는 잠금 밖에서 한다 (조회 중에도 저장은 계속 돈다).
        서버에 아직 반영되지 않은 로컬 문서가 있으면 서버 문서보다 우선한다.
        """
        self._cancel_pending()
        fetched = None
        if cloud_data is None and not self.cache.has_unsynced_changes(character_id):
            fetched = await self._fetch_remote(character_id)

        async with self._lock:
            outgoing: Optional[SaveOutcome] = None
            outgoing_document = None
            if self.manager.active_state is not None:
                outgoing, outgoing_document = self._save_local("character_switch")

            record = self.cache.load_character(character_id)
            if cloud_data is None:
                if record is not None and self.cache.has_unsynced_changes(character_id):
                    logger.info(f"📁 서버 미반영 로컬 문서 사용: {character_id}")
                    cloud_data = record.get("document")
                else:
                    cloud_data = fetched
            if cloud_data is None and record is not None:
                cloud_data = record.get("document")

            state = await self.manager.switch_to_character(character_id, cloud_data)

            self.snapshot.reset_ambient()
            captured = record.get("snapshot") if record else None
            if captured:
                self.snapshot.restore(captured, sections=AMBIENT_SECTIONS)
            else:
                self.cache.clear_character_data()
            self.cache.current_character_id = character_id

        if outgoing is not None:
            if outgoing_document is not None:
                outgoing = await self._push(outgoing, outgoing_document)
            self._report(outgoing)
        return state

    async def _fetch_remote(self, character_id: str) -> Optional[Dict[str, Any]]:
        if self.remote is None:
            return None
        remote_id = self.cache.remote_id(character_id) or (character_id if _is_server_id(character_id) else None)
        if remote_id is None:
            return None
        try:
            character = await self.remote.get_character(remote_id)
        except RemoteError as e:
            logger.warning(f"⚠️ 서버 캐릭터 조회 실패, 로컬 데이터 사용: {e}")
            return None
        return character.get("character_data") or None

    async def create_character(self, name: str, overrides: Optional[Dict[str, Any]] = None) -> CharacterState:
        """새 캐릭터 생성 후 전환. 서버가 되면 서버 id 를 그대로 쓴다"""
        name = (name or "").strip()
        if not name:
            raise AutosaveError("Character name is required")
        document = default_document(**{**(overrides or {}), "name": name})

        character_id = new_character_id()
        remote_id = None
        if self.remote is not None:
            try:
                created = await self.remote.create_character(name, document, set_as_active=True)
                character_id = remote_id = str(created["id"])
            except RemoteError as e:
                logger.warning(f"⚠️ 서버 생성 실패, 로컬 캐릭터로 생성: {e}")

        self.cache.save_character(character_id, document, None, remote_id=remote_id)
        logger.info(f"✨ 캐릭터 생성: {name} ({character_id})")
        return await self.switch_character(character_id, cloud_data=document)

    async def delete_character(self, character_id: str) -> None:
        remote_id = self.cache.remote_id(character_id) or (character_id if _is_server_id(character_id) else None)
        if self.remote is not None and remote_id is not None:
            try:
                await self.remote.delete_character(remote_id)
            except RemoteError as e:
                if e.status != 404:
                    raise
        self.manager.clear_character(character_id)
        self.cache.delete_character(character_id)
        logger.info(f"🗑️ 캐릭터 삭제: {character_id}")
