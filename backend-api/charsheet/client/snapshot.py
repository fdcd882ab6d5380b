"""
페이지 전체 스냅샷 캡처/복원

문서에 없는 화면 상태(섹션 배치, CSS 변수, 열린 모달, 스크롤 위치)와
캐릭터 단위 로컬 키까지 한 덩어리로 묶는다.
복원 순서는 고정: 기본 정보 → 외형 → 능력치 → 로컬 키 → 트래커 → 장비
→ 시트 탭 → 레이아웃 → UI 설정 → 커스터마이징 → 모듈 새로 그리기
"""

from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging

from .document import ATTRIBUTES
from .errors import DocumentError
from .local_cache import LocalCache
from .state_bus import UIStateBus
from .trackers import CIRCLE_TRACKERS, publish_tracker, bind_tracker, cells_for_level, fill_level, summarize
from .view import BASIC_FIELDS, EQUIPMENT_FIELDS, MODULES, PREFERENCE_FIELDS, STAT_FIELDS, SheetView, attribute_field

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

# 문서에 없는 화면 상태만 (캐릭터 전환 후 복원용)
AMBIENT_SECTIONS = ("appearance", "cacheKeys", "layout", "uiPreferences", "customizations")

# 문서 밖의 캐릭터별 페이지 상태 (전환 시 초기화)
CHARACTER_PAGE_SECTIONS = ("appearance", "layout", "tabs", "modals", "scroll", "customizations")

# 버스 필드 → characterSheet 키
_SHEET_BUS_FIELDS = (
    ("journal", "journal_entries"),
    ("details", "details"),
    ("experiences", "experiences"),
    ("projects", "projects"),
    ("domainVault", "domain_vault"),
    ("effectsFeatures", "effects_features"),
)


def comparable(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """비교용 사본 (캡처 시각 제외)"""
    data = deepcopy(snapshot)
    data.pop("captureTimestamp", None)
    return data


class SnapshotCapture:
    """SheetView + UIStateBus + LocalCache 를 스냅샷 하나로 묶는다"""

    def __init__(
        self,
        view: SheetView,
        bus: UIStateBus,
        cache: LocalCache,
        on_tracker_change: Optional[Callable[[str], None]] = None,
    ):
        self.view = view
        self.bus = bus
        self.cache = cache
        self.on_tracker_change = on_tracker_change

    # --- 캡처 ----------------------------------------------------------------

    def capture(self, character_id: str) -> Dict[str, Any]:
        """현재 화면 상태 전체를 한 번에 읽는다 (중간에 await 없음)"""
        view = self.view
        snapshot = {
            "captureTimestamp": datetime.now(timezone.utc).isoformat(),
            "version": SNAPSHOT_VERSION,
            "characterId": character_id,
            "basicInfo": {name: view.get_field(name) for name in BASIC_FIELDS},
            "appearance": view.get_page_state("appearance"),
            "layout": view.get_page_state("layout"),
            "stats": self._capture_stats(),
            "trackers": self._capture_trackers(),
            "equipment": {
                "data": deepcopy(self.bus.equipment),
                **{name: view.get_field(name) for name in EQUIPMENT_FIELDS},
            },
            "characterSheet": self._capture_sheet(),
            "uiPreferences": {
                **{name: view.get_field(name) for name in PREFERENCE_FIELDS},
                "modalsOpen": view.get_page_state("modals"),
                "scrollPositions": view.get_page_state("scroll"),
            },
            "customizations": view.get_page_state("customizations"),
            "cacheKeys": self.cache.character_scoped_values(),
        }
        logger.debug(f"📸 스냅샷 캡처: {character_id}")
        return snapshot

    def _capture_stats(self) -> Dict[str, Any]:
        view = self.view
        return {
            "attributes": {name: view.get_field(attribute_field(name)) for name in ATTRIBUTES},
            "evasion": view.get_field("evasion"),
            "damageThresholds": {name: view.get_field(name) for name in STAT_FIELDS if name.startswith("damage.")},
        }

    def _capture_trackers(self) -> Dict[str, Any]:
        trackers: Dict[str, Any] = {}
        for kind in CIRCLE_TRACKERS:
            cells = self.view.read_tracker(kind)
            if cells is None:
                cells = deepcopy(getattr(self.bus, f"{kind}_circles"))
            if cells is None:
                trackers[kind] = None
                continue
            trackers[kind] = {"circles": cells, **summarize(cells)}

        hope_cells = self.view.read_tracker("hope")
        if hope_cells is not None:
            trackers["hope"] = {"current": fill_level(hope_cells), "max": len(hope_cells)}
        else:
            trackers["hope"] = deepcopy(self.bus.hope)
        return trackers

    def _capture_sheet(self) -> Dict[str, Any]:
        sheet: Dict[str, Any] = {"tabs": self.view.get_page_state("tabs")}
        for key, field in _SHEET_BUS_FIELDS:
            sheet[key] = deepcopy(getattr(self.bus, field))
        return sheet

    # --- 복원 ----------------------------------------------------------------

    def restore(self, snapshot: Dict[str, Any], sections: Optional[Iterable[str]] = None) -> List[str]:
        """스냅샷 적용. 반환: 실패한 단계 이름 목록

        sections 를 주면 해당 단계만 적용한다 (순서는 그대로).
        한 단계가 실패해도 나머지 단계는 계속 진행한다.
        """
        only = set(sections) if sections is not None else None
        if not isinstance(snapshot, dict):
            raise DocumentError("snapshot must be an object")
        version = snapshot.get("version")
        if version is not None and version > SNAPSHOT_VERSION:
            raise DocumentError(f"snapshot version {version} is newer than supported {SNAPSHOT_VERSION}")

        steps = (
            ("basicInfo", self._restore_basic),
            ("appearance", self._restore_appearance),
            ("stats", self._restore_stats),
            ("cacheKeys", self._restore_cache_keys),
            ("trackers", self._restore_trackers),
            ("equipment", self._restore_equipment),
            ("characterSheet", self._restore_sheet),
            ("layout", self._restore_layout),
            ("uiPreferences", self._restore_preferences),
            ("customizations", self._restore_customizations),
        )
        failed: List[str] = []
        for name, step in steps:
            section = snapshot.get(name)
            if section is None or (only is not None and name not in only):
                continue
            try:
                step(section)
            except Exception as e:
                logger.error(f"스냅샷 복원 실패 ({name}): {e}", exc_info=True)
                failed.append(name)

        for module in MODULES:
            try:
                self.view.refresh(module)
            except Exception as e:
                logger.warning(f"모듈 다시 그리기 실패 ({module}): {e}")

        logger.info(f"📂 스냅샷 복원: {snapshot.get('characterId')} (실패 {len(failed)}건)")
        return failed

    def reset_ambient(self) -> None:
        """문서에 없는 화면 상태를 비운다. 이전 캐릭터 값이 다음 캡처에 섞이지 않게"""
        for section in CHARACTER_PAGE_SECTIONS:
            self.view.set_page_state(section, {})
        for name in PREFERENCE_FIELDS + EQUIPMENT_FIELDS:
            self.view.set_field(name, None)

    def _restore_basic(self, basic: Dict[str, Any]) -> None:
        for name in BASIC_FIELDS:
            if name in basic:
                self.view.set_field(name, basic[name])

    def _restore_appearance(self, appearance: Dict[str, Any]) -> None:
        self.view.set_page_state("appearance", appearance)

    def _restore_stats(self, stats: Dict[str, Any]) -> None:
        for name, value in (stats.get("attributes") or {}).items():
            self.view.set_field(attribute_field(name), value)
        if "evasion" in stats:
            self.view.set_field("evasion", stats["evasion"])
        for name, value in (stats.get("damageThresholds") or {}).items():
            self.view.set_field(name, value)

    def _restore_cache_keys(self, values: Dict[str, Any]) -> None:
        self.cache.replace_character_scoped_values(values)

    def _restore_trackers(self, trackers: Dict[str, Any]) -> None:
        for kind in CIRCLE_TRACKERS:
            entry = trackers.get(kind)
            if not entry:
                continue
            cells = [dict(c) for c in entry.get("circles") or []]
            publish_tracker(self.bus, kind, cells)
            bind_tracker(self.view, self.bus, kind, cells, self.on_tracker_change)

        hope = trackers.get("hope")
        if hope:
            cells = cells_for_level(int(hope.get("max", 0)), int(hope.get("current", 0)))
            publish_tracker(self.bus, "hope", cells)
            bind_tracker(self.view, self.bus, "hope", cells, self.on_tracker_change)

    def _restore_equipment(self, equipment: Dict[str, Any]) -> None:
        if equipment.get("data") is not None:
            self.bus.equipment = equipment["data"]
        for name in EQUIPMENT_FIELDS:
            if name in equipment:
                self.view.set_field(name, equipment[name])

    def _restore_sheet(self, sheet: Dict[str, Any]) -> None:
        if sheet.get("tabs") is not None:
            self.view.set_page_state("tabs", sheet["tabs"])
        for key, field in _SHEET_BUS_FIELDS:
            if sheet.get(key) is not None:
                setattr(self.bus, field, sheet[key])

    def _restore_layout(self, layout: Dict[str, Any]) -> None:
        self.view.set_page_state("layout", layout)

    def _restore_preferences(self, prefs: Dict[str, Any]) -> None:
        for name in PREFERENCE_FIELDS:
            if name in prefs:
                self.view.set_field(name, prefs[name])
        if prefs.get("modalsOpen") is not None:
            self.view.set_page_state("modals", prefs["modalsOpen"])
        if prefs.get("scrollPositions") is not None:
            self.view.set_page_state("scroll", prefs["scrollPositions"])

    def _restore_customizations(self, customizations: Dict[str, Any]) -> None:
        self.view.set_page_state("customizations", customizations)
