"""
캐릭터 상태 컨테이너 / 매니저

캐릭터마다 자기 문서를 가진 독립된 CharacterState 를 두고,
매니저가 화면에 올라가 있는 캐릭터 하나를 관리한다.
"""

import asyncio
import logging
from copy import deepcopy
from typing import Any, Callable, Dict, Optional

from .document import ATTRIBUTES, default_document, migrate, repair_references
from .errors import DocumentError
from .state_bus import UIStateBus
from .trackers import CIRCLE_TRACKERS, bind_tracker, cells_for_level, clamp_hope_max, fill_level, summarize
from .view import MODULES, SheetView, attribute_field

logger = logging.getLogger(__name__)

ChangeHook = Callable[[str], None]


def _to_int(value: Any, fallback: int) -> int:
    if value is None or value == "":
        return fallback
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return fallback


class CharacterState:
    """캐릭터 한 명의 전체 데이터 + 활성 여부"""

    def __init__(
        self,
        character_id: str,
        data: Optional[Dict[str, Any]] = None,
        on_change: Optional[ChangeHook] = None,
    ):
        self.character_id = character_id
        self.data = migrate(data) if data is not None else default_document()
        self.is_active = False
        self.on_change = on_change

    # --- 경로 접근 -----------------------------------------------------------

    def get(self, path: str, default: Any = None) -> Any:
        current: Any = self.data
        for key in path.split("."):
            if not isinstance(current, dict) or key not in current:
                return default
            current = current[key]
        return current

    def set(self, path: str, value: Any) -> None:
        """경로에 값 기록. 활성 캐릭터면 자동 저장 훅 호출"""
        keys = path.split(".")
        current = self.data
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

        if self.is_active and self.on_change is not None:
            self.on_change("field_change")

    def update_from_cloud(self, cloud_data: Optional[Dict[str, Any]]) -> None:
        """서버 문서를 최상위 키 단위로 덮어쓴다 (깊은 병합 아님)"""
        if not cloud_data:
            return
        incoming = migrate(cloud_data, fill_defaults=False)
        self.data = {**self.data, **incoming}
        repair_references(self.data)
        logger.info(f"📁 캐릭터 {self.character_id} 서버 데이터 반영")

    def get_all_data(self) -> Dict[str, Any]:
        return deepcopy(self.data)

    # --- 화면 반영 -----------------------------------------------------------

    def apply_to_ui(self, view: SheetView, bus: UIStateBus) -> None:
        """문서를 화면과 상태 버스에 밀어 넣는다"""
        self.is_active = True
        data = self.data

        view.set_field("name", data.get("name"))
        view.set_field("subtitle", data.get("subtitle"))
        view.set_field("level", data.get("level"))
        view.set_field("imageUrl", data.get("imageUrl"))
        view.set_field("domain1", data.get("domain1"))
        view.set_field("domain2", data.get("domain2"))
        for attr in ATTRIBUTES:
            view.set_field(attribute_field(attr), data["attributes"].get(attr, 0))
        view.set_field("evasion", data.get("evasion"))
        view.set_field("damage.minor", data["damage"].get("minor"))
        view.set_field("damage.major", data["damage"].get("major"))

        self.apply_to_bus(bus)

        hook = self._tracker_hook
        hope = data["hope"]
        bind_tracker(view, bus, "hope", cells_for_level(hope["max"], hope["current"]), hook)
        for kind in CIRCLE_TRACKERS:
            bind_tracker(view, bus, kind, data[kind]["circles"], hook)

        view.set_page_state("appearance_settings", data.get("appearanceSettings") or {})
        view.set_page_state("ui", data.get("ui") or {})
        logger.debug(f"📂 캐릭터 {self.character_id} 화면 적용")

    def _tracker_hook(self, reason: str) -> None:
        if self.is_active and self.on_change is not None:
            self.on_change(reason)

    def apply_to_bus(self, bus: UIStateBus) -> None:
        data = self.data
        bus.hope = dict(data["hope"])
        bus.hp_circles = data["hp"]["circles"]
        bus.stress_circles = data["stress"]["circles"]
        bus.armor_circles = data["armor"]["circles"]
        bus.equipment = data["equipment"]
        bus.journal_entries = data["journal"]["entries"]
        bus.details = data["details"]
        bus.experiences = data["experiences"]
        bus.projects = data["downtime"]["projects"]
        bus.domain_vault = data["domainVault"]
        bus.effects_features = data["effectsFeatures"]

    def collect_from_ui(self, view: SheetView, bus: UIStateBus) -> None:
        """화면/버스의 현재 값을 문서로 되돌린다. 없는 위젯은 기존 값 유지"""
        data = self.data
        data["name"] = view.get_field("name") or data.get("name")
        data["level"] = _to_int(view.get_field("level"), data.get("level", 1))
        # 빈 문자열은 사용자가 지운 값
        for key in ("subtitle", "imageUrl", "domain1", "domain2"):
            value = view.get_field(key)
            if value is not None:
                data[key] = value

        attributes = data["attributes"]
        for attr in ATTRIBUTES:
            attributes[attr] = _to_int(view.get_field(attribute_field(attr)), attributes.get(attr, 0))
        data["evasion"] = _to_int(view.get_field("evasion"), data.get("evasion", 10))
        damage = data["damage"]
        damage["minor"] = _to_int(view.get_field("damage.minor"), damage.get("minor", 1))
        damage["major"] = _to_int(view.get_field("damage.major"), damage.get("major", 2))

        hope_cells = view.read_tracker("hope")
        if hope_cells:
            data["hope"] = {"current": fill_level(hope_cells), "max": clamp_hope_max(len(hope_cells))}
        for kind in CIRCLE_TRACKERS:
            cells = view.read_tracker(kind)
            if cells:
                data[kind]["circles"] = cells

        self.collect_from_bus(bus)
        self._sync_counters()

    def collect_from_bus(self, bus: UIStateBus) -> None:
        data = self.data
        if bus.hope is not None:
            data["hope"] = {
                "current": int(bus.hope.get("current", 0)),
                "max": clamp_hope_max(bus.hope.get("max", 6)),
            }
        for kind in CIRCLE_TRACKERS:
            cells = getattr(bus, f"{kind}_circles")
            if cells is not None:
                data[kind]["circles"] = deepcopy(cells)
        if bus.equipment is not None:
            data["equipment"] = deepcopy(bus.equipment)
        if bus.journal_entries is not None:
            data["journal"]["entries"] = deepcopy(bus.journal_entries)
        if bus.details is not None:
            data["details"] = deepcopy(bus.details)
        if bus.experiences is not None:
            data["experiences"] = deepcopy(bus.experiences)
        if bus.projects is not None:
            data["downtime"]["projects"] = deepcopy(bus.projects)
        if bus.domain_vault is not None:
            data["domainVault"] = deepcopy(bus.domain_vault)
        if bus.effects_features is not None:
            data["effectsFeatures"] = deepcopy(bus.effects_features)
        repair_references(data)

    def _sync_counters(self) -> None:
        data = self.data
        data["hope"]["current"] = max(0, min(data["hope"]["current"], data["hope"]["max"]))
        for kind in CIRCLE_TRACKERS:
            data[kind].update(summarize(data[kind]["circles"]))
        data["armor"]["activeCount"] = data["armor"]["current"]
        data["armor"]["totalCircles"] = data["armor"]["max"]

    def deactivate(self) -> None:
        """전환 전에 호출. 이후 화면 변경은 이 캐릭터로 저장되지 않는다"""
        self.is_active = False
        logger.debug(f"📁 캐릭터 {self.character_id} 비활성")


class CharacterStateManager:
    """캐릭터 id → CharacterState, 세션당 하나"""

    def __init__(self, view: SheetView, bus: Optional[UIStateBus] = None, on_change: Optional[ChangeHook] = None):
        self.view = view
        self.bus = bus or UIStateBus()
        self.characters: Dict[str, CharacterState] = {}
        self.active_character_id: Optional[str] = None
        self._on_change = on_change

    def set_on_change(self, on_change: Optional[ChangeHook]) -> None:
        self._on_change = on_change
        for state in self.characters.values():
            state.on_change = on_change

    def get_state(self, character_id: str) -> CharacterState:
        state = self.characters.get(character_id)
        if state is None:
            state = CharacterState(character_id, on_change=self._on_change)
            self.characters[character_id] = state
            logger.info(f"📁 캐릭터 상태 생성: {character_id}")
        return state

    @property
    def active_state(self) -> Optional[CharacterState]:
        if self.active_character_id is None:
            return None
        return self.characters.get(self.active_character_id)

    def collect_active(self) -> None:
        state = self.active_state
        if state is None:
            return
        try:
            state.collect_from_ui(self.view, self.bus)
        except Exception as e:
            logger.error(f"캐릭터 {state.character_id} 수집 실패: {e}", exc_info=True)

    async def switch_to_character(
        self,
        character_id: str,
        cloud_data: Optional[Dict[str, Any]] = None,
    ) -> CharacterState:
        """현재 캐릭터를 수집/비활성화한 뒤 대상 캐릭터를 화면에 올린다"""
        logger.info(f"🔄 캐릭터 전환: {self.active_character_id} → {character_id}")
        outgoing = self.active_state
        if outgoing is not None:
            self.collect_active()
            outgoing.deactivate()
        self.active_character_id = None

        state = self.get_state(character_id)
        if cloud_data:
            try:
                state.update_from_cloud(cloud_data)
            except DocumentError as e:
                logger.error(f"캐릭터 {character_id} 서버 데이터 무시: {e}")

        # 이전 캐릭터 값이 남지 않도록 버스를 비우고 시작
        self.bus.clear()
        try:
            state.apply_to_ui(self.view, self.bus)
        except Exception as e:
            logger.error(f"캐릭터 {character_id} 화면 적용 실패: {e}", exc_info=True)

        state.is_active = True
        self.active_character_id = character_id
        await self.re_render_all_modules()
        return state

    async def re_render_all_modules(self) -> None:
        for module in MODULES:
            try:
                self.view.refresh(module)
            except Exception as e:
                logger.warning(f"모듈 다시 그리기 실패 ({module}): {e}")
            await asyncio.sleep(0)

    def current_character_data(self) -> Optional[Dict[str, Any]]:
        """저장용 최신 문서 (수집 후 복사본)"""
        state = self.active_state
        if state is None:
            return None
        self.collect_active()
        return state.get_all_data()

    def clear_character(self, character_id: str) -> None:
        self.characters.pop(character_id, None)
        if self.active_character_id == character_id:
            self.active_character_id = None
            self.bus.clear()
        logger.info(f"🗑️ 캐릭터 상태 삭제: {character_id}")
