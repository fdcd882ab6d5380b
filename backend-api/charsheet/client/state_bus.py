"""
UI 상태 버스

모듈끼리 주고받는 타입 있는 공유 상태.
값을 넣을 때 깊은 복사를 하므로 캐릭터 간에 객체가 공유되지 않는다.
"""

from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]


class _BusField:
    """버스 필드 디스크립터 (미설정 = None)"""

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, bus, owner=None):
        if bus is None:
            return self
        return bus._values.get(self.name)

    def __set__(self, bus, value):
        bus._set(self.name, value)


class UIStateBus:
    """모듈 간 공유 상태"""

    hope = _BusField()              # {"current": int, "max": int}
    hp_circles = _BusField()        # [{"active": bool}, ...]
    stress_circles = _BusField()
    armor_circles = _BusField()
    equipment = _BusField()
    journal_entries = _BusField()
    details = _BusField()
    experiences = _BusField()
    projects = _BusField()
    domain_vault = _BusField()
    effects_features = _BusField()

    FIELDS = (
        "hope",
        "hp_circles",
        "stress_circles",
        "armor_circles",
        "equipment",
        "journal_entries",
        "details",
        "experiences",
        "projects",
        "domain_vault",
        "effects_features",
    )

    def __init__(self):
        self._values: Dict[str, Any] = {}
        self._listeners: List[Listener] = []

    def _set(self, name: str, value: Any) -> None:
        if value is None:
            self._values.pop(name, None)
        else:
            self._values[name] = deepcopy(value)
        for listener in list(self._listeners):
            try:
                listener(name, value)
            except Exception as e:
                # 구독자 하나의 실패가 상태 갱신을 막지 않는다
                logger.warning(f"상태 버스 구독자 오류 ({name}): {e}")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """변경 구독. 반환값을 호출하면 구독 해제"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def is_set(self, name: str) -> bool:
        return name in self._values

    def snapshot(self) -> Dict[str, Any]:
        return deepcopy(self._values)

    def clear(self) -> None:
        """모든 값 제거 (구독자에게 None 통지)"""
        for name in list(self._values):
            self._set(name, None)

    def get(self, name: str, default: Optional[Any] = None) -> Any:
        if name not in self.FIELDS:
            raise AttributeError(f"unknown bus field: {name}")
        return self._values.get(name, default)
