"""
화면 어댑터

상태/저장 로직은 SheetView 인터페이스만 안다. 실제 UI 스택마다 어댑터를
하나씩 두고, 테스트와 헤드리스 실행에는 MemoryView 를 쓴다.
"""

from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Set

Cell = Dict[str, bool]
ClickHandler = Callable[[int], None]

# 필드 이름 (화면 위젯 1개 = 이름 1개)
BASIC_FIELDS = ("name", "subtitle", "level", "domain1", "domain2", "imageUrl", "imageAlt")
STAT_FIELDS = ("evasion", "damage.minor", "damage.major", "damage.severe")
PREFERENCE_FIELDS = (
    "accentColor",
    "glassColor",
    "glassOpacity",
    "characterCode",
    "platformFilter",
    "characterSearch",
)
EQUIPMENT_FIELDS = ("backpackSelection", "backpackToggle")

# 문서에 없는 페이지 상태 묶음
PAGE_SECTIONS = (
    "appearance",        # 배경, 다크모드, 색 대상
    "layout",            # 섹션 위치/표시/순서, 컨테이너 스타일
    "tabs",              # 활성 탭, 저널 카테고리, 다운타임 뷰
    "modals",            # 열린 모달 id 목록
    "scroll",            # 스크롤 위치
    "customizations",    # CSS 변수, 인라인 스타일, 클래스
    "appearance_settings",
    "ui",
)

# 캐릭터 전환 후 다시 그리는 모듈 (순서 고정)
MODULES = (
    "hp",
    "stress",
    "armor",
    "hope",
    "equipment",
    "journal",
    "experiences",
    "projects",
    "details",
    "domain_vault",
    "effects_features",
)


def attribute_field(name: str) -> str:
    return f"attr.{name}"


class SheetView(Protocol):
    """화면 바인딩 인터페이스. 없는 위젯은 None 을 돌려주고 예외를 내지 않는다."""

    def get_field(self, name: str) -> Any: ...

    def set_field(self, name: str, value: Any) -> None: ...

    def read_tracker(self, kind: str) -> Optional[List[Cell]]: ...

    def render_tracker(self, kind: str, cells: Sequence[Cell], on_click: ClickHandler) -> None: ...

    def get_page_state(self, section: str) -> Optional[Dict[str, Any]]: ...

    def set_page_state(self, section: str, value: Dict[str, Any]) -> None: ...

    def refresh(self, module: str) -> None: ...


class MemoryView:
    """메모리 기반 화면

    hide() 로 지정한 위젯은 렌더되지 않은 것처럼 동작한다 (읽으면 None, 쓰기 무시).
    """

    def __init__(self, fields: Optional[Dict[str, Any]] = None):
        self.fields: Dict[str, Any] = dict(fields or {})
        self.trackers: Dict[str, List[Cell]] = {}
        self.handlers: Dict[str, ClickHandler] = {}
        self.page: Dict[str, Dict[str, Any]] = {}
        self.refreshed: List[str] = []
        self.hidden: Set[str] = set()

    def hide(self, *names: str) -> None:
        self.hidden.update(names)
        for name in names:
            self.fields.pop(name, None)
            self.trackers.pop(name, None)

    def get_field(self, name: str) -> Any:
        if name in self.hidden:
            return None
        return self.fields.get(name)

    def set_field(self, name: str, value: Any) -> None:
        if name in self.hidden:
            return
        self.fields[name] = value

    def read_tracker(self, kind: str) -> Optional[List[Cell]]:
        if kind in self.hidden or kind not in self.trackers:
            return None
        return [dict(c) for c in self.trackers[kind]]

    def render_tracker(self, kind: str, cells: Sequence[Cell], on_click: ClickHandler) -> None:
        if kind in self.hidden:
            return
        self.trackers[kind] = [dict(c) for c in cells]
        self.handlers[kind] = on_click

    def click(self, kind: str, index: int) -> None:
        """사용자 클릭 흉내"""
        handler = self.handlers.get(kind)
        if handler is None:
            raise KeyError(f"tracker {kind} is not rendered")
        handler(index)

    def get_page_state(self, section: str) -> Optional[Dict[str, Any]]:
        if section in self.hidden or section not in self.page:
            return None
        return deepcopy(self.page[section])

    def set_page_state(self, section: str, value: Dict[str, Any]) -> None:
        if section in self.hidden:
            return
        self.page[section] = deepcopy(value)

    def refresh(self, module: str) -> None:
        self.refreshed.append(module)
