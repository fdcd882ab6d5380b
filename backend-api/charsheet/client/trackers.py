"""
HP / Stress / Armor / Hope 트래커

트래커는 칸 단위로 그려지는 하나의 채움 레벨이다. i 번째 칸을 누르면
0..i 가 채워지고 나머지는 비워진다. 이미 맨 위 칸이 i 였다면 한 칸 내려간다.
"""

from typing import Callable, Dict, List, Optional, Sequence

Cell = Dict[str, bool]

CIRCLE_TRACKERS = ("hp", "stress", "armor")
HOPE_MAX_LIMIT = 10


def fill_level(cells: Sequence[Cell]) -> int:
    """맨 위 활성 칸 + 1 (연속 여부와 무관)"""
    level = 0
    for index, cell in enumerate(cells):
        if cell.get("active"):
            level = index + 1
    return level


def cells_for_level(count: int, level: int) -> List[Cell]:
    level = max(0, min(count, level))
    return [{"active": i < level} for i in range(count)]


def set_fill_level(cells: Sequence[Cell], index: int) -> List[Cell]:
    """index 칸을 눌렀을 때의 새 칸 목록 (입력은 수정하지 않음)"""
    if not 0 <= index < len(cells):
        raise IndexError(f"tracker cell {index} out of range 0..{len(cells) - 1}")
    target = index + 1
    if fill_level(cells) == target:
        target = index
    return cells_for_level(len(cells), target)


def hope_click(current: int, maximum: int, index: int) -> int:
    """희망 트래커 클릭 후 current 값"""
    cells = cells_for_level(maximum, current)
    return fill_level(set_fill_level(cells, index))


def clamp_hope_max(value: int) -> int:
    return max(0, min(HOPE_MAX_LIMIT, int(value)))


def resize(cells: Sequence[Cell], count: int) -> List[Cell]:
    """칸 수 변경 (채움 레벨은 유지, 넘치면 잘림)"""
    return cells_for_level(max(0, count), fill_level(cells))


def summarize(cells: Sequence[Cell]) -> Dict[str, int]:
    return {"current": sum(1 for c in cells if c.get("active")), "max": len(cells)}


def bind_tracker(
    view,
    bus,
    kind: str,
    cells: Sequence[Cell],
    on_change: Optional[Callable[[str], None]] = None,
) -> None:
    """트래커를 그리고 클릭 핸들러를 연결한다.

    클릭하면 UIStateBus 와 화면을 같이 갱신하고 on_change("tracker_click") 호출.
    hope 는 칸 목록 대신 {current, max} 로 버스에 기록된다.
    """
    def handle_click(index: int) -> None:
        current_cells = view.read_tracker(kind) or list(cells)
        updated = set_fill_level(current_cells, index)
        publish_tracker(bus, kind, updated)
        bind_tracker(view, bus, kind, updated, on_change)
        if on_change is not None:
            on_change("tracker_click")

    view.render_tracker(kind, [dict(c) for c in cells], handle_click)


def publish_tracker(bus, kind: str, cells: Sequence[Cell]) -> None:
    if kind == "hope":
        bus.hope = {"current": fill_level(cells), "max": len(cells)}
    else:
        setattr(bus, f"{kind}_circles", [dict(c) for c in cells])
