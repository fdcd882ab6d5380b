"""Tracker fill-level tests."""

from __future__ import annotations

import pytest

from charsheet.client.trackers import (
    HOPE_MAX_LIMIT,
    bind_tracker,
    cells_for_level,
    clamp_hope_max,
    fill_level,
    hope_click,
    resize,
    set_fill_level,
    summarize,
)


def _active(cells):
    return [c["active"] for c in cells]


class TestFillLevel:
    def test_click_fills_up_to_index(self):
        cells = cells_for_level(5, 0)

        assert _active(set_fill_level(cells, 2)) == [True, True, True, False, False]

    def test_click_on_top_cell_steps_down(self):
        cells = cells_for_level(5, 3)

        assert _active(set_fill_level(cells, 2)) == [True, True, False, False, False]

    @pytest.mark.parametrize("start", [0, 1, 2, 3, 4, 5])
    @pytest.mark.parametrize("index", [0, 2, 4])
    def test_double_click_restores_when_adjacent(self, start, index):
        """i 를 두 번 누르면 시작 레벨이 i 또는 i+1 일 때 원래대로 돌아온다"""
        cells = cells_for_level(5, start)

        twice = set_fill_level(set_fill_level(cells, index), index)

        if start in (index, index + 1):
            assert twice == cells
        else:
            assert fill_level(twice) == index

    def test_does_not_mutate_input(self):
        cells = cells_for_level(3, 1)
        before = [dict(c) for c in cells]

        set_fill_level(cells, 2)

        assert cells == before

    def test_out_of_range(self):
        with pytest.raises(IndexError):
            set_fill_level(cells_for_level(3, 0), 3)

    def test_fill_level_uses_topmost_active(self):
        cells = [{"active": False}, {"active": True}, {"active": False}, {"active": True}]

        assert fill_level(cells) == 4
        assert summarize(cells) == {"current": 2, "max": 4}


class TestHope:
    def test_hope_click(self):
        assert hope_click(0, 6, 2) == 3
        assert hope_click(3, 6, 2) == 2

    def test_clamp_hope_max(self):
        assert clamp_hope_max(-1) == 0
        assert clamp_hope_max(HOPE_MAX_LIMIT + 5) == HOPE_MAX_LIMIT

    def test_resize_keeps_level(self):
        assert fill_level(resize(cells_for_level(4, 3), 6)) == 3
        assert fill_level(resize(cells_for_level(4, 3), 2)) == 2


class TestBinding:
    def test_click_updates_view_bus_and_hook(self, view, bus):
        reasons = []
        bind_tracker(view, bus, "hp", cells_for_level(4, 4), reasons.append)

        view.click("hp", 3)

        assert _active(view.read_tracker("hp")) == [True, True, True, False]
        assert _active(bus.hp_circles) == [True, True, True, False]
        assert reasons == ["tracker_click"]

    def test_hope_publishes_counts(self, view, bus):
        bind_tracker(view, bus, "hope", cells_for_level(6, 0))

        view.click("hope", 1)

        assert bus.hope == {"current": 2, "max": 6}
