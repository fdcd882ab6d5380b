"""Autosave orchestrator tests.

서버 저장소는 AsyncMock 으로 대체합니다.
"""

from __future__ import annotations

import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest

from charsheet.client import AutosaveOrchestrator, LocalCache, MemoryBackend, SnapshotCapture
from charsheet.client.autosave import (
    STATUS_OFFLINE,
    STATUS_QUOTA,
    STATUS_SAVED,
    STATUS_SKIPPED,
)
from charsheet.client.document import default_document
from charsheet.client.errors import AutosaveError, RemoteError


def _remote() -> AsyncMock:
    remote = AsyncMock()
    remote.create_character.side_effect = lambda name, data, set_as_active=True: {
        "id": str(uuid.uuid4()),
        "name": name,
        "character_data": data,
    }
    remote.autosave.return_value = {}
    remote.get_character.side_effect = RemoteError("Character not found", status=404)
    return remote


@pytest.fixture
def outcomes():
    return []


@pytest.fixture
def orchestrator(manager, snapshot, cache, outcomes):
    return AutosaveOrchestrator(
        manager,
        snapshot,
        cache,
        interval_seconds=0.05,
        debounce_seconds=0.05,
        event_delay_seconds=0.01,
        on_status=outcomes.append,
    )


class TestSave:
    @pytest.mark.asyncio
    async def test_nothing_to_save_without_active_character(self, orchestrator):
        outcome = await orchestrator.save()

        assert outcome.status == STATUS_SKIPPED

    @pytest.mark.asyncio
    async def test_save_writes_document_and_snapshot(self, orchestrator, manager, view, cache):
        await manager.switch_to_character("a", default_document(name="Alpha"))
        view.set_field("level", "8")

        outcome = await orchestrator.manual_save()

        assert outcome.status == STATUS_SAVED
        record = cache.load_character("a")
        assert record["document"]["level"] == 8
        assert record["snapshot"]["basicInfo"]["level"] == "8"
        assert cache.current_character_id == "a"

    @pytest.mark.asyncio
    async def test_quota_is_reported_distinctly(self, manager, snapshot, view, bus, outcomes):
        tiny = LocalCache(MemoryBackend(quota_bytes=100))
        orchestrator = AutosaveOrchestrator(
            manager, SnapshotCapture(view, bus, tiny), tiny, on_status=outcomes.append
        )
        await manager.switch_to_character("a")

        outcome = await orchestrator.save("manual")

        assert outcome.status == STATUS_QUOTA
        assert outcomes[-1].status == STATUS_QUOTA

    @pytest.mark.asyncio
    async def test_unload_saves_locally(self, orchestrator, manager, cache):
        await manager.switch_to_character("a", default_document(name="Alpha"))

        outcome = orchestrator.on_unload()

        assert outcome.status == STATUS_SAVED
        assert cache.load_character("a")["document"]["name"] == "Alpha"


class TestTriggers:
    @pytest.mark.asyncio
    async def test_tracker_click_schedules_save(self, orchestrator, manager, view, cache):
        await manager.switch_to_character("a")

        view.click("stress", 1)
        await asyncio.sleep(0.1)

        record = cache.load_character("a")
        assert record is not None
        assert record["document"]["stress"]["current"] == 2

    @pytest.mark.asyncio
    async def test_burst_of_events_is_coalesced(self, orchestrator, manager, outcomes):
        await manager.switch_to_character("a")

        for _ in range(5):
            orchestrator.trigger("attribute_change")
        await asyncio.sleep(0.1)

        assert [o.reason for o in outcomes] == ["attribute_change"]

    @pytest.mark.asyncio
    async def test_plain_field_change_waits_for_interval(self, orchestrator, manager, outcomes):
        await manager.switch_to_character("a")

        orchestrator.trigger("field_change")
        await asyncio.sleep(0.02)

        assert outcomes == []

    @pytest.mark.asyncio
    async def test_interval_loop(self, orchestrator, manager, outcomes):
        await manager.switch_to_character("a")

        orchestrator.start()
        await asyncio.sleep(0.18)
        await orchestrator.stop()

        assert len(outcomes) >= 2
        assert all(o.reason == "interval" for o in outcomes)


class TestRemote:
    @pytest.mark.asyncio
    async def test_offline_character_is_created_on_server_once(self, manager, snapshot, cache, outcomes):
        remote = _remote()
        orchestrator = AutosaveOrchestrator(manager, snapshot, cache, remote=remote, on_status=outcomes.append)
        await manager.switch_to_character("char_1_abc", default_document(name="Alpha"))

        first = await orchestrator.save()
        second = await orchestrator.save()

        assert first.remote_synced and second.remote_synced
        remote.create_character.assert_awaited_once()
        remote_id = cache.remote_id("char_1_abc")
        assert remote.autosave.await_args_list[-1].args[0] == remote_id

    @pytest.mark.asyncio
    async def test_network_failure_is_offline(self, manager, snapshot, cache):
        remote = _remote()
        remote.autosave.side_effect = RemoteError("Connection failed", status=None)
        orchestrator = AutosaveOrchestrator(manager, snapshot, cache, remote=remote)
        await manager.switch_to_character(str(uuid.uuid4()))

        outcome = await orchestrator.save()

        assert outcome.status == STATUS_OFFLINE
        assert outcome.remote_synced is False
        assert cache.load_character(outcome.character_id) is not None

    @pytest.mark.asyncio
    async def test_create_character_uses_server_id(self, manager, snapshot, cache):
        remote = _remote()
        orchestrator = AutosaveOrchestrator(manager, snapshot, cache, remote=remote)

        state = await orchestrator.create_character("Thistle")

        uuid.UUID(state.character_id)
        assert state.get("name") == "Thistle"
        assert cache.remote_id(state.character_id) == state.character_id

    @pytest.mark.asyncio
    async def test_create_requires_name(self, orchestrator):
        with pytest.raises(AutosaveError):
            await orchestrator.create_character("  ")


    @pytest.mark.asyncio
    async def test_create_overrides_cannot_replace_name(self, orchestrator):
        state = await orchestrator.create_character("Thistle", overrides={"name": "Other", "level": 3})

        assert state.get("name") == "Thistle"
        assert state.get("level") == 3

    @pytest.mark.asyncio
    async def test_unsynced_local_edits_win_over_server_copy(self, manager, snapshot, view, cache):
        remote = _remote()
        orchestrator = AutosaveOrchestrator(manager, snapshot, cache, remote=remote)
        alpha = await orchestrator.create_character("Alpha")
        remote.get_character.side_effect = None
        remote.get_character.return_value = {
            "id": alpha.character_id,
            "character_data": default_document(name="Alpha"),
        }
        remote.autosave.side_effect = RemoteError("Connection failed", status=None)
        view.set_field("level", "9")
        assert (await orchestrator.save()).status == STATUS_OFFLINE
        await orchestrator.create_character("Beta")

        remote.autosave.side_effect = None
        await orchestrator.switch_character(alpha.character_id)

        assert view.get_field("level") == 9
        outcome = await orchestrator.save()
        assert outcome.remote_synced is True
        assert remote.autosave.await_args_list[-1].args[1]["level"] == 9
        assert cache.has_unsynced_changes(alpha.character_id) is False

    @pytest.mark.asyncio
    async def test_synced_character_takes_server_copy(self, manager, snapshot, view, cache):
        remote = _remote()
        orchestrator = AutosaveOrchestrator(manager, snapshot, cache, remote=remote)
        alpha = await orchestrator.create_character("Alpha")
        await orchestrator.create_character("Beta")
        remote.get_character.side_effect = None
        remote.get_character.return_value = {
            "id": alpha.character_id,
            "character_data": default_document(name="Alpha", level=7),
        }

        await orchestrator.switch_character(alpha.character_id)

        assert view.get_field("level") == 7

    @pytest.mark.asyncio
    async def test_saves_keep_running_during_slow_server_fetch(self, manager, snapshot, view, cache):
        remote = _remote()
        orchestrator = AutosaveOrchestrator(manager, snapshot, cache, remote=remote)
        alpha = await orchestrator.create_character("Alpha")
        beta = await orchestrator.create_character("Beta")
        gate = asyncio.Event()

        async def _slow_get_character(remote_id):
            await gate.wait()
            return {"id": remote_id, "character_data": None}

        remote.get_character.side_effect = _slow_get_character
        switching = asyncio.create_task(orchestrator.switch_character(alpha.character_id))
        await asyncio.sleep(0.01)
        view.set_field("level", "9")

        outcome = await asyncio.wait_for(orchestrator.save(), timeout=1)

        assert outcome.status == STATUS_SAVED
        assert outcome.character_id == beta.character_id
        assert cache.load_character(beta.character_id)["document"]["level"] == 9
        gate.set()
        await switching
        assert manager.active_character_id == alpha.character_id
        assert view.get_field("name") == "Alpha"


class TestSwitch:
    @pytest.mark.asyncio
    async def test_switch_saves_outgoing_first(self, orchestrator, manager, view, cache):
        await orchestrator.create_character("Alpha")
        alpha_id = manager.active_character_id
        view.set_field("level", "9")

        await orchestrator.create_character("Beta")

        assert cache.load_character(alpha_id)["document"]["level"] == 9
        assert view.get_field("name") == "Beta"
        assert view.get_field("level") == 5

    @pytest.mark.asyncio
    async def test_switch_back_loads_cached_document(self, orchestrator, manager, view, cache):
        alpha = await orchestrator.create_character("Alpha")
        view.click("hp", 0)
        await orchestrator.create_character("Beta")

        await orchestrator.switch_character(alpha.character_id)

        assert view.get_field("name") == "Alpha"
        assert [c["active"] for c in view.read_tracker("hp")] == [True, False, False, False]

    @pytest.mark.asyncio
    async def test_switch_restores_character_scoped_keys(self, orchestrator, manager, cache):
        alpha = await orchestrator.create_character("Alpha")
        cache.set_raw("zevi-section-order", ["hope", "hp"])
        await orchestrator.create_character("Beta")

        assert cache.get_raw("zevi-section-order") is None

        await orchestrator.switch_character(alpha.character_id)

        assert cache.get_raw("zevi-section-order") == ["hope", "hp"]

    @pytest.mark.asyncio
    async def test_delete_character(self, orchestrator, manager, cache):
        alpha = await orchestrator.create_character("Alpha")

        await orchestrator.delete_character(alpha.character_id)

        assert cache.load_character(alpha.character_id) is None
        assert manager.active_state is None

    @pytest.mark.asyncio
    async def test_page_state_does_not_follow_into_next_character(self, orchestrator, view, cache):
        alpha = await orchestrator.create_character("Alpha")
        view.set_page_state("layout", {"sectionOrder": ["alpha-only"]})
        view.set_page_state("customizations", {"--accent": "#f00"})
        view.set_field("accentColor", "#f00")

        beta = await orchestrator.create_character("Beta")
        await orchestrator.save()

        captured = cache.load_character(beta.character_id)["snapshot"]
        assert captured["layout"] == {}
        assert captured["customizations"] == {}
        assert captured["uiPreferences"]["accentColor"] is None

        await orchestrator.switch_character(alpha.character_id)

        assert view.get_page_state("layout") == {"sectionOrder": ["alpha-only"]}
        assert view.get_page_state("customizations") == {"--accent": "#f00"}
        assert view.get_field("accentColor") == "#f00"
