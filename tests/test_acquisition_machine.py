"""Tests for AcquisitionStateMachine transitions and staleness rules."""
from __future__ import annotations

import asyncio

import pytest

from acquisition import SEARCH_MESSAGE, AcquisitionState, InvalidTransitionError
from common.types import Payload
from scoring.exceptions import DecodeError, NetworkError, UploadTimeout
from tests.fakes import SCENARIO_JSON, drain, make_payload, make_region


def _pending_upload(fake_client) -> asyncio.Event:
    release = asyncio.Event()

    async def upload(region):
        await release.wait()
        return make_payload()

    fake_client.upload.side_effect = upload
    return release


async def _to_tracking(machine, fake_client, payload: Payload | None = None) -> None:
    payload = payload or Payload.model_validate_json(SCENARIO_JSON)
    fake_client.upload.return_value = payload
    fake_client.fetch_game.return_value = payload
    machine.start_search("test")
    machine.on_region_found(make_region())
    await drain()
    assert machine.state is AcquisitionState.TRACKING


# ---------- Search ----------

class TestSearch:
    def test_initial_state_is_idle(self, machine_factory):
        machine = machine_factory()
        assert machine.state is AcquisitionState.IDLE
        assert machine.cycle == 0

    def test_start_search_enters_searching(self, machine_factory, surface):
        machine = machine_factory()

        machine.start_search("launch")

        assert machine.state is AcquisitionState.SEARCHING
        assert machine.cycle == 1
        machine._throttler.start.assert_called_once()
        machine._gate.reset.assert_called_once()
        assert surface.last("show_message") == ("show_message", SEARCH_MESSAGE, False)
        assert surface.names() == ["stop_loading", "hide_retry", "clear", "show_message"]

    @pytest.mark.asyncio
    async def test_search_message_auto_hides_after_a_game_loaded(self, machine_factory, fake_client, surface):
        machine = machine_factory()
        await _to_tracking(machine, fake_client)

        machine.start_search("requested")

        assert surface.last("show_message") == ("show_message", SEARCH_MESSAGE, True)
        assert machine.payload is None
        assert not machine.polling.active
        assert machine.state is AcquisitionState.SEARCHING

    def test_region_gate_wired_to_machine(self, machine_factory):
        machine = machine_factory()
        assert machine._gate.on_region == machine.on_region_found


# ---------- Upload ----------

class TestUpload:
    @pytest.mark.asyncio
    async def test_region_starts_upload(self, machine_factory, fake_client, surface):
        _pending_upload(fake_client)
        machine = machine_factory()
        machine.start_search()

        machine.on_region_found(make_region())
        await drain()

        assert machine.state is AcquisitionState.AWAITING_UPLOAD_RESULT
        machine._throttler.stop.assert_called_once()
        assert "start_loading" in surface.names()
        fake_client.upload.assert_awaited_once()
        await machine.shutdown()

    @pytest.mark.asyncio
    async def test_second_region_while_awaiting_is_ignored(self, machine_factory, fake_client):
        _pending_upload(fake_client)
        machine = machine_factory()
        machine.start_search()

        machine.on_region_found(make_region(index=1))
        machine.on_region_found(make_region(index=2))
        await drain()

        assert fake_client.upload.await_count == 1
        await machine.shutdown()

    def test_region_ignored_when_not_searching(self, machine_factory, fake_client):
        machine = machine_factory()
        machine.on_region_found(make_region())
        assert machine.state is AcquisitionState.IDLE
        fake_client.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_successful_upload_starts_tracking(self, machine_factory, fake_client, surface):
        machine = machine_factory()

        await _to_tracking(machine, fake_client)

        assert machine.current_game_label == "Now following Bruins vs. Leafs"
        assert surface.last("show_message") == ("show_message", "Now following Bruins vs. Leafs", True)
        assert surface.last("render") is not None
        assert "stop_loading" in surface.names()[surface.names().index("start_loading"):]
        assert machine.polling.active
        assert machine.has_loaded_game
        await drain()
        fake_client.fetch_game.assert_awaited_with(None)
        await machine.shutdown()

    @pytest.mark.asyncio
    async def test_polling_uses_game_id_from_upload(self, machine_factory, fake_client):
        machine = machine_factory()

        await _to_tracking(machine, fake_client, make_payload(game_id="2019020741"))
        await drain()

        fake_client.fetch_game.assert_awaited_with("2019020741")
        assert machine.polling.game_id == "2019020741"
        await machine.shutdown()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [DecodeError("bad json"), NetworkError("refused"), UploadTimeout("slow"), RuntimeError("bug")],
    )
    async def test_failed_upload_shows_retry(self, machine_factory, fake_client, surface, error):
        fake_client.upload.side_effect = error
        machine = machine_factory()
        machine.start_search()

        machine.on_region_found(make_region())
        await drain()

        assert machine.state is AcquisitionState.FAILED
        assert surface.last("show_retry") is not None
        assert surface.names()[-2:] == ["stop_loading", "show_retry"]
        assert not machine.polling.active
        assert machine.payload is None
        machine._gate.reset_dispatch.assert_called_once()

    @pytest.mark.asyncio
    async def test_failed_state_does_not_search_again_by_itself(self, machine_factory, fake_client):
        fake_client.upload.side_effect = DecodeError("bad json")
        machine = machine_factory()
        machine.start_search()
        machine.on_region_found(make_region())
        await drain()

        await asyncio.sleep(0.02)

        assert machine.state is AcquisitionState.FAILED
        assert machine.cycle == 1
        assert machine._throttler.start.call_count == 1

    @pytest.mark.asyncio
    async def test_late_failure_after_restart_is_ignored(self, machine_factory, fake_client, surface):
        _pending_upload(fake_client)
        machine = machine_factory()
        machine.start_search()
        machine.on_region_found(make_region())
        await drain()
        old_cycle = machine.cycle

        machine.start_search("requested")
        machine._upload_failed(NetworkError("late"), old_cycle)

        assert machine.state is AcquisitionState.SEARCHING
        assert surface.last("show_retry") is None

    @pytest.mark.asyncio
    async def test_late_success_after_restart_is_ignored(self, machine_factory, fake_client, surface):
        _pending_upload(fake_client)
        machine = machine_factory()
        machine.start_search()
        machine.on_region_found(make_region())
        await drain()
        old_cycle = machine.cycle

        machine.start_search("requested")
        machine._upload_succeeded(make_region(), make_payload(), old_cycle)

        assert machine.state is AcquisitionState.SEARCHING
        assert machine.payload is None
        assert not machine.polling.active

    @pytest.mark.asyncio
    async def test_restart_cancels_pending_upload(self, machine_factory, fake_client):
        release = _pending_upload(fake_client)
        machine = machine_factory()
        machine.start_search()
        machine.on_region_found(make_region())
        await drain()

        machine.start_search("requested")
        release.set()
        await drain()

        assert machine.state is AcquisitionState.SEARCHING
        assert machine.payload is None


# ---------- Polling ----------

class TestPolling:
    @pytest.mark.asyncio
    async def test_poll_update_replaces_payload(self, machine_factory, fake_client, surface):
        machine = machine_factory(poll_interval=0.01)
        await _to_tracking(machine, fake_client)

        fake_client.fetch_game.return_value = make_payload(home_goals=6)
        await asyncio.sleep(0.05)

        assert machine.payload.home_team.goals == 6
        assert surface.last("update_payload")[1].home_team.goals == 6
        await machine.shutdown()

    @pytest.mark.asyncio
    async def test_new_search_stops_polling(self, machine_factory, fake_client):
        machine = machine_factory(poll_interval=0.01)
        await _to_tracking(machine, fake_client)

        machine.start_search("requested")
        count = fake_client.fetch_game.await_count
        await asyncio.sleep(0.05)

        assert fake_client.fetch_game.await_count == count
        assert machine.payload is None


# ---------- Retry ----------

class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_from_failed_restarts_search(self, machine_factory, fake_client, surface):
        fake_client.upload.side_effect = NetworkError("refused")
        machine = machine_factory()
        machine.start_search()
        machine.on_region_found(make_region())
        await drain()

        machine.retry()

        assert machine.state is AcquisitionState.SEARCHING
        assert machine.cycle == 2
        assert surface.last("hide_retry") is not None

    def test_retry_from_idle_starts_search(self, machine_factory):
        machine = machine_factory()
        machine.retry()
        assert machine.state is AcquisitionState.SEARCHING

    def test_retry_while_searching_is_rejected(self, machine_factory):
        machine = machine_factory()
        machine.start_search()
        with pytest.raises(InvalidTransitionError):
            machine.retry()
        assert machine.cycle == 1

    @pytest.mark.asyncio
    async def test_retry_while_tracking_is_rejected(self, machine_factory, fake_client):
        machine = machine_factory()
        await _to_tracking(machine, fake_client)
        with pytest.raises(InvalidTransitionError):
            machine.retry()
        assert machine.state is AcquisitionState.TRACKING
        await machine.shutdown()


# ---------- Tracking ----------

class TestTracking:
    def test_tracking_lost_while_searching_restarts(self, machine_factory):
        machine = machine_factory()
        machine.start_search()

        assert machine.tracking_lost() is True

        assert machine.state is AcquisitionState.SEARCHING
        assert machine.cycle == 2

    @pytest.mark.asyncio
    async def test_tracking_lost_while_awaiting_cancels_upload(self, machine_factory, fake_client):
        _pending_upload(fake_client)
        machine = machine_factory()
        machine.start_search()
        machine.on_region_found(make_region())
        await drain()
        task = machine._upload_task

        assert machine.tracking_lost() is True
        await drain()

        assert task.cancelled()
        assert machine.state is AcquisitionState.SEARCHING

    @pytest.mark.asyncio
    async def test_tracking_lost_while_tracking_keeps_game(self, machine_factory, fake_client):
        machine = machine_factory()
        await _to_tracking(machine, fake_client)

        assert machine.tracking_lost() is False

        assert machine.state is AcquisitionState.TRACKING
        assert machine.polling.active
        await machine.shutdown()

    @pytest.mark.asyncio
    async def test_tracking_lost_while_failed_waits_for_retry(self, machine_factory, fake_client):
        fake_client.upload.side_effect = DecodeError("bad json")
        machine = machine_factory()
        machine.start_search()
        machine.on_region_found(make_region())
        await drain()

        assert machine.tracking_lost() is False
        assert machine.state is AcquisitionState.FAILED

    @pytest.mark.asyncio
    async def test_anchor_timeout_restarts_search(self, machine_factory):
        machine = machine_factory(tracking_timeout=0.03)
        machine.start_search()

        machine.anchor_updated(True)
        await asyncio.sleep(0.08)

        assert machine.cycle == 2
        assert machine.state is AcquisitionState.SEARCHING

    @pytest.mark.asyncio
    async def test_tracked_anchor_updates_keep_search_alive(self, machine_factory):
        machine = machine_factory(tracking_timeout=0.1)
        machine.start_search()

        machine.anchor_updated(True)
        for _ in range(5):
            await asyncio.sleep(0.02)
            machine.anchor_updated(True)

        assert machine.cycle == 1
        machine.tracking.stop()

    @pytest.mark.asyncio
    async def test_region_never_anchored_restarts_search(self, machine_factory, fake_client):
        _pending_upload(fake_client)
        machine = machine_factory(tracking_timeout=0.03)
        machine.start_search()
        machine.on_region_found(make_region())
        await drain()
        task = machine._upload_task

        assert machine.tracking.armed
        await asyncio.sleep(0.08)

        assert machine.state is AcquisitionState.SEARCHING
        assert machine.cycle == 2
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_anchored_region_keeps_upload_pending(self, machine_factory, fake_client):
        release = _pending_upload(fake_client)
        machine = machine_factory(tracking_timeout=0.1)
        machine.start_search()
        machine.on_region_found(make_region())

        for _ in range(5):
            await asyncio.sleep(0.02)
            machine.anchor_updated(True)

        assert machine.state is AcquisitionState.AWAITING_UPLOAD_RESULT
        release.set()
        await drain()
        assert machine.state is AcquisitionState.TRACKING
        await machine.shutdown()

    @pytest.mark.asyncio
    async def test_session_failed_restarts_search_from_tracking(self, machine_factory, fake_client):
        machine = machine_factory()
        await _to_tracking(machine, fake_client)

        machine.session_failed("camera interrupted")

        assert machine.state is AcquisitionState.SEARCHING
        assert not machine.polling.active


# ---------- Lifecycle ----------

class TestLifecycle:
    @pytest.mark.asyncio
    async def test_shutdown_returns_to_idle(self, machine_factory, fake_client):
        machine = machine_factory()
        await _to_tracking(machine, fake_client)

        await machine.shutdown()

        assert machine.state is AcquisitionState.IDLE
        assert not machine.polling.active
        machine._gate.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_snapshot_reports_tracking_state(self, machine_factory, fake_client):
        machine = machine_factory()
        await _to_tracking(machine, fake_client)

        snapshot = machine.snapshot()

        assert snapshot["state"] == "tracking"
        assert snapshot["current_game_label"] == "Now following Bruins vs. Leafs"
        assert snapshot["payload"]["home"]["name"] == "Leafs"
        assert snapshot["polling"] is True
        await machine.shutdown()
