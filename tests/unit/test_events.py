"""
Unit tests for the controller event forwarder.
"""

import logging
from unittest.mock import MagicMock

import pytest

from unifi2mqtt.events import EventForwarder
from unifi2mqtt.structs import ControllerEvent


@pytest.fixture
def engine():
    engine = MagicMock()
    engine.trigger = MagicMock()
    engine.cancel = MagicMock()
    return engine


@pytest.fixture
def forwarder(tracker, publisher, engine):
    return EventForwarder(tracker, publisher, engine)


class TestControllerAvailability:
    """Tests for ctrl.* events"""

    @pytest.mark.asyncio
    async def test_connect_publishes_and_reconciles(self, forwarder, engine, published):
        await forwarder.handle(ControllerEvent("ctrl.connect"))
        assert forwarder.controller_online is True
        assert published() == [("unifi/maintenance/controller/online", True)]
        engine.trigger.assert_called_once()

    @pytest.mark.asyncio
    async def test_repeat_connect_is_ignored(self, forwarder, engine, published):
        await forwarder.handle(ControllerEvent("ctrl.connect"))
        await forwarder.handle(ControllerEvent("ctrl.connect"))
        assert len(published()) == 1
        engine.trigger.assert_called_once()

    @pytest.mark.asyncio
    async def test_disconnect_keeps_state(self, forwarder, tracker, engine, published):
        tracker.counts["home"] = 3
        await forwarder.handle(ControllerEvent("ctrl.connect"))
        await forwarder.handle(ControllerEvent("ctrl.disconnect"))
        assert published()[-1] == ("unifi/maintenance/controller/online", False)
        assert tracker.counts["home"] == 3
        engine.cancel.assert_called_once()

    @pytest.mark.asyncio
    async def test_error_logged(self, forwarder, caplog):
        with caplog.at_level(logging.ERROR):
            await forwarder.handle(ControllerEvent("ctrl.error", {"error": "handshake failed"}))
        assert any("handshake failed" in r.getMessage() for r in caplog.records)


class TestClientEvents:
    """Tests for client association events"""

    @pytest.mark.asyncio
    async def test_user_connect(self, forwarder, tracker):
        event = ControllerEvent.from_controller(
            {"key": "EVT_WU_Connected", "ssid": "home", "hostname": "laptop1", "user": "aa", "time": 5},
        )
        await forwarder.handle(event)
        assert tracker.counts["home"] == 1

    @pytest.mark.asyncio
    async def test_guest_disconnect(self, forwarder, tracker):
        tracker.counts["guest"] = 2
        event = ControllerEvent.from_controller({"key": "EVT_WG_Disconnected", "ssid": "guest", "guest": "cc"})
        await forwarder.handle(event)
        assert tracker.counts["guest"] == 1

    @pytest.mark.asyncio
    async def test_missing_ssid_ignored(self, forwarder, tracker):
        await forwarder.handle(ControllerEvent.from_controller({"key": "EVT_WU_Connected", "user": "aa"}))
        assert tracker.counts == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "key",
        ["EVT_WU_Roam", "EVT_WU_RoamRadio", "EVT_AP_DetectRogueAP", "EVT_AD_UpdateAvailable", "EVT_SW_Lost_Contact"],
    )
    async def test_advisory_and_unknown_events_publish_nothing(self, forwarder, mock_bus, key):
        await forwarder.handle(ControllerEvent.from_controller({"key": key, "ssid": "home", "user": "aa"}))
        mock_bus.publish.assert_not_awaited()


class TestPublishControllerStatus:
    """Tests for re-announcing availability after a bus reconnect"""

    @pytest.mark.asyncio
    async def test_republishes_current_flag(self, forwarder, published):
        forwarder.controller_online = True
        await forwarder.publish_controller_status()
        assert published() == [("unifi/maintenance/controller/online", True)]
