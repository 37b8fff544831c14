"""
Unit tests for presence module.

Tests snapshot rebuilds, retained candidate handling, incremental connect and
disconnect events and retirement of dropped networks.
"""

import logging

import pytest

from unifi2mqtt.mqtt.retained import RetainedClientDrain


def _counts(published):
    return {topic: value["val"] for topic, value in published() if topic.endswith("clientCount")}


class TestFullSnapshot:
    """Tests for PresenceTracker.apply_full_snapshot"""

    @pytest.mark.asyncio
    async def test_counts_distinct_clients(self, tracker, registry, make_wifi, make_session, published):
        _ = registry.refresh_wireless([make_wifi("w1", "home"), make_wifi("w2", "guest")])
        await tracker.apply_full_snapshot(
            [
                make_session("aa", "home", "laptop1"),
                make_session("aa", "home", "laptop1"),
                make_session("bb", "home", "phone"),
                make_session("cc", None, "desktop"),
            ],
        )
        assert tracker.counts == {"home": 2}
        counts = _counts(published)
        assert counts["unifi/status/wifi/home/clientCount"] == 2
        assert counts["unifi/status/wifi/guest/clientCount"] == 0
        assert counts["unifi/status/clientCount"] == 2

    @pytest.mark.asyncio
    async def test_presence_published_with_mac(self, tracker, registry, make_wifi, make_session, published):
        _ = registry.refresh_wireless([make_wifi("w1", "home")])
        await tracker.apply_full_snapshot([make_session("aa", "home", "laptop1")])
        presence = dict(published())["unifi/status/wifi/home/client/laptop1"]
        assert presence["val"] is True
        assert presence["mac"] == "aa"
        assert isinstance(presence["ts"], int)

    @pytest.mark.asyncio
    async def test_stale_retained_published_absent_once(self, tracker, registry, make_wifi, make_session, published):
        _ = registry.refresh_wireless([make_wifi("w1", "home")])
        tracker.record_retained("home", "laptop1")
        tracker.record_retained("home", "tablet")
        await tracker.apply_full_snapshot([make_session("aa", "home", "laptop1")])

        absent = [t for t, v in published() if t.endswith("/client/tablet") and v["val"] is False]
        assert absent == ["unifi/status/wifi/home/client/tablet"]
        assert not any(t.endswith("/client/laptop1") and v["val"] is False for t, v in published())
        assert tracker.retained == {}

        await tracker.apply_full_snapshot([make_session("aa", "home", "laptop1")])
        absent = [t for t, v in published() if t.endswith("/client/tablet")]
        assert len(absent) == 1

    @pytest.mark.asyncio
    async def test_snapshot_overrides_event_counts(self, tracker, registry, make_wifi, make_session, published):
        _ = registry.refresh_wireless([make_wifi("w1", "home"), make_wifi("w2", "guest")])
        await tracker.apply_connect_event("home", "a", "aa", 1)
        await tracker.apply_connect_event("home", "b", "bb", 2)
        await tracker.apply_connect_event("home", "c", "cc", 3)
        await tracker.apply_connect_event("guest", "d", "dd", 4)
        # b, c and d left without a disconnect event, e joined without a connect event
        await tracker.apply_full_snapshot(
            [
                make_session("aa", "home", "a"),
                make_session("ee", "home", "e"),
                make_session("ee", "home", "e"),
            ],
        )
        assert tracker.counts == {"home": 2, "guest": 0}
        counts = _counts(published)
        assert counts["unifi/status/wifi/home/clientCount"] == 2
        assert counts["unifi/status/wifi/guest/clientCount"] == 0
        assert counts["unifi/status/clientCount"] == 2

    @pytest.mark.asyncio
    async def test_retained_from_broker_absent_once(
        self, tracker, registry, make_wifi, make_session, published, mock_bus, timers
    ):
        _ = registry.refresh_wireless([make_wifi("w1", "home")])
        drain = RetainedClientDrain(mock_bus, tracker, timers, window=0.05)
        await drain.start()
        await drain.handle("unifi/status/wifi/home/client/laptop1", b'{"val":true,"mac":"aa","ts":1}')
        await drain.handle("unifi/status/wifi/home/client/phone", b'{"val":true,"mac":"bb","ts":1}')

        await tracker.apply_full_snapshot([make_session("bb", "home", "phone")])
        await tracker.apply_full_snapshot([make_session("bb", "home", "phone")])

        absences = [(t, v["val"]) for t, v in published() if t.endswith("/client/laptop1")]
        assert absences == [("unifi/status/wifi/home/client/laptop1", False)]
        assert not any(t.endswith("/client/phone") and v["val"] is False for t, v in published())


class TestIncrementalEvents:
    """Tests for connect and disconnect events"""

    @pytest.mark.asyncio
    async def test_connect_then_disconnect(self, tracker, registry, make_wifi, published):
        _ = registry.refresh_wireless([make_wifi("w1", "home")])
        await tracker.apply_connect_event("home", "phone", "bb", 1000)
        assert tracker.counts["home"] == 1
        assert published()[0] == ("unifi/status/wifi/home/client/phone", {"val": True, "mac": "bb", "ts": 1000})

        await tracker.apply_disconnect_event("home", "phone", "bb", 2000)
        assert tracker.counts["home"] == 0
        assert ("unifi/status/wifi/home/client/phone", {"val": False, "mac": "bb", "ts": 2000}) in published()
        assert _counts(published)["unifi/status/clientCount"] == 0

    @pytest.mark.asyncio
    async def test_connect_unknown_network_initializes_count(self, tracker):
        await tracker.apply_connect_event("lab", "pi", None, None)
        assert tracker.counts == {"lab": 1}

    @pytest.mark.asyncio
    async def test_phantom_disconnect_clamps_and_warns(self, tracker, caplog):
        with caplog.at_level(logging.WARNING):
            await tracker.apply_disconnect_event("lab", "pi", "ee", None)
        assert tracker.counts["lab"] == 0
        assert any("phantom disconnect" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_total_is_sum(self, tracker, registry, make_wifi, published):
        _ = registry.refresh_wireless([make_wifi("w1", "home"), make_wifi("w2", "guest")])
        await tracker.apply_connect_event("home", "a", None, 1)
        await tracker.apply_connect_event("home", "b", None, 2)
        await tracker.apply_connect_event("guest", "c", None, 3)
        assert tracker.total() == 3
        assert _counts(published)["unifi/status/clientCount"] == 3


class TestRetire:
    """Tests for networks dropped from the registry"""

    @pytest.mark.asyncio
    async def test_retired_network_reported_zero_then_dropped(
        self, tracker, registry, make_wifi, make_session, published
    ):
        _ = registry.refresh_wireless([make_wifi("w1", "home"), make_wifi("w2", "guest")])
        await tracker.apply_full_snapshot([make_session("aa", "guest", "x")])
        assert tracker.counts["guest"] == 1

        dropped = registry.refresh_wireless([make_wifi("w1", "home")])
        tracker.retire(dropped)
        assert tracker.counts["guest"] == 0

        await tracker.apply_full_snapshot([make_session("aa", "home", "x")])
        assert _counts(published)["unifi/status/wifi/guest/clientCount"] == 0
        assert "guest" not in tracker.counts
        assert set(tracker.counts) <= set(registry.wireless_names())
