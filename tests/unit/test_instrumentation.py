"""
Unit tests for instrumentation module.
"""

import logging
from unittest.mock import patch

import pytest

from unifi2mqtt.instrumentation import timed_async


class TestTimedAsync:
    """Tests for the timed_async decorator"""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        @timed_async("op")
        async def work(x):
            return x * 2

        assert await work(2) == 4

    @pytest.mark.asyncio
    async def test_warns_over_threshold(self, caplog):
        @timed_async("slow_op")
        async def work():
            return None

        with patch("unifi2mqtt.const.UNIFI2MQTT_PERF_THRESHOLD_MS", -1), caplog.at_level(logging.WARNING):
            await work()
        assert any("slow_op" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_disabled(self, caplog):
        @timed_async("quiet_op")
        async def work():
            return 1

        with patch("unifi2mqtt.const.UNIFI2MQTT_PERF_TRACKING", False), caplog.at_level(logging.DEBUG):
            assert await work() == 1
        assert not any("quiet_op" in r.getMessage() for r in caplog.records)
