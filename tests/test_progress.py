"""Tests for the simulated progress ticker."""

import asyncio

from tryon_widget.progress import ProgressTicker


class TestProgressTicker:
    def test_ticks_up_to_ceiling(self):
        values = []

        async def run():
            ticker = ProgressTicker(values.append, interval=0.005)
            ticker.start()
            await asyncio.sleep(0.2)
            running = ticker.running
            ticker.stop()
            return running

        assert asyncio.run(run())
        assert values[:3] == [10, 20, 30]
        assert max(values) == 90
        assert values.count(90) == 1

    def test_stop_halts_ticks(self):
        values = []

        async def run():
            ticker = ProgressTicker(values.append, interval=0.01)
            ticker.start()
            await asyncio.sleep(0.035)
            ticker.stop()
            seen = len(values)
            await asyncio.sleep(0.05)
            return seen, ticker.running

        seen, running = asyncio.run(run())
        assert len(values) == seen
        assert not running

    def test_restart_resets_value(self):
        async def run():
            ticker = ProgressTicker(lambda value: None, interval=0.005)
            ticker.start(initial=50)
            await asyncio.sleep(0.03)
            ticker.start()
            value = ticker.value
            ticker.stop()
            return value

        assert asyncio.run(run()) == 0
