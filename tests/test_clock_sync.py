"""
Clock sync engine tests: one fetch, then rebasing one-second ticks.
"""

import time

import pytest

from async_helpers import async_test
from modules.clock_sync import TICK_MS, ClockSyncEngine, SyncState
from modules.time_source import Instant, SyncUnavailable


class TestInitialize:
    @async_test
    async def test_success_sets_state(self, fake_source, march_fifth):
        readings = iter([42.5])
        engine = ClockSyncEngine(fake_source(march_fifth), monotonic=lambda: next(readings))

        assert await engine.initialize() is True

        assert engine.synchronized
        assert engine.current_instant == march_fifth
        assert engine.state.last_fetch_reference == 42.5
        assert engine.fetch_count == 1

    @async_test
    async def test_failure_leaves_state_unset(self, fake_source):
        engine = ClockSyncEngine(fake_source(SyncUnavailable("offline")))

        assert await engine.initialize() is False

        assert not engine.synchronized
        assert engine.state == SyncState()
        assert engine.failure_count == 1

    @async_test
    async def test_out_of_range_instant_is_a_failure(self, fake_source):
        engine = ClockSyncEngine(fake_source(Instant(10**15)))

        assert await engine.initialize() is False

        assert not engine.synchronized
        assert engine.state == SyncState()
        assert engine.fetch_count == 0
        assert engine.failure_count == 1

    @async_test
    async def test_unexpected_error_is_not_fatal(self, fake_source):
        engine = ClockSyncEngine(fake_source(KeyError("unix")))

        assert await engine.initialize() is False
        assert engine.current_instant is None

    @async_test
    async def test_fetches_exactly_once(self, fake_source, march_fifth):
        source = fake_source(march_fifth)
        engine = ClockSyncEngine(source)

        await engine.initialize()
        for _ in range(5):
            engine.tick()

        assert source.calls == 1

    @async_test
    async def test_failed_resync_keeps_extrapolated_time(self, fake_source, march_fifth):
        engine = ClockSyncEngine(fake_source(march_fifth, SyncUnavailable("gone")))
        await engine.initialize()
        engine.tick()

        assert await engine.initialize() is False

        assert engine.synchronized
        assert engine.current_instant == march_fifth.plus(1000)

    @async_test
    async def test_successful_resync_rebases_onto_fetched_instant(self, fake_source, march_fifth):
        fresh = Instant(march_fifth.epoch_ms + 60_000)
        engine = ClockSyncEngine(fake_source(march_fifth, fresh))
        await engine.initialize()
        engine.tick()

        assert await engine.initialize() is True

        assert engine.current_instant == fresh
        assert engine.tick() == fresh.plus(TICK_MS)


class TestTick:
    def test_unsynchronized_tick_is_noop(self, fake_source):
        engine = ClockSyncEngine(fake_source())

        assert engine.tick() is None
        assert engine.tick() is None
        assert not engine.synchronized

    @pytest.mark.parametrize("count", [1, 2, 10, 3600])
    @async_test
    async def test_n_ticks_advance_exactly_n_seconds(self, fake_source, march_fifth, count):
        engine = ClockSyncEngine(fake_source(march_fifth))
        await engine.initialize()

        result = None
        for _ in range(count):
            result = engine.tick()

        assert result == Instant(march_fifth.epoch_ms + count * 1000)
        assert engine.current_instant == result

    @async_test
    async def test_tick_ignores_real_elapsed_time(self, fake_source, march_fifth):
        clock = {"now": 100.0}
        engine = ClockSyncEngine(fake_source(march_fifth), monotonic=lambda: clock["now"])
        await engine.initialize()

        clock["now"] += 7.3
        first = engine.tick()
        time.sleep(0.01)
        second = engine.tick()

        assert first == march_fifth.plus(1000)
        assert second == march_fifth.plus(2000)

    @async_test
    async def test_each_tick_rebases_reference(self, fake_source, march_fifth):
        engine = ClockSyncEngine(fake_source(march_fifth))
        await engine.initialize()

        engine.tick()

        assert engine.state.last_fetched_instant == march_fifth.plus(1000)


class TestStatus:
    def test_unsynchronized(self, fake_source):
        status = ClockSyncEngine(fake_source()).status()

        assert status == {
            "synchronized": False,
            "epoch_ms": None,
            "iso": None,
            "fetch_count": 0,
            "failure_count": 0,
        }

    @async_test
    async def test_synchronized(self, fake_source, march_fifth):
        engine = ClockSyncEngine(fake_source(march_fifth))
        await engine.initialize()

        status = engine.status()

        assert status["synchronized"] is True
        assert status["epoch_ms"] == march_fifth.epoch_ms
        assert status["iso"] == "2024-03-05T13:07:09.000Z"
