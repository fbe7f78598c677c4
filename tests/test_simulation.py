"""
Tests for the simulation engine.

These tests drive single ticks with a stubbed random source so readings stay
fixed, and check that stopping the engine prevents any later mutation.
"""

import asyncio
import random
import time
from datetime import datetime

from mood_control.config import SimulationConfig
from mood_control.models import ConnectionState, EnvironmentReading, TransitionSource
from mood_control.simulation import Simulation
from mood_control.store import MoodStore

NOON = datetime(2024, 5, 4, 12, 0)


class StubRandom(random.Random):
    """Draws 0.5 by default, which leaves readings unchanged, and picks the first item."""

    def __init__(self, value: float = 0.5) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value

    def choice(self, seq):
        return seq[0]


def make_reading(occupancy, movement, audio, light=0.5):
    return EnvironmentReading(
        occupancy=occupancy,
        movement=movement,
        audio=audio,
        light=light,
        captured_at=time.time(),
    )


async def connection_state(store, name):
    state = await store.read()
    return next(c.state for c in state.connections if c.name == name)


class TestSimulation:
    """Test suite for the Simulation engine."""

    def setup_method(self):
        """Set up a fresh store and a quiet engine for each test."""
        self.store = MoodStore()
        self.config = SimulationConfig(
            tick_interval=60.0,
            fallback_probability=0.0,
            fault_probability=0.0,
            recovery_delay=0.05,
        )

    def make_engine(self, rng=None, **overrides):
        config = self.config.model_copy(update=overrides)
        return Simulation(
            self.store, config, rng=rng or StubRandom(), clock=lambda: NOON
        )

    async def test_start_and_stop_toggle_system_flag(self):
        engine = self.make_engine()

        await engine.start()
        assert engine.running
        assert (await self.store.read()).system_active is True

        await engine.start()  # no-op while running
        assert engine.running

        await engine.stop()
        assert not engine.running
        assert (await self.store.read()).system_active is False

        await engine.stop()  # no-op while stopped

    async def test_tick_does_nothing_while_stopped(self):
        engine = self.make_engine()
        await engine.tick()

        state = await self.store.read()
        assert state.analytics.ticks == 0

    async def test_matching_rule_activates_target(self):
        """Test the crowd example: the high energy rule switches to Energetic."""
        await self.store.update_environment(make_reading(22, 0.85, 0.3))
        before = time.time()
        engine = self.make_engine()

        await engine.start()
        await engine.tick()
        await engine.stop()

        state = await self.store.read()
        assert state.environment.occupancy == 22
        assert state.current_mood.name == "Energetic"
        assert state.current_mood.last_updated >= before

        [transition] = state.recent_activity
        assert transition.source == TransitionSource.RULE
        assert transition.rule_id == "1"
        assert state.analytics.rule_hits == {"1": 1}

    async def test_matching_rule_for_active_mood_is_a_no_op(self):
        await self.store.activate_mood("Energetic")
        await self.store.update_environment(make_reading(22, 0.85, 0.3))
        engine = self.make_engine()

        await engine.start()
        await engine.tick()
        await engine.stop()

        state = await self.store.read()
        assert state.current_mood.name == "Energetic"
        assert len(state.recent_activity) == 1

    async def test_no_match_without_fallback_keeps_mood(self):
        await self.store.update_environment(make_reading(3, 0.1, 0.1))
        engine = self.make_engine()

        await engine.start()
        for _ in range(10):
            await engine.tick()
        await engine.stop()

        state = await self.store.read()
        assert state.current_mood.name == "Contemplative"
        assert state.recent_activity == []
        assert state.analytics.ticks == 11

    async def test_no_match_with_fallback_switches_randomly(self):
        await self.store.update_environment(make_reading(3, 0.1, 0.1))
        engine = self.make_engine(fallback_probability=1.0)

        await engine.start()
        await engine.tick()
        await engine.stop()

        state = await self.store.read()
        assert state.current_mood.name == "Energetic"
        assert state.recent_activity[-1].source == TransitionSource.RANDOM

    async def test_fault_injection_recovers(self):
        engine = self.make_engine(fault_probability=1.0)

        await engine.start()
        await engine.tick()
        assert await connection_state(self.store, "QLab") == ConnectionState.ERROR
        assert engine.pending_recoveries == 1

        await asyncio.sleep(0.2)
        assert await connection_state(self.store, "QLab") == ConnectionState.CONNECTED
        assert engine.pending_recoveries == 0

        await engine.stop()

    async def test_stop_cancels_pending_recovery(self):
        """Test that no state mutation happens after the engine is stopped."""
        engine = self.make_engine(fault_probability=1.0, recovery_delay=0.1)

        await engine.start()
        await engine.tick()
        assert engine.pending_recoveries == 1

        await engine.stop()
        assert engine.pending_recoveries == 0
        snapshot = await self.store.read()

        await asyncio.sleep(0.3)
        await engine.tick()

        assert await self.store.read() == snapshot
        assert await connection_state(self.store, "QLab") == ConnectionState.ERROR

    async def test_recovery_from_previous_run_is_discarded_after_restart(self):
        engine = self.make_engine(fault_probability=1.0, recovery_delay=0.1)

        await engine.start()
        await engine.tick()
        await engine.stop()

        await engine.start()
        await asyncio.sleep(0.3)
        assert await connection_state(self.store, "QLab") == ConnectionState.ERROR
        await engine.stop()

    async def test_background_loop_ticks_until_stopped(self):
        engine = Simulation(
            self.store,
            SimulationConfig(tick_interval=0.01, fallback_probability=0.0, fault_probability=0.0),
            rng=random.Random(3),
            clock=lambda: NOON,
        )

        await engine.start()
        await asyncio.sleep(0.15)
        await engine.stop()

        ticks = (await self.store.read()).analytics.ticks
        assert ticks >= 1

        await asyncio.sleep(0.05)
        assert (await self.store.read()).analytics.ticks == ticks

    async def test_start_during_pending_stop_keeps_flag_in_sync(self):
        """Test that a start overlapping a stop leaves a running, stoppable engine."""
        engine = Simulation(
            self.store,
            SimulationConfig(tick_interval=0.01, fallback_probability=0.0, fault_probability=0.0),
            rng=random.Random(5),
            clock=lambda: NOON,
        )

        await engine.start()
        stopping = asyncio.create_task(engine.stop())
        await asyncio.sleep(0)  # let stop() take the lifecycle lock
        await engine.start()
        await stopping

        assert engine.running
        assert (await self.store.read()).system_active is True

        await asyncio.sleep(0.1)
        assert (await self.store.read()).analytics.ticks >= 1

        await engine.stop()
        assert not engine.running
        state = await self.store.read()
        assert state.system_active is False

        await asyncio.sleep(0.05)
        assert (await self.store.read()).analytics.ticks == state.analytics.ticks
