"""
Tests for the MoodStore implementation.

These tests verify the core functionality of the state store, including
mood activation, connection and rule management, and streaming.
"""

import asyncio
import time

import pytest
from pydantic import ValidationError

from mood_control.models import (
    ConnectionState,
    EnvironmentReading,
    MoodRuleCreate,
    MoodRuleUpdate,
    RangeCondition,
    RuleConditions,
    TransitionSource,
)
from mood_control.store import (
    MoodStore,
    UnknownConnectionError,
    UnknownMoodError,
    UnknownPresetError,
    UnknownRuleError,
)


class TestMoodStore:
    """Test suite for MoodStore functionality."""

    def setup_method(self):
        """Set up a fresh MoodStore for each test."""
        self.store = MoodStore()

    async def test_initial_state(self):
        """Test that a new store starts inactive with the default data."""
        state = await self.store.read()
        assert state.system_active is False
        assert state.current_mood.name == "Contemplative"
        assert [m.name for m in state.moods] == [
            "Energetic",
            "Contemplative",
            "Social",
            "Mysterious",
            "Peaceful",
        ]
        assert state.environment.occupancy == 12
        assert [r.id for r in state.rules] == ["1", "2", "3"]
        assert {c.name: c.state for c in state.connections} == {
            "QLab": ConnectionState.CONNECTED,
            "Resolume Arena": ConnectionState.CONNECTED,
            "Chamsys MagicQ": ConnectionState.DISCONNECTED,
        }
        assert state.recent_activity == []

    async def test_activate_and_read(self):
        """Test mood activation stamps last_updated and records the transition."""
        before = time.time()
        activated = await self.store.activate_mood("Energetic")

        assert activated.name == "Energetic"
        assert activated.last_updated >= before

        current = await self.store.read_mood()
        assert current == activated

        state = await self.store.read()
        catalog_entry = next(m for m in state.moods if m.name == "Energetic")
        assert catalog_entry.last_updated == activated.last_updated

        [transition] = state.recent_activity
        assert transition.mood == "Energetic"
        assert transition.previous == "Contemplative"
        assert transition.source == TransitionSource.MANUAL
        assert transition.held_for is not None
        assert state.analytics.mood_distribution == {"Energetic": 1}

    async def test_activate_unknown_mood(self):
        """Test that activating a mood outside the catalog raises."""
        with pytest.raises(UnknownMoodError):
            await self.store.activate_mood("Melancholic")

        current = await self.store.read_mood()
        assert current.name == "Contemplative"

    async def test_activity_window_evicts_oldest(self):
        """Test that only the most recent transitions are kept."""
        store = MoodStore(activity_limit=3)
        for name in ["Energetic", "Social", "Mysterious", "Peaceful", "Social"]:
            await store.activate_mood(name)

        state = await store.read()
        assert [t.mood for t in state.recent_activity] == [
            "Mysterious",
            "Peaceful",
            "Social",
        ]
        assert state.analytics.mood_distribution["Social"] == 2

    async def test_update_environment_tracks_analytics(self):
        """Test that readings replace the environment and feed the peak counter."""
        reading = EnvironmentReading(
            occupancy=40, movement=0.5, audio=0.5, light=0.5, captured_at=time.time()
        )
        await self.store.update_environment(reading)
        await self.store.update_environment(reading.model_copy(update={"occupancy": 8}))

        state = await self.store.read()
        assert state.environment.occupancy == 8
        assert state.analytics.ticks == 2
        assert state.analytics.peak_occupancy == 40

    async def test_set_connection_state(self):
        """Test that connection toggles replace the state and stamp last_ping."""
        before = time.time()
        updated = await self.store.set_connection_state(
            "Chamsys MagicQ", ConnectionState.CONNECTED
        )
        assert updated.state == ConnectionState.CONNECTED
        assert updated.last_ping >= before
        assert updated.address == "192.168.1.102"

        with pytest.raises(UnknownConnectionError):
            await self.store.set_connection_state("TouchDesigner", ConnectionState.ERROR)

    async def test_rule_lifecycle(self):
        """Test adding, updating and removing a rule."""
        rule = await self.store.add_rule(
            MoodRuleCreate(
                name="Late Crowd",
                conditions=RuleConditions(occupancy=RangeCondition(min=30, max=60)),
                target_mood="Mysterious",
                priority=4,
            )
        )
        assert rule.id.startswith("rule_")
        assert rule.enabled is True

        updated = await self.store.update_rule(
            rule.id, MoodRuleUpdate(priority=12, enabled=False)
        )
        assert updated.priority == 12
        assert updated.enabled is False
        assert updated.name == "Late Crowd"
        assert updated.conditions.occupancy.min == 30

        removed = await self.store.remove_rule(rule.id)
        assert removed.id == rule.id

        state = await self.store.read()
        assert rule.id not in [r.id for r in state.rules]

        with pytest.raises(UnknownRuleError):
            await self.store.remove_rule(rule.id)
        with pytest.raises(UnknownRuleError):
            await self.store.update_rule(rule.id, MoodRuleUpdate(priority=1))

    async def test_rules_must_target_catalog_moods(self):
        """Test that dangling mood references are rejected on create and update."""
        with pytest.raises(UnknownMoodError):
            await self.store.add_rule(
                MoodRuleCreate(name="Broken", target_mood="Melancholic")
            )
        with pytest.raises(UnknownMoodError):
            await self.store.update_rule("1", MoodRuleUpdate(target_mood="Melancholic"))

        state = await self.store.read()
        assert len(state.rules) == 3
        assert state.rules[0].target_mood == "Energetic"

    async def test_apply_preset(self):
        """Test that presets append their rules with generated ids."""
        added = await self.store.apply_preset("gallery")

        assert [r.name for r in added] == ["Quiet Contemplation", "Opening Night Energy"]
        assert all(r.id.startswith("preset_gallery_") for r in added)

        state = await self.store.read()
        assert len(state.rules) == 5

        with pytest.raises(UnknownPresetError):
            await self.store.apply_preset("nightclub")

    async def test_reads_cannot_mutate_stored_state(self):
        """Test that models handed out by reads are read-only."""
        state = await self.store.read()
        with pytest.raises(ValidationError):
            state.rules[0].enabled = False
        with pytest.raises(ValidationError):
            state.connections[0].state = ConnectionState.ERROR
        with pytest.raises(ValidationError):
            state.environment.occupancy = 99

        mood = await self.store.read_mood()
        with pytest.raises(ValidationError):
            mood.name = "Melancholic"

        state.analytics.ticks = 1000
        state.rules.clear()

        fresh = await self.store.read()
        assert fresh.rules[0].enabled is True
        assert len(fresh.rules) == 3
        assert fresh.connections[0].state == ConnectionState.CONNECTED
        assert fresh.environment.occupancy == 12
        assert fresh.current_mood.name == "Contemplative"
        assert fresh.analytics.ticks == 0

    async def test_streaming(self):
        """Test that two consumers receive streaming state updates."""
        consumer1_moods = []
        consumer2_moods = []

        async def consumer(received):
            async with self.store.stream() as state_stream:
                async for state in state_stream:
                    received.append(state.current_mood.name)
                    if len(received) >= 3:  # initial + 2 updates
                        break

        task1 = asyncio.create_task(consumer(consumer1_moods))
        task2 = asyncio.create_task(consumer(consumer2_moods))

        # Let them set up
        await asyncio.sleep(0.01)

        await self.store.activate_mood("Social")
        await asyncio.sleep(0.01)  # Small delay between updates
        await self.store.activate_mood("Peaceful")

        try:
            await asyncio.wait_for(asyncio.gather(task1, task2), timeout=2.0)
        except TimeoutError:
            task1.cancel()
            task2.cancel()
            await asyncio.gather(task1, task2, return_exceptions=True)
            assert False, (
                f"Test timed out. Consumer1 got: {consumer1_moods}, "
                f"Consumer2 got: {consumer2_moods}"
            )

        assert consumer1_moods == ["Contemplative", "Social", "Peaceful"]
        assert consumer2_moods == ["Contemplative", "Social", "Peaceful"]
