"""
Application state storage for the MOOD Control service.

This module provides the in-memory store that owns every piece of mutable
state: the active mood and catalog, the latest environment reading, the
output roster, the rule list, the recent-activity window and analytics.
Every mutation notifies subscribers, which stream full state snapshots.
"""

import asyncio
import time
import uuid
from collections import deque
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog

from .catalog import (
    INITIAL_MOOD,
    PRESETS,
    default_connections,
    default_environment,
    default_moods,
    default_rules,
)
from .models import (
    AnalyticsSummary,
    ConnectionState,
    ConnectionStatus,
    DashboardState,
    EnvironmentReading,
    MoodProfile,
    MoodRule,
    MoodRuleCreate,
    MoodRuleUpdate,
    MoodTransition,
    TransitionSource,
)

logger = structlog.get_logger()

DEFAULT_ACTIVITY_LIMIT = 10


class MoodControlError(LookupError):
    """Base class for lookups of things the store does not hold."""


class UnknownMoodError(MoodControlError):
    pass


class UnknownRuleError(MoodControlError):
    pass


class UnknownConnectionError(MoodControlError):
    pass


class UnknownPresetError(MoodControlError):
    pass


class MoodStore:
    """
    In-memory application state with real-time streaming capabilities.

    All writers go through the store's asyncio condition, and subscribers
    wait on the same condition for the update counter to advance, so each
    subscriber sees the latest snapshot after every change.
    """

    def __init__(self, activity_limit: int = DEFAULT_ACTIVITY_LIMIT) -> None:
        self._moods = default_moods()
        self._current_mood = self._find_mood(INITIAL_MOOD)
        self._environment = default_environment()
        self._connections = default_connections()
        self._rules = default_rules()
        self._activity: deque[MoodTransition] = deque(maxlen=activity_limit)
        self._analytics = AnalyticsSummary(
            peak_occupancy=self._environment.occupancy
        )
        self._system_active = False

        self._condition = asyncio.Condition()
        self._update_counter = 0  # Simple counter to detect updates

    # MARK: - Reads

    async def read(self) -> DashboardState:
        """
        Get a full snapshot of the application state.

        Returns:
            The current DashboardState
        """
        async with self._condition:
            return self._snapshot()

    async def read_mood(self) -> MoodProfile:
        """Get the currently active mood."""
        async with self._condition:
            return self._current_mood

    # MARK: - Mood

    async def activate_mood(
        self,
        name: str,
        source: TransitionSource = TransitionSource.MANUAL,
        rule: MoodRule | None = None,
    ) -> MoodProfile:
        """
        Activate a catalog mood and notify all subscribers.

        Args:
            name: Name of the catalog mood to activate
            source: What caused the activation
            rule: The rule that selected the mood, if any

        Returns:
            The activated MoodProfile with a fresh last_updated stamp

        Raises:
            UnknownMoodError: If the catalog has no mood with that name
        """
        async with self._condition:
            mood = self._find_mood(name)
            now = time.time()
            previous = self._current_mood

            activated = mood.model_copy(update={"last_updated": now})
            self._moods = [
                activated if entry.name == name else entry for entry in self._moods
            ]
            self._current_mood = activated

            held_for = None
            if previous.last_updated is not None:
                held_for = now - previous.last_updated
            self._activity.append(
                MoodTransition(
                    mood=name,
                    previous=previous.name,
                    source=source,
                    rule_id=rule.id if rule else None,
                    rule_name=rule.name if rule else None,
                    held_for=held_for,
                    timestamp=now,
                )
            )

            distribution = self._analytics.mood_distribution
            distribution[name] = distribution.get(name, 0) + 1
            if rule is not None:
                hits = self._analytics.rule_hits
                hits[rule.id] = hits.get(rule.id, 0) + 1

            self._notify()
            return activated

    # MARK: - Environment

    async def update_environment(self, reading: EnvironmentReading) -> EnvironmentReading:
        """Replace the current reading and notify all subscribers."""
        async with self._condition:
            self._environment = reading
            self._analytics.ticks += 1
            self._analytics.peak_occupancy = max(
                self._analytics.peak_occupancy, reading.occupancy
            )
            self._notify()
            return reading

    # MARK: - System

    async def set_system_active(self, active: bool) -> bool:
        async with self._condition:
            self._system_active = active
            self._notify()
            return active

    # MARK: - Connections

    async def set_connection_state(
        self, name: str, state: ConnectionState
    ) -> ConnectionStatus:
        """
        Replace the state of a named output and stamp its last ping.

        Raises:
            UnknownConnectionError: If no output has that name
        """
        async with self._condition:
            for index, connection in enumerate(self._connections):
                if connection.name == name:
                    updated = connection.model_copy(
                        update={"state": state, "last_ping": time.time()}
                    )
                    self._connections[index] = updated
                    self._notify()
                    return updated
        raise UnknownConnectionError(name)

    # MARK: - Rules

    async def add_rule(self, payload: MoodRuleCreate, rule_id: str | None = None) -> MoodRule:
        """
        Append a new rule.

        Raises:
            UnknownMoodError: If the rule targets a mood outside the catalog
        """
        async with self._condition:
            rule = self._build_rule(payload, rule_id or f"rule_{uuid.uuid4().hex[:8]}")
            self._rules.append(rule)
            self._notify()
            return rule

    async def update_rule(self, rule_id: str, update: MoodRuleUpdate) -> MoodRule:
        """
        Merge the fields set on an update into an existing rule.

        Raises:
            UnknownRuleError: If no rule has that id
            UnknownMoodError: If the merged rule targets an unknown mood
        """
        async with self._condition:
            index = self._rule_index(rule_id)
            merged = {
                **self._rules[index].model_dump(),
                **update.model_dump(exclude_unset=True),
            }
            rule = MoodRule.model_validate(merged)
            self._find_mood(rule.target_mood)
            self._rules[index] = rule
            self._notify()
            return rule

    async def remove_rule(self, rule_id: str) -> MoodRule:
        """
        Delete a rule by id.

        Raises:
            UnknownRuleError: If no rule has that id
        """
        async with self._condition:
            rule = self._rules.pop(self._rule_index(rule_id))
            self._notify()
            return rule

    async def apply_preset(self, key: str) -> list[MoodRule]:
        """
        Append every rule of a built-in preset.

        Raises:
            UnknownPresetError: If there is no preset with that key
        """
        preset = PRESETS.get(key)
        if preset is None:
            raise UnknownPresetError(key)

        async with self._condition:
            suffix = uuid.uuid4().hex[:8]
            added = [
                self._build_rule(template, f"preset_{key}_{index}_{suffix}")
                for index, template in enumerate(preset.rules)
            ]
            self._rules.extend(added)
            self._notify()

        logger.info("Preset applied", preset=key, rules=len(added))
        return added

    # MARK: - Streaming

    @asynccontextmanager
    async def stream(self) -> AsyncGenerator[AsyncGenerator[DashboardState, None], None]:
        """
        Stream state snapshots to a subscriber.

        This context manager yields an async generator that produces a
        DashboardState immediately and then after every update. Uses condition
        variables for efficient signaling.

        Yields:
            An async generator of DashboardState objects
        """

        async def state_generator() -> AsyncGenerator[DashboardState, None]:
            # Get initial state and counter
            async with self._condition:
                last_seen_counter = self._update_counter
                snapshot = self._snapshot()
            yield snapshot

            # Wait for updates
            try:
                while True:
                    async with self._condition:
                        await self._condition.wait_for(
                            lambda: self._update_counter > last_seen_counter
                        )
                        last_seen_counter = self._update_counter
                        snapshot = self._snapshot()
                    yield snapshot

            except (asyncio.CancelledError, GeneratorExit):
                # Client disconnected or generator closed, clean exit
                return

        yield state_generator()

    # MARK: - Private Helpers

    def _notify(self) -> None:
        # Caller must hold the condition
        self._update_counter += 1
        self._condition.notify_all()

    def _snapshot(self) -> DashboardState:
        # Entries are frozen models, so sharing them with readers is safe
        return DashboardState(
            system_active=self._system_active,
            current_mood=self._current_mood,
            moods=list(self._moods),
            environment=self._environment,
            connections=list(self._connections),
            rules=list(self._rules),
            recent_activity=list(self._activity),
            analytics=self._analytics.model_copy(deep=True),
        )

    def _find_mood(self, name: str) -> MoodProfile:
        for mood in self._moods:
            if mood.name == name:
                return mood
        raise UnknownMoodError(name)

    def _rule_index(self, rule_id: str) -> int:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                return index
        raise UnknownRuleError(rule_id)

    def _build_rule(self, payload: MoodRuleCreate, rule_id: str) -> MoodRule:
        self._find_mood(payload.target_mood)
        return MoodRule(id=rule_id, **payload.model_dump())
