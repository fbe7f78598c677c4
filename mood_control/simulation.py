"""
Simulation engine for the MOOD Control service.

One recurring asyncio task drives everything: each tick perturbs the
environment reading, evaluates the mood rules against it and occasionally
injects a self-healing fault into one of the outputs. Stopping the engine
cancels its token before cancelling its tasks, so no deferred action can
mutate the store once stop() has returned.
"""

import asyncio
import random
from collections.abc import Callable
from datetime import datetime

import structlog

from .config import SimulationConfig
from .models import ConnectionState, EnvironmentReading, TransitionSource
from .rules import pick_fallback_mood, resolve_target, select_rule
from .simulator import perturb
from .store import MoodStore

logger = structlog.get_logger()


class CancellationToken:
    """Single-use flag shared by everything scheduled during one run."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class Simulation:
    """
    Timer-driven simulation writing into a MoodStore.

    Args:
        store: The store to publish readings, moods and connection states to
        config: Tick interval, probabilities and recovery delay
        rng: Random source, seeded from the config when omitted
        clock: Wall-clock source for time-of-day rule conditions
    """

    def __init__(
        self,
        store: MoodStore,
        config: SimulationConfig | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.config = config or SimulationConfig()
        self._rng = rng or random.Random(self.config.seed)
        self._clock = clock

        self._token: CancellationToken | None = None
        self._task: asyncio.Task | None = None
        self._recoveries: set[asyncio.Task] = set()
        # Serializes start/stop so an overlapping call never sees a half-stopped run
        self._lifecycle = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._token is not None and not self._token.cancelled

    @property
    def pending_recoveries(self) -> int:
        return len(self._recoveries)

    async def start(self) -> None:
        """Start the recurring tick; a no-op when already running."""
        async with self._lifecycle:
            if self.running:
                logger.warning("Simulation is already running")
                return

            token = CancellationToken()
            self._token = token
            await self.store.set_system_active(True)
            self._task = asyncio.create_task(self._run(token))

        logger.info(
            "Simulation started",
            tick_interval=self.config.tick_interval,
            fallback_probability=self.config.fallback_probability,
            fault_probability=self.config.fault_probability,
        )

    async def stop(self) -> None:
        """Stop the tick and discard every pending recovery."""
        async with self._lifecycle:
            token = self._token
            if token is None or token.cancelled:
                return

            token.cancel()

            tasks = list(self._recoveries)
            if self._task is not None:
                tasks.append(self._task)
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)

            self._task = None
            self._recoveries.clear()
            await self.store.set_system_active(False)

        logger.info("Simulation stopped", cancelled_tasks=len(tasks))

    async def tick(self) -> None:
        """Run one simulation step; does nothing unless the engine is running."""
        token = self._token
        if token is None or token.cancelled:
            return
        await self._tick(token)

    # MARK: - Private Helpers

    async def _run(self, token: CancellationToken) -> None:
        while not token.cancelled:
            await asyncio.sleep(self.config.tick_interval)
            try:
                await self._tick(token)
            except Exception:
                logger.exception("Simulation tick failed")

    async def _tick(self, token: CancellationToken) -> None:
        state = await self.store.read()
        reading = perturb(state.environment, self._rng)

        if token.cancelled:
            return
        await self.store.update_environment(reading)

        await self._evaluate(reading, token)
        await self._maybe_inject_fault(token)

    async def _evaluate(self, reading: EnvironmentReading, token: CancellationToken) -> None:
        state = await self.store.read()
        current = state.current_mood

        rule = select_rule(state.rules, reading, self._clock())
        if rule is not None:
            target = resolve_target(rule, state.moods)
            if target is None or target.name == current.name or token.cancelled:
                return
            await self.store.activate_mood(target.name, TransitionSource.RULE, rule)
            logger.info(
                "Mood switched by rule",
                mood=target.name,
                previous=current.name,
                rule=rule.name,
            )
            return

        fallback = pick_fallback_mood(
            state.moods, current, self._rng, self.config.fallback_probability
        )
        if fallback is None or token.cancelled:
            return
        await self.store.activate_mood(fallback.name, TransitionSource.RANDOM)
        logger.info("Random mood change", mood=fallback.name, previous=current.name)

    async def _maybe_inject_fault(self, token: CancellationToken) -> None:
        if self._rng.random() >= self.config.fault_probability:
            return

        state = await self.store.read()
        connected = [
            connection
            for connection in state.connections
            if connection.state == ConnectionState.CONNECTED
        ]
        if not connected or token.cancelled:
            return

        victim = self._rng.choice(connected)
        await self.store.set_connection_state(victim.name, ConnectionState.ERROR)
        logger.warning(
            "Simulated output fault",
            connection=victim.name,
            recovery_delay=self.config.recovery_delay,
        )

        task = asyncio.create_task(self._recover(victim.name, token))
        self._recoveries.add(task)
        task.add_done_callback(self._recoveries.discard)

    async def _recover(self, name: str, token: CancellationToken) -> None:
        await asyncio.sleep(self.config.recovery_delay)
        if token.cancelled:
            return
        await self.store.set_connection_state(name, ConnectionState.CONNECTED)
        logger.info("Output recovered", connection=name)
