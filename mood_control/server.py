"""
FastAPI server for the MOOD Control service.

This module implements the HTTP API for reading and changing the dashboard
state and a Server-Sent Events stream of state snapshots. Output addresses
and ports are display fields only; nothing here talks to real show-control
software.
"""

import asyncio
import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from . import __version__
from .catalog import PRESETS
from .config import AppConfig, configure_logging
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
    Preset,
)
from .simulation import Simulation
from .store import (
    MoodStore,
    UnknownConnectionError,
    UnknownMoodError,
    UnknownPresetError,
    UnknownRuleError,
)

logger = structlog.get_logger()


# API Request/Response Schemas
class MoodUpdate(BaseModel):
    """Payload for manual mood selection."""

    mood: str = Field(..., description="Name of the catalog mood to activate")


class MoodResponse(BaseModel):
    """Response model for mood endpoints."""

    mood: MoodProfile = Field(..., description="The active mood")


class ConnectionUpdate(BaseModel):
    """Payload for manual connection toggles."""

    state: ConnectionState


class SystemUpdate(BaseModel):
    """Payload for activating or deactivating the simulation."""

    active: bool


class SystemResponse(BaseModel):
    active: bool


def create_app(
    mood_store: MoodStore,
    simulation: Simulation | None = None,
    autostart: bool = False,
) -> FastAPI:
    """
    Create a FastAPI application around the given store.

    Args:
        mood_store: The MoodStore instance to use for the application
        simulation: The engine writing into the store, created when omitted
        autostart: Start the simulation when the application starts

    Returns:
        Configured FastAPI application
    """
    engine = simulation or Simulation(mood_store)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for FastAPI application."""
        if autostart:
            await engine.start()
        yield
        # No state mutation may outlive the application
        await engine.stop()

    app = FastAPI(
        title="MOOD Control",
        description="Simulated mood control for interactive art installations",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "mood-control"}

    @app.get("/state")
    async def get_state() -> DashboardState:
        """Get the full dashboard state."""
        return await mood_store.read()

    # MARK: - Mood

    @app.get("/mood")
    async def get_mood() -> MoodResponse:
        """
        Get the active mood.

        Returns:
            The active mood profile (Contemplative on startup)
        """
        return MoodResponse(mood=await mood_store.read_mood())

    @app.put("/mood")
    async def update_mood(mood_update: MoodUpdate) -> MoodResponse:
        """
        Manually activate a catalog mood and notify all subscribers.

        Args:
            mood_update: The mood selection payload

        Returns:
            The activated mood with a fresh last_updated stamp
        """
        try:
            mood = await mood_store.activate_mood(mood_update.mood)
        except UnknownMoodError:
            raise HTTPException(
                status_code=404, detail=f"Unknown mood: {mood_update.mood}"
            )
        logger.info("Mood set manually", mood=mood.name)
        return MoodResponse(mood=mood)

    @app.get("/moods")
    async def list_moods() -> list[MoodProfile]:
        """List the mood catalog."""
        return (await mood_store.read()).moods

    @app.get("/environment")
    async def get_environment() -> EnvironmentReading:
        """Get the latest simulated environment reading."""
        return (await mood_store.read()).environment

    # MARK: - Connections

    @app.get("/connections")
    async def list_connections() -> list[ConnectionStatus]:
        """List the output roster."""
        return (await mood_store.read()).connections

    @app.put("/connections/{name}")
    async def update_connection(
        name: str, connection_update: ConnectionUpdate
    ) -> ConnectionStatus:
        """Manually reconnect, disconnect or fault an output."""
        try:
            return await mood_store.set_connection_state(name, connection_update.state)
        except UnknownConnectionError:
            raise HTTPException(status_code=404, detail=f"Unknown connection: {name}")

    # MARK: - Rules

    @app.get("/rules")
    async def list_rules() -> list[MoodRule]:
        """List mood rules in insertion order."""
        return (await mood_store.read()).rules

    @app.post("/rules", status_code=status.HTTP_201_CREATED)
    async def create_rule(payload: MoodRuleCreate) -> MoodRule:
        """Create a rule; its target must name a catalog mood."""
        try:
            return await mood_store.add_rule(payload)
        except UnknownMoodError:
            raise HTTPException(
                status_code=422, detail=f"Unknown mood: {payload.target_mood}"
            )

    @app.patch("/rules/{rule_id}")
    async def patch_rule(rule_id: str, update: MoodRuleUpdate) -> MoodRule:
        """Apply a partial update to a rule."""
        try:
            return await mood_store.update_rule(rule_id, update)
        except UnknownRuleError:
            raise HTTPException(status_code=404, detail=f"Unknown rule: {rule_id}")
        except UnknownMoodError as e:
            raise HTTPException(status_code=422, detail=f"Unknown mood: {e.args[0]}")
        except ValidationError as e:
            # Explicit nulls for required fields only fail once merged
            raise HTTPException(
                status_code=422, detail=e.errors(include_url=False, include_context=False)
            )

    @app.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_rule(rule_id: str) -> Response:
        """Delete a rule."""
        try:
            await mood_store.remove_rule(rule_id)
        except UnknownRuleError:
            raise HTTPException(status_code=404, detail=f"Unknown rule: {rule_id}")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # MARK: - Presets

    @app.get("/presets")
    async def list_presets() -> dict[str, Preset]:
        """List built-in rule presets by key."""
        return PRESETS

    @app.post("/presets/{key}")
    async def apply_preset(key: str) -> list[MoodRule]:
        """Append the rules of a preset; returns the rules added."""
        try:
            return await mood_store.apply_preset(key)
        except UnknownPresetError:
            raise HTTPException(status_code=404, detail=f"Unknown preset: {key}")

    # MARK: - Activity & Analytics

    @app.get("/activity")
    async def get_activity() -> list[MoodTransition]:
        """Get the recent mood transitions, oldest first."""
        return (await mood_store.read()).recent_activity

    @app.get("/analytics")
    async def get_analytics() -> AnalyticsSummary:
        """Get the in-memory analytics summary."""
        return (await mood_store.read()).analytics

    # MARK: - System

    @app.put("/system")
    async def update_system(system_update: SystemUpdate) -> SystemResponse:
        """Activate or deactivate the simulation."""
        if system_update.active:
            await engine.start()
        else:
            await engine.stop()
        return SystemResponse(active=engine.running)

    # MARK: - Streaming

    @app.get("/state/stream")
    async def stream_state() -> StreamingResponse:
        """
        Stream dashboard state via Server-Sent Events.

        This endpoint establishes an SSE connection and streams a full state
        snapshot after every change. The current state is sent immediately
        upon connection.

        Returns:
            StreamingResponse with text/event-stream content type
        """

        async def event_generator() -> AsyncGenerator[str, None]:
            """Generate SSE events for state updates."""
            try:
                async with mood_store.stream() as state_stream:
                    async for snapshot in state_stream:
                        yield f"data: {snapshot.model_dump_json()}\n\n"
            except asyncio.CancelledError:
                # Client disconnected
                pass
            except Exception as e:
                # Send error event and close
                error_data = json.dumps({"error": str(e)})
                yield f"event: error\ndata: {error_data}\n\n"

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Headers": "*",
            },
        )

    return app


def build_app(config: AppConfig | None = None) -> FastAPI:
    """Build the application from configuration."""
    config = config or AppConfig.from_env()
    store = MoodStore(activity_limit=config.simulation.activity_limit)
    simulation = Simulation(store, config.simulation)
    return create_app(store, simulation, autostart=config.server.autostart)


def main() -> None:
    """Main entry point for the server."""
    import uvicorn

    config = AppConfig.from_env()
    configure_logging(config.log_level)

    uvicorn.run(
        build_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
