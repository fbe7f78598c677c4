"""
Command-line interface tools for the MOOD Control service.
"""

import asyncio
import json
from collections.abc import Coroutine
from datetime import datetime
from typing import Any

import httpx
import typer
from httpx_sse import ServerSentEvent, aconnect_sse

from .models import ConnectionState, DashboardState, MoodProfile, MoodRule

DEFAULT_BASE_URL = "http://localhost:8000"

app = typer.Typer(help="MOOD Control CLI tools")


# MARK: - CLI Entry Points


def cli_set_mood() -> None:
    """Entry point for mood-set CLI command."""
    typer.run(set_mood)


def cli_get_mood() -> None:
    """Entry point for mood-get CLI command."""
    typer.run(get_mood)


def cli_stream() -> None:
    """Entry point for mood-stream CLI command."""
    typer.run(stream)


# MARK: - Commands


@app.command()
def set_mood(
    mood: str = typer.Argument(..., help="Name of the mood to activate"),
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the MOOD Control service"
    ),
) -> None:
    """Manually activate a mood."""

    async def _set_mood() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.put(f"{base_url}/mood", json={"mood": mood})
            response.raise_for_status()
            result = response.json()
            print(f"Mood set to: {result['mood']['name']}")

    _run_with_error_handling(_set_mood(), base_url)


@app.command()
def get_mood(
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the MOOD Control service"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON"),
) -> None:
    """Get the active mood."""

    async def _get_mood() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{base_url}/mood")
            response.raise_for_status()
            result = response.json()

            if json_output:
                print(json.dumps(result, indent=2))
                return

            mood = MoodProfile.model_validate(result["mood"])
            print(_format_mood(mood))

    _run_with_error_handling(_get_mood(), base_url)


@app.command()
def status(
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the MOOD Control service"
    ),
) -> None:
    """Show the system, mood, environment and output status."""

    async def _status() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{base_url}/state")
            response.raise_for_status()
            state = DashboardState.model_validate(response.json())

        print(f"System:  {'active' if state.system_active else 'inactive'}")
        print(f"Mood:    {_format_mood(state.current_mood)}")
        print(f"Reading: {_format_reading(state)}")
        connected = sum(
            1 for c in state.connections if c.state == ConnectionState.CONNECTED
        )
        print(f"Outputs: {connected}/{len(state.connections)} connected")
        for connection in state.connections:
            endpoint = connection.address or "-"
            if connection.port is not None:
                endpoint = f"{endpoint}:{connection.port}"
            print(
                f"  {connection.name:<16} {connection.protocol.value:<7} "
                f"{connection.state.value:<13} {endpoint}"
            )

    _run_with_error_handling(_status(), base_url)


@app.command()
def activate(
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the MOOD Control service"
    ),
) -> None:
    """Start the simulation."""
    _run_with_error_handling(_set_system(base_url, True), base_url)


@app.command()
def deactivate(
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the MOOD Control service"
    ),
) -> None:
    """Stop the simulation."""
    _run_with_error_handling(_set_system(base_url, False), base_url)


@app.command()
def rules(
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the MOOD Control service"
    ),
) -> None:
    """List mood rules, highest priority first."""

    async def _rules() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{base_url}/rules")
            response.raise_for_status()
            items = [MoodRule.model_validate(item) for item in response.json()]

        if not items:
            print("No rules")
            return
        for rule in sorted(items, key=lambda r: r.priority, reverse=True):
            print(_format_rule(rule))

    _run_with_error_handling(_rules(), base_url)


@app.command()
def connection(
    name: str = typer.Argument(..., help="Output name, e.g. QLab"),
    state: ConnectionState = typer.Argument(..., help="New connection state"),
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the MOOD Control service"
    ),
) -> None:
    """Manually set the state of an output."""

    async def _connection() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.put(
                f"{base_url}/connections/{name}", json={"state": state.value}
            )
            response.raise_for_status()
            print(f"{name}: {response.json()['state']}")

    _run_with_error_handling(_connection(), base_url)


@app.command()
def preset(
    key: str = typer.Argument(..., help="Preset key: gallery, museum, corporate, festival"),
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the MOOD Control service"
    ),
) -> None:
    """Append the rules of a built-in preset."""

    async def _preset() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.post(f"{base_url}/presets/{key}")
            response.raise_for_status()
            added = [MoodRule.model_validate(item) for item in response.json()]
            print(f"Added {len(added)} rules from preset '{key}'")
            for rule in added:
                print(_format_rule(rule))

    _run_with_error_handling(_preset(), base_url)


@app.command()
def stream(
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the MOOD Control service"
    ),
) -> None:
    """Stream state updates in real-time."""

    async def _stream() -> None:
        print(f"Streaming from {base_url}/state/stream... (Ctrl+C to stop)")

        async with httpx.AsyncClient(timeout=None) as client:
            async with aconnect_sse(
                client, "GET", f"{base_url}/state/stream"
            ) as event_source:
                async for sse in event_source.aiter_sse():
                    _handle_sse_event(sse)

    _run_with_error_handling(_stream(), base_url)


# MARK: - Private Helpers


async def _set_system(base_url: str, active: bool) -> None:
    async with httpx.AsyncClient() as client:
        response = await client.put(f"{base_url}/system", json={"active": active})
        response.raise_for_status()
        running = response.json()["active"]
        print(f"System {'active' if running else 'inactive'}")


def _format_mood(mood: MoodProfile) -> str:
    """Format mood with optional activation time."""
    if not mood.last_updated:
        return mood.name

    dt = datetime.fromtimestamp(mood.last_updated)
    return f"{mood.name} (since {dt.strftime('%H:%M:%S')})"


def _format_reading(state: DashboardState) -> str:
    reading = state.environment
    return (
        f"{reading.occupancy} people, "
        f"movement {reading.movement:.0%}, "
        f"audio {reading.audio:.0%}, "
        f"light {reading.light:.0%}"
    )


def _format_rule(rule: MoodRule) -> str:
    conditions = rule.conditions
    parts = []
    if conditions.occupancy:
        parts.append(f"{conditions.occupancy.min:g}-{conditions.occupancy.max:g} people")
    if conditions.movement:
        parts.append(
            f"{conditions.movement.min:.0%}-{conditions.movement.max:.0%} movement"
        )
    if conditions.audio:
        parts.append(f"{conditions.audio.min:.0%}-{conditions.audio.max:.0%} audio")
    if conditions.time_of_day:
        parts.append(f"{conditions.time_of_day.start}-{conditions.time_of_day.end}")

    flag = " " if rule.enabled else "x"
    when = " and ".join(parts) or "always"
    return f"[{flag}] {rule.priority:>3} {rule.name}: IF {when} THEN {rule.target_mood}"


def _handle_sse_event(sse: ServerSentEvent) -> None:
    """Handle a single SSE event."""
    try:
        # Handle error events from server
        if sse.event == "error":
            error_data = json.loads(sse.data)
            print(f"Server error: {error_data.get('error', 'Unknown error')}")
            return

        state = DashboardState.model_validate_json(sse.data)
        timestamp = datetime.fromtimestamp(state.environment.captured_at)
        print(
            f"{timestamp.strftime('%H:%M:%S')} > {state.current_mood.name} | "
            f"{_format_reading(state)}"
        )

    except json.JSONDecodeError as e:
        print(f"Warning: Could not parse SSE data: {sse.data} - {e}")
    except Exception as e:
        print(f"Warning: Error processing state data: {e}")


def _run_with_error_handling(coro: Coroutine[Any, Any, Any], base_url: str) -> None:
    """Run an async coroutine with standardized error handling."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        print("\nStopped")
        raise typer.Exit(0)
    except httpx.ConnectError:
        print(f"Error: Could not connect to {base_url}")
        raise typer.Exit(1)
    except httpx.HTTPStatusError as e:
        print(f"Error: HTTP {e.response.status_code}")
        raise typer.Exit(1)
    except Exception as e:
        error_msg = str(e) if str(e) else f"Unknown error of type {type(e).__name__}"
        print(f"Error: {error_msg}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
