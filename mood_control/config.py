"""
Configuration and logging setup for the MOOD Control service.

Settings come from MOOD_* environment variables, optionally loaded from a
.env file in the working directory.
"""

import logging
import os
from pathlib import Path

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field

ENV_PREFIX = "MOOD_"


def _load_env_file() -> None:
    """Load environment variables from a .env file if one exists."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path)


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _collect(**fields: str) -> dict[str, str]:
    """Map model fields to the environment variables that are actually set."""
    values = {}
    for field, name in fields.items():
        value = _env(name)
        if value is not None:
            values[field] = value
    return values


class SimulationConfig(BaseModel):
    """Simulation engine configuration."""

    tick_interval: float = Field(default=3.0, gt=0, description="Seconds between ticks")
    fallback_probability: float = Field(
        default=0.1, ge=0, le=1, description="Chance of a random mood when no rule matches"
    )
    fault_probability: float = Field(
        default=0.02, ge=0, le=1, description="Chance per tick of a simulated output fault"
    )
    recovery_delay: float = Field(
        default=5.0, ge=0, description="Seconds before a faulted output recovers"
    )
    activity_limit: int = Field(default=10, gt=0, description="Recent transitions kept")
    seed: int | None = Field(default=None, description="Random seed for reproducible runs")


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    autostart: bool = Field(
        default=False, description="Start the simulation when the server starts"
    )


class AppConfig(BaseModel):
    """Complete service configuration."""

    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create from environment variables."""
        _load_env_file()

        simulation = _collect(
            tick_interval="TICK_INTERVAL",
            fallback_probability="FALLBACK_PROBABILITY",
            fault_probability="FAULT_PROBABILITY",
            recovery_delay="RECOVERY_DELAY",
            activity_limit="ACTIVITY_LIMIT",
            seed="SEED",
        )
        server = _collect(host="HOST", port="PORT", autostart="AUTOSTART")

        return cls(
            simulation=SimulationConfig.model_validate(simulation),
            server=ServerConfig.model_validate(server),
            log_level=_env("LOG_LEVEL", "INFO"),
        )


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog on top of the standard logging backend."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s")

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
