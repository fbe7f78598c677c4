"""
Shared data models for the MOOD Control service.

This module defines the core domain models used across multiple layers
of the application (simulation, rule evaluation, store, CLI, API).
"""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class ProtocolKind(str, Enum):
    """Protocol a show-control output is displayed as speaking."""

    OSC = "OSC"
    MIDI = "MIDI"
    ARTNET = "ArtNet"


class ConnectionState(str, Enum):
    """Mock connection state of an output."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class TransitionSource(str, Enum):
    """What caused a mood activation."""

    RULE = "rule"
    RANDOM = "random"
    MANUAL = "manual"


class EnvironmentReading(BaseModel):
    """A simulated snapshot of the installation space."""

    model_config = ConfigDict(frozen=True)

    occupancy: int = Field(..., ge=0, description="Number of people present")
    movement: float = Field(..., ge=0.0, le=1.0, description="Average movement")
    audio: float = Field(..., ge=0.0, le=1.0, description="Ambient audio level")
    light: float = Field(..., ge=0.0, le=1.0, description="Ambient light level")
    captured_at: float = Field(..., description="Unix timestamp of the reading")


class MoodProfile(BaseModel):
    """A selectable ambient state."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique mood name")
    energy: float = Field(..., ge=0.0, le=1.0)
    valence: float = Field(..., ge=0.0, le=1.0)
    arousal: float = Field(..., ge=0.0, le=1.0)
    color: str = Field(..., description="Display color token")
    description: str = ""
    last_updated: float | None = Field(
        None, description="Unix timestamp of the last activation"
    )


class RangeCondition(BaseModel):
    """Inclusive numeric range."""

    model_config = ConfigDict(frozen=True)

    min: float
    max: float

    @model_validator(mode="after")
    def _check_bounds(self) -> "RangeCondition":
        if self.min > self.max:
            raise ValueError(f"min ({self.min}) must not exceed max ({self.max})")
        return self

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


class TimeWindow(BaseModel):
    """Wall-clock window given as zero-padded "HH:MM" strings.

    Matching is a lexical string comparison, so a window that crosses
    midnight (e.g. 22:00-02:00) never matches.
    """

    model_config = ConfigDict(frozen=True)

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def _check_clock(cls, value: str) -> str:
        if not _CLOCK_PATTERN.match(value):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return value

    def contains(self, clock: str) -> bool:
        return self.start <= clock <= self.end


class RuleConditions(BaseModel):
    """Optional predicates of a rule; an absent predicate always holds."""

    model_config = ConfigDict(frozen=True)

    occupancy: RangeCondition | None = None
    movement: RangeCondition | None = None
    audio: RangeCondition | None = None
    time_of_day: TimeWindow | None = None


class MoodRuleCreate(BaseModel):
    """Payload for creating a mood rule."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Human readable rule name")
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    target_mood: str = Field(..., description="Name of the mood to activate")
    priority: int = Field(5, description="Higher priority rules win")
    enabled: bool = True


class MoodRule(MoodRuleCreate):
    """A prioritized condition -> mood mapping."""

    id: str = Field(..., description="Unique rule identifier")


class MoodRuleUpdate(BaseModel):
    """Partial rule update; only fields that are set are applied."""

    name: str | None = Field(None, min_length=1)
    conditions: RuleConditions | None = None
    target_mood: str | None = None
    priority: int | None = None
    enabled: bool | None = None


class ConnectionStatus(BaseModel):
    """Display state of a named show-control output."""

    model_config = ConfigDict(frozen=True)

    name: str
    protocol: ProtocolKind
    state: ConnectionState
    address: str | None = Field(None, description="Display-only address")
    port: int | None = Field(None, description="Display-only port")
    last_ping: float | None = None


class MoodTransition(BaseModel):
    """One entry of the recent-activity window."""

    model_config = ConfigDict(frozen=True)

    mood: str
    previous: str
    source: TransitionSource
    rule_id: str | None = None
    rule_name: str | None = None
    held_for: float | None = Field(
        None, description="Seconds the previous mood was active"
    )
    timestamp: float


class AnalyticsSummary(BaseModel):
    """In-memory counters collected while the service runs."""

    ticks: int = 0
    peak_occupancy: int = 0
    mood_distribution: dict[str, int] = Field(default_factory=dict)
    rule_hits: dict[str, int] = Field(default_factory=dict)


class Preset(BaseModel):
    """A named bundle of rule templates for a venue type."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    rules: tuple[MoodRuleCreate, ...]


class DashboardState(BaseModel):
    """Full snapshot of the application state."""

    system_active: bool
    current_mood: MoodProfile
    moods: list[MoodProfile]
    environment: EnvironmentReading
    connections: list[ConnectionStatus]
    rules: list[MoodRule]
    recent_activity: list[MoodTransition]
    analytics: AnalyticsSummary
