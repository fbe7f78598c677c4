"""
Built-in moods, outputs, rules and presets.

Functions return fresh copies so every store starts from pristine defaults.
"""

import time

from .models import (
    ConnectionState,
    ConnectionStatus,
    EnvironmentReading,
    MoodProfile,
    MoodRule,
    MoodRuleCreate,
    Preset,
    ProtocolKind,
    RangeCondition,
    RuleConditions,
    TimeWindow,
)

INITIAL_MOOD = "Contemplative"


def default_moods() -> list[MoodProfile]:
    now = time.time()
    return [
        MoodProfile(
            name="Energetic",
            energy=0.9,
            valence=0.8,
            arousal=0.9,
            color="#EF4444",
            description="High energy and excitement",
            last_updated=now,
        ),
        MoodProfile(
            name="Contemplative",
            energy=0.3,
            valence=0.6,
            arousal=0.2,
            color="#8B5CF6",
            description="Quiet reflection and thoughtful observation",
            last_updated=now,
        ),
        MoodProfile(
            name="Social",
            energy=0.7,
            valence=0.9,
            arousal=0.6,
            color="#10B981",
            description="Interactive and collaborative atmosphere",
            last_updated=now,
        ),
        MoodProfile(
            name="Mysterious",
            energy=0.5,
            valence=0.3,
            arousal=0.7,
            color="#6366F1",
            description="Intriguing and thought-provoking",
            last_updated=now,
        ),
        MoodProfile(
            name="Peaceful",
            energy=0.2,
            valence=0.8,
            arousal=0.1,
            color="#06B6D4",
            description="Calm and serene environment",
            last_updated=now,
        ),
    ]


def default_environment() -> EnvironmentReading:
    return EnvironmentReading(
        occupancy=12, movement=0.4, audio=0.25, light=0.7, captured_at=time.time()
    )


def default_connections() -> list[ConnectionStatus]:
    now = time.time()
    return [
        ConnectionStatus(
            name="QLab",
            protocol=ProtocolKind.OSC,
            state=ConnectionState.CONNECTED,
            address="192.168.1.100",
            port=53000,
            last_ping=now,
        ),
        ConnectionStatus(
            name="Resolume Arena",
            protocol=ProtocolKind.OSC,
            state=ConnectionState.CONNECTED,
            address="192.168.1.101",
            port=7000,
            last_ping=now,
        ),
        ConnectionStatus(
            name="Chamsys MagicQ",
            protocol=ProtocolKind.ARTNET,
            state=ConnectionState.DISCONNECTED,
            address="192.168.1.102",
            last_ping=now - 30,
        ),
    ]


def default_rules() -> list[MoodRule]:
    return [
        MoodRule(
            id="1",
            name="High Energy Crowds",
            conditions=RuleConditions(
                occupancy=RangeCondition(min=20, max=100),
                movement=RangeCondition(min=0.7, max=1.0),
            ),
            target_mood="Energetic",
            priority=10,
        ),
        MoodRule(
            id="2",
            name="Quiet Hours",
            conditions=RuleConditions(
                occupancy=RangeCondition(min=1, max=5),
                time_of_day=TimeWindow(start="09:00", end="11:00"),
            ),
            target_mood="Peaceful",
            priority=8,
        ),
        MoodRule(
            id="3",
            name="Social Gatherings",
            conditions=RuleConditions(
                occupancy=RangeCondition(min=10, max=25),
                audio=RangeCondition(min=0.4, max=0.8),
            ),
            target_mood="Social",
            priority=7,
        ),
    ]


PRESETS: dict[str, Preset] = {
    "gallery": Preset(
        name="Art Gallery",
        description="Sophisticated atmosphere for art appreciation",
        rules=[
            MoodRuleCreate(
                name="Quiet Contemplation",
                conditions=RuleConditions(occupancy=RangeCondition(min=1, max=8)),
                target_mood="Contemplative",
                priority=8,
            ),
            MoodRuleCreate(
                name="Opening Night Energy",
                conditions=RuleConditions(
                    occupancy=RangeCondition(min=20, max=100),
                    audio=RangeCondition(min=0.5, max=0.8),
                ),
                target_mood="Social",
                priority=9,
            ),
        ],
    ),
    "museum": Preset(
        name="Museum Experience",
        description="Educational and engaging environment",
        rules=[
            MoodRuleCreate(
                name="Learning Mode",
                conditions=RuleConditions(
                    occupancy=RangeCondition(min=5, max=15),
                    time_of_day=TimeWindow(start="10:00", end="16:00"),
                ),
                target_mood="Contemplative",
                priority=7,
            ),
            MoodRuleCreate(
                name="Interactive Discovery",
                conditions=RuleConditions(movement=RangeCondition(min=0.6, max=1.0)),
                target_mood="Energetic",
                priority=8,
            ),
        ],
    ),
    "corporate": Preset(
        name="Corporate Event",
        description="Professional networking and presentations",
        rules=[
            MoodRuleCreate(
                name="Networking Energy",
                conditions=RuleConditions(
                    occupancy=RangeCondition(min=15, max=50),
                    audio=RangeCondition(min=0.4, max=0.7),
                ),
                target_mood="Social",
                priority=9,
            ),
            MoodRuleCreate(
                name="Presentation Focus",
                conditions=RuleConditions(
                    movement=RangeCondition(min=0, max=0.3),
                    audio=RangeCondition(min=0, max=0.3),
                ),
                target_mood="Contemplative",
                priority=8,
            ),
        ],
    ),
    "festival": Preset(
        name="Festival/Event",
        description="High energy crowd entertainment",
        rules=[
            MoodRuleCreate(
                name="Festival Energy",
                conditions=RuleConditions(
                    occupancy=RangeCondition(min=30, max=200),
                    movement=RangeCondition(min=0.7, max=1.0),
                ),
                target_mood="Energetic",
                priority=10,
            ),
            # Crosses midnight, so the lexical window check never matches it.
            MoodRuleCreate(
                name="Late Night Mysterious",
                conditions=RuleConditions(
                    time_of_day=TimeWindow(start="22:00", end="02:00")
                ),
                target_mood="Mysterious",
                priority=7,
            ),
        ],
    ),
}
