"""
Rule evaluation for mood selection.

Rules are evaluated highest priority first; the first rule whose present
conditions all hold against the current reading wins. When nothing matches,
a low-probability random switch keeps the installation from going static.
"""

import random
from collections.abc import Iterable, Sequence
from datetime import datetime

from .models import EnvironmentReading, MoodProfile, MoodRule

DEFAULT_FALLBACK_PROBABILITY = 0.1


def clock_string(now: datetime) -> str:
    """Format a wall-clock time as zero-padded "HH:MM"."""
    return f"{now.hour:02d}:{now.minute:02d}"


def rule_matches(rule: MoodRule, reading: EnvironmentReading, now: datetime) -> bool:
    """Check every present condition of a rule against a reading."""
    conditions = rule.conditions

    if conditions.occupancy and not conditions.occupancy.contains(reading.occupancy):
        return False
    if conditions.movement and not conditions.movement.contains(reading.movement):
        return False
    if conditions.audio and not conditions.audio.contains(reading.audio):
        return False
    if conditions.time_of_day and not conditions.time_of_day.contains(
        clock_string(now)
    ):
        return False

    return True


def select_rule(
    rules: Iterable[MoodRule],
    reading: EnvironmentReading,
    now: datetime | None = None,
) -> MoodRule | None:
    """
    Select the winning rule for a reading.

    Args:
        rules: All rules, in insertion order
        reading: The current environment reading
        now: Wall-clock time for time-of-day conditions, defaults to now

    Returns:
        The highest-priority enabled rule that fully matches, or None
    """
    now = now or datetime.now()
    enabled = [rule for rule in rules if rule.enabled]

    # sorted() is stable with reverse=True, so equal priorities keep their order
    for rule in sorted(enabled, key=lambda r: r.priority, reverse=True):
        if rule_matches(rule, reading, now):
            return rule
    return None


def resolve_target(
    rule: MoodRule, catalog: Sequence[MoodProfile]
) -> MoodProfile | None:
    """Look up the mood a rule points at; dangling names resolve to None."""
    for mood in catalog:
        if mood.name == rule.target_mood:
            return mood
    return None


def pick_fallback_mood(
    catalog: Sequence[MoodProfile],
    current: MoodProfile,
    rng: random.Random,
    probability: float = DEFAULT_FALLBACK_PROBABILITY,
) -> MoodProfile | None:
    """
    Occasionally pick a random mood when no rule matched.

    Returns:
        A mood different from the current one, or None to keep the current mood
    """
    if not catalog or rng.random() >= probability:
        return None

    candidate = rng.choice(list(catalog))
    if candidate.name == current.name:
        return None
    return candidate
