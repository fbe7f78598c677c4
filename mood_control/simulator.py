"""
Environment simulator.

Produces the next reading by nudging each field of the previous one by a
bounded uniform delta and clamping it back into range.
"""

import math
import random
import time

from .models import EnvironmentReading

MIN_OCCUPANCY = 1

# Width of the uniform delta window per field, centred on zero.
OCCUPANCY_SPREAD = 4
MOVEMENT_SPREAD = 0.2
AUDIO_SPREAD = 0.1
LIGHT_SPREAD = 0.05


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def perturb(
    reading: EnvironmentReading,
    rng: random.Random,
    now: float | None = None,
) -> EnvironmentReading:
    """
    Produce the next simulated reading from the previous one.

    Args:
        reading: The previous tick's reading
        rng: Random source used for the deltas
        now: Capture timestamp, defaults to the current time

    Returns:
        A new EnvironmentReading within the valid ranges
    """
    occupancy_delta = math.floor((rng.random() - 0.5) * OCCUPANCY_SPREAD)
    return EnvironmentReading(
        occupancy=max(MIN_OCCUPANCY, reading.occupancy + occupancy_delta),
        movement=_clamp_unit(reading.movement + (rng.random() - 0.5) * MOVEMENT_SPREAD),
        audio=_clamp_unit(reading.audio + (rng.random() - 0.5) * AUDIO_SPREAD),
        light=_clamp_unit(reading.light + (rng.random() - 0.5) * LIGHT_SPREAD),
        captured_at=time.time() if now is None else now,
    )
