"""
Typing Consistency Estimator

Turns the buffered flight times into a 0–100 consistency score: the lower
the dispersion of flight times, the higher the score. There is no stored
per-user profile; the buffer is compared against itself.
"""

import math
from typing import Sequence

from shared.models import TypingMetric

MIN_SAMPLES = 5
STD_DEV_DIVISOR = 2.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_consistency(metrics: Sequence[TypingMetric],
                        min_samples: int = MIN_SAMPLES) -> int:
    """
    Score typing consistency from flight time dispersion.

    Args:
        metrics: Buffered typing metrics.
        min_samples: Below this many metrics the baseline score of 100 is
                     returned (not enough data to judge).

    Returns:
        Integer consistency score in [0, 100].
    """
    if len(metrics) < min_samples:
        return 100

    flight_times = [m.flight_time for m in metrics]
    mean = sum(flight_times) / len(flight_times)
    variance = sum((f - mean) ** 2 for f in flight_times) / len(flight_times)
    std_dev = math.sqrt(variance)

    consistency = max(0.0, min(100.0, 100.0 - std_dev / STD_DEV_DIVISOR))
    return round_half_up(consistency)
