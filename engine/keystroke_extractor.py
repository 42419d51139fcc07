"""
Keystroke Feature Extractor Module

Transforms raw key press/release timestamps into per-keystroke timing
metrics (dwell time and flight time). Metrics are kept in a bounded
sliding buffer so the consistency estimate follows recent behavior only.
"""

from collections import deque
from typing import Deque, Dict, List, Optional
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from shared.models import EventType, KeystrokeEvent, TypingMetric


class KeystrokeExtractor:
    """
    Pairs key presses with their releases and maintains a FIFO buffer of
    the most recent TypingMetric records.
    """

    def __init__(self, buffer_size: int = 20):
        """
        Args:
            buffer_size: Number of most recent metrics to retain.
                         Oldest entries are evicted first.
        """
        self.buffer_size = buffer_size
        self._metrics: Deque[TypingMetric] = deque(maxlen=buffer_size)
        self._pending_down: Dict[str, float] = {}
        self._last_key_up: Optional[float] = None
        logger.debug(f"KeystrokeExtractor initialized with buffer of {buffer_size}")

    def on_key_down(self, key: str, t_down: float) -> None:
        """Remember when `key` went down."""
        self._pending_down[key] = t_down

    def on_key_up(self, key: str, t_up: float) -> Optional[TypingMetric]:
        """
        Complete the keystroke for `key`.

        Returns:
            The emitted TypingMetric, or None when no matching press was seen.
        """
        t_down = self._pending_down.pop(key, None)
        metric = None

        if t_down is not None:
            if self._last_key_up is not None:
                flight_time = t_down - self._last_key_up
            else:
                flight_time = 0.0

            # Overlapping keys on fast typing give negative intervals
            metric = TypingMetric(
                key=key,
                dwell_time=max(0.0, t_up - t_down),
                flight_time=max(0.0, flight_time),
                timestamp=t_up,
            )
            self._metrics.append(metric)
            logger.debug(f"Metric {key!r}: dwell={metric.dwell_time:.1f}ms "
                         f"flight={metric.flight_time:.1f}ms")
        else:
            logger.debug(f"Key-up for {key!r} without a pending key-down, skipped")

        self._last_key_up = t_up
        return metric

    def add_event(self, event: KeystrokeEvent) -> Optional[TypingMetric]:
        """
        Dispatch a raw event to the press/release handler.
        """
        if event.type == EventType.KEY_PRESS:
            self.on_key_down(event.key, event.timestamp)
            return None
        return self.on_key_up(event.key, event.timestamp)

    @property
    def metrics(self) -> List[TypingMetric]:
        """Buffered metrics, oldest first."""
        return list(self._metrics)

    def __len__(self) -> int:
        return len(self._metrics)

    def clear(self) -> None:
        """Drop all buffered metrics and pending presses."""
        self._metrics.clear()
        self._pending_down.clear()
        self._last_key_up = None
        logger.info("KeystrokeExtractor cleared")
