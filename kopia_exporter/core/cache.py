"""Time-to-live cache with single-flight refresh for metric acquisitions."""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Sequence, Tuple

from .errors import AcquisitionError
from .models import CacheEntry, MetricSnapshot

DEFAULT_CACHE_SECONDS = 30.0

# Produces a fresh MetricSnapshot for a command, given the previous one (if any).
AcquireFn = Callable[[Sequence[str], Optional[MetricSnapshot]], MetricSnapshot]


class _Slot:
    """Per-command cache state, guarded by its own condition."""

    def __init__(self):
        self.condition = threading.Condition()
        self.entry: Optional[CacheEntry] = None
        self.refreshing = False
        self.generation = 0
        self.last_error: Optional[AcquisitionError] = None


class AcquisitionCache:
    """Caches MetricSnapshots per command line.

    At most one acquisition runs per command at a time. Callers arriving
    while one is in flight wait for it and share its outcome, whether that
    is a new MetricSnapshot or an AcquisitionError. Different commands are
    refreshed independently.
    """

    def __init__(self, acquire: AcquireFn, cache_seconds: float = DEFAULT_CACHE_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize acquisition cache.

        Args:
            acquire: Runs one acquisition for a command.
            cache_seconds: How long a result is reused. Zero refreshes on
                every request, still sharing concurrent refreshes.
            clock: Monotonic time source in seconds.
        """
        if cache_seconds < 0:
            raise ValueError(f"cache_seconds must not be negative, got {cache_seconds}")
        self.acquire = acquire
        self.cache_seconds = cache_seconds
        self.clock = clock
        self._slots: Dict[Tuple[str, ...], _Slot] = {}
        self._slots_lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def get_metrics(self, command: Sequence[str]) -> MetricSnapshot:
        """Return fresh metrics for ``command``, acquiring them if needed.

        Raises:
            AcquisitionError: If the acquisition this call waited for failed.
        """
        key = tuple(command)
        slot = self._slot(key)

        with slot.condition:
            while True:
                if self._is_fresh(slot.entry):
                    self.logger.debug(f"Serving cached metrics for {' '.join(key)}")
                    return slot.entry.metrics

                if not slot.refreshing:
                    slot.refreshing = True
                    previous = slot.entry.metrics if slot.entry else None
                    break

                generation = slot.generation
                while slot.refreshing:
                    slot.condition.wait()
                if slot.generation != generation:
                    # Share the outcome of the refresh we waited for
                    if slot.last_error is not None:
                        raise slot.last_error
                    return slot.entry.metrics

        self.logger.info(f"Refreshing metrics for {' '.join(key)}")
        try:
            metrics = self.acquire(key, previous)
        except AcquisitionError as e:
            with slot.condition:
                slot.last_error = e
                slot.generation += 1
                slot.refreshing = False
                slot.condition.notify_all()
            raise
        except BaseException:
            with slot.condition:
                slot.refreshing = False
                slot.condition.notify_all()
            raise

        with slot.condition:
            slot.entry = CacheEntry(key=key, metrics=metrics, created_at=self.clock())
            slot.last_error = None
            slot.generation += 1
            slot.refreshing = False
            slot.condition.notify_all()
        return metrics

    def _slot(self, key: Tuple[str, ...]) -> _Slot:
        with self._slots_lock:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _Slot()
            return slot

    def _is_fresh(self, entry: Optional[CacheEntry]) -> bool:
        if entry is None or self.cache_seconds <= 0:
            return False
        return self.clock() - entry.created_at < self.cache_seconds
