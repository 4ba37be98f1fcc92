"""Per-request timers for nested operations (rendering, data provider calls, ...)."""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator


class EventTypes:
    RENDER = "render"
    DATA_PROVIDER = "dataProvider"
    TEMPLATE_PACK = "templatePack"


@dataclass
class _Timer:
    count: int = 0
    started: float = 0.0
    total_ms: float = 0.0


def _camel_case(key: str) -> str:
    head, *rest = key.split(".")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


class EventTimer:
    """Accumulates wall time per event type.

    Nested start/stop pairs of the same type only count the outermost span.
    """

    def __init__(self):
        self._timers: Dict[str, _Timer] = {}

    def start_timer(self, event_type: str) -> None:
        timer = self._timers.setdefault(event_type, _Timer())
        if timer.count == 0:
            timer.started = time.perf_counter()
        timer.count += 1

    def stop_timer(self, event_type: str) -> None:
        timer = self._timers.get(event_type)
        if timer is None or timer.count == 0:
            return
        timer.count -= 1
        if timer.count == 0:
            timer.total_ms += (time.perf_counter() - timer.started) * 1000

    @contextmanager
    def timed(self, event_type: str) -> Iterator[None]:
        self.start_timer(event_type)
        try:
            yield
        finally:
            self.stop_timer(event_type)

    def total(self, event_type: str) -> float:
        timer = self._timers.get(event_type)
        return timer.total_ms if timer else 0.0

    def add_timing_to_access_event(self, data: Dict[str, Any]) -> None:
        """Add ``<type>Overhead`` (milliseconds) for every timer that ran."""
        for key, timer in self._timers.items():
            if timer.total_ms > 0:
                data[_camel_case(key) + "Overhead"] = round(timer.total_ms, 3)

    def add_timing_to_metrics(self, values: Dict[str, float]) -> None:
        for key, timer in self._timers.items():
            if timer.total_ms > 0:
                values["timing." + key] = round(timer.total_ms, 3)
