import json
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

# Headline figures of a run, in the order they are reported.
SUMMARY_COUNTERS = (
    "pages_fetched",
    "listings_unique",
    "listings_persisted",
    "soft_stops",
    "proxy_rotations",
    "applications_submitted",
    "applications_failed",
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _stamp() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


@dataclass
class RunMetrics:
    """
    Counters and events for one search/apply run.

    Crawler branches on worker threads share one instance, so every update
    takes the lock.
    """

    mode: str
    run_id: str = field(default_factory=_stamp)
    started_at: str = field(default_factory=_utc_now_iso)
    ended_at: Optional[str] = None
    duration_seconds: Optional[float] = None
    counters: Dict[str, int] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)
    _clock_start: float = field(default_factory=time.monotonic, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def inc(self, key: str, amount: int = 1) -> None:
        if not key:
            return
        with self._lock:
            self.counters[key] = self.counters.get(key, 0) + int(amount)

    def get(self, key: str) -> int:
        with self._lock:
            return self.counters.get(key, 0)

    def record_event(self, kind: str, **data: Any) -> None:
        """Append a timestamped event; None-valued fields are dropped."""
        if not kind:
            return
        event = {"t": _utc_now_iso(), "kind": kind}
        event.update({k: v for k, v in data.items() if v is not None})
        with self._lock:
            self.events.append(event)

    def finish(self) -> None:
        if self.ended_at is None:
            self.ended_at = _utc_now_iso()
            self.duration_seconds = max(time.monotonic() - self._clock_start, 0.0)

    def summary(self) -> Dict[str, int]:
        with self._lock:
            return {key: self.counters.get(key, 0) for key in SUMMARY_COUNTERS}

    def to_dict(self) -> Dict[str, Any]:
        elapsed = self.duration_seconds
        if elapsed is None:
            elapsed = max(time.monotonic() - self._clock_start, 0.0)
        with self._lock:
            counters = dict(self.counters)
            events = list(self.events)
        payload: Dict[str, Any] = {
            "mode": self.mode,
            "run_id": self.run_id,
            "started_at": self.started_at,
            "ended_at": self.ended_at or _utc_now_iso(),
            "duration_seconds": round(elapsed, 3),
            "summary": self.summary(),
            "counters": counters,
        }
        if events:
            payload["events"] = events
        return payload

    def write_json(self, *, template: str) -> Path:
        """Write the run to `template` with {timestamp} filled in."""
        path = Path((template or "output/run_metrics_{timestamp}.json").replace("{timestamp}", _stamp()))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
        return path
