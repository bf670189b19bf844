"""
Progress reporting for units of work.

A progress sink is any callable `(entity_key, stage_label, fraction)`.
Fractions are clamped to [0, 1]; the last report of a completed unit is 1.0.
"""

from typing import Callable, Dict, List, Optional
from datetime import datetime
import threading
import logging

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str, str, float], None]


def clamp_fraction(fraction: float) -> float:
    return min(max(fraction, 0.0), 1.0)


def discard_progress(entity_key: str, stage_label: str, fraction: float) -> None:
    """Sink for callers that do not track progress."""


class ProgressBoard:
    """
    Keeps the latest report per entity.
    
    Reports may arrive from worker threads, so access is serialized with a
    lock. Read by the API's progress endpoint.
    """
    
    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, Dict] = {}
    
    def __call__(self, entity_key: str, stage_label: str, fraction: float) -> None:
        fraction = clamp_fraction(fraction)
        with self._lock:
            self._entries[entity_key] = {
                "key": entity_key,
                "stage_label": stage_label,
                "fraction": fraction,
                "updated_at": datetime.utcnow(),
            }
        if fraction >= 1.0:
            logger.debug(f"{entity_key}: {stage_label} complete")
    
    def get(self, entity_key: str) -> Optional[Dict]:
        with self._lock:
            entry = self._entries.get(entity_key)
            return dict(entry) if entry else None
    
    def snapshot(self, include_finished: bool = True) -> List[Dict]:
        """All latest reports, most recently updated first."""
        with self._lock:
            entries = [dict(entry) for entry in self._entries.values()]
        if not include_finished:
            entries = [entry for entry in entries if entry["fraction"] < 1.0]
        return sorted(entries, key=lambda entry: entry["updated_at"], reverse=True)
    
    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
