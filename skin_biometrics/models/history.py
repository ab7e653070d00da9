from typing import Dict, Protocol

import pandas as pd

from .skin_metrics import SCORE_FIELDS, now_millis


class ScanHistory:
    """
    Chronologically ordered, append-only sequence of one subject's scans.

    ``append`` returns a new history; the instance it was called on is left
    untouched.
    """
    def __init__(self, entries=()):
        self._entries = tuple(sorted(entries, key=lambda m: m.timestamp))

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __getitem__(self, index):
        return self._entries[index]

    @property
    def latest(self):
        """Most recent scan, the anchor for stabilization."""
        return self._entries[-1] if self._entries else None

    def append(self, metrics):
        return ScanHistory(self._entries + (metrics,))

    def recent(self, window_ms, now=None, limit=None):
        """
        Entries no older than ``window_ms`` relative to ``now``.

        Entries stamped in the future are excluded.
        """
        now = now_millis() if now is None else now
        selected = [m for m in self._entries if 0 <= now - m.timestamp <= window_ms]
        if limit is not None:
            selected = selected[-limit:]
        return selected

    def to_frame(self):
        """Score history as a DataFrame indexed by scan time."""
        rows = [dict(m.scores(), timestamp=m.timestamp, skin_age=m.skin_age) for m in self._entries]
        df = pd.DataFrame(rows, columns=['timestamp', *SCORE_FIELDS, 'skin_age'])
        df['scanned_at'] = pd.to_datetime(df['timestamp'], unit='ms', utc=True)
        return df.set_index('scanned_at')


class ScanHistoryStore(Protocol):
    """Persistence collaborator: owns each subject's scan history."""

    def load(self, subject_id: str) -> ScanHistory:
        ...

    def append(self, subject_id: str, metrics) -> ScanHistory:
        ...


class InMemoryScanHistoryStore:
    """Process-local history store for the command line tool and tests."""

    def __init__(self):
        self._histories: Dict[str, ScanHistory] = {}

    def load(self, subject_id):
        return self._histories.get(subject_id, ScanHistory())

    def append(self, subject_id, metrics):
        history = self.load(subject_id).append(metrics)
        self._histories[subject_id] = history
        return history
