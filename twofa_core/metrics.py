"""
Verification Metrics
====================
In-memory counters for challenge issuance and verification outcomes.
"""

import threading
from typing import Dict, Optional


class MetricNames:
    """Standard metric names."""
    CHALLENGES_ISSUED = "twofa_challenges_issued"
    VERIFICATIONS = "twofa_verifications"
    CAS_CONFLICTS = "twofa_cas_conflicts"
    NOTIFICATIONS = "twofa_notifications"
    RECORDS_PURGED = "twofa_records_purged"


class SimpleMetrics:
    """
    Simple in-memory metrics collector.

    For production scraping, export with ``export_prometheus``.
    """

    def __init__(self, service: str = "twofa"):
        self.service = service
        self._counters: Dict[str, int] = {}
        self._lock = threading.Lock()

    def increment(self, name: str, value: int = 1, labels: Optional[Dict] = None) -> None:
        """Increment a counter."""
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def get_counter(self, name: str, labels: Optional[Dict] = None) -> int:
        """Get counter value."""
        return self._counters.get(self._make_key(name, labels), 0)

    def _make_key(self, name: str, labels: Optional[Dict] = None) -> str:
        """Create a unique key for a metric."""
        if labels:
            label_str = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
            return f"{name}{{{label_str}}}"
        return name

    def export_prometheus(self) -> str:
        """Export counters in Prometheus text format."""
        lines = []
        base_labels = f'service="{self.service}"'

        with self._lock:
            counters = dict(self._counters)

        for key, value in sorted(counters.items()):
            name = key.split('{')[0]
            extra_labels = key[len(name) + 1:-1] if '{' in key else ''
            full_labels = f'{{{base_labels}{"," + extra_labels if extra_labels else ""}}}'
            lines.append(f'{name}_total{full_labels} {value}')

        return '\n'.join(lines)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
