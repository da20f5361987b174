"""
Metrics logging for reconciliation analysis.
Logs predicted ticks, corrections, replays, handoff conflicts and stale drops.
"""

import json
import os
import time

from common.config import METRICS_DIR


class MetricsLogger:
    """Collects and persists prediction/reconciliation metrics."""

    def __init__(self, log_dir: str = METRICS_DIR):
        self.log_dir = log_dir
        self.start_time = time.time()
        self.data = {
            'ticks': [],
            'corrections': [],
            'conflicts': [],
            'stale': [],
        }

    def _t(self) -> float:
        return round(time.time() - self.start_time, 4)

    def log_tick(self, tick_id: int, delta_time: int, position: int):
        """Log one predicted tick."""
        self.data['ticks'].append({
            't': self._t(), 'id': tick_id,
            'delta_time': delta_time, 'position': position
        })

    def log_correction(self, result):
        """Log a completed reconciliation (a ReplayResult)."""
        entry = result.to_dict()
        entry['t'] = self._t()
        entry['error'] = result.error
        entry['replay_length'] = len(result.replayed)
        self.data['corrections'].append(entry)

    def log_conflict(self, pending_id: int, incoming_id: int):
        self.data['conflicts'].append({
            't': self._t(), 'pending_id': pending_id, 'incoming_id': incoming_id
        })

    def log_stale(self, tick_id: int, next_id: int):
        self.data['stale'].append({
            't': self._t(), 'id': tick_id, 'next_id': next_id
        })

    def save(self, filename: str = 'metrics.json'):
        os.makedirs(self.log_dir, exist_ok=True)
        path = os.path.join(self.log_dir, filename)
        with open(path, 'w') as f:
            json.dump(self.data, f, indent=2)
        print(f"[METRICS] Saved to {path}")
        return path

    def get_summary(self) -> dict:
        """Compute summary statistics."""
        summary = {'ticks': len(self.data['ticks'])}

        errors = [c['error'] for c in self.data['corrections']]
        if errors:
            errors_sorted = sorted(errors)
            summary['corrections'] = len(errors)
            summary['error_mean'] = sum(errors) / len(errors)
            summary['error_max'] = max(errors)
            summary['error_p50'] = errors_sorted[len(errors_sorted) // 2]

        replays = [c['replay_length'] for c in self.data['corrections']]
        if replays:
            summary['replay_mean'] = sum(replays) / len(replays)
            summary['replay_max'] = max(replays)

        if self.data['conflicts']:
            summary['conflicts'] = len(self.data['conflicts'])
        if self.data['stale']:
            summary['stale'] = len(self.data['stale'])

        return summary
