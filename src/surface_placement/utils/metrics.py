"""
Metrics collection for the surface detection engine
Simple in-process counters, gauges and timing windows
"""

import time
import logging
from typing import Dict, Any
from datetime import datetime
from collections import defaultdict, deque

logger = logging.getLogger(__name__)


class DetectionMetrics:
    """Metrics collector for one detection engine"""

    def __init__(self):
        self.counters = defaultdict(int)
        self.gauges = defaultdict(float)
        self.tick_times = deque(maxlen=1000)
        self.visibility_times = deque(maxlen=1000)
        self.start_time = time.time()

    def increment_counter(self, name: str, value: int = 1):
        """Increment a counter metric"""
        self.counters[name] += value

    def set_gauge(self, name: str, value: float):
        """Set a gauge metric value"""
        self.gauges[name] = value

    def record_tick(self, processing_time: float):
        self.tick_times.append(processing_time)

    def record_visibility_pass(self, processing_time: float):
        self.visibility_times.append(processing_time)

    @staticmethod
    def _average(window) -> float:
        if not window:
            return 0.0
        return sum(window) / len(window)

    def get_metrics(self) -> Dict[str, Any]:
        """Get all metrics"""
        return {
            'counters': dict(self.counters),
            'gauges': dict(self.gauges),
            'timings': {
                'average_tick_seconds': self._average(self.tick_times),
                'max_tick_seconds': max(self.tick_times) if self.tick_times else 0.0,
                'average_visibility_seconds': self._average(self.visibility_times),
            },
            'uptime_seconds': time.time() - self.start_time,
            'timestamp': datetime.utcnow().isoformat()
        }

    def reset(self):
        self.counters.clear()
        self.gauges.clear()
        self.tick_times.clear()
        self.visibility_times.clear()
        logger.debug("Detection metrics reset")
