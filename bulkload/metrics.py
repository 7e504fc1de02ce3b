"""
Metrics sinks for bulk import results
"""

import logging
from typing import Dict, Protocol, Union

logger = logging.getLogger(__name__)

ROWS_REJECTED_GAUGE = 'num.of.rows.rejected'
ROWS_INSERTED_GAUGE = 'num.of.rows.inserted'

Number = Union[int, float]


class MetricsSink(Protocol):
    def gauge(self, name: str, value: Number) -> None:
        ...


class InMemoryMetrics:
    """Keeps the last value of each gauge"""

    def __init__(self):
        self.gauges: Dict[str, Number] = {}

    def gauge(self, name: str, value: Number) -> None:
        self.gauges[name] = value


class LoggingMetrics:
    def gauge(self, name: str, value: Number) -> None:
        logger.info(f"Gauge {name} = {value}")
