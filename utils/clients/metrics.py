"""
Metrics sinks for the screenshot worker.

Emission is fire-and-forget: a failure to publish a data point is logged
and never interrupts the job that produced it.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

import boto3

from config import settings

logger = logging.getLogger(__name__)


class BaseMetrics:
    async def put(self, name: str, value: float, unit: str = "Count"):
        try:
            await self._emit(name, value, unit)
        except Exception as e:
            logger.warning(f"⚠️  Failed to emit metric {name}: {e}")

    async def _emit(self, name: str, value: float, unit: str):
        raise NotImplementedError

    async def increment(self, name: str):
        await self.put(name, 1, "Count")

    async def timing(self, name: str, milliseconds: float):
        await self.put(name, milliseconds, "Milliseconds")


class LoggingMetrics(BaseMetrics):
    """Writes metrics to the log stream (local runs)"""

    def __init__(self):
        self.totals: Dict[str, float] = {}

    async def _emit(self, name: str, value: float, unit: str):
        self.totals[name] = self.totals.get(name, 0) + value
        logger.info(f"📈 {name}={value} {unit}")


class CloudWatchMetrics(BaseMetrics):
    def __init__(self, namespace: Optional[str] = None, client=None):
        self.namespace = namespace or settings.METRICS_NAMESPACE
        self._cloudwatch = client or boto3.client("cloudwatch", region_name=settings.AWS_REGION)

    async def _emit(self, name: str, value: float, unit: str):
        await asyncio.to_thread(
            self._cloudwatch.put_metric_data,
            Namespace=self.namespace,
            MetricData=[
                {
                    "MetricName": name,
                    "Value": value,
                    "Unit": unit,
                    "Timestamp": datetime.now(timezone.utc),
                }
            ],
        )


def create_metrics(backend: Optional[str] = None) -> BaseMetrics:
    backend = (backend or settings.METRICS_BACKEND).lower()
    if backend == "cloudwatch":
        return CloudWatchMetrics()
    return LoggingMetrics()
