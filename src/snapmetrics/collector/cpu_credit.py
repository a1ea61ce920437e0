"""
Collector for EC2 burstable-instance CPU credits. Reads CPUCreditUsage
and CPUCreditBalance from CloudWatch for one instance.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError

from snapmetrics.collector.base import MetricsCollector
from snapmetrics.collector.cloudwatch import DEFAULT_NAMESPACE, fetch_latest_average
from snapmetrics.config import AwsCredentials, InstanceIdentity
from snapmetrics.errors import TransportError
from snapmetrics.graphs import GraphDefinition, GraphRegistry, MetricDefinition
from snapmetrics.metrics import Dimension, MetricSnapshot

log = logging.getLogger(__name__)

CPU_CREDIT_GRAPHS = GraphRegistry({
    "ec2.cpucredit": GraphDefinition(
        label="EC2 CPU Credit",
        unit="float",
        metrics=(
            MetricDefinition("usage", "Usage", diff=False),
            MetricDefinition("balance", "Balance", diff=False),
        ),
    ),
})

# snapshot key -> CloudWatch metric name, in fetch order
CREDIT_METRICS = (
    ("usage", "CPUCreditUsage"),
    ("balance", "CPUCreditBalance"),
)


class CPUCreditCollector(MetricsCollector):

    def __init__(
        self,
        identity: InstanceIdentity,
        credentials: Optional[AwsCredentials] = None,
        client: Any = None,
    ):
        self._identity = identity
        self._credentials = credentials or AwsCredentials()
        self._client = client
        self._dimension = Dimension(name="InstanceId", value=identity.instance_id)

    def _cloudwatch(self):
        """Set up the boto3 session once and reuse its client."""
        if self._client is None:
            try:
                session = boto3.session.Session(
                    region_name=self._identity.region,
                    **self._credentials.to_session_kwargs(),
                )
                self._client = session.client("cloudwatch")
            except (BotoCoreError, ValueError) as exc:
                # botocore raises ValueError for an unusable region, e.g. ""
                raise TransportError(f"could not create CloudWatch client: {exc}") from exc
        return self._client

    def collect(self) -> MetricSnapshot:
        """Fetch usage then balance. Either both come back or we raise."""
        client = self._cloudwatch()
        values = {}
        for key, metric_name in CREDIT_METRICS:
            values[key] = fetch_latest_average(
                client, self._dimension, metric_name, namespace=DEFAULT_NAMESPACE
            )
        log.debug("CPU credits for %s: %s", self._identity.instance_id, values)
        return MetricSnapshot(values=values)

    def graphs(self) -> GraphRegistry:
        return CPU_CREDIT_GRAPHS

    def name(self) -> str:
        return f"EC2 CPU credit ({self._identity.instance_id} in {self._identity.region})"
