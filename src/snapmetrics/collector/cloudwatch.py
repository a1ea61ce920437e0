"""
Latest-value lookups against CloudWatch GetMetricStatistics.

CloudWatch is eventually consistent: the newest minute is often missing
for several minutes after the fact. So instead of asking for "now" we ask
for a 10 minute window at 1 minute resolution and keep whichever
datapoint is newest.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from snapmetrics.errors import DecodeError, NoDataError, TransportError
from snapmetrics.metrics import Datapoint, Dimension

log = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "AWS/EC2"

# Wide enough to get at least one bucket back despite reporting lag
WINDOW_SECONDS = 600
PERIOD_SECONDS = 60
STATISTIC = "Average"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def latest_datapoint(datapoints: Iterable[Datapoint]) -> Datapoint:
    """Pick the datapoint with the newest timestamp in one pass.

    A datapoint replaces the current best when its timestamp is not
    earlier than the best's, so on exact ties the one seen last wins.
    Response order isn't guaranteed, so which of two tied points is
    returned is arbitrary across calls.
    """
    best: Optional[Datapoint] = None
    best_ts = _EPOCH

    for dp in datapoints:
        ts = _as_utc(dp.timestamp)
        if ts < best_ts:
            continue
        best_ts = ts
        best = dp

    if best is None:
        raise NoDataError("fetched no datapoints")
    return best


def _parse_datapoints(raw: List[dict], statistic: str) -> List[Datapoint]:
    points = []
    for item in raw:
        try:
            points.append(Datapoint(timestamp=item["Timestamp"], value=float(item[statistic])))
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"malformed datapoint {item!r}") from exc
    return points


def fetch_latest_average(
    client: Any,
    dimension: Dimension,
    metric_name: str,
    namespace: str = DEFAULT_NAMESPACE,
    now: Optional[datetime] = None,
) -> float:
    """Return the newest 1-minute Average of a metric from the last 10 minutes.

    `client` is a boto3 CloudWatch client. Transport and auth failures come
    back as TransportError, an empty window as NoDataError. No retries here;
    botocore's own retry config still applies underneath.
    """
    end = now or datetime.now(timezone.utc)
    start = end - timedelta(seconds=WINDOW_SECONDS)

    try:
        response = client.get_metric_statistics(
            Namespace=namespace,
            MetricName=metric_name,
            Dimensions=[dimension.to_request()],
            StartTime=start,
            EndTime=end,
            Period=PERIOD_SECONDS,
            Statistics=[STATISTIC],
        )
    except (ClientError, BotoCoreError) as exc:
        raise TransportError(f"GetMetricStatistics {namespace}/{metric_name} failed: {exc}") from exc

    datapoints = _parse_datapoints(response.get("Datapoints", []), STATISTIC)
    log.debug("%s/%s %s=%s: %d datapoints", namespace, metric_name,
              dimension.name, dimension.value, len(datapoints))

    return latest_datapoint(datapoints).value
