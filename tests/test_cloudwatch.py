"""Tests for picking the newest datapoint out of a CloudWatch window."""

import random

import pytest
from botocore.stub import ANY

from snapmetrics.collector.cloudwatch import (
    PERIOD_SECONDS,
    WINDOW_SECONDS,
    fetch_latest_average,
    latest_datapoint,
)
from snapmetrics.errors import DecodeError, NoDataError, TransportError
from snapmetrics.metrics import Datapoint, Dimension

from conftest import NOW, minutes_ago

INSTANCE = Dimension(name="InstanceId", value="i-0123456789abcdef0")


def _expected_params(metric_name):
    return {
        "Namespace": "AWS/EC2",
        "MetricName": metric_name,
        "Dimensions": [{"Name": "InstanceId", "Value": "i-0123456789abcdef0"}],
        "StartTime": ANY,
        "EndTime": ANY,
        "Period": 60,
        "Statistics": ["Average"],
    }


def test_latest_datapoint_ignores_input_order():
    points = [Datapoint(minutes_ago(m), float(m)) for m in range(2, 10)]
    for _ in range(5):
        random.shuffle(points)
        assert latest_datapoint(points).value == 2.0


def test_latest_datapoint_single_point():
    assert latest_datapoint([Datapoint(minutes_ago(7), 3.25)]).value == 3.25


def test_latest_datapoint_tie_goes_to_last_seen():
    points = [
        Datapoint(minutes_ago(3), 1.0),
        Datapoint(minutes_ago(1), 2.0),
        Datapoint(minutes_ago(1), 3.0),
    ]
    assert latest_datapoint(points).value == 3.0


def test_latest_datapoint_accepts_naive_utc_timestamps():
    points = [
        Datapoint(minutes_ago(1).replace(tzinfo=None), 5.0),
        Datapoint(minutes_ago(4), 4.0),
    ]
    assert latest_datapoint(points).value == 5.0


def test_latest_datapoint_empty_raises_no_data():
    with pytest.raises(NoDataError, match="fetched no datapoints"):
        latest_datapoint([])


def test_fetch_returns_newest_average(cloudwatch):
    client, stubber = cloudwatch
    stubber.add_response(
        "get_metric_statistics",
        {
            "Label": "CPUCreditBalance",
            "Datapoints": [
                {"Timestamp": minutes_ago(5), "Average": 140.0, "Unit": "Count"},
                {"Timestamp": minutes_ago(3), "Average": 142.5, "Unit": "Count"},
                {"Timestamp": minutes_ago(4), "Average": 141.0, "Unit": "Count"},
            ],
        },
        _expected_params("CPUCreditBalance"),
    )

    assert fetch_latest_average(client, INSTANCE, "CPUCreditBalance", now=NOW) == 142.5


def test_fetch_empty_window_is_no_data(cloudwatch):
    client, stubber = cloudwatch
    stubber.add_response(
        "get_metric_statistics",
        {"Label": "CPUCreditUsage", "Datapoints": []},
        _expected_params("CPUCreditUsage"),
    )

    with pytest.raises(NoDataError):
        fetch_latest_average(client, INSTANCE, "CPUCreditUsage", now=NOW)


def test_fetch_api_error_is_transport_error(cloudwatch):
    client, stubber = cloudwatch
    stubber.add_client_error(
        "get_metric_statistics",
        service_error_code="AccessDenied",
        service_message="not authorized",
        http_status_code=403,
    )

    with pytest.raises(TransportError) as excinfo:
        fetch_latest_average(client, INSTANCE, "CPUCreditUsage", now=NOW)
    assert not isinstance(excinfo.value, NoDataError)
    assert excinfo.value.__cause__ is not None


class _RecordingClient:
    def __init__(self, response):
        self.calls = []
        self._response = response

    def get_metric_statistics(self, **kwargs):
        self.calls.append(kwargs)
        return self._response


def test_fetch_queries_ten_minute_window_at_one_minute_period():
    client = _RecordingClient({"Datapoints": [{"Timestamp": minutes_ago(2), "Average": 1.0}]})
    fetch_latest_average(client, INSTANCE, "CPUCreditUsage", now=NOW)

    call = client.calls[0]
    assert call["EndTime"] == NOW
    assert (call["EndTime"] - call["StartTime"]).total_seconds() == WINDOW_SECONDS == 600
    assert call["Period"] == PERIOD_SECONDS == 60
    assert call["Statistics"] == ["Average"]


def test_fetch_malformed_datapoint_is_decode_error():
    client = _RecordingClient({"Datapoints": [{"Timestamp": minutes_ago(2), "Sum": 1.0}]})
    with pytest.raises(DecodeError):
        fetch_latest_average(client, INSTANCE, "CPUCreditUsage", now=NOW)
