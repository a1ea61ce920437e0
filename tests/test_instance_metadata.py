"""Tests for EC2 instance metadata discovery using httpx's mock transport."""

import httpx
import pytest

from snapmetrics.collector.instance_metadata import InstanceMetadataClient
from snapmetrics.errors import TransportError

META = {
    "/latest/meta-data/instance-id": "i-0fedcba9876543210",
    "/latest/meta-data/placement/region": "ap-northeast-1",
}


def _client(handler):
    return InstanceMetadataClient(client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_identity_with_imdsv2_token():
    seen_tokens = []

    def handler(request):
        if request.method == "PUT":
            assert request.headers["X-aws-ec2-metadata-token-ttl-seconds"] == "60"
            return httpx.Response(200, text="tok-123")
        seen_tokens.append(request.headers.get("X-aws-ec2-metadata-token"))
        return httpx.Response(200, text=META[request.url.path])

    imds = _client(handler)
    identity = imds.identity()
    imds.close()

    assert identity.instance_id == "i-0fedcba9876543210"
    assert identity.region == "ap-northeast-1"
    assert seen_tokens == ["tok-123", "tok-123"]


def test_falls_back_to_imdsv1_when_token_refused():
    def handler(request):
        if request.method == "PUT":
            return httpx.Response(403)
        assert "X-aws-ec2-metadata-token" not in request.headers
        return httpx.Response(200, text=META[request.url.path])

    identity = _client(handler).identity()
    assert identity.region == "ap-northeast-1"


def test_http_error_is_transport_error():
    def handler(request):
        if request.method == "PUT":
            return httpx.Response(200, text="tok")
        return httpx.Response(404)

    with pytest.raises(TransportError):
        _client(handler).identity()


def test_unreachable_service_is_transport_error():
    def handler(request):
        raise httpx.ConnectError("no route to host", request=request)

    with pytest.raises(TransportError):
        _client(handler).identity()


def test_empty_region_is_transport_error():
    def handler(request):
        if request.method == "PUT":
            return httpx.Response(200, text="tok")
        if request.url.path.endswith("placement/region"):
            return httpx.Response(200, text="")
        return httpx.Response(200, text=META[request.url.path])

    with pytest.raises(TransportError, match="incomplete identity"):
        _client(handler).identity()


def test_token_timeout_falls_back_to_imdsv1():
    def handler(request):
        if request.method == "PUT":
            raise httpx.ConnectTimeout("timed out", request=request)
        assert "X-aws-ec2-metadata-token" not in request.headers
        return httpx.Response(200, text=META[request.url.path])

    identity = _client(handler).identity()
    assert identity.instance_id == "i-0fedcba9876543210"
