"""
Discovers which EC2 instance we're running on via the instance metadata
service. Used when --region / --instance-id aren't both given.

Tries IMDSv2 (session token) first and drops back to plain v1 GETs when
the token endpoint refuses us.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx

from snapmetrics.config import InstanceIdentity
from snapmetrics.errors import TransportError

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://169.254.169.254"
TOKEN_TTL_SECONDS = 60


class InstanceMetadataClient:

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 2.0,
        client: Optional[httpx.Client] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._token: Optional[str] = None

    def _fetch_token(self) -> Optional[str]:
        try:
            response = self._client.put(
                f"{self._base_url}/latest/api/token",
                headers={"X-aws-ec2-metadata-token-ttl-seconds": str(TOKEN_TTL_SECONDS)},
            )
        except httpx.TimeoutException:
            # token hop limit of 1 inside containers; PUT never comes back
            log.debug("IMDSv2 token request timed out, using IMDSv1")
            return None
        except httpx.HTTPError as exc:
            raise TransportError(f"instance metadata service unreachable: {exc}") from exc

        if response.is_client_error:
            log.debug("IMDSv2 token refused (%d), using IMDSv1", response.status_code)
            return None
        if response.is_error:
            raise TransportError(f"metadata token request failed: HTTP {response.status_code}")
        return response.text.strip()

    def _headers(self) -> Dict[str, str]:
        if self._token is None:
            self._token = self._fetch_token() or ""
        if not self._token:
            return {}
        return {"X-aws-ec2-metadata-token": self._token}

    def get(self, path: str) -> str:
        """GET /latest/meta-data/<path> and return the body."""
        url = f"{self._base_url}/latest/meta-data/{path.lstrip('/')}"
        try:
            response = self._client.get(url, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(f"instance metadata {path} failed: {exc}") from exc
        return response.text.strip()

    def identity(self) -> InstanceIdentity:
        identity = InstanceIdentity(
            region=self.get("placement/region"),
            instance_id=self.get("instance-id"),
        )
        if not identity.region or not identity.instance_id:
            raise TransportError(f"instance metadata returned incomplete identity {identity!r}")
        log.info("Discovered instance %s in %s", identity.instance_id, identity.region)
        return identity

    def close(self):
        self._client.close()
