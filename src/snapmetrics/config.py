"""
Runtime configuration, resolved once at startup and passed down
explicitly. Collectors never read the environment themselves.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import quote

log = logging.getLogger(__name__)

# Set by the agent when it wants graph definitions instead of values
META_ENV_VAR = "MACKEREL_AGENT_PLUGIN_META"


@dataclass(frozen=True)
class InstanceIdentity:
    region: str
    instance_id: str


@dataclass(frozen=True)
class AwsCredentials:
    access_key_id: str = ""
    secret_access_key: str = ""
    session_token: str = ""

    def to_session_kwargs(self) -> Dict[str, str]:
        """Only pass what was given, so boto3's default chain fills the rest."""
        kwargs = {}
        if self.access_key_id:
            kwargs["aws_access_key_id"] = self.access_key_id
        if self.secret_access_key:
            kwargs["aws_secret_access_key"] = self.secret_access_key
        if self.session_token:
            kwargs["aws_session_token"] = self.session_token
        return kwargs


def resolve_identity(
    region: Optional[str],
    instance_id: Optional[str],
    discover: Callable[[], InstanceIdentity],
) -> InstanceIdentity:
    """Explicit region and instance id win, but only as a pair.

    If either one is missing we ask the instance metadata service for both.
    """
    if region and instance_id:
        return InstanceIdentity(region=region, instance_id=instance_id)

    log.info("Region or instance id not given, discovering from instance metadata")
    return discover()


@dataclass(frozen=True)
class PostgresSettings:
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    database: str = "postgres"
    sslmode: str = "disable"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "PostgresSettings":
        """Build settings from libpq-style PG* variables, then apply overrides.

        Overrides set to None are ignored, which lets CLI options fall
        through to the environment.
        """
        env = os.environ if environ is None else environ
        values = dict(
            host=env.get("PGHOST") or cls.host,
            port=int(env.get("PGPORT") or cls.port),
            user=env.get("PGUSER") or cls.user,
            password=env.get("PGPASSWORD") or cls.password,
            database=env.get("PGDATABASE") or cls.database,
            sslmode=env.get("PGSSLMODE") or cls.sslmode,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def url(self) -> str:
        """SQLAlchemy URL for the psycopg2 driver."""
        auth = quote(self.user, safe="")
        if self.password:
            auth += ":" + quote(self.password, safe="")
        return (
            f"postgresql+psycopg2://{auth}@{self.host}:{self.port}/"
            f"{quote(self.database, safe='')}?sslmode={self.sslmode}"
        )


def meta_mode_requested(environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return bool(env.get(META_ENV_VAR))
