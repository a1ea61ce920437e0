"""Shared fixtures: stubbed CloudWatch client and a SQLite stand-in for pg stats."""

from datetime import datetime, timedelta, timezone

import boto3
import pytest
from botocore.stub import Stubber
from sqlalchemy import create_engine, text

from snapmetrics.collector.postgres import STAT_DATABASE_COLUMNS

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def minutes_ago(n: int) -> datetime:
    return NOW - timedelta(minutes=n)


@pytest.fixture
def cloudwatch():
    client = boto3.client(
        "cloudwatch",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


def _create_stat_tables(conn):
    cols = ", ".join(f"{c} INTEGER" for c in STAT_DATABASE_COLUMNS)
    conn.execute(text(f"CREATE TABLE pg_stat_database (datname TEXT, {cols})"))
    conn.execute(text("CREATE TABLE pg_stat_activity (pid INTEGER, state TEXT)"))


def insert_stat_row(conn, datname, values):
    names = ", ".join(STAT_DATABASE_COLUMNS)
    params = ", ".join(f":{c}" for c in STAT_DATABASE_COLUMNS)
    conn.execute(
        text(f"INSERT INTO pg_stat_database (datname, {names}) VALUES (:datname, {params})"),
        dict(zip(STAT_DATABASE_COLUMNS, values), datname=datname),
    )


def insert_backend(conn, pid, state):
    conn.execute(
        text("INSERT INTO pg_stat_activity (pid, state) VALUES (:pid, :state)"),
        {"pid": pid, "state": state},
    )


@pytest.fixture
def stats_engine(tmp_path):
    """A SQLite file with empty pg_stat_database / pg_stat_activity tables."""
    engine = create_engine(f"sqlite:///{tmp_path / 'stats.db'}")
    with engine.begin() as conn:
        _create_stat_tables(conn)
    yield engine
    engine.dispose()
