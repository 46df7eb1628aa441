"""Pytest configuration and fixtures."""

import textwrap

import boto3
import pytest

import cloudwait.poller.waiter as waiter_module
from cloudwait.poller import CancellationToken


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self):
        self.now = 0.0

    def monotonic(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeToken(CancellationToken):
    """Cancellation token whose waits advance a fake clock instead of sleeping."""

    def __init__(self, clock: FakeClock):
        super().__init__()
        self.clock = clock
        self.waits = []

    def wait(self, seconds: float) -> bool:
        self.waits.append(seconds)
        if self.cancelled:
            return True
        self.clock.advance(max(seconds, 0))
        return False


@pytest.fixture
def clock(monkeypatch):
    """Replace the poller's clock with a fake one."""
    fake = FakeClock()
    monkeypatch.setattr(waiter_module, "time", fake)
    return fake


@pytest.fixture
def token(clock):
    """Cancellation token that records waits on the fake clock."""
    return FakeToken(clock)


@pytest.fixture
def aws_env(monkeypatch):
    """Fake AWS credentials so no real account is ever touched."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.delenv("AWS_PROFILE", raising=False)


@pytest.fixture
def boto_session(aws_env):
    """boto3 session with fake credentials."""
    return boto3.Session(
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name="us-east-1",
    )


@pytest.fixture
def write_config(tmp_path):
    """Write a cloudwait.yaml into a temporary directory and return its path."""
    def _write(content: str, name: str = "cloudwait.yaml"):
        path = tmp_path / name
        path.write_text(textwrap.dedent(content))
        return path

    return _write


SAMPLE_CONFIG = """
project:
  name: monitoring
  region: us-east-1
  tags:
    team: platform

polling:
  timeout: 120
  initial_delay: 0
  poll_interval: 1

resources:
  - id: analytics
    type: AWS::Athena::Database
    properties:
      name: analytics
      bucket: query-results

  - id: ping
    type: AWS::Route53::HealthCheck
    depends_on: [analytics]
    tags:
      env: prod
    properties:
      type: https
      fqdn: example.com
      port: 443
      resource_path: /health
      failure_threshold: 3
      request_interval: 30
"""


@pytest.fixture
def sample_config_path(write_config):
    return write_config(SAMPLE_CONFIG)
