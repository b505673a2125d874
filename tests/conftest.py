"""Shared fixtures: fake AWS context, default config, ClientError factory."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from ami_orch.config import OrchestrationConfig
from ami_orch.core.aws import AwsContext

REGION = "eu-central-1"
ACCOUNT_ID = "123456789012"


def client_error(code: str, operation: str = "Operation", message: str = "error") -> ClientError:
    """Build a botocore ClientError the way the provider returns one."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@pytest.fixture
def session() -> MagicMock:
    """boto3 session stand-in whose STS client reports a fixed account id."""
    session = MagicMock()
    session.region_name = REGION
    session.client.return_value.get_caller_identity.return_value = {"Account": ACCOUNT_ID}
    return session


@pytest.fixture
def ctx(session) -> AwsContext:
    return AwsContext(region=REGION, session=session)


@pytest.fixture
def cfg() -> OrchestrationConfig:
    return OrchestrationConfig(aws_region=REGION)


@pytest.fixture
def sleep() -> MagicMock:
    """Injected sleeper so waits never block."""
    return MagicMock()
