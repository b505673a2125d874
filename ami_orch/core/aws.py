from __future__ import annotations

import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, NoRegionError

from ami_orch.core.models import QueueAddress
from ami_orch.errors import ProviderUnavailable

logger = logging.getLogger(__name__)


class AwsContext:
    """
    Region, account id and client factory shared by one orchestration run.

    Credentials come from the default boto3 chain (env, shared config,
    instance metadata); acquiring them is not this class's job.
    """

    def __init__(self, region: Optional[str] = None, session: Optional[Any] = None):
        try:
            self.session = session or boto3.session.Session(region_name=region)
        except BotoCoreError as e:
            raise ProviderUnavailable(f"Failed to load AWS configuration: {e}") from e

        self.region = region or self.session.region_name
        if not self.region:
            raise ProviderUnavailable(
                "No AWS region configured. Set AMI_REGION, AWS_REGION or a default region in ~/.aws/config"
            )
        self._account_id: Optional[str] = None

    def client(self, service: str) -> Any:
        """Create a boto3 client for ``service`` in this context's region."""
        try:
            return self.session.client(service, region_name=self.region)
        except (BotoCoreError, NoRegionError) as e:
            raise ProviderUnavailable(f"Failed to create {service} client: {e}") from e

    @property
    def account_id(self) -> str:
        """AWS account id of the caller, resolved once through STS."""
        if self._account_id is None:
            try:
                identity = self.client("sts").get_caller_identity()
            except NoCredentialsError as e:
                raise ProviderUnavailable(f"No AWS credentials found: {e}") from e
            except (BotoCoreError, ClientError) as e:
                raise ProviderUnavailable(f"Failed to get caller identity: {e}") from e
            self._account_id = identity["Account"]
            logger.info(f"AWS account id: {self._account_id}")
        return self._account_id

    def queue_address(self, queue_name: str) -> QueueAddress:
        return QueueAddress(region=self.region, account_id=self.account_id, name=queue_name)
