from __future__ import annotations

import logging
import time
from pathlib import Path

from ami_orch.config import OrchestrationConfig
from ami_orch.core.aws import AwsContext
from ami_orch.core.retry import Sleeper, wait_until
from ami_orch.errors import ProviderError
from ami_orch.io.iam import IAMClient
from ami_orch.io.s3 import S3Client
from ami_orch.orch import policies

logger = logging.getLogger(__name__)

# Returned when the caller already owns the bucket
BUCKET_OWNED_CODES = ("BucketAlreadyOwnedByYou",)


class ExportDestination:
    """S3 bucket plus the vmimport service role that image export needs."""

    def __init__(
        self,
        cfg: OrchestrationConfig,
        ctx: AwsContext,
        s3: S3Client,
        iam: IAMClient,
        sleep: Sleeper = time.sleep,
    ):
        self.cfg = cfg
        self.ctx = ctx
        self.s3 = s3
        self.iam = iam
        self.sleep = sleep

    def prepare(self, bucket: str) -> None:
        """
        Make sure the bucket and the vmimport role exist.

        Raises:
            NotYetVisibleError: If the bucket does not show up in time
            ProviderError: On any other provider failure
        """
        self.ensure_bucket(bucket)
        self.ensure_vmimport_role(bucket)

    def ensure_bucket(self, bucket: str) -> None:
        try:
            self.s3.create_bucket(bucket)
            logger.info(f"Created bucket {bucket}. Waiting")
        except ProviderError as e:
            if e.code not in BUCKET_OWNED_CODES:
                raise
            logger.info(f"Bucket {bucket} already exists")
            return

        wait_until(
            lambda: self.s3.bucket_exists(bucket),
            self.cfg.bucket_wait,
            f"bucket {bucket}",
            sleep=self.sleep,
        )
        logger.info(f"Bucket {bucket} created successfully")

    def ensure_vmimport_role(self, bucket: str) -> None:
        role_name = policies.VMIMPORT_ROLE_NAME
        try:
            self.iam.create_role(role_name, policies.vmimport_trust_policy())
            logger.info(f"Role {role_name} created")
        except ProviderError as e:
            if e.code != "EntityAlreadyExists":
                raise
            logger.info(f"Role {role_name} already exists, updating its policy")

        self.iam.put_role_policy(
            role_name,
            policies.VMIMPORT_POLICY_NAME,
            policies.vmimport_role_policy(bucket, self.ctx.account_id),
        )
        logger.info(f"Policy {policies.VMIMPORT_POLICY_NAME} attached to role {role_name}")

    def fetch(self, bucket: str, key: str, local_path: Path) -> Path:
        """Download an exported disk image."""
        path = self.s3.download(bucket, key, local_path)
        logger.info(f"Downloaded s3://{bucket}/{key} to {path}")
        return path

    def cleanup(self, bucket: str, prefix: str) -> int:
        """Delete exported objects under prefix; returns how many were removed."""
        count = self.s3.delete_prefix(bucket, prefix)
        logger.info(f"Deleted {count} object(s) under s3://{bucket}/{prefix}")
        return count
