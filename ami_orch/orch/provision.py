from __future__ import annotations

import logging
import time
from typing import Optional

from ami_orch.config import OrchestrationConfig
from ami_orch.core.aws import AwsContext
from ami_orch.core.models import ProvisionedResourceSet
from ami_orch.core.retry import Sleeper, wait_until
from ami_orch.io.iam import IAMClient
from ami_orch.io.sqs import SQSClient
from ami_orch.orch import policies

logger = logging.getLogger(__name__)


class ResourceProvisioner:
    """
    Creates the transient resources a build run needs.

    Flow:
    1. Role with an EC2 trust policy + inline worker policy
    2. Instance profile bound to the role, awaited until IAM shows the binding
    3. Orders and Results queues, awaited until Results resolves by name

    Every resource is recorded on the ProvisionedResourceSet right after it
    is created. Nothing is rolled back here: on error the partial set is
    what the caller hands to TeardownReaper.
    """

    def __init__(
        self,
        cfg: OrchestrationConfig,
        ctx: AwsContext,
        iam: IAMClient,
        sqs: SQSClient,
        sleep: Sleeper = time.sleep,
    ):
        self.cfg = cfg
        self.ctx = ctx
        self.iam = iam
        self.sqs = sqs
        self.sleep = sleep

    def provision(self, resources: Optional[ProvisionedResourceSet] = None) -> ProvisionedResourceSet:
        """
        Provision role, instance profile and queues.

        Args:
            resources: Set to fill in place (default: a new one). Passing it
                in lets the caller keep a handle on partial progress.

        Raises:
            ProviderUnavailable: If the account id cannot be resolved
            ProviderError: If any create call fails
        """
        resources = resources if resources is not None else ProvisionedResourceSet()

        orders = self.ctx.queue_address(self.cfg.orders_queue_name)
        results = self.ctx.queue_address(self.cfg.results_queue_name)
        logger.info(
            "Provisioning build resources",
            extra={"region": self.ctx.region, "role": self.cfg.role_name, "run_id": self.cfg.run_id},
        )

        self._create_role(resources, policies.worker_role_policy(orders, results))
        self._create_instance_profile(resources)
        self._create_queues(resources)

        logger.info("Provisioning complete")
        return resources

    def grant_user_permissions(self) -> str:
        """
        Put the orchestrator's own inline policy on the calling IAM user.

        Only needed when the user has not been granted these permissions out
        of band. Waits a fixed delay for IAM to propagate the policy.

        Returns:
            The IAM user name the policy was attached to
        """
        user_name = self.iam.get_user_name()
        orders = self.ctx.queue_address(self.cfg.orders_queue_name)
        results = self.ctx.queue_address(self.cfg.results_queue_name)

        self.iam.put_user_policy(
            user_name,
            self.cfg.user_policy_name,
            policies.orchestrator_user_policy(orders, results),
        )
        logger.info(f"Policy {self.cfg.user_policy_name} added to IAM user {user_name}")
        logger.info("Waiting for policies to propagate...")
        self.sleep(self.cfg.user_policy_propagation_seconds)
        return user_name

    # ---- internals ----

    def _create_role(self, resources: ProvisionedResourceSet, policy_document: str) -> None:
        role_name = self.iam.create_role(self.cfg.role_name, policies.ec2_trust_policy())
        resources.role_name = role_name
        logger.info(f"Created IAM role: {role_name}")

        self.iam.put_role_policy(role_name, self.cfg.role_policy_name, policy_document)
        logger.info(f"Attached inline policy {self.cfg.role_policy_name} to role {role_name}")

    def _create_instance_profile(self, resources: ProvisionedResourceSet) -> None:
        profile_name = self.cfg.instance_profile_name
        role_name = resources.role_name

        self.iam.create_instance_profile(profile_name)
        resources.instance_profile_name = profile_name
        logger.info(f"Created instance profile: {profile_name}")

        self.iam.add_role_to_instance_profile(profile_name, role_name)
        resources.role_in_profile = True
        logger.info(f"Added role {role_name} to instance profile {profile_name}")

        wait_until(
            lambda: role_name in self.iam.get_instance_profile_roles(profile_name),
            self.cfg.profile_wait,
            f"instance profile {profile_name}",
            sleep=self.sleep,
        )

    def _create_queues(self, resources: ProvisionedResourceSet) -> None:
        resources.orders_queue_url = self.sqs.create_queue(self.cfg.orders_queue_name)
        logger.info(f"Created queue {self.ctx.queue_address(self.cfg.orders_queue_name).arn}")

        resources.results_queue_url = self.sqs.create_queue(self.cfg.results_queue_name)
        logger.info(f"Created queue {self.ctx.queue_address(self.cfg.results_queue_name).arn}")

        if wait_until(
            lambda: bool(self.sqs.get_queue_url(self.cfg.results_queue_name)),
            self.cfg.queue_wait,
            f"queue {self.cfg.results_queue_name}",
            sleep=self.sleep,
        ):
            logger.info("Queue is now available")
