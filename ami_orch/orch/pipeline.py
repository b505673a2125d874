from __future__ import annotations

import logging
import time
from typing import Optional

from ami_orch.config import OrchestrationConfig
from ami_orch.core.aws import AwsContext
from ami_orch.core.models import BuildOrder, BuildOutcome, BuildTag, ProvisionedResourceSet, TeardownReport
from ami_orch.core.retry import Sleeper
from ami_orch.io.ec2 import EC2Client
from ami_orch.io.iam import IAMClient
from ami_orch.io.sqs import SQSClient
from ami_orch.orch.launcher import InstanceLauncher
from ami_orch.orch.protocol import BuildDispatcher, ResultCollector
from ami_orch.orch.provision import ResourceProvisioner
from ami_orch.orch.teardown import TeardownReaper

logger = logging.getLogger(__name__)


class BuildPipeline:
    """
    One AMI build run, start to finish.

    Flow:
    1. Provision role, instance profile and queues
    2. Launch the build instance (its bootstrap script starts the worker)
    3. Give the worker time to boot, then dispatch the build order
    4. Collect the AMI id from the Results queue
    5. Tear everything down, whatever happened in 1-4

    Runs are sequential; the pipeline owns its ProvisionedResourceSet.
    """

    def __init__(
        self,
        cfg: OrchestrationConfig,
        ctx: AwsContext,
        iam: IAMClient,
        sqs: SQSClient,
        ec2: EC2Client,
        sleep: Sleeper = time.sleep,
    ):
        self.cfg = cfg
        self.ctx = ctx
        self.sleep = sleep

        self.provisioner = ResourceProvisioner(cfg, ctx, iam, sqs, sleep=sleep)
        self.launcher = InstanceLauncher(cfg, ec2)
        self.dispatcher = BuildDispatcher(cfg, ctx, sqs)
        self.collector = ResultCollector(cfg, ctx, sqs, sleep=sleep)
        self.reaper = TeardownReaper(cfg, iam, sqs, ec2, sleep=sleep)

        self.resources = ProvisionedResourceSet()
        self.last_teardown: Optional[TeardownReport] = None

    @classmethod
    def from_context(cls, cfg: OrchestrationConfig, ctx: AwsContext) -> "BuildPipeline":
        """Build a pipeline with boto3 clients from the context's session."""
        return cls(
            cfg,
            ctx,
            IAMClient(ctx.region, client=ctx.client("iam")),
            SQSClient(ctx.region, client=ctx.client("sqs")),
            EC2Client(ctx.region, client=ctx.client("ec2")),
        )

    def run(self, image_ref: str, os: str, arch: str, grant_user_permissions: bool = False) -> BuildOutcome:
        """
        Build an AMI for image_ref on (os, arch).

        Returns:
            BuildOutcome with the AMI id and the teardown report

        Raises:
            Whatever provisioning, launch, dispatch or collection raised;
            teardown has already run by then and its report is on
            ``self.last_teardown``.
        """
        start_time = time.time()
        order: Optional[BuildOrder] = None
        ami_id: Optional[str] = None

        logger.info(
            f"Starting AMI build for {image_ref}",
            extra={"os": os, "arch": arch, "run_id": self.cfg.run_id},
        )

        try:
            if grant_user_permissions:
                self.provisioner.grant_user_permissions()

            self.provisioner.provision(self.resources)

            orders = self.ctx.queue_address(self.cfg.orders_queue_name)
            results = self.ctx.queue_address(self.cfg.results_queue_name)
            self.launcher.launch(
                BuildTag(key=image_ref, value=self.cfg.tag_value),
                self.resources.instance_profile_name,
                orders,
                results,
                resources=self.resources,
            )

            logger.info(f"Waiting {self.cfg.worker_boot_delay_seconds:.0f}s for the worker to boot")
            self.sleep(self.cfg.worker_boot_delay_seconds)

            self.dispatcher.dispatch(image_ref, os, arch)
            order = self.dispatcher.last_order

            logger.info("Building AMI...")
            ami_id = self.collector.collect(order.correlation_id if order else None)
        finally:
            self.last_teardown = self.reaper.teardown(self.resources)
            elapsed = time.time() - start_time
            logger.info(f"Build run took {elapsed:.1f}s", extra={"ami_id": ami_id})

        return BuildOutcome(
            ami_id=ami_id,
            order=order,
            resources=self.resources,
            teardown=self.last_teardown,
            elapsed_seconds=elapsed,
        )
