from __future__ import annotations

import logging
import time
from typing import Callable

from ami_orch.config import OrchestrationConfig
from ami_orch.core.models import ProvisionedResourceSet, StepOutcome, TeardownReport
from ami_orch.core.retry import Sleeper, wait_until
from ami_orch.errors import ProviderError, ResourceNotFoundError
from ami_orch.io.ec2 import EC2Client
from ami_orch.io.iam import IAMClient
from ami_orch.io.sqs import SQSClient

logger = logging.getLogger(__name__)


class TeardownReaper:
    """
    Best-effort removal of everything in a ProvisionedResourceSet.

    Order:
    1. Remove the role from the instance profile
    2. Delete the role's inline policies, then wait until none are listed
    3. Delete the role, then the instance profile
    4. Delete the Orders and Results queues
    5. Terminate the instance

    Each step handles its own failure. A "does not exist" answer counts as
    already gone (skipped) and clears the field; any other error is logged,
    recorded as failed, and leaves the field set so a later call can retry.
    teardown() never raises.
    """

    def __init__(
        self,
        cfg: OrchestrationConfig,
        iam: IAMClient,
        sqs: SQSClient,
        ec2: EC2Client,
        sleep: Sleeper = time.sleep,
    ):
        self.cfg = cfg
        self.iam = iam
        self.sqs = sqs
        self.ec2 = ec2
        self.sleep = sleep

    def teardown(self, resources: ProvisionedResourceSet) -> TeardownReport:
        report = TeardownReport()
        logger.info("Tearing down build resources")

        self._detach_role(resources, report)
        self._delete_role_policies(resources, report)
        self._delete_role(resources, report)
        self._delete_instance_profile(resources, report)
        self._delete_queue(resources, report, "orders_queue_url", "delete_orders_queue")
        self._delete_queue(resources, report, "results_queue_url", "delete_results_queue")
        self._terminate_instance(resources, report)

        if report.ok:
            logger.info("Teardown complete")
        else:
            names = ", ".join(step.name for step in report.failed)
            logger.error(f"Teardown finished with failed steps: {names}")
        return report

    # ---- internals ----

    def _run_step(
        self,
        report: TeardownReport,
        name: str,
        action: Callable[[], None],
        on_gone: Callable[[], None],
    ) -> bool:
        """Run one step, record its outcome; on_gone runs after success or not-found."""
        try:
            action()
        except ResourceNotFoundError as e:
            logger.info(f"{name}: already gone ({e.code})")
            on_gone()
            report.record(name, StepOutcome.SKIPPED, "already gone")
            return True
        except ProviderError as e:
            logger.error(f"{name} failed: {e}")
            report.record(name, StepOutcome.FAILED, str(e))
            return False
        except Exception as e:
            logger.error(f"{name} failed unexpectedly: {e}", exc_info=True)
            report.record(name, StepOutcome.FAILED, str(e))
            return False

        on_gone()
        report.record(name, StepOutcome.SUCCEEDED)
        return True

    def _detach_role(self, resources: ProvisionedResourceSet, report: TeardownReport) -> None:
        name = "detach_role"
        if not (resources.role_in_profile and resources.role_name and resources.instance_profile_name):
            resources.role_in_profile = False
            report.record(name, StepOutcome.SKIPPED, "nothing to detach")
            return

        def clear() -> None:
            resources.role_in_profile = False

        self._run_step(
            report,
            name,
            lambda: self.iam.remove_role_from_instance_profile(
                resources.instance_profile_name, resources.role_name
            ),
            clear,
        )

    def _delete_role_policies(self, resources: ProvisionedResourceSet, report: TeardownReport) -> None:
        name = "delete_role_policies"
        role_name = resources.role_name
        if not role_name:
            report.record(name, StepOutcome.SKIPPED, "no role")
            return

        def delete_all() -> None:
            for policy_name in self.iam.list_role_policies(role_name):
                self.iam.delete_role_policy(role_name, policy_name)
                logger.info(f"Deleted inline policy {policy_name} from role {role_name}")

            wait_until(
                lambda: not self.iam.list_role_policies(role_name),
                self.cfg.policy_detach_wait,
                f"inline policies of role {role_name} to be deleted",
                sleep=self.sleep,
            )

        # A missing role means its policies are gone too; the role step will clear the field
        self._run_step(report, name, delete_all, lambda: None)

    def _delete_role(self, resources: ProvisionedResourceSet, report: TeardownReport) -> None:
        name = "delete_role"
        if not resources.role_name:
            report.record(name, StepOutcome.SKIPPED, "no role")
            return

        role_name = resources.role_name

        def clear() -> None:
            resources.role_name = None
            logger.info(f"Deleted IAM role {role_name}")

        self._run_step(report, name, lambda: self.iam.delete_role(role_name), clear)

    def _delete_instance_profile(self, resources: ProvisionedResourceSet, report: TeardownReport) -> None:
        name = "delete_instance_profile"
        if not resources.instance_profile_name:
            report.record(name, StepOutcome.SKIPPED, "no instance profile")
            return

        profile_name = resources.instance_profile_name

        def clear() -> None:
            resources.instance_profile_name = None
            logger.info(f"Deleted instance profile {profile_name}")

        self._run_step(report, name, lambda: self.iam.delete_instance_profile(profile_name), clear)

    def _delete_queue(
        self,
        resources: ProvisionedResourceSet,
        report: TeardownReport,
        field_name: str,
        name: str,
    ) -> None:
        queue_url = getattr(resources, field_name)
        if not queue_url:
            report.record(name, StepOutcome.SKIPPED, "no queue")
            return

        def clear() -> None:
            setattr(resources, field_name, None)
            logger.info(f"Deleted queue {queue_url}")

        self._run_step(report, name, lambda: self.sqs.delete_queue(queue_url), clear)

    def _terminate_instance(self, resources: ProvisionedResourceSet, report: TeardownReport) -> None:
        name = "terminate_instance"
        instance_id = resources.instance_id
        if not instance_id:
            report.record(name, StepOutcome.SKIPPED, "no instance")
            return

        def terminate() -> None:
            for change in self.ec2.terminate_instance(instance_id):
                logger.info(
                    f"Instance {change.get('InstanceId')}: "
                    f"{change.get('PreviousState', {}).get('Name')} -> {change.get('CurrentState', {}).get('Name')}"
                )

        def clear() -> None:
            resources.instance_id = None

        self._run_step(report, name, terminate, clear)
