from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional


class WaitPolicy(str, Enum):
    """What a bounded wait does once its attempts are used up."""

    PROCEED = "proceed"  # log a warning and carry on
    FAIL = "fail"        # raise NotYetVisibleError


@dataclass(frozen=True)
class WaitSpec:
    attempts: int
    interval_seconds: float
    policy: WaitPolicy = WaitPolicy.PROCEED


DEFAULT_WORKER_URL = "https://raw.githubusercontent.com/ralucapelin/kraftkit/staging/amibuilder/amibuilderd"


@dataclass(frozen=True)
class OrchestrationConfig:
    aws_region: Optional[str] = None     # None: boto3 default chain

    registry: str = "index.unikraft.io"

    # Resource names. for_run() suffixes them so two runs never share queues.
    orders_queue_name: str = "Orders"
    results_queue_name: str = "Results"
    role_name: str = "amibuilder-role"
    instance_profile_name: str = "kraftkit-role"
    role_policy_name: str = "amibuilder-policy"
    user_policy_name: str = "kraftkit-package-manager"
    run_id: Optional[str] = None

    # Eventual-consistency waits
    profile_wait: WaitSpec = field(default_factory=lambda: WaitSpec(10, 3.0))
    queue_wait: WaitSpec = field(default_factory=lambda: WaitSpec(10, 3.0))
    policy_detach_wait: WaitSpec = field(default_factory=lambda: WaitSpec(10, 2.0))
    bucket_wait: WaitSpec = field(default_factory=lambda: WaitSpec(12, 5.0, WaitPolicy.FAIL))
    user_policy_propagation_seconds: float = 10.0

    # Result collection: total wait ~ result_max_polls * result_wait_seconds
    result_wait_seconds: int = 20
    result_max_polls: int = 15
    result_poll_sleep_seconds: float = 1.0
    require_correlation: bool = False
    # Visibility timeout given to results that belong to another order
    foreign_result_hold_seconds: int = 60

    # Build instance
    instance_type: str = "t3.micro"
    base_image_id: str = "ami-0f673487d7e5f89ca"
    key_name: Optional[str] = "ssh-pair-central"
    worker_url: str = DEFAULT_WORKER_URL
    go_version: str = "1.22.2"
    worker_boot_delay_seconds: float = 10.0
    tag_value: str = "my-ami"

    def for_run(self, run_id: Optional[str] = None) -> "OrchestrationConfig":
        """Return a copy whose queue, role and profile names are unique to one run."""
        run_id = run_id or uuid.uuid4().hex[:8]
        return replace(
            self,
            run_id=run_id,
            orders_queue_name=f"{self.orders_queue_name}-{run_id}",
            results_queue_name=f"{self.results_queue_name}-{run_id}",
            role_name=f"{self.role_name}-{run_id}",
            instance_profile_name=f"{self.instance_profile_name}-{run_id}",
        )

    @classmethod
    def from_env(cls, **overrides) -> "OrchestrationConfig":
        """
        Build a config from AMI_* environment variables.

        Explicit keyword overrides win over the environment; unset variables
        keep the dataclass defaults.
        """
        env = os.environ
        values = {}

        str_vars = {
            "AMI_REGION": "aws_region",
            "AMI_REGISTRY": "registry",
            "AMI_ORDERS_QUEUE": "orders_queue_name",
            "AMI_RESULTS_QUEUE": "results_queue_name",
            "AMI_ROLE_NAME": "role_name",
            "AMI_INSTANCE_PROFILE": "instance_profile_name",
            "AMI_INSTANCE_TYPE": "instance_type",
            "AMI_BASE_IMAGE_ID": "base_image_id",
            "AMI_WORKER_URL": "worker_url",
            "AMI_TAG_VALUE": "tag_value",
        }
        for var, name in str_vars.items():
            if env.get(var):
                values[name] = env[var]

        int_vars = {
            "AMI_RESULT_WAIT_SECONDS": "result_wait_seconds",
            "AMI_RESULT_MAX_POLLS": "result_max_polls",
            "AMI_FOREIGN_RESULT_HOLD": "foreign_result_hold_seconds",
        }
        for var, name in int_vars.items():
            if env.get(var):
                values[name] = int(env[var])

        # Set but empty means "no key pair"
        if "AMI_KEY_NAME" in env:
            values["key_name"] = env["AMI_KEY_NAME"] or None

        if env.get("AMI_WORKER_BOOT_DELAY"):
            values["worker_boot_delay_seconds"] = float(env["AMI_WORKER_BOOT_DELAY"])

        if env.get("AMI_REQUIRE_CORRELATION"):
            values["require_correlation"] = env["AMI_REQUIRE_CORRELATION"].lower() in ("1", "true", "yes")

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
