from __future__ import annotations

import base64
import logging
import shlex
from typing import Optional

from ami_orch.config import OrchestrationConfig
from ami_orch.core.models import BuildTag, ProvisionedResourceSet, QueueAddress
from ami_orch.io.ec2 import EC2Client

logger = logging.getLogger(__name__)

WORKER_HOME = "/home/ec2-user"

BOOTSTRAP_TEMPLATE = """#!/bin/bash
yum update -y
yum install -y wget tar
GO_VERSION={go_version}
wget https://golang.org/dl/go${{GO_VERSION}}.linux-amd64.tar.gz
tar -C /usr/local -xzf go${{GO_VERSION}}.linux-amd64.tar.gz
sudo bash -c 'echo "export PATH=$PATH:/usr/local/go/bin" >> /etc/profile'
sudo bash -c 'echo "export PATH=$PATH:/usr/local/go/bin" >> ~/.bashrc'
source /etc/profile
source ~/.bashrc
echo {image_name} > {home}/image-name
curl -o {home}/amibuilderd {worker_url}
chmod +x {home}/amibuilderd
sleep 10
{home}/amibuilderd -results-queue {results_arn} -orders-queue {orders_arn}
"""


def render_bootstrap_script(
    image_name: str,
    orders: QueueAddress,
    results: QueueAddress,
    cfg: OrchestrationConfig,
) -> str:
    """
    User-data script that installs and starts the build worker on boot.

    The worker finds its queues through the ARNs passed on its command line;
    they are derived from account id + region + queue name, not from the
    queue URLs returned at creation.
    """
    return BOOTSTRAP_TEMPLATE.format(
        go_version=cfg.go_version,
        image_name=shlex.quote(image_name),
        home=WORKER_HOME,
        worker_url=shlex.quote(cfg.worker_url),
        results_arn=shlex.quote(results.arn),
        orders_arn=shlex.quote(orders.arn),
    )


def encode_user_data(script: str) -> str:
    return base64.b64encode(script.encode("utf-8")).decode("ascii")


class InstanceLauncher:
    """Starts the build instance that runs the remote worker."""

    def __init__(self, cfg: OrchestrationConfig, ec2: EC2Client):
        self.cfg = cfg
        self.ec2 = ec2

    def launch(
        self,
        tag: BuildTag,
        instance_profile: str,
        orders: QueueAddress,
        results: QueueAddress,
        resources: Optional[ProvisionedResourceSet] = None,
    ) -> str:
        """
        Run the build instance and tag it.

        Args:
            tag: Tag applied to the instance; its key is the image name to produce
            instance_profile: Name of a profile that already has the worker role bound
            orders: Orders queue the worker consumes
            results: Results queue the worker publishes to
            resources: Set that receives the instance id as soon as the
                instance exists, before tagging

        Returns:
            Instance id

        Raises:
            ProviderError: If RunInstances or CreateTags fails
        """
        script = render_bootstrap_script(tag.key, orders, results, self.cfg)
        logger.debug(f"Bootstrap script:\n{script}")

        instance_id = self.ec2.run_instance(
            image_id=self.cfg.base_image_id,
            instance_type=self.cfg.instance_type,
            user_data=encode_user_data(script),
            instance_profile_name=instance_profile,
            key_name=self.cfg.key_name,
        )
        if resources is not None:
            resources.instance_id = instance_id
        logger.info(
            f"Launched build instance {instance_id}",
            extra={"instance_type": self.cfg.instance_type, "instance_profile": instance_profile},
        )

        self.ec2.tag(instance_id, {tag.key: tag.value})
        return instance_id
