"""Tests for orch/provision.py."""

import json
from unittest.mock import MagicMock

import pytest

from ami_orch.core.models import ProvisionedResourceSet
from ami_orch.errors import ProviderError, ResourceNotFoundError
from ami_orch.io.iam import IAMClient
from ami_orch.io.sqs import SQSClient
from ami_orch.orch.provision import ResourceProvisioner

from .conftest import ACCOUNT_ID, REGION

ORDERS_URL = f"https://sqs.{REGION}.amazonaws.com/{ACCOUNT_ID}/Orders"
RESULTS_URL = f"https://sqs.{REGION}.amazonaws.com/{ACCOUNT_ID}/Results"


@pytest.fixture
def calls() -> MagicMock:
    """Parent mock recording iam and sqs calls in one ordered list."""
    parent = MagicMock()
    parent.iam = MagicMock(spec=IAMClient)
    parent.sqs = MagicMock(spec=SQSClient)

    parent.iam.create_role.return_value = "amibuilder-role"
    parent.iam.get_instance_profile_roles.return_value = ["amibuilder-role"]
    parent.sqs.create_queue.side_effect = [ORDERS_URL, RESULTS_URL]
    parent.sqs.get_queue_url.return_value = RESULTS_URL
    return parent


@pytest.fixture
def provisioner(cfg, ctx, calls, sleep) -> ResourceProvisioner:
    return ResourceProvisioner(cfg, ctx, calls.iam, calls.sqs, sleep=sleep)


class TestProvision:
    def test_creates_resources_in_order(self, provisioner, calls, sleep):
        resources = provisioner.provision()

        names = [c[0] for c in calls.mock_calls]
        assert names == [
            "iam.create_role",
            "iam.put_role_policy",
            "iam.create_instance_profile",
            "iam.add_role_to_instance_profile",
            "iam.get_instance_profile_roles",
            "sqs.create_queue",
            "sqs.create_queue",
            "sqs.get_queue_url",
        ]
        sleep.assert_not_called()

        assert resources == ProvisionedResourceSet(
            role_name="amibuilder-role",
            instance_profile_name="kraftkit-role",
            role_in_profile=True,
            orders_queue_url=ORDERS_URL,
            results_queue_url=RESULTS_URL,
        )

    def test_worker_policy_names_both_queues(self, provisioner, calls):
        provisioner.provision()

        role_name, policy_name, document = calls.iam.put_role_policy.call_args.args
        assert role_name == "amibuilder-role"
        assert policy_name == "amibuilder-policy"

        resources = [s["Resource"] for s in json.loads(document)["Statement"]]
        assert f"arn:aws:sqs:{REGION}:{ACCOUNT_ID}:Orders" in resources
        assert f"arn:aws:sqs:{REGION}:{ACCOUNT_ID}:Results" in resources

    def test_per_run_names(self, cfg, ctx, calls, sleep):
        calls.iam.create_role.return_value = "amibuilder-role-r1"
        calls.iam.get_instance_profile_roles.return_value = ["amibuilder-role-r1"]

        ResourceProvisioner(cfg.for_run("r1"), ctx, calls.iam, calls.sqs, sleep=sleep).provision()

        calls.iam.create_instance_profile.assert_called_once_with("kraftkit-role-r1")
        assert [c.args[0] for c in calls.sqs.create_queue.call_args_list] == ["Orders-r1", "Results-r1"]

    def test_profile_wait_polls_until_bound(self, provisioner, calls, sleep):
        calls.iam.get_instance_profile_roles.side_effect = [
            ResourceNotFoundError("not yet", code="NoSuchEntity"),
            [],
            ["amibuilder-role"],
        ]

        provisioner.provision()

        assert calls.iam.get_instance_profile_roles.call_count == 3
        assert sleep.call_count == 2

    def test_profile_wait_proceeds_when_exhausted(self, provisioner, calls, sleep, cfg):
        """A profile that never shows the role only logs a warning."""
        calls.iam.get_instance_profile_roles.side_effect = ResourceNotFoundError("not yet", code="NoSuchEntity")

        resources = provisioner.provision()

        assert calls.iam.get_instance_profile_roles.call_count == cfg.profile_wait.attempts
        assert sleep.call_count == cfg.profile_wait.attempts - 1
        assert resources.results_queue_url == RESULTS_URL

    def test_queue_wait_proceeds_when_exhausted(self, provisioner, calls, sleep, cfg):
        calls.sqs.get_queue_url.side_effect = ResourceNotFoundError("not yet", code="QueueDoesNotExist")

        resources = provisioner.provision()

        assert calls.sqs.get_queue_url.call_count == cfg.queue_wait.attempts
        assert resources.results_queue_url == RESULTS_URL

    def test_failure_leaves_partial_set(self, provisioner, calls):
        calls.sqs.create_queue.side_effect = ProviderError("boom", code="AccessDenied")
        resources = ProvisionedResourceSet()

        with pytest.raises(ProviderError):
            provisioner.provision(resources)

        assert resources.role_name == "amibuilder-role"
        assert resources.instance_profile_name == "kraftkit-role"
        assert resources.role_in_profile is True
        assert resources.orders_queue_url is None
        assert resources.results_queue_url is None

    def test_failure_before_anything_created(self, provisioner, calls):
        calls.iam.create_role.side_effect = ProviderError("denied", code="AccessDenied")
        resources = ProvisionedResourceSet()

        with pytest.raises(ProviderError):
            provisioner.provision(resources)

        assert resources.is_empty


class TestGrantUserPermissions:
    def test_puts_policy_and_waits(self, provisioner, calls, sleep, cfg):
        calls.iam.get_user_name.return_value = "alice"

        assert provisioner.grant_user_permissions() == "alice"

        user, policy_name, document = calls.iam.put_user_policy.call_args.args
        assert user == "alice"
        assert policy_name == "kraftkit-package-manager"
        assert json.loads(document)["Version"] == "2012-10-17"
        sleep.assert_called_once_with(cfg.user_policy_propagation_seconds)
