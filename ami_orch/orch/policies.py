"""IAM policy documents for the build worker, the orchestrator user and VM import/export."""
from __future__ import annotations

import json
from typing import Any, Dict, List

from ami_orch.core.models import QueueAddress

VERSION = "2012-10-17"

WORKER_EC2_ACTIONS = [
    "ec2:CreateTags",
    "ec2:DescribeVolumes",
    "ec2:CreateVolume",
    "ec2:DeleteVolume",
    "ec2:AttachVolume",
    "ec2:DetachVolume",
    "ec2:DescribeSnapshots",
    "ec2:CreateSnapshot",
    "ec2:DescribeImages",
    "ec2:RegisterImage",
    "ec2:DescribeInstances",
]

QUEUE_WORKER_ACTIONS = [
    "sqs:GetQueueUrl",
    "sqs:ReceiveMessage",
    "sqs:DeleteMessage",
    "sqs:SendMessage",
]


def _document(statements: List[Dict[str, Any]]) -> str:
    return json.dumps({"Version": VERSION, "Statement": statements})


def ec2_trust_policy() -> str:
    """Only the EC2 service may assume the worker role."""
    return _document([{
        "Effect": "Allow",
        "Principal": {"Service": "ec2.amazonaws.com"},
        "Action": "sts:AssumeRole",
    }])


def worker_role_policy(orders: QueueAddress, results: QueueAddress) -> str:
    """Permissions the remote worker needs: image/volume/snapshot lifecycle and the two queues."""
    return _document([
        {
            "Sid": "EC2Resources",
            "Effect": "Allow",
            "Action": WORKER_EC2_ACTIONS,
            "Resource": "*",
        },
        {
            "Sid": "SQSOrders",
            "Effect": "Allow",
            "Action": QUEUE_WORKER_ACTIONS,
            "Resource": orders.arn,
        },
        {
            "Sid": "SQSResults",
            "Effect": "Allow",
            "Action": QUEUE_WORKER_ACTIONS,
            "Resource": results.arn,
        },
    ])


def orchestrator_user_policy(orders: QueueAddress, results: QueueAddress) -> str:
    """Permissions the calling user needs to run a whole build."""
    return _document([
        {
            "Sid": "EC2Resources",
            "Effect": "Allow",
            "Action": WORKER_EC2_ACTIONS + [
                "ec2:DeregisterImage",
                "ec2:DeleteSnapshot",
                "ec2:RunInstances",
                "ec2:TerminateInstances",
                "ec2:ExportImage",
                "ec2:DescribeExportImageTasks",
                "ssm:GetParameters",
                "iam:PassRole",
                "iam:CreateRole",
                "iam:DeleteRole",
                "iam:PutRolePolicy",
                "iam:ListRolePolicies",
                "iam:DeleteRolePolicy",
                "iam:CreateInstanceProfile",
                "iam:GetInstanceProfile",
                "iam:DeleteInstanceProfile",
                "iam:AddRoleToInstanceProfile",
                "iam:RemoveRoleFromInstanceProfile",
            ],
            "Resource": "*",
        },
        {
            "Sid": "SQSQueues",
            "Effect": "Allow",
            "Action": QUEUE_WORKER_ACTIONS,
            "Resource": [orders.arn, results.arn],
        },
        {
            "Sid": "SQSLifecycle",
            "Effect": "Allow",
            "Action": ["sqs:CreateQueue", "sqs:DeleteQueue"],
            "Resource": "*",
        },
    ])


VMIMPORT_ROLE_NAME = "vmimport"
VMIMPORT_POLICY_NAME = "vmimportPolicy"


def vmimport_trust_policy() -> str:
    return _document([{
        "Effect": "Allow",
        "Principal": {"Service": "vmie.amazonaws.com"},
        "Action": "sts:AssumeRole",
        "Condition": {"StringEquals": {"sts:Externalid": VMIMPORT_ROLE_NAME}},
    }])


def vmimport_role_policy(bucket: str, account_id: str) -> str:
    return _document([
        {
            "Effect": "Allow",
            "Action": [
                "s3:ListBucket",
                "s3:GetBucketLocation",
                "s3:GetObject",
                "s3:PutObject",
                "s3:GetBucketAcl",
            ],
            "Resource": [f"arn:aws:s3:::{bucket}", f"arn:aws:s3:::{bucket}/*"],
        },
        {
            "Effect": "Allow",
            "Action": [
                "ec2:ModifySnapshotAttribute",
                "ec2:CopySnapshot",
                "ec2:Describe*",
                "ec2:ImportSnapshot",
                "ec2:RegisterImage",
                "ec2:ExportImage",
            ],
            "Resource": "*",
        },
        {
            "Effect": "Allow",
            "Action": "iam:PassRole",
            "Resource": f"arn:aws:iam::{account_id}:role/{VMIMPORT_ROLE_NAME}",
        },
    ])
