"""Tests for orch/export.py."""

import json
from unittest.mock import MagicMock

import pytest

from ami_orch.errors import NotYetVisibleError, ProviderError
from ami_orch.io.iam import IAMClient
from ami_orch.io.s3 import S3Client
from ami_orch.orch.export import ExportDestination

from .conftest import ACCOUNT_ID, REGION, client_error


@pytest.fixture
def boto_s3() -> MagicMock:
    return MagicMock()


@pytest.fixture
def boto_iam() -> MagicMock:
    client = MagicMock()
    client.create_role.return_value = {"Role": {"RoleName": "vmimport"}}
    return client


@pytest.fixture
def destination(cfg, ctx, boto_s3, boto_iam, sleep) -> ExportDestination:
    return ExportDestination(
        cfg, ctx, S3Client(REGION, client=boto_s3), IAMClient(REGION, client=boto_iam), sleep=sleep,
    )


class TestExportDestination:
    def test_prepare_new_bucket(self, destination, boto_s3, boto_iam):
        destination.prepare("my-bucket")

        boto_s3.create_bucket.assert_called_once()
        boto_s3.head_bucket.assert_called_once_with(Bucket="my-bucket")
        assert boto_iam.create_role.call_args.kwargs["RoleName"] == "vmimport"

        kwargs = boto_iam.put_role_policy.call_args.kwargs
        assert kwargs["RoleName"] == "vmimport"
        assert kwargs["PolicyName"] == "vmimportPolicy"
        document = kwargs["PolicyDocument"]
        assert "arn:aws:s3:::my-bucket/*" in document
        assert f"arn:aws:iam::{ACCOUNT_ID}:role/vmimport" in document

    def test_trust_policy_external_id(self, destination, boto_iam):
        destination.ensure_vmimport_role("my-bucket")

        trust = json.loads(boto_iam.create_role.call_args.kwargs["AssumeRolePolicyDocument"])
        statement = trust["Statement"][0]
        assert statement["Principal"] == {"Service": "vmie.amazonaws.com"}
        assert statement["Condition"]["StringEquals"]["sts:Externalid"] == "vmimport"

    def test_bucket_already_owned(self, destination, boto_s3):
        boto_s3.create_bucket.side_effect = client_error("BucketAlreadyOwnedByYou", "CreateBucket")

        destination.ensure_bucket("my-bucket")

        boto_s3.head_bucket.assert_not_called()

    def test_bucket_taken_by_someone_else(self, destination, boto_s3):
        boto_s3.create_bucket.side_effect = client_error("BucketAlreadyExists", "CreateBucket")

        with pytest.raises(ProviderError):
            destination.ensure_bucket("my-bucket")

    def test_bucket_never_visible(self, destination, boto_s3, cfg, sleep):
        boto_s3.head_bucket.side_effect = client_error("404", "HeadBucket")

        with pytest.raises(NotYetVisibleError):
            destination.ensure_bucket("my-bucket")
        assert boto_s3.head_bucket.call_count == cfg.bucket_wait.attempts

    def test_role_already_exists(self, destination, boto_iam):
        boto_iam.create_role.side_effect = client_error("EntityAlreadyExists", "CreateRole")

        destination.ensure_vmimport_role("my-bucket")

        boto_iam.put_role_policy.assert_called_once()

    def test_cleanup(self, destination, boto_s3):
        boto_s3.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "exports/export-ami-1.raw"}]},
        ]

        assert destination.cleanup("my-bucket", "exports/") == 1
        boto_s3.delete_objects.assert_called_once_with(
            Bucket="my-bucket",
            Delete={"Objects": [{"Key": "exports/export-ami-1.raw"}], "Quiet": True},
        )

    def test_cleanup_nothing_there(self, destination, boto_s3):
        boto_s3.get_paginator.return_value.paginate.return_value = [{}]

        assert destination.cleanup("my-bucket", "exports/") == 0
        boto_s3.delete_objects.assert_not_called()

    def test_fetch(self, destination, boto_s3, tmp_path):
        path = destination.fetch("my-bucket", "exports/export-ami-1.raw", tmp_path / "disk.raw")

        assert path == tmp_path / "disk.raw"
        boto_s3.download_file.assert_called_once()
