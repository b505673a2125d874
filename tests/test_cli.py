"""CLI tests.

AWS access is replaced at the seams the commands use (context, image
manager, pipeline factory), so these run without credentials.
"""

import json
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from ami_orch import __version__
from ami_orch.cli.main import cli
from ami_orch.core.models import (
    BuildOrder,
    BuildOutcome,
    ExportTaskStatus,
    ImageRecord,
    ProvisionedResourceSet,
    StepOutcome,
    TeardownReport,
)
from ami_orch.errors import NotFoundError

runner = CliRunner()


@pytest.fixture
def fake_ctx() -> MagicMock:
    ctx = MagicMock()
    ctx.region = "eu-central-1"
    ctx.client.return_value.get_paginator.return_value.paginate.return_value = [{"PolicyNames": []}]
    return ctx


@pytest.fixture
def manager(monkeypatch, fake_ctx) -> MagicMock:
    import ami_orch.cli.images as images_cli

    manager = MagicMock()
    monkeypatch.setattr(images_cli, "get_aws_context", lambda region: fake_ctx)
    monkeypatch.setattr(images_cli, "get_image_manager", lambda ctx: manager)
    return manager


@pytest.fixture
def pipeline(monkeypatch, fake_ctx) -> MagicMock:
    import ami_orch.cli.build as build_cli
    from ami_orch.orch.pipeline import BuildPipeline

    pipeline = MagicMock()
    pipeline.last_teardown = None
    pipeline.configs = []

    def from_context(cfg, ctx):
        pipeline.configs.append(cfg)
        return pipeline

    monkeypatch.setattr(build_cli, "get_aws_context", lambda region: fake_ctx)
    monkeypatch.setattr(BuildPipeline, "from_context", from_context)
    return pipeline


class TestCLIHelp:
    def test_help(self):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("build", "images", "teardown", "platforms"):
            assert command in result.output

    def test_version(self):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestPlatformsCommand:
    def test_parse(self):
        result = runner.invoke(cli, ["platforms", "parse", "OS: linux, Architecture: x86_64"])

        assert result.exit_code == 0
        assert "os=linux arch=x86_64" in result.output

    def test_parse_invalid(self):
        result = runner.invoke(cli, ["platforms", "parse", "linux/x86_64"])

        assert result.exit_code == 1
        assert "invalid platform format" in result.output

    @pytest.fixture
    def index_file(self, tmp_path):
        path = tmp_path / "index.json"
        path.write_text(json.dumps({"manifests": [
            {"digest": "sha256:aaa", "platform": {"os": "linux", "architecture": "x86_64", "os.features": ["kvm"]}},
            {"digest": "sha256:bbb", "platform": {"os": "linux", "architecture": "arm64"}},
        ]}))
        return path

    def test_list(self, index_file):
        result = runner.invoke(cli, ["platforms", "list", str(index_file), "--ref", "org/app:latest"])

        assert result.exit_code == 0, result.output
        assert "OS: linux, Architecture: x86_64" in result.output
        assert "OS: linux, Architecture: arm64" in result.output

    def test_list_with_feature(self, index_file):
        result = runner.invoke(cli, ["platforms", "list", str(index_file), "--ref", "org/app", "--feature", "kvm"])

        assert result.exit_code == 0, result.output
        assert "x86_64" in result.output
        assert "arm64" not in result.output

    def test_list_nothing_matches(self, index_file):
        result = runner.invoke(cli, ["platforms", "list", str(index_file), "--ref", "org/app", "--os", "qemu"])

        assert result.exit_code == 1
        assert "No compatible platforms" in result.output

    def test_list_not_an_index(self, tmp_path):
        path = tmp_path / "index.json"
        path.write_text("[]")

        result = runner.invoke(cli, ["platforms", "list", str(path), "--ref", "org/app"])

        assert result.exit_code == 1
        assert "no manifests list" in result.output


class TestBuildCommand:
    def test_requires_platform(self, pipeline):
        result = runner.invoke(cli, ["build", "org/app"])

        assert result.exit_code == 1
        assert "Must specify --os and --arch" in result.output
        pipeline.run.assert_not_called()

    def test_platform_and_os_conflict(self, pipeline):
        result = runner.invoke(cli, ["build", "org/app", "--os", "linux", "--platform", "OS: linux, Architecture: x86_64"])

        assert result.exit_code == 1
        assert "Cannot specify both" in result.output

    def test_run_id_and_shared_names_conflict(self, pipeline):
        result = runner.invoke(cli, ["build", "org/app", "--os", "linux", "--arch", "x86_64", "--run-id", "r1", "--shared-names"])

        assert result.exit_code == 1

    def test_success(self, pipeline):
        pipeline.run.return_value = BuildOutcome(
            ami_id="ami-0new",
            order=BuildOrder(image="index.unikraft.io/org/app", os="linux", arch="x86_64"),
            resources=ProvisionedResourceSet(),
            teardown=TeardownReport(),
            elapsed_seconds=42.0,
        )

        result = runner.invoke(cli, ["build", "org/app", "--platform", "OS: linux, Architecture: x86_64", "--run-id", "r1"])

        assert result.exit_code == 0, result.output
        assert "ami-0new" in result.output
        pipeline.run.assert_called_once_with("org/app", "linux", "x86_64", grant_user_permissions=False)
        assert pipeline.configs[0].orders_queue_name == "Orders-r1"

    def test_shared_names(self, pipeline):
        pipeline.run.return_value = BuildOutcome("ami-0new", None, ProvisionedResourceSet(), TeardownReport(), 1.0)

        result = runner.invoke(cli, ["build", "org/app", "--os", "linux", "--arch", "x86_64", "--shared-names"])

        assert result.exit_code == 0, result.output
        assert pipeline.configs[0].orders_queue_name == "Orders"
        assert pipeline.configs[0].run_id is None

    def test_no_result(self, pipeline):
        report = TeardownReport()
        report.record("delete_role", StepOutcome.SUCCEEDED)
        pipeline.last_teardown = report
        pipeline.run.side_effect = NotFoundError("AMI ID not found: no build result after 15 polls")

        result = runner.invoke(cli, ["build", "org/app", "--os", "linux", "--arch", "x86_64"])

        assert result.exit_code == 1
        assert "AMI ID not found" in result.output
        assert "delete_role" in result.output


class TestImagesCommand:
    def test_show(self, manager):
        manager.describe_image.return_value = ImageRecord("ami-0abc", "org/app", "available", ("snap-1",))

        result = runner.invoke(cli, ["images", "show", "org/app"])

        assert result.exit_code == 0, result.output
        assert "ami-0abc" in result.output
        assert "snap-1" in result.output

    def test_delete(self, manager):
        manager.deregister.return_value = ["snap-1", "snap-2"]

        result = runner.invoke(cli, ["images", "delete", "org/app"])

        assert result.exit_code == 0, result.output
        manager.delete_snapshots.assert_called_once_with(["snap-1", "snap-2"])
        assert "Deleted 2 snapshot(s)" in result.output

    def test_delete_keep_snapshots(self, manager):
        manager.deregister.return_value = ["snap-1"]

        result = runner.invoke(cli, ["images", "delete", "org/app", "--keep-snapshots"])

        assert result.exit_code == 0
        manager.delete_snapshots.assert_not_called()

    def test_delete_missing(self, manager):
        manager.deregister.side_effect = NotFoundError("No image found with id or name: nope")

        result = runner.invoke(cli, ["images", "delete", "nope"])

        assert result.exit_code == 1
        assert "No image found" in result.output

    def test_export(self, manager):
        manager.export.return_value = "export-ami-1"

        result = runner.invoke(cli, ["images", "export", "ami-0abc", "--bucket", "my-bucket"])

        assert result.exit_code == 0, result.output
        manager.export.assert_called_once_with("ami-0abc", "my-bucket", prefix=None, disk_format="RAW")
        assert "export-ami-1" in result.output

    def test_export_unknown_image(self, manager):
        manager.is_known_image.return_value = False

        result = runner.invoke(cli, ["images", "export", "ami-0gone", "--bucket", "my-bucket"])

        assert result.exit_code == 1
        assert "No image found" in result.output
        manager.is_known_image.assert_called_once_with("ami-0gone")
        manager.export.assert_not_called()

    def test_export_status(self, manager):
        manager.poll_export_status.return_value = ExportTaskStatus(
            task_id="export-ami-1", status="active", status_message="converting", progress="40",
        )

        result = runner.invoke(cli, ["images", "export-status", "export-ami-1"])

        assert result.exit_code == 0, result.output
        assert "active" in result.output
        assert "converting" in result.output


class TestExportFiles:
    @pytest.fixture
    def destination(self, monkeypatch, fake_ctx) -> MagicMock:
        import ami_orch.cli.images as images_cli

        destination = MagicMock()
        monkeypatch.setattr(images_cli, "get_aws_context", lambda region: fake_ctx)
        monkeypatch.setattr(images_cli, "get_export_destination", lambda ctx: destination)
        return destination

    def test_fetch(self, destination, tmp_path):
        target = tmp_path / "disk.raw"
        destination.fetch.return_value = target

        result = runner.invoke(cli, ["images", "fetch", "my-bucket", "exports/disk.raw", str(target)])

        assert result.exit_code == 0, result.output
        destination.fetch.assert_called_once_with("my-bucket", "exports/disk.raw", target)

    def test_purge(self, destination):
        destination.cleanup.return_value = 3

        result = runner.invoke(cli, ["images", "purge", "my-bucket", "exports/"])

        assert result.exit_code == 0, result.output
        assert "Deleted 3 object(s)" in result.output

    def test_export_with_prepare(self, destination, manager):
        manager.export.return_value = "export-ami-1"

        result = runner.invoke(cli, ["images", "export", "ami-0abc", "--bucket", "my-bucket", "--prepare"])

        assert result.exit_code == 0, result.output
        destination.prepare.assert_called_once_with("my-bucket")


class TestTeardownCommand:
    def test_nothing_given(self):
        result = runner.invoke(cli, ["teardown"])

        assert result.exit_code == 1
        assert "Nothing to tear down" in result.output

    def test_role_and_profile(self, monkeypatch, fake_ctx):
        import ami_orch.cli.teardown as teardown_cli

        monkeypatch.setattr(teardown_cli, "get_aws_context", lambda region: fake_ctx)

        result = runner.invoke(cli, ["teardown", "--role", "amibuilder-role-r1", "--profile", "kraftkit-role-r1"])

        assert result.exit_code == 0, result.output
        boto = fake_ctx.client.return_value
        boto.remove_role_from_instance_profile.assert_called_once_with(
            InstanceProfileName="kraftkit-role-r1", RoleName="amibuilder-role-r1",
        )
        boto.delete_role.assert_called_once_with(RoleName="amibuilder-role-r1")
        boto.delete_instance_profile.assert_called_once_with(InstanceProfileName="kraftkit-role-r1")
        boto.delete_queue.assert_not_called()
