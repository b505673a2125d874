from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from ami_orch.core.models import ExportTaskStatus, ImageRecord
from ami_orch.errors import AmbiguousMatchError, NotFoundError, ProviderError, ResourceNotFoundError
from ami_orch.io.ec2 import EC2Client

logger = logging.getLogger(__name__)

AMI_ID_PREFIX = "ami-"


class ImageLifecycleManager:
    """Lookup, deregistration, snapshot cleanup and S3 export of existing AMIs."""

    def __init__(self, ec2: EC2Client):
        self.ec2 = ec2

    def resolve_image_id(self, id_or_name: str) -> str:
        """
        Resolve an AMI id or name to an AMI id.

        Ids are checked directly; names (or ids that do not exist) are looked
        up with a name filter.

        Raises:
            NotFoundError: If nothing matches
            AmbiguousMatchError: If the name matches several images
        """
        return self._lookup(id_or_name).image_id

    def describe_image(self, id_or_name: str) -> ImageRecord:
        return self._lookup(id_or_name)

    def is_known_image(self, id_or_name: str) -> bool:
        """True if an image with this id or name is visible to the account."""
        try:
            self._lookup(id_or_name)
            return True
        except AmbiguousMatchError:
            return True
        except (NotFoundError, ProviderError) as e:
            logger.debug(f"'{id_or_name}' is not a known image: {e}")
            return False

    def deregister(self, id_or_name: str) -> List[str]:
        """
        Deregister an image and return the snapshot ids it referenced.

        Snapshots are read from the block-device mappings before the image
        is deregistered; deregistration leaves them in place.
        """
        record = self._lookup(id_or_name)
        snapshot_ids = list(record.snapshot_ids)

        self.ec2.deregister_image(record.image_id)
        logger.info(
            f"Deregistered AMI {record.image_id}",
            extra={"image_name": record.name, "snapshot_ids": snapshot_ids},
        )
        return snapshot_ids

    def delete_snapshots(self, snapshot_ids: Iterable[str]) -> None:
        """
        Delete snapshots in order.

        Raises:
            ProviderError: On the first snapshot that cannot be deleted
        """
        for snapshot_id in snapshot_ids:
            self.ec2.delete_snapshot(snapshot_id)
            logger.info(f"Deleted snapshot {snapshot_id}")

    def delete(self, id_or_name: str) -> List[str]:
        """Deregister an image and delete its snapshots; returns the snapshot ids."""
        snapshot_ids = self.deregister(id_or_name)
        self.delete_snapshots(snapshot_ids)
        return snapshot_ids

    def export(
        self,
        image_id: str,
        bucket: str,
        prefix: Optional[str] = None,
        disk_format: str = "RAW",
        role_name: Optional[str] = None,
    ) -> str:
        """
        Start exporting an image to S3.

        Returns the export task id right away; use poll_export_status() to
        follow it.
        """
        task_id = self.ec2.export_image(
            image_id,
            bucket,
            prefix=prefix,
            disk_format=disk_format,
            role_name=role_name,
        )
        logger.info(f"Started export of {image_id} to s3://{bucket}/{prefix or ''}", extra={"task_id": task_id})
        return task_id

    def poll_export_status(self, task_id: str) -> ExportTaskStatus:
        """
        Read the current state of an export task (read-only, single call).

        Raises:
            NotFoundError: If the task is unknown
        """
        try:
            tasks = self.ec2.describe_export_image_tasks(task_id)
        except ResourceNotFoundError as e:
            raise NotFoundError(f"Export task {task_id} not found") from e

        for task in tasks:
            if task.get("ExportImageTaskId") != task_id:
                continue
            location = task.get("S3ExportLocation") or {}
            status = ExportTaskStatus(
                task_id=task_id,
                status=task.get("Status", "unknown"),
                status_message=task.get("StatusMessage"),
                progress=task.get("Progress"),
                s3_bucket=location.get("S3Bucket"),
                s3_prefix=location.get("S3Prefix"),
            )
            logger.info(f"Export task {task_id}: {status.status}")
            if status.status_message:
                logger.info(f"Status message: {status.status_message}")
            return status

        raise NotFoundError(f"Export task {task_id} not found")

    # ---- internals ----

    def _lookup(self, id_or_name: str) -> ImageRecord:
        if id_or_name.startswith(AMI_ID_PREFIX):
            try:
                images = self.ec2.describe_images_by_id(id_or_name)
            except ResourceNotFoundError:
                images = []
            if images:
                return ImageRecord.from_aws_image(images[0])

        images = self.ec2.describe_images_by_name(id_or_name)
        if not images:
            raise NotFoundError(f"No image found with id or name: {id_or_name}")
        if len(images) > 1:
            raise AmbiguousMatchError(id_or_name, sorted(img["ImageId"] for img in images))
        return ImageRecord.from_aws_image(images[0])
