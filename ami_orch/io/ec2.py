from __future__ import annotations
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from ami_orch.errors import from_client_error


class EC2Client:
    """AWS EC2 client for build instances, images, snapshots and export tasks."""

    def __init__(self, region: str, client: Optional[Any] = None):
        self.region = region
        self.client = client or boto3.client('ec2', region_name=region)

    # --- instances ---
    def run_instance(
        self,
        image_id: str,
        instance_type: str,
        user_data: str,
        instance_profile_name: str,
        key_name: Optional[str] = None,
    ) -> str:
        """
        Start exactly one instance and return its id.

        Args:
            image_id: Base AMI to boot
            instance_type: e.g. "t3.micro"
            user_data: Base64-encoded bootstrap script
            instance_profile_name: Instance profile granting the worker its permissions
            key_name: Optional SSH key pair name
        """
        kwargs: Dict[str, Any] = {
            'ImageId': image_id,
            'InstanceType': instance_type,
            'MinCount': 1,
            'MaxCount': 1,
            'UserData': user_data,
            'IamInstanceProfile': {'Name': instance_profile_name},
        }
        if key_name:
            kwargs['KeyName'] = key_name

        try:
            response = self.client.run_instances(**kwargs)
            return response['Instances'][0]['InstanceId']
        except ClientError as e:
            raise from_client_error(e, "run instance") from e

    def tag(self, resource_id: str, tags: Dict[str, str]) -> None:
        try:
            self.client.create_tags(
                Resources=[resource_id],
                Tags=[{'Key': k, 'Value': v} for k, v in tags.items()],
            )
        except ClientError as e:
            raise from_client_error(e, f"tag {resource_id}") from e

    def terminate_instance(self, instance_id: str) -> List[Dict[str, Any]]:
        """Terminate an instance; returns the TerminatingInstances state changes."""
        try:
            response = self.client.terminate_instances(InstanceIds=[instance_id])
            return response.get('TerminatingInstances', [])
        except ClientError as e:
            raise from_client_error(e, f"terminate instance {instance_id}") from e

    # --- images ---
    def describe_images_by_id(self, image_id: str) -> List[Dict[str, Any]]:
        try:
            return self.client.describe_images(ImageIds=[image_id]).get('Images', [])
        except ClientError as e:
            raise from_client_error(e, f"describe image {image_id}") from e

    def describe_images_by_name(self, name: str) -> List[Dict[str, Any]]:
        try:
            response = self.client.describe_images(
                Filters=[{'Name': 'name', 'Values': [name]}],
            )
            return response.get('Images', [])
        except ClientError as e:
            raise from_client_error(e, f"describe images named {name}") from e

    def deregister_image(self, image_id: str) -> None:
        try:
            self.client.deregister_image(ImageId=image_id)
        except ClientError as e:
            raise from_client_error(e, f"deregister image {image_id}") from e

    def delete_snapshot(self, snapshot_id: str) -> None:
        try:
            self.client.delete_snapshot(SnapshotId=snapshot_id)
        except ClientError as e:
            raise from_client_error(e, f"delete snapshot {snapshot_id}") from e

    # --- export ---
    def export_image(
        self,
        image_id: str,
        bucket: str,
        prefix: Optional[str] = None,
        disk_format: str = "RAW",
        role_name: Optional[str] = None,
    ) -> str:
        """Start an image export to S3 and return the export task id."""
        location: Dict[str, str] = {'S3Bucket': bucket}
        if prefix:
            location['S3Prefix'] = prefix
        kwargs: Dict[str, Any] = {
            'ImageId': image_id,
            'DiskImageFormat': disk_format,
            'S3ExportLocation': location,
        }
        if role_name:
            kwargs['RoleName'] = role_name

        try:
            return self.client.export_image(**kwargs)['ExportImageTaskId']
        except ClientError as e:
            raise from_client_error(e, f"export image {image_id} to s3://{bucket}") from e

    def describe_export_image_tasks(self, task_id: str) -> List[Dict[str, Any]]:
        try:
            response = self.client.describe_export_image_tasks(ExportImageTaskIds=[task_id])
            return response.get('ExportImageTasks', [])
        except ClientError as e:
            raise from_client_error(e, f"describe export task {task_id}") from e
