from __future__ import annotations
from pathlib import Path
from typing import Any, List, Optional

import boto3
from botocore.exceptions import ClientError

from ami_orch.errors import from_client_error


class S3Client:
    """AWS S3 client for image export destinations."""

    def __init__(self, region: str, client: Optional[Any] = None):
        self.region = region
        self.client = client or boto3.client('s3', region_name=region)

    def create_bucket(self, bucket: str) -> None:
        """
        Create a bucket in this client's region.

        us-east-1 rejects an explicit LocationConstraint, every other region
        requires one.
        """
        kwargs: dict = {'Bucket': bucket}
        if self.region != 'us-east-1':
            kwargs['CreateBucketConfiguration'] = {'LocationConstraint': self.region}
        try:
            self.client.create_bucket(**kwargs)
        except ClientError as e:
            raise from_client_error(e, f"create bucket {bucket}") from e

    def bucket_exists(self, bucket: str) -> bool:
        try:
            self.client.head_bucket(Bucket=bucket)
            return True
        except ClientError as e:
            err = from_client_error(e, f"head bucket {bucket}")
            if err.code in ('404', 'NoSuchBucket', 'NotFound'):
                return False
            raise err from e

    def list_keys(self, bucket: str, prefix: str = "") -> List[str]:
        keys: List[str] = []
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(obj['Key'] for obj in page.get('Contents', []))
        except ClientError as e:
            raise from_client_error(e, f"list s3://{bucket}/{prefix}") from e
        return keys

    def delete_prefix(self, bucket: str, prefix: str) -> int:
        """Delete every object under prefix; returns the number of keys deleted."""
        keys = self.list_keys(bucket, prefix)
        # DeleteObjects accepts at most 1000 keys per call
        for start in range(0, len(keys), 1000):
            chunk = keys[start:start + 1000]
            try:
                self.client.delete_objects(
                    Bucket=bucket,
                    Delete={'Objects': [{'Key': k} for k in chunk], 'Quiet': True},
                )
            except ClientError as e:
                raise from_client_error(e, f"delete objects under s3://{bucket}/{prefix}") from e
        return len(keys)

    def download(self, bucket: str, key: str, local_path: Path) -> Path:
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.client.download_file(bucket, key, str(local_path))
        except ClientError as e:
            raise from_client_error(e, f"download s3://{bucket}/{key}") from e
        return local_path
