from __future__ import annotations
import json
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

from ami_orch.core.models import SqsMessage
from ami_orch.errors import from_client_error


class SQSClient:
    """AWS SQS client for the Orders / Results queue pair."""

    def __init__(self, region: str, client: Optional[Any] = None):
        """
        Initialize SQS client.

        Args:
            region: AWS region (e.g., "eu-central-1")
            client: Pre-built boto3 SQS client (default: a new one for region)
        """
        self.region = region
        self.client = client or boto3.client('sqs', region_name=region)

    def create_queue(self, name: str) -> str:
        """Create a standard queue (idempotent for identical attributes) and return its URL."""
        try:
            response = self.client.create_queue(QueueName=name)
            return response['QueueUrl']
        except ClientError as e:
            raise from_client_error(e, f"create queue {name}") from e

    def get_queue_url(self, name: str) -> str:
        """
        Resolve a queue name to its URL.

        Raises:
            ResourceNotFoundError: If the queue does not exist (yet)
        """
        try:
            response = self.client.get_queue_url(QueueName=name)
            return response['QueueUrl']
        except ClientError as e:
            raise from_client_error(e, f"resolve queue {name}") from e

    def delete_queue(self, queue_url: str) -> None:
        try:
            self.client.delete_queue(QueueUrl=queue_url)
        except ClientError as e:
            raise from_client_error(e, f"delete queue {queue_url}") from e

    def send_json(
        self,
        queue_url: str,
        body: str,
        attributes: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Send a message and return its message id.

        Args:
            queue_url: SQS queue URL
            body: Message body (JSON string, sent as-is)
            attributes: Optional string message attributes
        """
        kwargs: Dict[str, Any] = {
            'QueueUrl': queue_url,
            'MessageBody': body,
        }
        if attributes:
            kwargs['MessageAttributes'] = {
                key: {'StringValue': value, 'DataType': 'String'}
                for key, value in attributes.items()
            }

        try:
            response = self.client.send_message(**kwargs)
            return response['MessageId']
        except ClientError as e:
            raise from_client_error(e, "send SQS message") from e

    def receive_one(self, queue_url: str, wait_seconds: int) -> Optional[SqsMessage]:
        """
        Long-poll and return a single message or None.

        Args:
            queue_url: SQS queue URL
            wait_seconds: Long polling wait time (0-20 seconds)
        """
        try:
            response = self.client.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=1,
                WaitTimeSeconds=wait_seconds,
                MessageAttributeNames=['All'],
            )
        except ClientError as e:
            raise from_client_error(e, "receive message from SQS") from e

        messages = response.get('Messages', [])
        if not messages:
            return None

        msg = messages[0]
        attrs = {
            key: value.get('StringValue')
            for key, value in msg.get('MessageAttributes', {}).items()
            if value.get('StringValue') is not None
        }
        return SqsMessage(
            message_id=msg['MessageId'],
            receipt_handle=msg['ReceiptHandle'],
            body=msg.get('Body', ''),
            attributes=attrs,
        )

    def delete(self, queue_url: str, receipt_handle: str) -> None:
        try:
            self.client.delete_message(QueueUrl=queue_url, ReceiptHandle=receipt_handle)
        except ClientError as e:
            raise from_client_error(e, "delete SQS message") from e

    def release(self, queue_url: str, receipt_handle: str, visibility_timeout: int = 0) -> None:
        """Make a received message visible again after visibility_timeout seconds (0: right away)."""
        try:
            self.client.change_message_visibility(
                QueueUrl=queue_url,
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=visibility_timeout,
            )
        except ClientError as e:
            raise from_client_error(e, "release SQS message") from e


def parse_json_body(body: str) -> Dict[str, Any]:
    data = json.loads(body) if body else {}
    if not isinstance(data, dict):
        raise ValueError("message body is not a JSON object")
    return data
