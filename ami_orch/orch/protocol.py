"""
Build request/response over SQS.

The orchestrator and the remote worker never talk directly: a BuildOrder is
published to the Orders queue and the worker answers on the Results queue.
The correlation id rides along as the ``correlation_id`` message attribute
so the JSON body stays exactly what the worker expects.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from ami_orch.config import OrchestrationConfig
from ami_orch.core.aws import AwsContext
from ami_orch.core.models import BuildOrder, BuildResult, SqsMessage
from ami_orch.core.retry import Sleeper
from ami_orch.errors import NotFoundError
from ami_orch.io.sqs import SQSClient, parse_json_body

logger = logging.getLogger(__name__)

CORRELATION_ATTRIBUTE = "correlation_id"


def qualify_image(registry: str, image_ref: str) -> str:
    """Prefix a bare reference with the registry host, e.g. org/app -> index.unikraft.io/org/app."""
    registry = registry.rstrip("/")
    if not registry or image_ref.startswith(registry + "/"):
        return image_ref
    return f"{registry}/{image_ref}"


def extract_ami_id(body: str) -> str:
    """
    Return ``result.amiId`` from a Results message body.

    Raises:
        NotFoundError: If the body is not a JSON object or has no string result.amiId
    """
    try:
        data = parse_json_body(body)
    except ValueError as e:  # includes json.JSONDecodeError
        raise NotFoundError(f"AMI ID not found: invalid result body ({e})") from e

    result = data.get("result")
    if isinstance(result, dict) and isinstance(result.get("amiId"), str):
        return result["amiId"]
    raise NotFoundError("AMI ID not found")


def _message_correlation_id(msg: SqsMessage, data: Dict[str, Any]) -> Optional[str]:
    return msg.attributes.get(CORRELATION_ATTRIBUTE) or data.get("correlationId")


class BuildDispatcher:
    """Publishes build orders to the Orders queue."""

    def __init__(self, cfg: OrchestrationConfig, ctx: AwsContext, sqs: SQSClient):
        self.cfg = cfg
        self.ctx = ctx
        self.sqs = sqs
        self.last_order: Optional[BuildOrder] = None

    def dispatch(self, image_ref: str, os: str, arch: str) -> str:
        """
        Send one build order.

        Args:
            image_ref: Image reference without registry (e.g. "org/app")
            os: Target OS (e.g. "linux")
            arch: Target architecture (e.g. "x86_64")

        Returns:
            SQS message id
        """
        order = BuildOrder(image=qualify_image(self.cfg.registry, image_ref), os=os, arch=arch)
        queue_url = self.ctx.queue_address(self.cfg.orders_queue_name).url

        message_id = self.sqs.send_json(
            queue_url,
            order.to_wire(),
            attributes={CORRELATION_ATTRIBUTE: order.correlation_id},
        )
        self.last_order = order
        logger.info(
            f"Sent build order {message_id}",
            extra={"image": order.image, "os": os, "arch": arch, "correlation_id": order.correlation_id},
        )
        return message_id


class ResultCollector:
    """Waits for the worker's answer on the Results queue."""

    def __init__(
        self,
        cfg: OrchestrationConfig,
        ctx: AwsContext,
        sqs: SQSClient,
        sleep: Sleeper = time.sleep,
    ):
        self.cfg = cfg
        self.ctx = ctx
        self.sqs = sqs
        self.sleep = sleep

    def collect(self, correlation_id: Optional[str] = None) -> str:
        """
        Long-poll the Results queue and return the produced AMI id.

        Args:
            correlation_id: Id of the order being answered. Messages carrying a
                different id are hidden for ``foreign_result_hold_seconds`` and skipped.

        Returns:
            AMI id from ``result.amiId``

        Raises:
            NotFoundError: If no acceptable result arrives within
                ``result_max_polls`` polls, or the accepted result has no AMI id
        """
        return self.collect_result(correlation_id).ami_id

    def collect_result(self, correlation_id: Optional[str] = None) -> BuildResult:
        queue_url = self.ctx.queue_address(self.cfg.results_queue_name).url
        max_polls = self.cfg.result_max_polls

        for attempt in range(1, max_polls + 1):
            logger.info(f"Waiting for result... ({attempt}/{max_polls})")
            msg = self.sqs.receive_one(queue_url, wait_seconds=self.cfg.result_wait_seconds)

            if msg is None:
                logger.info("No messages received. Retrying")
            else:
                result = self._accept(queue_url, msg, correlation_id)
                if result is not None:
                    return result

            self.sleep(self.cfg.result_poll_sleep_seconds)

        raise NotFoundError(f"AMI ID not found: no build result after {max_polls} polls")

    # ---- internals ----

    def _accept(self, queue_url: str, msg: SqsMessage, expected: Optional[str]) -> Optional[BuildResult]:
        logger.info(f"Received result message {msg.message_id}")
        logger.debug(f"Message body: {msg.body}")

        try:
            data = parse_json_body(msg.body)
        except ValueError:
            data = {}

        got = _message_correlation_id(msg, data)
        if expected is not None:
            if got is not None and got != expected:
                logger.warning(
                    f"Ignoring result {msg.message_id} for another order",
                    extra={"want": expected, "got": got},
                )
                self._hold(queue_url, msg)
                return None
            if got is None and self.cfg.require_correlation:
                logger.warning(f"Ignoring uncorrelated result {msg.message_id}")
                self._hold(queue_url, msg)
                return None

        ami_id = extract_ami_id(msg.body)
        self.sqs.delete(queue_url, msg.receipt_handle)
        logger.info(f"AMI ID: {ami_id}")
        return BuildResult(ami_id=ami_id, correlation_id=got, message_id=msg.message_id, raw=data)

    def _hold(self, queue_url: str, msg: SqsMessage) -> None:
        """Return a message to the queue, invisible to this collector for the hold period."""
        self.sqs.release(queue_url, msg.receipt_handle, visibility_timeout=self.cfg.foreign_result_hold_seconds)
