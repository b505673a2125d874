from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class QueueAddress:
    """Where a named queue lives, derived from account id + region."""
    region: str
    account_id: str
    name: str

    @property
    def arn(self) -> str:
        return f"arn:aws:sqs:{self.region}:{self.account_id}:{self.name}"

    @property
    def url(self) -> str:
        return f"https://sqs.{self.region}.amazonaws.com/{self.account_id}/{self.name}"


@dataclass(frozen=True)
class BuildTag:
    key: str
    value: str


@dataclass(frozen=True)
class BuildOrder:
    image: str                 # fully qualified, e.g. index.unikraft.io/org/app
    os: str
    arch: str
    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_wire(self) -> str:
        # Key order and separators are part of the worker contract
        return json.dumps({"image": self.image, "os": self.os, "arch": self.arch}, separators=(",", ":"))


@dataclass(frozen=True)
class BuildResult:
    ami_id: str
    correlation_id: Optional[str]
    message_id: str
    raw: Dict[str, Any]


@dataclass(frozen=True)
class SqsMessage:
    message_id: str
    receipt_handle: str
    body: str
    attributes: Dict[str, str]


@dataclass
class ProvisionedResourceSet:
    """
    Cloud objects created for one build run.

    Fields are filled in as resources are created and reset to None as
    teardown removes them.
    """
    role_name: Optional[str] = None
    instance_profile_name: Optional[str] = None
    role_in_profile: bool = False
    orders_queue_url: Optional[str] = None
    results_queue_url: Optional[str] = None
    instance_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not any((
            self.role_name,
            self.instance_profile_name,
            self.role_in_profile,
            self.orders_queue_url,
            self.results_queue_url,
            self.instance_id,
        ))


@dataclass(frozen=True)
class ImageRecord:
    image_id: str
    name: str
    state: str = "available"
    snapshot_ids: Tuple[str, ...] = ()

    @classmethod
    def from_aws_image(cls, image: Dict[str, Any]) -> "ImageRecord":
        snapshot_ids = []
        for mapping in image.get("BlockDeviceMappings", []):
            ebs = mapping.get("Ebs") or {}
            if ebs.get("SnapshotId"):
                snapshot_ids.append(ebs["SnapshotId"])
        return cls(
            image_id=image["ImageId"],
            name=image.get("Name", ""),
            state=image.get("State", "available"),
            snapshot_ids=tuple(snapshot_ids),
        )


@dataclass(frozen=True)
class ExportTaskStatus:
    task_id: str
    status: str
    status_message: Optional[str] = None
    progress: Optional[str] = None
    s3_bucket: Optional[str] = None
    s3_prefix: Optional[str] = None


class StepOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class TeardownStep:
    name: str
    outcome: StepOutcome
    detail: str = ""


@dataclass
class TeardownReport:
    steps: List[TeardownStep] = field(default_factory=list)

    def record(self, name: str, outcome: StepOutcome, detail: str = "") -> None:
        self.steps.append(TeardownStep(name=name, outcome=outcome, detail=detail))

    def outcome_of(self, name: str) -> Optional[StepOutcome]:
        for step in reversed(self.steps):
            if step.name == name:
                return step.outcome
        return None

    @property
    def failed(self) -> List[TeardownStep]:
        return [s for s in self.steps if s.outcome is StepOutcome.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class BuildOutcome:
    ami_id: Optional[str]
    order: Optional[BuildOrder]
    resources: ProvisionedResourceSet
    teardown: TeardownReport
    elapsed_seconds: float
