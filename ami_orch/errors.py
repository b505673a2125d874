from __future__ import annotations

from typing import List, Optional


class ProviderUnavailable(Exception):
    """AWS configuration or credentials could not be loaded (always fatal)."""


class ProviderError(RuntimeError):
    """An AWS API call failed."""

    def __init__(self, message: str, code: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.operation = operation


class ResourceNotFoundError(ProviderError):
    """The provider reports that the target resource does not exist."""


class NotYetVisibleError(Exception):
    """A freshly created resource did not become visible within its wait budget."""


class NotFoundError(Exception):
    """An expected image, message or result field does not exist."""


class AmbiguousMatchError(NotFoundError):
    """A name matched more than one image."""

    def __init__(self, name: str, candidates: List[str]):
        super().__init__(f"Name '{name}' matches {len(candidates)} images: {', '.join(candidates)}")
        self.name = name
        self.candidates = candidates


# Codes the provider uses for "this resource does not exist"
NOT_FOUND_CODES = frozenset({
    "NoSuchEntity",
    "AWS.SimpleQueueService.NonExistentQueue",
    "QueueDoesNotExist",
    "InvalidInstanceID.NotFound",
    "InvalidAMIID.NotFound",
    "InvalidAMIID.Unavailable",
    "InvalidSnapshot.NotFound",
    "InvalidExportImageTaskId.NotFound",
    "NoSuchBucket",
    "NoSuchKey",
    "NotFound",
    "404",
})


def from_client_error(e: Exception, action: str) -> ProviderError:
    """Turn a botocore ClientError into ProviderError / ResourceNotFoundError."""
    response = getattr(e, "response", None) or {}
    code = response.get("Error", {}).get("Code")
    operation = getattr(e, "operation_name", None)
    message = f"Failed to {action}: {e}"
    if code in NOT_FOUND_CODES:
        return ResourceNotFoundError(message, code=code, operation=operation)
    return ProviderError(message, code=code, operation=operation)
