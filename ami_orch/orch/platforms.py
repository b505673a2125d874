from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformDescriptor:
    """One manifest entry of a multi-platform image index."""
    digest: str
    os: str
    architecture: str
    variant: str = ""
    os_features: Tuple[str, ...] = ()

    @classmethod
    def from_index_entry(cls, entry: Dict[str, Any]) -> PlatformDescriptor:
        """Build a descriptor from one `manifests[]` entry of an OCI image index."""
        platform = entry.get("platform") or {}
        return cls(
            digest=entry.get("digest", ""),
            os=platform.get("os", ""),
            architecture=platform.get("architecture", ""),
            variant=platform.get("variant", ""),
            os_features=tuple(platform.get("os.features") or ()),
        )


@dataclass(frozen=True)
class PlatformQuery:
    os: str = ""
    architecture: str = ""
    features: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PlatformMatch:
    ref: str
    descriptor: PlatformDescriptor
    checksum: str

    @property
    def choice(self) -> str:
        return format_platform_choice(self.descriptor.os, self.descriptor.architecture)


def format_platform_choice(os: str, arch: str) -> str:
    return f"OS: {os}, Architecture: {arch}"


def parse_platform_choice(choice: str) -> Tuple[str, str]:
    """
    Parse "OS: <os>, Architecture: <arch>" into (os, arch).

    Raises:
        ValueError: If the string does not have that shape
    """
    parts = choice.split(",")
    if len(parts) != 2:
        raise ValueError(f"invalid platform format: {choice!r}")

    os_part = parts[0].strip()
    if not os_part.startswith("OS: "):
        raise ValueError(f"invalid OS format: {os_part!r}")

    arch_part = parts[1].strip()
    if not arch_part.startswith("Architecture: "):
        raise ValueError(f"invalid Architecture format: {arch_part!r}")

    return os_part[len("OS: "):].strip(), arch_part[len("Architecture: "):].strip()


def load_index_descriptors(data: Dict[str, Any]) -> List[PlatformDescriptor]:
    """
    Read the platform descriptors of an OCI image index.

    Entries without a platform are attestations or similar and are skipped.

    Raises:
        ValueError: If the document has no manifests list
    """
    manifests = data.get("manifests") if isinstance(data, dict) else None
    if not isinstance(manifests, list):
        raise ValueError("image index has no manifests list")
    return [PlatformDescriptor.from_index_entry(m) for m in manifests if isinstance(m, dict) and m.get("platform")]


def platform_checksum(ref: str, descriptor: PlatformDescriptor) -> str:
    """Stable key for one (image, platform) pair."""
    h = hashlib.sha256()
    for part in (ref, descriptor.os, descriptor.architecture, descriptor.variant, *sorted(descriptor.os_features)):
        h.update(part.encode("utf-8"))
        h.update(b"\0")
    return h.hexdigest()


def mismatch_reason(descriptor: PlatformDescriptor, query: Optional[PlatformQuery]) -> Optional[str]:
    """Why a descriptor does not satisfy the query, or None when it does."""
    if query is None:
        return None
    if query.os and query.os != descriptor.os:
        return f"platform does not match query (want {query.os}, got {descriptor.os})"
    if query.architecture and query.architecture != descriptor.architecture:
        return f"architecture does not match query (want {query.architecture}, got {descriptor.architecture})"
    if query.features:
        if len(query.features) > len(descriptor.os_features):
            return "query contains more features than available"
        available = set(descriptor.os_features)
        for feature in query.features:
            if feature not in available:
                return f"missing feature {feature}"
    return None


def _evaluate(ref: str, descriptor: PlatformDescriptor, query: Optional[PlatformQuery]) -> Optional[PlatformMatch]:
    reason = mismatch_reason(descriptor, query)
    if reason is not None:
        logger.debug(f"skipping manifest: {reason}", extra={"ref": ref, "digest": descriptor.digest})
        return None
    logger.debug("found", extra={"ref": ref, "digest": descriptor.digest})
    return PlatformMatch(ref=ref, descriptor=descriptor, checksum=platform_checksum(ref, descriptor))


def select_compatible(
    ref: str,
    descriptors: Iterable[PlatformDescriptor],
    query: Optional[PlatformQuery] = None,
    max_workers: int = 8,
) -> Dict[str, PlatformMatch]:
    """
    Evaluate every descriptor against the query in parallel.

    Each task returns its own result; the merge happens here, after all
    tasks finish, keyed by platform checksum.
    """
    descriptors = list(descriptors)
    if not descriptors:
        return {}

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(descriptors)))) as pool:
        futures = [pool.submit(_evaluate, ref, d, query) for d in descriptors]
        results: List[Optional[PlatformMatch]] = [f.result() for f in futures]

    matches: Dict[str, PlatformMatch] = {}
    for match in results:
        if match is not None:
            matches[match.checksum] = match
    return matches
