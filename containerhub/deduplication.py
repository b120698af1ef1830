"""
Duplicate detection for import candidates.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Set, Tuple

from .models import NormalizedItem
from .url_utils import normalize_url

logger = logging.getLogger(__name__)

REGISTERED_URL_KEYS = ("url", "originalUrl", "sourceUrl")


@dataclass
class DedupPartition:
    """Candidates split into work, in-run repeats and known URLs."""

    to_process: List[str] = field(default_factory=list)
    duplicate_within_batch: List[str] = field(default_factory=list)
    already_registered: List[str] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.duplicate_within_batch) + len(self.already_registered)


def registered_urls_from_items(items: Iterable[Mapping[str, Any]]) -> Set[str]:
    """Collect source URLs from catalog records returned by ``GET /items``."""
    urls: Set[str] = set()
    for item in items:
        if not isinstance(item, Mapping):
            continue
        for key in REGISTERED_URL_KEYS:
            value = item.get(key)
            if isinstance(value, str) and value.strip():
                urls.add(normalize_url(value))
    return urls


def partition_urls(candidates: Iterable[str], registered: Iterable[str]) -> DedupPartition:
    """
    Partition candidate URLs against each other and the registered set.

    Matching is exact after trimming. Each URL is reported at most once:
    a URL that is both repeated and registered is listed only under
    ``already_registered``.

    Args:
        candidates: URLs in input order
        registered: URLs already present in the catalog

    Returns:
        DedupPartition preserving first-occurrence order
    """
    known = {normalize_url(url) for url in registered}
    partition = DedupPartition()
    seen: Set[str] = set()

    for raw in candidates:
        url = normalize_url(raw)
        if not url:
            continue
        if url in known:
            if url not in seen:
                partition.already_registered.append(url)
        elif url in seen:
            if url not in partition.duplicate_within_batch:
                partition.duplicate_within_batch.append(url)
        else:
            partition.to_process.append(url)
        seen.add(url)

    if partition.skipped_count:
        logger.info(
            f"Deduplication: {len(partition.to_process)} to process, "
            f"{len(partition.duplicate_within_batch)} repeated, "
            f"{len(partition.already_registered)} already registered"
        )
    return partition


def dedupe_items(
    items: Iterable[NormalizedItem], registered: Iterable[str]
) -> Tuple[List[NormalizedItem], DedupPartition]:
    """
    Apply ``partition_urls`` to items keyed by their source URL.

    Items without a source URL always pass through.
    """
    items = list(items)
    partition = partition_urls(
        [item.source_url for item in items if item.source_url], registered
    )
    remaining = set(partition.to_process)

    kept: List[NormalizedItem] = []
    for item in items:
        if not item.source_url:
            kept.append(item)
            continue
        url = normalize_url(item.source_url)
        if url in remaining:
            kept.append(item)
            remaining.discard(url)
    return kept, partition
