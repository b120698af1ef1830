"""
Batch submission of normalized items.

Two modes are supported. Sequential mode slices items into fixed-size
batches sent one after another through ``POST /items/bulk``. Bounded
concurrency mode runs a per-URL worker over small groups joined with
``asyncio.as_completed``, pausing between groups.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .cancellation import CancellationToken
from .errors import CancelledByUser, ContainerHubError
from .models import ImportBatch, ImportOutcome, NormalizedItem
from .progress_tracker import ProgressTracker

logger = logging.getLogger(__name__)

BatchSubmit = Callable[[Sequence[NormalizedItem]], Awaitable[int]]
UrlWorker = Callable[[str, int], Awaitable[ImportOutcome]]
ItemCreate = Callable[[NormalizedItem], Awaitable[Dict[str, Any]]]


class FailurePolicy(str, Enum):
    """What to do with remaining work after a unit fails."""

    ABORT = "abort"
    CONTINUE = "continue"


@dataclass
class SubmissionReport:
    """Outcomes gathered by one submitter call."""

    outcomes: List[ImportOutcome] = field(default_factory=list)
    cancelled: bool = False
    aborted: bool = False
    error: str = ""
    batches_attempted: int = 0

    @property
    def failure_count(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)


def make_batches(items: Sequence[NormalizedItem], batch_size: int) -> List[ImportBatch]:
    """Slice items into contiguous batches of at most ``batch_size``."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    return [
        ImportBatch(index=index, items=list(items[start : start + batch_size]))
        for index, start in enumerate(range(0, len(items), batch_size))
    ]


def _failure(identifier: str, error: Exception, title: str = "") -> ImportOutcome:
    return ImportOutcome(
        identifier=identifier,
        success=False,
        title=title,
        reason=str(error),
        status_code=getattr(error, "status_code", None),
    )


class BatchSubmitter:
    """Drives items or URLs through the catalog with progress and cancellation."""

    def __init__(
        self,
        submit_batch: Optional[BatchSubmit] = None,
        tracker: Optional[ProgressTracker] = None,
        token: Optional[CancellationToken] = None,
        failure_policy: FailurePolicy = FailurePolicy.ABORT,
        batch_delay: float = 0.1,
        group_delay: float = 0.2,
    ):
        """
        Initialize batch submitter.

        Args:
            submit_batch: Coroutine creating one batch and returning the
                created count, normally ``CatalogClient.create_items_bulk``
            tracker: Progress tracker updated after every unit of work
            token: Cancellation token polled before every unit of work
            failure_policy: Whether a failed unit stops the remaining ones
            batch_delay: Pause between sequential batches, in seconds
            group_delay: Pause between concurrent groups, in seconds
        """
        self.submit_batch = submit_batch
        self.tracker = tracker or ProgressTracker()
        self.token = token or CancellationToken()
        self.failure_policy = FailurePolicy(failure_policy)
        self.batch_delay = batch_delay
        self.group_delay = group_delay

    async def submit_batches(
        self,
        items: Sequence[NormalizedItem],
        batch_size: int,
        submit: Optional[BatchSubmit] = None,
    ) -> SubmissionReport:
        """
        Submit items in order, one batch at a time.

        Args:
            items: Normalized items to create
            batch_size: Maximum items per bulk call
            submit: Overrides the submit coroutine given at construction

        Returns:
            SubmissionReport with one outcome per attempted item
        """
        submit = submit or self.submit_batch
        if submit is None:
            raise ValueError("No batch submit function configured")

        batches = make_batches(items, batch_size)
        report = SubmissionReport()
        self.tracker.start(len(items), len(batches))
        logger.info(f"Submitting {len(items)} items in {len(batches)} batches")

        for batch in batches:
            if self.token.cancelled:
                logger.info(f"Cancelled before batch {batch.index + 1}/{len(batches)}")
                report.cancelled = True
                break

            report.batches_attempted += 1
            batch.start()
            try:
                created = await submit(batch.items)
            except ContainerHubError as e:
                batch.finish(0)
                self.tracker.record(batch.index, 0, batch.duration_ms)
                report.outcomes.extend(
                    _failure(item.identifier, e, item.title) for item in batch.items
                )
                logger.warning(
                    f"Batch {batch.index + 1}/{len(batches)} failed: {e}"
                )
                if self.failure_policy == FailurePolicy.ABORT:
                    report.aborted = True
                    report.error = (
                        f"Batch {batch.index + 1} of {len(batches)} failed: {e}"
                    )
                    break
            else:
                batch.finish(created)
                self.tracker.record(batch.index, created, batch.duration_ms)
                report.outcomes.extend(
                    ImportOutcome(identifier=item.identifier, success=True, title=item.title)
                    for item in batch.items
                )
                if created != len(batch):
                    logger.warning(
                        f"Batch {batch.index + 1} sent {len(batch)} items, "
                        f"service reported {created} created"
                    )
                logger.debug(
                    f"Batch {batch.index + 1}/{len(batches)} created {created} items "
                    f"in {batch.duration_ms:.0f}ms"
                )

            if batch.index < len(batches) - 1:
                await asyncio.sleep(self.batch_delay)

        return report

    async def submit_each(
        self, items: Sequence[NormalizedItem], create: ItemCreate
    ) -> SubmissionReport:
        """
        Create items one at a time, in order.

        The display title is read back from the created record when the
        service returns one.
        """
        report = SubmissionReport()
        self.tracker.start(len(items), len(items))

        for index, item in enumerate(items):
            if self.token.cancelled:
                logger.info(f"Cancelled before item {index + 1}/{len(items)}")
                report.cancelled = True
                break

            report.batches_attempted += 1
            started = time.monotonic()
            try:
                created = await create(item)
            except ContainerHubError as e:
                self.tracker.record(index, 0, (time.monotonic() - started) * 1000)
                report.outcomes.append(_failure(item.identifier, e, item.title))
                logger.warning(f"Failed to create {item.title}: {e}")
                if self.failure_policy == FailurePolicy.ABORT:
                    report.aborted = True
                    report.error = f"Item {index + 1} of {len(items)} failed: {e}"
                    break
                continue

            self.tracker.record(index, 1, (time.monotonic() - started) * 1000)
            report.outcomes.append(
                ImportOutcome(
                    identifier=item.identifier,
                    success=True,
                    title=(created or {}).get("title") or item.title,
                )
            )

        return report

    async def submit_urls(
        self, urls: Sequence[str], worker: UrlWorker, pool_size: int = 3
    ) -> SubmissionReport:
        """
        Run ``worker`` over URLs in concurrent groups of ``pool_size``.

        Outcomes are recorded in completion order. A worker error becomes a
        failed outcome for that URL only; under the abort policy the groups
        after it are not started.
        """
        if pool_size <= 0:
            raise ValueError("pool_size must be positive")

        groups = [
            list(enumerate(urls))[start : start + pool_size]
            for start in range(0, len(urls), pool_size)
        ]
        report = SubmissionReport()
        self.tracker.start(len(urls), len(urls))
        logger.info(f"Processing {len(urls)} URLs in groups of {pool_size}")

        for group_index, group in enumerate(groups):
            if self.token.cancelled:
                logger.info(f"Cancelled before group {group_index + 1}/{len(groups)}")
                report.cancelled = True
                break

            report.batches_attempted += 1
            tasks = [
                asyncio.ensure_future(self._run_url(worker, url, position))
                for position, url in group
            ]
            group_failed = False
            for next_done in asyncio.as_completed(tasks):
                position, outcome, elapsed_ms = await next_done
                if outcome is None:
                    report.cancelled = True
                    continue
                self.tracker.record(position, 1, elapsed_ms)
                report.outcomes.append(outcome)
                if not outcome.success:
                    group_failed = True

            if group_failed and self.failure_policy == FailurePolicy.ABORT:
                report.aborted = True
                report.error = f"Group {group_index + 1} of {len(groups)} had failures"
                break
            if report.cancelled:
                break

            if group_index < len(groups) - 1:
                await asyncio.sleep(self.group_delay)

        return report

    async def _run_url(
        self, worker: UrlWorker, url: str, position: int
    ) -> Tuple[int, Optional[ImportOutcome], float]:
        if self.token.cancelled:
            return position, None, 0.0

        started = time.monotonic()
        try:
            outcome = await worker(url, position)
        except CancelledByUser:
            return position, None, 0.0
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to import {url}: {e}")
            outcome = _failure(url, e)
        return position, outcome, (time.monotonic() - started) * 1000
