"""
Import driver tying parsers, analysis, deduplication and submission together.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from .cancellation import CancellationToken
from .client import CatalogClient, ProxyResponse
from .config_manager import ImportConfig
from .content_analyzer import ContentAnalyzer
from .deduplication import partition_urls, registered_urls_from_items
from .errors import ContainerHubError, FetchFailure, MalformedInputError
from .models import (
    ImportOrigin,
    ImportOutcome,
    ImportResult,
    ImportSourceRecord,
    ItemType,
    NormalizedItem,
    RunState,
    SourceFormat,
)
from .normalizer import ItemNormalizer
from .parsers import (
    Payload,
    decode_payload,
    parse_bulk_urls,
    parse_json,
    parse_payload,
    sniff_format,
)
from .progress_tracker import ProgressTracker
from .submitter import BatchSubmitter, FailurePolicy, SubmissionReport
from .url_utils import is_valid_url

logger = logging.getLogger(__name__)


class ImportPipeline:
    """Runs one import at a time against the catalog service.

    A run moves from ``idle`` to ``running`` and ends ``completed``,
    ``failed`` or ``cancelled``. Each run gets a fresh cancellation token.
    """

    def __init__(
        self,
        client: CatalogClient,
        config: Optional[ImportConfig] = None,
        tracker: Optional[ProgressTracker] = None,
    ):
        """
        Initialize import pipeline.

        Args:
            client: Catalog client used for every network call
            config: Import configuration, defaults when omitted
            tracker: Progress tracker shared across runs
        """
        self.client = client
        self.config = config or ImportConfig.default()
        self.tracker = tracker or ProgressTracker(
            show_progress_bar=self.config.display.show_progress,
            update_interval=self.config.display.update_interval,
        )
        self.analyzer = ContentAnalyzer(
            min_description_length=self.config.quality.min_description_length,
            snippet_length=self.config.quality.snippet_length,
        )
        self.normalizer = ItemNormalizer(
            min_prompt_length=self.config.quality.min_prompt_length,
            description_max_length=self.config.quality.description_max_length,
        )
        self.state = RunState.IDLE
        self.token = CancellationToken()

    def cancel(self) -> None:
        """Request cancellation of the running import."""
        self.token.cancel()

    def _begin(self, origin: ImportOrigin) -> None:
        if self.state == RunState.RUNNING:
            raise ContainerHubError("An import is already running")
        self.token = CancellationToken()
        self.tracker.reset()
        self.state = RunState.RUNNING
        logger.info(f"Starting {origin.value} import")

    @contextmanager
    def _running(self, origin: ImportOrigin) -> Iterator[None]:
        """Begin a run; any error escaping the body ends it as failed."""
        self._begin(origin)
        try:
            yield
        except Exception as e:
            if self.state == RunState.RUNNING:
                self._fail(e)
            raise

    def _submitter(self, policy: FailurePolicy, **kwargs) -> BatchSubmitter:
        return BatchSubmitter(
            tracker=self.tracker,
            token=self.token,
            failure_policy=policy,
            batch_delay=self.config.batching.batch_delay,
            group_delay=self.config.batching.group_delay,
            **kwargs,
        )

    def _fail(self, error: Exception) -> None:
        self.tracker.freeze()
        self.state = RunState.FAILED
        logger.error(f"Import failed: {error}")

    def _finish(
        self,
        report: SubmissionReport,
        skipped_duplicates: Iterable[str] = (),
        already_registered: Iterable[str] = (),
    ) -> ImportResult:
        if report.cancelled:
            state = RunState.CANCELLED
        elif report.aborted:
            state = RunState.FAILED
        else:
            state = RunState.COMPLETED

        self.tracker.freeze(cancelled=report.cancelled)
        self.tracker.finish()
        self.state = state

        result = ImportResult.build(
            report.outcomes,
            skipped_duplicates=skipped_duplicates,
            already_registered=already_registered,
            cancelled=report.cancelled,
            state=state,
            error=report.error,
        )
        logger.info(
            f"Import {state.value}: {result.success_count} succeeded, "
            f"{result.failure_count} failed, {result.skipped_count} skipped"
        )
        return result

    async def import_file(
        self,
        payload: Payload,
        filename: Optional[str] = None,
        item_type: ItemType = ItemType.APP,
        content_type: Optional[str] = None,
    ) -> ImportResult:
        """
        Import an uploaded JSON, JSONL, CSV or URL-list file.

        Records are normalized and submitted in sequential batches. For
        app and workflow CSV files every URL is analyzed first.

        Raises:
            MalformedInputError: When the file does not parse
        """
        item_type = ItemType.parse(item_type)
        with self._running(ImportOrigin.FILE):
            source_format = sniff_format(filename, content_type, payload)
            records = parse_payload(payload, source_format, item_type, ImportOrigin.FILE)

            if item_type != ItemType.VOICE and source_format in (
                SourceFormat.CSV,
                SourceFormat.URLS,
            ):
                items = await self._analyze_records(records, item_type)
            else:
                items = self.normalizer.normalize_all(records, item_type)

            if self.token.cancelled:
                return self._finish(SubmissionReport(cancelled=True))

            batching = self.config.batching
            if item_type == ItemType.VOICE:
                batch_size = batching.voice_batch_size
            elif source_format == SourceFormat.URLS:
                batch_size = batching.bulk_url_batch_size
            else:
                batch_size = batching.file_batch_size

            submitter = self._submitter(
                batching.sequential_policy, submit_batch=self.client.create_items_bulk
            )
            report = await submitter.submit_batches(items, batch_size)
            return self._finish(report)

    async def _analyze_records(
        self, records: List[ImportSourceRecord], item_type: ItemType
    ) -> List[NormalizedItem]:
        """Analyze each record's URL, falling back to a host-derived item."""
        items: List[NormalizedItem] = []
        for position, record in enumerate(records):
            if self.token.cancelled:
                logger.info("Cancelled during URL analysis")
                break

            url = record.text("url")
            try:
                proxy = await self.client.fetch_url(url)
                analysis = self.analyzer.analyze(proxy.content, url)
                items.append(
                    self.normalizer.from_analysis(
                        analysis, url, item_type, record.source_format, record.origin
                    )
                )
            except FetchFailure as e:
                logger.warning(f"Failed to analyze {url}: {e}")
                items.append(
                    self.normalizer.fallback_for_url(
                        url,
                        item_type,
                        record.source_format,
                        record.origin,
                        position=position,
                    )
                )
        return items

    async def import_json(
        self, text: str, item_type: ItemType = ItemType.APP
    ) -> ImportResult:
        """
        Import pasted JSON, creating records one at a time.

        Raises:
            MalformedInputError: When the text is not valid JSON
        """
        item_type = ItemType.parse(item_type)
        with self._running(ImportOrigin.JSON):
            records = parse_json(text, ImportOrigin.JSON)
            items = self.normalizer.normalize_all(records, item_type)
            submitter = self._submitter(self.config.batching.concurrent_policy)
            report = await submitter.submit_each(items, self.client.create_item)
            return self._finish(report)

    async def import_url(
        self, url: str, item_type: ItemType = ItemType.APP
    ) -> ImportResult:
        """
        Import from one URL through the fetch proxy.

        JSON content is treated as a record list; anything else is analyzed
        as a page and yields one item.

        Raises:
            MalformedInputError: When the URL is invalid or its JSON is
        """
        item_type = ItemType.parse(item_type)
        url = (url or "").strip()
        with self._running(ImportOrigin.URL):
            if not is_valid_url(url):
                raise MalformedInputError(
                    "Invalid URL: please enter a valid URL (e.g., https://example.com)"
                )
            try:
                proxy = await self.client.fetch_url(url)
            except FetchFailure as e:
                report = SubmissionReport(
                    outcomes=[
                        ImportOutcome(
                            identifier=url,
                            success=False,
                            reason=str(e),
                            status_code=e.status_code,
                        )
                    ],
                    aborted=True,
                    error=str(e),
                )
                return self._finish(report)

            items = self._items_from_proxy(
                proxy, url, item_type, SourceFormat.HTML, ImportOrigin.URL
            )
            submitter = self._submitter(self.config.batching.concurrent_policy)
            report = await submitter.submit_each(items, self.client.create_item)
            return self._finish(report)

    def _items_from_proxy(
        self,
        proxy: ProxyResponse,
        url: str,
        item_type: ItemType,
        page_format: SourceFormat,
        origin: ImportOrigin,
    ) -> List[NormalizedItem]:
        if proxy.is_json:
            records = parse_json(proxy.content, origin)
            items = self.normalizer.normalize_all(records, item_type)
            for item in items:
                item.source_url = item.source_url or url
            return items

        analysis = self.analyzer.analyze(proxy.content, url)
        return [
            self.normalizer.from_analysis(analysis, url, item_type, page_format, origin)
        ]

    async def import_bulk_urls(
        self, text: str, item_type: ItemType = ItemType.APP
    ) -> ImportResult:
        """
        Import a newline-separated URL list with bounded concurrency.

        URLs repeated in the input or already registered in the catalog are
        skipped and reported.

        Raises:
            MalformedInputError: When no valid URL is given or too many are
        """
        item_type = ItemType.parse(item_type)
        batching = self.config.batching
        with self._running(ImportOrigin.BULK_URLS):
            urls = parse_bulk_urls(decode_payload(text), limit=batching.max_bulk_urls)

            try:
                registered = registered_urls_from_items(await self.client.list_items())
            except ContainerHubError as e:
                logger.warning(f"Could not fetch existing items for deduplication: {e}")
                registered = set()

            partition = partition_urls(urls, registered)
            if not partition.to_process:
                logger.info("No new URLs to process")

            async def import_one(url: str, position: int) -> ImportOutcome:
                self.token.raise_if_cancelled()
                proxy = await self.client.fetch_url(url)
                items = self._items_from_proxy(
                    proxy, url, item_type, SourceFormat.URLS, ImportOrigin.BULK_URLS
                )
                if not items:
                    raise MalformedInputError(f"No importable records at {url}")

                created = [await self.client.create_item(item) for item in items]
                title = created[0].get("title") or items[0].title
                return ImportOutcome(identifier=url, success=True, title=title)

            submitter = self._submitter(batching.concurrent_policy)
            report = await submitter.submit_urls(
                partition.to_process, import_one, pool_size=batching.url_pool_size
            )
            return self._finish(
                report,
                skipped_duplicates=partition.duplicate_within_batch,
                already_registered=partition.already_registered,
            )
