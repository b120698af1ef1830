"""
Tests for batch submission, failure policies and cancellation.
"""

import asyncio

import pytest

from containerhub.cancellation import CancellationToken
from containerhub.errors import CancelledByUser, FetchFailure, SubmissionFailure
from containerhub.models import ImportOutcome
from containerhub.progress_tracker import ProgressTracker
from containerhub.submitter import BatchSubmitter, FailurePolicy, make_batches

from conftest import FakeCatalogClient, make_items


def _submitter(client, policy=FailurePolicy.ABORT, token=None, tracker=None):
    return BatchSubmitter(
        submit_batch=client.create_items_bulk,
        tracker=tracker,
        token=token,
        failure_policy=policy,
        batch_delay=0,
        group_delay=0,
    )


class TestCancellationToken:
    """Test the cancellation token."""

    def test_initial_state(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_is_sticky(self):
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.cancelled
        with pytest.raises(CancelledByUser):
            token.raise_if_cancelled()


class TestMakeBatches:
    """Test batch slicing."""

    def test_slices_in_order(self):
        batches = make_batches(make_items(25), 10)
        assert [len(batch) for batch in batches] == [10, 10, 5]
        assert [batch.index for batch in batches] == [0, 1, 2]
        assert batches[2].items[0].title == "Item 20"

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            make_batches(make_items(1), 0)


class TestSequentialMode:
    """Test sequential batch submission."""

    @pytest.mark.asyncio
    async def test_all_batches_succeed(self):
        client = FakeCatalogClient()
        tracker = ProgressTracker()
        report = await _submitter(client, tracker=tracker).submit_batches(
            make_items(23), 10
        )

        assert len(client.bulk_calls) == 3
        assert len(report.outcomes) == 23
        assert all(outcome.success for outcome in report.outcomes)
        assert [o.identifier for o in report.outcomes][:2] == [
            "https://example0.test",
            "https://example1.test",
        ]
        assert tracker.state.items_processed == 23
        assert tracker.state.completed_batches == 3

    @pytest.mark.asyncio
    async def test_abort_after_failed_batch(self):
        client = FakeCatalogClient(fail_batches=[2])
        report = await _submitter(client, FailurePolicy.ABORT).submit_batches(
            make_items(50), 10
        )

        assert len(client.bulk_calls) == 2
        assert report.aborted
        assert report.batches_attempted == 2
        assert sum(1 for o in report.outcomes if o.success) == 10
        assert report.failure_count == 10
        assert all(o.status_code == 500 for o in report.outcomes if not o.success)
        assert "Batch 2 of 5 failed" in report.error

    @pytest.mark.asyncio
    async def test_continue_after_failed_batch(self):
        client = FakeCatalogClient(fail_batches=[2])
        report = await _submitter(client, FailurePolicy.CONTINUE).submit_batches(
            make_items(50), 10
        )

        assert len(client.bulk_calls) == 5
        assert not report.aborted
        assert report.failure_count == 10
        assert len(report.outcomes) == 50

    @pytest.mark.asyncio
    async def test_cancel_after_first_batch(self):
        client = FakeCatalogClient()
        token = CancellationToken()

        async def submit(items):
            created = await client.create_items_bulk(items)
            token.cancel()
            return created

        tracker = ProgressTracker()
        submitter = _submitter(client, token=token, tracker=tracker)
        report = await submitter.submit_batches(make_items(50), 10, submit=submit)

        assert len(client.bulk_calls) == 1
        assert report.cancelled
        assert len(report.outcomes) == 10
        assert all(o.success for o in report.outcomes)
        assert tracker.state.completed_batches == 1

    @pytest.mark.asyncio
    async def test_requires_submit_function(self):
        with pytest.raises(ValueError):
            await BatchSubmitter().submit_batches(make_items(1), 1)


class TestPerItemMode:
    """Test one-at-a-time creation."""

    @pytest.mark.asyncio
    async def test_reads_back_title_and_continues(self):
        client = FakeCatalogClient(fail_titles=["Item 1"])
        submitter = _submitter(client, FailurePolicy.CONTINUE)
        report = await submitter.submit_each(make_items(3), client.create_item)

        assert [o.success for o in report.outcomes] == [True, False, True]
        assert report.outcomes[1].status_code == 403
        assert [item.title for item in client.created] == ["Item 0", "Item 2"]

    @pytest.mark.asyncio
    async def test_abort_stops_remaining_items(self):
        client = FakeCatalogClient(fail_titles=["Item 0"])
        submitter = _submitter(client, FailurePolicy.ABORT)
        report = await submitter.submit_each(make_items(3), client.create_item)

        assert report.aborted
        assert len(report.outcomes) == 1
        assert client.created == []


class TestConcurrentMode:
    """Test bounded-concurrency URL processing."""

    @pytest.mark.asyncio
    async def test_one_failure_in_group(self):
        urls = ["https://a.test", "https://bad.test", "https://c.test"]

        async def worker(url, position):
            await asyncio.sleep(0)
            if "bad" in url:
                raise FetchFailure(url, "Failed to fetch URL: 404", status_code=404)
            return ImportOutcome(identifier=url, success=True, title=url)

        submitter = _submitter(FakeCatalogClient(), FailurePolicy.CONTINUE)
        report = await submitter.submit_urls(urls, worker, pool_size=3)

        succeeded = sorted(o.identifier for o in report.outcomes if o.success)
        assert succeeded == ["https://a.test", "https://c.test"]
        failed = [o for o in report.outcomes if not o.success]
        assert len(failed) == 1
        assert failed[0].status_code == 404
        assert not report.aborted

    @pytest.mark.asyncio
    async def test_group_members_run_concurrently(self):
        in_flight = 0
        peak = 0

        async def worker(url, position):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return ImportOutcome(identifier=url, success=True)

        urls = [f"https://site{i}.test" for i in range(7)]
        submitter = _submitter(FakeCatalogClient(), FailurePolicy.CONTINUE)
        report = await submitter.submit_urls(urls, worker, pool_size=3)

        assert peak == 3
        assert report.batches_attempted == 3
        assert len(report.outcomes) == 7

    @pytest.mark.asyncio
    async def test_abort_policy_skips_later_groups(self):
        seen = []

        async def worker(url, position):
            seen.append(url)
            if position == 1:
                raise SubmissionFailure("HTTP 500: boom", status_code=500)
            return ImportOutcome(identifier=url, success=True)

        urls = [f"https://site{i}.test" for i in range(6)]
        submitter = _submitter(FakeCatalogClient(), FailurePolicy.ABORT)
        report = await submitter.submit_urls(urls, worker, pool_size=3)

        assert len(seen) == 3
        assert report.aborted
        assert len(report.outcomes) == 3

    @pytest.mark.asyncio
    async def test_cancel_between_groups(self):
        token = CancellationToken()
        seen = []

        async def worker(url, position):
            seen.append(url)
            if position == 2:
                token.cancel()
            return ImportOutcome(identifier=url, success=True)

        urls = [f"https://site{i}.test" for i in range(9)]
        submitter = _submitter(FakeCatalogClient(), FailurePolicy.CONTINUE, token=token)
        report = await submitter.submit_urls(urls, worker, pool_size=3)

        assert len(seen) == 3
        assert report.cancelled
        assert len(report.outcomes) == 3

    @pytest.mark.asyncio
    async def test_task_checks_token_before_starting(self):
        token = CancellationToken()
        token.cancel()
        submitter = _submitter(FakeCatalogClient(), token=token)

        async def worker(url, position):
            raise AssertionError("worker should not run")

        report = await submitter.submit_urls(["https://a.test"], worker)
        assert report.cancelled
        assert report.outcomes == []
