"""
End-to-end tests of the import pipeline against an in-memory catalog.
"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from containerhub.client import CatalogClient, ProxyResponse
from containerhub.errors import MalformedInputError, SubmissionFailure
from containerhub.models import ItemType, RunState
from containerhub.pipeline import ImportPipeline

from conftest import FakeCatalogClient, html_page


def _json_items(count):
    return json.dumps(
        [{"name": f"Item {i}", "url": f"https://example{i}.test"} for i in range(count)]
    )


class TestFileImport:
    """Test sequential file imports."""

    @pytest.mark.asyncio
    async def test_voice_csv_skips_short_prompts(self, fast_config, voice_csv):
        client = FakeCatalogClient()
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_file(
            voice_csv, filename="agents.csv", item_type=ItemType.VOICE
        )

        assert pipeline.state == RunState.COMPLETED
        assert result.success_count == 1
        assert result.failure_count == 0
        assert len(client.bulk_calls) == 1
        assert [item.title for item in client.bulk_calls[0]] == [
            "Healthcare - Receptionist - Scheduling - Inbound"
        ]
        assert all("Retail" not in o.identifier for o in result.outcomes)

    @pytest.mark.asyncio
    async def test_workflow_jsonl(self, fast_config, workflow_jsonl):
        client = FakeCatalogClient()
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_file(
            workflow_jsonl.encode("utf-8"),
            filename="flows.jsonl",
            item_type="workflow",
        )

        assert result.success_count == 2
        assert [o.title for o in result.outcomes] == ["Invoice Triage", "Lead Router"]

    @pytest.mark.asyncio
    async def test_json_file_in_batches(self, fast_config):
        client = FakeCatalogClient()
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_file(_json_items(25), filename="items.json")

        assert [len(call) for call in client.bulk_calls] == [10, 10, 5]
        assert result.success_count == 25
        assert pipeline.tracker.state.completed_batches == 3
        assert pipeline.tracker.frozen

    @pytest.mark.asyncio
    async def test_failed_batch_aborts_run(self, fast_config):
        client = FakeCatalogClient(fail_batches=[2])
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_file(_json_items(50), filename="items.json")

        assert len(client.bulk_calls) == 2
        assert pipeline.state == RunState.FAILED
        assert result.state == RunState.FAILED
        assert result.success_count == 10
        assert result.failure_count == 10
        assert "Batch 2 of 5 failed" in result.error

    @pytest.mark.asyncio
    async def test_app_csv_analyzes_urls(self, fast_config, app_page_html):
        page = ProxyResponse(success=True, content=app_page_html, content_type="text/html")
        client = FakeCatalogClient(pages={"https://taskflow.test": page})
        pipeline = ImportPipeline(client, fast_config)

        csv_text = "name,url\nFoo,https://taskflow.test\nBar,https://www.missing.test\n"
        result = await pipeline.import_file(csv_text, filename="apps.csv")

        assert client.fetched == ["https://taskflow.test", "https://www.missing.test"]
        titles = [item.title for item in client.bulk_calls[0]]
        assert titles == ["TaskFlow", "App from missing.test"]
        assert client.bulk_calls[0][0].industry == "Productivity"
        assert result.success_count == 2

    @pytest.mark.asyncio
    async def test_malformed_json_fails_run(self, fast_config):
        client = FakeCatalogClient()
        pipeline = ImportPipeline(client, fast_config)

        with pytest.raises(MalformedInputError):
            await pipeline.import_file('[{"name": "A"},', filename="broken.json")

        assert pipeline.state == RunState.FAILED
        assert client.bulk_calls == []

    @pytest.mark.asyncio
    async def test_cancel_after_first_batch(self, fast_config):
        client = FakeCatalogClient()
        pipeline = ImportPipeline(client, fast_config)
        original = client.create_items_bulk

        async def cancelling_bulk(items):
            created = await original(items)
            pipeline.cancel()
            return created

        client.create_items_bulk = cancelling_bulk
        result = await pipeline.import_file(_json_items(50), filename="items.json")

        assert len(client.bulk_calls) == 1
        assert pipeline.state == RunState.CANCELLED
        assert result.cancelled
        assert result.success_count == 10
        assert pipeline.tracker.state.cancelled

    @pytest.mark.asyncio
    async def test_new_run_after_cancel(self, fast_config):
        client = FakeCatalogClient()
        pipeline = ImportPipeline(client, fast_config)
        pipeline.cancel()

        result = await pipeline.import_file(_json_items(3), filename="items.json")

        assert not result.cancelled
        assert result.success_count == 3

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_run(self, fast_config):
        client = FakeCatalogClient()
        pipeline = ImportPipeline(client, fast_config)
        original = client.create_items_bulk
        client.create_items_bulk = AsyncMock(side_effect=RuntimeError("connection reset"))

        with pytest.raises(RuntimeError, match="connection reset"):
            await pipeline.import_file(_json_items(3), filename="items.json")

        assert pipeline.state == RunState.FAILED
        assert pipeline.tracker.frozen

        client.create_items_bulk = original
        result = await pipeline.import_file(_json_items(3), filename="items.json")

        assert result.success_count == 3
        assert pipeline.state == RunState.COMPLETED


class TestPastedJson:
    """Test pasted JSON imports."""

    @pytest.mark.asyncio
    async def test_creates_each_record(self, fast_config):
        client = FakeCatalogClient(fail_titles=["B"])
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_json('{"items": [{"name": "A"}, {"name": "B"}]}')

        assert [item.title for item in client.created] == ["A"]
        assert result.success_count == 1
        assert result.failure_count == 1
        assert pipeline.state == RunState.COMPLETED

    @pytest.mark.asyncio
    async def test_invalid_json(self, fast_config):
        pipeline = ImportPipeline(FakeCatalogClient(), fast_config)

        with pytest.raises(MalformedInputError):
            await pipeline.import_json("{not json")
        assert pipeline.state == RunState.FAILED

    @pytest.mark.asyncio
    async def test_numeric_title(self, fast_config):
        client = FakeCatalogClient()
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_json('[{"title": 123, "description": "x", "url": [1]}]')

        assert result.success_count == 1
        assert client.created[0].title == "123"
        assert client.created[0].source_url is None
        assert pipeline.state == RunState.COMPLETED


class TestSingleUrl:
    """Test single URL imports."""

    @pytest.mark.asyncio
    async def test_html_page(self, fast_config, app_page_html):
        page = ProxyResponse(success=True, content=app_page_html, content_type="text/html")
        client = FakeCatalogClient(pages={"https://taskflow.test": page})
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_url(" https://taskflow.test ")

        assert result.success_count == 1
        item = client.created[0]
        assert item.title == "TaskFlow"
        assert item.source_url == "https://taskflow.test"

    @pytest.mark.asyncio
    async def test_json_content(self, fast_config):
        page = ProxyResponse(
            success=True,
            content='[{"name": "Remote A"}, {"name": "Remote B"}]',
            content_type="application/json; charset=utf-8",
        )
        client = FakeCatalogClient(pages={"https://feed.test/apps.json": page})
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_url("https://feed.test/apps.json")

        assert [item.title for item in client.created] == ["Remote A", "Remote B"]
        assert all(item.source_url == "https://feed.test/apps.json" for item in client.created)
        assert result.success_count == 2

    @pytest.mark.asyncio
    async def test_fetch_failure(self, fast_config):
        client = FakeCatalogClient()
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_url("https://gone.test")

        assert pipeline.state == RunState.FAILED
        assert result.failure_count == 1
        assert result.failed[0].status_code == 404
        assert "404" in result.error
        assert client.created == []

    @pytest.mark.asyncio
    async def test_invalid_url(self, fast_config):
        client = FakeCatalogClient()
        pipeline = ImportPipeline(client, fast_config)

        with pytest.raises(MalformedInputError, match="Invalid URL"):
            await pipeline.import_url("not a url")
        assert client.fetched == []


class TestBulkUrls:
    """Test bulk URL imports."""

    @pytest.mark.asyncio
    async def test_dedup_against_input_and_catalog(self, fast_config):
        client = FakeCatalogClient(
            pages={
                "https://a.test": html_page("<h1>Alpha</h1>"),
                "https://b.test": html_page("<h1>Beta</h1>"),
            },
            existing=[{"id": 1, "originalUrl": "https://c.test"}],
        )
        pipeline = ImportPipeline(client, fast_config)

        text = "https://a.test\nhttps://a.test\n\nhttps://b.test\nhttps://c.test\nftp://x\n"
        result = await pipeline.import_bulk_urls(text)

        assert sorted(client.fetched) == ["https://a.test", "https://b.test"]
        assert sorted(o.title for o in result.succeeded) == ["Alpha", "Beta"]
        assert result.skipped_duplicates == ("https://a.test",)
        assert result.already_registered == ("https://c.test",)
        assert pipeline.state == RunState.COMPLETED

    @pytest.mark.asyncio
    async def test_failed_url_does_not_stop_others(self, fast_config):
        client = FakeCatalogClient(pages={"https://a.test": html_page("<h1>Alpha</h1>")})
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_bulk_urls("https://a.test\nhttps://missing.test\n")

        assert result.success_count == 1
        assert result.failure_count == 1
        assert result.failed[0].identifier == "https://missing.test"
        assert result.failed[0].status_code == 404
        assert pipeline.state == RunState.COMPLETED

    @pytest.mark.asyncio
    async def test_listing_failure_skips_dedup(self, fast_config):
        client = FakeCatalogClient(pages={"https://a.test": html_page("<h1>Alpha</h1>")})
        client.list_items = AsyncMock(side_effect=SubmissionFailure("HTTP 500", 500))
        pipeline = ImportPipeline(client, fast_config)

        result = await pipeline.import_bulk_urls("https://a.test")

        assert result.success_count == 1
        assert result.already_registered == ()

    @pytest.mark.asyncio
    async def test_too_many_urls(self, fast_config):
        fast_config.batching.max_bulk_urls = 2
        pipeline = ImportPipeline(FakeCatalogClient(), fast_config)

        with pytest.raises(MalformedInputError, match="Maximum 2 URLs"):
            await pipeline.import_bulk_urls("https://a.test\nhttps://b.test\nhttps://c.test")
        assert pipeline.state == RunState.FAILED

    @pytest.mark.asyncio
    async def test_no_valid_urls(self, fast_config):
        pipeline = ImportPipeline(FakeCatalogClient(), fast_config)

        with pytest.raises(MalformedInputError, match="at least one valid URL"):
            await pipeline.import_bulk_urls("example.com\n")

    @pytest.mark.asyncio
    async def test_cancel_mid_group_keeps_in_flight_results(self, fast_config):
        urls = [f"https://site{i}.test" for i in range(6)]
        client = FakeCatalogClient(
            pages={url: html_page(f"<h1>Site {i}</h1>") for i, url in enumerate(urls)}
        )
        pipeline = ImportPipeline(client, fast_config)
        original = client.fetch_url

        async def cancelling_fetch(url):
            page = await original(url)
            if len(client.fetched) == 3:
                pipeline.cancel()
            return page

        client.fetch_url = cancelling_fetch
        result = await pipeline.import_bulk_urls("\n".join(urls))

        assert sorted(client.fetched) == urls[:3]
        assert sorted(o.identifier for o in result.succeeded) == urls[:3]
        assert result.failure_count == 0
        assert result.cancelled
        assert pipeline.state == RunState.CANCELLED
        assert pipeline.tracker.state.cancelled

    @pytest.mark.asyncio
    async def test_html_listing_from_real_client(self, fast_config):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            if request.url.path == "/api/items" and request.method == "GET":
                return httpx.Response(200, text="<html><body>Sign in</body></html>")
            if request.url.path == "/api/fetch-proxy":
                return httpx.Response(
                    200,
                    json={
                        "success": True,
                        "content": "<html><body><h1>Alpha</h1></body></html>",
                        "contentType": "text/html",
                    },
                )
            return httpx.Response(201, json={"id": 1, "title": "Alpha"})

        client = CatalogClient(
            "https://hub.test/api", transport=httpx.MockTransport(handler), backoff=0
        )
        pipeline = ImportPipeline(client, fast_config)
        try:
            result = await pipeline.import_bulk_urls("https://a.test")
        finally:
            await client.close()

        assert result.success_count == 1
        assert result.succeeded[0].title == "Alpha"
        assert result.already_registered == ()
        assert pipeline.state == RunState.COMPLETED
        assert ("POST", "/api/items") in seen
