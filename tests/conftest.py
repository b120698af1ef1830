"""
Pytest configuration and fixtures.
"""

import asyncio
import json
from typing import Dict, List, Optional, Sequence, Union

import pytest

from containerhub.client import ProxyResponse
from containerhub.config_manager import ImportConfig
from containerhub.errors import FetchFailure, SubmissionFailure
from containerhub.models import ItemType, NormalizedItem


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCatalogClient:
    """In-memory stand-in for CatalogClient."""

    def __init__(
        self,
        pages: Optional[Dict[str, Union[ProxyResponse, Exception]]] = None,
        existing: Optional[List[dict]] = None,
        fail_batches: Sequence[int] = (),
        fail_titles: Sequence[str] = (),
    ):
        self.pages = pages or {}
        self.existing = existing or []
        self.fail_batches = set(fail_batches)
        self.fail_titles = set(fail_titles)
        self.bulk_calls: List[List[NormalizedItem]] = []
        self.created: List[NormalizedItem] = []
        self.fetched: List[str] = []
        self.list_calls = 0
        self.closed = False

    async def __aenter__(self) -> "FakeCatalogClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.closed = True

    async def create_items_bulk(self, items: Sequence[NormalizedItem]) -> int:
        await asyncio.sleep(0)
        self.bulk_calls.append(list(items))
        if len(self.bulk_calls) in self.fail_batches:
            raise SubmissionFailure("HTTP 500: Internal Server Error", status_code=500)
        return len(items)

    async def create_item(self, item: NormalizedItem) -> dict:
        await asyncio.sleep(0)
        if item.title in self.fail_titles:
            raise SubmissionFailure("HTTP 403: Forbidden", status_code=403)
        self.created.append(item)
        return {"id": len(self.created), "title": item.title}

    async def list_items(self) -> List[dict]:
        self.list_calls += 1
        return list(self.existing)

    async def fetch_url(self, url: str) -> ProxyResponse:
        await asyncio.sleep(0)
        self.fetched.append(url)
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        if page is None:
            raise FetchFailure(url, "Failed to fetch URL: 404 Not Found", status_code=404)
        return page


def html_page(body: str, head: str = "") -> ProxyResponse:
    """Proxy reply carrying an HTML document."""
    return ProxyResponse(
        success=True,
        content=f"<html><head>{head}</head><body>{body}</body></html>",
        content_type="text/html; charset=utf-8",
    )


def make_items(count: int, item_type: ItemType = ItemType.APP) -> List[NormalizedItem]:
    """Numbered items with distinct URLs."""
    return [
        NormalizedItem(
            title=f"Item {i}",
            item_type=item_type,
            description=f"Description for item {i}",
            source_url=f"https://example{i}.test",
        )
        for i in range(count)
    ]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_config() -> ImportConfig:
    """Default configuration without pacing delays or console output."""
    config = ImportConfig.default()
    config.batching.batch_delay = 0
    config.batching.group_delay = 0
    config.display.show_progress = False
    return config


@pytest.fixture
def voice_prompt() -> str:
    return (
        "You are a friendly scheduling assistant for a dental clinic. Greet callers, "
        "confirm their identity and book, move or cancel appointments."
    )


@pytest.fixture
def voice_csv(voice_prompt) -> str:
    """Voice agent export with one good and one too-short prompt."""
    header = (
        "Industry,Job_Title,Job_Task,AI_Voice_Agent_Type,ElevenLabs_Complete_Prompt,"
        "Productivity_Gains,ROI_Potential,Efficiency_Improvements,Personality_Profile,"
        "Knowledge_Requirements,Use_Case,Implementation_Notes"
    )
    good = (
        f'Healthcare,Receptionist,Scheduling,Inbound,"{voice_prompt}",'
        '"30%","High","Fewer missed calls",Warm,Clinic hours,Front desk,None'
    )
    short = "Retail,Clerk,Returns,Outbound,Too short to be a usable prompt text!,,,,,,,"
    return "\n".join([header, good, short]) + "\n"


@pytest.fixture
def workflow_jsonl() -> str:
    records = [
        {
            "Prompt_Name": "Invoice Triage",
            "What_it_does": "Sorts incoming invoices by vendor and due date.",
            "Why_It_matters": "Late fees",
            "Avg._time_spent_manual_vs_automatic": "2h vs 5m",
            "Industry": "Finance",
        },
        {
            "Prompt_Name": "Lead Router",
            "What_it_does": "Routes new leads to the right sales rep.",
        },
    ]
    return "\n".join(json.dumps(record) for record in records) + "\n"


@pytest.fixture
def app_page_html() -> str:
    """Markup of a simple task tracker page."""
    return """
    <html>
        <head>
            <title>TaskFlow</title>
            <meta name="description" content="Track your team's tasks in one place.">
        </head>
        <body>
            <h1>TaskFlow Board</h1>
            <button>Add task</button>
            <button>Complete</button>
            <p>Organize work across projects with boards and lists.</p>
        </body>
    </html>
    """
