"""
Data models and types for catalog imports.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


class ItemType(str, Enum):
    """Kinds of catalog items."""

    APP = "app"
    VOICE = "voice"
    WORKFLOW = "workflow"

    @classmethod
    def parse(cls, value: "ItemType | str") -> "ItemType":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class Visibility(str, Enum):
    """Who can see a catalog item."""

    PUBLIC = "public"
    RESTRICTED = "restricted"
    ADMIN_ONLY = "admin_only"

    @classmethod
    def parse(cls, value: Any) -> "Visibility":
        """Coerce loose input, falling back to public."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.PUBLIC


class ImportOrigin(str, Enum):
    """Where an import run got its payload from."""

    FILE = "file"
    URL = "url"
    JSON = "json"
    BULK_URLS = "bulk-urls"


class SourceFormat(str, Enum):
    """Concrete payload format of a source."""

    JSON = "json"
    JSONL = "jsonl"
    CSV = "csv"
    HTML = "html"
    URLS = "urls"


class RunState(str, Enum):
    """Lifecycle of a single import run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED)


@dataclass
class ImportSourceRecord:
    """Raw record produced by a format parser, before normalization."""

    data: Dict[str, Any]
    origin: ImportOrigin = ImportOrigin.FILE
    index: int = 0
    source_format: SourceFormat = SourceFormat.JSON

    def get(self, *keys: str, default: Any = None) -> Any:
        """Return the first non-empty value among several candidate keys."""
        for key in keys:
            value = self.data.get(key)
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            return value
        return default

    def text(self, *keys: str, default: str = "") -> str:
        """Like ``get`` but only accepts scalars, returned as stripped text.

        Lists and objects under a key are ignored so the next key is tried.
        """
        for key in keys:
            value = self.data.get(key)
            if isinstance(value, (dict, list, tuple)) or value is None:
                continue
            text = str(value).strip()
            if text:
                return text
        return default


def ordered_tags(*groups: Iterable[Any]) -> List[str]:
    """Merge tag groups into an ordered set, dropping blanks."""
    tags: List[str] = []
    for group in groups:
        for tag in group or []:
            if tag is None:
                continue
            text = str(tag).strip()
            if text and text not in tags:
                tags.append(text)
    return tags


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, adding an ellipsis when cut."""
    text = text or ""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


@dataclass
class NormalizedItem:
    """Canonical record ready for submission to the catalog."""

    title: str
    item_type: ItemType
    description: str = ""
    full_instructions: str = ""
    industry: str = ""
    department: str = ""
    visibility: Visibility = Visibility.PUBLIC
    tags: List[str] = field(default_factory=list)
    source_url: Optional[str] = None
    is_marketplace_item: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.title = str(self.title or "").strip()
        if not self.title:
            self.title = f"Imported {self.item_type.value.capitalize()}"
        if not self.full_instructions:
            self.full_instructions = self.description
        self.tags = ordered_tags(self.tags)

    @property
    def identifier(self) -> str:
        """URL when present, otherwise the title."""
        return self.source_url or self.title

    def to_payload(self) -> Dict[str, Any]:
        """Render the JSON body expected by the catalog service."""
        payload: Dict[str, Any] = dict(self.metadata)
        payload.update(
            {
                "title": self.title,
                "description": self.description,
                "fullInstructions": self.full_instructions,
                "type": self.item_type.value,
                "industry": self.industry,
                "department": self.department,
                "visibility": self.visibility.value,
                "tags": list(self.tags),
                "url": self.source_url or "",
                "isMarketplace": self.is_marketplace_item,
            }
        )
        return payload


@dataclass
class ImportBatch:
    """A contiguous slice of items submitted together."""

    index: int
    items: List[NormalizedItem]
    started_at: float = 0.0
    finished_at: float = 0.0
    created_count: int = 0

    def start(self) -> None:
        self.started_at = time.monotonic()

    def finish(self, created_count: int) -> None:
        self.finished_at = time.monotonic()
        self.created_count = created_count

    @property
    def duration_ms(self) -> float:
        if not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at) * 1000

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class ImportOutcome:
    """Result of one attempted record."""

    identifier: str
    success: bool
    title: str = ""
    reason: str = ""
    status_code: Optional[int] = None


@dataclass(frozen=True)
class ImportResult:
    """Final summary of an import run."""

    outcomes: Tuple[ImportOutcome, ...] = ()
    skipped_duplicates: Tuple[str, ...] = ()
    already_registered: Tuple[str, ...] = ()
    cancelled: bool = False
    state: RunState = RunState.COMPLETED
    error: str = ""

    @property
    def succeeded(self) -> List[ImportOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[ImportOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_duplicates) + len(self.already_registered)

    @classmethod
    def build(
        cls,
        outcomes: Iterable[ImportOutcome],
        *,
        skipped_duplicates: Iterable[str] = (),
        already_registered: Iterable[str] = (),
        cancelled: bool = False,
        state: RunState = RunState.COMPLETED,
        error: str = "",
    ) -> "ImportResult":
        return cls(
            outcomes=tuple(outcomes),
            skipped_duplicates=tuple(skipped_duplicates),
            already_registered=tuple(already_registered),
            cancelled=cancelled,
            state=state,
            error=error,
        )

    def to_dict(self) -> Mapping[str, Any]:
        return {
            "state": self.state.value,
            "cancelled": self.cancelled,
            "succeeded": [
                {"identifier": o.identifier, "title": o.title} for o in self.succeeded
            ],
            "failed": [
                {"identifier": o.identifier, "reason": o.reason} for o in self.failed
            ],
            "skipped_duplicates": list(self.skipped_duplicates),
            "already_registered": list(self.already_registered),
            "error": self.error,
        }
