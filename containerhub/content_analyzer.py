"""
Heuristic analysis of fetched web pages.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from bs4 import BeautifulSoup

from .models import truncate
from .url_utils import extract_hostname

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Web Application"

# Ordered keyword families matched against button labels and headings.
# Earlier families win.
CATEGORY_RULES: Tuple[Tuple[str, Tuple[str, ...], Tuple[str, ...]], ...] = (
    ("Drawing/Graphics", ("draw", "paint", "brush"), ("canvas drawing", "graphics tools")),
    ("Media Player", ("play", "pause"), ("video playback", "media controls")),
    ("Communication", ("chat", "send", "message"), ("messaging", "real-time communication")),
    ("Productivity", ("task", "todo", "complete"), ("task tracking", "productivity management")),
    (
        "Calendar/Scheduling",
        ("calendar", "schedule", "event"),
        ("event scheduling", "calendar management"),
    ),
    ("Data Management", (), ("form handling", "data collection")),
    ("Editor", ("edit", "save", "code"), ("text editing", "code management")),
    ("Analytics/Dashboard", ("chart", "graph"), ("data visualization", "analytics")),
)

_INDEX_TOKEN = re.compile(r"\bindex\b", re.IGNORECASE)
_LOCALHOST_PORT = re.compile(r"localhost:\d+")
_INDEX_FILE = re.compile(r"index\.html?")


@dataclass
class ContentAnalysis:
    """Title, description, category and feature tags inferred for a page."""

    title: str
    description: str
    category: str = DEFAULT_CATEGORY
    features: List[str] = field(default_factory=list)


@dataclass
class _PageSignals:
    headings: List[str]
    buttons: List[str]
    input_count: int
    has_canvas: bool
    has_video: bool
    has_form: bool
    has_chart: bool


class ContentAnalyzer:
    """Infers catalog metadata from HTML markup."""

    def __init__(self, min_description_length: int = 20, snippet_length: int = 150):
        """
        Initialize content analyzer.

        Args:
            min_description_length: Extracted descriptions shorter than this
                are replaced by a synthesized one
            snippet_length: Length of the first-paragraph fallback
        """
        self.min_description_length = min_description_length
        self.snippet_length = snippet_length

    def analyze(self, html: str, url: str) -> ContentAnalysis:
        """
        Analyze page markup.

        Args:
            html: Page markup as returned by the fetch proxy
            url: Source URL of the page

        Returns:
            ContentAnalysis; the generic bundle when the markup is unusable
        """
        try:
            soup = BeautifulSoup(html or "", "html.parser")
            signals = self._collect_signals(soup)
            category, features = self._categorize(signals)
            title = self._extract_title(soup, signals.headings, url)
            description = self._extract_description(soup, signals, category, features)
            return ContentAnalysis(
                title=title,
                description=description,
                category=category,
                features=features,
            )
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to analyze content from {url}: {e}")
            return self.fallback(url)

    def fallback(self, url: str) -> ContentAnalysis:
        """Generic bundle used when nothing could be inferred."""
        return ContentAnalysis(
            title=self._host_title(url),
            description=self._generic_description(DEFAULT_CATEGORY),
        )

    def _collect_signals(self, soup: BeautifulSoup) -> _PageSignals:
        headings = [
            h.get_text(" ", strip=True) for h in soup.find_all(["h1", "h2", "h3"])
        ]
        buttons = [
            b.get_text(" ", strip=True).lower()
            for b in soup.select('button, .btn, [role="button"]')
        ]
        return _PageSignals(
            headings=[h for h in headings if h],
            buttons=[b for b in buttons if b],
            input_count=len(soup.find_all(["input", "textarea", "select"])),
            has_canvas=soup.find("canvas") is not None,
            has_video=soup.find("video") is not None,
            has_form=soup.find("form") is not None,
            has_chart=bool(soup.select(".chart, .graph")),
        )

    def _categorize(self, signals: _PageSignals) -> Tuple[str, List[str]]:
        labels = signals.buttons + [h.lower() for h in signals.headings]

        for category, keywords, features in CATEGORY_RULES:
            if self._matches(category, keywords, labels, signals):
                return category, list(features)

        return DEFAULT_CATEGORY, []

    @staticmethod
    def _matches(
        category: str,
        keywords: Sequence[str],
        labels: Sequence[str],
        signals: _PageSignals,
    ) -> bool:
        if category == "Drawing/Graphics" and signals.has_canvas:
            return True
        if category == "Media Player" and signals.has_video:
            return True
        if category == "Data Management":
            return signals.input_count > 3 or signals.has_form
        if category == "Analytics/Dashboard" and signals.has_chart:
            return True
        return any(keyword in label for label in labels for keyword in keywords)

    def _extract_title(self, soup: BeautifulSoup, headings: List[str], url: str) -> str:
        """Extract title from soup, skipping dev-server placeholders."""
        candidates = [
            self._tag_text(soup.find("title")),
            self._meta_content(soup, "property", "og:title"),
            self._meta_content(soup, "name", "twitter:title"),
            headings[0] if headings else "",
        ]

        for candidate in candidates:
            if not candidate:
                continue
            if "localhost" in candidate or _INDEX_TOKEN.search(candidate):
                continue
            title = _INDEX_FILE.sub("", _LOCALHOST_PORT.sub("", candidate)).strip()
            if title:
                return title

        return self._host_title(url)

    def _extract_description(
        self,
        soup: BeautifulSoup,
        signals: _PageSignals,
        category: str,
        features: List[str],
    ) -> str:
        """Extract description from meta tags, synthesizing one when too short."""
        description = (
            self._meta_content(soup, "name", "description")
            or self._meta_content(soup, "property", "og:description")
            or self._meta_content(soup, "name", "twitter:description")
        )
        if len(description) >= self.min_description_length:
            return description

        description = self._synthesize(signals, category, features)

        if len(description) < 50:
            paragraph = self._tag_text(soup.find("p"))
            if len(paragraph) > self.min_description_length:
                description = truncate(paragraph, self.snippet_length)

        return description or self._generic_description(category)

    @staticmethod
    def _synthesize(signals: _PageSignals, category: str, features: List[str]) -> str:
        kind = category.lower()
        noun = kind if kind.endswith("application") else f"{kind} application"
        description = f"A {noun}"
        if features:
            description += f" with {', '.join(features)}"
        description += "."

        if signals.buttons:
            description += f" Features include: {', '.join(signals.buttons[:3])}."

        if signals.headings and signals.headings[0] not in description:
            description += f" - {signals.headings[0]}"

        return description.strip()

    @staticmethod
    def _generic_description(category: str) -> str:
        return (
            f"A {category.lower()} with interactive features "
            "and modern web technologies."
        )

    @staticmethod
    def _host_title(url: str) -> str:
        host = extract_hostname(url)
        return f"{host} App" if host else DEFAULT_CATEGORY

    @staticmethod
    def _tag_text(tag) -> str:
        if tag is None:
            return ""
        return tag.get_text(" ", strip=True)

    @staticmethod
    def _meta_content(soup: BeautifulSoup, attr: str, value: str) -> str:
        tag = soup.find("meta", attrs={attr: value})
        if tag and tag.get("content"):
            return tag["content"].strip()
        return ""

