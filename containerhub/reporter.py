"""
Final import summaries.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .models import ImportOrigin, ImportOutcome, ImportResult, ItemType, RunState


class FailureCategory(str, Enum):
    """Coarse grouping of failure reasons."""

    NOT_FOUND = "not found"
    ACCESS_DENIED = "access denied"
    SERVER_ERROR = "server error"
    OTHER = "other"


CATEGORY_HINTS = {
    FailureCategory.NOT_FOUND: (
        "The URL was not found (404). Please check the URL and try again."
    ),
    FailureCategory.ACCESS_DENIED: (
        "Access to this URL is forbidden (403). The site may require authentication."
    ),
    FailureCategory.SERVER_ERROR: (
        "The server is experiencing issues (500). Try again later."
    ),
    FailureCategory.OTHER: "Please check the source and try again.",
}

_MESSAGE_PATTERNS = (
    (FailureCategory.NOT_FOUND, ("404", "not found")),
    (
        FailureCategory.ACCESS_DENIED,
        ("401", "403", "forbidden", "unauthorized", "access denied"),
    ),
    (
        FailureCategory.SERVER_ERROR,
        ("500", "502", "503", "504", "server error", "internal server"),
    ),
)


def classify_failure(
    status_code: Optional[int] = None, message: str = ""
) -> FailureCategory:
    """
    Classify a failure by status code, falling back to its message.

    Args:
        status_code: HTTP status of the failed call, if known
        message: Exception or proxy message

    Returns:
        FailureCategory for grouping in the summary
    """
    if status_code is not None:
        if status_code == 404:
            return FailureCategory.NOT_FOUND
        if status_code in (401, 403):
            return FailureCategory.ACCESS_DENIED
        if status_code >= 500:
            return FailureCategory.SERVER_ERROR
        return FailureCategory.OTHER

    lowered = (message or "").lower()
    for category, needles in _MESSAGE_PATTERNS:
        if any(needle in lowered for needle in needles):
            return category
    return FailureCategory.OTHER


@dataclass
class ImportReport:
    """Rendered-ready view of an ImportResult."""

    item_type: ItemType
    mode: ImportOrigin
    state: RunState
    success_count: int
    failure_count: int
    skipped_duplicates: List[str] = field(default_factory=list)
    already_registered: List[str] = field(default_factory=list)
    failures_by_category: Dict[FailureCategory, List[ImportOutcome]] = field(
        default_factory=dict
    )
    cancelled: bool = False
    error: str = ""

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_duplicates) + len(self.already_registered)

    @property
    def headline(self) -> str:
        noun = self.item_type.value
        plural = "s" if self.success_count != 1 else ""
        if self.cancelled:
            return (
                f"Import cancelled: {self.success_count} {noun}{plural} "
                "imported before stopping"
            )
        if self.state == RunState.FAILED:
            return f"Import failed after {self.success_count} {noun}{plural}"
        if self.failure_count:
            return (
                f"{self.success_count} {noun}{plural} imported, "
                f"{self.failure_count} failed"
            )
        return f"{self.success_count} {noun}{plural} imported successfully"


def build_report(
    result: ImportResult, item_type: ItemType, mode: ImportOrigin
) -> ImportReport:
    """Summarize ``result`` for the given item type and import mode."""
    grouped: Dict[FailureCategory, List[ImportOutcome]] = OrderedDict()
    for outcome in result.failed:
        category = classify_failure(outcome.status_code, outcome.reason)
        grouped.setdefault(category, []).append(outcome)

    return ImportReport(
        item_type=item_type,
        mode=mode,
        state=result.state,
        success_count=result.success_count,
        failure_count=result.failure_count,
        skipped_duplicates=list(result.skipped_duplicates),
        already_registered=list(result.already_registered),
        failures_by_category=grouped,
        cancelled=result.cancelled,
        error=result.error,
    )


def render_report(report: ImportReport) -> str:
    """Render the terminal summary for ``report``."""
    lines = [
        "=" * 80,
        f"🏁 IMPORT SUMMARY ({report.mode.value}, {report.item_type.value})",
        "=" * 80,
        "📊 STATISTICS:",
        f"   ✅ Imported: {report.success_count}",
        f"   ❌ Failed: {report.failure_count}",
        f"   ⏭  Skipped: {report.skipped_count}",
    ]

    if report.cancelled:
        lines.append("\n🛑 CANCELLED: no further items were submitted")

    if report.error:
        lines.append(f"\n🚨 ERROR: {report.error}")

    for category, outcomes in report.failures_by_category.items():
        lines.append(f"\n❌ FAILURES: {category.value.upper()} ({len(outcomes)}):")
        for i, outcome in enumerate(outcomes, 1):
            lines.append(f"   {i}. {outcome.identifier}: {outcome.reason}")
        lines.append(f"   {CATEGORY_HINTS[category]}")

    if report.already_registered:
        lines.append(f"\n🔗 ALREADY REGISTERED ({len(report.already_registered)}):")
        for i, url in enumerate(report.already_registered, 1):
            lines.append(f"   {i}. {url}")

    if report.skipped_duplicates:
        lines.append(f"\n🔁 DUPLICATES IN INPUT ({len(report.skipped_duplicates)}):")
        for i, url in enumerate(report.skipped_duplicates, 1):
            lines.append(f"   {i}. {url}")

    lines.append(f"\n{report.headline}")
    lines.append("=" * 80)
    return "\n".join(lines)


def print_summary(report: ImportReport) -> None:
    """Print the terminal summary."""
    print("\n" + render_report(report))
