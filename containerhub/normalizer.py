"""
Conversion of raw source records into catalog items.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable, List, Optional

from .content_analyzer import ContentAnalysis
from .errors import RecordSkipped
from .models import (
    ImportOrigin,
    ImportSourceRecord,
    ItemType,
    NormalizedItem,
    SourceFormat,
    Visibility,
    ordered_tags,
    truncate,
)
from .url_utils import extract_hostname

logger = logging.getLogger(__name__)

# Keys consumed by the generic mapping; everything else is passed through.
_GENERIC_KEYS = {
    "title",
    "name",
    "description",
    "fullInstructions",
    "full_instructions",
    "type",
    "industry",
    "department",
    "visibility",
    "tags",
    "url",
    "link",
    "originalUrl",
    "sourceUrl",
    "isMarketplace",
}


def _clean(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.replace('"', "").strip()
    return str(value)


class ItemNormalizer:
    """Maps format-specific records onto NormalizedItem."""

    def __init__(
        self, min_prompt_length: int = 50, description_max_length: int = 500
    ):
        """
        Initialize normalizer.

        Args:
            min_prompt_length: Shortest voice prompt accepted
            description_max_length: Length of the list-display description
        """
        self.min_prompt_length = min_prompt_length
        self.description_max_length = description_max_length

    def normalize_all(
        self, records: Iterable[ImportSourceRecord], item_type: ItemType
    ) -> List[NormalizedItem]:
        """Normalize records, silently dropping those that fail quality gates."""
        items: List[NormalizedItem] = []
        skipped = 0
        for record in records:
            try:
                items.append(self.normalize(record, item_type))
            except RecordSkipped as e:
                skipped += 1
                logger.debug(f"Skipping record {e.index}: {e.reason}")
        if skipped:
            logger.info(f"Skipped {skipped} records that failed quality checks")
        return items

    def normalize(
        self, record: ImportSourceRecord, item_type: ItemType
    ) -> NormalizedItem:
        """Normalize one record; raises RecordSkipped for low quality input."""
        if item_type == ItemType.VOICE:
            return self._voice_item(record)
        if item_type == ItemType.WORKFLOW and record.source_format == SourceFormat.JSONL:
            return self._workflow_item(record)
        if record.source_format in (SourceFormat.CSV, SourceFormat.URLS):
            return self.fallback_for_url(
                record.text("url"),
                item_type,
                record.source_format,
                record.origin,
            )
        return self._generic_item(record, item_type)

    def _voice_item(self, record: ImportSourceRecord) -> NormalizedItem:
        industry = record.text("Industry", "industry", default="General")
        job_title = record.text(
            "Job_Title", "job_title", "jobTitle", default="Professional"
        )
        job_task = record.text("Job_Task", "job_task", "jobTask", default="Task")
        agent_type = record.text(
            "AI_Voice_Agent_Type",
            "ai_voice_agent_type",
            "aiVoiceAgentType",
            default="",
        )
        prompt = record.text(
            "ElevenLabs_Complete_Prompt",
            "elevenlabs_complete_prompt",
            "prompt",
            "description",
            default="",
        )

        if len(prompt) < self.min_prompt_length:
            raise RecordSkipped(
                f"prompt shorter than {self.min_prompt_length} characters",
                index=record.index,
            )

        title = " - ".join(
            part for part in (industry, job_title, job_task, agent_type) if part
        )
        metadata = {
            "aiVoiceAgentType": agent_type,
            "experienceLevel": "Professional",
            "productivityGains": _clean(
                record.get("Productivity_Gains", "productivity_gains", default="")
            ),
            "roiPotential": _clean(
                record.get("ROI_Potential", "roi_potential", default="")
            ),
            "efficiencyImprovements": _clean(
                record.get(
                    "Efficiency_Improvements", "efficiency_improvements", default=""
                )
            ),
        }
        if record.source_format == SourceFormat.CSV:
            metadata.update(
                {
                    "personality": _clean(record.get("Personality_Profile", default="")),
                    "specialization": _clean(
                        record.get("Knowledge_Requirements", default="")
                    ),
                    "useCase": _clean(record.get("Use_Case", default="")),
                    "implementationNotes": _clean(
                        record.get("Implementation_Notes", default="")
                    ),
                }
            )

        return NormalizedItem(
            title=title,
            item_type=ItemType.VOICE,
            description=truncate(prompt, self.description_max_length),
            full_instructions=prompt,
            industry=industry,
            department=job_title,
            visibility=Visibility.PUBLIC,
            tags=ordered_tags(
                [industry, job_title, agent_type],
                self._provenance(record.source_format, record.origin),
                ["11labs"],
            ),
            metadata=metadata,
        )

    def _workflow_item(self, record: ImportSourceRecord) -> NormalizedItem:
        name = record.text(
            "Prompt_Name", "prompt_name", "title", "name", default="Automation Workflow"
        )
        what_it_does = record.text("What_it_does", "what_it_does", "description")
        industry = record.text("Industry", "industry", default="Business")
        department = record.text("Department", "department")

        return NormalizedItem(
            title=name,
            item_type=ItemType.WORKFLOW,
            description=truncate(what_it_does, self.description_max_length),
            full_instructions=json.dumps(record.data, indent=2, ensure_ascii=False),
            industry=industry,
            department=department,
            visibility=Visibility.PUBLIC,
            tags=ordered_tags(
                [industry, department],
                self._provenance(record.source_format, record.origin),
                ["automation"],
            ),
            metadata={
                "whyItMatters": record.get("Why_It_matters", "why_it_matters", default=""),
                "timeComparison": record.get(
                    "Avg._time_spent_manual_vs_automatic", "time_comparison", default=""
                ),
                "visualFlowchart": record.get(
                    "Visual_Flowchart", "visual_flowchart", default=""
                ),
                "workflowJson": record.get("Workflow_JSON", "workflow_json", default=""),
            },
        )

    def _generic_item(
        self, record: ImportSourceRecord, item_type: ItemType
    ) -> NormalizedItem:
        description = record.text("description")
        raw_tags = record.get("tags", default=[])
        if isinstance(raw_tags, str):
            raw_tags = raw_tags.split(",")
        elif not isinstance(raw_tags, list):
            raw_tags = []

        full_instructions = record.text("fullInstructions", "full_instructions")
        if not full_instructions and record.source_format == SourceFormat.JSONL:
            full_instructions = json.dumps(record.data, indent=2, ensure_ascii=False)

        return NormalizedItem(
            title=record.text("title", "name", default="Imported Container"),
            item_type=item_type,
            description=truncate(description, self.description_max_length),
            full_instructions=full_instructions or description,
            industry=record.text("industry"),
            department=record.text("department"),
            visibility=Visibility.parse(record.get("visibility", default="public")),
            tags=ordered_tags(
                raw_tags, self._provenance(record.source_format, record.origin)
            ),
            source_url=record.text("url", "link", "originalUrl", "sourceUrl") or None,
            metadata={
                key: value
                for key, value in record.data.items()
                if key not in _GENERIC_KEYS
            },
        )

    def from_analysis(
        self,
        analysis: ContentAnalysis,
        url: str,
        item_type: ItemType,
        source_format: SourceFormat,
        origin: ImportOrigin,
    ) -> NormalizedItem:
        """Build an item from a fetched page's content analysis."""
        return NormalizedItem(
            title=analysis.title,
            item_type=item_type,
            description=analysis.description,
            industry=analysis.category,
            tags=ordered_tags(
                self._provenance(source_format, origin),
                [analysis.category.lower()],
                analysis.features,
            ),
            source_url=url,
        )

    def fallback_for_url(
        self,
        url: str,
        item_type: ItemType,
        source_format: SourceFormat,
        origin: ImportOrigin,
        position: Optional[int] = None,
    ) -> NormalizedItem:
        """Item used when a URL could not be analyzed."""
        host = extract_hostname(url)
        if host:
            title = f"App from {host}"
            description = f"Application imported from {url}"
            industry = "Web Application"
        else:
            title = f"App {position + 1}" if position is not None else "Imported App"
            description = f"Application from {url}"
            industry = ""
        return NormalizedItem(
            title=title,
            item_type=item_type,
            description=description,
            industry=industry,
            tags=self._provenance(source_format, origin),
            source_url=url or None,
        )

    @staticmethod
    def _provenance(source_format: SourceFormat, origin: ImportOrigin) -> List[str]:
        return ["imported", source_format.value, origin.value]
