"""
Format parsers turning raw import payloads into source records.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Union

from .errors import MalformedInputError
from .models import ImportOrigin, ImportSourceRecord, ItemType, SourceFormat

logger = logging.getLogger(__name__)

Payload = Union[str, bytes]

# Positional layout of voice agent CSV exports.
VOICE_CSV_COLUMNS = (
    "Industry",
    "Job_Title",
    "Job_Task",
    "AI_Voice_Agent_Type",
    "ElevenLabs_Complete_Prompt",
    "Productivity_Gains",
    "ROI_Potential",
    "Efficiency_Improvements",
    "Personality_Profile",
    "Knowledge_Requirements",
    "Use_Case",
    "Implementation_Notes",
)

URL_COLUMN_HINTS = ("url", "link", "source", "app")

WRAPPER_KEYS = ("containers", "items")

_EXTENSION_FORMATS = {
    ".json": SourceFormat.JSON,
    ".jsonl": SourceFormat.JSONL,
    ".ndjson": SourceFormat.JSONL,
    ".csv": SourceFormat.CSV,
    ".html": SourceFormat.HTML,
    ".htm": SourceFormat.HTML,
    ".txt": SourceFormat.URLS,
}


def decode_payload(payload: Payload) -> str:
    """Return payload text, decoding bytes as UTF-8 (BOM tolerated)."""
    if isinstance(payload, bytes):
        return payload.decode("utf-8-sig", errors="replace")
    if payload.startswith("\ufeff"):
        return payload[1:]
    return payload


def sniff_format(
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    payload: Optional[Payload] = None,
) -> SourceFormat:
    """
    Work out the payload format from a filename, content type or the text.

    Args:
        filename: Name of the uploaded file, if any
        content_type: MIME type reported by the server, if any
        payload: Raw payload used as a last resort

    Returns:
        Detected SourceFormat
    """
    if filename:
        ext = os.path.splitext(filename)[1].lower()
        if ext in _EXTENSION_FORMATS:
            return _EXTENSION_FORMATS[ext]

    if content_type:
        lowered = content_type.lower()
        if "ndjson" in lowered or "jsonl" in lowered:
            return SourceFormat.JSONL
        if "json" in lowered:
            return SourceFormat.JSON
        if "csv" in lowered:
            return SourceFormat.CSV
        if "html" in lowered:
            return SourceFormat.HTML

    if payload is not None:
        text = decode_payload(payload).strip()
        if text.startswith("["):
            return SourceFormat.JSON
        if text.startswith("{"):
            lines = [line for line in text.splitlines() if line.strip()]
            if len(lines) > 1 and all(line.strip().startswith("{") for line in lines):
                return SourceFormat.JSONL
            return SourceFormat.JSON
        if text.startswith("<"):
            return SourceFormat.HTML
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if lines and all(line.startswith("http") for line in lines):
            return SourceFormat.URLS

    return SourceFormat.CSV


def _unwrap(data: Any) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in WRAPPER_KEYS:
            if isinstance(data.get(key), list):
                return data[key]
        return [data]
    raise MalformedInputError("JSON payload must be an object or an array of objects")


def parse_json(
    payload: Payload, origin: ImportOrigin = ImportOrigin.FILE
) -> List[ImportSourceRecord]:
    """Parse a JSON object, array, or ``{"containers": [...]}`` wrapper."""
    text = decode_payload(payload)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Invalid JSON: {e.msg}", line=e.lineno) from e

    records = []
    for index, entry in enumerate(_unwrap(data)):
        if not isinstance(entry, dict):
            raise MalformedInputError(f"JSON record {index + 1} is not an object")
        records.append(
            ImportSourceRecord(
                data=entry, origin=origin, index=index, source_format=SourceFormat.JSON
            )
        )
    logger.debug(f"Parsed {len(records)} records from JSON")
    return records


def parse_jsonl(
    payload: Payload, origin: ImportOrigin = ImportOrigin.FILE
) -> List[ImportSourceRecord]:
    """Parse one JSON object per line; bad lines are dropped."""
    text = decode_payload(payload)
    records = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Dropping unparseable JSONL line {line_number}: {e.msg}")
            continue
        if not isinstance(entry, dict):
            logger.warning(f"Dropping JSONL line {line_number}: not an object")
            continue
        records.append(
            ImportSourceRecord(
                data=entry,
                origin=origin,
                index=line_number,
                source_format=SourceFormat.JSONL,
            )
        )
    logger.info(f"Parsed {len(records)} objects from JSONL")
    return records


def parse_csv_rows(payload: Payload) -> List[List[str]]:
    """
    Split CSV text into rows of fields.

    Handles quoted fields with embedded commas and newlines, doubled quotes
    and CRLF terminators. Whitespace around unquoted fields is trimmed while
    quoted content is kept verbatim. Blank rows are dropped.

    Args:
        payload: CSV text or bytes

    Returns:
        List of rows, each a list of field strings
    """
    text = decode_payload(payload)
    rows: List[List[str]] = []
    row: List[str] = []
    field: List[str] = []
    in_quotes = False
    quoted = False
    line = 1
    quote_line = 1
    i = 0
    length = len(text)

    def finish_field() -> None:
        value = "".join(field)
        row.append(value if quoted else value.strip())

    while i < length:
        char = text[i]

        if char == '"':
            if in_quotes and i + 1 < length and text[i + 1] == '"':
                field.append('"')
                i += 2
                continue
            if in_quotes:
                in_quotes = False
            else:
                if "".join(field).strip():
                    # Stray quote inside an unquoted field
                    field.append(char)
                else:
                    field.clear()
                    in_quotes = True
                    quoted = True
                    quote_line = line
        elif char == "," and not in_quotes:
            finish_field()
            field.clear()
            quoted = False
        elif char in "\r\n" and not in_quotes:
            finish_field()
            if any(value for value in row):
                rows.append(list(row))
            row.clear()
            field.clear()
            quoted = False
            if char == "\r" and i + 1 < length and text[i + 1] == "\n":
                i += 1
            line += 1
        else:
            if char == "\n":
                line += 1
            if quoted and not in_quotes:
                if not char.isspace():
                    field.append(char)
            else:
                field.append(char)
        i += 1

    if in_quotes:
        raise MalformedInputError("Unterminated quoted CSV field", line=quote_line)

    if field or row:
        finish_field()
        if any(value for value in row):
            rows.append(list(row))

    return rows


def find_url_column(headers: Sequence[str]) -> int:
    """Index of the first header naming a URL-bearing column, or -1."""
    for index, header in enumerate(headers):
        name = header.strip().lower()
        if any(hint in name for hint in URL_COLUMN_HINTS):
            return index
    return -1


def parse_csv(
    payload: Payload,
    item_type: ItemType,
    origin: ImportOrigin = ImportOrigin.FILE,
) -> List[ImportSourceRecord]:
    """
    Parse a CSV export into source records.

    Voice agent exports are positional; other item types must carry a
    URL column which is located by header name.
    """
    rows = parse_csv_rows(payload)
    if len(rows) < 2:
        raise MalformedInputError(
            "CSV file must have at least a header row and one data row"
        )

    headers = rows[0]
    records: List[ImportSourceRecord] = []

    if item_type == ItemType.VOICE:
        for row_number, columns in enumerate(rows[1:], start=2):
            data: Dict[str, Any] = {
                name: columns[position].strip()
                for position, name in enumerate(VOICE_CSV_COLUMNS)
                if position < len(columns)
            }
            records.append(
                ImportSourceRecord(
                    data=data,
                    origin=origin,
                    index=row_number,
                    source_format=SourceFormat.CSV,
                )
            )
        logger.info(f"Parsed {len(records)} voice agent rows from CSV")
        return records

    url_column = find_url_column(headers)
    if url_column == -1:
        raise MalformedInputError(
            "CSV file must contain a URL column (url, link, source, or app) "
            "for apps and workflows",
            line=1,
        )

    for row_number, columns in enumerate(rows[1:], start=2):
        if url_column >= len(columns) or not columns[url_column].strip():
            logger.debug(f"CSV row {row_number} has no URL, skipping")
            continue
        data = {
            header: columns[position]
            for position, header in enumerate(headers)
            if position < len(columns) and header
        }
        data["url"] = columns[url_column].strip()
        records.append(
            ImportSourceRecord(
                data=data,
                origin=origin,
                index=row_number,
                source_format=SourceFormat.CSV,
            )
        )

    if not records:
        raise MalformedInputError("No URLs found in CSV file")

    logger.info(f"Parsed {len(records)} URL rows from CSV")
    return records


def parse_bulk_urls(text: str, limit: int = 50) -> List[str]:
    """
    Extract the URL list of a bulk-URL import.

    Args:
        text: Newline-separated URLs
        limit: Maximum number of URLs accepted in one run

    Returns:
        URLs in input order, repeats included
    """
    urls = [line.strip() for line in (text or "").splitlines()]
    urls = [url for url in urls if url and url.startswith("http")]

    if not urls:
        raise MalformedInputError(
            "Please enter at least one valid URL starting with http:// or https://"
        )
    if len(urls) > limit:
        raise MalformedInputError(f"Maximum {limit} URLs allowed for bulk import")
    return urls


def parse_payload(
    payload: Payload,
    source_format: SourceFormat,
    item_type: ItemType,
    origin: ImportOrigin = ImportOrigin.FILE,
) -> List[ImportSourceRecord]:
    """Dispatch to the parser for ``source_format``."""
    if source_format == SourceFormat.JSON:
        return parse_json(payload, origin)
    if source_format == SourceFormat.JSONL:
        return parse_jsonl(payload, origin)
    if source_format == SourceFormat.CSV:
        return parse_csv(payload, item_type, origin)
    if source_format == SourceFormat.URLS:
        return [
            ImportSourceRecord(
                data={"url": url},
                origin=origin,
                index=index,
                source_format=SourceFormat.URLS,
            )
            for index, url in enumerate(parse_bulk_urls(decode_payload(payload)))
        ]
    raise MalformedInputError(f"Unsupported import format: {source_format.value}")
