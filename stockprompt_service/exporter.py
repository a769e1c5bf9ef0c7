"""Utilities for exporting unit results as CSV, JSON and plain text."""

from __future__ import annotations

import datetime
from typing import Iterable, Optional

from .models import Metadata, Unit, UnitStatus

CSV_HEADERS = ("Filename", "Title", "Description", "Keywords", "Category", "AI Prompt", "Technical Settings")


def _quote(text: Optional[str]) -> str:
    return '"' + (text or "").replace('"', '""') + '"'


def export_csv(units: Iterable[Unit]) -> str:
    """One row per completed unit; every field quoted, keywords joined with ", "."""
    lines = [",".join(CSV_HEADERS)]
    for unit in units:
        if unit.status is not UnitStatus.COMPLETED or unit.result is None:
            continue
        data = unit.result
        lines.append(
            ",".join(
                _quote(value)
                for value in (
                    unit.asset.filename,
                    data.title,
                    data.description,
                    ", ".join(data.keywords),
                    data.category,
                    data.prompt,
                    data.technical_settings,
                )
            )
        )
    return "\n".join(lines)


def export_json(metadata: Metadata) -> str:
    return metadata.model_dump_json(by_alias=True, indent=2)


def parse_json(text: str) -> Metadata:
    return Metadata.model_validate_json(text)


def export_text(metadata: Metadata) -> str:
    technical = f"TECHNICAL: {metadata.technical_settings}" if metadata.technical_settings else ""
    model = metadata.generated_for_model.value if metadata.generated_for_model else "AI"
    return (
        f"TITLE: {metadata.title}\n"
        f"DESCRIPTION: {metadata.description}\n"
        "\n"
        f"PROMPT ({model}):\n"
        f"{metadata.prompt}\n"
        "\n"
        "KEYWORDS:\n"
        f"{', '.join(metadata.keywords)}\n"
        "\n"
        f"CATEGORY: {metadata.category}\n"
        f"{technical}"
    )


def export_filename(kind: str, now: Optional[datetime.datetime] = None) -> str:
    now = now or datetime.datetime.now()
    if kind == "csv":
        return f"stockprompt_export_{now.strftime('%Y-%m-%d')}.csv"
    if kind in {"json", "txt"}:
        return f"stock_metadata_{int(now.timestamp() * 1000)}.{kind}"
    raise ValueError(f"Unknown export kind: {kind}")
