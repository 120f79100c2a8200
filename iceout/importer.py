"""Bulk import of historical sightings from CSV.

Rows go through the same ``SightingCreate`` validation as live submissions.
A bad row is recorded and skipped; the import keeps going.
"""

import csv
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import Sighting
from .schemas import SightingCreate

logger = logging.getLogger("iceout.importer")

CSV_COLUMNS = ["timestamp", "lat", "lng", "activity_type", "notes", "media_urls"]

RE_VIDEO_EXT = re.compile(r"^(mp4|webm|mov)$", re.IGNORECASE)


@dataclass
class RowError:
    row: int
    error: str


@dataclass
class ImportReport:
    total: int = 0
    success_count: int = 0
    errors: List[RowError] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)


def media_from_urls(value: str) -> List[dict]:
    media = []
    for url in (value or "").split(","):
        url = url.strip()
        if not url:
            continue
        name = url.rsplit("/", 1)[-1] or "media"
        ext = name.rsplit(".", 1)[-1] if "." in name else "jpg"
        if RE_VIDEO_EXT.match(ext):
            mime = "video/mp4"
        else:
            # images and anything unrecognised default to jpeg
            mime = "image/jpeg"
        media.append({"path": url, "type": mime})
    return media


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "row"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def row_to_sighting(row: Mapping[str, str]) -> SightingCreate:
    if not (row.get("timestamp") or "").strip():
        raise ValueError(f"Invalid timestamp: {row.get('timestamp')!r}")
    return SightingCreate.model_validate({
        "timestamp": row.get("timestamp"),
        "lat": row.get("lat"),
        "lng": row.get("lng"),
        "activity_type": row.get("activity_type") or "",
        "notes": row.get("notes") or None,
        "media": media_from_urls(row.get("media_urls") or ""),
    })


def import_rows(db: Session, rows: Iterable[Mapping[str, str]]) -> ImportReport:
    report = ImportReport()
    for i, row in enumerate(rows):
        row_num = i + 2  # 1-based, after the header line
        report.total += 1
        try:
            data = row_to_sighting(row)
        except ValidationError as exc:
            report.errors.append(RowError(row_num, _format_validation_error(exc)))
            logger.warning("Row %s rejected: %s", row_num, report.errors[-1].error)
            continue
        except ValueError as exc:
            report.errors.append(RowError(row_num, str(exc)))
            logger.warning("Row %s rejected: %s", row_num, exc)
            continue

        sighting = Sighting(
            event_time=data.event_time,
            lat=data.lat,
            lng=data.lng,
            activity_type=data.activity_type,
            notes=data.notes,
            media=[m.model_dump() for m in data.media],
            status="unverified",
            validations_count=0,
        )
        try:
            db.add(sighting)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            report.errors.append(RowError(row_num, str(exc)))
            logger.error("Row %s failed to store: %s", row_num, exc)
            continue
        report.success_count += 1
        if report.success_count % 10 == 0:
            logger.info("Imported %s rows so far", report.success_count)
    return report


def _clean(record: Mapping) -> dict:
    # extra unnamed columns land under the None key; drop them
    return {k.strip(): (v or "").strip() for k, v in record.items() if k is not None}


def import_csv(db: Session, path) -> ImportReport:
    with open(path, newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh, skipinitialspace=True)
        return import_rows(db, (_clean(r) for r in reader))
