import csv
from datetime import date
import json
import logging
import re
from pathlib import Path

from openpyxl import Workbook

from rankflow.errors import EmptyDataError, ExportError
from rankflow.schemas import (
    AggregationMetadata,
    AggregationResult,
    CategoryBucket,
    ExportFormat,
    ExportOptions,
    Period,
    Record,
)
from rankflow.taxonomy import SUMMARY_DAY, Category


logger = logging.getLogger(__name__)

RECORD_COLUMNS = ["Rank", "Commander Name", "Points"]
SUMMARY_SHEET = "Summary"
MAX_SHEET_TITLE = 31
INVALID_SHEET_CHARS = re.compile(r"[\\/*?:\[\]]")
INVALID_FILE_CHARS = re.compile(r'[\\/:*?"<>|]')


def parse_format(value: str | ExportFormat) -> ExportFormat:
    try:
        return ExportFormat(str(value).lower())
    except ValueError as exc:
        raise ExportError(f"unsupported export format: {value}") from exc


def resolve_output_path(
    requested: str | Path,
    fmt: ExportFormat,
    period_number: int,
    today: date | None = None,
) -> Path:
    """Use ``requested`` as-is when its name already carries a date, else synthesize one."""
    requested = Path(requested)
    if "_20" in requested.name:
        return requested
    stamp = (today or date.today()).isoformat()
    return requested.parent / f"week{period_number}_{stamp}.{fmt.value}"


def export_result(result: AggregationResult, options: ExportOptions) -> list[Path]:
    fmt = parse_format(options.format)
    period = result.period
    if period is None:
        raise ExportError("no week data available to export")

    output_path = resolve_output_path(options.output_path, fmt, period.number)
    logger.info("exporting week", extra={"week": period.number, "format": fmt.value, "path": str(output_path)})

    try:
        if fmt is ExportFormat.JSON:
            metadata = result.metadata if options.include_metadata else None
            return [write_document(period, output_path, metadata)]
        if fmt is ExportFormat.CSV:
            return write_tables(period, output_path)
        return [write_workbook(period, output_path)]
    except (OSError, ValueError) as exc:
        raise ExportError(f"failed to write {fmt.value} export to {output_path}: {exc}") from exc


def _record_to_dict(record: Record) -> dict[str, object]:
    return {"rank": record.rank, "commander_name": record.commander_name, "points": record.points}


def _bucket_to_dict(bucket: CategoryBucket) -> dict[str, object]:
    return {"category": bucket.category.label, "records": [_record_to_dict(record) for record in bucket.records]}


def period_to_dict(period: Period) -> dict[str, object]:
    buckets = [*period.buckets, period.summary_bucket]
    return {
        "label": period.label,
        "number": period.number,
        "anchor_date": period.anchor_date,
        "buckets": [_bucket_to_dict(bucket) for bucket in buckets],
    }


def metadata_to_dict(metadata: AggregationMetadata) -> dict[str, object]:
    return {
        "total_periods": metadata.total_periods,
        "total_screenshots": metadata.total_screenshots,
        "extracted_at": metadata.extracted_at,
    }


def write_document(period: Period, path: Path, metadata: AggregationMetadata | None = None) -> Path:
    payload: dict[str, object] = {"period": period_to_dict(period)}
    if metadata is not None:
        payload["metadata"] = metadata_to_dict(metadata)

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as outfile:
        json.dump(payload, outfile, indent=2, ensure_ascii=False)
        outfile.write("\n")
    return path


def load_document(path: str | Path) -> tuple[Period, AggregationMetadata | None]:
    with Path(path).open("r", encoding="utf-8") as infile:
        payload = json.load(infile)

    raw_period = payload["period"]
    buckets: list[CategoryBucket] = []
    summary: tuple[Record, ...] = ()
    for raw_bucket in raw_period["buckets"]:
        category = Category.parse(raw_bucket["category"])
        records = tuple(
            Record(rank=int(row["rank"]), commander_name=str(row["commander_name"]), points=int(row["points"]))
            for row in raw_bucket["records"]
        )
        if category.is_summary:
            summary = records
        else:
            buckets.append(CategoryBucket(category, records))

    period = Period(
        label=raw_period["label"],
        number=int(raw_period["number"]),
        anchor_date=raw_period["anchor_date"],
        buckets=tuple(buckets),
        summary_records=summary,
    )

    metadata = None
    if "metadata" in payload:
        raw_metadata = payload["metadata"]
        metadata = AggregationMetadata(
            total_periods=int(raw_metadata["total_periods"]),
            total_screenshots=int(raw_metadata["total_screenshots"]),
            extracted_at=raw_metadata["extracted_at"],
        )
    return period, metadata


def _record_row(record: Record) -> list[object]:
    return [record.rank, record.commander_name, record.points]


def _file_label(label: str) -> str:
    return INVALID_FILE_CHARS.sub("_", label).strip(". ") or "Unknown"


def _write_csv(path: Path, records: tuple[Record, ...]) -> Path:
    with path.open("w", encoding="utf-8", newline="") as outfile:
        writer = csv.writer(outfile, lineterminator="\n")
        writer.writerow(RECORD_COLUMNS)
        writer.writerows(_record_row(record) for record in records)
    return path


def write_tables(period: Period, path: Path) -> list[Path]:
    if not period.buckets and not period.summary_records:
        raise EmptyDataError("no data to export - both daily and weekly data are empty")

    base_name = path.stem if path.suffix.lower() == ".csv" else path.name
    path.parent.mkdir(parents=True, exist_ok=True)

    written = [
        _write_csv(path.parent / f"{base_name}_{_file_label(bucket.category.label)}.csv", bucket.records)
        for bucket in period.buckets
    ]
    if period.summary_records:
        written.append(_write_csv(path.parent / f"{base_name}_{SUMMARY_DAY.value}.csv", period.summary_records))
    return written


def _sheet_title(label: str, taken: set[str]) -> str:
    """Excel-safe, workbook-unique title for a day bucket; the reserved sheet names stay free."""
    title = INVALID_SHEET_CHARS.sub("_", label).strip("'")[:MAX_SHEET_TITLE] or "Unknown"
    candidate = title
    counter = 2
    while candidate.lower() in taken:
        suffix = f"_{counter}"
        candidate = title[: MAX_SHEET_TITLE - len(suffix)] + suffix
        counter += 1
    taken.add(candidate.lower())
    return candidate


def _append_records_sheet(workbook: Workbook, title: str, records: tuple[Record, ...]) -> None:
    sheet = workbook.create_sheet(title=title)
    sheet.append(RECORD_COLUMNS)
    for record in records:
        sheet.append(_record_row(record))


def write_workbook(period: Period, path: Path) -> Path:
    if not period.buckets and not period.summary_records:
        raise EmptyDataError("no data to export - both daily and weekly data are empty")

    workbook = Workbook()
    workbook.remove(workbook.active)

    taken = {SUMMARY_DAY.value.lower(), SUMMARY_SHEET.lower()}
    for bucket in period.buckets:
        _append_records_sheet(workbook, _sheet_title(bucket.category.label, taken), bucket.records)
    if period.summary_records:
        _append_records_sheet(workbook, SUMMARY_DAY.value, period.summary_records)

    summary = workbook.create_sheet(title=SUMMARY_SHEET)
    summary.append(["Metric", "Value"])
    summary.append(["Week Number", period.number])
    summary.append(["Week Date", period.anchor_date])
    summary.append(["Days Tracked", len(period.buckets)])
    summary.append(["Total Daily Entries", period.daily_entry_count])
    summary.append(["Weekly Entries", len(period.summary_records)])

    path.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(path)
    return path
