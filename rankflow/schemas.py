from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from rankflow.taxonomy import Category, SUMMARY_DAY


@dataclass(frozen=True)
class Record:
    rank: int
    commander_name: str
    points: int


@dataclass(frozen=True)
class LocatedFile:
    category: str
    period: str
    file_name: str
    path: Path
    size: int
    created_at: datetime


@dataclass(frozen=True)
class ExtractionOutcome:
    records: tuple[Record, ...] = ()
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def succeeded(cls, records, duration_ms: float = 0.0) -> "ExtractionOutcome":
        return cls(records=tuple(records), duration_ms=duration_ms)

    @classmethod
    def failed(cls, error: str, duration_ms: float = 0.0) -> "ExtractionOutcome":
        return cls(error=error or "unknown error", duration_ms=duration_ms)


@dataclass(frozen=True)
class CategoryBucket:
    category: Category
    records: tuple[Record, ...] = ()

    @property
    def ranks(self) -> list[int]:
        return [record.rank for record in self.records]


@dataclass(frozen=True)
class Period:
    label: str
    number: int
    anchor_date: str
    buckets: tuple[CategoryBucket, ...] = ()
    summary_records: tuple[Record, ...] = ()

    @property
    def summary_bucket(self) -> CategoryBucket:
        return CategoryBucket(Category.of(SUMMARY_DAY), self.summary_records)

    @property
    def daily_entry_count(self) -> int:
        return sum(len(bucket.records) for bucket in self.buckets)


@dataclass(frozen=True)
class AggregationMetadata:
    total_periods: int
    total_screenshots: int
    extracted_at: str


@dataclass(frozen=True)
class AggregationResult:
    periods: tuple[Period, ...]
    metadata: AggregationMetadata

    @property
    def period(self) -> Period | None:
        # Last entry, so a longer sequence still exports its most recent period.
        return self.periods[-1] if self.periods else None


@dataclass(frozen=True)
class ValidationReport:
    valid: bool
    issues: list[str] = field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: list[str]) -> "ValidationReport":
        return cls(valid=not issues, issues=list(issues))


@dataclass(frozen=True)
class DataSummary:
    day_count: int
    entry_count: int
    has_summary_data: bool


class ExportFormat(StrEnum):
    JSON = "json"
    CSV = "csv"
    XLSX = "xlsx"


@dataclass(frozen=True)
class ExportOptions:
    format: str
    output_path: Path
    include_metadata: bool = False


@dataclass(frozen=True)
class PipelineResult:
    run_id: int
    run_key: str
    status: str
    period_label: str | None
    period_number: int | None
    total_files: int
    extracted_files: int
    failed_files: int
    validation_issues: list[str]
    summary: DataSummary | None
    backup_path: str | None
    export_paths: list[str]
    request_count: int
    error: str | None
