from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
import logging

from rankflow.errors import EmptyInputError
from rankflow.schemas import (
    AggregationMetadata,
    AggregationResult,
    CategoryBucket,
    ExtractionOutcome,
    LocatedFile,
    Period,
    Record,
)
from rankflow.taxonomy import Category, period_number


logger = logging.getLogger(__name__)

DEFAULT_EPOCH = date(2024, 1, 1)

ResultPair = tuple[LocatedFile, ExtractionOutcome]


def anchor_date(number: int, epoch: date = DEFAULT_EPOCH) -> str:
    """Placeholder start date of week ``number`` counted from ``epoch``."""
    return (epoch + timedelta(days=(number - 1) * 7)).isoformat()


def extraction_timestamp(now: datetime | None = None) -> str:
    moment = (now or datetime.now(UTC)).astimezone(UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class _PeriodBuilder:
    label: str
    number: int
    anchor_date: str
    daily: list[tuple[Category, list[Record]]] = field(default_factory=list)
    summary: list[Record] = field(default_factory=list)

    def add(self, located: LocatedFile, records: Iterable[Record]) -> None:
        category = Category.parse(located.category)
        if category.is_summary:
            # Summary screenshots are pooled without rank dedup.
            self.summary.extend(records)
            self.summary.sort(key=lambda record: record.rank)
            return

        bucket = self._bucket(category)
        existing_ranks = {record.rank for record in bucket}
        bucket.extend(record for record in records if record.rank not in existing_ranks)
        bucket.sort(key=lambda record: record.rank)

    def _bucket(self, category: Category) -> list[Record]:
        for existing, records in self.daily:
            if existing.label == category.label:
                return records
        records: list[Record] = []
        self.daily.append((category, records))
        return records

    def build(self) -> Period:
        ordered = sorted(self.daily, key=lambda item: item[0].order)
        return Period(
            label=self.label,
            number=self.number,
            anchor_date=self.anchor_date,
            buckets=tuple(CategoryBucket(category, tuple(records)) for category, records in ordered),
            summary_records=tuple(self.summary),
        )


def _successful(results: Iterable[ResultPair]) -> list[ResultPair]:
    successful: list[ResultPair] = []
    skipped = 0
    for located, outcome in results:
        if not outcome.success:
            skipped += 1
            logger.warning(
                "skipping failed extraction",
                extra={"file": str(located.path), "error": outcome.error},
            )
            continue
        successful.append((located, outcome))

    if skipped:
        logger.warning("discarded failed extractions", extra={"skipped": skipped, "kept": len(successful)})
    if not successful:
        raise EmptyInputError("no successful extraction results to aggregate")
    return successful


def _fold(label: str, entries: list[ResultPair], epoch: date) -> Period:
    number = period_number(label)
    builder = _PeriodBuilder(label=label, number=number, anchor_date=anchor_date(number, epoch))
    for located, outcome in entries:
        builder.add(located, outcome.records)
    return builder.build()


def aggregate_results(
    results: Iterable[ResultPair],
    *,
    epoch: date = DEFAULT_EPOCH,
    now: datetime | None = None,
) -> AggregationResult:
    """Fold one week's extraction outcomes into a single period.

    The week is taken from the first successful entry; every other successful
    entry is folded into it regardless of its own week label.
    """
    successful = _successful(results)
    period = _fold(successful[0][0].period, successful, epoch)
    return AggregationResult(
        periods=(period,),
        metadata=AggregationMetadata(
            total_periods=1,
            total_screenshots=len(successful),
            extracted_at=extraction_timestamp(now),
        ),
    )


def aggregate_by_period(
    results: Iterable[ResultPair],
    *,
    epoch: date = DEFAULT_EPOCH,
    now: datetime | None = None,
) -> AggregationResult:
    """Batched variant of :func:`aggregate_results` producing one period per week label."""
    successful = _successful(results)

    groups: dict[str, list[ResultPair]] = {}
    for located, outcome in successful:
        groups.setdefault(located.period, []).append((located, outcome))

    periods = [_fold(label, entries, epoch) for label, entries in groups.items()]
    periods.sort(key=lambda period: (period.number, period.label))
    return AggregationResult(
        periods=tuple(periods),
        metadata=AggregationMetadata(
            total_periods=len(periods),
            total_screenshots=len(successful),
            extracted_at=extraction_timestamp(now),
        ),
    )
