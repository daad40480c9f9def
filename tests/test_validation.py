from rankflow.schemas import CategoryBucket, Period, Record
from rankflow.taxonomy import Category
from rankflow.validation import summarize_period, validate_period


def bucket(label: str, *ranks: int) -> CategoryBucket:
    return CategoryBucket(Category.parse(label), tuple(Record(rank, f"P{rank}", rank * 10) for rank in ranks))


def test_clean_period_is_valid() -> None:
    period = Period(label="week2", number=2, anchor_date="2024-01-08", buckets=(bucket("Monday", 1, 2),))

    report = validate_period(period)

    assert report.valid is True
    assert report.issues == []


def test_every_check_reports_independently() -> None:
    period = Period(
        label="week",
        number=0,
        anchor_date="",
        buckets=(bucket("Monday", 1, 1, 2), bucket("Funday", 1), bucket("Tuesday")),
    )

    report = validate_period(period)

    assert report.valid is False
    assert report.issues == [
        "Invalid week number: 0",
        "Missing week date",
        "Duplicate ranks found for day: Monday",
        "Invalid day name: Funday",
        "No entries found for day: Tuesday",
    ]


def test_period_without_daily_buckets_is_flagged() -> None:
    period = Period(label="week1", number=1, anchor_date="2024-01-01", summary_records=(Record(1, "A", 5),))

    report = validate_period(period)

    assert report.issues == ["No daily data found"]


def test_summary_counts_daily_entries_and_weekly_presence() -> None:
    period = Period(
        label="week1",
        number=1,
        anchor_date="2024-01-01",
        buckets=(bucket("Monday", 1, 2, 3), bucket("Friday", 1)),
        summary_records=(Record(1, "A", 5),),
    )

    summary = summarize_period(period)

    assert summary.day_count == 2
    assert summary.entry_count == 4
    assert summary.has_summary_data is True
    assert summarize_period(Period(label="week1", number=1, anchor_date="x")).has_summary_data is False
