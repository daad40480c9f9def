from rankflow.schemas import DataSummary, Period, ValidationReport


def validate_period(period: Period) -> ValidationReport:
    issues: list[str] = []

    if period.number <= 0:
        issues.append(f"Invalid week number: {period.number}")

    if not period.anchor_date:
        issues.append("Missing week date")

    if not period.buckets:
        issues.append("No daily data found")

    for bucket in period.buckets:
        label = bucket.category.label
        if not bucket.category.is_known:
            issues.append(f"Invalid day name: {label}")

        if not bucket.records:
            issues.append(f"No entries found for day: {label}")
            continue

        # Recomputed here rather than trusting the aggregator's merge.
        ranks = bucket.ranks
        if len(ranks) != len(set(ranks)):
            issues.append(f"Duplicate ranks found for day: {label}")

    return ValidationReport.from_issues(issues)


def summarize_period(period: Period) -> DataSummary:
    return DataSummary(
        day_count=len(period.buckets),
        entry_count=period.daily_entry_count,
        has_summary_data=bool(period.summary_records),
    )
