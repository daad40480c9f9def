from collections.abc import Iterable
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

from rankflow.db_models import ExportArtifact, ExtractionFailureRecord, PipelineRun, StepRun, utc_now
from rankflow.schemas import ExtractionOutcome, LocatedFile


def get_run_by_key(db: Session, run_key: str) -> PipelineRun | None:
    stmt = select(PipelineRun).where(PipelineRun.run_key == run_key)
    return db.execute(stmt).scalar_one_or_none()


def create_run(db: Session, *, run_key: str, input_dir: str, export_format: str) -> PipelineRun:
    if get_run_by_key(db, run_key) is not None:
        raise ValueError(f"run key already used: {run_key}")

    run = PipelineRun(run_key=run_key, input_dir=input_dir, export_format=export_format, status="queued")
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def mark_run_running(db: Session, run: PipelineRun) -> None:
    run.status = "running"
    run.started_at = utc_now()
    run.error = None
    db.commit()


def _record_counts(run: PipelineRun, *, period_label: str | None, total_files: int, extracted_files: int, failed_files: int) -> None:
    run.period_label = period_label
    run.total_files = total_files
    run.extracted_files = extracted_files
    run.failed_files = failed_files
    run.completed_at = utc_now()


def mark_run_succeeded(
    db: Session,
    run: PipelineRun,
    *,
    period_label: str | None,
    total_files: int,
    extracted_files: int,
    failed_files: int,
) -> None:
    run.status = "succeeded"
    run.error = None
    _record_counts(
        run,
        period_label=period_label,
        total_files=total_files,
        extracted_files=extracted_files,
        failed_files=failed_files,
    )
    db.commit()


def mark_run_failed(
    db: Session,
    run: PipelineRun,
    *,
    error: str,
    period_label: str | None = None,
    total_files: int = 0,
    extracted_files: int = 0,
    failed_files: int = 0,
) -> None:
    run.status = "failed"
    run.error = error
    _record_counts(
        run,
        period_label=period_label,
        total_files=total_files,
        extracted_files=extracted_files,
        failed_files=failed_files,
    )
    db.commit()


def start_step(db: Session, *, run_id: int, step_name: str) -> StepRun:
    step = StepRun(run_id=run_id, step_name=step_name, status="started", started_at=utc_now())
    db.add(step)
    db.commit()
    db.refresh(step)
    return step


def _finish_step(db: Session, step: StepRun, status: str, error: str | None) -> None:
    finished_at = utc_now()
    step.status = status
    step.completed_at = finished_at
    step.duration_ms = (finished_at - step.started_at).total_seconds() * 1000
    step.error = error
    db.commit()


def finish_step_success(db: Session, step: StepRun) -> None:
    _finish_step(db, step, "succeeded", None)


def finish_step_failure(db: Session, step: StepRun, error: str) -> None:
    _finish_step(db, step, "failed", error)


def store_extraction_failures(
    db: Session,
    *,
    run_id: int,
    failures: Iterable[tuple[LocatedFile, ExtractionOutcome, str | None, int | None]],
) -> None:
    for located, outcome, provider, status_code in failures:
        db.add(
            ExtractionFailureRecord(
                run_id=run_id,
                category=located.category,
                file_path=str(located.path),
                provider=provider,
                status_code=status_code,
                reason=outcome.error or "unknown error",
            )
        )
    db.commit()


def store_artifacts(db: Session, *, run_id: int, kind: str, export_format: str, paths: Iterable[Path]) -> None:
    existing_stmt = select(ExportArtifact.path).where(ExportArtifact.run_id == run_id)
    existing_paths = set(db.execute(existing_stmt).scalars().all())

    for path in paths:
        # The backup and the main export can resolve to the same file.
        if str(path) in existing_paths:
            continue
        db.add(ExportArtifact(run_id=run_id, kind=kind, export_format=export_format, path=str(path)))
        existing_paths.add(str(path))
    db.commit()
