from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
import logging
import mimetypes
from pathlib import Path
import time
from typing import TypeVar
import uuid

from sqlalchemy.orm import Session, sessionmaker

from rankflow.aggregator import aggregate_results
from rankflow.config import Settings
from rankflow.db_models import PipelineRun
from rankflow.errors import EmptyInputError, ExportError, ExtractionFailure
from rankflow.exporter import export_result, parse_format
from rankflow.oracle import ExtractionOracle
from rankflow.resolver import resolve_files
from rankflow.run_store import (
    create_run,
    finish_step_failure,
    finish_step_success,
    mark_run_failed,
    mark_run_running,
    mark_run_succeeded,
    start_step,
    store_artifacts,
    store_extraction_failures,
)
from rankflow.schemas import (
    AggregationResult,
    DataSummary,
    ExportFormat,
    ExportOptions,
    ExtractionOutcome,
    LocatedFile,
    PipelineResult,
)
from rankflow.taxonomy import SUMMARY_DAY
from rankflow.validation import summarize_period, validate_period


logger = logging.getLogger(__name__)
T = TypeVar("T")


@dataclass
class _RunState:
    located: list[LocatedFile] = field(default_factory=list)
    extracted: int = 0
    failed: int = 0
    period_label: str | None = None
    period_number: int | None = None
    validation_issues: list[str] = field(default_factory=list)
    summary: DataSummary | None = None
    backup_path: str | None = None
    export_paths: list[str] = field(default_factory=list)


class PipelineRunner:
    def __init__(self, settings: Settings, session_factory: sessionmaker[Session], oracle: ExtractionOracle) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.oracle = oracle

    def run(
        self,
        *,
        input_dir: str | None = None,
        export_format: str | None = None,
        output_dir: str | None = None,
        weekly_only: bool = False,
        run_key: str | None = None,
        today: date | None = None,
    ) -> PipelineResult:
        input_dir = input_dir or self.settings.input_dir
        fmt = parse_format(export_format or self.settings.export_format)
        output_root = Path(output_dir or self.settings.output_dir)
        run_key = run_key or uuid.uuid4().hex
        today = today or date.today()
        state = _RunState()

        with self.session_factory() as db:
            run = create_run(db, run_key=run_key, input_dir=str(input_dir), export_format=fmt.value)
            mark_run_running(db, run)

            try:
                state.located = self._run_step(db, run, "resolve", lambda: self._resolve(input_dir, weekly_only))
                pairs = self._run_step(db, run, "extract", lambda: self._extract_all(db, run, state))

                aggregated = self._run_step(
                    db,
                    run,
                    "aggregate",
                    lambda: aggregate_results(pairs, epoch=self.settings.week_epoch),
                )
                period = aggregated.period
                state.period_label = period.label
                state.period_number = period.number

                report = self._run_step(db, run, "validate", lambda: validate_period(period))
                state.validation_issues = report.issues
                for issue in report.issues:
                    logger.warning("data validation issue", extra={"run_key": run_key, "issue": issue})
                state.summary = summarize_period(period)

                base_name = f"{period.label}_{today.isoformat()}"
                state.backup_path = self._backup(db, run, aggregated, output_root / f"{base_name}_backup.json")

                options = ExportOptions(format=fmt, output_path=output_root / f"{base_name}.{fmt.value}", include_metadata=True)
                written = self._run_step(db, run, "export", lambda: export_result(aggregated, options))
                store_artifacts(db, run_id=run.id, kind="export", export_format=fmt.value, paths=written)
                state.export_paths = [str(path) for path in written]

                mark_run_succeeded(
                    db,
                    run,
                    period_label=state.period_label,
                    total_files=len(state.located),
                    extracted_files=state.extracted,
                    failed_files=state.failed,
                )
            except Exception as exc:
                mark_run_failed(
                    db,
                    run,
                    error=str(exc),
                    period_label=state.period_label,
                    total_files=len(state.located),
                    extracted_files=state.extracted,
                    failed_files=state.failed,
                )
                logger.exception("pipeline run failed", extra={"run_key": run_key, "backup_path": state.backup_path})

            return self._result_from_run(run, state)

    def _run_step(self, db: Session, run: PipelineRun, step_name: str, fn: Callable[[], T]) -> T:
        step = start_step(db, run_id=run.id, step_name=step_name)
        try:
            result = fn()
        except Exception as exc:
            finish_step_failure(db, step, str(exc))
            raise
        finish_step_success(db, step)
        return result

    def _resolve(self, input_dir: str, weekly_only: bool) -> list[LocatedFile]:
        located = resolve_files(input_dir)
        if weekly_only:
            located = [item for item in located if item.category == SUMMARY_DAY.value]
        if not located:
            raise EmptyInputError(f"no screenshot files found in {input_dir}")
        return located

    def _extract_all(self, db: Session, run: PipelineRun, state: _RunState) -> list[tuple[LocatedFile, ExtractionOutcome]]:
        pairs: list[tuple[LocatedFile, ExtractionOutcome]] = []
        failures: list[tuple[LocatedFile, ExtractionOutcome, str | None, int | None]] = []

        for index, located in enumerate(state.located, start=1):
            started = time.monotonic()
            try:
                image = located.path.read_bytes()
                media_type = mimetypes.guess_type(located.file_name)[0] or "image/jpeg"
                records = self.oracle.extract(image, media_type)
            except ExtractionFailure as exc:
                outcome = ExtractionOutcome.failed(str(exc), self._elapsed_ms(started))
                failures.append((located, outcome, exc.provider, exc.status_code))
            except OSError as exc:
                outcome = ExtractionOutcome.failed(f"failed to read image file: {exc}", self._elapsed_ms(started))
                failures.append((located, outcome, None, None))
            else:
                outcome = ExtractionOutcome.succeeded(records, self._elapsed_ms(started))

            if outcome.success:
                logger.info(
                    "screenshot processed",
                    extra={
                        "index": index,
                        "total": len(state.located),
                        "file": located.file_name,
                        "entries": len(outcome.records),
                        "duration_ms": round(outcome.duration_ms, 1),
                    },
                )
            else:
                logger.warning(
                    "screenshot extraction failed",
                    extra={
                        "index": index,
                        "total": len(state.located),
                        "file": located.file_name,
                        "error": outcome.error,
                        "duration_ms": round(outcome.duration_ms, 1),
                    },
                )
            pairs.append((located, outcome))

        state.failed = len(failures)
        state.extracted = len(pairs) - len(failures)
        if failures:
            store_extraction_failures(db, run_id=run.id, failures=failures)
        return pairs

    def _backup(self, db: Session, run: PipelineRun, aggregated: AggregationResult, path: Path) -> str | None:
        options = ExportOptions(format=ExportFormat.JSON, output_path=path, include_metadata=True)
        try:
            written = self._run_step(db, run, "backup", lambda: export_result(aggregated, options))
        except ExportError as exc:
            logger.warning("backup export failed", extra={"path": str(path), "error": str(exc)})
            return None
        store_artifacts(db, run_id=run.id, kind="backup", export_format=ExportFormat.JSON.value, paths=written)
        return str(written[0])

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.monotonic() - started) * 1000

    def _result_from_run(self, run: PipelineRun, state: _RunState) -> PipelineResult:
        return PipelineResult(
            run_id=run.id,
            run_key=run.run_key,
            status=run.status,
            period_label=state.period_label,
            period_number=state.period_number,
            total_files=len(state.located),
            extracted_files=state.extracted,
            failed_files=state.failed,
            validation_issues=state.validation_issues,
            summary=state.summary,
            backup_path=state.backup_path,
            export_paths=state.export_paths,
            request_count=getattr(self.oracle, "request_count", 0),
            error=run.error,
        )
