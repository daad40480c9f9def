import argparse
import logging

from rankflow.config import Settings, get_settings
from rankflow.database import build_session_factory
from rankflow.errors import ConfigurationError, DirectoryError
from rankflow.oracle import ORACLES, build_oracle, estimate_cost
from rankflow.pipeline import PipelineRunner
from rankflow.resolver import resolve_files, validate_directory_structure
from rankflow.schemas import ExportFormat
from rankflow.taxonomy import SUMMARY_DAY


logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Extract leaderboard rankings from weekly screenshot folders")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="extract, aggregate and export one week of screenshots")
    run_parser.add_argument("input", help="directory containing the week folder (or the week folder itself)")
    run_parser.add_argument("-o", "--output", help="output directory for exported files")
    run_parser.add_argument("-f", "--format", choices=[fmt.value for fmt in ExportFormat], help="export format")
    run_parser.add_argument("-p", "--provider", choices=sorted(ORACLES), help="AI provider")
    run_parser.add_argument("-m", "--model", help="provider-specific model name")
    run_parser.add_argument("-k", "--api-key", help="API key for the AI provider (or set AI_API_KEY)")
    run_parser.add_argument("--run-key", help="ledger key for this run")
    run_parser.add_argument("-w", "--weekly-only", action="store_true", help="process only the Weekly screenshots")
    run_parser.add_argument("--dry-run", action="store_true", help="list what would be processed without API calls")

    validate_parser = subparsers.add_parser("validate", help="check the directory layout without processing")
    validate_parser.add_argument("input", help="directory containing the week folder (or the week folder itself)")

    return parser.parse_args(argv)


def _validate(input_dir: str) -> int:
    report = validate_directory_structure(input_dir)
    if report.valid:
        print(f"valid=True input={input_dir}")
        return 0
    print(f"valid=False input={input_dir}")
    for issue in report.issues:
        print(f"  - {issue}")
    return 1


def _dry_run(settings: Settings, input_dir: str, weekly_only: bool) -> int:
    located = resolve_files(input_dir)
    if weekly_only:
        located = [item for item in located if item.category == SUMMARY_DAY.value]

    for index, item in enumerate(located, start=1):
        print(f"  {index}. {item.period}/{item.category}/{item.file_name}")
    print(f"screenshots={len(located)} provider={settings.ai_provider} model={settings.model} format={settings.export_format}")
    print(estimate_cost(len(located), settings.ai_provider, settings.model, settings.cost_per_image))
    return 0


def _run(settings: Settings, args: argparse.Namespace) -> int:
    report = validate_directory_structure(args.input)
    if not report.valid:
        for issue in report.issues:
            logger.error("directory structure issue", extra={"issue": issue})
        print(f"status=failed error=invalid directory structure issues={len(report.issues)}")
        return 1

    if args.dry_run:
        return _dry_run(settings, args.input, args.weekly_only)

    oracle = build_oracle(settings)
    session_factory = build_session_factory(settings.database_url)
    runner = PipelineRunner(settings, session_factory, oracle)
    result = runner.run(
        input_dir=args.input,
        export_format=settings.export_format,
        output_dir=settings.output_dir,
        weekly_only=args.weekly_only,
        run_key=args.run_key,
    )

    summary = result.summary
    print(
        "run_id={run_id} run_key={run_key} status={status} week={week} files={files} extracted={extracted} "
        "failed={failed} days={days} entries={entries} weekly={weekly} requests={requests} backup={backup} "
        "exports={exports}".format(
            run_id=result.run_id,
            run_key=result.run_key,
            status=result.status,
            week=result.period_number,
            files=result.total_files,
            extracted=result.extracted_files,
            failed=result.failed_files,
            days=summary.day_count if summary else 0,
            entries=summary.entry_count if summary else 0,
            weekly=summary.has_summary_data if summary else False,
            requests=result.request_count,
            backup=result.backup_path,
            exports=",".join(result.export_paths),
        )
    )
    for issue in result.validation_issues:
        print(f"  warning: {issue}")
    if result.status == "failed":
        print(f"error={result.error}")
        return 1
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        if args.command == "validate":
            exit_code = _validate(args.input)
        else:
            settings = settings.with_overrides(
                output_dir=args.output,
                export_format=args.format,
                ai_provider=args.provider,
                ai_model=args.model,
                ai_api_key=args.api_key,
            )
            exit_code = _run(settings, args)
    except (ConfigurationError, DirectoryError) as exc:
        print(f"status=failed error={exc}")
        exit_code = 1

    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
