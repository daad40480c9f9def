import os
from pathlib import Path
import subprocess
import sys

from helpers import write_screenshot


def _base_env(tmp_path: Path) -> dict[str, str]:
    env = os.environ.copy()
    env["DATABASE_URL"] = f"sqlite:///{tmp_path / 'cli.db'}"
    env["OUTPUT_DIR"] = str(tmp_path / "results")
    env["AI_PROVIDER"] = "openai"
    env.pop("AI_API_KEY", None)
    env.pop("AI_MODEL", None)
    return env


def _run_cli(tmp_path: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, "-m", "rankflow.main", *args],
        cwd=Path(__file__).resolve().parents[1],
        env=_base_env(tmp_path),
        check=False,
        capture_output=True,
        text=True,
    )


def test_validate_reports_issues_with_nonzero_exit(tmp_path: Path) -> None:
    week = tmp_path / "screenshots" / "week1"
    write_screenshot(week / "Monday" / "a.png", [(1, "A", 1)])
    (week / "Tuesday").mkdir()

    proc = _run_cli(tmp_path, "validate", str(tmp_path / "screenshots"))

    assert proc.returncode == 1
    assert "valid=False" in proc.stdout
    assert "No image files found in week1/Tuesday" in proc.stdout


def test_dry_run_lists_screenshots_without_api_key(tmp_path: Path) -> None:
    week = tmp_path / "screenshots" / "week4"
    write_screenshot(week / "Monday" / "a.png", [(1, "A", 1)])
    write_screenshot(week / "Weekly" / "b.png", [(1, "B", 1)])

    proc = _run_cli(tmp_path, "run", str(tmp_path / "screenshots"), "--dry-run", "-p", "anthropic")

    assert proc.returncode == 0
    assert "1. week4/Monday/a.png" in proc.stdout
    assert "2. week4/Weekly/b.png" in proc.stdout
    assert "Estimated cost: $0.03 USD (claude-3-opus-20240229)" in proc.stdout


def test_run_without_api_key_fails(tmp_path: Path) -> None:
    write_screenshot(tmp_path / "screenshots" / "week4" / "Monday" / "a.png", [(1, "A", 1)])

    proc = _run_cli(tmp_path, "run", str(tmp_path / "screenshots"))

    assert proc.returncode == 1
    assert "status=failed" in proc.stdout
    assert "API key is required" in proc.stdout
