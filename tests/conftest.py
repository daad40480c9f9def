from collections.abc import Generator
from datetime import date
from pathlib import Path

import pytest

from rankflow.config import Settings
from rankflow.database import build_session_factory
from rankflow.pipeline import PipelineRunner

from helpers import ScriptedOracle


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "screenshots").mkdir(parents=True, exist_ok=True)
    (tmp_path / "results").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def test_settings(temp_workspace: Path) -> Settings:
    return Settings(
        app_name="rankflow",
        database_url=f"sqlite:///{temp_workspace / 'test.db'}",
        log_level="INFO",
        input_dir=str(temp_workspace / "screenshots"),
        output_dir=str(temp_workspace / "results"),
        export_format="json",
        ai_provider="openai",
        ai_model=None,
        ai_api_key="test-key",
        ai_endpoint=None,
        request_interval_seconds=0,
        max_request_retries=1,
        retry_backoff_seconds=0,
        week_epoch=date(2024, 1, 1),
    )


@pytest.fixture()
def oracle() -> ScriptedOracle:
    return ScriptedOracle()


@pytest.fixture()
def runner(test_settings: Settings, oracle: ScriptedOracle) -> Generator[PipelineRunner, None, None]:
    session_factory = build_session_factory(test_settings.database_url)
    yield PipelineRunner(test_settings, session_factory, oracle)
