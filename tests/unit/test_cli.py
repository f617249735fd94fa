"""Tests for the starindex CLI"""

import json

import pytest
from typer.testing import CliRunner
from unittest.mock import AsyncMock, patch

from starindex.cli import app
from starindex.models.build import BuildMode, BuildResult, BuildState, StopReason
from starindex.models.config import FeedbinSettings, IndexSettings, StarIndexConfig
from starindex.models.index import IndexEntry, MonthKey
from starindex.services.checkpoint_service import CheckpointService
from starindex.services.index_store import IndexStore
from starindex.services.self_healing import MonthQueryResult

runner = CliRunner()


@pytest.fixture
def config(temp_dir):
    return StarIndexConfig(
        feedbin=FeedbinSettings(api_key="dGVzdDp0ZXN0"),
        index=IndexSettings(
            index_path=str(temp_dir / "index.json"),
            checkpoint_path=str(temp_dir / "checkpoint.json"),
        ),
    )


@pytest.fixture
def mock_config(config):
    with patch("starindex.cli.utils.ConfigManager") as mock_cm:
        mock_cm.return_value.load_config.return_value = config
        yield config


@pytest.fixture
def store(config):
    return IndexStore(config.index.index_path)


def build_result(state, reason, mode=BuildMode.FULL):
    return BuildResult(
        mode=mode,
        state=state,
        stop_reason=reason,
        entries_found=3,
        pages_scanned=5,
        last_page_processed=5,
        total_pages=9,
    )


class TestBuildCommand:
    def test_completed_build_exits_zero(self, mock_config):
        result_obj = build_result(BuildState.COMPLETED, StopReason.CUTOFF_REACHED)
        with patch("starindex.cli.build.run_build", new=AsyncMock(return_value=result_obj)) as run:
            result = runner.invoke(app, ["build"])

        assert result.exit_code == 0
        assert "Build completed!" in result.stdout
        assert "Months found: 3" in result.stdout
        assert run.call_args.args[1] == BuildMode.FULL

    def test_checkpointed_build_exits_three(self, mock_config):
        result_obj = build_result(BuildState.CHECKPOINTED, StopReason.PAGE_LIMIT)
        with patch("starindex.cli.build.run_build", new=AsyncMock(return_value=result_obj)):
            result = runner.invoke(app, ["build", "--max-pages", "5"])

        assert result.exit_code == 3
        assert "resume" in result.stdout
        assert mock_config.index.max_pages_per_run == 5

    def test_failed_build_exits_one(self, mock_config):
        result_obj = build_result(BuildState.FAILED, StopReason.PERSISTENCE_ERROR)
        result_obj.error = "disk full"
        with patch("starindex.cli.build.run_build", new=AsyncMock(return_value=result_obj)):
            result = runner.invoke(app, ["build"])

        assert result.exit_code == 1
        assert "disk full" in result.stdout

    def test_build_resume_flag(self, mock_config):
        result_obj = build_result(BuildState.COMPLETED, StopReason.FEED_EXHAUSTED)
        with patch("starindex.cli.build.run_build", new=AsyncMock(return_value=result_obj)) as run:
            result = runner.invoke(app, ["build", "--resume"])

        assert result.exit_code == 0
        assert run.call_args.args[1] == BuildMode.RESUME

    def test_resume_command(self, mock_config):
        result_obj = build_result(BuildState.COMPLETED, StopReason.CUTOFF_REACHED, BuildMode.RESUME)
        with patch("starindex.cli.build.run_build", new=AsyncMock(return_value=result_obj)) as run:
            result = runner.invoke(app, ["resume"])

        assert result.exit_code == 0
        assert run.call_args.args[1] == BuildMode.RESUME

    def test_reset_with_resume_rejected(self, mock_config):
        result = runner.invoke(app, ["build", "--resume", "--reset"])
        assert result.exit_code == 1

    def test_missing_credentials(self, mock_config):
        mock_config.feedbin.api_key = None
        result = runner.invoke(app, ["build"])

        assert result.exit_code == 1
        assert "credentials" in result.stdout

    def test_build_in_progress_reported(self, mock_config):
        from starindex.utils.exceptions import BuildInProgressError

        with patch(
            "starindex.cli.build.run_build",
            new=AsyncMock(side_effect=BuildInProgressError("Another build holds the lock")),
        ):
            result = runner.invoke(app, ["build"])

        assert result.exit_code == 1
        assert "Another build" in result.stdout


def test_config_error_exits_one():
    with patch("starindex.cli.utils.ConfigManager") as mock_cm:
        mock_cm.return_value.load_config.side_effect = FileNotFoundError("no config")
        result = runner.invoke(app, ["months"])

    assert result.exit_code == 1
    assert "Configuration Error" in result.stdout


class TestMonthsCommand:
    def test_empty_index(self, mock_config):
        result = runner.invoke(app, ["months"])
        assert result.exit_code == 0
        assert "Index is empty" in result.stdout

    def test_lists_months_newest_first(self, mock_config, store):
        store.merge(
            [
                IndexEntry(year=2024, month=1, start_page=4, article_count=6),
                IndexEntry(year=2024, month=3, start_page=1, article_count=2),
            ]
        )

        result = runner.invoke(app, ["months"])

        assert result.exit_code == 0
        assert result.stdout.index("2024-03") < result.stdout.index("2024-01")
        assert "March" in result.stdout


class TestLookupCommand:
    def test_indexed_month(self, mock_config, store):
        store.merge([IndexEntry(year=2024, month=2, start_page=7)])

        result = runner.invoke(app, ["lookup", "2024", "2"])

        assert result.exit_code == 0
        assert "February 2024 starts on page 7" in result.stdout

    def test_unindexed_month_falls_back(self, mock_config):
        result = runner.invoke(app, ["lookup", "2024", "2", "--page", "3"])

        assert result.exit_code == 0
        assert "not indexed; using page 3" in result.stdout

    def test_invalid_month(self, mock_config):
        result = runner.invoke(app, ["lookup", "2024", "13"])
        assert result.exit_code != 0

    def test_fetch_reports_match_and_updates(self, mock_config):
        query_result = MonthQueryResult(
            year=2024, month=2, page=2, from_index=True, matched=True, updated_months=["2024-01"]
        )
        with patch("starindex.cli.index._fetch_month", new=AsyncMock(return_value=query_result)):
            result = runner.invoke(app, ["lookup", "2024", "2", "--fetch"])

        assert result.exit_code == 0
        assert "found on page 2" in result.stdout
        assert "Index updated: 2024-01" in result.stdout

    def test_fetch_requires_credentials(self, mock_config):
        mock_config.feedbin.api_key = None
        result = runner.invoke(app, ["lookup", "2024", "2", "--fetch"])
        assert result.exit_code == 1


class TestFinalizeCommand:
    def test_merges_file(self, mock_config, store, temp_dir):
        source = temp_dir / "temp-index.json"
        source.write_text(
            json.dumps(
                {
                    "entries": [
                        {"year": 2024, "month": 2, "startPage": 4},
                        {"year": 2024, "month": 2, "startPage": 2},
                    ]
                }
            )
        )

        result = runner.invoke(app, ["finalize", str(source)])

        assert result.exit_code == 0
        assert "Merged 1 month(s)" in result.stdout
        assert store.find_start_page(2024, 2) == 2

    def test_missing_file(self, mock_config, temp_dir):
        result = runner.invoke(app, ["finalize", str(temp_dir / "absent.json")])
        assert result.exit_code == 1

    def test_corrupt_file(self, mock_config, temp_dir):
        source = temp_dir / "bad.json"
        source.write_text("{oops")

        result = runner.invoke(app, ["finalize", str(source)])

        assert result.exit_code == 1
        assert "Cannot import" in result.stdout


class TestStatusCommand:
    def test_no_build_in_progress(self, mock_config, store):
        store.merge([IndexEntry(year=2024, month=3, start_page=1)], total_articles=12)

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Months: 1" in result.stdout
        assert "Total articles: 12" in result.stdout
        assert "No build in progress" in result.stdout

    def test_checkpoint_shown(self, mock_config):
        CheckpointService(mock_config.index.checkpoint_path, earliest_year=2013).save(
            last_page_processed=7, current_month=MonthKey(2021, 4)
        )

        result = runner.invoke(app, ["status"])

        assert "Last page processed: 7" in result.stdout
        assert "Current month: 2021-04" in result.stdout

    def test_metrics(self, mock_config):
        result = runner.invoke(app, ["status", "--metrics"])

        assert result.exit_code == 0
        assert "starindex_pages_fetched_total" in result.stdout


class TestValidateCommand:
    def test_valid_config(self, temp_dir):
        path = temp_dir / "starindex.yaml"
        path.write_text("feedbin:\n  api_key: abc\n")

        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 0
        assert "Configuration is valid!" in result.stdout

    def test_invalid_config(self, temp_dir):
        path = temp_dir / "starindex.yaml"
        path.write_text("index:\n  earliest_year: 1200\n")

        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 1
        assert "Validation failed" in result.stdout
