"""
Unit tests for the Typer CLI.
"""

from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from quizscout import __version__
from quizscout.cli.main import app
from quizscout.services.duplicate_detector import DuplicateCandidate

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_cli():
    """Skip logging setup and give Rich room for whole table cells."""
    with patch("quizscout.utils.logging_config.setup_logging_from_settings"), patch(
        "quizscout.cli.main.console", Console(width=200)
    ):
        yield


def test_version():
    """Test the version command."""
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_sources():
    """Test every registered source is listed."""
    result = runner.invoke(app, ["sources"])

    assert result.exit_code == 0
    assert "question_one" in result.stdout
    assert "quizmeisters" in result.stdout
    assert "https://questionone.com" in result.stdout


@patch("quizscout.tasks.scraping_tasks.enqueue_index_job")
def test_index_enqueues(mock_enqueue):
    """Test the index command queues a Celery job by default."""
    mock_enqueue.return_value = MagicMock(id="task-1")

    result = runner.invoke(app, ["index", "quizmeisters", "--limit", "5", "--force-update"])

    assert result.exit_code == 0
    mock_enqueue.assert_called_once_with("quizmeisters", limit=5, force_update=True)
    assert "task-1" in result.stdout


@patch("quizscout.tasks.scraping_tasks.enqueue_index_job")
def test_index_unknown_source(mock_enqueue):
    """Test errors exit with code 1."""
    from quizscout.exceptions import ConfigurationError

    mock_enqueue.side_effect = ConfigurationError("source", "a registered source", "nope")

    result = runner.invoke(app, ["index", "nope"])

    assert result.exit_code == 1
    assert "Index job failed" in result.stdout


@patch("quizscout.database.check_db_connection", return_value=False)
def test_health_unhealthy_database(mock_check):
    """Test health exits non-zero when the database is down."""
    result = runner.invoke(app, ["health"])

    assert result.exit_code == 1
    assert "Unhealthy" in result.stdout


@patch("quizscout.storage.get_asset_store")
def test_cleanup_assets_dry_run(mock_get_store):
    """Test the cleanup command prints stats."""
    mock_get_store.return_value.cleanup_duplicate_assets.return_value = {
        "directories_checked": 3,
        "directories_with_duplicates": 1,
        "files_removed": 2,
        "storage_type": "local",
    }

    result = runner.invoke(app, ["cleanup-assets", "--dry-run"])

    assert result.exit_code == 0
    mock_get_store.return_value.cleanup_duplicate_assets.assert_called_once_with(dry_run=True)
    assert "files_removed" in result.stdout
    assert "Dry run" in result.stdout


@patch("quizscout.services.duplicate_detector.record_candidates")
@patch("quizscout.services.duplicate_detector.find_candidates")
@patch("quizscout.database.session_scope")
def test_duplicates(mock_scope, mock_find, mock_record):
    """Test the duplicate report lists candidates without recording them."""
    mock_find.return_value = [
        DuplicateCandidate(
            venue_id=1,
            duplicate_of_id=2,
            venue_name="Red Lion",
            duplicate_name="The Red Lion Pub",
            confidence=1.0,
            name_similarity=1.0,
            location_similarity=1.0,
            reason="similar name, same postcode",
        )
    ]

    result = runner.invoke(app, ["duplicates"])

    assert result.exit_code == 0
    assert "The Red Lion Pub (#2)" in result.stdout
    assert "same postcode" in result.stdout
    mock_record.assert_not_called()


@patch("quizscout.services.duplicate_detector.find_candidates", return_value=[])
@patch("quizscout.database.session_scope")
def test_duplicates_none_found(mock_scope, mock_find):
    """Test the empty report."""
    result = runner.invoke(app, ["duplicates", "--city", "3"])

    assert result.exit_code == 0
    assert mock_find.call_args.kwargs == {"city_id": 3}
    assert "No duplicate candidates found" in result.stdout
