"""Unit tests for the issue-runner command line entry point."""

from unittest.mock import AsyncMock, MagicMock, patch

import click
import pytest
import yaml
from click.testing import CliRunner

from src.issue_runner.cli import main, parse_issue_numbers
from src.issue_runner.errors.exceptions import IssueSelectionError
from src.issue_runner.errors.taxonomy import ErrorCategory
from src.issue_runner.git.manager import GitError
from src.issue_runner.orchestrator import RunOptions
from src.issue_runner.reporting.statistics import RunStatistics


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "issue-runner.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "github": {
                    "owner": "acme",
                    "repo": "widgets",
                    "token": "ghp_cli_test_token",
                    "labels": ["auto"],
                },
                "llm": {"api_key": "sk-cli-test"},
                "workflow": {"auto_push": False, "auto_create_pr": True},
                "logging": {"output_dir": "out"},
            }
        )
    )
    return path


def _report():
    statistics = RunStatistics()
    statistics.record_success(42, 12.0, "https://github.com/acme/widgets/pull/99")
    statistics.record_failure(7, ErrorCategory.TEST, 30.0, message="Tests failed")
    return statistics.generate_report()


@pytest.fixture
def pipeline():
    metrics = MagicMock()
    mock = AsyncMock(return_value=(_report(), metrics))
    with patch("src.issue_runner.cli.run_pipeline", mock), patch(
        "src.issue_runner.cli.configure_logging"
    ):
        yield mock


class TestParseIssueNumbers:
    def test_repeated_and_comma_separated(self):
        assert parse_issue_numbers(["42", "7, 8", ""]) == [42, 7, 8]

    @pytest.mark.parametrize("value", ["0", "-3", "abc", "4.5"])
    def test_rejects_non_positive_or_non_numeric(self, value):
        with pytest.raises(click.BadParameter):
            parse_issue_numbers([value])


class TestMain:
    def test_success_prints_summary(self, pipeline, config_file, tmp_path):
        result = CliRunner().invoke(main, ["-c", str(config_file), "-i", "42,7"])

        assert result.exit_code == 0, result.output
        assert "Execution Summary" in result.output
        assert "#7: test - Tests failed" in result.output

        config, issue_numbers, options = pipeline.await_args.args
        assert issue_numbers == [42, 7]
        assert options == RunOptions(push=False, create_pr=True, dry_run=False)
        assert config.github.full_name == "acme/widgets"

        output_dir = tmp_path.resolve() / "out"
        reports = list(output_dir.glob("report-*.json"))
        assert len(reports) == 1
        metrics = pipeline.return_value[1]
        metrics.write.assert_called_once_with(output_dir / "metrics.prom")

    def test_flags_override_config(self, pipeline, config_file):
        result = CliRunner().invoke(
            main, ["-c", str(config_file), "--push", "--no-pr", "--dry-run"]
        )

        assert result.exit_code == 0, result.output
        options = pipeline.await_args.args[2]
        assert options == RunOptions(push=True, create_pr=False, dry_run=True)

    def test_missing_config_exits_1(self, pipeline, tmp_path):
        result = CliRunner().invoke(main, ["-c", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output
        pipeline.assert_not_awaited()

    def test_selection_error_exits_1(self, pipeline, config_file):
        pipeline.side_effect = IssueSelectionError("Issue #2 is closed", issue_number=2)

        result = CliRunner().invoke(main, ["-c", str(config_file), "-i", "2"])

        assert result.exit_code == 1
        assert "Issue #2 is closed" in result.output

    def test_invalid_issue_number_is_usage_error(self, pipeline, config_file):
        result = CliRunner().invoke(main, ["-c", str(config_file), "-i", "x"])

        assert result.exit_code == 2
        pipeline.assert_not_awaited()

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "issue-runner" in result.output


class TestPreflight:
    @pytest.fixture
    def git_manager(self):
        manager = MagicMock()
        manager.current_branch = AsyncMock(
            side_effect=GitError("Git branch check failed: fatal: not a git repository")
        )
        with patch("src.issue_runner.cli.GitManager", return_value=manager), patch(
            "src.issue_runner.cli.configure_logging"
        ):
            yield manager

    def test_unreadable_repository_exits_1(self, git_manager, config_file):
        with patch("src.issue_runner.cli.GitHubClient") as client:
            result = CliRunner().invoke(main, ["-c", str(config_file), "-i", "42"])

        assert result.exit_code == 1
        assert "not a git repository" in result.output
        client.assert_not_called()

    def test_dry_run_skips_repository_check(self, git_manager, config_file):
        with patch("src.issue_runner.cli.GitHubClient") as client:
            client.return_value.__aenter__.side_effect = IssueSelectionError("stop here")
            result = CliRunner().invoke(
                main, ["-c", str(config_file), "-i", "42", "--dry-run"]
            )

        git_manager.current_branch.assert_not_awaited()
        assert result.exit_code == 1
        assert "stop here" in result.output
