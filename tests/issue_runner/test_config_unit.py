"""Unit tests for configuration loading."""

import logging
import textwrap
from pathlib import Path

import pytest

from src.issue_runner.config import (
    DEFAULT_COMMIT_TEMPLATE,
    IssueRunnerConfig,
    SecretSettings,
    expand_env,
    load_config,
    log_configuration,
    redact_secret,
)
from src.issue_runner.errors.exceptions import ConfigError


MINIMAL = """
github:
  owner: acme
  repo: widgets
  token: ghp_abcdefghijklmnop
  labels: [auto]
llm:
  api_key: sk-test-123456
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "issue-runner.yaml"
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


def _no_secrets() -> SecretSettings:
    return SecretSettings(github_token=None, llm_api_key=None, _env_file=None)


class TestLoadConfig:
    def test_minimal_file_gets_defaults(self, tmp_path):
        config = load_config(_write(tmp_path, MINIMAL), secrets=_no_secrets())

        assert config.github.full_name == "acme/widgets"
        assert config.github.base_url == "https://api.github.com"
        assert config.github.exclude_labels == []
        assert config.git.base_branch == "main"
        assert config.git.remote == "origin"
        assert config.git.commit_message_template == DEFAULT_COMMIT_TEMPLATE
        assert config.llm.max_retries == 3
        assert config.llm.timeout_seconds == 300
        assert config.llm.max_tokens == 8000
        assert config.llm.max_iterations == 20
        assert config.workflow.review_iterations == 2
        assert config.workflow.auto_push is False
        assert config.workflow.auto_create_pr is True
        assert config.workflow.max_concurrency == 1
        assert config.workflow.command_timeout_seconds == 1800
        assert config.logging.level == "info"

    def test_relative_paths_resolved_against_file(self, tmp_path):
        config = load_config(_write(tmp_path, MINIMAL), secrets=_no_secrets())
        assert config.git.repo_path == tmp_path.resolve()
        assert config.logging.output_dir == (tmp_path / "logs").resolve()

    def test_env_references_expanded(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_GH_TOKEN", "ghp_fromenvironment")
        content = MINIMAL.replace("ghp_abcdefghijklmnop", "${TEST_GH_TOKEN}")
        config = load_config(_write(tmp_path, content), secrets=_no_secrets())
        assert config.github.token == "ghp_fromenvironment"

    def test_missing_env_reference(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TEST_MISSING_VAR", raising=False)
        content = MINIMAL.replace("ghp_abcdefghijklmnop", "${TEST_MISSING_VAR}")
        with pytest.raises(ConfigError, match="TEST_MISSING_VAR"):
            load_config(_write(tmp_path, content), secrets=_no_secrets())

    def test_secrets_from_settings(self, tmp_path):
        content = """
        github:
          owner: acme
          repo: widgets
        llm:
          model: gpt-4o
        """
        secrets = SecretSettings(
            github_token="ghp_fromsettings", llm_api_key="sk-fromsettings", _env_file=None
        )
        config = load_config(_write(tmp_path, content), secrets=secrets)
        assert config.github.token == "ghp_fromsettings"
        assert config.llm.api_key == "sk-fromsettings"

    def test_file_secret_wins_over_settings(self, tmp_path):
        secrets = SecretSettings(
            github_token="ghp_fromsettings", llm_api_key="sk-other", _env_file=None
        )
        config = load_config(_write(tmp_path, MINIMAL), secrets=secrets)
        assert config.github.token == "ghp_abcdefghijklmnop"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml", secrets=_no_secrets())

    def test_empty_file(self, tmp_path):
        with pytest.raises(ConfigError, match="empty"):
            load_config(_write(tmp_path, ""), secrets=_no_secrets())

    def test_bad_yaml(self, tmp_path):
        with pytest.raises(ConfigError, match="parse YAML"):
            load_config(_write(tmp_path, "github: [unclosed"), secrets=_no_secrets())

    @pytest.mark.parametrize(
        "extra",
        [
            "workflow:\n  review_iterations: 6\n",
            "workflow:\n  max_concurrency: 0\n",
            "workflow:\n  max_concurrency: 11\n",
        ],
    )
    def test_out_of_range_values(self, tmp_path, extra):
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(_write(tmp_path, MINIMAL + extra), secrets=_no_secrets())

    def test_bad_token_prefix(self, tmp_path):
        content = MINIMAL.replace("ghp_abcdefghijklmnop", "not-a-token")
        with pytest.raises(ConfigError, match="token"):
            load_config(_write(tmp_path, content), secrets=_no_secrets())

    def test_llm_timeout_bounds(self, tmp_path):
        content = MINIMAL + "  timeout_seconds: 5\n"
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, content), secrets=_no_secrets())


class TestHelpers:
    def test_expand_env_nested(self):
        data = {"a": ["${X}", {"b": "pre-${X}-post"}], "n": 3}
        assert expand_env(data, {"X": "v"}) == {"a": ["v", {"b": "pre-v-post"}], "n": 3}

    def test_redact_secret(self):
        assert redact_secret("ghp_abcdef") == "ghp_******"
        assert redact_secret("abc") == "***"

    def test_log_configuration_redacts(self, tmp_path, caplog):
        config = load_config(_write(tmp_path, MINIMAL), secrets=_no_secrets())
        with caplog.at_level(logging.INFO, logger="src.issue_runner.config"):
            log_configuration(config)
        assert "ghp_abcdefghijklmnop" not in caplog.text
        assert "sk-test-123456" not in caplog.text
        assert "ghp_" in caplog.text

    def test_model_validate_directly(self):
        config = IssueRunnerConfig.model_validate(
            {
                "github": {"owner": "a", "repo": "b", "token": "github_pat_x"},
                "llm": {"api_key": "k", "base_url": "http://localhost:8000/v1"},
            }
        )
        assert config.llm.base_url == "http://localhost:8000/v1"
