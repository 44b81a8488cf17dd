"""Configuration loading and validation.

Configuration comes from a YAML file whose string values may reference
environment variables as ``${VAR}``. Secrets (GitHub token, LLM API key)
can be left out of the file and supplied through the environment with
the ISSUE_RUNNER_ prefix or a .env file.

Sections:
- github: repository, token, selection labels
- git: main checkout, worktree location, branch naming, commit template
- llm: model endpoint, sampling, timeouts, agent iteration cap
- workflow: optional stages, commands, concurrency
- logging: level and output directory for logs and reports
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.issue_runner.errors.exceptions import ConfigError


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "issue-runner.yaml"

DEFAULT_COMMIT_TEMPLATE = "Fix #{{issue_number}}: {{issue_title}}\n\n{{issue_body}}"

_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

_TOKEN_PREFIXES = ("ghp_", "gho_", "ghs_", "ghu_", "github_pat_")


class GitHubSettings(BaseModel):
    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)
    token: str
    base_url: str = "https://api.github.com"
    labels: List[str] = Field(default_factory=list)
    exclude_labels: List[str] = Field(default_factory=list)

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate that the token is set and looks like a GitHub token."""
        if not v or not v.strip():
            raise ValueError("github token cannot be empty")
        if not v.startswith(_TOKEN_PREFIXES):
            raise ValueError(
                "github token must start with one of: " + ", ".join(_TOKEN_PREFIXES)
            )
        return v.strip()

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class GitSettings(BaseModel):
    repo_path: Path = Path(".")
    base_branch: str = Field("main", min_length=1)
    worktree_dir: Path = Path(".worktrees")
    branch_prefix: str = "issue-runner/issue-"
    remote: str = Field("origin", min_length=1)
    commit_message_template: str = DEFAULT_COMMIT_TEMPLATE


class LLMSettings(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    model: str = Field("gpt-4o", min_length=1)
    max_retries: int = Field(3, ge=0, le=10)
    timeout_seconds: float = Field(300, ge=10, le=600)
    temperature: float = Field(0.0, ge=0.0, le=1.0)
    max_tokens: int = Field(8000, ge=1, le=32768)
    max_iterations: int = Field(20, ge=1, le=100)

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("llm api_key cannot be empty")
        return v.strip()

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("llm base_url must start with http:// or https://")
        return v


class WorkflowSettings(BaseModel):
    auto_review: bool = True
    review_iterations: int = Field(2, ge=0, le=5)
    auto_create_pr: bool = True
    auto_push: bool = False
    max_concurrency: int = Field(1, ge=1, le=10)
    run_tests: bool = True
    test_command: str = "pytest"
    build_before_test: bool = True
    build_command: str = "python -m compileall -q ."
    command_timeout_seconds: float = Field(1800, gt=0)


class LoggingSettings(BaseModel):
    level: Literal["debug", "info", "warning", "error"] = "info"
    output_dir: Path = Path("logs")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class IssueRunnerConfig(BaseModel):
    """Complete, validated configuration."""

    github: GitHubSettings
    git: GitSettings = Field(default_factory=GitSettings)
    llm: LLMSettings
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def redacted(self) -> Dict[str, Any]:
        """Configuration as a dict with secrets redacted, for logging."""
        data = self.model_dump(mode="json")
        data["github"]["token"] = redact_secret(self.github.token)
        data["llm"]["api_key"] = redact_secret(self.llm.api_key)
        return data


class SecretSettings(BaseSettings):
    """Secrets read from the environment (ISSUE_RUNNER_ prefix) or .env."""

    model_config = SettingsConfigDict(
        env_prefix="ISSUE_RUNNER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    github_token: Optional[str] = None
    llm_api_key: Optional[str] = None


def redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def expand_env(value: Any, environ: Optional[Dict[str, str]] = None) -> Any:
    """Replace ``${VAR}`` references in every string of a parsed YAML tree.

    Raises:
        ConfigError: If a referenced variable is not set.
    """
    env = os.environ if environ is None else environ

    if isinstance(value, str):
        def substitute(match: re.Match) -> str:
            name = match.group(1)
            if name not in env:
                raise ConfigError(f"Environment variable {name} is not set")
            return env[name]

        return _ENV_REFERENCE.sub(substitute, value)
    if isinstance(value, dict):
        return {key: expand_env(item, env) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item, env) for item in value]
    return value


def _apply_secrets(data: Dict[str, Any], secrets: SecretSettings) -> None:
    """Fill secrets missing from the file from the environment."""
    github = data.setdefault("github", {})
    if isinstance(github, dict) and not github.get("token") and secrets.github_token:
        github["token"] = secrets.github_token

    llm = data.setdefault("llm", {})
    if isinstance(llm, dict) and not llm.get("api_key") and secrets.llm_api_key:
        llm["api_key"] = secrets.llm_api_key


def load_config(
    path: Path,
    secrets: Optional[SecretSettings] = None,
) -> IssueRunnerConfig:
    """Load, expand and validate a configuration file.

    Args:
        path: YAML configuration file.
        secrets: Environment secrets; read from the environment when None.

    Returns:
        The validated configuration. Relative paths in the git and logging
        sections are resolved against the configuration file's directory.

    Raises:
        ConfigError: If the file is missing, unparsable, references an
            unset variable or fails validation.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {path}: {e}") from e

    if not raw:
        raise ConfigError(f"Configuration file is empty: {path}")
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration root must be a mapping: {path}")

    data = expand_env(raw)
    _apply_secrets(data, secrets if secrets is not None else SecretSettings())

    try:
        config = IssueRunnerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}:\n{e}") from e

    base = path.resolve().parent
    config.git.repo_path = _resolve(base, config.git.repo_path)
    config.git.worktree_dir = _resolve(base, config.git.worktree_dir)
    config.logging.output_dir = _resolve(base, config.logging.output_dir)
    return config


def _resolve(base: Path, value: Path) -> Path:
    return value if value.is_absolute() else (base / value).resolve()


def log_configuration(config: IssueRunnerConfig) -> None:
    """Log configuration values with secrets redacted."""
    for section, values in config.redacted().items():
        logger.info("Configuration [%s]: %s", section, values)
