"""External command execution for git, build and test commands."""

from src.issue_runner.runner.command import CommandResult, CommandRunner

__all__ = ["CommandResult", "CommandRunner"]
