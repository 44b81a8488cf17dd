"""Pipeline exception hierarchy.

Stage faults raised while processing one issue derive from StageError and
are caught per issue by the orchestrator. Fatal faults (configuration,
selection) abort the run before any issue is processed.
"""

from typing import Optional

from src.issue_runner.errors.taxonomy import ErrorCategory


class IssueRunnerError(Exception):
    """Base class for all issue-runner errors."""


class ConfigError(IssueRunnerError):
    """Raised when the configuration file cannot be loaded or validated."""


class IssueSelectionError(IssueRunnerError):
    """Raised when the set of issues to process cannot be determined.

    Attributes:
        issue_number: The offending issue number, if any.
    """

    def __init__(self, message: str, issue_number: Optional[int] = None):
        self.issue_number = issue_number
        super().__init__(message)


class StageError(IssueRunnerError):
    """Base class for faults raised by a processing stage."""

    category: Optional[ErrorCategory] = None


class AgentIncompleteError(StageError):
    """Raised when the agent loop hits its iteration cap during implementation.

    Attributes:
        iterations: Number of iterations the loop ran.
        files_changed: Successful file writes before the cap was hit.
    """

    def __init__(self, iterations: int, files_changed: int):
        self.iterations = iterations
        self.files_changed = files_changed
        super().__init__(
            f"Agent did not finish within {iterations} iterations "
            f"({files_changed} files changed)"
        )


class NoChangesError(StageError):
    """Raised when the implementation left the workspace unchanged."""

    def __init__(self, message: str = "No changes were made"):
        super().__init__(message)


class ReviewFixError(StageError):
    """Raised when the agent could not apply review fixes."""

    def __init__(self, iteration: int, message: str = ""):
        self.iteration = iteration
        super().__init__(
            f"Failed to apply review fixes in iteration {iteration}"
            + (f": {message}" if message else "")
        )


class UnresolvedReviewError(StageError):
    """Raised when the final review still reports findings.

    Attributes:
        findings: The reviewer's final critique.
    """

    def __init__(self, findings: str):
        self.findings = findings
        super().__init__(
            "Review still reports unresolved findings after all iterations"
        )


class CommandFailedError(StageError):
    """Raised when an external command exits non-zero.

    Attributes:
        command: The command that was run.
        exit_code: Process exit code (-1 when killed on timeout).
        output: Combined tail of stdout and stderr.
    """

    def __init__(self, command: str, exit_code: int, output: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.output = output
        message = f"Command failed with exit code {exit_code}: {command}"
        if output:
            message += f"\n{output}"
        super().__init__(message)


class BuildError(CommandFailedError):
    """Raised when the build command fails."""

    category = ErrorCategory.BUILD


class TestError(CommandFailedError):
    """Raised when the test command fails."""

    category = ErrorCategory.TEST
    # Keep pytest from collecting this class.
    __test__ = False
