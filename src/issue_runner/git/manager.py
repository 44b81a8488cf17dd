"""Git operations for per-issue workspaces.

Each issue gets its own git worktree on a dedicated branch, created from
the base branch of the main repository and removed once processing ends.
All git commands run as subprocesses through CommandRunner.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from src.issue_runner.runner.command import CommandResult, CommandRunner


logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 300


class GitError(Exception):
    """Raised when a git command fails.

    Attributes:
        command: The git command that failed.
        exit_code: Process exit code.
        stderr: Captured standard error.
    """

    def __init__(
        self,
        message: str,
        command: str = "",
        exit_code: Optional[int] = None,
        stderr: str = "",
    ):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


@dataclass(frozen=True)
class Workspace:
    """Isolated worktree and branch for one issue.

    Attributes:
        issue_number: The issue this workspace belongs to.
        path: Absolute worktree directory.
        branch: Dedicated branch checked out in the worktree.
    """

    issue_number: int
    path: Path
    branch: str

    @classmethod
    def for_issue(cls, worktree_dir: Path, branch_prefix: str, issue_number: int) -> "Workspace":
        """Derive the workspace path and branch from the issue number."""
        return cls(
            issue_number=issue_number,
            path=Path(worktree_dir).resolve() / f"issue-{issue_number}",
            branch=f"{branch_prefix}{issue_number}",
        )


class GitManager:
    """Runs git commands against the main repository and its worktrees.

    Attributes:
        repo_path: Path of the main repository checkout.
        remote: Remote used for pushes.
    """

    def __init__(
        self,
        repo_path: Path,
        runner: Optional[CommandRunner] = None,
        remote: str = "origin",
    ):
        self.repo_path = Path(repo_path).resolve()
        self.runner = runner or CommandRunner(timeout_seconds=GIT_TIMEOUT_SECONDS)
        self.remote = remote

    async def _git(self, cwd: Path, *args: str, check: bool = True, action: str = "") -> CommandResult:
        """Run one git command.

        Raises:
            GitError: If ``check`` is set and the command fails.
        """
        result = await self.runner.run_exec(["git", *args], cwd=cwd)
        if check and not result.success:
            detail = result.stderr.strip() or result.stdout.strip()
            raise GitError(
                f"Git {action or args[0]} failed: {detail}",
                command=result.command,
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result

    async def create_workspace(self, workspace: Workspace, base_branch: str) -> None:
        """Create the worktree and its branch from ``base_branch``.

        A leftover directory from an earlier run is removed first and stale
        worktree registrations are pruned. An existing branch of the same
        name is reset to the base branch.

        Raises:
            GitError: If the worktree cannot be created.
        """
        if workspace.path.exists():
            logger.warning(
                "Workspace already exists, removing",
                extra={"workspace_path": str(workspace.path)},
            )
            await self.remove_workspace(workspace.path)

        await asyncio.to_thread(workspace.path.parent.mkdir, parents=True, exist_ok=True)
        # Drops registrations whose directory was deleted outside git
        await self._git(self.repo_path, "worktree", "prune", check=False)

        await self._git(
            self.repo_path,
            "worktree",
            "add",
            "-B",
            workspace.branch,
            str(workspace.path),
            base_branch,
            action="worktree creation",
        )
        logger.info(
            "Workspace created",
            extra={
                "workspace_path": str(workspace.path),
                "branch": workspace.branch,
                "base_branch": base_branch,
            },
        )

    async def remove_workspace(self, path: Path) -> None:
        """Remove a worktree. Removing an absent worktree succeeds.

        Raises:
            GitError: If git refuses to remove an existing worktree.
        """
        path = Path(path)
        result = await self._git(
            self.repo_path, "worktree", "remove", "--force", str(path), check=False
        )
        if not result.success:
            if "is not a working tree" not in result.stderr and path.exists():
                raise GitError(
                    f"Git worktree removal failed: {result.stderr.strip()}",
                    command=result.command,
                    exit_code=result.exit_code,
                    stderr=result.stderr,
                )
            if path.exists():
                await asyncio.to_thread(shutil.rmtree, path)
            logger.debug("Worktree was not registered", extra={"workspace_path": str(path)})

        await self._git(self.repo_path, "worktree", "prune", check=False)
        logger.info("Workspace removed", extra={"workspace_path": str(path)})

    async def has_uncommitted_changes(self, path: Path) -> bool:
        result = await self._git(Path(path), "status", "--porcelain", action="status check")
        return bool(result.stdout.strip())

    async def get_diff(self, path: Path) -> str:
        """Diff of the worktree against HEAD, including untracked files."""
        await self._git(Path(path), "add", "--intent-to-add", "--all", action="add")
        result = await self._git(Path(path), "diff", "HEAD", action="diff")
        return result.stdout

    async def stage_all(self, path: Path) -> None:
        await self._git(Path(path), "add", "-A", action="add")
        logger.info("Staged all changes", extra={"workspace_path": str(path)})

    async def commit(self, path: Path, message: str) -> None:
        await self._git(Path(path), "commit", "-m", message, action="commit")
        logger.info("Committed changes", extra={"workspace_path": str(path)})

    async def push(
        self,
        path: Path,
        branch: str,
        remote: Optional[str] = None,
        force: bool = False,
    ) -> None:
        remote = remote or self.remote
        args: List[str] = ["push"]
        if force:
            args.append("--force")
        args.extend(["-u", remote, branch])
        await self._git(Path(path), *args, action="push")
        logger.info("Pushed branch", extra={"remote": remote, "branch": branch})

    async def current_branch(self, path: Path) -> str:
        result = await self._git(Path(path), "branch", "--show-current", action="branch check")
        return result.stdout.strip()

    async def run_command(
        self,
        path: Path,
        command: str,
        timeout_seconds: Optional[float] = None,
    ) -> CommandResult:
        """Run a shell command (build or test) inside a worktree."""
        return await self.runner.run_shell(
            command, cwd=Path(path), timeout_seconds=timeout_seconds
        )
