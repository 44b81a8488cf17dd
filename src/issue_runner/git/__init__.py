"""Git worktree management for per-issue workspaces."""

from src.issue_runner.git.manager import GitError, GitManager, Workspace

__all__ = ["GitError", "GitManager", "Workspace"]
