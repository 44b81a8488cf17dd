"""Automated issue implementation pipeline.

This package turns labeled GitHub issues into reviewed, tested and
published code changes, providing:
- Issue selection and per-issue stage execution with bounded concurrency
- Isolated git worktrees per issue with guaranteed teardown
- An LLM tool-use loop that edits files inside the worktree
- An LLM review loop that critiques and fixes the resulting diff
- Failure classification, labeling and diagnostic comments
- Run statistics, pipeline events and Prometheus metrics
"""

__version__ = "0.1.0"
