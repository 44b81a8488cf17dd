"""Prompt templates for implementation, review fixes and code review."""

from src.issue_runner.github.models import Issue


NO_DESCRIPTION = "No description provided"

IMPLEMENT_PROMPT = """You are an expert software engineer. Implement the following GitHub issue.

# Issue Information
Issue #{number}: {title}

{body}

# Working Directory
{workspace_path}

All tool paths are relative to this directory. Paths outside it are refused.

# Tools
- read_file: read a file before changing it
- write_file: create or overwrite a file with its full new content
- list_directory: explore the project layout
- create_directory: create a directory

# Requirements
- Follow the existing code style and architecture
- Add or update tests where necessary
- Consider edge cases
- Pay attention to security (avoid injection, unsafe deserialization, leaked secrets)
- Keep the change minimal and focused on the issue

# Implementation
Use the tools to make the changes directly in the working directory.
When you are done, stop calling tools and reply with a short summary of what you changed and why."""

REVIEW_FIX_PROMPT = """A code review of your changes for issue #{number} ({title}) reported the following findings:

{findings}

# Working Directory
{workspace_path}

Use the tools to address every finding in the working directory.
When you are done, stop calling tools and reply with a short summary of the fixes."""

REVIEW_PROMPT = """You are an expert code reviewer. Review the following implementation.

# Original Issue
Issue #{number}: {title}

{body}

# Implementation (Diff)
```diff
{diff}
```

# Review Criteria
- Does it meet the requirements?
- Code quality and maintainability
- Security concerns
- Test coverage
- Performance considerations

# Review
If anything must change, list each required change clearly.
If the implementation is acceptable as it is, reply with the single word APPROVED and nothing else."""


def build_implement_prompt(issue: Issue, workspace_path: str) -> str:
    return IMPLEMENT_PROMPT.format(
        number=issue.number,
        title=issue.title,
        body=issue.body or NO_DESCRIPTION,
        workspace_path=workspace_path,
    )


def build_review_fix_prompt(issue: Issue, workspace_path: str, findings: str) -> str:
    return REVIEW_FIX_PROMPT.format(
        number=issue.number,
        title=issue.title,
        findings=findings.strip(),
        workspace_path=workspace_path,
    )


def build_review_prompt(issue: Issue, diff: str) -> str:
    return REVIEW_PROMPT.format(
        number=issue.number,
        title=issue.title,
        body=issue.body or NO_DESCRIPTION,
        diff=diff,
    )
