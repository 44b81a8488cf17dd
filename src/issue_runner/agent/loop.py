"""Agent tool-use loop.

Drives one coding task as a bounded conversation with the model:
1. Build the initial instruction from the issue and workspace path
2. Call the model with the conversation and the tool catalog
3. If the reply requests tools, execute every call, answer all of them in
   one user turn and repeat; otherwise stop with the reply text
4. Give up with success=False once the iteration cap is reached

Tool failures are returned to the model as error results. Only a model
transport fault (LLMAPIError) propagates out of the loop.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Union

from src.issue_runner.agent.conversation import Conversation, ToolCall, ToolResult
from src.issue_runner.agent.llm import LLMClient
from src.issue_runner.agent.prompts import (
    build_implement_prompt,
    build_review_fix_prompt,
)
from src.issue_runner.agent.tools import (
    TOOL_DEFINITIONS,
    ToolError,
    ToolExecutor,
    parse_tool_request,
)
from src.issue_runner.github.models import Issue


logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 20


@dataclass(frozen=True)
class AgentResult:
    """Outcome of one agent loop invocation.

    Attributes:
        success: Whether the model finished on its own before the cap.
        files_changed: Successful write_file calls over the whole loop.
        message: The model's final answer, or why the loop stopped.
        tokens_used: Input plus output tokens summed over all turns.
        iterations: Number of model calls made.
    """

    success: bool
    files_changed: int
    message: str
    tokens_used: int
    iterations: int


class AgentLoop:
    """Bounded tool-use conversation with the model.

    Each invocation owns a fresh Conversation that is discarded when the
    invocation returns.

    Attributes:
        llm: Client used for every model call.
        max_iterations: Maximum model calls per invocation.

    Example:
        >>> loop = AgentLoop(llm_client, max_iterations=20)
        >>> result = await loop.implement(issue, "/work/issue-42")
        >>> result.success, result.files_changed
        (True, 2)
    """

    def __init__(
        self,
        llm: LLMClient,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        executor_factory: Callable[[Union[str, Path]], ToolExecutor] = ToolExecutor,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.llm = llm
        self.max_iterations = max_iterations
        self._executor_factory = executor_factory

    async def implement(self, issue: Issue, workspace_path: str) -> AgentResult:
        """Implement an issue inside its workspace."""
        logger.info(
            "Agent implementing issue",
            extra={"issue_number": issue.number, "workspace_path": workspace_path},
        )
        return await self._run(
            build_implement_prompt(issue, workspace_path),
            workspace_path,
            issue.number,
        )

    async def apply_review_fixes(
        self,
        issue: Issue,
        workspace_path: str,
        findings: str,
    ) -> AgentResult:
        """Address review findings inside the workspace."""
        logger.info(
            "Agent applying review fixes",
            extra={"issue_number": issue.number, "findings_length": len(findings)},
        )
        return await self._run(
            build_review_fix_prompt(issue, workspace_path, findings),
            workspace_path,
            issue.number,
        )

    async def _run(self, prompt: str, workspace_path: str, issue_number: int) -> AgentResult:
        conversation = Conversation()
        conversation.add_user_text(prompt)
        executor = self._executor_factory(workspace_path)

        files_changed = 0
        tokens_used = 0

        for iteration in range(1, self.max_iterations + 1):
            response = await self.llm.complete(conversation, tools=TOOL_DEFINITIONS)
            tokens_used += response.total_tokens

            if not response.tool_calls:
                logger.info(
                    "Agent finished",
                    extra={
                        "issue_number": issue_number,
                        "iterations": iteration,
                        "files_changed": files_changed,
                        "tokens_used": tokens_used,
                        "stop_reason": response.stop_reason,
                    },
                )
                return AgentResult(
                    success=True,
                    files_changed=files_changed,
                    message=response.text,
                    tokens_used=tokens_used,
                    iterations=iteration,
                )

            conversation.add_assistant(response.text, response.tool_calls)

            results = []
            for call in response.tool_calls:
                result = self._execute_call(executor, call)
                if not result.is_error and call.name == "write_file":
                    files_changed += 1
                results.append(result)
            conversation.add_tool_results(results)

            logger.debug(
                "Agent iteration complete",
                extra={
                    "issue_number": issue_number,
                    "iteration": iteration,
                    "tool_calls": len(results),
                    "tool_errors": sum(1 for r in results if r.is_error),
                },
            )

        logger.warning(
            "Agent reached iteration cap",
            extra={
                "issue_number": issue_number,
                "iterations": self.max_iterations,
                "files_changed": files_changed,
            },
        )
        return AgentResult(
            success=False,
            files_changed=files_changed,
            message=f"Reached the limit of {self.max_iterations} iterations",
            tokens_used=tokens_used,
            iterations=self.max_iterations,
        )

    @staticmethod
    def _execute_call(executor: ToolExecutor, call: ToolCall) -> ToolResult:
        """Run one tool call, converting every failure into an error result."""
        if call.parse_error:
            return ToolResult(
                tool_call_id=call.id,
                text=f"Invalid arguments for {call.name}: {call.parse_error}",
                is_error=True,
            )
        try:
            request = parse_tool_request(call.name, call.input)
        except ToolError as e:
            logger.warning("Rejected tool call: %s", e)
            return ToolResult(tool_call_id=call.id, text=str(e), is_error=True)

        output = executor.execute(request)
        return ToolResult(
            tool_call_id=call.id,
            text=output.text,
            is_error=output.is_error,
        )
