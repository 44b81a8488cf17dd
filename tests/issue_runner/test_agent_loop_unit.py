"""Unit tests for the agent tool-use loop.

The LLM client is an AsyncMock scripted with LLMResponses; tools run for
real against a temporary workspace.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.issue_runner.agent.conversation import Role, ToolCall
from src.issue_runner.agent.llm import LLMAPIError, LLMResponse
from src.issue_runner.agent.loop import AgentLoop
from src.issue_runner.agent.tools import TOOL_DEFINITIONS
from src.issue_runner.github.models import Issue


def run_async(coro):
    return asyncio.run(coro)


def _issue(number: int = 42) -> Issue:
    return Issue(number=number, title="Add greeting helper", body="Add hello()")


def _reply(*calls: ToolCall, text: str = "", tokens: int = 10) -> LLMResponse:
    return LLMResponse(
        text=text,
        tool_calls=tuple(calls),
        stop_reason="tool_calls" if calls else "stop",
        input_tokens=tokens,
        output_tokens=0,
    )


def _write(call_id: str, path: str = "hello.py", content: str = "def hello(): ...") -> ToolCall:
    return ToolCall(id=call_id, name="write_file", input={"path": path, "content": content})


@pytest.fixture
def llm():
    client = MagicMock()
    client.complete = AsyncMock()
    return client


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / "issue-42"
    ws.mkdir()
    return ws


class TestImplement:
    def test_no_tool_calls_finishes_immediately(self, llm, workspace):
        llm.complete.side_effect = [_reply(text="Nothing to do", tokens=7)]

        result = run_async(AgentLoop(llm).implement(_issue(), str(workspace)))

        assert result.success is True
        assert result.files_changed == 0
        assert result.message == "Nothing to do"
        assert result.iterations == 1
        assert result.tokens_used == 7

    def test_tool_round_then_finish(self, llm, workspace):
        llm.complete.side_effect = [
            _reply(_write("c1"), _write("c2", path="pkg/__init__.py", content="")),
            _reply(text="Added hello()"),
        ]

        result = run_async(AgentLoop(llm).implement(_issue(), str(workspace)))

        assert result.success is True
        assert result.files_changed == 2
        assert result.iterations == 2
        assert result.tokens_used == 20
        assert (workspace / "hello.py").read_text() == "def hello(): ..."
        assert (workspace / "pkg" / "__init__.py").exists()

    def test_every_call_passes_tool_catalog(self, llm, workspace):
        llm.complete.side_effect = [_reply(_write("c1")), _reply(text="done")]

        run_async(AgentLoop(llm).implement(_issue(), str(workspace)))

        for call in llm.complete.await_args_list:
            assert call.kwargs["tools"] == TOOL_DEFINITIONS

    def test_conversation_answers_each_call(self, llm, workspace):
        conversations = []

        async def complete(conversation, tools=None, max_tokens=None):
            conversations.append(conversation)
            if len(conversations) == 1:
                return _reply(_write("c1"), ToolCall(id="c2", name="read_file", input={"path": "hello.py"}))
            return _reply(text="done")

        llm.complete.side_effect = complete
        run_async(AgentLoop(llm).implement(_issue(), str(workspace)))

        turns = conversations[-1].turns
        assert [t.role for t in turns] == [Role.USER, Role.ASSISTANT, Role.USER]
        results = turns[2].tool_results
        assert [r.tool_call_id for r in results] == ["c1", "c2"]
        assert results[1].text == "def hello(): ..."

    def test_initial_prompt_mentions_issue_and_workspace(self, llm, workspace):
        llm.complete.side_effect = [_reply(text="done")]

        run_async(AgentLoop(llm).implement(_issue(), str(workspace)))

        first_turn = llm.complete.await_args_list[0].args[0].turns[0]
        assert "Issue #42: Add greeting helper" in first_turn.text
        assert str(workspace) in first_turn.text


class TestToolFailures:
    def test_unknown_tool_becomes_error_result(self, llm, workspace):
        seen = []

        async def complete(conversation, tools=None, max_tokens=None):
            seen.append(conversation.last)
            if len(seen) == 1:
                return _reply(ToolCall(id="c1", name="delete_everything", input={}))
            return _reply(text="ok")

        llm.complete.side_effect = complete
        result = run_async(AgentLoop(llm).implement(_issue(), str(workspace)))

        assert result.success is True
        answer = seen[-1].tool_results[0]
        assert answer.is_error is True
        assert answer.text == "Unknown tool: delete_everything"

    def test_bad_input_and_escape_do_not_count_as_changes(self, llm, workspace):
        llm.complete.side_effect = [
            _reply(
                ToolCall(id="c1", name="write_file", input={"path": "a.py"}),
                _write("c2", path="../outside.py"),
                ToolCall(id="c3", name="write_file", input={}, parse_error="bad json"),
            ),
            _reply(text="gave up"),
        ]

        result = run_async(AgentLoop(llm).implement(_issue(), str(workspace)))

        assert result.success is True
        assert result.files_changed == 0
        assert not (workspace.parent / "outside.py").exists()


class TestIterationCap:
    def test_cap_returns_incomplete_result(self, llm, workspace):
        llm.complete.side_effect = [_reply(_write(f"c{i}")) for i in range(3)]

        result = run_async(AgentLoop(llm, max_iterations=3).implement(_issue(), str(workspace)))

        assert result.success is False
        assert result.iterations == 3
        assert result.files_changed == 3
        assert result.tokens_used == 30
        assert llm.complete.await_count == 3
        assert "3 iterations" in result.message

    def test_invalid_cap_rejected(self, llm):
        with pytest.raises(ValueError):
            AgentLoop(llm, max_iterations=0)


class TestErrors:
    def test_llm_error_propagates(self, llm, workspace):
        llm.complete.side_effect = LLMAPIError("LLM API error: boom")

        with pytest.raises(LLMAPIError):
            run_async(AgentLoop(llm).implement(_issue(), str(workspace)))


class TestApplyReviewFixes:
    def test_prompt_contains_findings(self, llm, workspace):
        llm.complete.side_effect = [_reply(text="fixed")]

        result = run_async(
            AgentLoop(llm).apply_review_fixes(_issue(), str(workspace), "Rename foo to bar")
        )

        assert result.success is True
        prompt = llm.complete.await_args_list[0].args[0].turns[0].text
        assert "Rename foo to bar" in prompt
