"""Tests for core.orchestrator — fake model client, verify stage chain logic."""

import copy
import json
from unittest.mock import patch

import pytest

from agents.test_coder import TestCoderAgent
from core.errors import (
    ClientError,
    InputError,
    PostProcessError,
    RunInProgressError,
    SchemaParseError,
    SchemaViolationError,
)
from core.orchestrator import Orchestrator
from core.prompts import NO_SEED_REQUIREMENTS
from core.state import PipelineState, Stage, STAGE_ORDER, UploadedFile

SUMMARY = "# Todo app\nA React todo list with local storage."

PRD = {
    "app_name": "Todo",
    "overview": "Track tasks.",
    "goals": [{"id": "G001", "description": "Let users track tasks"}],
    "user_stories": [
        {"id": "US001", "as_a": "user", "i_want": "to add a task", "so_that": "I remember it"}
    ],
    "functional_requirements": [{"id": "FR001", "description": "Create tasks"}],
}

PLAN = {
    "project_name": "Todo",
    "test_plan_version": "1.0",
    "test_cases": [
        {
            "id": "TC001",
            "title": "Add a task",
            "description": "User adds a task",
            "category": "Functional",
            "priority": "High",
            "steps": ["Open app", "Type a task", "Press Enter"],
            "expected_result": "Task appears in the list",
        }
    ],
}

CODE = "```js\ntest('Add a task', async () => {\n  expect(true).toBe(true);\n});\n```"

FILES = [
    UploadedFile(path="src/App.jsx", content="export default function App() {}"),
    UploadedFile(path="src/store.js", content="export const store = {};"),
    UploadedFile(path="package.json", content='{"name": "todo"}'),
]


class FakeClient:
    """Scripted model client: free-text replies and structured replies in order."""

    def __init__(self, text=(SUMMARY, CODE), structured=(json.dumps(PRD), json.dumps(PLAN))):
        self.text = list(text)
        self.structured = list(structured)
        self.calls = []

    def _next(self, queue):
        reply = queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def complete(self, prompt):
        self.calls.append(("complete", prompt, None))
        return self._next(self.text)

    def complete_structured(self, prompt, schema):
        self.calls.append(("structured", prompt, schema))
        return self._next(self.structured)


def _assert_prefix(state):
    """No later slot is populated without every earlier slot."""
    populated = [getattr(state.results, slot) is not None for slot in state.results.SLOTS]
    first_gap = populated.index(False) if False in populated else len(populated)
    assert not any(populated[first_gap:])


def test_successful_run_reaches_done():
    client = FakeClient()
    orch = Orchestrator(client=client)
    state = PipelineState()

    orch.run_autopilot(state, files=FILES, framework="jest")

    assert state.stage == Stage.DONE
    assert state.busy is False
    assert state.error is None
    assert state.results.summary == SUMMARY
    assert state.results.prd["goals"]
    assert len(state.results.test_plan["test_cases"]) >= 1
    assert "```" not in state.results.test_code
    assert state.results.test_code.startswith("test('Add a task'")


def test_stages_visited_in_order():
    seen = []
    orch = Orchestrator(client=FakeClient())
    orch.run_autopilot(PipelineState(), files=FILES, on_stage=lambda s: seen.append(s.stage))
    assert seen == STAGE_ORDER + [Stage.DONE]


def test_each_stage_consumes_previous_artifact():
    client = FakeClient()
    orch = Orchestrator(client=client)
    orch.run_autopilot(PipelineState(), files=FILES, framework="cypress")

    kinds = [kind for kind, _, _ in client.calls]
    assert kinds == ["complete", "structured", "structured", "complete"]

    summary_prompt, prd_prompt, plan_prompt, code_prompt = (p for _, p, _ in client.calls)
    assert "--- FILE: src/App.jsx ---" in summary_prompt
    assert SUMMARY in prd_prompt
    assert NO_SEED_REQUIREMENTS in prd_prompt
    assert json.dumps(PRD, indent=2) in plan_prompt
    assert json.dumps(PLAN, indent=2) in code_prompt
    assert "Cypress" in code_prompt
    # Raw files only feed the summary stage
    assert "--- FILE:" not in code_prompt


def test_structured_stages_receive_their_schema():
    client = FakeClient()
    Orchestrator(client=client).run_autopilot(PipelineState(), files=FILES)
    schemas = [schema for kind, _, schema in client.calls if kind == "structured"]
    assert "app_name" in schemas[0]["required"]
    assert "test_cases" in schemas[1]["required"]


def test_seed_requirements_reach_prd_stage():
    client = FakeClient()
    Orchestrator(client=client).run_autopilot(
        PipelineState(), files=FILES, seed_requirements="Users must log in with SSO",
    )
    prd_prompt = client.calls[1][1]
    assert "Users must log in with SSO" in prd_prompt
    assert NO_SEED_REQUIREMENTS not in prd_prompt


def test_empty_files_raise_input_error_without_state_change():
    orch = Orchestrator(client=FakeClient())
    state = PipelineState()
    state.stage = Stage.DONE
    state.results.summary = "previous"

    with pytest.raises(InputError, match="no files uploaded"):
        orch.run_autopilot(state, files=[])

    assert state.stage == Stage.DONE
    assert state.results.summary == "previous"
    assert state.busy is False
    assert state.run_id == 0


def test_unknown_framework_leaves_state_untouched():
    state = PipelineState(files=list(FILES))
    state.results.summary = "previous"

    with pytest.raises(ValueError, match="Unknown framework"):
        Orchestrator(client=FakeClient()).run_autopilot(
            state, files=[UploadedFile(path="x.js", content="1")], framework="mocha",
        )

    assert [f.path for f in state.files] == [f.path for f in FILES]
    assert state.results.summary == "previous"
    assert state.run_id == 0


def test_no_files_on_state_raises_input_error():
    with pytest.raises(InputError):
        Orchestrator(client=FakeClient()).run_autopilot(PipelineState())


def test_invalid_json_at_prd_stage_aborts():
    client = FakeClient(structured=["not json"])
    orch = Orchestrator(client=client)
    state = PipelineState()

    with pytest.raises(SchemaParseError):
        orch.run_autopilot(state, files=FILES, framework="jest", raise_errors=True)

    assert state.stage == Stage.IDLE
    assert state.busy is False
    assert state.error.startswith("Failed at step GENERATING_PRD:")
    assert state.results.summary == SUMMARY
    assert state.results.prd is None
    assert state.results.test_plan is None
    assert state.results.test_code is None
    assert len(client.calls) == 2


def test_failure_without_raise_returns_state():
    client = FakeClient(structured=["not json"])
    state = Orchestrator(client=client).run_autopilot(PipelineState(), files=FILES)
    assert state.stage == Stage.IDLE
    assert "GENERATING_PRD" in state.error


def test_client_error_at_summary_stage():
    client = FakeClient(text=[ClientError("quota exceeded")])
    state = PipelineState()
    Orchestrator(client=client).run_autopilot(state, files=FILES)

    assert state.error == "Failed at step SUMMARIZING: quota exceeded"
    assert state.stage == Stage.IDLE
    assert state.results.populated() == []


def test_schema_violation_at_test_plan_stage():
    bad_plan = copy.deepcopy(PLAN)
    del bad_plan["test_cases"][0]["expected_result"]
    client = FakeClient(structured=[json.dumps(PRD), json.dumps(bad_plan)])
    state = PipelineState()

    with pytest.raises(SchemaViolationError):
        Orchestrator(client=client).run_autopilot(state, files=FILES, raise_errors=True)

    assert state.results.populated() == ["summary", "prd"]
    assert "GENERATING_TEST_PLAN" in state.error
    _assert_prefix(state)


def test_empty_code_after_fence_strip_is_post_process_error():
    client = FakeClient(text=[SUMMARY, "```js\n```"])
    state = PipelineState()

    with pytest.raises(PostProcessError):
        Orchestrator(client=client).run_autopilot(state, files=FILES, raise_errors=True)

    assert state.results.populated() == ["summary", "prd", "test_plan"]
    assert "GENERATING_TEST_CODE" in state.error


@pytest.mark.parametrize("fail_at", range(4))
def test_partial_results_are_always_a_prefix(fail_at):
    text = [SUMMARY, CODE]
    structured = [json.dumps(PRD), json.dumps(PLAN)]
    # stage index -> (queue, position)
    where = {0: (text, 0), 1: (structured, 0), 2: (structured, 1), 3: (text, 1)}
    queue, pos = where[fail_at]
    queue[pos] = ClientError("boom")

    state = PipelineState()
    Orchestrator(client=FakeClient(text, structured)).run_autopilot(state, files=FILES)

    assert state.stage == Stage.IDLE
    assert state.error.startswith(f"Failed at step {STAGE_ORDER[fail_at].value}")
    assert len(state.results.populated()) == fail_at
    _assert_prefix(state)


def test_new_run_clears_previous_error_and_results():
    orch = Orchestrator(client=FakeClient(text=[ClientError("down")]))
    state = PipelineState()
    orch.run_autopilot(state, files=FILES)
    assert state.error

    orch._client = FakeClient()
    orch.run_autopilot(state)
    assert state.error is None
    assert state.stage == Stage.DONE
    assert state.run_id == 2


def test_busy_session_rejects_new_run():
    orch = Orchestrator(client=FakeClient())
    state = PipelineState(files=list(FILES))
    state.busy = True

    with pytest.raises(RunInProgressError):
        orch.run_autopilot(state)
    assert state.run_id == 0


def test_duplicate_test_case_ids_are_warnings_only():
    plan = copy.deepcopy(PLAN)
    plan["test_cases"].append(copy.deepcopy(plan["test_cases"][0]))
    client = FakeClient(structured=[json.dumps(PRD), json.dumps(plan)])
    state = PipelineState()

    Orchestrator(client=client).run_autopilot(state, files=FILES)

    assert state.stage == Stage.DONE
    assert state.warnings == ["Duplicate id 'TC001' in test_cases"]


def test_cancel_idle_session_is_noop():
    orch = Orchestrator(client=FakeClient())
    state = PipelineState()
    assert orch.cancel(state) is False
    assert state.error is None


def test_cancelled_run_drops_late_response():
    """A response arriving after cancel must not touch the session."""
    state = PipelineState()
    orch = Orchestrator()

    class SlowClient(FakeClient):
        def complete(self, prompt):
            # Simulate the user cancelling while the summary call is in flight
            orch.cancel(state)
            return super().complete(prompt)

    orch._client = SlowClient()
    orch.run_autopilot(state, files=FILES)

    assert state.error == "Run cancelled"
    assert state.stage == Stage.IDLE
    assert state.busy is False
    assert state.results.summary is None
    assert len(orch._client.calls) == 1


def test_cancelled_run_drops_late_failure():
    state = PipelineState()
    orch = Orchestrator()

    class FailingAfterCancel(FakeClient):
        def complete(self, prompt):
            orch.cancel(state)
            raise ClientError("late failure")

    orch._client = FailingAfterCancel()
    orch.run_autopilot(state, files=FILES, raise_errors=True)

    assert state.error == "Run cancelled"


def test_cancel_during_last_stage_never_reaches_done():
    state = PipelineState()
    orch = Orchestrator(client=FakeClient())

    class CancellingCoder(TestCoderAgent):
        def review(self, artifact):
            # Cancel lands after the response arrived, before it is stored
            orch.cancel(state)
            return super().review(artifact)

    orch.agents[-1] = CancellingCoder()
    orch.run_autopilot(state, files=FILES)

    assert state.stage == Stage.IDLE
    assert state.busy is False
    assert state.error == "Run cancelled"
    assert state.results.test_code is None
    assert state.results.populated() == ["summary", "prd", "test_plan"]


def test_cancelled_run_does_not_write_into_restarted_run():
    state = PipelineState(files=list(FILES))
    orch = Orchestrator()
    restarted = []

    class RestartingClient(FakeClient):
        def complete(self, prompt):
            if not restarted:
                orch.cancel(state)
                restarted.append(orch.start_run(state))
            return super().complete(prompt)

    orch._client = RestartingClient()
    old_run = orch.start_run(state)
    orch.execute_run(state, old_run)

    assert state.run_id == restarted[0] == old_run + 1
    assert state.busy is True
    assert state.error is None
    assert state.results.populated() == []


def test_update_inputs_seed_only_keeps_files():
    orch = Orchestrator(client=FakeClient())
    state = PipelineState(files=list(FILES))
    state.results.summary = "previous"

    orch.update_inputs(state, seed_requirements="Must log in")

    assert state.files == FILES
    assert state.seed_requirements == "Must log in"
    assert state.results.summary is None


def test_update_inputs_files_only_keeps_seed():
    orch = Orchestrator(client=FakeClient())
    state = PipelineState(files=list(FILES), seed_requirements="Must log in")

    orch.update_inputs(state, files=[UploadedFile(path="new.js", content="1")])

    assert [f.path for f in state.files] == ["new.js"]
    assert state.seed_requirements == "Must log in"


def test_update_inputs_framework_only_keeps_results():
    orch = Orchestrator(client=FakeClient())
    state = PipelineState(files=list(FILES))
    state.stage = Stage.DONE
    state.results.summary = "previous"

    orch.update_inputs(state, framework="cypress")

    assert state.framework.value == "cypress"
    assert state.stage == Stage.DONE
    assert state.results.summary == "previous"


def test_update_inputs_rejected_while_busy():
    orch = Orchestrator(client=FakeClient())
    state = PipelineState(files=list(FILES))
    state.busy = True

    with pytest.raises(RunInProgressError):
        orch.update_inputs(state, files=[])
    assert state.files == FILES


def test_client_built_lazily_from_settings():
    from config.settings import Settings

    settings = Settings(api_key="k")
    orch = Orchestrator(settings=settings)
    with patch("core.orchestrator.ModelClient") as mock_client:
        client = orch.client
    mock_client.assert_called_once_with(settings)
    assert client is mock_client.return_value
