"""Tests for the autonomous AgentLoop."""

import pytest

from opsmate.controllers.agent_loop import AgentLoop
from opsmate.models.agent import (
    STOP_EXECUTION_ERROR,
    STOP_INFERENCE_ERROR,
    STOP_MAX_ITERATIONS,
    STOP_TIMEOUT,
    AgentPhase,
    StepType,
)
from opsmate.models.risk import RiskLevel
from opsmate.models.tool import ExecutionResult, Translation
from opsmate.services.audit_service import AuditEventType, ConfirmationOutcome
from opsmate.services.confirmation import auto_confirm
from opsmate.utils.errors import ExecutionError, InferenceFailure

CHECK_PODS = Translation(
    command="kubectl get pods", reasoning="look at pod status", tool_name="kubectl"
)
SOLVED = Translation(
    command="", reasoning="SOLUTION: web pods crash because DATABASE_URL is unset"
)


@pytest.fixture
def build_loop(registry, executor, audit_sink, context):
    def build(oracle, **kwargs):
        kwargs.setdefault("context", context)
        return AgentLoop(
            task="why is the web deployment failing",
            registry=registry,
            oracle=oracle,
            executor=executor,
            audit_sink=audit_sink,
            **kwargs,
        )

    return build


class TestRunUntilComplete:
    @pytest.mark.asyncio
    async def test_diagnosis_completes(self, build_loop, make_oracle, executor):
        loop = build_loop(make_oracle(CHECK_PODS, SOLVED))
        state = await loop.run_until_complete()

        assert state.status.phase == AgentPhase.COMPLETED
        assert state.root_cause == "web pods crash because DATABASE_URL is unset"
        assert [s.step_type for s in state.history] == [
            StepType.THOUGHT,
            StepType.ACTION,
            StepType.OBSERVATION,
            StepType.THOUGHT,
        ]
        assert [s.step_number for s in state.history] == [1, 2, 3, 4]
        assert state.iteration == 1
        assert executor.commands == ["kubectl get pods"]
        assert state.collected_info == [("kubectl get pods", "exit code 0\nok")]

    @pytest.mark.asyncio
    async def test_action_records_tool_and_risk(self, build_loop, make_oracle, audit_sink):
        loop = build_loop(make_oracle(CHECK_PODS, SOLVED))
        state = await loop.run_until_complete()

        action = state.get_recent_steps(StepType.ACTION, 1)[0]
        assert action.tool_used == "kubectl"
        assert action.risk_level == RiskLevel.LOW
        observation = state.get_recent_steps(StepType.OBSERVATION, 1)[0]
        assert observation.success is True
        assert observation.execution.stdout == "ok"
        event = audit_sink.events[0]
        assert event.event == AuditEventType.AGENT_ACTION
        assert event.confirmation == ConfirmationOutcome.NOT_REQUIRED
        assert event.user_input == "why is the web deployment failing"

    @pytest.mark.asyncio
    async def test_iteration_ceiling_stops_run(self, build_loop, make_oracle, executor):
        loop = build_loop(make_oracle(CHECK_PODS), max_iterations=3)
        state = await loop.run_until_complete()

        assert state.status.phase == AgentPhase.STOPPED
        assert state.status.reason == STOP_MAX_ITERATIONS
        assert state.iteration == 3
        assert len(state.history) == 9
        assert len(executor.commands) == 3

    @pytest.mark.asyncio
    async def test_inference_failure_stops_run(self, build_loop, make_oracle):
        loop = build_loop(make_oracle(InferenceFailure("backend unreachable")))
        state = await loop.run_until_complete()

        assert state.status.reason == STOP_INFERENCE_ERROR
        assert state.history == []

    @pytest.mark.asyncio
    async def test_executor_failure_stops_run(self, build_loop, make_oracle, executor):
        executor.results["kubectl get pods"] = ExecutionError("runner crashed")
        loop = build_loop(make_oracle(CHECK_PODS, SOLVED))
        state = await loop.run_until_complete()

        assert state.status.reason == STOP_EXECUTION_ERROR
        assert state.history[-1].step_type == StepType.OBSERVATION
        assert state.history[-1].success is False

    @pytest.mark.asyncio
    async def test_time_budget_stops_run(self, build_loop, make_oracle):
        oracle = make_oracle(CHECK_PODS)
        loop = build_loop(oracle, max_duration=0.0)
        state = await loop.run_until_complete()

        assert state.status.reason == STOP_TIMEOUT
        assert oracle.prompts == []


class TestStep:
    @pytest.mark.asyncio
    async def test_unconfirmed_action_is_not_executed(
        self, build_loop, make_oracle, executor, audit_sink
    ):
        delete = Translation(command="kubectl delete pod web-1", tool_name="kubectl")
        loop = build_loop(make_oracle(delete, SOLVED))
        state = await loop.run_until_complete()

        assert executor.commands == []
        observation = state.get_recent_steps(StepType.OBSERVATION, 1)[0]
        assert observation.success is False
        assert "not confirmed" in observation.content
        assert audit_sink.events[0].confirmation == ConfirmationOutcome.DECLINED
        assert state.status.phase == AgentPhase.COMPLETED

    @pytest.mark.asyncio
    async def test_mislabelled_tool_does_not_lower_risk(
        self, build_loop, make_oracle, executor
    ):
        delete = Translation(command="kubectl delete namespace prod", tool_name="mysql")
        loop = build_loop(make_oracle(delete, SOLVED))
        state = await loop.run_until_complete()

        action = state.get_recent_steps(StepType.ACTION, 1)[0]
        assert action.tool_used == "kubectl"
        assert action.risk_level == RiskLevel.CRITICAL
        assert executor.commands == []

    @pytest.mark.asyncio
    async def test_oracle_label_used_when_command_names_no_tool(
        self, build_loop, make_oracle, executor
    ):
        query = Translation(command="SELECT 1", tool_name="mysql")
        loop = build_loop(make_oracle(query, SOLVED))
        state = await loop.run_until_complete()
        assert state.get_recent_steps(StepType.ACTION, 1)[0].tool_used == "mysql"

    @pytest.mark.asyncio
    async def test_confirmed_action_runs(self, build_loop, make_oracle, executor):
        delete = Translation(command="kubectl delete pod web-1", tool_name="kubectl")
        loop = build_loop(make_oracle(delete, SOLVED), confirm=auto_confirm)
        await loop.run_until_complete()
        assert executor.commands == ["kubectl delete pod web-1"]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_observed(self, build_loop, make_oracle, executor):
        loop = build_loop(make_oracle(Translation(command="terraform apply"), SOLVED))
        state = await loop.run_until_complete()

        action = state.get_recent_steps(StepType.ACTION, 1)[0]
        assert action.success is False
        assert action.tool_used is None
        observation = state.get_recent_steps(StepType.OBSERVATION, 1)[0]
        assert "No registered tool" in observation.content
        assert executor.commands == []
        assert state.status.phase == AgentPhase.COMPLETED

    @pytest.mark.asyncio
    async def test_tool_resolved_by_detection(self, build_loop, make_oracle, executor):
        loop = build_loop(make_oracle(Translation(command="docker ps -a"), SOLVED))
        state = await loop.run_until_complete()
        assert state.get_recent_steps(StepType.ACTION, 1)[0].tool_used == "docker"
        assert executor.commands == ["docker ps -a"]

    @pytest.mark.asyncio
    async def test_failed_command_keeps_raw_result_and_explanation(
        self, build_loop, make_oracle, executor
    ):
        executor.results["kubectl get pods"] = ExecutionResult(
            1, stderr='Error from server (NotFound): pods "web" not found'
        )
        loop = build_loop(make_oracle(CHECK_PODS, SOLVED))
        state = await loop.run_until_complete()

        observation = state.get_recent_steps(StepType.OBSERVATION, 1)[0]
        assert observation.success is False
        assert observation.execution.exit_code == 1
        assert observation.explanation.error_type == "Kubernetes Resource Not Found"
        assert "Suggested: kubectl get pods --all-namespaces" in observation.content

    @pytest.mark.asyncio
    async def test_history_reaches_next_prompt(self, build_loop, make_oracle):
        oracle = make_oracle(CHECK_PODS, SOLVED)
        loop = build_loop(oracle)
        await loop.run_until_complete()

        assert "Task: why is the web deployment failing" in oracle.prompts[0]
        assert "What you've done so far" not in oracle.prompts[0]
        assert "Step 2: ACTION - kubectl get pods" in oracle.prompts[1]
        assert "$ kubectl get pods" in oracle.prompts[1]

    @pytest.mark.asyncio
    async def test_on_step_callback(self, build_loop, make_oracle):
        seen = []
        loop = build_loop(make_oracle(CHECK_PODS, SOLVED), on_step=seen.append)
        state = await loop.run_until_complete()
        assert seen == state.history

    @pytest.mark.asyncio
    async def test_step_after_finish_returns_false(self, build_loop, make_oracle):
        loop = build_loop(make_oracle(SOLVED))
        assert await loop.step() is False
        assert await loop.step() is False
        assert loop.state.status.phase == AgentPhase.COMPLETED


class TestDoneDetection:
    @pytest.fixture
    def loop(self, build_loop, make_oracle):
        return build_loop(make_oracle(SOLVED))

    @pytest.mark.parametrize(
        "translation",
        [
            Translation(command=""),
            Translation(command="DONE"),
            Translation(command="SOLUTION: restart the node"),
            Translation(command="kubectl get pods", reasoning="SOLUTION: found it"),
        ],
    )
    def test_done(self, loop, translation):
        assert loop.is_done(translation)

    def test_not_done(self, loop):
        assert not loop.is_done(CHECK_PODS)

    def test_root_cause_without_marker(self, loop):
        assert loop.extract_root_cause(Translation(command="", reasoning="disk full")) == "disk full"
