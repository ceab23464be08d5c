"""
Tests for the workflow engine: staged runs, branching, failure isolation
and cancellation.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import connect, make_node
from workflow_engine.engine import WorkflowEngine
from workflow_engine.executors import NodeRunner, NODE_EXECUTORS
from workflow_engine.executors.base import NodeExecutor
from workflow_engine.models import (
    ConnectionStatus,
    ExecutionStatus,
    NodeResult,
    NodeStatus,
    Workflow,
    WorkflowSettings,
)


def build_workflow(nodes, connections, **settings):
    return Workflow(
        name="test",
        nodes=nodes,
        connections=connections,
        settings=WorkflowSettings(**settings),
    )


@pytest.fixture
def engine(services):
    return WorkflowEngine(services=services)


class TestWorkflowEngine:

    async def test_linear_run(self, engine):
        workflow = build_workflow(
            [
                make_node("manual_trigger", node_id="trigger"),
                make_node("set_variable", {"name": "total", "value": "data.amount"}, node_id="set"),
                make_node("template", {"template": "Total: {{total}}"}, node_id="render"),
            ],
            [connect("trigger", "set"), connect("set", "render")],
        )

        execution = await engine.execute_workflow(workflow, {"amount": 99})

        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.stages == [["trigger"], ["set"], ["render"]]
        assert execution.nodeExecutions["render"].output == "Total: 99"
        assert execution.variables == {"total": 99}
        assert workflow.get_node("render").status == NodeStatus.COMPLETED

    async def test_workflow_variables_seed_context(self, engine):
        workflow = build_workflow(
            [make_node("if_else", {"condition": "variables.enabled"}, node_id="check")],
            [],
        )
        workflow.variables = {"enabled": True}
        execution = await engine.execute_workflow(workflow)
        assert execution.nodeExecutions["check"].output["branch"] == "true"

    async def test_if_else_routes_selected_branch(self, engine):
        workflow = build_workflow(
            [
                make_node("manual_trigger", node_id="trigger"),
                make_node("if_else", {"condition": "data.value > 10"}, node_id="check"),
                make_node("template", {"template": "big {{value}}"}, node_id="big"),
                make_node("template", {"template": "small {{value}}"}, node_id="small"),
            ],
            [
                connect("trigger", "check"),
                connect("check", "big", source_port="true"),
                connect("check", "small", source_port="false"),
            ],
        )

        execution = await engine.execute_workflow(workflow, {"value": 20})

        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.nodeExecutions["big"].output == "big 20"
        assert execution.nodeExecutions["small"].status == NodeStatus.SKIPPED
        statuses = {conn.targetNodeId: conn.status for conn in workflow.connections}
        assert statuses["small"] == ConnectionStatus.SKIPPED
        assert statuses["big"] == ConnectionStatus.ACTIVE

    async def test_switch_routes_by_case_port(self, engine):
        workflow = build_workflow(
            [
                make_node("switch", {"field": "data.tier", "cases": ["free", "pro"]}, node_id="route"),
                make_node("merge", node_id="free"),
                make_node("merge", node_id="pro"),
                make_node("merge", node_id="other"),
            ],
            [
                connect("route", "free", source_port="case_0"),
                connect("route", "pro", source_port="1"),
                connect("route", "other", source_port="default"),
            ],
        )

        execution = await engine.execute_workflow(workflow, {"tier": "pro"})

        assert execution.nodeExecutions["pro"].status == NodeStatus.COMPLETED
        assert execution.nodeExecutions["pro"].input == {"tier": "pro"}
        assert execution.nodeExecutions["free"].status == NodeStatus.SKIPPED
        assert execution.nodeExecutions["other"].status == NodeStatus.SKIPPED

    async def test_merge_after_branches_gets_selected_input(self, engine):
        workflow = build_workflow(
            [
                make_node("if_else", {"condition": "data.ok"}, node_id="check"),
                make_node("map_fields", {"mapping": {"id": "accepted"}}, node_id="yes"),
                make_node("map_fields", {"mapping": {"id": "rejected"}}, node_id="no"),
                make_node("merge", node_id="join"),
            ],
            [
                connect("check", "yes", source_port="true"),
                connect("check", "no", source_port="false"),
                connect("yes", "join"),
                connect("no", "join"),
            ],
        )

        execution = await engine.execute_workflow(workflow, {"ok": True, "id": 5})

        assert execution.nodeExecutions["join"].output == {"accepted": 5}

    async def test_fan_in_merges_outputs(self, engine):
        workflow = build_workflow(
            [
                make_node("manual_trigger", node_id="trigger"),
                make_node("map_fields", {"mapping": {"a": "first"}}, node_id="left"),
                make_node("map_fields", {"mapping": {"b": "second"}}, node_id="right"),
                make_node("merge", node_id="join"),
            ],
            [
                connect("trigger", "left"), connect("trigger", "right"),
                connect("left", "join"), connect("right", "join"),
            ],
        )

        execution = await engine.execute_workflow(workflow, {"a": 1, "b": 2})

        assert execution.stages == [["trigger"], ["left", "right"], ["join"]]
        assert execution.nodeExecutions["join"].output == {"first": 1, "second": 2}

    async def test_failure_halts_only_downstream_path(self, engine):
        workflow = build_workflow(
            [
                make_node("manual_trigger", node_id="trigger"),
                make_node("loop", {"arrayField": "data.items"}, node_id="loop"),
                make_node("merge", node_id="after_loop"),
                make_node("template", {"template": "still {{state}}"}, node_id="other"),
            ],
            [connect("trigger", "loop"), connect("loop", "after_loop"), connect("trigger", "other")],
        )

        execution = await engine.execute_workflow(workflow, {"items": "nope", "state": "running"})

        assert execution.status == ExecutionStatus.ERROR
        assert execution.failed_nodes == ["loop"]
        assert "not an array" in execution.error
        assert execution.nodeExecutions["after_loop"].status == NodeStatus.SKIPPED
        assert execution.nodeExecutions["other"].output == "still running"

    async def test_halt_on_error_stops_run(self, engine):
        workflow = build_workflow(
            [
                make_node("unknown_type", node_id="bad"),
                make_node("merge", node_id="independent"),
                make_node("merge", node_id="later"),
            ],
            [connect("independent", "later")],
            haltOnError=True,
        )

        execution = await engine.execute_workflow(workflow, {})

        assert execution.status == ExecutionStatus.ERROR
        assert execution.nodeExecutions["independent"].status == NodeStatus.COMPLETED
        assert execution.nodeExecutions["later"].status == NodeStatus.SKIPPED

    async def test_cycle_reported_as_run_error(self, engine):
        workflow = build_workflow(
            [make_node("merge", node_id="a"), make_node("merge", node_id="b")],
            [connect("a", "b"), connect("b", "a")],
        )
        execution = await engine.execute_workflow(workflow)
        assert execution.status == ExecutionStatus.ERROR
        assert "cycle" in execution.error
        assert execution.id not in engine.running_executions

    async def test_timeout(self, engine):
        workflow = build_workflow(
            [make_node("delay", {"duration": 5}, node_id="wait")],
            [],
            timeout=0.05,
        )
        execution = await engine.execute_workflow(workflow)
        assert execution.status == ExecutionStatus.ERROR
        assert "timed out" in execution.error
        assert workflow.get_node("wait").status == NodeStatus.IDLE

    @pytest.mark.parametrize("parallel", [True, False])
    async def test_stage_nodes_settle_before_next_stage(self, engine, parallel):
        order = []

        class RecordingExecutor(NodeExecutor):
            async def execute(self, input_data, context):
                await asyncio.sleep(self.config.model_extra.get("wait", 0))
                order.append(self.node_id)
                return NodeResult.ok(input_data)

        registry = {**NODE_EXECUTORS, "record": RecordingExecutor}
        engine = WorkflowEngine(runner=NodeRunner(engine.runner.services, registry))
        workflow = build_workflow(
            [
                make_node("record", {"wait": 0.02}, node_id="slow"),
                make_node("record", node_id="fast"),
                make_node("record", node_id="next"),
            ],
            [connect("fast", "next")],
            parallelStages=parallel,
        )

        execution = await engine.execute_workflow(workflow, {})

        assert execution.status == ExecutionStatus.SUCCESS
        assert order[-1] == "next"
        if parallel:
            assert order == ["fast", "slow", "next"]
        else:
            assert order == ["slow", "fast", "next"]

    async def test_progress_events(self, engine):
        callback = AsyncMock()
        workflow = build_workflow(
            [make_node("manual_trigger", node_id="t"), make_node("loop", {"arrayField": "data.x"}, node_id="l")],
            [connect("t", "l")],
        )

        await engine.execute_workflow(workflow, {}, progress_callback=callback)

        events = [(call.args[0].nodeId, call.args[0].type) for call in callback.await_args_list]
        assert events == [("t", "start"), ("t", "complete"), ("l", "start"), ("l", "error")]

    async def test_failing_callback_does_not_break_run(self, engine):
        def callback(event):
            raise RuntimeError("ui disconnected")

        workflow = build_workflow([make_node("merge", node_id="m")], [])
        execution = await engine.execute_workflow(workflow, {}, progress_callback=callback)
        assert execution.status == ExecutionStatus.SUCCESS

    async def test_stream_workflow(self, engine):
        workflow = build_workflow(
            [make_node("manual_trigger", node_id="t"), make_node("merge", node_id="m")],
            [connect("t", "m")],
        )
        events = [event async for event in engine.stream_workflow(workflow, {"x": 1})]
        assert [e.type for e in events] == ["start", "complete", "start", "complete"]
        assert events[-1].data == {"x": 1}

    async def test_cancel_between_stages(self, engine):
        workflow = build_workflow(
            [
                make_node("manual_trigger", node_id="t"),
                make_node("set_variable", {"name": "leaked", "value": "data.n"}, node_id="set"),
                make_node("delay", {"duration": 0.05}, node_id="wait"),
                make_node("merge", node_id="after"),
            ],
            [connect("t", "set"), connect("t", "wait"), connect("wait", "after")],
        )
        workflow.variables = {"kept": True}

        task = asyncio.create_task(engine.execute_workflow(workflow, {"n": 1}, execution_id="exec-cancel"))
        await asyncio.sleep(0.01)
        assert await engine.cancel_execution("exec-cancel") is True

        execution = await task

        assert execution.status == ExecutionStatus.CANCELLED
        assert "set" not in execution.nodeExecutions
        assert "wait" not in execution.nodeExecutions
        assert "after" not in execution.nodeExecutions
        assert execution.nodeExecutions["t"].status == NodeStatus.COMPLETED
        # Writes from the interrupted stage are rolled back
        assert execution.variables == {"kept": True}
        assert workflow.get_node("t").status == NodeStatus.COMPLETED
        assert workflow.get_node("set").status == NodeStatus.IDLE
        assert workflow.get_node("wait").status == NodeStatus.IDLE
        assert workflow.get_node("after").status == NodeStatus.IDLE

    async def test_cancel_unknown_execution(self, engine):
        assert await engine.cancel_execution("exec-missing") is False
