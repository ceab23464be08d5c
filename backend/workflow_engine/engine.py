"""
Workflow Engine - Executes workflows stage by stage over the execution plan
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Set, Tuple

from .executors import NodeRunner
from .executors.base import ExecutionContext
from .models import (
    ConnectionStatus,
    ExecutionEvent,
    ExecutionStatus,
    NodeExecution,
    NodeResult,
    NodeStatus,
    Workflow,
    WorkflowConnection,
    WorkflowExecution,
    WorkflowNode,
)
from .planner import ExecutionPlan, WorkflowGraphError, build_execution_plan
from .services import ExecutionServices, maybe_await

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ExecutionEvent], Any]

BRANCHING_TYPES = {"if_else", "switch"}


def _port_matches(port_id: str, branch: str) -> bool:
    return port_id == branch or port_id == f"case_{branch}"


class WorkflowEngine:
    """
    Executes workflows by walking the planned stages.

    The engine:
    1. Builds the staged execution plan
    2. Gathers each node's input from its active upstream connections
    3. Runs every node of a stage (concurrently by default) before moving on
    4. Routes if/else and switch outputs to the selected branch only
    5. Skips the downstream path of failed nodes, leaving other paths running
    6. Reports progress via callbacks
    """

    def __init__(
        self,
        services: Optional[ExecutionServices] = None,
        runner: Optional[NodeRunner] = None,
    ):
        self.runner = runner or NodeRunner(services)
        self.running_executions: Dict[str, WorkflowExecution] = {}
        self.cancelled_executions: Set[str] = set()

    async def execute_workflow(
        self,
        workflow: Workflow,
        trigger_data: Any = None,
        execution_id: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> WorkflowExecution:
        """
        Execute a workflow from start to finish.

        Args:
            workflow: The workflow to execute
            trigger_data: Payload handed to root nodes
            execution_id: Optional custom execution ID
            progress_callback: Receives an ExecutionEvent per node transition

        Returns:
            WorkflowExecution with final status, per-node records and logs
        """
        execution = WorkflowExecution(workflowId=workflow.id, triggerData=trigger_data)
        if execution_id:
            execution.id = execution_id

        context = ExecutionContext(
            workflow_id=workflow.id,
            execution_id=execution.id,
            variables=dict(workflow.variables),
        )

        execution.status = ExecutionStatus.RUNNING
        self.running_executions[execution.id] = execution
        logger.info(f"Starting workflow execution: {execution.id} ({workflow.id})")

        try:
            plan = build_execution_plan(workflow.nodes, workflow.connections)
            execution.stages = plan.stages

            for node in workflow.nodes:
                node.status = NodeStatus.IDLE
                node.output = None
            for conn in workflow.connections:
                conn.status = ConnectionStatus.IDLE

            run = self._run_stages(workflow, plan, trigger_data, context, execution, progress_callback)
            timeout = workflow.settings.timeout
            if timeout:
                await asyncio.wait_for(run, timeout=timeout)
            else:
                await run

        except WorkflowGraphError as e:
            logger.error(f"Workflow cannot be planned: {execution.id} - {e}")
            execution.status = ExecutionStatus.ERROR
            execution.error = str(e)

        except asyncio.TimeoutError:
            logger.error(f"Workflow execution timed out: {execution.id}")
            self._reset_unfinished(workflow)
            execution.status = ExecutionStatus.ERROR
            execution.error = f"Workflow timed out after {workflow.settings.timeout}s"

        finally:
            self.running_executions.pop(execution.id, None)
            self.cancelled_executions.discard(execution.id)

        if execution.status == ExecutionStatus.RUNNING:
            failed = execution.failed_nodes
            if failed:
                execution.status = ExecutionStatus.ERROR
                first = execution.nodeExecutions[failed[0]]
                execution.error = f"Node {first.nodeId} failed: {first.error}"
            else:
                execution.status = ExecutionStatus.SUCCESS

        execution.variables = context.variables_snapshot()
        execution.logs = list(context.logs)
        execution.completedAt = datetime.utcnow()

        logger.info(f"Workflow execution completed: {execution.id} - {execution.status.value}")
        return execution

    async def stream_workflow(
        self,
        workflow: Workflow,
        trigger_data: Any = None,
        execution_id: Optional[str] = None,
    ) -> AsyncIterator[ExecutionEvent]:
        """Run a workflow and yield its progress events as they happen"""
        queue: "asyncio.Queue" = asyncio.Queue()
        finished = object()

        async def _run() -> WorkflowExecution:
            try:
                return await self.execute_workflow(
                    workflow, trigger_data, execution_id, progress_callback=queue.put
                )
            finally:
                queue.put_nowait(finished)

        task = asyncio.create_task(_run())
        try:
            while True:
                event = await queue.get()
                if event is finished:
                    break
                yield event
            await task
        finally:
            if not task.done():
                task.cancel()

    async def cancel_execution(self, execution_id: str) -> bool:
        """Cancel a running execution after its current stage"""
        if execution_id in self.running_executions:
            self.cancelled_executions.add(execution_id)
            logger.info(f"Cancellation requested for: {execution_id}")
            return True
        return False

    async def _run_stages(
        self,
        workflow: Workflow,
        plan: ExecutionPlan,
        trigger_data: Any,
        context: ExecutionContext,
        execution: WorkflowExecution,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        nodes_by_id = {node.id: node for node in workflow.nodes}
        incoming: Dict[str, List[WorkflowConnection]] = {node.id: [] for node in workflow.nodes}
        outgoing: Dict[str, List[WorkflowConnection]] = {node.id: [] for node in workflow.nodes}
        for conn in workflow.connections:
            incoming[conn.targetNodeId].append(conn)
            outgoing[conn.sourceNodeId].append(conn)

        # Connections whose source completed and (for branches) was selected
        active: Set[str] = set()

        for stage_index, stage in enumerate(plan.stages):
            variables_before = context.variables_snapshot()
            if execution.id in self.cancelled_executions:
                self._cancel(workflow, execution, context, plan, stage_index, variables_before)
                return

            runnable: List[Tuple[WorkflowNode, Any]] = []
            for node_id in stage:
                node = nodes_by_id[node_id]
                sources = incoming[node_id]
                if not sources:
                    runnable.append((node, trigger_data))
                    continue

                live = [conn for conn in sources if conn.id in active]
                if not live:
                    await self._skip_node(node, stage_index, execution, progress_callback)
                    continue
                runnable.append((node, self._gather_input(live, nodes_by_id, context)))

            coros = [
                self._run_node(node, input_data, stage_index, context, progress_callback)
                for node, input_data in runnable
            ]
            if workflow.settings.parallelStages:
                settled = await asyncio.gather(*coros)
            else:
                settled = [await coro for coro in coros]

            if execution.id in self.cancelled_executions:
                # Results that settle after a cancel are not committed
                self._cancel(workflow, execution, context, plan, stage_index, variables_before)
                return

            stage_failed = False
            for node, node_exec, result in settled:
                execution.nodeExecutions[node.id] = node_exec
                node.status = node_exec.status
                node.output = result.output

                if not result.success:
                    stage_failed = True
                    await self._notify(progress_callback, node.id, "error", result.error)
                    continue

                context.node_outputs[node.id] = result.output
                self._activate_outgoing(node, result, outgoing[node.id], active)
                await self._notify(progress_callback, node.id, "complete", result.output)

            if stage_failed and workflow.settings.haltOnError:
                context.log(f"Halting run after failure in stage {stage_index}", level="warning")
                for later_stage in plan.stages[stage_index + 1:]:
                    for node_id in later_stage:
                        await self._skip_node(nodes_by_id[node_id], plan.stage_of(node_id), execution, progress_callback)
                return

    def _gather_input(
        self,
        live: List[WorkflowConnection],
        nodes_by_id: Dict[str, WorkflowNode],
        context: ExecutionContext,
    ) -> Any:
        """Single source: its output; several sources: their outputs merged"""
        def source_output(conn: WorkflowConnection) -> Any:
            output = context.node_outputs.get(conn.sourceNodeId)
            source = nodes_by_id[conn.sourceNodeId]
            if source.type in BRANCHING_TYPES and isinstance(output, Mapping) and "data" in output:
                return output["data"]
            return output

        source_ids: List[str] = []
        for conn in live:
            if conn.sourceNodeId not in source_ids:
                source_ids.append(conn.sourceNodeId)

        if len(source_ids) == 1:
            return source_output(live[0])

        merged: Dict[str, Any] = {}
        for conn in live:
            output = source_output(conn)
            if isinstance(output, Mapping):
                merged.update(output)
        return merged

    def _activate_outgoing(
        self,
        node: WorkflowNode,
        result: NodeResult,
        connections: List[WorkflowConnection],
        active: Set[str],
    ) -> None:
        branch = None
        if node.type in BRANCHING_TYPES and isinstance(result.output, Mapping):
            branch = result.output.get("branch")

        for conn in connections:
            if branch is not None and not _port_matches(conn.sourcePortId, str(branch)):
                conn.status = ConnectionStatus.SKIPPED
                continue
            conn.status = ConnectionStatus.ACTIVE
            active.add(conn.id)

    async def _run_node(
        self,
        node: WorkflowNode,
        input_data: Any,
        stage_index: int,
        context: ExecutionContext,
        progress_callback: Optional[ProgressCallback],
    ) -> Tuple[WorkflowNode, NodeExecution, NodeResult]:
        node_exec = NodeExecution(
            nodeId=node.id,
            nodeType=node.type,
            status=NodeStatus.RUNNING,
            stage=stage_index,
            startedAt=datetime.utcnow(),
            input=input_data,
        )
        node.status = NodeStatus.RUNNING
        await self._notify(progress_callback, node.id, "start", None)

        result = await self.runner.execute_node(node, input_data, context)

        node_exec.completedAt = datetime.utcnow()
        node_exec.duration = int((node_exec.completedAt - node_exec.startedAt).total_seconds() * 1000)
        node_exec.output = result.output
        if result.success:
            node_exec.status = NodeStatus.COMPLETED
            context.log(f"Node completed: {node.id} ({node_exec.duration}ms)")
        else:
            node_exec.status = NodeStatus.ERROR
            node_exec.error = result.error
            context.log(f"Node failed: {node.id} - {result.error}", level="error")

        return node, node_exec, result

    async def _skip_node(
        self,
        node: WorkflowNode,
        stage_index: int,
        execution: WorkflowExecution,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        node.status = NodeStatus.SKIPPED
        execution.nodeExecutions[node.id] = NodeExecution(
            nodeId=node.id,
            nodeType=node.type,
            status=NodeStatus.SKIPPED,
            stage=stage_index,
        )
        await self._notify(progress_callback, node.id, "skip", None)

    def _cancel(
        self,
        workflow: Workflow,
        execution: WorkflowExecution,
        context: ExecutionContext,
        plan: ExecutionPlan,
        stage_index: int,
        variables_before: Dict[str, Any],
    ) -> None:
        context.cancelled = True
        context.log(f"Execution cancelled before committing stage {stage_index}", level="warning")
        execution.status = ExecutionStatus.CANCELLED

        # Drop variable writes made by the uncommitted stage
        context.variables.clear()
        context.variables.update(variables_before)

        for stage in plan.stages[stage_index:]:
            for node_id in stage:
                execution.nodeExecutions.pop(node_id, None)
        self._reset_unfinished(workflow)

    def _reset_unfinished(self, workflow: Workflow) -> None:
        """Nodes interrupted mid-run go back to idle"""
        for node in workflow.nodes:
            if node.status == NodeStatus.RUNNING:
                node.status = NodeStatus.IDLE
                node.output = None

    async def _notify(
        self,
        progress_callback: Optional[ProgressCallback],
        node_id: str,
        event_type: str,
        data: Any,
    ) -> None:
        """Notify progress callback"""
        if progress_callback is None:
            return
        try:
            await maybe_await(progress_callback(ExecutionEvent(nodeId=node_id, type=event_type, data=data)))
        except Exception as e:
            logger.warning(f"Progress callback error: {e}")
