"""
Control Flow Node Executors - Branching, loops, and flow control
"""

from typing import Any, List, Optional, Union
import asyncio

from pydantic import Field

from ..expressions import evaluate_condition, evaluate_expression, string_form
from ..models import NodeResult
from .base import NodeConfig, NodeExecutor, ExecutionContext


class IfElseConfig(NodeConfig):
    condition: str = ""


class IfElseExecutor(NodeExecutor):
    """Branch based on condition"""

    node_type = "if_else"
    display_name = "If / Else"
    category = "control"
    description = "Branch execution based on a condition"
    config_model = IfElseConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        variables = context.variables_snapshot()
        scope = {**variables, "data": input_data, "variables": variables}

        is_true = evaluate_condition(self.config.condition, scope)
        context.log(f"Condition '{self.config.condition}' evaluated to {is_true}")

        return NodeResult.ok({
            "branch": "true" if is_true else "false",
            "data": input_data,
        })


class SwitchCase(NodeConfig):
    value: Any = None
    label: Optional[str] = None


class SwitchConfig(NodeConfig):
    field: str = ""
    cases: List[Union[str, int, float, bool, SwitchCase]] = Field(default_factory=list)


class SwitchExecutor(NodeExecutor):
    """Multi-way branch"""

    node_type = "switch"
    display_name = "Switch"
    category = "control"
    description = "Route to different outputs based on value"
    config_model = SwitchConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        scope = {**context.variables_snapshot(), "data": input_data}
        value = string_form(evaluate_expression(self.config.field, scope))

        branch = "default"
        for index, case in enumerate(self.config.cases):
            case_value = case.value if isinstance(case, SwitchCase) else case
            if string_form(case_value) == value:
                branch = str(index)
                break

        context.log(f"Switch on '{self.config.field}' = {value!r} -> branch {branch}")
        return NodeResult.ok({"branch": branch, "data": input_data})


class MergeExecutor(NodeExecutor):
    """Merge multiple inputs"""

    node_type = "merge"
    display_name = "Merge"
    category = "control"
    description = "Combine multiple branch outputs"

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        # Waiting for every upstream branch is the orchestrator's job
        return NodeResult.ok(input_data)


class LoopConfig(NodeConfig):
    arrayField: str = ""


class LoopExecutor(NodeExecutor):
    """Iterate over items"""

    node_type = "loop"
    display_name = "Loop"
    category = "control"
    description = "Iterate over array items"
    config_model = LoopConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        items = evaluate_expression(self.config.arrayField, {"data": input_data})

        if not isinstance(items, list):
            return NodeResult.fail(f"{self.config.arrayField} is not an array")

        context.log(f"Loop over {len(items)} items")
        return NodeResult.ok({"items": items, "count": len(items)})


class DelayConfig(NodeConfig):
    duration: Optional[float] = Field(None, ge=0)  # Seconds


class DelayExecutor(NodeExecutor):
    """Wait for specified duration"""

    node_type = "delay"
    display_name = "Delay"
    category = "control"
    description = "Pause execution for a specified time"
    config_model = DelayConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        duration = self.config.duration
        if duration is None:
            duration = self.services.get_settings().default_delay

        context.log(f"Delaying for {duration}s")
        await asyncio.sleep(duration)

        return NodeResult.ok(input_data)
