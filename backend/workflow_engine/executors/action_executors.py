"""
Action Node Executors - Tool and connector calls through injected collaborators
"""

from typing import Any, Dict, Mapping

from pydantic import Field

from ..models import NodeResult
from ..services import maybe_await, parse_json_result
from .base import NodeConfig, NodeExecutor, ExecutionContext, as_mapping


class ToolActionConfig(NodeConfig):
    toolName: str = Field(..., min_length=1)
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolActionExecutor(NodeExecutor):
    """Invoke a named tool"""

    node_type = "tool_action"
    display_name = "Tool Action"
    category = "action"
    description = "Run a tool with the node input merged into its arguments"
    config_model = ToolActionConfig

    async def call_tool(self, tool_name: str, tool_input: Dict[str, Any], context: ExecutionContext) -> NodeResult:
        runner = self.services.tool_runner
        if runner is None:
            return NodeResult.fail(f"No tool runner configured for tool: {tool_name}")

        context.log(f"Calling tool '{tool_name}'")
        raw = await maybe_await(runner.execute_tool(tool_name, tool_input))
        result = parse_json_result(raw, f"Tool {tool_name}")

        if isinstance(result, Mapping) and result.get("success") is False:
            error = result.get("error") or f"Tool {tool_name} failed"
            context.log(f"Tool '{tool_name}' failed: {error}", level="error")
            return NodeResult.fail(str(error), output=result)

        return NodeResult.ok(result)

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        tool_input = {**self.config.input, **as_mapping(input_data)}
        return await self.call_tool(self.config.toolName, tool_input, context)


class SendNotificationConfig(NodeConfig):
    title: str = ""
    message: str = ""


class SendNotificationExecutor(ToolActionExecutor):
    """Send a notification via the notification tool"""

    node_type = "send_notification"
    display_name = "Send Notification"
    description = "Send an in-app notification"
    config_model = SendNotificationConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        return await self.call_tool(
            "send_notification",
            {"title": self.config.title, "message": self.config.message},
            context,
        )


class ConnectorActionConfig(NodeConfig):
    connectorId: str = Field(..., min_length=1)
    actionId: str = Field(..., min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)


class ConnectorActionExecutor(NodeExecutor):
    """Invoke an action on an external connector"""

    node_type = "connector_action"
    display_name = "Connector Action"
    category = "action"
    description = "Run a connector action (email, CRM, storage...)"
    config_model = ConnectorActionConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        connector_id = self.config.connectorId
        action_id = self.config.actionId

        runner = self.services.connector_runner
        if runner is None:
            return NodeResult.fail(f"No connector runner configured for connector: {connector_id}")

        # Node params take precedence over upstream fields
        params = {**as_mapping(input_data), **self.config.params}

        context.log(f"Calling connector '{connector_id}' action '{action_id}'")
        raw = await maybe_await(runner.execute(connector_id, action_id, params))
        result = parse_json_result(raw, f"Connector {connector_id}")

        output = {**as_mapping(result), "connector": connector_id, "action": action_id}
        if not isinstance(result, Mapping):
            output["result"] = result

        if output.get("success") is False:
            error = output.get("error") or f"Connector {connector_id} action {action_id} failed"
            context.log(f"Connector '{connector_id}' failed: {error}", level="error")
            return NodeResult.fail(str(error), output=output)

        return NodeResult.ok(output)
