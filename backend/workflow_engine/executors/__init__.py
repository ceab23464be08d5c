"""
Node Executors - Implementations for each workflow node type
"""

from typing import Any, Dict, List, Optional, Type
import logging

from pydantic import ValidationError

from ..models import NodeResult, WorkflowNode
from ..services import ExecutionServices
from .base import NodeExecutor, NodeConfig, ExecutionContext
from .trigger_executors import (
    TriggerExecutor,
    ScheduleTriggerExecutor,
    WebhookTriggerExecutor,
    EventTriggerExecutor,
    ConnectorTriggerExecutor,
)
from .action_executors import (
    ToolActionExecutor,
    ConnectorActionExecutor,
    SendNotificationExecutor,
)
from .api_executors import HttpRequestExecutor
from .control_executors import (
    IfElseExecutor,
    SwitchExecutor,
    MergeExecutor,
    LoopExecutor,
    DelayExecutor,
)
from .data_executors import (
    SetVariableExecutor,
    MapFieldsExecutor,
    FilterExecutor,
    AggregateExecutor,
    TemplateExecutor,
)
from .agent_executors import (
    AgentThinkExecutor,
    AgentClassifyExecutor,
    AgentExtractExecutor,
    AgentAutonomousExecutor,
)

logger = logging.getLogger(__name__)

# Registry of all node executors
NODE_EXECUTORS: Dict[str, Type[NodeExecutor]] = {
    # Triggers
    'manual_trigger': TriggerExecutor,
    'schedule_trigger': ScheduleTriggerExecutor,
    'webhook_trigger': WebhookTriggerExecutor,
    'event_trigger': EventTriggerExecutor,
    'connector_trigger': ConnectorTriggerExecutor,

    # Actions
    'tool_action': ToolActionExecutor,
    'connector_action': ConnectorActionExecutor,
    'http_request': HttpRequestExecutor,
    'send_notification': SendNotificationExecutor,

    # Agents
    'agent_think': AgentThinkExecutor,
    'agent_classify': AgentClassifyExecutor,
    'agent_extract': AgentExtractExecutor,
    'agent_autonomous': AgentAutonomousExecutor,

    # Logic
    'if_else': IfElseExecutor,
    'switch': SwitchExecutor,
    'merge': MergeExecutor,
    'loop': LoopExecutor,
    'delay': DelayExecutor,

    # Transform
    'set_variable': SetVariableExecutor,
    'map_fields': MapFieldsExecutor,
    'filter': FilterExecutor,
    'aggregate': AggregateExecutor,
    'template': TemplateExecutor,
}


def get_executor(
    node_type: str,
    registry: Optional[Dict[str, Type[NodeExecutor]]] = None,
) -> Optional[Type[NodeExecutor]]:
    """Get executor class for a node type"""
    if registry is None:
        registry = NODE_EXECUTORS
    return registry.get(node_type)


def register_executor(node_type: str):
    """Class decorator that plugs a new node type into the registry"""
    def decorator(cls: Type[NodeExecutor]) -> Type[NodeExecutor]:
        cls.node_type = node_type
        NODE_EXECUTORS[node_type] = cls
        return cls
    return decorator


def _format_validation_error(node_type: str, error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "data"
        problems.append(f"{location}: {item.get('msg')}")
    return f"Invalid configuration for {node_type} node: {'; '.join(problems)}"


class NodeRunner:
    """
    Dispatches nodes to their executors with a fixed set of collaborators.

    ``execute_node`` never raises: unknown types, invalid configuration and
    errors from collaborators all come back as a failed ``NodeResult``.
    """

    def __init__(
        self,
        services: Optional[ExecutionServices] = None,
        registry: Optional[Dict[str, Type[NodeExecutor]]] = None,
    ):
        self.services = services or ExecutionServices()
        self.registry = registry if registry is not None else NODE_EXECUTORS

    async def execute_node(
        self,
        node: WorkflowNode,
        input_data: Any,
        context: ExecutionContext,
    ) -> NodeResult:
        executor_class = get_executor(node.type, self.registry)
        if executor_class is None:
            return NodeResult.fail(f"Unknown node type: {node.type}")

        try:
            executor = executor_class(node.data, services=self.services, node_id=node.id)
        except ValidationError as e:
            message = _format_validation_error(node.type, e)
            context.log(f"Node {node.id}: {message}", level="error")
            return NodeResult.fail(message)

        try:
            return await executor.execute(input_data, context)
        except Exception as e:
            message = str(e) or f"{node.type} node failed: {e.__class__.__name__}"
            logger.error(f"Node execution failed: {node.id} - {message}")
            context.log(f"Node {node.id} failed: {message}", level="error")
            return NodeResult.fail(message)

    def available_node_types(self) -> List[Dict[str, Any]]:
        """Get list of available node types"""
        return [
            {
                "type": node_type,
                "displayName": executor_class.display_name,
                "category": executor_class.category,
                "description": executor_class.description,
            }
            for node_type, executor_class in self.registry.items()
        ]


async def execute_node(
    node: WorkflowNode,
    input_data: Any,
    context: ExecutionContext,
    services: Optional[ExecutionServices] = None,
) -> NodeResult:
    """Execute one node with the default registry"""
    return await NodeRunner(services).execute_node(node, input_data, context)


__all__ = [
    'NodeExecutor',
    'NodeConfig',
    'ExecutionContext',
    'NodeRunner',
    'NODE_EXECUTORS',
    'get_executor',
    'register_executor',
    'execute_node',
]
