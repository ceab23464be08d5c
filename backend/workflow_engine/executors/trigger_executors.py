"""
Trigger Node Executors - Entry points for workflow execution
"""

from typing import Any

from ..models import NodeResult
from .base import NodeExecutor, ExecutionContext


class TriggerExecutor(NodeExecutor):
    """Passes the external trigger payload through to downstream nodes"""

    node_type = "manual_trigger"
    display_name = "Manual Trigger"
    category = "trigger"
    description = "Manually trigger workflow execution"

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        context.log(f"{self.display_name} activated")
        return NodeResult.ok(input_data if input_data is not None else {})


class ScheduleTriggerExecutor(TriggerExecutor):
    node_type = "schedule_trigger"
    display_name = "Schedule Trigger"
    description = "Start the workflow on a schedule"


class WebhookTriggerExecutor(TriggerExecutor):
    node_type = "webhook_trigger"
    display_name = "Webhook Trigger"
    description = "Trigger workflow via HTTP request"


class EventTriggerExecutor(TriggerExecutor):
    node_type = "event_trigger"
    display_name = "Event Trigger"
    description = "Start the workflow when an application event fires"


class ConnectorTriggerExecutor(TriggerExecutor):
    node_type = "connector_trigger"
    display_name = "Connector Trigger"
    description = "Start the workflow from a connector event"
