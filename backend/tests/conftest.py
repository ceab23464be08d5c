"""
Pytest configuration and fixtures for workflow engine tests.

Sets up the Python path so the package imports from a source checkout.
"""

import sys
import json
from pathlib import Path
from typing import Any, Dict

import pytest

# Add the backend directory to the Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from workflow_engine.executors.base import ExecutionContext  # noqa: E402
from workflow_engine.models import WorkflowConnection, WorkflowNode  # noqa: E402
from workflow_engine.services import ExecutionServices  # noqa: E402
from workflow_engine.settings import EngineSettings  # noqa: E402


class FakeToolRunner:
    """Records calls and answers with canned JSON"""

    def __init__(self, responses: Dict[str, Any] = None):
        self.responses = responses or {}
        self.calls = []

    def execute_tool(self, tool_name: str, tool_input: Any) -> str:
        self.calls.append((tool_name, tool_input))
        response = self.responses.get(tool_name, {"success": True, "result": f"ran {tool_name}"})
        if isinstance(response, str):
            return response
        return json.dumps(response)


class FakeConnectorRunner:
    def __init__(self, connected=("gmail", "slack")):
        self.connected = set(connected)
        self.calls = []

    async def execute(self, connector_id: str, action_id: str, params: Dict[str, Any]):
        self.calls.append((connector_id, action_id, params))
        if connector_id not in self.connected:
            return json.dumps({"success": False, "error": f"Connector {connector_id} is not connected"})
        return {"success": True, "params": params, "result": f"Mock result for {action_id}"}


@pytest.fixture
def context():
    return ExecutionContext(workflow_id="test-workflow-123", execution_id="test-exec-456")


@pytest.fixture
def tool_runner():
    return FakeToolRunner()


@pytest.fixture
def connector_runner():
    return FakeConnectorRunner()


@pytest.fixture
def services(tool_runner, connector_runner):
    return ExecutionServices(
        tool_runner=tool_runner,
        connector_runner=connector_runner,
        settings=EngineSettings(default_delay=0),
    )


def make_node(node_type: str, data: Dict[str, Any] = None, node_id: str = "test-node") -> WorkflowNode:
    return WorkflowNode(id=node_id, type=node_type, label="Test", data=data or {})


def connect(source: str, target: str, source_port: str = "out", target_port: str = "in") -> WorkflowConnection:
    return WorkflowConnection(
        id=f"{source}->{target}:{source_port}",
        sourceNodeId=source,
        sourcePortId=source_port,
        targetNodeId=target,
        targetPortId=target_port,
    )
