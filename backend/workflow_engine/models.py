"""
Workflow Data Models
"""

from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional
from enum import Enum
from datetime import datetime
import uuid


class NodeStatus(str, Enum):
    """Run status of a single node, owned by the orchestrator"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"


class ExecutionStatus(str, Enum):
    """Status of a workflow run"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class ConnectionStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    SKIPPED = "skipped"


class Position(BaseModel):
    """Position on the canvas"""
    x: float = 0
    y: float = 0


class WorkflowNode(BaseModel):
    """A node in the workflow"""
    id: str
    type: str  # Node type (if_else, tool_action, etc.)
    label: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[Position] = None
    status: NodeStatus = NodeStatus.IDLE
    output: Optional[Any] = None


class WorkflowConnection(BaseModel):
    """A directed connection between two node ports"""
    id: str = Field(default_factory=lambda: f"conn-{uuid.uuid4().hex[:12]}")
    sourceNodeId: str
    sourcePortId: str = "out"
    targetNodeId: str
    targetPortId: str = "in"
    status: ConnectionStatus = ConnectionStatus.IDLE


class WorkflowSettings(BaseModel):
    """Workflow execution settings"""
    timeout: Optional[float] = 300  # Seconds, None disables
    parallelStages: bool = True
    haltOnError: bool = False


class Workflow(BaseModel):
    """Complete workflow definition"""
    id: str = Field(default_factory=lambda: f"wf-{uuid.uuid4().hex[:12]}")
    name: str = "Untitled workflow"
    description: Optional[str] = None
    nodes: List[WorkflowNode] = Field(default_factory=list)
    connections: List[WorkflowConnection] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class NodeResult(BaseModel):
    """Outcome of a single node execution"""
    success: bool
    output: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: Any = None) -> "NodeResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str, output: Any = None) -> "NodeResult":
        return cls(success=False, output=output, error=error)


class ExecutionEvent(BaseModel):
    """Progress event emitted while a workflow runs"""
    nodeId: str
    type: str  # start | complete | error | skip
    data: Optional[Any] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class NodeExecution(BaseModel):
    """Execution state of a single node"""
    nodeId: str
    nodeType: str
    status: NodeStatus = NodeStatus.IDLE
    stage: int = 0
    startedAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    duration: Optional[int] = None  # Milliseconds
    input: Optional[Any] = None
    output: Optional[Any] = None
    error: Optional[str] = None


class WorkflowExecution(BaseModel):
    """Execution state of a workflow"""
    id: str = Field(default_factory=lambda: f"exec-{uuid.uuid4().hex[:12]}")
    workflowId: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    startedAt: datetime = Field(default_factory=datetime.utcnow)
    completedAt: Optional[datetime] = None
    triggerData: Optional[Any] = None
    stages: List[List[str]] = Field(default_factory=list)
    nodeExecutions: Dict[str, NodeExecution] = Field(default_factory=dict)
    variables: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    logs: List[str] = Field(default_factory=list)

    @property
    def failed_nodes(self) -> List[str]:
        return [
            node_id for node_id, node_exec in self.nodeExecutions.items()
            if node_exec.status == NodeStatus.ERROR
        ]
