"""
Base Node Executor - Abstract base class for all node executors
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Mapping, Optional, Type
from dataclasses import dataclass, field
import logging

from pydantic import BaseModel, ConfigDict

from ..models import NodeResult
from ..services import ExecutionServices

logger = logging.getLogger(__name__)


@dataclass
class ExecutionContext:
    """
    Run-scoped state shared by every node execution in one workflow run.

    ``variables`` is a single mutable map; concurrent writers to the same
    key within a stage resolve last-write-wins.
    """

    workflow_id: str = ""
    execution_id: str = ""
    node_outputs: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, Any] = field(default_factory=dict)

    # Execution state
    logs: List[str] = field(default_factory=list)
    cancelled: bool = False

    def log(self, message: str, level: str = "info"):
        """Add a log message"""
        self.logs.append(f"[{level.upper()}] {message}")
        getattr(logger, level, logger.info)(f"[{self.execution_id}] {message}")

    def get_variable(self, name: str, default: Any = None) -> Any:
        """Get a workflow variable"""
        return self.variables.get(name, default)

    def set_variable(self, name: str, value: Any):
        """Set a workflow variable"""
        self.variables[name] = value

    def variables_snapshot(self) -> Dict[str, Any]:
        return dict(self.variables)


class NodeConfig(BaseModel):
    """Base schema for ``node.data``; unknown keys are kept"""
    model_config = ConfigDict(extra="allow")


class NodeExecutor(ABC):
    """
    Abstract base class for node executors.

    Subclasses declare a ``config_model`` so that ``node.data`` is validated
    when the executor is built, then implement ``execute``. Expected
    failures are returned as ``NodeResult.fail``; anything raised is turned
    into a failed result by the dispatcher.
    """

    # Node metadata (override in subclasses)
    node_type: str = "base"
    display_name: str = "Base Node"
    category: str = "data"
    description: str = "Base node executor"
    config_model: Type[NodeConfig] = NodeConfig

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        services: Optional[ExecutionServices] = None,
        node_id: Optional[str] = None,
    ):
        """
        Args:
            config: ``node.data`` from the workflow
            services: Injected collaborators
            node_id: Id of the node being executed, for log messages
        """
        self.node_id = node_id
        self.services = services or ExecutionServices()
        self.config = self.config_model.model_validate(config or {})

    @abstractmethod
    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        """
        Execute the node logic.

        Args:
            input_data: Payload gathered from upstream nodes
            context: Run-scoped shared state

        Returns:
            The node's result
        """
        raise NotImplementedError


def as_mapping(value: Any) -> Dict[str, Any]:
    """Input payload as a dict, or an empty dict for non-object payloads"""
    if isinstance(value, Mapping):
        return dict(value)
    return {}
