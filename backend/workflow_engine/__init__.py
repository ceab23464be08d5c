"""
Workflow Execution Engine

Plans node graphs into dependency-ordered stages, resolves dotted-path
expressions against run data, and executes typed nodes (triggers, tool and
connector actions, branching, transforms, agents) over shared run state.
"""

from .models import (
    Workflow,
    WorkflowNode,
    WorkflowConnection,
    WorkflowSettings,
    WorkflowExecution,
    NodeExecution,
    NodeResult,
    NodeStatus,
    ExecutionStatus,
    ExecutionEvent,
)
from .expressions import UNDEFINED, evaluate_expression, evaluate_condition, render_template
from .planner import (
    ExecutionPlan,
    WorkflowGraphError,
    CyclicGraphError,
    DanglingConnectionError,
    build_execution_plan,
)
from .executors import (
    ExecutionContext,
    NodeExecutor,
    NodeRunner,
    NODE_EXECUTORS,
    execute_node,
    register_executor,
)
from .services import ExecutionServices
from .settings import EngineSettings, get_settings
from .logging_setup import configure_logging
from .engine import WorkflowEngine

__all__ = [
    'Workflow',
    'WorkflowNode',
    'WorkflowConnection',
    'WorkflowSettings',
    'WorkflowExecution',
    'NodeExecution',
    'NodeResult',
    'NodeStatus',
    'ExecutionStatus',
    'ExecutionEvent',
    'UNDEFINED',
    'evaluate_expression',
    'evaluate_condition',
    'render_template',
    'ExecutionPlan',
    'WorkflowGraphError',
    'CyclicGraphError',
    'DanglingConnectionError',
    'build_execution_plan',
    'ExecutionContext',
    'NodeExecutor',
    'NodeRunner',
    'NODE_EXECUTORS',
    'execute_node',
    'register_executor',
    'ExecutionServices',
    'EngineSettings',
    'get_settings',
    'configure_logging',
    'WorkflowEngine',
]
