"""
Agent Node Executors - Model-backed reasoning steps and autonomous agent hand-off
"""

from typing import Any, Dict, List, Mapping, Optional
import json
import logging

from pydantic import Field

from ..models import NodeResult
from ..services import maybe_await
from .base import NodeConfig, NodeExecutor, ExecutionContext

logger = logging.getLogger(__name__)


def _input_as_text(input_data: Any) -> str:
    if isinstance(input_data, str):
        return input_data
    return json.dumps(input_data if input_data is not None else {}, default=str)


def validate_against_schema(data: Any, schema: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Check required keys and declared property types of an extracted object.

    Returns:
        A ``;``-joined error description, or None when the data conforms
    """
    if not schema:
        return None
    if not isinstance(data, Mapping):
        return f"Expected an object but got {type(data).__name__}"

    type_names = {
        "string": (str,),
        "number": (int, float),
        "integer": (int,),
        "boolean": (bool,),
        "array": (list,),
        "object": (dict,),
    }

    errors: List[str] = []
    for key in schema.get("required", []) or []:
        if key not in data:
            errors.append(f"Missing required field: {key}")

    properties = schema.get("properties", {}) or {}
    for key, value in data.items():
        expected = (properties.get(key) or {}).get("type")
        if not expected or expected not in type_names:
            continue
        matches = isinstance(value, type_names[expected])
        if expected in ("number", "integer") and isinstance(value, bool):
            matches = False
        if expected == "integer" and isinstance(value, float) and value.is_integer():
            matches = True
        if not matches:
            errors.append(f'Field "{key}" expected type "{expected}" but got "{type(value).__name__}"')

    return "; ".join(errors) if errors else None


class ModelNodeExecutor(NodeExecutor):
    """Shared plumbing for nodes that call the model client"""

    category = "agent"

    async def ask(self, prompt: str, system_prompt: Optional[str] = None, max_tokens: int = 1024) -> str:
        client = self.services.model_client
        if client is None:
            raise ValueError(f"No model client configured for node type: {self.node_type}")
        reply = await client.chat(
            [{"role": "user", "content": prompt}],
            system_prompt=system_prompt,
            max_tokens=max_tokens,
        )
        return reply or ""


class AgentThinkConfig(NodeConfig):
    prompt: str = ""
    systemPrompt: Optional[str] = None
    maxTokens: int = Field(1024, gt=0)


class AgentThinkExecutor(ModelNodeExecutor):
    """Free-form reasoning over the input"""

    node_type = "agent_think"
    display_name = "Agent Think"
    description = "Ask the model to reason about the input data"
    config_model = AgentThinkConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        context.log("Agent thinking")
        reply = await self.ask(
            f"{self.config.prompt}\n\nInput data:\n{_input_as_text(input_data)}",
            system_prompt=self.config.systemPrompt or None,
            max_tokens=self.config.maxTokens,
        )
        return NodeResult.ok(reply)


class AgentClassifyConfig(NodeConfig):
    categories: str = Field(..., min_length=1)  # Comma-separated
    inputField: str = "content"


class AgentClassifyExecutor(ModelNodeExecutor):
    """Pick one category for the input"""

    node_type = "agent_classify"
    display_name = "Agent Classify"
    description = "Classify the input into one of a fixed set of categories"
    config_model = AgentClassifyConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        categories = [c.strip() for c in self.config.categories.split(",") if c.strip()]
        if isinstance(input_data, Mapping):
            content = input_data.get(self.config.inputField)
        else:
            content = input_data

        reply = await self.ask(
            f"Classify the following into exactly one of these categories: {', '.join(categories)}"
            f"\n\nInput: {content}\n\nRespond with only the category name."
        )
        category = reply.strip() or "unknown"
        context.log(f"Classified as '{category}'")
        return NodeResult.ok({"category": category, "input": content})


class AgentExtractConfig(NodeConfig):
    schema_: Optional[Dict[str, Any]] = Field(None, alias="schema")
    instructions: str = ""


class AgentExtractExecutor(ModelNodeExecutor):
    """Extract structured JSON from the input, checked against a schema"""

    node_type = "agent_extract"
    display_name = "Agent Extract"
    description = "Extract structured data matching a JSON schema"
    config_model = AgentExtractConfig

    def _prompt(self, input_data: Any, feedback: Optional[str] = None) -> str:
        schema = json.dumps(self.config.schema_, default=str)
        instructions = f"Instructions: {self.config.instructions}\n" if self.config.instructions else ""
        prefix = ""
        suffix = "Respond with only valid JSON."
        if feedback:
            prefix = f"Your previous response had validation errors: {feedback}\n\nPlease "
            suffix = "Respond with ONLY valid JSON matching the schema exactly."
        return (
            f"{prefix}extract structured data from the following input according to this schema: {schema}\n"
            f"{instructions}\nInput: {json.dumps(input_data, default=str)}\n\n{suffix}"
        )

    @staticmethod
    def _parse(reply: str) -> Any:
        try:
            return json.loads(reply) if reply else reply
        except json.JSONDecodeError:
            return reply

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        parsed = self._parse(await self.ask(self._prompt(input_data)))
        error = validate_against_schema(parsed, self.config.schema_)
        if error is None:
            return NodeResult.ok(parsed)

        context.log(f"Extraction did not match schema, retrying: {error}", level="warning")
        parsed = self._parse(await self.ask(self._prompt(input_data, feedback=error)))
        error = validate_against_schema(parsed, self.config.schema_)
        if error is not None:
            return NodeResult.fail(f"Schema validation failed: {error}", output=parsed)
        return NodeResult.ok(parsed)


class AgentAutonomousConfig(NodeConfig):
    agentId: Optional[str] = None
    task: Optional[str] = None


class AgentAutonomousExecutor(NodeExecutor):
    """Hand a task to an autonomous agent without waiting for it"""

    node_type = "agent_autonomous"
    display_name = "Autonomous Agent"
    category = "agent"
    description = "Deploy an autonomous agent with a task"
    config_model = AgentAutonomousConfig

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        agent_id = self.config.agentId
        deployer = self.services.agent_deployer

        if deployer is not None:
            agent_id = await maybe_await(deployer.deploy(self.config.model_dump(by_alias=True)))
            if not agent_id:
                return NodeResult.fail("Failed to deploy agent: the agent runtime returned no agent id")

        context.log(f"Agent '{agent_id}' deployed")
        return NodeResult.ok({
            "status": "deployed",
            "agentId": agent_id,
            "task": self.config.task,
        })
