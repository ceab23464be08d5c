"""
Collaborator interfaces - the tool, connector, model and agent services the
engine calls through, plus httpx-backed clients for each.
"""

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol, Union

import httpx

from .settings import EngineSettings, get_settings

logger = logging.getLogger(__name__)


class ToolRunner(Protocol):
    def execute_tool(self, tool_name: str, tool_input: Any) -> Union[str, Awaitable[str]]:
        """Run a named tool and return its JSON-encoded result"""
        ...


class ConnectorRunner(Protocol):
    def execute(
        self, connector_id: str, action_id: str, params: Dict[str, Any]
    ) -> Union[Mapping[str, Any], str, Awaitable[Any]]:
        """Run a connector action and return its result object or JSON text"""
        ...


class ModelClient(Protocol):
    async def chat(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        max_tokens: int = 1024,
    ) -> str:
        ...


class AgentDeployer(Protocol):
    def deploy(self, config: Dict[str, Any]) -> Optional[str]:
        """Hand a task to the autonomous-agent runtime; return the agent id"""
        ...


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it unchanged"""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class ExecutionServices:
    """Collaborators injected into node executors"""
    tool_runner: Optional[ToolRunner] = None
    connector_runner: Optional[ConnectorRunner] = None
    model_client: Optional[ModelClient] = None
    agent_deployer: Optional[AgentDeployer] = None
    http_client: Optional[httpx.AsyncClient] = None
    settings: Optional[EngineSettings] = None

    def get_settings(self) -> EngineSettings:
        return self.settings or get_settings()

    @classmethod
    def from_settings(cls, settings: Optional[EngineSettings] = None) -> "ExecutionServices":
        """Wire the HTTP clients against the configured endpoints"""
        settings = settings or get_settings()
        return cls(
            tool_runner=HttpToolRunner(settings.tool_proxy_url, timeout=settings.http_timeout),
            connector_runner=HttpConnectorRunner(settings.connector_url, timeout=settings.http_timeout),
            model_client=ChatCompletionsClient(
                settings.llm_api_url,
                model=settings.llm_model,
                api_key=settings.llm_api_key,
            ),
            settings=settings,
        )


class HttpToolRunner:
    """Calls tools through an HTTP tool proxy"""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def execute_tool(self, tool_name: str, tool_input: Any) -> str:
        logger.debug(f"Calling tool '{tool_name}' via {self.base_url}")
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/tools/call",
                json={"tool": tool_name, "arguments": tool_input},
            )
            response.raise_for_status()
            return response.text


class HttpConnectorRunner:
    """Calls connector actions on the connector service"""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def execute(self, connector_id: str, action_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug(f"Calling connector '{connector_id}' action '{action_id}'")
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/connectors/{connector_id}/actions/{action_id}",
                json={"params": params},
            )
            if response.status_code in (401, 403):
                return {
                    "success": False,
                    "error": f"Connector {connector_id} is not authorized (HTTP {response.status_code})",
                }
            response.raise_for_status()
            return response.json()


class ChatCompletionsClient:
    """Chat completion against an OpenAI-compatible endpoint"""

    def __init__(
        self,
        base_url: str,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 120.0,
        temperature: float = 0.7,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.temperature = temperature

    async def chat(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        max_tokens: int = 1024,
    ) -> str:
        if system_prompt:
            messages = [{"role": "system", "content": system_prompt}] + list(messages)

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/v1/chat/completions",
                json={
                    "messages": messages,
                    "model": self.model,
                    "temperature": self.temperature,
                    "max_tokens": max_tokens,
                },
                headers=headers,
            )
            response.raise_for_status()
            data = response.json()

        choice = data.get("choices", [{}])[0]
        usage = data.get("usage", {})
        logger.debug(f"Model response: {usage.get('total_tokens', 0)} tokens used")
        return choice.get("message", {}).get("content", "") or ""


def parse_json_result(raw: Any, source: str) -> Any:
    """Decode a collaborator's JSON text; mappings pass through"""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"{source} returned malformed JSON: {e}")
